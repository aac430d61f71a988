# -*- coding: utf-8 -*-
"""
导出目标转换

把导出目标的配置转换为每个 pipeline 实际使用的策略：
- Metric 目标 → Temporality
- 日志目标 → 日志过滤策略（目标级别 + 全局级别）

纯函数，没有 I/O。
"""

from dataclasses import dataclass
from typing import Optional

from otel_lib.config import LogsExportTarget, MetricsExportTarget, Temporality
from otel_lib.logs.filters import LevelFilter
from otel_lib.logs.severity import Severity


def temporality_for(target: MetricsExportTarget) -> Temporality:
    """获取目标的 Temporality，未设置时为 cumulative"""
    if target.temporality is None:
        return Temporality.CUMULATIVE
    return target.temporality


@dataclass(frozen=True)
class LogExportPolicy:
    """
    日志导出策略

    日志需要同时满足：
    - 通过全局级别过滤（按模块）
    - 级别 >= export_severity（如果设置了）
    """

    level_filter: LevelFilter
    export_severity: Optional[Severity] = None

    def accepts(self, severity: Optional[Severity], module: str = "") -> bool:
        if severity is None:
            # 没有级别的日志只有在不限制级别时才导出
            return self.export_severity is None
        if not self.level_filter.enabled(module, severity.python_level):
            return False
        if self.export_severity is not None and severity < self.export_severity:
            return False
        return True


def log_policy_for(target: LogsExportTarget, level_filter: LevelFilter) -> LogExportPolicy:
    """构建日志目标的导出策略"""
    return LogExportPolicy(level_filter=level_filter, export_severity=target.export_severity)
