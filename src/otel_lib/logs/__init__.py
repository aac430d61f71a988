# -*- coding: utf-8 -*-
"""
日志模块

提供：
- Severity：日志级别
- LevelFilter / RegexDisallowFilter：全局过滤
- FilteredBatchLogRecordProcessor：每个导出目标一个的日志 pipeline
- SyslogFormatter：stderr 输出格式
- LoggingBridge：Python logging 接入

config 依赖本模块的 filters / severity，这里只导出不依赖 config 的部分。
"""

from otel_lib.logs.filters import LevelFilter, RegexDisallowFilter
from otel_lib.logs.severity import OFF, TRACE, Severity

__all__ = [
    "LevelFilter",
    "RegexDisallowFilter",
    "OFF",
    "TRACE",
    "Severity",
]
