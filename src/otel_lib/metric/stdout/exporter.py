# -*- coding: utf-8 -*-
"""
Stdout Metric 导出器

用于调试，每个 instrument 输出一个格式化的 JSON 对象。
"""

import json
import logging
import sys
import threading
from typing import Optional, TextIO

from opentelemetry.sdk.metrics.export import (
    MetricExporter,
    MetricExportResult,
    MetricsData,
)

logger = logging.getLogger(__name__)


class StdoutMetricExporter(MetricExporter):
    """
    Stdout Metric 导出器

    SDK 的 ConsoleMetricExporter 把整个 MetricsData 输出为一个 JSON，
    这里按 instrument 拆开，每个对象带上 resource 和 scope 名称。

    示例:
        ```python
        exporter = StdoutMetricExporter(pretty_print=True)
        exporter.export(registry.snapshot())
        ```
    """

    def __init__(self, pretty_print: bool = True, out: Optional[TextIO] = None):
        """
        Args:
            pretty_print: 是否格式化输出
            out: 输出流（默认 stdout）
        """
        super().__init__()
        self._pretty_print = pretty_print
        self._out = out
        self._lock = threading.Lock()

    @property
    def out(self) -> TextIO:
        # 每次导出时再取 sys.stdout，便于被重定向
        return self._out or sys.stdout

    def export(
        self,
        metrics_data: MetricsData,
        timeout_millis: float = 10_000,
        **kwargs,
    ) -> MetricExportResult:
        indent = 2 if self._pretty_print else None
        try:
            documents = []
            for rm in metrics_data.resource_metrics:
                resource = dict(rm.resource.attributes)
                for sm in rm.scope_metrics:
                    for metric in sm.metrics:
                        document = {
                            "resource": resource,
                            "scope": sm.scope.name,
                            "metric": json.loads(metric.to_json()),
                        }
                        documents.append(json.dumps(document, indent=indent, default=str))
            with self._lock:
                for document in documents:
                    self.out.write(document + "\n")
                self.out.flush()
        except (TypeError, ValueError, OSError) as e:
            logger.error("writing metrics to stdout failed due to: %s", e)
            return MetricExportResult.FAILURE
        return MetricExportResult.SUCCESS

    def force_flush(self, timeout_millis: float = 10_000) -> bool:
        return True

    def shutdown(self, timeout_millis: float = 30_000, **kwargs) -> None:
        pass
