# -*- coding: utf-8 -*-
"""
Stdout 导出器（调试用）
"""

from otel_lib.metric.stdout.exporter import StdoutMetricExporter

__all__ = ["StdoutMetricExporter"]
