# -*- coding: utf-8 -*-
"""
OTLP 导出器（Push 模式）
"""

from otel_lib.metric.otlp.exporter import (
    Endpoint,
    OTLPMetricExporterBuilder,
    build_metric_exporter,
    parse_endpoint,
)

__all__ = [
    "Endpoint",
    "OTLPMetricExporterBuilder",
    "build_metric_exporter",
    "parse_endpoint",
]
