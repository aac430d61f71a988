# -*- coding: utf-8 -*-
"""
Prometheus 模块

提供：
- Prometheus 文本格式转换（Pull 模式）
- /metrics 端点
"""

from otel_lib.metric.prometheus.exposition import (
    ExpositionCollector,
    cumulative_buckets,
    render,
    translate,
)
from otel_lib.metric.prometheus.server import ScrapeServer, bind_socket, create_app

__all__ = [
    "ExpositionCollector",
    "cumulative_buckets",
    "render",
    "translate",
    "ScrapeServer",
    "bind_socket",
    "create_app",
]
