# -*- coding: utf-8 -*-
"""
Metric 模块

提供指标导出功能：
- InstrumentRegistry：进程内的 instrument 状态
- MetricPipeline：按目标周期导出（OTLP Push / Stdout）
- DeltaState：每个目标独立的 delta 基线
- Prometheus 文本格式转换和 /metrics 端点（Pull）
"""

from otel_lib.metric.delta import DeltaState
from otel_lib.metric.pipeline import ExportOutcome, MetricPipeline
from otel_lib.metric.registry import InstrumentRegistry

__all__ = [
    "DeltaState",
    "ExportOutcome",
    "MetricPipeline",
    "InstrumentRegistry",
]
