# -*- coding: utf-8 -*-
"""
Prometheus 文本格式转换

把 InstrumentRegistry 的 cumulative 快照转换为 Prometheus 文本格式：
- Counter（单调 Sum）→ counter，样本名带 _total
- UpDownCounter（非单调 Sum）→ gauge
- ObservableGauge（Gauge）→ gauge
- Histogram → histogram：按边界升序的 _bucket{le=...}，+Inf 等于总数，以及 _count / _sum

第一个指标总是 target_info（值为 1，标签为 Resource 属性）。
每个样本都带上 Resource 属性、otel_scope_name 以及数据点自己的属性。
"""

import logging
import re
from typing import Dict, Iterable, List, Optional, Tuple

from opentelemetry.sdk.metrics.export import (
    Gauge,
    Histogram,
    HistogramDataPoint,
    MetricsData,
    Sum,
)
from opentelemetry.sdk.resources import Resource
from prometheus_client import generate_latest
from prometheus_client.core import Metric
from prometheus_client.utils import floatToGoString

logger = logging.getLogger(__name__)

TARGET_INFO_NAME = "target_info"
TARGET_INFO_HELP = "Target metadata"
SCOPE_NAME_LABEL = "otel_scope_name"

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_:]")
_INVALID_LABEL_CHARS = re.compile(r"[^a-zA-Z0-9_]")


def sanitize_metric_name(name: str) -> str:
    """转换为合法的 Prometheus 指标名"""
    sanitized = _INVALID_NAME_CHARS.sub("_", name)
    if not sanitized or sanitized[0].isdigit():
        sanitized = "_" + sanitized
    return sanitized


def sanitize_label_name(name: str) -> str:
    """转换为合法的 Prometheus 标签名"""
    sanitized = _INVALID_LABEL_CHARS.sub("_", name)
    if not sanitized or sanitized[0].isdigit():
        sanitized = "_" + sanitized
    return sanitized


def _label_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(_label_value(v) for v in value)
    return str(value)


def _labels(attributes) -> Dict[str, str]:
    if not attributes:
        return {}
    return {sanitize_label_name(str(k)): _label_value(v) for k, v in attributes.items()}


def resource_labels(resource: Optional[Resource]) -> Dict[str, str]:
    """Resource 属性转换为标签，例如 service.name → service_name"""
    if resource is None:
        return {}
    return _labels(resource.attributes)


def cumulative_buckets(point: HistogramDataPoint) -> Tuple[List[Tuple[float, int]], int]:
    """
    计算累计 bucket

    SDK 的 bucket_counts 是每个区间的计数（最后一个是溢出区间），这里按边界升序累加。

    Returns:
        ([(边界, 累计计数), ...], +Inf 计数)
    """
    bounds = list(point.explicit_bounds)
    counts = list(point.bucket_counts)
    pairs = sorted(zip(bounds, counts[: len(bounds)]), key=lambda pair: pair[0])

    buckets: List[Tuple[float, int]] = []
    running = 0
    for bound, count in pairs:
        running += count
        buckets.append((bound, running))

    overflow = counts[len(bounds)] if len(counts) > len(bounds) else 0
    total = max(point.count, running + overflow)
    return buckets, total


class _FamilyBuilder:
    """按名称合并来自不同 scope 的同名指标"""

    def __init__(self):
        self._families: Dict[str, Metric] = {}

    def get(self, name: str, documentation: str, typ: str) -> Optional[Metric]:
        family = self._families.get(name)
        if family is None:
            family = Metric(name, documentation, typ)
            self._families[name] = family
            return family
        if family.type != typ:
            logger.warning(
                "dropping metric %s of type %s, already registered as %s",
                name,
                typ,
                family.type,
            )
            return None
        return family

    def families(self) -> List[Metric]:
        return list(self._families.values())


def target_info(resource: Optional[Resource]) -> Metric:
    family = Metric(TARGET_INFO_NAME, TARGET_INFO_HELP, "gauge")
    family.add_sample(TARGET_INFO_NAME, resource_labels(resource), 1)
    return family


def translate(metrics_data: Optional[MetricsData], resource: Optional[Resource] = None) -> List[Metric]:
    """
    转换快照为 Prometheus 指标族

    Args:
        metrics_data: cumulative 快照（可以为 None）
        resource: Resource，None 时使用快照中的 Resource

    Returns:
        指标族列表，第一个总是 target_info
    """
    if resource is None and metrics_data is not None and metrics_data.resource_metrics:
        resource = metrics_data.resource_metrics[0].resource

    base_labels = resource_labels(resource)
    builder = _FamilyBuilder()

    for rm in (metrics_data.resource_metrics if metrics_data is not None else []):
        for sm in rm.scope_metrics:
            scope_labels = dict(base_labels)
            scope_labels[SCOPE_NAME_LABEL] = sm.scope.name
            for metric in sm.metrics:
                _translate_metric(builder, metric, scope_labels)

    return [target_info(resource)] + builder.families()


def _translate_metric(builder: _FamilyBuilder, metric, scope_labels: Dict[str, str]) -> None:
    name = sanitize_metric_name(metric.name)
    documentation = metric.description or metric.name
    data = metric.data

    if isinstance(data, Sum):
        if data.is_monotonic:
            if name.endswith("_total"):
                name = name[: -len("_total")]
            family = builder.get(name, documentation, "counter")
            sample_name = name + "_total"
        else:
            family = builder.get(name, documentation, "gauge")
            sample_name = name
        if family is None:
            return
        for point in data.data_points:
            family.add_sample(sample_name, {**scope_labels, **_labels(point.attributes)}, point.value)

    elif isinstance(data, Gauge):
        family = builder.get(name, documentation, "gauge")
        if family is None:
            return
        for point in data.data_points:
            family.add_sample(name, {**scope_labels, **_labels(point.attributes)}, point.value)

    elif isinstance(data, Histogram):
        family = builder.get(name, documentation, "histogram")
        if family is None:
            return
        for point in data.data_points:
            labels = {**scope_labels, **_labels(point.attributes)}
            buckets, total = cumulative_buckets(point)
            for bound, count in buckets:
                family.add_sample(name + "_bucket", {**labels, "le": floatToGoString(bound)}, count)
            family.add_sample(name + "_bucket", {**labels, "le": "+Inf"}, total)
            family.add_sample(name + "_count", labels, total)
            family.add_sample(name + "_sum", labels, point.sum)

    else:
        logger.debug("skipping metric %s with unsupported data type %s", metric.name, type(data).__name__)


class _StaticCollector:
    def __init__(self, families: Iterable[Metric]):
        self._families = list(families)

    def collect(self) -> Iterable[Metric]:
        return iter(self._families)


def render(metrics_data: Optional[MetricsData], resource: Optional[Resource] = None) -> str:
    """转换快照为 Prometheus 文本"""
    return generate_latest(_StaticCollector(translate(metrics_data, resource))).decode("utf-8")


class ExpositionCollector:
    """
    prometheus_client Collector

    每次 collect 时从 InstrumentRegistry 获取快照并转换。
    快照失败时只返回 target_info，并记录错误日志。
    """

    def __init__(self, registry, resource: Optional[Resource] = None):
        self._registry = registry
        self._resource = resource if resource is not None else registry.resource

    def collect(self) -> Iterable[Metric]:
        try:
            data = self._registry.snapshot()
        except Exception:
            logger.exception("reading instrument registry failed, rendering partial document")
            data = None
        return iter(translate(data, self._resource))

    def render(self) -> str:
        return generate_latest(self).decode("utf-8")
