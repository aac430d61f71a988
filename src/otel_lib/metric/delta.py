# -*- coding: utf-8 -*-
"""
Delta 状态

把 cumulative 快照转换为 delta：每个导出目标（pipeline）各自持有一份，
记录上一次快照中每个数据点的值，互不影响。

基线在转换时就更新，导出失败时这一段区间的 delta 会丢失，不做重放。
"""

import dataclasses
import logging
from typing import Any, Dict, FrozenSet, Hashable, List, Optional, Tuple

from opentelemetry.sdk.metrics.export import (
    AggregationTemporality,
    Histogram,
    HistogramDataPoint,
    Metric,
    MetricsData,
    NumberDataPoint,
    Sum,
)

logger = logging.getLogger(__name__)

PointKey = Tuple[str, str, FrozenSet[Tuple[str, Hashable]]]


def _attributes_key(attributes: Optional[Any]) -> FrozenSet[Tuple[str, Hashable]]:
    if not attributes:
        return frozenset()
    items = []
    for key, value in attributes.items():
        if isinstance(value, list):
            value = tuple(value)
        items.append((key, value))
    return frozenset(items)


class DeltaState:
    """
    cumulative → delta 转换器

    示例:
        ```python
        state = DeltaState()
        delta = state.to_delta(registry.snapshot())
        ```
    """

    def __init__(self):
        self._last: Dict[PointKey, Any] = {}

    def __len__(self) -> int:
        return len(self._last)

    def to_delta(self, data: Optional[MetricsData]) -> Optional[MetricsData]:
        """
        转换快照

        Sum 和 Histogram 转换为 delta，Gauge 原样返回。
        """
        if data is None:
            return None

        resource_metrics = []
        for rm in data.resource_metrics:
            scope_metrics = []
            for sm in rm.scope_metrics:
                converted = [self._convert_metric(sm.scope.name, metric) for metric in sm.metrics]
                scope_metrics.append(dataclasses.replace(sm, metrics=converted))
            resource_metrics.append(dataclasses.replace(rm, scope_metrics=scope_metrics))
        return dataclasses.replace(data, resource_metrics=resource_metrics)

    def _convert_metric(self, scope_name: str, metric: Metric) -> Metric:
        data = metric.data
        if isinstance(data, Sum):
            points = [self._sum_point(scope_name, metric.name, data.is_monotonic, p) for p in data.data_points]
            new_data = dataclasses.replace(
                data,
                data_points=points,
                aggregation_temporality=AggregationTemporality.DELTA,
            )
        elif isinstance(data, Histogram):
            points = [self._histogram_point(scope_name, metric.name, p) for p in data.data_points]
            new_data = dataclasses.replace(
                data,
                data_points=points,
                aggregation_temporality=AggregationTemporality.DELTA,
            )
        else:
            return metric
        return dataclasses.replace(metric, data=new_data)

    def _sum_point(
        self,
        scope_name: str,
        metric_name: str,
        is_monotonic: bool,
        point: NumberDataPoint,
    ) -> NumberDataPoint:
        key = (scope_name, metric_name, _attributes_key(point.attributes))
        last: Optional[NumberDataPoint] = self._last.get(key)
        self._last[key] = point

        if last is None:
            return point

        value = point.value - last.value
        if is_monotonic and value < 0:
            # 计数器被重置
            logger.debug("counter %s went backwards, reporting current value", metric_name)
            return point

        return dataclasses.replace(
            point,
            value=value,
            start_time_unix_nano=last.time_unix_nano,
        )

    def _histogram_point(
        self,
        scope_name: str,
        metric_name: str,
        point: HistogramDataPoint,
    ) -> HistogramDataPoint:
        key = (scope_name, metric_name, _attributes_key(point.attributes))
        last: Optional[HistogramDataPoint] = self._last.get(key)
        self._last[key] = point

        if last is None:
            return point

        if (
            list(last.explicit_bounds) != list(point.explicit_bounds)
            or point.count < last.count
        ):
            logger.debug("histogram %s changed shape or was reset, reporting current value", metric_name)
            return point

        bucket_counts: List[int] = [
            current - previous
            for current, previous in zip(point.bucket_counts, last.bucket_counts)
        ]
        return dataclasses.replace(
            point,
            start_time_unix_nano=last.time_unix_nano,
            count=point.count - last.count,
            sum=point.sum - last.sum,
            bucket_counts=bucket_counts,
        )
