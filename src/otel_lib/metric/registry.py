# -*- coding: utf-8 -*-
"""
Instrument Registry

进程内的 Metric 状态，由 Otel 创建一次，显式传给所有 pipeline 和 Prometheus 端点：
- 内部持有一个 SDK MeterProvider
- 通过一个 cumulative 的 InMemoryMetricReader 提供快照
- 可选地设置为全局 MeterProvider

快照只在单次 collect 期间持锁，SDK 对每个 instrument 的读写单独加锁，
所以快照不会阻塞业务代码的 add / record。
"""

import logging
import threading
from typing import Optional, Sequence

from opentelemetry import metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader, MetricsData
from opentelemetry.sdk.metrics.view import View
from opentelemetry.sdk.resources import Resource

logger = logging.getLogger(__name__)


class InstrumentRegistry:
    """
    Instrument Registry

    示例:
        ```python
        registry = InstrumentRegistry(resource)
        counter = registry.meter("my.module").create_counter("requests")
        counter.add(1)

        data = registry.snapshot()
        ```
    """

    def __init__(self, resource: Resource, views: Sequence[View] = ()):
        """
        Args:
            resource: OpenTelemetry Resource
            views: 可选的 View，例如自定义 histogram 边界
        """
        self._resource = resource
        self._reader = InMemoryMetricReader()
        self._provider = MeterProvider(
            resource=resource,
            metric_readers=[self._reader],
            views=list(views),
        )
        self._snapshot_lock = threading.Lock()
        self._closed = False

    @property
    def resource(self) -> Resource:
        return self._resource

    @property
    def provider(self) -> MeterProvider:
        return self._provider

    def meter(self, name: str, version: str = "", schema_url: str = "") -> metrics.Meter:
        """获取 Meter"""
        return self._provider.get_meter(name, version=version or None, schema_url=schema_url or None)

    def install_global(self) -> None:
        """设置为全局 MeterProvider（进程内只能设置一次）"""
        metrics.set_meter_provider(self._provider)
        logger.info("global meter provider installed")

    def snapshot(self) -> Optional[MetricsData]:
        """
        获取当前所有 instrument 的 cumulative 快照

        Returns:
            MetricsData，没有任何数据时返回 None
        """
        if self._closed:
            return None
        # InMemoryMetricReader 的 collect 和取数据是两步，需要保证成对执行
        with self._snapshot_lock:
            return self._reader.get_metrics_data()

    def shutdown(self) -> None:
        """关闭 MeterProvider"""
        if self._closed:
            return
        self._closed = True
        self._provider.shutdown()
        logger.info("instrument registry shutdown completed")
