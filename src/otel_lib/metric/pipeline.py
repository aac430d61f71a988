# -*- coding: utf-8 -*-
"""
Metric Pipeline

每个导出目标一个 pipeline，状态机为 Idle → Exporting → Idle，按 interval 循环，直到被取消。

每次 tick：
1. 在线程池中从 InstrumentRegistry 获取 cumulative 快照（会执行 Observable 回调）
2. delta 目标通过自己的 DeltaState 转换
3. 在线程池中调用 exporter.export，超过 timeout 放弃
4. 结果只记录日志和计数，不会向上传播
"""

import logging
import threading
import time
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Optional

from opentelemetry.sdk.metrics.export import MetricExporter, MetricExportResult, MetricsData

from otel_lib.config import Temporality
from otel_lib.errors import ExportTimeoutError
from otel_lib.metric.delta import DeltaState
from otel_lib.metric.registry import InstrumentRegistry
from otel_lib.time.wait import call_in_executor_with_timeout, every

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExportOutcome:
    """单次导出结果"""

    success: bool
    reason: str = ""
    elapsed: float = 0.0


def has_data_points(data: Optional[MetricsData]) -> bool:
    """快照中是否有数据点"""
    if data is None:
        return False
    for rm in data.resource_metrics:
        for sm in rm.scope_metrics:
            if sm.metrics:
                return True
    return False


class MetricPipeline:
    """
    Metric 导出 pipeline

    示例:
        ```python
        pipeline = MetricPipeline(
            name="http://collector:4317",
            registry=registry,
            exporter=exporter,
            interval=10,
            timeout=5,
            temporality=Temporality.DELTA,
        )
        task = asyncio.create_task(pipeline.run())
        ```
    """

    def __init__(
        self,
        name: str,
        registry: InstrumentRegistry,
        exporter: MetricExporter,
        interval: float,
        timeout: float,
        temporality: Temporality = Temporality.CUMULATIVE,
        executor: Optional[Executor] = None,
    ):
        """
        Args:
            name: pipeline 名称（通常是目标 URL），用于日志
            registry: InstrumentRegistry
            exporter: Metric 导出器
            interval: 导出间隔（秒）
            timeout: 单次导出超时（秒）
            temporality: cumulative / delta
            executor: 执行导出的线程池，None 使用默认线程池
        """
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")

        self.name = name
        self._registry = registry
        self._exporter = exporter
        self._interval = interval
        self._timeout = timeout
        self._temporality = temporality
        self._executor = executor
        self._delta_state: Optional[DeltaState] = DeltaState() if temporality == Temporality.DELTA else None
        self._collect_lock = threading.Lock()

        self.successes = 0
        self.failures = 0
        self.last_outcome: Optional[ExportOutcome] = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def temporality(self) -> Temporality:
        return self._temporality

    @property
    def exporter(self) -> MetricExporter:
        return self._exporter

    async def run(self) -> None:
        """按 interval 循环导出，直到被取消"""
        logger.info(
            "metric pipeline started: target=%s, interval=%ss, timeout=%ss, temporality=%s",
            self.name,
            self._interval,
            self._timeout,
            self._temporality.value,
        )
        try:
            await every(self.tick, self._interval)
        finally:
            logger.info("metric pipeline stopped: target=%s", self.name)

    def collect(self) -> Optional[MetricsData]:
        """获取当前要导出的数据（delta 目标在这里推进基线）"""
        with self._collect_lock:
            data = self._registry.snapshot()
            if self._delta_state is not None:
                data = self._delta_state.to_delta(data)
            return data

    async def tick(self) -> Optional[ExportOutcome]:
        """执行一次导出，没有数据时返回 None"""
        start_time = time.monotonic()
        try:
            # 快照会执行 Observable 回调，不在事件循环中运行
            data = await call_in_executor_with_timeout(
                self._executor,
                self.collect,
                timeout=self._timeout,
            )
        except ExportTimeoutError:
            reason = f"collect timed out after {self._timeout}s"
            outcome = ExportOutcome(False, reason, time.monotonic() - start_time)
            self._record(outcome)
            return outcome
        except Exception as e:
            outcome = ExportOutcome(False, f"collect failed: {e!r}", time.monotonic() - start_time)
            self._record(outcome)
            return outcome

        if not has_data_points(data):
            return None

        try:
            result = await call_in_executor_with_timeout(
                self._executor,
                self._export,
                data,
                timeout=self._timeout,
            )
            if result == MetricExportResult.SUCCESS:
                outcome = ExportOutcome(True, "", time.monotonic() - start_time)
            else:
                outcome = ExportOutcome(False, f"exporter returned {result}", time.monotonic() - start_time)
        except ExportTimeoutError as e:
            outcome = ExportOutcome(False, str(e), time.monotonic() - start_time)
        except Exception as e:
            outcome = ExportOutcome(False, f"export failed: {e!r}", time.monotonic() - start_time)

        self._record(outcome)
        return outcome

    def _export(self, data: MetricsData) -> MetricExportResult:
        return self._exporter.export(data, timeout_millis=self._timeout * 1000)

    def _record(self, outcome: ExportOutcome) -> None:
        self.last_outcome = outcome
        if outcome.success:
            self.successes += 1
            logger.debug("metric export to %s succeeded in %.3fs", self.name, outcome.elapsed)
            return
        self.failures += 1
        logger.warning(
            "metric export to %s failed (%d failures so far): %s",
            self.name,
            self.failures,
            outcome.reason,
        )

    def force_flush(self) -> ExportOutcome:
        """同步导出一次，用于优雅关闭"""
        start_time = time.monotonic()
        try:
            data = self.collect()
            if not has_data_points(data):
                return ExportOutcome(True, "no data", 0.0)
            result = self._export(data)
        except Exception as e:
            outcome = ExportOutcome(False, f"flush failed: {e!r}", time.monotonic() - start_time)
        else:
            if result == MetricExportResult.SUCCESS:
                outcome = ExportOutcome(True, "", time.monotonic() - start_time)
            else:
                outcome = ExportOutcome(False, f"exporter returned {result}", time.monotonic() - start_time)
        self._record(outcome)
        return outcome

    def shutdown(self) -> None:
        try:
            self._exporter.shutdown(timeout_millis=self._timeout * 1000)
        except Exception as e:
            logger.warning("shutting down metric exporter for %s failed: %s", self.name, e)
