# -*- coding: utf-8 -*-
"""
Metric Pipeline 测试
"""

import asyncio
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest
from opentelemetry.metrics import Observation
from opentelemetry.sdk.metrics.export import MetricExportResult

from conftest import RecordingMetricExporter, metric_values
from otel_lib.config import Temporality
from otel_lib.metric.pipeline import ExportOutcome, MetricPipeline, has_data_points


class _RaisingExporter(RecordingMetricExporter):
    def export(self, metrics_data, timeout_millis: float = 10_000, **kwargs):
        raise ConnectionError("refused")


def _exported_values(exporter, name):
    return [point.value for data in exporter.exports for point in metric_values(data, name)]


class TestMetricPipelineTick:
    """单次导出测试"""

    def test_invalid_arguments(self, registry):
        exporter = RecordingMetricExporter()
        with pytest.raises(ValueError):
            MetricPipeline("target", registry, exporter, interval=0, timeout=1)
        with pytest.raises(ValueError):
            MetricPipeline("target", registry, exporter, interval=1, timeout=0)

    @pytest.mark.asyncio
    async def test_empty_snapshot_skipped(self, registry):
        exporter = RecordingMetricExporter()
        pipeline = MetricPipeline("target", registry, exporter, interval=1, timeout=1)

        assert await pipeline.tick() is None
        assert exporter.exports == []

    @pytest.mark.asyncio
    async def test_cumulative_exports_non_decreasing(self, registry):
        counter = registry.meter("test").create_counter("requests")
        exporter = RecordingMetricExporter()
        pipeline = MetricPipeline("target", registry, exporter, interval=1, timeout=1)

        for amount in (1, 4, 0, 2):
            counter.add(amount)
            outcome = await pipeline.tick()
            assert outcome.success

        values = _exported_values(exporter, "requests")
        assert values == [1, 5, 5, 7]
        assert values == sorted(values)
        assert pipeline.successes == 4
        assert pipeline.failures == 0

    @pytest.mark.asyncio
    async def test_delta_exports_sum_to_total(self, registry):
        counter = registry.meter("test").create_counter("requests")
        exporter = RecordingMetricExporter()
        pipeline = MetricPipeline(
            "target", registry, exporter, interval=1, timeout=1, temporality=Temporality.DELTA
        )

        for amount in (2, 3, 7):
            counter.add(amount)
            await pipeline.tick()

        assert sum(_exported_values(exporter, "requests")) == 12

    @pytest.mark.asyncio
    async def test_failure_is_recorded_not_raised(self, registry, caplog):
        registry.meter("test").create_counter("requests").add(1)
        exporter = RecordingMetricExporter(result=MetricExportResult.FAILURE)
        pipeline = MetricPipeline("http://collector:4317", registry, exporter, interval=1, timeout=1)

        outcome = await pipeline.tick()

        assert isinstance(outcome, ExportOutcome)
        assert not outcome.success
        assert pipeline.failures == 1
        assert "http://collector:4317" in caplog.text

    @pytest.mark.asyncio
    async def test_exporter_exception_is_recorded(self, registry):
        registry.meter("test").create_counter("requests").add(1)
        exporter = _RaisingExporter()
        pipeline = MetricPipeline("target", registry, exporter, interval=1, timeout=1)

        outcome = await pipeline.tick()

        assert not outcome.success
        assert "refused" in outcome.reason

    @pytest.mark.asyncio
    async def test_timeout(self, registry):
        registry.meter("test").create_counter("requests").add(1)
        release = threading.Event()
        exporter = RecordingMetricExporter(block=release)
        executor = ThreadPoolExecutor(max_workers=2)
        pipeline = MetricPipeline("target", registry, exporter, interval=1, timeout=0.1, executor=executor)

        try:
            outcome = await pipeline.tick()
        finally:
            release.set()
            executor.shutdown(wait=True)

        assert not outcome.success
        assert "timed out" in outcome.reason
        assert outcome.elapsed < 1

    @pytest.mark.asyncio
    async def test_slow_callback_does_not_block_event_loop(self, registry):
        def slow_callback(options):
            time.sleep(0.5)
            return [Observation(1)]

        registry.meter("test").create_observable_gauge("slow_gauge", callbacks=[slow_callback])
        exporter = RecordingMetricExporter()
        pipeline = MetricPipeline("target", registry, exporter, interval=1, timeout=2)

        tick = asyncio.create_task(pipeline.tick())
        start = time.monotonic()
        await asyncio.sleep(0.05)
        heartbeat = time.monotonic() - start
        outcome = await tick

        assert heartbeat < 0.3
        assert outcome.success
        assert _exported_values(exporter, "slow_gauge") == [1]

    @pytest.mark.asyncio
    async def test_collect_timeout(self, registry):
        release = threading.Event()

        def blocked_callback(options):
            release.wait(timeout=5)
            return [Observation(1)]

        registry.meter("test").create_observable_gauge("blocked_gauge", callbacks=[blocked_callback])
        exporter = RecordingMetricExporter()
        executor = ThreadPoolExecutor(max_workers=2)
        pipeline = MetricPipeline("target", registry, exporter, interval=1, timeout=0.1, executor=executor)

        try:
            outcome = await pipeline.tick()
        finally:
            release.set()
            executor.shutdown(wait=True)

        assert not outcome.success
        assert "collect timed out" in outcome.reason
        assert exporter.exports == []
        assert pipeline.failures == 1

    def test_force_flush(self, registry):
        registry.meter("test").create_counter("requests").add(3)
        exporter = RecordingMetricExporter()
        pipeline = MetricPipeline("target", registry, exporter, interval=1, timeout=1)

        assert pipeline.force_flush().success
        assert _exported_values(exporter, "requests") == [3]

        pipeline.shutdown()
        assert exporter.shutdown_called


class TestMetricPipelineRun:
    """定时运行测试"""

    @pytest.mark.asyncio
    async def test_slow_target_does_not_delay_others(self, registry):
        registry.meter("test").create_counter("requests").add(1)
        release = threading.Event()
        executor = ThreadPoolExecutor(max_workers=16)

        slow_exporter = RecordingMetricExporter(block=release)
        fast_exporter = RecordingMetricExporter()
        slow = MetricPipeline("slow", registry, slow_exporter, interval=0.2, timeout=0.1, executor=executor)
        fast = MetricPipeline("fast", registry, fast_exporter, interval=0.2, timeout=0.1, executor=executor)

        tasks = [asyncio.create_task(slow.run()), asyncio.create_task(fast.run())]
        await asyncio.sleep(1.1)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        release.set()
        executor.shutdown(wait=True)

        assert len(fast_exporter.exports) >= 4
        assert fast.failures == 0
        # 每次超时都不会推迟下一次 tick
        assert slow.failures >= 4


class TestHasDataPoints:
    def test_none(self):
        assert not has_data_points(None)

    def test_with_data(self, registry):
        registry.meter("test").create_counter("requests").add(1)
        assert has_data_points(registry.snapshot())
