#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
otel-lib 使用示例

演示：
1. 构建配置（stdout 输出 Metric，可选 OTLP 目标）
2. 注册常用的 instrument 并上报
3. 只有 ERROR 日志会导出到 OTLP 日志目标

运行：
    python examples/sample_app/main.py -n 1000 -o http://localhost:4317
"""

import argparse
import asyncio
import logging
import random

from opentelemetry.metrics import CallbackOptions, Observation

from otel_lib import ConfigBuilder, Otel

logger = logging.getLogger("sample.app")

METER_NAME = "sample.app"


class StaticMetrics:
    """示例 instrument"""

    def __init__(self, otel: Otel):
        logger.info("initializing static metrics")
        meter = otel.registry.meter(METER_NAME)
        self.requests = meter.create_counter("requests")
        self.request_sizes = meter.create_histogram("requestsizes")
        self.request_sizes_f64 = meter.create_histogram("requestsizes.f64")
        self.connection_errors = meter.create_counter("connectionerrors")
        self.updown_counter = meter.create_up_down_counter("updown_counter")
        self.iteration = 0
        self.observable_gauge = meter.create_observable_gauge(
            "observable_gauge",
            callbacks=[self._observe_iteration],
        )

    def _observe_iteration(self, options: CallbackOptions):
        return [Observation(self.iteration)]


def parse_args():
    parser = argparse.ArgumentParser(description="otel-lib sample app")
    parser.add_argument("-n", "--num-iterations", type=int, default=1000, help="迭代次数")
    parser.add_argument("-o", "--otel-repo-url", default=None, help="OTLP 端点地址")
    return parser.parse_args()


async def instrument(metrics: StaticMetrics, num_iterations: int):
    for iteration in range(1, num_iterations):
        metrics.requests.add(1)
        metrics.request_sizes.record(25)
        value = random.random() * 1_000_000.0
        metrics.request_sizes_f64.record(value)
        metrics.connection_errors.add(1)
        # 随机加减
        metrics.updown_counter.add(value if random.random() < 0.5 else -value)
        metrics.iteration = iteration
        logger.info("iteration: %d", iteration)
        await asyncio.sleep(0.0001)


async def main():
    args = parse_args()

    builder = (
        ConfigBuilder("sample-app")
        .with_level("info,urllib3=off")
        .with_resource_attributes(resource_key1="1")
        .with_stdout(metrics=True, logs=True, interval_secs=1)
    )
    if args.otel_repo_url:
        builder = builder.with_metrics_target(
            args.otel_repo_url, interval_secs=1, timeout=5, temporality="cumulative"
        ).with_logs_target(args.otel_repo_url, interval_secs=1, timeout=5, export_severity="error")

    otel = Otel(builder.build())
    otel_task = asyncio.create_task(otel.run())

    metrics = StaticMetrics(otel)
    logger.error("Test error log. Only this log will be exported to the target")

    instrumentation_task = asyncio.create_task(instrument(metrics, args.num_iterations))
    done, _ = await asyncio.wait({otel_task, instrumentation_task}, return_when=asyncio.FIRST_COMPLETED)
    if otel_task in done:
        logger.error("otel long running task ended unexpectedly: %r", otel_task.exception())

    otel_task.cancel()
    await asyncio.gather(otel_task, return_exceptions=True)
    otel.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
