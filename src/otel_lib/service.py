# -*- coding: utf-8 -*-
"""
Otel 服务类

提供：
- 统一的初始化入口，所有启动错误在构造时抛出（SetupError）
- 配置驱动的组件安装：Metric pipeline、日志 pipeline、Prometheus 端点、stdout / stderr 输出
- run() 并发运行所有组件，直到被取消
"""

import asyncio
import copy
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

from opentelemetry.sdk._logs.export import LogExporter
from opentelemetry.sdk.metrics.export import MetricExporter
from opentelemetry.sdk.resources import Resource

from otel_lib.config import (
    Config,
    LogsExportTarget,
    MetricsExportTarget,
    Temporality,
    load_config,
    load_config_from_file,
)
from otel_lib.logs.bridge import LoggingBridge
from otel_lib.logs.exporter import build_log_exporter
from otel_lib.logs.filters import LevelFilter, RegexDisallowFilter
from otel_lib.logs.processor import FilteredBatchLogRecordProcessor
from otel_lib.metric.otlp.exporter import build_metric_exporter
from otel_lib.metric.pipeline import MetricPipeline
from otel_lib.metric.prometheus.exposition import ExpositionCollector
from otel_lib.metric.prometheus.server import ScrapeServer
from otel_lib.metric.registry import InstrumentRegistry
from otel_lib.metric.stdout.exporter import StdoutMetricExporter
from otel_lib.resource import create_resource_from_config
from otel_lib.targets import log_policy_for, temporality_for

logger = logging.getLogger(__name__)

STDOUT_PIPELINE_NAME = "stdout"

MetricExporterFactory = Callable[[MetricsExportTarget], MetricExporter]
LogExporterFactory = Callable[[LogsExportTarget], LogExporter]


class Otel:
    """
    Otel 服务

    统一管理：
    - InstrumentRegistry（Metric 状态）
    - 每个导出目标的 Metric / 日志 pipeline
    - Prometheus /metrics 端点
    - logging 桥接（OTel 导出 + stderr 输出）

    示例:
        ```python
        config = (
            ConfigBuilder("my-service")
            .with_metrics_target("http://localhost:4317", interval_secs=10, timeout=5)
            .with_prometheus(port=9600)
            .build()
        )
        otel = Otel(config)

        counter = otel.registry.meter("my.module").create_counter("requests")
        task = asyncio.create_task(otel.run())
        ...
        task.cancel()
        ```
    """

    def __init__(
        self,
        config: Config,
        *,
        install_global: bool = True,
        metric_exporter_factory: Optional[MetricExporterFactory] = None,
        log_exporter_factory: Optional[LogExporterFactory] = None,
    ):
        """
        初始化 Otel 服务

        Args:
            config: Config 配置对象
            install_global: 是否把 InstrumentRegistry 设置为全局 MeterProvider
            metric_exporter_factory: Metric 导出器工厂，默认按目标构建 OTLP 导出器
            log_exporter_factory: 日志导出器工厂，默认按目标构建 OTLP 导出器

        Raises:
            LevelFilterError: 日志级别表达式错误
            ConfigError: 正则过滤规则错误
            PortInUseError: Prometheus 端口无法绑定
        """
        self._config = copy.deepcopy(config)
        self._metric_exporter_factory = metric_exporter_factory or build_metric_exporter
        self._log_exporter_factory = log_exporter_factory or build_log_exporter

        level_filter = LevelFilter.parse(self._config.level)
        regex_filter = RegexDisallowFilter.compile(self._config.regex_filters)

        self._resource = create_resource_from_config(self._config)
        self._registry = InstrumentRegistry(self._resource)

        # 端口绑定失败时还没有创建任何导出器，也没有修改全局状态
        self._scrape_server: Optional[ScrapeServer] = None
        if self._config.prometheus_config is not None:
            try:
                self._scrape_server = ScrapeServer(
                    ExpositionCollector(self._registry, self._resource),
                    host=self._config.prometheus_config.host,
                    port=self._config.prometheus_config.port,
                )
            except Exception:
                self._registry.shutdown()
                raise

        self._executor = ThreadPoolExecutor(thread_name_prefix="otel-export")
        self._metric_pipelines: List[MetricPipeline] = []
        self._log_processors: List[FilteredBatchLogRecordProcessor] = []
        try:
            self._create_metric_pipelines()
            self._create_log_processors(level_filter)
            self._bridge = LoggingBridge(
                service_name=self._config.service_name,
                resource=self._resource,
                level_filter=level_filter,
                regex_filter=regex_filter,
                processors=self._log_processors,
                emit_to_stderr=self._config.emit_logs_to_stderr,
            )
        except Exception:
            self._abort_setup()
            raise

        if install_global:
            self._registry.install_global()
        self._bridge.install()
        self._closed = False

        logger.info(
            "otel initialized: service=%s, metric_pipelines=%d, log_pipelines=%d, prometheus_port=%s",
            self._config.service_name,
            len(self._metric_pipelines),
            len(self._log_processors),
            self.scrape_port,
        )

    @classmethod
    def from_config_file(cls, config_file: str, **kwargs) -> "Otel":
        """从 YAML 配置文件创建"""
        return cls(load_config_from_file(config_file), **kwargs)

    @classmethod
    def from_config_dict(cls, config_dict: dict, **kwargs) -> "Otel":
        """从配置字典创建"""
        return cls(load_config(config_dict=config_dict), **kwargs)

    # ------------------------------------------------------------------
    # 组件构建
    # ------------------------------------------------------------------

    def _create_metric_pipelines(self) -> None:
        for target in self._config.metrics_export_targets:
            if target.timeout > target.interval_secs:
                logger.warning(
                    "metrics target %s has timeout %ss greater than interval %ss",
                    target.url,
                    target.timeout,
                    target.interval_secs,
                )
            try:
                exporter = self._metric_exporter_factory(target)
            except Exception as e:
                logger.error("unable to create metrics exporter for %s, skipping: %s", target.url, e)
                continue
            self._metric_pipelines.append(
                MetricPipeline(
                    name=target.url,
                    registry=self._registry,
                    exporter=exporter,
                    interval=target.interval_secs,
                    timeout=target.timeout,
                    temporality=temporality_for(target),
                    executor=self._executor,
                )
            )

        if self._config.emit_metrics_to_stdout:
            interval = self._config.stdout_interval_secs
            self._metric_pipelines.append(
                MetricPipeline(
                    name=STDOUT_PIPELINE_NAME,
                    registry=self._registry,
                    exporter=StdoutMetricExporter(pretty_print=True),
                    interval=interval,
                    timeout=interval,
                    temporality=Temporality.CUMULATIVE,
                    executor=self._executor,
                )
            )

    def _create_log_processors(self, level_filter: LevelFilter) -> None:
        for target in self._config.log_export_targets:
            if target.timeout > target.interval_secs:
                logger.warning(
                    "logs target %s has timeout %ss greater than interval %ss",
                    target.url,
                    target.timeout,
                    target.interval_secs,
                )
            try:
                exporter = self._log_exporter_factory(target)
            except Exception as e:
                logger.error("unable to create logs exporter for %s, skipping: %s", target.url, e)
                continue
            self._log_processors.append(
                FilteredBatchLogRecordProcessor(
                    name=target.url,
                    exporter=exporter,
                    policy=log_policy_for(target, level_filter),
                    interval=target.interval_secs,
                    timeout=target.timeout,
                    max_queue_size=target.max_queue_size,
                    max_export_batch_size=target.max_export_batch_size,
                    executor=self._executor,
                )
            )

    def _abort_setup(self) -> None:
        """启动失败时释放已经创建的导出器、端口和线程池"""
        for pipeline in self._metric_pipelines:
            pipeline.shutdown()
        for processor in self._log_processors:
            processor.shutdown()
        if self._scrape_server is not None:
            self._scrape_server.close()
        self._registry.shutdown()
        self._executor.shutdown(wait=False)

    # ------------------------------------------------------------------
    # 属性
    # ------------------------------------------------------------------

    @property
    def config(self) -> Config:
        return self._config

    @property
    def registry(self) -> InstrumentRegistry:
        return self._registry

    @property
    def resource(self) -> Resource:
        return self._resource

    @property
    def scrape_port(self) -> Optional[int]:
        """Prometheus 端点实际监听的端口，未启用时为 None"""
        if self._scrape_server is None:
            return None
        return self._scrape_server.port

    @property
    def metric_pipelines(self) -> List[MetricPipeline]:
        return list(self._metric_pipelines)

    @property
    def log_processors(self) -> List[FilteredBatchLogRecordProcessor]:
        return list(self._log_processors)

    # ------------------------------------------------------------------
    # 运行
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """
        运行所有组件，直到被取消

        取消时会取消所有子任务并等待它们结束，Prometheus 端口在返回前被释放。
        单个导出失败不会影响其他 pipeline，也不会让 run() 返回。
        """
        if self._closed:
            raise RuntimeError("otel already shut down")

        tasks: List[asyncio.Task] = []
        for pipeline in self._metric_pipelines:
            tasks.append(asyncio.create_task(pipeline.run(), name=f"metrics:{pipeline.name}"))
        for processor in self._log_processors:
            tasks.append(asyncio.create_task(processor.run(), name=f"logs:{processor.name}"))
        if self._scrape_server is not None:
            tasks.append(asyncio.create_task(self._scrape_server.serve(), name="prometheus"))

        try:
            if not tasks:
                # 没有任何组件时保持运行，直到被取消
                await asyncio.Event().wait()
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                task.cancel()
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for task, result in zip(tasks, results):
                if isinstance(result, Exception):
                    logger.error("otel task %s failed: %r", task.get_name(), result)
            if self._scrape_server is not None:
                self._scrape_server.close()
            # 超时的导出可能还在线程中运行，直接放弃
            self._executor.shutdown(wait=False, cancel_futures=True)
            logger.info("otel stopped")

    def shutdown(self) -> None:
        """
        优雅关闭

        尽力导出一次 Metric 和缓冲中的日志，然后卸载 logging Handler、释放端口。
        """
        if self._closed:
            return
        self._closed = True

        for pipeline in self._metric_pipelines:
            outcome = pipeline.force_flush()
            if not outcome.success:
                logger.warning("final metric flush to %s failed: %s", pipeline.name, outcome.reason)
            pipeline.shutdown()

        self._bridge.shutdown()

        if self._scrape_server is not None:
            self._scrape_server.close()
        self._registry.shutdown()
        self._executor.shutdown(wait=False, cancel_futures=True)
        logger.info("otel shutdown completed")
