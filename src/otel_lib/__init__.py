# -*- coding: utf-8 -*-
"""
otel-lib 是一个遥测导出工具：按配置启动多个导出 pipeline，
定期把 Metric 和日志通过 OTLP 推送到远端，并可选地提供 Prometheus 抓取端点。

示例:
    ```python
    from otel_lib import Otel, ConfigBuilder

    config = (
        ConfigBuilder("my-service")
        .with_metrics_target("http://localhost:4317", interval_secs=10, timeout=5, temporality="delta")
        .with_logs_target("http://localhost:4317", export_severity="error")
        .with_prometheus(port=9600)
        .build()
    )
    otel = Otel(config)

    counter = otel.registry.meter("my.module").create_counter("requests")
    counter.add(1, {"method": "GET"})

    await otel.run()
    ```
"""

from otel_lib.__version__ import __version__
from otel_lib.config import (
    Config,
    ConfigBuilder,
    ExportProtocol,
    LogsExportTarget,
    MetricsExportTarget,
    PrometheusConfig,
    RegexFilter,
    Temporality,
    load_config,
    load_config_from_file,
)
from otel_lib.errors import (
    ConfigError,
    EndpointError,
    ExportError,
    ExportTimeoutError,
    LevelFilterError,
    OtelError,
    PortInUseError,
    SetupError,
)
from otel_lib.logs.severity import Severity
from otel_lib.metric.registry import InstrumentRegistry
from otel_lib.service import Otel

__all__ = [
    "__version__",
    # Config
    "Config",
    "ConfigBuilder",
    "ExportProtocol",
    "LogsExportTarget",
    "MetricsExportTarget",
    "PrometheusConfig",
    "RegexFilter",
    "Temporality",
    "load_config",
    "load_config_from_file",
    # Errors
    "ConfigError",
    "EndpointError",
    "ExportError",
    "ExportTimeoutError",
    "LevelFilterError",
    "OtelError",
    "PortInUseError",
    "SetupError",
    # Service
    "Otel",
    "InstrumentRegistry",
    "Severity",
]
