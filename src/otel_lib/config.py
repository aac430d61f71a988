# -*- coding: utf-8 -*-
"""
配置模块

提供配置定义，支持 YAML 文件 / 字典 / 环境变量加载。

配置在 Otel 启动时读取一次，之后不再修改（模型为 frozen）。
"""

import logging
import os
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator

from otel_lib.errors import LevelFilterError
from otel_lib.logs.filters import LevelFilter
from otel_lib.logs.severity import Severity

logger = logging.getLogger(__name__)

DEFAULT_PROMETHEUS_PORT = 9600
DEFAULT_MAX_QUEUE_SIZE = 2048
DEFAULT_MAX_EXPORT_BATCH_SIZE = 512


class Temporality(str, Enum):
    """Metric Temporality 类型"""
    CUMULATIVE = "cumulative"
    DELTA = "delta"


class ExportProtocol(str, Enum):
    """OTLP 协议类型"""
    GRPC = "grpc"
    HTTP = "http"


class FilterAction(str, Enum):
    """正则过滤动作"""
    DISALLOW = "disallow"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class PrometheusConfig(_Frozen):
    """Prometheus 配置，配置后会启动 /metrics 端点"""
    port: int = Field(default=DEFAULT_PROMETHEUS_PORT, ge=0, le=65535, description="HTTP 端口，0 表示随机端口")
    host: str = Field(default="0.0.0.0", description="监听地址")


class _ExportTarget(_Frozen):
    url: str = Field(description="OTLP 端点地址")
    interval_secs: PositiveInt = Field(description="导出间隔（秒）")
    timeout: PositiveInt = Field(description="单次导出超时（秒）")
    protocol: ExportProtocol = Field(default=ExportProtocol.GRPC, description="协议类型")
    ca_cert_path: Optional[str] = Field(default=None, description="CA 证书路径（TLS）")
    headers: Dict[str, str] = Field(default_factory=dict, description="请求头")
    compression: bool = Field(default=False, description="是否启用 gzip 压缩")

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("url must not be empty")
        return value.strip()


class MetricsExportTarget(_ExportTarget):
    """Metric 导出目标"""
    temporality: Optional[Temporality] = Field(
        default=None,
        description="Temporality，未设置时为 cumulative",
    )


class LogsExportTarget(_ExportTarget):
    """日志导出目标"""
    export_severity: Optional[Severity] = Field(
        default=None,
        description="导出级别，>= 该级别的日志才会导出",
    )
    max_queue_size: PositiveInt = Field(default=DEFAULT_MAX_QUEUE_SIZE, description="缓冲区大小，满了丢弃最旧的日志")
    max_export_batch_size: PositiveInt = Field(default=DEFAULT_MAX_EXPORT_BATCH_SIZE, description="单批最大日志数")

    @field_validator("export_severity", mode="before")
    @classmethod
    def _parse_severity(cls, value: Any) -> Any:
        if value is None:
            return None
        return Severity.parse(value)


class RegexFilter(_Frozen):
    """正则过滤规则"""
    module_regex: str
    log_text_regex: str
    action: FilterAction = FilterAction.DISALLOW


class Config(_Frozen):
    """Observability 配置"""
    service_name: str = Field(default="App", description="服务名称")
    enterprise_number: Optional[str] = Field(default=None, description="企业编号")
    resource_attributes: Dict[str, str] = Field(default_factory=dict, description="自定义 Resource 属性")
    prometheus_config: Optional[PrometheusConfig] = Field(default=None, description="Prometheus 配置")
    metrics_export_targets: List[MetricsExportTarget] = Field(default_factory=list, description="Metric 导出目标")
    log_export_targets: List[LogsExportTarget] = Field(default_factory=list, description="日志导出目标")
    emit_metrics_to_stdout: bool = Field(default=False, description="是否输出 Metric 到 stdout")
    emit_logs_to_stderr: bool = Field(default=True, description="是否输出日志到 stderr")
    stdout_interval_secs: PositiveInt = Field(default=60, description="stdout 输出间隔（秒）")
    level: str = Field(default="info", description="日志级别，支持按模块设置，例如 info,hyper=off")
    regex_filters: List[RegexFilter] = Field(default_factory=list, description="正则过滤规则")

    @field_validator("service_name")
    @classmethod
    def _check_service_name(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("service_name must not be empty")
        return value

    @field_validator("level")
    @classmethod
    def _check_level(cls, value: str) -> str:
        # pydantic 只把 ValueError / AssertionError 转换为 ValidationError
        try:
            LevelFilter.parse(value)
        except LevelFilterError as e:
            raise ValueError(str(e)) from e
        return value

    @field_validator("metrics_export_targets", "log_export_targets", "regex_filters", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("resource_attributes", mode="before")
    @classmethod
    def _attributes_as_dict(cls, value: Any) -> Any:
        # 兼容 [{"key": ..., "value": ...}] 形式，键必须唯一
        if value is None:
            return {}
        if isinstance(value, list):
            attributes: Dict[str, str] = {}
            for item in value:
                key, val = item["key"], item["value"]
                if key in attributes:
                    raise ValueError(f"duplicate resource attribute key: {key}")
                attributes[key] = str(val)
            return attributes
        return value


def load_config(
    config_file: Optional[str] = None,
    config_dict: Optional[Dict[str, Any]] = None,
    env_prefix: str = "",
) -> Config:
    """
    加载配置

    优先级：环境变量 > config_dict > config_file > 默认值

    Args:
        config_file: YAML 配置文件路径
        config_dict: 配置字典
        env_prefix: 环境变量前缀

    Returns:
        Config 实例
    """
    data: Dict[str, Any] = {}

    # 1. 从文件加载
    if config_file and os.path.exists(config_file):
        import yaml
        with open(config_file, "r", encoding="utf-8") as f:
            file_data = yaml.safe_load(f) or {}
            # 支持 otel 或 observability 作为根键
            data = file_data.get("otel") or file_data.get("observability") or file_data

    # 2. 合并字典配置
    if config_dict:
        dict_data = config_dict.get("otel") or config_dict.get("observability") or config_dict
        _deep_merge(data, dict_data)

    # 3. 从环境变量覆盖（如果指定了前缀）
    if env_prefix:
        _override_from_env(data, env_prefix)

    return Config(**data)


def load_config_from_file(config_file: str) -> Config:
    """从 YAML 文件加载配置"""
    return load_config(config_file=config_file)


def _deep_merge(base: Dict, override: Dict) -> None:
    """深度合并字典"""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


def _override_from_env(data: Dict, prefix: str) -> None:
    """从环境变量覆盖配置"""
    prefix = prefix.upper()

    env_mappings = {
        f"{prefix}_SERVICE_NAME": ("service_name",),
        f"{prefix}_ENTERPRISE_NUMBER": ("enterprise_number",),
        f"{prefix}_LEVEL": ("level",),
        f"{prefix}_EMIT_METRICS_TO_STDOUT": ("emit_metrics_to_stdout",),
        f"{prefix}_EMIT_LOGS_TO_STDERR": ("emit_logs_to_stderr",),
        f"{prefix}_PROMETHEUS_PORT": ("prometheus_config", "port"),
    }

    for env_var, path in env_mappings.items():
        value = os.environ.get(env_var)
        if value is not None:
            _set_nested(data, path, _parse_env_value(value))


def _set_nested(data: Dict, path: tuple, value: Any) -> None:
    """设置嵌套字典的值"""
    for key in path[:-1]:
        if not isinstance(data.get(key), dict):
            data[key] = {}
        data = data[key]
    data[path[-1]] = value


def _parse_env_value(value: str) -> Any:
    """解析环境变量值"""
    lower = value.lower()
    if lower in ("true", "yes"):
        return True
    if lower in ("false", "no"):
        return False
    try:
        return int(value)
    except ValueError:
        return value


class ConfigBuilder:
    """配置构建器"""

    def __init__(self, service_name: str = "App"):
        self._config: Dict[str, Any] = {
            "service_name": service_name,
            "metrics_export_targets": [],
            "log_export_targets": [],
            "regex_filters": [],
            "resource_attributes": {},
        }

    def with_enterprise_number(self, enterprise_number: str) -> "ConfigBuilder":
        self._config["enterprise_number"] = enterprise_number
        return self

    def with_resource_attributes(self, **attributes: str) -> "ConfigBuilder":
        self._config["resource_attributes"].update(attributes)
        return self

    def with_level(self, level: str) -> "ConfigBuilder":
        self._config["level"] = level
        return self

    def with_metrics_target(
        self,
        url: str,
        interval_secs: int = 60,
        timeout: int = 10,
        temporality: Optional[str] = None,
        **kwargs: Any,
    ) -> "ConfigBuilder":
        """添加 Metric 导出目标"""
        self._config["metrics_export_targets"].append(
            {"url": url, "interval_secs": interval_secs, "timeout": timeout, "temporality": temporality, **kwargs}
        )
        return self

    def with_logs_target(
        self,
        url: str,
        interval_secs: int = 1,
        timeout: int = 30,
        export_severity: Optional[str] = None,
        **kwargs: Any,
    ) -> "ConfigBuilder":
        """添加日志导出目标"""
        self._config["log_export_targets"].append(
            {"url": url, "interval_secs": interval_secs, "timeout": timeout, "export_severity": export_severity, **kwargs}
        )
        return self

    def with_prometheus(self, port: int = DEFAULT_PROMETHEUS_PORT, host: str = "0.0.0.0") -> "ConfigBuilder":
        self._config["prometheus_config"] = {"port": port, "host": host}
        return self

    def with_stdout(self, metrics: bool = True, logs: bool = True, interval_secs: int = 60) -> "ConfigBuilder":
        self._config["emit_metrics_to_stdout"] = metrics
        self._config["emit_logs_to_stderr"] = logs
        self._config["stdout_interval_secs"] = interval_secs
        return self

    def with_regex_filter(self, module_regex: str, log_text_regex: str) -> "ConfigBuilder":
        self._config["regex_filters"].append(
            {"module_regex": module_regex, "log_text_regex": log_text_regex}
        )
        return self

    def build(self) -> Config:
        """构建配置对象"""
        return Config(**self._config)
