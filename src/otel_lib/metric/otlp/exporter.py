# -*- coding: utf-8 -*-
"""
OTLP 导出器

支持：
- gRPC 协议（默认）
- HTTP 协议
- gzip 压缩
- TLS：https / grpcs 地址使用系统证书或指定的 CA 证书

Metric 和日志导出器共用地址解析和 TLS 配置。
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional
from urllib.parse import urlsplit

from opentelemetry.sdk.metrics.export import MetricExporter

from otel_lib.config import ExportProtocol, MetricsExportTarget
from otel_lib.errors import EndpointMissingHost, EndpointMissingPort, InvalidEndpointUrl

logger = logging.getLogger(__name__)

_SECURE_SCHEMES = ("https", "grpcs")
_SCHEME_ALIASES = {"grpc": "http", "grpcs": "https"}


@dataclass(frozen=True)
class Endpoint:
    """解析后的导出地址"""

    url: str  # 归一化后的地址（grpc/grpcs 替换为 http/https）
    host: str
    port: int
    secure: bool


def parse_endpoint(url: str) -> Endpoint:
    """
    解析导出地址

    Raises:
        InvalidEndpointUrl: 无法解析
        EndpointMissingHost: 缺少 host
        EndpointMissingPort: 缺少端口
    """
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError as e:
        raise InvalidEndpointUrl(f"could not parse endpoint url {url!r}: {e}") from e

    if not parts.scheme:
        raise InvalidEndpointUrl(f"endpoint url {url!r} has no scheme")
    if not parts.hostname:
        raise EndpointMissingHost(f"could not parse host from endpoint {url!r}")
    if port is None:
        raise EndpointMissingPort(f"could not parse port from endpoint {url!r}")

    scheme = parts.scheme.lower()
    secure = scheme in _SECURE_SCHEMES
    normalized = parts._replace(scheme=_SCHEME_ALIASES.get(scheme, scheme)).geturl()
    return Endpoint(url=normalized, host=parts.hostname, port=port, secure=secure)


def grpc_credentials(endpoint: Endpoint, ca_cert_path: Optional[str] = None):
    """TLS 地址返回 gRPC 证书，非 TLS 返回 None"""
    if not endpoint.secure:
        return None

    import grpc

    if ca_cert_path:
        with open(ca_cert_path, "rb") as f:
            return grpc.ssl_channel_credentials(root_certificates=f.read())
    return grpc.ssl_channel_credentials()


def grpc_compression(compression: bool):
    if not compression:
        return None
    from grpc import Compression
    return Compression.Gzip


def http_compression(compression: bool):
    if not compression:
        return None
    from opentelemetry.exporter.otlp.proto.http import Compression
    return Compression.Gzip


def http_signal_url(endpoint: Endpoint, signal_path: str) -> str:
    """HTTP 协议的地址需要带上 /v1/metrics 或 /v1/logs"""
    url = endpoint.url.rstrip("/")
    if not url.endswith(signal_path):
        url = f"{url}{signal_path}"
    return url


class OTLPMetricExporterBuilder:
    """
    OTLP Metric 导出器构建器

    Temporality 由 pipeline 自己处理（见 DeltaState），导出器只负责传输。

    示例:
        ```python
        builder = OTLPMetricExporterBuilder(
            url="http://localhost:4317",
            timeout=5,
        )
        exporter = builder.build()
        ```
    """

    def __init__(
        self,
        url: str,
        protocol: ExportProtocol = ExportProtocol.GRPC,
        headers: Optional[Dict[str, str]] = None,
        compression: bool = False,
        timeout: float = 10,
        ca_cert_path: Optional[str] = None,
    ):
        """
        Args:
            url: OTLP 端点地址
            protocol: 协议类型（grpc/http）
            headers: 请求头
            compression: 是否启用 gzip 压缩
            timeout: 超时时间（秒）
            ca_cert_path: CA 证书路径
        """
        self._url = url
        self._protocol = protocol
        self._headers = headers or {}
        self._compression = compression
        self._timeout = timeout
        self._ca_cert_path = ca_cert_path

    @classmethod
    def from_target(cls, target: MetricsExportTarget) -> "OTLPMetricExporterBuilder":
        return cls(
            url=target.url,
            protocol=target.protocol,
            headers=dict(target.headers),
            compression=target.compression,
            timeout=target.timeout,
            ca_cert_path=target.ca_cert_path,
        )

    def build(self) -> MetricExporter:
        """构建 MetricExporter"""
        endpoint = parse_endpoint(self._url)
        if self._protocol == ExportProtocol.HTTP:
            return self._build_http_exporter(endpoint)
        return self._build_grpc_exporter(endpoint)

    def _build_http_exporter(self, endpoint: Endpoint) -> MetricExporter:
        """构建 HTTP 导出器"""
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import (
            OTLPMetricExporter,
        )

        url = http_signal_url(endpoint, "/v1/metrics")
        exporter = OTLPMetricExporter(
            endpoint=url,
            certificate_file=self._ca_cert_path if endpoint.secure else None,
            headers=self._headers,
            timeout=self._timeout,
            compression=http_compression(self._compression),
        )

        logger.info(
            "OTLP HTTP Metric exporter created: endpoint=%s, compression=%s",
            url,
            self._compression,
        )
        return exporter

    def _build_grpc_exporter(self, endpoint: Endpoint) -> MetricExporter:
        """构建 gRPC 导出器"""
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
            OTLPMetricExporter,
        )

        exporter = OTLPMetricExporter(
            endpoint=endpoint.url,
            insecure=not endpoint.secure,
            credentials=grpc_credentials(endpoint, self._ca_cert_path),
            headers=self._headers if self._headers else None,
            timeout=self._timeout,
            compression=grpc_compression(self._compression),
        )

        logger.info(
            "OTLP gRPC Metric exporter created: endpoint=%s, secure=%s, compression=%s",
            endpoint.url,
            endpoint.secure,
            self._compression,
        )
        return exporter


def build_metric_exporter(target: MetricsExportTarget) -> MetricExporter:
    """根据导出目标构建 MetricExporter"""
    return OTLPMetricExporterBuilder.from_target(target).build()
