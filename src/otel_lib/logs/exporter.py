# -*- coding: utf-8 -*-
"""
OTLP 日志导出器

地址解析、TLS 和压缩配置与 Metric 导出器共用（见 otel_lib.metric.otlp.exporter）。
"""

import logging
from typing import Dict, Optional

from opentelemetry.sdk._logs.export import LogExporter

from otel_lib.config import ExportProtocol, LogsExportTarget
from otel_lib.metric.otlp.exporter import (
    Endpoint,
    grpc_compression,
    grpc_credentials,
    http_compression,
    http_signal_url,
    parse_endpoint,
)

logger = logging.getLogger(__name__)


class OTLPLogExporterBuilder:
    """
    OTLP 日志导出器构建器

    示例:
        ```python
        exporter = OTLPLogExporterBuilder(url="https://collector:4317", timeout=5).build()
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
        self._url = url
        self._protocol = protocol
        self._headers = headers or {}
        self._compression = compression
        self._timeout = timeout
        self._ca_cert_path = ca_cert_path

    @classmethod
    def from_target(cls, target: LogsExportTarget) -> "OTLPLogExporterBuilder":
        return cls(
            url=target.url,
            protocol=target.protocol,
            headers=dict(target.headers),
            compression=target.compression,
            timeout=target.timeout,
            ca_cert_path=target.ca_cert_path,
        )

    def build(self) -> LogExporter:
        endpoint = parse_endpoint(self._url)
        if self._protocol == ExportProtocol.HTTP:
            return self._build_http_exporter(endpoint)
        return self._build_grpc_exporter(endpoint)

    def _build_http_exporter(self, endpoint: Endpoint) -> LogExporter:
        from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter

        url = http_signal_url(endpoint, "/v1/logs")
        exporter = OTLPLogExporter(
            endpoint=url,
            certificate_file=self._ca_cert_path if endpoint.secure else None,
            headers=self._headers,
            timeout=self._timeout,
            compression=http_compression(self._compression),
        )
        logger.info("OTLP HTTP Log exporter created: endpoint=%s, compression=%s", url, self._compression)
        return exporter

    def _build_grpc_exporter(self, endpoint: Endpoint) -> LogExporter:
        from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter

        exporter = OTLPLogExporter(
            endpoint=endpoint.url,
            insecure=not endpoint.secure,
            credentials=grpc_credentials(endpoint, self._ca_cert_path),
            headers=self._headers if self._headers else None,
            timeout=self._timeout,
            compression=grpc_compression(self._compression),
        )
        logger.info(
            "OTLP gRPC Log exporter created: endpoint=%s, secure=%s, compression=%s",
            endpoint.url,
            endpoint.secure,
            self._compression,
        )
        return exporter


def build_log_exporter(target: LogsExportTarget) -> LogExporter:
    """根据导出目标构建 LogExporter"""
    return OTLPLogExporterBuilder.from_target(target).build()
