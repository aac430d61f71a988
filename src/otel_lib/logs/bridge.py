# -*- coding: utf-8 -*-
"""
logging 桥接

把 Python logging 的日志接入日志 pipeline：
- OTel LoggingHandler：转换为 OTel LogRecord，交给每个日志目标的 processor
- stderr Handler（可选）：SyslogFormatter 逐条输出，不经过批处理

两个 Handler 都挂在 root logger 上，并且都带有全局级别过滤和正则过滤。
"""

import logging
import sys
from typing import List, Optional, Sequence, TextIO

from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler, LogRecordProcessor
from opentelemetry.sdk.resources import Resource

from otel_lib.logs.filters import LevelFilter, RegexDisallowFilter
from otel_lib.logs.formatter import SyslogFormatter

logger = logging.getLogger(__name__)


class LoggingBridge:
    """
    logging 桥接

    示例:
        ```python
        bridge = LoggingBridge(
            service_name="my-service",
            resource=resource,
            level_filter=LevelFilter.parse("info,urllib3=off"),
            processors=[processor],
        )
        bridge.install()
        ...
        bridge.uninstall()
        ```
    """

    def __init__(
        self,
        service_name: str,
        resource: Resource,
        level_filter: LevelFilter,
        regex_filter: Optional[RegexDisallowFilter] = None,
        processors: Sequence[LogRecordProcessor] = (),
        emit_to_stderr: bool = True,
        stream: Optional[TextIO] = None,
    ):
        """
        Args:
            service_name: 服务名，用于 stderr 输出
            resource: 附加在导出日志上的 Resource
            level_filter: 全局级别过滤
            regex_filter: 正则过滤
            processors: 每个日志目标一个 processor
            emit_to_stderr: 是否输出到 stderr
            stream: stderr 输出流（默认 sys.stderr）
        """
        self._level_filter = level_filter
        self._regex_filter = regex_filter or RegexDisallowFilter()

        self._provider: Optional[LoggerProvider] = None
        self._handlers: List[logging.Handler] = []

        if processors:
            self._provider = LoggerProvider(resource=resource)
            for processor in processors:
                self._provider.add_log_record_processor(processor)
            self._handlers.append(LoggingHandler(level=logging.NOTSET, logger_provider=self._provider))

        if emit_to_stderr:
            handler = logging.StreamHandler(stream or sys.stderr)
            handler.setFormatter(SyslogFormatter(service_name))
            self._handlers.append(handler)

        for handler in self._handlers:
            handler.addFilter(self._level_filter)
            handler.addFilter(self._regex_filter)

        self._installed = False
        self._previous_level: Optional[int] = None

    @property
    def provider(self) -> Optional[LoggerProvider]:
        return self._provider

    @property
    def handlers(self) -> List[logging.Handler]:
        return list(self._handlers)

    @property
    def installed(self) -> bool:
        return self._installed

    def install(self) -> None:
        """挂载到 root logger，并把 root 级别设置为过滤器的最低阈值"""
        if self._installed:
            return
        root = logging.getLogger()
        self._previous_level = root.level
        root.setLevel(self._level_filter.min_level)
        for handler in self._handlers:
            root.addHandler(handler)
        self._installed = True
        logger.debug(
            "logging bridge installed: level=%s, handlers=%d, regex_filters=%d",
            self._level_filter.expression,
            len(self._handlers),
            len(self._regex_filter),
        )

    def uninstall(self) -> None:
        """从 root logger 卸载，恢复原来的级别"""
        if not self._installed:
            return
        root = logging.getLogger()
        for handler in self._handlers:
            root.removeHandler(handler)
        if self._previous_level is not None:
            root.setLevel(self._previous_level)
        self._installed = False

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        if self._provider is None:
            return True
        return self._provider.force_flush(timeout_millis)

    def shutdown(self) -> None:
        """卸载 Handler 并关闭 LoggerProvider（会关闭所有 processor）"""
        self.uninstall()
        if self._provider is not None:
            self._provider.shutdown()
