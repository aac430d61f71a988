# -*- coding: utf-8 -*-
"""
Syslog 格式化器

输出格式：
<PRI>TIMESTAMP SERVICE [HOST tid="TID" module="MODULE"] - MESSAGE

示例：
<6>2024-05-01T12:00:00.123Z my-service [host-1 tid="12345" module="app.db"] - connected
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Optional

from otel_lib.logs.severity import from_python_level
from otel_lib.resource import get_host_name


def rfc3339_millis(created: float) -> str:
    """UTC 时间，精确到毫秒"""
    dt = datetime.fromtimestamp(created, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


class SyslogFormatter(logging.Formatter):
    """Syslog 风格格式化器

    PRI 为 syslog 级别：error 3，warn 4，info 6，debug / trace 7。
    异常堆栈追加在消息之后。
    """

    def __init__(self, service_name: str, host_name: Optional[str] = None):
        """
        Args:
            service_name: 服务名
            host_name: 主机名，默认取当前主机
        """
        super().__init__()
        self.service_name = service_name
        self.host_name = host_name or get_host_name()

    def format(self, record: logging.LogRecord) -> str:
        pri = from_python_level(record.levelno).syslog_level
        timestamp = rfc3339_millis(record.created)
        tid = threading.get_native_id()

        message = record.getMessage()
        if record.exc_info:
            if not record.exc_text:
                record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            message = f"{message}\n{record.exc_text}"

        return (
            f"<{pri}>{timestamp} {self.service_name} "
            f'[{self.host_name} tid="{tid}" module="{record.name}"] - {message}'
        )
