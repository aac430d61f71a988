# -*- coding: utf-8 -*-
"""
日志级别

Severity 与 OTLP SeverityNumber 的区间对齐：
TRACE=1..4, DEBUG=5..8, INFO=9..12, WARN=13..16, ERROR=17..24（FATAL 归入 ERROR）
"""

import logging
from enum import IntEnum
from typing import Optional, Union

# Python logging 没有 TRACE 级别，这里补一个
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

# 关闭某个模块日志时使用的阈值，高于所有级别
OFF = logging.CRITICAL + 100


class Severity(IntEnum):
    """日志级别（全序）"""

    TRACE = 1
    DEBUG = 5
    INFO = 9
    WARN = 13
    ERROR = 17

    @classmethod
    def parse(cls, value: Union[str, int, "Severity"]) -> "Severity":
        """从字符串或数值解析，大小写不敏感"""
        if isinstance(value, Severity):
            return value
        if isinstance(value, int):
            severity = from_severity_number(value)
            if severity is None:
                raise ValueError(f"unknown severity number: {value}")
            return severity
        name = str(value).strip().upper()
        name = _ALIASES.get(name, name)
        try:
            return cls[name]
        except KeyError:
            raise ValueError(f"unknown severity: {value!r}") from None

    @property
    def python_level(self) -> int:
        """对应的 logging 级别"""
        return _TO_PYTHON[self]

    @property
    def syslog_level(self) -> int:
        """对应的 syslog 级别"""
        return _TO_SYSLOG[self]


_ALIASES = {
    "WARNING": "WARN",
    "ERR": "ERROR",
    "FATAL": "ERROR",
    "CRITICAL": "ERROR",
}

_TO_PYTHON = {
    Severity.TRACE: TRACE,
    Severity.DEBUG: logging.DEBUG,
    Severity.INFO: logging.INFO,
    Severity.WARN: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}

_TO_SYSLOG = {
    Severity.ERROR: 3,
    Severity.WARN: 4,
    Severity.INFO: 6,
    Severity.DEBUG: 7,
    Severity.TRACE: 7,
}


def from_python_level(levelno: int) -> Severity:
    """logging 级别转换为 Severity"""
    if levelno >= logging.ERROR:
        return Severity.ERROR
    if levelno >= logging.WARNING:
        return Severity.WARN
    if levelno >= logging.INFO:
        return Severity.INFO
    if levelno >= logging.DEBUG:
        return Severity.DEBUG
    return Severity.TRACE


def from_severity_number(number: Optional[int]) -> Optional[Severity]:
    """
    OTLP SeverityNumber 转换为 Severity

    UNSPECIFIED(0) 或缺失返回 None。
    """
    if number is None:
        return None
    value = int(getattr(number, "value", number))
    if value <= 0:
        return None
    for severity in (Severity.ERROR, Severity.WARN, Severity.INFO, Severity.DEBUG):
        if value >= severity.value:
            return severity
    return Severity.TRACE
