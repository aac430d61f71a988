# -*- coding: utf-8 -*-
"""
日志过滤器

提供：
- LevelFilter：全局级别过滤，支持按模块覆盖，例如 "info,hyper=off,app.db=debug"
- RegexDisallowFilter：按模块名 + 日志内容的正则丢弃日志

两者都实现了 logging 的 filter 协议，可以直接 addFilter 到 Handler 上。
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Pattern, Tuple

from otel_lib.errors import ConfigError, LevelFilterError
from otel_lib.logs.severity import OFF, TRACE

# 级别表达式中允许的级别名
LEVEL_NAMES = {
    "off": OFF,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": TRACE,
}

# 没有默认级别时使用 error
DEFAULT_LEVEL = logging.ERROR

_MODULE_RE = re.compile(r"^[A-Za-z_][\w.\-]*$")


@dataclass(frozen=True)
class LevelFilter:
    """
    全局日志级别过滤器

    Attributes:
        default: 默认阈值（logging 级别）
        directives: (模块前缀, 阈值) 列表，按前缀长度降序，最具体的优先
        expression: 原始表达式
    """

    default: int = logging.INFO
    directives: Tuple[Tuple[str, int], ...] = ()
    expression: str = field(default="info", compare=False)

    @classmethod
    def parse(cls, expression: str) -> "LevelFilter":
        """
        解析级别表达式

        每个指令可以是：
        - "info"：默认级别
        - "hyper=off"：模块级别
        - "hyper"：模块全部级别

        Raises:
            LevelFilterError: 表达式格式错误
        """
        if expression is None:
            raise LevelFilterError("", "expression is None")

        default: Optional[int] = None
        directives = {}

        for raw in expression.split(","):
            directive = raw.strip()
            if not directive:
                continue

            parts = directive.split("=")
            if len(parts) > 2:
                raise LevelFilterError(expression, f"too many '=' in {directive!r}")

            if len(parts) == 1:
                name = parts[0].strip()
                level = LEVEL_NAMES.get(name.lower())
                if level is not None:
                    default = level
                    continue
                _check_module(expression, name)
                directives[name] = TRACE
                continue

            module, level_name = parts[0].strip(), parts[1].strip()
            _check_module(expression, module)
            level = LEVEL_NAMES.get(level_name.lower())
            if level is None:
                raise LevelFilterError(expression, f"unknown level {level_name!r}")
            directives[module] = level

        ordered = tuple(sorted(directives.items(), key=lambda item: len(item[0]), reverse=True))
        return cls(
            default=DEFAULT_LEVEL if default is None else default,
            directives=ordered,
            expression=expression,
        )

    def level_for(self, module: str) -> int:
        """获取模块的生效阈值"""
        for prefix, level in self.directives:
            if module == prefix or module.startswith(prefix + "."):
                return level
        return self.default

    def enabled(self, module: str, levelno: int) -> bool:
        return levelno >= self.level_for(module)

    @property
    def min_level(self) -> int:
        """所有阈值中最低的一个，用于设置 root logger 级别"""
        return min([self.default] + [level for _, level in self.directives])

    def filter(self, record: logging.LogRecord) -> bool:
        return self.enabled(record.name, record.levelno)


def _check_module(expression: str, module: str) -> None:
    if not module or not _MODULE_RE.match(module):
        raise LevelFilterError(expression, f"invalid module name {module!r}")


class RegexDisallowFilter:
    """
    正则丢弃过滤器

    日志的模块名匹配 module_regex 且内容匹配 log_text_regex 时丢弃。
    """

    def __init__(self, rules: Iterable[Tuple[Pattern, Pattern]] = ()):
        self._rules: List[Tuple[Pattern, Pattern]] = list(rules)

    @classmethod
    def compile(cls, regex_filters: Iterable) -> "RegexDisallowFilter":
        """
        从配置编译

        Raises:
            ConfigError: 正则表达式无效
        """
        rules = []
        for regex_filter in regex_filters:
            try:
                module_re = re.compile(regex_filter.module_regex)
                text_re = re.compile(regex_filter.log_text_regex)
            except re.error as e:
                raise ConfigError(f"invalid regex filter {regex_filter!r}: {e}") from e
            rules.append((module_re, text_re))
        return cls(rules)

    def __len__(self) -> int:
        return len(self._rules)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._rules:
            return True
        body = record.getMessage()
        for module_re, text_re in self._rules:
            if not module_re.search(record.name):
                continue
            if text_re.search(body):
                return False
        return True
