# -*- coding: utf-8 -*-
"""
日志级别与过滤器测试
"""

import logging

import pytest

from otel_lib.config import RegexFilter
from otel_lib.errors import ConfigError, LevelFilterError
from otel_lib.logs.filters import LevelFilter, RegexDisallowFilter
from otel_lib.logs.severity import OFF, TRACE, Severity, from_python_level, from_severity_number


def _record(name: str, level: int, msg: str = "message") -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, msg, None, None)


class TestSeverity:
    """Severity 测试"""

    def test_total_order(self):
        assert Severity.TRACE < Severity.DEBUG < Severity.INFO < Severity.WARN < Severity.ERROR

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("error", Severity.ERROR),
            ("WARN", Severity.WARN),
            ("warning", Severity.WARN),
            ("Info", Severity.INFO),
            ("fatal", Severity.ERROR),
            (13, Severity.WARN),
            (Severity.DEBUG, Severity.DEBUG),
        ],
    )
    def test_parse(self, value, expected):
        assert Severity.parse(value) == expected

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            Severity.parse("loud")

    def test_python_level(self):
        assert Severity.TRACE.python_level == TRACE
        assert Severity.WARN.python_level == logging.WARNING

    def test_syslog_level(self):
        assert Severity.ERROR.syslog_level == 3
        assert Severity.WARN.syslog_level == 4
        assert Severity.INFO.syslog_level == 6
        assert Severity.DEBUG.syslog_level == 7
        assert Severity.TRACE.syslog_level == 7

    def test_from_python_level(self):
        assert from_python_level(logging.CRITICAL) == Severity.ERROR
        assert from_python_level(logging.WARNING) == Severity.WARN
        assert from_python_level(TRACE) == Severity.TRACE

    def test_from_severity_number(self):
        assert from_severity_number(None) is None
        assert from_severity_number(0) is None
        assert from_severity_number(1) == Severity.TRACE
        assert from_severity_number(8) == Severity.DEBUG
        assert from_severity_number(12) == Severity.INFO
        assert from_severity_number(16) == Severity.WARN
        assert from_severity_number(21) == Severity.ERROR


class TestLevelFilterParse:
    """级别表达式解析测试"""

    def test_default_only(self):
        level_filter = LevelFilter.parse("warn")
        assert level_filter.default == logging.WARNING
        assert level_filter.directives == ()

    def test_module_directives(self):
        level_filter = LevelFilter.parse("info,hyper=off,app.db=debug")
        assert level_filter.default == logging.INFO
        assert level_filter.level_for("hyper") == OFF
        assert level_filter.level_for("hyper.client") == OFF
        assert level_filter.level_for("app.db") == logging.DEBUG
        assert level_filter.level_for("app") == logging.INFO
        # 前缀按点分隔匹配
        assert level_filter.level_for("hyperx") == logging.INFO

    def test_most_specific_wins(self):
        level_filter = LevelFilter.parse("app=error,app.db=trace")
        assert level_filter.level_for("app.db.pool") == TRACE
        assert level_filter.level_for("app.http") == logging.ERROR

    def test_missing_default_is_error(self):
        level_filter = LevelFilter.parse("app=debug")
        assert level_filter.default == logging.ERROR

    def test_last_default_wins(self):
        assert LevelFilter.parse("debug,warn").default == logging.WARNING

    def test_bare_module_enables_everything(self):
        level_filter = LevelFilter.parse("error,app")
        assert level_filter.enabled("app", TRACE)
        assert not level_filter.enabled("other", logging.WARNING)

    def test_case_insensitive(self):
        assert LevelFilter.parse("INFO,app=DEBUG").level_for("app") == logging.DEBUG

    @pytest.mark.parametrize("expression", ["app=loud", "a=b=c", "=info", "bad module=info"])
    def test_malformed(self, expression):
        with pytest.raises(LevelFilterError):
            LevelFilter.parse(expression)

    def test_min_level(self):
        assert LevelFilter.parse("warn,app=debug").min_level == logging.DEBUG
        assert LevelFilter.parse("error").min_level == logging.ERROR


class TestLevelFilterRecords:
    """logging filter 协议测试"""

    def test_filter(self):
        level_filter = LevelFilter.parse("info,noisy=error")
        assert level_filter.filter(_record("app", logging.INFO))
        assert not level_filter.filter(_record("app", logging.DEBUG))
        assert not level_filter.filter(_record("noisy.sub", logging.WARNING))
        assert level_filter.filter(_record("noisy.sub", logging.ERROR))


class TestRegexDisallowFilter:
    """正则过滤测试"""

    def test_drops_matching_record(self):
        regex_filter = RegexDisallowFilter.compile(
            [RegexFilter(module_regex="^app\\.health", log_text_regex="heartbeat")]
        )
        assert len(regex_filter) == 1
        assert not regex_filter.filter(_record("app.health", logging.INFO, "heartbeat ok"))
        assert regex_filter.filter(_record("app.health", logging.INFO, "database down"))
        assert regex_filter.filter(_record("app.db", logging.INFO, "heartbeat ok"))

    def test_empty_allows_everything(self):
        assert RegexDisallowFilter().filter(_record("app", logging.INFO))

    def test_invalid_regex(self):
        with pytest.raises(ConfigError):
            RegexDisallowFilter.compile([RegexFilter(module_regex="(", log_text_regex=".*")])
