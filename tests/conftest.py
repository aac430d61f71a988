#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
pytest 配置文件

提供测试夹具和配置
"""

import sys
import threading
from pathlib import Path
from typing import List, Optional

import pytest

# 将 src 目录添加到 Python 路径
ROOT_DIR = Path(__file__).parent.parent
SRC_DIR = ROOT_DIR / "src"
sys.path.insert(0, str(SRC_DIR))

from opentelemetry.sdk._logs.export import LogExporter, LogExportResult  # noqa: E402
from opentelemetry.sdk.metrics.export import (  # noqa: E402
    MetricExporter,
    MetricExportResult,
    MetricsData,
)

from otel_lib.metric.registry import InstrumentRegistry  # noqa: E402
from otel_lib.resource import create_resource  # noqa: E402


class RecordingMetricExporter(MetricExporter):
    """记录每次导出的数据，可以模拟失败或阻塞"""

    def __init__(self, result: MetricExportResult = MetricExportResult.SUCCESS, block: Optional[threading.Event] = None):
        super().__init__()
        self.result = result
        self.block = block
        self.exports: List[MetricsData] = []
        self.shutdown_called = False

    def export(self, metrics_data: MetricsData, timeout_millis: float = 10_000, **kwargs) -> MetricExportResult:
        if self.block is not None:
            self.block.wait(timeout=5)
        self.exports.append(metrics_data)
        return self.result

    def force_flush(self, timeout_millis: float = 10_000) -> bool:
        return True

    def shutdown(self, timeout_millis: float = 30_000, **kwargs) -> None:
        self.shutdown_called = True


class RecordingLogExporter(LogExporter):
    """记录每批导出的日志"""

    def __init__(self, result: LogExportResult = LogExportResult.SUCCESS):
        self.result = result
        self.batches: List[list] = []
        self.shutdown_called = False

    @property
    def records(self) -> list:
        return [item for batch in self.batches for item in batch]

    def export(self, batch):
        self.batches.append(list(batch))
        return self.result

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return True

    def shutdown(self):
        self.shutdown_called = True


def metric_values(data: Optional[MetricsData], name: str) -> list:
    """取出快照中某个指标的所有数据点"""
    points = []
    if data is None:
        return points
    for rm in data.resource_metrics:
        for sm in rm.scope_metrics:
            for metric in sm.metrics:
                if metric.name == name:
                    points.extend(metric.data.data_points)
    return points


@pytest.fixture(scope="session")
def project_root() -> Path:
    """项目根目录"""
    return ROOT_DIR


@pytest.fixture(scope="function")
def temp_dir(tmp_path: Path) -> Path:
    """临时目录（每个测试函数独立）"""
    return tmp_path


@pytest.fixture
def resource():
    return create_resource("test-service", enterprise_number="1234", attributes={"deployment.environment": "test"})


@pytest.fixture
def registry(resource):
    registry = InstrumentRegistry(resource)
    yield registry
    registry.shutdown()
