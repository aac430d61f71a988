# -*- coding: utf-8 -*-
"""
日志 Pipeline

每个日志导出目标一个 FilteredBatchLogRecordProcessor：
- emit 时按目标的 LogExportPolicy 过滤，通过的日志放入有界缓冲区（满了丢弃最旧的）
- run() 每个 interval 取出缓冲区，按 max_export_batch_size 分批导出
- 所有批次共享一个 timeout 截止时间，失败的批次直接丢弃（至多一次）
"""

import logging
import threading
import time
from collections import deque
from concurrent.futures import Executor
from typing import Any, Deque, List, Optional, Sequence

from opentelemetry.sdk._logs import LogRecordProcessor
from opentelemetry.sdk._logs.export import LogExporter, LogExportResult

from otel_lib.errors import ExportTimeoutError
from otel_lib.logs.severity import Severity, from_severity_number
from otel_lib.targets import LogExportPolicy
from otel_lib.time.wait import call_in_executor_with_timeout, every

logger = logging.getLogger(__name__)


def record_severity(item: Any) -> Optional[Severity]:
    """
    读取日志的 Severity，SDK 不同版本传入 LogData 或 ReadWriteLogRecord

    TRACE 等低于 DEBUG 的 logging 级别在 SDK 中没有 SeverityNumber，
    此时按 severity_text（即 logging 的级别名）解析。
    """
    record = getattr(item, "log_record", item)
    severity = from_severity_number(getattr(record, "severity_number", None))
    if severity is not None:
        return severity
    text = getattr(record, "severity_text", None)
    if not text:
        return None
    try:
        return Severity.parse(text)
    except ValueError:
        return None


def record_module(item: Any) -> str:
    """日志所属模块，即 LoggingHandler 使用的 logger 名称"""
    scope = getattr(item, "instrumentation_scope", None)
    if scope is None:
        return ""
    return scope.name or ""


class FilteredBatchLogRecordProcessor(LogRecordProcessor):
    """
    带过滤的批量日志处理器

    示例:
        ```python
        processor = FilteredBatchLogRecordProcessor(
            name="http://collector:4317",
            exporter=exporter,
            policy=LogExportPolicy(level_filter, Severity.ERROR),
            interval=10,
            timeout=5,
        )
        logger_provider.add_log_record_processor(processor)
        task = asyncio.create_task(processor.run())
        ```
    """

    def __init__(
        self,
        name: str,
        exporter: LogExporter,
        policy: LogExportPolicy,
        interval: float,
        timeout: float,
        max_queue_size: int = 2048,
        max_export_batch_size: int = 512,
        executor: Optional[Executor] = None,
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        if max_queue_size <= 0:
            raise ValueError(f"max_queue_size must be positive, got {max_queue_size}")
        if max_export_batch_size <= 0:
            raise ValueError(f"max_export_batch_size must be positive, got {max_export_batch_size}")

        self.name = name
        self._exporter = exporter
        self._policy = policy
        self._interval = interval
        self._timeout = timeout
        self._max_export_batch_size = min(max_export_batch_size, max_queue_size)
        self._executor = executor

        self._queue: Deque[Any] = deque(maxlen=max_queue_size)
        self._lock = threading.Lock()
        self._shutdown = False

        self.accepted = 0
        self.rejected = 0
        self.dropped = 0
        self.exported = 0
        self.failed_batches = 0
        self._dropped_in_window = 0

    @property
    def policy(self) -> LogExportPolicy:
        return self._policy

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def exporter(self) -> LogExporter:
        return self._exporter

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)

    # ------------------------------------------------------------------
    # LogRecordProcessor
    # ------------------------------------------------------------------

    def on_emit(self, log_data) -> None:
        if self._shutdown:
            return
        accepted = self._policy.accepts(record_severity(log_data), record_module(log_data))
        with self._lock:
            if not accepted:
                self.rejected += 1
                return
            if len(self._queue) == self._queue.maxlen:
                self.dropped += 1
                self._dropped_in_window += 1
            self._queue.append(log_data)
            self.accepted += 1

    def emit(self, log_data) -> None:
        self.on_emit(log_data)

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        """同步导出缓冲区中的所有日志"""
        deadline = time.monotonic() + timeout_millis / 1000
        ok = True
        for batch in self._drain():
            if time.monotonic() >= deadline:
                self._report_failure(len(batch), "flush deadline exceeded")
                ok = False
                continue
            if not self._export_batch(batch):
                ok = False
        return ok

    def shutdown(self) -> None:
        if self._shutdown:
            return
        self.force_flush(int(self._timeout * 1000))
        self._shutdown = True
        try:
            self._exporter.shutdown()
        except Exception as e:
            logger.warning("shutting down log exporter for %s failed: %s", self.name, e)

    # ------------------------------------------------------------------
    # 导出
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """按 interval 循环导出，直到被取消"""
        logger.info(
            "log pipeline started: target=%s, interval=%ss, timeout=%ss, export_severity=%s",
            self.name,
            self._interval,
            self._timeout,
            self._policy.export_severity.name if self._policy.export_severity else None,
        )
        try:
            await every(self.flush, self._interval)
        finally:
            logger.info("log pipeline stopped: target=%s", self.name)

    async def flush(self) -> int:
        """
        导出一次缓冲区

        Returns:
            成功导出的日志条数
        """
        batches = self._drain()
        if not batches:
            return 0

        loop_deadline = time.monotonic() + self._timeout
        exported = 0
        for i, batch in enumerate(batches):
            remaining = loop_deadline - time.monotonic()
            if remaining <= 0:
                lost = sum(len(b) for b in batches[i:])
                self._report_failure(lost, f"export timed out after {self._timeout}s")
                break
            try:
                ok = await call_in_executor_with_timeout(
                    self._executor,
                    self._export_batch,
                    batch,
                    timeout=remaining,
                )
            except ExportTimeoutError:
                lost = sum(len(b) for b in batches[i:])
                self._report_failure(lost, f"export timed out after {self._timeout}s")
                break
            if ok:
                exported += len(batch)
        return exported

    def _drain(self) -> List[List[Any]]:
        with self._lock:
            items = list(self._queue)
            self._queue.clear()
            dropped, self._dropped_in_window = self._dropped_in_window, 0

        if dropped:
            logger.warning(
                "log queue for %s was full, %d record(s) dropped since last flush",
                self.name,
                dropped,
            )

        size = self._max_export_batch_size
        return [items[i : i + size] for i in range(0, len(items), size)]

    def _export_batch(self, batch: Sequence[Any]) -> bool:
        try:
            result = self._exporter.export(batch)
        except Exception as e:
            self._report_failure(len(batch), f"export failed: {e!r}")
            return False
        if result != LogExportResult.SUCCESS:
            self._report_failure(len(batch), f"exporter returned {result}")
            return False
        self.exported += len(batch)
        return True

    def _report_failure(self, count: int, reason: str) -> None:
        self.failed_batches += 1
        logger.warning("log export to %s failed, %d record(s) dropped: %s", self.name, count, reason)
