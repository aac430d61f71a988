"""
Wait 等待工具模块

功能特性：
- 带超时的阻塞函数调用（在线程池中执行，超时后放弃等待）
- 固定频率的定时执行（every），每个调用方独立计时

使用示例：
    # 阻塞函数放到线程池中执行
    result = await call_in_executor_with_timeout(executor, exporter.export, data, timeout=5.0)

    # 每秒执行一次，直到被取消
    await every(tick, period=1.0)
"""

import asyncio
import logging
from concurrent.futures import Executor
from typing import Any, Awaitable, Callable, Optional, TypeVar

from otel_lib.errors import ExportTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ============================================================================
# 线程池调用
# ============================================================================


async def call_in_executor_with_timeout(
    executor: Optional[Executor],
    func: Callable[..., T],
    *args: Any,
    timeout: float = 0,
) -> T:
    """
    在线程池中执行阻塞函数，超时后放弃等待

    注意：超时后线程中的函数会继续运行直到完成，但调用者立即收到 ExportTimeoutError

    Args:
        executor: 线程池，None 表示使用事件循环默认线程池
        func: 阻塞函数
        *args: 位置参数
        timeout: 超时时间（秒），0 或负数表示不超时

    Raises:
        ExportTimeoutError: 执行超时
    """
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(executor, func, *args)

    if timeout <= 0:
        return await future

    try:
        return await asyncio.wait_for(future, timeout=timeout)
    except asyncio.TimeoutError:
        raise ExportTimeoutError(timeout) from None


# ============================================================================
# 固定频率定时执行
# ============================================================================


async def every(
    func: Callable[..., Awaitable[Any]],
    period: float,
    *args: Any,
    **kwargs: Any,
) -> None:
    """
    固定频率执行函数，直到被取消

    第 k 次执行的计划时间为 start + k * period，执行耗时不会累积到下一次。
    如果某次执行超过一个完整周期，错过的周期直接跳过，不会连续补执行。
    func 抛出的异常会被记录，不会中断循环。

    Args:
        func: 要定时执行的异步函数
        period: 执行周期（秒）
    """
    if period <= 0:
        raise ValueError(f"period must be positive, got {period}")

    loop = asyncio.get_running_loop()
    next_run = loop.time() + period

    while True:
        delay = next_run - loop.time()
        if delay > 0:
            await asyncio.sleep(delay)

        try:
            await func(*args, **kwargs)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("every: periodic function %r failed", func)

        next_run += period
        now = loop.time()
        if next_run <= now:
            skipped = int((now - next_run) // period) + 1
            logger.debug("every: %d period(s) skipped for %r", skipped, func)
            next_run += skipped * period
