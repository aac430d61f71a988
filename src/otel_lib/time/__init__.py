"""
Time 工具模块
"""

from otel_lib.time.wait import call_in_executor_with_timeout, every

__all__ = [
    "call_in_executor_with_timeout",
    "every",
]
