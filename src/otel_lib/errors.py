# -*- coding: utf-8 -*-
"""
错误定义

分为三类：
- SetupError：启动阶段的致命错误（配置、级别表达式、端口占用），在长时间运行任务开始前抛出
- ExportError：单次导出的瞬时错误，只在 pipeline 内部记录，不会向上传播
- EndpointError：导出目标地址无法解析，对应的 target 会被跳过
"""


class OtelError(Exception):
    """otel-lib 错误基类"""

    pass


class SetupError(OtelError):
    """启动错误，阻止 Otel 启动"""

    pass


class ConfigError(SetupError):
    """配置错误"""

    pass


class LevelFilterError(SetupError):
    """日志级别表达式解析错误"""

    def __init__(self, expression: str, reason: str):
        self.expression = expression
        self.reason = reason
        super().__init__(f"invalid level filter {expression!r}: {reason}")


class PortInUseError(SetupError):
    """Prometheus 端口无法绑定"""

    def __init__(self, host: str, port: int, cause: OSError):
        self.host = host
        self.port = port
        super().__init__(f"unable to bind prometheus endpoint {host}:{port}: {cause}")


class ExportError(OtelError):
    """导出失败"""

    pass


class ExportTimeoutError(ExportError):
    """导出超时"""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"export timed out after {timeout}s")


class EndpointError(OtelError):
    """导出目标地址错误"""

    pass


class InvalidEndpointUrl(EndpointError):
    """无法解析的 URL"""

    pass


class EndpointMissingHost(EndpointError):
    """URL 缺少 host"""

    pass


class EndpointMissingPort(EndpointError):
    """URL 缺少端口"""

    pass
