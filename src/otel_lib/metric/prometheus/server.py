# -*- coding: utf-8 -*-
"""
Prometheus /metrics 端点

提供：
- FastAPI 应用，GET /metrics 返回 Prometheus 文本格式
- 端口在启动阶段绑定，端口被占用时直接报错
- serve() 被取消时通知 uvicorn 退出并等待，保证端口被释放
"""

import asyncio
import contextlib
import logging
import socket
from typing import Optional

import uvicorn
from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST

from otel_lib.errors import PortInUseError
from otel_lib.metric.prometheus.exposition import ExpositionCollector

logger = logging.getLogger(__name__)

METRICS_PATH = "/metrics"


def create_app(collector: ExpositionCollector, path: str = METRICS_PATH) -> FastAPI:
    """
    创建 /metrics 应用

    处理函数是同步的，由 FastAPI 放到线程池中执行，不会阻塞事件循环。
    """
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

    @app.get(path)
    def metrics() -> Response:
        body = collector.render()
        return Response(content=body, media_type=CONTENT_TYPE_LATEST)

    return app


def bind_socket(host: str, port: int) -> socket.socket:
    """
    绑定监听端口

    Raises:
        PortInUseError: 端口无法绑定
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
    except OSError as e:
        sock.close()
        raise PortInUseError(host, port, e) from e
    sock.setblocking(False)
    return sock


class _Server(uvicorn.Server):
    """不接管进程信号的 uvicorn Server，由 Otel 的调用方负责取消"""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


class ScrapeServer:
    """
    Prometheus 抓取端点

    示例:
        ```python
        server = ScrapeServer(collector, host="0.0.0.0", port=9600)
        task = asyncio.create_task(server.serve())
        ...
        task.cancel()
        ```
    """

    def __init__(self, collector: ExpositionCollector, host: str = "0.0.0.0", port: int = 9600):
        self._collector = collector
        self._host = host
        self._sock: Optional[socket.socket] = bind_socket(host, port)
        self._port = self._sock.getsockname()[1]
        self.app = create_app(collector)
        self._server: Optional[_Server] = None

    @property
    def port(self) -> int:
        return self._port

    @property
    def host(self) -> str:
        return self._host

    async def serve(self) -> None:
        """启动端点，直到被取消"""
        if self._sock is None:
            raise RuntimeError("scrape server socket already closed")

        config = uvicorn.Config(
            app=self.app,
            log_level="warning",
            log_config=None,
            access_log=False,
            lifespan="off",
        )
        self._server = _Server(config)

        logger.info("initializing prometheus metrics endpoint on %s:%d", self._host, self._port)
        serving = asyncio.ensure_future(self._server.serve(sockets=[self._sock]))
        try:
            await asyncio.shield(serving)
        except asyncio.CancelledError:
            self._server.should_exit = True
            self._server.force_exit = True
            with contextlib.suppress(Exception):
                await serving
            raise
        finally:
            self.close()
            logger.info("prometheus metrics endpoint stopped")

    def close(self) -> None:
        """释放端口"""
        if self._sock is not None:
            self._sock.close()
            self._sock = None
