"""Local HTTP server that test harness pages are loaded from."""

import threading
from collections.abc import Mapping
from functools import partial
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

from buildflow.errors import ConfigError
from buildflow.events import RunFinished
from buildflow.pipeline.structures import ExecutionMode, TaskId
from buildflow.utils.logging import logger

from . import register_adapter
from .base import AsyncHandle, PluginAdapter, TaskContext


class _LoggingHandler(SimpleHTTPRequestHandler):
    """Static file handler that routes access logs to loguru."""

    def log_message(self, format, *args):
        logger.debug(f"[dev-server] {self.address_string()} - {format % args}")


@register_adapter("dev-server")
class DevServerAdapter(PluginAdapter):
    """Serve ``directory`` on ``host:port`` for the rest of the run.

    The task succeeds as soon as the socket is bound and fails if it cannot be.
    The server is shut down when the run ends.
    """

    mode = ExecutionMode.ASYNC
    required = ("port",)
    optional = ("host", "directory")

    def __init__(self):
        self._servers: list[ThreadingHTTPServer] = []
        self._lock = threading.Lock()

    def check(self, task_id: TaskId, config: Mapping[str, Any]) -> None:
        port = config["port"]
        if not isinstance(port, int) or not 0 <= port <= 65535:
            raise ConfigError(f"Task '{task_id}' (dev-server): 'port' must be 0-65535")

    def run(self, config: Mapping[str, Any], context: TaskContext) -> AsyncHandle:
        host = config.get("host", "localhost")
        port = config["port"]
        directory = context.resolve_path(config.get("directory", "."))
        handle = AsyncHandle()

        def serve() -> None:
            try:
                server = ThreadingHTTPServer((host, port), partial(_LoggingHandler, directory=str(directory)))
            except OSError as e:
                handle.fail(f"Could not start dev server on {host}:{port}: {e}")
                return

            with self._lock:
                self._servers.append(server)
            url = f"http://{host}:{server.server_address[1]}/"
            logger.info(f"Dev server listening on {url} (serving {directory})")
            handle.succeed(detail={"url": url})
            server.serve_forever()

        context.bus.subscribe(RunFinished, lambda _event: self.stop())
        threading.Thread(target=serve, name=f"dev-server-{port}", daemon=True).start()
        return handle

    @property
    def addresses(self) -> list[tuple[str, int]]:
        with self._lock:
            return [s.server_address[:2] for s in self._servers]

    def stop(self) -> None:
        """Shut down every server this adapter started."""
        with self._lock:
            servers, self._servers = self._servers, []
        for server in servers:
            server.shutdown()
            server.server_close()
            logger.debug(f"Dev server on port {server.server_address[1]} stopped")
