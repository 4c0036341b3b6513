"""
JSON-RPC message types and the worker process supervisor.

The worker is a child process speaking Content-Length framed JSON-RPC on
its stdin/stdout. WorkerSupervisor starts it once, hands its pipes to an
RpcChannel, forwards its stderr into our logging and reports when it
exits. It never restarts the worker: after a crash every send fails until
the bridge itself is restarted.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from mcp_bridge.channel import DEFAULT_REQUEST_TIMEOUT, RpcChannel
from mcp_bridge.errors import WorkerSpawnError

logger = logging.getLogger(__name__)
worker_logger = logging.getLogger("mcp_bridge.worker")


@dataclass
class JsonRpcRequest:
    """JSON-RPC 2.0 request. ``id=None`` makes it a notification."""
    method: str
    params: dict[str, Any] | None = None
    id: int | str | None = None

    def to_dict(self) -> dict[str, Any]:
        message: dict[str, Any] = {"jsonrpc": "2.0", "method": self.method}
        if self.params is not None:
            message["params"] = self.params
        if self.id is not None:
            message["id"] = self.id
        return message


@dataclass
class JsonRpcResponse:
    """JSON-RPC 2.0 response."""
    id: int | str | None
    result: Any = None
    error: dict | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JsonRpcResponse":
        return cls(
            id=data.get("id"),
            result=data.get("result"),
            error=data.get("error"),
        )

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        message: dict[str, Any] = {"jsonrpc": "2.0", "id": self.id}
        if self.is_error:
            message["error"] = self.error
        else:
            message["result"] = self.result
        return message


class WorkerSupervisor:
    """
    Starts the worker subprocess and watches it.

    Usage:
        supervisor = WorkerSupervisor([sys.executable, "-m", "mcp_bridge.servers.assistant"])
        channel = await supervisor.start()
        ...
        await supervisor.stop()
    """

    def __init__(
        self,
        command: list[str],
        *,
        env: dict[str, str] | None = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        """
        Args:
            command: Command that launches the worker process.
            env: Optional environment for the worker (inherits ours if None).
            request_timeout: Per-request timeout for the channel.
        """
        self.command = command
        self.env = env
        self.request_timeout = request_timeout
        self.exit_code: int | None = None
        self._process: asyncio.subprocess.Process | None = None
        self._channel: RpcChannel | None = None
        self._tasks: list[asyncio.Task] = []
        self._stopping = False

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def channel(self) -> RpcChannel | None:
        return self._channel

    def is_alive(self) -> bool:
        """Check if the worker process is running."""
        return self._process is not None and self._process.returncode is None

    async def start(self) -> RpcChannel:
        """Launch the worker and return a started channel to it."""
        if self.is_alive():
            logger.warning("Worker already running, stopping first")
            await self.stop()

        logger.info(f"Starting worker: {' '.join(self.command)}")
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.env,
            )
        except OSError as e:
            logger.error(f"Failed to spawn worker {self.command[0]!r}: {e}")
            raise WorkerSpawnError(f"Failed to spawn worker: {e}") from e

        self.exit_code = None
        self._stopping = False
        self._channel = RpcChannel(
            self._process.stdout,
            self._process.stdin,
            timeout=self.request_timeout,
        )
        await self._channel.start()
        self._tasks = [
            asyncio.create_task(self._forward_stderr(self._process), name="worker-stderr"),
            asyncio.create_task(self._watch_exit(self._process), name="worker-exit"),
        ]
        logger.info(f"Worker started (PID: {self._process.pid})")
        return self._channel

    async def stop(self) -> None:
        """Terminate the worker, killing it if it does not exit within 5 seconds."""
        self._stopping = True
        if self._channel is not None:
            await self._channel.close()
            self._channel = None

        process = self._process
        if process is not None and process.returncode is None:
            try:
                process.terminate()
                await asyncio.wait_for(process.wait(), timeout=5)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
            except ProcessLookupError:
                pass

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        if process is not None:
            logger.info("Worker stopped")
        self._process = None

    async def _forward_stderr(self, process: asyncio.subprocess.Process) -> None:
        if process.stderr is None:
            return
        while True:
            line = await process.stderr.readline()
            if not line:
                break
            worker_logger.info(line.decode("utf-8", errors="replace").rstrip())

    async def _watch_exit(self, process: asyncio.subprocess.Process) -> None:
        code = await process.wait()
        self.exit_code = code
        if self._stopping:
            logger.info(f"Worker process exited with code {code}")
            return
        logger.error(f"Worker process exited with code {code}; it will not be restarted")
