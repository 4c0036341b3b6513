"""
HTTP bridge: one POST /mcp call becomes one framed request/response round
trip with the worker.

The request body is forwarded as-is apart from the injected id; the worker's
JSON-RPC response comes back as the HTTP body. Channel failures (write
failure, timeout, worker gone) turn into HTTP 500 with ``{"error": ...}``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from mcp_bridge.channel import RpcChannel
from mcp_bridge.config import BridgeConfig
from mcp_bridge.errors import ChannelError, WorkerSpawnError
from mcp_bridge.transport import WorkerSupervisor

logger = logging.getLogger(__name__)


def create_bridge_app(
    config: BridgeConfig | None = None,
    *,
    channel: RpcChannel | None = None,
) -> FastAPI:
    """
    Create the bridge app.

    Args:
        config: Bridge settings (worker command, timeout).
        channel: An already-started channel. When omitted, the app's lifespan
                 spawns the worker from ``config`` and stops it on shutdown.
    """
    config = config or BridgeConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        supervisor: WorkerSupervisor | None = None
        if app.state.channel is None:
            supervisor = WorkerSupervisor(
                config.worker_command,
                env=config.worker_env,
                request_timeout=config.request_timeout,
            )
            try:
                app.state.channel = await supervisor.start()
            except WorkerSpawnError as e:
                # Requests will fail with 500 until the bridge is restarted.
                logger.error(f"Bridge running without a worker: {e}")
        try:
            yield
        finally:
            if supervisor is not None:
                await supervisor.stop()

    app = FastAPI(title="MCP HTTP bridge", lifespan=lifespan)
    app.state.channel = channel

    @app.post("/mcp")
    async def forward(request: Request):
        try:
            payload = await request.json()
        except ValueError:
            return JSONResponse(status_code=400, content={"error": "Request body must be valid JSON"})
        if not isinstance(payload, dict):
            return JSONResponse(status_code=400, content={"error": "Request body must be a JSON object"})

        current: RpcChannel | None = app.state.channel
        if current is None:
            return JSONResponse(status_code=500, content={"error": "Worker is not connected"})

        method = payload.get("method")
        try:
            response = await current.send(payload)
        except ChannelError as e:
            logger.error(f"Error handling MCP HTTP request {method!r} ({e.__class__.__name__}): {e}")
            return JSONResponse(status_code=500, content={"error": str(e)})

        logger.debug(f"Forwarded {method!r} as request {response.get('id')}")
        return response

    return app
