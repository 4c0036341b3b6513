"""
Bridge client — calls the worker's tools through the HTTP bridge.

This is what the chat server (or any other consumer) uses instead of
talking to the worker process directly.

Usage:
    client = BridgeClient("http://localhost:4000")

    # Health check
    await client.ping()

    # Discover tools
    tools = await client.list_tools()

    # Call a tool
    result = await client.call_tool("getCurrentTime", {})

    await client.aclose()
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from mcp_bridge.channel import DEFAULT_REQUEST_TIMEOUT
from mcp_bridge.errors import BridgeUnavailableError, RpcError
from mcp_bridge.transport import JsonRpcRequest, JsonRpcResponse

logger = logging.getLogger(__name__)

BRIDGE_PATH = "/mcp"


class BridgeClient:
    """JSON-RPC over HTTP to the bridge's POST /mcp endpoint."""

    def __init__(
        self,
        base_url: str = "http://localhost:4000",
        *,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            base_url: Where the bridge listens.
            timeout: Default HTTP timeout per request.
            transport: Optional httpx transport (tests use ASGI or mock transports).
        """
        self.base_url = base_url
        self._http = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> Any:
        """
        Send one JSON-RPC request through the bridge and return its result.

        Raises:
            BridgeUnavailableError: network failure or non-2xx bridge response
            RpcError: the worker answered with a JSON-RPC error
        """
        request = JsonRpcRequest(method=method, params=params if params is not None else {})
        try:
            response = await self._http.post(
                BRIDGE_PATH,
                json=request.to_dict(),
                timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
            )
        except httpx.HTTPError as e:
            reason = str(e) or e.__class__.__name__
            raise BridgeUnavailableError(f"Bridge request failed: {reason}") from e

        if response.is_error:
            raise BridgeUnavailableError(
                f"Bridge returned {response.status_code}: {_error_message(response)}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise BridgeUnavailableError(f"Bridge returned invalid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise BridgeUnavailableError("Bridge returned a non-object response")

        rpc = JsonRpcResponse.from_dict(payload)
        if rpc.is_error:
            raise RpcError.from_dict(rpc.error)
        return rpc.result

    async def ping(self, *, timeout: float | None = None) -> dict[str, Any]:
        """Check that the worker answers."""
        return await self.request("ping", {}, timeout=timeout)

    async def list_tools(self) -> list[dict]:
        """List the worker's tool descriptors."""
        result = await self.request("tools/list", {})
        return (result or {}).get("tools", [])

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        """
        Call a tool on the worker.

        Returns:
            The tool's own result (the ``json`` part of the first content block).
        """
        result = await self.request("tools/call", {"name": name, "arguments": arguments})
        content = (result or {}).get("content") or []
        if not content:
            raise RpcError(f"Tool {name} returned no content", code=-32603)
        logger.debug(f"Tool {name} returned {content[0].get('type')} content")
        return content[0].get("json")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.text[:200]
