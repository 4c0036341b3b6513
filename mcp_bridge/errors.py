"""
Exception taxonomy for the bridge.

Channel failures (timeout, write failure, closed stream) all derive from
ChannelError so the HTTP layer can map them to a single 500 response while
callers that care can still tell them apart.
"""

from __future__ import annotations

from typing import Any


class BridgeError(Exception):
    """Base class for all bridge errors."""


class ChannelError(BridgeError):
    """The RPC channel could not complete a request."""


class ChannelTimeoutError(ChannelError):
    """No response arrived within the request timeout."""

    def __init__(self, request_id: int, timeout: float):
        self.request_id = request_id
        self.timeout = timeout
        super().__init__(
            f"Timeout waiting for worker response (id={request_id}, {timeout:g}s)"
        )


class TransportWriteError(ChannelError):
    """Writing a frame to the worker's input stream failed."""


class ChannelClosedError(ChannelError):
    """The worker stream ended or the channel was closed."""


class DuplicateRequestError(ChannelError):
    """A request id is already pending."""


class WorkerSpawnError(BridgeError):
    """The worker process could not be started."""


class BridgeUnavailableError(BridgeError):
    """The HTTP bridge could not be reached or answered with an error status."""


class ToolArgumentsError(BridgeError):
    """Tool arguments supplied by the model are not valid JSON."""


class RpcError(BridgeError):
    """A JSON-RPC error object returned by the worker."""

    def __init__(self, message: str, code: int = -32603, data: Any = None):
        self.message = message
        self.code = code
        self.data = data
        super().__init__(f"[{code}] {message}")

    @classmethod
    def from_dict(cls, error: dict[str, Any]) -> "RpcError":
        return cls(
            message=str(error.get("message", "Unknown error")),
            code=int(error.get("code", -32603)),
            data=error.get("data"),
        )
