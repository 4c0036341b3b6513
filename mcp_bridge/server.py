"""
Tool server (the worker side of the bridge).

A tool server is a standalone process that:
1. Reads Content-Length framed JSON-RPC requests from stdin
2. Dispatches to registered ToolHandlers
3. Writes framed JSON-RPC responses to stdout

stdout carries frames only; all diagnostics go to stderr through logging.

To create a tool server:

    from mcp_bridge.server import StdioToolServer, ToolHandler

    class MyTool(ToolHandler):
        name = "myTool"
        description = "Does something useful"
        parameters = {
            "input": {"type": "string", "description": "The input"},
        }
        required = ["input"]

        def handle(self, params: dict) -> dict:
            return {"success": True, "output": f"processed: {params['input']}"}

    if __name__ == "__main__":
        server = StdioToolServer()
        server.register(MyTool())
        server.run()
"""

from __future__ import annotations

import logging
import sys
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Any, BinaryIO

from mcp_bridge.framing import FrameDecoder, encode_frame
from mcp_bridge.transport import JsonRpcResponse

logger = logging.getLogger(__name__)

# JSON-RPC error codes
INVALID_REQUEST = -32600
INVALID_PARAMS = -32602
METHOD_NOT_FOUND = -32601
INTERNAL_ERROR = -32603
TOOL_EXECUTION_ERROR = -32000

READ_CHUNK_SIZE = 64 * 1024
DEFAULT_MAX_WORKERS = 8


class ToolHandler(ABC):
    """
    Base class for a tool implementation.

    Subclasses define what a tool does. The server handles transport.
    Tools return ``{"success": True, ...}`` or ``{"success": False, "error": ...}``;
    raising is reserved for unexpected failures.
    """

    # Subclasses must set these
    name: str = ""
    description: str = ""
    parameters: dict[str, dict] = {}
    required: list[str] = []

    @abstractmethod
    def handle(self, params: dict[str, Any]) -> dict[str, Any]:
        """
        Execute the tool with the given arguments.

        Args:
            params: Dict of argument name → value

        Returns:
            The tool result (will be JSON-serialized in the response)
        """
        ...

    def get_schema(self) -> dict:
        """Return the tool descriptor for tools/list."""
        input_schema: dict[str, Any] = {
            "type": "object",
            "properties": self.parameters,
        }
        if self.required:
            input_schema["required"] = list(self.required)
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": input_schema,
        }


class MethodError(Exception):
    """A request that maps to a JSON-RPC error response."""

    def __init__(self, code: int, message: str, data: Any = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


class StdioToolServer:
    """
    Framed JSON-RPC tool server on stdin/stdout.

    Supports methods:
        - "ping"       → {"ok": true}
        - "tools/list" → {"tools": [descriptor, ...]}
        - "tools/call" → {"content": [{"type": "json", "json": <tool result>}]}

    Requests run on a thread pool, so a slow tool does not hold up the
    others; responses are written as they finish, in any order.
    """

    def __init__(
        self,
        reader: BinaryIO | None = None,
        writer: BinaryIO | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self._handlers: dict[str, ToolHandler] = {}
        self._reader = reader
        self._writer = writer
        self._max_workers = max_workers
        self._write_lock = threading.Lock()

    @property
    def tool_names(self) -> list[str]:
        return list(self._handlers.keys())

    def register(self, handler: ToolHandler) -> None:
        """Register a tool handler."""
        if not handler.name:
            raise ValueError(f"ToolHandler {handler.__class__.__name__} has no name")
        self._handlers[handler.name] = handler
        logger.info(f"Registered tool: {handler.name}")

    def run(self) -> None:
        """
        Main loop: read frames from stdin, dispatch, write responses to stdout.

        This blocks until stdin is closed (parent process terminates) and
        every request already read has been answered.
        """
        reader = self._reader or sys.stdin.buffer
        decoder = FrameDecoder()
        logger.info(f"Tool server starting with {len(self._handlers)} tools: {self.tool_names}")

        with ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="tool-server") as executor:
            while True:
                chunk = reader.read1(READ_CHUNK_SIZE)
                if not chunk:
                    break
                for message in decoder.feed(chunk):
                    executor.submit(self._respond, message)

        logger.info("stdin closed, tool server exiting")

    def _respond(self, message: Any) -> None:
        response = self.handle_message(message)
        if response is None:
            return
        try:
            self._write(response)
        except OSError as e:
            logger.error(f"Failed to write response {response.get('id')}: {e}")

    def handle_message(self, message: Any) -> dict[str, Any] | None:
        """
        Handle one decoded message. Returns None for notifications.

        Never raises: any failure becomes a JSON-RPC error response.
        """
        if not isinstance(message, dict):
            logger.warning(f"Ignoring non-object request: {message!r}")
            return JsonRpcResponse(
                id=None,
                error={"code": INVALID_REQUEST, "message": "Request must be a JSON object"},
            ).to_dict()

        is_notification = "id" not in message
        request_id = message.get("id")
        method = message.get("method", "")
        params = message.get("params") or {}

        try:
            result = self._dispatch(method, params)
        except MethodError as e:
            response = JsonRpcResponse(id=request_id, error=e.to_dict())
        except Exception as e:
            logger.exception(f"Unexpected error handling {method!r}")
            response = JsonRpcResponse(
                id=request_id,
                error={"code": INTERNAL_ERROR, "message": "Internal error", "data": {"message": str(e)}},
            )
        else:
            response = JsonRpcResponse(id=request_id, result=result)

        if is_notification:
            logger.debug(f"Notification {method!r} handled, no response sent")
            return None
        return response.to_dict()

    def _dispatch(self, method: str, params: dict) -> Any:
        """Route a method call to the appropriate handler."""

        if method == "ping":
            return {"ok": True}

        if method == "tools/list":
            return {"tools": [h.get_schema() for h in self._handlers.values()]}

        if method == "tools/call":
            if not isinstance(params, dict):
                raise MethodError(INVALID_PARAMS, "tools/call params must be an object")
            tool_name = params.get("name", "")
            if not isinstance(tool_name, str):
                raise MethodError(INVALID_PARAMS, "tools/call name must be a string")
            arguments = params.get("arguments") or {}
            if not isinstance(arguments, dict):
                raise MethodError(INVALID_PARAMS, "tools/call arguments must be an object")

            handler = self._handlers.get(tool_name)
            if not handler:
                raise MethodError(METHOD_NOT_FOUND, f"Unknown tool: {tool_name}")

            try:
                result = handler.handle(arguments)
            except Exception as e:
                logger.exception(f"Tool execution error in {tool_name}")
                raise MethodError(
                    TOOL_EXECUTION_ERROR,
                    "Tool execution error",
                    {"message": str(e) or e.__class__.__name__},
                ) from e

            return {"content": [{"type": "json", "json": result}]}

        raise MethodError(METHOD_NOT_FOUND, f"Unknown method: {method}")

    def _write(self, response: dict[str, Any]) -> None:
        """Write a framed JSON-RPC response to stdout, one whole frame at a time."""
        try:
            frame = encode_frame(response)
        except (TypeError, ValueError) as e:
            logger.error(f"Response {response.get('id')} is not JSON serializable: {e}")
            frame = encode_frame(JsonRpcResponse(
                id=response.get("id"),
                error={"code": INTERNAL_ERROR, "message": "Result is not JSON serializable"},
            ).to_dict())

        writer = self._writer or sys.stdout.buffer
        with self._write_lock:
            writer.write(frame)
            writer.flush()
