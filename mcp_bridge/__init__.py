"""
MCP chat bridge — framed JSON-RPC tool worker behind an HTTP bridge.

Architecture:
    ┌─────────────┐  HTTP   ┌──────────────┐  Content-Length  ┌──────────────┐
    │ Chat server │ ──────> │  HTTP bridge │ ───────────────> │    Worker    │
    │ (LangChain) │ POST    │ (RpcChannel) │  framed JSON-RPC │ (subprocess) │
    └─────────────┘  /mcp   └──────────────┘  stdin / stdout  └──────────────┘

The worker is a standalone process that reads and writes Content-Length
framed JSON-RPC 2.0 messages (ping, tools/list, tools/call) on its
stdin/stdout.

The RpcChannel owns the framing buffer, the request id counter and the
table of pending requests, so many HTTP requests can share one worker and
still get their own responses back, matched by id.

The WorkerSupervisor starts the worker once and reports when it dies; it
does not restart it.
"""

from mcp_bridge.channel import PendingRequestTable, RpcChannel
from mcp_bridge.framing import FrameDecoder, decode_frames, encode_frame
from mcp_bridge.server import StdioToolServer, ToolHandler
from mcp_bridge.transport import JsonRpcRequest, JsonRpcResponse, WorkerSupervisor


# Client, bridge app and LangChain pieces are imported lazily so the worker
# process only loads the framing, channel and server modules.
def __getattr__(name):
    if name == "BridgeClient":
        from mcp_bridge.client import BridgeClient
        return BridgeClient
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def create_bridge_app(*args, **kwargs):
    from mcp_bridge.http_bridge import create_bridge_app as _impl
    return _impl(*args, **kwargs)


def mcp_to_langchain_tool(*args, **kwargs):
    from mcp_bridge.bridge import mcp_to_langchain_tool as _impl
    return _impl(*args, **kwargs)


__all__ = [
    "BridgeClient",
    "FrameDecoder",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "PendingRequestTable",
    "RpcChannel",
    "StdioToolServer",
    "ToolHandler",
    "WorkerSupervisor",
    "create_bridge_app",
    "decode_frames",
    "encode_frame",
    "mcp_to_langchain_tool",
]
