"""
Runtime configuration for the bridge and the chat server.

Defaults come from the environment so the same values work for the CLI,
the worker subprocess and tests; CLI flags override them.
"""

from __future__ import annotations

import os
import shlex
import sys
from dataclasses import dataclass, field

from mcp_bridge.channel import DEFAULT_REQUEST_TIMEOUT

DEFAULT_BRIDGE_HOST = "127.0.0.1"
DEFAULT_BRIDGE_PORT = 4000
DEFAULT_CHAT_PORT = 3000
DEFAULT_HEALTH_TIMEOUT = 3.0
DEFAULT_MODEL = "groq:llama-3.3-70b-versatile"


def default_worker_command() -> list[str]:
    return [sys.executable, "-m", "mcp_bridge.servers.assistant"]


@dataclass
class BridgeConfig:
    """HTTP bridge settings: where to listen and which worker to spawn."""
    host: str = DEFAULT_BRIDGE_HOST
    port: int = DEFAULT_BRIDGE_PORT
    worker_command: list[str] = field(default_factory=default_worker_command)
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    worker_env: dict[str, str] | None = None

    @classmethod
    def from_env(cls) -> "BridgeConfig":
        command = os.environ.get("MCP_WORKER_COMMAND")
        return cls(
            host=os.environ.get("MCP_BRIDGE_HOST", DEFAULT_BRIDGE_HOST),
            port=int(os.environ.get("MCP_BRIDGE_PORT", DEFAULT_BRIDGE_PORT)),
            worker_command=shlex.split(command) if command else default_worker_command(),
            request_timeout=float(os.environ.get("MCP_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT)),
        )


@dataclass
class ChatConfig:
    """Chat server settings."""
    host: str = DEFAULT_BRIDGE_HOST
    port: int = DEFAULT_CHAT_PORT
    bridge_url: str = f"http://localhost:{DEFAULT_BRIDGE_PORT}"
    model: str = DEFAULT_MODEL
    tool_timeout: float = DEFAULT_REQUEST_TIMEOUT
    health_timeout: float = DEFAULT_HEALTH_TIMEOUT

    @classmethod
    def from_env(cls) -> "ChatConfig":
        return cls(
            host=os.environ.get("CHAT_HOST", DEFAULT_BRIDGE_HOST),
            port=int(os.environ.get("CHAT_PORT", DEFAULT_CHAT_PORT)),
            bridge_url=os.environ.get("MCP_BRIDGE_URL", f"http://localhost:{DEFAULT_BRIDGE_PORT}"),
            model=os.environ.get("CHAT_MODEL", DEFAULT_MODEL),
        )
