"""
Command line entry point.

Usage:
    # Run the tool worker on stdin/stdout (normally spawned by the bridge)
    mcp-bridge worker

    # Run the HTTP bridge; it spawns the worker itself
    mcp-bridge bridge --port 4000

    # Run the chat server against a running bridge
    mcp-bridge chat --port 3000 --bridge-url http://localhost:4000 --model groq:llama-3.3-70b-versatile
"""

from __future__ import annotations

import argparse
import logging
import shlex

from mcp_bridge.config import BridgeConfig, ChatConfig

logger = logging.getLogger(__name__)


def run_worker(args: argparse.Namespace) -> None:
    from mcp_bridge.servers.assistant import build_server

    build_server().run()


def run_bridge(args: argparse.Namespace) -> None:
    import uvicorn

    from mcp_bridge.http_bridge import create_bridge_app

    config = BridgeConfig.from_env()
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port
    if args.timeout:
        config.request_timeout = args.timeout
    if args.worker_command:
        config.worker_command = shlex.split(args.worker_command)

    logger.info(f"MCP HTTP wrapper running on http://{config.host}:{config.port}/mcp")
    uvicorn.run(create_bridge_app(config), host=config.host, port=config.port, log_level="warning")


def run_chat(args: argparse.Namespace) -> None:
    import uvicorn
    from langchain.chat_models import init_chat_model

    from mcp_bridge.chat import ChatService, create_chat_app
    from mcp_bridge.client import BridgeClient

    config = ChatConfig.from_env()
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port
    if args.bridge_url:
        config.bridge_url = args.bridge_url
    if args.model:
        config.model = args.model

    model = init_chat_model(config.model)
    client = BridgeClient(config.bridge_url, timeout=config.tool_timeout)
    app = create_chat_app(ChatService(model, client), client, config)

    logger.info(f"Chat server running on http://{config.host}:{config.port} (model: {config.model})")
    uvicorn.run(app, host=config.host, port=config.port, log_level="warning")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mcp-bridge",
        description="Framed JSON-RPC tool worker, its HTTP bridge, and a tool-calling chat server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  mcp-bridge bridge --port 4000
  mcp-bridge chat --bridge-url http://localhost:4000 --model groq:llama-3.3-70b-versatile
        """,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    worker = subparsers.add_parser("worker", help="Run the tool worker on stdin/stdout")
    worker.set_defaults(handler=run_worker)

    bridge = subparsers.add_parser("bridge", help="Run the HTTP bridge (spawns the worker)")
    bridge.add_argument("--host", type=str, default=None, help="Bind address")
    bridge.add_argument("--port", "-p", type=int, default=None, help="Port (default: 4000)")
    bridge.add_argument("--timeout", type=float, default=None, help="Per-request timeout in seconds")
    bridge.add_argument("--worker-command", type=str, default=None, help="Command that starts the worker")
    bridge.set_defaults(handler=run_bridge)

    chat = subparsers.add_parser("chat", help="Run the chat server")
    chat.add_argument("--host", type=str, default=None, help="Bind address")
    chat.add_argument("--port", "-p", type=int, default=None, help="Port (default: 3000)")
    chat.add_argument("--bridge-url", type=str, default=None, help="Base URL of the HTTP bridge")
    chat.add_argument("--model", "-m", type=str, default=None, help="Model (e.g., groq:llama-3.3-70b-versatile)")
    chat.set_defaults(handler=run_chat)

    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    # stderr only: the worker's stdout carries frames
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    args.handler(args)


if __name__ == "__main__":
    main()
