"""
Chat server: natural-language requests answered by an LLM that may call one
of the worker's tools.

Flow for POST /chat:
    1. Ask the model with the worker tools bound.
    2. No tool call → return the model's answer.
    3. Tool call → run it through the HTTP bridge, hand the result back to
       the model as a ToolMessage and return the final answer.
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from mcp_bridge.bridge import mcp_tools_to_langchain
from mcp_bridge.client import BridgeClient
from mcp_bridge.config import ChatConfig
from mcp_bridge.errors import BridgeError, ToolArgumentsError

logger = logging.getLogger(__name__)

ROUTING_PROMPT = (
    "You are a helpful AI assistant. You have access to several tools: weather info, "
    "current time, currency exchange rates, and Wikipedia summaries. Choose the most "
    "appropriate tool based on the user's question. For currency questions, ALWAYS use "
    "getCurrencyExchange. For weather questions, use getWeather. For general knowledge, "
    "use getWikiSummary."
)
ANSWER_PROMPT = "You are a helpful AI assistant."

# Model-facing descriptions; richer than the worker's own descriptors.
TOOL_DESCRIPTIONS = {
    "getWeather": (
        "Get current weather information for a specific city. Use this when the user asks "
        "about weather, temperature, or climate conditions in a location."
    ),
    "getCurrentTime": (
        "Get the current local server time. Use this when the user asks what time it is now."
    ),
    "getCurrencyExchange": (
        "Get real-time currency exchange rates between two currencies. Use this when the "
        "user asks about currency conversion, exchange rates, or converting money from one "
        "currency to another (e.g., 'USD to EUR')."
    ),
    "getWikiSummary": (
        "Get a summary from Wikipedia about a topic, person, place, concept, or historical "
        "event. Use this ONLY when the user asks for information about a specific topic, "
        "NOT for weather, time, or currency."
    ),
}


class ChatRequestError(Exception):
    """A chat request the client got wrong; carries the HTTP error body."""

    def __init__(self, body: dict[str, Any], status_code: int = 400):
        super().__init__(body.get("error", "Bad request"))
        self.body = body
        self.status_code = status_code


def parse_tool_arguments(raw: Any) -> dict[str, Any]:
    """
    Normalize model-supplied tool arguments to a mapping.

    Models may hand arguments over as a JSON string or already parsed.
    """
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except ValueError as e:
            raise ToolArgumentsError(f"Tool arguments are not valid JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise ToolArgumentsError("Tool arguments must be a JSON object")
        return parsed
    raise ToolArgumentsError(f"Unsupported tool arguments type: {type(raw).__name__}")


class ChatService:
    """Two-step tool-calling chat over a LangChain chat model."""

    def __init__(self, model: Any, client: BridgeClient):
        """
        Args:
            model: A LangChain chat model (anything with bind_tools and ainvoke).
            client: Bridge client used to discover and call tools.
        """
        self._model = model
        self._client = client
        self._tools: dict[str, Any] = {}
        self._routing_model = model

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools.keys())

    async def load_tools(self) -> list[str]:
        """Discover the worker's tools through the bridge and bind them to the model."""
        schemas = await self._client.list_tools()
        self.set_tools(mcp_tools_to_langchain(self._client, schemas, TOOL_DESCRIPTIONS))
        logger.info(f"Loaded {len(self._tools)} tools: {self.tool_names}")
        return self.tool_names

    def set_tools(self, tools: list[Any]) -> None:
        self._tools = {tool.name: tool for tool in tools}
        self._routing_model = self._model.bind_tools(tools) if tools else self._model

    async def answer(self, message: str) -> dict[str, Any]:
        """
        Answer one user message.

        Raises:
            ChatRequestError: the model asked for an unknown tool or sent
                              malformed arguments
        """
        first: AIMessage = await self._routing_model.ainvoke([
            SystemMessage(content=ROUTING_PROMPT),
            HumanMessage(content=message),
        ])

        call = _first_tool_call(first)
        if call is None:
            logger.info("No tool needed, returning LLM response")
            return {"answer": first.content, "source": "LLM"}

        tool_name = call.get("name") or ""
        logger.info(f"Tool called: {tool_name}")

        try:
            arguments = parse_tool_arguments(call.get("args"))
        except ToolArgumentsError as e:
            logger.error(f"Failed to parse tool arguments: {e}")
            raise ChatRequestError({"error": "Invalid tool arguments", "details": str(e)}) from e

        tool = self._tools.get(tool_name)
        if tool is None:
            logger.error(f"Unknown tool: {tool_name}")
            raise ChatRequestError({"error": "Unknown tool", "toolName": tool_name})

        if tool_name == "getWikiSummary":
            topic = str(arguments.get("topic") or "").strip()
            if topic:
                result = await tool.ainvoke({"topic": topic})
            else:
                result = {"success": False, "error": "No topic provided."}
        else:
            result = await tool.ainvoke(arguments)

        logger.debug(f"Tool result: {result}")

        final = await self._model.ainvoke([
            SystemMessage(content=ANSWER_PROMPT),
            HumanMessage(content=message),
            first,
            ToolMessage(content=json.dumps(result), tool_call_id=call.get("id") or tool_name),
        ])
        return {"answer": final.content, "toolResult": result, "toolUsed": tool_name}


def _first_tool_call(message: AIMessage) -> dict[str, Any] | None:
    """The first tool call, valid or not; None when the model answered directly."""
    if message.tool_calls:
        return dict(message.tool_calls[0])
    invalid = getattr(message, "invalid_tool_calls", None)
    if invalid:
        return dict(invalid[0])
    return None


def create_chat_app(
    service: ChatService,
    client: BridgeClient,
    config: ChatConfig | None = None,
) -> FastAPI:
    """Create the chat app: POST /chat, GET /health, GET /test."""
    config = config or ChatConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            await service.load_tools()
        except BridgeError as e:
            logger.error(f"Could not load tools from the bridge, chatting without tools: {e}")
        try:
            yield
        finally:
            await client.aclose()

    app = FastAPI(title="MCP chat server", lifespan=lifespan)

    @app.post("/chat")
    async def chat(request: Request):
        try:
            body = await request.json()
        except ValueError:
            body = None
        message = body.get("message") if isinstance(body, dict) else None
        if not isinstance(message, str) or not message.strip():
            return JSONResponse(
                status_code=400,
                content={"error": "Message is required and must be a non-empty string"},
            )

        logger.info(f"Received message: {message}")
        try:
            return await service.answer(message)
        except ChatRequestError as e:
            return JSONResponse(status_code=e.status_code, content=e.body)
        except Exception as e:
            logger.exception("Error in /chat endpoint")
            return JSONResponse(
                status_code=500,
                content={"error": "Something went wrong", "details": str(e)},
            )

    @app.get("/test")
    async def test():
        return {"status": "Server is running"}

    @app.get("/health")
    async def health():
        timestamp = datetime.now(timezone.utc).isoformat()
        try:
            await client.ping(timeout=config.health_timeout)
        except BridgeError as e:
            return JSONResponse(
                status_code=503,
                content={
                    "status": "unhealthy",
                    "server": "running",
                    "mcpServer": "disconnected",
                    "error": str(e),
                    "timestamp": timestamp,
                },
            )
        return {
            "status": "healthy",
            "server": "running",
            "mcpServer": "connected",
            "timestamp": timestamp,
        }

    return app
