"""
Bridge between worker tools and LangChain.

This module converts the worker's tool descriptors (from tools/list) into
LangChain tools that can be bound to a chat model.

Usage:
    from mcp_bridge.bridge import mcp_tools_to_langchain

    schemas = await client.list_tools()
    tools = mcp_tools_to_langchain(client, schemas)
    model_with_tools = model.bind_tools(tools)
"""

from __future__ import annotations

import logging
from typing import Any

from langchain_core.tools import StructuredTool

from mcp_bridge.client import BridgeClient
from mcp_bridge.errors import BridgeError

logger = logging.getLogger(__name__)

EMPTY_INPUT_SCHEMA = {"type": "object", "properties": {}}


def mcp_to_langchain_tool(
    client: BridgeClient,
    tool_schema: dict[str, Any],
    description_override: str | None = None,
) -> StructuredTool:
    """
    Create a LangChain StructuredTool that wraps a worker tool call.

    The returned tool, when invoked, sends a tools/call request through the
    HTTP bridge and returns the tool's result mapping. Failures come back as
    ``{"success": False, "error": ...}`` so the model can explain them.

    Args:
        client: The BridgeClient to call through
        tool_schema: A descriptor from tools/list (name, description, inputSchema)
        description_override: Optional override for the tool description

    Returns:
        A LangChain StructuredTool that proxies calls to the worker.
    """
    tool_name = tool_schema["name"]
    description = description_override or tool_schema.get("description") or tool_name
    input_schema = dict(tool_schema.get("inputSchema") or EMPTY_INPUT_SCHEMA)
    input_schema.setdefault("title", tool_name)

    async def _call_tool(**kwargs: Any) -> dict[str, Any]:
        """Proxy call to the worker."""
        try:
            return await client.call_tool(tool_name, kwargs)
        except BridgeError as e:
            logger.error(f"Error calling MCP server for {tool_name}: {e}")
            return {"success": False, "error": f"Failed to execute {tool_name}: {e}"}

    return StructuredTool(
        name=tool_name,
        description=description,
        args_schema=input_schema,
        coroutine=_call_tool,
    )


def mcp_tools_to_langchain(
    client: BridgeClient,
    tool_schemas: list[dict[str, Any]],
    description_overrides: dict[str, str] | None = None,
) -> list[StructuredTool]:
    """
    Convert every discovered worker tool into a LangChain tool.

    Args:
        client: The BridgeClient to call through
        tool_schemas: Descriptors from tools/list
        description_overrides: Optional {tool_name: description} for
                               richer model-facing descriptions

    Returns:
        List of LangChain tools, in discovery order.
    """
    description_overrides = description_overrides or {}
    tools = []
    for schema in tool_schemas:
        name = schema.get("name")
        if not name:
            logger.warning(f"Skipping tool descriptor without a name: {schema}")
            continue
        tools.append(mcp_to_langchain_tool(client, schema, description_overrides.get(name)))
    return tools
