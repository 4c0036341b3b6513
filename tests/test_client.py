import httpx
import pytest

from mcp_bridge.bridge import mcp_to_langchain_tool, mcp_tools_to_langchain
from mcp_bridge.client import BridgeClient
from mcp_bridge.errors import BridgeUnavailableError, RpcError
from mcp_bridge.http_bridge import create_bridge_app


@pytest.fixture
def open_bridge_client(open_loopback_channel):
    """Factory for a BridgeClient talking to an in-process bridge and worker."""

    async def _open():
        channel = await open_loopback_channel()
        app = create_bridge_app(channel=channel)
        return BridgeClient("http://bridge", transport=httpx.ASGITransport(app=app)), channel

    return _open


def _failing_client(status_code=500, body=None, exc=None):
    def handler(request):
        if exc is not None:
            raise exc
        return httpx.Response(status_code, json=body)

    return BridgeClient("http://bridge", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_ping_list_and_call(open_bridge_client):
    client, channel = await open_bridge_client()

    assert await client.ping() == {"ok": True}
    names = [tool["name"] for tool in await client.list_tools()]
    assert names == ["getWeather", "getCurrentTime", "getCurrencyExchange", "getWikiSummary"]
    rate = await client.call_tool("getCurrencyExchange", {"from": "USD", "to": "EUR"})
    assert rate["rate"] == 0.92

    await client.aclose()
    await channel.close()


@pytest.mark.asyncio
async def test_worker_error_raises_rpc_error(open_bridge_client):
    client, channel = await open_bridge_client()

    with pytest.raises(RpcError) as exc:
        await client.call_tool("launchRocket", {})
    assert exc.value.code == -32601
    assert exc.value.message == "Unknown tool: launchRocket"

    await client.aclose()
    await channel.close()


@pytest.mark.asyncio
async def test_bridge_500_raises_unavailable():
    client = _failing_client(500, {"error": "Timeout waiting for worker response (id=3, 10s)"})
    with pytest.raises(BridgeUnavailableError) as exc:
        await client.ping()
    assert "500" in str(exc.value)
    assert "Timeout waiting for worker response" in str(exc.value)
    await client.aclose()


@pytest.mark.asyncio
async def test_unreachable_bridge_raises_unavailable():
    client = _failing_client(exc=httpx.ConnectError("connection refused"))
    with pytest.raises(BridgeUnavailableError) as exc:
        await client.list_tools()
    assert "connection refused" in str(exc.value)
    await client.aclose()


@pytest.mark.asyncio
async def test_langchain_tool_proxies_to_worker(open_bridge_client):
    client, channel = await open_bridge_client()

    tools = mcp_tools_to_langchain(
        client,
        await client.list_tools(),
        {"getWikiSummary": "Look things up on Wikipedia."},
    )
    by_name = {tool.name: tool for tool in tools}
    assert by_name["getWikiSummary"].description == "Look things up on Wikipedia."
    assert by_name["getWeather"].description == "Get weather of any city using OpenWeatherMap API."
    assert "topic" in by_name["getWikiSummary"].args

    result = await by_name["getWikiSummary"].ainvoke({"topic": "Alan Turing"})
    assert result["title"] == "Alan Turing"

    await client.aclose()
    await channel.close()


@pytest.mark.asyncio
async def test_langchain_tool_returns_failure_instead_of_raising():
    client = _failing_client(500, {"error": "Worker is not connected"})
    tool = mcp_to_langchain_tool(client, {"name": "getCurrentTime", "description": "Time"})

    result = await tool.ainvoke({})
    assert result["success"] is False
    assert result["error"].startswith("Failed to execute getCurrentTime:")
    assert "Worker is not connected" in result["error"]
    await client.aclose()


def test_descriptors_without_name_are_skipped():
    client = _failing_client()
    tools = mcp_tools_to_langchain(client, [{"description": "anonymous"}, {"name": "getCurrentTime"}])
    assert [tool.name for tool in tools] == ["getCurrentTime"]
