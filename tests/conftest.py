"""Pytest fixtures: in-memory worker streams and a fake upstream HTTP API."""

import asyncio

import httpx
import pytest

from mcp_bridge.channel import RpcChannel
from mcp_bridge.framing import FrameDecoder, encode_frame
from mcp_bridge.servers.assistant import build_server


class MemoryWriter:
    """Stands in for the worker's stdin; decodes every frame written to it."""

    def __init__(self, *, fail: bool = False):
        self.fail = fail
        self.data = b""
        self.messages = []
        self._decoder = FrameDecoder()

    def write(self, data: bytes) -> None:
        if self.fail:
            raise BrokenPipeError("pipe closed")
        self.data += data
        self.messages.extend(self._decoder.feed(data))

    async def drain(self) -> None:
        await asyncio.sleep(0)


class LoopbackWriter(MemoryWriter):
    """Answers each written request with a real tool server, in process."""

    def __init__(self, server, reader: asyncio.StreamReader):
        super().__init__()
        self._server = server
        self._reader = reader

    def write(self, data: bytes) -> None:
        before = len(self.messages)
        super().write(data)
        for message in self.messages[before:]:
            response = self._server.handle_message(message)
            if response is not None:
                self._reader.feed_data(encode_frame(response))


def upstream_handler(request: httpx.Request) -> httpx.Response:
    """Canned answers for the weather, currency and Wikipedia APIs."""
    host = request.url.host
    if host == "api.openweathermap.org":
        return httpx.Response(200, json={
            "main": {"temp": 14.2, "humidity": 71, "feels_like": 13.5},
            "weather": [{"description": "light rain"}],
        })
    if host == "open.exchangerate-api.com":
        return httpx.Response(200, json={
            "rates": {"USD": 1, "EUR": 0.92},
            "time_last_update_utc": "Mon, 19 Oct 2026 00:00:01 +0000",
        })
    if host == "en.wikipedia.org":
        return httpx.Response(200, json={
            "type": "standard",
            "title": "Alan Turing",
            "extract": "Alan Turing was an English mathematician.",
            "content_urls": {"desktop": {"page": "https://en.wikipedia.org/wiki/Alan_Turing"}},
        })
    return httpx.Response(404, json={"message": "not found"})


@pytest.fixture
def upstream_client():
    client = httpx.Client(transport=httpx.MockTransport(upstream_handler))
    yield client
    client.close()


@pytest.fixture
def tool_server(upstream_client):
    return build_server(upstream_client)


@pytest.fixture
def open_loopback_channel(tool_server):
    """Factory for a started RpcChannel wired to an in-process tool server."""

    async def _open(timeout: float = 5.0) -> RpcChannel:
        reader = asyncio.StreamReader()
        channel = RpcChannel(reader, LoopbackWriter(tool_server, reader), timeout=timeout)
        await channel.start()
        return channel

    return _open


async def wait_for(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)
