import logging
import subprocess
import sys
from types import SimpleNamespace

import pytest

from conftest import wait_for
from mcp_bridge.config import default_worker_command
from mcp_bridge.errors import ChannelError, WorkerSpawnError
from mcp_bridge.transport import JsonRpcRequest, WorkerSupervisor


@pytest.mark.asyncio
async def test_worker_subprocess_answers_ping_and_lists_tools():
    supervisor = WorkerSupervisor(default_worker_command(), request_timeout=10)
    channel = await supervisor.start()
    try:
        assert supervisor.is_alive()
        assert supervisor.pid is not None

        pong = await channel.send(JsonRpcRequest("ping").to_dict())
        assert pong == {"jsonrpc": "2.0", "id": 1, "result": {"ok": True}}

        listed = await channel.send(JsonRpcRequest("tools/list", {}).to_dict())
        assert len(listed["result"]["tools"]) == 4
    finally:
        await supervisor.stop()

    assert not supervisor.is_alive()
    assert supervisor.channel is None


@pytest.mark.asyncio
async def test_spawn_failure_raises():
    supervisor = WorkerSupervisor(["/nonexistent/mcp-worker"])
    with pytest.raises(WorkerSpawnError):
        await supervisor.start()


@pytest.mark.asyncio
async def test_worker_exit_is_logged_and_not_restarted(caplog):
    caplog.set_level(logging.INFO)
    script = "import sys; sys.stderr.write('worker going down\\n'); sys.exit(3)"
    supervisor = WorkerSupervisor([sys.executable, "-c", script], request_timeout=2)
    channel = await supervisor.start()

    await wait_for(lambda: supervisor.exit_code is not None, timeout=10)
    await wait_for(lambda: "worker going down" in caplog.text, timeout=5)

    assert supervisor.exit_code == 3
    assert not supervisor.is_alive()
    assert "exited with code 3; it will not be restarted" in caplog.text
    forwarded = [r for r in caplog.records if r.name == "mcp_bridge.worker"]
    assert forwarded and forwarded[0].getMessage() == "worker going down"

    with pytest.raises(ChannelError):
        await channel.send({"jsonrpc": "2.0", "method": "ping"})
    await supervisor.stop()


@pytest.mark.asyncio
async def test_worker_subprocess_survives_malformed_tool_call():
    supervisor = WorkerSupervisor(default_worker_command(), request_timeout=10)
    channel = await supervisor.start()
    try:
        bad = await channel.send(JsonRpcRequest("tools/call", {"name": {"a": 1}}).to_dict())
        assert bad["error"]["code"] == -32602

        pong = await channel.send(JsonRpcRequest("ping").to_dict())
        assert pong["result"] == {"ok": True}
        assert supervisor.is_alive()
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_stderr_forwarding_without_pipe_returns():
    supervisor = WorkerSupervisor(default_worker_command())
    await supervisor._forward_stderr(SimpleNamespace(stderr=None))


def test_worker_import_does_not_load_client_or_web_stack():
    script = (
        "import sys, mcp_bridge.servers.assistant\n"
        "heavy = [m for m in ('mcp_bridge.client', 'fastapi', 'langchain_core') if m in sys.modules]\n"
        "sys.exit(1 if heavy else 0)\n"
    )
    assert subprocess.run([sys.executable, "-c", script], timeout=30).returncode == 0

    import mcp_bridge
    from mcp_bridge.client import BridgeClient
    assert mcp_bridge.BridgeClient is BridgeClient
