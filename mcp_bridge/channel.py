"""
RPC channel: request/response correlation over one framed byte stream.

The channel owns everything that is shared between concurrent callers:

    - the FrameDecoder buffer (fed only by the reader task)
    - the monotonic request id counter
    - the PendingRequestTable

All three are only touched from the event loop, so no locking is needed.

Usage:
    channel = RpcChannel(process.stdout, process.stdin, timeout=10.0)
    await channel.start()
    response = await channel.send({"jsonrpc": "2.0", "method": "ping"})
    await channel.close()
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Protocol

from mcp_bridge.errors import (
    ChannelClosedError,
    ChannelTimeoutError,
    DuplicateRequestError,
    TransportWriteError,
)
from mcp_bridge.framing import FrameDecoder, encode_frame

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 10.0
READ_CHUNK_SIZE = 64 * 1024


class StreamReader(Protocol):
    async def read(self, n: int = -1) -> bytes: ...


class StreamWriter(Protocol):
    def write(self, data: bytes) -> None: ...

    async def drain(self) -> None: ...


@dataclass
class PendingRequest:
    """A request waiting for its response."""
    request_id: int
    future: asyncio.Future
    timer: asyncio.TimerHandle
    created_at: float


class PendingRequestTable:
    """
    Maps request ids to the futures of their waiting callers.

    Every entry ends exactly once: resolve() and expire() both pop the entry
    before touching the future, so whichever runs first wins and the other
    becomes a no-op.
    """

    def __init__(self, timeout: float = DEFAULT_REQUEST_TIMEOUT):
        self.timeout = timeout
        self._entries: dict[int, PendingRequest] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._entries

    def register(self, request_id: int) -> asyncio.Future:
        """Create the pending entry and start its expiry timer."""
        if request_id in self._entries:
            raise DuplicateRequestError(f"Request id {request_id} is already pending")

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        timer = loop.call_later(self.timeout, self.expire, request_id)
        self._entries[request_id] = PendingRequest(
            request_id=request_id,
            future=future,
            timer=timer,
            created_at=time.monotonic(),
        )
        return future

    def resolve(self, request_id: Any, message: Any) -> bool:
        """Complete a pending request. Unknown or late ids return False."""
        entry = self._entries.pop(request_id, None)
        if entry is None:
            return False
        entry.timer.cancel()
        if not entry.future.done():
            entry.future.set_result(message)
        return True

    def expire(self, request_id: int) -> bool:
        """Fail a pending request with a timeout."""
        entry = self._entries.pop(request_id, None)
        if entry is None:
            return False
        entry.timer.cancel()
        if not entry.future.done():
            elapsed = time.monotonic() - entry.created_at
            logger.warning(f"Request {request_id} expired after {elapsed:.1f}s")
            entry.future.set_exception(ChannelTimeoutError(request_id, self.timeout))
        return True

    def discard(self, request_id: int) -> None:
        """Drop an entry without completing it (the caller already failed)."""
        entry = self._entries.pop(request_id, None)
        if entry is not None:
            entry.timer.cancel()
            entry.future.cancel()

    def fail_all(self, exc: BaseException) -> int:
        """Fail every pending request with ``exc``. Returns how many were failed."""
        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            entry.timer.cancel()
            if not entry.future.done():
                entry.future.set_exception(exc)
        return len(entries)


class RpcChannel:
    """
    JSON-RPC client side of one worker connection.

    Requests get sequential ids starting at 1. Responses are matched by id
    only, so the worker may answer in any order.
    """

    def __init__(
        self,
        reader: StreamReader,
        writer: StreamWriter,
        *,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        self._reader = reader
        self._writer = writer
        self._decoder = FrameDecoder()
        self._pending = PendingRequestTable(timeout)
        self._next_id = 1
        self._reader_task: asyncio.Task | None = None
        self._closed_reason: str | None = None

    @property
    def timeout(self) -> float:
        return self._pending.timeout

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def is_open(self) -> bool:
        return self._closed_reason is None

    async def start(self) -> None:
        """Start the background reader."""
        if self._reader_task is None:
            self._reader_task = asyncio.create_task(self._read_loop(), name="rpc-channel-reader")

    async def close(self) -> None:
        """Stop the reader and fail anything still pending."""
        if self._reader_task is not None:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None
        self._mark_closed("Channel closed")

    async def send(self, request: dict[str, Any]) -> dict[str, Any]:
        """
        Send a request and wait for the matching response.

        The request is forwarded as-is except for the injected ``id``.

        Returns:
            The worker's full JSON-RPC response message.

        Raises:
            ChannelTimeoutError: no response within the timeout
            TransportWriteError: the frame could not be written
            ChannelClosedError: the worker stream has ended
        """
        if self._closed_reason is not None:
            raise ChannelClosedError(self._closed_reason)

        request_id = self._next_id
        self._next_id += 1

        try:
            future = self._pending.register(request_id)
        except DuplicateRequestError as e:
            logger.error(f"Aborting send: {e}")
            raise

        message = dict(request)
        message["id"] = request_id
        logger.debug(f"Sending request {request_id}: {message.get('method')}")

        try:
            self._writer.write(encode_frame(message))
            await self._writer.drain()
        except (OSError, RuntimeError) as e:
            self._pending.discard(request_id)
            logger.error(f"Failed to write request {request_id} to worker: {e}")
            raise TransportWriteError(f"Failed to write to worker: {e}") from e

        return await future

    async def notify(self, message: dict[str, Any]) -> None:
        """Write a message without an id; nothing is registered or awaited."""
        if self._closed_reason is not None:
            raise ChannelClosedError(self._closed_reason)

        notification = {k: v for k, v in message.items() if k != "id"}
        try:
            self._writer.write(encode_frame(notification))
            await self._writer.drain()
        except (OSError, RuntimeError) as e:
            raise TransportWriteError(f"Failed to write to worker: {e}") from e

    async def _read_loop(self) -> None:
        reason = "Worker output stream closed"
        try:
            while True:
                chunk = await self._reader.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                for message in self._decoder.feed(chunk):
                    self._dispatch(message)
        except OSError as e:
            reason = f"Worker output stream failed: {e}"
            logger.error(reason)
        else:
            logger.warning(reason)
        self._mark_closed(reason)

    def _dispatch(self, message: Any) -> None:
        if not isinstance(message, dict):
            logger.debug(f"Ignoring non-object message from worker: {message!r}")
            return

        request_id = message.get("id")
        if request_id is None:
            logger.debug(f"Worker message without id: {message.get('method', message)}")
            return
        if isinstance(request_id, bool) or not isinstance(request_id, (int, str)):
            logger.debug(f"Ignoring message with unusable id: {request_id!r}")
            return

        if not self._pending.resolve(request_id, message):
            logger.debug(f"No pending request for id {request_id}, dropping response")

    def _mark_closed(self, reason: str) -> None:
        if self._closed_reason is None:
            self._closed_reason = reason
        failed = self._pending.fail_all(ChannelClosedError(reason))
        if failed:
            logger.warning(f"Failed {failed} pending request(s): {reason}")
