"""
Pytest configuration and shared fixtures.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import pytest

from insforge.options import RealtimeOptions
from insforge.realtime import RealtimeClient


class FakeTransport:
    """In-memory transport that records traffic and lets tests drive events."""

    def __init__(self) -> None:
        self.connected = False
        self.sid: Optional[str] = None
        self.handlers: Dict[str, Callable[..., Awaitable[None]]] = {}
        self.any_handler: Optional[Callable[..., Awaitable[None]]] = None
        self.connect_calls: List[Tuple[str, Dict[str, str]]] = []
        self.disconnect_calls = 0
        self.emitted: List[Tuple[str, Any]] = []
        self.acked: List[Tuple[str, Any, float]] = []
        self.ack_response: Any = {"ok": True}
        self.ack_waiter: Optional[Any] = None
        self.ack_error: Optional[Exception] = None
        self.refuse_with: Optional[Any] = None
        self.connect_exception: Optional[Exception] = None
        # Handshake auth params, one entry per connect or reconnect
        self.handshakes: List[Dict[str, str]] = []
        self.auth: Optional[Callable[[], Awaitable[Dict[str, str]]]] = None
        self.gate: Optional[asyncio.Event] = None

    async def connect(self, url: str, auth: Callable[[], Awaitable[Dict[str, str]]]) -> None:
        self.auth = auth
        params = await auth()
        self.connect_calls.append((url, params))
        self.handshakes.append(params)
        if self.gate is not None:
            await self.gate.wait()
        if self.connect_exception is not None:
            raise self.connect_exception
        if self.refuse_with is not None:
            await self.fire("connect_error", self.refuse_with)
            return
        self.connected = True
        self.sid = "sid-1"
        await self.fire("connect")

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = False

    async def emit(self, event: str, data: Any) -> None:
        self.emitted.append((event, data))

    async def emit_with_ack(self, event: str, data: Any, timeout: float) -> Any:
        self.acked.append((event, data, timeout))
        if self.ack_error is not None:
            raise self.ack_error
        if self.ack_waiter is not None:
            return await self.ack_waiter
        return self.ack_response

    def on(self, event: str, handler: Callable[..., Awaitable[None]]) -> None:
        self.handlers[event] = handler

    def on_any(self, handler: Callable[..., Awaitable[None]]) -> None:
        self.any_handler = handler

    async def fire(self, event: str, *args: Any) -> None:
        await self.handlers[event](*args)

    async def push(self, event: str, data: Any) -> None:
        """Deliver a server event through the catch-all hook."""
        assert self.any_handler is not None
        await self.any_handler(event, data)

    async def drop(self, reason: str = "transport close") -> None:
        self.connected = False
        await self.fire("disconnect", reason)

    async def reconnect(self) -> None:
        """Simulate the library's automatic reconnect, which redoes the handshake."""
        assert self.auth is not None
        self.handshakes.append(await self.auth())
        self.connected = True
        await self.fire("connect")


def make_message(channel: Optional[str] = "lobby", **body: Any) -> Dict[str, Any]:
    """Build a well-formed custom event body."""
    meta: Dict[str, Any] = {
        "messageId": "msg-1",
        "senderType": "user",
        "senderId": "user-1",
        "timestamp": "2025-01-01T00:00:00Z",
    }
    if channel is not None:
        meta["channel"] = channel
    return {"meta": meta, **body}


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def realtime_client(transport: FakeTransport) -> RealtimeClient:
    """RealtimeClient wired to the fake transport."""
    return RealtimeClient(
        "https://api.test.com",
        "test-api-key",
        lambda: "test-token",
        options=RealtimeOptions(transport_factory=lambda: transport),
    )


@pytest.fixture(name="make_message")
def make_message_fixture() -> Callable[..., Dict[str, Any]]:
    return make_message
