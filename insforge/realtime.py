"""
RealtimeClient - Socket.IO connection manager for InsForge.

Manages the connection lifecycle, channel subscriptions (replayed after
every reconnect) and fan-out of server events to registered listeners.
"""

from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    FrozenSet,
    List,
    Mapping,
    Optional,
    Set,
    Union,
)
import asyncio
import inspect
import logging
import threading
import uuid

from .options import RealtimeOptions
from .transport import NO_ACK, SocketIOTransport, Transport
from .types import (
    REALTIME_PREFIX,
    ConnectionState,
    NotConnectedError,
    RealtimeConnectionError,
    RealtimeError,
    RealtimeErrorPayload,
    SocketMessage,
    SubscribeResponse,
)

logger = logging.getLogger(__name__)

# Control events
SUBSCRIBE_EVENT = "realtime:subscribe"
UNSUBSCRIBE_EVENT = "realtime:unsubscribe"
PUBLISH_EVENT = "realtime:publish"
ERROR_EVENT = "realtime:error"

# Connection lifecycle events, also usable as listener names
CONNECT = "connect"
DISCONNECT = "disconnect"
ERROR = "error"
CONNECT_ERROR = "connect_error"

RESERVED_EVENTS = frozenset({CONNECT, DISCONNECT, ERROR, CONNECT_ERROR})
WILDCARD = "*"

# Listeners may be plain functions or coroutine functions
Listener = Callable[..., Union[None, Awaitable[None]]]
TokenValue = Union[None, str, Mapping[str, str]]
TokenProvider = Callable[[], Union[TokenValue, Awaitable[TokenValue]]]


def _extract_token(value: TokenValue) -> Optional[str]:
    """Pull a bearer token out of a token string or a header mapping."""
    if value is None:
        return None
    if isinstance(value, str):
        token = value
    else:
        token = value.get("Authorization") or value.get("authorization") or ""
    if token.startswith("Bearer "):
        token = token[len("Bearer "):]
    return token or None


def _describe(data: Any) -> str:
    if isinstance(data, dict) and "message" in data:
        return str(data["message"])
    if data is None:
        return "connection refused"
    return str(data)


async def _invoke(callback: Listener, *args: Any) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class RealtimeChannel:
    """Channel-scoped view over a RealtimeClient.

    Listeners added through a channel only see messages whose
    ``meta.channel`` is this channel, and are removed again by
    ``unsubscribe()``.
    """

    def __init__(self, name: str, client: "RealtimeClient") -> None:
        self._name = name
        self._client = client
        self._lock = threading.Lock()
        # listener id -> event name
        self._listener_ids: Dict[str, str] = {}

    @property
    def name(self) -> str:
        """Get channel name."""
        return self._name

    @property
    def is_subscribed(self) -> bool:
        """Check if the client holds a subscription for this channel."""
        return self._name in self._client.subscribed_channels

    async def subscribe(self) -> SubscribeResponse:
        """Subscribe to the channel, connecting first if needed."""
        return await self._client.subscribe(self._name)

    async def unsubscribe(self) -> None:
        """Unsubscribe and drop every listener added through this channel."""
        with self._lock:
            owned = list(self._listener_ids.items())
            self._listener_ids.clear()
        for listener_id, event in owned:
            self._client.off(event, listener_id)
        await self._client.unsubscribe(self._name)

    def on(self, event: str, callback: Listener) -> str:
        """Listen for ``event`` on this channel. Use "*" for every event.

        Returns the listener id to pass to ``off``.
        """
        name = self._name

        async def scoped(message: SocketMessage) -> None:
            if message.meta.matches_channel(name):
                await _invoke(callback, message)

        listener_id = self._client.on(event, scoped)
        with self._lock:
            self._listener_ids[listener_id] = event
        return listener_id

    def off(self, event: str, listener_id: str) -> None:
        """Remove a listener previously added through this channel."""
        with self._lock:
            owned = self._listener_ids.pop(listener_id, None) is not None
        if owned:
            self._client.off(event, listener_id)

    async def broadcast(self, event: str, payload: Dict[str, Any]) -> None:
        """Publish ``event`` with ``payload`` to everyone on this channel."""
        await self._client.publish(self._name, event, payload)


class RealtimeClient:
    """Connection manager for realtime subscriptions.

    Example:
        realtime = RealtimeClient("https://app.insforge.dev", api_key="anon-key")
        channel = realtime.channel("chat:lobby")
        channel.on("message.new", lambda message: print(message.payload))
        response = await channel.subscribe()
        if not response.ok:
            print(response.error)
    """

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        token_provider: Optional[TokenProvider] = None,
        options: Optional[RealtimeOptions] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self._url = url
        self._api_key = api_key
        self._token_provider = token_provider
        self._options = options or RealtimeOptions()
        self._headers = dict(headers or {})

        self._lock = threading.Lock()
        self._connect_lock: Optional[asyncio.Lock] = None
        self._connect_waiter: Optional["asyncio.Future[Optional[RealtimeError]]"] = None
        self._transport: Optional[Transport] = None
        self._state = ConnectionState.DISCONNECTED

        self._subscribed: Set[str] = set()
        self._listeners: Dict[str, Dict[str, Listener]] = {}
        self._pending_subscribes: Set["asyncio.Future[None]"] = set()
        self._channels: Dict[str, RealtimeChannel] = {}

    @property
    def url(self) -> str:
        """Get the realtime server URL."""
        return self._url

    @property
    def connection_state(self) -> ConnectionState:
        """Get the current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if the transport is connected and the handshake completed."""
        transport = self._transport
        return (
            self._state is ConnectionState.CONNECTED
            and transport is not None
            and transport.connected
        )

    @property
    def socket_id(self) -> Optional[str]:
        """Get the server-assigned socket id, if any."""
        transport = self._transport
        return transport.sid if transport is not None else None

    @property
    def subscribed_channels(self) -> FrozenSet[str]:
        """Snapshot of the channels to subscribe to on every (re)connect."""
        with self._lock:
            return frozenset(self._subscribed)

    # Channels

    def channel(self, name: str) -> RealtimeChannel:
        """Create or get a channel."""
        with self._lock:
            existing = self._channels.get(name)
            if existing is None:
                existing = RealtimeChannel(name, self)
                self._channels[name] = existing
            return existing

    def remove_channel(self, name: str) -> None:
        """Forget a cached channel handle. Does not unsubscribe."""
        with self._lock:
            self._channels.pop(name, None)

    # Connection

    async def connect(self) -> None:
        """Connect to the realtime server.

        Returns once the server accepted the handshake. Raises
        RealtimeConnectionError if it was refused or the transport failed.
        """
        if self.is_connected:
            return
        if self._connect_lock is None:
            self._connect_lock = asyncio.Lock()

        async with self._connect_lock:
            if self.is_connected:
                logger.debug("Already connected to realtime server")
                return

            stale = self._transport
            if stale is not None:
                self._transport = None
                await self._close_transport(stale)

            transport = self._create_transport()
            waiter: "asyncio.Future[Optional[RealtimeError]]" = (
                asyncio.get_running_loop().create_future()
            )
            self._connect_waiter = waiter
            self._transport = transport
            self._state = ConnectionState.CONNECTING
            self._register_handlers(transport)

            logger.info("Connecting to realtime server at %s", self._url)
            try:
                # Evaluated on every handshake, including transport reconnects
                await transport.connect(self._url, self._handshake_auth)
                error = await waiter
            except asyncio.CancelledError:
                await self._abandon(transport)
                raise
            except Exception as exc:
                reported = waiter.result() if waiter.done() else None
                await self._abandon(transport)
                if reported is not None:
                    raise reported from exc
                raise RealtimeConnectionError(str(exc) or type(exc).__name__) from exc
            finally:
                self._connect_waiter = None

            if error is not None:
                await self._abandon(transport)
                raise error

    async def disconnect(self) -> None:
        """Close the connection and forget all subscriptions.

        Listeners stay registered. No disconnect callbacks are invoked.
        """
        with self._lock:
            transport = self._transport
            self._transport = None
            self._subscribed.clear()
            waiter = self._connect_waiter
        self._state = ConnectionState.DISCONNECTED
        self._fail_pending_subscribes()

        # A handshake still in flight would otherwise never resolve
        if waiter is not None and not waiter.done():
            waiter.set_result(RealtimeConnectionError("Disconnected while connecting"))

        if transport is not None:
            await self._close_transport(transport)
            logger.info("Disconnected from realtime server")

    # Subscriptions

    async def subscribe(self, channel: str) -> SubscribeResponse:
        """Subscribe to ``channel`` and wait for the server to acknowledge.

        Never raises; failures come back as SubscribeResponse.failure.
        """
        with self._lock:
            if channel in self._subscribed:
                return SubscribeResponse.success(channel)

        if not self.is_connected:
            try:
                await self.connect()
            except RealtimeError as exc:
                logger.warning("Cannot subscribe to %s: %s", channel, exc)
                return SubscribeResponse.failure(channel, "CONNECTION_FAILED", str(exc))

        transport = self._transport
        if transport is None:
            return SubscribeResponse.failure(
                channel, "NO_SOCKET", "Realtime transport is not available"
            )

        dropped: "asyncio.Future[None]" = asyncio.get_running_loop().create_future()
        with self._lock:
            self._pending_subscribes.add(dropped)
        ack_call = asyncio.ensure_future(
            transport.emit_with_ack(
                SUBSCRIBE_EVENT,
                {"channel": channel},
                self._options.subscribe_timeout,
            )
        )
        try:
            done, _ = await asyncio.wait(
                {ack_call, dropped}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            ack_call.cancel()
            raise
        finally:
            with self._lock:
                self._pending_subscribes.discard(dropped)

        if ack_call not in done:
            ack_call.cancel()
            return SubscribeResponse.failure(
                channel,
                "DISCONNECTED",
                "Connection lost while waiting for subscribe acknowledgement",
            )

        try:
            ack = ack_call.result()
        except Exception as exc:
            logger.warning("Subscribe request for %s failed: %s", channel, exc)
            return SubscribeResponse.failure(channel, "NO_SOCKET", str(exc))
        return self._handle_subscribe_ack(channel, ack)

    def _handle_subscribe_ack(self, channel: str, ack: Any) -> SubscribeResponse:
        if ack is NO_ACK:
            logger.warning("Subscribe to %s timed out", channel)
            return SubscribeResponse.failure(
                channel,
                "TIMEOUT",
                f"No acknowledgement within {self._options.subscribe_timeout}s",
            )
        if not isinstance(ack, dict):
            return SubscribeResponse.failure(
                channel, "INVALID_RESPONSE", "Subscribe acknowledgement is not an object"
            )
        if ack.get("ok") is True:
            with self._lock:
                self._subscribed.add(channel)
            logger.info("Subscribed to channel: %s", channel)
            return SubscribeResponse.success(channel)

        error = ack.get("error")
        if isinstance(error, dict):
            code = str(error.get("code", "UNKNOWN"))
            message = str(error.get("message", "Subscribe failed"))
            logger.warning("Server rejected subscription to %s: %s %s", channel, code, message)
            return SubscribeResponse.failure(channel, code, message)
        return SubscribeResponse.failure(
            channel, "UNKNOWN", "Unrecognized subscribe acknowledgement"
        )

    async def unsubscribe(self, channel: str) -> None:
        """Unsubscribe from ``channel``. Safe to call in any state."""
        with self._lock:
            self._subscribed.discard(channel)

        transport = self._transport
        if transport is not None and self.is_connected:
            try:
                await transport.emit(UNSUBSCRIBE_EVENT, {"channel": channel})
            except Exception:
                logger.warning("Failed to send unsubscribe for %s", channel, exc_info=True)
        logger.info("Unsubscribed from channel: %s", channel)

    async def publish(self, channel: str, event: str, payload: Dict[str, Any]) -> None:
        """Publish ``event`` to ``channel``.

        Raises NotConnectedError without sending anything when disconnected.
        """
        transport = self._transport
        if transport is None or not self.is_connected:
            raise NotConnectedError()

        await transport.emit(
            PUBLISH_EVENT,
            {"channel": channel, "event": event, "payload": payload},
        )
        logger.debug("Published to channel '%s': %s", channel, event)

    # Listeners

    def on(self, event: str, callback: Listener) -> str:
        """Register ``callback`` for ``event`` and return its listener id.

        Besides custom event names, "connect", "disconnect", "error" and
        "connect_error" register connection state callbacks.
        """
        listener_id = uuid.uuid4().hex
        with self._lock:
            self._listeners.setdefault(event, {})[listener_id] = callback
        return listener_id

    def off(self, event: str, listener_id: Optional[str] = None) -> None:
        """Remove one listener, or every listener for ``event`` if no id is given."""
        with self._lock:
            listeners = self._listeners.get(event)
            if listeners is None:
                return
            if listener_id is None:
                listeners.clear()
            else:
                listeners.pop(listener_id, None)
            if not listeners:
                del self._listeners[event]

    def on_connect(self, callback: Callable[[], Any]) -> str:
        """Register a callback for when the handshake is accepted."""
        return self.on(CONNECT, callback)

    def on_disconnect(self, callback: Callable[[str], Any]) -> str:
        """Register a callback for when the connection drops; receives the reason."""
        return self.on(DISCONNECT, callback)

    def on_error(self, callback: Callable[[RealtimeErrorPayload], Any]) -> str:
        """Register a callback for server pushed ``realtime:error`` payloads."""
        return self.on(ERROR, callback)

    def on_connect_error(self, callback: Callable[[str], Any]) -> str:
        """Register a callback for refused handshakes; receives the message."""
        return self.on(CONNECT_ERROR, callback)

    def _snapshot(self, *events: str) -> List[Listener]:
        with self._lock:
            callbacks: List[Listener] = []
            for event in events:
                callbacks.extend(self._listeners.get(event, {}).values())
            return callbacks

    async def _notify(self, event: str, *args: Any) -> None:
        for callback in self._snapshot(event):
            await self._call_listener(event, callback, *args)

    async def _call_listener(self, event: str, callback: Listener, *args: Any) -> None:
        try:
            await _invoke(callback, *args)
        except Exception:
            logger.exception("Realtime listener for '%s' raised", event)

    # Transport callbacks

    def _register_handlers(self, transport: Transport) -> None:
        # Bound to this transport so late events from a replaced one are ignored

        async def on_connect(*_: Any) -> None:
            await self._handle_connect(transport)

        async def on_disconnect(*args: Any) -> None:
            await self._handle_disconnect(transport, *args)

        async def on_connect_error(*args: Any) -> None:
            await self._handle_connect_error(transport, *args)

        async def on_server_error(*args: Any) -> None:
            await self._handle_server_error(transport, *args)

        async def on_any(event: str, *args: Any) -> None:
            await self._handle_any(transport, event, *args)

        transport.on(CONNECT, on_connect)
        transport.on(DISCONNECT, on_disconnect)
        transport.on(CONNECT_ERROR, on_connect_error)
        transport.on(ERROR_EVENT, on_server_error)
        transport.on_any(on_any)

    async def _handle_connect(self, transport: Transport) -> None:
        if transport is not self._transport:
            return
        self._state = ConnectionState.CONNECTED
        logger.info("Connected to realtime server (sid=%s)", transport.sid)

        await self._replay_subscriptions(transport)
        await self._notify(CONNECT)

        waiter = self._connect_waiter
        if waiter is not None and not waiter.done():
            waiter.set_result(None)

    async def _replay_subscriptions(self, transport: Transport) -> None:
        with self._lock:
            channels = list(self._subscribed)
        for name in channels:
            try:
                await transport.emit(SUBSCRIBE_EVENT, {"channel": name})
            except Exception:
                logger.exception("Failed to resubscribe to channel %s", name)
        if channels:
            logger.debug("Resubscribed to %d channel(s)", len(channels))

    async def _handle_disconnect(self, transport: Transport, *args: Any) -> None:
        if transport is not self._transport:
            return
        reason = str(args[0]) if args else "unknown"
        self._state = ConnectionState.DISCONNECTED
        logger.info("Realtime connection lost: %s", reason)
        self._fail_pending_subscribes()
        await self._notify(DISCONNECT, reason)

    async def _handle_connect_error(self, transport: Transport, *args: Any) -> None:
        if transport is not self._transport:
            return
        message = _describe(args[0] if args else None)
        logger.error("Realtime connection error: %s", message)
        self._state = ConnectionState.DISCONNECTED
        await self._notify(CONNECT_ERROR, message)

        waiter = self._connect_waiter
        if waiter is not None and not waiter.done():
            waiter.set_result(RealtimeConnectionError(message))

    async def _handle_server_error(self, transport: Transport, *args: Any) -> None:
        if transport is not self._transport:
            return
        error = RealtimeErrorPayload.from_dict(args[0] if args else None)
        logger.warning("Realtime server error %s: %s", error.code, error.message)
        await self._notify(ERROR, error)

    async def _handle_any(self, transport: Transport, event: str, *args: Any) -> None:
        if transport is not self._transport:
            return
        if event in RESERVED_EVENTS or event.startswith(REALTIME_PREFIX):
            return

        message = SocketMessage.from_event(event, args[0] if args else None)
        if message is None:
            logger.debug("Dropping malformed realtime event '%s'", event)
            return

        for callback in self._snapshot(event, WILDCARD):
            await self._call_listener(event, callback, message)

    # Helpers

    async def _resolve_token(self) -> Optional[str]:
        value: Any = None
        if self._token_provider is not None:
            value = self._token_provider()
            if inspect.isawaitable(value):
                value = await value
        return _extract_token(value) or self._api_key

    async def _handshake_auth(self) -> Dict[str, str]:
        token = await self._resolve_token()
        return {"token": token} if token else {}

    def _create_transport(self) -> Transport:
        factory = self._options.transport_factory
        if factory is not None:
            return factory()
        return SocketIOTransport(self._options, headers=self._headers)

    async def _abandon(self, transport: Transport) -> None:
        if self._transport is transport:
            self._transport = None
            self._state = ConnectionState.DISCONNECTED
        await self._close_transport(transport)

    async def _close_transport(self, transport: Transport) -> None:
        try:
            await transport.disconnect()
        except Exception:
            logger.warning("Error while closing realtime transport", exc_info=True)

    def _fail_pending_subscribes(self) -> None:
        with self._lock:
            pending = list(self._pending_subscribes)
            self._pending_subscribes.clear()
        for waiter in pending:
            if not waiter.done():
                waiter.set_result(None)
