"""
Transport - the socket layer under RealtimeClient.

RealtimeClient only talks to the Transport protocol below. The default
implementation wraps python-socketio's AsyncClient.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

import socketio

from .options import RealtimeOptions

logger = logging.getLogger(__name__)


class _NoAck:
    """Sentinel returned by emit_with_ack when the server never acknowledged."""

    def __repr__(self) -> str:
        return "NO_ACK"


NO_ACK: Any = _NoAck()

Handler = Callable[..., Awaitable[None]]
# Builds handshake auth params; called again on every reconnect
AuthSource = Callable[[], Awaitable[Dict[str, str]]]


class Transport(Protocol):
    """Contract RealtimeClient needs from a socket connection."""

    @property
    def connected(self) -> bool: ...

    @property
    def sid(self) -> Optional[str]: ...

    async def connect(self, url: str, auth: AuthSource) -> None: ...

    async def disconnect(self) -> None: ...

    async def emit(self, event: str, data: Any) -> None: ...

    async def emit_with_ack(self, event: str, data: Any, timeout: float) -> Any: ...

    def on(self, event: str, handler: Handler) -> None: ...

    def on_any(self, handler: Handler) -> None: ...


class SocketIOTransport:
    """Transport backed by socketio.AsyncClient."""

    def __init__(
        self,
        options: Optional[RealtimeOptions] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self._options = options or RealtimeOptions()
        self._headers = dict(headers or {})
        self._sio = socketio.AsyncClient(
            reconnection=self._options.reconnection,
            reconnection_attempts=self._options.reconnection_attempts,
            reconnection_delay=self._options.reconnection_delay,
            reconnection_delay_max=self._options.reconnection_delay_max,
            logger=False,
            engineio_logger=False,
        )

    @property
    def connected(self) -> bool:
        return bool(self._sio.connected)

    @property
    def sid(self) -> Optional[str]:
        return self._sio.get_sid()

    async def connect(self, url: str, auth: AuthSource) -> None:
        """Open the connection.

        ``auth`` is handed to Socket.IO as a callable so each handshake,
        automatic reconnects included, sends freshly built params.
        """
        logger.debug("Opening Socket.IO connection to %s", url)
        await self._sio.connect(
            url,
            headers=self._headers,
            auth=auth,
            transports=list(self._options.transports),
            socketio_path=self._options.socketio_path,
        )

    async def disconnect(self) -> None:
        await self._sio.disconnect()

    async def emit(self, event: str, data: Any) -> None:
        await self._sio.emit(event, data)

    async def emit_with_ack(self, event: str, data: Any, timeout: float) -> Any:
        """Emit and wait for the server's acknowledgement.

        Returns NO_ACK if nothing arrives within ``timeout`` seconds.
        """
        try:
            return await self._sio.call(event, data, timeout=timeout)
        except socketio.exceptions.TimeoutError:
            return NO_ACK

    def on(self, event: str, handler: Handler) -> None:
        self._sio.on(event, handler)

    def on_any(self, handler: Handler) -> None:
        # Socket.IO only routes events without a dedicated handler to "*"
        self._sio.on("*", handler)
