"""
InsForge Python Client SDK

Async client library for InsForge.
Provides access to Auth and to Realtime pub/sub over Socket.IO.

Example usage:
    from insforge import InsForgeClient

    client = InsForgeClient(url="https://app.insforge.dev", key="your-anon-key")

    # Auth
    result = await client.auth.sign_in(email="user@example.com", password="password123")

    # Realtime subscriptions
    channel = client.channel("chat:lobby")
    channel.on("message.new", lambda message: print(message.payload))
    response = await channel.subscribe()
    await channel.broadcast("message.new", {"text": "hello"})
"""

import logging

from .client import InsForgeClient, __version__
from .options import ClientOptions, RealtimeOptions
from .realtime import RealtimeClient, RealtimeChannel
from .transport import NO_ACK, SocketIOTransport, Transport
from .types import (
    InsForgeResponse,
    InsForgeError,
    User,
    Session,
    AuthData,
    ConnectionState,
    SocketMessage,
    SocketMessageMeta,
    SubscribeResponse,
    SubscribeError,
    RealtimeErrorPayload,
    RealtimeError,
    RealtimeConnectionError,
    NotConnectedError,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "InsForgeClient",
    "ClientOptions",
    "RealtimeOptions",
    "RealtimeClient",
    "RealtimeChannel",
    "Transport",
    "SocketIOTransport",
    "NO_ACK",
    "InsForgeResponse",
    "InsForgeError",
    "User",
    "Session",
    "AuthData",
    "ConnectionState",
    "SocketMessage",
    "SocketMessageMeta",
    "SubscribeResponse",
    "SubscribeError",
    "RealtimeErrorPayload",
    "RealtimeError",
    "RealtimeConnectionError",
    "NotConnectedError",
    "__version__",
]
