"""
Type definitions for InsForge Python SDK.
All types are fully annotated for mypy strict mode.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TypeVar, Generic, Optional, Dict, Any

T = TypeVar("T")

# Prefix shared by realtime control events and server channel names
REALTIME_PREFIX = "realtime:"


@dataclass
class InsForgeError:
    """Standard error type for InsForge HTTP operations."""
    message: str
    status: Optional[int] = None
    code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


@dataclass
class InsForgeResponse(Generic[T]):
    """Standard response type for InsForge HTTP operations.
    Uses Result pattern - never raises exceptions."""
    data: Optional[T]
    error: Optional[InsForgeError]


@dataclass
class User:
    """User type returned from auth operations."""
    id: str
    email: str
    email_verified: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=data["id"],
            email=data["email"],
            email_verified=data.get("emailVerified", False),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
            metadata=data.get("metadata"),
        )


@dataclass
class Session:
    """Authenticated session: access token plus the signed in user."""
    access_token: str
    user: User


@dataclass
class AuthData:
    """Auth response with user and, when issued, a session."""
    user: User
    session: Optional[Session]
    require_email_verification: bool = False


# Realtime


class RealtimeError(Exception):
    """Base class for errors raised by the realtime client."""


class RealtimeConnectionError(RealtimeError):
    """The transport could not establish a connection."""


class NotConnectedError(RealtimeError):
    """An operation needing a live connection was called while disconnected."""

    def __init__(self, message: str = "Not connected to realtime server") -> None:
        super().__init__(message)


class ConnectionState(str, Enum):
    """Lifecycle state of the realtime connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class SocketMessageMeta:
    """Server metadata attached to every realtime message."""
    message_id: str
    sender_type: str
    timestamp: str
    channel: Optional[str] = None
    sender_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> Optional["SocketMessageMeta"]:
        """Parse wire metadata. Returns None when required keys are missing."""
        if not isinstance(data, dict):
            return None
        message_id = data.get("messageId")
        sender_type = data.get("senderType")
        timestamp = data.get("timestamp")
        if message_id is None or sender_type is None or timestamp is None:
            return None
        return cls(
            message_id=str(message_id),
            sender_type=str(sender_type),
            timestamp=str(timestamp),
            channel=data.get("channel"),
            sender_id=data.get("senderId"),
        )

    def matches_channel(self, name: str) -> bool:
        """True when this message belongs to channel ``name``."""
        return self.channel == name or self.channel == f"{REALTIME_PREFIX}{name}"


@dataclass(frozen=True)
class SocketMessage:
    """Inbound custom event: parsed ``meta`` plus the remaining body."""
    event: str
    meta: SocketMessageMeta
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_event(cls, event: str, data: Any) -> Optional["SocketMessage"]:
        """Build a message from a raw event body, or None if it is malformed."""
        if not isinstance(data, dict):
            return None
        meta = SocketMessageMeta.from_dict(data.get("meta"))
        if meta is None:
            return None
        payload = {k: v for k, v in data.items() if k != "meta"}
        return cls(event=event, meta=meta, payload=payload)


@dataclass(frozen=True)
class SubscribeError:
    code: str
    message: str


@dataclass(frozen=True)
class SubscribeResponse:
    """Outcome of a subscribe request. Never raised, always returned."""
    channel: str
    error: Optional[SubscribeError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, channel: str) -> "SubscribeResponse":
        return cls(channel=channel)

    @classmethod
    def failure(cls, channel: str, code: str, message: str) -> "SubscribeResponse":
        return cls(channel=channel, error=SubscribeError(code=code, message=message))


@dataclass(frozen=True)
class RealtimeErrorPayload:
    """Business error pushed by the server on ``realtime:error``."""
    code: str
    message: str
    channel: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "RealtimeErrorPayload":
        if not isinstance(data, dict):
            return cls(code="UNKNOWN", message=str(data))
        return cls(
            code=str(data.get("code", "UNKNOWN")),
            message=str(data.get("message", "")),
            channel=data.get("channel"),
        )


# Type aliases for common response types
AuthResponse = InsForgeResponse[AuthData]
UserResponse = InsForgeResponse[User]
