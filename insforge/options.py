"""
Configuration options for the InsForge client.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from .transport import Transport


@dataclass
class RealtimeOptions:
    """Realtime connection settings.

    Attributes:
        subscribe_timeout: Seconds to wait for a subscribe acknowledgement.
        reconnection: Let the transport reconnect after unexpected drops.
        reconnection_attempts: Maximum reconnect attempts, 0 for unlimited.
        reconnection_delay: Initial delay in seconds between attempts.
        reconnection_delay_max: Upper bound for the backoff delay.
        transports: Socket.IO transports to try, in order.
        socketio_path: Server path of the Socket.IO endpoint.
        transport_factory: Builds the transport for each connect() call.
            Defaults to a Socket.IO transport configured from these options.
    """
    subscribe_timeout: float = 10.0
    reconnection: bool = True
    reconnection_attempts: int = 0
    reconnection_delay: float = 1.0
    reconnection_delay_max: float = 5.0
    transports: Tuple[str, ...] = ("websocket",)
    socketio_path: str = "socket.io"
    transport_factory: Optional[Callable[[], "Transport"]] = None


@dataclass
class ClientOptions:
    """Top level options for InsForgeClient."""
    headers: Dict[str, str] = field(default_factory=dict)
    realtime: RealtimeOptions = field(default_factory=RealtimeOptions)
