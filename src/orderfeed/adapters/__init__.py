"""Transport adapters: STOMP framing, the WebSocket session and the client."""

from .stomp_client import ConnectionState, RealtimeClient
from .stomp_frames import FrameDecodeError, StompFrame
from .stomp_session import StompProtocolError, StompSession

__all__ = [
    "ConnectionState",
    "FrameDecodeError",
    "RealtimeClient",
    "StompFrame",
    "StompProtocolError",
    "StompSession",
]
