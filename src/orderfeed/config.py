"""Configuration for the realtime order feed client."""

from __future__ import annotations

from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from orderfeed.runtime.env import EnvMapping, env_name, get_bool, get_float, get_int, get_str

DEFAULT_URL = "ws://localhost:8080/ws/websocket"


class RealtimeConfig(BaseModel):
    """Settings for the STOMP connection and its reconnection policy.

    Load from environment using ``RealtimeConfig.from_env()``.

    Attributes:
        url: Broker WebSocket endpoint (ws:// or wss://)
        host: Value of the STOMP ``host`` header (defaults to the URL hostname)
        max_reconnect_attempts: Automatic retries before going idle
        reconnect_min_delay: First backoff delay in seconds
        reconnect_max_delay: Backoff ceiling in seconds
        heartbeat_outgoing_ms: Offered outgoing STOMP heart-beat period
        heartbeat_incoming_ms: Requested incoming STOMP heart-beat period
        open_timeout: WebSocket opening handshake timeout in seconds
        login: Optional STOMP login header
        passcode: Optional STOMP passcode header (redacted in repr)
        debug: Log every STOMP frame sent and received
    """

    url: str = DEFAULT_URL
    host: Optional[str] = None
    max_reconnect_attempts: int = Field(default=5, ge=0)
    reconnect_min_delay: float = Field(default=1.0, gt=0.0)
    reconnect_max_delay: float = Field(default=30.0, gt=0.0)
    heartbeat_outgoing_ms: int = Field(default=10_000, ge=0)
    heartbeat_incoming_ms: int = Field(default=10_000, ge=0)
    open_timeout: float = Field(default=10.0, gt=0.0)
    login: Optional[str] = None
    passcode: Optional[str] = Field(default=None, repr=False)
    debug: bool = False

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        parsed = urlparse(v)
        if parsed.scheme not in ("ws", "wss"):
            raise ValueError(f"Invalid broker URL scheme: {parsed.scheme!r}. Expected 'ws://' or 'wss://'.")
        if not parsed.hostname:
            raise ValueError(f"Broker URL has no host: {v!r}")
        return v

    @field_validator("reconnect_max_delay")
    @classmethod
    def validate_reconnect_delays(cls, v: float, info: ValidationInfo) -> float:
        """Ensure reconnect_max_delay >= reconnect_min_delay."""
        min_delay = info.data.get("reconnect_min_delay")
        if min_delay is not None and v < min_delay:
            raise ValueError(
                f"reconnect_max_delay ({v}) must be >= reconnect_min_delay ({min_delay})"
            )
        return v

    @property
    def stomp_host(self) -> str:
        return self.host or urlparse(self.url).hostname or "localhost"

    @property
    def heartbeat(self) -> tuple[int, int]:
        return (self.heartbeat_outgoing_ms, self.heartbeat_incoming_ms)

    @classmethod
    def from_env(cls, env: EnvMapping | None = None) -> RealtimeConfig:
        """Load configuration from ``ORDERFEED_*`` environment variables.

        Every variable is optional; unset or unparsable values fall back to
        the defaults above.

        Raises:
            ValueError: If the resulting configuration fails validation
        """
        defaults = cls()
        return cls(
            url=get_str(env_name("url"), defaults.url, env=env),
            host=get_str(env_name("host"), None, env=env),
            max_reconnect_attempts=get_int(
                env_name("max_reconnect_attempts"), defaults.max_reconnect_attempts, env=env
            ),
            reconnect_min_delay=get_float(
                env_name("reconnect_min_delay"), defaults.reconnect_min_delay, env=env
            ),
            reconnect_max_delay=get_float(
                env_name("reconnect_max_delay"), defaults.reconnect_max_delay, env=env
            ),
            heartbeat_outgoing_ms=get_int(
                env_name("heartbeat_outgoing_ms"), defaults.heartbeat_outgoing_ms, env=env
            ),
            heartbeat_incoming_ms=get_int(
                env_name("heartbeat_incoming_ms"), defaults.heartbeat_incoming_ms, env=env
            ),
            open_timeout=get_float(env_name("open_timeout"), defaults.open_timeout, env=env),
            login=get_str(env_name("login"), None, env=env),
            passcode=get_str(env_name("passcode"), None, env=env),
            debug=get_bool(env_name("debug"), defaults.debug, env=env),
        )


__all__ = ["DEFAULT_URL", "RealtimeConfig"]
