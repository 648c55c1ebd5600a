"""Scoped view of the shared realtime client for consuming code.

A ``RealtimeBinding`` is what a screen, worker or handler holds while it
cares about the feed. Entering it registers connection listeners and makes
sure a connection is under way; leaving it (normally or through an
exception) removes exactly what it registered, so several bindings can
share one client without stepping on each other.

    with RealtimeBinding(client, on_change=render_status) as feed:
        feed.subscribe(ORDER_UPDATES_TOPIC, on_update)
        ...
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Optional

from .events import Handler, LifecycleEvent

if TYPE_CHECKING:  # pragma: no cover
    from orderfeed.adapters.stomp_client import RealtimeClient

logger = logging.getLogger(__name__)


class RealtimeBinding:
    """Connection state plus bound subscribe/unsubscribe/emit for one consumer."""

    def __init__(
        self,
        client: "RealtimeClient",
        *,
        on_change: Optional[Callable[[bool], None]] = None,
    ) -> None:
        self._client = client
        self._on_change = on_change
        self._listeners: list[tuple[LifecycleEvent, Handler]] = []
        self._owned: list[tuple[str, Handler]] = []
        self._attached = False
        self.is_connected = False
        self.last_error: Any = None

    @property
    def attached(self) -> bool:
        return self._attached

    # --- Acquire / release ---

    def attach(self) -> RealtimeBinding:
        if self._attached:
            return self
        try:
            self._listen(LifecycleEvent.CONNECT, self._handle_connect)
            self._listen(LifecycleEvent.DISCONNECT, self._handle_disconnect)
            self._listen(LifecycleEvent.ERROR, self._handle_error)
            self._attached = True
            self._client.connect()
        except BaseException:
            self.detach()
            raise
        self._set_connected(self._client.connected)
        return self

    def detach(self) -> None:
        """Release every listener and subscription this binding created. Idempotent."""
        listeners, self._listeners = self._listeners, []
        for event, listener in listeners:
            self._client.off(event, listener)
        owned, self._owned = self._owned, []
        for topic, handler in owned:
            self._client.unsubscribe(topic, handler)
        self._attached = False

    def __enter__(self) -> RealtimeBinding:
        return self.attach()

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.detach()

    async def __aenter__(self) -> RealtimeBinding:
        return self.attach()

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.detach()

    # --- Bound operations ---

    def subscribe(self, topic: str, handler: Handler) -> None:
        self._client.subscribe(topic, handler)
        self._owned.append((topic, handler))

    def unsubscribe(self, topic: str, handler: Handler) -> bool:
        for index, (owned_topic, owned_handler) in enumerate(self._owned):
            if owned_topic == topic and owned_handler == handler:
                del self._owned[index]
                break
        return self._client.unsubscribe(topic, handler)

    def emit(self, topic: str, payload: Any) -> bool:
        return self._client.emit(topic, payload)

    # --- Listeners ---

    def _listen(self, event: LifecycleEvent, listener: Handler) -> None:
        self._client.on(event, listener)
        self._listeners.append((event, listener))

    def _handle_connect(self, _frame: Any) -> None:
        self.last_error = None
        self._set_connected(True)

    def _handle_disconnect(self, _payload: Any) -> None:
        self._set_connected(False)

    def _handle_error(self, error: Any) -> None:
        logger.warning("Realtime connection error: %s", error)
        self.last_error = error
        self._set_connected(False)

    def _set_connected(self, value: bool) -> None:
        changed = value != self.is_connected
        self.is_connected = value
        if changed and self._on_change is not None:
            self._on_change(value)


__all__ = ["RealtimeBinding"]
