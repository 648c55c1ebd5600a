from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Optional

from orderfeed.contracts.orders import (
    INCOMPLETE_ORDERS_TOPIC,
    ORDER_UPDATES_TOPIC,
    FeedEvent,
    FeedEventKind,
)
from orderfeed.runtime.binding import RealtimeBinding

if TYPE_CHECKING:  # pragma: no cover
    from orderfeed.adapters.stomp_client import RealtimeClient

logger = logging.getLogger(__name__)


class OrderFeedMonitor:
    """Connection indicator plus the latest order event, for status displays."""

    def __init__(
        self,
        client: "RealtimeClient",
        *,
        on_event: Optional[Callable[[FeedEvent], None]] = None,
    ) -> None:
        self._binding = RealtimeBinding(client)
        self._on_event = on_event
        self.last_event: Optional[FeedEvent] = None
        self.event_count = 0

    @property
    def is_connected(self) -> bool:
        return self._binding.is_connected

    def __enter__(self) -> OrderFeedMonitor:
        self._binding.attach()
        try:
            self._binding.subscribe(INCOMPLETE_ORDERS_TOPIC, self._handle_new_order)
            self._binding.subscribe(ORDER_UPDATES_TOPIC, self._handle_order_update)
        except BaseException:
            self._binding.detach()
            raise
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self._binding.detach()

    def _handle_new_order(self, data: Any) -> None:
        self._record("New Order", data)

    def _handle_order_update(self, data: Any) -> None:
        self._record("Order Update", data)

    def _record(self, kind: FeedEventKind, data: Any) -> None:
        event = FeedEvent(kind=kind, data=data)
        self.last_event = event
        self.event_count += 1
        logger.debug("Order feed event: %s (order_id=%s)", kind, event.order_id)
        if self._on_event is not None:
            self._on_event(event)

    def status_line(self) -> str:
        state = "Connected" if self.is_connected else "Disconnected"
        if self.last_event is None:
            return f"WebSocket: {state}"
        return (
            f"WebSocket: {state} | Last Event: {self.last_event.kind}"
            f" | Order ID: {self.last_event.order_id}"
        )


__all__ = ["OrderFeedMonitor"]
