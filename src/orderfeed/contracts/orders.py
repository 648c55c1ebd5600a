from __future__ import annotations

import time
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

INCOMPLETE_ORDERS_TOPIC = "/topic/incompleteOrders"
ORDER_UPDATES_TOPIC = "/topic/orderUpdates"

FeedEventKind = Literal["New Order", "Order Update"]

TOPIC_KINDS: dict[str, FeedEventKind] = {
    INCOMPLETE_ORDERS_TOPIC: "New Order",
    ORDER_UPDATES_TOPIC: "Order Update",
}


class FeedEvent(BaseModel):
    """Most recent order notification seen on the feed.

    ``data`` is forwarded untouched: a decoded order record, or the raw
    body when it was not JSON.
    """

    kind: FeedEventKind
    data: Any = None
    timestamp: float = Field(default_factory=time.time)

    @property
    def order_id(self) -> Optional[Any]:
        if isinstance(self.data, dict):
            return self.data.get("id")
        return None


__all__ = [
    "FeedEvent",
    "FeedEventKind",
    "INCOMPLETE_ORDERS_TOPIC",
    "ORDER_UPDATES_TOPIC",
    "TOPIC_KINDS",
]
