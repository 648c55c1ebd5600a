"""Realtime order feed client: STOMP over WebSocket with reconnect and replay."""

from orderfeed.adapters.stomp_client import ConnectionState, RealtimeClient
from orderfeed.config import RealtimeConfig
from orderfeed.contracts.orders import INCOMPLETE_ORDERS_TOPIC, ORDER_UPDATES_TOPIC, FeedEvent
from orderfeed.domain.monitor import OrderFeedMonitor
from orderfeed.runtime.binding import RealtimeBinding
from orderfeed.runtime.events import LifecycleEvent
from orderfeed.runtime.registry import Subscription

__all__ = [
    "ConnectionState",
    "FeedEvent",
    "INCOMPLETE_ORDERS_TOPIC",
    "LifecycleEvent",
    "ORDER_UPDATES_TOPIC",
    "OrderFeedMonitor",
    "RealtimeBinding",
    "RealtimeClient",
    "RealtimeConfig",
    "Subscription",
]
