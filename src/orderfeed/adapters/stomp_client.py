"""Realtime order feed client.

One ``RealtimeClient`` owns the application's single broker session. It
keeps the subscriptions the application asked for independent of the
socket, replays them after every successful (re)connect, and retries a
lost connection with capped exponential backoff until its retry budget
runs out.

Example:
    ```python
    client = RealtimeClient(RealtimeConfig.from_env())

    def on_new_order(order) -> None:
        print("new order", order["id"])

    client.subscribe_to_new_orders(on_new_order)   # connects on first use
    client.on("disconnect", lambda _: print("offline"))
    ...
    await client.shutdown()
    ```
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from functools import partial
from typing import Any, Callable, Optional, Protocol

import orjson

from orderfeed.config import RealtimeConfig
from orderfeed.contracts.orders import INCOMPLETE_ORDERS_TOPIC, ORDER_UPDATES_TOPIC
from orderfeed.runtime.dispatcher import EventDispatcher
from orderfeed.runtime.events import Handler, LifecycleEvent
from orderfeed.runtime.registry import Subscription, SubscriptionRegistry

from .stomp_frames import StompFrame
from .stomp_session import StompSession

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class Session(Protocol):
    """What the client needs from a transport session."""

    @property
    def connected(self) -> bool: ...

    def activate(self) -> None: ...

    def deactivate(self) -> None: ...

    def subscribe(self, destination: str, callback: Callable[[StompFrame], None]) -> str: ...

    def unsubscribe(self, sub_id: str) -> None: ...

    def publish(self, destination: str, body: str, headers: dict[str, str] | None = None) -> None: ...


SessionFactory = Callable[..., Session]


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle: ...


class RealtimeClient:
    """Connection manager for the STOMP order feed."""

    def __init__(
        self,
        config: Optional[RealtimeConfig] = None,
        *,
        session_factory: Optional[SessionFactory] = None,
        loop: Optional[Scheduler] = None,
        **overrides: Any,
    ) -> None:
        """Create the client. Nothing connects until ``connect()`` or ``subscribe()``.

        Args:
            config: Connection settings (defaults to ``RealtimeConfig()``)
            session_factory: Builds transport sessions; defaults to ``StompSession``
            loop: Object providing ``call_later`` for backoff timers; defaults to
                the running event loop at scheduling time
            **overrides: Individual ``RealtimeConfig`` fields to override

        Raises:
            ValueError: If configuration validation fails
        """
        base = config or RealtimeConfig()
        self._config = (
            RealtimeConfig.model_validate({**base.model_dump(), **overrides}) if overrides else base
        )
        self._session_factory: SessionFactory = session_factory or StompSession
        self._loop = loop

        self._registry = SubscriptionRegistry()
        self._dispatcher = EventDispatcher(self._registry)

        self._session: Optional[Session] = None
        self._live: dict[str, str] = {}
        self._state = ConnectionState.DISCONNECTED
        self._reconnect_attempts = 0
        self._reconnect_delay = self._config.reconnect_min_delay
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._retired: list[Session] = []

    # --- Introspection ---

    @property
    def config(self) -> RealtimeConfig:
        return self._config

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def reconnect_delay(self) -> float:
        """Delay that the next scheduled reconnection attempt will use."""
        return self._reconnect_delay

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    @property
    def dispatcher(self) -> EventDispatcher:
        return self._dispatcher

    def live_topics(self) -> list[str]:
        """Topics wired into the current session."""
        return list(self._live)

    # --- Lifecycle ---

    def connect(self) -> Optional[Session]:
        """Ensure a session exists and is connecting or connected.

        Idempotent: returns the current session when one is already in
        flight. Failures never raise; they are reported on the ``error``
        lifecycle event and retried with backoff. Returns ``None`` when the
        session could not be created.
        """
        if self._session is not None and self._state is not ConnectionState.DISCONNECTED:
            return self._session

        self._cancel_reconnect()
        self._retire_session()

        try:
            session = self._session_factory(
                self._config,
                on_connect=self._handle_connect,
                on_disconnect=self._handle_disconnect,
                on_error=self._handle_error,
            )
            self._session = session
            self._state = ConnectionState.CONNECTING
            logger.info("Connecting to broker at %s", self._config.url)
            session.activate()
        except Exception as exc:
            logger.error("Error creating broker connection: %s", exc, exc_info=True)
            self._session = None
            self._state = ConnectionState.DISCONNECTED
            self._dispatcher.notify(LifecycleEvent.ERROR, exc)
            self._attempt_reconnect()
            return None
        return session

    def disconnect(self) -> None:
        """Tear down the session and forget the retry count.

        Cancels any pending reconnection. Safe to call when not connected.
        """
        self._cancel_reconnect()
        if self._session is not None:
            self._retire_session()
            logger.info("Disconnected from broker")
        self._live.clear()
        self._state = ConnectionState.DISCONNECTED
        self._reconnect_attempts = 0
        self._reconnect_delay = self._config.reconnect_min_delay

    def cleanup(self) -> None:
        """Disconnect and drop every subscription and lifecycle listener."""
        self.disconnect()
        self._registry.clear()
        self._dispatcher.clear_listeners()

    async def shutdown(self) -> None:
        """Disconnect and wait for transport tasks to finish."""
        self.disconnect()
        retired, self._retired = self._retired, []
        for session in retired:
            wait_closed = getattr(session, "wait_closed", None)
            if wait_closed is not None:
                await wait_closed()
        logger.info("Realtime client shutdown complete")

    async def __aenter__(self) -> RealtimeClient:
        self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.shutdown()

    # --- Session callbacks ---

    def _handle_connect(self, session: Session, frame: StompFrame) -> None:
        if session is not self._session:
            logger.debug("Ignoring CONNECTED from a stale session")
            return
        logger.info("Connected to broker at %s", self._config.url)
        self._state = ConnectionState.CONNECTED
        self._reconnect_attempts = 0
        self._reconnect_delay = self._config.reconnect_min_delay
        self._live.clear()
        self._dispatcher.notify(LifecycleEvent.CONNECT, frame)
        self._replay_subscriptions()

    def _handle_disconnect(self, session: Session) -> None:
        if session is not self._session:
            return
        logger.warning("Broker connection closed")
        self._mark_disconnected()
        self._dispatcher.notify(LifecycleEvent.DISCONNECT, None)
        self._attempt_reconnect()

    def _handle_error(self, session: Session, detail: Any) -> None:
        if session is not self._session:
            return
        logger.error("Broker connection error: %s", detail)
        self._mark_disconnected()
        self._dispatcher.notify(LifecycleEvent.ERROR, detail)
        self._attempt_reconnect()

    def _mark_disconnected(self) -> None:
        self._state = ConnectionState.DISCONNECTED
        self._live.clear()

    # --- Reconnection ---

    def _attempt_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            return
        max_attempts = self._config.max_reconnect_attempts
        if self._reconnect_attempts >= max_attempts:
            logger.error("Max reconnection attempts reached (%d)", max_attempts)
            self._dispatcher.notify(LifecycleEvent.EXHAUSTED, self._reconnect_attempts)
            return

        self._reconnect_attempts += 1
        delay = self._reconnect_delay
        logger.info(
            "Attempting to reconnect (%d/%d) in %.1fs",
            self._reconnect_attempts,
            max_attempts,
            delay,
        )
        try:
            scheduler = self._loop or asyncio.get_running_loop()
            self._reconnect_handle = scheduler.call_later(delay, self._reconnect_now)
        except RuntimeError as exc:
            logger.error("Cannot schedule reconnection without an event loop: %s", exc)
            return
        self._reconnect_delay = min(delay * 2, self._config.reconnect_max_delay)

    def _reconnect_now(self) -> None:
        self._reconnect_handle = None
        self.connect()

    def _cancel_reconnect(self) -> None:
        handle, self._reconnect_handle = self._reconnect_handle, None
        if handle is not None:
            handle.cancel()

    def _retire_session(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            session.deactivate()
            self._retired.append(session)
        self._retired = [s for s in self._retired if not getattr(s, "closed", True)]

    # --- Subscriptions ---

    def subscribe(self, topic: str, handler: Handler) -> Subscription:
        """Register ``handler`` for messages on ``topic``.

        The subscription is kept across reconnects. When connected it is
        wired immediately; otherwise it is wired on the next successful
        connect, and a connection is started if none is in progress.
        """
        subscription = self._registry.add(topic, handler)
        if self.connected:
            self._wire(topic)
        elif self._session is None and self._reconnect_handle is None:
            self.connect()
        return subscription

    def unsubscribe(self, topic: str, handler: Handler) -> bool:
        """Stop delivering ``topic`` messages to ``handler``.

        Other handlers on the same topic are unaffected. The broker-side
        subscription is dropped once no handler is left for the topic.
        """
        removed = self._registry.remove(topic, handler)
        if removed and topic not in self._registry:
            sub_id = self._live.pop(topic, None)
            if sub_id is not None and self._session is not None and self.connected:
                self._session.unsubscribe(sub_id)
        return removed

    def emit(self, topic: str, payload: Any) -> bool:
        """Publish ``payload`` as JSON to ``topic``. No-op unless connected."""
        if not self.connected or self._session is None:
            logger.debug("Not connected, dropping publish to %s", topic)
            return False
        body = orjson.dumps(payload).decode()
        self._session.publish(topic, body)
        return True

    def _replay_subscriptions(self) -> None:
        for topic in self._registry.topics():
            self._wire(topic)

    def _wire(self, topic: str) -> None:
        if topic in self._live or self._session is None:
            return
        try:
            self._live[topic] = self._session.subscribe(topic, partial(self._deliver, topic))
            logger.info("Subscribed to topic: %s", topic)
        except Exception as exc:
            logger.error("Error subscribing to %s: %s", topic, exc, exc_info=True)

    def _deliver(self, topic: str, frame: StompFrame) -> None:
        self._dispatcher.dispatch(topic, frame.body)

    # --- Lifecycle listeners ---

    def on(self, event: LifecycleEvent | str, listener: Handler) -> None:
        self._dispatcher.on(event, listener)

    def off(self, event: LifecycleEvent | str, listener: Handler) -> bool:
        return self._dispatcher.off(event, listener)

    # --- Order topics ---

    def subscribe_to_new_orders(self, handler: Handler) -> Subscription:
        return self.subscribe(INCOMPLETE_ORDERS_TOPIC, handler)

    def subscribe_to_order_updates(self, handler: Handler) -> Subscription:
        return self.subscribe(ORDER_UPDATES_TOPIC, handler)

    def unsubscribe_from_new_orders(self, handler: Handler) -> bool:
        return self.unsubscribe(INCOMPLETE_ORDERS_TOPIC, handler)

    def unsubscribe_from_order_updates(self, handler: Handler) -> bool:
        return self.unsubscribe(ORDER_UPDATES_TOPIC, handler)


__all__ = ["ConnectionState", "RealtimeClient", "Session", "SessionFactory"]
