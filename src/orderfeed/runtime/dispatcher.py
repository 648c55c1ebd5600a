from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Optional

import orjson

from .events import Handler, LifecycleEvent, ListenerMap
from .registry import SubscriptionRegistry

_log = logging.getLogger(__name__)


def decode_body(body: Any) -> Any:
    """Decode a JSON message body, falling back to the raw body.

    A payload that is not JSON is still worth delivering, so decode
    failures never raise.
    """

    if isinstance(body, (bytes, bytearray)):
        try:
            body = bytes(body).decode("utf-8")
        except UnicodeDecodeError:
            return bytes(body)
    if not body:
        return body
    try:
        return orjson.loads(body)
    except orjson.JSONDecodeError as exc:
        _log.warning("dispatcher.decode.error", extra={"error": str(exc)})
        return body


class EventDispatcher:
    """Fan out topic messages and lifecycle events to registered callables."""

    def __init__(
        self,
        registry: SubscriptionRegistry,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._registry = registry
        self._lifecycle: ListenerMap[LifecycleEvent] = ListenerMap()
        self._logger = logger or _log
        self._tasks: set[asyncio.Task[Any]] = set()

    # --- lifecycle pseudo-topics ---

    def on(self, event: LifecycleEvent | str, listener: Handler) -> None:
        self._lifecycle.add(LifecycleEvent(event), listener)

    def off(self, event: LifecycleEvent | str, listener: Handler) -> bool:
        return self._lifecycle.remove(LifecycleEvent(event), listener)

    def listener_count(self, event: LifecycleEvent | str | None = None) -> int:
        if event is None:
            return len(self._lifecycle)
        return self._lifecycle.count(LifecycleEvent(event))

    def clear_listeners(self) -> None:
        self._lifecycle.clear()

    def notify(self, event: LifecycleEvent | str, payload: Any = None) -> None:
        event = LifecycleEvent(event)
        for listener in self._lifecycle.handlers(event):
            self._invoke(listener, payload, topic=event.value)

    # --- topic messages ---

    def dispatch(self, topic: str, body: Any) -> int:
        """Deliver one message body to every handler registered for ``topic``.

        Handlers run in registration order. Returns how many were invoked.
        """

        handlers = self._registry.handlers(topic)
        if not handlers:
            self._logger.debug("dispatcher.no_handlers", extra={"topic": topic})
            return 0
        payload = decode_body(body)
        for handler in handlers:
            self._invoke(handler, payload, topic=topic)
        return len(handlers)

    def _invoke(self, handler: Handler, payload: Any, *, topic: str) -> None:
        try:
            result = handler(payload)
        except Exception as exc:
            self._log_handler_error(topic, exc)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Future[Any]) -> None:
        self._tasks.discard(task)  # type: ignore[arg-type]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._log_handler_error("<async>", exc)

    def _log_handler_error(self, topic: str, exc: BaseException) -> None:
        self._logger.error(
            "dispatcher.handler.error",
            extra={"topic": topic, "error": str(exc)},
            exc_info=(type(exc), exc, exc.__traceback__),
        )


__all__ = ["EventDispatcher", "decode_body"]
