from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from .events import Handler, ListenerMap


@dataclass(frozen=True, slots=True)
class Subscription:
    """A desired (topic, handler) pairing."""

    topic: str
    handler: Handler


class SubscriptionRegistry:
    """Every subscription the application wants, connected or not.

    Entries survive disconnects; the client replays them onto each new
    session. Handlers for a topic keep their registration order.
    """

    def __init__(self) -> None:
        self._pending: ListenerMap[str] = ListenerMap()

    def add(self, topic: str, handler: Handler) -> Subscription:
        if not topic:
            raise ValueError("topic must be a non-empty string")
        self._pending.add(topic, handler)
        return Subscription(topic, handler)

    def remove(self, topic: str, handler: Handler) -> bool:
        return self._pending.remove(topic, handler)

    def handlers(self, topic: str) -> tuple[Handler, ...]:
        return self._pending.handlers(topic)

    def topics(self) -> list[str]:
        return self._pending.keys()

    def pairs(self) -> Iterator[Subscription]:
        for topic, handler in self._pending.items():
            yield Subscription(topic, handler)

    def clear(self) -> None:
        self._pending.clear()

    def __contains__(self, topic: object) -> bool:
        return topic in self._pending

    def __len__(self) -> int:
        return len(self._pending)


__all__ = ["Subscription", "SubscriptionRegistry"]
