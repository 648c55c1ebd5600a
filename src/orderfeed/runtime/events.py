from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Generic, Hashable, Iterator, TypeVar

Handler = Callable[[Any], Any]
"""Callable receiving one decoded payload (or lifecycle detail)."""

K = TypeVar("K", bound=Hashable)


class LifecycleEvent(str, Enum):
    """Pseudo-topics describing the connection itself."""

    CONNECT = "connect"
    DISCONNECT = "disconnect"
    ERROR = "error"
    EXHAUSTED = "exhausted"


class ListenerMap(Generic[K]):
    """Ordered mapping of key -> list of handler references.

    The same handler may be added more than once; each entry is delivered
    separately and ``remove`` drops exactly one of them.
    """

    def __init__(self) -> None:
        self._entries: dict[K, list[Handler]] = {}

    def add(self, key: K, handler: Handler) -> None:
        self._entries.setdefault(key, []).append(handler)

    def remove(self, key: K, handler: Handler) -> bool:
        handlers = self._entries.get(key)
        if not handlers:
            return False
        for index, existing in enumerate(handlers):
            if existing == handler:
                del handlers[index]
                break
        else:
            return False
        if not handlers:
            del self._entries[key]
        return True

    def handlers(self, key: K) -> tuple[Handler, ...]:
        return tuple(self._entries.get(key, ()))

    def count(self, key: K) -> int:
        return len(self._entries.get(key, ()))

    def keys(self) -> list[K]:
        return list(self._entries)

    def items(self) -> Iterator[tuple[K, Handler]]:
        for key, handlers in list(self._entries.items()):
            for handler in list(handlers):
                yield key, handler

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return sum(len(handlers) for handlers in self._entries.values())


__all__ = ["Handler", "LifecycleEvent", "ListenerMap"]
