"""Shared pytest fixtures for orderfeed tests."""

from __future__ import annotations

import itertools
from typing import Any, Callable, Optional

import pytest

from orderfeed.adapters.stomp_client import RealtimeClient
from orderfeed.adapters.stomp_frames import StompFrame
from orderfeed.config import RealtimeConfig


class FakeTimer:
    """Stand-in for asyncio.TimerHandle recorded by FakeLoop."""

    def __init__(self, delay: float, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
        self.delay = delay
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeLoop:
    """Records call_later() requests instead of waiting on a clock."""

    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> FakeTimer:
        timer = FakeTimer(delay, callback, args)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled]

    @property
    def delays(self) -> list[float]:
        return [t.delay for t in self.timers]

    def fire_next(self) -> FakeTimer:
        timer = self.pending[0]
        timer.cancelled = True
        timer.callback(*timer.args)
        return timer


class FakeSession:
    """In-memory transport session driven by the test.

    Mirrors the StompSession callback contract; the ``simulate_*`` helpers
    play the broker's part.
    """

    def __init__(
        self,
        config: RealtimeConfig,
        *,
        on_connect: Callable[..., None],
        on_disconnect: Callable[..., None],
        on_error: Callable[..., None],
    ) -> None:
        self.config = config
        self._on_connect = on_connect
        self._on_disconnect = on_disconnect
        self._on_error = on_error
        self._ids = itertools.count()
        self.connected = False
        self.activated = False
        self.deactivated = False
        self.subscriptions: dict[str, tuple[str, Callable[[StompFrame], None]]] = {}
        self.unsubscribed: list[str] = []
        self.published: list[tuple[str, str]] = []

    def activate(self) -> None:
        self.activated = True

    def deactivate(self) -> None:
        self.deactivated = True
        self.connected = False

    def subscribe(self, destination: str, callback: Callable[[StompFrame], None]) -> str:
        sub_id = f"sub-{next(self._ids)}"
        self.subscriptions[sub_id] = (destination, callback)
        return sub_id

    def unsubscribe(self, sub_id: str) -> None:
        self.subscriptions.pop(sub_id, None)
        self.unsubscribed.append(sub_id)

    def publish(self, destination: str, body: str, headers: Optional[dict[str, str]] = None) -> None:
        self.published.append((destination, body))

    def destinations(self) -> list[str]:
        return [destination for destination, _ in self.subscriptions.values()]

    # --- broker side ---

    def simulate_connected(self) -> StompFrame:
        frame = StompFrame("CONNECTED", {"version": "1.2", "heart-beat": "0,0"})
        self.connected = True
        self._on_connect(self, frame)
        return frame

    def simulate_message(self, destination: str, body: str) -> None:
        for sub_id, (dest, callback) in list(self.subscriptions.items()):
            if dest == destination:
                callback(StompFrame("MESSAGE", {"destination": dest, "subscription": sub_id}, body))

    def simulate_close(self) -> None:
        self.connected = False
        self._on_disconnect(self)

    def simulate_error(self, detail: Any = None) -> None:
        self.connected = False
        self._on_error(self, detail if detail is not None else ConnectionError("connection lost"))


class FakeSessionFactory:
    """Session factory that remembers every session it built."""

    def __init__(self) -> None:
        self.sessions: list[FakeSession] = []
        self.fail_with: Optional[BaseException] = None

    def __call__(self, config: RealtimeConfig, **callbacks: Any) -> FakeSession:
        if self.fail_with is not None:
            raise self.fail_with
        session = FakeSession(config, **callbacks)
        self.sessions.append(session)
        return session

    @property
    def last(self) -> FakeSession:
        return self.sessions[-1]


@pytest.fixture
def fake_loop() -> FakeLoop:
    return FakeLoop()


@pytest.fixture
def session_factory() -> FakeSessionFactory:
    return FakeSessionFactory()


@pytest.fixture
def config() -> RealtimeConfig:
    """Default configuration: 5 attempts, 1s floor, 30s ceiling."""
    return RealtimeConfig(url="ws://broker.test:8080/ws/websocket")


@pytest.fixture
def client(config, session_factory, fake_loop) -> RealtimeClient:
    """RealtimeClient wired to the fake session factory and fake loop."""
    return RealtimeClient(config, session_factory=session_factory, loop=fake_loop)


@pytest.fixture
def connected_client(client, session_factory) -> RealtimeClient:
    client.connect()
    session_factory.last.simulate_connected()
    return client


@pytest.fixture(autouse=True)
def reset_env(monkeypatch):
    """Clear ORDERFEED_* variables so tests start from defaults."""
    import os

    for var in [name for name in os.environ if name.startswith("ORDERFEED_")]:
        monkeypatch.delenv(var, raising=False)


def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test (no external dependencies)")
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (runs an in-process fake broker)"
    )
