"""A single STOMP session carried over one WebSocket connection.

The session knows nothing about reconnection or subscriptions the
application wants; it reports what happened to its owner through three
callbacks and lets the owner decide what to do next:

- ``on_connect(session, frame)`` once the broker answers CONNECTED
- ``on_disconnect(session)`` when an established session closes cleanly
- ``on_error(session, detail)`` on an ERROR frame, an abnormal close, a
  broker that stops sending heart-beats, a malformed frame or a
  failure to open the socket

At most one of ``on_disconnect``/``on_error`` fires per session, and none
fire after ``deactivate()``.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Callable, Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosedOK, WebSocketException

from orderfeed.config import RealtimeConfig

from .stomp_frames import (
    EOL,
    FrameDecodeError,
    StompFrame,
    connect_frame,
    disconnect_frame,
    negotiate_heartbeat,
    parse_frames,
    send_frame,
    subscribe_frame,
    unsubscribe_frame,
)

logger = logging.getLogger(__name__)

SUBPROTOCOLS = ["v12.stomp", "v11.stomp", "v10.stomp"]

# Missed incoming heart-beat periods tolerated before the connection is declared dead.
HEARTBEAT_GRACE = 2

FrameCallback = Callable[[StompFrame], None]
ConnectCallback = Callable[["StompSession", StompFrame], None]
DisconnectCallback = Callable[["StompSession"], None]
ErrorCallback = Callable[["StompSession", Any], None]


class StompProtocolError(RuntimeError):
    """The broker sent an ERROR frame."""

    def __init__(self, frame: StompFrame) -> None:
        self.frame = frame
        message = frame.headers.get("message") or frame.body.strip() or "STOMP ERROR frame received"
        super().__init__(message)


class StompSession:
    """STOMP client session over ``websockets``."""

    def __init__(
        self,
        config: RealtimeConfig,
        *,
        on_connect: ConnectCallback,
        on_disconnect: DisconnectCallback,
        on_error: ErrorCallback,
    ) -> None:
        self._config = config
        self._on_connect = on_connect
        self._on_disconnect = on_disconnect
        self._on_error = on_error

        self._outbox: asyncio.Queue[Optional[StompFrame]] = asyncio.Queue()
        self._callbacks: dict[str, FrameCallback] = {}
        self._ids = itertools.count()
        self._task: Optional[asyncio.Task[None]] = None
        self._writer_task: Optional[asyncio.Task[None]] = None
        self._ws: Optional[ClientConnection] = None
        self._heartbeat_out_ms = 0
        self._heartbeat_in_ms = 0
        self._connected = False
        self._deactivated = False
        self._finished = False

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def active(self) -> bool:
        """True from ``activate()`` until the session ends or is deactivated."""
        return self._task is not None and not self._finished and not self._deactivated

    @property
    def closed(self) -> bool:
        """True once the connection task has finished (or never started)."""
        return self._task is None or self._task.done()

    def activate(self) -> None:
        """Start opening the connection in the background. Must run inside a loop."""
        if self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="orderfeed-stomp")

    def deactivate(self) -> None:
        """Close the session without reporting it to the owner."""
        if self._deactivated:
            return
        self._deactivated = True
        self._callbacks.clear()
        if self._connected and self._writer_task is not None:
            self._outbox.put_nowait(disconnect_frame())
            self._outbox.put_nowait(None)
        elif self._task is not None:
            self._task.cancel()
        self._connected = False

    async def wait_closed(self) -> None:
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    # --- Frames out ---

    def subscribe(self, destination: str, callback: FrameCallback) -> str:
        sub_id = f"sub-{next(self._ids)}"
        self._callbacks[sub_id] = callback
        self._send(subscribe_frame(destination, sub_id))
        return sub_id

    def unsubscribe(self, sub_id: str) -> None:
        if self._callbacks.pop(sub_id, None) is not None:
            self._send(unsubscribe_frame(sub_id))

    def publish(self, destination: str, body: str, headers: dict[str, str] | None = None) -> None:
        self._send(send_frame(destination, body, headers=headers))

    def _send(self, frame: StompFrame) -> None:
        if self._finished or self._deactivated:
            logger.debug("Dropping %s frame on a closed session", frame.command)
            return
        self._outbox.put_nowait(frame)

    # --- Connection task ---

    async def _run(self) -> None:
        url = self._config.url
        try:
            async with connect(
                url,
                subprotocols=SUBPROTOCOLS,  # type: ignore[arg-type]
                open_timeout=self._config.open_timeout,
            ) as ws:
                self._ws = ws
                hello = connect_frame(
                    self._config.stomp_host,
                    heartbeat=self._config.heartbeat,
                    login=self._config.login,
                    passcode=self._config.passcode,
                )
                self._trace(">>>", hello)
                await ws.send(hello.encode())
                try:
                    await self._read_loop(ws)
                finally:
                    await self._stop_writer()
        except asyncio.CancelledError:
            self._connected = False
            raise
        except StompProtocolError as exc:
            logger.error("STOMP error from broker: %s", exc)
            self._finish(exc)
        except (OSError, asyncio.TimeoutError, WebSocketException, FrameDecodeError) as exc:
            logger.error("WebSocket error on %s: %s", url, exc)
            self._finish(exc)
        except Exception as exc:
            logger.error("Unexpected error in STOMP session: %s", exc, exc_info=True)
            self._finish(exc)
        else:
            if self._connected:
                self._finish(None)
            else:
                self._finish(ConnectionError("Connection closed before the broker answered CONNECTED"))
        finally:
            self._ws = None

    async def _read_loop(self, ws: ClientConnection) -> None:
        while True:
            # No deadline until CONNECTED negotiates an incoming heart-beat.
            timeout = self._heartbeat_in_ms * HEARTBEAT_GRACE / 1000 if self._heartbeat_in_ms else None
            try:
                message = await asyncio.wait_for(ws.recv(), timeout)
            except ConnectionClosedOK:
                return
            except asyncio.TimeoutError:
                raise asyncio.TimeoutError(
                    f"No data or heart-beat from broker within {timeout:.1f}s"
                ) from None
            for frame in parse_frames(message):
                self._handle_frame(frame)

    def _handle_frame(self, frame: StompFrame) -> None:
        self._trace("<<<", frame)
        command = frame.command
        if command == "CONNECTED":
            if self._connected or self._ws is None:
                logger.warning("Ignoring unexpected CONNECTED frame")
                return
            self._connected = True
            self._heartbeat_out_ms, self._heartbeat_in_ms = negotiate_heartbeat(
                self._config.heartbeat, frame.headers.get("heart-beat")
            )
            self._writer_task = asyncio.create_task(self._write_loop(self._ws))
            if not self._deactivated:
                self._on_connect(self, frame)
        elif command == "MESSAGE":
            sub_id = frame.headers.get("subscription", "")
            callback = self._callbacks.get(sub_id)
            if callback is None:
                logger.debug("No callback for subscription %r, dropping message", sub_id)
                return
            try:
                callback(frame)
            except Exception as exc:
                logger.error("Error delivering message for %s: %s", sub_id, exc, exc_info=True)
        elif command == "ERROR":
            raise StompProtocolError(frame)
        elif command == "RECEIPT":
            logger.debug("Receipt %s", frame.headers.get("receipt-id"))
        else:
            logger.warning("Ignoring unexpected STOMP frame %s", command)

    async def _write_loop(self, ws: ClientConnection) -> None:
        while True:
            timeout = self._heartbeat_out_ms / 1000 if self._heartbeat_out_ms else None
            try:
                frame = await asyncio.wait_for(self._outbox.get(), timeout)
            except asyncio.TimeoutError:
                await ws.send(EOL)
                continue
            if frame is None:
                await ws.close()
                return
            self._trace(">>>", frame)
            await ws.send(frame.encode())

    async def _stop_writer(self) -> None:
        task, self._writer_task = self._writer_task, None
        if task is None:
            return
        if not task.done():
            task.cancel()
        results = await asyncio.gather(task, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.debug("Writer stopped with %r", result)

    def _finish(self, error: Optional[BaseException]) -> None:
        if self._finished:
            return
        self._finished = True
        self._connected = False
        if self._deactivated:
            return
        if error is None:
            self._on_disconnect(self)
        else:
            self._on_error(self, error)

    def _trace(self, direction: str, frame: StompFrame) -> None:
        if self._config.debug:
            logger.debug("STOMP %s %s", direction, frame)


__all__ = ["StompProtocolError", "StompSession", "SUBPROTOCOLS"]
