"""STOMP 1.2 frame encoding and decoding for text WebSocket messages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional

NULL = "\x00"
EOL = "\n"

_NULL_BYTE = b"\x00"
_EOL_BYTES = b"\r\n"

# CONNECT/CONNECTED headers are never escaped (STOMP 1.2 section "Value Encoding").
_UNESCAPED_COMMANDS = frozenset({"CONNECT", "CONNECTED"})

_ESCAPES = {"\\": "\\\\", "\r": "\\r", "\n": "\\n", ":": "\\c"}
_UNESCAPES = {"\\": "\\", "r": "\r", "n": "\n", "c": ":"}


class FrameDecodeError(ValueError):
    """Raised when a WebSocket message does not hold a well-formed STOMP frame."""


def _escape(value: str) -> str:
    return "".join(_ESCAPES.get(ch, ch) for ch in value)


def _unescape(value: str) -> str:
    if "\\" not in value:
        return value
    out: list[str] = []
    chars = iter(value)
    for ch in chars:
        if ch != "\\":
            out.append(ch)
            continue
        nxt = next(chars, "")
        if nxt not in _UNESCAPES:
            raise FrameDecodeError(f"Invalid header escape sequence: \\{nxt}")
        out.append(_UNESCAPES[nxt])
    return "".join(out)


@dataclass(slots=True)
class StompFrame:
    """A single STOMP frame."""

    command: str
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""

    def encode(self) -> str:
        escape = self.command not in _UNESCAPED_COMMANDS
        lines = [self.command]
        for key, value in self.headers.items():
            key, value = str(key), str(value)
            if escape:
                key, value = _escape(key), _escape(value)
            lines.append(f"{key}:{value}")
        return EOL.join(lines) + EOL + EOL + self.body + NULL

    def __str__(self) -> str:
        return f"StompFrame({self.command}, headers={self.headers!r}, body={len(self.body)} chars)"


def _decode(raw: bytes, what: str) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise FrameDecodeError(f"STOMP frame {what} is not valid UTF-8: {exc}") from exc


def _parse_one(raw: bytes, pos: int) -> tuple[StompFrame, int]:
    """Parse the frame starting at ``pos``; return it and the offset past its NUL."""

    lines: list[str] = []
    cursor = pos
    while True:
        newline = raw.find(b"\n", cursor)
        terminator = raw.find(_NULL_BYTE, cursor)
        if newline < 0 or 0 <= terminator < newline:
            raise FrameDecodeError("STOMP frame is missing the blank line after its headers")
        line = raw[cursor:newline]
        cursor = newline + 1
        if line.endswith(b"\r"):
            line = line[:-1]
        if not line:
            break
        lines.append(_decode(line, "header"))

    command = lines[0].strip() if lines else ""
    if not command:
        raise FrameDecodeError("STOMP frame has no command")

    unescape = command not in _UNESCAPED_COMMANDS
    headers: dict[str, str] = {}
    for line in lines[1:]:
        key, colon, value = line.partition(":")
        if not colon:
            raise FrameDecodeError(f"Malformed STOMP header line: {line!r}")
        if unescape:
            key, value = _unescape(key), _unescape(value)
        # Repeated headers: the first occurrence wins.
        headers.setdefault(key, value)

    length = headers.get("content-length")
    if length is not None:
        try:
            size = int(length)
        except ValueError:
            raise FrameDecodeError(f"Invalid content-length header: {length!r}") from None
        if size < 0:
            raise FrameDecodeError(f"Invalid content-length header: {length!r}")
        body_end = cursor + size
        if raw[body_end : body_end + 1] != _NULL_BYTE:
            raise FrameDecodeError("STOMP frame body is not NUL-terminated after content-length bytes")
    else:
        body_end = raw.find(_NULL_BYTE, cursor)
        if body_end < 0:
            body_end = len(raw)

    body = _decode(raw[cursor:body_end], "body")
    return StompFrame(command=command, headers=headers, body=body), body_end + 1


def parse_frames(data: str | bytes) -> list[StompFrame]:
    """Split one WebSocket message into STOMP frames.

    Heart-beats (bare EOLs) yield no frames. A ``content-length`` header
    bounds the body, so it may contain NUL octets.

    Raises:
        FrameDecodeError: If a frame is malformed or not valid UTF-8
    """

    raw = data.encode("utf-8") if isinstance(data, str) else bytes(data)
    frames: list[StompFrame] = []
    pos, end = 0, len(raw)
    while pos < end:
        if raw[pos] in _EOL_BYTES:
            pos += 1
            continue
        frame, pos = _parse_one(raw, pos)
        frames.append(frame)
    return frames


# --- Builders ---


def connect_frame(
    host: str,
    *,
    heartbeat: tuple[int, int] = (0, 0),
    login: Optional[str] = None,
    passcode: Optional[str] = None,
    extra: Mapping[str, str] | None = None,
) -> StompFrame:
    headers = {
        "accept-version": "1.2,1.1,1.0",
        "host": host,
        "heart-beat": f"{heartbeat[0]},{heartbeat[1]}",
    }
    if login is not None:
        headers["login"] = login
    if passcode is not None:
        headers["passcode"] = passcode
    if extra:
        headers.update(extra)
    return StompFrame("CONNECT", headers)


def subscribe_frame(destination: str, sub_id: str, *, ack: str = "auto") -> StompFrame:
    return StompFrame("SUBSCRIBE", {"id": sub_id, "destination": destination, "ack": ack})


def unsubscribe_frame(sub_id: str) -> StompFrame:
    return StompFrame("UNSUBSCRIBE", {"id": sub_id})


def send_frame(
    destination: str,
    body: str,
    *,
    content_type: str = "application/json",
    headers: Mapping[str, str] | None = None,
) -> StompFrame:
    merged = {"destination": destination, "content-type": content_type}
    if headers:
        merged.update(headers)
    return StompFrame("SEND", merged, body)


def disconnect_frame(receipt: Optional[str] = None) -> StompFrame:
    return StompFrame("DISCONNECT", {"receipt": receipt} if receipt else {})


def negotiate_heartbeat(client: tuple[int, int], server_header: Optional[str]) -> tuple[int, int]:
    """Return the agreed (outgoing, incoming) heart-beat periods in milliseconds.

    Zero on either side disables that direction.
    """

    if not server_header:
        return (0, 0)
    try:
        sx, sy = (int(part) for part in server_header.split(",", 1))
    except ValueError:
        return (0, 0)
    cx, cy = client
    outgoing = max(cx, sy) if cx and sy else 0
    incoming = max(cy, sx) if cy and sx else 0
    return (outgoing, incoming)


__all__ = [
    "FrameDecodeError",
    "StompFrame",
    "connect_frame",
    "disconnect_frame",
    "negotiate_heartbeat",
    "parse_frames",
    "send_frame",
    "subscribe_frame",
    "unsubscribe_frame",
]
