"""Unit tests for STOMP frame encoding and parsing."""

import pytest

from orderfeed.adapters.stomp_frames import (
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


class TestEncode:
    """Tests for StompFrame.encode()."""

    def test_encode_layout(self):
        """Command, headers, blank line, body, NUL."""
        frame = StompFrame("SEND", {"destination": "/app/orders"}, '{"id":1}')

        assert frame.encode() == 'SEND\ndestination:/app/orders\n\n{"id":1}\x00'

    def test_encode_escapes_headers(self):
        """Escape colon, newline and backslash in header values."""
        frame = StompFrame("SEND", {"note": "a:b\nc\\d"})

        assert "note:a\\cb\\nc\\\\d\n" in frame.encode()

    def test_connect_headers_not_escaped(self):
        """CONNECT frames keep header values verbatim."""
        frame = connect_frame("localhost", login="user:1")

        assert "login:user:1\n" in frame.encode()

    def test_empty_body(self):
        assert StompFrame("DISCONNECT").encode() == "DISCONNECT\n\n\x00"


class TestParse:
    """Tests for parse_frames()."""

    def test_parse_message(self):
        """Parse a MESSAGE frame with headers and body."""
        raw = "MESSAGE\ndestination:/topic/orderUpdates\nsubscription:sub-0\n\n{\"id\": 42}\x00"

        (frame,) = parse_frames(raw)

        assert frame.command == "MESSAGE"
        assert frame.headers["destination"] == "/topic/orderUpdates"
        assert frame.headers["subscription"] == "sub-0"
        assert frame.body == '{"id": 42}'

    def test_parse_heartbeat_yields_nothing(self):
        assert parse_frames("\n") == []
        assert parse_frames("\r\n") == []

    def test_parse_multiple_frames(self):
        raw = "RECEIPT\nreceipt-id:1\n\n\x00\nRECEIPT\nreceipt-id:2\n\n\x00"

        frames = parse_frames(raw)

        assert [f.headers["receipt-id"] for f in frames] == ["1", "2"]

    def test_parse_bytes(self):
        (frame,) = parse_frames(b"CONNECTED\nversion:1.2\n\n\x00")

        assert frame.command == "CONNECTED"
        assert frame.headers == {"version": "1.2"}

    def test_parse_crlf_line_endings(self):
        (frame,) = parse_frames("MESSAGE\r\nsubscription:sub-1\r\n\r\nhello\x00")

        assert frame.headers["subscription"] == "sub-1"
        assert frame.body == "hello"

    def test_parse_unescapes_headers(self):
        (frame,) = parse_frames("MESSAGE\nnote:a\\cb\\nc\n\n\x00")

        assert frame.headers["note"] == "a:b\nc"

    def test_first_repeated_header_wins(self):
        (frame,) = parse_frames("MESSAGE\nfoo:first\nfoo:second\n\n\x00")

        assert frame.headers["foo"] == "first"

    def test_body_may_contain_blank_lines(self):
        (frame,) = parse_frames("MESSAGE\nsubscription:s\n\nline1\n\nline2\x00")

        assert frame.body == "line1\n\nline2"

    def test_missing_header_terminator_raises(self):
        with pytest.raises(FrameDecodeError, match="blank line"):
            parse_frames("MESSAGE\nsubscription:sub-0\x00")

    def test_malformed_header_raises(self):
        with pytest.raises(FrameDecodeError, match="Malformed"):
            parse_frames("MESSAGE\nnot-a-header\n\n\x00")

    def test_invalid_escape_raises(self):
        with pytest.raises(FrameDecodeError, match="escape"):
            parse_frames("MESSAGE\nfoo:bad\\t\n\n\x00")

    def test_content_length_allows_nul_in_body(self):
        """content-length bounds the body instead of the first NUL."""
        raw = b"MESSAGE\ncontent-length:5\n\nab\x00cd\x00RECEIPT\nreceipt-id:1\n\n\x00"

        frames = parse_frames(raw)

        assert [f.command for f in frames] == ["MESSAGE", "RECEIPT"]
        assert frames[0].body == "ab\x00cd"

    def test_content_length_counts_octets(self):
        body = "café".encode("utf-8")
        raw = b"MESSAGE\ncontent-length:%d\n\n%s\x00" % (len(body), body)

        (frame,) = parse_frames(raw)

        assert frame.body == "café"

    def test_content_length_mismatch_raises(self):
        with pytest.raises(FrameDecodeError, match="NUL-terminated"):
            parse_frames(b"MESSAGE\ncontent-length:2\n\nabc\x00")

    @pytest.mark.parametrize("length", ["-1", "lots"])
    def test_invalid_content_length_raises(self, length):
        with pytest.raises(FrameDecodeError, match="content-length"):
            parse_frames(f"MESSAGE\ncontent-length:{length}\n\n\x00")

    def test_invalid_utf8_raises_decode_error(self):
        with pytest.raises(FrameDecodeError, match="UTF-8"):
            parse_frames(b"MESSAGE\nsubscription:sub-0\n\n\xff\xfe\x00")

    def test_binary_garbage_raises_decode_error(self):
        with pytest.raises(FrameDecodeError):
            parse_frames(b"\xff\xfe garbage\x00")


class TestBuilders:
    """Tests for frame builder helpers."""

    def test_connect_frame(self):
        frame = connect_frame("broker", heartbeat=(10000, 5000), passcode="secret")

        assert frame.command == "CONNECT"
        assert frame.headers["accept-version"] == "1.2,1.1,1.0"
        assert frame.headers["host"] == "broker"
        assert frame.headers["heart-beat"] == "10000,5000"
        assert frame.headers["passcode"] == "secret"
        assert "login" not in frame.headers

    def test_subscribe_and_unsubscribe_frames(self):
        sub = subscribe_frame("/topic/incompleteOrders", "sub-3")
        unsub = unsubscribe_frame("sub-3")

        assert sub.headers == {"id": "sub-3", "destination": "/topic/incompleteOrders", "ack": "auto"}
        assert unsub.headers == {"id": "sub-3"}

    def test_send_frame_defaults_to_json(self):
        frame = send_frame("/app/orders", "{}")

        assert frame.headers["content-type"] == "application/json"
        assert frame.body == "{}"

    def test_disconnect_frame_receipt(self):
        assert disconnect_frame().headers == {}
        assert disconnect_frame("r-1").headers == {"receipt": "r-1"}


class TestHeartbeatNegotiation:
    """Tests for negotiate_heartbeat()."""

    def test_both_sides_enabled(self):
        assert negotiate_heartbeat((10000, 10000), "5000,20000") == (20000, 10000)

    def test_either_side_zero_disables(self):
        assert negotiate_heartbeat((0, 10000), "10000,10000") == (0, 10000)
        assert negotiate_heartbeat((10000, 10000), "0,0") == (0, 0)

    def test_missing_or_garbage_header(self):
        assert negotiate_heartbeat((10000, 10000), None) == (0, 0)
        assert negotiate_heartbeat((10000, 10000), "nope") == (0, 0)
