"""Tests for the JSON line framer."""

import pytest

from godot_session.lib.errors import ProtocolError
from godot_session.lib.framing import LineFramer, decode_line, encode_message


class TestLineFramer:
    def test_single_complete_line(self) -> None:
        framer = LineFramer()
        assert framer.feed(b'{"ok":true}\n') == ['{"ok":true}']
        assert framer.pending == b""

    def test_line_split_across_chunks(self) -> None:
        framer = LineFramer()
        assert framer.feed(b'{"ok":') == []
        assert framer.pending == b'{"ok":'
        assert framer.feed(b"true}\n") == ['{"ok":true}']

    def test_multiple_lines_in_one_chunk_keep_order(self) -> None:
        framer = LineFramer()
        assert framer.feed(b'{"n":1}\n{"n":2}\n{"n":3') == ['{"n":1}', '{"n":2}']
        assert framer.feed(b"}\n") == ['{"n":3}']

    def test_blank_lines_and_whitespace_are_dropped(self) -> None:
        framer = LineFramer()
        assert framer.feed(b'\n  \r\n  {"a":1}  \r\n') == ['{"a":1}']

    def test_multibyte_character_split_across_chunks(self) -> None:
        encoded = '{"name":"héllo"}\n'.encode()
        split = encoded.index("é".encode()) + 1
        framer = LineFramer()
        assert framer.feed(encoded[:split]) == []
        assert framer.feed(encoded[split:]) == ['{"name":"héllo"}']

    def test_clear_discards_partial_line(self) -> None:
        framer = LineFramer()
        framer.feed(b'{"stale":')
        framer.clear()
        assert framer.feed(b'{"fresh":1}\n') == ['{"fresh":1}']


class TestCodec:
    def test_decode_valid_json(self) -> None:
        assert decode_line('{"ok": true, "fps": 60}') == {"ok": True, "fps": 60}

    def test_decode_invalid_json_raises_protocol_error(self) -> None:
        with pytest.raises(ProtocolError, match="Invalid JSON response from Godot"):
            decode_line("not json")

    def test_protocol_error_kind(self) -> None:
        with pytest.raises(ProtocolError) as info:
            decode_line("{")
        assert info.value.kind == "protocol"

    def test_encode_is_compact_and_terminated(self) -> None:
        assert encode_message({"type": "input", "action": "jump"}) == (
            b'{"type":"input","action":"jump"}\n'
        )
