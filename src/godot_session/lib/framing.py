"""Newline-delimited JSON framing.

The receiver protocol is one compact JSON value per line in both
directions. ``LineFramer`` turns an arbitrary sequence of socket reads into
complete lines: a single read may hold zero, one, or many lines, or only a
fragment of one.

Examples:
    Feed partial chunks and collect complete lines::

        >>> framer = LineFramer()
        >>> framer.feed(b'{"ok": tr')
        []
        >>> framer.feed(b'ue}\\n{"ok": false}\\n')
        ['{"ok": true}', '{"ok": false}']

    Decode and encode messages::

        >>> decode_line('{"ok": true}')
        {'ok': True}
        >>> encode_message({"type": "ping"})
        b'{"type":"ping"}\\n'
"""

import json
from typing import Any

from godot_session.lib.errors import ProtocolError

TERMINATOR = b"\n"


class LineFramer:
    """Accumulates raw bytes and splits them into trimmed lines.

    Lines are decoded individually, so a multi-byte UTF-8 character split
    across two reads is reassembled before decoding. Blank lines are
    skipped.
    """

    def __init__(self) -> None:
        self.buffer = bytearray()

    @property
    def pending(self) -> bytes:
        """Bytes received but not yet terminated by a newline."""
        return bytes(self.buffer)

    def feed(self, data: bytes) -> list[str]:
        """Append ``data`` and return every complete line now available."""
        self.buffer.extend(data)
        lines: list[str] = []
        while (idx := self.buffer.find(TERMINATOR)) != -1:
            raw = bytes(self.buffer[:idx])
            del self.buffer[: idx + len(TERMINATOR)]
            line = raw.decode("utf-8", errors="replace").strip()
            if line:
                lines.append(line)
        return lines

    def clear(self) -> None:
        """Drop any buffered partial line."""
        self.buffer.clear()


def decode_line(line: str) -> Any:
    """Parse a single line as JSON.

    Raises:
        ProtocolError: If the line is not valid JSON.
    """
    try:
        return json.loads(line)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Invalid JSON response from Godot: {line[:200]}") from e


def encode_message(message: dict[str, Any]) -> bytes:
    """Serialize a command as compact JSON followed by the line terminator."""
    return json.dumps(message, separators=(",", ":")).encode("utf-8") + TERMINATOR
