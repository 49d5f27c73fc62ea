"""Incremental SSE frame parser.

Network chunks arrive at arbitrary boundaries: a record, a line, or even a
multi-byte character may be split across reads.  ``SSEParser`` keeps the
unterminated tail between calls so that feeding chunks one at a time yields
the same frames as feeding their concatenation.
"""

from __future__ import annotations

import codecs

from chatrelay.protocol.codec import decode_payload
from chatrelay.protocol.frames import Frame

_DATA_FIELD = "data:"


class SSEParser:
    """Turns a byte (or text) stream of SSE records into frames."""

    def __init__(self) -> None:
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, chunk: bytes | str) -> list[Frame]:
        """Consume one chunk and return the frames of every completed line."""
        text = self._decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        lines = (self._buffer + text).split("\n")
        self._buffer = lines.pop()
        return [frame for frame in map(_parse_line, lines) if frame is not None]

    def flush(self) -> list[Frame]:
        """Decode whatever is left once the stream has ended."""
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        frame = _parse_line(tail)
        return [frame] if frame is not None else []


def _parse_line(line: str) -> Frame | None:
    # Blank lines, comments (keep-alive pings) and other fields carry no frame.
    line = line.rstrip("\r")
    if not line.startswith(_DATA_FIELD):
        return None
    data = line[len(_DATA_FIELD) :]
    if data.startswith(" "):
        data = data[1:]
    return decode_payload(data)
