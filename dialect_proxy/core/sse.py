"""SSE (Server-Sent Events) line decoding and event formatting."""

import codecs
import json
from typing import Any, Optional

SSE_DONE = "[DONE]"
DATA_PREFIX = "data:"


class SSELineDecoder:
    """Split an upstream byte stream into complete logical lines.

    Bytes are decoded incrementally, so multi-byte characters split across
    reads survive. A trailing partial line is carried over to the next
    ``feed`` call; a single read is never assumed to end on a line boundary.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[str]:
        if not chunk:
            return []
        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> list[str]:
        """Return whatever is left once the stream has ended."""
        self._buffer += self._decoder.decode(b"", final=True)
        leftover = self._buffer.rstrip("\r")
        self._buffer = ""
        return [leftover] if leftover else []


def extract_data_payload(line: str) -> Optional[str]:
    """Return the JSON text of a ``data:`` line, or None for anything else.

    Blank lines, ``:`` comments, non-data fields and the ``[DONE]``
    terminator all yield None.
    """
    if not line.strip() or line.startswith(":"):
        return None
    if not line.startswith(DATA_PREFIX):
        return None
    data = line[len(DATA_PREFIX):].strip()
    if not data or data == SSE_DONE:
        return None
    return data


def format_sse_event(event_type: str, data: Any) -> bytes:
    """Format a named SSE event."""
    json_str = json.dumps(data, ensure_ascii=False)
    return f"event: {event_type}\ndata: {json_str}\n\n".encode("utf-8")
