from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Optional

from stubwire.errors import StreamProtocolError

DONE_SENTINEL = "[DONE]"

_LF = 0x0A
_CR = 0x0D
_EOL = re.compile(rb"[\r\n]")


@dataclass
class StreamMessage:
    # data, event and id start as empty strings; retry stays None unless sent
    id: str = ""
    event: str = ""
    data: str = ""
    retry: Optional[int] = None


class LineDecoder:
    """
    Reassembles event-stream lines from arbitrary byte chunks.

    Lines end with \\r, \\n or \\r\\n; a \\r\\n pair split across two chunks still
    counts as one terminator. ``on_line`` gets the line bytes and the offset of
    the first colon (-1 when there is none). Emitted bytes are dropped from the
    buffer and the scan resumes where it stopped, so nothing is scanned twice.
    """

    def __init__(self, on_line: Callable[[bytes, int], None]) -> None:
        self._on_line = on_line
        self._buffer = bytearray()
        self._position = 0
        self._discard_lf = False

    def feed(self, chunk: bytes) -> None:
        buf = self._buffer
        buf += chunk
        pos = self._position
        line_start = 0

        while pos < len(buf):
            if self._discard_lf:
                self._discard_lf = False
                if buf[pos] == _LF:
                    pos += 1
                    line_start = pos
                continue

            m = _EOL.search(buf, pos)
            if m is None:
                pos = len(buf)
                break

            end = m.start()
            self._discard_lf = buf[end] == _CR
            line = bytes(buf[line_start:end])
            pos = line_start = end + 1
            self._on_line(line, line.find(b":"))

        if line_start:
            del buf[:line_start]
            pos -= line_start
        self._position = pos

    @property
    def pending(self) -> int:
        return len(self._buffer)


class MessageParser:
    """
    Turns lines into messages. An empty line completes the current message.

    Recognized fields: data (repeated lines joined with \\n), event, id, retry
    (integers only). Unknown fields are ignored; lines without a field name are
    reported through ``on_protocol_error`` and otherwise skipped.
    """

    def __init__(
        self,
        on_message: Optional[Callable[[StreamMessage], None]] = None,
        on_id: Optional[Callable[[str], None]] = None,
        on_retry: Optional[Callable[[int], None]] = None,
        on_protocol_error: Optional[Callable[[StreamProtocolError], None]] = None,
    ) -> None:
        self._on_message = on_message
        self._on_id = on_id
        self._on_retry = on_retry
        self._on_protocol_error = on_protocol_error
        self._message = StreamMessage()

    def __call__(self, line: bytes, field_length: int) -> None:
        if not line:
            message, self._message = self._message, StreamMessage()
            if self._on_message is not None:
                self._on_message(message)
            return

        if field_length == 0:
            # ": comment"
            return
        if field_length < 0:
            if self._on_protocol_error is not None:
                self._on_protocol_error(StreamProtocolError(line, "line has no field separator"))
            return

        field = line[:field_length].decode("utf-8", errors="replace")
        offset = field_length + (2 if line[field_length + 1 : field_length + 2] == b" " else 1)
        value = line[offset:].decode("utf-8", errors="replace")

        msg = self._message
        if field == "data":
            msg.data = f"{msg.data}\n{value}" if msg.data else value
        elif field == "event":
            msg.event = value
        elif field == "id":
            msg.id = value
            if self._on_id is not None:
                self._on_id(value)
        elif field == "retry":
            try:
                retry = int(value, 10)
            except ValueError:
                return  # non-integer retry values are ignored
            msg.retry = retry
            if self._on_retry is not None:
                self._on_retry(retry)
