# eatwhat/sse.py
"""
Incremental Server-Sent-Event record decoder.

Network reads split records at arbitrary byte offsets (including inside a
multi-byte UTF-8 character). The decoder keeps the undecoded tail and the
incomplete trailing record between feeds and only emits complete records, so a
record is never lost or emitted twice.

Two framings are supported:
    LINES  - one ``data: ...`` record per line, ``[DONE]`` terminates
             (OpenAI-compatible token streams)
    EVENTS - records separated by a blank line, payload taken from the
             ``data:`` lines of each block (workflow event streams)
"""

import codecs
import logging
from enum import Enum
from typing import Union

logger = logging.getLogger(__name__)

DATA_FIELD = "data:"
DONE_SENTINEL = "[DONE]"


class SSEFraming(str, Enum):
    LINES = "lines"
    EVENTS = "events"


class SSEDecoder:
    def __init__(self, framing: SSEFraming = SSEFraming.LINES):
        self.framing = framing
        self._separator = "\n" if framing == SSEFraming.LINES else "\n\n"
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.done = False
        self.records_emitted = 0

    @property
    def pending(self) -> str:
        """Incomplete trailing data not yet emitted"""
        return self._buffer

    def feed(self, data: Union[bytes, str]) -> list[str]:
        """Add a network read and return the payloads of every completed record"""
        if self.done:
            return []

        text = self._decoder.decode(data) if isinstance(data, bytes) else data
        self._buffer = (self._buffer + text).replace("\r\n", "\n")

        records = self._buffer.split(self._separator)
        self._buffer = records.pop()
        return self._payloads(records)

    def flush(self) -> list[str]:
        """Emit whatever remains once the stream has ended"""
        if self.done:
            self.reset()
            return []

        self._buffer += self._decoder.decode(b"", final=True)
        remaining = self._buffer
        self._buffer = ""
        if not remaining.strip():
            return []
        return self._payloads([remaining])

    def reset(self) -> None:
        """Drop buffered state"""
        self._buffer = ""
        self._decoder.reset()

    def _payloads(self, records: list[str]) -> list[str]:
        payloads = []
        for record in records:
            if self.done:
                break

            payload = self._record_payload(record)
            if payload is None:
                continue
            if payload == DONE_SENTINEL:
                self.done = True
                self._buffer = ""
                break

            payloads.append(payload)

        self.records_emitted += len(payloads)
        return payloads

    def _record_payload(self, record: str):
        if self.framing == SSEFraming.LINES:
            line = record.strip()
            if not line.startswith(DATA_FIELD):
                return None
            return line[len(DATA_FIELD):].strip() or None

        data_lines = []
        for line in record.split("\n"):
            if line.startswith(DATA_FIELD):
                value = line[len(DATA_FIELD):]
                data_lines.append(value[1:] if value.startswith(" ") else value)

        if not data_lines:
            return None
        return "\n".join(data_lines)
