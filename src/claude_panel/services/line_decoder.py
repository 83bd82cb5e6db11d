"""Incremental decoder for the CLI's line-delimited JSON stream."""

import logging

import orjson

logger = logging.getLogger(__name__)

# Max size for a single JSONL line (10MB)
MAX_LINE_SIZE = 10 * 1024 * 1024


class LineDecoder:
    """Turns arbitrary stdout chunks into parsed JSON records.

    A trailing partial line is buffered until its newline arrives. Blank,
    malformed, non-object and oversize lines are dropped; a single corrupt
    line never aborts the stream.
    """

    def __init__(self):
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet terminated by a newline."""
        return len(self._buffer)

    def feed(self, chunk: bytes | str) -> list[dict]:
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        if not chunk:
            return []

        self._buffer.extend(chunk)
        *lines, rest = self._buffer.split(b"\n")
        self._buffer = bytearray(rest)

        if len(self._buffer) > MAX_LINE_SIZE:
            logger.warning(
                "Discarding %d buffered bytes without newline (exceeds %dMB)",
                len(self._buffer), MAX_LINE_SIZE // (1024 * 1024),
            )
            self._buffer.clear()

        records = []
        for line in lines:
            record = self._parse_line(line)
            if record is not None:
                records.append(record)
        return records

    def flush(self) -> list[dict]:
        """Parse whatever remains in the buffer (end of stream)."""
        if not self._buffer:
            return []
        line = bytes(self._buffer)
        self._buffer.clear()
        record = self._parse_line(line)
        return [record] if record is not None else []

    def reset(self):
        self._buffer.clear()

    @staticmethod
    def _parse_line(line: bytes) -> dict | None:
        line = line.strip()
        if not line:
            return None

        if len(line) > MAX_LINE_SIZE:
            logger.warning("Stream line exceeds %dMB, skipping", MAX_LINE_SIZE // (1024 * 1024))
            return None

        try:
            raw = orjson.loads(line)
        except orjson.JSONDecodeError as e:
            logger.debug("Malformed JSON on stream: %s", e)
            return None

        if not isinstance(raw, dict):
            return None
        return raw
