"""
Incremental decoder for line-oriented server-sent event streams.

Byte increments may split a line anywhere, including inside a multi-byte
character. Lines are only decoded once their terminator has arrived; the
unterminated tail is kept on the session as its byte remainder.
"""

from __future__ import annotations

import json
from typing import Any

from ...logging_utils import get_logger
from ..exceptions import DecodeError
from ..models import DecodedEvent, EventKind, StreamSession

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"

# Longest slice of a bad payload that ends up in the logs
MAX_LOGGED_PAYLOAD = 200

logger = get_logger(__name__)


class FrameDecoder:
    """Turns raw byte increments into decoded events for one session."""

    def __init__(
        self,
        session: StreamSession | None = None,
        data_prefix: str = DATA_PREFIX,
        sentinel: str = DONE_SENTINEL,
    ):
        self.session = session if session is not None else StreamSession()
        self.data_prefix = data_prefix
        self.sentinel = sentinel
        self._finished = False
        self.stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> dict[str, int]:
        return {
            'frames': 0,
            'events': 0,
            'ignored_lines': 0,
            'decode_errors': 0,
        }

    @property
    def finished(self) -> bool:
        """True once the completion sentinel has been decoded."""
        return self._finished

    def frames(self, byte_chunk: bytes | str) -> list[str]:
        """Split the buffered bytes into complete lines, keeping the tail."""
        if isinstance(byte_chunk, str):
            byte_chunk = byte_chunk.encode("utf-8")

        *complete, remainder = (self.session.byte_remainder + byte_chunk).split(b"\n")
        self.session.byte_remainder = remainder

        return [
            line.decode("utf-8", errors="replace").removesuffix("\r")
            for line in complete
        ]

    def feed(self, byte_chunk: bytes | str) -> list[DecodedEvent]:
        """
        Decode one byte increment.

        Returns the events completed by this increment, in stream order.
        After the sentinel has been seen every call returns an empty list.
        """
        if self._finished:
            return []

        events: list[DecodedEvent] = []
        for line in self.frames(byte_chunk):
            self.stats['frames'] += 1
            event = self._decode_line(line)
            if event is None:
                continue

            self.stats['events'] += 1
            events.append(event)

            if event.is_completion:
                self._finished = True
                self.session.byte_remainder = b""
                break

        return events

    def _decode_line(self, line: str) -> DecodedEvent | None:
        if not line.strip():
            return None

        if not line.startswith(self.data_prefix):
            # Comments (": stream started"), event names, ids, retry hints
            self.stats['ignored_lines'] += 1
            return None

        payload = line[len(self.data_prefix):]
        if payload.startswith(" "):
            payload = payload[1:]

        if payload == self.sentinel:
            return DecodedEvent(EventKind.COMPLETION, None, payload)

        try:
            data = self._parse_payload(payload)
        except DecodeError as e:
            self.stats['decode_errors'] += 1
            logger.warning(
                "Dropped malformed frame",
                session_id=self.session.id,
                error_message=str(e),
                raw_data=e.raw_data[:MAX_LOGGED_PAYLOAD],
            )
            return None

        return DecodedEvent(EventKind.DATA, data, payload)

    @staticmethod
    def _parse_payload(payload: str) -> Any:
        try:
            return json.loads(payload)
        except json.JSONDecodeError as e:
            raise DecodeError(f"JSON decode error: {e}", raw_data=payload) from e

    def get_stats(self) -> dict[str, int]:
        """Get decoder counters for monitoring."""
        return self.stats.copy()

    def reset_stats(self) -> None:
        """Reset decoder counters."""
        self.stats = self._empty_stats()
