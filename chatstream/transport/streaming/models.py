"""
Typed views of decoded chat chunks.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ChunkType(Enum):
    """Values of the "type" field carried by chat chunks."""
    CONTENT = "content"
    SOURCES = "sources"
    CHAT_ID = "chat_id"
    TITLE_UPDATE = "title_update"
    ERROR = "error"
    DONE = "done"
    UNKNOWN = "unknown"

    @classmethod
    def from_payload(cls, data: Any) -> ChunkType:
        if not isinstance(data, dict):
            return cls.UNKNOWN
        try:
            return cls(data.get("type"))
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class StreamChunk:
    """One decoded chunk with the response accumulated so far."""
    chunk_type: ChunkType
    content: str | None
    accumulated_content: str
    data: Any
    timestamp: float = field(default_factory=time.time)


@dataclass
class AccumulatorState:
    """Everything learned about the assistant response so far."""
    content_buffer: str = ""
    sources: list[Any] = field(default_factory=list)
    chat_id: Any = None
    title: str | None = None
    error: str | None = None
    done: bool = False
    chunk_count: int = 0
    first_chunk_time: float | None = None
    last_chunk_time: float | None = None

    def update_timing(self, timestamp: float) -> None:
        if self.first_chunk_time is None:
            self.first_chunk_time = timestamp
        self.last_chunk_time = timestamp
        self.chunk_count += 1

    @property
    def streaming_duration(self) -> float:
        if self.first_chunk_time is None or self.last_chunk_time is None:
            return 0.0
        return self.last_chunk_time - self.first_chunk_time
