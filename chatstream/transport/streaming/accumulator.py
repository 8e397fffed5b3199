"""
Consumer-side accumulation of chat chunks into an assistant response.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

from ..exceptions import TransportError
from ..models import StreamCallbacks
from .coordinator import invoke_callback
from .models import AccumulatorState, ChunkType, StreamChunk

DEFAULT_ERROR_MESSAGE = "An error occurred"


class ResponseAccumulator:
    """
    Builds the assistant response from decoded chunks.

    Content chunks are appended in order; sources, chat id and title updates
    replace earlier values. A server-side "error" chunk is recorded but does
    not end the transport session; the server follows it with the sentinel.
    """

    def __init__(self) -> None:
        self.state = AccumulatorState()

    def process_chunk(self, data: Any) -> StreamChunk:
        """Fold one decoded payload into the state."""
        timestamp = time.time()
        self.state.update_timing(timestamp)
        chunk_type = ChunkType.from_payload(data)
        content: str | None = None

        if chunk_type is ChunkType.CONTENT:
            content = data.get("content") or ""
            self.state.content_buffer += content
        elif chunk_type is ChunkType.SOURCES:
            self.state.sources = list(data.get("sources") or [])
        elif chunk_type is ChunkType.CHAT_ID:
            if data.get("chat_id"):
                self.state.chat_id = data["chat_id"]
        elif chunk_type is ChunkType.TITLE_UPDATE:
            self.state.title = data.get("title")
            if data.get("chat_id"):
                self.state.chat_id = data["chat_id"]
        elif chunk_type is ChunkType.ERROR:
            content = data.get("content") or DEFAULT_ERROR_MESSAGE
            self.state.error = content
        elif chunk_type is ChunkType.DONE:
            self.state.done = True

        return StreamChunk(
            chunk_type=chunk_type,
            content=content,
            accumulated_content=self.state.content_buffer,
            data=data,
            timestamp=timestamp,
        )

    def callbacks(
        self,
        on_chunk: Callable[[StreamChunk], Any] | None = None,
        on_complete: Callable[[AccumulatorState], Any] | None = None,
        on_error: Callable[[TransportError], Any] | None = None,
    ) -> StreamCallbacks:
        """Stream callbacks that feed this accumulator, then the given hooks."""

        async def handle_chunk(data: Any) -> None:
            await invoke_callback(on_chunk, self.process_chunk(data))

        async def handle_complete() -> None:
            self.state.done = True
            await invoke_callback(on_complete, self.state)

        async def handle_error(error: TransportError) -> None:
            self.state.error = str(error)
            await invoke_callback(on_error, error)

        return StreamCallbacks(
            on_chunk=handle_chunk,
            on_complete=handle_complete,
            on_error=handle_error,
        )

    def get_streaming_stats(self) -> dict[str, Any]:
        """Summary of the accumulated response."""
        return {
            "chunks": self.state.chunk_count,
            "content_length": len(self.state.content_buffer),
            "sources": len(self.state.sources),
            "duration": self.state.streaming_duration,
            "done": self.state.done,
            "error": self.state.error,
        }

    def reset(self) -> None:
        """Reset accumulator state for a new response."""
        self.state = AccumulatorState()
