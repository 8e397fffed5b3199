"""
Chat response transport.

This package delivers incrementally generated responses to a consumer:
- Server-sent event streaming with cancellation
- Sequential polling fallback with a monotonic cursor
- Session, cursor and wire-format models
"""

from __future__ import annotations

from .client import ChatTransportClient
from .exceptions import (
    ChatStreamError,
    ConfigurationError,
    DecodeError,
    PollRequestFailure,
    TransportError,
)
from .models import (
    DecodedEvent,
    EventKind,
    PollCursor,
    PollMessage,
    PollResponse,
    SessionState,
    StreamCallbacks,
    StreamSession,
)
from .polling import PollFallbackLoop, StopHandle
from .streaming import (
    CancellationHandle,
    ChunkType,
    FrameDecoder,
    ResponseAccumulator,
    StreamChunk,
    StreamCoordinator,
)

__all__ = [
    "CancellationHandle",
    # Client
    "ChatTransportClient",
    # Exceptions
    "ChatStreamError",
    "ChunkType",
    "ConfigurationError",
    "DecodeError",
    # Models
    "DecodedEvent",
    "EventKind",
    # Components
    "FrameDecoder",
    "PollCursor",
    "PollFallbackLoop",
    "PollMessage",
    "PollRequestFailure",
    "PollResponse",
    "ResponseAccumulator",
    "SessionState",
    "StopHandle",
    "StreamCallbacks",
    "StreamChunk",
    "StreamCoordinator",
    "StreamSession",
    "TransportError",
]
