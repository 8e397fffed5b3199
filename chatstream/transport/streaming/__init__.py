"""
Streaming delivery of chat responses.

This package contains:
- Incremental frame decoding of server-sent events
- The stream coordinator and its cancellation handle
- Consumer-side chunk accumulation
"""

from .accumulator import ResponseAccumulator
from .coordinator import CancellationHandle, StreamCoordinator
from .decoder import DONE_SENTINEL, FrameDecoder
from .models import AccumulatorState, ChunkType, StreamChunk

__all__ = [
    "DONE_SENTINEL",
    "AccumulatorState",
    "CancellationHandle",
    "ChunkType",
    "FrameDecoder",
    "ResponseAccumulator",
    "StreamChunk",
    "StreamCoordinator",
]
