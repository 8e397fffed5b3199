"""
Streaming and polling transport for incrementally generated chat responses.
"""

from __future__ import annotations

from .config import Configuration
from .transport import (
    ChatTransportClient,
    PollFallbackLoop,
    StreamCallbacks,
    StreamCoordinator,
    TransportError,
)

__all__ = [
    "ChatTransportClient",
    "Configuration",
    "PollFallbackLoop",
    "StreamCallbacks",
    "StreamCoordinator",
    "TransportError",
]
