"""Polling fallback for servers that cannot stream."""

from .loop import PollFallbackLoop, StopHandle

__all__ = ["PollFallbackLoop", "StopHandle"]
