"""
Error types for the chat transport layer.

Only TransportError ever reaches a caller (through the on_error callback).
The others are absorbed at the component that detects them:
- DecodeError: one malformed frame, dropped by the frame decoder
- PollRequestFailure: ends the poll loop without notifying the caller
"""

from __future__ import annotations


class ChatStreamError(Exception):
    """Base transport error with request context."""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
        response_text: str | None = None,
    ):
        super().__init__(message)
        self.endpoint = endpoint
        self.status_code = status_code
        self.response_text = response_text


class TransportError(ChatStreamError):
    """Non-success response status or network failure."""
    pass


class DecodeError(ChatStreamError):
    """A data frame whose payload could not be parsed."""

    def __init__(self, message: str, raw_data: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.raw_data = raw_data


class PollRequestFailure(ChatStreamError):
    """A poll request failed; the loop stops without a callback."""
    pass


class ConfigurationError(ValueError):
    """Missing or invalid configuration value."""
    pass
