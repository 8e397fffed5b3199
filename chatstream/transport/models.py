"""
Session, event and cursor models for the chat transport layer.

This module provides the state owned by a single streaming or polling session:
- Stream session state machine and byte remainder
- Decoded event records produced by the frame decoder
- The three-outcome callback channel handed to the coordinator
- Poll cursor and the polling wire format
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from .exceptions import TransportError

ChunkCallback = Callable[[dict[str, Any]], Awaitable[None] | None]
CompleteCallback = Callable[[], Awaitable[None] | None]
ErrorCallback = Callable[["TransportError"], Awaitable[None] | None]


class SessionState(Enum):
    """Lifecycle states of a stream session."""
    IDLE = "idle"
    OPEN = "open"
    COMPLETED = "completed"
    ABORTED = "aborted"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {SessionState.COMPLETED, SessionState.ABORTED, SessionState.ERRORED}
)


class EventKind(Enum):
    """Kinds of events decoded from data frames."""
    DATA = "data"
    COMPLETION = "completion"


@dataclass(frozen=True)
class DecodedEvent:
    """Structured payload of one data frame, or the completion sentinel."""
    kind: EventKind
    data: Any
    raw_data: str

    @property
    def is_completion(self) -> bool:
        return self.kind is EventKind.COMPLETION


@dataclass(frozen=True)
class StreamCallbacks:
    """Result channel for one stream session: chunks, completion, error."""
    on_chunk: ChunkCallback | None = None
    on_complete: CompleteCallback | None = None
    on_error: ErrorCallback | None = None


@dataclass
class StreamSession:
    """
    Mutable state of one streaming request.

    Transitions only move forward: IDLE -> OPEN -> one terminal state, or
    IDLE -> ABORTED when cancelled before the request goes out.
    """
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: SessionState = SessionState.IDLE
    byte_remainder: bytes = b""
    cancellation_handle: Any = None

    @property
    def is_active(self) -> bool:
        return self.state is SessionState.OPEN

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def begin(self) -> bool:
        """Move IDLE -> OPEN. Returns False if the session already moved on."""
        if self.state is not SessionState.IDLE:
            return False
        self.state = SessionState.OPEN
        return True

    def finish(self, state: SessionState) -> bool:
        """Move OPEN -> terminal state. Only the first call wins."""
        if not state.is_terminal:
            raise ValueError(f"{state} is not a terminal state")
        if self.state is not SessionState.OPEN:
            return False
        self.state = state
        self.byte_remainder = b""
        return True

    def abort(self) -> bool:
        """Move any non-terminal state to ABORTED."""
        if self.is_terminal:
            return False
        self.state = SessionState.ABORTED
        self.byte_remainder = b""
        return True


@dataclass
class PollCursor:
    """Last message id seen by a poll session. Never moves backwards."""
    last_seen_message_id: int | None = None
    complete: bool = False

    def is_new(self, message_id: int) -> bool:
        return (
            self.last_seen_message_id is None
            or message_id > self.last_seen_message_id
        )

    def advance(self, message_id: int) -> bool:
        """Record message_id if it is ahead of the cursor."""
        if not self.is_new(message_id):
            return False
        self.last_seen_message_id = message_id
        return True

    def as_param(self) -> str:
        if self.last_seen_message_id is None:
            return ""
        return str(self.last_seen_message_id)


class PollMessage(BaseModel):
    """One message returned by a poll request; unknown fields are kept."""
    model_config = ConfigDict(extra="allow")

    id: int


class PollData(BaseModel):
    messages: list[PollMessage] = Field(default_factory=list)
    complete: bool = False

    @field_validator("messages", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class PollResponse(BaseModel):
    """Response body of a single poll request."""
    success: bool = False
    data: PollData
