"""
Polling fallback for environments where streaming responses are unavailable.

Each poll is a plain request carrying the payload plus the cursor's last seen
message id. Polls are strictly sequential: the next one is scheduled only
after the previous response has been handled.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable
from typing import Any

import httpx
from pydantic import ValidationError

from ...logging_utils import ContextualLogger, TransportErrorHandler, get_logger
from ..exceptions import PollRequestFailure
from ..models import PollCursor, PollResponse
from ..streaming.coordinator import PAYLOAD_ENCODINGS, invoke_callback, request_kwargs

DEFAULT_INTERVAL = 1.0
CURSOR_FIELD = "last_message_id"

logger = get_logger(__name__)

MessageCallback = Callable[[dict[str, Any]], Any]


class StopHandle:
    """
    Caller-side handle for one poll session.

    Calling the handle (or stop()) halts scheduling immediately. A request
    already in flight still resolves, but its messages are discarded.
    """

    def __init__(self) -> None:
        self.id = uuid.uuid4().hex
        self.cursor = PollCursor()
        self.requests_issued = 0
        self._stopped = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    def attach(self, task: asyncio.Task[None]) -> None:
        self._task = task

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def stop(self) -> None:
        if self._stopped.is_set():
            return
        self._stopped.set()
        logger.debug("Poll loop stopped", poll_id=self.id)

    def __call__(self) -> None:
        self.stop()

    async def sleep(self, interval: float) -> bool:
        """Sleep for interval unless stopped first. Returns True if stopped."""
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=interval)
        except TimeoutError:
            pass
        return self.stopped

    async def wait(self) -> None:
        """Wait for the poll task to finish."""
        if self._task is not None:
            await asyncio.wait({self._task})
            if not self._task.cancelled():
                self._task.result()


class PollFallbackLoop:
    """Sequential poller that mimics the streaming callback contract."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        method: str = "POST",
        payload_encoding: str = "form",
        cursor_field: str = CURSOR_FIELD,
        interval: float = DEFAULT_INTERVAL,
    ):
        if payload_encoding not in PAYLOAD_ENCODINGS:
            raise ValueError(
                f"payload_encoding must be one of {PAYLOAD_ENCODINGS}, "
                f"got '{payload_encoding}'"
            )
        if interval < 0:
            raise ValueError("interval must be non-negative")
        self.client = client
        self.method = method
        self.payload_encoding = payload_encoding
        self.cursor_field = cursor_field
        self.interval = interval
        self.stats = {
            'loops': 0,
            'requests': 0,
            'messages': 0,
            'duplicates': 0,
            'completed': 0,
            'failures': 0,
        }

    def start(
        self,
        endpoint: str,
        payload: dict[str, Any],
        on_message: MessageCallback,
        interval: float | None = None,
    ) -> StopHandle:
        """
        Start polling in the background.

        Must be called from a running event loop. Returns the stop handle;
        a stopped or completed loop cannot be restarted through it.
        """
        interval = self.interval if interval is None else interval
        if interval < 0:
            raise ValueError("interval must be non-negative")

        handle = StopHandle()
        task = asyncio.create_task(
            self.run(endpoint, payload, on_message, interval, handle),
            name=f"chatstream-poll-{handle.id}",
        )
        handle.attach(task)
        return handle

    async def run(
        self,
        endpoint: str,
        payload: dict[str, Any],
        on_message: MessageCallback,
        interval: float,
        handle: StopHandle,
    ) -> None:
        """Poll until the server reports completion, a request fails, or stop."""
        self.stats['loops'] += 1
        log = ContextualLogger(__name__, {"poll_id": handle.id, "endpoint": endpoint})
        log.info("Poll loop started", interval=interval)

        try:
            while not handle.stopped:
                handle.requests_issued += 1
                self.stats['requests'] += 1
                try:
                    response = await self._request(endpoint, payload, handle.cursor)
                except PollRequestFailure as e:
                    # No error callback and no retry: the loop just ends
                    self.stats['failures'] += 1
                    log.warning(
                        "Poll loop stopped after request failure",
                        requests=handle.requests_issued,
                        **TransportErrorHandler.error_context(e),
                    )
                    return

                if handle.stopped:
                    log.debug("Discarded poll response received after stop")
                    return

                await self._deliver(response, on_message, handle)

                if response.data.complete:
                    handle.cursor.complete = True
                    self.stats['completed'] += 1
                    log.info(
                        "Poll loop completed",
                        requests=handle.requests_issued,
                        last_message_id=handle.cursor.last_seen_message_id,
                    )
                    return

                if await handle.sleep(interval):
                    return
        except Exception:
            # Raised by the caller's message callback
            log.exception("Poll message callback raised", requests=handle.requests_issued)
            raise
        finally:
            handle.stop()

    async def _deliver(
        self,
        response: PollResponse,
        on_message: MessageCallback,
        handle: StopHandle,
    ) -> None:
        if not response.success:
            return
        for message in response.data.messages:
            if handle.stopped:
                return
            if not handle.cursor.advance(message.id):
                self.stats['duplicates'] += 1
                continue
            self.stats['messages'] += 1
            await invoke_callback(on_message, message.model_dump())

    async def _request(
        self,
        endpoint: str,
        payload: dict[str, Any],
        cursor: PollCursor,
    ) -> PollResponse:
        params = {**payload, self.cursor_field: cursor.as_param()}
        try:
            response = await self.client.request(
                self.method, endpoint, **request_kwargs(params, self.payload_encoding)
            )
            response.raise_for_status()
            return PollResponse.model_validate_json(response.content)
        except httpx.HTTPStatusError as e:
            raise PollRequestFailure(
                f"Poll request failed with status {e.response.status_code}",
                endpoint=endpoint,
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise PollRequestFailure(
                f"Poll request failed: {e!s}", endpoint=endpoint
            ) from e
        except ValidationError as e:
            raise PollRequestFailure(
                f"Invalid poll response: {e!s}", endpoint=endpoint
            ) from e

    def get_stats(self) -> dict[str, int]:
        """Get poll counters for monitoring."""
        return self.stats.copy()
