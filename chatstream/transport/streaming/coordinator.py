"""
Stream coordinator: one long-lived HTTP response per logical request.

Bytes from the response body are driven through a FrameDecoder and the
decoded payloads are dispatched to the session's callbacks in arrival order.
Every session ends in exactly one of COMPLETED, ERRORED or ABORTED, and at
most one of on_complete / on_error fires.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Callable
from contextlib import aclosing
from typing import Any

import httpx

from ...logging_utils import ContextualLogger, TransportErrorHandler, get_logger
from ..exceptions import TransportError
from ..models import SessionState, StreamCallbacks, StreamSession
from .decoder import FrameDecoder

EVENT_STREAM_CONTENT_TYPE = "text/event-stream"
PAYLOAD_ENCODINGS = ("form", "json")

# Longest slice of an error response body kept on the TransportError
MAX_ERROR_BODY = 500

logger = get_logger(__name__)


async def invoke_callback(callback: Callable[..., Any] | None, *args: Any) -> None:
    """Call a sync or async callback; missing callbacks are skipped."""
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


def request_kwargs(payload: dict[str, Any], payload_encoding: str) -> dict[str, Any]:
    """httpx keyword arguments carrying the payload in the chosen encoding."""
    if payload_encoding == "form":
        return {"data": payload}
    if payload_encoding == "json":
        return {"json": payload}
    raise ValueError(
        f"payload_encoding must be one of {PAYLOAD_ENCODINGS}, got '{payload_encoding}'"
    )


def _wrap_http_error(error: Exception, endpoint: str) -> TransportError:
    return TransportError(f"HTTP error during streaming: {error!s}", endpoint=endpoint)


class CancellationHandle:
    """
    Caller-side handle for one stream session.

    Calling the handle (or cancel()) aborts the session. It is idempotent and
    safe before the first byte arrives; no callback fires afterwards.
    """

    def __init__(self, session: StreamSession):
        self.session = session
        self._task: asyncio.Task[StreamSession] | None = None
        self._cancelled = False

    def attach(self, task: asyncio.Task[StreamSession]) -> None:
        self._task = task

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True

        if self.session.abort():
            logger.info("Stream session cancelled", session_id=self.session.id)

        if self._task is not None and not self._task.done():
            self._task.cancel()

    def __call__(self) -> None:
        self.cancel()

    async def wait(self) -> SessionState:
        """Wait for the session task to finish and return the final state."""
        if self._task is not None:
            await asyncio.wait({self._task})
            if not self._task.cancelled():
                # Re-raise errors from caller callbacks
                self._task.result()
        return self.session.state


class StreamCoordinator:
    """Opens streaming sessions and maps decoded frames to callbacks."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        method: str = "POST",
        payload_encoding: str = "form",
    ):
        if payload_encoding not in PAYLOAD_ENCODINGS:
            raise ValueError(
                f"payload_encoding must be one of {PAYLOAD_ENCODINGS}, "
                f"got '{payload_encoding}'"
            )
        self.client = client
        self.method = method
        self.payload_encoding = payload_encoding
        self.stats = {
            'sessions': 0,
            'completed': 0,
            'aborted': 0,
            'errored': 0,
            'chunks': 0,
            'decode_errors': 0,
        }

    def open(
        self,
        endpoint: str,
        payload: dict[str, Any],
        callbacks: StreamCallbacks,
    ) -> CancellationHandle:
        """
        Start a stream session in the background.

        Must be called from a running event loop. The returned handle cancels
        the session and can be awaited for its final state.
        """
        session = StreamSession()
        handle = CancellationHandle(session)
        session.cancellation_handle = handle

        task = asyncio.create_task(
            self.run(endpoint, payload, callbacks, session=session),
            name=f"chatstream-session-{session.id}",
        )
        handle.attach(task)
        return handle

    async def run(
        self,
        endpoint: str,
        payload: dict[str, Any],
        callbacks: StreamCallbacks,
        session: StreamSession | None = None,
    ) -> StreamSession:
        """Drive one session from IDLE to a terminal state."""
        session = session if session is not None else StreamSession()
        if not session.begin():
            return session

        self.stats['sessions'] += 1
        decoder = FrameDecoder(session)
        log = ContextualLogger(__name__, {"session_id": session.id, "endpoint": endpoint})
        start_time = time.perf_counter()
        log.info("Stream session opened")

        try:
            await self._pump(endpoint, payload, callbacks, session, decoder, log)
        except TransportError as e:
            await self._fail(session, callbacks, e, log, start_time)
            return session
        except asyncio.CancelledError:
            session.abort()
            self._record_outcome(session, log, start_time)
            raise
        except Exception:
            # Raised by a caller callback; end the session without on_error
            session.finish(SessionState.ERRORED)
            log.exception("Stream callback raised")
            self._record_outcome(session, log, start_time)
            raise
        finally:
            self.stats['decode_errors'] += decoder.stats['decode_errors']

        if not session.is_active:
            self._record_outcome(session, log, start_time)
            return session

        if session.byte_remainder:
            log.debug(
                "Discarded unterminated line at end of stream",
                remainder_bytes=len(session.byte_remainder),
            )
        session.finish(SessionState.COMPLETED)
        self._record_outcome(session, log, start_time)
        await invoke_callback(callbacks.on_complete)
        return session

    async def _pump(
        self,
        endpoint: str,
        payload: dict[str, Any],
        callbacks: StreamCallbacks,
        session: StreamSession,
        decoder: FrameDecoder,
        log: ContextualLogger,
    ) -> None:
        request = self.client.build_request(
            self.method, endpoint, **request_kwargs(payload, self.payload_encoding)
        )
        try:
            response = await self.client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise _wrap_http_error(e, endpoint) from e

        try:
            if not response.is_success:
                try:
                    body = await response.aread()
                except (httpx.HTTPError, httpx.StreamError) as e:
                    raise _wrap_http_error(e, endpoint) from e
                raise TransportError(
                    f"Streaming request failed with status {response.status_code}",
                    endpoint=endpoint,
                    status_code=response.status_code,
                    response_text=body.decode("utf-8", errors="replace")[:MAX_ERROR_BODY],
                )

            content_type = response.headers.get("content-type", "")
            if EVENT_STREAM_CONTENT_TYPE not in content_type:
                log.warning("Unexpected content-type for stream", content_type=content_type)

            # Only the body reads are wrapped; callback errors propagate as-is
            async with aclosing(response.aiter_bytes()) as byte_chunks:
                while True:
                    try:
                        byte_chunk = await anext(byte_chunks)
                    except StopAsyncIteration:
                        break
                    except (httpx.HTTPError, httpx.StreamError) as e:
                        raise _wrap_http_error(e, endpoint) from e

                    for event in decoder.feed(byte_chunk):
                        if not session.is_active or event.is_completion:
                            break
                        self.stats['chunks'] += 1
                        await invoke_callback(callbacks.on_chunk, event.data)

                    if decoder.finished or not session.is_active:
                        break
        finally:
            await response.aclose()

    async def _fail(
        self,
        session: StreamSession,
        callbacks: StreamCallbacks,
        error: TransportError,
        log: ContextualLogger,
        start_time: float,
    ) -> None:
        failed = session.finish(SessionState.ERRORED)
        if failed:
            log.error(
                "Stream session failed",
                status_code=error.status_code,
                **TransportErrorHandler.error_context(error),
            )
        self._record_outcome(session, log, start_time)
        if failed:
            await invoke_callback(callbacks.on_error, error)

    def _record_outcome(
        self, session: StreamSession, log: ContextualLogger, start_time: float
    ) -> None:
        if not session.is_terminal:
            return
        key = {
            SessionState.COMPLETED: 'completed',
            SessionState.ABORTED: 'aborted',
            SessionState.ERRORED: 'errored',
        }[session.state]
        self.stats[key] += 1
        duration = round((time.perf_counter() - start_time) * 1000, 2)
        log.info("Stream session ended", state=session.state.value, duration_ms=duration)

    def get_stats(self) -> dict[str, int]:
        """Get coordinator counters for monitoring."""
        return self.stats.copy()
