"""
Shared pytest fixtures: fake HTTP servers and callback recorders.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Iterable
from typing import Any

import httpx
import pytest

from chatstream.transport import StreamCallbacks, TransportError

BASE_URL = "http://chat.test"
SSE_HEADERS = {"content-type": "text/event-stream; charset=utf-8"}


class CallbackRecorder:
    """Records every stream callback in call order."""

    def __init__(self, on_chunk: Callable[[Any], Any] | None = None):
        self.calls: list[tuple[str, Any]] = []
        self._extra_on_chunk = on_chunk
        self.first_chunk = asyncio.Event()

    @property
    def chunks(self) -> list[Any]:
        return [value for name, value in self.calls if name == "chunk"]

    @property
    def completions(self) -> int:
        return sum(1 for name, _ in self.calls if name == "complete")

    @property
    def errors(self) -> list[TransportError]:
        return [value for name, value in self.calls if name == "error"]

    def callbacks(self) -> StreamCallbacks:
        def on_chunk(data: Any) -> None:
            self.calls.append(("chunk", data))
            self.first_chunk.set()
            if self._extra_on_chunk is not None:
                self._extra_on_chunk(data)

        def on_complete() -> None:
            self.calls.append(("complete", None))

        def on_error(error: TransportError) -> None:
            self.calls.append(("error", error))

        return StreamCallbacks(on_chunk=on_chunk, on_complete=on_complete, on_error=on_error)


async def byte_stream(
    chunks: Iterable[bytes],
    gate: asyncio.Event | None = None,
    gate_before: int = 1,
    fail_with: Exception | None = None,
) -> AsyncIterator[bytes]:
    """Yield chunks one at a time, optionally pausing or failing midway."""
    for index, chunk in enumerate(chunks):
        if gate is not None and index == gate_before:
            await gate.wait()
        yield chunk
    if fail_with is not None:
        raise fail_with


def sse_response(chunks: Iterable[bytes], **stream_kwargs: Any) -> httpx.Response:
    return httpx.Response(
        200,
        headers=SSE_HEADERS,
        content=byte_stream(list(chunks), **stream_kwargs),
    )


@pytest.fixture
def make_http_client() -> Callable[[Callable[[httpx.Request], Any]], httpx.AsyncClient]:
    """Factory for AsyncClients served by an in-process handler."""

    def factory(handler: Callable[[httpx.Request], Any]) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))

    return factory


@pytest.fixture
def recorder() -> CallbackRecorder:
    return CallbackRecorder()


@pytest.fixture
def recorder_factory() -> Callable[..., CallbackRecorder]:
    return CallbackRecorder


@pytest.fixture
def sse() -> Callable[..., httpx.Response]:
    """Factory for event-stream responses built from byte chunks."""
    return sse_response
