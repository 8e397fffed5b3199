#!/usr/bin/env python3
"""
Tests for the polling fallback loop and its cursor.
"""

import asyncio
import json
from urllib.parse import parse_qs

import httpx
import pytest

from chatstream.transport import PollFallbackLoop

INTERVAL = 0.01


def poll_body(ids, complete=False, success=True):
    return {
        "success": success,
        "data": {
            "messages": [{"id": i, "content": f"message {i}"} for i in ids],
            "complete": complete,
        },
    }


class ScriptedServer:
    """Serves a fixed sequence of poll responses and records requests."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if not self.responses:
            raise AssertionError("unexpected extra poll request")
        response = self.responses.pop(0)
        if isinstance(response, httpx.Response):
            return response
        return httpx.Response(200, json=response)

    def sent_cursors(self):
        return [parse_qs(r.content.decode(), keep_blank_values=True)["last_message_id"][0]
                for r in self.requests]


class TestPolling:
    """Sequential polls deliver each message once, in id order."""

    @pytest.mark.asyncio
    async def test_three_polls_until_complete(self, make_http_client):
        server = ScriptedServer([
            poll_body([1]),
            poll_body([2]),
            poll_body([3], complete=True),
        ])
        received = []
        loop = PollFallbackLoop(make_http_client(server))

        handle = loop.start("/poll", {"chat_id": "5"}, received.append, INTERVAL)
        await asyncio.wait_for(handle.wait(), timeout=2)
        await asyncio.sleep(INTERVAL * 3)

        assert len(server.requests) == 3
        assert [m["id"] for m in received] == [1, 2, 3]
        assert received[0]["content"] == "message 1"
        assert handle.stopped
        assert handle.cursor.complete
        assert handle.cursor.last_seen_message_id == 3
        assert loop.get_stats()["completed"] == 1

    @pytest.mark.asyncio
    async def test_cursor_is_sent_with_payload(self, make_http_client):
        server = ScriptedServer([
            poll_body([1, 2]),
            poll_body([]),
            poll_body([3], complete=True),
        ])

        handle = PollFallbackLoop(make_http_client(server)).start(
            "/poll", {"chat_id": "5"}, lambda message: None, INTERVAL
        )
        await asyncio.wait_for(handle.wait(), timeout=2)

        assert server.sent_cursors() == ["", "2", "2"]
        first = parse_qs(server.requests[0].content.decode(), keep_blank_values=True)
        assert first["chat_id"] == ["5"]

    @pytest.mark.asyncio
    async def test_redelivered_messages_are_skipped(self, make_http_client):
        server = ScriptedServer([
            poll_body([1, 2]),
            poll_body([2, 3]),
            poll_body([1, 3, 4], complete=True),
        ])
        received = []
        loop = PollFallbackLoop(make_http_client(server))

        handle = loop.start("/poll", {}, received.append, INTERVAL)
        await asyncio.wait_for(handle.wait(), timeout=2)

        assert [m["id"] for m in received] == [1, 2, 3, 4]
        assert loop.get_stats()["duplicates"] == 3

    @pytest.mark.asyncio
    async def test_string_ids_are_compared_numerically(self, make_http_client):
        server = ScriptedServer([
            {"success": True, "data": {"messages": [{"id": "9"}, {"id": "10"}], "complete": False}},
            {"success": True, "data": {"messages": [{"id": "10"}], "complete": True}},
        ])
        received = []

        handle = PollFallbackLoop(make_http_client(server)).start(
            "/poll", {}, received.append, INTERVAL
        )
        await asyncio.wait_for(handle.wait(), timeout=2)

        assert [m["id"] for m in received] == [9, 10]

    @pytest.mark.asyncio
    async def test_unsuccessful_response_delivers_nothing_but_keeps_polling(self, make_http_client):
        server = ScriptedServer([
            poll_body([1], success=False),
            poll_body([1], complete=True),
        ])
        received = []

        handle = PollFallbackLoop(make_http_client(server)).start(
            "/poll", {}, received.append, INTERVAL
        )
        await asyncio.wait_for(handle.wait(), timeout=2)

        assert len(server.requests) == 2
        assert [m["id"] for m in received] == [1]

    @pytest.mark.asyncio
    async def test_async_message_callback(self, make_http_client):
        server = ScriptedServer([poll_body([1, 2], complete=True)])
        received = []

        async def on_message(message):
            await asyncio.sleep(0)
            received.append(message["id"])

        handle = PollFallbackLoop(make_http_client(server)).start("/poll", {}, on_message)
        await asyncio.wait_for(handle.wait(), timeout=2)

        assert received == [1, 2]

    @pytest.mark.asyncio
    async def test_json_encoding(self, make_http_client):
        server = ScriptedServer([poll_body([], complete=True)])

        handle = PollFallbackLoop(make_http_client(server), payload_encoding="json").start(
            "/poll", {"chat_id": 5}, lambda message: None
        )
        await asyncio.wait_for(handle.wait(), timeout=2)

        assert json.loads(server.requests[0].content) == {"chat_id": 5, "last_message_id": ""}


class TestOneRequestAtATime:
    """No poll overlaps another."""

    @pytest.mark.asyncio
    async def test_requests_never_overlap(self, make_http_client):
        in_flight = 0
        max_in_flight = 0
        remaining = [poll_body([1]), poll_body([2]), poll_body([3], complete=True)]

        async def handler(request):
            nonlocal in_flight, max_in_flight
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
            await asyncio.sleep(INTERVAL * 3)
            in_flight -= 1
            return httpx.Response(200, json=remaining.pop(0))

        handle = PollFallbackLoop(make_http_client(handler)).start(
            "/poll", {}, lambda message: None, 0
        )
        await asyncio.wait_for(handle.wait(), timeout=2)

        assert max_in_flight == 1
        assert remaining == []


class TestStopping:
    """stop() halts scheduling at once and discards late results."""

    @pytest.mark.asyncio
    async def test_stop_discards_in_flight_response(self, make_http_client):
        entered = asyncio.Event()
        release = asyncio.Event()
        received = []

        async def handler(request):
            entered.set()
            await release.wait()
            return httpx.Response(200, json=poll_body([1]))

        handle = PollFallbackLoop(make_http_client(handler)).start(
            "/poll", {}, received.append, INTERVAL
        )
        await entered.wait()
        handle.stop()
        release.set()
        await asyncio.wait_for(handle.wait(), timeout=2)

        assert received == []
        assert handle.requests_issued == 1
        assert handle.cursor.last_seen_message_id is None

    @pytest.mark.asyncio
    async def test_stop_wakes_pending_interval(self, make_http_client):
        server = ScriptedServer([poll_body([1])])
        first = asyncio.Event()

        def on_message(message):
            first.set()

        handle = PollFallbackLoop(make_http_client(server)).start("/poll", {}, on_message, 30)
        await first.wait()
        handle()

        await asyncio.wait_for(handle.wait(), timeout=1)
        assert len(server.requests) == 1

    @pytest.mark.asyncio
    async def test_stop_inside_callback_skips_rest_of_batch(self, make_http_client):
        server = ScriptedServer([poll_body([1, 2, 3])])
        received = []
        handles = []

        def on_message(message):
            received.append(message["id"])
            handles[0].stop()

        handles.append(PollFallbackLoop(make_http_client(server)).start("/poll", {}, on_message))
        await asyncio.wait_for(handles[0].wait(), timeout=2)

        assert received == [1]

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, make_http_client):
        server = ScriptedServer([poll_body([], complete=True)])
        handle = PollFallbackLoop(make_http_client(server)).start("/poll", {}, lambda m: None)

        handle.stop()
        handle.stop()
        handle()
        await handle.wait()

        assert handle.stopped


class TestRequestFailure:
    """A failed poll ends the loop without any callback."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failure", [
        httpx.Response(500, text="server error"),
        httpx.Response(200, text="<html>not json</html>"),
        httpx.Response(200, json={"success": False, "data": "nonce expired"}),
        httpx.Response(200, json={"success": True}),
    ])
    async def test_failure_stops_silently(self, make_http_client, failure):
        server = ScriptedServer([poll_body([1]), failure, poll_body([2], complete=True)])
        received = []
        loop = PollFallbackLoop(make_http_client(server))

        handle = loop.start("/poll", {}, received.append, INTERVAL)
        await asyncio.wait_for(handle.wait(), timeout=2)
        await asyncio.sleep(INTERVAL * 3)

        assert [m["id"] for m in received] == [1]
        assert len(server.requests) == 2
        assert handle.stopped
        assert not handle.cursor.complete
        assert loop.get_stats()["failures"] == 1

    @pytest.mark.asyncio
    async def test_network_error_stops_silently(self, make_http_client):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        handle = PollFallbackLoop(make_http_client(handler)).start("/poll", {}, lambda m: None)
        await asyncio.wait_for(handle.wait(), timeout=2)

        assert handle.stopped
        assert handle.requests_issued == 1


def test_negative_interval_rejected(make_http_client):
    with pytest.raises(ValueError, match="interval"):
        PollFallbackLoop(make_http_client(lambda request: None), interval=-1)


@pytest.mark.asyncio
async def test_message_callback_error_stops_loop(make_http_client):
    server = ScriptedServer([poll_body([1]), poll_body([2], complete=True)])

    def on_message(message):
        raise RuntimeError("consumer failed")

    handle = PollFallbackLoop(make_http_client(server)).start("/poll", {}, on_message, INTERVAL)

    with pytest.raises(RuntimeError, match="consumer failed"):
        await asyncio.wait_for(handle.wait(), timeout=2)

    assert handle.stopped
    assert len(server.requests) == 1
