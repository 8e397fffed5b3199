"""
Command-line entry point: send one chat message and print the response.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from collections.abc import Callable
from typing import Any

from .config import Configuration
from .logging_utils import configure_logging, log_operation, operation_context
from .transport import (
    ChatTransportClient,
    ChunkType,
    ResponseAccumulator,
    SessionState,
    StreamChunk,
    TransportError,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chatstream",
        description="Send a chat message and print the streamed response.",
    )
    parser.add_argument("message", help="Message text to send")
    parser.add_argument("--config", help="Path to a YAML configuration file")
    parser.add_argument("--endpoint", help="Override the configured endpoint")
    parser.add_argument("--chat-id", help="Existing chat to continue")
    parser.add_argument(
        "--field",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Extra payload field (repeatable)",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--poll", dest="streaming", action="store_false", default=None,
                      help="Use the polling fallback")
    mode.add_argument("--stream", dest="streaming", action="store_true", default=None,
                      help="Force streaming")
    parser.add_argument("--interval", type=float, help="Poll interval in seconds")
    return parser


def build_payload(args: argparse.Namespace) -> dict[str, Any]:
    """Request payload from parsed arguments."""
    payload: dict[str, Any] = {"message": args.message}
    if args.chat_id:
        payload["chat_id"] = args.chat_id
    for item in args.field:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise ValueError(f"--field expects KEY=VALUE, got '{item}'")
        payload[key] = value
    return payload


def _on_interrupt(cancel: Callable[[], None]) -> None:
    if sys.platform != "win32":
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, cancel)


def _print_chunk(chunk: StreamChunk) -> None:
    if chunk.chunk_type is ChunkType.CONTENT and chunk.content:
        print(chunk.content, end="", flush=True)
    elif chunk.chunk_type is ChunkType.ERROR:
        print(f"\n[server error] {chunk.content}", file=sys.stderr)


def _print_error(error: TransportError) -> None:
    print(f"\n[transport error] {error}", file=sys.stderr)


@log_operation("stream_message")
async def stream_message(
    client: ChatTransportClient,
    payload: dict[str, Any],
    endpoint: str | None = None,
) -> bool:
    """Stream one response to stdout. Returns True on a clean completion."""
    accumulator = ResponseAccumulator()
    handle = client.stream(
        payload,
        accumulator.callbacks(on_chunk=_print_chunk, on_error=_print_error),
        endpoint=endpoint,
    )
    _on_interrupt(handle.cancel)

    state = await handle.wait()
    print()
    return state is SessionState.COMPLETED and accumulator.state.error is None


@log_operation("poll_message")
async def poll_message(
    client: ChatTransportClient,
    payload: dict[str, Any],
    endpoint: str | None = None,
    interval: float | None = None,
) -> bool:
    """Poll for the response, printing each new message. True when complete."""

    def print_message(message: dict[str, Any]) -> None:
        print(message.get("content", message), flush=True)

    handle = client.poll(payload, print_message, endpoint=endpoint, interval=interval)
    _on_interrupt(handle.stop)

    await handle.wait()
    return handle.cursor.complete


async def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    config = Configuration(args.config)
    configure_logging(config.get_logging_config()["level"])
    payload = build_payload(args)

    async with operation_context("chat_request", context={"message_length": len(args.message)}):
        async with ChatTransportClient.from_configuration(config) as client:
            streaming = client.streaming_enabled if args.streaming is None else args.streaming
            if streaming:
                ok = await stream_message(client, payload, args.endpoint)
            else:
                ok = await poll_message(client, payload, args.endpoint, args.interval)

    return 0 if ok else 1


def cli() -> None:
    """Console script wrapper."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
