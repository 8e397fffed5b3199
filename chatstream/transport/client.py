"""
Chat transport client: streaming with a polling fallback over one HTTP pool.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx

from ..logging_utils import get_logger
from .models import StreamCallbacks
from .polling.loop import MessageCallback, PollFallbackLoop, StopHandle
from .streaming.coordinator import CancellationHandle, StreamCoordinator

if TYPE_CHECKING:
    from ..config import Configuration

logger = get_logger(__name__)


class ChatTransportClient:
    """
    Owns the shared httpx client and the two delivery strategies.

    Features:
    - Streaming sessions through StreamCoordinator
    - Polling sessions through PollFallbackLoop
    - Combined statistics for monitoring
    """

    def __init__(
        self,
        http_config: dict[str, Any],
        streaming_config: dict[str, Any],
        polling_config: dict[str, Any],
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.http_config = http_config
        self.streaming_config = streaming_config
        self.polling_config = polling_config

        self.client = httpx.AsyncClient(
            base_url=http_config["base_url"],
            timeout=httpx.Timeout(
                connect=http_config["connect_timeout"],
                read=http_config["read_timeout"],
                write=http_config["write_timeout"],
                pool=http_config["pool_timeout"],
            ),
            limits=httpx.Limits(
                max_connections=http_config["max_connections"],
                max_keepalive_connections=http_config["max_keepalive"],
            ),
            transport=transport,
        )

        self.coordinator = StreamCoordinator(
            self.client,
            method=streaming_config["method"],
            payload_encoding=streaming_config["payload_encoding"],
        )
        self.poller = PollFallbackLoop(
            self.client,
            method=polling_config["method"],
            payload_encoding=polling_config["payload_encoding"],
            cursor_field=polling_config["cursor_field"],
            interval=polling_config["interval"],
        )

    @classmethod
    def from_configuration(
        cls,
        config: Configuration,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ChatTransportClient:
        """Build a client from validated configuration sections."""
        return cls(
            config.get_http_client_config(),
            config.get_streaming_config(),
            config.get_polling_config(),
            transport=transport,
        )

    @property
    def streaming_enabled(self) -> bool:
        return bool(self.streaming_config["enabled"])

    def stream(
        self,
        payload: dict[str, Any],
        callbacks: StreamCallbacks,
        endpoint: str | None = None,
    ) -> CancellationHandle:
        """Open a streaming session against the configured endpoint."""
        return self.coordinator.open(
            endpoint or self.streaming_config["endpoint"], payload, callbacks
        )

    def poll(
        self,
        payload: dict[str, Any],
        on_message: MessageCallback,
        endpoint: str | None = None,
        interval: float | None = None,
    ) -> StopHandle:
        """Start a polling session against the configured endpoint."""
        return self.poller.start(
            endpoint or self.polling_config["endpoint"], payload, on_message, interval
        )

    def get_statistics(self) -> dict[str, Any]:
        """Get combined transport statistics."""
        return {
            "base_url": str(self.client.base_url),
            "streaming": self.coordinator.get_stats(),
            "polling": self.poller.get_stats(),
        }

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
        logger.debug("Transport client closed", **self.get_statistics())

    async def __aenter__(self) -> ChatTransportClient:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
