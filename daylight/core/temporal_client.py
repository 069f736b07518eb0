"""Temporal client connection management.

Services and the worker share a single lazily created client.
"""

from typing import Optional

from temporalio.client import Client as TemporalClient

from daylight.core.config import settings


class TemporalClientManager:
    """Lazily creates a Temporal client and keeps it around for reuse."""

    _client: Optional[TemporalClient] = None

    async def get_client(self) -> TemporalClient:
        if self._client is None:
            self._client = await TemporalClient.connect(
                f"{settings.temporal_host}:{settings.temporal_port}",
                namespace=settings.temporal_namespace,
            )
        return self._client

    async def close(self) -> None:
        """Drop the cached client. The SDK closes its connection when collected."""
        self._client = None


_temporal_manager = TemporalClientManager()


async def get_temporal_client() -> TemporalClient:
    return await _temporal_manager.get_client()


async def close_temporal_client() -> None:
    await _temporal_manager.close()
