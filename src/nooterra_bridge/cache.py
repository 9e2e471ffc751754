"""Time-bounded cache of capabilities discovered through the coordinator.

Refresh is best-effort: a failed fetch keeps the previous list (stale but
available) and is never raised to callers of :meth:`CapabilityCache.get`.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

import httpx
from pydantic import ValidationError

from .clients import CoordinatorClient
from .models import Capability
from .telemetry import trace_discovery_refresh

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 60.0
DISCOVERY_LIMIT = 50


class DiscoveryFetchFailed(Exception):
    """Raised internally when the discovery endpoint cannot be read."""


class CapabilityCache:
    """Process-wide list of discovered capabilities.

    The list is replaced wholesale on every successful refresh, never merged.
    Concurrent refreshes are tolerated: the last one to finish wins.
    """

    def __init__(
        self,
        coordinator: CoordinatorClient,
        ttl: float = CACHE_TTL_SECONDS,
        limit: int = DISCOVERY_LIMIT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._coordinator = coordinator
        self._ttl = ttl
        self._limit = limit
        self._clock = clock
        self._capabilities: tuple[Capability, ...] = ()
        self._fetched_at: float | None = None

    async def get(self) -> tuple[Capability, ...]:
        """Return cached capabilities, refreshing first if stale or empty."""
        if self._is_fresh():
            return self._capabilities
        try:
            await self.refresh()
        except DiscoveryFetchFailed as exc:
            logger.warning("Capability discovery failed, serving cached list: %s", exc)
        return self._capabilities

    async def refresh(self) -> tuple[Capability, ...]:
        """Fetch the capability list and replace the cache.

        Raises:
            DiscoveryFetchFailed: On transport errors, non-success responses
                or an unreadable body. The cache is left untouched.
        """
        with trace_discovery_refresh() as span:
            try:
                resp = await self._coordinator.discover(self._limit)
            except httpx.HTTPError as e:
                raise DiscoveryFetchFailed(f"transport error: {e}") from e

            if not resp.is_success:
                raise DiscoveryFetchFailed(f"HTTP {resp.status_code}: {resp.text}")

            try:
                body = resp.json()
            except ValueError as e:
                raise DiscoveryFetchFailed("response body is not JSON") from e
            if not isinstance(body, dict):
                raise DiscoveryFetchFailed("response body is not a JSON object")

            capabilities = tuple(_parse_results(body.get("results") or []))
            # Single assignment pair after the await: readers never see a partial list.
            self._capabilities = capabilities
            self._fetched_at = self._clock()
            span.set_attribute("discovery.count", len(capabilities))

        logger.info("Discovered %d capabilities", len(capabilities))
        return capabilities

    def invalidate(self) -> None:
        """Force the next :meth:`get` to refresh. Cached entries stay available."""
        self._fetched_at = None

    def snapshot(self) -> tuple[Capability, ...]:
        """Current contents without any network call."""
        return self._capabilities

    @property
    def fetched_at(self) -> float | None:
        return self._fetched_at

    def _is_fresh(self) -> bool:
        if not self._capabilities or self._fetched_at is None:
            return False
        return self._clock() - self._fetched_at < self._ttl


def _parse_results(results: list) -> list[Capability]:
    parsed: list[Capability] = []
    for entry in results:
        if not isinstance(entry, dict):
            logger.warning("Skipping malformed discovery entry: %r", entry)
            continue
        try:
            parsed.append(Capability.from_discovery(entry))
        except ValidationError as e:
            logger.warning(
                "Skipping discovery entry %r: %s",
                entry.get("capabilityId"),
                e.errors()[0]["msg"] if e.errors() else e,
            )
    return parsed
