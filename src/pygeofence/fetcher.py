"""Single-flight position fetcher with a short freshness cache.

There is exactly one notion of "current position" per process: concurrent
callers share one in-flight hardware read, and a fix younger than
``cache_ttl_s`` is served without touching the hardware at all.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass

from pygeofence.config import GeofenceConfig
from pygeofence.models.sample import LocationSample
from pygeofence.source import PositionSource

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _CachedFix:
    sample: LocationSample
    stored_at: float


class SingleFlightFetcher:
    """Deduplicates concurrent :meth:`fetch` calls onto one hardware read.

    :meth:`exclusive` grants one holder (a calibration session) sole use
    of the hardware; :meth:`fetch` callers arriving meanwhile wait until
    it is released.
    """

    def __init__(
        self,
        source: PositionSource,
        config: GeofenceConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._source = source
        self._ttl_s = config.cache_ttl_s
        self._clock = clock
        self._cache: _CachedFix | None = None
        self._inflight: asyncio.Future[LocationSample] | None = None
        self._exclusive = asyncio.Lock()

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def cache_age_s(self) -> float | None:
        if self._cache is None:
            return None
        return self._clock() - self._cache.stored_at

    @property
    def cache_valid(self) -> bool:
        age = self.cache_age_s()
        return age is not None and age < self._ttl_s

    def invalidate(self) -> None:
        """Drop the cached fix so the next :meth:`fetch` reads the hardware."""
        if self._cache is not None:
            _logger.debug("Position cache invalidated")
        self._cache = None

    def _store(self, sample: LocationSample) -> LocationSample:
        self._cache = _CachedFix(sample=sample, stored_at=self._clock())
        return sample

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def fetch(self) -> LocationSample:
        """Current position: cached, shared with an in-flight read, or freshly read."""
        if self._exclusive.locked():
            _logger.debug("Waiting for exclusive hardware holder to finish")
            async with self._exclusive:
                pass

        if self._cache is not None and self.cache_valid:
            _logger.debug("Serving cached fix age=%.1fs", self.cache_age_s())
            return self._cache.sample

        inflight = self._inflight
        if inflight is None:
            inflight = asyncio.ensure_future(self._read())
            inflight.add_done_callback(self._clear_inflight)
            self._inflight = inflight
        else:
            _logger.debug("Joining in-flight position request")
        # Shield so one caller's cancellation doesn't abort everyone's read.
        return await asyncio.shield(inflight)

    async def _read(self) -> LocationSample:
        sample = await self._source.get_once()
        return self._store(sample)

    def _clear_inflight(self, future: asyncio.Future[LocationSample]) -> None:
        if self._inflight is future:
            self._inflight = None
        if not future.cancelled():
            # Mark the exception retrieved; every waiter already received it.
            future.exception()

    async def read_fresh(self) -> LocationSample:
        """Read the hardware now, bypassing the cache; for the exclusive holder."""
        return self._store(await self._source.get_once())

    @contextlib.asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        """Hold the hardware exclusively, after any in-flight read settles."""
        async with self._exclusive:
            inflight = self._inflight
            if inflight is not None:
                await asyncio.wait([inflight])
            yield
