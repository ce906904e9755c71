from __future__ import annotations

import asyncio

import pytest

from pygeofence.config import GeofenceConfig
from pygeofence.exceptions import PositionPermissionDeniedError
from pygeofence.fetcher import SingleFlightFetcher
from pygeofence.models.sample import LocationSample
from pygeofence.providers.static import StaticPositionProvider
from pygeofence.source import PositionSource


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _sample(accuracy: float = 8.0) -> LocationSample:
    return LocationSample(latitude=0.0, longitude=0.0, accuracy_meters=accuracy, captured_at_ms=0)


def _fetcher(provider: StaticPositionProvider, clock: _Clock | None = None) -> SingleFlightFetcher:
    config = GeofenceConfig()
    source = PositionSource(provider, config)
    return SingleFlightFetcher(source, config, clock=clock or _Clock())


@pytest.mark.asyncio
async def test_concurrent_fetches_share_one_hardware_read() -> None:
    provider = StaticPositionProvider([_sample()], delay_s=0.01)
    fetcher = _fetcher(provider)

    results = await asyncio.gather(*(fetcher.fetch() for _ in range(5)))

    assert provider.reads == 1
    assert all(result is results[0] for result in results)


@pytest.mark.asyncio
async def test_cache_served_within_ttl_and_refreshed_after() -> None:
    clock = _Clock()
    provider = StaticPositionProvider([_sample(8.0), _sample(6.0)])
    fetcher = _fetcher(provider, clock)

    first = await fetcher.fetch()
    clock.now += 29.0
    assert await fetcher.fetch() is first
    assert fetcher.cache_valid
    assert fetcher.cache_age_s() == pytest.approx(29.0)
    assert provider.reads == 1

    clock.now += 2.0
    assert not fetcher.cache_valid
    second = await fetcher.fetch()
    assert second.accuracy_meters == 6.0
    assert provider.reads == 2


@pytest.mark.asyncio
async def test_invalidate_forces_hardware_read() -> None:
    provider = StaticPositionProvider([_sample()])
    fetcher = _fetcher(provider)

    await fetcher.fetch()
    fetcher.invalidate()
    assert fetcher.cache_age_s() is None
    await fetcher.fetch()

    assert provider.reads == 2


@pytest.mark.asyncio
async def test_errors_are_shared_but_not_cached() -> None:
    provider = StaticPositionProvider([PositionPermissionDeniedError(), _sample()], delay_s=0.01)
    fetcher = _fetcher(provider)

    results = await asyncio.gather(fetcher.fetch(), fetcher.fetch(), return_exceptions=True)

    assert all(isinstance(result, PositionPermissionDeniedError) for result in results)
    assert provider.reads == 1

    sample = await fetcher.fetch()
    assert sample.accuracy_meters == 8.0
    assert provider.reads == 2


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_abort_shared_read() -> None:
    provider = StaticPositionProvider([_sample()], delay_s=0.02)
    fetcher = _fetcher(provider)

    first = asyncio.create_task(fetcher.fetch())
    second = asyncio.create_task(fetcher.fetch())
    await asyncio.sleep(0)
    first.cancel()

    sample = await second
    assert sample.accuracy_meters == 8.0
    assert first.cancelled()
    assert provider.reads == 1


@pytest.mark.asyncio
async def test_fetch_waits_for_exclusive_holder() -> None:
    provider = StaticPositionProvider([_sample(20.0), _sample(9.0)])
    fetcher = _fetcher(provider)

    async with fetcher.exclusive():
        waiting = asyncio.create_task(fetcher.fetch())
        held = await fetcher.read_fresh()
        await asyncio.sleep(0.01)
        assert not waiting.done()

    # The exclusive holder's fresh read populated the cache.
    assert await waiting is held
    assert provider.reads == 1
