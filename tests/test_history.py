from __future__ import annotations

import pytest

from pygeofence.config import GeofenceConfig
from pygeofence.geo import destination
from pygeofence.history import LastMatchStore, SiteChangeDetector, last_match_key
from pygeofence.models.geofence import Geofence
from pygeofence.models.sample import Coordinate, LocationSample
from pygeofence.storage import MemoryKeyValueStore

SITE_A = Geofence(id="a", latitude=0.0, longitude=0.0, base_radius_meters=300.0)
SITE_B = Geofence(id="b", latitude=0.01, longitude=0.0, base_radius_meters=50.0)


def _sample(point: Coordinate) -> LocationSample:
    return LocationSample(latitude=point.latitude, longitude=point.longitude, accuracy_meters=10.0, captured_at_ms=0)


def _detector(backend: MemoryKeyValueStore, subject_id: str = "worker-1") -> SiteChangeDetector:
    return SiteChangeDetector(LastMatchStore(backend, subject_id), GeofenceConfig(), wall_clock=lambda: 42)


@pytest.mark.asyncio
async def test_first_match_is_not_a_change() -> None:
    detector = _detector(MemoryKeyValueStore())

    change = await detector.detect(SITE_A, _sample(SITE_A))

    assert not change.changed
    assert change.previous_geofence_id is None
    assert change.displacement_m is None


@pytest.mark.asyncio
async def test_jitter_within_same_site_is_not_a_change() -> None:
    detector = _detector(MemoryKeyValueStore())
    await detector.record(SITE_A, _sample(SITE_A))

    change = await detector.detect(SITE_A, _sample(destination(SITE_A, 45.0, 60.0)))

    assert not change.changed
    assert change.displacement_m == pytest.approx(60.0, abs=0.01)


@pytest.mark.asyncio
async def test_different_site_is_a_change() -> None:
    detector = _detector(MemoryKeyValueStore())
    await detector.record(SITE_A, _sample(SITE_A))

    change = await detector.detect(SITE_B, _sample(SITE_B))

    assert change.changed
    assert change.previous_geofence_id == "a"
    assert change.displacement_m == pytest.approx(1111.95, abs=0.1)


@pytest.mark.asyncio
async def test_large_move_within_same_site_is_a_change() -> None:
    detector = _detector(MemoryKeyValueStore())
    await detector.record(SITE_A, _sample(SITE_A))

    change = await detector.detect(SITE_A, _sample(destination(SITE_A, 90.0, 250.0)))

    assert change.changed
    assert change.previous_geofence_id == "a"


@pytest.mark.asyncio
async def test_record_persists_under_subject_key_and_reset_clears() -> None:
    backend = MemoryKeyValueStore()
    detector = _detector(backend)

    await detector.record(SITE_A, _sample(SITE_A))
    assert backend.keys() == [last_match_key("worker-1")]

    last = await detector.last_match()
    assert last is not None
    assert last.geofence_id == "a"
    assert last.matched_at_ms == 42

    # Another subject sharing the backend sees nothing.
    assert await _detector(backend, "worker-2").last_match() is None

    await detector.reset()
    assert await detector.last_match() is None
    assert backend.keys() == []
