from __future__ import annotations

import pytest

from pygeofence.calibration.store import CalibrationStore, calibration_key
from pygeofence.exceptions import StoreError
from pygeofence.models.calibration import CalibrationRecord
from pygeofence.storage import MemoryKeyValueStore


def _record(geofence_id: str = "a", *, expires_at_ms: int = 10_000, sessions_used: int = 1) -> CalibrationRecord:
    return CalibrationRecord(
        geofence_id=geofence_id,
        offset_latitude=-0.0007,
        offset_longitude=0.0,
        achieved_accuracy_meters=9.0,
        created_at_ms=0,
        expires_at_ms=expires_at_ms,
        sessions_used=sessions_used,
    )


@pytest.mark.asyncio
async def test_put_get_and_overwrite() -> None:
    backend = MemoryKeyValueStore()
    store = CalibrationStore(backend, wall_clock=lambda: 5_000)

    assert await store.get("a") is None
    await store.put(_record())
    await store.put(_record(sessions_used=2))

    record = await store.get("a")
    assert record is not None
    assert record.sessions_used == 2
    assert backend.keys() == [calibration_key("a")]


@pytest.mark.asyncio
async def test_expired_record_is_never_returned_and_is_evicted() -> None:
    now = [5_000]
    backend = MemoryKeyValueStore()
    store = CalibrationStore(backend, wall_clock=lambda: now[0])
    await store.put(_record(expires_at_ms=10_000))

    now[0] = 9_999
    assert await store.get("a") is not None

    now[0] = 10_000
    assert await store.get("a") is None
    assert backend.keys() == []


@pytest.mark.asyncio
async def test_delete_only_affects_one_geofence() -> None:
    backend = MemoryKeyValueStore()
    store = CalibrationStore(backend, wall_clock=lambda: 0)
    await store.put(_record("a"))
    await store.put(_record("b"))

    await store.delete("a")

    assert await store.get("a") is None
    assert await store.get("b") is not None


@pytest.mark.asyncio
async def test_undecodable_record_raises_store_error() -> None:
    backend = MemoryKeyValueStore({calibration_key("a"): {"geofenceId": "a", "offsetLatitude": "north"}})
    store = CalibrationStore(backend, wall_clock=lambda: 0)

    with pytest.raises(StoreError) as exc_info:
        await store.get("a")

    assert exc_info.value.key == "calibration:a"
