"""Typed calibration persistence on top of a :class:`KeyValueStore`."""

from __future__ import annotations

import logging
from collections.abc import Callable

from pydantic import ValidationError

from pygeofence.exceptions import StoreError
from pygeofence.models.calibration import CalibrationRecord
from pygeofence.providers.base import now_ms
from pygeofence.storage import KeyValueStore

_logger = logging.getLogger(__name__)

_KEY_PREFIX = "calibration:"


def calibration_key(geofence_id: str) -> str:
    return f"{_KEY_PREFIX}{geofence_id}"


class CalibrationStore:
    """One :class:`CalibrationRecord` per geofence id.

    Expiry is enforced on read: an expired record is never returned and
    is deleted as a side effect.
    """

    def __init__(self, backend: KeyValueStore, *, wall_clock: Callable[[], int] = now_ms) -> None:
        self._backend = backend
        self._wall_clock = wall_clock

    async def get(self, geofence_id: str) -> CalibrationRecord | None:
        key = calibration_key(geofence_id)
        raw = await self._backend.get(key)
        if raw is None:
            return None
        try:
            record = CalibrationRecord.model_validate(raw)
        except ValidationError as exc:
            raise StoreError(f"Undecodable calibration record for {geofence_id!r}", key=key) from exc

        if record.is_expired(self._wall_clock()):
            _logger.debug("Evicting expired calibration geofence=%s", geofence_id)
            await self._backend.delete(key)
            return None
        return record

    async def put(self, record: CalibrationRecord) -> None:
        """Store *record*, replacing any prior record for its geofence."""
        await self._backend.put(calibration_key(record.geofence_id), record.to_storage())
        _logger.debug(
            "Stored calibration geofence=%s accuracy=%.1fm sessions=%d",
            record.geofence_id,
            record.achieved_accuracy_meters,
            record.sessions_used,
        )

    async def delete(self, geofence_id: str) -> None:
        await self._backend.delete(calibration_key(geofence_id))
