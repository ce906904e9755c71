"""Mobile-worker change detection.

Remembers the last successfully matched geofence and the raw fix behind it
so a new acceptance can be labelled as a genuine relocation ("you moved
from Site A to Site B") instead of being treated as an anomaly. Purely
advisory: nothing here ever blocks acceptance.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from pydantic import ValidationError

from pygeofence.config import GeofenceConfig
from pygeofence.exceptions import StoreError
from pygeofence.geo import distance_meters
from pygeofence.models.geofence import Geofence
from pygeofence.models.sample import LocationSample
from pygeofence.models.state import LastMatch
from pygeofence.providers.base import now_ms
from pygeofence.storage import KeyValueStore

_logger = logging.getLogger(__name__)


def last_match_key(subject_id: str) -> str:
    return f"last-match:{subject_id}"


class LastMatchStore:
    """Persists the :class:`LastMatch` record of one subject (user/device)."""

    def __init__(self, backend: KeyValueStore, subject_id: str) -> None:
        self._backend = backend
        self._key = last_match_key(subject_id)

    async def get(self) -> LastMatch | None:
        raw = await self._backend.get(self._key)
        if raw is None:
            return None
        try:
            return LastMatch.model_validate(raw)
        except ValidationError as exc:
            raise StoreError("Undecodable last-match record", key=self._key) from exc

    async def put(self, record: LastMatch) -> None:
        await self._backend.put(self._key, record.to_storage())

    async def clear(self) -> None:
        await self._backend.delete(self._key)


@dataclass(frozen=True, slots=True)
class SiteChange:
    changed: bool
    previous_geofence_id: str | None = None
    displacement_m: float | None = None


class SiteChangeDetector:
    """Flags a new match as a site change versus the last recorded match."""

    def __init__(
        self,
        store: LastMatchStore,
        config: GeofenceConfig,
        *,
        wall_clock: Callable[[], int] = now_ms,
    ) -> None:
        self._store = store
        self._threshold_m = config.site_change_threshold_m
        self._wall_clock = wall_clock

    async def last_match(self) -> LastMatch | None:
        return await self._store.get()

    async def detect(self, geofence: Geofence, sample: LocationSample) -> SiteChange:
        """Compare a new match against the recorded one without updating it."""
        previous = await self._store.get()
        if previous is None:
            return SiteChange(changed=False)

        displacement = distance_meters(previous, sample)
        if previous.geofence_id != geofence.id:
            _logger.debug("Site change %s -> %s", previous.geofence_id, geofence.id)
            return SiteChange(changed=True, previous_geofence_id=previous.geofence_id, displacement_m=displacement)
        if displacement > self._threshold_m:
            _logger.debug("Relocation within %s: %.0fm", geofence.id, displacement)
            return SiteChange(changed=True, previous_geofence_id=previous.geofence_id, displacement_m=displacement)
        return SiteChange(changed=False, displacement_m=displacement)

    async def record(self, geofence: Geofence, sample: LocationSample) -> None:
        """Remember *geofence* and the raw fix as the last successful match."""
        await self._store.put(
            LastMatch(
                geofence_id=geofence.id,
                latitude=sample.latitude,
                longitude=sample.longitude,
                matched_at_ms=self._wall_clock(),
            )
        )

    async def reset(self) -> None:
        await self._store.clear()
