"""Geofence resolution: which registered site, if any, a fix falls into."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from pygeofence.config import GeofenceConfig
from pygeofence.geo import distance_meters
from pygeofence.models.calibration import CalibrationRecord
from pygeofence.models.geofence import Geofence
from pygeofence.models.sample import Coordinate, LocationSample
from pygeofence.policy import adaptive_radius
from pygeofence.providers.base import now_ms

_logger = logging.getLogger(__name__)

CalibrationLookup = Callable[[str], Awaitable[CalibrationRecord | None]]


@dataclass(frozen=True, slots=True)
class Candidate:
    """One active geofence evaluated against a (possibly calibrated) fix."""

    geofence: Geofence
    distance_m: float
    applied_radius_m: float
    accuracy_m: float
    calibration_applied: bool

    @property
    def contains(self) -> bool:
        return self.distance_m <= self.applied_radius_m


@dataclass(frozen=True, slots=True)
class Matched:
    geofence: Geofence
    distance_m: float
    applied_radius_m: float
    accuracy_m: float
    calibration_applied: bool


@dataclass(frozen=True, slots=True)
class NoMatch:
    """No geofence contains the fix; ``closest`` is surfaced for feedback."""

    closest: Geofence | None = None
    closest_distance_m: float | None = None
    applied_radius_m: float | None = None
    calibration_applied: bool = False


ResolutionOutcome = Matched | NoMatch


async def _no_calibration(_geofence_id: str) -> CalibrationRecord | None:
    return None


class GeofenceResolver:
    """Applies per-site calibration and the adaptive radius rule to pick a site."""

    def __init__(self, config: GeofenceConfig, *, wall_clock: Callable[[], int] = now_ms) -> None:
        self._config = config
        self._wall_clock = wall_clock

    def exceeds_ceiling(self, sample: LocationSample) -> bool:
        """Whether the fix is too poor to compare against any radius."""
        return sample.accuracy_meters > self._config.accuracy_ceiling_m

    async def evaluate(
        self,
        sample: LocationSample,
        geofence: Geofence,
        calibration_lookup: CalibrationLookup = _no_calibration,
    ) -> Candidate:
        position: Coordinate = sample
        accuracy = sample.accuracy_meters
        applied = False

        record = await calibration_lookup(geofence.id)
        if record is not None and not record.is_expired(self._wall_clock()):
            position = record.apply(sample)
            accuracy = min(sample.accuracy_meters, record.achieved_accuracy_meters)
            applied = True

        return Candidate(
            geofence=geofence,
            distance_m=distance_meters(position, geofence),
            applied_radius_m=adaptive_radius(geofence.base_radius_meters, accuracy, self._config),
            accuracy_m=accuracy,
            calibration_applied=applied,
        )

    async def resolve(
        self,
        sample: LocationSample,
        geofences: Sequence[Geofence],
        calibration_lookup: CalibrationLookup = _no_calibration,
    ) -> ResolutionOutcome:
        """Closest containing active geofence, else the closest one overall."""
        best: Candidate | None = None
        closest: Candidate | None = None

        for geofence in geofences:
            if not geofence.active:
                continue
            candidate = await self.evaluate(sample, geofence, calibration_lookup)
            _logger.debug(
                "Candidate %s distance=%.1fm radius=%.1fm calibrated=%s",
                geofence.id,
                candidate.distance_m,
                candidate.applied_radius_m,
                candidate.calibration_applied,
            )
            if closest is None or candidate.distance_m < closest.distance_m:
                closest = candidate
            if candidate.contains and (best is None or candidate.distance_m < best.distance_m):
                best = candidate

        if best is not None:
            return Matched(
                geofence=best.geofence,
                distance_m=best.distance_m,
                applied_radius_m=best.applied_radius_m,
                accuracy_m=best.accuracy_m,
                calibration_applied=best.calibration_applied,
            )
        if closest is None:
            return NoMatch()
        return NoMatch(
            closest=closest.geofence,
            closest_distance_m=closest.distance_m,
            applied_radius_m=closest.applied_radius_m,
            calibration_applied=closest.calibration_applied,
        )
