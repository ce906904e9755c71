"""Calibration records, session state and outcomes."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from pygeofence.exceptions import PositionErrorKind
from pygeofence.models._base import GeoBaseModel
from pygeofence.models.sample import Coordinate


class CalibrationRecord(GeoBaseModel):
    """Learned offset between raw GPS output and a geofence's true coordinate.

    ``offset_latitude``/``offset_longitude`` are added to raw fixes taken
    near the geofence. A record is never applied at or past
    ``expires_at_ms``.
    """

    geofence_id: str
    offset_latitude: float
    offset_longitude: float
    achieved_accuracy_meters: float = Field(ge=0.0)
    created_at_ms: int
    expires_at_ms: int
    sessions_used: int = 1

    def is_expired(self, now_ms: int) -> bool:
        return now_ms >= self.expires_at_ms

    def apply(self, point: Coordinate) -> Coordinate:
        """Shift *point* by this record's offset."""
        return Coordinate(
            latitude=point.latitude + self.offset_latitude,
            longitude=point.longitude + self.offset_longitude,
        )


class CalibrationPhase(StrEnum):
    IDLE = "idle"
    SAMPLING = "sampling"
    COMPUTING = "computing"
    DONE = "done"
    FAILED = "failed"


class CalibrationSessionState(GeoBaseModel):
    """Snapshot of one calibration session's progress."""

    phase: CalibrationPhase = CalibrationPhase.IDLE
    samples_collected: int = 0
    samples_target: int
    best_accuracy_so_far: float | None = None

    @property
    def in_progress(self) -> bool:
        return self.phase in (CalibrationPhase.SAMPLING, CalibrationPhase.COMPUTING)


class CalibrationProgress(GeoBaseModel):
    """Progress report emitted after every collected sample."""

    samples_collected: int
    samples_target: int
    last_accuracy_meters: float
    best_accuracy_meters: float

    @property
    def percent(self) -> float:
        return 100.0 * self.samples_collected / self.samples_target


class CalibrationOutcome(GeoBaseModel):
    """Result of a finished (or aborted) calibration session.

    ``record`` is only present when a target coordinate was supplied and
    the session completed; otherwise ``centroid`` is the calibrated fix.
    """

    success: bool
    geofence_id: str | None = None
    centroid: Coordinate | None = None
    record: CalibrationRecord | None = None
    samples_used: int = 0
    best_accuracy_meters: float | None = None
    error: PositionErrorKind | None = None
    store_error: bool = False
    store_key: str | None = None
    cancelled: bool = False
    message: str = ""
