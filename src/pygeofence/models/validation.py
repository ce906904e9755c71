"""Validation results handed back to the application."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from pygeofence.config import Environment
from pygeofence.exceptions import PositionErrorKind
from pygeofence.models._base import GeoBaseModel
from pygeofence.models.geofence import Geofence
from pygeofence.models.sample import LocationSample


class GpsQuality(StrEnum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class ValidationReason(StrEnum):
    ACCEPTED = "accepted"
    LOW_CONFIDENCE = "low_confidence"
    NO_MATCH = "no_match"
    LOW_ACCURACY = "low_accuracy"
    NO_GEOFENCES = "no_geofences"
    HARDWARE = "hardware"
    STORE = "store"


class ValidationResult(GeoBaseModel):
    """Outcome of one :meth:`GeofenceEngine.validate` call.

    When ``accepted`` is false, ``matched_geofence`` (if present) is the
    closest candidate surfaced for feedback, not a match; use
    :attr:`closest_geofence` to read it unambiguously.
    """

    accepted: bool
    reason: ValidationReason
    message: str = ""
    sample: LocationSample | None = None
    matched_geofence: Geofence | None = None
    distance_meters: float | None = None
    applied_radius_meters: float | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    quality: GpsQuality | None = None
    calibration_applied: bool = False
    site_changed: bool = False
    previous_geofence_id: str | None = None
    needs_calibration: bool = False
    error: PositionErrorKind | None = None
    hint: str | None = None
    store_key: str | None = None
    environment: Environment = Environment.MOBILE

    @property
    def closest_geofence(self) -> Geofence | None:
        """Surfaced candidate on rejection; ``None`` when accepted."""
        return None if self.accepted else self.matched_geofence

    @property
    def closest_distance_meters(self) -> float | None:
        return None if self.accepted else self.distance_meters
