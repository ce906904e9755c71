"""Data models for pygeofence."""

from pygeofence.models._base import GeoBaseModel
from pygeofence.models.calibration import (
    CalibrationOutcome,
    CalibrationPhase,
    CalibrationProgress,
    CalibrationRecord,
    CalibrationSessionState,
)
from pygeofence.models.geofence import Geofence
from pygeofence.models.sample import Coordinate, LocationSample
from pygeofence.models.state import EngineStats, LastMatch
from pygeofence.models.validation import GpsQuality, ValidationReason, ValidationResult

__all__ = [
    "CalibrationOutcome",
    "CalibrationPhase",
    "CalibrationProgress",
    "CalibrationRecord",
    "CalibrationSessionState",
    "Coordinate",
    "EngineStats",
    "GeoBaseModel",
    "Geofence",
    "GpsQuality",
    "LastMatch",
    "LocationSample",
    "ValidationReason",
    "ValidationResult",
]
