"""Per-geofence GPS calibration."""

from pygeofence.calibration.engine import (
    CalibrationEngine,
    CalibrationSession,
    select_samples,
    weighted_centroid,
)
from pygeofence.calibration.store import CalibrationStore

__all__ = [
    "CalibrationEngine",
    "CalibrationSession",
    "CalibrationStore",
    "select_samples",
    "weighted_centroid",
]
