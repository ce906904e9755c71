"""pygeofence - Async geofence validation with adaptive radii and GPS calibration."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pygeofence")
except PackageNotFoundError:
    __version__ = "0+local"
from pygeofence.calibration import CalibrationEngine, CalibrationSession, CalibrationStore
from pygeofence.config import Environment, GeofenceConfig
from pygeofence.engine import GeofenceEngine
from pygeofence.exceptions import (
    CalibrationAbortedError,
    GeofenceConfigError,
    GeofenceError,
    PositionError,
    PositionErrorKind,
    PositionPermissionDeniedError,
    PositionTimeoutError,
    PositionUnavailableError,
    PositionUnsupportedError,
    StoreError,
)
from pygeofence.geo import bearing_degrees, destination, distance_meters
from pygeofence.models import (
    CalibrationOutcome,
    CalibrationPhase,
    CalibrationProgress,
    CalibrationRecord,
    CalibrationSessionState,
    Coordinate,
    EngineStats,
    Geofence,
    GpsQuality,
    LastMatch,
    LocationSample,
    ValidationReason,
    ValidationResult,
)
from pygeofence.providers import (
    HttpPositionProvider,
    OwnTracksProvider,
    OwnTracksSettings,
    PositionProvider,
    StaticPositionProvider,
)
from pygeofence.source import Subscription
from pygeofence.storage import JsonFileKeyValueStore, KeyValueStore, MemoryKeyValueStore

__all__ = [
    "__version__",
    "CalibrationAbortedError",
    "CalibrationEngine",
    "CalibrationOutcome",
    "CalibrationPhase",
    "CalibrationProgress",
    "CalibrationRecord",
    "CalibrationSession",
    "CalibrationSessionState",
    "CalibrationStore",
    "Coordinate",
    "EngineStats",
    "Environment",
    "Geofence",
    "GeofenceConfig",
    "GeofenceConfigError",
    "GeofenceEngine",
    "GeofenceError",
    "GpsQuality",
    "HttpPositionProvider",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "LastMatch",
    "LocationSample",
    "MemoryKeyValueStore",
    "OwnTracksProvider",
    "OwnTracksSettings",
    "PositionError",
    "PositionErrorKind",
    "PositionPermissionDeniedError",
    "PositionProvider",
    "PositionTimeoutError",
    "PositionUnavailableError",
    "PositionUnsupportedError",
    "StoreError",
    "Subscription",
    "ValidationReason",
    "ValidationResult",
    "bearing_degrees",
    "destination",
    "distance_meters",
]
