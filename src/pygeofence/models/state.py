"""Cross-call engine state records."""

from __future__ import annotations

from pygeofence.config import Environment
from pygeofence.models._base import GeoBaseModel
from pygeofence.models.sample import Coordinate


class LastMatch(Coordinate):
    """Last successfully matched geofence and the raw fix that matched it."""

    geofence_id: str
    matched_at_ms: int


class EngineStats(GeoBaseModel):
    """Diagnostic snapshot of an engine instance."""

    environment: Environment
    cache_valid: bool
    cache_age_s: float | None = None
    calibration_active: bool = False
    active_subscriptions: int = 0
    last_match: LastMatch | None = None
