"""Engine configuration for pygeofence."""

from __future__ import annotations

import dataclasses
import os
from enum import StrEnum
from typing import Any

from pygeofence.exceptions import GeofenceConfigError


class Environment(StrEnum):
    """Host platform class; selects timeout and cache presets."""

    MOBILE = "mobile"
    DESKTOP = "desktop"


def _env_float(value: str | None, key: str) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise GeofenceConfigError(f"{key} must be numeric, got {value!r}") from exc


def _env_int(value: str | None, key: str) -> int | None:
    parsed = _env_float(value, key)
    if parsed is None:
        return None
    return int(parsed)


_ENVIRONMENT_PRESETS: dict[Environment, dict[str, float]] = {
    Environment.MOBILE: {"position_timeout_s": 45.0, "cache_ttl_s": 30.0},
    Environment.DESKTOP: {"position_timeout_s": 30.0, "cache_ttl_s": 10.0},
}


@dataclasses.dataclass(frozen=True)
class GeofenceConfig:
    """Engine configuration.

    Every accuracy threshold and sample count here is a tuning knob;
    the defaults are one coherent set, not fixed constants.

    Parameters
    ----------
    environment : Environment
        Host platform class. Use :meth:`for_environment` to get the
        matching timeout/cache presets.
    position_timeout_s : float
        Upper bound for a single hardware read.
    max_age_s : float
        Oldest platform fix a read may return. ``0`` forces a fresh fix.
    timestamp_tolerance_s : float
        Slack added to the freshness check for second-resolution device
        timestamps and small clock skew between device and host.
    retry_attempts : int
        Hardware reads per :meth:`PositionSource.get_once` call.
    retry_accept_accuracy_m : float
        A fix at or below this accuracy is accepted without retrying.
    retry_backoff_s : float
        Pause between retry attempts.
    cache_ttl_s : float
        Freshness window of the single-flight position cache.
    calibration_samples : int
        Samples collected per calibration session.
    calibration_interval_s : float
        Pause between calibration samples.
    calibration_keep_best : int
        Samples kept (best accuracy first) for the weighted centroid.
    calibration_outlier_min_samples : int
        Outlier trimming only happens when more samples than this were
        collected.
    calibration_outlier_drop : int
        Number of worst-accuracy samples trimmed as outliers.
    calibration_validity_s : float
        Lifetime of a persisted calibration record.
    high_accuracy_m, medium_accuracy_m : float
        Accuracy bands of the adaptive radius rule.
    medium_expand_factor, medium_expand_cap_m : float
        Radius expansion for the medium band: ``min(base * f, base + cap)``.
    low_expand_factor, low_expand_cap_m : float
        Radius expansion above the medium band.
    accuracy_ceiling_m : float
        Fixes worse than this are rejected before resolution.
    site_change_threshold_m : float
        Raw displacement that counts as a relocation within one site.
    confidence_threshold : float
        Default minimum confidence for acceptance.
    gps_confidence_weight : float
        Share of the GPS-quality term in the confidence blend; the rest
        goes to the margin-to-radius term.
    confidence_knee_m : float
        Accuracy above which the GPS-quality confidence drops steeply.
    needs_calibration_accuracy_m : float
        Results with worse accuracy suggest a calibration to the user.
    subject_id : str
        Key of the persisted last-match record (one per user/device).
    """

    environment: Environment = Environment.MOBILE
    position_timeout_s: float = 45.0
    max_age_s: float = 0.0
    timestamp_tolerance_s: float = 1.0
    retry_attempts: int = 3
    retry_accept_accuracy_m: float = 30.0
    retry_backoff_s: float = 2.0
    cache_ttl_s: float = 30.0
    calibration_samples: int = 6
    calibration_interval_s: float = 2.0
    calibration_keep_best: int = 5
    calibration_outlier_min_samples: int = 5
    calibration_outlier_drop: int = 2
    calibration_validity_s: float = 72 * 3600
    high_accuracy_m: float = 15.0
    medium_accuracy_m: float = 35.0
    medium_expand_factor: float = 1.5
    medium_expand_cap_m: float = 100.0
    low_expand_factor: float = 2.0
    low_expand_cap_m: float = 200.0
    accuracy_ceiling_m: float = 100.0
    site_change_threshold_m: float = 200.0
    confidence_threshold: float = 0.6
    gps_confidence_weight: float = 0.6
    confidence_knee_m: float = 20.0
    needs_calibration_accuracy_m: float = 30.0
    subject_id: str = "default"

    def __post_init__(self) -> None:
        if self.position_timeout_s <= 0:
            raise GeofenceConfigError("position_timeout_s must be positive")
        if self.max_age_s < 0 or self.cache_ttl_s < 0 or self.timestamp_tolerance_s < 0:
            raise GeofenceConfigError("max_age_s, cache_ttl_s and timestamp_tolerance_s must not be negative")
        if self.retry_attempts < 1:
            raise GeofenceConfigError("retry_attempts must be at least 1")
        if self.calibration_samples < 1 or self.calibration_keep_best < 1:
            raise GeofenceConfigError("calibration_samples and calibration_keep_best must be at least 1")
        if self.calibration_validity_s <= 0:
            raise GeofenceConfigError("calibration_validity_s must be positive")
        if not 0 < self.high_accuracy_m <= self.medium_accuracy_m:
            raise GeofenceConfigError("accuracy bands must satisfy 0 < high_accuracy_m <= medium_accuracy_m")
        if self.medium_expand_factor < 1 or self.low_expand_factor < 1:
            raise GeofenceConfigError("radius expansion factors must be >= 1")
        if self.medium_expand_cap_m < 0 or self.low_expand_cap_m < self.medium_expand_cap_m:
            raise GeofenceConfigError("expansion caps must satisfy 0 <= medium_expand_cap_m <= low_expand_cap_m")
        if self.accuracy_ceiling_m <= 0:
            raise GeofenceConfigError("accuracy_ceiling_m must be positive")
        for name in ("confidence_threshold", "gps_confidence_weight"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise GeofenceConfigError(f"{name} must be within 0..1, got {value}")
        if not self.subject_id.strip():
            raise GeofenceConfigError("subject_id must be non-empty")

    @classmethod
    def for_environment(cls, environment: Environment | str, **overrides: Any) -> GeofenceConfig:
        """Create a configuration with the platform presets applied.

        Mobile hardware gets longer timeouts and a 30s position cache;
        desktop browsers get shorter ones.
        """
        env = Environment(environment)
        kwargs: dict[str, Any] = {"environment": env, **_ENVIRONMENT_PRESETS[env]}
        kwargs.update(overrides)
        return cls(**kwargs)

    @classmethod
    def from_env(cls, **overrides: Any) -> GeofenceConfig:
        """Create configuration from ``GEOFENCE_*`` environment variables.

        ``GEOFENCE_ENVIRONMENT`` selects the preset; the remaining
        variables override individual fields. Explicit keyword
        arguments take precedence over environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        GeofenceConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_FLOAT_MAP = {
            "GEOFENCE_POSITION_TIMEOUT": "position_timeout_s",
            "GEOFENCE_MAX_AGE": "max_age_s",
            "GEOFENCE_TIMESTAMP_TOLERANCE": "timestamp_tolerance_s",
            "GEOFENCE_RETRY_ACCEPT_ACCURACY": "retry_accept_accuracy_m",
            "GEOFENCE_RETRY_BACKOFF": "retry_backoff_s",
            "GEOFENCE_CACHE_TTL": "cache_ttl_s",
            "GEOFENCE_CALIBRATION_INTERVAL": "calibration_interval_s",
            "GEOFENCE_CALIBRATION_VALIDITY": "calibration_validity_s",
            "GEOFENCE_HIGH_ACCURACY": "high_accuracy_m",
            "GEOFENCE_MEDIUM_ACCURACY": "medium_accuracy_m",
            "GEOFENCE_ACCURACY_CEILING": "accuracy_ceiling_m",
            "GEOFENCE_SITE_CHANGE_THRESHOLD": "site_change_threshold_m",
            "GEOFENCE_CONFIDENCE_THRESHOLD": "confidence_threshold",
        }
        _ENV_INT_MAP = {
            "GEOFENCE_RETRY_ATTEMPTS": "retry_attempts",
            "GEOFENCE_CALIBRATION_SAMPLES": "calibration_samples",
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            parsed = _env_float(env.get(env_key), env_key)
            if parsed is not None:
                config_kwargs[field_name] = parsed
        for env_key, field_name in _ENV_INT_MAP.items():
            parsed_int = _env_int(env.get(env_key), env_key)
            if parsed_int is not None:
                config_kwargs[field_name] = parsed_int

        subject = env.get("GEOFENCE_SUBJECT_ID")
        if subject is not None:
            config_kwargs["subject_id"] = subject

        config_kwargs.update(overrides)

        environment = config_kwargs.pop("environment", None) or env.get("GEOFENCE_ENVIRONMENT", Environment.MOBILE)
        try:
            resolved = Environment(environment)
        except ValueError as exc:
            raise GeofenceConfigError(f"Unknown environment {environment!r}") from exc
        return cls.for_environment(resolved, **config_kwargs)
