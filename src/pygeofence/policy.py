"""Deterministic acceptance policy.

This module contains *no* I/O and no state. It turns accuracy figures and
distances into radii, quality classes and confidence scores; the resolver
and engine decide what to do with them.
"""

from __future__ import annotations

from pygeofence.config import GeofenceConfig
from pygeofence.models.validation import GpsQuality


def adaptive_radius(base_radius_m: float, accuracy_m: float, config: GeofenceConfig) -> float:
    """Effective acceptance radius for a fix of the given accuracy.

    Never smaller than *base_radius_m*, non-decreasing in *accuracy_m*,
    and never more than ``low_expand_cap_m`` above the base radius.
    """
    if accuracy_m <= config.high_accuracy_m:
        return base_radius_m
    if accuracy_m <= config.medium_accuracy_m:
        return min(base_radius_m * config.medium_expand_factor, base_radius_m + config.medium_expand_cap_m)
    return min(base_radius_m * config.low_expand_factor, base_radius_m + config.low_expand_cap_m)


def classify_quality(accuracy_m: float, config: GeofenceConfig) -> GpsQuality:
    if accuracy_m <= config.high_accuracy_m:
        return GpsQuality.EXCELLENT
    if accuracy_m <= config.medium_accuracy_m:
        return GpsQuality.GOOD
    if accuracy_m <= config.accuracy_ceiling_m:
        return GpsQuality.FAIR
    return GpsQuality.POOR


def gps_confidence(accuracy_m: float, config: GeofenceConfig) -> float:
    """Confidence in the fix itself, from 1.0 (perfect) down to 0.0.

    Loses 0.005 per metre up to the knee (0.9 at the default 20 m), then
    0.01 per metre beyond it, reaching zero at 110 m with defaults.
    """
    knee = config.confidence_knee_m
    if accuracy_m <= knee:
        score = 1.0 - 0.005 * accuracy_m
    else:
        score = (1.0 - 0.005 * knee) - 0.01 * (accuracy_m - knee)
    return _clamp(score)


def margin_confidence(distance_m: float, applied_radius_m: float) -> float:
    """How comfortably inside the radius the fix is: 1.0 at the centre, 0.0 at the edge."""
    if applied_radius_m <= 0:
        return 0.0
    return _clamp(1.0 - distance_m / applied_radius_m)


def blended_confidence(
    accuracy_m: float,
    config: GeofenceConfig,
    *,
    distance_m: float | None = None,
    applied_radius_m: float | None = None,
) -> float:
    """Blend GPS-quality and margin-to-radius confidence.

    Without a match (no distance/radius) the margin term counts as zero.
    """
    weight = config.gps_confidence_weight
    margin = 0.0
    if distance_m is not None and applied_radius_m is not None:
        margin = margin_confidence(distance_m, applied_radius_m)
    return _clamp(weight * gps_confidence(accuracy_m, config) + (1.0 - weight) * margin)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))
