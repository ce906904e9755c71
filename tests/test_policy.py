from __future__ import annotations

import pytest

from pygeofence.config import GeofenceConfig
from pygeofence.models.validation import GpsQuality
from pygeofence.policy import (
    adaptive_radius,
    blended_confidence,
    classify_quality,
    gps_confidence,
    margin_confidence,
)

CONFIG = GeofenceConfig()


@pytest.mark.parametrize(
    ("base", "accuracy", "expected"),
    [
        (50.0, 10.0, 50.0),
        (50.0, 15.0, 50.0),
        (50.0, 30.0, 75.0),
        (50.0, 35.0, 75.0),
        (50.0, 60.0, 100.0),
        # Additive caps win for large sites.
        (300.0, 30.0, 400.0),
        (300.0, 60.0, 500.0),
    ],
)
def test_adaptive_radius_bands(base: float, accuracy: float, expected: float) -> None:
    assert adaptive_radius(base, accuracy, CONFIG) == pytest.approx(expected)


@pytest.mark.parametrize("base", [5.0, 50.0, 100.0, 250.0, 1000.0])
def test_adaptive_radius_is_bounded_and_non_decreasing(base: float) -> None:
    previous = 0.0
    for accuracy in range(0, 300):
        radius = adaptive_radius(base, float(accuracy), CONFIG)
        assert radius >= base
        assert radius <= base + CONFIG.low_expand_cap_m
        assert radius >= previous
        previous = radius


def test_adaptive_radius_respects_configured_bands() -> None:
    config = GeofenceConfig(high_accuracy_m=10.0, medium_accuracy_m=20.0)
    assert adaptive_radius(50.0, 12.0, config) == pytest.approx(75.0)
    assert adaptive_radius(50.0, 25.0, config) == pytest.approx(100.0)


@pytest.mark.parametrize(
    ("accuracy", "quality"),
    [
        (5.0, GpsQuality.EXCELLENT),
        (20.0, GpsQuality.GOOD),
        (80.0, GpsQuality.FAIR),
        (150.0, GpsQuality.POOR),
    ],
)
def test_classify_quality(accuracy: float, quality: GpsQuality) -> None:
    assert classify_quality(accuracy, CONFIG) == quality


def test_gps_confidence_penalty_steepens_after_knee() -> None:
    assert gps_confidence(0.0, CONFIG) == pytest.approx(1.0)
    assert gps_confidence(20.0, CONFIG) == pytest.approx(0.9)
    assert gps_confidence(30.0, CONFIG) == pytest.approx(0.8)
    assert gps_confidence(110.0, CONFIG) == pytest.approx(0.0)
    assert gps_confidence(500.0, CONFIG) == 0.0

    below = gps_confidence(10.0, CONFIG) - gps_confidence(20.0, CONFIG)
    above = gps_confidence(20.0, CONFIG) - gps_confidence(30.0, CONFIG)
    assert above > below


def test_margin_confidence() -> None:
    assert margin_confidence(0.0, 50.0) == pytest.approx(1.0)
    assert margin_confidence(25.0, 50.0) == pytest.approx(0.5)
    assert margin_confidence(50.0, 50.0) == pytest.approx(0.0)
    assert margin_confidence(80.0, 50.0) == 0.0
    assert margin_confidence(0.0, 0.0) == 0.0


def test_blended_confidence() -> None:
    centred = blended_confidence(10.0, CONFIG, distance_m=0.0, applied_radius_m=50.0)
    assert centred == pytest.approx(0.6 * 0.95 + 0.4)

    unmatched = blended_confidence(10.0, CONFIG)
    assert unmatched == pytest.approx(0.6 * 0.95)

    edge = blended_confidence(10.0, CONFIG, distance_m=50.0, applied_radius_m=50.0)
    assert edge < CONFIG.confidence_threshold
