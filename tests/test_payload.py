from __future__ import annotations

import pytest

from pygeofence.exceptions import PositionUnavailableError
from pygeofence.providers._payload import (
    UNKNOWN_ACCURACY_M,
    normalize_timestamp_ms,
    parse_fix_payload,
    parse_owntracks_payload,
    safe_float,
)

NOW_MS = 1_700_000_100_000


def test_safe_float() -> None:
    assert safe_float("12.5") == 12.5
    assert safe_float(3) == 3.0
    assert safe_float("") is None
    assert safe_float("north") is None
    assert safe_float(True) is None
    assert safe_float(float("nan")) is None
    assert safe_float(float("inf")) is None


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, None),
        ("", None),
        (0, None),
        (-5, None),
        (1_700_000_000, 1_700_000_000_000),
        (1_700_000_000_123, 1_700_000_000_123),
        ("1700000000.5", 1_700_000_000_500),
    ],
)
def test_normalize_timestamp_ms(value: object, expected: int | None) -> None:
    assert normalize_timestamp_ms(value) == expected


def test_parse_w3c_position() -> None:
    sample = parse_fix_payload(
        {
            "coords": {"latitude": 51.5007, "longitude": -0.1246, "accuracy": 12.0, "speed": 1.5, "heading": 90},
            "timestamp": 1_700_000_000_000,
        },
        now_ms=NOW_MS,
    )
    assert sample.latitude == 51.5007
    assert sample.longitude == -0.1246
    assert sample.accuracy_meters == 12.0
    assert sample.captured_at_ms == 1_700_000_000_000
    assert sample.speed_mps == 1.5
    assert sample.heading == 90.0


def test_parse_flat_position_with_string_values_and_seconds() -> None:
    sample = parse_fix_payload({"lat": "48.85", "lng": "2.35", "acc": "8", "ts": 1_700_000_000}, now_ms=NOW_MS)
    assert sample.latitude == 48.85
    assert sample.longitude == 2.35
    assert sample.accuracy_meters == 8.0
    assert sample.captured_at_ms == 1_700_000_000_000


def test_missing_timestamp_uses_receive_time() -> None:
    sample = parse_fix_payload({"lat": 1.0, "lon": 2.0, "accuracy": 5}, now_ms=NOW_MS)
    assert sample.captured_at_ms == NOW_MS


def test_missing_accuracy_is_treated_as_unusable() -> None:
    sample = parse_fix_payload({"lat": 1.0, "lon": 2.0}, now_ms=NOW_MS)
    assert sample.accuracy_meters == UNKNOWN_ACCURACY_M


def test_zero_accuracy_is_kept() -> None:
    sample = parse_fix_payload({"lat": 1.0, "lon": 2.0, "accuracy": 0}, now_ms=NOW_MS)
    assert sample.accuracy_meters == 0.0


@pytest.mark.parametrize(
    "payload",
    [
        {"lon": 2.0, "accuracy": 5},
        {"lat": 123.0, "lon": 2.0, "accuracy": 5},
        {"coords": {"latitude": "n/a", "longitude": 2.0}},
    ],
)
def test_malformed_fix_raises_unavailable(payload: dict[str, object]) -> None:
    with pytest.raises(PositionUnavailableError):
        parse_fix_payload(payload, now_ms=NOW_MS)


def test_parse_owntracks_location() -> None:
    sample = parse_owntracks_payload(
        {
            "_type": "location",
            "lat": 52.52,
            "lon": 13.405,
            "acc": 14,
            "alt": 34,
            "vel": 36,
            "cog": 270,
            "tst": 1_700_000_000,
        },
        now_ms=NOW_MS,
    )
    assert sample is not None
    assert sample.accuracy_meters == 14.0
    assert sample.speed_mps == pytest.approx(10.0)
    assert sample.heading == 270.0
    assert sample.altitude == 34.0
    assert sample.captured_at_ms == 1_700_000_000_000


@pytest.mark.parametrize("message_type", ["transition", "waypoint", "card", None])
def test_owntracks_non_location_messages_are_ignored(message_type: str | None) -> None:
    assert parse_owntracks_payload({"_type": message_type, "lat": 1.0, "lon": 2.0}, now_ms=NOW_MS) is None
