from __future__ import annotations

from pygeofence._redact import redact_for_log


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "username": "alice",
        "password": "pw",
        "Authorization": "Bearer abc",
        "nested": {"token": "deadbeef"},
    }

    redacted = redact_for_log(payload)
    assert redacted["username"] == "alice"
    assert redacted["password"] == "<redacted>"
    assert redacted["Authorization"] == "<redacted>"
    assert redacted["nested"]["token"] == "<redacted>"


def test_redact_for_log_coarsens_coordinates() -> None:
    payload = {"_type": "location", "lat": 52.520008, "lon": 13.404954, "acc": 8, "coords": [{"latitude": 1.23456}]}

    redacted = redact_for_log(payload)
    assert redacted["lat"] == 52.52
    assert redacted["lon"] == 13.405
    assert redacted["acc"] == 8
    assert redacted["coords"][0]["latitude"] == 1.235


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]
