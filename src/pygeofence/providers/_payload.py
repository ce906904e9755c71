"""Normalization of raw position payloads into :class:`LocationSample`.

Centralizes lenient parsing so provider adapters only deal with
transport concerns.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from pygeofence.exceptions import PositionUnavailableError
from pygeofence.models.sample import LocationSample

#: Accuracy assumed when a platform omits it; deliberately poor so the
#: fix is rejected by the accuracy ceiling rather than trusted.
UNKNOWN_ACCURACY_M: float = 999.0

_KMH_TO_MPS = 1 / 3.6


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def normalize_timestamp_ms(value: Any) -> int | None:
    """Normalize an epoch timestamp (seconds or milliseconds) to milliseconds.

    - Empty/missing -> None
    - <= 0 -> None
    - Seconds (< 1e11) -> milliseconds
    """
    ts = safe_float(value)
    if ts is None or ts <= 0:
        return None
    if ts < 1e11:
        ts *= 1000.0
    return int(ts)


def _accuracy(value: Any) -> float:
    parsed = safe_float(value)
    if parsed is None or parsed < 0:
        return UNKNOWN_ACCURACY_M
    return parsed


def _first(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value is not None and value != "":
            return value
    return None


def _build_sample(values: dict[str, Any], *, source: str) -> LocationSample:
    try:
        return LocationSample.model_validate(values)
    except ValidationError as exc:
        raise PositionUnavailableError(f"Malformed {source} position payload: {exc.error_count()} error(s)") from exc


def parse_fix_payload(payload: Mapping[str, Any], *, now_ms: int) -> LocationSample:
    """Parse a generic JSON fix.

    Accepts the W3C geolocation shape (``{"coords": {...}, "timestamp": ...}``)
    as well as flat objects using ``lat``/``lon``/``accuracy`` style keys.
    """
    coords = payload.get("coords")
    flat: Mapping[str, Any] = coords if isinstance(coords, Mapping) else payload

    captured = normalize_timestamp_ms(_first(payload, "timestamp", "capturedAtMs", "time", "ts"))
    values: dict[str, Any] = {
        "latitude": safe_float(_first(flat, "latitude", "lat")),
        "longitude": safe_float(_first(flat, "longitude", "lon", "lng")),
        "accuracy_meters": _accuracy(_first(flat, "accuracy", "accuracyMeters", "acc")),
        "captured_at_ms": captured if captured is not None else now_ms,
        "altitude": safe_float(_first(flat, "altitude", "alt")),
        "heading": safe_float(_first(flat, "heading", "course", "bearing")),
        "speed_mps": safe_float(_first(flat, "speed", "speedMps")),
    }
    return _build_sample(values, source="HTTP")


def parse_owntracks_payload(payload: Mapping[str, Any], *, now_ms: int) -> LocationSample | None:
    """Parse an OwnTracks ``_type=location`` message.

    Returns ``None`` for other message types (transitions, waypoints,
    cards). OwnTracks reports ``vel`` in km/h and ``tst`` in epoch seconds.
    """
    if payload.get("_type") != "location":
        return None

    velocity_kmh = safe_float(payload.get("vel"))
    captured = normalize_timestamp_ms(_first(payload, "tst", "created_at"))
    values: dict[str, Any] = {
        "latitude": safe_float(payload.get("lat")),
        "longitude": safe_float(payload.get("lon")),
        "accuracy_meters": _accuracy(payload.get("acc")),
        "captured_at_ms": captured if captured is not None else now_ms,
        "altitude": safe_float(payload.get("alt")),
        "heading": safe_float(payload.get("cog")),
        "speed_mps": velocity_kmh * _KMH_TO_MPS if velocity_kmh is not None else None,
    }
    return _build_sample(values, source="OwnTracks")
