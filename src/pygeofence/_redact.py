"""Helpers for privacy-safe debug logging.

pygeofence handles employee positions and broker credentials. This
module coarsens coordinates and redacts secrets before they reach DEBUG
logs.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "passwd",
        "token",
        "accesstoken",
        "authorization",
        "cookie",
        "secret",
    }
)

_COORDINATE_KEYS: frozenset[str] = frozenset({"lat", "lon", "lng", "latitude", "longitude"})

#: Three decimals is roughly 100 m; enough to debug, too coarse to track someone.
_COORDINATE_DECIMALS = 3


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs."""
    if _depth > 20:
        return "<max-depth>"

    if value is None:
        return None

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, bytes):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            lowered = key.lower()
            if lowered in _SENSITIVE_VALUE_KEYS:
                redacted[key] = "<redacted>"
            elif lowered in _COORDINATE_KEYS and isinstance(v, (int, float)) and not isinstance(v, bool):
                redacted[key] = round(float(v), _COORDINATE_DECIMALS)
            else:
                redacted[key] = redact_for_log(v, max_string=max_string, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]

    # Fallback: represent unknown objects without dumping internals.
    return repr(value)
