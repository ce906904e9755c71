"""Custom exception hierarchy for pygeofence."""

from __future__ import annotations

from enum import StrEnum


class PositionErrorKind(StrEnum):
    """Platform-independent positioning failure taxonomy."""

    PERMISSION_DENIED = "permission_denied"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"
    UNSUPPORTED = "unsupported"


#: User-facing guidance per failure kind.
POSITION_ERROR_HINTS: dict[PositionErrorKind, str] = {
    PositionErrorKind.PERMISSION_DENIED: "Location permission denied. Enable it in the device settings.",
    PositionErrorKind.UNAVAILABLE: "Location unavailable. Check that GPS is on and move to an open area.",
    PositionErrorKind.TIMEOUT: "Timed out waiting for a GPS fix. The signal is weak; try again in an open area.",
    PositionErrorKind.UNSUPPORTED: "This device does not support geolocation.",
}


class GeofenceError(Exception):
    """Base exception for all pygeofence errors."""


class GeofenceConfigError(GeofenceError):
    """Invalid or missing configuration."""


class StoreError(GeofenceError):
    """Key-value backend failure or an undecodable stored record."""

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class PositionError(GeofenceError):
    """Positioning hardware failure, normalized into :class:`PositionErrorKind`.

    All kinds are recoverable by user action; ``hint`` carries the
    guidance a UI should render.
    """

    kind: PositionErrorKind = PositionErrorKind.UNAVAILABLE

    def __init__(self, message: str = "", *, kind: PositionErrorKind | None = None) -> None:
        if kind is not None:
            self.kind = kind
        self.hint = POSITION_ERROR_HINTS[self.kind]
        super().__init__(message or self.hint)


class PositionPermissionDeniedError(PositionError):
    """The user or platform refused location access."""

    kind = PositionErrorKind.PERMISSION_DENIED


class PositionUnavailableError(PositionError):
    """No fix could be obtained (no signal, provider down, stale data)."""

    kind = PositionErrorKind.UNAVAILABLE


class PositionTimeoutError(PositionError):
    """A hardware read exceeded its timeout."""

    kind = PositionErrorKind.TIMEOUT


class PositionUnsupportedError(PositionError):
    """The platform offers no positioning API."""

    kind = PositionErrorKind.UNSUPPORTED


class CalibrationAbortedError(GeofenceError):
    """A calibration session failed mid-sampling; nothing was persisted."""

    def __init__(self, message: str, *, cause: PositionError | None = None) -> None:
        self.cause = cause
        super().__init__(message)
