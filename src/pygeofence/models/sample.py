"""Coordinates and positioning hardware samples."""

from __future__ import annotations

from pydantic import Field

from pygeofence.models._base import GeoBaseModel


class Coordinate(GeoBaseModel):
    """A WGS84 latitude/longitude pair in degrees."""

    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)

    @property
    def coordinate(self) -> Coordinate:
        """Plain coordinate view (drops any subclass fields)."""
        return Coordinate(latitude=self.latitude, longitude=self.longitude)


class LocationSample(Coordinate):
    """One fix reported by the positioning hardware.

    Parameters
    ----------
    latitude, longitude : float
        Position in degrees.
    accuracy_meters : float
        Radius of the 68% confidence circle reported by the platform.
    captured_at_ms : int
        Epoch milliseconds at which the platform captured the fix.
    altitude : float or None
        Metres above the WGS84 ellipsoid, when reported.
    heading : float or None
        Direction of travel in degrees, when reported.
    speed_mps : float or None
        Ground speed in metres per second, when reported.
    """

    accuracy_meters: float = Field(ge=0.0)
    captured_at_ms: int
    altitude: float | None = None
    heading: float | None = None
    speed_mps: float | None = None

    def age_ms(self, now_ms: int) -> int:
        """Milliseconds elapsed since the fix was captured."""
        return now_ms - self.captured_at_ms
