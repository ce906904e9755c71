"""Spherical-earth geodesy helpers.

All functions assume a sphere of radius :data:`EARTH_RADIUS_M`. Over the
site-sized distances this library deals with (tens of metres up to a few
kilometres) the error against the WGS84 ellipsoid stays well below 1%.
"""

from __future__ import annotations

import math

from pygeofence.models.sample import Coordinate

#: Mean earth radius in metres.
EARTH_RADIUS_M: float = 6_371_000.0


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance between *a* and *b* using the haversine formula."""
    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    delta_phi = math.radians(b.latitude - a.latitude)
    delta_lambda = math.radians(b.longitude - a.longitude)

    h = math.sin(delta_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    # Rounding can push h a hair above 1 for near-antipodal points.
    h = min(1.0, h)
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def bearing_degrees(a: Coordinate, b: Coordinate) -> float:
    """Initial great-circle bearing from *a* to *b*, in degrees ``[0, 360)``."""
    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    delta_lambda = math.radians(b.longitude - a.longitude)

    y = math.sin(delta_lambda) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(delta_lambda)
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def destination(origin: Coordinate, bearing_deg: float, distance_m: float) -> Coordinate:
    """Point reached travelling *distance_m* from *origin* along *bearing_deg*."""
    delta = distance_m / EARTH_RADIUS_M
    theta = math.radians(bearing_deg)
    phi1 = math.radians(origin.latitude)
    lambda1 = math.radians(origin.longitude)

    phi2 = math.asin(math.sin(phi1) * math.cos(delta) + math.cos(phi1) * math.sin(delta) * math.cos(theta))
    lambda2 = lambda1 + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(phi1),
        math.cos(delta) - math.sin(phi1) * math.sin(phi2),
    )
    longitude = (math.degrees(lambda2) + 540.0) % 360.0 - 180.0
    return Coordinate(latitude=math.degrees(phi2), longitude=longitude)


_COMPASS_POINTS = ("north", "north-east", "east", "south-east", "south", "south-west", "west", "north-west")


def compass_direction(bearing_deg: float) -> str:
    """Eight-point compass name for a bearing (``"north-east"`` etc.)."""
    index = int(((bearing_deg % 360.0) + 22.5) // 45.0) % 8
    return _COMPASS_POINTS[index]
