from __future__ import annotations

import math

import pytest

from pygeofence.geo import EARTH_RADIUS_M, bearing_degrees, compass_direction, destination, distance_meters
from pygeofence.models.sample import Coordinate

ORIGIN = Coordinate(latitude=0.0, longitude=0.0)


def test_distance_to_self_is_zero() -> None:
    point = Coordinate(latitude=52.52, longitude=13.405)
    assert distance_meters(point, point) == 0.0


def test_one_degree_of_latitude() -> None:
    north = Coordinate(latitude=1.0, longitude=0.0)
    assert distance_meters(ORIGIN, north) == pytest.approx(EARTH_RADIUS_M * math.pi / 180, abs=0.01)


def test_distance_is_symmetric() -> None:
    a = Coordinate(latitude=40.7128, longitude=-74.006)
    b = Coordinate(latitude=40.7306, longitude=-73.9352)
    assert distance_meters(a, b) == pytest.approx(distance_meters(b, a))


def test_antipodal_points_do_not_raise() -> None:
    antipode = Coordinate(latitude=0.0, longitude=180.0)
    assert distance_meters(ORIGIN, antipode) == pytest.approx(math.pi * EARTH_RADIUS_M)


@pytest.mark.parametrize("bearing", [30.0, 90.0, 200.0, 315.0])
def test_destination_lands_at_requested_distance(bearing: float) -> None:
    start = Coordinate(latitude=48.8566, longitude=2.3522)
    end = destination(start, bearing, 500.0)
    assert distance_meters(start, end) == pytest.approx(500.0, abs=1e-6)
    assert bearing_degrees(start, end) == pytest.approx(bearing, abs=1e-6)


def test_destination_wraps_longitude() -> None:
    start = Coordinate(latitude=0.0, longitude=179.9999)
    end = destination(start, 90.0, 1000.0)
    assert -180.0 <= end.longitude < -179.99


def test_bearing_cardinal_directions() -> None:
    assert bearing_degrees(ORIGIN, Coordinate(latitude=0.01, longitude=0.0)) == pytest.approx(0.0)
    assert bearing_degrees(ORIGIN, Coordinate(latitude=0.0, longitude=0.01)) == pytest.approx(90.0)
    assert bearing_degrees(ORIGIN, Coordinate(latitude=-0.01, longitude=0.0)) == pytest.approx(180.0)
    assert bearing_degrees(ORIGIN, Coordinate(latitude=0.0, longitude=-0.01)) == pytest.approx(270.0)


@pytest.mark.parametrize(
    ("bearing", "expected"),
    [
        (0.0, "north"),
        (22.0, "north"),
        (23.0, "north-east"),
        (90.0, "east"),
        (180.0, "south"),
        (250.0, "west"),
        (350.0, "north"),
        (-90.0, "west"),
    ],
)
def test_compass_direction(bearing: float, expected: str) -> None:
    assert compass_direction(bearing) == expected
