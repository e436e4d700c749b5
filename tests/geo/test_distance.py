from __future__ import annotations

import math

import pytest

from src.geo_attendance.geo_attendance.core.exceptions import GeospatialError, ValidationError
from src.geo_attendance.geo_attendance.geo.distance import distance, speed, validate_coordinates

POINTS = [
    (27.7172, 85.3240),
    (0.0, 0.0),
    (-33.8688, 151.2093),
    (51.5074, -0.1278),
    (90.0, 0.0),
    (-90.0, 180.0),
]


@pytest.mark.parametrize("lat,lon", POINTS)
def test_distance_to_self_is_zero(lat, lon):
    assert distance(lat, lon, lat, lon) == 0


def test_distance_is_symmetric():
    for a in POINTS:
        for b in POINTS:
            assert distance(*a, *b) == pytest.approx(distance(*b, *a))


def test_one_degree_of_longitude_on_equator():
    # 6,371,000 * pi / 180
    assert distance(0, 0, 0, 1) == pytest.approx(111_194.93, rel=1e-6)


def test_antipodal_points_are_half_circumference():
    assert distance(0, 0, 0, 180) == pytest.approx(math.pi * 6_371_000)


@pytest.mark.parametrize(
    "lat,lon",
    [
        (91, 0),
        (-90.0001, 0),
        (0, 180.5),
        (0, -181),
        (float("nan"), 0),
        (0, float("inf")),
        (float("-inf"), 0),
        (None, 0),
        ("north", 0),
        ("27.7172", "85.3240"),
        (True, 0),
        (0, False),
    ],
)
def test_invalid_coordinates_are_rejected(lat, lon):
    with pytest.raises(GeospatialError):
        distance(lat, lon, 0, 0)
    with pytest.raises(GeospatialError):
        distance(0, 0, lat, lon)


def test_geospatial_error_is_a_validation_error():
    with pytest.raises(ValidationError):
        validate_coordinates(100, 0)


def test_range_edges_are_valid():
    validate_coordinates(90, 180)
    validate_coordinates(-90, -180)


def test_speed_in_kmh():
    assert speed(60_000, 60) == pytest.approx(60.0)
    assert speed(50_000, 1) == pytest.approx(3000.0)


@pytest.mark.parametrize("elapsed", [0, -5])
def test_speed_without_elapsed_time_is_zero(elapsed):
    assert speed(10_000, elapsed) == 0.0
