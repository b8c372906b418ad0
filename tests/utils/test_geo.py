"""Tests for geographic utilities."""

import math

import pytest

from revealmatch.utils.geo import format_distance, haversine_distance, is_valid_coordinates, is_within_radius

PARIS = (48.8566, 2.3522)
LYON = (45.7640, 4.8357)
MACON = (46.3064, 4.8311)
TREVOUX = (45.9403, 4.7728)


def test_paris_lyon_fixture():
    distance = haversine_distance(*PARIS, *LYON)
    assert distance == pytest.approx(390, abs=5)


def test_macon_trevoux_fixture():
    distance = haversine_distance(*MACON, *TREVOUX)
    assert distance == pytest.approx(50, abs=5)


@pytest.mark.parametrize(
    "a,b",
    [(PARIS, LYON), (MACON, TREVOUX), ((0.0, 179.9), (0.0, -179.9)), ((-33.8688, 151.2093), (51.5074, -0.1278))],
)
def test_distance_is_symmetric(a, b):
    assert haversine_distance(*a, *b) == haversine_distance(*b, *a)


@pytest.mark.parametrize("point", [PARIS, LYON, (0.0, 0.0), (90.0, 180.0), (-90.0, -180.0)])
def test_distance_to_self_is_zero(point):
    assert haversine_distance(*point, *point) == 0


def test_distance_is_rounded_to_two_decimals():
    distance = haversine_distance(*PARIS, 48.85, 2.35)
    assert distance == round(distance, 2)
    assert distance < 1


@pytest.mark.parametrize(
    "lat1,lon1,lat2,lon2",
    [
        (91, 0, 0, 0),
        (0, 181, 0, 0),
        (0, 0, -90.5, 0),
        (None, 0, 0, 0),
        ("48.8", 2.3, 45.7, 4.8),
        (True, 0, 0, 0),
        (math.nan, 0, 0, 0),
    ],
)
def test_invalid_input_yields_unknown(lat1, lon1, lat2, lon2):
    assert haversine_distance(lat1, lon1, lat2, lon2) is None


def test_is_valid_coordinates():
    assert is_valid_coordinates(*PARIS)
    assert not is_valid_coordinates(None, None)
    assert not is_valid_coordinates(False, 2.0)


def test_is_within_radius():
    assert is_within_radius(*MACON, *TREVOUX, 60)
    assert not is_within_radius(*PARIS, *LYON, 50)
    # Unknown distance is never within any radius
    assert not is_within_radius(None, None, *PARIS, 10_000)


@pytest.mark.parametrize(
    "distance,expected",
    [(0.85, "850 m"), (1.5, "1.5 km"), (12.4, "12 km"), (None, "unknown distance"), (math.nan, "unknown distance")],
)
def test_format_distance(distance, expected):
    assert format_distance(distance) == expected
