import math

import pytest

from stormneighbor.domain.geo import haversine_miles, within_radius
from tests.conftest import AUSTIN, DALLAS, ROUND_ROCK

POINTS = [
    (0.0, 0.0),
    AUSTIN,
    DALLAS,
    (-33.8688, 151.2093),
    (89.9, -179.9),
]


@pytest.mark.parametrize("point", POINTS)
def test_identical_points_are_zero_miles_apart(point):
    assert haversine_miles(*point, *point) == 0.0


@pytest.mark.parametrize("a", POINTS)
@pytest.mark.parametrize("b", POINTS)
def test_distance_is_symmetric(a, b):
    assert haversine_miles(*a, *b) == pytest.approx(haversine_miles(*b, *a))


def test_austin_to_dallas():
    assert 180 < haversine_miles(*AUSTIN, *DALLAS) < 185


def test_antipodal_points_do_not_fail():
    assert haversine_miles(0.0, 0.0, 0.0, 180.0) == pytest.approx(math.pi * 3959.0)


def test_nan_propagates():
    assert math.isnan(haversine_miles(float("nan"), 0.0, 1.0, 1.0))


def test_within_radius():
    assert within_radius(*AUSTIN, *AUSTIN, 0.0)
    assert within_radius(*AUSTIN, *ROUND_ROCK, 20.0)
    assert not within_radius(*AUSTIN, *ROUND_ROCK, 10.0)
