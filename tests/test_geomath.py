"""
Great-circle helpers.
"""

import math
import pytest

from livetrack.common.exceptions import InvalidCoordinate
from livetrack.model.types import Coordinates
from livetrack.tracking.geomath import bearing_degrees, distance_km, nearest_point_on_polyline, polyline_length_km, validate_coordinates

from conftest import DESTINATION, ORIGIN, north_of


def test_distance_of_identical_points_is_zero():
    assert distance_km(ORIGIN, ORIGIN) == 0.0


def test_distance_is_symmetric_and_non_negative():
    a = Coordinates(52.5200, 13.4050)
    b = Coordinates(48.1351, 11.5820)

    assert distance_km(a, b) > 0.0
    assert distance_km(a, b) == pytest.approx(distance_km(b, a))


def test_distance_of_one_kilometre_step():
    """The latitude step used throughout the scenarios is one kilometre."""
    assert distance_km(ORIGIN, north_of(ORIGIN, 1.0)) == pytest.approx(1.0, abs=1e-3)


def test_distance_between_pickup_and_destination():
    assert distance_km(ORIGIN, DESTINATION) == pytest.approx(5.5597, abs=1e-3)


def test_bearing_cardinal_directions():
    center = Coordinates(0.0, 0.0)

    assert bearing_degrees(center, Coordinates(1.0, 0.0)) == pytest.approx(0.0)
    assert bearing_degrees(center, Coordinates(0.0, 1.0)) == pytest.approx(90.0)
    assert bearing_degrees(center, Coordinates(-1.0, 0.0)) == pytest.approx(180.0)
    assert bearing_degrees(center, Coordinates(0.0, -1.0)) == pytest.approx(270.0)


def test_bearing_is_within_range():
    bearing = bearing_degrees(Coordinates(19.0, 72.9), Coordinates(18.9, 72.8))
    assert 0.0 <= bearing < 360.0


@pytest.mark.parametrize('point', [
    Coordinates(math.nan, 72.8777),
    Coordinates(19.0760, math.inf),
    Coordinates(None, 72.8777)
])
def test_invalid_coordinates_are_rejected(point):
    with pytest.raises(InvalidCoordinate):
        distance_km(point, ORIGIN)

    with pytest.raises(InvalidCoordinate):
        bearing_degrees(ORIGIN, point)


def test_nearest_point_of_empty_polyline():
    assert nearest_point_on_polyline(ORIGIN, []) is None


def test_nearest_point_picks_closest_vertex():
    polyline = [ORIGIN, north_of(ORIGIN, 1.0), north_of(ORIGIN, 2.0)]

    nearest = nearest_point_on_polyline(north_of(ORIGIN, 1.1), polyline)

    assert nearest.index == 1
    assert nearest.distance_km == pytest.approx(0.1, abs=1e-3)


def test_polyline_length_is_sum_of_segments():
    polyline = [ORIGIN, north_of(ORIGIN, 1.0), north_of(ORIGIN, 3.0)]

    assert polyline_length_km(polyline) == pytest.approx(3.0, abs=1e-3)
    assert polyline_length_km([ORIGIN]) == 0.0


def test_coordinate_validation():
    assert validate_coordinates(ORIGIN) is ORIGIN

    for point in (Coordinates(math.nan, 72.0), Coordinates(91.0, 72.0), Coordinates(19.0, -180.5)):
        with pytest.raises(InvalidCoordinate):
            validate_coordinates(point)
