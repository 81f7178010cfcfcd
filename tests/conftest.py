"""
Shared fixtures for the tracking tests.
"""

import pytest

from livetrack.common.config import TrackingConfig
from livetrack.directory import InMemoryTripDirectory
from livetrack.model.types import Coordinates, Maneuver, PlannedRoute, PositionFix, TripPlan
from livetrack.tracking.tripstate import TripTrackRegistry

# one kilometre northwards expressed in degrees of latitude
KM_LAT = 0.0089932

# metres per degree of latitude for the haversine radius in use
M_PER_DEG_LAT = 111194.93

ORIGIN = Coordinates(19.0760, 72.8777)
DESTINATION = Coordinates(19.1260, 72.8777)

START_TIME = 1_700_000_000.0


class FakeClock:
    """Injectable wall clock, advanced manually by the tests."""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class ManualExecutor:
    """Collects submitted tasks until the test runs them."""

    def __init__(self):
        self.tasks = []

    def submit(self, fn, *args, **kwargs):
        self.tasks.append((fn, args, kwargs))

    def run_all(self):
        while self.tasks:
            fn, args, kwargs = self.tasks.pop(0)
            fn(*args, **kwargs)


def north_of(point: Coordinates, km: float) -> Coordinates:
    return Coordinates(point.latitude + km * KM_LAT, point.longitude)


def make_fix(trip_id='trip-1', driver_id='driver-1', point=ORIGIN, timestamp=START_TIME, speed=None, heading=None) -> PositionFix:
    return PositionFix(
        trip_id=trip_id,
        driver_id=driver_id,
        latitude=point.latitude,
        longitude=point.longitude,
        timestamp=timestamp,
        heading=heading,
        speed=speed
    )


def make_route() -> PlannedRoute:
    """Depart northbound, turn right after roughly 1.1 km and arrive 1 km further east."""
    turn = Coordinates(19.0860, 72.8777)
    destination = Coordinates(19.0860, 72.8877)

    # provider geometries carry a vertex every few dozen metres
    geometry = [Coordinates(round(ORIGIN.latitude + i * 0.0005, 7), ORIGIN.longitude) for i in range(20)]
    geometry += [Coordinates(turn.latitude, round(turn.longitude + i * 0.0005, 7)) for i in range(21)]

    return PlannedRoute(
        maneuvers=[
            Maneuver(instruction='Head north', type='depart', distance_m=1112.0, location=ORIGIN),
            Maneuver(instruction='Turn right', type='turn-right', distance_m=1050.0, location=turn),
            Maneuver(instruction='Arrive at destination', type='destination', distance_m=0.0, location=destination)
        ],
        geometry=geometry,
        total_distance_m=2162.0,
        total_duration_s=300.0
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return TrackingConfig()


@pytest.fixture
def directory():
    return InMemoryTripDirectory([
        TripPlan(trip_id='trip-1', status='upcoming', driver_id='driver-1', origin=ORIGIN, destination=DESTINATION),
        TripPlan(trip_id='trip-2', status='completed', driver_id='driver-2')
    ])


@pytest.fixture
def registry(clock):
    return TripTrackRegistry(clock, sanity_ceiling_km=5.0)
