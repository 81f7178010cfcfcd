"""
Maneuver tracking and distance band announcements.
"""

import pytest

from livetrack.model.types import Coordinates, Maneuver, NavigationStatus, PlannedRoute
from livetrack.tracking.navigation import NavigationGuide, format_distance, spoken_distance, voice_instruction

from conftest import M_PER_DEG_LAT, make_route

TURN = Coordinates(19.0860, 72.8777)
DESTINATION = Coordinates(19.0860, 72.8877)


def before_turn(meters: float) -> Coordinates:
    return Coordinates(TURN.latitude - meters / M_PER_DEG_LAT, TURN.longitude)


@pytest.fixture
def guide():
    guide = NavigationGuide('trip-1')
    guide.set_route(make_route(), DESTINATION)
    return guide


def test_guidance_is_stale_until_a_route_arrives():
    guide = NavigationGuide('trip-1')

    state, announcement = guide.update(before_turn(195))

    assert state.status == NavigationStatus.AWAITING_ROUTE
    assert state.guidance_stale
    assert announcement is None


def test_empty_route_marks_guidance_stale():
    guide = NavigationGuide('trip-1')
    guide.set_route(PlannedRoute())

    assert guide.state().guidance_stale


def test_departure_is_passed_immediately(guide):
    state, _ = guide.update(before_turn(900))

    assert state.current_maneuver_index == 1
    assert state.maneuver.type == 'turn-right'
    assert state.distance_to_maneuver_m == pytest.approx(900, abs=0.5)


def test_noisy_positions_announce_band_only_once(guide):
    """GPS noise around the 200 m band must not repeat the announcement."""
    announcements = []
    for meters in [210, 195, 205, 190]:
        _, announcement = guide.update(before_turn(meters))
        if announcement is not None:
            announcements.append(announcement)

    assert len(announcements) == 1
    assert announcements[0].band_m == 200
    assert announcements[0].maneuver_index == 1
    assert announcements[0].voice_text == 'In 200m, turn right'


def test_bands_are_announced_descending(guide):
    bands = []
    for meters in [480, 300, 190, 90, 40]:
        _, announcement = guide.update(before_turn(meters))
        if announcement is not None:
            bands.append(announcement.band_m)

    assert bands == [500, 200, 100, 50]


def test_passing_a_maneuver_advances_and_resets_bands(guide):
    guide.update(before_turn(190))
    state, _ = guide.update(before_turn(10))

    assert state.current_maneuver_index == 2
    assert state.last_announced_band is None
    assert state.status == NavigationStatus.NAVIGATING


def test_provider_index_only_moves_forward(guide):
    state, _ = guide.update(before_turn(500), provider_index=2)
    assert state.current_maneuver_index == 2

    state, _ = guide.update(before_turn(500), provider_index=1)
    assert state.current_maneuver_index == 2


def test_arrival(guide):
    state, announcement = guide.update(DESTINATION)

    assert state.status == NavigationStatus.ARRIVED
    assert state.current_maneuver_index == 2
    assert announcement is None

    # arrived trips ignore further routes and positions
    guide.set_route(make_route(), DESTINATION)
    state, _ = guide.update(before_turn(195))
    assert state.status == NavigationStatus.ARRIVED


def test_new_route_restarts_guidance(guide):
    guide.update(before_turn(190))
    guide.mark_stale()
    assert guide.state().guidance_stale

    guide.set_route(make_route(), DESTINATION)
    state = guide.state()

    assert state.route_version == 2
    assert state.maneuver.type == 'depart'
    assert not state.guidance_stale


def test_maneuver_index_never_decreases_across_reroutes(guide):
    indices = []

    for meters in (400, 190, 20):
        state, _ = guide.update(before_turn(meters))
        indices.append(state.current_maneuver_index)

    guide.set_route(make_route(), DESTINATION)
    indices.append(guide.state().current_maneuver_index)

    state, announcement = guide.update(before_turn(195))
    indices.append(state.current_maneuver_index)

    assert indices == sorted(indices)
    assert indices[-1] > indices[2]
    assert state.maneuver.type == 'turn-right'
    assert announcement.maneuver_index == state.current_maneuver_index


def test_distance_formatting():
    assert format_distance(195) == '195m'
    assert format_distance(1234) == '1.2km'

    assert spoken_distance(47.4) == 47
    assert spoken_distance(195) == 200
    assert spoken_distance(1234) == 1200


def test_voice_instructions():
    left = Maneuver(instruction='Turn left onto Main Street', type='turn-left', distance_m=0.0, location=TURN)
    merge = Maneuver(instruction='Merge onto the highway', type='merge', distance_m=0.0, location=TURN)

    assert voice_instruction(left, 100) == 'In 100m, turn left'
    assert voice_instruction(merge, 1500) == 'Merge onto the highway in 1.5km'
