"""
MQTT binding of the tracking service.
"""

import json
import pytest

from unittest.mock import MagicMock, patch

from livetrack.common.mqtt import get_tls_value
from livetrack.model.types import RejectReason
from livetrack.mqtt.client import TrackingMqttClient
from livetrack.mqtt.positionhandler import PositionHandler
from livetrack.tracker import TrackingService

from conftest import DESTINATION, ORIGIN, ManualExecutor, north_of


@pytest.fixture
def service(config, directory, clock):
    return TrackingService(config, directory=directory, clock=clock)


@pytest.fixture
def mqtt_client():
    with patch('livetrack.mqtt.client.mqtt.Client') as client_class:
        yield client_class.return_value


@pytest.fixture
def executor():
    return ManualExecutor()


@pytest.fixture
def client(service, executor, mqtt_client):
    client = TrackingMqttClient(
        config={
            'instance_id': 'test',
            'organisation_id': 'org-1',
            'host': 'localhost',
            'port': 1883
        },
        service=service,
        thread_executor=executor
    )

    client.start()
    return client


def published_topics(mqtt_client):
    return [c.args[0] for c in mqtt_client.publish.call_args_list]


def test_topic_level_values():
    assert get_tls_value('livetrack/org-1/trips/trip-1/position', 'trips') == 'trip-1'
    assert get_tls_value('livetrack/org-1/trips', 'trips') is None
    assert get_tls_value('livetrack/org-1/vehicles/v1', 'trips') is None


def test_topic_matching(client):
    assert client._tls_matches('livetrack/org-1/trips/trip-1/position', 'sub_trip_position')
    assert client._tls_matches('livetrack/org-1/trips/trip-1/lifecycle', 'sub_trip_lifecycle')
    assert not client._tls_matches('livetrack/org-2/trips/trip-1/position', 'sub_trip_position')
    assert not client._tls_matches('livetrack/org-1/trips/trip-1/extra/position', 'sub_trip_position')


def test_missing_host_is_rejected(service, executor, mqtt_client):
    with pytest.raises(RuntimeError):
        TrackingMqttClient({'instance_id': 'test', 'organisation_id': 'org-1'}, service, executor)


def test_messages_of_a_trip_are_processed_in_order(client, service, executor, mqtt_client, clock):
    client.process('livetrack/org-1/trips/trip-1/lifecycle', json.dumps({
        'event': 'started',
        'pickup': {'lat': ORIGIN.latitude, 'lng': ORIGIN.longitude},
        'destination': {'lat': DESTINATION.latitude, 'lng': DESTINATION.longitude},
        'driverId': 'driver-1'
    }).encode())

    point = north_of(ORIGIN, 1.0)
    client.process('livetrack/org-1/trips/trip-1/position', json.dumps({
        'driverId': 'driver-1',
        'lat': point.latitude,
        'lng': point.longitude,
        'timestamp': clock.now + 60
    }).encode())

    # the position waits in the trip queue until the lifecycle event is handled
    assert len(executor.tasks) == 1

    executor.run_all()

    snapshot = service.get_snapshot('trip-1')
    assert snapshot.cumulative_distance_km == pytest.approx(1.0, abs=1e-3)
    assert 'livetrack/org-1/trips/trip-1/snapshot' in published_topics(mqtt_client)

    # snapshots are retained for late subscribers
    retained = [c for c in mqtt_client.publish.call_args_list if c.args[0].endswith('/snapshot')]
    assert all(c.args[3] is True for c in retained)

    payload = json.loads(retained[-1].args[1])
    assert payload['track']['trip_id'] == 'trip-1'


def test_lifecycle_completion_publishes_final_snapshot(client, service, executor, mqtt_client):
    client.process('livetrack/org-1/trips/trip-1/lifecycle', json.dumps({'event': 'started', 'driverId': 'driver-1'}).encode())
    client.process('livetrack/org-1/trips/trip-1/lifecycle', json.dumps({'event': 'completed'}).encode())
    executor.run_all()

    payload = json.loads(mqtt_client.publish.call_args_list[-1].args[1])

    assert payload['is_final']
    assert service.get_snapshot('trip-1') is None


def test_broken_message_does_not_stop_the_client(client, executor):
    message = MagicMock(topic='livetrack/org-1/trips/trip-1/position', payload=b'not json')

    client._on_message(None, None, message)

    assert executor.tasks == []


def test_position_handler_rejects_malformed_payload(service):
    handler = PositionHandler(service)

    result = handler.handle('livetrack/org-1/trips/trip-1/position', {'lat': 'north', 'lng': 72.8777, 'timestamp': 1})

    assert result.reason == RejectReason.MALFORMED_FIX


def test_lifecycle_with_invalid_coordinates_is_rejected(client, service, executor):
    client.process('livetrack/org-1/trips/trip-1/lifecycle', json.dumps({
        'event': 'started',
        'pickup': {'lat': 'nan', 'lng': ORIGIN.longitude},
        'driverId': 'driver-1'
    }).encode())
    executor.run_all()

    assert service.get_snapshot('trip-1') is None
    assert service.directory.get_trip('trip-1').status == 'upcoming'


def test_proximity_events_are_published(client, service, executor, mqtt_client, clock):
    client.process('livetrack/org-1/trips/trip-1/lifecycle', json.dumps({'event': 'geofence', 'pickupRadius': 100, 'dropRadius': 100}).encode())
    client.process('livetrack/org-1/trips/trip-1/lifecycle', json.dumps({
        'event': 'started',
        'pickup': {'lat': ORIGIN.latitude, 'lng': ORIGIN.longitude},
        'driverId': 'driver-1'
    }).encode())

    point = north_of(ORIGIN, 0.02)
    client.process('livetrack/org-1/trips/trip-1/position', json.dumps({
        'driverId': 'driver-1',
        'lat': point.latitude,
        'lng': point.longitude,
        'timestamp': clock.now + 10
    }).encode())
    executor.run_all()

    published = [c for c in mqtt_client.publish.call_args_list if c.args[0] == 'livetrack/org-1/trips/trip-1/proximity']
    payloads = [json.loads(c.args[1]) for c in published]

    assert [p['type'] for p in payloads] == ['driver_arrived', 'pickup']
