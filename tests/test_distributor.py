"""
Fan-out of live snapshots to subscribers.
"""

from livetrack.feed.distributor import LiveFeedDistributor

from conftest import ManualExecutor


def test_listener_receives_trip_and_snapshot():
    distributor = LiveFeedDistributor()
    received = []
    distributor.subscribe('trip-1', lambda trip_id, snapshot: received.append((trip_id, snapshot)))

    distributor.publish('trip-1', 's1')
    distributor.publish('trip-2', 'other')

    assert received == [('trip-1', 's1')]


def test_deliveries_keep_publish_order():
    distributor = LiveFeedDistributor()
    received = []
    distributor.subscribe('trip-1', lambda trip_id, snapshot: received.append(snapshot))

    for snapshot in ['s1', 's2', 's3']:
        distributor.publish('trip-1', snapshot)

    assert received == ['s1', 's2', 's3']


def test_unsubscribe_is_idempotent():
    distributor = LiveFeedDistributor()
    received = []
    subscription = distributor.subscribe('trip-1', lambda trip_id, snapshot: received.append(snapshot))

    subscription.unsubscribe()
    subscription.unsubscribe()
    subscription()

    distributor.publish('trip-1', 's1')

    assert received == []
    assert distributor.subscriber_count('trip-1') == 0


def test_slow_listener_only_gets_latest_snapshot():
    """Snapshots published while a delivery is pending replace each other."""
    executor = ManualExecutor()
    distributor = LiveFeedDistributor(executor)
    received = []
    distributor.subscribe('trip-1', lambda trip_id, snapshot: received.append(snapshot))

    distributor.publish('trip-1', 's1')
    distributor.publish('trip-1', 's2')
    distributor.publish('trip-1', 's3')

    assert len(executor.tasks) == 1

    executor.run_all()

    assert received == ['s3']


def test_failing_listener_does_not_affect_others():
    distributor = LiveFeedDistributor()
    received = []

    def failing(trip_id, snapshot):
        raise RuntimeError('listener failure')

    distributor.subscribe('trip-1', failing)
    distributor.subscribe('trip-1', lambda trip_id, snapshot: received.append(snapshot))

    distributor.publish('trip-1', 's1')
    distributor.publish('trip-1', 's2')

    assert received == ['s1', 's2']


def test_global_listener_receives_all_trips():
    distributor = LiveFeedDistributor()
    received = []
    distributor.subscribe_all(lambda trip_id, snapshot: received.append(trip_id))

    distributor.publish('trip-1', 's1')
    distributor.publish('trip-2', 's2')

    assert received == ['trip-1', 'trip-2']
    assert distributor.subscriber_count('trip-1') == 0


def test_closed_trip_drops_subscriptions():
    distributor = LiveFeedDistributor()
    received = []
    subscription = distributor.subscribe('trip-1', lambda trip_id, snapshot: received.append(snapshot))

    distributor.publish('trip-1', 'final')
    distributor.close_trip('trip-1')
    distributor.publish('trip-1', 'late')

    assert received == ['final']
    assert distributor.subscriber_count('trip-1') == 0

    # unsubscribing after the trip was closed is harmless
    subscription.unsubscribe()
