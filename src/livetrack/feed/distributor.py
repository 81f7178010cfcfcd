import itertools
import logging

from concurrent.futures import ThreadPoolExecutor
from threading import Lock
from typing import Callable

from livetrack.common.env import is_debug


Listener = Callable[[str, object], None]


class Subscription:

    def __init__(self, distributor: 'LiveFeedDistributor', subscription_id: int, trip_id: str|None) -> None:
        self.subscription_id: int = subscription_id
        self.trip_id: str|None = trip_id

        self._distributor = distributor

    def unsubscribe(self) -> None:
        self._distributor._remove(self.subscription_id)

    def __call__(self) -> None:
        self.unsubscribe()


class _DeliverySlot:

    def __init__(self, trip_id: str, listener: Listener) -> None:
        self.trip_id: str = trip_id
        self.listener: Listener = listener

        self.pending: object|None = None
        self.in_flight: bool = False
        self.closed: bool = False


class LiveFeedDistributor:

    def __init__(self, executor: ThreadPoolExecutor|None = None) -> None:
        self._executor = executor

        self._trip_listeners: dict[str, dict[int, Listener]] = dict()
        self._global_listeners: dict[int, Listener] = dict()
        self._subscription_trips: dict[int, str|None] = dict()

        # one delivery slot per (trip, subscription), holding the latest undelivered snapshot
        self._slots: dict[tuple[str, int], _DeliverySlot] = dict()

        self._ids = itertools.count(1)
        self._lock = Lock()

    def subscribe(self, trip_id: str, listener: Listener) -> Subscription:
        with self._lock:
            subscription_id: int = next(self._ids)
            self._trip_listeners.setdefault(trip_id, dict())[subscription_id] = listener
            self._subscription_trips[subscription_id] = trip_id

        logging.debug(f"{self.__class__.__name__}: Registered subscription {subscription_id} for trip {trip_id}.")

        return Subscription(self, subscription_id, trip_id)

    def subscribe_all(self, listener: Listener) -> Subscription:
        with self._lock:
            subscription_id: int = next(self._ids)
            self._global_listeners[subscription_id] = listener
            self._subscription_trips[subscription_id] = None

        return Subscription(self, subscription_id, None)

    def subscriber_count(self, trip_id: str) -> int:
        with self._lock:
            return len(self._trip_listeners.get(trip_id, {}))

    def publish(self, trip_id: str, snapshot: object) -> None:
        slots_to_start: list[_DeliverySlot] = list()

        with self._lock:
            listeners: dict[int, Listener] = dict(self._trip_listeners.get(trip_id, {}))
            listeners.update(self._global_listeners)

            for subscription_id, listener in listeners.items():
                slot: _DeliverySlot|None = self._slots.get((trip_id, subscription_id))
                if slot is None:
                    slot = _DeliverySlot(trip_id, listener)
                    self._slots[(trip_id, subscription_id)] = slot

                # last write wins, an undelivered snapshot is simply replaced
                slot.pending = snapshot
                if not slot.in_flight:
                    slot.in_flight = True
                    slots_to_start.append(slot)

        for slot in slots_to_start:
            if self._executor is not None:
                self._executor.submit(self._drain, slot)
            else:
                self._drain(slot)

    def close_trip(self, trip_id: str) -> None:
        with self._lock:
            for subscription_id in list(self._trip_listeners.pop(trip_id, {}).keys()):
                self._subscription_trips.pop(subscription_id, None)

            # running deliveries keep their slot and finish the final snapshot
            for key in [k for k in self._slots.keys() if k[0] == trip_id]:
                del self._slots[key]

    def _remove(self, subscription_id: int) -> None:
        with self._lock:
            if subscription_id not in self._subscription_trips:
                return

            trip_id: str|None = self._subscription_trips.pop(subscription_id)
            if trip_id is not None:
                trip_listeners: dict[int, Listener] = self._trip_listeners.get(trip_id, {})
                trip_listeners.pop(subscription_id, None)
                if len(trip_listeners) == 0:
                    self._trip_listeners.pop(trip_id, None)
            else:
                self._global_listeners.pop(subscription_id, None)

            for key in [k for k in self._slots.keys() if k[1] == subscription_id]:
                slot: _DeliverySlot = self._slots.pop(key)
                slot.pending = None
                slot.closed = True

        logging.debug(f"{self.__class__.__name__}: Removed subscription {subscription_id}.")

    def _drain(self, slot: _DeliverySlot) -> None:
        while True:
            with self._lock:
                snapshot: object|None = slot.pending
                slot.pending = None

                if snapshot is None or slot.closed:
                    slot.in_flight = False
                    return

            # a failing listener must never affect other listeners or the producer
            try:
                slot.listener(slot.trip_id, snapshot)
            except Exception as ex:
                if is_debug():
                    logging.exception(ex)
                else:
                    logging.error(f"{self.__class__.__name__}: Listener failed for trip {slot.trip_id}: {ex}")
