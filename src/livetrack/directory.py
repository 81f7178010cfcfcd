from abc import ABC, abstractmethod
from threading import Lock

from livetrack.model.types import TripPlan


STARTABLE_STATUSES: frozenset = frozenset({'upcoming', 'ongoing'})


class TripDirectory(ABC):

    @abstractmethod
    def get_trip(self, trip_id: str) -> TripPlan|None:
        pass

    @abstractmethod
    def update_trip(self, trip: TripPlan) -> None:
        pass

    def is_startable(self, trip_id: str) -> bool:
        trip: TripPlan|None = self.get_trip(trip_id)
        return trip is not None and trip.status in STARTABLE_STATUSES


class InMemoryTripDirectory(TripDirectory):

    def __init__(self, trips: list[TripPlan]|None = None) -> None:
        self._trips: dict[str, TripPlan] = {t.trip_id: t for t in (trips or [])}
        self._lock = Lock()

    def get_trip(self, trip_id: str) -> TripPlan|None:
        with self._lock:
            return self._trips.get(trip_id)

    def update_trip(self, trip: TripPlan) -> None:
        with self._lock:
            self._trips[trip.trip_id] = trip

