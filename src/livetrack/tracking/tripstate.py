import logging

from threading import Lock
from typing import Callable

from livetrack.common.exceptions import DuplicateTrip, TripNotActive
from livetrack.common.shared import unixtimestamp
from livetrack.model.types import AcceptedFix, Coordinates, EvictionReason, FinalSnapshot
from livetrack.model.types import PositionFix, TrackedPosition, TripTrackSnapshot
from livetrack.tracking.geomath import distance_km


class TripTrackState:

    def __init__(self, trip_id: str, start_time: float, clock: Callable[[], float], sanity_ceiling_km: float = 5.0, seed_position: Coordinates|None = None, driver_id: str|None = None) -> None:
        self.trip_id: str = trip_id
        self.driver_id: str|None = driver_id

        self._clock = clock
        self._sanity_ceiling_km = sanity_ceiling_km
        self._lock = Lock()

        self._trip_start_time: float = start_time
        self._current_position: TrackedPosition|None = None
        self._previous_position: TrackedPosition|None = None
        self._cumulative_distance_km: float = 0.0

        # the timestamp of the last accepted fix, None as long as only the seed is known
        self._last_fix_time: float|None = None
        self._last_activity_time: float = clock()
        self._is_terminal: bool = False

        # recording statistics
        self._point_count: int = 0
        self._discarded_jumps: int = 0
        self._max_speed_kmh: float = 0.0
        self._speed_sum_kmh: float = 0.0
        self._speed_samples: int = 0

        if seed_position is not None:
            self._current_position = TrackedPosition(
                latitude=seed_position.latitude,
                longitude=seed_position.longitude,
                timestamp=start_time
            )

    @property
    def is_terminal(self) -> bool:
        return self._is_terminal

    @property
    def last_fix(self) -> TrackedPosition|None:
        with self._lock:
            if self._last_fix_time is None:
                return None

            return self._current_position

    @property
    def last_activity_time(self) -> float:
        return self._last_activity_time

    def update(self, accepted: AcceptedFix) -> TripTrackSnapshot:
        fix: PositionFix = accepted.fix

        with self._lock:
            if self._is_terminal:
                raise TripNotActive(self.trip_id)

            self._last_activity_time = self._clock()

            # duplicates are common from polling clients, they do not move anything
            if accepted.is_duplicate:
                return self._snapshot()

            if self._last_fix_time is not None and fix.timestamp < self._last_fix_time:
                logging.debug(f"{self.__class__.__name__}: Dropping stale fix for trip {self.trip_id}.")
                return self._snapshot()

            if self._current_position is not None:
                delta_km: float = distance_km(self._current_position.coordinates(), fix.coordinates())

                # implausible jumps keep the position but not the implied distance
                if delta_km < self._sanity_ceiling_km:
                    self._cumulative_distance_km += delta_km
                else:
                    self._discarded_jumps += 1
                    logging.warning(f"{self.__class__.__name__}: Discarding GPS jump of {delta_km:.2f} km for trip {self.trip_id}.")

            self._previous_position = self._current_position
            self._current_position = TrackedPosition(
                latitude=fix.latitude,
                longitude=fix.longitude,
                timestamp=fix.timestamp,
                speed=fix.speed,
                heading=fix.heading
            )

            self._last_fix_time = fix.timestamp
            self._point_count += 1

            if fix.speed is not None and fix.speed > 0:
                self._max_speed_kmh = max(self._max_speed_kmh, fix.speed)
                self._speed_sum_kmh += fix.speed
                self._speed_samples += 1

            if self.driver_id is None:
                self.driver_id = fix.driver_id

            return self._snapshot()

    def snapshot(self) -> TripTrackSnapshot:
        with self._lock:
            return self._snapshot()

    def terminate(self, reason: EvictionReason) -> FinalSnapshot:
        with self._lock:
            self._is_terminal = True

            return FinalSnapshot(
                snapshot=self._snapshot(),
                reason=reason,
                evicted_at=self._clock(),
                point_count=self._point_count
            )

    def _snapshot(self) -> TripTrackSnapshot:
        return TripTrackSnapshot(
            trip_id=self.trip_id,
            driver_id=self.driver_id,
            current_position=self._current_position,
            previous_position=self._previous_position,
            cumulative_distance_km=self._cumulative_distance_km,
            trip_start_time=self._trip_start_time,
            elapsed_seconds=max(0.0, self._clock() - self._trip_start_time),
            last_fix_time=self._last_fix_time,
            max_speed_kmh=self._max_speed_kmh,
            average_speed_kmh=(self._speed_sum_kmh / self._speed_samples) if self._speed_samples > 0 else 0.0,
            discarded_jumps=self._discarded_jumps
        )


class TripTrackRegistry:

    def __init__(self, clock: Callable[[], float] = unixtimestamp, sanity_ceiling_km: float = 5.0) -> None:
        self._clock = clock
        self._sanity_ceiling_km = sanity_ceiling_km

        self._states: dict[str, TripTrackState] = dict()
        self._lock = Lock()

    def create_for_trip(self, trip_id: str, start_time: float|None = None, seed_position: Coordinates|None = None, driver_id: str|None = None) -> TripTrackState:
        with self._lock:
            existing: TripTrackState|None = self._states.get(trip_id)
            if existing is not None and not existing.is_terminal:
                raise DuplicateTrip(trip_id)

            state: TripTrackState = TripTrackState(
                trip_id,
                start_time if start_time is not None else self._clock(),
                self._clock,
                sanity_ceiling_km=self._sanity_ceiling_km,
                seed_position=seed_position,
                driver_id=driver_id
            )

            self._states[trip_id] = state

        logging.info(f"{self.__class__.__name__}: Started tracking trip {trip_id}.")

        return state

    def get(self, trip_id: str) -> TripTrackState|None:
        with self._lock:
            return self._states.get(trip_id)

    def trip_ids(self) -> list[str]:
        with self._lock:
            return list(self._states.keys())

    def update(self, trip_id: str, accepted: AcceptedFix) -> TripTrackSnapshot:
        state: TripTrackState|None = self.get(trip_id)
        if state is None:
            raise TripNotActive(trip_id)

        return state.update(accepted)

    def get_snapshot(self, trip_id: str) -> TripTrackSnapshot|None:
        state: TripTrackState|None = self.get(trip_id)
        return state.snapshot() if state is not None else None

    def evict(self, trip_id: str, reason: EvictionReason) -> FinalSnapshot:
        with self._lock:
            state: TripTrackState|None = self._states.pop(trip_id, None)

        if state is None:
            raise TripNotActive(trip_id)

        final_snapshot: FinalSnapshot = state.terminate(reason)

        logging.info(f"{self.__class__.__name__}: Evicted trip {trip_id} ({reason.value}) after {final_snapshot.snapshot.cumulative_distance_km:.2f} km.")

        return final_snapshot

    def idle_trip_ids(self, idle_timeout_seconds: float) -> list[str]:
        now: float = self._clock()

        with self._lock:
            return [
                trip_id for trip_id, state in self._states.items()
                if now - state.last_activity_time > idle_timeout_seconds
            ]
