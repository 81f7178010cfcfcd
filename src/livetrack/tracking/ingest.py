import logging
import math

from dataclasses import replace

from livetrack.directory import TripDirectory
from livetrack.model.types import AcceptedFix, IngestResult, PositionFix, RejectReason, TrackedPosition, TripPlan
from livetrack.tracking.tripstate import TripTrackRegistry, TripTrackState


class PositionIngest:

    def __init__(self, registry: TripTrackRegistry, directory: TripDirectory|None = None) -> None:
        self._registry = registry
        self._directory = directory

    def accept(self, trip_id: str, fix: PositionFix) -> IngestResult:
        # 1. coordinate range and shape of the report
        if not trip_id or not fix.driver_id or (fix.trip_id and fix.trip_id != trip_id):
            return self._reject(trip_id, RejectReason.MALFORMED_FIX)

        if not all(isinstance(v, (int, float)) and math.isfinite(v) for v in (fix.latitude, fix.longitude, fix.timestamp)):
            return self._reject(trip_id, RejectReason.OUT_OF_RANGE_COORDINATE)

        if not -90.0 <= fix.latitude <= 90.0 or not -180.0 <= fix.longitude <= 180.0:
            return self._reject(trip_id, RejectReason.OUT_OF_RANGE_COORDINATE)

        fix = self._normalize(trip_id, fix)

        # 2. trip lookup, a trip without state may only start from a startable status
        state: TripTrackState|None = self._registry.get(trip_id)
        if state is None and (self._directory is None or not self._directory.is_startable(trip_id)):
            return self._reject(trip_id, RejectReason.UNKNOWN_TRIP)

        expected_driver_id: str|None = state.driver_id if state is not None else None
        if expected_driver_id is None and self._directory is not None:
            trip: TripPlan|None = self._directory.get_trip(trip_id)
            expected_driver_id = trip.driver_id if trip is not None else None

        if expected_driver_id is not None and expected_driver_id != fix.driver_id:
            return self._reject(trip_id, RejectReason.DRIVER_MISMATCH)

        # 3. monotonic timestamps, the very first fix of a trip is always fine
        last_fix: TrackedPosition|None = state.last_fix if state is not None else None
        if last_fix is not None and fix.timestamp < last_fix.timestamp:
            return self._reject(trip_id, RejectReason.STALE_TIMESTAMP)

        # 4. duplicates are accepted as a zero delta
        is_duplicate: bool = (
            last_fix is not None
            and last_fix.timestamp == fix.timestamp
            and last_fix.latitude == fix.latitude
            and last_fix.longitude == fix.longitude
        )

        return IngestResult(accepted=AcceptedFix(fix=fix, is_duplicate=is_duplicate))

    def _normalize(self, trip_id: str, fix: PositionFix) -> PositionFix:
        heading: float|None = fix.heading
        if heading is not None:
            heading = heading % 360.0 if math.isfinite(heading) else None

        speed: float|None = fix.speed
        if speed is not None and (not math.isfinite(speed) or speed < 0):
            speed = None

        return replace(fix, trip_id=trip_id, heading=heading, speed=speed)

    def _reject(self, trip_id: str, reason: RejectReason) -> IngestResult:
        logging.debug(f"{self.__class__.__name__}: Rejected fix for trip {trip_id}: {reason.value}")
        return IngestResult(reason=reason)
