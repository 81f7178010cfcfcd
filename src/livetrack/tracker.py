import logging
import math

from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from threading import Lock, RLock
from typing import Callable

from livetrack.common.config import TrackingConfig
from livetrack.common.env import is_debug
from livetrack.common.exceptions import TripNotActive
from livetrack.common.shared import unixtimestamp
from livetrack.directions.client import DirectionsClient
from livetrack.directory import InMemoryTripDirectory, TripDirectory
from livetrack.feed.distributor import Listener, LiveFeedDistributor, Subscription
from livetrack.model.types import Announcement, Coordinates, EvictionReason, FinalSnapshot, GeofenceRadii, IngestResult
from livetrack.model.types import LiveSnapshot, PlannedRoute, PositionFix, ProximityEvent, ProximityType, RouteProgressSnapshot
from livetrack.model.types import TripPlan, TripTrackSnapshot
from livetrack.tracking.geomath import distance_km, polyline_length_km, validate_coordinates
from livetrack.tracking.ingest import PositionIngest
from livetrack.tracking.navigation import NavigationGuide
from livetrack.tracking.routeprogress import RouteProgress
from livetrack.tracking.tripstate import TripTrackRegistry, TripTrackState


class TripSession:

    def __init__(self, trip_id: str, config: TrackingConfig) -> None:
        self.trip_id: str = trip_id

        # serializes the whole pipeline of a single trip, re-entered by inline route fetches
        self.lock: RLock = RLock()

        self.guide: NavigationGuide = NavigationGuide(
            trip_id,
            maneuver_threshold_m=config.maneuver_threshold_m,
            arrival_threshold_m=config.arrival_threshold_m
        )

        self.progress: RouteProgress = RouteProgress(
            default_speed_kmh=config.default_speed_kmh,
            off_route_threshold_m=config.off_route_threshold_m
        )

        self.pickup: Coordinates|None = None
        self.origin: Coordinates|None = None
        self.destination: Coordinates|None = None
        self.route_geometry: list[Coordinates] = list()
        self.planned_distance_km: float|None = None

        self.route_pending: bool = False
        self.last_route_request: float|None = None
        self.last_live: LiveSnapshot|None = None

        self.proximity_fired: set[ProximityType] = set()


class TrackingService:

    REROUTE_INTERVAL_SECONDS: float = 60.0

    def __init__(self, config: TrackingConfig|None = None, directory: TripDirectory|None = None, directions: DirectionsClient|None = None, executor: ThreadPoolExecutor|None = None, distributor: LiveFeedDistributor|None = None, clock: Callable[[], float] = unixtimestamp) -> None:
        self._config = config if config is not None else TrackingConfig()
        self._clock = clock
        self._executor = executor

        self._directory: TripDirectory = directory if directory is not None else InMemoryTripDirectory()
        self._directions = directions
        self._distributor: LiveFeedDistributor = distributor if distributor is not None else LiveFeedDistributor(executor)

        self._registry: TripTrackRegistry = TripTrackRegistry(clock, self._config.sanity_ceiling_km)
        self._ingest: PositionIngest = PositionIngest(self._registry, self._directory)

        self._sessions: dict[str, TripSession] = dict()
        self._geofence_radii: dict[str, GeofenceRadii] = dict()
        self._announcement_listeners: list[Callable[[Announcement], None]] = list()
        self._proximity_listeners: list[Callable[[ProximityEvent], None]] = list()
        self._lock = Lock()

    @property
    def config(self) -> TrackingConfig:
        return self._config

    @property
    def registry(self) -> TripTrackRegistry:
        return self._registry

    @property
    def directory(self) -> TripDirectory:
        return self._directory

    @property
    def distributor(self) -> LiveFeedDistributor:
        return self._distributor

    def subscribe(self, trip_id: str, listener: Listener) -> Subscription:
        return self._distributor.subscribe(trip_id, listener)

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.unsubscribe()

    def add_announcement_listener(self, listener: Callable[[Announcement], None]) -> None:
        with self._lock:
            self._announcement_listeners.append(listener)

    def add_proximity_listener(self, listener: Callable[[ProximityEvent], None]) -> None:
        with self._lock:
            self._proximity_listeners.append(listener)

    def set_geofence_radii(self, trip_id: str, pickup_radius_m: float, drop_radius_m: float) -> GeofenceRadii:
        for radius_m in (pickup_radius_m, drop_radius_m):
            if not math.isfinite(radius_m) or radius_m < 0.0:
                raise ValueError(f"Invalid geofence radius {radius_m}")

        radii: GeofenceRadii = GeofenceRadii(pickup_radius_m=pickup_radius_m, drop_radius_m=drop_radius_m)
        with self._lock:
            self._geofence_radii[trip_id] = radii

        return radii

    def get_geofence_radii(self, trip_id: str) -> GeofenceRadii|None:
        with self._lock:
            return self._geofence_radii.get(trip_id)

    def get_snapshot(self, trip_id: str) -> TripTrackSnapshot|None:
        return self._registry.get_snapshot(trip_id)

    def get_live_snapshot(self, trip_id: str) -> LiveSnapshot|None:
        snapshot: TripTrackSnapshot|None = self._registry.get_snapshot(trip_id)
        if snapshot is None:
            return None

        session: TripSession|None = self._get_session(trip_id)
        if session is None or session.last_live is None:
            return LiveSnapshot(track=snapshot)

        # track data is refreshed on read, derived data stays as of the last fix
        return replace(session.last_live, track=snapshot)

    def trip_started(self, trip_id: str, start_time: float|None = None, pickup: Coordinates|None = None, destination: Coordinates|None = None, driver_id: str|None = None) -> TripTrackSnapshot:
        # work on a copy, the directory entry changes only once tracking has started
        trip: TripPlan = replace(self._directory.get_trip(trip_id) or TripPlan(trip_id=trip_id))
        trip.status = 'ongoing'
        trip.origin = pickup if pickup is not None else trip.origin
        trip.destination = destination if destination is not None else trip.destination
        trip.driver_id = driver_id if driver_id is not None else trip.driver_id

        for point in (trip.origin, trip.destination):
            if point is not None:
                validate_coordinates(point)

        session: TripSession = self._get_or_create_session(trip_id)
        with session.lock:
            state: TripTrackState = self._registry.create_for_trip(
                trip_id,
                start_time=start_time,
                seed_position=trip.origin,
                driver_id=trip.driver_id
            )

            self._directory.update_trip(trip)
            self._prepare_session(session, trip, trip.origin)

            snapshot: TripTrackSnapshot = state.snapshot()
            session.last_live = LiveSnapshot(track=snapshot, navigation=session.guide.state())

            self._distributor.publish(trip_id, session.last_live)

        return snapshot

    def trip_completed(self, trip_id: str) -> FinalSnapshot:
        return self._finish(trip_id, EvictionReason.COMPLETED, 'completed')

    def trip_cancelled(self, trip_id: str) -> FinalSnapshot:
        return self._finish(trip_id, EvictionReason.CANCELLED, 'cancelled')

    def process_fix(self, fix: PositionFix) -> IngestResult:
        trip_id: str = fix.trip_id
        session: TripSession = self._get_or_create_session(trip_id)

        announcement: Announcement|None = None
        proximity_events: list[ProximityEvent] = list()

        with session.lock:
            result: IngestResult = self._ingest.accept(trip_id, fix)
            if not result.is_accepted:
                if self._registry.get(trip_id) is None:
                    self._discard_session(session)

                return result

            # first accepted fix of a startable trip creates its state
            if self._registry.get(trip_id) is None:
                trip: TripPlan = self._directory.get_trip(trip_id) or TripPlan(trip_id=trip_id)

                self._registry.create_for_trip(trip_id, start_time=self._clock(), driver_id=result.accepted.fix.driver_id)
                self._prepare_session(session, trip, trip.origin if trip.origin is not None else result.accepted.fix.coordinates())

            snapshot: TripTrackSnapshot = self._registry.update(trip_id, result.accepted)

            live, announcement = self._derive(session, snapshot)
            session.last_live = live

            proximity_events = self._check_proximity(session, live.track.current_position.coordinates())

            self._distributor.publish(trip_id, live)

        if announcement is not None:
            self._emit(self._announcement_listeners, announcement)

        for proximity_event in proximity_events:
            self._emit(self._proximity_listeners, proximity_event)

        return result

    def sweep(self) -> list[FinalSnapshot]:
        final_snapshots: list[FinalSnapshot] = list()

        for trip_id in self._registry.idle_trip_ids(self._config.idle_timeout_seconds):
            try:
                final_snapshot: FinalSnapshot|None = self._evict_idle(trip_id)
            except TripNotActive:
                logging.debug(f"{self.__class__.__name__}: Trip {trip_id} was evicted concurrently.")
                continue

            if final_snapshot is not None:
                final_snapshots.append(final_snapshot)

        return final_snapshots

    def _evict_idle(self, trip_id: str) -> FinalSnapshot|None:
        session: TripSession = self._get_or_create_session(trip_id)
        with session.lock:

            # a fix may have been processed since the idle scan
            state: TripTrackState|None = self._registry.get(trip_id)
            if state is not None and self._clock() - state.last_activity_time <= self._config.idle_timeout_seconds:
                logging.debug(f"{self.__class__.__name__}: Trip {trip_id} became active again, not evicting.")
                return None

            logging.info(f"{self.__class__.__name__}: Trip {trip_id} is idle, evicting ...")

            return self._finish(trip_id, EvictionReason.IDLE, None)

    def _finish(self, trip_id: str, reason: EvictionReason, status: str|None) -> FinalSnapshot:
        session: TripSession = self._get_or_create_session(trip_id)
        with session.lock:
            try:
                final_snapshot: FinalSnapshot = self._registry.evict(trip_id, reason)

                # fixes waiting for this session must find the trip finished
                if status is not None:
                    trip: TripPlan = replace(self._directory.get_trip(trip_id) or TripPlan(trip_id=trip_id), status=status)
                    self._directory.update_trip(trip)

                    with self._lock:
                        self._geofence_radii.pop(trip_id, None)
            finally:
                self._discard_session(session)

            # the final state is always distributed before subscriptions are dropped
            last_live: LiveSnapshot|None = session.last_live
            final_live: LiveSnapshot = LiveSnapshot(
                track=final_snapshot.snapshot,
                progress=last_live.progress if last_live is not None else None,
                navigation=last_live.navigation if last_live is not None else None,
                is_final=True
            )

            self._distributor.publish(trip_id, final_live)
            self._distributor.close_trip(trip_id)

        return final_snapshot

    def _derive(self, session: TripSession, snapshot: TripTrackSnapshot) -> tuple[LiveSnapshot, Announcement|None]:
        position: Coordinates = snapshot.current_position.coordinates()

        progress: RouteProgressSnapshot|None = None
        if session.destination is not None:
            progress = session.progress.compute(snapshot, session.route_geometry, session.destination, session.origin, session.planned_distance_km)

        if progress is not None and progress.is_off_route:
            logging.info(f"{self.__class__.__name__}: Trip {session.trip_id} deviates {progress.route_deviation_km:.2f} km from its route.")
            self._request_route(session, position, session.destination, is_reroute=True)

        # provider-driven maneuver lookup, the guide falls back to its own thresholds
        provider_index: int|None = None
        route: PlannedRoute|None = session.guide.route
        if route is not None and self._directions is not None:
            try:
                provider_index = self._directions.get_current_instruction(route.maneuvers, position)
            except Exception as ex:
                logging.warning(f"{self.__class__.__name__}: Current instruction lookup failed for trip {session.trip_id}: {ex}")
                session.guide.mark_stale()

        navigation, announcement = session.guide.update(position, provider_index)

        return (LiveSnapshot(track=snapshot, progress=progress, navigation=navigation), announcement)

    def _check_proximity(self, session: TripSession, position: Coordinates) -> list[ProximityEvent]:
        radii: GeofenceRadii|None = self.get_geofence_radii(session.trip_id)

        checks: list[tuple[ProximityType, Coordinates|None, float|None]] = [
            (ProximityType.DRIVER_ARRIVED, session.pickup, self._config.driver_arrival_radius_m),
            (ProximityType.PICKUP_GEOFENCE, session.pickup, radii.pickup_radius_m if radii is not None else None),
            (ProximityType.DROP_GEOFENCE, session.destination, radii.drop_radius_m if radii is not None else None)
        ]

        # every kind of proximity event fires at most once per trip
        proximity_events: list[ProximityEvent] = list()
        for proximity_type, target, radius_m in checks:
            if target is None or radius_m is None or proximity_type in session.proximity_fired:
                continue

            distance_m: float = distance_km(position, target) * 1000.0
            if distance_m <= radius_m:
                session.proximity_fired.add(proximity_type)
                proximity_events.append(ProximityEvent(trip_id=session.trip_id, type=proximity_type, distance_m=distance_m))

                logging.info(f"{self.__class__.__name__}: Trip {session.trip_id} reached {proximity_type.value} proximity at {distance_m:.0f}m.")

        return proximity_events

    def _prepare_session(self, session: TripSession, trip: TripPlan, origin: Coordinates|None) -> None:
        session.pickup = trip.origin
        session.origin = origin
        session.destination = trip.destination

        if session.origin is not None and session.destination is not None:
            self._request_route(session, session.origin, session.destination)
        elif self._directions is not None:
            logging.warning(f"{self.__class__.__name__}: Trip {session.trip_id} has no destination, guidance not available.")

    def _request_route(self, session: TripSession, origin: Coordinates, destination: Coordinates, is_reroute: bool = False) -> None:
        if self._directions is None:
            return

        now: float = self._clock()
        with session.lock:
            if session.route_pending:
                return

            if session.last_route_request is not None and now - session.last_route_request < self.REROUTE_INTERVAL_SECONDS:
                return

            session.route_pending = True
            session.last_route_request = now

        if self._executor is not None:
            self._executor.submit(self._fetch_route, session, origin, destination, is_reroute)
        else:
            self._fetch_route(session, origin, destination, is_reroute)

    def _fetch_route(self, session: TripSession, origin: Coordinates, destination: Coordinates, is_reroute: bool = False) -> None:
        # run this in a separate try-catch clause
        # as the main thread does not see exceptions occured in ThreadPoolExecutor
        try:
            route: PlannedRoute|None = self._directions.get_route(origin, destination)
        except Exception as ex:
            if is_debug():
                logging.exception(ex)
            else:
                logging.error(str(ex))

            route = None

        with session.lock:
            session.route_pending = False

            if route is None:
                logging.warning(f"{self.__class__.__name__}: No route available for trip {session.trip_id}, guidance is stale.")
                session.guide.mark_stale()
                return

            session.guide.set_route(route, destination)
            session.route_geometry = route.geometry
            session.planned_distance_km = self._planned_distance_km(session, route, is_reroute)

        logging.info(f"{self.__class__.__name__}: Loaded route with {len(route.maneuvers)} maneuvers for trip {session.trip_id}.")

    def _planned_distance_km(self, session: TripSession, route: PlannedRoute, is_reroute: bool) -> float|None:
        leg_km: float = polyline_length_km(route.geometry) if len(route.geometry) > 1 else route.total_distance_m / 1000.0
        if leg_km <= 0.0:
            return session.planned_distance_km

        if not is_reroute:
            return leg_km

        # a reroute only covers the rest of the trip
        snapshot: TripTrackSnapshot|None = self._registry.get_snapshot(session.trip_id)
        travelled_km: float = snapshot.cumulative_distance_km if snapshot is not None else 0.0

        return travelled_km + leg_km

    def _emit(self, listeners: list[Callable], event: Announcement|ProximityEvent) -> None:
        with self._lock:
            receivers: list[Callable] = list(listeners)

        for listener in receivers:
            if self._executor is not None:
                self._executor.submit(self._deliver, listener, event)
            else:
                self._deliver(listener, event)

    def _deliver(self, listener: Callable, event: Announcement|ProximityEvent) -> None:
        try:
            listener(event)
        except Exception as ex:
            if is_debug():
                logging.exception(ex)
            else:
                logging.error(f"{self.__class__.__name__}: {event.__class__.__name__} listener failed for trip {event.trip_id}: {ex}")

    def _get_session(self, trip_id: str) -> TripSession|None:
        with self._lock:
            return self._sessions.get(trip_id)

    def _discard_session(self, session: TripSession) -> None:
        with self._lock:
            if self._sessions.get(session.trip_id) is session:
                del self._sessions[session.trip_id]

    def _get_or_create_session(self, trip_id: str) -> TripSession:
        with self._lock:
            session: TripSession|None = self._sessions.get(trip_id)
            if session is None:
                session = TripSession(trip_id, self._config)
                self._sessions[trip_id] = session

            return session
