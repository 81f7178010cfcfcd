from shapely.geometry import LineString, Point

from livetrack.common.shared import clamp, web_mercator
from livetrack.model.types import Coordinates, RouteProgressSnapshot, TrackedPosition, TripTrackSnapshot
from livetrack.tracking.geomath import NearestPoint, distance_km, nearest_point_on_polyline, polyline_length_km


class RouteProgress:

    DEFAULT_SPEED_KMH: float = 40.0
    OFF_ROUTE_THRESHOLD_M: float = 100.0

    def __init__(self, default_speed_kmh: float = DEFAULT_SPEED_KMH, off_route_threshold_m: float = OFF_ROUTE_THRESHOLD_M) -> None:
        self._default_speed_kmh = default_speed_kmh
        self._off_route_threshold_m = off_route_threshold_m

        # route geometries rarely change, keep the last projected shape
        self._cached_route: list[Coordinates]|None = None
        self._cached_shape: LineString|None = None
        self._cached_length_km: float = 0.0

    def compute(self, snapshot: TripTrackSnapshot, planned_route: list[Coordinates], destination: Coordinates, origin: Coordinates|None = None, planned_distance_km: float|None = None) -> RouteProgressSnapshot|None:
        position: TrackedPosition|None = snapshot.current_position
        if position is None:
            return None

        current: Coordinates = position.coordinates()

        # straight line to the destination, not the remaining route distance
        distance_remaining_km: float = distance_km(current, destination)

        effective_speed_kmh: float = position.speed if position.speed is not None and position.speed > 0 else self._default_speed_kmh
        eta_minutes: int = int(round(distance_remaining_km / effective_speed_kmh * 60))

        # total planned distance of the whole trip when known by the caller,
        # otherwise from the route geometry with the straight line as fallback
        if planned_distance_km is None:
            if planned_route is not None and len(planned_route) > 1:
                planned_distance_km = self._route_length_km(planned_route)
            elif origin is not None:
                planned_distance_km = distance_km(origin, destination)

        if planned_distance_km is not None and planned_distance_km > 0.0:
            percent_complete: float = clamp(snapshot.cumulative_distance_km / planned_distance_km, 0.0, 1.0)
        else:
            percent_complete: float = 1.0 if distance_remaining_km == 0.0 else 0.0

        # deviation from the planned route, based on the nearest route vertex
        nearest: NearestPoint|None = nearest_point_on_polyline(current, planned_route or [])

        return RouteProgressSnapshot(
            distance_remaining_km=distance_remaining_km,
            eta_minutes=eta_minutes,
            percent_complete=percent_complete,
            planned_distance_km=planned_distance_km,
            nearest_route_index=nearest.index if nearest is not None else None,
            route_deviation_km=nearest.distance_km if nearest is not None else None,
            is_off_route=nearest is not None and nearest.distance_km * 1000.0 > self._off_route_threshold_m,
            route_progress_percent=self._route_progress_percent(current, planned_route)
        )

    def _route_length_km(self, planned_route: list[Coordinates]) -> float:
        self._project(planned_route)
        return self._cached_length_km

    def _route_progress_percent(self, current: Coordinates, planned_route: list[Coordinates]) -> float|None:
        if planned_route is None or len(planned_route) < 2:
            return None

        trip_shape: LineString = self._project(planned_route)
        if trip_shape.length == 0.0:
            return None

        # calculate percentual progress along the trip shape determined by position
        position_projection: float = trip_shape.project(web_mercator(Point(current.longitude, current.latitude)))

        return clamp(position_projection / trip_shape.length * 100.0, 0.0, 100.0)

    def _project(self, planned_route: list[Coordinates]) -> LineString:
        if self._cached_route is not planned_route:
            self._cached_shape = web_mercator(LineString([(c.longitude, c.latitude) for c in planned_route]))
            self._cached_length_km = polyline_length_km(planned_route)
            self._cached_route = planned_route

        return self._cached_shape
