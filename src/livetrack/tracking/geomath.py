import math

from dataclasses import dataclass

from livetrack.common.exceptions import InvalidCoordinate
from livetrack.model.types import Coordinates


EARTH_RADIUS_KM: float = 6371.0


@dataclass(frozen=True)
class NearestPoint:
    index: int
    distance_km: float


def distance_km(a: Coordinates, b: Coordinates) -> float:
    lat1, lon1 = map(math.radians, _coords(a))
    lat2, lon2 = map(math.radians, _coords(b))

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return EARTH_RADIUS_KM * c

def bearing_degrees(a: Coordinates, b: Coordinates) -> float:
    lat1, lon1 = map(math.radians, _coords(a))
    lat2, lon2 = map(math.radians, _coords(b))

    dlon = lon2 - lon1

    x = math.sin(dlon) * math.cos(lat2)
    y = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlon)

    bearing_rad = math.atan2(x, y)
    bearing_deg = math.degrees(bearing_rad)

    return (bearing_deg + 360) % 360

def nearest_point_on_polyline(point: Coordinates, polyline: list[Coordinates]) -> NearestPoint|None:
    # nearest vertex approximation, the geometry of the directions provider is dense enough
    nearest: NearestPoint|None = None
    for index, vertex in enumerate(polyline):
        distance: float = distance_km(point, vertex)
        if nearest is None or distance < nearest.distance_km:
            nearest = NearestPoint(index=index, distance_km=distance)

    return nearest

def validate_coordinates(point: Coordinates) -> Coordinates:
    latitude, longitude = _coords(point)

    if not -90.0 <= latitude <= 90.0 or not -180.0 <= longitude <= 180.0:
        raise InvalidCoordinate(f"Coordinate ({latitude}, {longitude}) out of range")

    return point

def polyline_length_km(polyline: list[Coordinates]) -> float:
    return sum(distance_km(polyline[i], polyline[i + 1]) for i in range(len(polyline) - 1))

def _coords(point: Coordinates) -> tuple[float, float]:
    try:
        latitude: float = float(point.latitude)
        longitude: float = float(point.longitude)
    except (TypeError, ValueError, AttributeError) as ex:
        raise InvalidCoordinate(f"Malformed coordinate {point!r}") from ex

    if not math.isfinite(latitude) or not math.isfinite(longitude):
        raise InvalidCoordinate(f"Non-finite coordinate ({latitude}, {longitude})")

    return (latitude, longitude)
