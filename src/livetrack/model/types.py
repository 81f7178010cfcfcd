from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    @classmethod
    def from_dict(cls, data: dict|None) -> Coordinates|None:
        if data is None:
            return None

        return cls(
            latitude=float(data.get('latitude', data.get('lat'))),
            longitude=float(data.get('longitude', data.get('lng')))
        )

@dataclass(frozen=True)
class PositionFix:
    trip_id: str
    driver_id: str
    latitude: float
    longitude: float
    timestamp: float
    heading: Optional[float] = None
    speed: Optional[float] = None

    @classmethod
    def from_dict(cls, data: dict, trip_id: str|None = None) -> PositionFix:
        # accept both snake case and the camel case payloads of the mobile clients
        heading: object = data.get('heading')
        speed: object = data.get('speed')

        return cls(
            trip_id=str(trip_id if trip_id is not None else data.get('trip_id', data.get('tripId', ''))),
            driver_id=str(data.get('driver_id', data.get('driverId', ''))),
            latitude=float(data.get('latitude', data.get('lat'))),
            longitude=float(data.get('longitude', data.get('lng'))),
            timestamp=float(data['timestamp']),
            heading=float(heading) if heading is not None else None,
            speed=float(speed) if speed is not None else None
        )

    def coordinates(self) -> Coordinates:
        return Coordinates(self.latitude, self.longitude)

@dataclass(frozen=True)
class AcceptedFix:
    fix: PositionFix
    is_duplicate: bool = False

class RejectReason(str, Enum):
    MALFORMED_FIX = 'MalformedFix'
    OUT_OF_RANGE_COORDINATE = 'OutOfRangeCoordinate'
    STALE_TIMESTAMP = 'StaleTimestamp'
    UNKNOWN_TRIP = 'UnknownTrip'
    DRIVER_MISMATCH = 'DriverMismatch'

@dataclass(frozen=True)
class IngestResult:
    accepted: Optional[AcceptedFix] = None
    reason: Optional[RejectReason] = None

    @property
    def is_accepted(self) -> bool:
        return self.accepted is not None

@dataclass(frozen=True)
class TrackedPosition:
    latitude: float
    longitude: float
    timestamp: float
    speed: Optional[float] = None
    heading: Optional[float] = None

    def coordinates(self) -> Coordinates:
        return Coordinates(self.latitude, self.longitude)

@dataclass(frozen=True)
class TripTrackSnapshot:
    trip_id: str
    current_position: Optional[TrackedPosition]
    previous_position: Optional[TrackedPosition]
    cumulative_distance_km: float
    trip_start_time: float
    elapsed_seconds: float
    last_fix_time: Optional[float] = None
    driver_id: Optional[str] = None
    max_speed_kmh: float = 0.0
    average_speed_kmh: float = 0.0
    discarded_jumps: int = 0

class EvictionReason(str, Enum):
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    IDLE = 'idle'

@dataclass(frozen=True)
class FinalSnapshot:
    snapshot: TripTrackSnapshot
    reason: EvictionReason
    evicted_at: float
    point_count: int = 0

@dataclass(frozen=True)
class RouteProgressSnapshot:
    distance_remaining_km: float
    eta_minutes: int
    percent_complete: float
    planned_distance_km: Optional[float] = None
    nearest_route_index: Optional[int] = None
    route_deviation_km: Optional[float] = None
    is_off_route: bool = False
    route_progress_percent: Optional[float] = None

@dataclass(frozen=True)
class Maneuver:
    instruction: str
    type: str
    distance_m: float
    location: Coordinates
    duration_s: float = 0.0

@dataclass(frozen=True)
class PlannedRoute:
    maneuvers: list[Maneuver] = field(default_factory=list)
    geometry: list[Coordinates] = field(default_factory=list)
    total_distance_m: float = 0.0
    total_duration_s: float = 0.0

class NavigationStatus(str, Enum):
    AWAITING_ROUTE = 'AWAITING_ROUTE'
    NAVIGATING = 'NAVIGATING'
    ARRIVED = 'ARRIVED'

@dataclass(frozen=True)
class NavigationState:
    status: NavigationStatus
    current_maneuver_index: int = 0
    last_announced_band: Optional[int] = None
    distance_to_maneuver_m: Optional[float] = None
    guidance_stale: bool = False
    maneuver: Optional[Maneuver] = None
    route_version: int = 0

@dataclass(frozen=True)
class Announcement:
    trip_id: str
    maneuver_index: int
    band_m: int
    maneuver_instruction: str
    distance_text: str
    voice_text: str

class ProximityType(str, Enum):
    DRIVER_ARRIVED = 'driver_arrived'
    PICKUP_GEOFENCE = 'pickup'
    DROP_GEOFENCE = 'drop'

@dataclass(frozen=True)
class ProximityEvent:
    trip_id: str
    type: ProximityType
    distance_m: float

@dataclass(frozen=True)
class GeofenceRadii:
    pickup_radius_m: float
    drop_radius_m: float

@dataclass(frozen=True)
class LiveSnapshot:
    track: TripTrackSnapshot
    progress: Optional[RouteProgressSnapshot] = None
    navigation: Optional[NavigationState] = None
    is_final: bool = False

@dataclass
class TripPlan:
    trip_id: str
    status: str = 'upcoming'
    driver_id: Optional[str] = None
    origin: Optional[Coordinates] = None
    destination: Optional[Coordinates] = None
