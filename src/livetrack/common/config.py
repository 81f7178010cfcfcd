import json
import os

from dataclasses import dataclass, field


@dataclass
class TrackingConfig:
    organisation_id: str = 'default'
    instance_id: str = 'default'

    sanity_ceiling_km: float = 5.0
    idle_timeout_seconds: float = 1800.0
    sweep_interval_seconds: float = 300.0
    default_speed_kmh: float = 40.0
    off_route_threshold_m: float = 100.0
    maneuver_threshold_m: float = 30.0
    arrival_threshold_m: float = 30.0
    driver_arrival_radius_m: float = 50.0

    directions_adapter_type: str = 'osrm'
    directions_adapter_config: dict = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> 'TrackingConfig':
        return cls(
            organisation_id=os.getenv('LT_ORGANISATION_ID', 'default'),
            instance_id=os.getenv('LT_INSTANCE_ID', 'default'),
            sanity_ceiling_km=float(os.getenv('LT_SANITY_CEILING_KM', '5.0')),
            idle_timeout_seconds=float(os.getenv('LT_IDLE_TIMEOUT_SECONDS', '1800')),
            sweep_interval_seconds=float(os.getenv('LT_SWEEP_INTERVAL_SECONDS', '300')),
            default_speed_kmh=float(os.getenv('LT_DEFAULT_SPEED_KMH', '40')),
            off_route_threshold_m=float(os.getenv('LT_OFF_ROUTE_THRESHOLD_M', '100')),
            maneuver_threshold_m=float(os.getenv('LT_MANEUVER_THRESHOLD_M', '30')),
            arrival_threshold_m=float(os.getenv('LT_ARRIVAL_THRESHOLD_M', '30')),
            driver_arrival_radius_m=float(os.getenv('LT_DRIVER_ARRIVAL_RADIUS_M', '50')),
            directions_adapter_type=os.getenv('LT_DIRECTIONS_ADAPTER_TYPE', 'osrm'),
            directions_adapter_config=json.loads(os.getenv('LT_DIRECTIONS_ADAPTER_CONFIG', '{}'))
        )
