import logging
import polyline
import requests

from livetrack.directions.baseadapter import BaseAdapter
from livetrack.model.types import Coordinates, Maneuver, PlannedRoute


class OsrmAdapter(BaseAdapter):

    DEFAULT_ENDPOINT: str = 'https://router.project-osrm.org'

    MODIFIER_TYPES: dict[str, str] = {
        'left': 'turn-left',
        'right': 'turn-right',
        'sharp left': 'turn-sharp-left',
        'sharp right': 'turn-sharp-right',
        'slight left': 'turn-slight-left',
        'slight right': 'turn-slight-right',
        'straight': 'straight'
    }

    def __init__(self, endpoint: str = DEFAULT_ENDPOINT, timeout: float = 10.0):
        self._endpoint = endpoint.rstrip('/')
        self._timeout = timeout

    def get_route(self, origin: Coordinates, destination: Coordinates) -> PlannedRoute|None:
        coordinates: str = f"{origin.longitude},{origin.latitude};{destination.longitude},{destination.latitude}"

        response = requests.get(
            f"{self._endpoint}/route/v1/driving/{coordinates}",
            params={
                'overview': 'full',
                'geometries': 'polyline',
                'steps': 'true'
            },
            headers={
                'User-Agent': 'livetrack'
            },
            timeout=self._timeout
        )

        response.raise_for_status()

        data: dict = response.json()
        if data.get('code') != 'Ok' or len(data.get('routes', [])) == 0:
            logging.warning(f"{self.__class__.__name__}: No route found, response code {data.get('code')}.")
            return None

        route: dict = data['routes'][0]
        geometry: list[Coordinates] = [Coordinates(lat, lon) for lat, lon in polyline.decode(route['geometry'])]

        maneuvers: list[Maneuver] = list()
        for leg in route.get('legs', []):
            for step in leg.get('steps', []):
                osrm_maneuver: dict = step.get('maneuver', {})
                maneuver_type: str = self._map_type(osrm_maneuver.get('type'), osrm_maneuver.get('modifier'))

                if maneuver_type == 'destination':
                    instruction: str = 'Arrive at destination'
                else:
                    instruction: str = ' '.join(p for p in [
                        osrm_maneuver.get('type', ''),
                        osrm_maneuver.get('modifier', ''),
                        f"on {step['name']}" if step.get('name') else ''
                    ] if p)

                maneuvers.append(Maneuver(
                    instruction=instruction,
                    type=maneuver_type,
                    distance_m=float(step.get('distance', 0.0)),
                    duration_s=float(step.get('duration', 0.0)),
                    location=Coordinates(osrm_maneuver['location'][1], osrm_maneuver['location'][0])
                ))

        return PlannedRoute(
            maneuvers=maneuvers,
            geometry=geometry,
            total_distance_m=float(route.get('distance', 0.0)),
            total_duration_s=float(route.get('duration', 0.0))
        )

    def _map_type(self, osrm_type: str|None, modifier: str|None) -> str:
        if osrm_type == 'depart':
            return 'depart'
        elif osrm_type == 'arrive':
            return 'destination'
        elif osrm_type in ('roundabout', 'rotary', 'roundabout turn'):
            return 'roundabout'

        return self.MODIFIER_TYPES.get(modifier, 'straight')
