import logging
import polyline
import requests

from livetrack.directions.baseadapter import BaseAdapter
from livetrack.model.types import Coordinates, Maneuver, PlannedRoute


class OrsAdapter(BaseAdapter):

    DEFAULT_ENDPOINT: str = 'https://api.openrouteservice.org/v2/directions/driving-car'

    INSTRUCTION_TYPES: dict[int, str] = {
        0: 'turn-left',
        1: 'turn-right',
        2: 'turn-sharp-left',
        3: 'turn-sharp-right',
        4: 'turn-slight-left',
        5: 'turn-slight-right',
        6: 'straight',
        7: 'roundabout',
        10: 'destination',
        11: 'depart'
    }

    def __init__(self, api_key: str|None, endpoint: str = DEFAULT_ENDPOINT, timeout: float = 10.0):
        self._api_key = api_key
        self._endpoint = endpoint
        self._timeout = timeout

        if self._api_key is None:
            raise RuntimeError('OpenRouteService API key is not configured.')

    def get_route(self, origin: Coordinates, destination: Coordinates) -> PlannedRoute|None:
        response = requests.post(
            self._endpoint,
            json={
                'coordinates': [
                    [origin.longitude, origin.latitude],
                    [destination.longitude, destination.latitude]
                ],
                'instructions': True,
                'language': 'en'
            },
            headers={
                'Authorization': self._api_key,
                'Content-Type': 'application/json'
            },
            timeout=self._timeout
        )

        response.raise_for_status()

        data: dict = response.json()
        if len(data.get('routes', [])) == 0:
            logging.warning(f"{self.__class__.__name__}: Response contains no routes.")
            return None

        route: dict = data['routes'][0]

        # geometry is an encoded polyline, steps reference its vertices by index
        geometry: list[Coordinates] = [Coordinates(lat, lon) for lat, lon in polyline.decode(route['geometry'])]

        maneuvers: list[Maneuver] = list()
        for segment in route.get('segments', []):
            for step in segment.get('steps', []):
                maneuvers.append(Maneuver(
                    instruction=step.get('instruction', ''),
                    type=self.INSTRUCTION_TYPES.get(step.get('type'), 'straight'),
                    distance_m=float(step.get('distance', 0.0)),
                    duration_s=float(step.get('duration', 0.0)),
                    location=geometry[step['way_points'][0]]
                ))

        return PlannedRoute(
            maneuvers=maneuvers,
            geometry=geometry,
            total_distance_m=float(route.get('summary', {}).get('distance', 0.0)),
            total_duration_s=float(route.get('summary', {}).get('duration', 0.0))
        )
