import logging

from livetrack.common.env import is_debug
from livetrack.directions.baseadapter import BaseAdapter
from livetrack.model.types import Coordinates, Maneuver, PlannedRoute


class DirectionsClient:

    def __init__(self, adapter_type: str, adapter_config: dict):
        self._adapter_type = adapter_type
        self._adapter_config = adapter_config

        self._adapter: BaseAdapter = self._get_configured_adapter()

    def get_route(self, origin: Coordinates, destination: Coordinates) -> PlannedRoute|None:
        try:
            logging.info(f"{self.__class__.__name__}: Loading route with adapter of type {self._adapter_type} ...")
            route: PlannedRoute|None = self._adapter.get_route(origin, destination)

            return route

        except Exception as ex:
            if is_debug():
                logging.exception(ex)
            else:
                logging.error(str(ex))

            return None

    def get_current_instruction(self, maneuvers: list[Maneuver], position: Coordinates) -> int|None:
        return self._adapter.get_current_instruction(maneuvers, position)

    def _get_configured_adapter(self) -> BaseAdapter:
        adapter: BaseAdapter = None

        if self._adapter_type == 'ors':
            from livetrack.directions.ors.adapter import OrsAdapter
            adapter = OrsAdapter(
                self._adapter_config.get('api_key', None),
                self._adapter_config.get('endpoint', OrsAdapter.DEFAULT_ENDPOINT)
            )
        elif self._adapter_type == 'osrm':
            from livetrack.directions.osrm.adapter import OsrmAdapter
            adapter = OsrmAdapter(self._adapter_config.get('endpoint', OsrmAdapter.DEFAULT_ENDPOINT))
        else:
            raise ValueError(f"Unknown directions adapter type {self._adapter_type}!")

        return adapter
