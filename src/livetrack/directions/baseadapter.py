from abc import ABC, abstractmethod

from livetrack.model.types import Coordinates, Maneuver, PlannedRoute
from livetrack.tracking.geomath import distance_km


class BaseAdapter(ABC):

    CURRENT_INSTRUCTION_THRESHOLD_M: float = 50.0

    @abstractmethod
    def get_route(self, origin: Coordinates, destination: Coordinates) -> PlannedRoute|None:
        pass

    def get_current_instruction(self, maneuvers: list[Maneuver], position: Coordinates) -> int|None:
        for index, maneuver in enumerate(maneuvers):
            if distance_km(position, maneuver.location) * 1000.0 <= self.CURRENT_INSTRUCTION_THRESHOLD_M:
                return index

        return 0 if len(maneuvers) > 0 else None
