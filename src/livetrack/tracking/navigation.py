import logging

from livetrack.model.types import Announcement, Coordinates, Maneuver, NavigationState, NavigationStatus, PlannedRoute
from livetrack.tracking.geomath import distance_km


VOICE_TEMPLATES: dict[str, str] = {
    'turn-left': "In {distance}, turn left",
    'turn-right': "In {distance}, turn right",
    'turn-slight-left': "In {distance}, keep left",
    'turn-slight-right': "In {distance}, keep right",
    'turn-sharp-left': "In {distance}, make a sharp left turn",
    'turn-sharp-right': "In {distance}, make a sharp right turn",
    'straight': "Continue straight for {distance}",
    'roundabout': "In {distance}, enter the roundabout",
    'destination': "You have arrived at your destination",
    'depart': "Start your journey"
}


def format_distance(meters: float) -> str:
    if meters < 1000:
        return f"{round(meters)}m"

    return f"{meters / 1000:.1f}km"

def spoken_distance(meters: float) -> float:
    # short distances are spoken exactly, longer ones in steps of 100m
    if meters < 100:
        return round(meters)

    return round(meters / 100) * 100

def voice_instruction(maneuver: Maneuver, meters: float) -> str:
    template: str|None = VOICE_TEMPLATES.get(maneuver.type)
    if template is None:
        return f"{maneuver.instruction} in {format_distance(meters)}"

    return template.format(distance=format_distance(meters))


class NavigationGuide:

    ANNOUNCEMENT_BANDS_M: tuple[int, ...] = (500, 200, 100, 50)
    BAND_WINDOW_M: float = 50.0

    def __init__(self, trip_id: str, maneuver_threshold_m: float = 30.0, arrival_threshold_m: float = 30.0) -> None:
        self.trip_id: str = trip_id

        self._maneuver_threshold_m = maneuver_threshold_m
        self._arrival_threshold_m = arrival_threshold_m

        self._route: PlannedRoute|None = None
        self._destination: Coordinates|None = None
        self._route_version: int = 0

        self._status: NavigationStatus = NavigationStatus.AWAITING_ROUTE
        self._maneuver_index: int = 0

        # maneuvers of replaced routes, keeps the exposed index growing across reroutes
        self._index_offset: int = 0
        self._last_announced_band: int|None = None
        self._distance_to_maneuver_m: float|None = None
        self._guidance_stale: bool = False

    @property
    def route(self) -> PlannedRoute|None:
        return self._route

    def set_route(self, route: PlannedRoute, destination: Coordinates|None = None) -> None:
        if route is None or len(route.maneuvers) == 0:
            logging.warning(f"{self.__class__.__name__}: Route for trip {self.trip_id} contains no maneuvers.")
            self.mark_stale()
            return

        if self._status == NavigationStatus.ARRIVED:
            return

        if self._route is not None:
            self._index_offset += self._maneuver_index + 1

        self._route = route
        self._destination = destination if destination is not None else route.maneuvers[-1].location
        self._route_version += 1

        self._status = NavigationStatus.NAVIGATING
        self._maneuver_index = 0
        self._last_announced_band = None
        self._distance_to_maneuver_m = None
        self._guidance_stale = False

    def mark_stale(self) -> None:
        # keep the last known maneuver and distance, only flag them as outdated
        self._guidance_stale = True

    def update(self, position: Coordinates, provider_index: int|None = None) -> tuple[NavigationState, Announcement|None]:
        if self._status != NavigationStatus.NAVIGATING:
            return (self.state(), None)

        maneuvers: list[Maneuver] = self._route.maneuvers
        last_index: int = len(maneuvers) - 1

        # the directions provider knows best which instruction applies
        if provider_index is not None and self._maneuver_index < provider_index <= last_index:
            self._advance(provider_index)

        # safety net: the current maneuver has been passed by the driver,
        # a departure maneuver is passed as soon as any position is known
        distance_m: float = distance_km(position, maneuvers[self._maneuver_index].location) * 1000.0
        while (distance_m <= self._maneuver_threshold_m or maneuvers[self._maneuver_index].type == 'depart') and self._maneuver_index < last_index:
            self._advance(self._maneuver_index + 1)
            distance_m = distance_km(position, maneuvers[self._maneuver_index].location) * 1000.0

        self._distance_to_maneuver_m = distance_m

        if distance_km(position, self._destination) * 1000.0 <= self._arrival_threshold_m:
            if self._maneuver_index < last_index:
                self._advance(last_index)

            self._status = NavigationStatus.ARRIVED
            logging.info(f"{self.__class__.__name__}: Trip {self.trip_id} arrived at its destination.")

            return (self.state(), None)

        return (self.state(), self._announce(distance_m))

    def state(self) -> NavigationState:
        maneuver: Maneuver|None = None
        if self._route is not None:
            maneuver = self._route.maneuvers[self._maneuver_index]

        return NavigationState(
            status=self._status,
            current_maneuver_index=self._index_offset + self._maneuver_index,
            last_announced_band=self._last_announced_band,
            distance_to_maneuver_m=self._distance_to_maneuver_m,
            guidance_stale=self._guidance_stale or self._status == NavigationStatus.AWAITING_ROUTE,
            maneuver=maneuver,
            route_version=self._route_version
        )

    def _advance(self, maneuver_index: int) -> None:
        self._maneuver_index = maneuver_index
        self._last_announced_band = None

        logging.debug(f"{self.__class__.__name__}: Trip {self.trip_id} advanced to maneuver {maneuver_index}.")

    def _announce(self, distance_m: float) -> Announcement|None:
        for band in self.ANNOUNCEMENT_BANDS_M:
            if band - self.BAND_WINDOW_M < distance_m <= band:

                # bands are announced descending and at most once per maneuver
                if self._last_announced_band is not None and band >= self._last_announced_band:
                    return None

                self._last_announced_band = band

                maneuver: Maneuver = self._route.maneuvers[self._maneuver_index]
                spoken_m: float = spoken_distance(distance_m)

                return Announcement(
                    trip_id=self.trip_id,
                    maneuver_index=self._index_offset + self._maneuver_index,
                    band_m=band,
                    maneuver_instruction=maneuver.instruction,
                    distance_text=format_distance(spoken_m),
                    voice_text=voice_instruction(maneuver, spoken_m)
                )

        return None
