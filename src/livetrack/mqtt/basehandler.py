from abc import ABC

from livetrack.tracker import TrackingService


class AbstractHandler(ABC):

    def __init__(self, service: TrackingService) -> None:
        self._service = service

    def handle(self, topic: str, payload: dict) -> None:
        raise NotImplementedError("Subclasses must implement this method")
