class InvalidCoordinate(ValueError):

    def __init__(self, message: str = 'Coordinate contains non-finite values') -> None:
        super().__init__(message)


class TrackingConsistencyError(RuntimeError):

    def __init__(self, trip_id: str, message: str) -> None:
        self.trip_id = trip_id
        super().__init__(message)


class DuplicateTrip(TrackingConsistencyError):

    def __init__(self, trip_id: str) -> None:
        super().__init__(trip_id, f"Trip {trip_id} is already tracked.")


class TripNotActive(TrackingConsistencyError):

    def __init__(self, trip_id: str) -> None:
        super().__init__(trip_id, f"Trip {trip_id} is not actively tracked.")
