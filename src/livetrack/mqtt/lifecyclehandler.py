import logging

from livetrack.common.exceptions import TrackingConsistencyError
from livetrack.common.mqtt import get_tls_value
from livetrack.common.shared import parse_timestamp
from livetrack.model.types import Coordinates
from livetrack.mqtt.basehandler import AbstractHandler


class TripLifecycleHandler(AbstractHandler):

    def handle(self, topic: str, payload: dict) -> None:
        trip_id: str = get_tls_value(topic, 'trips')
        event: str|None = payload.get('event')

        try:
            if event == 'started':
                start_time: object = payload.get('start_time', payload.get('startTime'))

                self._service.trip_started(
                    trip_id,
                    start_time=parse_timestamp(start_time) if start_time is not None else None,
                    pickup=Coordinates.from_dict(payload.get('pickup')),
                    destination=Coordinates.from_dict(payload.get('destination')),
                    driver_id=payload.get('driver_id', payload.get('driverId'))
                )

                logging.info(f"{self.__class__.__name__}: Trip {trip_id} started successfully.")

            elif event == 'completed':
                self._service.trip_completed(trip_id)
                logging.info(f"{self.__class__.__name__}: Trip {trip_id} completed successfully.")

            elif event == 'cancelled':
                self._service.trip_cancelled(trip_id)
                logging.info(f"{self.__class__.__name__}: Trip {trip_id} cancelled successfully.")

            elif event == 'geofence':
                self._service.set_geofence_radii(
                    trip_id,
                    float(payload.get('pickup_radius_m', payload.get('pickupRadius'))),
                    float(payload.get('drop_radius_m', payload.get('dropRadius')))
                )

                logging.info(f"{self.__class__.__name__}: Geofence radii of trip {trip_id} updated.")

            else:
                logging.error(f"{self.__class__.__name__}: Unknown lifecycle event {event} for trip {trip_id}.")

        except TrackingConsistencyError as ex:
            logging.error(f"{self.__class__.__name__}: Lifecycle event {event} for trip {trip_id} rejected: {ex}")
        except (KeyError, TypeError, ValueError) as ex:
            # InvalidCoordinate is a ValueError as well
            logging.error(f"{self.__class__.__name__}: Lifecycle event {event} for trip {trip_id} contains invalid data: {ex}")
