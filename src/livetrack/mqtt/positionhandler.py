import logging

from livetrack.common.mqtt import get_tls_value
from livetrack.common.shared import parse_timestamp
from livetrack.model.types import IngestResult, PositionFix, RejectReason
from livetrack.mqtt.basehandler import AbstractHandler


class PositionHandler(AbstractHandler):

    def handle(self, topic: str, payload: dict) -> IngestResult:
        trip_id: str = get_tls_value(topic, 'trips')

        # extract data from the message
        try:
            data: dict = dict(payload)
            data['timestamp'] = parse_timestamp(data['timestamp'])

            fix: PositionFix = PositionFix.from_dict(data, trip_id=trip_id)
        except (KeyError, TypeError, ValueError) as ex:
            logging.warning(f"{self.__class__.__name__}: Malformed position update for trip {trip_id}: {ex}")
            return IngestResult(reason=RejectReason.MALFORMED_FIX)

        result: IngestResult = self._service.process_fix(fix)
        if result.is_accepted:
            logging.debug(f"{self.__class__.__name__}: Processed position update for trip {trip_id} successfully.")
        else:
            logging.info(f"{self.__class__.__name__}: Position update for trip {trip_id} rejected: {result.reason.value}")

        return result
