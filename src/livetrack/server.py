import json
import logging
import os
import uvicorn

from concurrent.futures import ThreadPoolExecutor
from fastapi import APIRouter
from fastapi import Body
from fastapi import FastAPI
from fastapi import Response
from fastapi.middleware.cors import CORSMiddleware

from livetrack.common.config import TrackingConfig
from livetrack.common.exceptions import DuplicateTrip, InvalidCoordinate, TripNotActive
from livetrack.common.shared import parse_timestamp
from livetrack.directions.client import DirectionsClient
from livetrack.model.serialization import serialize
from livetrack.model.types import Coordinates, FinalSnapshot, GeofenceRadii, IngestResult, LiveSnapshot, PositionFix, RejectReason
from livetrack.model.types import TripTrackSnapshot
from livetrack.tracker import TrackingService
from livetrack.tracking.sweeper import IdleSweeper


class TrackingServer():

    def __init__(self, service: TrackingService|None = None) -> None:
        if service is None:
            config: TrackingConfig = TrackingConfig.from_env()

            logging.info(f"{self.__class__.__name__}: Setting up tracking service ...")
            self._executor: ThreadPoolExecutor|None = ThreadPoolExecutor(max_workers=10)
            service = TrackingService(
                config,
                directions=DirectionsClient(config.directions_adapter_type, config.directions_adapter_config),
                executor=self._executor
            )

            self._sweeper: IdleSweeper|None = IdleSweeper(service.sweep, config.sweep_interval_seconds)
        else:
            self._executor = None
            self._sweeper = None

        self._service = service

        logging.info(f"{self.__class__.__name__}: Creating FastAPI instance ...")
        self._fastapi = FastAPI()
        self._fastapi.add_middleware(
            CORSMiddleware,
            allow_origins=['*'],
            allow_credentials=True,
            allow_methods=['GET', 'POST'],
            allow_headers=['*']
        )

        self._api_router = APIRouter()
        self._api_router.add_api_route('/trips/{trip_id}/start', endpoint=self._start_trip, methods=['POST'], name='start_trip')
        self._api_router.add_api_route('/trips/{trip_id}/complete', endpoint=self._complete_trip, methods=['POST'], name='complete_trip')
        self._api_router.add_api_route('/trips/{trip_id}/cancel', endpoint=self._cancel_trip, methods=['POST'], name='cancel_trip')
        self._api_router.add_api_route('/trips/{trip_id}/geofence', endpoint=self._geofence, methods=['POST'], name='geofence')
        self._api_router.add_api_route('/trips/{trip_id}/positions', endpoint=self._positions, methods=['POST'], name='positions')
        self._api_router.add_api_route('/trips/{trip_id}/snapshot', endpoint=self._snapshot, methods=['GET'], name='snapshot')
        self._api_router.add_api_route('/trips/{trip_id}/live', endpoint=self._live, methods=['GET'], name='live')

        self._fastapi.include_router(self._api_router)

    @property
    def app(self) -> FastAPI:
        return self._fastapi

    def _start_trip(self, trip_id: str, payload: dict|None = Body(default=None)) -> Response:
        data: dict = dict(payload) if payload is not None else dict()

        try:
            start_time: object = data.get('start_time', data.get('startTime'))

            pickup: Coordinates|None = Coordinates.from_dict(data.get('pickup'))
            destination: Coordinates|None = Coordinates.from_dict(data.get('destination'))
            start_timestamp: float|None = parse_timestamp(start_time) if start_time is not None else None
        except (KeyError, TypeError, ValueError) as ex:
            return self._response({'error': f"Invalid trip data: {ex}"}, 400)

        try:
            snapshot: TripTrackSnapshot = self._service.trip_started(
                trip_id,
                start_time=start_timestamp,
                pickup=pickup,
                destination=destination,
                driver_id=data.get('driver_id', data.get('driverId'))
            )
        except InvalidCoordinate as ex:
            return self._response({'error': f"Invalid trip data: {ex}"}, 400)
        except DuplicateTrip as ex:
            return self._response({'error': str(ex)}, 409)

        return self._response(serialize(snapshot), 201)

    def _geofence(self, trip_id: str, payload: dict|None = Body(default=None)) -> Response:
        data: dict = dict(payload) if payload is not None else dict()

        try:
            radii: GeofenceRadii = self._service.set_geofence_radii(
                trip_id,
                float(data.get('pickup_radius_m', data.get('pickupRadius'))),
                float(data.get('drop_radius_m', data.get('dropRadius')))
            )
        except (TypeError, ValueError) as ex:
            return self._response({'error': f"Invalid geofence data: {ex}"}, 400)

        return self._response(serialize(radii))

    def _complete_trip(self, trip_id: str) -> Response:
        try:
            final_snapshot: FinalSnapshot = self._service.trip_completed(trip_id)
        except TripNotActive as ex:
            return self._response({'error': str(ex)}, 404)

        return self._response(serialize(final_snapshot))

    def _cancel_trip(self, trip_id: str) -> Response:
        try:
            final_snapshot: FinalSnapshot = self._service.trip_cancelled(trip_id)
        except TripNotActive as ex:
            return self._response({'error': str(ex)}, 404)

        return self._response(serialize(final_snapshot))

    def _positions(self, trip_id: str, payload: dict|None = Body(default=None)) -> Response:
        data: dict = dict(payload) if payload is not None else dict()

        try:
            data['timestamp'] = parse_timestamp(data['timestamp'])
            fix: PositionFix = PositionFix.from_dict(data, trip_id=trip_id)
        except (KeyError, TypeError, ValueError):
            return self._response({'accepted': False, 'reason': RejectReason.MALFORMED_FIX.value}, 400)

        result: IngestResult = self._service.process_fix(fix)
        if not result.is_accepted:
            status_code: int = 404 if result.reason == RejectReason.UNKNOWN_TRIP else 422
            return self._response({'accepted': False, 'reason': result.reason.value}, status_code)

        return self._response({'accepted': True, 'duplicate': result.accepted.is_duplicate}, 202)

    def _snapshot(self, trip_id: str) -> Response:
        snapshot: TripTrackSnapshot|None = self._service.get_snapshot(trip_id)
        if snapshot is None:
            return self._response({'error': f"Trip {trip_id} is not active"}, 404)

        return self._response(serialize(snapshot))

    def _live(self, trip_id: str) -> Response:
        live_snapshot: LiveSnapshot|None = self._service.get_live_snapshot(trip_id)
        if live_snapshot is None:
            return self._response({'error': f"Trip {trip_id} is not active"}, 404)

        return self._response(serialize(live_snapshot))

    def _response(self, data: dict, status_code: int = 200) -> Response:
        return Response(content=json.dumps(data), status_code=status_code, media_type='application/json')

    def run(self) -> None:
        if self._sweeper is not None:
            self._sweeper.start()

        try:
            uvicorn.run(
                app=self._fastapi,
                host=os.getenv('LT_SERVER_HOST', '0.0.0.0'),
                port=int(os.getenv('LT_SERVER_PORT', '9000'))
            )
        finally:
            if self._sweeper is not None:
                self._sweeper.stop()

            if self._executor is not None:
                self._executor.shutdown(wait=True)
