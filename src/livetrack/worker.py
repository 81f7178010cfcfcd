import logging
import os
import signal
import threading
import time

from concurrent.futures import ThreadPoolExecutor

from livetrack.common.config import TrackingConfig
from livetrack.directions.client import DirectionsClient
from livetrack.mqtt.client import TrackingMqttClient
from livetrack.tracker import TrackingService
from livetrack.tracking.sweeper import IdleSweeper


class Worker:

    def __init__(self) -> None:
        config: TrackingConfig = TrackingConfig.from_env()

        # create thread pool for trip processing, deliveries and route requests
        logging.info(f"{self.__class__.__name__}: Setting up ThreadPoolExecutor ...")
        self._executor: ThreadPoolExecutor = ThreadPoolExecutor(max_workers=10)

        logging.info(f"{self.__class__.__name__}: Setting up tracking service ...")
        self._service: TrackingService = TrackingService(
            config,
            directions=DirectionsClient(config.directions_adapter_type, config.directions_adapter_config),
            executor=self._executor
        )

        self._sweeper: IdleSweeper = IdleSweeper(self._service.sweep, config.sweep_interval_seconds)

        # create MQTT binding
        self._mqtt: TrackingMqttClient = TrackingMqttClient(
            config={
                'instance_id': config.instance_id,
                'organisation_id': config.organisation_id,
                'host': os.getenv('LT_WORKER_MQTT_HOST', 'localhost'),
                'port': int(os.getenv('LT_WORKER_MQTT_PORT', '1883')),
                'username': os.getenv('LT_WORKER_MQTT_USERNAME', ''),
                'password': os.getenv('LT_WORKER_MQTT_PASSWORD', '')
            },
            service=self._service,
            thread_executor=self._executor
        )

        self._should_run = threading.Event()
        self._should_run.set()

    def _signal_handler(self, signum, frame):
        logging.info(f'{self.__class__.__name__}: Received signal {signum}')
        self._should_run.clear()

    def run(self) -> None:
        # register signal handlers for graceful shutdown
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        # startup the MQTT binding and idle sweeping
        logging.info(f"{self.__class__.__name__}: Initializing MQTT client ...")
        self._mqtt.start()
        self._sweeper.start()

        logging.info(f"{self.__class__.__name__}: Worker startup complete.")

        try:
            # watch self._should_run for stopping gracefully
            while self._should_run.is_set():
                time.sleep(1)

        except Exception as ex:
            logging.error(f"{self.__class__.__name__}: Exception in worker: {ex}")
        finally:

            logging.info(f"{self.__class__.__name__}: Stopping idle sweeper ...")
            self._sweeper.stop()

            logging.info(f"{self.__class__.__name__}: Terminating MQTT client ...")
            self._mqtt.terminate()

            logging.info(f"{self.__class__.__name__}: Shutting down ThreadPoolExecutor ...")
            self._executor.shutdown(wait=True)

            logging.info(f"{self.__class__.__name__}: Worker shutdown complete.")
