import json
import logging
import re

from concurrent.futures import ThreadPoolExecutor
from paho.mqtt import client as mqtt
from threading import Lock
from queue import Queue

from livetrack.common.env import is_debug
from livetrack.common.mqtt import get_tls_value
from livetrack.feed.distributor import Subscription
from livetrack.model.serialization import serialize
from livetrack.model.types import Announcement, LiveSnapshot, ProximityEvent
from livetrack.mqtt.lifecyclehandler import TripLifecycleHandler
from livetrack.mqtt.positionhandler import PositionHandler
from livetrack.tracker import TrackingService


class TopicLevelStructureDict(dict):
    def __missing__(self, key):
        return f"{{{key}}}"


class TrackingMqttClient:

    def __init__(self, config: dict, service: TrackingService, thread_executor: ThreadPoolExecutor) -> None:
        self.instance_id: str = config['instance_id']
        self.organisation_id: str = config['organisation_id']

        self._service = service
        self._executor = thread_executor

        # setup internal thread handling members
        self._trip_locks: dict[str, bool] = dict()
        self._trip_queues: dict[str, Queue] = dict()
        self._lock = Lock()

        self._snapshot_subscription: Subscription|None = None

        # create MQTT client
        self._mqtt: mqtt.Client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            protocol=mqtt.MQTTv5,
            client_id=f"livetrack-{self.organisation_id}-{self.instance_id}"
        )

        # create TLS topic structures
        self._tls_sub_trip_position: tuple[str, int] = ("livetrack/{organisation_id}/trips/+/position", 0)
        self._tls_sub_trip_lifecycle: tuple[str, int] = ("livetrack/{organisation_id}/trips/+/lifecycle", 2)

        self._tls_pub_trip_snapshot: tuple[str, int] = ("livetrack/{organisation_id}/trips/{trip_id}/snapshot", 0)
        self._tls_pub_trip_announcement: tuple[str, int] = ("livetrack/{organisation_id}/trips/{trip_id}/announcement", 1)
        self._tls_pub_trip_proximity: tuple[str, int] = ("livetrack/{organisation_id}/trips/{trip_id}/proximity", 1)

        # keep track of all global placeholders here
        # used in _get_tls method later
        self._tls_dict: TopicLevelStructureDict = TopicLevelStructureDict()
        self._tls_dict['organisation_id'] = self.organisation_id

        # set MQTT parameters
        self._mqtt_host: str|None = config['host'] if 'host' in config else None
        self._mqtt_port: str|None = config['port'] if 'port' in config else '1883'
        self._mqtt_username: str|None = config['username'] if 'username' in config else None
        self._mqtt_password: str|None = config['password'] if 'password' in config else None

        if self._mqtt_host is None:
            raise RuntimeError('MQTT host is not configured. Please configure a MQTT hostname or IP address.')

    def get_subscribed_topics(self) -> list[tuple[str, int]]:
        return [
            self._get_tls('sub_trip_position'),
            self._get_tls('sub_trip_lifecycle')
        ]

    def start(self) -> None:
        # define MQTT callback methods
        self._mqtt.on_connect = self._on_connect
        self._mqtt.on_message = self._on_message
        self._mqtt.on_disconnect = self._on_disconnect

        # set username and password if provided
        if self._mqtt_username and self._mqtt_password:
            self._mqtt.username_pw_set(username=self._mqtt_username, password=self._mqtt_password)

        # all service output is mirrored to the broker
        self._snapshot_subscription = self._service.distributor.subscribe_all(self._on_live_snapshot)
        self._service.add_announcement_listener(self._on_announcement)
        self._service.add_proximity_listener(self._on_proximity_event)

        # finally connect to the broker ...
        logging.info(f"{self.instance_id}/{self.__class__.__name__}: Connecting to MQTT broker at {self._mqtt_host}:{self._mqtt_port} ...")
        self._mqtt.connect(self._mqtt_host, int(self._mqtt_port))

        self._mqtt.loop_start()

    def process(self, topic: str, payload: bytes) -> None:
        logging.debug(f"{self.instance_id}/{self.__class__.__name__}: Received message in topic {topic}")

        if self._tls_matches(topic, 'sub_trip_position') or self._tls_matches(topic, 'sub_trip_lifecycle'):
            self._handle_message(topic, payload)
        else:
            logging.warning(f"{self.instance_id}/{self.__class__.__name__}: No handler for topic {topic}")

    def terminate(self) -> None:
        if self._snapshot_subscription is not None:
            self._snapshot_subscription.unsubscribe()

        logging.info(f"{self.instance_id}/{self.__class__.__name__}: Shutting down MQTT connection ...")
        self._mqtt.disconnect()

        self._mqtt.loop_stop()

    def _on_connect(self, client, userdata, flags, rc, properties):
        if not rc.is_failure:
            for topic, qos in self.get_subscribed_topics():
                logging.info(f"{self.instance_id}/{self.__class__.__name__}: Subscribing to topic: {topic}")
                self._mqtt.subscribe(topic, qos=qos)
        else:
            raise RuntimeError("Failed to connect to the MQTT broker.")

    def _on_message(self, client, userdata, message):
        try:
            self.process(message.topic, message.payload)
        except Exception as ex:
            if is_debug():
                logging.exception(ex)
            else:
                logging.error(str(ex))

    def _on_disconnect(self, client, userdata, flags, rc, properties):
        for topic, qos in self.get_subscribed_topics():
            logging.info(f"{self.instance_id}/{self.__class__.__name__}: Unsubscribing from topic: {topic}")
            self._mqtt.unsubscribe(topic)

    def _on_live_snapshot(self, trip_id: str, snapshot: LiveSnapshot) -> None:
        self._publish(
            'pub_trip_snapshot',
            json.dumps(serialize(snapshot)),
            retain=True,
            trip_id=trip_id
        )

    def _on_announcement(self, announcement: Announcement) -> None:
        self._publish(
            'pub_trip_announcement',
            json.dumps(serialize(announcement)),
            trip_id=announcement.trip_id
        )

    def _on_proximity_event(self, proximity_event: ProximityEvent) -> None:
        self._publish(
            'pub_trip_proximity',
            json.dumps(serialize(proximity_event)),
            trip_id=proximity_event.trip_id
        )

    def _publish(self, tls_name: str, payload: str, retain=False, **arguments):
        tls: tuple[str, int] = self._get_tls(tls_name)

        tls_str: str = tls[0]
        tls_str = tls_str.format(**arguments)

        self._mqtt.publish(
            tls_str,
            payload,
            tls[1],
            retain
        )

        logging.debug(f"{self.instance_id}/{self.__class__.__name__}: Published message to topic {tls_str}")

    def _handle_message(self, topic: str, payload: bytes) -> None:
        msg: dict = json.loads(payload)
        if not isinstance(msg, dict):
            raise TypeError(f"Message in topic {topic} is not a JSON object")

        # lookup for IDs which will be required for all handler results
        trip_id: str|None = get_tls_value(topic, 'trips')

        with self._lock:
            if trip_id not in self._trip_locks:
                self._trip_locks[trip_id] = False
                self._trip_queues[trip_id] = Queue()

            if not self._trip_locks[trip_id]:
                # mark trip as locked and put the action into the executor
                self._trip_locks[trip_id] = True
                self._executor.submit(
                    self._handle_message_executor,
                    trip_id,
                    topic,
                    msg
                )
            else:
                # the trip is currently processed by a thread
                # put the message into the queue
                # it will be executed once the current thread terminates
                logging.debug(f"{self.instance_id}/{self.__class__.__name__}: Trip {trip_id} is blocked currently, enqueuing message ...")
                self._trip_queues[trip_id].put((
                    trip_id,
                    topic,
                    msg
                ))

    def _handle_message_executor(self, trip_id: str, topic: str, msg: dict) -> None:

        # run this in a separate try-catch clause
        # as the main thread does not see exceptions occured in ThreadPoolExecutor
        try:

            if self._tls_matches(topic, 'sub_trip_position'):
                handler: PositionHandler = PositionHandler(self._service)
                handler.handle(topic, msg)
            elif self._tls_matches(topic, 'sub_trip_lifecycle'):
                handler: TripLifecycleHandler = TripLifecycleHandler(self._service)
                handler.handle(topic, msg)

        except Exception as ex:
            if is_debug():
                logging.exception(ex)
            else:
                logging.error(str(ex))

        # after handling release the current trip
        with self._lock:
            # check whether there're other messages in queue for this trip
            # if so, process them too; else forget the trip until its next message
            if not self._trip_queues[trip_id].empty():
                next_message: tuple = self._trip_queues[trip_id].get()
                self._executor.submit(
                    self._handle_message_executor,
                    *next_message
                )
            else:
                del self._trip_locks[trip_id]
                del self._trip_queues[trip_id]

    def _get_tls(self, tls_name: str) -> tuple[str, int]:
        if not tls_name.startswith('_tls_'):
            tls_name = f"_tls_{tls_name}"

        tls: tuple = getattr(self, tls_name, None)
        if tls is not None and isinstance(tls, tuple):
            tls_str: str = tls[0]
            tls_str = tls_str.format_map(self._tls_dict)

            return (tls_str, tls[1])
        else:
            raise ValueError(f"Undefined TLS {tls_name} not found!")

    def _tls_matches(self, topic: str, tls_name: str) -> bool:
        tls_str: str = self._get_tls(tls_name)[0]

        regex = re.escape(tls_str)
        regex = regex.replace(r'\+', '[^/]+')
        regex = regex.replace(r'\#', '.*')
        regex = '^' + regex + '$'

        return re.match(regex, topic) is not None
