import logging

from threading import Thread, Event
from typing import Callable

from livetrack.common.env import is_debug


class IdleSweeper:

    def __init__(self, sweep: Callable[[], list], interval_seconds: float = 300.0) -> None:
        self._sweep = sweep
        self._interval_seconds = interval_seconds

        self._sweep_thread: Thread = Thread(target=self._loop, daemon=True)

        self._should_stop: Event = Event()

    def start(self) -> None:
        logging.info(f"{self.__class__.__name__}: Sweeping idle trips every {self._interval_seconds} seconds ...")
        self._sweep_thread.start()

    def stop(self) -> None:
        self._should_stop.set()

        if self._sweep_thread.is_alive():
            self._sweep_thread.join()

    def _loop(self) -> None:
        # waiting on the event lets stop() interrupt a running interval
        while not self._should_stop.wait(self._interval_seconds):
            try:
                evicted: list = self._sweep()
                if len(evicted) > 0:
                    logging.info(f"{self.__class__.__name__}: Evicted {len(evicted)} idle trips.")
            except Exception as ex:
                if is_debug():
                    logging.exception(ex)
                else:
                    logging.error(str(ex))
