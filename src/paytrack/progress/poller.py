"""Fixed-interval background poller with an idempotent start/stop pair."""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)


class StatusPoller:
    """Call ``tick`` every ``interval`` seconds on a daemon thread until stopped.

    The first call happens one interval after ``start()``; callers wanting an
    immediate fetch make it themselves. ``stop()`` may be called from any
    thread, including from inside ``tick``. Once it returns no new tick
    begins; a tick already in flight finishes on its own unless ``wait=True``.
    """

    def __init__(self, tick: Callable[[], None], interval: float, name: str = "status-poller") -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._tick = tick
        self._interval = interval
        self._name = name
        self._lock = threading.Lock()
        self._stop_event: threading.Event | None = None
        self._thread: threading.Thread | None = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        with self._lock:
            return self._stop_event is not None and not self._stop_event.is_set()

    def start(self) -> None:
        with self._lock:
            if self._stop_event is not None and not self._stop_event.is_set():
                return
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._loop, args=(stop_event,), name=self._name, daemon=True,
            )
            self._stop_event = stop_event
            self._thread = thread
        logger.debug("Poller %s started (every %.2fs)", self._name, self._interval)
        thread.start()

    def stop(self, wait: bool = False) -> None:
        with self._lock:
            stop_event, thread = self._stop_event, self._thread
            if stop_event is None:
                return
            already_stopped = stop_event.is_set()
            stop_event.set()
        if not already_stopped:
            logger.debug("Poller %s stopped", self._name)
        if wait and thread is not None and thread is not threading.current_thread():
            thread.join()

    def _loop(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self._interval):
            try:
                self._tick()
            except Exception:
                logger.exception("Poller %s tick failed; stopping", self._name)
                stop_event.set()
                return
