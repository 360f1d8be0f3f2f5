# queuedesk/app/scheduler.py
# fixed-cadence driver for the assignment tick
import logging
import threading
from typing import Callable, List, Optional

from .engine import TickResult
from . import config

logger = logging.getLogger(__name__)

Subscriber = Callable[[TickResult], None]


class TickScheduler:
    """Runs ``service.run_tick`` every ``interval`` seconds on one daemon thread."""

    def __init__(self, service, interval: float = config.TICK_INTERVAL):
        self.service = service
        self.interval = interval
        self.subscribers: List[Subscriber] = []
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def subscribe(self, fn: Subscriber) -> Subscriber:
        self.subscribers.append(fn)
        return fn

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> Optional[TickResult]:
        try:
            result = self.service.run_tick()
        except Exception:
            logger.exception("tick failed")
            return None
        for fn in list(self.subscribers):
            try:
                fn(result)
            except Exception:
                logger.exception("tick subscriber %r failed", fn)
        return result

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()

        def run():
            logger.info("tick scheduler started, every %.1fs", self.interval)
            while not self._stop.is_set():
                self.run_once()
                # wakes early on stop(); a tick in progress always finishes first
                self._stop.wait(self.interval)
            logger.info("tick scheduler stopped")

        self._thread = threading.Thread(target=run, name="queue-tick", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
