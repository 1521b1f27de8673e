"""
Background task utilities
"""
import threading
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from app.core.logging_config import logger


class PeriodicTask:
    """
    Runs a function every ``interval`` seconds on a daemon thread until stopped

    Usage:
        task = PeriodicTask("expiry-sweep", sweep, interval=300)
        task.start()
        ...
        task.stop()
    """

    def __init__(self, name: str, func: Callable[[], Any], interval: float):
        self.name = name
        self.func = func
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()
        logger.info(f"Background task {self.name} started (every {self.interval}s)")

    def stop(self, timeout: Optional[float] = 10.0) -> None:
        """Signal the loop to exit and wait for the current run to finish"""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info(f"Background task {self.name} stopped")

    def run_once(self) -> Any:
        try:
            return self.func()
        except Exception as e:
            logger.error(f"Error running background task {self.name}: {str(e)}", exc_info=True)
            return None

    def _loop(self) -> None:
        while not self._stop.wait(self.interval):
            self.run_once()


class ExpirySweeper(PeriodicTask):
    """Periodic booking expiry sweep, each run in its own session"""

    def __init__(self, session_factory: Callable[[], Session], booking_service: Any, interval: float):
        self.session_factory = session_factory
        self.booking_service = booking_service
        super().__init__("booking-expiry-sweep", self.sweep, interval)

    def sweep(self) -> Dict[str, int]:
        db = self.session_factory()
        try:
            return self.booking_service.expire_stale_bookings(db)
        finally:
            db.close()
