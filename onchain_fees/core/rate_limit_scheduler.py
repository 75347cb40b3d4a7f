"""Recurring background task that releases rate-limited endpoints."""

import threading
from typing import List, Optional
import schedule
import structlog

from onchain_fees.core.endpoint_registry import EndpointRegistry

logger = structlog.get_logger(__name__)


class RateLimitResetScheduler:
    """
    Runs EndpointRegistry.reset_tick() every `interval_seconds`.

    Started and stopped explicitly alongside the process; tests call
    run_once() instead of waiting on wall-clock time.
    """

    def __init__(self, registry: EndpointRegistry, interval_seconds: float = 60.0,
                 poll_seconds: float = 1.0):
        self.registry = registry
        self.interval_seconds = interval_seconds
        self.poll_seconds = poll_seconds
        self.logger = logger.bind(component="rate_limit_scheduler")

        self._scheduler = schedule.Scheduler()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> List[str]:
        """Run one reset tick synchronously. Never raises."""
        try:
            released = self.registry.reset_tick()
        except Exception as e:
            self.logger.error("Rate limit reset tick failed", error=str(e))
            return []

        if released:
            self.logger.info("Rate-limited endpoints released", urls=released)
        return released

    def start(self):
        """Start the background thread. Calling it twice is a no-op."""
        if self.running:
            return

        self._scheduler.clear()
        self._scheduler.every(self.interval_seconds).seconds.do(self.run_once)
        self._stop_event.clear()

        self._thread = threading.Thread(target=self._loop, name="rate-limit-reset", daemon=True)
        self._thread.start()
        self.logger.info("Rate limit reset scheduler started", interval_seconds=self.interval_seconds)

    def _loop(self):
        while not self._stop_event.is_set():
            self._scheduler.run_pending()
            self._stop_event.wait(self.poll_seconds)

    def stop(self, timeout: float = 5.0):
        """Stop the background thread and drop the scheduled job."""
        if self._thread is None:
            return

        self._stop_event.set()
        self._thread.join(timeout)
        self._thread = None
        self._scheduler.clear()
        self.logger.info("Rate limit reset scheduler stopped")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
