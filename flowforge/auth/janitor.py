"""Periodic purge of dead sessions and spent reset tokens."""

from __future__ import annotations

import threading
from typing import Optional

from ..utils.logger import get_logger
from .service import AuthService

logger = get_logger(__name__)


class SessionJanitor:
    """Background thread calling AuthService.cleanup() every interval."""

    def __init__(self, service: AuthService, interval_seconds: float):
        self.service = service
        self.interval_seconds = interval_seconds
        self.stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the purge loop. Idempotent."""
        if self.running:
            return
        self.stop_event.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="session-janitor")
        self._thread.start()
        logger.info("Session janitor started", interval_seconds=self.interval_seconds)

    def stop(self) -> None:
        self.stop_event.set()
        if self._thread is not None:
            # Don't wait too long - daemon thread will exit with main process
            self._thread.join(timeout=2)
            if self._thread.is_alive():
                logger.warning("Session janitor thread still alive after timeout, continuing shutdown")
            self._thread = None
        logger.info("Session janitor stopped")

    def run_once(self) -> dict:
        counts = self.service.cleanup()
        if any(counts.values()):
            logger.info("Session cleanup finished", **counts)
        return counts

    def _loop(self) -> None:
        while not self.stop_event.wait(timeout=self.interval_seconds):
            try:
                self.run_once()
            except Exception as e:
                logger.exception("Session cleanup failed", error=str(e))
