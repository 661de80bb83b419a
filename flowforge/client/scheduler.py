"""Periodic session refresh while a user is signed in"""

from __future__ import annotations

import threading
from typing import Optional

from ..utils.exceptions import AuthError, TransientNetworkError
from ..utils.logger import get_logger
from .session_client import SessionClient

logger = get_logger(__name__)


class RefreshScheduler:
    """
    Calls client.refresh() every interval_seconds.

    At most one refresh is in flight; a tick that finds one running is
    skipped. Transient failures are logged and the next tick retries.
    """

    def __init__(self, client: SessionClient, interval_seconds: float):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.client = client
        self.interval_seconds = interval_seconds
        self._in_flight = threading.Lock()
        self._lifecycle_lock = threading.Lock()
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lifecycle_lock:
            if self.running:
                return
            # Each run gets its own event so an old loop can't be revived by a restart
            stop_event = threading.Event()
            self._stop_event = stop_event
            self._thread = threading.Thread(target=self._loop, args=(stop_event,), daemon=True, name="session-refresh")
            self._thread.start()
        logger.debug("Refresh scheduler started", interval_seconds=self.interval_seconds)

    def stop(self, wait: bool = True) -> None:
        """Stop the loop; with wait, also join its thread (never from the thread itself)."""
        with self._lifecycle_lock:
            if self._stop_event is not None:
                self._stop_event.set()
            thread = self._thread
            self._thread = None
        # stop() may run on the scheduler thread itself when a refresh ends the session
        if wait and thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2)

    def tick(self) -> bool:
        """Run one refresh unless one is already running. Returns False if skipped."""
        if not self._in_flight.acquire(blocking=False):
            logger.debug("Refresh already in flight; tick skipped")
            return False
        try:
            self.client.refresh()
        except TransientNetworkError as e:
            logger.warning("Session refresh failed; will retry next tick", error=str(e))
        except AuthError as e:
            logger.error("Session refresh rejected", error=str(e), error_type=type(e).__name__)
        finally:
            self._in_flight.release()
        return True

    def _loop(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.interval_seconds):
            try:
                self.tick()
            except Exception as e:
                logger.exception("Refresh scheduler tick crashed", error=str(e))
