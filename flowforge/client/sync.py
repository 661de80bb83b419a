"""
Cross-client auth synchronization.

Clients sharing a profile directory (tabs of one browser) tell each other
"auth state changed" by writing a fresh marker into SharedStorage. The
marker carries no data: receivers re-ask the server via check_status().
"""

from __future__ import annotations

import secrets
import threading
import time
from typing import Callable, Optional

from ..utils.exceptions import AuthError
from ..utils.logger import get_logger
from .session_client import SessionClient
from .state import AuthSnapshot, AuthStatus
from .storage import SharedStorage

logger = get_logger(__name__)

SYNC_KEY = "auth-sync"


def _new_marker() -> str:
    return f"{int(time.time() * 1000)}:{secrets.token_hex(4)}"


class CrossClientSynchronizer:
    """Broadcasts local auth transitions and re-checks on remote ones."""

    def __init__(
        self,
        client: SessionClient,
        storage: SharedStorage,
        poll_interval: float = 1.0,
        key: str = SYNC_KEY,
    ):
        self.client = client
        self.storage = storage
        self.poll_interval = poll_interval
        self.key = key
        self._lock = threading.Lock()
        self._last_seen: Optional[str] = storage.get(key)
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None
        self._unsubscribe: Optional[Callable[[], None]] = client.state.subscribe(self._on_transition)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def notify(self) -> None:
        """Tell the other clients that auth state changed here."""
        marker = _new_marker()
        with self._lock:
            self._last_seen = marker
        try:
            self.storage.set(self.key, marker)
        except (AuthError, TimeoutError) as e:
            logger.warning("Auth sync broadcast failed", error=str(e))

    def poll(self) -> bool:
        """Handle a marker written by another client. Returns True if there was one."""
        marker = self.storage.get(self.key)
        with self._lock:
            if marker is None or marker == self._last_seen:
                return False
            self._last_seen = marker
        logger.debug("Auth sync signal received")
        self.client.check_status()
        return True

    def _on_transition(self, old: AuthSnapshot, new: AuthSnapshot) -> None:
        # Initial resolution is not a change other clients need to hear about
        if old.status is AuthStatus.LOADING or new.status is AuthStatus.LOADING:
            return
        self.notify()

    def start(self) -> None:
        if self.running:
            return
        stop_event = threading.Event()
        self._stop_event = stop_event
        self._thread = threading.Thread(target=self._loop, args=(stop_event,), daemon=True, name="auth-sync")
        self._thread.start()

    def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2)

    def close(self) -> None:
        self.stop()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _loop(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.poll_interval):
            try:
                self.poll()
            except Exception as e:
                logger.exception("Auth sync poll failed", error=str(e))
