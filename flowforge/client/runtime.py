"""Wiring of one client: state, HTTP façade, cross-client sync and refresh"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Callable, Optional

from ..core.config import Settings
from ..utils.logger import get_logger
from .cookies import ProfileSession
from .scheduler import RefreshScheduler
from .session_client import SessionClient
from .state import AuthSnapshot, AuthState, AuthStatus
from .storage import SharedStorage
from .sync import CrossClientSynchronizer

logger = get_logger(__name__)


class ClientRuntime:
    """
    One running client.

    The refresh scheduler runs exactly while a user is signed in. close()
    stops both background threads and drops any late server result.
    """

    def __init__(self, client: SessionClient, synchronizer: CrossClientSynchronizer, scheduler: RefreshScheduler):
        self.client = client
        self.synchronizer = synchronizer
        self.scheduler = scheduler
        self._scheduler_lock = threading.Lock()
        self._closed = False
        self._unsubscribe: Optional[Callable[[], None]] = client.state.subscribe(self._on_transition)

    @property
    def state(self) -> AuthState:
        return self.client.state

    def start(self, watch: bool = True) -> AuthStatus:
        """Resolve the initial status; with watch, also poll for cross-client signals."""
        if watch:
            self.synchronizer.start()
        return self.client.check_status()

    def _on_transition(self, old: AuthSnapshot, new: AuthSnapshot) -> None:
        # Listeners of concurrent transitions may run out of order; follow the
        # state as it is now, not the snapshot that triggered this call
        with self._scheduler_lock:
            if self._closed or self.client.closed:
                return
            if self.state.status is AuthStatus.AUTHENTICATED:
                self.scheduler.start()
            else:
                self.scheduler.stop(wait=False)

    def close(self) -> None:
        with self._scheduler_lock:
            self._closed = True
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.scheduler.stop()
        self.synchronizer.close()
        self.client.close()
        logger.debug("Client closed")


def create_client(
    base_url: str,
    profile_dir: Path,
    settings: Optional[Settings] = None,
    http: Optional[Any] = None,
    state: Optional[AuthState] = None,
) -> ClientRuntime:
    """
    Build a client whose tabs share profile_dir.

    Without an explicit http session, the client gets a ProfileSession, so
    every client of the profile shares the session cookie as well as the
    sync signals.
    """
    settings = settings or Settings()
    owns_http = http is None
    if http is None:
        http = ProfileSession(Path(profile_dir))
    client = SessionClient(base_url, state=state or AuthState(), http=http, owns_http=owns_http)
    storage = SharedStorage(Path(profile_dir))
    synchronizer = CrossClientSynchronizer(
        client, storage, poll_interval=settings.sync_poll_interval_seconds
    )
    scheduler = RefreshScheduler(client, settings.refresh_interval_seconds)
    return ClientRuntime(client, synchronizer, scheduler)
