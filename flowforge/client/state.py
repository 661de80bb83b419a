"""
Client-side authentication state.

One AuthState per client (browser tab, CLI process, ...). It starts LOADING,
resolves to AUTHENTICATED or ANONYMOUS, and notifies listeners on every
transition. No module-level state: the owner creates it and injects it.

The epoch counter orders local actions against in-flight requests: a result
computed from a request started before the latest sign-in/sign-out is
discarded instead of applied.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from ..auth.models import UserPublic
from ..utils.logger import get_logger

logger = get_logger(__name__)


class AuthStatus(str, Enum):
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class AuthSnapshot:
    status: AuthStatus
    user: Optional[UserPublic]
    epoch: int

    @property
    def is_loading(self) -> bool:
        return self.status is AuthStatus.LOADING

    @property
    def is_authenticated(self) -> bool:
        return self.status is AuthStatus.AUTHENTICATED


Listener = Callable[[AuthSnapshot, AuthSnapshot], None]


class AuthState:
    """Holds at most one current user; thread-safe."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._status = AuthStatus.LOADING
        self._user: Optional[UserPublic] = None
        self._epoch = 0
        self._listeners: List[Listener] = []

    def snapshot(self) -> AuthSnapshot:
        with self._lock:
            return AuthSnapshot(status=self._status, user=self._user, epoch=self._epoch)

    @property
    def status(self) -> AuthStatus:
        return self.snapshot().status

    @property
    def user(self) -> Optional[UserPublic]:
        return self.snapshot().user

    @property
    def epoch(self) -> int:
        return self.snapshot().epoch

    @property
    def is_loading(self) -> bool:
        return self.snapshot().is_loading

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register listener(old, new); returns an unsubscribe callable."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def apply(
        self,
        status: AuthStatus,
        user: Optional[UserPublic] = None,
        expected_epoch: Optional[int] = None,
        bump: bool = False,
    ) -> bool:
        """
        Move to (status, user).

        expected_epoch: drop the update if a local action happened since the
        caller read the epoch. bump: this is a local action; start a new epoch.
        Returns False when the update was dropped.
        """
        if status is AuthStatus.AUTHENTICATED and user is None:
            raise ValueError("An authenticated state needs a user")
        if status is not AuthStatus.AUTHENTICATED:
            user = None
        with self._lock:
            if expected_epoch is not None and expected_epoch != self._epoch:
                logger.debug("Stale auth state update dropped", expected_epoch=expected_epoch, epoch=self._epoch)
                return False
            old = AuthSnapshot(status=self._status, user=self._user, epoch=self._epoch)
            self._status = status
            self._user = user
            if bump:
                self._epoch += 1
            new = AuthSnapshot(status=self._status, user=self._user, epoch=self._epoch)
            listeners = list(self._listeners)
        if old.status != new.status or old.user != new.user:
            for listener in listeners:
                try:
                    listener(old, new)
                except Exception as e:
                    logger.exception("Auth state listener failed", error=str(e))
        return True

    def set_user(self, user: UserPublic, expected_epoch: Optional[int] = None, bump: bool = False) -> bool:
        return self.apply(AuthStatus.AUTHENTICATED, user, expected_epoch=expected_epoch, bump=bump)

    def clear(self, expected_epoch: Optional[int] = None, bump: bool = False) -> bool:
        return self.apply(AuthStatus.ANONYMOUS, None, expected_epoch=expected_epoch, bump=bump)
