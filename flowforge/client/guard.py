"""
Route guards.

A guard looks at the auth state and decides whether a view renders, waits
for the initial status check, or redirects elsewhere.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Union

from .state import AuthSnapshot, AuthState


class GuardAction(str, Enum):
    RENDER = "render"
    REDIRECT = "redirect"
    WAIT = "wait"


@dataclass(frozen=True)
class GuardDecision:
    action: GuardAction
    location: Optional[str] = None

    @classmethod
    def render(cls) -> "GuardDecision":
        return cls(GuardAction.RENDER)

    @classmethod
    def wait(cls) -> "GuardDecision":
        return cls(GuardAction.WAIT)

    @classmethod
    def redirect(cls, location: str) -> "GuardDecision":
        return cls(GuardAction.REDIRECT, location)


StateLike = Union[AuthState, AuthSnapshot]


def _snapshot(state: StateLike) -> AuthSnapshot:
    return state.snapshot() if isinstance(state, AuthState) else state


class RouteGuard:
    """Base guard: while status is loading, everything waits."""

    def evaluate(self, state: StateLike) -> GuardDecision:
        snapshot = _snapshot(state)
        if snapshot.is_loading:
            return GuardDecision.wait()
        return self.decide(snapshot)

    def decide(self, snapshot: AuthSnapshot) -> GuardDecision:
        raise NotImplementedError


class RequiresAuth(RouteGuard):
    """Signed-in users only; others go to the sign-in page."""

    def __init__(self, sign_in_path: str = "/auth/signin"):
        self.sign_in_path = sign_in_path

    def decide(self, snapshot: AuthSnapshot) -> GuardDecision:
        if snapshot.user is None:
            return GuardDecision.redirect(self.sign_in_path)
        return GuardDecision.render()


class RequiresAnonymous(RouteGuard):
    """Sign-in/sign-up pages; signed-in users go to the landing page."""

    def __init__(self, landing_path: str = "/dashboard"):
        self.landing_path = landing_path

    def decide(self, snapshot: AuthSnapshot) -> GuardDecision:
        if snapshot.user is not None:
            return GuardDecision.redirect(self.landing_path)
        return GuardDecision.render()


def _matches(path: str, prefix: str) -> bool:
    prefix = prefix.rstrip("/") or "/"
    if prefix == "/":
        return True
    return path == prefix or path.startswith(prefix + "/")


DEFAULT_PROTECTED = ("/dashboard", "/builder", "/profile")
DEFAULT_ANONYMOUS_ONLY = ("/auth/signin", "/auth/signup")


class RouteTable:
    """Maps path prefixes to guards; unmatched paths are public."""

    def __init__(
        self,
        protected: Sequence[str] = DEFAULT_PROTECTED,
        anonymous_only: Sequence[str] = DEFAULT_ANONYMOUS_ONLY,
        sign_in_path: str = "/auth/signin",
        landing_path: str = "/dashboard",
    ):
        self.protected: List[str] = list(protected)
        self.anonymous_only: List[str] = list(anonymous_only)
        self.requires_auth = RequiresAuth(sign_in_path)
        self.requires_anonymous = RequiresAnonymous(landing_path)

    @classmethod
    def from_settings(
        cls,
        settings,
        protected: Sequence[str] = DEFAULT_PROTECTED,
        anonymous_only: Sequence[str] = DEFAULT_ANONYMOUS_ONLY,
    ) -> "RouteTable":
        return cls(
            protected=protected,
            anonymous_only=anonymous_only,
            sign_in_path=settings.sign_in_path,
            landing_path=settings.landing_path,
        )

    def guard_for(self, path: str) -> Optional[RouteGuard]:
        if any(_matches(path, p) for p in self.anonymous_only):
            return self.requires_anonymous
        if any(_matches(path, p) for p in self.protected):
            return self.requires_auth
        return None

    def evaluate(self, path: str, state: StateLike) -> GuardDecision:
        guard = self.guard_for(path)
        if guard is None:
            return GuardDecision.render()
        return guard.evaluate(state)
