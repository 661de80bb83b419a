"""Tests for route guards"""

from datetime import datetime, timezone

from flowforge.auth.models import UserPublic
from flowforge.client.guard import (
    GuardAction,
    GuardDecision,
    RequiresAnonymous,
    RequiresAuth,
    RouteTable,
)
from flowforge.client.state import AuthState
from flowforge.core.config import Settings


def _state(signed_in=None):
    state = AuthState()
    if signed_in is True:
        now = datetime.now(timezone.utc)
        state.set_user(UserPublic(
            id="user-1",
            email="ada@example.com",
            first_name="Ada",
            last_name="Lovelace",
            display_name="Ada Lovelace",
            created_at=now,
            updated_at=now,
        ))
    elif signed_in is False:
        state.clear()
    return state


def test_everything_waits_while_loading():
    loading = _state()
    assert RequiresAuth().evaluate(loading).action is GuardAction.WAIT
    assert RequiresAnonymous().evaluate(loading).action is GuardAction.WAIT


def test_requires_auth():
    guard = RequiresAuth(sign_in_path="/login")
    assert guard.evaluate(_state(True)) == GuardDecision.render()
    assert guard.evaluate(_state(False)) == GuardDecision(GuardAction.REDIRECT, "/login")


def test_requires_anonymous():
    guard = RequiresAnonymous()
    assert guard.evaluate(_state(False)).action is GuardAction.RENDER
    assert guard.evaluate(_state(True)) == GuardDecision.redirect("/dashboard")


def test_guard_accepts_snapshots():
    assert RequiresAuth().evaluate(_state(True).snapshot()).action is GuardAction.RENDER


def test_route_table():
    table = RouteTable.from_settings(Settings())

    assert isinstance(table.guard_for("/dashboard/projects/1"), RequiresAuth)
    assert isinstance(table.guard_for("/auth/signup"), RequiresAnonymous)
    assert table.guard_for("/dashboards") is None
    assert table.guard_for("/pricing") is None

    anonymous = _state(False)
    assert table.evaluate("/builder", anonymous) == GuardDecision.redirect("/auth/signin")
    assert table.evaluate("/pricing", anonymous).action is GuardAction.RENDER
    assert table.evaluate("/auth/signin", _state(True)) == GuardDecision.redirect("/dashboard")
    assert table.evaluate("/profile", _state()).action is GuardAction.WAIT
