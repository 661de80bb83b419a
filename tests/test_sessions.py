"""Tests for the server-side session store (rotation, revocation, expiry)"""

import threading
from pathlib import Path

import pytest

from flowforge.auth.sessions import SessionStore
from flowforge.auth.tokens import TokenCodec
from flowforge.utils.exceptions import Unauthenticated

TTL = 7 * 24 * 60 * 60


@pytest.fixture
def store(tmp_path: Path, clock) -> SessionStore:
    return SessionStore(TokenCodec("test-secret-key", clock=clock), tmp_path)


def _reason(store: SessionStore, token: str) -> str:
    with pytest.raises(Unauthenticated) as exc_info:
        store.validate(token)
    return exc_info.value.reason


def test_create_then_validate(store):
    issued = store.create_session("user-1", TTL, user_agent="pytest")
    info = store.validate(issued.token)

    assert info.user_id == "user-1"
    assert info.session_id == issued.record.session_id
    assert info.generation == 0
    assert store.get(info.session_id).user_agent == "pytest"


def test_validate_after_expiry_fails(store, clock):
    issued = store.create_session("user-1", ttl=60)
    clock.advance(60)
    assert _reason(store, issued.token) == "expired"


def test_unknown_session_rejected(tmp_path, clock):
    codec = TokenCodec("test-secret-key", clock=clock)
    token = codec.issue("user-1", "missing-session", ttl=60)
    store = SessionStore(codec, tmp_path)
    assert _reason(store, token) == "unknown_session"


def test_foreign_signature_rejected(store, clock):
    token = TokenCodec("other-key", clock=clock).issue("user-1", "sess", ttl=60)
    assert _reason(store, token) == "bad_signature"


def test_rotation_scenario(store, clock):
    """Issue at t=0, refresh at t=1800, old token dead at t=1801."""
    start = int(clock.now)
    first = store.create_session("user-1", TTL)

    clock.advance(1800)
    second = store.refresh(first.token, TTL)
    assert second.token != first.token
    assert second.expires_at == start + 1800 + TTL

    clock.advance(1)
    assert _reason(store, first.token) == "superseded"
    assert store.validate(second.token).generation == 1


def test_sequential_refreshes_invalidate_previous(store):
    issued = store.create_session("user-1", TTL)
    seen = {issued.token}
    token = issued.token
    for _ in range(3):
        previous = token
        token = store.refresh(token, TTL).token
        assert token not in seen
        seen.add(token)
        assert _reason(store, previous) == "superseded"
    assert store.validate(token).generation == 3


def test_concurrent_refresh_has_one_winner(store):
    issued = store.create_session("user-1", TTL)
    workers = 8
    barrier = threading.Barrier(workers)
    winners = []
    losers = []

    def attempt():
        barrier.wait()
        try:
            winners.append(store.refresh(issued.token, TTL))
        except Unauthenticated as e:
            losers.append(e.reason)

    threads = [threading.Thread(target=attempt) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert len(winners) == 1
    assert losers == ["superseded"] * (workers - 1)
    assert store.validate(winners[0].token).generation == 1


def test_revoke_kills_every_token_of_the_session(store):
    first = store.create_session("user-1", TTL)
    second = store.refresh(first.token, TTL)

    assert store.revoke(first.record.session_id, reason="signed_out") is True
    assert store.revoke(first.record.session_id) is False

    assert _reason(store, first.token) == "revoked"
    assert _reason(store, second.token) == "revoked"
    with pytest.raises(Unauthenticated):
        store.refresh(second.token, TTL)
    # Dead stays dead
    assert store.get(first.record.session_id).revoked is True


def test_revoke_all_for_user(store):
    keep = store.create_session("user-1", TTL)
    other = store.create_session("user-1", TTL)
    stranger = store.create_session("user-2", TTL)

    count = store.revoke_all_for_user("user-1", except_session_id=keep.record.session_id)

    assert count == 1
    store.validate(keep.token)
    store.validate(stranger.token)
    assert _reason(store, other.token) == "revoked"


def test_session_id_for_token_accepts_expired(store, clock):
    issued = store.create_session("user-1", ttl=60)
    clock.advance(120)
    assert store.session_id_for_token(issued.token) == issued.record.session_id
    assert store.session_id_for_token("garbage") is None


def test_superseded_token_does_not_resolve(store):
    first = store.create_session("user-1", TTL)
    second = store.refresh(first.token, TTL)

    assert store.session_id_for_token(first.token) is None
    assert store.session_id_for_token(second.token) == second.record.session_id


def test_list_and_purge(store, clock):
    live = store.create_session("user-1", TTL)
    clock.advance(1)
    short = store.create_session("user-1", ttl=10)
    revoked = store.create_session("user-1", TTL)
    store.revoke(revoked.record.session_id)

    assert [r.session_id for r in store.list_for_user("user-1")] == [
        short.record.session_id,
        live.record.session_id,
    ]
    assert len(store.list_for_user("user-1", include_dead=True)) == 3

    clock.advance(10)
    assert store.purge_dead() == 2
    assert store.get(revoked.record.session_id) is None
    assert store.get(short.record.session_id) is None
    store.validate(live.token)


def test_records_survive_a_new_store_instance(store, tmp_path, clock):
    issued = store.create_session("user-1", TTL)
    reopened = SessionStore(TokenCodec("test-secret-key", clock=clock), tmp_path)
    assert reopened.validate(issued.token).user_id == "user-1"
