"""Tests for the auth service use cases"""

import pytest

from flowforge.auth.janitor import SessionJanitor
from flowforge.utils.exceptions import NotFound, Unauthenticated, ValidationFailed

PASSWORD = "Str0ngPass"


def _sign_up(service, email="ada@example.com"):
    return service.sign_up("Ada", "Lovelace", email, PASSWORD, user_agent="pytest")


def test_sign_up_then_current_user(service):
    user, issued = _sign_up(service)
    assert service.current_user(issued.token).id == user.id
    assert user.login_count == 1


def test_sign_in_rejects_bad_credentials(service):
    _sign_up(service)
    with pytest.raises(Unauthenticated) as exc_info:
        service.sign_in("ada@example.com", "Wr0ngPass")
    assert exc_info.value.reason == "invalid_credentials"

    with pytest.raises(ValidationFailed):
        service.sign_in("not-an-email", "")


def test_sign_in_ends_the_device_previous_session(service):
    _, first = _sign_up(service)
    _, second = service.sign_in("ada@example.com", PASSWORD, previous_token=first.token)

    assert second.record.parent_session_id == first.record.session_id
    with pytest.raises(Unauthenticated):
        service.current_user(first.token)
    service.current_user(second.token)


def test_missing_token(service):
    with pytest.raises(Unauthenticated) as exc_info:
        service.current_user(None)
    assert exc_info.value.reason == "missing_token"


def test_sign_out_is_idempotent_and_accepts_expired_tokens(service, clock):
    _, issued = _sign_up(service)
    clock.advance(service.session_ttl + 1)

    assert service.sign_out(issued.token) is True
    assert service.sign_out(issued.token) is False
    assert service.sign_out(None) is False
    assert service.sign_out("garbage") is False


def test_old_token_cannot_sign_out_the_rotated_session(service):
    _, issued = _sign_up(service)
    rotated = service.refresh(issued.token)

    assert service.sign_out(issued.token) is False
    assert service.sessions.validate(rotated.token).session_id == rotated.record.session_id
    assert service.current_user(rotated.token)


def test_refresh_rotates(service):
    _, issued = _sign_up(service)
    rotated = service.refresh(issued.token)
    assert service.current_user(rotated.token)
    with pytest.raises(Unauthenticated):
        service.refresh(issued.token)


def test_sign_out_everywhere(service):
    _, first = _sign_up(service)
    _, second = service.sign_in("ada@example.com", PASSWORD)

    assert service.sign_out_everywhere(first.token) == 2
    for token in (first.token, second.token):
        with pytest.raises(Unauthenticated):
            service.current_user(token)


def test_list_and_revoke_sessions(service):
    _, first = _sign_up(service)
    _, second = service.sign_in("ada@example.com", PASSWORD)
    _, stranger = _sign_up(service, email="grace@example.com")

    sessions = service.list_sessions(first.token)
    assert {s.session_id for s in sessions} == {first.record.session_id, second.record.session_id}
    assert [s.current for s in sessions if s.session_id == first.record.session_id] == [True]

    with pytest.raises(NotFound):
        service.revoke_session(first.token, stranger.record.session_id)
    assert service.revoke_session(first.token, second.record.session_id) is False
    assert service.revoke_session(first.token, first.record.session_id) is True
    with pytest.raises(Unauthenticated):
        service.current_user(first.token)


def test_change_password_ends_other_sessions(service):
    _, first = _sign_up(service)
    _, other = service.sign_in("ada@example.com", PASSWORD)

    with pytest.raises(ValidationFailed) as exc_info:
        service.change_password(first.token, "Wr0ngPass", "N3wPassword")
    assert "currentPassword" in exc_info.value.errors

    _, fresh = service.change_password(first.token, PASSWORD, "N3wPassword")
    assert fresh.record.parent_session_id == first.record.session_id
    service.current_user(fresh.token)
    for token in (first.token, other.token):
        with pytest.raises(Unauthenticated):
            service.current_user(token)
    with pytest.raises(Unauthenticated):
        service.sign_in("ada@example.com", PASSWORD)
    service.sign_in("ada@example.com", "N3wPassword")


def test_password_reset_flow(service, reset_outbox):
    user, issued = _sign_up(service)

    assert service.request_password_reset("nobody@example.com") is None
    assert reset_outbox == []

    secret = service.request_password_reset("ada@example.com")
    assert reset_outbox[0][0].id == user.id
    assert reset_outbox[0][1] == secret

    with pytest.raises(ValidationFailed):
        service.complete_password_reset(secret, "weak")

    reset_user, fresh = service.complete_password_reset(secret, "R3setPassword")
    assert reset_user.id == user.id
    service.current_user(fresh.token)
    with pytest.raises(Unauthenticated):
        service.current_user(issued.token)
    with pytest.raises(ValidationFailed):
        service.complete_password_reset(secret, "An0therPassword")


def test_request_password_reset_validates_email(service):
    with pytest.raises(ValidationFailed):
        service.request_password_reset("nope")


def test_deactivated_user_loses_sessions(service):
    user, issued = _sign_up(service)
    assert service.deactivate_user(user.id) == 1
    with pytest.raises(Unauthenticated):
        service.current_user(issued.token)


def test_profile_update(service):
    _, issued = _sign_up(service)
    user = service.update_profile(issued.token, last_name="Byron")
    assert user.last_name == "Byron"
    assert user.display_name == "Ada Byron"


def test_janitor_purges_dead_sessions(service, clock):
    _, issued = _sign_up(service)
    service.sign_out(issued.token)
    service.request_password_reset("ada@example.com")

    janitor = SessionJanitor(service, interval_seconds=3600)
    assert janitor.run_once() == {"sessions": 1, "reset_tokens": 0}

    janitor.start()
    assert janitor.running
    janitor.stop()
    assert not janitor.running
