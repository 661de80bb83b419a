"""Tests for signed session tokens"""

import pytest
from itsdangerous import URLSafeSerializer

from flowforge.auth.tokens import TokenCodec
from flowforge.utils.exceptions import (
    ConfigError,
    MalformedToken,
    SignatureInvalid,
    TokenExpired,
)

SECRET = "test-secret-key"


def _codec(clock) -> TokenCodec:
    return TokenCodec(SECRET, clock=clock)


def test_issue_and_verify(clock):
    codec = _codec(clock)
    token = codec.issue("user-1", "sess-1", ttl=60, generation=2)

    claims = codec.verify(token)
    assert claims.user_id == "user-1"
    assert claims.session_id == "sess-1"
    assert claims.generation == 2
    assert claims.issued_at == int(clock.now)
    assert claims.expires_at == int(clock.now) + 60


def test_token_valid_until_expiry(clock):
    codec = _codec(clock)
    token = codec.issue("user-1", "sess-1", ttl=60)

    clock.advance(59)
    assert codec.verify(token).user_id == "user-1"

    clock.advance(1)
    with pytest.raises(TokenExpired):
        codec.verify(token)

    # Sign-out still needs to read expired tokens
    assert codec.verify(token, allow_expired=True).session_id == "sess-1"


def test_tampered_signature_rejected(clock):
    codec = _codec(clock)
    token = codec.issue("user-1", "sess-1", ttl=60)
    payload, signature = token.rsplit(".", 1)
    forged = f"{payload}.{'B' if signature[0] == 'A' else 'A'}{signature[1:]}"

    with pytest.raises(SignatureInvalid):
        codec.verify(forged)


def test_token_from_other_key_rejected(clock):
    token = TokenCodec("another-secret", clock=clock).issue("user-1", "sess-1", ttl=60)
    with pytest.raises(SignatureInvalid):
        _codec(clock).verify(token)


@pytest.mark.parametrize("garbage", ["", "   ", "no-separator", None, 12345])
def test_malformed_tokens(clock, garbage):
    with pytest.raises(MalformedToken):
        _codec(clock).verify(garbage)


def test_signed_payload_with_wrong_shape_is_malformed(clock):
    serializer = URLSafeSerializer(SECRET, salt="flowforge-session")
    codec = _codec(clock)

    with pytest.raises(MalformedToken):
        codec.verify(serializer.dumps(["not", "a", "dict"]))
    with pytest.raises(MalformedToken):
        codec.verify(serializer.dumps({"uid": "user-1"}))


def test_tokens_issued_in_same_second_differ(clock):
    codec = _codec(clock)
    first = codec.issue("user-1", "sess-1", ttl=60)
    second = codec.issue("user-1", "sess-1", ttl=60)
    assert first != second


@pytest.mark.parametrize("ttl", [0, -5, 1.5, True])
def test_invalid_ttl(clock, ttl):
    with pytest.raises(ValueError):
        _codec(clock).issue("user-1", "sess-1", ttl=ttl)


def test_secret_key_required():
    with pytest.raises(ConfigError):
        TokenCodec("")
