"""
Session token signing.

Tokens are itsdangerous URL-safe serialized claims with an HMAC signature:
- claims can't be forged or tampered without the secret
- expiry is an explicit whole-second `exp` claim checked against our clock,
  so callers (and tests) control time through an injectable clock

The codec is stateless; it knows nothing about revocation or rotation.
"""

from __future__ import annotations

import secrets
import time
from typing import Any, Callable, Dict, Tuple

from itsdangerous import BadPayload, BadSignature, URLSafeSerializer
from pydantic import ValidationError

from ..utils.exceptions import ConfigError, MalformedToken, SignatureInvalid, TokenExpired
from .models import TokenClaims

Clock = Callable[[], float]


class TokenCodec:
    """Issue and verify signed session tokens."""

    def __init__(self, secret_key: str, salt: str = "flowforge-session", clock: Clock = time.time):
        if not secret_key:
            raise ConfigError("A secret key is required to sign session tokens.")
        self._serializer = URLSafeSerializer(secret_key=secret_key, salt=salt)
        self._clock = clock

    def now(self) -> int:
        return int(self._clock())

    def issue(self, user_id: str, session_id: str, ttl: int, generation: int = 0) -> str:
        """Sign a token valid from now for ttl seconds."""
        token, _ = self.issue_with_claims(user_id, session_id, ttl, generation)
        return token

    def issue_with_claims(
        self, user_id: str, session_id: str, ttl: int, generation: int = 0
    ) -> Tuple[str, TokenClaims]:
        if isinstance(ttl, bool) or not isinstance(ttl, int) or ttl <= 0:
            raise ValueError("ttl must be a positive number of seconds")
        issued_at = self.now()
        payload: Dict[str, Any] = {
            "uid": user_id,
            "sid": session_id,
            "gen": generation,
            "iat": issued_at,
            "exp": issued_at + ttl,
            # Random component: two tokens never collide even within one second
            "jti": secrets.token_urlsafe(12),
        }
        return self._serializer.dumps(payload), TokenClaims.model_validate(payload)

    def verify(self, token: str, allow_expired: bool = False) -> TokenClaims:
        """
        Return the claims of a correctly signed, unexpired token.

        Raises:
            MalformedToken: the token can't be parsed
            SignatureInvalid: the signature doesn't match the signing key
            TokenExpired: exp <= now (unless allow_expired)
        """
        if not isinstance(token, str) or not token.strip() or "." not in token:
            raise MalformedToken()
        try:
            payload = self._serializer.loads(token.strip())
        except BadPayload:
            raise MalformedToken()
        except BadSignature:
            raise SignatureInvalid()
        if not isinstance(payload, dict):
            raise MalformedToken()
        try:
            claims = TokenClaims.model_validate(payload)
        except ValidationError:
            raise MalformedToken()
        if not allow_expired and claims.expires_at <= self.now():
            raise TokenExpired()
        return claims
