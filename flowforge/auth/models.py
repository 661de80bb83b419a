"""
Auth models.

These are logical models for users, session records and token claims.
Persistence uses JSON files under the configured data directory; the
public projections are what crosses the HTTP boundary (camelCase on the wire).
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(BaseModel):
    """User record (email-based). Never deleted, only deactivated."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    email: str
    first_name: str
    last_name: str
    password_hash: str
    avatar: Optional[str] = None
    verified: bool = False
    is_active: bool = True
    two_factor_enabled: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_login_at: Optional[datetime] = None
    login_count: int = 0

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class UserPublic(BaseModel):
    """User as returned to clients: no password hash."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    email: str
    first_name: str
    last_name: str
    display_name: str
    avatar: Optional[str] = None
    verified: bool = False
    two_factor_enabled: bool = False
    created_at: datetime
    updated_at: datetime
    last_login_at: Optional[datetime] = None
    login_count: int = 0

    @classmethod
    def from_user(cls, user: User) -> "UserPublic":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            display_name=user.display_name,
            avatar=user.avatar,
            verified=user.verified,
            two_factor_enabled=user.two_factor_enabled,
            created_at=user.created_at,
            updated_at=user.updated_at,
            last_login_at=user.last_login_at,
            login_count=user.login_count,
        )


class SessionState(str, Enum):
    """Session lifecycle states. DEAD is terminal."""
    ACTIVE = "active"
    DEAD = "dead"


class SessionRecord(BaseModel):
    """Server-side session record. Timestamps are whole epoch seconds."""

    session_id: str
    user_id: str
    issued_at: int
    expires_at: int
    created_at: int
    generation: int = 0
    parent_session_id: Optional[str] = None
    user_agent: Optional[str] = None
    revoked: bool = False
    revoked_at: Optional[int] = None
    revoke_reason: Optional[str] = None

    def state(self, now: int) -> SessionState:
        if self.revoked or self.expires_at <= now:
            return SessionState.DEAD
        return SessionState.ACTIVE


class TokenClaims(BaseModel):
    """Claims embedded in a signed session token."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    user_id: str = Field(alias="uid")
    session_id: str = Field(alias="sid")
    generation: int = Field(default=0, alias="gen")
    issued_at: int = Field(alias="iat")
    expires_at: int = Field(alias="exp")
    nonce: str = Field(alias="jti")


class SessionInfo(BaseModel):
    """Result of a successful session validation."""

    user_id: str
    session_id: str
    issued_at: int
    expires_at: int
    generation: int


class IssuedSession(BaseModel):
    """A session record together with its one currently valid token."""

    record: SessionRecord
    token: str

    @property
    def expires_at(self) -> int:
        return self.record.expires_at


class SessionPublic(BaseModel):
    """Session as listed to its owner."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: str
    issued_at: int
    expires_at: int
    created_at: int
    parent_session_id: Optional[str] = None
    user_agent: Optional[str] = None
    current: bool = False

    @classmethod
    def from_record(cls, record: SessionRecord, current_session_id: Optional[str] = None) -> "SessionPublic":
        return cls(
            session_id=record.session_id,
            issued_at=record.issued_at,
            expires_at=record.expires_at,
            created_at=record.created_at,
            parent_session_id=record.parent_session_id,
            user_agent=record.user_agent,
            current=record.session_id == current_session_id,
        )


class ResetTokenRecord(BaseModel):
    """Password reset token. Only the sha256 digest of the secret is stored."""

    token_hash: str
    user_id: str
    expires_at: datetime
    created_at: datetime = Field(default_factory=utcnow)
    used: bool = False
