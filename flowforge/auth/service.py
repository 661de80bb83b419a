"""
Authentication service layer.

Server-side use cases over UserStore (identity) and SessionStore (sessions):
- sign in / sign up / sign out, current user, refresh (token rotation)
- password reset and change (both end every other session of the user)
- profile updates, session listing and per-session revocation

Every method that takes a token authenticates it first; failures surface as
Unauthenticated, whatever the token-level cause.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..core.config import Settings
from ..utils.exceptions import NotFound, Unauthenticated, ValidationFailed
from ..utils.logger import get_logger
from .models import IssuedSession, SessionInfo, SessionPublic, User, UserPublic
from .sessions import SessionStore
from .tokens import Clock, TokenCodec
from .users import UserStore, verify_password
from .validation import email_error, validate_new_password, validate_signin

logger = get_logger(__name__)

# Receives (user, reset_secret). Email delivery is outside this package.
ResetDelivery = Callable[[User, str], None]


class AuthService:
    """Use cases behind the /auth HTTP surface."""

    def __init__(
        self,
        settings: Settings,
        users: UserStore,
        sessions: SessionStore,
        reset_delivery: Optional[ResetDelivery] = None,
    ):
        self.settings = settings
        self.users = users
        self.sessions = sessions
        self.reset_delivery = reset_delivery

    @property
    def session_ttl(self) -> int:
        return self.settings.session_ttl_seconds

    # ------------------------------------------------------------- helpers

    def authenticate(self, token: Optional[str]) -> Tuple[User, SessionInfo]:
        """Validate the session and its user. The user must exist and be active."""
        if not token:
            raise Unauthenticated("No authentication token provided.", reason="missing_token")
        info = self.sessions.validate(token)
        user = self.users.get_by_id(info.user_id)
        if user is None or not user.is_active:
            # Stale session pointing to a missing or deactivated user
            self.sessions.revoke(info.session_id, reason="user_inactive")
            raise Unauthenticated(reason="user_inactive")
        return user, info

    def _start_session(
        self, user: User, user_agent: Optional[str], parent_session_id: Optional[str] = None
    ) -> IssuedSession:
        return self.sessions.create_session(
            user.id,
            self.session_ttl,
            parent_session_id=parent_session_id,
            user_agent=user_agent,
        )

    # ----------------------------------------------------------- sessions

    def sign_in(
        self,
        email: Any,
        password: Any,
        user_agent: Optional[str] = None,
        previous_token: Optional[str] = None,
    ) -> Tuple[UserPublic, IssuedSession]:
        """
        Check credentials and start a session.

        If the device still presents a session, that session is ended; when
        it belonged to the same user the new session links to it as parent.
        """
        validate_signin(email, password)
        user = self.users.authenticate(email, password)
        if user is None:
            logger.info("Sign-in rejected")
            raise Unauthenticated("Invalid email or password.", reason="invalid_credentials")

        parent_session_id = None
        if previous_token:
            previous_id = self.sessions.session_id_for_token(previous_token)
            if previous_id:
                previous = self.sessions.get(previous_id)
                self.sessions.revoke(previous_id, reason="superseded_by_signin")
                if previous is not None and previous.user_id == user.id:
                    parent_session_id = previous_id

        user = self.users.record_login(user.id)
        issued = self._start_session(user, user_agent, parent_session_id)
        logger.info("User signed in", user_id=user.id, session_id=issued.record.session_id)
        return UserPublic.from_user(user), issued

    def sign_up(
        self,
        first_name: Any,
        last_name: Any,
        email: Any,
        password: Any,
        user_agent: Optional[str] = None,
    ) -> Tuple[UserPublic, IssuedSession]:
        user = self.users.create_user(
            email=email, password=password, first_name=first_name, last_name=last_name
        )
        user = self.users.record_login(user.id)
        issued = self._start_session(user, user_agent)
        logger.info("User signed up", user_id=user.id, session_id=issued.record.session_id)
        return UserPublic.from_user(user), issued

    def current_user(self, token: Optional[str]) -> UserPublic:
        user, _ = self.authenticate(token)
        return UserPublic.from_user(user)

    def refresh(self, token: Optional[str]) -> IssuedSession:
        """Rotate the presented token; the old one stops working."""
        self.authenticate(token)
        return self.sessions.refresh(token or "", self.session_ttl)

    def sign_out(self, token: Optional[str]) -> bool:
        """End the session behind token (idempotent; expired tokens accepted)."""
        if not token:
            return False
        session_id = self.sessions.session_id_for_token(token)
        if session_id is None:
            return False
        return self.sessions.revoke(session_id, reason="signed_out")

    def sign_out_everywhere(self, token: Optional[str]) -> int:
        user, _ = self.authenticate(token)
        return self.sessions.revoke_all_for_user(user.id, reason="signed_out_everywhere")

    def list_sessions(self, token: Optional[str]) -> List[SessionPublic]:
        user, info = self.authenticate(token)
        return [
            SessionPublic.from_record(r, current_session_id=info.session_id)
            for r in self.sessions.list_for_user(user.id)
        ]

    def revoke_session(self, token: Optional[str], session_id: str) -> bool:
        """Revoke one of the caller's own sessions. Returns True if it was the calling one."""
        user, info = self.authenticate(token)
        record = self.sessions.get(session_id)
        if record is None or record.user_id != user.id:
            raise NotFound("Session not found.")
        self.sessions.revoke(session_id, reason="revoked_by_user")
        return session_id == info.session_id

    # ---------------------------------------------------------- identity

    def update_profile(self, token: Optional[str], **updates: Any) -> UserPublic:
        user, _ = self.authenticate(token)
        return UserPublic.from_user(self.users.update_profile(user.id, **updates))

    def change_password(
        self,
        token: Optional[str],
        current_password: Any,
        new_password: Any,
        user_agent: Optional[str] = None,
    ) -> Tuple[UserPublic, IssuedSession]:
        """
        Change the password, end every session of the user and start a
        fresh one for the calling device.
        """
        user, info = self.authenticate(token)
        if not isinstance(current_password, str) or not verify_password(current_password, user.password_hash):
            raise ValidationFailed({"currentPassword": "Current password is incorrect"})
        validate_new_password(new_password)
        user = self.users.set_password(user.id, new_password)
        self.sessions.revoke_all_for_user(user.id, reason="password_changed")
        issued = self._start_session(user, user_agent, parent_session_id=info.session_id)
        return UserPublic.from_user(user), issued

    def request_password_reset(self, email: Any) -> Optional[str]:
        """
        Create a reset secret if an active account has this email.

        Callers must answer the same way whether or not an account exists.
        """
        message = email_error(email)
        if message:
            raise ValidationFailed({"email": message}, message="Invalid email format.")
        result = self.users.create_reset_token(email, self.settings.reset_token_ttl_seconds)
        if result is None:
            logger.info("Password reset requested for unknown email")
            return None
        user, secret = result
        if self.reset_delivery is not None:
            self.reset_delivery(user, secret)
        else:
            logger.warning("Password reset delivery not configured", user_id=user.id)
        return secret

    def complete_password_reset(
        self, secret: Any, new_password: Any, user_agent: Optional[str] = None
    ) -> Tuple[UserPublic, IssuedSession]:
        validate_new_password(new_password)
        user = self.users.consume_reset_token(secret)
        user = self.users.set_password(user.id, new_password)
        self.sessions.revoke_all_for_user(user.id, reason="password_reset")
        issued = self._start_session(user, user_agent)
        logger.info("Password reset completed", user_id=user.id)
        return UserPublic.from_user(user), issued

    def deactivate_user(self, user_id: str) -> int:
        """Deactivate an account and end all of its sessions."""
        self.users.deactivate(user_id)
        return self.sessions.revoke_all_for_user(user_id, reason="user_deactivated")

    # ------------------------------------------------------------ upkeep

    def cleanup(self) -> Dict[str, int]:
        return {
            "sessions": self.sessions.purge_dead(),
            "reset_tokens": self.users.purge_reset_tokens(),
        }


def build_auth_service(
    settings: Settings,
    clock: Optional[Clock] = None,
    reset_delivery: Optional[ResetDelivery] = None,
    bcrypt_rounds: Optional[int] = None,
) -> AuthService:
    """Wire codec, stores and service from settings."""
    data_dir = Path(settings.data_dir)
    codec_kwargs: Dict[str, Any] = {"secret_key": settings.secret_key, "salt": settings.token_salt}
    if clock is not None:
        codec_kwargs["clock"] = clock
    codec = TokenCodec(**codec_kwargs)
    users = UserStore(data_dir, bcrypt_rounds=bcrypt_rounds or settings.bcrypt_rounds)
    sessions = SessionStore(codec, data_dir)
    return AuthService(settings, users, sessions, reset_delivery=reset_delivery)
