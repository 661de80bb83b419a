"""
Identity store with JSON-based persistence.

Handles user creation, credential checks, profile updates, deactivation and
password-reset tokens. Files:
- <data_dir>/users.json          {"users": [...]}
- <data_dir>/reset_tokens.json   {"tokens": [...]}

Emails are unique case-insensitively and stored lower-cased. Users are never
deleted, only deactivated.
"""

from __future__ import annotations

import hashlib
import secrets
import threading
from contextlib import contextmanager
from datetime import timedelta
from pathlib import Path
from typing import Any, Generator, List, Optional, Tuple

import bcrypt
from pydantic import ValidationError

from ..core.locks import acquire_lock
from ..utils.exceptions import Conflict, NotFound, StorageError, ValidationFailed
from ..utils.fileio import atomic_write_json, read_json
from ..utils.logger import get_logger
from .models import ResetTokenRecord, User, utcnow
from .validation import (
    clean_profile_updates,
    normalize_email,
    validate_new_password,
    validate_signup,
)

logger = get_logger(__name__)

USERS_FILE_NAME = "users.json"
RESET_TOKENS_FILE_NAME = "reset_tokens.json"
DEFAULT_BCRYPT_ROUNDS = 12


def hash_password(password: str, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    """Hash a password with bcrypt."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def _digest(secret: str) -> str:
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


class UserStore:
    """User and reset-token storage."""

    def __init__(self, data_dir: Path, bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS):
        self.users_path = Path(data_dir) / USERS_FILE_NAME
        self.reset_path = Path(data_dir) / RESET_TOKENS_FILE_NAME
        self.lock_dir = Path(data_dir) / "locks"
        self.bcrypt_rounds = bcrypt_rounds
        self._lock = threading.RLock()
        # Compared against when the email is unknown so both paths cost a bcrypt check
        self._dummy_hash = hash_password(secrets.token_urlsafe(16), rounds=bcrypt_rounds)

    # ------------------------------------------------------------------ io

    def load_users(self) -> List[User]:
        raw = read_json(self.users_path, {"users": []})
        try:
            return [User(**item) for item in raw.get("users", [])]
        except (TypeError, ValidationError) as e:
            raise StorageError(f"Failed to load users from {self.users_path}: {str(e)}")

    def save_users(self, users: List[User]) -> None:
        atomic_write_json(self.users_path, {"users": [u.model_dump(mode="json") for u in users]})

    def _load_reset_tokens(self) -> List[ResetTokenRecord]:
        raw = read_json(self.reset_path, {"tokens": []})
        out: List[ResetTokenRecord] = []
        for item in raw.get("tokens", []):
            try:
                out.append(ResetTokenRecord(**item))
            except (TypeError, ValidationError):
                continue
        return out

    def _save_reset_tokens(self, tokens: List[ResetTokenRecord]) -> None:
        atomic_write_json(self.reset_path, {"tokens": [t.model_dump(mode="json") for t in tokens]})

    @contextmanager
    def _locked(self) -> Generator[None, None, None]:
        with self._lock:
            with acquire_lock(self.lock_dir, "lock:users"):
                yield

    def _update(self, user_id: str, **updates: Any) -> User:
        """Apply field updates to one user and persist. Caller holds the lock."""
        users = self.load_users()
        for i, user in enumerate(users):
            if user.id == user_id:
                data = user.model_dump()
                data.update(updates)
                data["updated_at"] = utcnow()
                updated = User(**data)
                users[i] = updated
                self.save_users(users)
                return updated
        raise NotFound(f"User with ID '{user_id}' not found")

    # -------------------------------------------------------------- lookup

    def get_by_id(self, user_id: str) -> Optional[User]:
        return next((u for u in self.load_users() if u.id == user_id), None)

    def get_by_email(self, email: str) -> Optional[User]:
        wanted = normalize_email(email)
        return next((u for u in self.load_users() if u.email == wanted), None)

    # ------------------------------------------------------------- mutation

    def create_user(self, email: str, password: str, first_name: str, last_name: str) -> User:
        """
        Create a new user.

        - Input is validated first; no partial user is ever written.
        - Email must be unique (case-insensitive).
        - Password is stored only as a bcrypt hash.
        """
        validate_signup(email, password, first_name, last_name)
        normalized = normalize_email(email)
        password_hash = hash_password(password, rounds=self.bcrypt_rounds)
        with self._locked():
            users = self.load_users()
            if any(u.email == normalized for u in users):
                raise Conflict("An account with this email already exists.", field="email")
            user = User(
                email=normalized,
                first_name=first_name.strip(),
                last_name=last_name.strip(),
                password_hash=password_hash,
            )
            users.append(user)
            self.save_users(users)
        logger.info("User created", user_id=user.id)
        return user

    def authenticate(self, email: str, password: str) -> Optional[User]:
        """Return the active user if credentials are valid, else None."""
        user = self.get_by_email(email)
        if user is None:
            verify_password(password, self._dummy_hash)
            return None
        if not verify_password(password, user.password_hash):
            return None
        if not user.is_active:
            return None
        return user

    def record_login(self, user_id: str) -> User:
        with self._locked():
            user = self.get_by_id(user_id)
            if user is None:
                raise NotFound(f"User with ID '{user_id}' not found")
            return self._update(user_id, last_login_at=utcnow(), login_count=user.login_count + 1)

    def update_profile(self, user_id: str, **updates: Any) -> User:
        cleaned = clean_profile_updates(updates)
        with self._locked():
            user = self._update(user_id, **cleaned)
        logger.info("User profile updated", user_id=user_id, fields=sorted(cleaned))
        return user

    def set_password(self, user_id: str, new_password: str) -> User:
        validate_new_password(new_password)
        password_hash = hash_password(new_password, rounds=self.bcrypt_rounds)
        with self._locked():
            user = self._update(user_id, password_hash=password_hash)
        logger.info("User password changed", user_id=user_id)
        return user

    def set_verified(self, user_id: str, verified: bool = True) -> User:
        with self._locked():
            return self._update(user_id, verified=verified)

    def deactivate(self, user_id: str) -> User:
        with self._locked():
            user = self._update(user_id, is_active=False)
        logger.info("User deactivated", user_id=user_id)
        return user

    # -------------------------------------------------------- reset tokens

    def create_reset_token(self, email: str, ttl_seconds: int) -> Optional[Tuple[User, str]]:
        """
        Create a one-time reset secret for an active user.

        Returns (user, secret) or None when no active user has that email.
        Only the secret's digest is stored.
        """
        user = self.get_by_email(email)
        if user is None or not user.is_active:
            return None
        secret = secrets.token_urlsafe(32)
        record = ResetTokenRecord(
            token_hash=_digest(secret),
            user_id=user.id,
            expires_at=utcnow() + timedelta(seconds=ttl_seconds),
        )
        with self._locked():
            tokens = self._load_reset_tokens()
            tokens.append(record)
            self._save_reset_tokens(tokens)
        logger.info("Password reset token created", user_id=user.id)
        return user, secret

    def consume_reset_token(self, secret: str) -> User:
        """Mark a reset secret used and return its user; one use only."""
        invalid = ValidationFailed({"token": "Invalid or expired reset token."})
        if not isinstance(secret, str) or not secret.strip():
            raise invalid
        wanted = _digest(secret.strip())
        now = utcnow()
        with self._locked():
            tokens = self._load_reset_tokens()
            for i, record in enumerate(tokens):
                if record.token_hash != wanted:
                    continue
                if record.used or record.expires_at <= now:
                    raise invalid
                user = self.get_by_id(record.user_id)
                if user is None or not user.is_active:
                    raise invalid
                tokens[i] = record.model_copy(update={"used": True})
                self._save_reset_tokens(tokens)
                return user
        raise invalid

    def purge_reset_tokens(self) -> int:
        """Remove used and expired reset tokens."""
        now = utcnow()
        with self._locked():
            tokens = self._load_reset_tokens()
            keep = [t for t in tokens if not t.used and t.expires_at > now]
            removed = len(tokens) - len(keep)
            if removed:
                self._save_reset_tokens(keep)
        return removed
