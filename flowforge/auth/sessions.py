"""
Server-side session authority.

Session records live in <data_dir>/sessions.json keyed by session id.
Every token carries the record's generation; refresh is a compare-and-swap
on that generation under the store lock, so:
- exactly one concurrent refresh per token generation wins
- tokens from earlier generations stop validating immediately
- a revoked (dead) record is never reactivated
"""

from __future__ import annotations

import secrets
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Generator, List, Optional

from pydantic import ValidationError

from ..core.locks import acquire_lock
from ..utils.exceptions import TokenError, Unauthenticated
from ..utils.fileio import atomic_write_json, read_json
from ..utils.logger import get_logger
from .models import IssuedSession, SessionInfo, SessionRecord, SessionState, TokenClaims
from .tokens import TokenCodec

logger = get_logger(__name__)

SESSIONS_FILE_NAME = "sessions.json"


def new_session_id() -> str:
    """Time-ordered prefix plus 128 bits of randomness."""
    return f"{time.time_ns():x}-{secrets.token_hex(16)}"


class SessionStore:
    """Creates, validates, rotates and revokes session records."""

    def __init__(self, codec: TokenCodec, data_dir: Path):
        self.codec = codec
        self.path = Path(data_dir) / SESSIONS_FILE_NAME
        self.lock_dir = Path(data_dir) / "locks"
        self._lock = threading.RLock()

    # ------------------------------------------------------------------ io

    def _load(self) -> Dict[str, SessionRecord]:
        raw = read_json(self.path, {"sessions": {}})
        out: Dict[str, SessionRecord] = {}
        for session_id, data in (raw.get("sessions") or {}).items():
            try:
                out[session_id] = SessionRecord(**data)
            except (TypeError, ValidationError) as e:
                logger.warning("Skipping unreadable session record", session_id=session_id, error=str(e))
        return out

    def _save(self, records: Dict[str, SessionRecord]) -> None:
        payload = {"sessions": {sid: r.model_dump(mode="json") for sid, r in records.items()}}
        atomic_write_json(self.path, payload)

    @contextmanager
    def _locked(self) -> Generator[Dict[str, SessionRecord], None, None]:
        """Exclusive read-modify-write section (in-process and cross-process)."""
        with self._lock:
            with acquire_lock(self.lock_dir, "lock:sessions"):
                yield self._load()

    # ----------------------------------------------------------- checks

    def _verify(self, token: str) -> TokenClaims:
        try:
            return self.codec.verify(token)
        except TokenError as e:
            raise Unauthenticated(reason=e.reason)

    def _check_record(self, record: Optional[SessionRecord], claims: TokenClaims, now: int) -> SessionRecord:
        if record is None or record.user_id != claims.user_id:
            raise Unauthenticated(reason="unknown_session")
        if record.revoked:
            raise Unauthenticated(reason="revoked")
        if record.state(now) is SessionState.DEAD:
            raise Unauthenticated(reason="expired")
        if claims.generation != record.generation:
            raise Unauthenticated(reason="superseded")
        return record

    # -------------------------------------------------------- operations

    def create_session(
        self,
        user_id: str,
        ttl: int,
        parent_session_id: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> IssuedSession:
        """Persist a new session record and return it with its token."""
        session_id = new_session_id()
        token, claims = self.codec.issue_with_claims(user_id, session_id, ttl, generation=0)
        record = SessionRecord(
            session_id=session_id,
            user_id=user_id,
            issued_at=claims.issued_at,
            expires_at=claims.expires_at,
            created_at=claims.issued_at,
            generation=0,
            parent_session_id=parent_session_id,
            user_agent=user_agent,
        )
        with self._locked() as records:
            if session_id in records:
                # time_ns + 128 random bits; treat a repeat as a fatal bug
                raise RuntimeError("Session id collision")
            records[session_id] = record
            self._save(records)
        logger.info(
            "Session created",
            session_id=session_id,
            user_id=user_id,
            expires_at=record.expires_at,
            parent_session_id=parent_session_id,
        )
        return IssuedSession(record=record, token=token)

    def validate(self, token: str) -> SessionInfo:
        """Cryptographic check, then record check (exists, live, current generation)."""
        claims = self._verify(token)
        with self._lock:
            record = self._load().get(claims.session_id)
        record = self._check_record(record, claims, self.codec.now())
        return SessionInfo(
            user_id=record.user_id,
            session_id=record.session_id,
            issued_at=record.issued_at,
            expires_at=record.expires_at,
            generation=record.generation,
        )

    def refresh(self, token: str, new_ttl: int) -> IssuedSession:
        """
        Rotate the session's token.

        The presented token must carry the record's current generation; the
        record is updated in place with generation + 1 and the new expiry.
        """
        claims = self._verify(token)
        with self._locked() as records:
            record = self._check_record(records.get(claims.session_id), claims, self.codec.now())
            new_token, new_claims = self.codec.issue_with_claims(
                record.user_id, record.session_id, new_ttl, generation=record.generation + 1
            )
            record = record.model_copy(update={
                "generation": new_claims.generation,
                "issued_at": new_claims.issued_at,
                "expires_at": new_claims.expires_at,
            })
            records[record.session_id] = record
            self._save(records)
        logger.info(
            "Session refreshed",
            session_id=record.session_id,
            user_id=record.user_id,
            generation=record.generation,
            expires_at=record.expires_at,
        )
        return IssuedSession(record=record, token=new_token)

    def revoke(self, session_id: str, reason: str = "revoked") -> bool:
        """Mark a session dead. Returns False if unknown or already revoked."""
        with self._locked() as records:
            record = records.get(session_id)
            if record is None or record.revoked:
                return False
            records[session_id] = record.model_copy(update={
                "revoked": True,
                "revoked_at": self.codec.now(),
                "revoke_reason": reason,
            })
            self._save(records)
        logger.info("Session revoked", session_id=session_id, user_id=record.user_id, reason=reason)
        return True

    def revoke_all_for_user(
        self, user_id: str, reason: str = "revoked_all", except_session_id: Optional[str] = None
    ) -> int:
        """Bulk revoke (sign out everywhere, password change, deactivation)."""
        now = self.codec.now()
        count = 0
        with self._locked() as records:
            for session_id, record in list(records.items()):
                if record.user_id != user_id or record.revoked or session_id == except_session_id:
                    continue
                records[session_id] = record.model_copy(update={
                    "revoked": True,
                    "revoked_at": now,
                    "revoke_reason": reason,
                })
                count += 1
            if count:
                self._save(records)
        logger.info("User sessions revoked", user_id=user_id, count=count, reason=reason)
        return count

    def session_id_for_token(self, token: str) -> Optional[str]:
        """
        Session id of a correctly signed token of the current generation,
        expired or not.

        Used by sign-out, which must be able to end a session with an expired
        token. A token that rotation has superseded resolves to nothing: it
        must not end the session that replaced it.
        """
        try:
            claims = self.codec.verify(token, allow_expired=True)
        except TokenError:
            return None
        with self._lock:
            record = self._load().get(claims.session_id)
        if record is None or record.user_id != claims.user_id:
            return None
        if claims.generation != record.generation:
            logger.info("Superseded token ignored", session_id=record.session_id, generation=claims.generation)
            return None
        return record.session_id

    def get(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            return self._load().get(session_id)

    def list_for_user(self, user_id: str, include_dead: bool = False) -> List[SessionRecord]:
        now = self.codec.now()
        with self._lock:
            records = self._load()
        out = [
            r for r in records.values()
            if r.user_id == user_id and (include_dead or r.state(now) is SessionState.ACTIVE)
        ]
        out.sort(key=lambda r: (r.created_at, r.session_id), reverse=True)
        return out

    def purge_dead(self) -> int:
        """Remove revoked and expired records (call periodically)."""
        now = self.codec.now()
        with self._locked() as records:
            dead = [sid for sid, r in records.items() if r.state(now) is SessionState.DEAD]
            for sid in dead:
                del records[sid]
            if dead:
                self._save(records)
        if dead:
            logger.info("Dead sessions purged", count=len(dead))
        return len(dead)
