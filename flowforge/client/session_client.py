"""
Client façade over the /auth HTTP API.

The session token lives only in the HTTP session's cookie jar; this class
never reads it. What it keeps is the AuthState (current user or none).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import requests
from pydantic import ValidationError
from pydantic.alias_generators import to_camel
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..auth.models import SessionPublic, UserPublic
from ..utils.exceptions import (
    AuthError,
    Conflict,
    NotFound,
    RateLimited,
    TransientNetworkError,
    Unauthenticated,
    Unauthorized,
    ValidationFailed,
)
from ..utils.logger import get_logger
from .state import AuthState, AuthStatus

logger = get_logger(__name__)

NETWORK_ERROR_MESSAGE = "Network error occurred"


@dataclass
class AuthResult:
    """Outcome of a form-style action (sign in, sign up, profile, ...)."""

    success: bool
    user: Optional[UserPublic] = None
    error: Optional[str] = None
    errors: Dict[str, str] = field(default_factory=dict)
    message: Optional[str] = None


def error_from_response(status_code: int, body: Dict[str, Any]) -> AuthError:
    """Map a non-2xx response to the matching AuthError."""
    message = body.get("error") or body.get("message")
    errors = body.get("errors") or {}
    if status_code == 401:
        return Unauthenticated(message)
    if status_code == 403:
        return Unauthorized(message)
    if status_code == 404:
        return NotFound(message)
    if status_code == 409:
        return Conflict(message, field=next(iter(errors), None))
    if status_code in (400, 422):
        return ValidationFailed(errors, message=message)
    if status_code == 429:
        return RateLimited(message)
    if status_code >= 500:
        return TransientNetworkError(message or f"Server error ({status_code})")
    return AuthError(message or f"Unexpected response ({status_code})")


class SessionClient:
    """
    Talks to the auth API and keeps the local AuthState in step.

    http: anything with requests.Session's request() signature and a cookie
    jar (tests pass a FastAPI TestClient).
    """

    def __init__(
        self,
        base_url: str,
        state: Optional[AuthState] = None,
        http: Optional[Any] = None,
        timeout: float = 30.0,
        owns_http: Optional[bool] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.state = state or AuthState()
        self._owns_http = http is None if owns_http is None else owns_http
        self.http = http if http is not None else requests.Session()
        self.timeout = timeout
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------ transport

    def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Tuple[int, Dict[str, Any]]:
        """Send one request; network failures and 5xx become TransientNetworkError."""
        url = f"{self.base_url}{path}"
        try:
            response = self.http.request(method, url, json=json, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.warning("Auth request failed", method=method, path=path, error=str(e))
            raise TransientNetworkError(f"Request failed: {str(e)}")
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        if response.status_code >= 500:
            raise error_from_response(response.status_code, body)
        return response.status_code, body

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(TransientNetworkError),
        reraise=True,
    )
    def _fetch_me(self) -> Tuple[int, Dict[str, Any]]:
        return self._request("GET", "/auth/me")

    @staticmethod
    def _parse_user(body: Dict[str, Any]) -> Optional[UserPublic]:
        raw = body.get("user")
        if not isinstance(raw, dict):
            return None
        try:
            return UserPublic.model_validate(raw)
        except ValidationError as e:
            logger.warning("Malformed user payload", error=str(e))
            return None

    @staticmethod
    def _failure(status_code: int, body: Dict[str, Any], default: str) -> AuthResult:
        err = error_from_response(status_code, body)
        errors = dict(body.get("errors") or {})
        if isinstance(err, Conflict) and not errors:
            errors = {"email": err.message}
        return AuthResult(success=False, error=body.get("error") or default, errors=errors)

    def _session_ended(self, epoch: int) -> None:
        """Server says the session is gone; drop the user unless a newer action won."""
        self.state.clear(expected_epoch=epoch, bump=True)

    # -------------------------------------------------------------- actions

    def sign_in(self, email: str, password: str) -> AuthResult:
        try:
            status, body = self._request("POST", "/auth/signin", {"email": email, "password": password})
        except TransientNetworkError:
            return AuthResult(success=False, error=NETWORK_ERROR_MESSAGE)
        user = self._parse_user(body) if status == 200 else None
        if user is None:
            return self._failure(status, body, "Sign in failed")
        self.state.set_user(user, bump=True)
        logger.info("Signed in", user_id=user.id)
        return AuthResult(success=True, user=user)

    def sign_up(self, first_name: str, last_name: str, email: str, password: str) -> AuthResult:
        payload = {"firstName": first_name, "lastName": last_name, "email": email, "password": password}
        try:
            status, body = self._request("POST", "/auth/signup", payload)
        except TransientNetworkError:
            return AuthResult(success=False, error=NETWORK_ERROR_MESSAGE)
        user = self._parse_user(body) if status in (200, 201) else None
        if user is None:
            return self._failure(status, body, "Sign up failed")
        self.state.set_user(user, bump=True)
        logger.info("Signed up", user_id=user.id)
        return AuthResult(success=True, user=user)

    def sign_out(self) -> None:
        """End the session. Local state is cleared even if the server can't be reached."""
        try:
            self._request("POST", "/auth/signout")
        except TransientNetworkError as e:
            logger.warning("Sign-out request failed; clearing local state anyway", error=str(e))
        finally:
            self.state.clear(bump=True)

    def sign_out_everywhere(self) -> Optional[int]:
        """End every session of the user. Returns how many were revoked, if known."""
        revoked: Optional[int] = None
        try:
            status, body = self._request("POST", "/auth/signout-all")
            if status == 200:
                revoked = body.get("revoked")
        except TransientNetworkError as e:
            logger.warning("Sign-out-everywhere request failed", error=str(e))
        finally:
            self.state.clear(bump=True)
        return revoked

    def current_user(self) -> Optional[UserPublic]:
        return self.state.user

    def refresh(self) -> None:
        """
        Rotate the session token.

        Raises TransientNetworkError when the server can't be reached; the
        session may still be valid then, so the user is kept.

        A 401 may only mean another client sharing the cookie jar rotated
        the token first, so the session is re-checked before the user is
        dropped.
        """
        epoch = self.state.epoch
        status, body = self._request("POST", "/auth/refresh")
        if status == 200:
            logger.debug("Session refreshed", expires_at=body.get("expiresAt"))
            return
        if status == 401:
            logger.info("Refresh rejected; re-checking session")
            self._confirm_session(epoch)
            return
        raise error_from_response(status, body)

    def _confirm_session(self, epoch: int) -> None:
        """Keep the user only if the cookie jar now holds a working session."""
        try:
            status, body = self._fetch_me()
        except TransientNetworkError as e:
            logger.warning("Session re-check failed", error=str(e))
            status, body = 0, {}
        user = self._parse_user(body) if status == 200 else None
        if user is not None:
            self.state.set_user(user, expected_epoch=epoch)
        else:
            logger.info("Session ended during refresh")
            self._session_ended(epoch)

    def check_status(self) -> AuthStatus:
        """
        Ask the server who the current user is and apply the answer.

        Runs on startup, on re-activation and on cross-client signals. A
        result overtaken by a local sign-in/sign-out is dropped.
        """
        if self._closed:
            return self.state.status
        epoch = self.state.epoch
        try:
            status, body = self._fetch_me()
        except TransientNetworkError as e:
            logger.warning("Auth status check failed", error=str(e))
            if self.state.is_loading:
                self.state.clear(expected_epoch=epoch)
            return self.state.status
        if self._closed:
            return self.state.status

        user = self._parse_user(body) if status == 200 else None
        if user is not None:
            self.state.set_user(user, expected_epoch=epoch)
        elif status == 401:
            self.state.clear(expected_epoch=epoch)
        else:
            logger.warning("Unexpected auth status response", status_code=status)
            if self.state.is_loading:
                self.state.clear(expected_epoch=epoch)
        return self.state.status

    def on_activate(self) -> AuthStatus:
        """Client became visible again; re-check with the server."""
        return self.check_status()

    def reset_password(self, email: str) -> AuthResult:
        try:
            status, body = self._request("POST", "/auth/reset-password", {"email": email})
        except TransientNetworkError:
            return AuthResult(success=False, error=NETWORK_ERROR_MESSAGE)
        if status == 200:
            return AuthResult(success=True, message=body.get("message"))
        return self._failure(status, body, "Password reset failed")

    def verify_reset(self, token: str, new_password: str) -> AuthResult:
        """Complete a password reset; on success this client is signed in."""
        try:
            status, body = self._request(
                "POST", "/auth/verify-reset", {"token": token, "newPassword": new_password}
            )
        except TransientNetworkError:
            return AuthResult(success=False, error=NETWORK_ERROR_MESSAGE)
        user = self._parse_user(body) if status == 200 else None
        if user is None:
            return self._failure(status, body, "Password reset failed")
        self.state.set_user(user, bump=True)
        return AuthResult(success=True, user=user, message=body.get("message"))

    def update_profile(self, **updates: Any) -> AuthResult:
        """Update first_name, last_name and/or avatar."""
        epoch = self.state.epoch
        payload = {to_camel(k): v for k, v in updates.items()}
        try:
            status, body = self._request("PUT", "/auth/profile", payload)
        except TransientNetworkError:
            return AuthResult(success=False, error=NETWORK_ERROR_MESSAGE)
        user = self._parse_user(body) if status == 200 else None
        if user is None:
            if status == 401:
                self._session_ended(epoch)
            return self._failure(status, body, "Profile update failed")
        self.state.set_user(user, expected_epoch=epoch)
        return AuthResult(success=True, user=user)

    def change_password(self, current_password: str, new_password: str) -> AuthResult:
        epoch = self.state.epoch
        payload = {"currentPassword": current_password, "newPassword": new_password}
        try:
            status, body = self._request("POST", "/auth/change-password", payload)
        except TransientNetworkError:
            return AuthResult(success=False, error=NETWORK_ERROR_MESSAGE)
        user = self._parse_user(body) if status == 200 else None
        if user is None:
            if status == 401:
                self._session_ended(epoch)
            return self._failure(status, body, "Password change failed")
        self.state.set_user(user, expected_epoch=epoch)
        return AuthResult(success=True, user=user)

    def list_sessions(self) -> List[SessionPublic]:
        status, body = self._request("GET", "/auth/sessions")
        if status != 200:
            raise error_from_response(status, body)
        return [SessionPublic.model_validate(s) for s in body.get("sessions") or []]

    def revoke_session(self, session_id: str) -> None:
        epoch = self.state.epoch
        status, body = self._request("DELETE", f"/auth/sessions/{session_id}")
        if status != 200:
            raise error_from_response(status, body)
        if body.get("current"):
            self._session_ended(epoch)

    def close(self) -> None:
        """Stop applying server results; release the HTTP session if we made it."""
        self._closed = True
        if self._owns_http:
            self.http.close()
