"""
FastAPI routes for session authentication.

Prefix: /auth

The session token travels in an HTTP-only cookie; response bodies never
carry it. Any 401 also clears the cookie (see app exception handlers).
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse

from flowforge.auth.models import UserPublic
from flowforge.auth.service import AuthService
from flowforge.core.ratelimit import RateLimiter
from flowforge.utils.exceptions import AuthError
from flowforge.utils.logger import get_logger

from .auth_middleware import (
    clear_session_cookie,
    client_ip,
    extract_token,
    get_auth_service,
    get_rate_limiter,
    get_session_token,
    get_settings,
    set_session_cookie,
)
from .schemas import (
    ChangePasswordRequest,
    ProfileUpdateRequest,
    ResetPasswordRequest,
    SignInRequest,
    SignUpRequest,
    VerifyResetRequest,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

RESET_MESSAGE = "If an account with that email exists, a password reset link has been sent."


def _user_body(user: UserPublic, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True, "user": user.model_dump(by_alias=True, mode="json")}
    body.update(extra)
    return body


def _limit(request: Request, limiter: RateLimiter, rule: str, key: str, message: str) -> None:
    settings = get_settings(request)
    cfg = settings.rate_limits.get(rule)
    if cfg is None:
        return
    limiter.check(f"{rule}:{key}", cfg.max_requests, cfg.window_seconds, message)


def _email_key(email: Optional[str]) -> str:
    return (email or "").strip().lower()


@router.post("/signin")
def sign_in(
    body: SignInRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> Response:
    """
    Sign in with email and password.

    Request: {"email": "...", "password": "..."}
    Response: {"success": true, "user": {...}} plus the session cookie.
    """
    _limit(request, limiter, "signin_ip", client_ip(request),
           "Too many signin attempts. Please try again later.")
    _limit(request, limiter, "signin_email", _email_key(body.email),
           "Too many attempts for this email. Please try again later.")
    user, issued = service.sign_in(
        body.email,
        body.password,
        user_agent=request.headers.get("user-agent"),
        previous_token=extract_token(request),
    )
    response = JSONResponse(_user_body(user))
    set_session_cookie(response, get_settings(request), issued.token)
    return response


@router.post("/signup", status_code=status.HTTP_201_CREATED)
def sign_up(
    body: SignUpRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> Response:
    """
    Register a new user and start a session.

    Request: {"firstName", "lastName", "email", "password"}
    Errors: 422 with per-field messages, 409 if the email is taken.
    """
    _limit(request, limiter, "signup_ip", client_ip(request),
           "Too many signup attempts. Please try again later.")
    user, issued = service.sign_up(
        body.first_name,
        body.last_name,
        body.email,
        body.password,
        user_agent=request.headers.get("user-agent"),
    )
    response = JSONResponse(_user_body(user), status_code=status.HTTP_201_CREATED)
    set_session_cookie(response, get_settings(request), issued.token)
    return response


@router.get("/me")
def me(
    token: Optional[str] = Depends(get_session_token),
    service: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    """Return the current authenticated user."""
    return _user_body(service.current_user(token))


@router.post("/refresh")
def refresh(
    request: Request,
    token: Optional[str] = Depends(get_session_token),
    service: AuthService = Depends(get_auth_service),
) -> Response:
    """Rotate the session token. The presented token stops working."""
    issued = service.refresh(token)
    response = JSONResponse({
        "success": True,
        "expiresAt": issued.expires_at,
        "message": "Session refreshed successfully.",
    })
    set_session_cookie(response, get_settings(request), issued.token)
    return response


@router.post("/signout")
def sign_out(
    request: Request,
    token: Optional[str] = Depends(get_session_token),
    service: AuthService = Depends(get_auth_service),
) -> Response:
    """End the current session. Always succeeds and clears the cookie."""
    try:
        service.sign_out(token)
    except (AuthError, TimeoutError) as e:
        # The client is signing out regardless; the janitor purges leftovers
        logger.exception("Sign-out revoke failed", error=str(e))
    response = JSONResponse({"success": True, "message": "Successfully signed out"})
    clear_session_cookie(response, get_settings(request))
    return response


@router.post("/signout-all")
def sign_out_everywhere(
    request: Request,
    token: Optional[str] = Depends(get_session_token),
    service: AuthService = Depends(get_auth_service),
) -> Response:
    """End every session of the current user, this one included."""
    revoked = service.sign_out_everywhere(token)
    response = JSONResponse({"success": True, "revoked": revoked})
    clear_session_cookie(response, get_settings(request))
    return response


@router.get("/sessions")
def list_sessions(
    token: Optional[str] = Depends(get_session_token),
    service: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    sessions = service.list_sessions(token)
    return {
        "success": True,
        "sessions": [s.model_dump(by_alias=True, mode="json") for s in sessions],
    }


@router.delete("/sessions/{session_id}")
def revoke_session(
    session_id: str,
    request: Request,
    token: Optional[str] = Depends(get_session_token),
    service: AuthService = Depends(get_auth_service),
) -> Response:
    was_current = service.revoke_session(token, session_id)
    response = JSONResponse({"success": True, "current": was_current})
    if was_current:
        clear_session_cookie(response, get_settings(request))
    return response


@router.post("/reset-password")
def reset_password(
    body: ResetPasswordRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> Dict[str, Any]:
    """
    Request a password reset.

    Always answers 200 for a well-formed email so account existence can't
    be probed.
    """
    _limit(request, limiter, "reset_ip", client_ip(request),
           "Too many password reset attempts. Please try again later.")
    _limit(request, limiter, "reset_email", _email_key(body.email),
           "Too many reset attempts for this email. Please try again later.")
    service.request_password_reset(body.email)
    return {"success": True, "message": RESET_MESSAGE}


@router.post("/verify-reset")
def verify_reset(
    body: VerifyResetRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> Response:
    """Set a new password with a reset token; ends all other sessions."""
    _limit(request, limiter, "verify_reset_ip", client_ip(request),
           "Too many password reset attempts. Please try again later.")
    user, issued = service.complete_password_reset(
        body.token, body.new_password, user_agent=request.headers.get("user-agent")
    )
    response = JSONResponse(_user_body(user, message="Password successfully reset."))
    set_session_cookie(response, get_settings(request), issued.token)
    return response


@router.get("/profile")
def get_profile(
    token: Optional[str] = Depends(get_session_token),
    service: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    return _user_body(service.current_user(token))


@router.put("/profile")
def update_profile(
    body: ProfileUpdateRequest,
    token: Optional[str] = Depends(get_session_token),
    service: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    """Update firstName, lastName and/or avatar."""
    updates = body.model_dump(exclude_unset=True)
    return _user_body(service.update_profile(token, **updates))


@router.post("/change-password")
def change_password(
    body: ChangePasswordRequest,
    request: Request,
    token: Optional[str] = Depends(get_session_token),
    service: AuthService = Depends(get_auth_service),
) -> Response:
    """Change password; other sessions end and this device gets a new one."""
    user, issued = service.change_password(
        token,
        body.current_password,
        body.new_password,
        user_agent=request.headers.get("user-agent"),
    )
    response = JSONResponse(_user_body(user))
    set_session_cookie(response, get_settings(request), issued.token)
    return response
