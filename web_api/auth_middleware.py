"""
Auth dependencies for the FastAPI routes.

- Reads the session token from the Authorization header or the session cookie
- Exposes the AuthService, Settings and RateLimiter held on app.state
- Sets and clears the HTTP-only session cookie
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request, Response

from flowforge.auth.service import AuthService
from flowforge.core.config import Settings
from flowforge.core.ratelimit import RateLimiter


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def extract_token(request: Request) -> Optional[str]:
    """Bearer header first (API clients), then the session cookie (browsers)."""
    auth_header = request.headers.get("Authorization") or ""
    if auth_header.lower().startswith("bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    cookie_name = get_settings(request).cookie_name
    return request.cookies.get(cookie_name) or None


def get_session_token(request: Request) -> Optional[str]:
    """Dependency form of extract_token. Missing tokens are rejected by the service."""
    return extract_token(request)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def set_session_cookie(response: Response, settings: Settings, token: str) -> None:
    """Attach the session token as an HTTP-only cookie."""
    response.set_cookie(
        key=settings.cookie_name,
        value=token,
        max_age=settings.session_ttl_seconds,
        httponly=True,
        secure=settings.secure_cookies,
        samesite=settings.cookie_samesite,
        path="/",
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=settings.cookie_name,
        path="/",
        httponly=True,
        secure=settings.secure_cookies,
        samesite=settings.cookie_samesite,
    )
