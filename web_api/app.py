"""FastAPI application factory for the FlowForge auth API"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from flowforge import __version__
from flowforge.auth.janitor import SessionJanitor
from flowforge.auth.service import AuthService, build_auth_service
from flowforge.core.config import Settings, load_settings
from flowforge.core.ratelimit import RateLimiter
from flowforge.utils.exceptions import (
    AuthError,
    Conflict,
    RateLimited,
    Unauthenticated,
    ValidationFailed,
)
from flowforge.utils.logger import get_logger, setup_logger

from .auth_middleware import clear_session_cookie, extract_token
from .auth_routes import router as auth_router

logger = get_logger(__name__)


def _error_body(message: str, errors: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "error": message}
    if errors:
        body["errors"] = errors
    return body


def _field_name(loc: Any) -> str:
    parts = [str(p) for p in loc if p not in ("body", "query", "path")]
    return ".".join(parts) or "body"


def _should_clear_cookie(request: Request, exc: Unauthenticated) -> bool:
    """
    A 401 clears the session cookie only when the cookie is what failed.

    A superseded token lost a refresh race; the cookie jar may already hold
    the winner's token, so it is left alone. The same goes for a rejected
    Bearer token sent alongside a different cookie, and for a failed
    password check, which says nothing about the session.
    """
    if exc.reason in ("superseded", "invalid_credentials"):
        return False
    cookie = request.cookies.get(request.app.state.settings.cookie_name)
    if not cookie:
        return False
    return extract_token(request) == cookie


def register_exception_handlers(app: FastAPI) -> None:
    """Turn AuthError subclasses into structured JSON responses."""

    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError) -> JSONResponse:
        errors: Optional[Dict[str, str]] = None
        message = exc.message
        if isinstance(exc, ValidationFailed):
            errors = exc.errors
        elif isinstance(exc, Conflict) and exc.field:
            errors = {exc.field: exc.message}
        if exc.status_code >= 500:
            # Don't expose internal errors to the client
            logger.error("Request failed", path=request.url.path, error=str(exc), error_type=type(exc).__name__)
            message = "An error occurred. Please try again."

        response = JSONResponse(_error_body(message, errors), status_code=exc.status_code)
        if isinstance(exc, RateLimited):
            response.headers["Retry-After"] = str(exc.retry_after)
        if isinstance(exc, Unauthenticated):
            logger.info("Request unauthenticated", path=request.url.path, reason=exc.reason)
            if _should_clear_cookie(request, exc):
                clear_session_cookie(response, request.app.state.settings)
        return response

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors: Dict[str, str] = {}
        for err in exc.errors():
            errors.setdefault(_field_name(err.get("loc", ())), err.get("msg", "Invalid value"))
        return JSONResponse(
            _error_body("Invalid input data. Please check all required fields.", errors),
            status_code=422,
        )


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[AuthService] = None,
) -> FastAPI:
    """
    Build the auth API.

    Tests pass their own settings (temporary data dir) and optionally a
    pre-built service with a fake clock.
    """
    settings = settings or load_settings()
    setup_logger(
        log_level=settings.logging.level,
        log_format=settings.logging.format,
        file_path=settings.logging.file_path,
        max_bytes=settings.logging.max_bytes,
        backup_count=settings.logging.backup_count,
    )
    service = service or build_auth_service(settings)
    janitor = SessionJanitor(service, settings.cleanup_interval_seconds)

    app = FastAPI(
        title="FlowForge Auth",
        description="Session and authentication state API",
        version=__version__,
    )
    app.state.settings = settings
    app.state.auth_service = service
    app.state.rate_limiter = RateLimiter(enabled=settings.rate_limit_enabled)
    app.state.janitor = janitor

    register_exception_handlers(app)
    app.include_router(auth_router)

    @app.on_event("startup")
    async def startup_event() -> None:
        janitor.start()

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        janitor.stop()

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok", "version": __version__}

    logger.info("Auth API initialized", environment=settings.environment, data_dir=str(settings.data_dir))
    return app
