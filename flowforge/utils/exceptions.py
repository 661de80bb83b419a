"""Custom exceptions for the FlowForge session and authentication core"""

from typing import Dict, Optional


class AuthError(Exception):
    """Base exception for FlowForge auth"""

    status_code = 500
    default_message = "An error occurred."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(AuthError):
    """No session, or the session is expired, revoked or superseded"""

    status_code = 401
    default_message = "Invalid or expired session."

    def __init__(self, message: Optional[str] = None, reason: str = "unauthenticated"):
        self.reason = reason
        super().__init__(message)


class Unauthorized(AuthError):
    """Valid session, insufficient rights"""

    status_code = 403
    default_message = "Not allowed."


class ValidationFailed(AuthError):
    """Malformed input; carries per-field messages"""

    status_code = 422
    default_message = "Invalid input data."

    def __init__(self, errors: Optional[Dict[str, str]] = None, message: Optional[str] = None):
        self.errors = dict(errors or {})
        if message is None and len(self.errors) == 1:
            message = next(iter(self.errors.values()))
        super().__init__(message)


class Conflict(AuthError):
    """Resource already exists (e.g. email already registered)"""

    status_code = 409
    default_message = "Conflict."

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class NotFound(AuthError):
    status_code = 404
    default_message = "Not found."


class RateLimited(AuthError):
    """Too many attempts for a rate limit key"""

    status_code = 429
    default_message = "Too many attempts. Please try again later."

    def __init__(self, message: Optional[str] = None, retry_after: int = 60):
        self.retry_after = retry_after
        super().__init__(message)


class TransientNetworkError(AuthError):
    """Network failure or server unavailability; the caller may retry"""

    status_code = 503
    default_message = "Network error occurred."


class StorageError(AuthError):
    """Persistence error (failed to load or save a data file)"""
    pass


class ConfigError(AuthError):
    """Configuration error"""
    pass


class TokenError(AuthError):
    """Token-level failure. Always surfaced to callers as Unauthenticated."""

    status_code = 401
    reason = "invalid_token"


class MalformedToken(TokenError):
    default_message = "Malformed token"
    reason = "malformed"


class SignatureInvalid(TokenError):
    default_message = "Invalid token signature"
    reason = "bad_signature"


class TokenExpired(TokenError):
    default_message = "Token expired"
    reason = "expired"
