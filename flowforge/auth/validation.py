"""Input validation for sign-up, sign-in, profile and password flows."""

from __future__ import annotations

import re
from typing import Any, Dict, Mapping, Optional

from ..utils.exceptions import ValidationFailed

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 8
PROFILE_FIELDS = ("first_name", "last_name", "avatar")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def email_error(email: Any) -> Optional[str]:
    if not isinstance(email, str) or not email.strip():
        return "Email is required"
    if not EMAIL_RE.match(email.strip()):
        return "Invalid email format"
    return None


def password_error(password: Any) -> Optional[str]:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
    if not re.search(r"[a-z]", password):
        return "Password must contain at least one lowercase letter"
    if not re.search(r"[A-Z]", password):
        return "Password must contain at least one uppercase letter"
    if not re.search(r"\d", password):
        return "Password must contain at least one number"
    return None


def name_error(value: Any, label: str) -> Optional[str]:
    if not isinstance(value, str) or not value.strip():
        return f"{label} is required"
    if len(value.strip()) > 100:
        return f"{label} must be at most 100 characters"
    return None


def validate_signup(email: Any, password: Any, first_name: Any, last_name: Any) -> None:
    """Raise ValidationFailed with every failing field at once."""
    errors: Dict[str, str] = {}
    for field, message in (
        ("email", email_error(email)),
        ("password", password_error(password)),
        ("firstName", name_error(first_name, "First name")),
        ("lastName", name_error(last_name, "Last name")),
    ):
        if message:
            errors[field] = message
    if errors:
        raise ValidationFailed(errors, message="Invalid input data. Please check all required fields.")


def validate_signin(email: Any, password: Any) -> None:
    errors: Dict[str, str] = {}
    message = email_error(email)
    if message:
        errors["email"] = message
    if not isinstance(password, str) or not password:
        errors["password"] = "Password is required"
    if errors:
        raise ValidationFailed(errors, message="Invalid email or password format.")


def validate_new_password(password: Any, field: str = "newPassword") -> None:
    message = password_error(password)
    if message:
        raise ValidationFailed({field: message})


def clean_profile_updates(updates: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Check and trim profile updates.

    Only first_name, last_name and avatar may change, and at least one must
    be given. Names can't be blank.
    """
    unknown = [k for k in updates if k not in PROFILE_FIELDS]
    if unknown:
        raise ValidationFailed(
            {k: "Field cannot be updated" for k in unknown},
            message="Invalid profile data. Only firstName, lastName, and avatar can be updated.",
        )
    given = {k: v for k, v in updates.items() if v is not None}
    if not given:
        raise ValidationFailed({}, message="No updates provided.")

    errors: Dict[str, str] = {}
    cleaned: Dict[str, Any] = {}
    if "first_name" in given:
        message = name_error(given["first_name"], "First name")
        if message:
            errors["firstName"] = message
        else:
            cleaned["first_name"] = given["first_name"].strip()
    if "last_name" in given:
        message = name_error(given["last_name"], "Last name")
        if message:
            errors["lastName"] = message
        else:
            cleaned["last_name"] = given["last_name"].strip()
    if "avatar" in given:
        if not isinstance(given["avatar"], str):
            errors["avatar"] = "Avatar must be a string"
        else:
            cleaned["avatar"] = given["avatar"].strip() or None
    if errors:
        raise ValidationFailed(errors)
    return cleaned
