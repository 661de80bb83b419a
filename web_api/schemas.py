"""Request bodies for the /auth routes (camelCase on the wire)."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SignInRequest(_Body):
    email: Optional[str] = None
    password: Optional[str] = None


class SignUpRequest(_Body):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class ResetPasswordRequest(_Body):
    email: Optional[str] = None


class VerifyResetRequest(_Body):
    token: Optional[str] = None
    new_password: Optional[str] = None


class ProfileUpdateRequest(_Body):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar: Optional[str] = None


class ChangePasswordRequest(_Body):
    current_password: Optional[str] = None
    new_password: Optional[str] = None
