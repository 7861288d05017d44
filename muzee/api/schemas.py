from __future__ import annotations

import re
import unicodedata
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_EMAIL_LENGTH = 255
MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 72
MAX_CLIENT_ID_LENGTH = 255
MAX_PROFILE_NAME_LENGTH = 100
MAX_USERNAME_LENGTH = 50
MAX_ICON_PATH_LENGTH = 255

_VALID_ERROR_CODES = frozenset({
    "invalid_request",
    "validation_error",
    "email_already_exists",
    "username_already_exists",
    "profile_already_exists",
    "session_not_found",
    "invalid_code",
    "token_not_found",
    "missing_refresh_token",
    "invalid_credentials",
    "refresh_token_invalid",
    "client_id_mismatch",
    "unauthorized",
    "invalid_token_format",
    "invalid_token",
    "user_not_found",
    "not_found",
    "conflict",
    "rate_limit_exceeded",
    "internal_server_error",
})


class FieldError(BaseModel):
    field: str
    message: str


class ErrorBody(BaseModel):
    """Wire error body: a stable ``error`` code plus a human-readable message."""

    error: str
    message: str
    details: Optional[List[FieldError]] = None

    @field_validator("error")
    @classmethod
    def _validate_error_code(cls, value: str) -> str:
        if value not in _VALID_ERROR_CODES:
            raise ValueError(
                f"Invalid error code '{value}'. Must be one of: {', '.join(sorted(_VALID_ERROR_CODES))}"
            )
        return value


_EMAIL_LOCAL_PART = re.compile(r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+$")
_EMAIL_DOMAIN_LABEL = re.compile(r"^[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?$")
_CODE_PATTERN = re.compile(r"^[0-9]{6}$")


def _normalize_unicode(value: str) -> str:
    """NFKC-normalize and drop zero-width characters used for spoofing."""
    zero_width = "\u200b\u200c\u200d\ufeff"
    cleaned = "".join(c for c in value if c not in zero_width)
    return unicodedata.normalize("NFKC", cleaned)


def _validate_email(value: str) -> str:
    if not isinstance(value, str):
        raise ValueError("email must be a string")
    normalized = _normalize_unicode(value.strip().lower())
    if not normalized:
        raise ValueError("email is required")
    if len(normalized) > MAX_EMAIL_LENGTH:
        raise ValueError(f"email must be at most {MAX_EMAIL_LENGTH} characters")
    local, sep, domain = normalized.partition("@")
    if not sep or not local or not domain:
        raise ValueError("invalid email address")
    if len(local) > 64 or not _EMAIL_LOCAL_PART.match(local):
        raise ValueError("invalid email address")
    domain_parts = domain.split(".")
    if len(domain_parts) < 2:
        raise ValueError("invalid email address")
    for label in domain_parts:
        if len(label) > 63 or not _EMAIL_DOMAIN_LABEL.match(label):
            raise ValueError("invalid email address")
    return normalized


def _validate_password(value: str) -> str:
    if len(value) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"password must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(value) > MAX_PASSWORD_LENGTH:
        raise ValueError(f"password must be at most {MAX_PASSWORD_LENGTH} characters")
    return value


def _validate_client_id(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("client_id is required")
    if len(value) > MAX_CLIENT_ID_LENGTH:
        raise ValueError(f"client_id must be at most {MAX_CLIENT_ID_LENGTH} characters")
    return value


def normalize_username(value: str) -> str:
    return _normalize_unicode(value).strip()


def _validate_username(value: str) -> str:
    value = normalize_username(value)
    if not value:
        raise ValueError("username is required")
    if len(value) > MAX_USERNAME_LENGTH:
        raise ValueError(f"username must be at most {MAX_USERNAME_LENGTH} characters")
    return value


class _Request(BaseModel):
    model_config = ConfigDict(extra="ignore")


class SendCodeRequest(_Request):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        return _validate_email(value)

    @field_validator("password")
    @classmethod
    def _check_password(cls, value: str) -> str:
        return _validate_password(value)


class ResendCodeRequest(_Request):
    email: str

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        return _validate_email(value)


class VerifyCodeRequest(_Request):
    email: str
    code: str
    client_id: str

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        return _validate_email(value)

    @field_validator("code")
    @classmethod
    def _check_code(cls, value: str) -> str:
        value = value.strip()
        if not _CODE_PATTERN.match(value):
            raise ValueError("code must be exactly 6 digits")
        return value

    @field_validator("client_id")
    @classmethod
    def _check_client_id(cls, value: str) -> str:
        return _validate_client_id(value)


class LoginRequest(_Request):
    email: str
    password: str = Field(..., min_length=1, max_length=MAX_PASSWORD_LENGTH)
    client_id: str

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        return _validate_email(value)

    @field_validator("client_id")
    @classmethod
    def _check_client_id(cls, value: str) -> str:
        return _validate_client_id(value)


class RefreshRequest(_Request):
    refresh_token: str = Field(..., min_length=1)
    client_id: str

    @field_validator("client_id")
    @classmethod
    def _check_client_id(cls, value: str) -> str:
        return _validate_client_id(value)


class LogoutRequest(_Request):
    # Presence is checked by the service so a missing token maps to
    # missing_refresh_token rather than a generic validation_error.
    refresh_token: Optional[str] = None


class CreateProfileRequest(_Request):
    name: str
    username: str
    icon_path: Optional[str] = Field(None, max_length=MAX_ICON_PATH_LENGTH)

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        value = _normalize_unicode(value).strip()
        if not value:
            raise ValueError("name is required")
        if len(value) > MAX_PROFILE_NAME_LENGTH:
            raise ValueError(f"name must be at most {MAX_PROFILE_NAME_LENGTH} characters")
        return value

    @field_validator("username")
    @classmethod
    def _check_username(cls, value: str) -> str:
        return _validate_username(value)


class CodeSentResponse(BaseModel):
    message: str
    email: str
    expires_in: int


class UserSummary(BaseModel):
    id: int
    email: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int


class SessionResponse(TokenResponse):
    user: UserSummary


class LoginResponse(SessionResponse):
    message: str


class MessageResponse(BaseModel):
    message: str


class MeResponse(BaseModel):
    id: int
    email: str
    created_at: datetime
    updated_at: datetime


class UserProfileSummary(BaseModel):
    id: int
    name: str
    username: str
    icon_path: str = ""


class CreateProfileResponse(BaseModel):
    message: str
    user_profile: UserProfileSummary


class UsernameAvailabilityResponse(BaseModel):
    available: bool
