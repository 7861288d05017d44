from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for service-layer exceptions mapped to HTTP responses.

    Each subclass carries a stable ``error_code`` that is serialized verbatim
    as the ``error`` field of the response body, plus the HTTP status code the
    API layer answers with. Messages are user-facing; internal details belong
    in logs only.
    """

    status_code: int = 400
    error_code: str = "validation_error"
    default_message: str = "Request could not be processed"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        detail: Optional[dict] = None,
        error_code: Optional[str] = None,
    ) -> None:
        message = message or self.default_message
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail or {}


class ValidationError(ServiceError):
    """Request validation failed (400)."""
    status_code = 400
    error_code = "validation_error"
    default_message = "Request validation failed"


class InvalidRequestError(ValidationError):
    """Request body could not be parsed (400)."""
    error_code = "invalid_request"
    default_message = "Request body is not valid JSON"


class MissingRefreshTokenError(ValidationError):
    error_code = "missing_refresh_token"
    default_message = "A refresh token is required"


class ConflictError(ServiceError):
    """Resource already exists. Answered with 400 to match the client contract."""
    status_code = 400
    error_code = "conflict"


class EmailAlreadyExistsError(ConflictError):
    error_code = "email_already_exists"
    default_message = "This email address is already registered"


class UsernameTakenError(ConflictError):
    error_code = "username_already_exists"
    default_message = "This username is already taken"


class ProfileAlreadyExistsError(ConflictError):
    error_code = "profile_already_exists"
    default_message = "A profile already exists for this account"


class NotFoundError(ServiceError):
    """Ephemeral state (signup session, refresh token) is absent (400)."""
    status_code = 400
    error_code = "not_found"


class SessionNotFoundError(NotFoundError):
    error_code = "session_not_found"
    default_message = "Signup session not found or expired"


class TokenNotFoundError(NotFoundError):
    error_code = "token_not_found"
    default_message = "Refresh token not found"


class InvalidCodeError(ServiceError):
    status_code = 400
    error_code = "invalid_code"
    default_message = "Verification code is incorrect"


class AuthenticationError(ServiceError):
    """Authentication failed or missing (401)."""
    status_code = 401
    error_code = "unauthorized"
    default_message = "Authentication required"


class InvalidCredentialsError(AuthenticationError):
    error_code = "invalid_credentials"
    default_message = "Email or password is incorrect"


class RefreshTokenInvalidError(AuthenticationError):
    error_code = "refresh_token_invalid"
    default_message = "Refresh token is invalid or expired"


class ClientIdMismatchError(AuthenticationError):
    error_code = "client_id_mismatch"
    default_message = "Refresh token was issued to a different client"


class InvalidTokenFormatError(AuthenticationError):
    error_code = "invalid_token_format"
    default_message = "Authorization header must use the Bearer scheme"


class InvalidTokenError(AuthenticationError):
    error_code = "invalid_token"
    default_message = "Access token is invalid or expired"


class UserNotFoundError(AuthenticationError):
    error_code = "user_not_found"
    default_message = "User not found"


class RateLimitedError(ServiceError):
    """Rate limit exceeded (429)."""
    status_code = 429
    error_code = "rate_limit_exceeded"
    default_message = "Too many requests, please try again later"


class ServerError(ServiceError):
    """Internal server error (500)."""
    status_code = 500
    error_code = "internal_server_error"
    default_message = "An internal server error occurred"


__all__ = [
    "ServiceError",
    "ValidationError",
    "InvalidRequestError",
    "MissingRefreshTokenError",
    "ConflictError",
    "EmailAlreadyExistsError",
    "UsernameTakenError",
    "ProfileAlreadyExistsError",
    "NotFoundError",
    "SessionNotFoundError",
    "TokenNotFoundError",
    "InvalidCodeError",
    "AuthenticationError",
    "InvalidCredentialsError",
    "RefreshTokenInvalidError",
    "ClientIdMismatchError",
    "InvalidTokenFormatError",
    "InvalidTokenError",
    "UserNotFoundError",
    "RateLimitedError",
    "ServerError",
]
