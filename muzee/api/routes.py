from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query

from muzee.api.schemas import (
    MAX_USERNAME_LENGTH,
    CodeSentResponse,
    CreateProfileRequest,
    CreateProfileResponse,
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    MeResponse,
    MessageResponse,
    RefreshRequest,
    ResendCodeRequest,
    SendCodeRequest,
    SessionResponse,
    TokenResponse,
    UsernameAvailabilityResponse,
    UserProfileSummary,
    UserSummary,
    VerifyCodeRequest,
    normalize_username,
)
from muzee.service.auth import AuthContext, AuthResult, TokenPair
from muzee.service.errors import ValidationError
from muzee.service.runtime import get_runtime

router = APIRouter(prefix="/v1")


async def get_user(authorization: Optional[str] = Header(None)) -> AuthContext:
    runtime = get_runtime()
    return await runtime.auth.authenticate(authorization)


def _token_response(tokens: TokenPair) -> TokenResponse:
    return TokenResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_type=tokens.token_type,
        expires_in=tokens.expires_in,
    )


def _session_fields(result: AuthResult) -> dict:
    return {
        **_token_response(result.tokens).model_dump(),
        "user": UserSummary(id=result.user.id, email=result.user.email),
    }


@router.post("/auth/signup/send-code", response_model=CodeSentResponse, tags=["auth"])
async def send_code(body: SendCodeRequest):
    """Start a signup and email a 6-digit verification code.

    Sending again for the same email replaces the pending signup and
    invalidates the previous code.

    Raises:
        400: If the email is already registered or the body is invalid
        429: If more than 3 codes were requested within 5 minutes
    """
    runtime = get_runtime()
    dispatch = await runtime.auth.send_code(body.email, body.password)
    return CodeSentResponse(
        message="Verification code sent",
        email=dispatch.email,
        expires_in=dispatch.expires_in,
    )


@router.post("/auth/signup/resend-code", response_model=CodeSentResponse, tags=["auth"])
async def resend_code(body: ResendCodeRequest):
    """Issue a fresh verification code for a pending signup.

    Raises:
        400: If there is no pending signup for the email
        429: If the send-code rate limit is exhausted
    """
    runtime = get_runtime()
    dispatch = await runtime.auth.resend_code(body.email)
    return CodeSentResponse(
        message="Verification code resent",
        email=dispatch.email,
        expires_in=dispatch.expires_in,
    )


@router.post(
    "/auth/signup/verify-code",
    response_model=SessionResponse,
    status_code=201,
    tags=["auth"],
)
async def verify_code(body: VerifyCodeRequest):
    """Verify the emailed code, create the account and open a session.

    Raises:
        400: If the signup session is missing/expired or the code is wrong
    """
    runtime = get_runtime()
    result = await runtime.auth.verify_code(body.email, body.code, body.client_id)
    return SessionResponse(**_session_fields(result))


@router.post("/auth/login", response_model=LoginResponse, tags=["auth"])
async def login(body: LoginRequest):
    """Authenticate with email and password.

    Raises:
        401: If credentials are invalid
        429: If more than 5 attempts were made within 15 minutes
    """
    runtime = get_runtime()
    result = await runtime.auth.login(body.email, body.password, body.client_id)
    return LoginResponse(message="Login successful", **_session_fields(result))


@router.post("/auth/refresh", response_model=TokenResponse, tags=["auth"])
async def refresh_tokens(body: RefreshRequest):
    """Rotate a refresh token; the presented token is always consumed.

    Raises:
        401: If the token is unknown/expired or bound to another client
    """
    runtime = get_runtime()
    tokens = await runtime.auth.refresh(body.refresh_token, body.client_id)
    return _token_response(tokens)


@router.post("/auth/logout", response_model=MessageResponse, tags=["auth"])
async def logout(body: Optional[LogoutRequest] = None):
    """Revoke a refresh token. Access tokens stay valid until they expire.

    Raises:
        400: If the token is missing or was already revoked
    """
    runtime = get_runtime()
    await runtime.auth.logout(body.refresh_token if body else None)
    return MessageResponse(message="Logged out successfully")


@router.get("/users/me", response_model=MeResponse, tags=["users"])
async def get_me(principal: AuthContext = Depends(get_user)):
    """Return the authenticated user's account record."""
    user = principal.user
    return MeResponse(
        id=user.id,
        email=user.email,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


@router.post(
    "/me/profile",
    response_model=CreateProfileResponse,
    status_code=201,
    tags=["user-profiles"],
)
async def create_my_profile(
    body: CreateProfileRequest, principal: AuthContext = Depends(get_user)
):
    """Create the authenticated user's public profile.

    Raises:
        400: If the username is taken or the account already has a profile
        401: If the caller is not authenticated
    """
    runtime = get_runtime()
    profile = await runtime.profiles.create_profile(
        principal.user_id, body.name, body.username, body.icon_path
    )
    return CreateProfileResponse(
        message="User profile created",
        user_profile=UserProfileSummary(
            id=profile.id,
            name=profile.name,
            username=profile.username,
            icon_path=profile.icon_path or "",
        ),
    )


@router.get(
    "/user-profiles/check-username",
    response_model=UsernameAvailabilityResponse,
    tags=["user-profiles"],
)
async def check_username(
    username: str = Query(..., min_length=1, max_length=MAX_USERNAME_LENGTH),
):
    """Report whether ``username`` is free. No authentication required."""
    username = normalize_username(username)
    if not username:
        raise ValidationError("username is required")
    runtime = get_runtime()
    available = await runtime.profiles.is_username_available(username)
    return UsernameAvailabilityResponse(available=available)
