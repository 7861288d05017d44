from __future__ import annotations

import asyncio
import hmac
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from muzee.config import Settings
from muzee.logging import get_logger
from muzee.service.email import EmailService
from muzee.service.errors import (
    AuthenticationError,
    ClientIdMismatchError,
    EmailAlreadyExistsError,
    InvalidCodeError,
    InvalidCredentialsError,
    InvalidTokenFormatError,
    MissingRefreshTokenError,
    RefreshTokenInvalidError,
    SessionNotFoundError,
    TokenNotFoundError,
    UserNotFoundError,
)
from muzee.service.passwords import PasswordService
from muzee.service.rate_limit import LOGIN, SEND_CODE, RateLimiter, rules_from_settings
from muzee.service.sessions import RefreshTokenStore, SignupSessionManager
from muzee.service.tokens import TokenIssuer
from muzee.service.verification import generate_verification_code
from muzee.storage.errors import CacheUnavailable, ConstraintViolation
from muzee.storage.models import User
from muzee.storage.redis_cache import CacheBackend

logger = get_logger(__name__)

TOKEN_TYPE = "Bearer"


class UserStore(Protocol):
    def create_user(self, email: str, password_hash: str) -> User: ...

    def get_user_by_email(self, email: str) -> Optional[User]: ...

    def get_user(self, user_id: int) -> Optional[User]: ...


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


@dataclass
class AuthContext:
    user_id: int
    email: str
    user: User


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = TOKEN_TYPE


@dataclass
class AuthResult:
    tokens: TokenPair
    user: User


@dataclass
class CodeDispatch:
    email: str
    expires_in: int


class AuthService:
    """Signup verification, login, refresh-token rotation and logout.

    The service holds no mutable state of its own: pending signups, refresh
    tokens and rate-limit counters all live in the key-value store, so one
    instance is safe to share across concurrent requests. Store failures
    (``CacheUnavailable``) propagate unchanged and are never retried here.
    """

    def __init__(
        self,
        store: UserStore,
        cache: CacheBackend,
        settings: Settings,
        *,
        email: Optional[EmailService] = None,
        passwords: Optional[PasswordService] = None,
        tokens: Optional[TokenIssuer] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.cache = cache
        self.settings = settings
        self.logger = logger
        self.email = email or EmailService(dev_mode=True)
        self.passwords = passwords or PasswordService()
        self.tokens = tokens or TokenIssuer(
            settings.jwt_secret or "",
            issuer=settings.jwt_issuer,
            access_ttl_seconds=settings.access_token_ttl_minutes * 60,
            clock=clock,
        )
        self.rate_limiter = RateLimiter(cache, rules_from_settings(settings))
        self.signup_sessions = SignupSessionManager(
            cache, ttl_seconds=settings.signup_session_ttl_minutes * 60, clock=clock
        )
        self.refresh_tokens = RefreshTokenStore(
            cache, ttl_seconds=settings.refresh_token_ttl_days * 24 * 60 * 60, clock=clock
        )

    @property
    def access_token_ttl_seconds(self) -> int:
        return self.tokens.access_ttl_seconds

    @property
    def signup_ttl_seconds(self) -> int:
        return self.signup_sessions.ttl_seconds

    # signup
    async def send_code(self, email: str, password: str) -> CodeDispatch:
        """Start (or restart) a signup and email a fresh verification code.

        Raises:
            EmailAlreadyExistsError: an account already uses this email.
            RateLimitedError: more than the allowed sends inside the window.
        """
        email = normalize_email(email)
        if await asyncio.to_thread(self.store.get_user_by_email, email) is not None:
            self.logger.info("signup_email_taken", email=email)
            raise EmailAlreadyExistsError()
        await self.rate_limiter.check(SEND_CODE, email)
        password_hash = await asyncio.to_thread(self.passwords.hash, password)
        code = generate_verification_code()
        # Overwrites any pending signup; earlier codes stop working here.
        await self.signup_sessions.save(email, password_hash, code)
        self.logger.info("signup_code_issued", email=email)
        await self._dispatch_code(email, code)
        return CodeDispatch(email=email, expires_in=self.signup_ttl_seconds)

    async def resend_code(self, email: str) -> CodeDispatch:
        """Replace the pending code for ``email`` and send it again.

        Shares the send-code rate limit. The stored password hash is kept and
        the session TTL restarts.

        Raises:
            RateLimitedError: more than the allowed sends inside the window.
            SessionNotFoundError: no pending signup for this email.
        """
        email = normalize_email(email)
        await self.rate_limiter.check(SEND_CODE, email)
        pending = await self.signup_sessions.get(email)
        if pending is None:
            raise SessionNotFoundError()
        code = generate_verification_code()
        await self.signup_sessions.save(email, pending.password_hash, code)
        self.logger.info("signup_code_reissued", email=email)
        await self._dispatch_code(email, code)
        return CodeDispatch(email=email, expires_in=self.signup_ttl_seconds)

    async def verify_code(self, email: str, code: str, client_id: str) -> AuthResult:
        """Consume a pending signup, create the account and open a session.

        A wrong code leaves the pending signup in place so the caller can
        retry until it expires.

        Raises:
            SessionNotFoundError: no pending signup (never sent or expired).
            InvalidCodeError: the code does not match the latest one sent.
            EmailAlreadyExistsError: the email was registered concurrently.
        """
        email = normalize_email(email)
        pending = await self.signup_sessions.get(email)
        if pending is None:
            raise SessionNotFoundError()
        if not hmac.compare_digest(pending.code.encode(), (code or "").encode()):
            self.logger.info("signup_code_mismatch", email=email)
            raise InvalidCodeError()
        try:
            user = await asyncio.to_thread(
                self.store.create_user, email, pending.password_hash
            )
        except ConstraintViolation:
            raise EmailAlreadyExistsError()
        tokens = await self._open_session(user, client_id)
        try:
            await self.signup_sessions.delete(email)
        except CacheUnavailable as exc:
            # The account exists already; a stale session simply expires.
            self.logger.warning(
                "signup_session_cleanup_failed", email=email, error=str(exc)
            )
        self.logger.info("signup_verified", user_id=user.id)
        return AuthResult(tokens=tokens, user=user)

    # sessions
    async def login(self, email: str, password: str, client_id: str) -> AuthResult:
        """Authenticate with email and password.

        An unknown email and a wrong password produce the same error and the
        same hashing cost.

        Raises:
            RateLimitedError: too many attempts for this email.
            InvalidCredentialsError: unknown email or wrong password.
        """
        email = normalize_email(email)
        await self.rate_limiter.check(LOGIN, email)
        user = await asyncio.to_thread(self.store.get_user_by_email, email)
        stored_hash = user.password_hash if user else None
        valid = await asyncio.to_thread(self.passwords.verify, stored_hash, password)
        if user is None or not valid:
            self.logger.info("login_failed", email=email)
            raise InvalidCredentialsError()
        tokens = await self._open_session(user, client_id)
        self.logger.info("login_succeeded", user_id=user.id)
        return AuthResult(tokens=tokens, user=user)

    async def refresh(self, refresh_token: str, client_id: str) -> TokenPair:
        """Rotate a refresh token.

        The presented token is deleted on every path past the lookup, whether
        or not a replacement is issued. A client id mismatch is treated as
        theft and also burns the token.

        Raises:
            RefreshTokenInvalidError: unknown/expired token or vanished user.
            ClientIdMismatchError: token was issued to another client.
        """
        record = await self.refresh_tokens.get(refresh_token)
        if record is None:
            raise RefreshTokenInvalidError()
        if not hmac.compare_digest(record.client_id.encode(), (client_id or "").encode()):
            await self.refresh_tokens.delete(refresh_token)
            self.logger.warning(
                "refresh_client_mismatch",
                user_id=record.user_id,
                expected_client=record.client_id,
                presented_client=client_id,
            )
            raise ClientIdMismatchError()
        try:
            user = await asyncio.to_thread(self.store.get_user, record.user_id)
        finally:
            await self.refresh_tokens.delete(refresh_token)
        if user is None:
            raise RefreshTokenInvalidError()
        # Not transactional: a failure below leaves the caller with no
        # refresh token and they must log in again.
        tokens = await self._open_session(user, client_id)
        self.logger.info("refresh_rotated", user_id=user.id)
        return tokens

    async def logout(self, refresh_token: Optional[str]) -> None:
        """Revoke a refresh token. Not idempotent: a second call fails.

        Raises:
            MissingRefreshTokenError: no token supplied.
            TokenNotFoundError: token unknown, expired or already revoked.
        """
        if not refresh_token:
            raise MissingRefreshTokenError()
        removed = await self.refresh_tokens.delete(refresh_token)
        if not removed:
            raise TokenNotFoundError()
        self.logger.info("logout_succeeded")

    async def authenticate(self, authorization: Optional[str]) -> AuthContext:
        """Resolve an ``Authorization: Bearer`` header to the calling user.

        Raises:
            AuthenticationError: header missing.
            InvalidTokenFormatError: header is not a Bearer credential.
            InvalidTokenError: token expired, tampered or malformed.
            UserNotFoundError: token is valid but the user no longer exists.
        """
        if not authorization:
            raise AuthenticationError()
        token = self._extract_bearer(authorization)
        if token is None:
            raise InvalidTokenFormatError()
        claims = self.tokens.validate_access_token(token)
        user = await asyncio.to_thread(self.store.get_user, claims.user_id)
        if user is None:
            raise UserNotFoundError()
        return AuthContext(user_id=user.id, email=user.email, user=user)

    def _extract_bearer(self, header: str) -> Optional[str]:
        if not header.startswith("Bearer "):
            return None
        return header[len("Bearer "):].strip()

    async def _open_session(self, user: User, client_id: str) -> TokenPair:
        access_token = self.tokens.issue_access_token(user.id, user.email)
        refresh_token = self.tokens.issue_refresh_token()
        await self.refresh_tokens.save(refresh_token, user.id, client_id)
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self.access_token_ttl_seconds,
        )

    async def _dispatch_code(self, email: str, code: str) -> None:
        # Best-effort: the pending signup is already committed, so delivery
        # problems are logged and the request still succeeds.
        try:
            sent = await asyncio.to_thread(self.email.send_verification_code, email, code)
        except Exception as exc:
            self.logger.error(
                "verification_email_failed",
                email=email,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return
        if not sent:
            self.logger.error("verification_email_failed", email=email)
