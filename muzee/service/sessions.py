from __future__ import annotations

import time
from typing import Callable, Optional

from muzee.logging import get_logger
from muzee.storage.models import PendingSignup, RefreshTokenRecord
from muzee.storage.redis_cache import CacheBackend

logger = get_logger(__name__)


class SignupSessionManager:
    """Pending-signup state keyed by normalized email.

    Saving always overwrites: there is at most one pending signup per email,
    and the latest write decides which code is valid. No input validation is
    done here.
    """

    def __init__(
        self,
        cache: CacheBackend,
        *,
        ttl_seconds: int = 15 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    @staticmethod
    def key_for(email: str) -> str:
        return f"signup:{email}"

    async def save(self, email: str, password_hash: str, code: str) -> PendingSignup:
        pending = PendingSignup(
            password_hash=password_hash, code=code, created_at=int(self._clock())
        )
        await self.cache.set(self.key_for(email), pending.to_json(), self.ttl_seconds)
        return pending

    async def get(self, email: str) -> Optional[PendingSignup]:
        raw = await self.cache.get(self.key_for(email))
        if raw is None:
            return None
        try:
            return PendingSignup.from_json(raw)
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("signup_session_corrupt", email=email, error=str(exc))
            return None

    async def delete(self, email: str) -> None:
        await self.cache.delete(self.key_for(email))


class RefreshTokenStore:
    """Refresh token records keyed by the opaque token value.

    There is no user-to-token index: a user may hold any number of live
    tokens, one per client, and nothing here revokes them in bulk.
    """

    def __init__(
        self,
        cache: CacheBackend,
        *,
        ttl_seconds: int = 30 * 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    @staticmethod
    def key_for(token: str) -> str:
        return f"refresh_token:{token}"

    async def save(self, token: str, user_id: int, client_id: str) -> RefreshTokenRecord:
        record = RefreshTokenRecord(
            user_id=user_id, client_id=client_id, created_at=int(self._clock())
        )
        await self.cache.set(self.key_for(token), record.to_json(), self.ttl_seconds)
        return record

    async def get(self, token: str) -> Optional[RefreshTokenRecord]:
        raw = await self.cache.get(self.key_for(token))
        if raw is None:
            return None
        try:
            return RefreshTokenRecord.from_json(raw)
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("refresh_token_record_corrupt", error=str(exc))
            return None

    async def delete(self, token: str) -> bool:
        """Delete the record; True when a record was actually removed."""
        return await self.cache.delete(self.key_for(token)) > 0
