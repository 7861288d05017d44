"""Fixed-window attempt counters backed by the key-value store.

The window opens on the first attempt (the TTL is set only when the counter is
created) and closes when the key expires. Attempts straddling a window edge can
therefore admit up to twice the limit in a short burst; that is accepted
behaviour, not a sliding-window approximation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from muzee.config import Settings
from muzee.logging import get_logger
from muzee.service.errors import RateLimitedError
from muzee.storage.redis_cache import CacheBackend

logger = get_logger(__name__)

SEND_CODE = "send_code"
LOGIN = "login"


@dataclass(frozen=True)
class RateLimitRule:
    limit: int
    window_seconds: int


def rules_from_settings(settings: Settings) -> Dict[str, RateLimitRule]:
    return {
        SEND_CODE: RateLimitRule(
            settings.send_code_rate_limit, settings.send_code_rate_window_seconds
        ),
        LOGIN: RateLimitRule(settings.login_rate_limit, settings.login_rate_window_seconds),
    }


class RateLimiter:
    def __init__(self, cache: CacheBackend, rules: Dict[str, RateLimitRule]) -> None:
        self.cache = cache
        self.rules = dict(rules)

    @staticmethod
    def key_for(operation: str, identity: str) -> str:
        return f"rate_limit:{operation}:{identity}"

    async def check(self, operation: str, identity: str) -> int:
        """Count one attempt for ``identity`` and raise once over the limit.

        Returns the post-increment count. Raises ``RateLimitedError`` when the
        count exceeds the rule's limit; ``CacheUnavailable`` propagates.
        """
        rule = self.rules[operation]
        count = await self.cache.incr_and_expire(
            self.key_for(operation, identity), rule.window_seconds
        )
        if count > rule.limit:
            logger.warning(
                "rate_limit_exceeded",
                operation=operation,
                email=identity,
                count=count,
                limit=rule.limit,
            )
            raise RateLimitedError(
                detail={"retry_window_seconds": rule.window_seconds}
            )
        return count
