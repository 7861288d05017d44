from __future__ import annotations

from typing import Optional

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError

from muzee.logging import get_logger

logger = get_logger(__name__)


class PasswordService:
    """One-way adaptive hashing (argon2id) for stored credentials."""

    def __init__(self, hasher: Optional[PasswordHasher] = None) -> None:
        self._hasher = hasher or PasswordHasher(type=Type.ID)
        # Verified against when the account is unknown so both login failure
        # paths pay the same hashing cost.
        self._dummy_hash = self._hasher.hash("muzee-timing-equalizer")

    def hash(self, password: str) -> str:
        return self._hasher.hash(password)

    def verify(self, stored_hash: Optional[str], password: str) -> bool:
        """Return True when ``password`` matches ``stored_hash``.

        A missing hash is checked against a throwaway digest and always fails.
        """
        if not stored_hash:
            self._verify_dummy(password)
            return False
        try:
            return self._hasher.verify(stored_hash, password)
        except VerifyMismatchError:
            return False
        except (InvalidHash, VerificationError):
            logger.warning("password_hash_unreadable")
            return False

    def _verify_dummy(self, password: str) -> None:
        try:
            self._hasher.verify(self._dummy_hash, password)
        except VerifyMismatchError:
            pass
