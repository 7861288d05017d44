from __future__ import annotations

import asyncio
from typing import Optional, Protocol

from muzee.logging import get_logger
from muzee.service.errors import ProfileAlreadyExistsError, UsernameTakenError
from muzee.storage.errors import ConstraintViolation
from muzee.storage.models import UserProfile

logger = get_logger(__name__)


class ProfileStore(Protocol):
    def create_user_profile(
        self, user_id: int, name: str, username: str, icon_path: Optional[str] = None
    ) -> UserProfile: ...

    def username_exists(self, username: str) -> bool: ...


class ProfileService:
    """Public profiles: one per account, usernames unique across accounts.

    Icon upload is not handled here; ``icon_path`` is stored as given.
    """

    def __init__(self, store: ProfileStore) -> None:
        self.store = store

    async def create_profile(
        self, user_id: int, name: str, username: str, icon_path: Optional[str] = None
    ) -> UserProfile:
        """Create the caller's profile.

        Raises:
            UsernameTakenError: another account already uses ``username``.
            ProfileAlreadyExistsError: this account already has a profile.
        """
        try:
            profile = await asyncio.to_thread(
                self.store.create_user_profile, user_id, name, username, icon_path or None
            )
        except ConstraintViolation as exc:
            logger.info(
                "profile_create_conflict", user_id=user_id, field=exc.detail.get("field")
            )
            if exc.detail.get("field") == "username":
                raise UsernameTakenError()
            raise ProfileAlreadyExistsError()
        logger.info("profile_created", user_id=user_id, profile_id=profile.id)
        return profile

    async def is_username_available(self, username: str) -> bool:
        return not await asyncio.to_thread(self.store.username_exists, username)
