from __future__ import annotations

import itertools
import threading
from typing import Dict, Optional

from muzee.logging import get_logger
from muzee.storage.errors import ConstraintViolation
from muzee.storage.models import User, UserProfile, utcnow


class MemoryStore:
    """In-memory user store for tests and local development."""

    def __init__(self) -> None:
        self.logger = get_logger(__name__)
        self.users: Dict[int, User] = {}
        self.profiles: Dict[int, UserProfile] = {}
        self._ids = itertools.count(1)
        self._profile_ids = itertools.count(1)
        # RLock for all data operations to ensure thread safety
        self._data_lock = threading.RLock()

    def create_user(self, email: str, password_hash: str) -> User:
        with self._data_lock:
            if any(existing.email == email for existing in self.users.values()):
                raise ConstraintViolation("email already exists", {"field": "email"})
            now = utcnow()
            user = User(
                id=next(self._ids),
                email=email,
                password_hash=password_hash,
                created_at=now,
                updated_at=now,
            )
            self.users[user.id] = user
            return user

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._data_lock:
            return next((u for u in self.users.values() if u.email == email), None)

    def get_user(self, user_id: int) -> Optional[User]:
        with self._data_lock:
            return self.users.get(user_id)

    def delete_user(self, user_id: int) -> bool:
        with self._data_lock:
            return self.users.pop(user_id, None) is not None

    # profiles
    def create_user_profile(
        self, user_id: int, name: str, username: str, icon_path: Optional[str] = None
    ) -> UserProfile:
        with self._data_lock:
            if user_id in self.profiles:
                raise ConstraintViolation("profile already exists", {"field": "user_id"})
            if any(p.username == username for p in self.profiles.values()):
                raise ConstraintViolation("username already exists", {"field": "username"})
            now = utcnow()
            profile = UserProfile(
                id=next(self._profile_ids),
                user_id=user_id,
                name=name,
                username=username,
                icon_path=icon_path,
                created_at=now,
                updated_at=now,
            )
            self.profiles[user_id] = profile
            return profile

    def get_user_profile(self, user_id: int) -> Optional[UserProfile]:
        with self._data_lock:
            return self.profiles.get(user_id)

    def username_exists(self, username: str) -> bool:
        with self._data_lock:
            return any(p.username == username for p in self.profiles.values())

    def verify_connection(self) -> None:
        return None

    def close(self) -> None:
        return None
