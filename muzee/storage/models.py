from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class User:
    id: int
    email: str
    password_hash: str
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class PendingSignup:
    """In-progress signup awaiting email verification.

    ``created_at`` is informational (unix seconds); expiry is enforced by the
    key-value store TTL.
    """

    password_hash: str
    code: str
    created_at: int

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str) -> "PendingSignup":
        data = json.loads(raw)
        return cls(
            password_hash=str(data["password_hash"]),
            code=str(data["code"]),
            created_at=int(data.get("created_at", 0)),
        )


@dataclass
class RefreshTokenRecord:
    """Server-side state backing an opaque refresh token."""

    user_id: int
    client_id: str
    created_at: int

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str) -> "RefreshTokenRecord":
        data = json.loads(raw)
        return cls(
            user_id=int(data["user_id"]),
            client_id=str(data["client_id"]),
            created_at=int(data.get("created_at", 0)),
        )


@dataclass
class UserProfile:
    """Public profile attached to one account; ``username`` is unique."""

    id: int
    user_id: int
    name: str
    username: str
    icon_path: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
