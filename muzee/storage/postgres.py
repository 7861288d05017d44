from __future__ import annotations

from typing import Any, Dict, Optional

from psycopg import errors
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from muzee.logging import get_logger
from muzee.storage.errors import ConstraintViolation
from muzee.storage.models import User, UserProfile

_USER_COLUMNS = "id, email, password_hash, created_at, updated_at"
_PROFILE_COLUMNS = "id, user_id, name, username, icon_path, created_at, updated_at"
_REQUIRED_TABLES = ("users", "user_profiles")


class PostgresStore:
    """Postgres-backed user store; lookups ignore soft-deleted rows."""

    def __init__(self, dsn: str, *, min_size: int = 2, max_size: int = 10) -> None:
        self.dsn = dsn
        self.logger = get_logger(__name__)
        self.pool = ConnectionPool(
            self.dsn,
            min_size=min_size,
            max_size=max_size,
            kwargs={"row_factory": dict_row, "autocommit": False},
        )
        self._verify_required_schema()

    def _connect(self):
        return self.pool.connection()

    def _verify_required_schema(self) -> None:
        missing = []
        with self._connect() as conn:
            for table in _REQUIRED_TABLES:
                row = conn.execute(
                    "SELECT to_regclass(%s) AS oid", (f"public.{table}",)
                ).fetchone()
                if not row or not row.get("oid"):
                    missing.append(table)
        if missing:
            raise RuntimeError(
                "Missing required Postgres tables: {}. Apply scripts/schema.sql first.".format(
                    ", ".join(missing)
                )
            )

    def verify_connection(self) -> None:
        with self._connect() as conn:
            conn.execute("SELECT 1")

    @staticmethod
    def _row_to_user(row: Dict[str, Any]) -> User:
        return User(
            id=int(row["id"]),
            email=row["email"],
            password_hash=row["password_hash"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    # users
    def create_user(self, email: str, password_hash: str) -> User:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    f"""
                    INSERT INTO users (email, password_hash, created_at, updated_at)
                    VALUES (%s, %s, now(), now())
                    RETURNING {_USER_COLUMNS}
                    """,
                    (email, password_hash),
                ).fetchone()
        except errors.UniqueViolation:
            raise ConstraintViolation("email already exists", {"field": "email"})
        return self._row_to_user(row)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE email = %s AND deleted_at IS NULL",
                (email,),
            ).fetchone()
        if not row:
            return None
        return self._row_to_user(row)

    def get_user(self, user_id: int) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE id = %s AND deleted_at IS NULL",
                (user_id,),
            ).fetchone()
        if not row:
            return None
        return self._row_to_user(row)

    def delete_user(self, user_id: int) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE users SET deleted_at = now(), updated_at = now() "
                "WHERE id = %s AND deleted_at IS NULL",
                (user_id,),
            )
            return cur.rowcount > 0

    # profiles
    @staticmethod
    def _row_to_profile(row: Dict[str, Any]) -> UserProfile:
        return UserProfile(
            id=int(row["id"]),
            user_id=int(row["user_id"]),
            name=row["name"],
            username=row["username"],
            icon_path=row.get("icon_path"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def create_user_profile(
        self, user_id: int, name: str, username: str, icon_path: Optional[str] = None
    ) -> UserProfile:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    f"""
                    INSERT INTO user_profiles (user_id, name, username, icon_path, created_at, updated_at)
                    VALUES (%s, %s, %s, %s, now(), now())
                    RETURNING {_PROFILE_COLUMNS}
                    """,
                    (user_id, name, username, icon_path),
                ).fetchone()
        except errors.UniqueViolation as exc:
            constraint = getattr(exc.diag, "constraint_name", None) or ""
            if "username" in constraint:
                raise ConstraintViolation("username already exists", {"field": "username"})
            raise ConstraintViolation("profile already exists", {"field": "user_id"})
        return self._row_to_profile(row)

    def get_user_profile(self, user_id: int) -> Optional[UserProfile]:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_PROFILE_COLUMNS} FROM user_profiles WHERE user_id = %s",
                (user_id,),
            ).fetchone()
        if not row:
            return None
        return self._row_to_profile(row)

    def username_exists(self, username: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT EXISTS (SELECT 1 FROM user_profiles WHERE username = %s) AS taken",
                (username,),
            ).fetchone()
        return bool(row and row["taken"])

    def close(self) -> None:
        self.pool.close()
