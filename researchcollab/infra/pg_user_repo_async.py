# researchcollab/infra/pg_user_repo_async.py
"""
Async Postgres repository for Discord-authenticated users.
"""
from __future__ import annotations

from typing import Optional

import asyncpg

from researchcollab.core.domain import DiscordProfile, User
from researchcollab.infra.db_async import Database, parse_uuid
from researchcollab.infra.db_resilience_async import retry_on_transient_error

_COLUMNS = "id, discord_id, username, email, avatar_url, created_at, updated_at"


def _row_to_user(row: asyncpg.Record) -> User:
    return User(
        id=str(row["id"]),
        discord_id=row["discord_id"],
        username=row["username"],
        email=row["email"],
        avatar_url=row["avatar_url"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class AsyncPostgresUserRepository:

    def __init__(self, db: Database) -> None:
        self._db = db

    async def upsert_discord_user(self, profile: DiscordProfile) -> User:
        """Insert or refresh a user keyed by discord_id."""
        async with self._db.connection() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO users (discord_id, username, email, avatar_url)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (discord_id) DO UPDATE
                SET username = EXCLUDED.username,
                    email = EXCLUDED.email,
                    avatar_url = EXCLUDED.avatar_url,
                    updated_at = now()
                RETURNING {_COLUMNS}
                """,
                profile.discord_id, profile.username, profile.email, profile.avatar_url,
            )
        return _row_to_user(row)

    @retry_on_transient_error()
    async def get_user(self, user_id: str) -> Optional[User]:
        user_uuid = parse_uuid(user_id)
        if user_uuid is None:
            return None

        async with self._db.connection() as conn:
            row = await conn.fetchrow(f"SELECT {_COLUMNS} FROM users WHERE id = $1", user_uuid)
        return _row_to_user(row) if row else None
