# researchcollab/infra/pg_call_repo_async.py
"""
Async Postgres repository for research calls.

Status changes are conditional updates (``WHERE status = 'open'``) so a
call that was closed concurrently is never edited or closed twice.
"""
from __future__ import annotations

from typing import Any, Optional

import asyncpg

from researchcollab.core.domain import CallListing, CallStatus, ResearchCall, UserSummary
from researchcollab.core.ports import SlugTakenError
from researchcollab.infra.db_async import Database, parse_uuid
from researchcollab.infra.db_resilience_async import retry_on_transient_error
from researchcollab.infra.logging_config import get_logger
from researchcollab.infra.metrics import AppMetrics

logger = get_logger(__name__)

_COLUMNS = (
    "id, slug, title, summary, abstract, keywords, credit_roles, timeline, "
    "lead_author_id, status, publication_url, created_at, updated_at"
)

# Same columns qualified for the users join; lead author fields are prefixed
_JOINED_COLUMNS = (
    ", ".join(f"c.{column}" for column in _COLUMNS.split(", "))
    + ", u.username AS lead_username, u.email AS lead_email, u.avatar_url AS lead_avatar_url"
)

# Column order matters for the dynamic UPDATE below
_UPDATABLE_COLUMNS = ("title", "summary", "abstract", "keywords", "credit_roles", "timeline")


def _row_to_call(row: asyncpg.Record) -> ResearchCall:
    return ResearchCall(
        id=str(row["id"]),
        slug=row["slug"],
        title=row["title"],
        summary=row["summary"],
        abstract=row["abstract"],
        keywords=list(row["keywords"] or []),
        credit_roles=list(row["credit_roles"] or []),
        timeline=row["timeline"],
        lead_author_id=str(row["lead_author_id"]),
        status=CallStatus(row["status"]),
        publication_url=row["publication_url"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_call_listing(row: asyncpg.Record) -> CallListing:
    return CallListing(
        call=_row_to_call(row),
        lead_author=UserSummary(
            id=str(row["lead_author_id"]),
            username=row["lead_username"],
            email=row["lead_email"],
            avatar_url=row["lead_avatar_url"],
        ),
    )


class AsyncPostgresCallRepository:
    """Async Postgres repository for research_calls"""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def create_call(
        self,
        *,
        slug: str,
        title: str,
        summary: str,
        lead_author_id: str,
        keywords: list[str],
        credit_roles: list[str],
        abstract: Optional[str] = None,
        timeline: Optional[str] = None,
    ) -> ResearchCall:
        """
        Insert an open call.

        Raises SlugTakenError if the slug is already used.
        """
        async with self._db.connection() as conn:
            try:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO research_calls
                        (slug, title, summary, abstract, keywords, credit_roles,
                         timeline, lead_author_id, status)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, 'open')
                    RETURNING {_COLUMNS}
                    """,
                    slug, title, summary, abstract, keywords, credit_roles,
                    timeline, parse_uuid(lead_author_id),
                )
            except asyncpg.UniqueViolationError as exc:
                raise SlugTakenError(f"Slug '{slug}' already exists") from exc
            except asyncpg.PostgresError:
                logger.error(f"Failed to insert research call: slug={slug}", exc_info=True)
                AppMetrics.database_error("call_create")
                raise

        return _row_to_call(row)

    @retry_on_transient_error()
    async def get_call(self, call_id: str) -> Optional[ResearchCall]:
        call_uuid = parse_uuid(call_id)
        if call_uuid is None:
            return None

        async with self._db.connection() as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM research_calls WHERE id = $1",
                call_uuid,
            )
        return _row_to_call(row) if row else None

    @retry_on_transient_error()
    async def get_call_by_slug(self, slug: str) -> Optional[CallListing]:
        """Call by slug, joined with the lead author's profile."""
        async with self._db.connection() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_JOINED_COLUMNS}
                FROM research_calls c
                JOIN users u ON u.id = c.lead_author_id
                WHERE c.slug = $1
                """,
                slug,
            )
        return _row_to_call_listing(row) if row else None

    @retry_on_transient_error()
    async def list_calls(
        self, author_id: Optional[str] = None, status: Optional[str] = None
    ) -> list[ResearchCall]:
        """List calls, newest first, optionally filtered by author and status."""
        conditions = []
        params: list[Any] = []
        idx = 1

        if author_id is not None:
            author_uuid = parse_uuid(author_id)
            if author_uuid is None:
                return []
            conditions.append(f"lead_author_id = ${idx}")
            params.append(author_uuid)
            idx += 1

        if status is not None:
            conditions.append(f"status = ${idx}")
            params.append(status)
            idx += 1

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        async with self._db.connection() as conn:
            rows = await conn.fetch(
                f"SELECT {_COLUMNS} FROM research_calls {where} ORDER BY created_at DESC",
                *params,
            )
        return [_row_to_call(r) for r in rows]

    async def update_open_call(self, call_id: str, changes: dict[str, Any]) -> Optional[ResearchCall]:
        """
        Update editable columns while the call is open.

        Returns None if the call is missing or no longer open.
        """
        call_uuid = parse_uuid(call_id)
        if call_uuid is None:
            return None

        updates = []
        params: list[Any] = [call_uuid]
        idx = 2

        for column in _UPDATABLE_COLUMNS:
            if column in changes:
                updates.append(f"{column} = ${idx}")
                params.append(changes[column])
                idx += 1

        if not updates:
            raise ValueError("No updatable columns in changes")

        updates.append("updated_at = now()")
        async with self._db.connection() as conn:
            row = await conn.fetchrow(
                f"UPDATE research_calls SET {', '.join(updates)} "
                f"WHERE id = $1 AND status = 'open' RETURNING {_COLUMNS}",
                *params,
            )
        return _row_to_call(row) if row else None

    async def close_call(self, call_id: str, publication_url: Optional[str] = None) -> Optional[ResearchCall]:
        """
        open -> closed. Returns None if the call is missing or not open.
        """
        call_uuid = parse_uuid(call_id)
        if call_uuid is None:
            return None

        async with self._db.connection() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE research_calls
                SET status = 'closed',
                    publication_url = COALESCE($2, publication_url),
                    updated_at = now()
                WHERE id = $1 AND status = 'open'
                RETURNING {_COLUMNS}
                """,
                call_uuid, publication_url,
            )

        if row:
            logger.info("Research call closed", extra={"call_id": call_id})
        return _row_to_call(row) if row else None
