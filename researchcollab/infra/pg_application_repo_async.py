# researchcollab/infra/pg_application_repo_async.py
"""
Async Postgres repository for co-author applications.

The UNIQUE (call_id, user_id) constraint is the source of truth for
"one application per user per call"; a violation is reported as
ApplicationAlreadyExistsError regardless of which request got there first.
"""
from __future__ import annotations

from typing import Any, Optional

import asyncpg

from researchcollab.core.domain import (
    ApplicationListing,
    ApplicationStatus,
    CoAuthorApplication,
    UserSummary,
)
from researchcollab.core.ports import ApplicationAlreadyExistsError
from researchcollab.infra.db_async import Database, parse_uuid
from researchcollab.infra.db_resilience_async import retry_on_transient_error
from researchcollab.infra.logging_config import get_logger
from researchcollab.infra.metrics import AppMetrics

logger = get_logger(__name__)

_COLUMNS = "id, call_id, user_id, roles, motivation, orcid_id, status, created_at, updated_at"

# Qualified for the users / research_calls join used by list_applications
_LISTING_COLUMNS = (
    ", ".join(f"a.{column}" for column in _COLUMNS.split(", "))
    + ", u.username, u.email, u.avatar_url, c.title AS call_title, c.slug AS call_slug"
)

UNIQUE_PAIR_CONSTRAINT = "co_author_applications_call_user_key"


def _row_to_application(row: asyncpg.Record) -> CoAuthorApplication:
    return CoAuthorApplication(
        id=str(row["id"]),
        call_id=str(row["call_id"]),
        user_id=str(row["user_id"]),
        roles=list(row["roles"] or []),
        motivation=row["motivation"],
        orcid_id=row["orcid_id"],
        status=ApplicationStatus(row["status"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_listing(row: asyncpg.Record) -> ApplicationListing:
    return ApplicationListing(
        application=_row_to_application(row),
        call_title=row["call_title"],
        call_slug=row["call_slug"],
        applicant=UserSummary(
            id=str(row["user_id"]),
            username=row["username"],
            email=row["email"],
            avatar_url=row["avatar_url"],
        ),
    )


class AsyncPostgresApplicationRepository:
    """Async Postgres repository for co_author_applications"""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def create_application(
        self,
        *,
        call_id: str,
        user_id: str,
        roles: list[str],
        motivation: str,
        orcid_id: Optional[str] = None,
    ) -> CoAuthorApplication:
        """
        Insert a pending application.

        Raises ApplicationAlreadyExistsError if (call_id, user_id) exists.
        """
        async with self._db.connection() as conn:
            try:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO co_author_applications
                        (call_id, user_id, roles, motivation, orcid_id, status)
                    VALUES ($1, $2, $3, $4, $5, 'pending')
                    RETURNING {_COLUMNS}
                    """,
                    parse_uuid(call_id), parse_uuid(user_id), roles, motivation, orcid_id,
                )
            except asyncpg.UniqueViolationError as exc:
                if exc.constraint_name and exc.constraint_name != UNIQUE_PAIR_CONSTRAINT:
                    raise
                logger.info(
                    "Duplicate application rejected by unique constraint",
                    extra={"call_id": call_id, "user_id": user_id},
                )
                raise ApplicationAlreadyExistsError(
                    f"Application for call={call_id} user={user_id} already exists"
                ) from exc
            except asyncpg.PostgresError:
                logger.error(
                    "Failed to insert application",
                    extra={"call_id": call_id, "user_id": user_id},
                    exc_info=True,
                )
                AppMetrics.database_error("application_create")
                raise

        return _row_to_application(row)

    @retry_on_transient_error()
    async def get_application(self, application_id: str) -> Optional[CoAuthorApplication]:
        application_uuid = parse_uuid(application_id)
        if application_uuid is None:
            return None

        async with self._db.connection() as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM co_author_applications WHERE id = $1",
                application_uuid,
            )
        return _row_to_application(row) if row else None

    @retry_on_transient_error()
    async def find_application(self, call_id: str, user_id: str) -> Optional[CoAuthorApplication]:
        call_uuid, user_uuid = parse_uuid(call_id), parse_uuid(user_id)
        if call_uuid is None or user_uuid is None:
            return None

        async with self._db.connection() as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM co_author_applications WHERE call_id = $1 AND user_id = $2",
                call_uuid, user_uuid,
            )
        return _row_to_application(row) if row else None

    @retry_on_transient_error()
    async def list_applications(
        self,
        call_id: Optional[str] = None,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> list[ApplicationListing]:
        """List applications with applicant profile and call title/slug, newest first."""
        conditions = []
        params: list[Any] = []
        idx = 1

        for column, value in (("call_id", call_id), ("user_id", user_id)):
            if value is None:
                continue
            value_uuid = parse_uuid(value)
            if value_uuid is None:
                return []
            conditions.append(f"a.{column} = ${idx}")
            params.append(value_uuid)
            idx += 1

        if status is not None:
            conditions.append(f"a.status = ${idx}")
            params.append(status)
            idx += 1

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        async with self._db.connection() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_LISTING_COLUMNS}
                FROM co_author_applications a
                JOIN users u ON u.id = a.user_id
                JOIN research_calls c ON c.id = a.call_id
                {where}
                ORDER BY a.created_at DESC
                """,
                *params,
            )
        return [_row_to_listing(r) for r in rows]

    async def transition_from_pending(
        self, application_id: str, status: ApplicationStatus
    ) -> Optional[CoAuthorApplication]:
        """
        pending -> status. Returns None if missing or no longer pending.
        """
        application_uuid = parse_uuid(application_id)
        if application_uuid is None:
            return None

        async with self._db.connection() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE co_author_applications
                SET status = $2, updated_at = now()
                WHERE id = $1 AND status = 'pending'
                RETURNING {_COLUMNS}
                """,
                application_uuid, status.value,
            )
        return _row_to_application(row) if row else None
