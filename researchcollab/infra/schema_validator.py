# researchcollab/infra/schema_validator.py
"""
Schema version validator.

The application does NOT run migrations itself.  Migrations run
separately (``python -m researchcollab.infra.migrate``) and the app
checks at startup that the latest applied migration is the one it
was built against.
"""
from __future__ import annotations
from researchcollab.infra.db_async import Database
from researchcollab.infra.logging_config import get_logger

logger = get_logger(__name__)

_MIGRATE_HINT = "Run migrations first: python -m researchcollab.infra.migrate"


async def validate_schema_version(db: Database, expected_version: str) -> dict:
    """
    Validate that database schema version matches expected version.

    Returns:
        dict with keys ok, current_version, expected_version

    Raises:
        RuntimeError: If schema version is incompatible
    """
    async with db.connection() as conn:
        table_exists = await conn.fetchval(
            """
            SELECT EXISTS (
                SELECT FROM information_schema.tables
                WHERE table_schema = 'public'
                AND table_name = 'schema_migrations'
            )
            """
        )

        if not table_exists:
            error = f"Schema migrations table not found. {_MIGRATE_HINT}"
            logger.critical(error)
            raise RuntimeError(error)

        current_version = await conn.fetchval(
            "SELECT version FROM schema_migrations ORDER BY version DESC LIMIT 1"
        )

    if current_version is None:
        error = f"No migrations have been applied. {_MIGRATE_HINT}"
        logger.critical(error)
        raise RuntimeError(error)

    if current_version != expected_version:
        error = (
            f"Schema version mismatch! Expected: {expected_version}, "
            f"Found: {current_version}. {_MIGRATE_HINT}"
        )
        logger.critical(error)
        raise RuntimeError(error)

    logger.info(f"Schema version validated: {current_version}")
    return {
        "ok": True,
        "current_version": current_version,
        "expected_version": expected_version,
    }
