# researchcollab/infra/migrations_async.py
"""
Async database migrations runner (asyncpg).
"""
from __future__ import annotations
from pathlib import Path

from researchcollab.infra.db_async import Database
from researchcollab.infra.logging_config import get_logger
from researchcollab.infra.metrics import Timer

logger = get_logger(__name__)


def _sql_dir() -> Path:
    """Get SQL migrations directory path."""
    # Next to this file: researchcollab/infra/sql
    return Path(__file__).resolve().parent / "sql"


def migration_files(sql_dir: Path | None = None) -> list[Path]:
    """Migration files in apply order (001_init.sql, 002_add_feature.sql, ...)."""
    sql_dir = sql_dir or _sql_dir()
    return sorted(p for p in sql_dir.glob("*.sql") if p.is_file())


async def apply_migrations(db: Database, sql_dir: Path | None = None) -> dict:
    """
    Apply SQL migrations from the sql directory in one transaction.

    Already applied migrations are tracked in the schema_migrations table.

    Returns:
        dict with keys:
            - ok: bool (True if successful)
            - applied: list[str] (migration filenames applied in this run)
            - count: int (number of migrations applied)
    """
    files = migration_files(sql_dir)

    async with db.connection(transaction=True) as conn:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations(
              version text PRIMARY KEY,
              applied_at timestamptz NOT NULL DEFAULT now()
            )
            """
        )

        rows = await conn.fetch("SELECT version FROM schema_migrations")
        applied = {row['version'] for row in rows}

        applied_now = []
        for p in files:
            version = p.name
            if version in applied:
                logger.debug(f"Migration {version} already applied, skipping")
                continue

            logger.info(f"Applying migration: {version}")
            with Timer("migration_apply_seconds", version=version):
                await conn.execute(p.read_text(encoding="utf-8"))
            await conn.execute(
                "INSERT INTO schema_migrations(version) VALUES ($1)",
                version
            )

            applied_now.append(version)
            logger.info(f"Migration {version} applied successfully")

    logger.info(f"Migrations complete: {len(applied_now)} applied")
    return {"ok": True, "applied": applied_now, "count": len(applied_now)}
