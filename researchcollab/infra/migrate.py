#!/usr/bin/env python3
# researchcollab/infra/migrate.py
"""
Standalone migration runner.

Run migrations separately from application startup:
    python -m researchcollab.infra.migrate

The application validates the schema version at startup but does NOT
run migrations.
"""
import asyncio
import sys

from researchcollab.config import settings
from researchcollab.infra.db_async import Database
from researchcollab.infra.migrations_async import apply_migrations
from researchcollab.infra.logging_config import setup_logging, get_logger

logger = get_logger(__name__)


async def main() -> int:
    """Run migrations"""
    logger.info("=" * 60)
    logger.info("Database Migration Runner")
    logger.info("=" * 60)
    logger.info(f"Environment: {settings.app_env}")
    logger.info(f"Database: {settings.pghost}:{settings.pgport}/{settings.pgdatabase}")

    db = Database.from_settings(settings)
    try:
        await db.connect()
        logger.info("Database connected")

        result = await apply_migrations(db)

        logger.info(f"Status: {'SUCCESS' if result['ok'] else 'FAILED'}")
        logger.info(f"Migrations applied: {result['count']}")
        for migration in result['applied']:
            logger.info(f"  applied {migration}")

        return 0 if result['ok'] else 1

    except Exception as exc:
        logger.critical(f"MIGRATION FAILED: {exc}", exc_info=True)
        return 1

    finally:
        await db.close()


if __name__ == "__main__":
    setup_logging(level="INFO", use_json=False)
    sys.exit(asyncio.run(main()))
