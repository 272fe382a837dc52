# researchcollab/transport/container.py
"""
Process-wide service wiring.

The HTTP app holds one ServiceContainer on ``app.state.container``.
``build_container`` wires the Postgres-backed services from settings;
tests build a container around in-memory repositories instead.
"""
from __future__ import annotations

from dataclasses import dataclass

from researchcollab.core.lifecycle import LifecycleManager
from researchcollab.core.ports import AsyncUserRepository
from researchcollab.core.queries import QuerySurface
from researchcollab.infra.db_async import Database
from researchcollab.infra.discord_oauth import DiscordOAuthClient
from researchcollab.infra.http_client import HttpSessions
from researchcollab.infra.logging_config import get_logger
from researchcollab.infra.notification_channels import (
    build_announcement_channel,
    build_email_channel,
)
from researchcollab.infra.notification_service import NotificationDispatcher
from researchcollab.infra.pg_application_repo_async import AsyncPostgresApplicationRepository
from researchcollab.infra.pg_call_repo_async import AsyncPostgresCallRepository
from researchcollab.infra.pg_user_repo_async import AsyncPostgresUserRepository
from researchcollab.transport.security import SessionSigner, build_session_signer

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    lifecycle: LifecycleManager
    queries: QuerySurface
    users: AsyncUserRepository
    dispatcher: NotificationDispatcher
    oauth: DiscordOAuthClient
    signer: SessionSigner
    http: HttpSessions
    db: Database | None = None

    async def ready(self) -> bool:
        """True when the backing store answers (always True without a database)."""
        if self.db is None:
            return True
        return await self.db.ping()

    async def aclose(self) -> None:
        """Flush pending notifications, then release HTTP sessions and the pool."""
        await self.dispatcher.drain()
        await self.http.close()
        if self.db is not None:
            await self.db.close()


async def build_container(settings) -> ServiceContainer:
    """Connect the pool and wire every service from settings."""
    db = Database.from_settings(settings)
    await db.connect()

    http = HttpSessions(timeout_seconds=settings.http_timeout_seconds)
    dispatcher = NotificationDispatcher(
        email_channel=build_email_channel(settings),
        announcement_channel=build_announcement_channel(settings, http),
        public_base_url=settings.public_base_url,
    )

    calls = AsyncPostgresCallRepository(db)
    applications = AsyncPostgresApplicationRepository(db)
    users = AsyncPostgresUserRepository(db)

    container = ServiceContainer(
        lifecycle=LifecycleManager(calls, applications, users, dispatcher),
        queries=QuerySurface(calls, applications),
        users=users,
        dispatcher=dispatcher,
        oauth=DiscordOAuthClient(
            http,
            client_id=settings.discord_client_id,
            client_secret=settings.discord_client_secret,
            redirect_uri=settings.discord_redirect_uri,
        ),
        signer=build_session_signer(),
        http=http,
        db=db,
    )
    logger.info(
        "Services wired",
        extra={
            "discord_oauth": container.oauth.is_configured(),
            "announcements": settings.discord_announcements_enabled,
        },
    )
    return container
