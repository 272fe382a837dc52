# researchcollab/infra/http_client.py
"""
Shared HTTP client sessions for the application.

``HttpSessions`` owns named, lazily created aiohttp.ClientSession objects
so requests reuse TCP connections.  One instance is created in the app
lifespan and passed to the clients that need it; nothing is created at
import time.

Session profiles
~~~~~~~~~~~~~~~~
- **sender**: Discord channel posts     (total=timeout, connect=5 s, pool limit=10)
- **auth**:   Discord OAuth + profile   (total=timeout, connect=5 s, pool limit=10)

Shutdown
~~~~~~~~
Call ``await sessions.close()`` once during application shutdown.
"""
from __future__ import annotations

import aiohttp

from researchcollab.infra.logging_config import get_logger

logger = get_logger(__name__)


class HttpSessions:

    def __init__(self, timeout_seconds: float = 10.0) -> None:
        self._timeout_seconds = timeout_seconds
        self._sessions: dict[str, aiohttp.ClientSession] = {}

    def _get_or_create(self, name: str, limit: int = 10) -> aiohttp.ClientSession:
        """Return an existing session or create a new one."""
        session = self._sessions.get(name)
        if session is None or session.closed:
            session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout_seconds, connect=5),
                connector=aiohttp.TCPConnector(
                    keepalive_timeout=30,
                    limit=limit,
                    enable_cleanup_closed=True,
                ),
            )
            self._sessions[name] = session
            logger.debug("HTTP session '%s' created (limit=%d)", name, limit)
        return session

    def sender(self) -> aiohttp.ClientSession:
        """Session for outbound Discord channel posts."""
        return self._get_or_create("sender")

    def auth(self) -> aiohttp.ClientSession:
        """Session for the Discord OAuth token exchange and profile lookup."""
        return self._get_or_create("auth")

    async def close(self) -> None:
        """Gracefully close every managed session."""
        for name in list(self._sessions):
            session = self._sessions.pop(name, None)
            if session is not None and not session.closed:
                await session.close()
                logger.debug("HTTP session '%s' closed", name)
