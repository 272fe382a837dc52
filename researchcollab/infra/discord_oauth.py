# researchcollab/infra/discord_oauth.py
"""
Discord OAuth2 client (authorization code flow).

    1. authorize_url(state)  -> redirect the browser to Discord
    2. exchange_code(code)   -> access token
    3. fetch_profile(token)  -> DiscordProfile (id, username, email, avatar)

The caller upserts the profile and issues its own session.
"""
from __future__ import annotations

import asyncio
from urllib.parse import urlencode

import aiohttp

from researchcollab.core.domain import DiscordProfile
from researchcollab.core.errors import CollabError, ConfigurationError
from researchcollab.infra.http_client import HttpSessions
from researchcollab.infra.logging_config import get_logger

logger = get_logger(__name__)

AUTHORIZE_URL = "https://discord.com/api/oauth2/authorize"
TOKEN_URL = "https://discord.com/api/oauth2/token"
PROFILE_URL = "https://discord.com/api/users/@me"
AVATAR_URL = "https://cdn.discordapp.com/avatars/{user_id}/{avatar}.png"
SCOPES = ("identify", "email")


class DiscordOAuthError(CollabError):
    """Discord rejected the exchange or is unreachable (502)."""

    status_code = 502


def avatar_url(discord_id: str, avatar: str | None) -> str | None:
    if not avatar:
        return None
    return AVATAR_URL.format(user_id=discord_id, avatar=avatar)


class DiscordOAuthClient:

    def __init__(
        self,
        sessions: HttpSessions,
        client_id: str | None,
        client_secret: str | None,
        redirect_uri: str | None,
    ) -> None:
        self._sessions = sessions
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri

    def is_configured(self) -> bool:
        return bool(self._client_id and self._client_secret and self._redirect_uri)

    def _require_config(self) -> None:
        if not self.is_configured():
            raise ConfigurationError("Discord OAuth configuration is missing")

    def authorize_url(self, state: str) -> str:
        self._require_config()
        query = urlencode({
            "client_id": self._client_id,
            "redirect_uri": self._redirect_uri,
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "state": state,
        })
        return f"{AUTHORIZE_URL}?{query}"

    async def exchange_code(self, code: str) -> tuple[str, str]:
        """
        Trade an authorization code for (token_type, access_token).

        Raises:
            ConfigurationError: client id/secret/redirect missing
            DiscordOAuthError: Discord rejected the code or is unreachable
        """
        self._require_config()
        form = {
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self._redirect_uri,
        }

        session = self._sessions.auth()
        try:
            async with session.post(TOKEN_URL, data=form) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    logger.error(f"Discord token exchange error: status={resp.status} body={body[:200]}")
                    raise DiscordOAuthError("Failed to exchange code for token")
                data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.error(f"Discord token exchange failed: {type(exc).__name__}")
            raise DiscordOAuthError("Failed to exchange code for token") from exc

        access_token = data.get("access_token")
        if not access_token:
            raise DiscordOAuthError("Failed to exchange code for token")
        return data.get("token_type") or "Bearer", access_token

    async def fetch_profile(self, token_type: str, access_token: str) -> DiscordProfile:
        """Resolve an access token to the user's Discord profile."""
        session = self._sessions.auth()
        headers = {"Authorization": f"{token_type} {access_token}"}
        try:
            async with session.get(PROFILE_URL, headers=headers) as resp:
                if resp.status != 200:
                    logger.error(f"Discord user info error: status={resp.status}")
                    raise DiscordOAuthError("Failed to get Discord user info")
                data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.error(f"Discord user info failed: {type(exc).__name__}")
            raise DiscordOAuthError("Failed to get Discord user info") from exc

        discord_id = str(data.get("id") or "")
        if not discord_id:
            raise DiscordOAuthError("Failed to get Discord user info")

        return DiscordProfile(
            discord_id=discord_id,
            username=data.get("global_name") or data.get("username") or discord_id,
            email=data.get("email"),
            avatar_url=avatar_url(discord_id, data.get("avatar")),
        )

    async def resolve(self, code: str) -> DiscordProfile:
        """exchange_code + fetch_profile"""
        token_type, access_token = await self.exchange_code(code)
        return await self.fetch_profile(token_type, access_token)
