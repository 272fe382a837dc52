# researchcollab/infra/notification_channels.py
"""
Notification channel abstraction for emails and Discord announcements.

Channels:
- EmailChannel     - SMTP relay (blocking smtplib, run in an executor)
- LogEmailChannel  - writes the rendered email to the log (development)
- DiscordChannel   - posts to a Discord text channel via the bot API
- DisabledChannel  - accepts and drops everything

A channel either delivers or raises ``DispatchError``.  Deciding what a
failure means is the dispatcher's job, not the channel's.

Usage:
    email = build_email_channel(settings)
    await email.deliver(OutboundNotification(recipient=..., subject=..., html=...))
"""
from __future__ import annotations

import abc
import asyncio
import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage as MimeEmail
from typing import Any, Optional

import aiohttp

from researchcollab.core.errors import DispatchError
from researchcollab.infra.http_client import HttpSessions
from researchcollab.infra.logging_config import get_logger, mask_email

logger = get_logger(__name__)


@dataclass
class OutboundNotification:
    """One message for one channel"""
    recipient: Optional[str] = None  # Email address (email channels)
    subject: str = ""
    html: str = ""
    payload: dict[str, Any] = field(default_factory=dict)  # Raw JSON body (Discord)


class NotificationChannel(abc.ABC):
    """Abstract base class for notification channels"""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Channel name for logging/metrics"""
        pass

    @abc.abstractmethod
    def is_configured(self) -> bool:
        """Check if channel is properly configured"""
        pass

    @abc.abstractmethod
    async def deliver(self, notification: OutboundNotification) -> None:
        """
        Deliver one notification, at most once.

        Raises:
            DispatchError: delivery failed
        """
        pass


class EmailChannel(NotificationChannel):
    """
    Email via SMTP.
    smtplib is blocking, so the send runs in the default executor.
    """

    def __init__(
        self,
        host: str | None,
        port: int = 587,
        user: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        sender: str = "noreply@researchcollab.app",
        timeout_seconds: int = 10,
    ) -> None:
        self._host = host
        self._port = port
        self._user = user
        self._password = password
        self._use_tls = use_tls
        self._sender = sender
        self._timeout_seconds = timeout_seconds

    @property
    def name(self) -> str:
        return "email"

    def is_configured(self) -> bool:
        return bool(self._host)

    async def deliver(self, notification: OutboundNotification) -> None:
        if not self.is_configured():
            raise DispatchError(self.name, "SMTP host is not configured")
        if not notification.recipient:
            raise DispatchError(self.name, "missing recipient")

        msg = self._build_message(notification)

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._send_smtp, msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise DispatchError(self.name, f"{type(exc).__name__}: {exc}") from exc

        logger.info(
            f"Email sent: to={mask_email(notification.recipient)} subject={notification.subject!r}"
        )

    def _build_message(self, notification: OutboundNotification) -> MimeEmail:
        msg = MimeEmail()
        msg["From"] = self._sender
        msg["To"] = notification.recipient
        msg["Subject"] = notification.subject
        msg.set_content("This message requires an HTML-capable email client.")
        msg.add_alternative(notification.html, subtype="html")
        return msg

    def _send_smtp(self, msg: MimeEmail) -> None:
        """Send email via SMTP (blocking)"""
        with smtplib.SMTP(self._host, self._port, timeout=self._timeout_seconds) as server:
            if self._use_tls:
                server.starttls()
            if self._user and self._password:
                server.login(self._user, self._password)
            server.send_message(msg)


class LogEmailChannel(NotificationChannel):
    """Email 'delivery' to the application log, for development"""

    def __init__(self, sender: str = "noreply@researchcollab.app") -> None:
        self._sender = sender

    @property
    def name(self) -> str:
        return "email_log"

    def is_configured(self) -> bool:
        return True

    async def deliver(self, notification: OutboundNotification) -> None:
        if not notification.recipient:
            raise DispatchError(self.name, "missing recipient")
        logger.info(
            "Email (log backend)\nFrom: %s\nTo: %s\nSubject: %s\n%s",
            self._sender, notification.recipient, notification.subject, notification.html,
        )


class DiscordChannel(NotificationChannel):
    """
    Discord text channel via the bot REST API.
    POST {api_base}/channels/{channel_id}/messages with a bot token.
    """

    def __init__(
        self,
        sessions: HttpSessions,
        bot_token: str | None,
        channel_id: str | None,
        api_base: str = "https://discord.com/api/v10",
    ) -> None:
        self._sessions = sessions
        self._bot_token = bot_token
        self._channel_id = channel_id
        self._api_base = api_base.rstrip("/")

    @property
    def name(self) -> str:
        return "discord"

    def is_configured(self) -> bool:
        return bool(self._bot_token and self._channel_id)

    @property
    def url(self) -> str:
        return f"{self._api_base}/channels/{self._channel_id}/messages"

    async def deliver(self, notification: OutboundNotification) -> None:
        if not self.is_configured():
            raise DispatchError(self.name, "bot token or channel id is not configured")

        headers = {"Authorization": f"Bot {self._bot_token}"}
        session = self._sessions.sender()
        try:
            async with session.post(self.url, json=notification.payload, headers=headers) as resp:
                if resp.status >= 300:
                    body = await resp.text()
                    raise DispatchError(self.name, f"status={resp.status} body={body[:200]}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise DispatchError(self.name, f"{type(exc).__name__}: {exc}") from exc

        logger.info(f"Discord announcement posted: channel={self._channel_id}")


class DisabledChannel(NotificationChannel):
    """Dummy channel when notifications are disabled"""

    def __init__(self, label: str = "disabled") -> None:
        self._label = label

    @property
    def name(self) -> str:
        return self._label

    def is_configured(self) -> bool:
        return True  # Always "configured"

    async def deliver(self, notification: OutboundNotification) -> None:
        logger.debug(f"Notifications disabled, skipping: subject={notification.subject!r}")


# Email backend registry
_EMAIL_CHANNELS: dict[str, type[NotificationChannel]] = {
    "smtp": EmailChannel,
    "log": LogEmailChannel,
}


def build_email_channel(settings) -> NotificationChannel:
    """
    Email channel for the configured backend.

    Returns DisabledChannel if notifications are disabled.
    """
    if not settings.notifications_enabled:
        logger.info("Email notifications disabled")
        return DisabledChannel("email_disabled")

    channel_class = _EMAIL_CHANNELS.get(settings.email_backend)
    if channel_class is None:
        logger.error(f"Unknown email backend: {settings.email_backend}")
        return DisabledChannel("email_disabled")

    if channel_class is EmailChannel:
        channel = EmailChannel(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            sender=settings.email_from,
            timeout_seconds=settings.smtp_timeout_seconds,
        )
    else:
        channel = channel_class(sender=settings.email_from)

    if not channel.is_configured():
        logger.warning(f"Email backend '{settings.email_backend}' not configured, emails will fail")

    return channel


def build_announcement_channel(settings, sessions: HttpSessions) -> NotificationChannel:
    """
    Discord announcement channel, or DisabledChannel when it is not configured.
    """
    if not settings.notifications_enabled or not settings.discord_announcements_enabled:
        logger.info("Discord announcements disabled")
        return DisabledChannel("discord_disabled")

    return DiscordChannel(
        sessions,
        bot_token=settings.discord_bot_token,
        channel_id=settings.discord_channel_id,
        api_base=settings.discord_api_base,
    )
