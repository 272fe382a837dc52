# researchcollab/infra/notification_service.py
"""
Notification dispatcher: best-effort delivery of emails and Discord
announcements.

Contract (what callers may rely on):
    - ``send_email`` / ``announce_call`` return immediately; delivery runs
      on a background task.
    - A failed delivery is logged and counted, never raised.
    - At most once: each notification gets exactly one attempt.
    - Nothing here can block or roll back the state change that
      triggered the notification.

Every attempt is appended to a bounded in-memory history so operators
(and tests) can see what was attempted and whether it worked.
"""
from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from researchcollab.core.domain import ResearchCall
from researchcollab.core.errors import DispatchError
from researchcollab.core.messages import call_announcement
from researchcollab.infra.logging_config import get_logger, mask_email
from researchcollab.infra.metrics import AppMetrics
from researchcollab.infra.notification_channels import NotificationChannel, OutboundNotification

logger = get_logger(__name__)

DEFAULT_HISTORY_SIZE = 200


@dataclass
class DispatchRecord:
    """Outcome of one delivery attempt"""
    channel: str
    recipient: Optional[str]
    subject: str
    ok: bool
    error: Optional[str] = None
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationDispatcher:
    """
    Fire-and-forget front for the email and announcement channels.

    Background tasks are tracked until they finish so they are not
    garbage-collected mid-flight and can be awaited on shutdown.
    """

    def __init__(
        self,
        email_channel: NotificationChannel,
        announcement_channel: NotificationChannel,
        public_base_url: str,
        history_size: int = DEFAULT_HISTORY_SIZE,
    ) -> None:
        self._email = email_channel
        self._announcements = announcement_channel
        self._public_base_url = public_base_url
        self._tasks: set[asyncio.Task] = set()
        self._history: deque[DispatchRecord] = deque(maxlen=history_size)

    # ------------------------------------------------------------------
    # Notifier contract
    # ------------------------------------------------------------------

    def send_email(self, to: str, subject: str, html: str) -> None:
        self._schedule(self._email, OutboundNotification(recipient=to, subject=subject, html=html))

    def announce_call(self, call: ResearchCall) -> None:
        payload = call_announcement(call, self._public_base_url)
        self._schedule(
            self._announcements,
            OutboundNotification(subject=f"New research call: {call.title}", payload=payload),
        )

    # ------------------------------------------------------------------
    # Introspection / lifecycle
    # ------------------------------------------------------------------

    @property
    def history(self) -> list[DispatchRecord]:
        return list(self._history)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every scheduled delivery to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _schedule(self, channel: NotificationChannel, notification: OutboundNotification) -> None:
        task = asyncio.get_running_loop().create_task(self._deliver(channel, notification))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(self, channel: NotificationChannel, notification: OutboundNotification) -> None:
        recipient = notification.recipient
        try:
            await channel.deliver(notification)
        except DispatchError as exc:
            logger.warning(
                f"Notification failed: channel={channel.name} to={mask_email(recipient)} error={exc.detail}"
            )
            self._record(channel, notification, ok=False, error=exc.detail)
            return
        except Exception as exc:
            logger.error(
                f"Notification failed unexpectedly: channel={channel.name} {type(exc).__name__}",
                exc_info=True,
            )
            self._record(channel, notification, ok=False, error=f"{type(exc).__name__}: {exc}")
            return

        self._record(channel, notification, ok=True)

    def _record(
        self,
        channel: NotificationChannel,
        notification: OutboundNotification,
        *,
        ok: bool,
        error: str | None = None,
    ) -> None:
        if ok:
            AppMetrics.notification_sent(channel.name)
        else:
            AppMetrics.notification_failed(channel.name)
        self._history.append(
            DispatchRecord(
                channel=channel.name,
                recipient=notification.recipient,
                subject=notification.subject,
                ok=ok,
                error=error,
            )
        )
