# researchcollab/infra/audit_log.py
"""
Audit logging for state changes on calls and applications.

Records who changed what to a dedicated audit logger (separate from the
application log) with structured context.

Events are logged at INFO level to a logger named "audit" so they
can be routed to a separate file / sink via logging configuration.
"""
from __future__ import annotations

import logging
from typing import Any

_audit_logger = logging.getLogger("audit")


def audit_event(
    action: str,
    *,
    actor_id: str | None = None,
    call_id: str | None = None,
    application_id: str | None = None,
    detail: str = "",
    extra: dict[str, Any] | None = None,
) -> None:
    """
    Record an audit event.

    Args:
        action: Action name (e.g., "call.create", "application.accepted")
        actor_id: User who performed the action
        call_id: Research call affected (if applicable)
        application_id: Application affected (if applicable)
        detail: Human-readable detail
        extra: Additional structured context
    """
    record = {
        "audit_action": action,
        "actor_id": actor_id or "",
        "call_id": call_id or "",
        "application_id": application_id or "",
        "detail": detail,
    }
    if extra:
        record.update(extra)

    _audit_logger.info(
        f"AUDIT: {action} actor={actor_id or '-'} call={call_id or '-'} "
        f"application={application_id or '-'} {detail}",
        extra=record,
    )
