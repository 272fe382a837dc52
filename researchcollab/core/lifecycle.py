# researchcollab/core/lifecycle.py
"""
Application Lifecycle Manager, the single orchestration point for every
write on research calls and co-author applications.

Responsibilities:
    1. Validate input (required values, role catalog membership)
    2. Enforce ownership and state rules
    3. Call repositories for persistence
    4. Emit audit events and metrics
    5. Hand notifications to the best-effort notifier

Rules:
    - A call starts ``open``; only its lead author may edit or close it,
      and only while it is ``open``.
    - One application per (call, user); the store's unique constraint
      is the final arbiter under concurrent submissions.
    - Applications move ``pending -> accepted | rejected`` once, by the
      call's lead author; a second transition raises ``ConflictError``.
    - Notifications run after the state change is persisted and can
      never undo or fail it.

The transport layer stays thin: parse request → call manager → map
``CollabError`` → return JSON.
"""
from __future__ import annotations

import random
from typing import Any, Optional

from researchcollab.core.credit_roles import normalize_role_ids
from researchcollab.core.domain import (
    ApplicationDetail,
    ApplicationStatus,
    CoAuthorApplication,
    ResearchCall,
    User,
)
from researchcollab.core.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from researchcollab.core.messages import new_application_email, status_change_email
from researchcollab.core.ports import (
    ApplicationAlreadyExistsError,
    AsyncApplicationRepository,
    AsyncCallRepository,
    AsyncUserRepository,
    Notifier,
    SlugTakenError,
)
from researchcollab.core.slugs import generate_slug
from researchcollab.infra.audit_log import audit_event
from researchcollab.infra.logging_config import get_logger
from researchcollab.infra.metrics import AppMetrics

logger = get_logger(__name__)

EDITABLE_CALL_FIELDS = frozenset({"title", "summary", "abstract", "keywords", "credit_roles", "timeline"})
SLUG_ATTEMPTS = 5

CALL_NOT_FOUND_OR_CLOSED = "Research call not found or closed"
ALREADY_APPLIED = "You have already applied for this research call"


def _clean(value: Optional[str]) -> str:
    return value.strip() if isinstance(value, str) else ""


def _optional(value: Optional[str]) -> Optional[str]:
    value = _clean(value)
    return value or None


def _clean_keywords(keywords: Optional[list[str]]) -> list[str]:
    cleaned: list[str] = []
    for keyword in keywords or []:
        keyword = _clean(keyword)
        if keyword and keyword not in cleaned:
            cleaned.append(keyword)
    return cleaned


class LifecycleManager:
    """
    Orchestrates research call and application state changes.

    Stateless apart from injected collaborators; one instance per process.
    """

    def __init__(
        self,
        calls: AsyncCallRepository,
        applications: AsyncApplicationRepository,
        users: AsyncUserRepository,
        notifier: Notifier,
        rng: random.Random | None = None,
    ) -> None:
        self._calls = calls
        self._applications = applications
        self._users = users
        self._notifier = notifier
        self._rng = rng

    # ------------------------------------------------------------------
    # Research calls
    # ------------------------------------------------------------------

    async def create_call(
        self,
        *,
        title: str,
        summary: str,
        keywords: list[str],
        credit_roles: list[str],
        lead_author_id: str,
        abstract: Optional[str] = None,
        timeline: Optional[str] = None,
    ) -> ResearchCall:
        """
        Create an open research call with a fresh slug.

        The Discord announcement is scheduled after the insert and
        cannot fail the operation.
        """
        title = _clean(title)
        summary = _clean(summary)
        lead_author_id = _clean(lead_author_id)
        keywords = _clean_keywords(keywords)

        missing = [
            name for name, value in (
                ("title", title),
                ("summary", summary),
                ("keywords", keywords),
                ("credit_roles", credit_roles),
                ("lead_author_id", lead_author_id),
            ) if not value
        ]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        roles = normalize_role_ids(credit_roles, field="credit_roles")

        call = None
        for attempt in range(1, SLUG_ATTEMPTS + 1):
            slug = generate_slug(title, self._rng)
            try:
                call = await self._calls.create_call(
                    slug=slug,
                    title=title,
                    summary=summary,
                    lead_author_id=lead_author_id,
                    keywords=keywords,
                    credit_roles=roles,
                    abstract=_optional(abstract),
                    timeline=_optional(timeline),
                )
                break
            except SlugTakenError:
                logger.warning(
                    f"Slug collision on '{slug}' (attempt {attempt}/{SLUG_ATTEMPTS})",
                    extra={"user_id": lead_author_id},
                )

        if call is None:
            raise ConflictError("Could not allocate a unique slug, please retry")

        AppMetrics.call_created()
        audit_event("call.create", actor_id=lead_author_id, call_id=call.id, detail=f"slug={call.slug}")
        logger.info(f"Research call created: {call.slug}", extra={"call_id": call.id, "user_id": lead_author_id})

        self._notifier.announce_call(call)
        return call

    async def update_call(self, call_id: str, *, actor_id: str, changes: dict[str, Any]) -> ResearchCall:
        """
        Edit an open call. Only the lead author may edit; the slug never changes.
        """
        unknown = sorted(set(changes) - EDITABLE_CALL_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(unknown)}")

        cleaned = self._clean_call_changes(changes)
        if not cleaned:
            raise ValidationError("No fields to update")

        call = await self._owned_call(call_id, actor_id)
        if not call.is_open:
            raise ConflictError(f"Research call is {call.status.value} and can no longer be edited")

        updated = await self._calls.update_open_call(call.id, cleaned)
        if updated is None:
            raise ConflictError("Research call was closed before the update was applied")

        audit_event("call.update", actor_id=actor_id, call_id=call.id, detail=f"fields={sorted(cleaned)}")
        return updated

    async def close_call(
        self,
        call_id: str,
        *,
        actor_id: str,
        publication_url: Optional[str] = None,
    ) -> ResearchCall:
        """open -> closed, by the lead author only."""
        call = await self._owned_call(call_id, actor_id)
        if not call.is_open:
            raise ConflictError(f"Research call is already {call.status.value}")

        closed = await self._calls.close_call(call.id, _optional(publication_url))
        if closed is None:
            raise ConflictError("Research call is already closed")

        AppMetrics.call_closed()
        audit_event(
            "call.close",
            actor_id=actor_id,
            call_id=call.id,
            detail=f"publication_url={closed.publication_url or '-'}",
        )
        return closed

    # ------------------------------------------------------------------
    # Applications
    # ------------------------------------------------------------------

    async def submit_application(
        self,
        *,
        call_id: str,
        user_id: str,
        roles: list[str],
        motivation: str,
        orcid_id: Optional[str] = None,
    ) -> CoAuthorApplication:
        """
        Apply to an open call.

        Checks run in order and the first failure wins:
            1. required fields, known roles      -> ValidationError
            2. call exists and is open           -> NotFoundError
            3. applicant is not the lead author  -> PermissionDeniedError
            4. no earlier application            -> ConflictError
        """
        call_id = _clean(call_id)
        user_id = _clean(user_id)
        motivation = _clean(motivation)

        if not call_id or not user_id or not roles or not motivation:
            raise ValidationError("Missing required fields")
        roles = normalize_role_ids(roles)

        call = await self._calls.get_call(call_id)
        if call is None or not call.is_open:
            raise NotFoundError(CALL_NOT_FOUND_OR_CLOSED)

        if call.lead_author_id == user_id:
            raise PermissionDeniedError("Lead authors cannot apply to their own research call")

        if await self._applications.find_application(call.id, user_id) is not None:
            AppMetrics.application_conflict()
            raise ConflictError(ALREADY_APPLIED)

        try:
            application = await self._applications.create_application(
                call_id=call.id,
                user_id=user_id,
                roles=roles,
                motivation=motivation,
                orcid_id=_optional(orcid_id),
            )
        except ApplicationAlreadyExistsError:
            # A concurrent submission won the insert
            AppMetrics.application_conflict()
            raise ConflictError(ALREADY_APPLIED)

        AppMetrics.application_submitted()
        audit_event(
            "application.submit",
            actor_id=user_id,
            call_id=call.id,
            application_id=application.id,
            detail=f"roles={roles}",
        )

        await self._notify_lead_author(call, application)
        return application

    async def set_application_status(
        self,
        application_id: str,
        status: str,
        *,
        actor_id: str,
    ) -> ApplicationDetail:
        """
        pending -> accepted | rejected, by the call's lead author only.

        Returns the application joined with the call title and the
        applicant's contact details.
        """
        try:
            target = ApplicationStatus(status)
        except ValueError:
            raise ValidationError("Status must be either accepted or rejected")
        if not target.is_terminal:
            raise ValidationError("Status must be either accepted or rejected")

        application_id = _clean(application_id)
        if not application_id:
            raise ValidationError("Missing required fields")

        application = await self._applications.get_application(application_id)
        if application is None:
            raise NotFoundError("Application not found")

        call = await self._calls.get_call(application.call_id)
        if call is None:
            raise NotFoundError("Research call not found")

        if call.lead_author_id != actor_id:
            raise PermissionDeniedError("Only the lead author can update application status")

        if application.status != ApplicationStatus.PENDING:
            raise ConflictError(f"Application has already been {application.status.value}")

        updated = await self._applications.transition_from_pending(application.id, target)
        if updated is None:
            raise ConflictError("Application has already been decided")

        AppMetrics.application_transition(target.value)
        audit_event(
            f"application.{target.value}",
            actor_id=actor_id,
            call_id=call.id,
            application_id=updated.id,
        )

        applicant = await self._committed_applicant(updated)
        detail = ApplicationDetail(
            application=updated,
            call_title=call.title,
            lead_author_id=call.lead_author_id,
            applicant_username=applicant.username if applicant else None,
            applicant_email=applicant.email if applicant else None,
        )

        if detail.applicant_email:
            message = status_change_email(detail.applicant_email, call.title, target)
            self._notifier.send_email(message.to, message.subject, message.html)
        else:
            logger.warning(
                "Applicant has no email address, skipping status notification",
                extra={"application_id": updated.id, "user_id": updated.user_id},
            )

        return detail

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _owned_call(self, call_id: str, actor_id: str) -> ResearchCall:
        call_id = _clean(call_id)
        if not call_id:
            raise ValidationError("Missing required fields")

        call = await self._calls.get_call(call_id)
        if call is None:
            raise NotFoundError("Research call not found")
        if call.lead_author_id != actor_id:
            raise PermissionDeniedError("Only the lead author can modify this research call")
        return call

    @staticmethod
    def _clean_call_changes(changes: dict[str, Any]) -> dict[str, Any]:
        cleaned: dict[str, Any] = {}
        for name, value in changes.items():
            if value is None:
                continue
            if name in ("title", "summary"):
                value = _clean(value)
                if not value:
                    raise ValidationError(f"{name} must not be empty")
            elif name == "keywords":
                value = _clean_keywords(value)
                if not value:
                    raise ValidationError("keywords must not be empty")
            elif name == "credit_roles":
                value = normalize_role_ids(value, field="credit_roles")
            else:
                # abstract / timeline: blank clears the field
                value = _optional(value)
            cleaned[name] = value
        return cleaned

    async def _committed_applicant(self, application: CoAuthorApplication) -> Optional[User]:
        """Applicant profile for a decided application; lookup failures are logged, not raised."""
        try:
            return await self._users.get_user(application.user_id)
        except Exception:
            logger.warning(
                "Could not load applicant after status change",
                extra={"application_id": application.id, "user_id": application.user_id},
                exc_info=True,
            )
            return None

    async def _notify_lead_author(self, call: ResearchCall, application: CoAuthorApplication) -> None:
        """
        Email the lead author about a new application.

        Runs after the insert is committed, so lookup failures are
        logged and never reach the caller.
        """
        try:
            lead = await self._users.get_user(call.lead_author_id)
            applicant = await self._users.get_user(application.user_id)
        except Exception:
            logger.warning(
                "Could not load users for application notification",
                extra={"application_id": application.id, "call_id": call.id},
                exc_info=True,
            )
            return

        if lead is None or not lead.email:
            logger.warning(
                "Lead author has no email address, skipping application notification",
                extra={"call_id": call.id, "user_id": call.lead_author_id},
            )
            return

        message = new_application_email(
            to=lead.email,
            call_title=call.title,
            applicant_username=applicant.username if applicant else None,
            applicant_email=applicant.email if applicant else None,
            roles=application.roles,
            motivation=application.motivation,
        )
        self._notifier.send_email(message.to, message.subject, message.html)
