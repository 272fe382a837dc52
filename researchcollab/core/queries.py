# researchcollab/core/queries.py
"""
Query Surface: filtered, read-only access to calls and applications.

Lists are ordered newest first (``created_at`` descending).  Slug reads and
application lists carry the joined user profile.  Application lists are
scoped to what the viewer may see: a lead author sees the applications to
their calls, an applicant sees their own.
"""
from __future__ import annotations

from typing import Optional

from researchcollab.core.domain import (
    ApplicationListing,
    ApplicationStatus,
    CallListing,
    CallStatus,
    ResearchCall,
)
from researchcollab.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from researchcollab.core.ports import AsyncApplicationRepository, AsyncCallRepository


def _parse_status(value: Optional[str], enum_cls) -> Optional[str]:
    if not value:
        return None
    try:
        return enum_cls(value).value
    except ValueError:
        allowed = ", ".join(s.value for s in enum_cls)
        raise ValidationError(f"Invalid status '{value}' (expected one of: {allowed})")


class QuerySurface:

    def __init__(self, calls: AsyncCallRepository, applications: AsyncApplicationRepository) -> None:
        self._calls = calls
        self._applications = applications

    async def list_calls(
        self,
        author_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> list[ResearchCall]:
        return await self._calls.list_calls(
            author_id=author_id or None,
            status=_parse_status(status, CallStatus),
        )

    async def get_call(self, call_id: str) -> ResearchCall:
        call = await self._calls.get_call(call_id)
        if call is None:
            raise NotFoundError("Research call not found")
        return call

    async def get_call_by_slug(self, slug: str) -> CallListing:
        """Call page read: the call plus its lead author's username and avatar."""
        listing = await self._calls.get_call_by_slug(slug)
        if listing is None:
            raise NotFoundError("Research call not found")
        return listing

    async def list_applications(
        self,
        *,
        viewer_id: str,
        call_id: Optional[str] = None,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> list[ApplicationListing]:
        """
        Applications filtered by call and/or applicant, each joined with the
        applicant's profile and the call's title and slug.

        At least one of call_id / user_id is required.  The viewer must be
        the applicant named by user_id or the lead author of call_id.
        """
        if not call_id and not user_id:
            raise ValidationError("Either callId or userId is required")

        parsed_status = _parse_status(status, ApplicationStatus)

        allowed = bool(user_id) and user_id == viewer_id
        if not allowed and call_id:
            call = await self._calls.get_call(call_id)
            if call is None:
                raise NotFoundError("Research call not found")
            allowed = call.lead_author_id == viewer_id

        if not allowed:
            raise PermissionDeniedError("You cannot view these applications")

        return await self._applications.list_applications(
            call_id=call_id or None,
            user_id=user_id or None,
            status=parsed_status,
        )
