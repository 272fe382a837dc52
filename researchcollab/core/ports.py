# researchcollab/core/ports.py
from __future__ import annotations
from typing import Protocol, Optional, Any
from researchcollab.core.domain import (
    ResearchCall,
    CoAuthorApplication,
    ApplicationStatus,
    ApplicationListing,
    CallListing,
    User,
    DiscordProfile,
)


# ============================================================================
# STORE-LEVEL ERRORS (raised by repositories, translated by the services)
# ============================================================================

class RepositoryError(Exception):
    """Base for repository errors"""
    pass


class SlugTakenError(RepositoryError):
    """Unique constraint on research_calls.slug rejected the insert"""
    pass


class ApplicationAlreadyExistsError(RepositoryError):
    """Unique constraint on (call_id, user_id) rejected the insert"""
    pass


# ============================================================================
# ASYNC PROTOCOLS
# ============================================================================

class AsyncCallRepository(Protocol):
    async def create_call(
        self,
        *,
        slug: str,
        title: str,
        summary: str,
        lead_author_id: str,
        keywords: list[str],
        credit_roles: list[str],
        abstract: Optional[str] = None,
        timeline: Optional[str] = None,
    ) -> ResearchCall:
        """Insert with status=open. Raises SlugTakenError on duplicate slug."""
        ...

    async def get_call(self, call_id: str) -> Optional[ResearchCall]: ...

    async def get_call_by_slug(self, slug: str) -> Optional[CallListing]:
        """Call joined with its lead author's profile."""
        ...

    async def list_calls(
        self, author_id: Optional[str] = None, status: Optional[str] = None
    ) -> list[ResearchCall]:
        """Filtered list, newest first."""
        ...

    async def update_open_call(self, call_id: str, changes: dict[str, Any]) -> Optional[ResearchCall]:
        """
        Apply changes only while status=open.
        None => call missing or no longer open.
        """
        ...

    async def close_call(self, call_id: str, publication_url: Optional[str] = None) -> Optional[ResearchCall]:
        """
        open -> closed.
        None => call missing or no longer open.
        """
        ...


class AsyncApplicationRepository(Protocol):
    async def create_application(
        self,
        *,
        call_id: str,
        user_id: str,
        roles: list[str],
        motivation: str,
        orcid_id: Optional[str] = None,
    ) -> CoAuthorApplication:
        """Insert with status=pending. Raises ApplicationAlreadyExistsError on duplicate pair."""
        ...

    async def get_application(self, application_id: str) -> Optional[CoAuthorApplication]: ...

    async def find_application(self, call_id: str, user_id: str) -> Optional[CoAuthorApplication]: ...

    async def list_applications(
        self,
        call_id: Optional[str] = None,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> list[ApplicationListing]:
        """Filtered list joined with applicant profile and call title/slug, newest first."""
        ...

    async def transition_from_pending(
        self, application_id: str, status: ApplicationStatus
    ) -> Optional[CoAuthorApplication]:
        """
        pending -> status.
        None => application missing or no longer pending.
        """
        ...


class AsyncUserRepository(Protocol):
    async def upsert_discord_user(self, profile: DiscordProfile) -> User: ...

    async def get_user(self, user_id: str) -> Optional[User]: ...


class Notifier(Protocol):
    """
    Best-effort notification contract.

    Both methods return immediately, never raise, never retry.
    """

    def send_email(self, to: str, subject: str, html: str) -> None: ...

    def announce_call(self, call: ResearchCall) -> None: ...
