# researchcollab/core/domain.py
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Optional, Any, Dict


# ============================================================================
# STATUS ENUMS
# ============================================================================

class CallStatus(str, Enum):
    """
    Research call status. New calls start OPEN; OPEN -> CLOSED is the only
    transition the service performs and nothing leaves CLOSED.
    """
    DRAFT = "draft"
    OPEN = "open"
    CLOSED = "closed"
    COMPLETED = "completed"


class ApplicationStatus(str, Enum):
    """Co-author application status. ACCEPTED and REJECTED are terminal."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not ApplicationStatus.PENDING


TERMINAL_APPLICATION_STATUSES = frozenset({ApplicationStatus.ACCEPTED, ApplicationStatus.REJECTED})


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ============================================================================
# RECORDS
# ============================================================================

@dataclass
class User:
    """A Discord-authenticated user."""
    id: str
    discord_id: str
    username: str
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = _iso(self.created_at)
        data["updated_at"] = _iso(self.updated_at)
        return data


@dataclass
class DiscordProfile:
    """User profile as returned by the Discord API (already resolved)."""
    discord_id: str
    username: str
    email: Optional[str] = None
    avatar_url: Optional[str] = None


@dataclass
class ResearchCall:
    """
    A lead author's call for co-authors.

    ``slug`` is assigned once at creation and never changes.
    ``credit_roles`` holds canonical role catalog ids.
    """
    id: str
    slug: str
    title: str
    summary: str
    lead_author_id: str
    keywords: list[str] = field(default_factory=list)
    credit_roles: list[str] = field(default_factory=list)
    abstract: Optional[str] = None
    timeline: Optional[str] = None
    status: CallStatus = CallStatus.OPEN
    publication_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.status == CallStatus.OPEN

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["created_at"] = _iso(self.created_at)
        data["updated_at"] = _iso(self.updated_at)
        return data


@dataclass
class CoAuthorApplication:
    """An applicant's request to join a call. One per (call_id, user_id)."""
    id: str
    call_id: str
    user_id: str
    roles: list[str]
    motivation: str
    orcid_id: Optional[str] = None
    status: ApplicationStatus = ApplicationStatus.PENDING
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["created_at"] = _iso(self.created_at)
        data["updated_at"] = _iso(self.updated_at)
        return data


@dataclass
class ApplicationDetail:
    """Application joined with its call title and applicant contact."""
    application: CoAuthorApplication
    call_title: str
    lead_author_id: str
    applicant_username: Optional[str] = None
    applicant_email: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.application.to_dict()
        data["research_call"] = {
            "title": self.call_title,
            "lead_author_id": self.lead_author_id,
        }
        data["user"] = {
            "username": self.applicant_username,
            "email": self.applicant_email,
        }
        return data


# ============================================================================
# JOINED READ RECORDS
# ============================================================================

@dataclass
class UserSummary:
    """Profile fields joined onto calls and applications."""
    id: str
    username: str
    email: Optional[str] = None
    avatar_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CallListing:
    """
    A call joined with its lead author's public profile.

    The call page is public, so the author's email is not serialized.
    """
    call: ResearchCall
    lead_author: Optional[UserSummary] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.call.to_dict()
        data["lead_author"] = None
        if self.lead_author is not None:
            data["lead_author"] = {
                "id": self.lead_author.id,
                "username": self.lead_author.username,
                "avatar_url": self.lead_author.avatar_url,
            }
        return data


@dataclass
class ApplicationListing:
    """An application joined with its applicant's profile and its call's title/slug."""
    application: CoAuthorApplication
    call_title: str
    call_slug: str
    applicant: Optional[UserSummary] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.application.to_dict()
        data["research_call"] = {"title": self.call_title, "slug": self.call_slug}
        data["user"] = self.applicant.to_dict() if self.applicant is not None else None
        return data
