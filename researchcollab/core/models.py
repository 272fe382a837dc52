# researchcollab/core/models.py
"""
Pydantic request models for the public API.

These live *outside* the transport layer so payloads can be parsed
without depending on FastAPI.  They only check shape and types; the
lifecycle manager owns the business validation (required values,
role catalog membership) so the same rules apply to every caller.
"""
from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from researchcollab.core.domain import ApplicationStatus


def _strip_items(v: list[str] | None) -> list[str] | None:
    if v is None:
        return None
    return [item.strip() for item in v if item and item.strip()]


# ---------------------------------------------------------------------------
# Research calls
# ---------------------------------------------------------------------------

class CreateCallRequest(BaseModel):
    """Create a research call. The lead author is the caller."""

    title: str = Field(default="", max_length=300)
    summary: str = Field(default="", max_length=5000)
    abstract: str | None = Field(default=None, max_length=20000)
    keywords: list[str] = Field(default_factory=list)
    credit_roles: list[str] = Field(default_factory=list)
    timeline: str | None = Field(default=None, max_length=1000)

    @field_validator("keywords", "credit_roles")
    @classmethod
    def strip_list_items(cls, v: list[str]) -> list[str]:
        return _strip_items(v)


class UpdateCallRequest(BaseModel):
    """Edit an open research call (partial). The slug is never editable."""

    title: str | None = Field(default=None, max_length=300)
    summary: str | None = Field(default=None, max_length=5000)
    abstract: str | None = Field(default=None, max_length=20000)
    keywords: list[str] | None = None
    credit_roles: list[str] | None = None
    timeline: str | None = Field(default=None, max_length=1000)

    @field_validator("keywords", "credit_roles")
    @classmethod
    def strip_list_items(cls, v: list[str] | None) -> list[str] | None:
        return _strip_items(v)

    def changes(self) -> dict:
        return self.model_dump(exclude_none=True)


class CloseCallRequest(BaseModel):
    """Close an open call, optionally recording where it was published."""

    publication_url: str | None = Field(default=None, max_length=2000)

    @field_validator("publication_url")
    @classmethod
    def url_must_be_http(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("publication_url must be an http(s) URL")
        return v


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------

class SubmitApplicationRequest(BaseModel):
    """Apply to a research call. The applicant is the caller."""

    call_id: str = ""
    roles: list[str] = Field(default_factory=list)
    motivation: str = Field(default="", max_length=10000)
    orcid_id: str | None = Field(default=None, max_length=64)

    @field_validator("roles")
    @classmethod
    def strip_roles(cls, v: list[str]) -> list[str]:
        return _strip_items(v)


class UpdateApplicationStatusRequest(BaseModel):
    """Accept or reject a pending application."""

    id: str = Field(..., min_length=1)
    status: str = Field(..., min_length=1)

    @field_validator("status")
    @classmethod
    def status_must_be_terminal(cls, v: str) -> str:
        allowed = {ApplicationStatus.ACCEPTED.value, ApplicationStatus.REJECTED.value}
        if v not in allowed:
            raise ValueError(f"status must be one of {sorted(allowed)}")
        return v
