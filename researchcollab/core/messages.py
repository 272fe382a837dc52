# researchcollab/core/messages.py
"""
Notification copy: email subjects/bodies and the Discord announcement payload.

Pure functions, no I/O.  User-supplied text is HTML-escaped before it is
placed into email bodies.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from html import escape
from typing import Any, Optional

from researchcollab.core.credit_roles import role_names
from researchcollab.core.domain import ResearchCall, ApplicationStatus

ANNOUNCEMENT_CONTENT = "**New Research Collaboration Opportunity**"
ANNOUNCEMENT_COLOR = 3447003  # Blue
ANNOUNCEMENT_FOOTER = "Click the title to apply as a co-author"
ANNOUNCEMENT_MAX_DESCRIPTION = 400
ANNOUNCEMENT_MAX_TITLE = 256  # Discord embed title limit


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str


def call_url(public_base_url: str, slug: str) -> str:
    return f"{public_base_url.rstrip('/')}/calls/{slug}"


def truncate(text: str, limit: int = ANNOUNCEMENT_MAX_DESCRIPTION) -> str:
    """Cut to ``limit`` characters, ending with '...' when shortened."""
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def single_line(text: str) -> str:
    """Collapse runs of whitespace, newlines included, to single spaces."""
    return " ".join(text.split())


# ============================================================================
# EMAIL
# ============================================================================

def new_application_email(
    to: str,
    call_title: str,
    applicant_username: Optional[str],
    applicant_email: Optional[str],
    roles: list[str],
    motivation: str,
) -> EmailMessage:
    """Email to the lead author when someone applies to their call."""
    title = escape(call_title)
    html = (
        "<h1>New Co-Author Application</h1>\n"
        f"<p>You have received a new application for your research call \"{title}\".</p>\n"
        f"<p><strong>Applicant:</strong> {escape(applicant_username or 'Unknown')}</p>\n"
        f"<p><strong>Email:</strong> {escape(applicant_email or 'Not provided')}</p>\n"
        f"<p><strong>Roles Applied For:</strong> {escape(', '.join(role_names(roles)))}</p>\n"
        "<p><strong>Motivation:</strong></p>\n"
        f"<p>{escape(motivation)}</p>\n"
        "<p>Log in to your dashboard to review and respond to this application.</p>\n"
    )
    return EmailMessage(
        to=to,
        subject=f"New Co-Author Application for \"{single_line(call_title)}\"",
        html=html,
    )


def status_change_email(to: str, call_title: str, status: ApplicationStatus) -> EmailMessage:
    """Email to the applicant once the lead author decides."""
    title = escape(call_title)
    subject_title = single_line(call_title)

    if status == ApplicationStatus.ACCEPTED:
        subject = f"Your Application for \"{subject_title}\" Has Been Accepted"
        html = (
            "<h1>Application Accepted</h1>\n"
            "<p>Congratulations! Your application to be a co-author for the research call "
            f"\"{title}\" has been accepted.</p>\n"
            "<p>The lead author will be in touch soon with next steps.</p>\n"
        )
    else:
        subject = f"Update on Your Application for \"{subject_title}\""
        html = (
            "<h1>Application Status Update</h1>\n"
            f"<p>Thank you for your interest in the research call \"{title}\".</p>\n"
            "<p>After careful consideration, the lead author has decided to proceed with other "
            "candidates whose skills better match the current needs of the project.</p>\n"
            "<p>We appreciate your interest and encourage you to apply for future research calls.</p>\n"
        )

    return EmailMessage(to=to, subject=subject, html=html)


# ============================================================================
# DISCORD
# ============================================================================

def call_announcement(
    call: ResearchCall,
    public_base_url: str,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Discord message payload announcing a new research call."""
    timestamp = (now or datetime.now(timezone.utc)).isoformat()
    return {
        "content": ANNOUNCEMENT_CONTENT,
        "embeds": [
            {
                "title": truncate(call.title, ANNOUNCEMENT_MAX_TITLE),
                "description": truncate(call.summary),
                "url": call_url(public_base_url, call.slug),
                "color": ANNOUNCEMENT_COLOR,
                "footer": {"text": ANNOUNCEMENT_FOOTER},
                "timestamp": timestamp,
            }
        ],
    }
