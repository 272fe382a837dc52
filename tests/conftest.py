# tests/conftest.py
"""Pytest configuration and fixtures"""
import asyncio
import itertools
import random
import sys
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from researchcollab.core.domain import (  # noqa: E402
    ApplicationListing,
    ApplicationStatus,
    CallListing,
    CallStatus,
    CoAuthorApplication,
    ResearchCall,
    User,
    UserSummary,
)
from researchcollab.core.lifecycle import LifecycleManager  # noqa: E402
from researchcollab.core.ports import (  # noqa: E402
    ApplicationAlreadyExistsError,
    SlugTakenError,
)
from researchcollab.core.queries import QuerySurface  # noqa: E402
from researchcollab.infra.metrics import get_metrics_collector  # noqa: E402

_EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


class _Clock:
    """Strictly increasing timestamps so 'newest first' is deterministic."""

    def __init__(self):
        self._ticks = itertools.count()

    def now(self) -> datetime:
        return _EPOCH + timedelta(seconds=next(self._ticks))


# ============================================================================
# IN-MEMORY REPOSITORIES
# ============================================================================

def _summary(users, user_id) -> UserSummary | None:
    """Profile join; None when the user is not in the fake user store"""
    user = users.users.get(user_id) if users is not None else None
    if user is None:
        return None
    return UserSummary(id=user.id, username=user.username, email=user.email, avatar_url=user.avatar_url)


class InMemoryCallRepository:
    def __init__(self, clock: _Clock | None = None, users: "InMemoryUserRepository | None" = None):
        self.calls: dict[str, ResearchCall] = {}
        self.taken_slugs: set[str] = set()
        self._clock = clock or _Clock()
        self._users = users

    async def create_call(self, *, slug, title, summary, lead_author_id, keywords,
                          credit_roles, abstract=None, timeline=None):
        if slug in self.taken_slugs or any(c.slug == slug for c in self.calls.values()):
            raise SlugTakenError(slug)
        now = self._clock.now()
        call = ResearchCall(
            id=str(uuid.uuid4()),
            slug=slug,
            title=title,
            summary=summary,
            lead_author_id=lead_author_id,
            keywords=list(keywords),
            credit_roles=list(credit_roles),
            abstract=abstract,
            timeline=timeline,
            status=CallStatus.OPEN,
            created_at=now,
            updated_at=now,
        )
        self.calls[call.id] = call
        return call

    async def get_call(self, call_id):
        return self.calls.get(call_id)

    async def get_call_by_slug(self, slug):
        call = next((c for c in self.calls.values() if c.slug == slug), None)
        if call is None:
            return None
        return CallListing(call=call, lead_author=_summary(self._users, call.lead_author_id))

    async def list_calls(self, author_id=None, status=None):
        found = [
            c for c in self.calls.values()
            if (author_id is None or c.lead_author_id == author_id)
            and (status is None or c.status.value == status)
        ]
        return sorted(found, key=lambda c: c.created_at, reverse=True)

    async def update_open_call(self, call_id, changes):
        call = self.calls.get(call_id)
        if call is None or call.status != CallStatus.OPEN:
            return None
        updated = replace(call, updated_at=self._clock.now(), **changes)
        self.calls[call_id] = updated
        return updated

    async def close_call(self, call_id, publication_url=None):
        call = self.calls.get(call_id)
        if call is None or call.status != CallStatus.OPEN:
            return None
        closed = replace(
            call,
            status=CallStatus.CLOSED,
            publication_url=publication_url or call.publication_url,
            updated_at=self._clock.now(),
        )
        self.calls[call_id] = closed
        return closed


class InMemoryApplicationRepository:
    """
    Enforces the (call_id, user_id) uniqueness at insert time, after
    yielding to the loop, so concurrent submissions race like they do
    against Postgres.
    """

    def __init__(
        self,
        clock: _Clock | None = None,
        calls: InMemoryCallRepository | None = None,
        users: "InMemoryUserRepository | None" = None,
    ):
        self.applications: dict[str, CoAuthorApplication] = {}
        self._clock = clock or _Clock()
        self._calls = calls
        self._users = users

    async def create_application(self, *, call_id, user_id, roles, motivation, orcid_id=None):
        await asyncio.sleep(0)
        if any(a.call_id == call_id and a.user_id == user_id for a in self.applications.values()):
            raise ApplicationAlreadyExistsError(f"{call_id}/{user_id}")
        now = self._clock.now()
        application = CoAuthorApplication(
            id=str(uuid.uuid4()),
            call_id=call_id,
            user_id=user_id,
            roles=list(roles),
            motivation=motivation,
            orcid_id=orcid_id,
            status=ApplicationStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        self.applications[application.id] = application
        return application

    async def get_application(self, application_id):
        return self.applications.get(application_id)

    async def find_application(self, call_id, user_id):
        return next(
            (a for a in self.applications.values() if a.call_id == call_id and a.user_id == user_id),
            None,
        )

    async def list_applications(self, call_id=None, user_id=None, status=None):
        found = [
            a for a in self.applications.values()
            if (call_id is None or a.call_id == call_id)
            and (user_id is None or a.user_id == user_id)
            and (status is None or a.status.value == status)
        ]
        return [self._listing(a) for a in sorted(found, key=lambda a: a.created_at, reverse=True)]

    def _listing(self, application):
        call = self._calls.calls.get(application.call_id) if self._calls is not None else None
        return ApplicationListing(
            application=application,
            call_title=call.title if call else "",
            call_slug=call.slug if call else "",
            applicant=_summary(self._users, application.user_id),
        )

    async def transition_from_pending(self, application_id, status):
        application = self.applications.get(application_id)
        if application is None or application.status != ApplicationStatus.PENDING:
            return None
        updated = replace(application, status=status, updated_at=self._clock.now())
        self.applications[application_id] = updated
        return updated


class InMemoryUserRepository:
    def __init__(self):
        self.users: dict[str, User] = {}

    def add(self, username: str, email: str | None = None) -> User:
        user = User(
            id=str(uuid.uuid4()),
            discord_id=str(random.randint(10**17, 10**18)),
            username=username,
            email=email,
        )
        self.users[user.id] = user
        return user

    async def upsert_discord_user(self, profile):
        existing = next((u for u in self.users.values() if u.discord_id == profile.discord_id), None)
        if existing is not None:
            updated = replace(
                existing,
                username=profile.username,
                email=profile.email,
                avatar_url=profile.avatar_url,
            )
            self.users[existing.id] = updated
            return updated
        user = User(
            id=str(uuid.uuid4()),
            discord_id=profile.discord_id,
            username=profile.username,
            email=profile.email,
            avatar_url=profile.avatar_url,
        )
        self.users[user.id] = user
        return user

    async def get_user(self, user_id):
        return self.users.get(user_id)


class RecordingNotifier:
    """Notifier that records instead of sending"""

    def __init__(self):
        self.emails: list[tuple[str, str, str]] = []
        self.announcements: list[ResearchCall] = []

    def send_email(self, to, subject, html):
        self.emails.append((to, subject, html))

    def announce_call(self, call):
        self.announcements.append(call)


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def reset_metrics():
    """Metrics are process-global; start every test from zero"""
    get_metrics_collector().reset()
    yield


@pytest.fixture
def clock():
    return _Clock()


@pytest.fixture
def call_repo(clock, user_repo):
    return InMemoryCallRepository(clock, user_repo)


@pytest.fixture
def application_repo(clock, call_repo, user_repo):
    return InMemoryApplicationRepository(clock, call_repo, user_repo)


@pytest.fixture
def user_repo():
    return InMemoryUserRepository()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def lead(user_repo):
    return user_repo.add("Ada Lovelace", "ada@example.org")


@pytest.fixture
def applicant(user_repo):
    return user_repo.add("Alan Turing", "alan@example.org")


@pytest.fixture
def manager(call_repo, application_repo, user_repo, notifier):
    return LifecycleManager(
        call_repo, application_repo, user_repo, notifier, rng=random.Random(42)
    )


@pytest.fixture
def queries(call_repo, application_repo):
    return QuerySurface(call_repo, application_repo)


@pytest.fixture
def call_payload():
    """Valid create_call keyword arguments (lead_author_id added by tests)"""
    return {
        "title": "Quantum Error Correction",
        "summary": "Looking for collaborators on surface codes.",
        "keywords": ["quantum", "error correction"],
        "credit_roles": ["methodology", "software"],
    }
