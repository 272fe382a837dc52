# researchcollab/core/__init__.py
"""
Core -- transport-agnostic domain logic.

This package contains the domain records, the CRediT role catalog, slug
generation, notification copy, repository protocols (ports), and the
two application services: the lifecycle manager (writes) and the query
surface (reads).

Canonical imports:
    from researchcollab.core import LifecycleManager, QuerySurface
    from researchcollab.core.domain import ResearchCall, CoAuthorApplication
    from researchcollab.core.ports import AsyncCallRepository
"""
from researchcollab.core.domain import (  # noqa: F401
    CallStatus,
    ApplicationStatus,
    User,
    DiscordProfile,
    ResearchCall,
    CoAuthorApplication,
    ApplicationDetail,
    UserSummary,
    CallListing,
    ApplicationListing,
)
from researchcollab.core.errors import (  # noqa: F401
    CollabError,
    ValidationError,
    AuthenticationError,
    PermissionDeniedError,
    NotFoundError,
    ConflictError,
    ConfigurationError,
    DispatchError,
)
from researchcollab.core.ports import (  # noqa: F401
    AsyncCallRepository,
    AsyncApplicationRepository,
    AsyncUserRepository,
    Notifier,
    SlugTakenError,
    ApplicationAlreadyExistsError,
)
from researchcollab.core.credit_roles import is_valid_role, get_role, list_roles  # noqa: F401
from researchcollab.core.slugs import generate_slug  # noqa: F401
from researchcollab.core.lifecycle import LifecycleManager  # noqa: F401
from researchcollab.core.queries import QuerySurface  # noqa: F401
