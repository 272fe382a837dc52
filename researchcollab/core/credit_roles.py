# researchcollab/core/credit_roles.py
"""
CRediT (Contributor Roles Taxonomy) catalog.

One canonical, immutable table of contributor roles based on
https://credit.niso.org/.  Calls list the roles they need, applications
list the roles the applicant offers; both are validated here.

Older records used the short writing ids (``writing_original``,
``writing_review``).  They are accepted on input and normalized to the
canonical ids.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from researchcollab.core.errors import ValidationError


class RoleCategory(str, Enum):
    CONCEPTUALIZATION = "conceptualization"
    EXECUTION = "execution"
    WRITING = "writing"
    SUPPORT = "support"


@dataclass(frozen=True)
class CreditRole:
    id: str
    name: str
    description: str
    category: RoleCategory

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category.value,
        }


# ============================================================================
# CATALOG
# ============================================================================

CREDIT_ROLES: tuple[CreditRole, ...] = (
    CreditRole(
        "conceptualization", "Conceptualization",
        "Ideas; formulation or evolution of overarching research goals and aims.",
        RoleCategory.CONCEPTUALIZATION,
    ),
    CreditRole(
        "methodology", "Methodology",
        "Development or design of methodology; creation of models.",
        RoleCategory.CONCEPTUALIZATION,
    ),
    CreditRole(
        "software", "Software",
        "Programming, software development; designing computer programs; implementation "
        "of the computer code and supporting algorithms; testing of existing code components.",
        RoleCategory.EXECUTION,
    ),
    CreditRole(
        "validation", "Validation",
        "Verification, whether as a part of the activity or separate, of the overall "
        "replication/reproducibility of results/experiments and other research outputs.",
        RoleCategory.EXECUTION,
    ),
    CreditRole(
        "formal_analysis", "Formal Analysis",
        "Application of statistical, mathematical, computational, or other formal "
        "techniques to analyze or synthesize study data.",
        RoleCategory.EXECUTION,
    ),
    CreditRole(
        "investigation", "Investigation",
        "Conducting a research and investigation process, specifically performing the "
        "experiments, or data/evidence collection.",
        RoleCategory.EXECUTION,
    ),
    CreditRole(
        "resources", "Resources",
        "Provision of study materials, reagents, materials, patients, laboratory samples, "
        "animals, instrumentation, computing resources, or other analysis tools.",
        RoleCategory.SUPPORT,
    ),
    CreditRole(
        "data_curation", "Data Curation",
        "Management activities to annotate (produce metadata), scrub data and maintain "
        "research data (including software code, where it is necessary for interpreting "
        "the data itself) for initial use and later re-use.",
        RoleCategory.EXECUTION,
    ),
    CreditRole(
        "writing_original_draft", "Writing - Original Draft",
        "Preparation, creation and/or presentation of the published work, specifically "
        "writing the initial draft (including substantive translation).",
        RoleCategory.WRITING,
    ),
    CreditRole(
        "writing_review_editing", "Writing - Review & Editing",
        "Preparation, creation and/or presentation of the published work by those from the "
        "original research group, specifically critical review, commentary or revision, "
        "including pre- or post-publication stages.",
        RoleCategory.WRITING,
    ),
    CreditRole(
        "visualization", "Visualization",
        "Preparation, creation and/or presentation of the published work, specifically "
        "visualization/data presentation.",
        RoleCategory.WRITING,
    ),
    CreditRole(
        "supervision", "Supervision",
        "Oversight and leadership responsibility for the research activity planning and "
        "execution, including mentorship external to the core team.",
        RoleCategory.SUPPORT,
    ),
    CreditRole(
        "project_administration", "Project Administration",
        "Management and coordination responsibility for the research activity planning "
        "and execution.",
        RoleCategory.SUPPORT,
    ),
    CreditRole(
        "funding_acquisition", "Funding Acquisition",
        "Acquisition of the financial support for the project leading to this publication.",
        RoleCategory.SUPPORT,
    ),
)

_BY_ID: dict[str, CreditRole] = {role.id: role for role in CREDIT_ROLES}

# Legacy ids -> canonical ids
ROLE_ALIASES: dict[str, str] = {
    "writing_original": "writing_original_draft",
    "writing_review": "writing_review_editing",
}


# ============================================================================
# LOOKUP / VALIDATION
# ============================================================================

def canonical_role_id(role_id: str) -> str:
    return ROLE_ALIASES.get(role_id, role_id)


def is_valid_role(role_id: str) -> bool:
    """True if role_id (or its legacy alias) is in the catalog."""
    return canonical_role_id(role_id) in _BY_ID


def get_role(role_id: str) -> Optional[CreditRole]:
    return _BY_ID.get(canonical_role_id(role_id))


def list_roles(category: str | None = None) -> list[CreditRole]:
    if category is None:
        return list(CREDIT_ROLES)
    return [r for r in CREDIT_ROLES if r.category.value == category]


def role_names(role_ids: Iterable[str]) -> list[str]:
    """Display names for role ids; unknown ids are shown as-is."""
    names = []
    for role_id in role_ids:
        role = get_role(role_id)
        names.append(role.name if role else role_id)
    return names


def normalize_role_ids(role_ids: Iterable[str], field: str = "roles") -> list[str]:
    """
    Validate role ids against the catalog.

    Returns canonical ids, de-duplicated, in first-seen order.

    Raises:
        ValidationError: list is empty or contains unknown ids
    """
    normalized: list[str] = []
    unknown: list[str] = []

    for raw in role_ids:
        role_id = canonical_role_id(str(raw).strip())
        if role_id not in _BY_ID:
            unknown.append(str(raw))
        elif role_id not in normalized:
            normalized.append(role_id)

    if unknown:
        raise ValidationError(f"Unknown {field}: {', '.join(unknown)}")
    if not normalized:
        raise ValidationError(f"At least one of {field} is required")

    return normalized
