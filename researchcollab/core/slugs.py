# researchcollab/core/slugs.py
from __future__ import annotations

import random
import re

_STRIP_RE = re.compile(r"[^\w\s-]", re.ASCII)
_SEPARATORS_RE = re.compile(r"[\s_-]+", re.ASCII)

SUFFIX_RANGE = 1000


def slugify(text: str) -> str:
    """
    Lower-case, drop punctuation, collapse whitespace/underscore/hyphen
    runs into one hyphen, trim hyphens at the ends.

    Example: ``slugify("  Graph Neural Networks: for Drug_Discovery! ")``
    → ``"graph-neural-networks-for-drug-discovery"``
    """
    slug = text.lower().strip()
    slug = _STRIP_RE.sub("", slug)
    slug = _SEPARATORS_RE.sub("-", slug)
    return slug.strip("-")


def generate_slug(title: str, rng: random.Random | None = None) -> str:
    """
    Build a call slug from its title plus a random suffix in [0, 1000).

    No uniqueness check happens here; the store rejects duplicates.
    Pass a seeded ``random.Random`` for a reproducible suffix.
    """
    suffix = (rng or random).randrange(SUFFIX_RANGE)
    base = slugify(title)
    if not base:
        return str(suffix)
    return f"{base}-{suffix}"
