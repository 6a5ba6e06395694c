"""Slug, short-code and path helpers shared by every graph store.

Every tenant, project, document and folder is addressed by a slug. Requirement
references, ids and markdown paths are all derived from those slugs, so the
derivations live here in one place.
"""

import re
from typing import Optional

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(value: str, fallback: str = "project") -> str:
    """Normalize text into a lowercase, hyphenated slug.

    Args:
        value: Free text (e.g., "Apollo Program")
        fallback: Returned when nothing alphanumeric survives

    Returns:
        str: Slug (e.g., "apollo-program")
    """
    normalized = _NON_ALNUM.sub("-", (value or "").strip().lower()).strip("-")
    return normalized or fallback


def project_ref_token(project_slug: str) -> str:
    """Uppercase project slug with hyphens removed ("apollo-x" -> "APOLLOX")."""
    return project_slug.replace("-", "").upper()


def document_short_code(short_code: Optional[str], slug: str) -> str:
    """Document prefix segment: explicit short code or the uppercased slug."""
    return short_code if short_code else slug.upper()


def section_short_code(short_code: Optional[str], name: str) -> str:
    """Section prefix segment: explicit short code or the uppercased name without spaces."""
    return short_code if short_code else name.replace(" ", "").upper()


def requirement_path(tenant_slug: str, project_slug: str, ref: str) -> str:
    """Markdown mirror path, relative to the workspace root."""
    return f"{tenant_slug}/{project_slug}/requirements/{ref}.md"


def scoped_id(tenant_slug: str, project_slug: str, local_key: str) -> str:
    """Globally unique id of a project-scoped node (``tenant:project:key``)."""
    return f"{tenant_slug}:{project_slug}:{local_key}"


def derive_title(text: str, max_words: int = 8) -> str:
    """Fallback requirement title built from the first words of its text."""
    words = (text or "").split(" ")
    title = " ".join(words[:max_words])
    return f"{title}..." if len(words) > max_words else title
