"""
Reference Allocation Engine

Hands out human-readable requirement references (``CORE-001``,
``URD-USER-014``, ``REQ-APOLLO-003``) inside the caller's write transaction.

Allocation is optimistic-counter-then-verify:
1. Increment the scoped counter (document counter if the requirement lives in
   a document, project counter otherwise). The increment write-locks the
   counter node until commit.
2. Scan the refs (and ids) already issued under the same prefix in the
   project and, if the highest numeric suffix has caught up with the counter,
   continue from ``max + 1`` instead.
3. Write the resolved number back so the counter never lags behind again.

The counter is the fast path; the scan is what guarantees uniqueness.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from neo4j import AsyncManagedTransaction

from reqgraph.core.exceptions import ConflictError, NotFoundError
from reqgraph.repositories.queries import requirements as queries
from reqgraph.schemas.requirements import RefChange
from reqgraph.utils.cypher import execute, fetch_all, fetch_one
from reqgraph.utils.identifiers import (
    document_short_code,
    project_ref_token,
    requirement_path,
    scoped_id,
    section_short_code,
)
from reqgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)

REF_NUMBER_WIDTH = 3

_TRAILING_NUMBER = re.compile(r"^(?P<prefix>.+)-(?P<number>\d+)$")


def compute_prefix(
    project_slug: str,
    document_code: Optional[str] = None,
    section_code: Optional[str] = None,
) -> str:
    """Ref prefix for a requirement's container.

    Args:
        project_slug: Owning project slug
        document_code: Resolved document short code, if the requirement lives in a document
        section_code: Resolved section short code, only used together with a document

    Returns:
        str: ``DOC-SECTION``, ``DOC`` or ``REQ-<PROJECT>``
    """
    if document_code:
        return f"{document_code}-{section_code}" if section_code else document_code
    return f"REQ-{project_ref_token(project_slug)}"


def format_ref(prefix: str, number: int) -> str:
    return f"{prefix}-{number:0{REF_NUMBER_WIDTH}d}"


def numeric_suffixes(prefix: str, refs: Iterable[Optional[str]]) -> list[int]:
    """Numeric suffixes of refs shaped exactly ``<prefix>-<digits>`` (at least three digits)."""
    pattern = re.compile(rf"^{re.escape(prefix)}-(\d{{{REF_NUMBER_WIDTH},}})$")
    suffixes = []
    for ref in refs:
        match = pattern.match(ref or "")
        if match:
            suffixes.append(int(match.group(1)))
    return suffixes


def resolve_ref_number(counter: int, prefix: str, existing_refs: Iterable[Optional[str]]) -> int:
    """Counter value, unless refs already issued under ``prefix`` have reached it."""
    highest = max(numeric_suffixes(prefix, existing_refs), default=None)
    if highest is not None and highest >= counter:
        return highest + 1
    return counter


def split_ref(ref: str) -> Optional[tuple[str, int]]:
    """``("URD-USER", 2)`` for ``URD-USER-002``; None when there is no numeric tail."""
    match = _TRAILING_NUMBER.match(ref or "")
    if not match:
        return None
    return match.group("prefix"), int(match.group("number"))


def swap_prefix(ref: str, new_prefix: str) -> str:
    """Replace everything before the last hyphen, keeping the suffix as written."""
    suffix = ref.rsplit("-", 1)[-1]
    return f"{new_prefix}-{suffix}"


def local_keys_of_ids(ids: Iterable[Optional[str]]) -> list[str]:
    """``CORE-001`` for ``acme:apollo:CORE-001``."""
    return [value.split(":", 2)[-1] for value in ids if value]


def prefix_for_row(project_slug: str, row: dict) -> str:
    """Prefix implied by a row carrying document/section short codes and names."""
    document_code = None
    section_code = None
    if row.get("documentSlug"):
        document_code = document_short_code(row.get("documentShortCode"), row["documentSlug"])
        if row.get("sectionName") is not None or row.get("sectionShortCode"):
            section_code = section_short_code(row.get("sectionShortCode"), row.get("sectionName") or "")
    return compute_prefix(project_slug, document_code, section_code)


@dataclass
class AllocatedRef:
    ref: str
    number: int
    prefix: str
    id: str
    path: str
    document_slug: Optional[str] = None
    section_id: Optional[str] = None


class ReferenceAllocator:
    """Runs allocation and in-place renumbering inside a caller's transaction."""

    async def allocate(
        self,
        tx: AsyncManagedTransaction,
        tenant_slug: str,
        project_slug: str,
        *,
        project_key: str,
        tenant_name: Optional[str] = None,
        document_slug: Optional[str] = None,
        section_id: Optional[str] = None,
        now: str,
    ) -> AllocatedRef:
        """Claim the next ref for a requirement about to be created in ``tx``.

        Raises:
            NotFoundError: The document or section does not exist in the project
        """
        params = {
            "tenantSlug": tenant_slug,
            "tenantName": tenant_name or tenant_slug,
            "projectSlug": project_slug,
            "projectKey": project_key,
            "documentSlug": document_slug,
            "sectionId": section_id,
            "now": now,
        }
        context = await fetch_one(tx, queries.CLAIM_ALLOCATION_COUNTER, params)
        if context is None:
            raise NotFoundError("Project", f"{tenant_slug}/{project_slug}")
        if context.get("requestedDocument") and not context.get("documentSlug"):
            raise NotFoundError("Document", context["requestedDocument"])
        if context.get("documentDeletedAt"):
            raise NotFoundError("Document", context["documentSlug"])
        if section_id and not context.get("sectionId"):
            raise NotFoundError("Section", section_id)

        counter = int(context["counter"])
        prefix = prefix_for_row(project_slug, context)

        issued = await fetch_all(tx, queries.REFS_WITH_PREFIX, {
            "tenantSlug": tenant_slug,
            "projectSlug": project_slug,
            "prefix": prefix,
            "idPrefix": scoped_id(tenant_slug, project_slug, prefix),
        })
        taken = [row["ref"] for row in issued] + local_keys_of_ids(row["id"] for row in issued)
        number = resolve_ref_number(counter, prefix, taken)

        if number != counter:
            LOGGER.warning(
                "Requirement counter behind issued refs, skipping ahead",
                extra={"prefix": prefix, "counter": counter, "number": number},
            )
            sync_query = queries.SYNC_DOCUMENT_COUNTER if context.get("documentSlug") else queries.SYNC_PROJECT_COUNTER
            await execute(tx, sync_query, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "documentSlug": context.get("documentSlug"),
                "number": number,
            })

        ref = format_ref(prefix, number)
        return AllocatedRef(
            ref=ref,
            number=number,
            prefix=prefix,
            id=scoped_id(tenant_slug, project_slug, ref),
            path=requirement_path(tenant_slug, project_slug, ref),
            document_slug=context.get("documentSlug"),
            section_id=context.get("sectionId"),
        )

    async def renumber_document(
        self,
        tx: AsyncManagedTransaction,
        tenant_slug: str,
        project_slug: str,
        document_slug: str,
        now: str,
    ) -> list[RefChange]:
        """Re-prefix every requirement of a document after its short code or name changed."""
        rows = await fetch_all(tx, queries.DOCUMENT_REQUIREMENT_PREFIXES, {
            "tenantSlug": tenant_slug,
            "projectSlug": project_slug,
            "documentSlug": document_slug,
        })
        return await self._apply_prefixes(tx, tenant_slug, project_slug, rows, now)

    async def renumber_section(
        self,
        tx: AsyncManagedTransaction,
        tenant_slug: str,
        project_slug: str,
        section_id: str,
        now: str,
    ) -> list[RefChange]:
        """Re-prefix every requirement of a section after its short code or name changed."""
        rows = await fetch_all(tx, queries.SECTION_REQUIREMENT_PREFIXES, {
            "tenantSlug": tenant_slug,
            "projectSlug": project_slug,
            "sectionId": section_id,
        })
        return await self._apply_prefixes(tx, tenant_slug, project_slug, rows, now)

    async def _apply_prefixes(
        self,
        tx: AsyncManagedTransaction,
        tenant_slug: str,
        project_slug: str,
        rows: list[dict],
        now: str,
    ) -> list[RefChange]:
        changes = plan_prefix_swap(project_slug, rows)
        if not changes:
            return []

        existing = await fetch_all(tx, queries.PROJECT_REFS, {
            "tenantSlug": tenant_slug,
            "projectSlug": project_slug,
        })
        moving = {change.requirement_id for change in changes}
        occupied = {row["ref"] for row in existing if row["id"] not in moving}
        clashes = sorted(change.new_ref for change in changes if change.new_ref in occupied)
        if clashes:
            raise ConflictError(f"Renumbering would reuse existing refs: {', '.join(clashes)}")

        await fetch_all(tx, queries.APPLY_REF_CHANGES, {
            "tenantSlug": tenant_slug,
            "projectSlug": project_slug,
            "changes": [
                {
                    "id": change.requirement_id,
                    "ref": change.new_ref,
                    "path": requirement_path(tenant_slug, project_slug, change.new_ref),
                }
                for change in changes
            ],
            "now": now,
        })
        LOGGER.info(
            "Requirements renumbered",
            extra={"tenant": tenant_slug, "project": project_slug, "count": len(changes)},
        )
        return changes


def plan_prefix_swap(project_slug: str, rows: list[dict]) -> list[RefChange]:
    """Ref changes implied by the current document/section codes, unchanged refs omitted."""
    changes = []
    for row in rows:
        new_ref = swap_prefix(row["ref"], prefix_for_row(project_slug, row))
        if new_ref != row["ref"]:
            changes.append(RefChange(old_ref=row["ref"], new_ref=new_ref, requirement_id=row["id"]))
    return changes
