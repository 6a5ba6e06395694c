"""
Duplicate Ref Repair Service

Resolves requirements of one project that collided on the same ref. The
oldest requirement of each duplicate group keeps the ref; every later one is
moved to the next free number under the same prefix. Refs and ids of deleted
requirements count as taken.

The plan is computed and applied in a single write transaction, so a
concurrent requirement creation cannot reintroduce a duplicate mid-repair.
Markdown mirroring and cache invalidation run after commit.
"""

from typing import Iterable, Optional

from neo4j import AsyncManagedTransaction

from reqgraph.core.exceptions import ValidationError
from reqgraph.repositories.queries import requirements as queries
from reqgraph.repositories.requirement_repository import RequirementRepository
from reqgraph.schemas.requirements import DuplicateGroup, DuplicateRepairResult, RefChange, RequirementRecord
from reqgraph.services.base_service import BaseService
from reqgraph.services.cache_invalidation import CacheScope
from reqgraph.services.reference_allocation import format_ref, local_keys_of_ids, numeric_suffixes, split_ref
from reqgraph.utils.cypher import fetch_all
from reqgraph.utils.identifiers import requirement_path


def plan_group_renumbering(group: DuplicateGroup, taken_refs: set[str]) -> Optional[list[RefChange]]:
    """Ref changes for one duplicate group.

    Args:
        group: Duplicates in keep-first order
        taken_refs: Every ref already in use in the project; new refs are added to it

    Returns:
        Changes for every member after the first, or None when the ref has no
        numeric suffix to continue from
    """
    parts = split_ref(group.ref)
    if parts is None:
        return None
    prefix, number = parts
    floor = max(numeric_suffixes(prefix, taken_refs), default=number)
    changes = []
    for requirement in group.requirements[1:]:
        floor += 1
        new_ref = format_ref(prefix, floor)
        taken_refs.add(new_ref)
        changes.append(RefChange(old_ref=group.ref, new_ref=new_ref, requirement_id=requirement.id))
    return changes


def plan_duplicate_repair(groups: Iterable[DuplicateGroup], taken_refs: Iterable[str]) -> DuplicateRepairResult:
    """Plan every group in order, so later groups never reuse a number handed out earlier."""
    taken = {ref for ref in taken_refs if ref}
    result = DuplicateRepairResult()
    for group in groups:
        changes = plan_group_renumbering(group, taken)
        if changes is None:
            result.unresolved.append(group.ref)
            continue
        result.changes.extend(changes)
    result.fixed = len(result.changes)
    return result


class DuplicateRepairService(BaseService):
    """Detects and repairs duplicate requirement refs in one project."""

    def __init__(self, repository: RequirementRepository):
        super().__init__(repository)

    def validate(self, tenant: str, project_key: str):
        if not project_key:
            raise ValidationError("project_key is required")

    async def run(self, tenant: str, project_key: str) -> DuplicateRepairResult:
        """Repair the project's duplicate refs.

        Returns:
            Count fixed, the ref changes, and any refs that could not be renumbered
        """
        repository = self.repository
        tenant_slug, project_slug = repository._scope(tenant, project_key)
        now = repository.clock.now_iso()
        scope = {"tenantSlug": tenant_slug, "projectSlug": project_slug}

        async def work(tx: AsyncManagedTransaction) -> tuple[DuplicateRepairResult, list[RequirementRecord]]:
            rows = await fetch_all(tx, queries.FIND_DUPLICATE_REFS, scope)
            if not rows:
                return DuplicateRepairResult(), []
            groups = [
                DuplicateGroup(
                    ref=row["ref"],
                    requirements=[RequirementRecord.from_neo4j(node) for node in row["requirements"]],
                )
                for row in rows
            ]
            issued = await fetch_all(tx, queries.PROJECT_REFS, scope)
            taken = [row["ref"] for row in issued] + local_keys_of_ids(row["id"] for row in issued)
            result = plan_duplicate_repair(groups, taken)
            if not result.changes:
                return result, []
            updated = await fetch_all(tx, queries.APPLY_REF_CHANGES, {
                **scope,
                "changes": [
                    {
                        "id": change.requirement_id,
                        "ref": change.new_ref,
                        "path": requirement_path(tenant_slug, project_slug, change.new_ref),
                    }
                    for change in result.changes
                ],
                "now": now,
            })
            return result, [RequirementRecord.from_neo4j(row["requirement"]) for row in updated]

        result, renumbered = await repository._write(work)

        if result.unresolved:
            self.logger.warning(
                "Duplicate refs without a numeric suffix left unchanged",
                extra={"tenant": tenant_slug, "project": project_slug, "refs": result.unresolved},
            )
        if not result.changes:
            return result

        self.logger.info(
            "Duplicate requirement refs repaired",
            extra={"tenant": tenant_slug, "project": project_slug, "fixed": result.fixed},
        )
        for requirement in renumbered:
            await repository.mirror(requirement)
        await repository._invalidate(CacheScope.REQUIREMENTS.value, tenant_slug, project_slug)
        await repository._invalidate(CacheScope.DOCUMENTS.value, tenant_slug, project_slug)
        return result
