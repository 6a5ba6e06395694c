"""Requirement store.

Requirements are created with a freshly allocated ref in the same write
transaction as the counter increment. Reads are project scoped and skip
soft-deleted requirements unless they address one by id.
"""

from typing import Any, Optional

from neo4j import AsyncManagedTransaction

from reqgraph.core.config import settings
from reqgraph.core.exceptions import ConflictError, IntegrityRepairNeeded, NotFoundError
from reqgraph.repositories.base_repository import BaseGraphRepository
from reqgraph.repositories.queries import requirements as queries
from reqgraph.schemas.requirements import (
    DuplicateGroup,
    LinkSuggestion,
    RequirementCreate,
    RequirementRecord,
    RequirementUpdate,
)
from reqgraph.services.cache_invalidation import CacheScope
from reqgraph.services.markdown_mirror import MarkdownWriter
from reqgraph.services.reference_allocation import ReferenceAllocator
from reqgraph.utils.cypher import fetch_all, fetch_one, with_assignments
from reqgraph.utils.identifiers import derive_title


def _requirement(row: dict[str, Any]) -> RequirementRecord:
    return RequirementRecord.from_neo4j(row["requirement"])


class RequirementRepository(BaseGraphRepository):
    """Requirement CRUD, link suggestions and duplicate-ref detection."""

    def __init__(
        self,
        *args,
        allocator: Optional[ReferenceAllocator] = None,
        markdown_writer: Optional[MarkdownWriter] = None,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.allocator = allocator or ReferenceAllocator()
        self.markdown_writer = markdown_writer

    async def mirror(self, requirement: RequirementRecord) -> None:
        """Write the markdown mirror of a committed requirement; failures are logged only."""
        if self.markdown_writer is None:
            return
        try:
            await self.markdown_writer(requirement)
        except Exception as e:
            self.logger.warning(
                f"Markdown mirror failed: {str(e)}",
                exc_info=True,
                extra={"ref": requirement.ref, "path": requirement.path},
            )

    async def create_requirement(self, data: RequirementCreate) -> RequirementRecord:
        """Create a requirement under the project, a document or a document section.

        The tenant and project are created on first use.

        Raises:
            NotFoundError: The requested document or section does not exist
        """
        tenant_slug, project_slug = self._scope(data.tenant, data.project_key)
        now = self.clock.now_iso()
        hash_id = self.clock.new_hash_id()

        async def work(tx: AsyncManagedTransaction) -> RequirementRecord:
            allocated = await self.allocator.allocate(
                tx,
                tenant_slug,
                project_slug,
                project_key=data.project_key,
                tenant_name=data.tenant,
                document_slug=data.document_slug,
                section_id=data.section_id,
                now=now,
            )
            properties = {
                "id": allocated.id,
                "hashId": hash_id,
                "ref": allocated.ref,
                "tenant": tenant_slug,
                "projectKey": project_slug,
                "title": data.title if data.title and data.title.strip() else derive_title(data.text),
                "text": data.text,
                "pattern": data.pattern,
                "verification": data.verification,
                "qaScore": data.qa_score,
                "qaVerdict": data.qa_verdict,
                "suggestions": list(data.suggestions),
                "tags": list(data.tags),
                "path": allocated.path,
                "documentSlug": allocated.document_slug,
                "sectionId": allocated.section_id,
                "deleted": False,
                "createdAt": now,
                "updatedAt": now,
            }
            row = await fetch_one(tx, queries.CREATE_REQUIREMENT, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "documentSlug": allocated.document_slug,
                "sectionId": allocated.section_id,
                "properties": {key: value for key, value in properties.items() if value is not None},
            })
            return _requirement(row)

        record = await self._write(work)
        self.logger.info(
            "Requirement created",
            extra={"tenant": tenant_slug, "project": project_slug, "ref": record.ref},
        )
        await self.mirror(record)
        await self._invalidate(CacheScope.REQUIREMENTS.value, tenant_slug, project_slug, record.document_slug)
        return record

    async def get_requirement(self, tenant: str, project_key: str, ref: str) -> RequirementRecord:
        """Resolve a ref within the project; a live requirement wins over a deleted one."""
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> Optional[RequirementRecord]:
            row = await fetch_one(tx, queries.GET_REQUIREMENT, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "ref": ref,
            })
            return _requirement(row) if row else None

        record = await self._read(work)
        if record is None:
            raise NotFoundError("Requirement", ref)
        return record

    async def get_requirement_by_id(self, tenant: str, project_key: str, requirement_id: str) -> RequirementRecord:
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> Optional[RequirementRecord]:
            row = await fetch_one(tx, queries.GET_REQUIREMENT_BY_ID, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "requirementId": requirement_id,
            })
            return _requirement(row) if row else None

        record = await self._read(work)
        if record is None:
            raise NotFoundError("Requirement", requirement_id)
        return record

    async def list_requirements(
        self,
        tenant: str,
        project_key: str,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[RequirementRecord]:
        tenant_slug, project_slug = self._scope(tenant, project_key)
        limit, offset = self._page(limit, offset)

        async def work(tx: AsyncManagedTransaction) -> list[RequirementRecord]:
            rows = await fetch_all(tx, queries.LIST_REQUIREMENTS, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "limit": limit,
                "offset": offset,
            })
            return [_requirement(row) for row in rows]

        return await self._read(work)

    async def count_requirements(self, tenant: str, project_key: str) -> int:
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> int:
            row = await fetch_one(tx, queries.COUNT_REQUIREMENTS, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
            })
            return int(row["total"]) if row else 0

        return await self._read(work)

    async def list_document_requirements(
        self,
        tenant: str,
        project_key: str,
        document_slug: str,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[RequirementRecord]:
        tenant_slug, project_slug = self._scope(tenant, project_key)
        limit, offset = self._page(limit, offset)

        async def work(tx: AsyncManagedTransaction) -> list[RequirementRecord]:
            rows = await fetch_all(tx, queries.LIST_DOCUMENT_REQUIREMENTS, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "documentSlug": document_slug,
                "limit": limit,
                "offset": offset,
            })
            return [_requirement(row) for row in rows]

        return await self._read(work)

    async def list_section_requirements(self, tenant: str, project_key: str, section_id: str) -> list[RequirementRecord]:
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> list[RequirementRecord]:
            rows = await fetch_all(tx, queries.LIST_SECTION_REQUIREMENTS, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "sectionId": section_id,
            })
            return [_requirement(row) for row in rows]

        return await self._read(work)

    async def touch_requirement(self, tenant: str, project_key: str, ref: str) -> RequirementRecord:
        """Bump ``updatedAt`` only."""
        tenant_slug, project_slug = self._scope(tenant, project_key)
        now = self.clock.now_iso()

        async def work(tx: AsyncManagedTransaction) -> Optional[RequirementRecord]:
            row = await fetch_one(tx, queries.TOUCH_REQUIREMENT, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "ref": ref,
                "now": now,
            })
            return _requirement(row) if row else None

        record = await self._write(work)
        if record is None:
            raise NotFoundError("Requirement", ref)
        await self._invalidate(CacheScope.REQUIREMENTS.value, tenant_slug, project_slug, record.document_slug)
        return record

    async def update_requirement(
        self,
        tenant: str,
        project_key: str,
        requirement_id: str,
        updates: RequirementUpdate,
    ) -> RequirementRecord:
        tenant_slug, project_slug = self._scope(tenant, project_key)
        changes = updates.changes()
        if not changes:
            raise ConflictError("No valid updates provided")
        now = self.clock.now_iso()

        async def work(tx: AsyncManagedTransaction) -> Optional[RequirementRecord]:
            row = await fetch_one(tx, with_assignments(queries.UPDATE_REQUIREMENT, "requirement", changes), {
                **changes,
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "requirementId": requirement_id,
                "now": now,
            })
            return _requirement(row) if row else None

        record = await self._write(work)
        if record is None:
            raise NotFoundError("Requirement", requirement_id)
        await self.mirror(record)
        await self._invalidate(CacheScope.REQUIREMENTS.value, tenant_slug, project_slug, record.document_slug)
        return record

    async def soft_delete_requirement(self, tenant: str, project_key: str, requirement_id: str) -> RequirementRecord:
        """Mark a requirement deleted; its ref stays reserved."""
        return await self._set_deleted(queries.SOFT_DELETE_REQUIREMENT, tenant, project_key, requirement_id)

    async def restore_requirement(self, tenant: str, project_key: str, requirement_id: str) -> RequirementRecord:
        return await self._set_deleted(queries.RESTORE_REQUIREMENT, tenant, project_key, requirement_id)

    async def _set_deleted(self, query: str, tenant: str, project_key: str, requirement_id: str) -> RequirementRecord:
        tenant_slug, project_slug = self._scope(tenant, project_key)
        now = self.clock.now_iso()

        async def work(tx: AsyncManagedTransaction) -> Optional[RequirementRecord]:
            row = await fetch_one(tx, query, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "requirementId": requirement_id,
                "now": now,
            })
            return _requirement(row) if row else None

        record = await self._write(work)
        if record is None:
            raise NotFoundError("Requirement", requirement_id)
        await self._invalidate(CacheScope.REQUIREMENTS.value, tenant_slug, project_slug, record.document_slug)
        return record

    async def suggest_links(
        self,
        tenant: str,
        project_key: str,
        text: str,
        limit: Optional[int] = None,
    ) -> list[LinkSuggestion]:
        """Requirements whose text contains the first word of ``text`` (case-insensitive)."""
        tenant_slug, project_slug = self._scope(tenant, project_key)
        tokens = (text or "").split()
        if not tokens:
            return []
        limit = settings.pagination.suggest_default_limit if limit is None else limit
        limit, _ = self._page(limit, 0)

        async def work(tx: AsyncManagedTransaction) -> list[LinkSuggestion]:
            rows = await fetch_all(tx, queries.SUGGEST_LINKS, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "needle": tokens[0].lower(),
                "limit": limit,
            })
            return [
                LinkSuggestion(
                    ref=row["ref"],
                    title=row["title"] or derive_title(row["text"] or ""),
                    path=row["path"],
                )
                for row in rows
            ]

        return await self._read(work)

    async def find_duplicate_refs(self, tenant: str, project_key: str) -> list[DuplicateGroup]:
        """Live requirements sharing a ref, oldest first within each group."""
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> list[DuplicateGroup]:
            rows = await fetch_all(tx, queries.FIND_DUPLICATE_REFS, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
            })
            return [
                DuplicateGroup(
                    ref=row["ref"],
                    requirements=[RequirementRecord.from_neo4j(node) for node in row["requirements"]],
                )
                for row in rows
            ]

        return await self._read(work)

    async def check_ref_integrity(self, tenant: str, project_key: str) -> None:
        """Raise IntegrityRepairNeeded when the project has duplicate refs."""
        duplicates = await self.find_duplicate_refs(tenant, project_key)
        if duplicates:
            refs = ", ".join(group.ref for group in duplicates)
            self.logger.warning(
                "Duplicate requirement refs detected",
                extra={"tenant": tenant, "project": project_key, "refs": refs},
            )
            raise IntegrityRepairNeeded(f"Duplicate requirement refs: {refs}", duplicates=duplicates)
