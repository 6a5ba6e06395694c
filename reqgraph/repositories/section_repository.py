"""Document sections."""

from typing import Optional

from neo4j import AsyncManagedTransaction

from reqgraph.core.exceptions import ConflictError, NotFoundError
from reqgraph.repositories.base_repository import BaseGraphRepository
from reqgraph.repositories.queries import hierarchy as queries
from reqgraph.schemas.hierarchy import SectionCreate, SectionRecord, SectionUpdate
from reqgraph.schemas.requirements import RefChange
from reqgraph.services.cache_invalidation import CacheScope
from reqgraph.services.reference_allocation import ReferenceAllocator
from reqgraph.utils.cypher import execute, fetch_all, fetch_one, with_assignments


class SectionRepository(BaseGraphRepository):
    def __init__(self, *args, allocator: Optional[ReferenceAllocator] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.allocator = allocator or ReferenceAllocator()

    async def create_section(self, data: SectionCreate) -> SectionRecord:
        tenant_slug, project_slug = self._scope(data.tenant, data.project_key)
        now = self.clock.now_iso()
        properties = {
            "id": self.clock.new_id("section"),
            "name": data.name,
            "description": data.description,
            "shortCode": data.short_code,
            "order": data.order,
            "tenant": tenant_slug,
            "projectKey": project_slug,
            "documentSlug": data.document_slug,
            "createdAt": now,
            "updatedAt": now,
        }

        async def work(tx: AsyncManagedTransaction) -> Optional[SectionRecord]:
            row = await fetch_one(tx, queries.CREATE_SECTION, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "documentSlug": data.document_slug,
                "properties": {key: value for key, value in properties.items() if value is not None},
            })
            return SectionRecord.from_neo4j(row["section"]) if row else None

        record = await self._write(work)
        if record is None:
            raise NotFoundError("Document", data.document_slug)
        await self._invalidate(CacheScope.SECTIONS.value, tenant_slug, project_slug, data.document_slug)
        return record

    async def list_sections(self, tenant: str, project_key: str, document_slug: str) -> list[SectionRecord]:
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> list[SectionRecord]:
            rows = await fetch_all(tx, queries.LIST_SECTIONS, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "documentSlug": document_slug,
            })
            return [SectionRecord.from_neo4j(row["section"]) for row in rows]

        return await self._read(work)

    async def get_section(self, tenant: str, project_key: str, section_id: str) -> SectionRecord:
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> Optional[SectionRecord]:
            row = await fetch_one(tx, queries.GET_SECTION, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "sectionId": section_id,
            })
            return SectionRecord.from_neo4j(row["section"]) if row else None

        record = await self._read(work)
        if record is None:
            raise NotFoundError("Section", section_id)
        return record

    async def update_section(
        self,
        tenant: str,
        project_key: str,
        section_id: str,
        updates: SectionUpdate,
    ) -> tuple[SectionRecord, list[RefChange]]:
        """Update a section; a new short code or name re-prefixes its requirements."""
        tenant_slug, project_slug = self._scope(tenant, project_key)
        changes = updates.changes()
        if not changes:
            raise ConflictError("No valid updates provided")
        renumber = "shortCode" in changes or "name" in changes
        now = self.clock.now_iso()

        async def work(tx: AsyncManagedTransaction) -> tuple[Optional[SectionRecord], Optional[str], list[RefChange]]:
            row = await fetch_one(tx, with_assignments(queries.UPDATE_SECTION, "section", changes), {
                **changes,
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "sectionId": section_id,
                "now": now,
            })
            if row is None:
                return None, None, []
            ref_changes: list[RefChange] = []
            if renumber:
                ref_changes = await self.allocator.renumber_section(tx, tenant_slug, project_slug, section_id, now)
            return SectionRecord.from_neo4j(row["section"]), row["documentSlug"], ref_changes

        record, document_slug, ref_changes = await self._write(work)
        if record is None:
            raise NotFoundError("Section", section_id)
        await self._invalidate(CacheScope.SECTIONS.value, tenant_slug, project_slug, document_slug)
        if ref_changes:
            await self._invalidate(CacheScope.REQUIREMENTS.value, tenant_slug, project_slug)
        return record, ref_changes

    async def delete_section(self, tenant: str, project_key: str, section_id: str) -> None:
        """Remove a section; its requirements stay under the document."""
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> int:
            counters = await execute(tx, queries.DELETE_SECTION, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "sectionId": section_id,
            })
            return counters.nodes_deleted

        deleted = await self._write(work)
        if deleted == 0:
            raise NotFoundError("Section", section_id)
        await self._invalidate(CacheScope.SECTIONS.value, tenant_slug, project_slug)
