"""Informational entries of a document."""

from typing import Optional

from neo4j import AsyncManagedTransaction

from reqgraph.core.exceptions import ConflictError, NotFoundError
from reqgraph.repositories.base_repository import BaseGraphRepository
from reqgraph.repositories.queries import hierarchy as queries
from reqgraph.schemas.hierarchy import InfoCreate, InfoRecord, InfoUpdate
from reqgraph.services.cache_invalidation import CacheScope
from reqgraph.utils.cypher import execute, fetch_all, fetch_one, with_assignments


class InfoRepository(BaseGraphRepository):
    """Info nodes hang off a document and may also sit in one of its sections.

    Refs are caller-supplied and unique within the project.
    """

    async def create_info(self, data: InfoCreate) -> InfoRecord:
        """Create an info entry.

        Raises:
            ConflictError: The ref is already used by another info in the project
            NotFoundError: The document, or the named section of it, does not exist
        """
        tenant_slug, project_slug = self._scope(data.tenant, data.project_key)
        now = self.clock.now_iso()
        properties = {
            "id": self.clock.new_id("info"),
            "ref": data.ref,
            "tenant": tenant_slug,
            "projectKey": project_slug,
            "documentSlug": data.document_slug,
            "text": data.text,
            "title": data.title,
            "sectionId": data.section_id,
            "order": data.order,
            "createdAt": now,
            "updatedAt": now,
        }

        async def work(tx: AsyncManagedTransaction) -> InfoRecord:
            scope = {"tenantSlug": tenant_slug, "projectSlug": project_slug}
            taken = await fetch_one(tx, queries.INFO_REF_TAKEN, {**scope, "ref": data.ref})
            if taken and taken["taken"]:
                raise ConflictError(f"Info ref already exists: {data.ref}")
            row = await fetch_one(tx, queries.CREATE_INFO, {
                **scope,
                "documentSlug": data.document_slug,
                "sectionId": data.section_id,
                "properties": {key: value for key, value in properties.items() if value is not None},
            })
            if row is None:
                raise NotFoundError("Document", data.document_slug)
            if data.section_id and not row["sectionLinked"]:
                raise NotFoundError("DocumentSection", data.section_id)
            return InfoRecord.from_neo4j(row["info"])

        record = await self._write(work)
        self.logger.info(
            "Info created",
            extra={"tenant": tenant_slug, "project": project_slug, "document": data.document_slug, "ref": data.ref},
        )
        await self._invalidate(CacheScope.INFOS.value, tenant_slug, project_slug, data.document_slug)
        return record

    async def update_info(self, tenant: str, project_key: str, ref: str, updates: InfoUpdate) -> InfoRecord:
        """Update an info entry; changing ``section_id`` moves it between sections."""
        tenant_slug, project_slug = self._scope(tenant, project_key)
        changes = updates.changes()
        if not changes:
            raise ConflictError("No valid updates provided")
        relink = "section_id" in updates.model_fields_set
        now = self.clock.now_iso()

        async def work(tx: AsyncManagedTransaction) -> Optional[InfoRecord]:
            scope = {"tenantSlug": tenant_slug, "projectSlug": project_slug, "ref": ref}
            row = await fetch_one(tx, with_assignments(queries.UPDATE_INFO, "info", changes), {
                **changes,
                **scope,
                "now": now,
            })
            if row is None:
                return None
            if relink:
                linked = await fetch_one(tx, queries.RELINK_INFO_SECTION, {**scope, "sectionId": updates.section_id})
                if updates.section_id and not linked["sectionLinked"]:
                    raise NotFoundError("DocumentSection", updates.section_id)
            return InfoRecord.from_neo4j(row["info"])

        record = await self._write(work)
        if record is None:
            raise NotFoundError("Info", ref)
        await self._invalidate(CacheScope.INFOS.value, tenant_slug, project_slug, record.document_slug)
        return record

    async def delete_info(self, tenant: str, project_key: str, ref: str) -> None:
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> int:
            counters = await execute(tx, queries.DELETE_INFO, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "ref": ref,
            })
            return counters.nodes_deleted

        deleted = await self._write(work)
        if deleted == 0:
            raise NotFoundError("Info", ref)
        await self._invalidate(CacheScope.INFOS.value, tenant_slug, project_slug)

    async def list_document_infos(self, tenant: str, project_key: str, document_slug: str) -> list[InfoRecord]:
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> list[InfoRecord]:
            rows = await fetch_all(tx, queries.LIST_DOCUMENT_INFOS, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "documentSlug": document_slug,
            })
            return [InfoRecord.from_neo4j(row["info"]) for row in rows]

        return await self._read(work)

    async def list_section_infos(self, tenant: str, project_key: str, section_id: str) -> list[InfoRecord]:
        """Infos of a section, by explicit order and then creation time."""
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> list[InfoRecord]:
            rows = await fetch_all(tx, queries.LIST_SECTION_INFOS, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "sectionId": section_id,
            })
            return [InfoRecord.from_neo4j(row["info"]) for row in rows]

        return await self._read(work)
