"""Typed, directed trace links between requirements of one project."""

from typing import Any, Optional

from neo4j import AsyncManagedTransaction

from reqgraph.core.exceptions import NotFoundError, ValidationError
from reqgraph.repositories.base_repository import BaseGraphRepository
from reqgraph.repositories.queries import traceability as queries
from reqgraph.schemas.requirements import RequirementRecord
from reqgraph.schemas.trace import TraceLinkCreate, TraceLinkRecord
from reqgraph.services.cache_invalidation import CacheScope
from reqgraph.utils.cypher import execute, fetch_all, fetch_one


def _endpoint(node: Optional[dict[str, Any]], document_slug: Optional[str]) -> Optional[RequirementRecord]:
    if node is None:
        return None
    record = RequirementRecord.from_neo4j(node)
    if document_slug and not record.document_slug:
        record.document_slug = document_slug
    return record


def _trace_link(row: dict[str, Any]) -> TraceLinkRecord:
    return TraceLinkRecord.from_neo4j(
        row["link"],
        sourceRequirement=_endpoint(row.get("sourceReq"), row.get("sourceDocumentSlug")),
        targetRequirement=_endpoint(row.get("targetReq"), row.get("targetDocumentSlug")),
    )


class TraceLinkRepository(BaseGraphRepository):
    """A link is a TraceLink node plus a LINKS_TO edge carrying the link id."""

    async def create_trace_link(self, data: TraceLinkCreate) -> TraceLinkRecord:
        """Link two requirements of the same project.

        Both endpoints are matched inside the creating statement, so a missing
        endpoint creates nothing.

        Raises:
            NotFoundError: Either requirement is absent from the project
            ValidationError: Source and target are the same requirement
        """
        tenant_slug, project_slug = self._scope(data.tenant, data.project_key)
        if data.source_requirement_id == data.target_requirement_id:
            raise ValidationError("A trace link needs two distinct requirements")
        now = self.clock.now_iso()
        link_id = self.clock.new_id("trace")
        properties = {
            "id": link_id,
            "sourceRequirementId": data.source_requirement_id,
            "targetRequirementId": data.target_requirement_id,
            "linkType": data.link_type,
            "description": data.description,
            "tenant": tenant_slug,
            "projectKey": project_slug,
            "createdAt": now,
            "updatedAt": now,
        }

        async def work(tx: AsyncManagedTransaction) -> Optional[TraceLinkRecord]:
            row = await fetch_one(tx, queries.CREATE_TRACE_LINK, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "sourceRequirementId": data.source_requirement_id,
                "targetRequirementId": data.target_requirement_id,
                "linkType": data.link_type,
                "linkId": link_id,
                "properties": {key: value for key, value in properties.items() if value is not None},
            })
            return _trace_link(row) if row else None

        record = await self._write(work)
        if record is None:
            raise NotFoundError(
                "Requirement",
                f"{data.source_requirement_id} -> {data.target_requirement_id}",
                message="Source or target requirement not found in project",
            )
        self.logger.info(
            "Trace link created",
            extra={"tenant": tenant_slug, "project": project_slug, "link": link_id, "type": record.link_type},
        )
        await self._invalidate(CacheScope.TRACE_LINKS.value, tenant_slug, project_slug)
        return record

    async def list_trace_links(self, tenant: str, project_key: str) -> list[TraceLinkRecord]:
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> list[TraceLinkRecord]:
            rows = await fetch_all(tx, queries.LIST_TRACE_LINKS, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
            })
            return [_trace_link(row) for row in rows]

        return await self._read(work)

    async def list_trace_links_for_requirement(
        self,
        tenant: str,
        project_key: str,
        requirement_id: str,
    ) -> list[TraceLinkRecord]:
        """Links where the requirement is either the source or the target."""
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> list[TraceLinkRecord]:
            rows = await fetch_all(tx, queries.LIST_REQUIREMENT_TRACE_LINKS, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "requirementId": requirement_id,
            })
            return [_trace_link(row) for row in rows]

        return await self._read(work)

    async def delete_trace_link(self, tenant: str, project_key: str, link_id: str) -> None:
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> int:
            counters = await execute(tx, queries.DELETE_TRACE_LINK, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "linkId": link_id,
            })
            return counters.nodes_deleted

        deleted = await self._write(work)
        if deleted == 0:
            raise NotFoundError("TraceLink", link_id)
        await self._invalidate(CacheScope.TRACE_LINKS.value, tenant_slug, project_slug)
