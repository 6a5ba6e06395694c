"""Architecture diagram proposals awaiting review."""

from typing import Optional

from neo4j import AsyncManagedTransaction

from reqgraph.core.exceptions import ConflictError, NotFoundError, ValidationError
from reqgraph.repositories.base_repository import BaseGraphRepository
from reqgraph.repositories.queries import architecture as queries
from reqgraph.schemas.architecture import (
    DiagramCandidateAction,
    DiagramCandidateCreate,
    DiagramCandidateRecord,
    DiagramCandidateUpdate,
    encode_candidate_items,
)
from reqgraph.services.cache_invalidation import CacheScope
from reqgraph.utils.cypher import fetch_all, fetch_one, with_assignments

_TARGETED_ACTIONS = {DiagramCandidateAction.UPDATE.value, DiagramCandidateAction.EXTEND.value}


class DiagramCandidateRepository(BaseGraphRepository):
    """Proposed blocks and connectors for a new or existing diagram.

    Applying an accepted proposal to the diagram is the caller's job; this
    store only keeps the proposal and its review status.
    """

    async def create_diagram_candidate(self, data: DiagramCandidateCreate) -> DiagramCandidateRecord:
        """Store a proposal.

        Raises:
            ValidationError: An update or extend proposal names no diagram
        """
        if data.action in _TARGETED_ACTIONS and not data.diagram_id:
            raise ValidationError(f"A '{data.action}' diagram candidate must name the diagram it changes")
        tenant_slug, project_slug = self._scope(data.tenant, data.project_key)
        now = self.clock.now_iso()
        properties = {
            "id": self.clock.new_id("diagcand"),
            "tenant": tenant_slug,
            "projectKey": project_slug,
            "status": data.status,
            "action": data.action,
            "diagramId": data.diagram_id,
            "diagramName": data.diagram_name,
            "diagramDescription": data.diagram_description,
            "diagramView": data.diagram_view,
            "blocksJson": encode_candidate_items(data.blocks),
            "connectorsJson": encode_candidate_items(data.connectors),
            "reasoning": data.reasoning,
            "prompt": data.prompt,
            "querySessionId": data.query_session_id,
            "createdAt": now,
            "updatedAt": now,
        }

        async def work(tx: AsyncManagedTransaction) -> DiagramCandidateRecord:
            row = await fetch_one(tx, queries.CREATE_DIAGRAM_CANDIDATE, {
                "tenantSlug": tenant_slug,
                "tenantName": data.tenant,
                "projectSlug": project_slug,
                "projectKey": data.project_key,
                "properties": {key: value for key, value in properties.items() if value is not None},
                "now": now,
            })
            return DiagramCandidateRecord.from_node(row["candidate"])

        record = await self._write(work)
        self.logger.info(
            "Diagram candidate created",
            extra={
                "tenant": tenant_slug,
                "project": project_slug,
                "candidate": record.id,
                "blocks": len(record.blocks),
                "connectors": len(record.connectors),
            },
        )
        await self._invalidate(CacheScope.DIAGRAM_CANDIDATES.value, tenant_slug, project_slug)
        return record

    async def list_diagram_candidates(
        self,
        tenant: str,
        project_key: str,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[DiagramCandidateRecord]:
        tenant_slug, project_slug = self._scope(tenant, project_key)
        limit, offset = self._page(limit, offset)

        async def work(tx: AsyncManagedTransaction) -> list[DiagramCandidateRecord]:
            rows = await fetch_all(tx, queries.LIST_DIAGRAM_CANDIDATES, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "limit": limit,
                "offset": offset,
            })
            return [DiagramCandidateRecord.from_node(row["candidate"]) for row in rows]

        return await self._read(work)

    async def get_diagram_candidate(self, tenant: str, project_key: str, candidate_id: str) -> DiagramCandidateRecord:
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> Optional[DiagramCandidateRecord]:
            row = await fetch_one(tx, queries.GET_DIAGRAM_CANDIDATE, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "candidateId": candidate_id,
            })
            return DiagramCandidateRecord.from_node(row["candidate"]) if row else None

        record = await self._read(work)
        if record is None:
            raise NotFoundError("DiagramCandidate", candidate_id)
        return record

    async def update_diagram_candidate(
        self,
        tenant: str,
        project_key: str,
        candidate_id: str,
        updates: DiagramCandidateUpdate,
    ) -> DiagramCandidateRecord:
        tenant_slug, project_slug = self._scope(tenant, project_key)
        changes = updates.property_changes()
        if not changes:
            raise ConflictError("No valid updates provided")
        now = self.clock.now_iso()

        async def work(tx: AsyncManagedTransaction) -> Optional[DiagramCandidateRecord]:
            row = await fetch_one(tx, with_assignments(queries.UPDATE_DIAGRAM_CANDIDATE, "candidate", changes), {
                **changes,
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "candidateId": candidate_id,
                "now": now,
            })
            return DiagramCandidateRecord.from_node(row["candidate"]) if row else None

        record = await self._write(work)
        if record is None:
            raise NotFoundError("DiagramCandidate", candidate_id)
        await self._invalidate(CacheScope.DIAGRAM_CANDIDATES.value, tenant_slug, project_slug)
        return record
