"""Requirement candidates proposed by the drafting pipeline."""

from typing import Optional

from neo4j import AsyncManagedTransaction

from reqgraph.core.exceptions import ConflictError, NotFoundError, ValidationError
from reqgraph.repositories.base_repository import BaseGraphRepository
from reqgraph.repositories.queries import requirements as queries
from reqgraph.schemas.requirements import CandidateCreate, CandidateRecord, CandidateStatus, CandidateUpdate
from reqgraph.services.cache_invalidation import CacheScope
from reqgraph.utils.cypher import fetch_all, fetch_one, with_assignments


class CandidateRepository(BaseGraphRepository):
    """Candidates are pending suggestions; promotion to a requirement happens elsewhere."""

    async def create_candidates(self, inputs: list[CandidateCreate]) -> list[CandidateRecord]:
        """Create a batch of pending candidates in one transaction.

        Args:
            inputs: Candidates, possibly spanning several projects

        Returns:
            Created candidates in input order
        """
        if not inputs:
            return []
        now = self.clock.now_iso()
        rows = []
        scopes = set()
        for item in inputs:
            tenant_slug, project_slug = self._scope(item.tenant, item.project_key)
            scopes.add((tenant_slug, project_slug))
            properties = {
                "id": self.clock.new_id("cand"),
                "tenant": tenant_slug,
                "projectKey": project_slug,
                "text": item.text,
                "status": CandidateStatus.PENDING.value,
                "qaScore": item.qa_score,
                "qaVerdict": item.qa_verdict,
                "suggestions": list(item.suggestions),
                "prompt": item.prompt,
                "source": item.source,
                "querySessionId": item.query_session_id,
                "createdAt": now,
                "updatedAt": now,
            }
            rows.append({
                "tenant": tenant_slug,
                "tenantName": item.tenant,
                "projectKey": project_slug,
                "projectName": item.project_key,
                "createdAt": now,
                "properties": {key: value for key, value in properties.items() if value is not None},
            })

        async def work(tx: AsyncManagedTransaction) -> list[CandidateRecord]:
            created = await fetch_all(tx, queries.CREATE_CANDIDATES, {"rows": rows})
            return [CandidateRecord.from_neo4j(row["candidate"]) for row in created]

        records = await self._write(work)
        self.logger.info("Requirement candidates created", extra={"count": len(records)})
        for tenant_slug, project_slug in sorted(scopes):
            await self._invalidate(CacheScope.CANDIDATES.value, tenant_slug, project_slug)
        return records

    async def list_candidates(
        self,
        tenant: str,
        project_key: str,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[CandidateRecord]:
        tenant_slug, project_slug = self._scope(tenant, project_key)
        limit, offset = self._page(limit, offset)

        async def work(tx: AsyncManagedTransaction) -> list[CandidateRecord]:
            rows = await fetch_all(tx, queries.LIST_CANDIDATES, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "limit": limit,
                "offset": offset,
            })
            return [CandidateRecord.from_neo4j(row["candidate"]) for row in rows]

        return await self._read(work)

    async def get_candidate(self, tenant: str, project_key: str, candidate_id: str) -> CandidateRecord:
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> Optional[CandidateRecord]:
            row = await fetch_one(tx, queries.GET_CANDIDATE, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "candidateId": candidate_id,
            })
            return CandidateRecord.from_neo4j(row["candidate"]) if row else None

        record = await self._read(work)
        if record is None:
            raise NotFoundError("Candidate", candidate_id)
        return record

    async def update_candidate(
        self,
        tenant: str,
        project_key: str,
        candidate_id: str,
        updates: CandidateUpdate,
    ) -> CandidateRecord:
        """Apply field changes; accepting a candidate requires the promoted requirement."""
        tenant_slug, project_slug = self._scope(tenant, project_key)
        changes = updates.changes()
        if not changes:
            raise ConflictError("No valid updates provided")
        if changes.get("status") == CandidateStatus.ACCEPTED.value and not (
            changes.get("requirementId") or changes.get("requirementRef")
        ):
            raise ValidationError("Accepted candidates must reference the created requirement")
        now = self.clock.now_iso()

        async def work(tx: AsyncManagedTransaction) -> Optional[CandidateRecord]:
            row = await fetch_one(tx, with_assignments(queries.UPDATE_CANDIDATE, "candidate", changes), {
                **changes,
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "candidateId": candidate_id,
                "now": now,
            })
            return CandidateRecord.from_neo4j(row["candidate"]) if row else None

        record = await self._write(work)
        if record is None:
            raise NotFoundError("Candidate", candidate_id)
        await self._invalidate(CacheScope.CANDIDATES.value, tenant_slug, project_slug)
        return record
