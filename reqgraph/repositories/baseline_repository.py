"""Baseline engine: frozen snapshots of a project's live requirement refs."""

from typing import Optional

from neo4j import AsyncManagedTransaction

from reqgraph.core.exceptions import NotFoundError
from reqgraph.repositories.base_repository import BaseGraphRepository
from reqgraph.repositories.queries import traceability as queries
from reqgraph.schemas.baselines import BaselineCreate, BaselineRecord
from reqgraph.services.cache_invalidation import CacheScope
from reqgraph.services.reference_allocation import format_ref
from reqgraph.utils.cypher import fetch_all, fetch_one
from reqgraph.utils.identifiers import project_ref_token, scoped_id


def baseline_prefix(project_slug: str) -> str:
    return f"BL-{project_ref_token(project_slug)}"


class BaselineRepository(BaseGraphRepository):
    """Baselines are created and read; there is no update path."""

    async def create_baseline(self, data: BaselineCreate) -> BaselineRecord:
        """Snapshot every live requirement of the project under the next ``BL-`` ref.

        The ref list is stored on the baseline itself, alongside SNAPSHOT_OF
        edges, so later requirement edits never change it.
        """
        tenant_slug, project_slug = self._scope(data.tenant, data.project_key)
        now = self.clock.now_iso()

        async def work(tx: AsyncManagedTransaction) -> BaselineRecord:
            snapshot = await fetch_one(tx, queries.CREATE_BASELINE, {
                "tenantSlug": tenant_slug,
                "tenantName": data.tenant,
                "projectSlug": project_slug,
                "projectKey": data.project_key,
                "now": now,
            })
            ref = format_ref(baseline_prefix(project_slug), int(snapshot["counter"]))
            requirements = sorted(snapshot["requirements"], key=lambda item: item["ref"])
            properties = {
                "id": scoped_id(tenant_slug, project_slug, ref),
                "ref": ref,
                "tenant": tenant_slug,
                "projectKey": project_slug,
                "label": data.label,
                "author": data.author,
                "requirementRefs": [item["ref"] for item in requirements],
                "createdAt": now,
            }
            row = await fetch_one(tx, queries.PERSIST_BASELINE, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "properties": {key: value for key, value in properties.items() if value is not None},
                "requirementIds": [item["id"] for item in requirements],
            })
            return BaselineRecord.from_neo4j(row["baseline"])

        record = await self._write(work)
        self.logger.info(
            "Baseline created",
            extra={
                "tenant": tenant_slug,
                "project": project_slug,
                "ref": record.ref,
                "requirements": len(record.requirement_refs),
            },
        )
        await self._invalidate(CacheScope.BASELINES.value, tenant_slug, project_slug)
        return record

    async def list_baselines(self, tenant: str, project_key: str) -> list[BaselineRecord]:
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> list[BaselineRecord]:
            rows = await fetch_all(tx, queries.LIST_BASELINES, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
            })
            return [BaselineRecord.from_neo4j(row["baseline"]) for row in rows]

        return await self._read(work)

    async def get_baseline(self, tenant: str, project_key: str, ref: str) -> BaselineRecord:
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> Optional[BaselineRecord]:
            row = await fetch_one(tx, queries.GET_BASELINE, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "ref": ref,
            })
            return BaselineRecord.from_neo4j(row["baseline"]) if row else None

        record = await self._read(work)
        if record is None:
            raise NotFoundError("Baseline", ref)
        return record
