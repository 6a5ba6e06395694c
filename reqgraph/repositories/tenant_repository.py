"""Tenant and project administration."""

from typing import Optional

from neo4j import AsyncManagedTransaction

from reqgraph.core.exceptions import ConflictError, NotFoundError
from reqgraph.repositories.base_repository import BaseGraphRepository
from reqgraph.repositories.queries import hierarchy as queries
from reqgraph.schemas.hierarchy import ProjectRecord, TenantRecord
from reqgraph.services.cache_invalidation import CacheScope
from reqgraph.utils.cypher import execute, fetch_all, fetch_one
from reqgraph.utils.identifiers import slugify


class TenantRepository(BaseGraphRepository):
    """Tenants own projects through OWNS; both are keyed by slug."""

    async def list_tenants(self) -> list[TenantRecord]:
        async def work(tx: AsyncManagedTransaction) -> list[TenantRecord]:
            rows = await fetch_all(tx, queries.LIST_TENANTS, {})
            return [TenantRecord.from_neo4j(row["tenant"], projectCount=row["projectCount"]) for row in rows]

        return await self._read(work)

    async def get_tenant(self, tenant: str) -> TenantRecord:
        tenant_slug = slugify(tenant)

        async def work(tx: AsyncManagedTransaction) -> Optional[TenantRecord]:
            row = await fetch_one(tx, queries.GET_TENANT, {"tenantSlug": tenant_slug})
            return TenantRecord.from_neo4j(row["tenant"], projectCount=row["projectCount"]) if row else None

        record = await self._read(work)
        if record is None:
            raise NotFoundError("Tenant", tenant_slug)
        return record

    async def create_tenant(self, tenant: str, name: Optional[str] = None) -> TenantRecord:
        """Explicit admin create; an existing slug is a conflict."""
        tenant_slug = slugify(tenant)
        now = self.clock.now_iso()

        async def work(tx: AsyncManagedTransaction) -> TenantRecord:
            existing = await fetch_one(tx, queries.TENANT_EXISTS, {"tenantSlug": tenant_slug})
            if existing and existing["exists"]:
                raise ConflictError(f"Tenant already exists: {tenant_slug}")
            row = await fetch_one(tx, queries.CREATE_TENANT, {
                "tenantSlug": tenant_slug,
                "name": name or tenant,
                "now": now,
            })
            return TenantRecord.from_neo4j(row["tenant"])

        record = await self._write(work)
        self.logger.info("Tenant created", extra={"tenant": tenant_slug})
        await self._invalidate(CacheScope.TENANTS.value, tenant_slug)
        return record

    async def upsert_tenant(self, tenant: str, name: Optional[str] = None) -> TenantRecord:
        """Create on first use; an existing tenant is returned untouched."""
        tenant_slug = slugify(tenant)
        now = self.clock.now_iso()

        async def work(tx: AsyncManagedTransaction) -> TenantRecord:
            row = await fetch_one(tx, queries.UPSERT_TENANT, {
                "tenantSlug": tenant_slug,
                "name": name or tenant,
                "now": now,
            })
            return TenantRecord.from_neo4j(row["tenant"])

        record = await self._write(work)
        await self._invalidate(CacheScope.TENANTS.value, tenant_slug)
        return record

    async def delete_tenant(self, tenant: str) -> int:
        """Remove the tenant and every node scoped to it. Returns the node count."""
        tenant_slug = slugify(tenant)

        async def work(tx: AsyncManagedTransaction) -> int:
            counters = await execute(tx, queries.DELETE_TENANT, {"tenantSlug": tenant_slug})
            return counters.nodes_deleted

        deleted = await self._write(work)
        if deleted == 0:
            raise NotFoundError("Tenant", tenant_slug)
        self.logger.warning("Tenant deleted", extra={"tenant": tenant_slug, "nodes_deleted": deleted})
        await self._invalidate(CacheScope.TENANTS.value, tenant_slug)
        return deleted

    async def list_projects(self, tenant: str) -> list[ProjectRecord]:
        tenant_slug = slugify(tenant)

        async def work(tx: AsyncManagedTransaction) -> list[ProjectRecord]:
            rows = await fetch_all(tx, queries.LIST_PROJECTS, {"tenantSlug": tenant_slug})
            return [
                ProjectRecord.from_neo4j(row["project"], requirementCount=row["requirementCount"])
                for row in rows
            ]

        return await self._read(work)

    async def get_project(self, tenant: str, project_key: str) -> ProjectRecord:
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> Optional[ProjectRecord]:
            row = await fetch_one(tx, queries.GET_PROJECT, {"tenantSlug": tenant_slug, "projectSlug": project_slug})
            if row is None:
                return None
            return ProjectRecord.from_neo4j(row["project"], requirementCount=row["requirementCount"])

        record = await self._read(work)
        if record is None:
            raise NotFoundError("Project", f"{tenant_slug}/{project_slug}")
        return record

    async def create_project(self, tenant: str, project_key: str, key: Optional[str] = None) -> ProjectRecord:
        tenant_slug, project_slug = self._scope(tenant, project_key)
        now = self.clock.now_iso()

        async def work(tx: AsyncManagedTransaction) -> ProjectRecord:
            scope = {"tenantSlug": tenant_slug, "projectSlug": project_slug}
            tenant_row = await fetch_one(tx, queries.TENANT_EXISTS, scope)
            if not (tenant_row and tenant_row["exists"]):
                raise NotFoundError("Tenant", tenant_slug)
            project_row = await fetch_one(tx, queries.PROJECT_EXISTS, scope)
            if project_row and project_row["exists"]:
                raise ConflictError(f"Project already exists: {tenant_slug}/{project_slug}")
            row = await fetch_one(tx, queries.CREATE_PROJECT, {**scope, "projectKey": key or project_key, "now": now})
            return ProjectRecord.from_neo4j(row["project"])

        record = await self._write(work)
        self.logger.info("Project created", extra={"tenant": tenant_slug, "project": project_slug})
        await self._invalidate(CacheScope.TENANTS.value, tenant_slug)
        return record

    async def upsert_project(
        self,
        tenant: str,
        project_key: str,
        key: Optional[str] = None,
        tenant_name: Optional[str] = None,
    ) -> ProjectRecord:
        """Idempotent: creates the tenant, project and OWNS edge on first use only."""
        tenant_slug, project_slug = self._scope(tenant, project_key)
        now = self.clock.now_iso()

        async def work(tx: AsyncManagedTransaction) -> ProjectRecord:
            row = await fetch_one(tx, queries.UPSERT_PROJECT, {
                "tenantSlug": tenant_slug,
                "tenantName": tenant_name or tenant,
                "projectSlug": project_slug,
                "projectKey": key or project_key,
                "now": now,
            })
            return ProjectRecord.from_neo4j(row["project"])

        record = await self._write(work)
        await self._invalidate(CacheScope.TENANTS.value, tenant_slug)
        return record

    async def delete_project(self, tenant: str, project_key: str) -> int:
        """Remove the project and every node scoped to it. Returns the node count."""
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> int:
            counters = await execute(tx, queries.DELETE_PROJECT, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
            })
            return counters.nodes_deleted

        deleted = await self._write(work)
        if deleted == 0:
            raise NotFoundError("Project", f"{tenant_slug}/{project_slug}")
        self.logger.warning(
            "Project deleted",
            extra={"tenant": tenant_slug, "project": project_slug, "nodes_deleted": deleted},
        )
        await self._invalidate(CacheScope.TENANTS.value, tenant_slug)
        await self._invalidate(CacheScope.REQUIREMENTS.value, tenant_slug, project_slug)
        await self._invalidate(CacheScope.DOCUMENTS.value, tenant_slug, project_slug)
        return deleted
