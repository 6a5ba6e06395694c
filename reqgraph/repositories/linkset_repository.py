"""Document linksets: trace links grouped by an ordered pair of documents."""

from typing import Any, Optional

from neo4j import AsyncManagedTransaction

from reqgraph.core.exceptions import ConflictError, NotFoundError, ValidationError
from reqgraph.repositories.base_repository import BaseGraphRepository
from reqgraph.repositories.queries import traceability as queries
from reqgraph.schemas.hierarchy import DocumentRecord
from reqgraph.schemas.trace import (
    LinksetCreate,
    LinksetLink,
    LinksetLinkCreate,
    LinksetRecord,
    encode_links,
)
from reqgraph.services.cache_invalidation import CacheScope
from reqgraph.utils.cypher import execute, fetch_all, fetch_one


def _linkset(row: dict[str, Any]) -> LinksetRecord:
    return LinksetRecord.from_neo4j(
        row["linkset"],
        sourceDocument=DocumentRecord.from_neo4j(row["sourceDoc"]),
        targetDocument=DocumentRecord.from_neo4j(row["targetDoc"]),
    )


class LinksetRepository(BaseGraphRepository):
    """One DocumentLinkset node per (source, target) document pair.

    The pair is also mirrored as a LINKED_TO edge between the two documents.
    Link edits rewrite the whole link list inside one write transaction.
    """

    def _new_link(self, data: LinksetLinkCreate, now: str) -> LinksetLink:
        if data.source_requirement_id == data.target_requirement_id:
            raise ValidationError("A trace link needs two distinct requirements")
        return LinksetLink(
            id=self.clock.new_id("link"),
            source_requirement_id=data.source_requirement_id,
            target_requirement_id=data.target_requirement_id,
            link_type=data.link_type,
            description=data.description,
            created_at=now,
            updated_at=now,
        )

    @staticmethod
    async def _require_live(
        tx: AsyncManagedTransaction,
        scope: dict[str, str],
        links: list[LinksetLink],
    ) -> None:
        wanted = sorted({link.source_requirement_id for link in links} | {link.target_requirement_id for link in links})
        if not wanted:
            return
        row = await fetch_one(tx, queries.LIVE_REQUIREMENT_IDS, {**scope, "requirementIds": wanted})
        found = set(row["ids"]) if row else set()
        missing = [requirement_id for requirement_id in wanted if requirement_id not in found]
        if missing:
            raise NotFoundError("Requirement", ", ".join(missing))

    async def create_linkset(self, data: LinksetCreate) -> LinksetRecord:
        """Create the linkset for a document pair.

        Raises:
            NotFoundError: Either document is absent from the project
            ConflictError: The pair already has a linkset
        """
        tenant_slug, project_slug = self._scope(data.tenant, data.project_key)
        source_slug, target_slug = data.source_document_slug, data.target_document_slug
        now = self.clock.now_iso()
        links = [self._new_link(link, now) for link in data.links]
        linkset_id = self.clock.new_id("linkset")

        async def work(tx: AsyncManagedTransaction) -> LinksetRecord:
            scope = {"tenantSlug": tenant_slug, "projectSlug": project_slug}
            pair = {"sourceDocumentSlug": source_slug, "targetDocumentSlug": target_slug}
            context = await fetch_one(tx, queries.LINKSET_CONTEXT, {**scope, **pair})
            if context is None:
                raise NotFoundError("Project", f"{tenant_slug}/{project_slug}")
            for slug in (source_slug, target_slug):
                if slug not in context["documentSlugs"]:
                    raise NotFoundError("Document", slug)
            if context["existingId"]:
                raise ConflictError(f"Linkset already exists: {source_slug} -> {target_slug}")
            await self._require_live(tx, scope, links)
            row = await fetch_one(tx, queries.CREATE_LINKSET, {
                **scope,
                **pair,
                "properties": {
                    "id": linkset_id,
                    "tenant": tenant_slug,
                    "projectKey": project_slug,
                    "sourceDocumentSlug": source_slug,
                    "targetDocumentSlug": target_slug,
                    "links": encode_links(links),
                    "linkCount": len(links),
                    "createdAt": now,
                    "updatedAt": now,
                },
            })
            return _linkset(row)

        record = await self._write(work)
        self.logger.info(
            "Linkset created",
            extra={"tenant": tenant_slug, "project": project_slug, "linkset": linkset_id, "links": len(links)},
        )
        await self._invalidate(CacheScope.LINKSETS.value, tenant_slug, project_slug)
        return record

    async def list_linksets(self, tenant: str, project_key: str) -> list[LinksetRecord]:
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> list[LinksetRecord]:
            rows = await fetch_all(tx, queries.LIST_LINKSETS, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
            })
            return [_linkset(row) for row in rows]

        return await self._read(work)

    async def get_linkset(
        self,
        tenant: str,
        project_key: str,
        source_document_slug: str,
        target_document_slug: str,
    ) -> LinksetRecord:
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> Optional[LinksetRecord]:
            row = await fetch_one(tx, queries.GET_LINKSET, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "sourceDocumentSlug": source_document_slug,
                "targetDocumentSlug": target_document_slug,
            })
            return _linkset(row) if row else None

        record = await self._read(work)
        if record is None:
            raise NotFoundError("DocumentLinkset", f"{source_document_slug} -> {target_document_slug}")
        return record

    async def _rewrite_links(self, tenant_slug: str, project_slug: str, linkset_id: str, edit) -> LinksetRecord:
        now = self.clock.now_iso()

        async def work(tx: AsyncManagedTransaction) -> LinksetRecord:
            scope = {"tenantSlug": tenant_slug, "projectSlug": project_slug}
            row = await fetch_one(tx, queries.GET_LINKSET_BY_ID, {**scope, "linksetId": linkset_id})
            if row is None:
                raise NotFoundError("DocumentLinkset", linkset_id)
            links = await edit(tx, scope, _linkset(row).links)
            updated = await fetch_one(tx, queries.UPDATE_LINKSET_LINKS, {
                **scope,
                "linksetId": linkset_id,
                "links": encode_links(links),
                "linkCount": len(links),
                "now": now,
            })
            return _linkset(updated)

        record = await self._write(work)
        await self._invalidate(CacheScope.LINKSETS.value, tenant_slug, project_slug)
        return record

    async def add_link(
        self,
        tenant: str,
        project_key: str,
        linkset_id: str,
        data: LinksetLinkCreate,
    ) -> LinksetRecord:
        """Append a link to an existing linkset.

        Raises:
            NotFoundError: The linkset or either requirement does not exist
            ValidationError: Source and target are the same requirement
            ConflictError: An identical link is already in the linkset
        """
        tenant_slug, project_slug = self._scope(tenant, project_key)
        link = self._new_link(data, self.clock.now_iso())

        async def edit(tx, scope, links: list[LinksetLink]) -> list[LinksetLink]:
            for existing in links:
                if (
                    existing.source_requirement_id == link.source_requirement_id
                    and existing.target_requirement_id == link.target_requirement_id
                    and existing.link_type == link.link_type
                ):
                    raise ConflictError(f"Link already exists: {existing.id}")
            await self._require_live(tx, scope, [link])
            return [*links, link]

        record = await self._rewrite_links(tenant_slug, project_slug, linkset_id, edit)
        self.logger.info(
            "Linkset link added",
            extra={"tenant": tenant_slug, "project": project_slug, "linkset": linkset_id, "link": link.id},
        )
        return record

    async def remove_link(self, tenant: str, project_key: str, linkset_id: str, link_id: str) -> LinksetRecord:
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def edit(tx, scope, links: list[LinksetLink]) -> list[LinksetLink]:
            kept = [link for link in links if link.id != link_id]
            if len(kept) == len(links):
                raise NotFoundError("LinksetLink", link_id)
            return kept

        return await self._rewrite_links(tenant_slug, project_slug, linkset_id, edit)

    async def delete_linkset(self, tenant: str, project_key: str, linkset_id: str) -> None:
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> int:
            counters = await execute(tx, queries.DELETE_LINKSET, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "linksetId": linkset_id,
            })
            return counters.nodes_deleted

        deleted = await self._write(work)
        if deleted == 0:
            raise NotFoundError("DocumentLinkset", linkset_id)
        self.logger.info(
            "Linkset deleted",
            extra={"tenant": tenant_slug, "project": project_slug, "linkset": linkset_id},
        )
        await self._invalidate(CacheScope.LINKSETS.value, tenant_slug, project_slug)
