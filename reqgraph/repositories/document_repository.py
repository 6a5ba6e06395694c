"""Documents and the folder tree that organizes them."""

from typing import Any, Optional

from neo4j import AsyncManagedTransaction

from reqgraph.core.exceptions import ConflictError, NotFoundError
from reqgraph.repositories.base_repository import BaseGraphRepository
from reqgraph.repositories.queries import hierarchy as queries
from reqgraph.schemas.hierarchy import (
    DocumentCreate,
    DocumentRecord,
    DocumentUpdate,
    FolderCreate,
    FolderRecord,
    FolderUpdate,
)
from reqgraph.schemas.requirements import RefChange
from reqgraph.services.cache_invalidation import CacheScope
from reqgraph.services.reference_allocation import ReferenceAllocator
from reqgraph.utils.cypher import fetch_all, fetch_one, with_assignments
from reqgraph.utils.identifiers import scoped_id, slugify


def _document(row: dict[str, Any]) -> DocumentRecord:
    return DocumentRecord.from_neo4j(row["document"], requirementCount=row.get("requirementCount", 0))


def _folder(row: dict[str, Any]) -> FolderRecord:
    return FolderRecord.from_neo4j(
        row["folder"],
        documentCount=row.get("documentCount", 0),
        folderCount=row.get("folderCount", 0),
    )


class DocumentRepository(BaseGraphRepository):
    """Documents, folders and the structural edges between them.

    Soft deletes set ``deletedAt``; listings skip such nodes.
    """

    def __init__(self, *args, allocator: Optional[ReferenceAllocator] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.allocator = allocator or ReferenceAllocator()

    # Documents

    async def create_document(self, data: DocumentCreate) -> DocumentRecord:
        tenant_slug, project_slug = self._scope(data.tenant, data.project_key)
        document_slug = slugify(data.slug or data.name, fallback="document")
        parent_folder = slugify(data.parent_folder) if data.parent_folder else None
        now = self.clock.now_iso()

        properties = data.to_properties()
        for key in ("tenant", "projectKey", "slug", "parentFolder"):
            properties.pop(key, None)
        properties.update({
            "id": scoped_id(tenant_slug, project_slug, document_slug),
            "slug": document_slug,
            "tenant": tenant_slug,
            "projectKey": project_slug,
            "parentFolder": parent_folder,
            "requirementCounter": 0,
            "createdAt": now,
            "updatedAt": now,
        })

        async def work(tx: AsyncManagedTransaction) -> DocumentRecord:
            scope = {"tenantSlug": tenant_slug, "projectSlug": project_slug}
            existing = await fetch_one(tx, queries.DOCUMENT_EXISTS, {**scope, "slug": document_slug})
            if existing and existing["exists"]:
                raise ConflictError(f"Document already exists: {document_slug}")
            row = await fetch_one(tx, queries.CREATE_DOCUMENT, {
                **scope,
                "tenantName": data.tenant,
                "projectKey": data.project_key,
                "parentFolder": parent_folder,
                "properties": {key: value for key, value in properties.items() if value is not None},
                "now": now,
            })
            if row is None:
                raise NotFoundError("Folder", parent_folder)
            return _document(row)

        record = await self._write(work)
        self.logger.info(
            "Document created",
            extra={"tenant": tenant_slug, "project": project_slug, "document": document_slug},
        )
        await self._invalidate(CacheScope.DOCUMENTS.value, tenant_slug, project_slug)
        return record

    async def list_documents(
        self,
        tenant: str,
        project_key: str,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[DocumentRecord]:
        tenant_slug, project_slug = self._scope(tenant, project_key)
        limit, offset = self._page(limit, offset)

        async def work(tx: AsyncManagedTransaction) -> list[DocumentRecord]:
            rows = await fetch_all(tx, queries.LIST_DOCUMENTS, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "limit": limit,
                "offset": offset,
            })
            return [_document(row) for row in rows]

        return await self._read(work)

    async def get_document(self, tenant: str, project_key: str, document_slug: str) -> DocumentRecord:
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> Optional[DocumentRecord]:
            row = await fetch_one(tx, queries.GET_DOCUMENT, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "documentSlug": document_slug,
            })
            return _document(row) if row else None

        record = await self._read(work)
        if record is None:
            raise NotFoundError("Document", document_slug)
        return record

    async def update_document(
        self,
        tenant: str,
        project_key: str,
        document_slug: str,
        updates: DocumentUpdate,
    ) -> tuple[DocumentRecord, list[RefChange]]:
        """Update document fields; requirement refs follow a short code or name change.

        Returns:
            The updated document and the requirement refs that were renumbered
        """
        tenant_slug, project_slug = self._scope(tenant, project_key)
        changes = updates.changes()
        if not changes:
            raise ConflictError("No valid updates provided")
        renumber = "shortCode" in changes or "name" in changes
        now = self.clock.now_iso()

        async def work(tx: AsyncManagedTransaction) -> tuple[Optional[DocumentRecord], list[RefChange]]:
            row = await fetch_one(tx, with_assignments(queries.UPDATE_DOCUMENT, "document", changes), {
                **changes,
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "documentSlug": document_slug,
                "now": now,
            })
            if row is None:
                return None, []
            ref_changes: list[RefChange] = []
            if renumber:
                ref_changes = await self.allocator.renumber_document(tx, tenant_slug, project_slug, document_slug, now)
            return _document(row), ref_changes

        record, ref_changes = await self._write(work)
        if record is None:
            raise NotFoundError("Document", document_slug)
        await self._invalidate(CacheScope.DOCUMENTS.value, tenant_slug, project_slug, document_slug)
        if ref_changes:
            await self._invalidate(CacheScope.REQUIREMENTS.value, tenant_slug, project_slug)
        return record, ref_changes

    async def move_document(
        self,
        tenant: str,
        project_key: str,
        document_slug: str,
        parent_folder: Optional[str],
    ) -> DocumentRecord:
        """Move a document into ``parent_folder``, or to the project root when None.

        Removing the old structural edge and creating the new one happen in the
        same transaction.
        """
        tenant_slug, project_slug = self._scope(tenant, project_key)
        folder_slug = slugify(parent_folder) if parent_folder else None
        now = self.clock.now_iso()
        scope = {"tenantSlug": tenant_slug, "projectSlug": project_slug, "documentSlug": document_slug, "now": now}

        async def work(tx: AsyncManagedTransaction) -> DocumentRecord:
            detached = await fetch_one(tx, queries.DETACH_DOCUMENT_FROM_FOLDER, scope)
            if detached is None:
                raise NotFoundError("Document", document_slug)
            if folder_slug is None:
                row = await fetch_one(tx, queries.CLEAR_DOCUMENT_FOLDER, scope)
            else:
                row = await fetch_one(tx, queries.ATTACH_DOCUMENT_TO_FOLDER, {**scope, "parentFolder": folder_slug})
                if row is None:
                    raise NotFoundError("Folder", folder_slug)
            return _document(row)

        record = await self._write(work)
        await self._invalidate(CacheScope.DOCUMENTS.value, tenant_slug, project_slug, document_slug)
        await self._invalidate(CacheScope.FOLDERS.value, tenant_slug, project_slug)
        return record

    async def soft_delete_document(self, tenant: str, project_key: str, document_slug: str) -> DocumentRecord:
        tenant_slug, project_slug = self._scope(tenant, project_key)
        now = self.clock.now_iso()

        async def work(tx: AsyncManagedTransaction) -> Optional[DocumentRecord]:
            row = await fetch_one(tx, queries.SOFT_DELETE_DOCUMENT, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "documentSlug": document_slug,
                "now": now,
            })
            return _document(row) if row else None

        record = await self._write(work)
        if record is None:
            raise NotFoundError("Document", document_slug)
        await self._invalidate(CacheScope.DOCUMENTS.value, tenant_slug, project_slug, document_slug)
        return record

    # Folders

    async def create_folder(self, data: FolderCreate) -> FolderRecord:
        tenant_slug, project_slug = self._scope(data.tenant, data.project_key)
        folder_slug = slugify(data.slug or data.name, fallback="folder")
        parent_folder = slugify(data.parent_folder) if data.parent_folder else None
        now = self.clock.now_iso()
        properties = {
            "id": scoped_id(tenant_slug, project_slug, f"folder:{folder_slug}"),
            "slug": folder_slug,
            "name": data.name,
            "description": data.description,
            "tenant": tenant_slug,
            "projectKey": project_slug,
            "parentFolder": parent_folder,
            "createdAt": now,
            "updatedAt": now,
        }

        async def work(tx: AsyncManagedTransaction) -> FolderRecord:
            scope = {"tenantSlug": tenant_slug, "projectSlug": project_slug}
            existing = await fetch_one(tx, queries.FOLDER_EXISTS, {**scope, "slug": folder_slug})
            if existing and existing["exists"]:
                raise ConflictError(f"Folder already exists: {folder_slug}")
            row = await fetch_one(tx, queries.CREATE_FOLDER, {
                **scope,
                "tenantName": data.tenant,
                "projectKey": data.project_key,
                "parentFolder": parent_folder,
                "properties": {key: value for key, value in properties.items() if value is not None},
                "now": now,
            })
            if row is None:
                raise NotFoundError("Folder", parent_folder)
            return FolderRecord.from_neo4j(row["folder"])

        record = await self._write(work)
        await self._invalidate(CacheScope.FOLDERS.value, tenant_slug, project_slug)
        return record

    async def list_folders(
        self,
        tenant: str,
        project_key: str,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[FolderRecord]:
        tenant_slug, project_slug = self._scope(tenant, project_key)
        limit, offset = self._page(limit, offset)

        async def work(tx: AsyncManagedTransaction) -> list[FolderRecord]:
            rows = await fetch_all(tx, queries.LIST_FOLDERS, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "limit": limit,
                "offset": offset,
            })
            return [_folder(row) for row in rows]

        return await self._read(work)

    async def get_folder(self, tenant: str, project_key: str, folder_slug: str) -> FolderRecord:
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> Optional[FolderRecord]:
            row = await fetch_one(tx, queries.GET_FOLDER, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "folderSlug": folder_slug,
            })
            return _folder(row) if row else None

        record = await self._read(work)
        if record is None:
            raise NotFoundError("Folder", folder_slug)
        return record

    async def update_folder(
        self,
        tenant: str,
        project_key: str,
        folder_slug: str,
        updates: FolderUpdate,
    ) -> FolderRecord:
        tenant_slug, project_slug = self._scope(tenant, project_key)
        changes = updates.changes()
        if not changes:
            raise ConflictError("No valid updates provided")
        now = self.clock.now_iso()

        async def work(tx: AsyncManagedTransaction) -> Optional[FolderRecord]:
            row = await fetch_one(tx, with_assignments(queries.UPDATE_FOLDER, "folder", changes), {
                **changes,
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "folderSlug": folder_slug,
                "now": now,
            })
            return _folder(row) if row else None

        record = await self._write(work)
        if record is None:
            raise NotFoundError("Folder", folder_slug)
        await self._invalidate(CacheScope.FOLDERS.value, tenant_slug, project_slug)
        return record

    async def move_folder(
        self,
        tenant: str,
        project_key: str,
        folder_slug: str,
        parent_folder: Optional[str],
    ) -> FolderRecord:
        """Reparent a folder; moving it under itself or a descendant is a conflict."""
        tenant_slug, project_slug = self._scope(tenant, project_key)
        parent_slug = slugify(parent_folder) if parent_folder else None
        now = self.clock.now_iso()
        params = {
            "tenantSlug": tenant_slug,
            "projectSlug": project_slug,
            "folderSlug": folder_slug,
            "parentFolder": parent_slug,
            "now": now,
        }

        async def work(tx: AsyncManagedTransaction) -> FolderRecord:
            ancestry = await fetch_one(tx, queries.FOLDER_ANCESTRY, params)
            if ancestry is None:
                raise NotFoundError("Folder", folder_slug)
            if parent_slug is not None:
                if ancestry["parent"] is None:
                    raise NotFoundError("Folder", parent_slug)
                if folder_slug in ancestry["ancestors"]:
                    raise ConflictError(f"Cannot move folder {folder_slug} into its own subtree")
            row = await fetch_one(tx, queries.MOVE_FOLDER, params)
            return _folder(row)

        record = await self._write(work)
        await self._invalidate(CacheScope.FOLDERS.value, tenant_slug, project_slug)
        return record

    async def soft_delete_folder(
        self,
        tenant: str,
        project_key: str,
        folder_slug: str,
        force: bool = False,
    ) -> dict[str, int]:
        """Soft-delete a folder.

        A folder that still holds live documents or sub-folders is only deleted
        with ``force``, which soft-deletes the whole subtree along with it.

        Returns:
            Counts of soft-deleted folders and documents
        """
        tenant_slug, project_slug = self._scope(tenant, project_key)
        now = self.clock.now_iso()
        scope = {"tenantSlug": tenant_slug, "projectSlug": project_slug}

        async def work(tx: AsyncManagedTransaction) -> dict[str, int]:
            subtree = await fetch_one(tx, queries.FOLDER_SUBTREE, {**scope, "folderSlug": folder_slug})
            if subtree is None:
                raise NotFoundError("Folder", folder_slug)
            live_children = len(subtree["folderSlugs"]) + len(subtree["documentSlugs"])
            if live_children and not force:
                raise ConflictError(
                    f"Folder {folder_slug} still contains {live_children} live item(s); move them or force the delete"
                )
            row = await fetch_one(tx, queries.SOFT_DELETE_FOLDERS, {
                **scope,
                "folderSlugs": [folder_slug] + list(subtree["folderSlugs"]),
                "documentSlugs": list(subtree["documentSlugs"]),
                "now": now,
            })
            return {"folders": row["folders"], "documents": row["documents"]}

        counts = await self._write(work)
        self.logger.info(
            "Folder soft-deleted",
            extra={"tenant": tenant_slug, "project": project_slug, "folder": folder_slug, **counts},
        )
        await self._invalidate(CacheScope.FOLDERS.value, tenant_slug, project_slug)
        if counts["documents"]:
            await self._invalidate(CacheScope.DOCUMENTS.value, tenant_slug, project_slug)
        return counts
