"""
Architecture placement store.

Diagrams, reusable block definitions with per-diagram placements, and
diagram-scoped connectors. A block definition is shared across diagrams; the
HAS_BLOCK relationship carries where and how it is drawn on each one.
"""

from typing import Any, Optional, Union

from neo4j import AsyncManagedTransaction

from reqgraph.core.config import settings
from reqgraph.core.exceptions import ConflictError, NotFoundError, ValidationError
from reqgraph.repositories.base_repository import BaseGraphRepository
from reqgraph.repositories.queries import architecture as queries
from reqgraph.schemas.architecture import (
    PLACEMENT_STYLE_FIELDS,
    BlockCreate,
    BlockDefinitionRecord,
    BlockLibraryEntry,
    BlockRecord,
    BlockUpdate,
    ConnectorCreate,
    ConnectorRecord,
    ConnectorUpdate,
    DiagramCreate,
    DiagramRecord,
    DiagramUpdate,
    decode_ports,
    encode_ports,
)
from reqgraph.services.cache_invalidation import CacheScope
from reqgraph.utils.cypher import execute, fetch_all, fetch_one, with_assignments


def _without_none(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


def _placed_block(row: dict[str, Any], diagram_id: str) -> BlockRecord:
    return BlockRecord.from_placement(row["block"], row["placement"], diagram_id, row.get("documentIds"))


def check_connector_endpoints(
    blocks: list[dict[str, Any]],
    source: str,
    target: str,
    source_port_id: Optional[str],
    target_port_id: Optional[str],
) -> None:
    """Both endpoints must be placed on the diagram and named ports must exist on them.

    Raises:
        ValidationError: An endpoint block or port is unknown
    """
    ports_by_block = {
        block["id"]: {port.get("id") for port in decode_ports(block.get("ports")) if isinstance(port, dict)}
        for block in blocks
    }
    for block_id in (source, target):
        if block_id not in ports_by_block:
            raise ValidationError(f"Block {block_id} is not placed on this diagram")
    if source_port_id and source_port_id not in ports_by_block[source]:
        raise ValidationError(f"Unknown port {source_port_id} on block {source}")
    if target_port_id and target_port_id not in ports_by_block[target]:
        raise ValidationError(f"Unknown port {target_port_id} on block {target}")


class ArchitectureRepository(BaseGraphRepository):
    """Diagrams, blocks and connectors of one project."""

    # Diagrams

    async def create_diagram(self, data: DiagramCreate) -> DiagramRecord:
        tenant_slug, project_slug = self._scope(data.tenant, data.project_key)
        now = self.clock.now_iso()
        properties = _without_none({
            "id": self.clock.new_id("diagram"),
            "name": data.name,
            "description": data.description,
            "view": data.view,
            "tenant": tenant_slug,
            "projectKey": project_slug,
            "createdAt": now,
            "updatedAt": now,
        })

        async def work(tx: AsyncManagedTransaction) -> DiagramRecord:
            row = await fetch_one(tx, queries.CREATE_DIAGRAM, {
                "tenantSlug": tenant_slug,
                "tenantName": data.tenant,
                "projectSlug": project_slug,
                "projectKey": data.project_key,
                "properties": properties,
                "now": now,
            })
            return DiagramRecord.from_neo4j(row["diagram"])

        record = await self._write(work)
        await self._invalidate(CacheScope.ARCHITECTURE.value, tenant_slug, project_slug)
        return record

    async def list_diagrams(self, tenant: str, project_key: str) -> list[DiagramRecord]:
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> list[DiagramRecord]:
            rows = await fetch_all(tx, queries.LIST_DIAGRAMS, {"tenantSlug": tenant_slug, "projectSlug": project_slug})
            return [DiagramRecord.from_neo4j(row["diagram"]) for row in rows]

        return await self._read(work)

    async def get_diagram(self, tenant: str, project_key: str, diagram_id: str) -> DiagramRecord:
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> Optional[DiagramRecord]:
            row = await fetch_one(tx, queries.GET_DIAGRAM, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "diagramId": diagram_id,
            })
            return DiagramRecord.from_neo4j(row["diagram"]) if row else None

        record = await self._read(work)
        if record is None:
            raise NotFoundError("ArchitectureDiagram", diagram_id)
        return record

    async def update_diagram(
        self,
        tenant: str,
        project_key: str,
        diagram_id: str,
        updates: DiagramUpdate,
    ) -> DiagramRecord:
        tenant_slug, project_slug = self._scope(tenant, project_key)
        changes = updates.changes()
        if not changes:
            raise ConflictError("No valid updates provided")
        now = self.clock.now_iso()

        async def work(tx: AsyncManagedTransaction) -> Optional[DiagramRecord]:
            row = await fetch_one(tx, with_assignments(queries.UPDATE_DIAGRAM, "diagram", changes), {
                **changes,
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "diagramId": diagram_id,
                "now": now,
            })
            return DiagramRecord.from_neo4j(row["diagram"]) if row else None

        record = await self._write(work)
        if record is None:
            raise NotFoundError("ArchitectureDiagram", diagram_id)
        await self._invalidate(CacheScope.ARCHITECTURE.value, tenant_slug, project_slug, diagram_id)
        return record

    async def delete_diagram(self, tenant: str, project_key: str, diagram_id: str) -> None:
        """Delete a diagram with its connectors and placements; block definitions survive."""
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> int:
            counters = await execute(tx, queries.DELETE_DIAGRAM, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "diagramId": diagram_id,
            })
            return counters.nodes_deleted

        deleted = await self._write(work)
        if deleted == 0:
            raise NotFoundError("ArchitectureDiagram", diagram_id)
        await self._invalidate(CacheScope.ARCHITECTURE.value, tenant_slug, project_slug, diagram_id)

    # Blocks

    async def create_block(self, data: BlockCreate) -> BlockRecord:
        """Place a block on a diagram.

        With ``existing_block_id`` only the placement on this diagram is created
        (or refreshed); the shared definition is left untouched. Otherwise a new
        definition is created together with its first placement.

        Raises:
            ValidationError: A new definition is missing its name or kind
            NotFoundError: The diagram or the existing block does not exist
        """
        tenant_slug, project_slug = self._scope(data.tenant, data.project_key)
        if not data.existing_block_id and not (data.name and data.kind):
            raise ValidationError("Block name and kind are required")

        now = self.clock.now_iso()
        placement = _without_none({
            "positionX": data.position_x,
            "positionY": data.position_y,
            "sizeWidth": data.size_width,
            "sizeHeight": data.size_height,
            **{key: value for key, value in data.to_properties().items() if key in PLACEMENT_STYLE_FIELDS},
        })
        scope = {"tenantSlug": tenant_slug, "projectSlug": project_slug, "diagramId": data.diagram_id}

        if data.existing_block_id:
            block_id = data.existing_block_id
            # fields left out keep their current value on an existing placement
            supplied = {type(data).model_fields[name].alias for name in data.model_fields_set}
            placement = {key: value for key, value in placement.items() if key in supplied}

            async def work(tx: AsyncManagedTransaction) -> Optional[BlockRecord]:
                row = await fetch_one(tx, queries.PLACE_EXISTING_BLOCK, {
                    **scope,
                    "blockId": block_id,
                    "placement": placement,
                    "now": now,
                })
                return _placed_block(row, data.diagram_id) if row else None
        else:
            block_id = self.clock.new_id("block")
            placement.setdefault("sizeWidth", settings.architecture.default_block_width)
            placement.setdefault("sizeHeight", settings.architecture.default_block_height)
            properties = _without_none({
                "id": block_id,
                "name": data.name,
                "kind": data.kind,
                "stereotype": data.stereotype,
                "description": data.description,
                "tenant": tenant_slug,
                "projectKey": project_slug,
                "ports": encode_ports(data.ports),
                "createdAt": now,
                "updatedAt": now,
            })

            async def work(tx: AsyncManagedTransaction) -> Optional[BlockRecord]:
                row = await fetch_one(tx, queries.CREATE_BLOCK, {
                    **scope,
                    "properties": properties,
                    "placement": placement,
                    "now": now,
                })
                if row is None:
                    return None
                document_ids: list[str] = []
                if data.document_ids:
                    linked = await fetch_one(tx, queries.RELINK_BLOCK_DOCUMENTS, {
                        **scope,
                        "blockId": block_id,
                        "documentIds": list(data.document_ids),
                    })
                    document_ids = linked["documentIds"] if linked else []
                return BlockRecord.from_placement(row["block"], row["placement"], data.diagram_id, document_ids)

        record = await self._write(work)
        if record is None:
            if data.existing_block_id:
                raise NotFoundError(
                    "ArchitectureBlock",
                    block_id,
                    message=f"Block {block_id} or diagram {data.diagram_id} not found",
                )
            raise NotFoundError("ArchitectureDiagram", data.diagram_id)
        self.logger.info(
            "Block placed",
            extra={
                "tenant": tenant_slug,
                "project": project_slug,
                "diagram": data.diagram_id,
                "block": block_id,
                "reused": bool(data.existing_block_id),
            },
        )
        await self._invalidate(CacheScope.ARCHITECTURE.value, tenant_slug, project_slug, data.diagram_id)
        return record

    async def list_blocks(
        self,
        tenant: str,
        project_key: str,
        diagram_id: str,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[BlockRecord]:
        tenant_slug, project_slug = self._scope(tenant, project_key)
        limit, offset = self._page(limit, offset)

        async def work(tx: AsyncManagedTransaction) -> list[BlockRecord]:
            rows = await fetch_all(tx, queries.LIST_BLOCKS, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "diagramId": diagram_id,
                "limit": limit,
                "offset": offset,
            })
            return [_placed_block(row, diagram_id) for row in rows]

        return await self._read(work)

    async def get_block_library(self, tenant: str, project_key: str) -> list[BlockLibraryEntry]:
        """Every block definition of the project with the diagrams that place it."""
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> list[BlockLibraryEntry]:
            rows = await fetch_all(tx, queries.BLOCK_LIBRARY, {"tenantSlug": tenant_slug, "projectSlug": project_slug})
            return [
                BlockLibraryEntry.from_neo4j(row["block"], diagrams=row["diagrams"], documentIds=row["documentIds"])
                for row in rows
            ]

        return await self._read(work)

    async def update_block(
        self,
        tenant: str,
        project_key: str,
        block_id: str,
        updates: BlockUpdate,
        diagram_id: Optional[str] = None,
    ) -> Union[BlockRecord, BlockDefinitionRecord]:
        """Update a block definition, its document links and/or one placement.

        Definition fields and document links are shared by every diagram.
        Geometry and styling need ``diagram_id`` and only change that diagram's
        placement.

        Replacing the ports deletes connectors, on any diagram, that were
        attached to a port the block no longer has.

        Returns:
            The placed block when ``diagram_id`` is given, else the definition
        """
        tenant_slug, project_slug = self._scope(tenant, project_key)
        definition = updates.definition_changes()
        placement = updates.placement_changes()
        relink = updates.document_ids is not None
        if not (definition or placement or relink):
            raise ConflictError("No valid updates provided")
        if placement and not diagram_id:
            raise ValidationError("Placement updates require a diagram id")
        now = self.clock.now_iso()
        scope = {"tenantSlug": tenant_slug, "projectSlug": project_slug, "blockId": block_id}

        async def work(
            tx: AsyncManagedTransaction,
        ) -> tuple[Union[BlockRecord, BlockDefinitionRecord], list[dict[str, Any]]]:
            pruned: list[dict[str, Any]] = []
            if definition:
                row = await fetch_one(tx, with_assignments(queries.UPDATE_BLOCK_DEFINITION, "block", definition), {
                    **definition,
                    **scope,
                    "now": now,
                })
                if row is None:
                    raise NotFoundError("ArchitectureBlock", block_id)
            if updates.ports is not None:
                pruned = await fetch_all(tx, queries.DELETE_STALE_PORT_CONNECTORS, {
                    **scope,
                    "portIds": [port.id for port in updates.ports],
                })
            if relink:
                row = await fetch_one(tx, queries.RELINK_BLOCK_DOCUMENTS, {
                    **scope,
                    "documentIds": list(updates.document_ids),
                })
                if row is None:
                    raise NotFoundError("ArchitectureBlock", block_id)
            if not diagram_id:
                row = await fetch_one(tx, queries.GET_BLOCK_DEFINITION, scope)
                if row is None:
                    raise NotFoundError("ArchitectureBlock", block_id)
                return BlockDefinitionRecord.from_neo4j(row["block"], documentIds=row["documentIds"]), pruned
            if placement:
                await fetch_one(tx, queries.UPDATE_BLOCK_PLACEMENT, {
                    **scope,
                    "diagramId": diagram_id,
                    "placement": placement,
                    "now": now,
                })
            row = await fetch_one(tx, queries.GET_PLACED_BLOCK, {**scope, "diagramId": diagram_id})
            if row is None:
                raise NotFoundError(
                    "ArchitectureBlock",
                    block_id,
                    message=f"Block {block_id} is not placed on diagram {diagram_id}",
                )
            return _placed_block(row, diagram_id), pruned

        record, pruned = await self._write(work)
        await self._invalidate(CacheScope.ARCHITECTURE.value, tenant_slug, project_slug, diagram_id)
        if pruned:
            self.logger.info(
                "Connectors on removed ports deleted",
                extra={"block": block_id, "removed": sum(row["removed"] for row in pruned)},
            )
            for diagram in sorted({row["diagramId"] for row in pruned} - {diagram_id}):
                await self._invalidate(CacheScope.ARCHITECTURE.value, tenant_slug, project_slug, diagram)
        return record

    async def delete_block(
        self,
        tenant: str,
        project_key: str,
        block_id: str,
        diagram_id: Optional[str] = None,
    ) -> None:
        """Remove a block from one diagram, or remove its definition everywhere.

        With ``diagram_id`` only that diagram's placement and the diagram's
        connectors touching the block go; the definition and other placements
        stay. Without it the definition, every placement and every connector
        referencing the block are removed.
        """
        tenant_slug, project_slug = self._scope(tenant, project_key)
        params = {"tenantSlug": tenant_slug, "projectSlug": project_slug, "blockId": block_id}

        async def work(tx: AsyncManagedTransaction) -> int:
            if diagram_id:
                counters = await execute(tx, queries.DELETE_BLOCK_PLACEMENT, {**params, "diagramId": diagram_id})
                return counters.relationships_deleted
            counters = await execute(tx, queries.DELETE_BLOCK, params)
            return counters.nodes_deleted

        deleted = await self._write(work)
        if deleted == 0:
            raise NotFoundError("ArchitectureBlock", block_id)
        await self._invalidate(CacheScope.ARCHITECTURE.value, tenant_slug, project_slug, diagram_id)

    # Connectors

    async def create_connector(self, data: ConnectorCreate) -> ConnectorRecord:
        """Connect two blocks placed on the same diagram.

        Raises:
            NotFoundError: The diagram does not exist
            ValidationError: An endpoint block or port is unknown
            ConflictError: An identical connector already exists
        """
        tenant_slug, project_slug = self._scope(data.tenant, data.project_key)
        now = self.clock.now_iso()
        connector_id = self.clock.new_id("connector")
        properties = _without_none({
            **data.to_properties(),
            "id": connector_id,
            "tenant": tenant_slug,
            "projectKey": project_slug,
            "createdAt": now,
            "updatedAt": now,
        })
        scope = {"tenantSlug": tenant_slug, "projectSlug": project_slug, "diagramId": data.diagram_id}

        async def work(tx: AsyncManagedTransaction) -> ConnectorRecord:
            context = await fetch_one(tx, queries.CONNECTOR_CONTEXT, {
                **scope,
                "source": data.source,
                "target": data.target,
                "kind": data.kind,
                "sourcePortId": data.source_port_id,
                "targetPortId": data.target_port_id,
                "excludeId": None,
            })
            if context is None:
                raise NotFoundError("ArchitectureDiagram", data.diagram_id)
            check_connector_endpoints(
                context["blocks"], data.source, data.target, data.source_port_id, data.target_port_id
            )
            if context["duplicates"]:
                raise ConflictError(f"Connector {data.source} -> {data.target} ({data.kind}) already exists")
            row = await fetch_one(tx, queries.CREATE_CONNECTOR, {**scope, "properties": properties})
            return ConnectorRecord.from_neo4j(row["connector"])

        record = await self._write(work)
        await self._invalidate(CacheScope.ARCHITECTURE.value, tenant_slug, project_slug, data.diagram_id)
        return record

    async def list_connectors(
        self,
        tenant: str,
        project_key: str,
        diagram_id: str,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[ConnectorRecord]:
        tenant_slug, project_slug = self._scope(tenant, project_key)
        limit, offset = self._page(limit, offset)

        async def work(tx: AsyncManagedTransaction) -> list[ConnectorRecord]:
            rows = await fetch_all(tx, queries.LIST_CONNECTORS, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "diagramId": diagram_id,
                "limit": limit,
                "offset": offset,
            })
            return [ConnectorRecord.from_neo4j(row["connector"]) for row in rows]

        return await self._read(work)

    async def update_connector(
        self,
        tenant: str,
        project_key: str,
        diagram_id: str,
        connector_id: str,
        updates: ConnectorUpdate,
    ) -> ConnectorRecord:
        """Update a connector; changed ports or kind are re-validated."""
        tenant_slug, project_slug = self._scope(tenant, project_key)
        changes = updates.changes()
        if not changes:
            raise ConflictError("No valid updates provided")
        now = self.clock.now_iso()
        scope = {"tenantSlug": tenant_slug, "projectSlug": project_slug, "diagramId": diagram_id}

        async def work(tx: AsyncManagedTransaction) -> ConnectorRecord:
            current_row = await fetch_one(tx, queries.GET_CONNECTOR, {**scope, "connectorId": connector_id})
            if current_row is None:
                raise NotFoundError("ArchitectureConnector", connector_id)
            current = ConnectorRecord.from_neo4j(current_row["connector"])
            if {"kind", "sourcePortId", "targetPortId"} & changes.keys():
                merged = current.model_copy(update={
                    **updates.model_dump(exclude_none=True),
                    **{name: None for name in updates.cleared()},
                })
                context = await fetch_one(tx, queries.CONNECTOR_CONTEXT, {
                    **scope,
                    "source": merged.source,
                    "target": merged.target,
                    "kind": merged.kind,
                    "sourcePortId": merged.source_port_id,
                    "targetPortId": merged.target_port_id,
                    "excludeId": connector_id,
                })
                check_connector_endpoints(
                    context["blocks"], merged.source, merged.target, merged.source_port_id, merged.target_port_id
                )
                if context["duplicates"]:
                    raise ConflictError(f"Connector {merged.source} -> {merged.target} ({merged.kind}) already exists")
            row = await fetch_one(tx, with_assignments(queries.UPDATE_CONNECTOR, "connector", changes), {
                **changes,
                **scope,
                "connectorId": connector_id,
                "now": now,
            })
            return ConnectorRecord.from_neo4j(row["connector"])

        record = await self._write(work)
        await self._invalidate(CacheScope.ARCHITECTURE.value, tenant_slug, project_slug, diagram_id)
        return record

    async def delete_connector(self, tenant: str, project_key: str, diagram_id: str, connector_id: str) -> None:
        tenant_slug, project_slug = self._scope(tenant, project_key)

        async def work(tx: AsyncManagedTransaction) -> int:
            counters = await execute(tx, queries.DELETE_CONNECTOR, {
                "tenantSlug": tenant_slug,
                "projectSlug": project_slug,
                "diagramId": diagram_id,
                "connectorId": connector_id,
            })
            return counters.nodes_deleted

        deleted = await self._write(work)
        if deleted == 0:
            raise NotFoundError("ArchitectureConnector", connector_id)
        await self._invalidate(CacheScope.ARCHITECTURE.value, tenant_slug, project_slug, diagram_id)
