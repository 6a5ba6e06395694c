"""
Architecture diagram schema.

A block *definition* (name, kind, ports) is a node shared by every diagram that
shows it. Its *placement* (position, size, styling) lives on the HAS_BLOCK
relationship, one per diagram. Connectors belong to a single diagram and refer
to blocks by id.
"""

import json
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import Field, field_validator

from reqgraph.schemas.common import GraphModel, GraphUpdate, decode_json_list


class BlockKind(str, Enum):
    SYSTEM = "system"
    SUBSYSTEM = "subsystem"
    COMPONENT = "component"
    ACTOR = "actor"
    EXTERNAL = "external"
    INTERFACE = "interface"


class PortDirection(str, Enum):
    IN = "in"
    OUT = "out"
    INOUT = "inout"


class DiagramView(str, Enum):
    BLOCK = "block"
    INTERNAL = "internal"
    DEPLOYMENT = "deployment"
    REQUIREMENTS_SCHEMA = "requirements_schema"


class ConnectorKind(str, Enum):
    ASSOCIATION = "association"
    FLOW = "flow"
    DEPENDENCY = "dependency"
    COMPOSITION = "composition"


# Styling properties carried on the HAS_BLOCK relationship
PLACEMENT_STYLE_FIELDS = (
    "backgroundColor",
    "borderColor",
    "borderWidth",
    "borderStyle",
    "textColor",
    "fontSize",
    "fontWeight",
    "borderRadius",
)

PLACEMENT_GEOMETRY_FIELDS = ("positionX", "positionY", "sizeWidth", "sizeHeight")

class BlockPort(GraphModel):
    id: str
    name: str
    direction: PortDirection = PortDirection.INOUT


def decode_ports(value: Any) -> list:
    """Ports are stored as a JSON string property."""
    return decode_json_list(value)


def encode_ports(ports: list[BlockPort]) -> str:
    return json.dumps([port.model_dump(by_alias=True) for port in ports])


class PlacementStyle(GraphModel):
    background_color: Optional[str] = None
    border_color: Optional[str] = None
    border_width: Optional[float] = None
    border_style: Optional[str] = None
    text_color: Optional[str] = None
    font_size: Optional[float] = None
    font_weight: Optional[str] = None
    border_radius: Optional[float] = None


class BlockDefinitionRecord(GraphModel):
    id: str
    name: str = ""
    kind: BlockKind = BlockKind.COMPONENT
    stereotype: Optional[str] = None
    description: Optional[str] = None
    tenant: str = ""
    project_key: str = ""
    ports: list[BlockPort] = Field(default_factory=list)
    document_ids: list[str] = Field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @field_validator("ports", mode="before")
    @classmethod
    def _decode_ports(cls, value: Any) -> list:
        return decode_ports(value)

    def port_ids(self) -> set[str]:
        return {port.id for port in self.ports}


class BlockRecord(BlockDefinitionRecord, PlacementStyle):
    """A block definition as placed on one diagram."""
    diagram_id: str
    position_x: float = 0
    position_y: float = 0
    size_width: float = 220
    size_height: float = 140
    placement_created_at: Optional[str] = None
    placement_updated_at: Optional[str] = None

    @classmethod
    def from_placement(
        cls,
        node: Mapping[str, Any],
        rel: Mapping[str, Any],
        diagram_id: str,
        document_ids: Optional[list[str]] = None,
    ) -> "BlockRecord":
        """Merge definition properties with the HAS_BLOCK relationship properties."""
        rel = dict(rel or {})
        placement = {key: rel[key] for key in PLACEMENT_GEOMETRY_FIELDS + PLACEMENT_STYLE_FIELDS if key in rel}
        return cls.model_validate({
            **dict(node),
            **placement,
            "diagramId": rel.get("diagramId") or diagram_id,
            "placementCreatedAt": rel.get("createdAt"),
            "placementUpdatedAt": rel.get("updatedAt"),
            "documentIds": list(document_ids or []),
        })


class DiagramRef(GraphModel):
    id: str
    name: Optional[str] = None


class BlockLibraryEntry(BlockDefinitionRecord):
    """A definition together with every diagram that places it."""
    diagrams: list[DiagramRef] = Field(default_factory=list)


class DiagramRecord(GraphModel):
    id: str
    name: str
    description: Optional[str] = None
    tenant: str
    project_key: str
    view: DiagramView = DiagramView.BLOCK
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ConnectorRecord(GraphModel):
    id: str
    source: str
    target: str
    kind: ConnectorKind
    label: Optional[str] = None
    source_port_id: Optional[str] = None
    target_port_id: Optional[str] = None
    tenant: str
    project_key: str
    diagram_id: str
    line_style: Optional[str] = None
    marker_start: Optional[str] = None
    marker_end: Optional[str] = None
    line_pattern: Optional[str] = None
    color: Optional[str] = None
    stroke_width: Optional[float] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class DiagramCreate(GraphModel):
    tenant: str
    project_key: str
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    view: DiagramView = DiagramView.BLOCK


class DiagramUpdate(GraphUpdate):
    clearable = frozenset({"description"})

    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    view: Optional[DiagramView] = None


class BlockCreate(PlacementStyle):
    """New placement; either of a new definition or of ``existing_block_id``."""
    tenant: str
    project_key: str
    diagram_id: str
    position_x: float = 0
    position_y: float = 0
    size_width: Optional[float] = None
    size_height: Optional[float] = None
    existing_block_id: Optional[str] = None
    name: Optional[str] = None
    kind: Optional[BlockKind] = None
    stereotype: Optional[str] = None
    description: Optional[str] = None
    ports: list[BlockPort] = Field(default_factory=list)
    document_ids: list[str] = Field(default_factory=list)


class BlockUpdate(GraphUpdate):
    clearable = frozenset({"stereotype", "description"})

    name: Optional[str] = Field(default=None, min_length=1)
    kind: Optional[BlockKind] = None
    stereotype: Optional[str] = None
    description: Optional[str] = None
    ports: Optional[list[BlockPort]] = None
    document_ids: Optional[list[str]] = None
    position_x: Optional[float] = None
    position_y: Optional[float] = None
    size_width: Optional[float] = None
    size_height: Optional[float] = None
    background_color: Optional[str] = None
    border_color: Optional[str] = None
    border_width: Optional[float] = None
    border_style: Optional[str] = None
    text_color: Optional[str] = None
    font_size: Optional[float] = None
    font_weight: Optional[str] = None
    border_radius: Optional[float] = None

    def definition_changes(self) -> dict[str, Any]:
        written = self.changes()
        changes = {key: written[key] for key in ("name", "kind", "stereotype", "description") if key in written}
        if self.ports is not None:
            changes["ports"] = encode_ports(self.ports)
        return changes

    def placement_changes(self) -> dict[str, Any]:
        changes = self.changes()
        return {key: changes[key] for key in PLACEMENT_GEOMETRY_FIELDS + PLACEMENT_STYLE_FIELDS if key in changes}


class ConnectorCreate(GraphModel):
    tenant: str
    project_key: str
    diagram_id: str
    source: str
    target: str
    kind: ConnectorKind = ConnectorKind.ASSOCIATION
    label: Optional[str] = None
    source_port_id: Optional[str] = None
    target_port_id: Optional[str] = None
    line_style: Optional[str] = None
    marker_start: Optional[str] = None
    marker_end: Optional[str] = None
    line_pattern: Optional[str] = None
    color: Optional[str] = None
    stroke_width: Optional[float] = None


class ConnectorUpdate(GraphUpdate):
    clearable = frozenset({"label", "source_port_id", "target_port_id"})

    kind: Optional[ConnectorKind] = None
    label: Optional[str] = None
    source_port_id: Optional[str] = None
    target_port_id: Optional[str] = None
    line_style: Optional[str] = None
    marker_start: Optional[str] = None
    marker_end: Optional[str] = None
    line_pattern: Optional[str] = None
    color: Optional[str] = None
    stroke_width: Optional[float] = None


# Diagram candidates


class DiagramCandidateStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class DiagramCandidateAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    EXTEND = "extend"


class CandidateBlock(GraphModel):
    """A proposed block; ``id`` names an existing definition to reuse."""
    id: Optional[str] = None
    name: str
    kind: str
    stereotype: Optional[str] = None
    description: Optional[str] = None
    position_x: float = 0
    position_y: float = 0
    size_width: Optional[float] = None
    size_height: Optional[float] = None
    ports: list[BlockPort] = Field(default_factory=list)
    action: Optional[str] = None


class CandidateConnector(GraphModel):
    id: Optional[str] = None
    source: str
    target: str
    kind: str
    label: Optional[str] = None
    source_port_id: Optional[str] = None
    target_port_id: Optional[str] = None
    action: Optional[str] = None


def encode_candidate_items(items: list[GraphModel]) -> str:
    return json.dumps([item.model_dump(by_alias=True, exclude_none=True) for item in items])


class DiagramCandidateRecord(GraphModel):
    """A diagram proposal; blocks and connectors are stored as JSON strings."""
    id: str
    tenant: str
    project_key: str
    status: DiagramCandidateStatus = DiagramCandidateStatus.PENDING
    action: DiagramCandidateAction
    diagram_id: Optional[str] = None
    diagram_name: Optional[str] = None
    diagram_description: Optional[str] = None
    diagram_view: Optional[str] = DiagramView.BLOCK.value
    blocks: list[CandidateBlock] = Field(default_factory=list)
    connectors: list[CandidateConnector] = Field(default_factory=list)
    reasoning: str = ""
    prompt: Optional[str] = None
    query_session_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_node(cls, node: Mapping[str, Any]) -> "DiagramCandidateRecord":
        return cls.from_neo4j(
            node,
            blocks=[item for item in decode_json_list(node.get("blocksJson")) if isinstance(item, dict)],
            connectors=[item for item in decode_json_list(node.get("connectorsJson")) if isinstance(item, dict)],
        )


class DiagramCandidateCreate(GraphModel):
    tenant: str
    project_key: str
    action: DiagramCandidateAction
    status: DiagramCandidateStatus = DiagramCandidateStatus.PENDING
    diagram_id: Optional[str] = None
    diagram_name: Optional[str] = None
    diagram_description: Optional[str] = None
    diagram_view: DiagramView = DiagramView.BLOCK
    blocks: list[CandidateBlock] = Field(default_factory=list)
    connectors: list[CandidateConnector] = Field(default_factory=list)
    reasoning: str = Field(..., min_length=1)
    prompt: Optional[str] = None
    query_session_id: Optional[str] = None


class DiagramCandidateUpdate(GraphUpdate):
    clearable = frozenset({"diagram_id", "diagram_description"})

    status: Optional[DiagramCandidateStatus] = None
    action: Optional[DiagramCandidateAction] = None
    diagram_id: Optional[str] = None
    diagram_name: Optional[str] = None
    diagram_description: Optional[str] = None
    diagram_view: Optional[DiagramView] = None
    blocks: Optional[list[CandidateBlock]] = None
    connectors: Optional[list[CandidateConnector]] = None
    reasoning: Optional[str] = Field(default=None, min_length=1)

    def property_changes(self) -> dict[str, Any]:
        """``changes`` with blocks and connectors re-encoded under their JSON property names."""
        changes = self.changes()
        changes.pop("blocks", None)
        changes.pop("connectors", None)
        if self.blocks is not None:
            changes["blocksJson"] = encode_candidate_items(self.blocks)
        if self.connectors is not None:
            changes["connectorsJson"] = encode_candidate_items(self.connectors)
        return changes
