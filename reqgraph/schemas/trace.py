"""Trace link records and the document linksets that group them."""

import json
from enum import Enum
from typing import Any, Optional

from pydantic import Field, field_validator

from reqgraph.schemas.common import GraphModel, decode_json_list
from reqgraph.schemas.hierarchy import DocumentRecord
from reqgraph.schemas.requirements import RequirementRecord


class TraceLinkType(str, Enum):
    SATISFIES = "satisfies"
    DERIVES = "derives"
    VERIFIES = "verifies"
    IMPLEMENTS = "implements"
    REFINES = "refines"
    CONFLICTS = "conflicts"


class TraceLinkRecord(GraphModel):
    id: str
    source_requirement_id: str
    target_requirement_id: str
    link_type: TraceLinkType
    description: Optional[str] = None
    tenant: str
    project_key: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    source_requirement: Optional[RequirementRecord] = None
    target_requirement: Optional[RequirementRecord] = None


class TraceLinkCreate(GraphModel):
    tenant: str
    project_key: str
    source_requirement_id: str
    target_requirement_id: str
    link_type: TraceLinkType
    description: Optional[str] = None


# Linksets


class LinksetLink(GraphModel):
    id: str
    source_requirement_id: str
    target_requirement_id: str
    link_type: TraceLinkType
    description: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class LinksetLinkCreate(GraphModel):
    source_requirement_id: str
    target_requirement_id: str
    link_type: TraceLinkType
    description: Optional[str] = None


def encode_links(links: list[LinksetLink]) -> str:
    return json.dumps([link.model_dump(by_alias=True, exclude_none=True) for link in links])


class LinksetRecord(GraphModel):
    """Links between requirements of one ordered document pair.

    The links are kept on the linkset node as a JSON string property.
    """
    id: str
    tenant: str
    project_key: str
    source_document_slug: str
    target_document_slug: str
    source_document: Optional[DocumentRecord] = None
    target_document: Optional[DocumentRecord] = None
    link_count: int = 0
    links: list[LinksetLink] = Field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @field_validator("links", mode="before")
    @classmethod
    def decode_links(cls, value: Any) -> list:
        return [item for item in decode_json_list(value) if isinstance(item, dict)]


class LinksetCreate(GraphModel):
    tenant: str
    project_key: str
    source_document_slug: str = Field(..., min_length=1)
    target_document_slug: str = Field(..., min_length=1)
    links: list[LinksetLinkCreate] = Field(default_factory=list)
