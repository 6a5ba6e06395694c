"""Baseline snapshot records."""

from typing import Optional

from pydantic import Field

from reqgraph.schemas.common import GraphModel


class BaselineRecord(GraphModel):
    """Immutable snapshot; ``requirement_refs`` is a frozen copy, not a live view."""
    id: str
    ref: str
    tenant: str
    project_key: str
    label: Optional[str] = None
    author: Optional[str] = None
    requirement_refs: list[str] = Field(default_factory=list)
    created_at: Optional[str] = None


class BaselineCreate(GraphModel):
    tenant: str
    project_key: str
    label: Optional[str] = None
    author: Optional[str] = None
