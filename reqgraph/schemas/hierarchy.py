"""Tenant, project, folder, document and section records."""

from enum import Enum
from typing import Optional

from pydantic import Field

from reqgraph.schemas.common import GraphModel, GraphUpdate


class DocumentKind(str, Enum):
    """Structured documents hold requirements; surrogates wrap an uploaded file."""
    STRUCTURED = "structured"
    SURROGATE = "surrogate"


class TenantRecord(GraphModel):
    slug: str
    name: Optional[str] = None
    created_at: Optional[str] = None
    project_count: int = 0


class ProjectRecord(GraphModel):
    slug: str
    tenant_slug: str
    key: Optional[str] = None
    created_at: Optional[str] = None
    requirement_counter: int = 0
    baseline_counter: int = 0
    requirement_count: int = 0


class FolderRecord(GraphModel):
    id: str
    slug: str
    name: str
    description: Optional[str] = None
    tenant: str
    project_key: str
    parent_folder: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    deleted_at: Optional[str] = None
    document_count: int = 0
    folder_count: int = 0


class DocumentRecord(GraphModel):
    id: str
    slug: str
    name: str
    description: Optional[str] = None
    short_code: Optional[str] = None
    kind: DocumentKind = DocumentKind.STRUCTURED
    tenant: str
    project_key: str
    parent_folder: Optional[str] = None
    requirement_counter: int = 0
    original_file_name: Optional[str] = None
    stored_file_name: Optional[str] = None
    mime_type: Optional[str] = None
    file_size: Optional[int] = None
    storage_path: Optional[str] = None
    preview_path: Optional[str] = None
    preview_mime_type: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    deleted_at: Optional[str] = None
    requirement_count: int = 0


class SectionRecord(GraphModel):
    id: str
    name: str
    description: Optional[str] = None
    short_code: Optional[str] = None
    order: int = 0
    tenant: str
    project_key: str
    document_slug: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class FolderCreate(GraphModel):
    tenant: str
    project_key: str
    name: str = Field(..., min_length=1)
    slug: Optional[str] = None
    description: Optional[str] = None
    parent_folder: Optional[str] = None


class FolderUpdate(GraphUpdate):
    clearable = frozenset({"description"})

    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None


class DocumentCreate(GraphModel):
    tenant: str
    project_key: str
    name: str = Field(..., min_length=1)
    slug: Optional[str] = None
    description: Optional[str] = None
    short_code: Optional[str] = None
    kind: DocumentKind = DocumentKind.STRUCTURED
    parent_folder: Optional[str] = None
    original_file_name: Optional[str] = None
    stored_file_name: Optional[str] = None
    mime_type: Optional[str] = None
    file_size: Optional[int] = None
    storage_path: Optional[str] = None
    preview_path: Optional[str] = None
    preview_mime_type: Optional[str] = None


class DocumentUpdate(GraphUpdate):
    clearable = frozenset({"description", "short_code"})

    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    short_code: Optional[str] = None


class SectionCreate(GraphModel):
    tenant: str
    project_key: str
    document_slug: str
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    short_code: Optional[str] = None
    order: int = 0


class SectionUpdate(GraphUpdate):
    clearable = frozenset({"description", "short_code"})

    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    order: Optional[int] = None
    short_code: Optional[str] = None


class InfoRecord(GraphModel):
    """Informational text in a document; it carries a ref but is not a requirement."""
    id: str
    ref: str
    tenant: str
    project_key: str
    document_slug: str
    text: str
    title: Optional[str] = None
    section_id: Optional[str] = None
    order: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class InfoCreate(GraphModel):
    tenant: str
    project_key: str
    document_slug: str
    ref: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)
    title: Optional[str] = None
    section_id: Optional[str] = None
    order: Optional[int] = None


class InfoUpdate(GraphUpdate):
    clearable = frozenset({"title", "section_id", "order"})

    text: Optional[str] = Field(default=None, min_length=1)
    title: Optional[str] = None
    section_id: Optional[str] = None
    order: Optional[int] = None
