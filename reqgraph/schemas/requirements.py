"""Requirement, candidate and reference-integrity records."""

from enum import Enum
from typing import Optional

from pydantic import Field

from reqgraph.schemas.common import GraphModel, GraphUpdate
from reqgraph.utils.identifiers import derive_title


class RequirementPattern(str, Enum):
    """EARS sentence patterns."""
    UBIQUITOUS = "ubiquitous"
    EVENT = "event"
    STATE = "state"
    UNWANTED = "unwanted"
    OPTIONAL = "optional"


class VerificationMethod(str, Enum):
    TEST = "Test"
    ANALYSIS = "Analysis"
    INSPECTION = "Inspection"
    DEMONSTRATION = "Demonstration"


class CandidateStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class RequirementRecord(GraphModel):
    """A requirement node as stored in the graph.

    ``pattern`` and ``verification`` are kept as plain strings on read so that
    legacy values never make a record unreadable.
    """
    id: str
    hash_id: str = ""
    ref: str
    tenant: str
    project_key: str
    title: Optional[str] = None
    text: str = ""
    pattern: Optional[str] = None
    verification: Optional[str] = None
    qa_score: Optional[float] = None
    qa_verdict: Optional[str] = None
    suggestions: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    path: str
    document_slug: Optional[str] = None
    section_id: Optional[str] = None
    deleted: bool = False
    deleted_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def display_title(self) -> str:
        if self.title and self.title.strip():
            return self.title
        return derive_title(self.text)


class RequirementCreate(GraphModel):
    tenant: str
    project_key: str
    text: str = Field(..., min_length=1)
    title: Optional[str] = None
    document_slug: Optional[str] = None
    section_id: Optional[str] = None
    pattern: Optional[RequirementPattern] = None
    verification: Optional[VerificationMethod] = None
    qa_score: Optional[float] = None
    qa_verdict: Optional[str] = None
    suggestions: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)


class RequirementUpdate(GraphUpdate):
    clearable = frozenset({"pattern", "verification"})

    title: Optional[str] = None
    text: Optional[str] = Field(default=None, min_length=1)
    pattern: Optional[RequirementPattern] = None
    verification: Optional[VerificationMethod] = None
    qa_score: Optional[float] = None
    qa_verdict: Optional[str] = None
    suggestions: Optional[list[str]] = None
    tags: Optional[list[str]] = None


class RefChange(GraphModel):
    """One renumbered requirement."""
    old_ref: str
    new_ref: str
    requirement_id: str


class DuplicateGroup(GraphModel):
    """Live requirements of one project that share a ref, in keep-first order."""
    ref: str
    requirements: list[RequirementRecord]

    @property
    def count(self) -> int:
        return len(self.requirements)


class DuplicateRepairResult(GraphModel):
    fixed: int = 0
    changes: list[RefChange] = Field(default_factory=list)
    unresolved: list[str] = Field(default_factory=list)


class LinkSuggestion(GraphModel):
    ref: str
    title: str
    path: str


class CandidateRecord(GraphModel):
    id: str
    tenant: str
    project_key: str
    text: str
    status: CandidateStatus = CandidateStatus.PENDING
    qa_score: Optional[float] = None
    qa_verdict: Optional[str] = None
    suggestions: list[str] = Field(default_factory=list)
    prompt: Optional[str] = None
    source: Optional[str] = None
    query_session_id: Optional[str] = None
    requirement_id: Optional[str] = None
    requirement_ref: Optional[str] = None
    document_slug: Optional[str] = None
    section_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class CandidateCreate(GraphModel):
    tenant: str
    project_key: str
    text: str = Field(..., min_length=1)
    qa_score: Optional[float] = None
    qa_verdict: Optional[str] = None
    suggestions: list[str] = Field(default_factory=list)
    prompt: Optional[str] = None
    source: str = "llm"
    query_session_id: Optional[str] = None


class CandidateUpdate(GraphUpdate):
    text: Optional[str] = Field(default=None, min_length=1)
    status: Optional[CandidateStatus] = None
    qa_score: Optional[float] = None
    qa_verdict: Optional[str] = None
    suggestions: Optional[list[str]] = None
    requirement_id: Optional[str] = None
    requirement_ref: Optional[str] = None
    document_slug: Optional[str] = None
    section_id: Optional[str] = None
