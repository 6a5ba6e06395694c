from .architecture import (
    BlockCreate,
    BlockKind,
    BlockLibraryEntry,
    BlockPort,
    BlockRecord,
    BlockUpdate,
    CandidateBlock,
    CandidateConnector,
    ConnectorCreate,
    ConnectorKind,
    ConnectorRecord,
    ConnectorUpdate,
    DiagramCandidateAction,
    DiagramCandidateCreate,
    DiagramCandidateRecord,
    DiagramCandidateStatus,
    DiagramCandidateUpdate,
    DiagramCreate,
    DiagramRecord,
    DiagramUpdate,
    DiagramView,
)
from .baselines import BaselineCreate, BaselineRecord
from .hierarchy import (
    DocumentCreate,
    DocumentKind,
    DocumentRecord,
    DocumentUpdate,
    FolderCreate,
    FolderRecord,
    FolderUpdate,
    InfoCreate,
    InfoRecord,
    InfoUpdate,
    ProjectRecord,
    SectionCreate,
    SectionRecord,
    SectionUpdate,
    TenantRecord,
)
from .requirements import (
    CandidateCreate,
    CandidateRecord,
    CandidateStatus,
    CandidateUpdate,
    DuplicateGroup,
    DuplicateRepairResult,
    LinkSuggestion,
    RefChange,
    RequirementCreate,
    RequirementPattern,
    RequirementRecord,
    RequirementUpdate,
    VerificationMethod,
)
from .trace import (
    LinksetCreate,
    LinksetLink,
    LinksetLinkCreate,
    LinksetRecord,
    TraceLinkCreate,
    TraceLinkRecord,
    TraceLinkType,
)

__all__ = [
    "BaselineCreate",
    "BaselineRecord",
    "BlockCreate",
    "BlockKind",
    "BlockLibraryEntry",
    "BlockPort",
    "BlockRecord",
    "BlockUpdate",
    "CandidateBlock",
    "CandidateConnector",
    "CandidateCreate",
    "CandidateRecord",
    "CandidateStatus",
    "CandidateUpdate",
    "ConnectorCreate",
    "ConnectorKind",
    "ConnectorRecord",
    "ConnectorUpdate",
    "DiagramCandidateAction",
    "DiagramCandidateCreate",
    "DiagramCandidateRecord",
    "DiagramCandidateStatus",
    "DiagramCandidateUpdate",
    "DiagramCreate",
    "DiagramRecord",
    "DiagramUpdate",
    "DiagramView",
    "DocumentCreate",
    "DocumentKind",
    "DocumentRecord",
    "DocumentUpdate",
    "DuplicateGroup",
    "DuplicateRepairResult",
    "FolderCreate",
    "FolderRecord",
    "FolderUpdate",
    "InfoCreate",
    "InfoRecord",
    "InfoUpdate",
    "LinkSuggestion",
    "LinksetCreate",
    "LinksetLink",
    "LinksetLinkCreate",
    "LinksetRecord",
    "ProjectRecord",
    "RefChange",
    "RequirementCreate",
    "RequirementPattern",
    "RequirementRecord",
    "RequirementUpdate",
    "SectionCreate",
    "SectionRecord",
    "SectionUpdate",
    "TenantRecord",
    "TraceLinkCreate",
    "TraceLinkRecord",
    "TraceLinkType",
    "VerificationMethod",
]
