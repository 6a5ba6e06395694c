"""
Graph Data Service

Single entry point for API handlers. Wires every store around one shared
Neo4j client, cache invalidator, markdown writer and clock.
"""

from typing import Any, Optional

from reqgraph.core.neo4j_client import Neo4jClientManager
from reqgraph.repositories.architecture_repository import ArchitectureRepository
from reqgraph.repositories.baseline_repository import BaselineRepository
from reqgraph.repositories.candidate_repository import CandidateRepository
from reqgraph.repositories.diagram_candidate_repository import DiagramCandidateRepository
from reqgraph.repositories.document_repository import DocumentRepository
from reqgraph.repositories.info_repository import InfoRepository
from reqgraph.repositories.linkset_repository import LinksetRepository
from reqgraph.repositories.requirement_repository import RequirementRepository
from reqgraph.repositories.section_repository import SectionRepository
from reqgraph.repositories.tenant_repository import TenantRepository
from reqgraph.repositories.trace_link_repository import TraceLinkRepository
from reqgraph.schemas.requirements import DuplicateRepairResult, RequirementCreate, RequirementRecord
from reqgraph.services.cache_invalidation import CacheInvalidator, NullCacheInvalidator
from reqgraph.services.duplicate_repair_service import DuplicateRepairService
from reqgraph.services.markdown_mirror import FileSystemMarkdownMirror, MarkdownWriter
from reqgraph.services.reference_allocation import ReferenceAllocator
from reqgraph.utils.clock import SystemClock
from reqgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)


class GraphDataService:
    """Facade over the requirement graph stores.

    Example:
        >>> service = GraphDataService()
        >>> record = await service.requirements.create_requirement(
        ...     RequirementCreate(tenant="acme", project_key="apollo", text="The system shall ...")
        ... )
        >>> record.ref
        'REQ-APOLLO-001'
    """

    def __init__(
        self,
        neo4j_client: Any = Neo4jClientManager,
        cache: Optional[CacheInvalidator] = None,
        markdown_writer: Optional[MarkdownWriter] = None,
        clock: Optional[SystemClock] = None,
    ):
        """Initialize the facade.

        Args:
            neo4j_client: Transaction gateway shared by every store
            cache: Cache invalidation call-out (no-op when omitted)
            markdown_writer: Requirement mirror (filesystem mirror when omitted)
            clock: Timestamp and identifier source
        """
        self.cache = cache or NullCacheInvalidator()
        self.markdown_writer = markdown_writer or FileSystemMarkdownMirror()
        self.clock = clock or SystemClock()
        self.allocator = ReferenceAllocator()

        shared = {"neo4j_client": neo4j_client, "cache": self.cache, "clock": self.clock}
        self.tenants = TenantRepository(**shared)
        self.documents = DocumentRepository(allocator=self.allocator, **shared)
        self.sections = SectionRepository(allocator=self.allocator, **shared)
        self.infos = InfoRepository(**shared)
        self.requirements = RequirementRepository(
            allocator=self.allocator,
            markdown_writer=self.markdown_writer,
            **shared,
        )
        self.candidates = CandidateRepository(**shared)
        self.baselines = BaselineRepository(**shared)
        self.trace_links = TraceLinkRepository(**shared)
        self.linksets = LinksetRepository(**shared)
        self.architecture = ArchitectureRepository(**shared)
        self.diagram_candidates = DiagramCandidateRepository(**shared)
        self.duplicate_repair = DuplicateRepairService(self.requirements)

        LOGGER.debug("Graph data service initialized", extra={"client": getattr(neo4j_client, "__name__", "client")})

    async def create_requirement(self, data: RequirementCreate) -> RequirementRecord:
        return await self.requirements.create_requirement(data)

    async def repair_duplicate_refs(self, tenant: str, project_key: str) -> DuplicateRepairResult:
        """Run the duplicate ref repair for one project."""
        return await self.duplicate_repair.execute(tenant, project_key)
