"""Neo4j client configuration and connection management."""

from typing import Any, Awaitable, Callable, Optional, TypeVar

from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncManagedTransaction, AsyncSession

from reqgraph.core.config import settings
from reqgraph.core.exceptions import ConfigurationError
from reqgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")

TransactionWork = Callable[..., Awaitable[T]]


class Neo4jClientManager:
    """Manages the Neo4j driver, sessions and units of work."""

    _driver: Optional[AsyncDriver] = None

    # (constraint name, label, property tuple)
    UNIQUE_CONSTRAINTS = [
        ("constraint_tenant_slug_unique", "Tenant", ("slug",)),
        ("constraint_project_tenant_slug_unique", "Project", ("tenantSlug", "slug")),
        ("constraint_requirement_id_unique", "Requirement", ("id",)),
        ("constraint_document_id_unique", "Document", ("id",)),
        ("constraint_folder_id_unique", "Folder", ("id",)),
        ("constraint_section_id_unique", "DocumentSection", ("id",)),
        ("constraint_candidate_id_unique", "RequirementCandidate", ("id",)),
        ("constraint_baseline_id_unique", "Baseline", ("id",)),
        ("constraint_tracelink_id_unique", "TraceLink", ("id",)),
        ("constraint_block_id_unique", "ArchitectureBlock", ("id",)),
        ("constraint_diagram_id_unique", "ArchitectureDiagram", ("id",)),
        ("constraint_connector_id_unique", "ArchitectureConnector", ("id",)),
        ("constraint_linkset_id_unique", "DocumentLinkset", ("id",)),
        (
            "constraint_linkset_pair_unique",
            "DocumentLinkset",
            ("tenant", "projectKey", "sourceDocumentSlug", "targetDocumentSlug"),
        ),
        ("constraint_info_id_unique", "Info", ("id",)),
        ("constraint_diagram_candidate_id_unique", "DiagramCandidate", ("id",)),
    ]

    INDEXES = [
        ("idx_requirement_ref", "Requirement", ("ref",)),
        ("idx_requirement_scope", "Requirement", ("tenant", "projectKey")),
        ("idx_requirement_created_at", "Requirement", ("createdAt",)),
        ("idx_document_slug", "Document", ("slug",)),
        ("idx_document_scope", "Document", ("tenant", "projectKey")),
        ("idx_folder_scope", "Folder", ("tenant", "projectKey")),
        ("idx_candidate_scope", "RequirementCandidate", ("tenant", "projectKey")),
        ("idx_candidate_status", "RequirementCandidate", ("status",)),
        ("idx_baseline_ref", "Baseline", ("ref",)),
        ("idx_diagram_scope", "ArchitectureDiagram", ("tenant", "projectKey")),
        ("idx_info_scope", "Info", ("tenant", "projectKey")),
        ("idx_diagram_candidate_scope", "DiagramCandidate", ("tenant", "projectKey")),
    ]

    @classmethod
    async def get_driver(cls) -> AsyncDriver:
        """Get or create Neo4j driver."""
        if cls._driver is None:
            uri = settings.neo4j.uri
            if not uri:
                raise ConfigurationError("NEO4J_URI is not configured")
            options: dict[str, Any] = {"auth": (settings.neo4j.username, settings.neo4j.password)}
            # Only bolt:// and neo4j:// accept an explicit encryption flag
            if uri.startswith(("bolt://", "neo4j://")):
                options["encrypted"] = settings.neo4j.encrypted
            cls._driver = AsyncGraphDatabase.driver(uri, **options)
            LOGGER.info("Neo4j driver initialized", extra={"uri": uri})
        return cls._driver

    @classmethod
    async def close(cls) -> None:
        """Close Neo4j driver."""
        if cls._driver:
            await cls._driver.close()
            cls._driver = None
            LOGGER.info("Neo4j driver closed")

    @classmethod
    async def verify_connectivity(cls) -> None:
        driver = await cls.get_driver()
        await driver.verify_connectivity()

    @classmethod
    async def get_session(cls, database: Optional[str] = None) -> AsyncSession:
        """Get Neo4j async session."""
        driver = await cls.get_driver()
        return driver.session(database=database or settings.neo4j.database)

    @classmethod
    async def read_transaction(cls, work: TransactionWork, *args: Any) -> Any:
        """Run ``work(tx, *args)`` inside a managed read transaction.

        The session is released on every exit path. Transient failures are
        retried by the driver's managed-transaction machinery only, so ``work``
        must be safe to re-run.
        """
        async with await cls.get_session() as session:
            return await session.execute_read(work, *args)

    @classmethod
    async def write_transaction(cls, work: TransactionWork, *args: Any) -> Any:
        """Run ``work(tx, *args)`` inside a managed write transaction.

        Everything ``work`` does commits or rolls back together. Errors
        propagate unchanged to the caller.
        """
        async with await cls.get_session() as session:
            return await session.execute_write(work, *args)

    @classmethod
    async def run_query(
        cls,
        query: str,
        parameters: dict[str, Any] | None = None,
        database: str | None = None,
    ) -> list[dict[str, Any]]:
        """
        Execute a single read-only Cypher query.

        Args:
            query: Cypher query string
            parameters: Query parameters dictionary
            database: Database name (defaults to configured database)

        Returns:
            List of result records as dictionaries
        """
        parameters = parameters or {}

        async def _work(tx: AsyncManagedTransaction) -> list[dict[str, Any]]:
            result = await tx.run(query, parameters)
            return await result.data()

        try:
            async with await cls.get_session(database=database) as session:
                return await session.execute_read(_work)
        except Exception as e:
            LOGGER.error(
                "Neo4j query failed",
                extra={
                    "query": query[:100],
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            raise

    @classmethod
    async def execute_write_query(
        cls,
        query: str,
        parameters: dict[str, Any] | None = None,
        database: str | None = None,
    ) -> dict[str, Any]:
        """
        Execute a write query (CREATE, MERGE, SET, DELETE) in a transaction.

        Args:
            query: Cypher write query
            parameters: Query parameters
            database: Database name

        Returns:
            Query execution summary
        """
        parameters = parameters or {}

        async def _work(tx: AsyncManagedTransaction) -> dict[str, Any]:
            result = await tx.run(query, parameters)
            summary = await result.consume()
            return {
                "nodes_created": summary.counters.nodes_created,
                "relationships_created": summary.counters.relationships_created,
                "properties_set": summary.counters.properties_set,
                "nodes_deleted": summary.counters.nodes_deleted,
                "relationships_deleted": summary.counters.relationships_deleted,
            }

        async with await cls.get_session(database=database) as session:
            return await session.execute_write(_work)

    @classmethod
    async def ensure_constraints(cls) -> None:
        """Ensure uniqueness constraints exist for node keys."""
        driver = await cls.get_driver()

        async with driver.session(database=settings.neo4j.database) as session:
            for name, label, props in cls.UNIQUE_CONSTRAINTS:
                target = ", ".join(f"n.{prop}" for prop in props)
                if len(props) > 1:
                    target = f"({target})"
                cypher = f"CREATE CONSTRAINT {name} IF NOT EXISTS FOR (n:{label}) REQUIRE {target} IS UNIQUE"
                try:
                    result = await session.run(cypher)
                    await result.consume()
                    LOGGER.info(f"Ensured constraint for {label}", extra={"constraint": name})
                except Exception as e:
                    LOGGER.error(f"Failed to create constraint for {label}: {e}")
                    raise

    @classmethod
    async def ensure_indexes(cls) -> None:
        """Ensure lookup indexes used by list and scan queries."""
        driver = await cls.get_driver()

        async with driver.session(database=settings.neo4j.database) as session:
            for name, label, props in cls.INDEXES:
                target = ", ".join(f"n.{prop}" for prop in props)
                try:
                    result = await session.run(f"CREATE INDEX {name} IF NOT EXISTS FOR (n:{label}) ON ({target})")
                    await result.consume()
                except Exception as e:
                    LOGGER.error(f"Failed to create index {name}: {e}")
                    raise

            LOGGER.info("Ensured indexes for all graph labels")

    @classmethod
    async def list_constraints(cls) -> list[dict[str, Any]]:
        return await cls.run_query("SHOW CONSTRAINTS YIELD name, labelsOrTypes, properties, type")

    @classmethod
    async def list_indexes(cls) -> list[dict[str, Any]]:
        return await cls.run_query("SHOW INDEXES YIELD name, labelsOrTypes, properties, type")


async def init_neo4j(ensure_schema: bool = True) -> None:
    """Initialize Neo4j connection and ensure constraints and indexes."""
    await Neo4jClientManager.get_driver()
    if ensure_schema:
        await Neo4jClientManager.ensure_constraints()
        await Neo4jClientManager.ensure_indexes()


async def close_neo4j() -> None:
    """Close Neo4j connection."""
    await Neo4jClientManager.close()
