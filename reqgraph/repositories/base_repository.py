"""Shared plumbing for the graph repositories."""

from typing import Any, Optional

from reqgraph.core.config import settings
from reqgraph.core.exceptions import AppError, ValidationError
from reqgraph.core.neo4j_client import Neo4jClientManager, TransactionWork
from reqgraph.services.cache_invalidation import CacheInvalidator, NullCacheInvalidator
from reqgraph.utils.clock import SystemClock
from reqgraph.utils.identifiers import slugify
from reqgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)


class BaseGraphRepository:
    """Base repository for the graph stores.

    Every public method of a subclass runs as exactly one read or write
    transaction through the shared client. Cache invalidation is announced
    after the transaction commits and never fails the operation.
    """

    def __init__(
        self,
        neo4j_client: Any = Neo4jClientManager,
        cache: Optional[CacheInvalidator] = None,
        clock: Optional[SystemClock] = None,
    ):
        """Initialize the repository.

        Args:
            neo4j_client: Object exposing ``read_transaction``/``write_transaction``
            cache: Cache invalidation call-out
            clock: Timestamp and identifier source
        """
        self.neo4j_client = neo4j_client
        self.cache = cache or NullCacheInvalidator()
        self.clock = clock or SystemClock()
        self.logger = LOGGER

    async def _read(self, work: TransactionWork, *args: Any) -> Any:
        return await self.neo4j_client.read_transaction(work, *args)

    async def _write(self, work: TransactionWork, *args: Any) -> Any:
        try:
            return await self.neo4j_client.write_transaction(work, *args)
        except AppError:
            raise
        except Exception as e:
            self.logger.error(
                f"Graph write failed: {str(e)}",
                exc_info=True,
                extra={"repository": self.__class__.__name__, "operation": getattr(work, "__name__", "work")},
            )
            raise

    async def _invalidate(self, scope: str, *keys: Optional[str]) -> None:
        """Announce a stale cache scope; failures are logged and dropped."""
        key_values = tuple(key for key in keys if key)
        try:
            await self.cache.invalidate(scope, *key_values)
        except Exception as e:
            self.logger.warning(
                f"Cache invalidation failed: {str(e)}",
                exc_info=True,
                extra={"scope": scope, "keys": key_values},
            )

    @staticmethod
    def _scope(tenant: str, project_key: str) -> tuple[str, str]:
        return slugify(tenant or settings.default_tenant), slugify(project_key)

    @staticmethod
    def _page(limit: Optional[int] = None, offset: Optional[int] = None) -> tuple[int, int]:
        """Clamp a page request to the configured bounds."""
        pagination = settings.pagination
        resolved_limit = pagination.default_limit if limit is None else limit
        resolved_offset = offset or 0
        if resolved_limit < 1 or resolved_offset < 0:
            raise ValidationError(f"Invalid page request: limit={limit}, offset={offset}")
        return min(resolved_limit, pagination.max_limit), resolved_offset
