"""Cache invalidation call-out.

The graph layer owns no cache. After every successful write it tells the
caller's cache which scope went stale, keyed by tenant and project (plus a
document slug or diagram id where relevant).
"""

from enum import Enum
from typing import Protocol

from reqgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)


class CacheScope(str, Enum):
    REQUIREMENTS = "requirements"
    DOCUMENTS = "documents"
    FOLDERS = "folders"
    SECTIONS = "sections"
    BASELINES = "baselines"
    TRACE_LINKS = "trace_links"
    ARCHITECTURE = "architecture"
    CANDIDATES = "candidates"
    TENANTS = "tenants"
    LINKSETS = "linksets"
    INFOS = "infos"
    DIAGRAM_CANDIDATES = "diagram_candidates"


class CacheInvalidator(Protocol):
    async def invalidate(self, scope: str, *keys: str) -> None:
        ...


class NullCacheInvalidator:
    """Default invalidator for deployments without a cache."""

    async def invalidate(self, scope: str, *keys: str) -> None:
        LOGGER.debug("Cache invalidation skipped", extra={"scope": scope, "keys": keys})
