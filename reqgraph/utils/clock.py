"""Clock and identifier source injected into the graph stores."""

import secrets
import uuid
from datetime import datetime, timezone


class SystemClock:
    """Wall-clock timestamps and random identifiers."""

    def now_iso(self) -> str:
        """Current UTC time as an ISO-8601 string (stored verbatim on nodes)."""
        return datetime.now(timezone.utc).isoformat()

    def new_hash_id(self) -> str:
        """Opaque, immutable requirement hash id (16 hex chars)."""
        return secrets.token_hex(8)

    def new_id(self, prefix: str) -> str:
        """Random node id such as ``block-3f2a...``."""
        return f"{prefix}-{uuid.uuid4().hex}"
