"""
Markdown mirror of requirements.

Each requirement is mirrored to ``<root>/<tenant>/<project>/requirements/<ref>.md``
as YAML front matter followed by the requirement text. Mirroring runs after the
graph transaction commits; the graph stays the source of truth.
"""

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import yaml

from reqgraph.core.config import settings
from reqgraph.schemas.requirements import RequirementRecord
from reqgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)

MarkdownWriter = Callable[[RequirementRecord], Awaitable[None]]


def build_front_matter(requirement: RequirementRecord) -> dict[str, Any]:
    """Front matter fields in the order they appear in the file."""
    return {
        "id": requirement.id,
        "ref": requirement.ref,
        "title": requirement.display_title,
        "tenant": requirement.tenant,
        "project": requirement.project_key,
        "pattern": requirement.pattern,
        "verification": requirement.verification,
        "qa": {
            "score": requirement.qa_score,
            "verdict": requirement.qa_verdict,
            "suggestions": list(requirement.suggestions),
        },
        "tags": list(requirement.tags),
        "createdAt": requirement.created_at,
        "updatedAt": requirement.updated_at,
    }


def render_requirement_markdown(requirement: RequirementRecord) -> str:
    front_matter = yaml.safe_dump(
        build_front_matter(requirement),
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
    return f"---\n{front_matter}---\n\n{requirement.text.strip()}\n"


class FileSystemMarkdownMirror:
    """Writes requirement markdown files below a workspace root."""

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or settings.workspace_root)

    def path_for(self, requirement: RequirementRecord) -> Path:
        return self.root / requirement.path

    async def __call__(self, requirement: RequirementRecord) -> None:
        content = render_requirement_markdown(requirement)
        path = self.path_for(requirement)
        await asyncio.to_thread(self._write, path, content)
        LOGGER.debug("Requirement mirrored", extra={"ref": requirement.ref, "path": str(path)})

    @staticmethod
    def _write(path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
