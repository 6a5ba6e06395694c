"""Base models shared by every graph record."""

import json
from typing import Any, ClassVar, Mapping

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def decode_json_list(value: Any) -> list:
    """Lists of maps are stored as JSON string properties; tolerate plain lists and junk."""
    if not value:
        return []
    if isinstance(value, list):
        return value
    try:
        decoded = json.loads(str(value))
    except ValueError:
        return []
    return decoded if isinstance(decoded, list) else []


class GraphModel(BaseModel):
    """Snake_case in Python, camelCase property names in the graph."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        use_enum_values=True,
        validate_default=True,
    )

    @classmethod
    def from_neo4j(cls, node: Mapping[str, Any], **extra: Any):
        """Construct from a node (or its property dict) plus computed columns."""
        return cls.model_validate({**dict(node), **extra})

    def to_properties(self, exclude_none: bool = False) -> dict[str, Any]:
        """Graph property map keyed by camelCase names."""
        return self.model_dump(by_alias=True, exclude_none=exclude_none)


class GraphUpdate(GraphModel):
    """Partial update: only fields explicitly given a value are written.

    Fields named in ``clearable`` may also be passed an explicit None. The None
    is written as-is, and Neo4j removes a property set to null.
    """

    clearable: ClassVar[frozenset[str]] = frozenset()

    def cleared(self) -> set[str]:
        """Clearable fields the caller explicitly set to None."""
        return {name for name in self.clearable & self.model_fields_set if getattr(self, name) is None}

    def changes(self) -> dict[str, Any]:
        changes = self.model_dump(by_alias=True, exclude_none=True)
        fields = type(self).model_fields
        for name in self.cleared():
            changes[fields[name].alias or name] = None
        return changes
