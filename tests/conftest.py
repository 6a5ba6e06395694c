"""Pytest configuration and shared fixtures."""

import itertools
from typing import Any, Callable, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest


class FakeResult:
    """Stand-in for a neo4j result: rows for ``data()``, counters for ``consume()``."""

    def __init__(self, rows: Optional[list[dict]] = None, counters: Any = None):
        self._rows = rows or []
        self._counters = counters if counters is not None else make_counters()

    async def data(self) -> list[dict]:
        return [dict(row) for row in self._rows]

    async def consume(self) -> Any:
        summary = MagicMock()
        summary.counters = self._counters
        return summary


def make_counters(**values: int) -> MagicMock:
    counters = MagicMock()
    for name in (
        "nodes_created",
        "nodes_deleted",
        "relationships_created",
        "relationships_deleted",
        "properties_set",
    ):
        setattr(counters, name, values.get(name, 0))
    return counters


def _as_result(value: Any) -> FakeResult:
    if isinstance(value, FakeResult):
        return value
    if value is None:
        return FakeResult()
    return FakeResult(rows=list(value))


class FakeTransaction:
    """Managed transaction double.

    Queries matching a handler key exactly are answered by the handler;
    everything else consumes the queued results in order.
    """

    def __init__(self, results: Optional[list] = None, handlers: Optional[dict[str, Callable]] = None):
        self.results = list(results or [])
        self.handlers = handlers or {}
        self.calls: list[tuple[str, dict]] = []

    async def run(self, query: str, parameters: Optional[dict] = None) -> FakeResult:
        parameters = parameters or {}
        self.calls.append((query, parameters))
        if query in self.handlers:
            return _as_result(self.handlers[query](parameters))
        if not self.results:
            raise AssertionError(f"Unexpected query: {query.strip()[:120]}")
        return _as_result(self.results.pop(0))

    @property
    def queries(self) -> list[str]:
        return [query for query, _ in self.calls]

    def params(self, index: int = -1) -> dict:
        return self.calls[index][1]


class FakeNeo4jClient:
    """Runs units of work directly against one fake transaction."""

    def __init__(self, tx: FakeTransaction):
        self.tx = tx
        self.reads = 0
        self.writes = 0

    async def read_transaction(self, work, *args):
        self.reads += 1
        return await work(self.tx, *args)

    async def write_transaction(self, work, *args):
        self.writes += 1
        return await work(self.tx, *args)


class FixedClock:
    NOW = "2024-01-01T00:00:00+00:00"

    def __init__(self):
        self._counter = itertools.count(1)

    def now_iso(self) -> str:
        return self.NOW

    def new_hash_id(self) -> str:
        return "0123456789abcdef"

    def new_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._counter)}"


class GraphHarness:
    """Builds repositories wired to a fake transaction."""

    def __init__(self, clock: FixedClock, cache: AsyncMock):
        self.clock = clock
        self.cache = cache

    @staticmethod
    def transaction(*results: Any, handlers: Optional[dict[str, Callable]] = None) -> FakeTransaction:
        return FakeTransaction(list(results), handlers)

    @staticmethod
    def counters(**values: int) -> FakeResult:
        return FakeResult(counters=make_counters(**values))

    @staticmethod
    def client(tx: FakeTransaction) -> FakeNeo4jClient:
        return FakeNeo4jClient(tx)

    def repository(self, cls, tx: FakeTransaction, **kwargs):
        return cls(neo4j_client=self.client(tx), cache=self.cache, clock=self.clock, **kwargs)


@pytest.fixture
def fixed_clock() -> FixedClock:
    """Deterministic timestamps and ids."""
    return FixedClock()


@pytest.fixture
def cache() -> AsyncMock:
    """Recording cache invalidator."""
    invalidator = AsyncMock()
    invalidator.invalidate = AsyncMock(return_value=None)
    return invalidator


@pytest.fixture
def graph(fixed_clock, cache) -> GraphHarness:
    return GraphHarness(fixed_clock, cache)


def requirement_node(ref: str, **overrides: Any) -> dict:
    """Requirement node properties for project acme/apollo."""
    node = {
        "id": f"acme:apollo:{ref}",
        "hashId": "0123456789abcdef",
        "ref": ref,
        "tenant": "acme",
        "projectKey": "apollo",
        "title": f"Title {ref}",
        "text": f"The system shall do {ref}.",
        "path": f"acme/apollo/requirements/{ref}.md",
        "createdAt": FixedClock.NOW,
        "updatedAt": FixedClock.NOW,
    }
    node.update(overrides)
    return node


@pytest.fixture
def make_requirement() -> Callable[..., dict]:
    return requirement_node


class InMemoryProject:
    """One project's requirement graph held in dicts.

    Answers the allocation, renumbering and duplicate-repair statements so the
    allocator and repair service can be exercised end to end.
    """

    def __init__(self, tenant: str = "acme", project: str = "apollo"):
        self.tenant = tenant
        self.project = project
        self.requirement_counter = 0
        self.documents: dict[str, dict] = {}
        self.sections: dict[str, dict] = {}
        self.requirements: list[dict] = []
        self.baseline_counter = 0
        self.baselines: dict[str, dict] = {}

    def add_document(self, slug: str, short_code: Optional[str] = None, name: Optional[str] = None) -> dict:
        document = {
            "id": f"{self.tenant}:{self.project}:{slug}",
            "slug": slug,
            "name": name or slug,
            "shortCode": short_code,
            "tenant": self.tenant,
            "projectKey": self.project,
            "requirementCounter": 0,
            "deletedAt": None,
        }
        self.documents[slug] = document
        return document

    def add_section(self, section_id: str, document_slug: str, name: str, short_code: Optional[str] = None) -> dict:
        section = {"id": section_id, "documentSlug": document_slug, "name": name, "shortCode": short_code}
        self.sections[section_id] = section
        return section

    def add_requirement(self, ref: str, created_at: str, **overrides: Any) -> dict:
        node = requirement_node(ref, createdAt=created_at, tenant=self.tenant, projectKey=self.project)
        node["id"] = overrides.pop("id", f"{self.tenant}:{self.project}:{ref}")
        node["path"] = f"{self.tenant}/{self.project}/requirements/{ref}.md"
        node.update(overrides)
        self.requirements.append(node)
        return node

    def refs(self, include_deleted: bool = False) -> list[str]:
        return [r["ref"] for r in self.requirements if include_deleted or not r.get("deleted")]

    def by_id(self, requirement_id: str) -> dict:
        return next(r for r in self.requirements if r["id"] == requirement_id)

    def owns(self, params: dict) -> bool:
        return params.get("tenantSlug") == self.tenant and params.get("projectSlug") == self.project

    # Statement handlers

    def claim(self, params: dict) -> list[dict]:
        document_slug = params["documentSlug"]
        section_id = params["sectionId"]
        if document_slug is None and section_id in self.sections:
            document_slug = self.sections[section_id]["documentSlug"]
        document = self.documents.get(document_slug) if document_slug else None
        section = self.sections.get(section_id) if section_id else None
        if section is not None and (document is None or section["documentSlug"] != document["slug"]):
            section = None
        if document is not None:
            document["requirementCounter"] += 1
            counter = document["requirementCounter"]
        else:
            if document_slug is None:
                self.requirement_counter += 1
            counter = self.requirement_counter
        return [{
            "requestedDocument": document_slug,
            "documentSlug": document["slug"] if document else None,
            "documentShortCode": document["shortCode"] if document else None,
            "documentDeletedAt": document["deletedAt"] if document else None,
            "sectionId": section["id"] if section else None,
            "sectionShortCode": section["shortCode"] if section else None,
            "sectionName": section["name"] if section else None,
            "counter": counter,
        }]

    def refs_with_prefix(self, params: dict) -> list[dict]:
        return [
            {"id": r["id"], "ref": r["ref"]}
            for r in self.requirements
            if r["ref"].startswith(params["prefix"] + "-") or r["id"].startswith(params["idPrefix"] + "-")
        ]

    def sync_document_counter(self, params: dict) -> None:
        document = self.documents[params["documentSlug"]]
        document["requirementCounter"] = max(document["requirementCounter"], params["number"])

    def sync_project_counter(self, params: dict) -> None:
        self.requirement_counter = max(self.requirement_counter, params["number"])

    def create_requirement(self, params: dict) -> list[dict]:
        node = dict(params["properties"])
        self.requirements.append(node)
        return [{"requirement": dict(node)}]

    def _prefix_row(self, requirement: dict) -> dict:
        document = self.documents.get(requirement.get("documentSlug"))
        section = self.sections.get(requirement.get("sectionId"))
        return {
            "id": requirement["id"],
            "ref": requirement["ref"],
            "documentSlug": document["slug"] if document else None,
            "documentShortCode": document["shortCode"] if document else None,
            "sectionShortCode": section["shortCode"] if section else None,
            "sectionName": section["name"] if section else None,
        }

    def document_prefixes(self, params: dict) -> list[dict]:
        if not self.owns(params):
            return []
        rows = [self._prefix_row(r) for r in self.requirements if r.get("documentSlug") == params["documentSlug"]]
        return sorted(rows, key=lambda row: row["ref"])

    def section_prefixes(self, params: dict) -> list[dict]:
        if not self.owns(params):
            return []
        rows = [self._prefix_row(r) for r in self.requirements if r.get("sectionId") == params["sectionId"]]
        return sorted(rows, key=lambda row: row["ref"])

    def project_refs(self, params: dict) -> list[dict]:
        if not self.owns(params):
            return []
        return [{"id": r["id"], "ref": r["ref"]} for r in self.requirements]

    def apply_ref_changes(self, params: dict) -> list[dict]:
        updated = []
        if not self.owns(params):
            return []
        for change in params["changes"]:
            requirement = self.by_id(change["id"])
            requirement.update({"ref": change["ref"], "path": change["path"], "updatedAt": params["now"]})
            updated.append({"requirement": dict(requirement)})
        return updated

    def find_duplicate_refs(self, params: dict) -> list[dict]:
        live = sorted(
            (r for r in self.requirements if not r.get("deleted")),
            key=lambda r: (r["createdAt"], r["id"]),
        )
        groups: dict[str, list[dict]] = {}
        for requirement in live:
            groups.setdefault(requirement["ref"], []).append(dict(requirement))
        return [
            {"ref": ref, "requirements": members}
            for ref, members in sorted(groups.items())
            if len(members) > 1
        ]

    def update_document(self, params: dict) -> list[dict]:
        document = self.documents.get(params["documentSlug"]) if self.owns(params) else None
        if document is None:
            return []
        for key in ("name", "description", "shortCode"):
            if key in params:
                document[key] = params[key]
        return [{"document": dict(document), "requirementCount": 0}]

    def update_section(self, params: dict) -> list[dict]:
        section = self.sections.get(params["sectionId"]) if self.owns(params) else None
        if section is None:
            return []
        for key in ("name", "shortCode", "description", "order"):
            if key in params:
                section[key] = params[key]
        node = dict(section, tenant=self.tenant, projectKey=self.project)
        return [{"section": node, "documentSlug": section["documentSlug"]}]

    def update_requirement(self, params: dict) -> list[dict]:
        live = [r for r in self.requirements if r["id"] == params["requirementId"] and not r.get("deleted")]
        if not self.owns(params) or not live:
            return []
        for key in ("title", "text", "pattern", "verification", "qaScore", "qaVerdict", "suggestions", "tags"):
            if key in params:
                live[0][key] = params[key]
        live[0]["updatedAt"] = params["now"]
        return [{"requirement": dict(live[0])}]

    def soft_delete_requirement(self, params: dict) -> list[dict]:
        live = [r for r in self.requirements if r["id"] == params["requirementId"] and not r.get("deleted")]
        if not self.owns(params) or not live:
            return []
        live[0].update({"deleted": True, "deletedAt": params["now"], "updatedAt": params["now"]})
        return [{"requirement": dict(live[0])}]

    def snapshot_live_refs(self, params: dict) -> list[dict]:
        self.baseline_counter += 1
        live = [{"id": r["id"], "ref": r["ref"]} for r in self.requirements if not r.get("deleted")]
        return [{"counter": self.baseline_counter, "requirements": live}]

    def persist_baseline(self, params: dict) -> list[dict]:
        node = dict(params["properties"], requirementRefs=list(params["properties"]["requirementRefs"]))
        self.baselines[node["ref"]] = node
        return [{"baseline": dict(node), "snapshotted": len(params["requirementIds"])}]

    def get_baseline(self, params: dict) -> list[dict]:
        node = self.baselines.get(params["ref"]) if self.owns(params) else None
        return [{"baseline": dict(node)}] if node else []

    def handlers(self) -> dict[str, Callable]:
        from reqgraph.repositories.queries import requirements as queries
        from reqgraph.repositories.queries import traceability as trace_queries

        return {
            queries.CLAIM_ALLOCATION_COUNTER: self.claim,
            queries.REFS_WITH_PREFIX: self.refs_with_prefix,
            queries.SYNC_DOCUMENT_COUNTER: self.sync_document_counter,
            queries.SYNC_PROJECT_COUNTER: self.sync_project_counter,
            queries.CREATE_REQUIREMENT: self.create_requirement,
            queries.DOCUMENT_REQUIREMENT_PREFIXES: self.document_prefixes,
            queries.SECTION_REQUIREMENT_PREFIXES: self.section_prefixes,
            queries.PROJECT_REFS: self.project_refs,
            queries.APPLY_REF_CHANGES: self.apply_ref_changes,
            queries.FIND_DUPLICATE_REFS: self.find_duplicate_refs,
            queries.SOFT_DELETE_REQUIREMENT: self.soft_delete_requirement,
            trace_queries.CREATE_BASELINE: self.snapshot_live_refs,
            trace_queries.PERSIST_BASELINE: self.persist_baseline,
            trace_queries.GET_BASELINE: self.get_baseline,
        }


@pytest.fixture
def memory_project() -> InMemoryProject:
    return InMemoryProject()


class InMemoryArchitecture:
    """Diagrams, shared block definitions, HAS_BLOCK placements and connectors of one project.

    Placements are keyed by ``(diagram id, block id)`` so one definition can be
    drawn differently on every diagram.
    """

    def __init__(self, tenant: str = "acme", project: str = "apollo"):
        self.tenant = tenant
        self.project = project
        self.diagrams: dict[str, dict] = {}
        self.blocks: dict[str, dict] = {}
        self.placements: dict[tuple[str, str], dict] = {}
        self.connectors: dict[str, dict] = {}

    def owns(self, params: dict) -> bool:
        return params.get("tenantSlug") == self.tenant and params.get("projectSlug") == self.project

    def _diagram(self, params: dict) -> Optional[dict]:
        return self.diagrams.get(params["diagramId"]) if self.owns(params) else None

    def _placed_row(self, diagram_id: str, block_id: str) -> dict:
        return {
            "block": dict(self.blocks[block_id]),
            "placement": dict(self.placements[(diagram_id, block_id)]),
            "documentIds": [],
        }

    def _drop_connectors(self, matches: Callable[[dict], bool]) -> list[dict]:
        dropped = [connector for connector in self.connectors.values() if matches(connector)]
        for connector in dropped:
            del self.connectors[connector["id"]]
        return dropped

    def connectors_on(self, diagram_id: str) -> list[dict]:
        return [c for c in self.connectors.values() if c["diagramId"] == diagram_id]

    # Statement handlers

    def create_diagram(self, params: dict) -> list[dict]:
        node = dict(params["properties"])
        self.diagrams[node["id"]] = node
        return [{"diagram": dict(node)}]

    def create_block(self, params: dict) -> list[dict]:
        if self._diagram(params) is None:
            return []
        node = dict(params["properties"])
        self.blocks[node["id"]] = node
        self.placements[(params["diagramId"], node["id"])] = dict(
            params["placement"], diagramId=params["diagramId"], createdAt=params["now"], updatedAt=params["now"]
        )
        return [{"block": dict(node), "placement": dict(self.placements[(params["diagramId"], node["id"])])}]

    def place_existing_block(self, params: dict) -> list[dict]:
        if self._diagram(params) is None or params["blockId"] not in self.blocks:
            return []
        rel = self.placements.setdefault((params["diagramId"], params["blockId"]), {})
        rel.update(params["placement"])
        rel.update(diagramId=params["diagramId"], updatedAt=params["now"])
        rel.setdefault("createdAt", params["now"])
        return [self._placed_row(params["diagramId"], params["blockId"])]

    def get_placed_block(self, params: dict) -> list[dict]:
        key = (params["diagramId"], params["blockId"])
        if self._diagram(params) is None or key not in self.placements:
            return []
        return [self._placed_row(*key)]

    def list_blocks(self, params: dict) -> list[dict]:
        if self._diagram(params) is None:
            return []
        placed = [block_id for diagram_id, block_id in self.placements if diagram_id == params["diagramId"]]
        return [self._placed_row(params["diagramId"], block_id) for block_id in placed]

    def get_block_definition(self, params: dict) -> list[dict]:
        block = self.blocks.get(params["blockId"]) if self.owns(params) else None
        return [{"block": dict(block), "documentIds": []}] if block else []

    def update_block_definition(self, params: dict) -> list[dict]:
        block = self.blocks.get(params["blockId"]) if self.owns(params) else None
        if block is None:
            return []
        for key in ("name", "kind", "stereotype", "description", "ports"):
            if key in params:
                block[key] = params[key]
        return [{"block": dict(block)}]

    def update_block_placement(self, params: dict) -> list[dict]:
        rel = self.placements.get((params["diagramId"], params["blockId"]))
        if self._diagram(params) is None or rel is None:
            return []
        rel.update(params["placement"], updatedAt=params["now"])
        return [{"placement": dict(rel)}]

    def delete_block_placement(self, params: dict) -> FakeResult:
        key = (params["diagramId"], params["blockId"])
        if self._diagram(params) is None or key not in self.placements:
            return FakeResult(counters=make_counters())
        del self.placements[key]
        dropped = self._drop_connectors(
            lambda c: c["diagramId"] == key[0] and key[1] in (c["source"], c["target"])
        )
        return FakeResult(counters=make_counters(
            nodes_deleted=len(dropped),
            relationships_deleted=1 + len(dropped),
        ))

    def delete_stale_port_connectors(self, params: dict) -> list[dict]:
        if not self.owns(params):
            return []
        block_id, kept = params["blockId"], set(params["portIds"])

        def stale(connector: dict) -> bool:
            source_port = connector.get("sourcePortId")
            target_port = connector.get("targetPortId")
            return (connector["source"] == block_id and source_port is not None and source_port not in kept) or (
                connector["target"] == block_id and target_port is not None and target_port not in kept
            )

        removed: dict[str, int] = {}
        for connector in self._drop_connectors(stale):
            removed[connector["diagramId"]] = removed.get(connector["diagramId"], 0) + 1
        return [{"diagramId": diagram_id, "removed": count} for diagram_id, count in removed.items()]

    def connector_context(self, params: dict) -> list[dict]:
        if self._diagram(params) is None:
            return []
        blocks = [
            {"id": block_id, "ports": self.blocks[block_id].get("ports")}
            for block_id in dict.fromkeys([params["source"], params["target"]])
            if (params["diagramId"], block_id) in self.placements
        ]
        duplicates = [
            c for c in self.connectors_on(params["diagramId"])
            if (c["source"], c["target"], c["kind"]) == (params["source"], params["target"], params["kind"])
            and (c.get("sourcePortId") or "") == (params["sourcePortId"] or "")
            and (c.get("targetPortId") or "") == (params["targetPortId"] or "")
            and c["id"] != params["excludeId"]
        ]
        return [{"blocks": blocks, "duplicates": len(duplicates)}]

    def create_connector(self, params: dict) -> list[dict]:
        node = dict(params["properties"], diagramId=params["diagramId"])
        self.connectors[node["id"]] = node
        return [{"connector": dict(node)}]

    def list_connectors(self, params: dict) -> list[dict]:
        if self._diagram(params) is None:
            return []
        return [{"connector": dict(c)} for c in self.connectors_on(params["diagramId"])]

    def handlers(self) -> dict[str, Callable]:
        from reqgraph.repositories.queries import architecture as queries

        return {
            queries.CREATE_DIAGRAM: self.create_diagram,
            queries.CREATE_BLOCK: self.create_block,
            queries.PLACE_EXISTING_BLOCK: self.place_existing_block,
            queries.GET_PLACED_BLOCK: self.get_placed_block,
            queries.LIST_BLOCKS: self.list_blocks,
            queries.GET_BLOCK_DEFINITION: self.get_block_definition,
            queries.UPDATE_BLOCK_PLACEMENT: self.update_block_placement,
            queries.DELETE_BLOCK_PLACEMENT: self.delete_block_placement,
            queries.DELETE_STALE_PORT_CONNECTORS: self.delete_stale_port_connectors,
            queries.CONNECTOR_CONTEXT: self.connector_context,
            queries.CREATE_CONNECTOR: self.create_connector,
            queries.LIST_CONNECTORS: self.list_connectors,
        }


@pytest.fixture
def memory_architecture() -> InMemoryArchitecture:
    return InMemoryArchitecture()
