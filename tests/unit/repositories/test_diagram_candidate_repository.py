"""Tests for diagram candidates."""

import json

import pytest

from reqgraph.core.exceptions import ConflictError, NotFoundError, ValidationError
from reqgraph.repositories.diagram_candidate_repository import DiagramCandidateRepository
from reqgraph.repositories.queries import architecture as queries
from reqgraph.schemas.architecture import (
    CandidateBlock,
    CandidateConnector,
    DiagramCandidateCreate,
    DiagramCandidateRecord,
    DiagramCandidateUpdate,
)
from reqgraph.utils.cypher import with_assignments

BLOCKS = [
    {"name": "Radio", "kind": "subsystem", "positionX": 100, "positionY": 80,
     "ports": [{"id": "p-tlm", "name": "TLM", "direction": "out"}]},
    {"id": "block-7", "name": "Bus", "kind": "component", "positionX": 400, "positionY": 80},
]
CONNECTORS = [{"source": "Radio", "target": "block-7", "kind": "flow", "sourcePortId": "p-tlm"}]


def _node(**overrides):
    node = {
        "id": "diagcand-1",
        "tenant": "acme",
        "projectKey": "apollo",
        "status": "pending",
        "action": "create",
        "diagramName": "Comms",
        "diagramView": "block",
        "blocksJson": json.dumps(BLOCKS),
        "connectorsJson": json.dumps(CONNECTORS),
        "reasoning": "Telemetry path is undocumented.",
        "createdAt": "2024-01-01T00:00:00+00:00",
        "updatedAt": "2024-01-01T00:00:00+00:00",
    }
    node.update(overrides)
    return node


def _create(**kwargs):
    values = {
        "tenant": "Acme",
        "project_key": "Apollo",
        "action": "create",
        "diagram_name": "Comms",
        "blocks": [CandidateBlock.model_validate(block) for block in BLOCKS],
        "connectors": [CandidateConnector.model_validate(connector) for connector in CONNECTORS],
        "reasoning": "Telemetry path is undocumented.",
    }
    values.update(kwargs)
    return DiagramCandidateCreate(**values)


@pytest.mark.asyncio
async def test_create_diagram_candidate(graph, cache):
    tx = graph.transaction([{"candidate": _node()}])
    repository = graph.repository(DiagramCandidateRepository, tx)

    candidate = await repository.create_diagram_candidate(_create())

    assert candidate.status == "pending"
    assert [block.name for block in candidate.blocks] == ["Radio", "Bus"]
    assert candidate.blocks[0].ports[0].direction == "out"
    assert candidate.connectors[0].source_port_id == "p-tlm"
    params = tx.params()
    assert params["tenantSlug"] == "acme"
    assert params["tenantName"] == "Acme"
    properties = params["properties"]
    assert properties["id"] == "diagcand-1"
    assert properties["diagramView"] == "block"
    assert "diagramId" not in properties
    stored = json.loads(properties["blocksJson"])
    assert stored[1]["id"] == "block-7"
    assert "id" not in stored[0]
    assert json.loads(properties["connectorsJson"])[0]["sourcePortId"] == "p-tlm"
    cache.invalidate.assert_awaited_once_with("diagram_candidates", "acme", "apollo")


@pytest.mark.asyncio
@pytest.mark.parametrize("action", ["update", "extend"])
async def test_changing_proposal_must_name_a_diagram(graph, action):
    tx = graph.transaction()
    repository = graph.repository(DiagramCandidateRepository, tx)

    with pytest.raises(ValidationError, match=action):
        await repository.create_diagram_candidate(_create(action=action))

    assert tx.calls == []


@pytest.mark.asyncio
async def test_extend_proposal_keeps_target_diagram(graph):
    tx = graph.transaction([{"candidate": _node(action="extend", diagramId="diagram-3")}])
    repository = graph.repository(DiagramCandidateRepository, tx)

    candidate = await repository.create_diagram_candidate(_create(action="extend", diagram_id="diagram-3"))

    assert candidate.diagram_id == "diagram-3"
    assert tx.params()["properties"]["diagramId"] == "diagram-3"


def test_unknown_action_is_rejected():
    with pytest.raises(ValueError):
        _create(action="merge")


@pytest.mark.asyncio
async def test_list_diagram_candidates(graph):
    tx = graph.transaction([{"candidate": _node()}, {"candidate": _node(id="diagcand-2", blocksJson="garbage")}])
    repository = graph.repository(DiagramCandidateRepository, tx)

    candidates = await repository.list_diagram_candidates("acme", "apollo", limit=10)

    assert [candidate.id for candidate in candidates] == ["diagcand-1", "diagcand-2"]
    assert candidates[1].blocks == []
    assert tx.queries == [queries.LIST_DIAGRAM_CANDIDATES]
    assert tx.params()["limit"] == 10
    assert tx.params()["offset"] == 0


@pytest.mark.asyncio
async def test_get_diagram_candidate_is_project_scoped(graph):
    tx = graph.transaction([])
    repository = graph.repository(DiagramCandidateRepository, tx)

    with pytest.raises(NotFoundError, match="diagcand-1"):
        await repository.get_diagram_candidate("globex", "zeus", "diagcand-1")

    assert tx.params() == {"tenantSlug": "globex", "projectSlug": "zeus", "candidateId": "diagcand-1"}


@pytest.mark.asyncio
async def test_reject_diagram_candidate(graph, cache):
    updates = DiagramCandidateUpdate(status="rejected")
    tx = graph.transaction([{"candidate": _node(status="rejected")}])
    repository = graph.repository(DiagramCandidateRepository, tx)

    candidate = await repository.update_diagram_candidate("acme", "apollo", "diagcand-1", updates)

    assert candidate.status == "rejected"
    assert tx.queries == [with_assignments(queries.UPDATE_DIAGRAM_CANDIDATE, "candidate", {"status": "rejected"})]
    cache.invalidate.assert_awaited_once_with("diagram_candidates", "acme", "apollo")


@pytest.mark.asyncio
async def test_editing_blocks_rewrites_stored_json(graph):
    updates = DiagramCandidateUpdate(blocks=[CandidateBlock(name="Antenna", kind="component")])
    tx = graph.transaction([{"candidate": _node(blocksJson='[{"name": "Antenna", "kind": "component"}]')}])
    repository = graph.repository(DiagramCandidateRepository, tx)

    candidate = await repository.update_diagram_candidate("acme", "apollo", "diagcand-1", updates)

    params = tx.params()
    assert "blocks" not in params
    assert json.loads(params["blocksJson"]) == [
        {"name": "Antenna", "kind": "component", "positionX": 0, "positionY": 0, "ports": []},
    ]
    assert "connectorsJson" not in params
    assert [block.name for block in candidate.blocks] == ["Antenna"]


@pytest.mark.asyncio
async def test_empty_update_is_rejected(graph):
    tx = graph.transaction()
    repository = graph.repository(DiagramCandidateRepository, tx)

    with pytest.raises(ConflictError):
        await repository.update_diagram_candidate("acme", "apollo", "diagcand-1", DiagramCandidateUpdate())

    assert tx.calls == []


@pytest.mark.asyncio
async def test_update_missing_diagram_candidate_raises(graph, cache):
    repository = graph.repository(DiagramCandidateRepository, graph.transaction([]))

    with pytest.raises(NotFoundError):
        await repository.update_diagram_candidate(
            "acme", "apollo", "diagcand-9", DiagramCandidateUpdate(status="accepted"),
        )

    cache.invalidate.assert_not_awaited()


def test_clearing_target_diagram_writes_null():
    updates = DiagramCandidateUpdate(diagram_id=None, reasoning="Start a fresh diagram.")

    assert updates.property_changes() == {"diagramId": None, "reasoning": "Start a fresh diagram."}


def test_record_from_node_without_json():
    record = DiagramCandidateRecord.from_node(_node(blocksJson=None, connectorsJson=None))

    assert record.blocks == []
    assert record.connectors == []
