"""Tests for trace links."""

import pytest

from reqgraph.core.exceptions import NotFoundError, ValidationError
from reqgraph.repositories.queries import traceability as queries
from reqgraph.repositories.trace_link_repository import TraceLinkRepository
from reqgraph.schemas.trace import TraceLinkCreate

SOURCE = "acme:apollo:URD-001"
TARGET = "acme:apollo:SRD-001"


def _link_row(make_requirement, link_type="satisfies"):
    return {
        "link": {
            "id": "trace-1",
            "sourceRequirementId": SOURCE,
            "targetRequirementId": TARGET,
            "linkType": link_type,
            "tenant": "acme",
            "projectKey": "apollo",
        },
        "sourceReq": make_requirement("URD-001"),
        "targetReq": make_requirement("SRD-001"),
        "sourceDocumentSlug": "urd",
        "targetDocumentSlug": None,
    }


def _create(link_type="satisfies", target=TARGET):
    return TraceLinkCreate(
        tenant="acme",
        project_key="apollo",
        source_requirement_id=SOURCE,
        target_requirement_id=target,
        link_type=link_type,
    )


@pytest.mark.asyncio
async def test_create_trace_link(graph, cache, make_requirement):
    tx = graph.transaction([_link_row(make_requirement)])
    repository = graph.repository(TraceLinkRepository, tx)

    link = await repository.create_trace_link(_create())

    assert link.id == "trace-1"
    assert link.link_type == "satisfies"
    assert link.source_requirement.ref == "URD-001"
    assert link.source_requirement.document_slug == "urd"
    assert link.target_requirement.document_slug is None
    params = tx.params()
    assert params["linkId"] == "trace-1"
    assert params["properties"]["id"] == "trace-1"
    assert "description" not in params["properties"]
    cache.invalidate.assert_awaited_once_with("trace_links", "acme", "apollo")


@pytest.mark.asyncio
async def test_missing_endpoint_creates_nothing(graph, cache):
    repository = graph.repository(TraceLinkRepository, graph.transaction([]))

    with pytest.raises(NotFoundError, match="Source or target requirement not found"):
        await repository.create_trace_link(_create())

    cache.invalidate.assert_not_awaited()


@pytest.mark.asyncio
async def test_self_link_is_rejected(graph):
    tx = graph.transaction()
    repository = graph.repository(TraceLinkRepository, tx)

    with pytest.raises(ValidationError):
        await repository.create_trace_link(_create(target=SOURCE))

    assert tx.calls == []


def test_unknown_link_type_is_rejected():
    with pytest.raises(ValueError):
        _create(link_type="blocks")


@pytest.mark.asyncio
async def test_list_trace_links(graph, make_requirement):
    tx = graph.transaction([_link_row(make_requirement), _link_row(make_requirement, "verifies")])
    repository = graph.repository(TraceLinkRepository, tx)

    links = await repository.list_trace_links("acme", "apollo")

    assert [link.link_type for link in links] == ["satisfies", "verifies"]
    assert tx.queries == [queries.LIST_TRACE_LINKS]


@pytest.mark.asyncio
async def test_list_links_for_requirement(graph, make_requirement):
    tx = graph.transaction([_link_row(make_requirement)])
    repository = graph.repository(TraceLinkRepository, tx)

    links = await repository.list_trace_links_for_requirement("acme", "apollo", TARGET)

    assert links[0].target_requirement_id == TARGET
    assert tx.params()["requirementId"] == TARGET


@pytest.mark.asyncio
async def test_delete_trace_link(graph, cache):
    tx = graph.transaction(graph.counters(nodes_deleted=1, relationships_deleted=4))
    repository = graph.repository(TraceLinkRepository, tx)

    await repository.delete_trace_link("acme", "apollo", "trace-1")

    assert tx.params()["linkId"] == "trace-1"
    cache.invalidate.assert_awaited_once_with("trace_links", "acme", "apollo")


@pytest.mark.asyncio
async def test_delete_missing_trace_link_raises(graph):
    repository = graph.repository(TraceLinkRepository, graph.transaction(graph.counters()))

    with pytest.raises(NotFoundError):
        await repository.delete_trace_link("acme", "apollo", "trace-9")
