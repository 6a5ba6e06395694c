"""Tests for the graph data facade and the service base class."""

from unittest.mock import AsyncMock

import pytest

from reqgraph.core.exceptions import ConflictError, ValidationError
from reqgraph.schemas.requirements import RequirementCreate
from reqgraph.services.base_service import BaseService
from reqgraph.services.graph_data_service import GraphDataService
from reqgraph.services.markdown_mirror import FileSystemMarkdownMirror


class EchoService(BaseService):
    def validate(self, value):
        if value is None:
            raise ValidationError("value is required")

    async def run(self, value):
        if value == "conflict":
            raise ConflictError("taken")
        if value == "crash":
            raise KeyError("slug")
        return value.upper()


class TestBaseService:
    """Tests for the validate-then-run flow."""

    @pytest.mark.asyncio
    async def test_runs_after_validation(self):
        assert await EchoService().execute("ok") == "OK"

    @pytest.mark.asyncio
    async def test_validation_errors_reach_caller(self):
        with pytest.raises(ValidationError):
            await EchoService().execute(None)

    @pytest.mark.asyncio
    async def test_app_errors_are_not_wrapped(self):
        with pytest.raises(ConflictError):
            await EchoService().execute("conflict")

    @pytest.mark.asyncio
    async def test_unexpected_errors_propagate_unchanged(self):
        with pytest.raises(KeyError):
            await EchoService().execute("crash")


class TestGraphDataService:
    """Tests for store wiring."""

    def test_stores_share_dependencies(self, graph, cache):
        writer = AsyncMock()
        client = graph.client(graph.transaction())

        service = GraphDataService(neo4j_client=client, cache=cache, markdown_writer=writer, clock=graph.clock)

        stores = [
            service.tenants,
            service.documents,
            service.sections,
            service.infos,
            service.requirements,
            service.candidates,
            service.baselines,
            service.trace_links,
            service.linksets,
            service.architecture,
            service.diagram_candidates,
        ]
        assert all(store.neo4j_client is client for store in stores)
        assert all(store.cache is cache for store in stores)
        assert service.documents.allocator is service.requirements.allocator is service.sections.allocator
        assert service.requirements.markdown_writer is writer
        assert service.duplicate_repair.repository is service.requirements

    def test_defaults_to_filesystem_mirror(self):
        service = GraphDataService(neo4j_client=object())

        assert isinstance(service.markdown_writer, FileSystemMarkdownMirror)

    @pytest.mark.asyncio
    async def test_create_and_repair_through_facade(self, graph, cache, memory_project):
        tx = graph.transaction(handlers=memory_project.handlers())
        service = GraphDataService(
            neo4j_client=graph.client(tx),
            cache=cache,
            markdown_writer=AsyncMock(),
            clock=graph.clock,
        )

        first = await service.create_requirement(RequirementCreate(tenant="acme", project_key="apollo", text="One."))
        memory_project.add_requirement(first.ref, "2030-01-01T00:00:00", id="late-duplicate")
        result = await service.repair_duplicate_refs("acme", "apollo")

        assert first.ref == "REQ-APOLLO-001"
        assert [(c.requirement_id, c.new_ref) for c in result.changes] == [("late-duplicate", "REQ-APOLLO-002")]
