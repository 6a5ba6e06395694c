"""Tests for slug, short-code and path helpers."""

import re

import pytest

from reqgraph.utils.clock import SystemClock
from reqgraph.utils.identifiers import (
    derive_title,
    document_short_code,
    project_ref_token,
    requirement_path,
    scoped_id,
    section_short_code,
    slugify,
)


class TestSlugify:
    """Tests for slug normalisation."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("Apollo Program", "apollo-program"),
            ("  ACME Corp.  ", "acme-corp"),
            ("core__module--v2", "core-module-v2"),
            ("already-a-slug", "already-a-slug"),
            ("--edge--", "edge"),
        ],
    )
    def test_normalizes_text(self, value, expected):
        """Test lowercase, hyphenated output."""
        assert slugify(value) == expected

    def test_empty_result_uses_fallback(self):
        """Test that nothing alphanumeric falls back to 'project'."""
        assert slugify("!!!") == "project"
        assert slugify("") == "project"
        assert slugify(None) == "project"
        assert slugify("***", fallback="document") == "document"


class TestShortCodes:
    """Tests for ref prefix segments."""

    def test_project_token_strips_hyphens(self):
        assert project_ref_token("apollo") == "APOLLO"
        assert project_ref_token("apollo-x") == "APOLLOX"

    def test_document_short_code_defaults_to_slug(self):
        assert document_short_code(None, "core") == "CORE"
        assert document_short_code("", "user-reqs") == "USER-REQS"
        assert document_short_code("URD", "user-reqs") == "URD"

    def test_section_short_code_defaults_to_name(self):
        assert section_short_code(None, "User Interface") == "USERINTERFACE"
        assert section_short_code("USER", "User Interface") == "USER"


class TestPaths:
    """Tests for ids and mirror paths."""

    def test_requirement_path(self):
        assert requirement_path("acme", "apollo", "CORE-001") == "acme/apollo/requirements/CORE-001.md"

    def test_scoped_id(self):
        assert scoped_id("acme", "apollo", "CORE-001") == "acme:apollo:CORE-001"


class TestDeriveTitle:
    """Tests for the fallback requirement title."""

    def test_short_text_is_kept(self):
        assert derive_title("The pump shall stop.") == "The pump shall stop."

    def test_long_text_is_truncated_to_eight_words(self):
        text = "The system shall record every pump start and stop event with a timestamp"
        assert derive_title(text) == "The system shall record every pump start and..."


class TestSystemClock:
    """Tests for the default clock."""

    def test_hash_id_is_sixteen_hex_chars(self):
        assert re.fullmatch(r"[0-9a-f]{16}", SystemClock().new_hash_id())

    def test_new_id_carries_prefix(self):
        clock = SystemClock()
        first, second = clock.new_id("block"), clock.new_id("block")
        assert first.startswith("block-")
        assert first != second

    def test_now_is_utc_iso(self):
        assert SystemClock().now_iso().endswith("+00:00")
