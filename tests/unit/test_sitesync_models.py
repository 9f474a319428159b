"""
Unit tests for sitesync data models.

These tests verify the data models without external dependencies.
"""

import os

import pytest

from sitesync.core.exceptions import RecordValidationError
from sitesync.core.models import (
    BatchCursor,
    ContentRecord,
    DumpArtifact,
    MenuDefinition,
    MenuItem,
    OptionSet,
    ThemeData,
)


@pytest.mark.unit
class TestContentRecord:
    """Tests for ContentRecord."""

    def test_requires_post_type(self):
        with pytest.raises(RecordValidationError) as exc_info:
            ContentRecord(post_type="")
        assert exc_info.value.field_name == "post_type"

    def test_meta_values_must_be_lists(self):
        with pytest.raises(RecordValidationError):
            ContentRecord(post_type="post", meta={"color": "blue"})

    def test_path_derived_from_parent_path(self):
        record = ContentRecord(post_type="page", slug="team", parent_path="about")
        assert record.path == "about/team"
        assert record.identity_key() == ("page", "team", "about/team")

    def test_flat_path_equals_slug(self):
        record = ContentRecord(post_type="post", slug="hello-world")
        assert record.path == "hello-world"

    def test_document_layout(self):
        record = ContentRecord(
            post_type="page",
            id=12,
            title="Team",
            status="publish",
            slug="team",
            parent_id=3,
            parent_path="about",
            meta={"_wp_page_template": ["default"]},
        )
        doc = record.to_dict()
        assert doc["ID"] == 12
        assert doc["post_name"] == "team"
        assert doc["post_path"] == "about/team"
        assert doc["post_parent_path"] == "about"
        assert doc["meta"] == {"_wp_page_template": ["default"]}

        restored = ContentRecord.from_dict(doc)
        assert restored == record

    def test_from_dict_wraps_scalar_meta(self):
        record = ContentRecord.from_dict({"post_type": "post", "meta": {"views": "10"}})
        assert record.meta == {"views": ["10"]}
        assert record.status == "draft"


@pytest.mark.unit
class TestOptionSet:
    """Tests for OptionSet."""

    def test_default_exclusions(self):
        options = OptionSet.from_options({"siteurl": "x", "auth_salt": "s", "posts_per_page": "10"})
        assert options.to_dict() == {"posts_per_page": "10"}

    def test_custom_exclusions(self):
        options = OptionSet.from_options({"a": 1, "b": 2}, excluded_keys=["b"])
        assert options.to_dict() == {"a": 1}
        assert options.excluded_keys == ["b"]


@pytest.mark.unit
class TestMenus:
    """Tests for menu models."""

    def test_menu_from_dict(self):
        menu = MenuDefinition.from_dict({
            "name": "Main",
            "slug": "main",
            "locations": ["primary"],
            "items": [
                {"title": "Home", "url": "/", "menu_order": 1},
                {"title": "Team", "object": "page", "object_id": "4", "type": "post_type", "parent_index": 0},
            ],
        })
        assert menu.locations == ["primary"]
        assert menu.items[0].parent_index is None
        assert menu.items[1].object_id == 4
        assert menu.items[1].parent_index == 0
        assert menu.to_dict()["items"][1]["type"] == "post_type"

    def test_item_defaults(self):
        item = MenuItem.from_dict({})
        assert item.type == "custom"
        assert item.object == "custom"


@pytest.mark.unit
class TestBatchCursor:
    """Tests for BatchCursor."""

    @pytest.mark.parametrize("total,offset,processed,expected", [
        (125, 0, 50, 75),
        (125, 50, 50, 25),
        (125, 100, 25, 0),
        (10, 20, 0, 0),
    ])
    def test_compute_remaining(self, total, offset, processed, expected):
        assert BatchCursor.compute_remaining(total, offset, processed) == expected


@pytest.mark.unit
class TestDumpArtifact:
    """Tests for DumpArtifact."""

    def test_from_compressed_path(self, tmp_path):
        path = tmp_path / "database-20240102T030405Z.tar.gz"
        path.write_bytes(b"data")
        artifact = DumpArtifact.from_path(path)
        assert artifact.compressed
        assert artifact.size == 4
        assert artifact.created_at.year == 2024
        assert artifact.created_at.hour == 3

    def test_from_sql_path(self, tmp_path):
        path = tmp_path / "database-20240102T030405Z.sql"
        path.write_text("SELECT 1;")
        artifact = DumpArtifact.from_path(path)
        assert not artifact.compressed
        assert artifact.mtime == os.path.getmtime(path)

    def test_unrelated_file(self, tmp_path):
        path = tmp_path / "notes.sql"
        path.write_text("")
        assert DumpArtifact.from_path(path) is None

    def test_timestamp_now_matches_pattern(self, tmp_path):
        path = tmp_path / f"database-{DumpArtifact.timestamp_now()}.sql"
        path.write_text("")
        assert DumpArtifact.from_path(path) is not None


@pytest.mark.unit
def test_theme_data_to_dict():
    theme = ThemeData(
        stylesheet="child",
        template="parent",
        is_block_theme=True,
        templates=[ContentRecord(post_type="wp_template", slug="index", title="Index")],
    )
    data = theme.to_dict()
    assert data["is_block_theme"] is True
    assert data["templates"][0]["post_name"] == "index"
    assert data["navigations"] == []
