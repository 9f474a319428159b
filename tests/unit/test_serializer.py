"""
Unit tests for the entity serializer.
"""

import json

import pytest

from sitesync.core.hooks import HookRegistry
from sitesync.core.models import ContentRecord, MenuDefinition, MenuItem, ThemeData
from sitesync.sync.paths import SyncPathResolver
from sitesync.sync.serializer import EntitySerializer, write_json


@pytest.fixture
def hooks():
    return HookRegistry()


@pytest.fixture
def serializer(config, store, hooks):
    return EntitySerializer(SyncPathResolver(config), store, hooks, config)


def published(post_id=5, post_type="post", **kwargs):
    fields = dict(post_type=post_type, id=post_id, title="Hello", slug="hello", status="publish")
    fields.update(kwargs)
    return ContentRecord(**fields)


@pytest.mark.unit
class TestWriteJson:
    """Tests for write_json."""

    def test_pretty_unicode_unescaped_slashes(self, tmp_path):
        path = write_json(tmp_path / "out" / "data.json", {"name": "café", "url": "https://x.test/a"})
        text = path.read_text(encoding="utf-8")
        assert "café" in text
        assert "https://x.test/a" in text
        assert text.startswith("{\n    ")

    def test_directory_failure_returns_none(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        assert write_json(blocker / "data.json", {}) is None

    def test_encode_failure_returns_none(self, tmp_path):
        assert write_json(tmp_path / "data.json", {"bad": {1, 2}}) is None
        assert not (tmp_path / "data.json").exists()


@pytest.mark.unit
class TestExportPost:
    """Tests for EntitySerializer.export_post."""

    def test_writes_sanitized_document(self, serializer, sync_dir):
        record = published(
            title="<b>Hello</b>\x00",
            content='<p onclick="x()">Body</p><script>bad()</script>',
            meta={
                "color": ["blue\x01"],
                "settings": ['a:1:{s:6:"layout";s:4:"wide";}'],
            },
        )
        path = serializer.export_post(record)

        assert path == sync_dir / "post" / "post-5.json"
        doc = json.loads(path.read_text(encoding="utf-8"))
        assert doc["post_title"] == "Hello"
        assert doc["post_content"] == "<p>Body</p>"
        assert doc["meta"] == {"color": ["blue"], "settings": [{"layout": "wide"}]}
        assert set(doc) == {
            "ID", "post_title", "post_content", "post_excerpt", "post_type", "post_status",
            "post_name", "post_parent", "post_path", "post_parent_path", "menu_order", "meta",
        }

    @pytest.mark.parametrize("record", [
        published(post_id=0),
        published(post_type="revision"),
        published(status="draft"),
        published(post_type="product"),
    ])
    def test_skipped_records(self, serializer, sync_dir, record):
        assert serializer.export_post(record) is None
        assert not sync_dir.exists() or not list(sync_dir.rglob("*.json"))

    def test_export_statuses_configurable(self, make_config, store):
        config = make_config(sync={"export_statuses": ["publish", "draft"]})
        serializer = EntitySerializer(SyncPathResolver(config), store, None, config)
        assert serializer.export_post(published(status="draft")) is not None

    def test_data_filter_and_action(self, serializer, hooks):
        seen = []
        hooks.add_filter("export_post_data", lambda data, record: {**data, "extra": record.slug})
        hooks.add_action("after_export_post", lambda record, path: seen.append((record.id, path)))

        path = serializer.export_post(published())
        assert json.loads(path.read_text())["extra"] == "hello"
        assert seen == [(5, path)]

    def test_unsafe_filtered_path_rejected(self, serializer, hooks, tmp_path):
        outside = tmp_path / "elsewhere" / "post.json"
        hooks.add_filter("export_post_file_path", lambda path, record: outside)
        assert serializer.export_post(published()) is None
        assert not outside.exists()

    def test_supported_types_filter(self, serializer, hooks):
        hooks.add_filter("supported_post_types", lambda types: types + ["product"])
        assert serializer.export_post(published(post_type="product")) is not None

    def test_export_by_id(self, serializer, store, sync_dir):
        post_id = store.insert_post(ContentRecord(post_type="page", slug="about", status="publish"))
        assert serializer.export_post_by_id(post_id) == sync_dir / "page" / f"page-{post_id}.json"
        assert serializer.export_post_by_id(999) is None


@pytest.mark.unit
class TestExportOptionsAndMenus:
    """Tests for options, menus and theme data export."""

    def test_export_options_applies_exclusions(self, serializer, store, sync_dir):
        store.update_option("widget_text", {"title": "Hi"})
        path = serializer.export_options()

        assert path == sync_dir / "options.json"
        data = json.loads(path.read_text())
        assert "siteurl" not in data and "home" not in data and "blogname" not in data
        assert data["widget_text"] == {"title": "Hi"}
        assert data["stylesheet"] == "starter"

    def test_excluded_keys_filter(self, serializer, hooks):
        hooks.add_filter("excluded_option_keys", lambda keys: keys + ["stylesheet"])
        data = json.loads(serializer.export_options({"stylesheet": "x", "template": "y"}).read_text())
        assert data == {"template": "y"}

    def test_export_menus(self, serializer, hooks, sync_dir):
        hooks.add_filter("export_menu_data", lambda data, menu: {**data, "menu_id": menu.menu_id})
        menus = [MenuDefinition(
            name="Main", slug="main", locations=["primary"], menu_id=3,
            items=[MenuItem(title="Home", url="/"), MenuItem(title="Sub", parent_index=0)],
        )]
        path = serializer.export_menus(menus)

        assert path == sync_dir / "menus.json"
        data = json.loads(path.read_text())
        assert data[0]["menu_id"] == 3
        assert data[0]["items"][1]["parent_index"] == 0

    def test_export_theme_data(self, serializer, sync_dir):
        theme = ThemeData(stylesheet="starter", template="starter", is_block_theme=True)
        path = serializer.export_theme_data(theme)
        assert path == sync_dir / "theme" / "theme-data.json"
        assert json.loads(path.read_text())["stylesheet"] == "starter"


@pytest.mark.unit
class TestDeletePostFile:
    """Tests for delete_post_file."""

    def test_removes_file_and_fires_action(self, serializer, hooks):
        deleted = []
        hooks.add_action("after_post_deletion", lambda record, path: deleted.append(path))
        path = serializer.export_post(published())

        assert serializer.delete_post_file(published())
        assert not path.exists()
        assert deleted == [path]

    def test_missing_file(self, serializer):
        assert not serializer.delete_post_file(published(post_id=77))
