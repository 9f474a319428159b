"""
Tests for the sync service: full export, full import and theme data.
"""

import json
from unittest.mock import Mock

import pytest

from sitesync.core.hooks import HookRegistry
from sitesync.core.models import ContentRecord, MenuItem
from sitesync.sync.service import SyncService


def seed_site(store):
    about = store.insert_post(ContentRecord(post_type="page", title="About", slug="about", status="publish"))
    store.insert_post(ContentRecord(
        post_type="page", title="Team", slug="team", status="publish",
        parent_id=about, parent_path="about",
    ))
    store.insert_post(ContentRecord(post_type="post", title="Hello", slug="hello", status="publish"))
    store.insert_post(ContentRecord(post_type="post", title="Draft", slug="draft", status="draft"))
    store.update_option("posts_per_page", "12")
    menu_id = store.create_menu("Main", "main")
    store.add_menu_item(menu_id, MenuItem(title="Home", url="https://example.test/"))
    store.set_menu_locations({"primary": menu_id})


@pytest.mark.unit
class TestFullRoundTrip:
    """Export from one store, import into another."""

    def test_export_then_import(self, config, store, make_store, sync_dir):
        seed_site(store)

        exported = SyncService(config, store).full_export(batch_size=2)

        assert exported.options_file == sync_dir / "options.json"
        assert exported.menus_file == sync_dir / "menus.json"
        assert exported.posts.processed == 4
        assert exported.posts.created == 3
        assert exported.posts.skipped == 1
        assert exported.posts.errors == 0

        target = make_store("target")
        imported = SyncService(config, target).full_import(batch_size=2)

        assert imported.options_imported >= 1
        assert imported.menus_imported == 1
        assert imported.posts.created == 3
        assert imported.posts.errors == 0
        assert target.get_option("posts_per_page") == "12"
        assert target.find_post_by_path("page", "about/team") is not None
        assert target.find_post_by_slug("post", "draft") is None
        assert target.find_menu_by_slug("main") is not None

    def test_reimport_updates(self, config, store, make_store):
        seed_site(store)
        SyncService(config, store).full_export()
        target = make_store("target")
        SyncService(config, target).full_import()

        again = SyncService(config, target).full_import()

        assert again.posts.created == 0
        assert again.posts.updated == 3
        assert target.count_posts(["page", "post"]) == 3

    def test_batch_sizes_default_to_config(self, make_config, store):
        config = make_config(batch={"export_size": 1, "export_delay": 0, "import_delay": 0})
        seed_site(store)
        sleep = Mock()

        report = SyncService(config, store, sleep=sleep).full_export()

        assert report.posts.batch_size == 1
        assert report.posts.batches == 4

    def test_options_before_posts(self, config, store):
        hooks = HookRegistry()
        order = []
        hooks.add_action("after_export_options", lambda *args: order.append("options"))
        hooks.add_action("after_export_menus", lambda *args: order.append("menus"))
        hooks.add_action("after_export_post", lambda *args: order.append("post"))
        seed_site(store)

        SyncService(config, store, hooks).full_export(batch_size=0)

        assert order[:2] == ["options", "menus"]
        assert set(order[2:]) == {"post"}


@pytest.mark.unit
class TestThemeData:
    """Block theme detection and FSE export."""

    def test_classic_theme(self, config, store):
        assert not SyncService(config, store).is_block_theme()

    def test_block_theme_export(self, config, store, sync_dir):
        templates = config.theme_dir / "templates"
        templates.mkdir(parents=True)
        (templates / "index.html").write_text("<!-- wp:query /-->")
        store.insert_post(ContentRecord(
            post_type="wp_template", title="Index", slug="index", status="publish",
            content="<!-- wp:query /-->",
        ))
        store.insert_post(ContentRecord(
            post_type="wp_template_part", title="Header", slug="header", status="publish",
        ))
        service = SyncService(config, store)

        theme = service.collect_theme_data()
        path = service.export_theme_data()

        assert theme.is_block_theme
        assert theme.stylesheet == "starter"
        assert [t.slug for t in theme.templates] == ["index"]
        assert [t.slug for t in theme.template_parts] == ["header"]
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["template"] == "starter"
        assert data["templates"][0]["post_name"] == "index"
