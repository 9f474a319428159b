"""
Unit tests for the entity importer.
"""

import json

import pytest

from sitesync.core.hooks import HookRegistry
from sitesync.core.models import ContentRecord, ImportOutcome, MenuDefinition, MenuItem
from sitesync.sync.importer import EntityImporter, ImportTally
from sitesync.sync.paths import SyncPathResolver
from sitesync.sync.serializer import EntitySerializer


def page_doc(slug, title=None, parent_path="", **extra):
    doc = {
        "post_type": "page",
        "post_title": title or slug.title(),
        "post_name": slug,
        "post_status": "publish",
        "post_parent_path": parent_path,
        "post_path": f"{parent_path}/{slug}" if parent_path else slug,
    }
    doc.update(extra)
    return doc


@pytest.fixture
def hooks():
    return HookRegistry()


@pytest.fixture
def importer(config, store, hooks):
    return EntityImporter(store, SyncPathResolver(config), hooks, config)


@pytest.mark.unit
class TestImportPostDocument:
    """Tests for import_post_document."""

    def test_creates_then_updates(self, importer, store):
        assert importer.import_post_document(page_doc("about")) == ImportOutcome.CREATED
        assert importer.import_post_document(page_doc("about", title="About Us")) == ImportOutcome.UPDATED

        records = store.list_posts(["page"])
        assert len(records) == 1
        assert records[0].title == "About Us"

    def test_update_keeps_existing_id(self, importer, store):
        existing = store.insert_post(ContentRecord(post_type="page", slug="about", status="publish"))
        importer.import_post_document(page_doc("about", ID=9999))
        assert store.find_post_by_path("page", "about").id == existing

    def test_hierarchical_match_by_path(self, importer, store):
        about = store.insert_post(ContentRecord(post_type="page", slug="about", status="publish"))
        careers = store.insert_post(ContentRecord(post_type="page", slug="careers", status="publish"))
        store.insert_post(ContentRecord(post_type="page", slug="team", status="publish", parent_id=about))
        careers_team = store.insert_post(
            ContentRecord(post_type="page", slug="team", status="publish", parent_id=careers)
        )

        outcome = importer.import_post_document(
            page_doc("team", title="Hiring Team", parent_path="careers")
        )
        assert outcome == ImportOutcome.UPDATED
        assert store.get_post(careers_team).title == "Hiring Team"

    def test_child_created_under_resolved_parent(self, importer, store):
        importer.import_post_document(page_doc("about"))
        importer.import_post_document(page_doc("team", parent_path="about"))
        team = store.find_post_by_path("page", "about/team")
        assert team is not None
        assert team.parent_path == "about"

    def test_missing_parent_imports_at_top_level(self, importer, store):
        assert importer.import_post_document(page_doc("orphan", parent_path="gone")) == ImportOutcome.CREATED
        assert store.find_post_by_slug("page", "orphan").parent_id == 0

    def test_flat_type_matches_by_title(self, importer, store):
        post_id = store.insert_post(
            ContentRecord(post_type="post", slug="old-slug", title="Same Title", status="publish")
        )
        doc = {"post_type": "post", "post_title": "Same Title", "post_name": "new-slug"}
        assert importer.import_post_document(doc) == ImportOutcome.UPDATED
        assert store.get_post(post_id).slug == "new-slug"

    def test_slug_derived_from_title(self, importer, store):
        importer.import_post_document({"post_type": "post", "post_title": "Hello World"})
        assert store.find_post_by_slug("post", "hello-world") is not None

    @pytest.mark.parametrize("doc", [
        None,
        [],
        "text",
        {},
        {"post_title": "No type"},
        {"post_type": "post"},
        {"post_type": "post", "post_title": "Bad meta", "meta": ["x"]},
    ])
    def test_invalid_documents_are_errors(self, importer, doc):
        assert importer.import_post_document(doc) == ImportOutcome.ERROR

    def test_unsupported_type_skipped(self, importer, store):
        doc = {"post_type": "product", "post_title": "Widget"}
        assert importer.import_post_document(doc) == ImportOutcome.SKIPPED
        assert store.count_posts(["product"]) == 0

    def test_content_is_sanitized(self, importer, store):
        importer.import_post_document({
            "post_type": "post",
            "post_title": "<i>Clean</i>",
            "post_content": "<p>ok</p><script>evil()</script>",
        })
        record = store.find_post_by_slug("post", "clean")
        assert record.title == "Clean"
        assert record.content == "<p>ok</p>"

    def test_meta_replaced_and_structured(self, importer, store):
        importer.import_post_document(page_doc("about", meta={"color": ["red", "blue"]}))
        importer.import_post_document(page_doc("about", meta={
            "color": ["green"],
            "layout": [{"columns": 2}],
            "legacy": ['a:1:{s:1:"k";s:1:"v";}'],
        }))
        record = store.find_post_by_path("page", "about")
        assert record.meta["color"] == ["green"]
        assert record.meta["layout"] == ['a:1:{s:7:"columns";i:2;}']
        assert record.meta["legacy"] == ['a:1:{s:1:"k";s:1:"v";}']

    def test_store_failure_is_error(self, importer, store, monkeypatch):
        def fail(record):
            raise RuntimeError("database gone")

        monkeypatch.setattr(store, "insert_post", fail)
        assert importer.import_post_document(page_doc("about")) == ImportOutcome.ERROR

    def test_after_import_action(self, importer, hooks):
        seen = []
        hooks.add_action("after_import_post", lambda record, outcome: seen.append((record.slug, outcome)))
        importer.import_post_document(page_doc("about"))
        assert seen == [("about", ImportOutcome.CREATED)]


@pytest.mark.unit
class TestImportFiles:
    """Tests for file-based import."""

    def test_load_document_malformed(self, importer, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        assert importer.load_document(path) is None
        assert importer.import_post_file(path) == ImportOutcome.ERROR
        assert importer.load_document(tmp_path / "missing.json") is None

    def test_list_post_files_sorted_by_type(self, importer, sync_dir):
        for post_type, names in {"post": ["post-2.json", "post-1.json"], "page": ["page-3.json"]}.items():
            (sync_dir / post_type).mkdir(parents=True, exist_ok=True)
            for name in names:
                (sync_dir / post_type / name).write_text("{}")
        (sync_dir / "post" / "notes.txt").write_text("")

        files = [p.name for p in importer.list_post_files()]
        assert files == ["post-1.json", "post-2.json", "page-3.json"]

    def test_round_trip_preserves_identity(self, config, store, make_store):
        about = store.insert_post(ContentRecord(post_type="page", slug="about", title="About", status="publish"))
        store.insert_post(ContentRecord(
            post_type="page", slug="team", title="Team", status="publish", parent_id=about,
            meta={"subtitle": ["Our people"]},
        ))
        post_id = store.insert_post(ContentRecord(post_type="post", slug="news", title="News", status="publish"))
        store.set_post_meta(post_id, "tags", [["a", "b"]])

        resolver = SyncPathResolver(config)
        serializer = EntitySerializer(resolver, store, None, config)
        for record in store.list_posts(["post", "page"]):
            assert serializer.export_post(record) is not None

        target = make_store()
        tally = EntityImporter(target, resolver, None, config).import_all_files()
        assert tally.created == 3
        assert tally.errors == 0

        source_keys = {r.identity_key() for r in store.list_posts(["post", "page"])}
        target_keys = {r.identity_key() for r in target.list_posts(["post", "page"])}
        assert target_keys == source_keys
        assert target.find_post_by_slug("post", "news").meta == {"tags": ['a:2:{i:0;s:1:"a";i:1;s:1:"b";}']}

    def test_parent_imported_before_child_across_digit_boundary(self, config, store, make_store):
        for i in range(8):
            store.insert_post(ContentRecord(post_type="post", slug=f"filler-{i}", title=f"Filler {i}", status="publish"))
        about = store.insert_post(ContentRecord(post_type="page", slug="about", title="About", status="publish"))
        team = store.insert_post(ContentRecord(
            post_type="page", slug="team", title="Team", status="publish", parent_id=about,
        ))
        assert (about, team) == (9, 10)

        resolver = SyncPathResolver(config)
        serializer = EntitySerializer(resolver, store, None, config)
        for record in store.list_posts(["post", "page"]):
            serializer.export_post(record)

        target = make_store()
        importer = EntityImporter(target, resolver, None, config)
        pages = [p.name for p in importer.list_post_files() if p.parent.name == "page"]
        assert pages == ["page-9.json", "page-10.json"]

        importer.import_all_files()
        source_keys = {r.identity_key() for r in store.list_posts(["page"])}
        assert {r.identity_key() for r in target.list_posts(["page"])} == source_keys

        again = importer.import_all_files()
        assert again.created == 0
        assert target.count_posts(["page"]) == 2
        assert {r.identity_key() for r in target.list_posts(["page"])} == source_keys

    def test_list_post_files_orders_pages_by_depth(self, importer, sync_dir):
        (sync_dir / "page").mkdir(parents=True)
        docs = {
            "page-3.json": page_doc("lead", parent_path="about/team"),
            "page-4.json": page_doc("team", parent_path="about"),
            "page-5.json": page_doc("about"),
        }
        for name, doc in docs.items():
            (sync_dir / "page" / name).write_text(json.dumps(doc))

        files = [p.name for p in importer.list_post_files()]
        assert files == ["page-5.json", "page-4.json", "page-3.json"]

    def test_tally(self):
        tally = ImportTally()
        tally.add(ImportOutcome.CREATED)
        tally.add(ImportOutcome.ERROR, source="bad.json")
        tally.add(ImportOutcome.SKIPPED)
        assert tally.total == 3
        assert tally.error_files == ["bad.json"]


@pytest.mark.unit
class TestImportOptionsAndMenus:
    """Tests for options and menus import."""

    def test_import_options(self, importer, store, sync_dir):
        sync_dir.mkdir(parents=True)
        (sync_dir / "options.json").write_text(json.dumps({
            "siteurl": "https://elsewhere.test",
            "posts_per_page": "20",
            "widget_text": {"title": "Hi"},
        }))

        assert importer.import_options() == 2
        assert store.get_option("siteurl") == "https://example.test"
        assert store.get_option("posts_per_page") == "20"
        assert store.get_option("widget_text") == {"title": "Hi"}

    def test_serialized_scalars_survive_round_trip(self, config, store, make_store):
        store.update_option("widget_count", "i:5;")
        store.update_option("theme_flags", 'a:1:{s:4:"dark";b:1;}')
        post_id = store.insert_post(ContentRecord(post_type="post", slug="news", title="News", status="publish"))
        store.set_post_meta(post_id, "_enabled", ["b:1;"])

        resolver = SyncPathResolver(config)
        serializer = EntitySerializer(resolver, store, None, config)
        options_path = serializer.export_options()
        serializer.export_post(store.get_post(post_id))
        assert json.loads(options_path.read_text(encoding="utf-8"))["widget_count"] == "i:5;"

        target = make_store()
        importer = EntityImporter(target, resolver, None, config)
        importer.import_options()
        importer.import_all_files()

        options = target.load_options()
        assert options["widget_count"] == "i:5;"
        assert options["theme_flags"] == 'a:1:{s:4:"dark";b:1;}'
        imported = target.find_post_by_slug("post", "news")
        assert target.get_post_meta(imported.id) == {"_enabled": ["b:1;"]}

    def test_missing_or_invalid_options_file(self, importer, sync_dir):
        assert importer.import_options() == 0
        sync_dir.mkdir(parents=True)
        (sync_dir / "options.json").write_text("[1, 2]")
        assert importer.import_options() == 0

    def _write_menus(self, sync_dir):
        menu = MenuDefinition(
            name="Main", slug="main", locations=["primary"],
            items=[MenuItem(title="Home", url="/"), MenuItem(title="Child", url="/c", parent_index=0)],
        )
        sync_dir.mkdir(parents=True, exist_ok=True)
        (sync_dir / "menus.json").write_text(json.dumps([menu.to_dict(), {"slug": "nameless"}]))

    def test_import_menus_replaces_existing(self, importer, store, sync_dir):
        self._write_menus(sync_dir)
        assert importer.import_menus() == 1
        assert importer.import_menus() == 1

        menus = store.list_menus()
        assert len(menus) == 1
        menu = menus[0]
        assert [i.title for i in menu.items] == ["Home", "Child"]
        assert menu.items[1].parent_index == 0
        assert store.get_menu_locations() == {"primary": menu.menu_id}

    def test_import_menus_always_new(self, make_config, store, sync_dir):
        config = make_config(menus={"replace_existing": False})
        importer = EntityImporter(store, SyncPathResolver(config), None, config)
        self._write_menus(sync_dir)
        importer.import_menus()
        importer.import_menus()

        slugs = sorted(m.slug for m in store.list_menus())
        assert slugs == ["main", "main-2"]
        assert store.get_menu_locations()["primary"] == store.find_menu_by_slug("main-2").menu_id
