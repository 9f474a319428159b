"""
Entity importer: reads JSON documents from the sync directory back into
the content store.

Posts are matched across environments by slug and hierarchical path, never
by numeric id. A matching record is updated in place; otherwise a new one
is created. Each document is handled on its own: a malformed file is
logged and skipped, and records imported before a failure stay committed.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..core.exceptions import RecordValidationError
from ..core.hooks import HookRegistry
from ..core.models import ContentRecord, ImportOutcome, MenuDefinition
from .paths import SyncPathResolver
from .php_values import unserialize_structure
from .sanitize import (
    kses_post,
    sanitize_text_field,
    sanitize_textarea_field,
    sanitize_title,
)
from .serializer import MENUS_FILE, OPTIONS_FILE

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"(\d+)")


def _natural_key(path: Path):
    """Sort key that orders page-9.json before page-10.json."""
    return [int(part) if part.isdigit() else part for part in _DIGITS.split(path.name)]


@dataclass
class ImportTally:
    """Aggregate outcome counts for a set of imported documents."""
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    error_files: List[str] = field(default_factory=list)

    def add(self, outcome: ImportOutcome, source: Optional[Path] = None) -> None:
        if outcome == ImportOutcome.CREATED:
            self.created += 1
        elif outcome == ImportOutcome.UPDATED:
            self.updated += 1
        elif outcome == ImportOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.errors += 1
            if source is not None:
                self.error_files.append(str(source))

    @property
    def total(self) -> int:
        return self.created + self.updated + self.skipped + self.errors


class EntityImporter:
    """
    Imports posts, options and menus from JSON files.

    Fires the action after_import_post(record, outcome) for each created
    or updated post.
    """

    def __init__(self, store, resolver: SyncPathResolver, hooks: Optional[HookRegistry], config):
        self.store = store
        self.resolver = resolver
        self.hooks = hooks or HookRegistry()
        self.config = config
        self._depth_cache: Dict[Path, Tuple[int, int]] = {}

    def supported_post_types(self) -> List[str]:
        types = self.hooks.apply_filters("supported_post_types", self.config.get_post_types())
        return list(types or [])

    def _hierarchical_types(self) -> List[str]:
        return list(self.config.get_sync_config().get("hierarchical_types") or ["page"])

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def load_document(self, path: Path) -> Optional[Any]:
        """
        Read and decode a JSON file.

        Returns:
            The decoded value, or None if the file is unreadable or malformed
        """
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to read {path}: {e}")
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            logger.error(f"Malformed JSON in {path}: {e}")
            return None

    def list_post_files(self) -> List[Path]:
        """
        Get every post document across supported types.

        Files are ordered per type by numeric suffix. For hierarchical types
        they are ordered parent first, by the depth of their post_path, so a
        child is never imported before its parent.
        """
        hierarchical = self._hierarchical_types()
        files: List[Path] = []
        for post_type in self.supported_post_types():
            directory = self.resolver.sync_path(post_type)
            if not directory.is_dir():
                continue
            type_files = sorted(directory.glob("*.json"), key=_natural_key)
            if post_type in hierarchical:
                type_files.sort(key=self._path_depth)
            files.extend(type_files)
        return files

    def _path_depth(self, path: Path) -> int:
        """Number of ancestors named by a document's post_path (0 if unknown)."""
        try:
            stamp = path.stat().st_mtime_ns
        except OSError:
            return 0
        cached = self._depth_cache.get(path)
        if cached is not None and cached[0] == stamp:
            return cached[1]

        depth = 0
        try:
            doc = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            doc = None
        if isinstance(doc, dict):
            post_path = str(doc.get("post_path") or "").strip("/")
            parent_path = str(doc.get("post_parent_path") or "").strip("/")
            if post_path:
                depth = post_path.count("/")
            elif parent_path:
                depth = parent_path.count("/") + 1
        self._depth_cache[path] = (stamp, depth)
        return depth

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    def _record_from_document(self, doc: Dict[str, Any]) -> ContentRecord:
        """Build a sanitized record from a post document."""
        post_type = sanitize_text_field(doc.get("post_type"))
        title = sanitize_text_field(doc.get("post_title"))
        slug = sanitize_title(doc.get("post_name")) or sanitize_title(title)
        if not slug:
            raise RecordValidationError(
                "document needs post_name or post_title", field_name="post_name"
            )

        meta = doc.get("meta") or {}
        if not isinstance(meta, dict):
            raise RecordValidationError("meta must be an object", field_name="meta")

        parent_path = sanitize_text_field(doc.get("post_parent_path")).strip("/")
        path = sanitize_text_field(doc.get("post_path")).strip("/")
        if not path:
            path = f"{parent_path}/{slug}" if parent_path else slug

        return ContentRecord(
            post_type=post_type,
            title=title,
            content=kses_post(doc.get("post_content")),
            excerpt=sanitize_textarea_field(doc.get("post_excerpt")),
            status=sanitize_text_field(doc.get("post_status")) or "draft",
            slug=slug,
            path=path,
            parent_path=parent_path,
            menu_order=doc.get("menu_order") or 0,
            meta={
                sanitize_text_field(key): (values if isinstance(values, list) else [values])
                for key, values in meta.items()
            },
        )

    def _find_existing(self, record: ContentRecord, parent_id: int) -> Optional[ContentRecord]:
        if record.post_type in self._hierarchical_types():
            found = self.store.find_post_by_path(record.post_type, record.path)
            if found is None:
                found = self.store.find_post_by_slug(record.post_type, record.slug, parent_id=parent_id)
            return found

        found = self.store.find_post_by_slug(record.post_type, record.slug)
        if found is None and record.title:
            found = self.store.find_post_by_title(record.post_type, record.title)
        return found

    def _resolve_parent_id(self, record: ContentRecord) -> int:
        if not record.parent_path or record.post_type not in self._hierarchical_types():
            return 0
        parent = self.store.find_post_by_path(record.post_type, record.parent_path)
        if parent is None:
            logger.warning(
                f"Parent '{record.parent_path}' of {record.post_type} '{record.slug}' not found; "
                f"importing at top level"
            )
            return 0
        return parent.id

    def import_post_document(self, doc: Any) -> ImportOutcome:
        """
        Upsert one post document.

        Returns:
            created, updated, skipped (unsupported type) or error
        """
        if not isinstance(doc, dict) or not doc:
            logger.warning("Skipping post document that is not a JSON object")
            return ImportOutcome.ERROR
        if not doc.get("post_type"):
            logger.warning("Skipping post document without post_type")
            return ImportOutcome.ERROR

        try:
            record = self._record_from_document(doc)
        except RecordValidationError as e:
            logger.warning(f"Skipping invalid {doc.get('post_type')} document: {e}")
            return ImportOutcome.ERROR

        if record.post_type not in self.supported_post_types():
            logger.debug(f"Skipping unsupported post type '{record.post_type}'")
            return ImportOutcome.SKIPPED

        try:
            record.parent_id = self._resolve_parent_id(record)
            existing = self._find_existing(record, record.parent_id)
            if existing is not None:
                record.id = existing.id
                self.store.update_post(record)
                outcome = ImportOutcome.UPDATED
            else:
                record.id = self.store.insert_post(record)
                outcome = ImportOutcome.CREATED

            for key, values in record.meta.items():
                self.store.set_post_meta(record.id, key, [unserialize_structure(v) for v in values])
        except Exception as e:
            logger.error(f"Failed to import {record.post_type} '{record.path}': {e}")
            return ImportOutcome.ERROR

        self.hooks.do_action("after_import_post", record, outcome)
        logger.debug(f"{outcome.value.capitalize()} {record.post_type} '{record.path}' (id {record.id})")
        return outcome

    def import_post_file(self, path: Path) -> ImportOutcome:
        doc = self.load_document(path)
        if doc is None:
            return ImportOutcome.ERROR
        return self.import_post_document(doc)

    def import_files(self, files: List[Path]) -> ImportTally:
        tally = ImportTally()
        for path in files:
            tally.add(self.import_post_file(path), source=path)
        return tally

    def import_all_files(self) -> ImportTally:
        """Import every post document in one pass (unbatched)."""
        files = self.list_post_files()
        tally = self.import_files(files)
        logger.info(
            f"Imported {len(files)} files: {tally.created} created, {tally.updated} updated, "
            f"{tally.skipped} skipped, {tally.errors} errors"
        )
        return tally

    # ------------------------------------------------------------------
    # Options and menus
    # ------------------------------------------------------------------

    def import_options(self) -> int:
        """
        Import options.json.

        Returns:
            Number of options written
        """
        file_path = self.resolver.sync_path() / OPTIONS_FILE
        if not file_path.exists():
            logger.info(f"No options file at {file_path}")
            return 0

        options = self.load_document(file_path)
        if not isinstance(options, dict) or not options:
            logger.warning(f"Options file {file_path} is empty or not an object")
            return 0

        excluded = set(self.hooks.apply_filters(
            "excluded_option_keys",
            list(self.config.get_sync_config().get("excluded_option_keys") or []),
        ))

        written = 0
        for name, value in options.items():
            if name in excluded:
                logger.debug(f"Skipping excluded option '{name}'")
                continue
            try:
                self.store.update_option(name, unserialize_structure(value))
                written += 1
            except Exception as e:
                logger.error(f"Failed to import option '{name}': {e}")

        logger.info(f"Imported {written} options")
        return written

    def import_menus(self) -> int:
        """
        Import menus.json.

        With menus.replace_existing (default) a menu whose slug already
        exists is reused and its items are replaced; otherwise a new menu is
        always created.

        Returns:
            Number of menus imported
        """
        file_path = self.resolver.sync_path() / MENUS_FILE
        if not file_path.exists():
            logger.info(f"No menus file at {file_path}")
            return 0

        data = self.load_document(file_path)
        if not isinstance(data, list):
            logger.warning(f"Menus file {file_path} is not a list")
            return 0

        replace_existing = bool(self.config.get("menus.replace_existing", True))
        locations = self.store.get_menu_locations()
        imported = 0

        for menu_data in data:
            if not isinstance(menu_data, dict) or not menu_data.get("name"):
                logger.warning("Skipping menu entry without a name")
                continue
            menu = MenuDefinition.from_dict(menu_data)
            try:
                menu_id = self._import_menu(menu, replace_existing)
            except Exception as e:
                logger.error(f"Failed to import menu '{menu.name}': {e}")
                continue

            for location in menu.locations:
                locations[location] = menu_id
            imported += 1

        if imported:
            self.store.set_menu_locations(locations)
        logger.info(f"Imported {imported} menus")
        return imported

    def _import_menu(self, menu: MenuDefinition, replace_existing: bool) -> int:
        existing = self.store.find_menu_by_slug(menu.slug) if (replace_existing and menu.slug) else None
        if existing is not None:
            menu_id = existing.menu_id
            removed = self.store.clear_menu_items(menu_id)
            logger.debug(f"Replacing {removed} items of menu '{menu.slug}'")
        else:
            menu_id = self.store.create_menu(menu.name, menu.slug or None)

        item_ids: Dict[int, int] = {}
        for index, item in enumerate(menu.items):
            parent_item_id = 0
            if item.parent_index is not None:
                parent_item_id = item_ids.get(item.parent_index, 0)
            item_ids[index] = self.store.add_menu_item(menu_id, item, parent_item_id)
        return menu_id
