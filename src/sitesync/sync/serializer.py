"""
Entity serializer: writes posts, options, menus and theme data as JSON.

Every export builds an allow-listed, sanitized document, lets subscribers
adjust it through filters, validates the target path and writes the file
in one call. Failures are logged and reported as a None result; nothing
is raised to the caller.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.hooks import HookRegistry
from ..core.models import ContentRecord, MenuDefinition, OptionSet, ThemeData
from .paths import SyncPathResolver
from .php_values import is_serialized, unserialize_structure
from .sanitize import (
    kses_post,
    sanitize_json_data,
    sanitize_text_field,
    sanitize_textarea_field,
)

logger = logging.getLogger(__name__)

OPTIONS_FILE = "options.json"
MENUS_FILE = "menus.json"
THEME_DIR = "theme"
THEME_FILE = "theme-data.json"


def write_json(path: Path, data: Any) -> Optional[Path]:
    """
    Encode data as pretty-printed JSON and write it to path.

    Returns:
        The written path, or None if the directory, encoding or write failed
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Failed to create directory {path.parent}: {e}")
        return None

    try:
        content = json.dumps(data, indent=4, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        logger.error(f"Failed to encode JSON for {path}: {e}")
        return None

    try:
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        logger.error(f"Failed to write file {path}: {e}")
        return None

    return path


def sanitize_post_meta(meta: Dict[str, List[Any]]) -> Dict[str, List[Any]]:
    """Decode serialized meta values and sanitize the rest as text."""
    sanitized: Dict[str, List[Any]] = {}
    for key, values in meta.items():
        clean_key = sanitize_text_field(key)
        sanitized[clean_key] = []
        for value in values:
            if is_serialized(value):
                sanitized[clean_key].append(sanitize_json_data(unserialize_structure(value)))
            elif isinstance(value, str):
                sanitized[clean_key].append(sanitize_textarea_field(value))
            else:
                sanitized[clean_key].append(sanitize_json_data(value))
    return sanitized


def sanitize_options(options: Dict[str, Any]) -> Dict[str, Any]:
    """Decode serialized option values and strip control characters."""
    sanitized = {}
    for key, value in options.items():
        sanitized[sanitize_text_field(key)] = sanitize_json_data(unserialize_structure(value))
    return sanitized


class EntitySerializer:
    """
    Serializes site entities to the sync directory.

    Filters applied: supported_post_types, export_post_data,
    export_post_file_path, excluded_option_keys, export_options_data,
    export_options_file_path, export_menu_data, export_menus_data,
    export_menus_file_path.

    Actions fired: after_export_post, after_export_options,
    after_export_menus, after_export_theme_data, after_post_deletion.
    """

    def __init__(self, resolver: SyncPathResolver, store, hooks: Optional[HookRegistry], config):
        """
        Initialize the serializer.

        Args:
            resolver: Sync path resolver
            store: ContentStore to read entities from
            hooks: Hook registry (a private one is created if None)
            config: SyncConfig instance
        """
        self.resolver = resolver
        self.store = store
        self.hooks = hooks or HookRegistry()
        self.config = config

    def supported_post_types(self) -> List[str]:
        types = self.hooks.apply_filters("supported_post_types", self.config.get_post_types())
        return list(types or [])

    def _export_statuses(self) -> List[str]:
        return list(self.config.get_sync_config().get("export_statuses") or ["publish"])

    def build_post_document(self, record: ContentRecord) -> Dict[str, Any]:
        """Build the allow-listed, sanitized document for a record."""
        return {
            "ID": int(record.id),
            "post_title": sanitize_text_field(record.title),
            "post_content": kses_post(record.content),
            "post_excerpt": sanitize_textarea_field(record.excerpt),
            "post_type": sanitize_text_field(record.post_type),
            "post_status": sanitize_text_field(record.status),
            "post_name": sanitize_text_field(record.slug),
            "post_parent": int(record.parent_id),
            "post_path": sanitize_text_field(record.path),
            "post_parent_path": sanitize_text_field(record.parent_path),
            "menu_order": int(record.menu_order),
            "meta": sanitize_post_meta(record.meta),
        }

    def _safe_target(self, file_path: Path) -> Optional[Path]:
        """Create the parent directory and validate the final path."""
        file_path = Path(file_path)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create directory {file_path.parent}: {e}")
            return None
        if not self.resolver.is_safe(file_path):
            logger.error(f"Unsafe file path detected: {file_path}")
            return None
        return file_path

    def export_post(self, record: ContentRecord) -> Optional[Path]:
        """
        Export one record to <sync>/<type>/<type>-<id>.json.

        Returns:
            Path of the written file, or None if the record was skipped or
            the write failed
        """
        if record.id <= 0:
            return None
        if record.post_type == "revision":
            return None
        if record.status not in self._export_statuses():
            logger.debug(f"Skipping {record.post_type} {record.id} with status '{record.status}'")
            return None
        if record.post_type not in self.supported_post_types():
            return None

        data = self.build_post_document(record)
        data = self.hooks.apply_filters("export_post_data", data, record)
        data = sanitize_json_data(data)

        file_path = self.resolver.post_file_path(record.post_type, record.id)
        file_path = self.hooks.apply_filters("export_post_file_path", file_path, record)

        target = self._safe_target(file_path)
        if target is None:
            return None

        written = write_json(target, data)
        if written is None:
            return None

        self.hooks.do_action("after_export_post", record, written)
        logger.debug(f"Exported {record.post_type} {record.id} to {written}")
        return written

    def export_post_by_id(self, post_id: int) -> Optional[Path]:
        """Load a post from the store and export it."""
        record = self.store.get_post(post_id)
        if record is None:
            logger.warning(f"Post {post_id} not found")
            return None
        return self.export_post(record)

    def export_options(self, options: Optional[Dict[str, Any]] = None) -> Optional[Path]:
        """Export options (minus excluded keys) to options.json."""
        if options is None:
            options = self.store.load_options()

        excluded = self.hooks.apply_filters(
            "excluded_option_keys",
            list(self.config.get_sync_config().get("excluded_option_keys") or []),
        )
        option_set = OptionSet.from_options(options, excluded)

        data = sanitize_options(option_set.to_dict())
        data = self.hooks.apply_filters("export_options_data", data)

        file_path = self.resolver.sync_path() / OPTIONS_FILE
        file_path = self.hooks.apply_filters("export_options_file_path", file_path)

        target = self._safe_target(file_path)
        if target is None:
            return None

        written = write_json(target, data)
        if written is None:
            return None

        self.hooks.do_action("after_export_options", written, data)
        logger.info(f"Exported {len(data)} options to {written}")
        return written

    def export_menus(self, menus: Optional[List[MenuDefinition]] = None) -> Optional[Path]:
        """Export navigation menus with their items and locations to menus.json."""
        if menus is None:
            menus = self.store.list_menus()

        data = []
        for menu in menus:
            menu_data = sanitize_json_data(menu.to_dict())
            data.append(self.hooks.apply_filters("export_menu_data", menu_data, menu))
        data = self.hooks.apply_filters("export_menus_data", data)

        file_path = self.resolver.sync_path() / MENUS_FILE
        file_path = self.hooks.apply_filters("export_menus_file_path", file_path)

        target = self._safe_target(file_path)
        if target is None:
            return None

        written = write_json(target, data)
        if written is None:
            return None

        self.hooks.do_action("after_export_menus", written, data)
        logger.info(f"Exported {len(data)} menus to {written}")
        return written

    def export_theme_data(self, theme: ThemeData) -> Optional[Path]:
        """Export FSE theme data to theme/theme-data.json."""
        data = sanitize_json_data(theme.to_dict())
        file_path = self.resolver.sync_path(THEME_DIR) / THEME_FILE

        target = self._safe_target(file_path)
        if target is None:
            return None

        written = write_json(target, data)
        if written is None:
            return None

        self.hooks.do_action("after_export_theme_data", written, data)
        logger.info(f"Exported theme data for '{theme.stylesheet}' to {written}")
        return written

    def delete_post_file(self, record: ContentRecord) -> bool:
        """Remove the JSON file of a deleted post, if present."""
        if record.id <= 0:
            return False
        file_path = self.resolver.post_file_path(record.post_type, record.id)
        if not file_path.exists():
            return False
        try:
            file_path.unlink()
        except OSError as e:
            logger.error(f"Failed to delete {file_path}: {e}")
            return False

        self.hooks.do_action("after_post_deletion", record, file_path)
        logger.debug(f"Deleted {file_path}")
        return True
