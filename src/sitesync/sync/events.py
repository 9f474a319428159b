"""
Content-change handlers that keep the sync directory current.

The host (an admin action, a script, a test) fires named actions on a
HookRegistry when site content changes; these handlers re-export the
affected entities.
"""

import logging
from typing import Any, Dict, Optional

from ..core.hooks import HookRegistry
from ..core.models import ContentRecord

logger = logging.getLogger(__name__)

OPTION_EVENTS = [
    "plugins_changed",
    "customizer_saved",
    "terms_changed",
    "comments_changed",
    "users_changed",
]


class SyncEventHandlers:
    """
    Subscribes re-export handlers to content-change events.

    Events and their arguments:
        post_saved(post_id)
        post_status_changed(new_status, old_status, record)
        post_deleted(record)
        post_meta_updated(post_id, meta_key)
        option_updated(name, old_value, new_value)
        menu_updated(menu_id), menu_item_saved(item_id)
        theme_switched(), fse_changed()
        plugins_changed(), customizer_saved(), terms_changed(),
        comments_changed(), users_changed()
    """

    def __init__(self, service, hooks: Optional[HookRegistry] = None):
        self.service = service
        self.config = service.config
        self.hooks = hooks or service.hooks

    def register(self) -> None:
        """Subscribe every handler."""
        subscriptions: Dict[str, Any] = {
            "post_saved": self.on_post_saved,
            "post_status_changed": self.on_post_status_changed,
            "post_deleted": self.on_post_deleted,
            "post_meta_updated": self.on_post_meta_updated,
            "option_updated": self.on_option_updated,
            "menu_updated": self.on_menu_changed,
            "menu_item_saved": self.on_menu_changed,
            "theme_switched": self.on_theme_switched,
            "fse_changed": self.on_fse_changed,
        }
        for event in OPTION_EVENTS:
            subscriptions[event] = self.on_options_changed

        for event, handler in subscriptions.items():
            self.hooks.add_action(event, handler)
        logger.debug(f"Registered {len(subscriptions)} content-change handlers")

    def _is_supported(self, record: ContentRecord) -> bool:
        return record.post_type in self.service.serializer.supported_post_types()

    def on_post_saved(self, post_id: int) -> None:
        self.service.export_post(post_id)

    def on_post_status_changed(self, new_status: str, old_status: str, record: ContentRecord) -> None:
        if new_status != old_status:
            self.service.serializer.export_post(record)

    def on_post_deleted(self, record: ContentRecord) -> None:
        if self._is_supported(record):
            self.service.delete_post(record)

    def on_post_meta_updated(self, post_id: int, meta_key: str) -> None:
        skip_keys = self.hooks.apply_filters(
            "skip_meta_keys", list(self.config.get_sync_config().get("skip_meta_keys") or [])
        )
        if meta_key in skip_keys:
            return
        record = self.service.store.get_post(post_id)
        if record is not None and self._is_supported(record):
            self.service.serializer.export_post(record)

    def on_option_updated(self, name: str, old_value: Any = None, new_value: Any = None) -> None:
        prefixes = self.hooks.apply_filters(
            "skip_option_names", list(self.config.get_sync_config().get("skip_option_prefixes") or [])
        )
        for prefix in prefixes:
            if name.startswith(prefix):
                return

        should_export = self.hooks.apply_filters(
            "should_export_on_option_update", True, name, old_value, new_value
        )
        if not should_export:
            logger.debug(f"Option '{name}' update does not trigger an export")
            return
        self.service.export_options()

    def on_options_changed(self, *args: Any) -> None:
        self.service.export_options()

    def on_menu_changed(self, *args: Any) -> None:
        self.service.export_menus()

    def on_theme_switched(self, *args: Any) -> None:
        self.service.export_options()
        self.service.export_menus()
        self.service.export_theme_data()

    def on_fse_changed(self, *args: Any) -> None:
        self.service.export_theme_data()
