"""
Sync path resolution and file path safety checks.

All JSON, SQL and archive artifacts live under a sync directory. A custom
directory may be configured; it must stay inside the site and free of
traversal sequences or shell/glob characters, otherwise the built-in
default under the active theme is used.
"""

import logging
import os
import re
from pathlib import Path
from typing import Iterable, Optional, Union

logger = logging.getLogger(__name__)

DANGEROUS_CHARS = ["<", ">", '"', "|", "?", "*", "$", ";", "&", "`", "\x00"]

ALLOWED_PREFIXES = [
    "wp-content/",
    "wp-content/plugins/",
    "wp-content/uploads/",
    "wp-content/themes/",
]

_FILENAME_SPECIALS = re.compile(r"[^A-Za-z0-9._-]")
_FILENAME_SPACES = re.compile(r"\s+")
_MULTI_SLASH = re.compile(r"/+")


def validate_sync_path(path: Optional[str]) -> Optional[str]:
    """
    Validate a configured sync path.

    Args:
        path: Candidate path, absolute or relative to the site root

    Returns:
        The normalized path, "" for an empty path, or None if invalid
    """
    if not path:
        return ""

    if "\x00" in path or ".." in path:
        return None

    for char in DANGEROUS_CHARS:
        if char in path:
            return None

    normalized = path.replace("\\", "/")
    normalized = _MULTI_SLASH.sub("/", normalized)

    stripped = normalized.lstrip("/")
    is_allowed = any(stripped.startswith(prefix) for prefix in ALLOWED_PREFIXES)

    # Relative paths are resolved under the site root
    if not is_allowed and not normalized.startswith("/"):
        is_allowed = True

    return normalized if is_allowed else None


def sanitize_file_name(name: str) -> str:
    """
    Reduce a file or folder name to a safe character set.

    Whitespace becomes '-', anything outside [A-Za-z0-9._-] is removed and
    leading/trailing '.', '-' and '_' are trimmed.
    """
    name = _FILENAME_SPACES.sub("-", str(name).strip())
    name = _FILENAME_SPECIALS.sub("", name)
    return name.strip(".-_")


def is_safe_file_path(
    file_path: Union[str, Path],
    root: Union[str, Path],
    allowed_extensions: Iterable[str] = ("json",),
) -> bool:
    """
    Check that a file path is safe to write.

    The path must not contain a null byte or '..', its parent directory
    must exist and resolve under root, and its extension must be allowed.
    """
    raw = str(file_path)
    if "\x00" in raw or ".." in raw:
        return False

    parent = os.path.dirname(raw)
    if not parent or not os.path.isdir(parent):
        return False

    resolved_root = os.path.realpath(str(root))
    resolved_parent = os.path.realpath(parent)
    if os.path.commonpath([resolved_root, resolved_parent]) != resolved_root:
        return False

    name = os.path.basename(raw).lower()
    return any(name.endswith("." + ext.lower()) for ext in allowed_extensions)


class SyncPathResolver:
    """Computes sync directories from the configuration."""

    def __init__(self, config):
        """
        Args:
            config: SyncConfig instance
        """
        self.config = config

    @property
    def site_root(self) -> Path:
        return self.config.site_root

    def default_base_dir(self) -> Path:
        return self.config.theme_dir / "sync"

    def base_dir(self) -> Path:
        """Get the sync base directory, falling back to the default on invalid config."""
        custom_path = self.config.get_sync_config().get("path", "")
        if not custom_path:
            return self.default_base_dir()

        validated = validate_sync_path(custom_path)
        if not validated:
            logger.warning(
                f"Invalid sync path '{custom_path}', falling back to {self.default_base_dir()}"
            )
            return self.default_base_dir()

        return Path(os.path.normpath(self.site_root / validated.lstrip("/")))

    def sync_path(self, subfolder: str = "") -> Path:
        """
        Get the sync directory, or one of its entity subfolders.

        Args:
            subfolder: Optional subfolder name (e.g., a post type)

        Returns:
            Absolute directory path
        """
        base = self.base_dir()
        if subfolder:
            safe = sanitize_file_name(subfolder)
            if safe:
                base = base / safe
        return base

    def post_file_path(self, post_type: str, post_id: int) -> Path:
        """Get the JSON file path for a post."""
        name = sanitize_file_name(f"{post_type}-{post_id}.json")
        return self.sync_path(post_type) / name

    def database_dir(self) -> Path:
        return self.config.theme_dir / "sync" / "database"

    def plugins_archive_dir(self) -> Path:
        return self.config.theme_dir / "sync" / "plugins"

    def is_safe(self, file_path: Union[str, Path], allowed_extensions: Iterable[str] = ("json",)) -> bool:
        return is_safe_file_path(file_path, self.site_root, allowed_extensions)
