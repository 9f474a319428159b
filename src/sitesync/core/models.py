"""
Core data models for sitesync.

Defines the content records, option sets, menus, theme data and the
bookkeeping objects (batch cursor, dump artifacts, plugin archives) that
flow between the store, the serializer and the importer.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .exceptions import RecordValidationError


DEFAULT_EXCLUDED_OPTION_KEYS = [
    "siteurl", "home", "blogname", "blogdescription",
    "admin_email", "users_can_register", "start_of_week", "upload_path",
    "upload_url_path", "cron", "recently_edited", "rewrite_rules",
    # Security-sensitive options
    "auth_key", "auth_salt", "logged_in_key", "logged_in_salt",
    "nonce_key", "nonce_salt", "secure_auth_key", "secure_auth_salt",
    "secret_key", "db_version", "initial_db_version",
]

FSE_POST_TYPES = ["wp_template", "wp_template_part", "wp_global_styles", "wp_navigation"]

DUMP_FILENAME_PATTERN = re.compile(r"^database-(\d{8}T\d{6}Z)\.(sql|tar\.gz)$")
DUMP_TIMESTAMP_FORMAT = "%Y%m%dT%H%M%SZ"


class ImportOutcome(str, Enum):
    """Result of importing a single document."""
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class ContentRecord:
    """
    A single post-like record (post, page, custom type, FSE template).

    Identity across environments is (post_type, slug, path); the numeric
    id is only meaningful inside one database.

    Attributes:
        id: Database id (0 for records not yet stored)
        title: Post title
        content: Post body (HTML)
        excerpt: Post excerpt
        post_type: Content type (e.g., 'post', 'page', 'wp_template')
        status: Publication status (e.g., 'publish', 'draft')
        slug: URL slug (post_name)
        path: Full hierarchical path ('parent/child'); equals slug for flat types
        parent_id: Parent record id (0 for none)
        parent_path: Hierarchical path of the parent, if any
        menu_order: Ordering hint
        meta: Metadata key -> list of values
    """
    post_type: str
    id: int = 0
    title: str = ""
    content: str = ""
    excerpt: str = ""
    status: str = "draft"
    slug: str = ""
    path: str = ""
    parent_id: int = 0
    parent_path: str = ""
    menu_order: int = 0
    meta: Dict[str, List[Any]] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.post_type, str) or not self.post_type.strip():
            raise RecordValidationError("post_type is required", field_name="post_type")
        if not isinstance(self.meta, dict):
            raise RecordValidationError("meta must be a mapping", field_name="meta")
        for key, values in self.meta.items():
            if not isinstance(values, list):
                raise RecordValidationError(
                    f"meta values for '{key}' must be a list", field_name="meta"
                )
        self.id = int(self.id or 0)
        self.parent_id = int(self.parent_id or 0)
        self.menu_order = int(self.menu_order or 0)
        if not self.path and self.slug:
            self.path = f"{self.parent_path}/{self.slug}" if self.parent_path else self.slug

    def identity_key(self) -> Tuple[str, str, str]:
        """Get the cross-environment identity of this record."""
        return (self.post_type, self.slug, self.path)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON document layout."""
        return {
            "ID": self.id,
            "post_title": self.title,
            "post_content": self.content,
            "post_excerpt": self.excerpt,
            "post_type": self.post_type,
            "post_status": self.status,
            "post_name": self.slug,
            "post_parent": self.parent_id,
            "post_path": self.path,
            "post_parent_path": self.parent_path,
            "menu_order": self.menu_order,
            "meta": self.meta,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContentRecord":
        """Create from a JSON document."""
        meta = data.get("meta") or {}
        if isinstance(meta, dict):
            meta = {
                str(k): (v if isinstance(v, list) else [v])
                for k, v in meta.items()
            }
        return cls(
            id=data.get("ID") or 0,
            title=data.get("post_title") or "",
            content=data.get("post_content") or "",
            excerpt=data.get("post_excerpt") or "",
            post_type=data.get("post_type") or "",
            status=data.get("post_status") or "draft",
            slug=data.get("post_name") or "",
            path=data.get("post_path") or "",
            parent_id=data.get("post_parent") or 0,
            parent_path=data.get("post_parent_path") or "",
            menu_order=data.get("menu_order") or 0,
            meta=meta,
        )


@dataclass
class OptionSet:
    """Flat mapping of option name to value, after exclusions."""
    values: Dict[str, Any] = field(default_factory=dict)
    excluded_keys: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDED_OPTION_KEYS))

    @classmethod
    def from_options(
        cls,
        options: Dict[str, Any],
        excluded_keys: Optional[List[str]] = None,
    ) -> "OptionSet":
        """Build an option set, dropping excluded keys."""
        excluded = list(excluded_keys) if excluded_keys is not None else list(DEFAULT_EXCLUDED_OPTION_KEYS)
        excluded_set = set(excluded)
        values = {k: v for k, v in options.items() if k not in excluded_set}
        return cls(values=values, excluded_keys=excluded)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.values)


@dataclass
class MenuItem:
    """A single navigation menu entry."""
    title: str
    object: str = "custom"
    object_id: int = 0
    type: str = "custom"
    url: str = ""
    menu_order: int = 0
    parent_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "object": self.object,
            "object_id": self.object_id,
            "type": self.type,
            "url": self.url,
            "menu_order": self.menu_order,
            "parent_index": self.parent_index,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MenuItem":
        parent_index = data.get("parent_index")
        return cls(
            title=data.get("title") or "",
            object=data.get("object") or "custom",
            object_id=int(data.get("object_id") or 0),
            type=data.get("type") or "custom",
            url=data.get("url") or "",
            menu_order=int(data.get("menu_order") or 0),
            parent_index=int(parent_index) if parent_index is not None else None,
        )


@dataclass
class MenuDefinition:
    """A navigation menu with its ordered items and theme locations."""
    name: str
    slug: str
    items: List[MenuItem] = field(default_factory=list)
    locations: List[str] = field(default_factory=list)
    menu_id: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "slug": self.slug,
            "locations": list(self.locations),
            "items": [item.to_dict() for item in self.items],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MenuDefinition":
        return cls(
            name=data.get("name") or "",
            slug=data.get("slug") or "",
            items=[MenuItem.from_dict(i) for i in data.get("items") or []],
            locations=list(data.get("locations") or []),
        )


@dataclass
class ThemeData:
    """Full Site Editing data for the active theme."""
    stylesheet: str
    template: str
    is_block_theme: bool = False
    templates: List[ContentRecord] = field(default_factory=list)
    template_parts: List[ContentRecord] = field(default_factory=list)
    global_styles: List[ContentRecord] = field(default_factory=list)
    navigations: List[ContentRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stylesheet": self.stylesheet,
            "template": self.template,
            "is_block_theme": self.is_block_theme,
            "templates": [r.to_dict() for r in self.templates],
            "template_parts": [r.to_dict() for r in self.template_parts],
            "global_styles": [r.to_dict() for r in self.global_styles],
            "navigations": [r.to_dict() for r in self.navigations],
        }


@dataclass
class BatchCursor:
    """
    Offset bookkeeping passed between successive pipeline invocations.

    Attributes:
        offset: Offset for the next batch
        batch_size: Requested batch size (0 = unbatched)
        processed: Items examined in this batch
        remaining: Items left after this batch, never negative
        total: Collection size observed for this batch
    """
    offset: int = 0
    batch_size: int = 50
    processed: int = 0
    remaining: int = 0
    total: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0

    @staticmethod
    def compute_remaining(total: int, offset: int, processed: int) -> int:
        return max(0, total - (offset + processed))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "offset": self.offset,
            "batch_size": self.batch_size,
            "processed": self.processed,
            "remaining": self.remaining,
            "total": self.total,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
        }


@dataclass
class DumpArtifact:
    """A timestamped SQL or compressed-SQL file in the database directory."""
    path: Path
    created_at: Optional[datetime] = None
    compressed: bool = False
    size: int = 0
    mtime: float = 0.0

    @classmethod
    def timestamp_now(cls) -> str:
        return datetime.now(timezone.utc).strftime(DUMP_TIMESTAMP_FORMAT)

    @classmethod
    def from_path(cls, path: Path) -> Optional["DumpArtifact"]:
        """Build an artifact from a file name; returns None if it is not a dump."""
        path = Path(path)
        match = DUMP_FILENAME_PATTERN.match(path.name)
        if not match:
            return None
        created_at = datetime.strptime(match.group(1), DUMP_TIMESTAMP_FORMAT).replace(
            tzinfo=timezone.utc
        )
        stat = path.stat()
        return cls(
            path=path,
            created_at=created_at,
            compressed=match.group(2) == "tar.gz",
            size=stat.st_size,
            mtime=stat.st_mtime,
        )


@dataclass
class PluginArchive:
    """One compressed archive of a plugin directory."""
    slug: str
    path: Path
    format: str = "tar.gz"
