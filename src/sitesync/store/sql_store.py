"""
SQL content store over the WordPress schema.

Reads and writes posts, post meta, options, and navigation menus directly
in the site's tables. Works with any DB-API connection that uses the qmark
paramstyle (pyodbc against MySQL in production).
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..core.content_store import ContentStore
from ..core.models import ContentRecord, MenuDefinition, MenuItem
from ..sync.php_values import maybe_serialize, maybe_unserialize
from ..sync.sanitize import sanitize_title

logger = logging.getLogger(__name__)

# Statuses that never count as site content
HIDDEN_STATUSES = ["auto-draft", "trash", "inherit"]

MENU_TAXONOMY = "nav_menu"
MENU_ITEM_TYPE = "nav_menu_item"

# Guards against parent cycles when computing paths
MAX_PATH_DEPTH = 64

POST_COLUMNS = (
    "ID, post_title, post_content, post_excerpt, post_type, post_status, "
    "post_name, post_parent, menu_order"
)


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _placeholders(values: List[Any]) -> str:
    return ", ".join("?" for _ in values)


class SqlContentStore(ContentStore):
    """
    Content store backed by WordPress tables.

    Changes are committed after every write unless auto_commit is False.
    """

    def __init__(self, conn, table_prefix: str = "wp_", auto_commit: bool = True):
        """
        Initialize the store.

        Args:
            conn: Open DB-API connection (qmark paramstyle)
            table_prefix: WordPress table prefix
            auto_commit: Whether to commit after each write
        """
        if not self._is_valid_prefix(table_prefix):
            raise ValueError(f"Invalid table prefix: {table_prefix}")
        self.conn = conn
        self.prefix = table_prefix
        self.auto_commit = auto_commit

    @classmethod
    def from_settings(cls, settings) -> "SqlContentStore":
        """Open a connection from DatabaseSettings."""
        return cls(settings.connect(), table_prefix=settings.table_prefix)

    @staticmethod
    def _is_valid_prefix(prefix: str) -> bool:
        return bool(prefix) and prefix.replace("_", "").isalnum()

    def _table(self, name: str) -> str:
        return f"{self.prefix}{name}"

    def _commit(self) -> None:
        if self.auto_commit:
            self.conn.commit()

    def _query(self, sql: str, params: tuple = ()) -> List[tuple]:
        cursor = self.conn.cursor()
        cursor.execute(sql, params)
        rows = cursor.fetchall()
        cursor.close()
        return [tuple(row) for row in rows]

    def _execute(self, sql: str, params: tuple = ()) -> Any:
        cursor = self.conn.cursor()
        cursor.execute(sql, params)
        return cursor

    def _last_insert_id(self, cursor) -> int:
        row_id = getattr(cursor, "lastrowid", None)
        if row_id:
            return int(row_id)
        rows = self._query("SELECT LAST_INSERT_ID()")
        return int(rows[0][0])

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    def _record_from_row(self, row: tuple, with_meta: bool = True) -> ContentRecord:
        post_id, title, content, excerpt, post_type, status, slug, parent_id, menu_order = row
        parent_path = self._post_path(int(parent_id or 0)) if parent_id else ""
        return ContentRecord(
            id=post_id,
            title=title or "",
            content=content or "",
            excerpt=excerpt or "",
            post_type=post_type,
            status=status or "draft",
            slug=slug or "",
            parent_id=parent_id or 0,
            parent_path=parent_path,
            menu_order=menu_order or 0,
            meta=self.get_post_meta(int(post_id)) if with_meta else {},
        )

    def _post_path(self, post_id: int) -> str:
        """Build 'grandparent/parent/slug' by walking post_parent links."""
        segments = []
        seen = set()
        current = post_id
        while current and current not in seen and len(segments) < MAX_PATH_DEPTH:
            seen.add(current)
            rows = self._query(
                f"SELECT post_name, post_parent FROM {self._table('posts')} WHERE ID = ?",
                (current,),
            )
            if not rows:
                break
            slug, parent = rows[0]
            segments.append(slug or "")
            current = int(parent or 0)
        return "/".join(reversed(segments))

    def list_posts(
        self,
        post_types: List[str],
        limit: Optional[int] = None,
        offset: int = 0,
        statuses: Optional[List[str]] = None,
    ) -> List[ContentRecord]:
        if not post_types:
            return []
        sql = (
            f"SELECT {POST_COLUMNS} FROM {self._table('posts')} "
            f"WHERE post_type IN ({_placeholders(post_types)}) "
            f"AND post_status NOT IN ({_placeholders(HIDDEN_STATUSES)})"
        )
        params: List[Any] = list(post_types) + list(HIDDEN_STATUSES)
        if statuses:
            sql += f" AND post_status IN ({_placeholders(statuses)})"
            params.extend(statuses)
        sql += " ORDER BY ID"
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params.extend([int(limit), int(offset)])
        rows = self._query(sql, tuple(params))
        if limit is None and offset:
            rows = rows[int(offset):]
        return [self._record_from_row(row) for row in rows]

    def count_posts(self, post_types: List[str]) -> int:
        if not post_types:
            return 0
        rows = self._query(
            f"SELECT COUNT(*) FROM {self._table('posts')} "
            f"WHERE post_type IN ({_placeholders(post_types)}) "
            f"AND post_status NOT IN ({_placeholders(HIDDEN_STATUSES)})",
            tuple(post_types) + tuple(HIDDEN_STATUSES),
        )
        return int(rows[0][0])

    def get_post(self, post_id: int) -> Optional[ContentRecord]:
        rows = self._query(
            f"SELECT {POST_COLUMNS} FROM {self._table('posts')} WHERE ID = ?",
            (int(post_id),),
        )
        return self._record_from_row(rows[0]) if rows else None

    def find_post_by_slug(
        self,
        post_type: str,
        slug: str,
        parent_id: Optional[int] = None,
    ) -> Optional[ContentRecord]:
        sql = (
            f"SELECT {POST_COLUMNS} FROM {self._table('posts')} "
            f"WHERE post_type = ? AND post_name = ? "
            f"AND post_status NOT IN ({_placeholders(HIDDEN_STATUSES)})"
        )
        params: List[Any] = [post_type, slug] + list(HIDDEN_STATUSES)
        if parent_id is not None:
            sql += " AND post_parent = ?"
            params.append(int(parent_id))
        sql += " ORDER BY ID LIMIT 1"
        rows = self._query(sql, tuple(params))
        return self._record_from_row(rows[0]) if rows else None

    def find_post_by_path(self, post_type: str, path: str) -> Optional[ContentRecord]:
        segments = [s for s in (path or "").strip("/").split("/") if s]
        if not segments:
            return None
        parent_id = 0
        found = None
        for segment in segments:
            found = self.find_post_by_slug(post_type, segment, parent_id=parent_id)
            if found is None:
                return None
            parent_id = found.id
        return found

    def find_post_by_title(self, post_type: str, title: str) -> Optional[ContentRecord]:
        rows = self._query(
            f"SELECT {POST_COLUMNS} FROM {self._table('posts')} "
            f"WHERE post_type = ? AND post_title = ? "
            f"AND post_status NOT IN ({_placeholders(HIDDEN_STATUSES)}) "
            f"ORDER BY ID LIMIT 1",
            (post_type, title) + tuple(HIDDEN_STATUSES),
        )
        return self._record_from_row(rows[0]) if rows else None

    def insert_post(self, record: ContentRecord) -> int:
        now = _now()
        cursor = self._execute(
            f"""
            INSERT INTO {self._table('posts')} (
                post_author, post_date, post_date_gmt, post_content, post_title,
                post_excerpt, post_status, comment_status, ping_status, post_name,
                to_ping, pinged, post_modified, post_modified_gmt,
                post_content_filtered, post_parent, guid, menu_order, post_type
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                0, now, now, record.content, record.title,
                record.excerpt, record.status, "closed", "closed", record.slug,
                "", "", now, now,
                "", record.parent_id, "", record.menu_order, record.post_type,
            ),
        )
        post_id = self._last_insert_id(cursor)
        cursor.close()
        self._commit()
        logger.debug(f"Inserted {record.post_type} {post_id} ({record.slug})")
        return post_id

    def update_post(self, record: ContentRecord) -> None:
        if not record.id:
            raise ValueError("update_post requires a record id")
        now = _now()
        cursor = self._execute(
            f"""
            UPDATE {self._table('posts')}
            SET post_title = ?, post_content = ?, post_excerpt = ?, post_status = ?,
                post_name = ?, post_parent = ?, menu_order = ?,
                post_modified = ?, post_modified_gmt = ?
            WHERE ID = ?
            """,
            (
                record.title, record.content, record.excerpt, record.status,
                record.slug, record.parent_id, record.menu_order,
                now, now, record.id,
            ),
        )
        cursor.close()
        self._commit()
        logger.debug(f"Updated {record.post_type} {record.id} ({record.slug})")

    def get_post_meta(self, post_id: int) -> Dict[str, List[str]]:
        rows = self._query(
            f"SELECT meta_key, meta_value FROM {self._table('postmeta')} "
            f"WHERE post_id = ? ORDER BY meta_id",
            (int(post_id),),
        )
        meta: Dict[str, List[str]] = {}
        for key, value in rows:
            meta.setdefault(key, []).append(value if value is not None else "")
        return meta

    def set_post_meta(self, post_id: int, key: str, values: List[Any]) -> None:
        table = self._table("postmeta")
        self._execute(
            f"DELETE FROM {table} WHERE post_id = ? AND meta_key = ?",
            (int(post_id), key),
        ).close()
        for value in values:
            self._execute(
                f"INSERT INTO {table} (post_id, meta_key, meta_value) VALUES (?, ?, ?)",
                (int(post_id), key, maybe_serialize(value)),
            ).close()
        self._commit()

    # ------------------------------------------------------------------
    # Options
    # ------------------------------------------------------------------

    def load_options(self) -> Dict[str, str]:
        rows = self._query(
            f"SELECT option_name, option_value FROM {self._table('options')} "
            f"WHERE option_name NOT LIKE ? ESCAPE '!' "
            f"AND option_name NOT LIKE ? ESCAPE '!' "
            f"ORDER BY option_name",
            ("!_transient!_%", "!_site!_transient!_%"),
        )
        return {name: (value if value is not None else "") for name, value in rows}

    def get_option(self, name: str, default: Any = None) -> Any:
        rows = self._query(
            f"SELECT option_value FROM {self._table('options')} WHERE option_name = ?",
            (name,),
        )
        if not rows:
            return default
        return maybe_unserialize(rows[0][0])

    def update_option(self, name: str, value: Any) -> None:
        table = self._table("options")
        stored = maybe_serialize(value)
        exists = self._query(f"SELECT 1 FROM {table} WHERE option_name = ?", (name,))
        if exists:
            sql = f"UPDATE {table} SET option_value = ? WHERE option_name = ?"
            params = (stored, name)
        else:
            sql = f"INSERT INTO {table} (option_name, option_value, autoload) VALUES (?, ?, ?)"
            params = (name, stored, "yes")
        self._execute(sql, params).close()
        self._commit()

    # ------------------------------------------------------------------
    # Menus
    # ------------------------------------------------------------------

    def _menu_rows(self, slug: Optional[str] = None) -> List[tuple]:
        sql = (
            f"SELECT t.term_id, t.name, t.slug, tt.term_taxonomy_id "
            f"FROM {self._table('terms')} t "
            f"JOIN {self._table('term_taxonomy')} tt ON tt.term_id = t.term_id "
            f"WHERE tt.taxonomy = ?"
        )
        params: List[Any] = [MENU_TAXONOMY]
        if slug is not None:
            sql += " AND t.slug = ?"
            params.append(slug)
        sql += " ORDER BY t.term_id"
        return self._query(sql, tuple(params))

    def _menu_taxonomy_id(self, menu_id: int) -> Optional[int]:
        rows = self._query(
            f"SELECT term_taxonomy_id FROM {self._table('term_taxonomy')} "
            f"WHERE term_id = ? AND taxonomy = ?",
            (int(menu_id), MENU_TAXONOMY),
        )
        return int(rows[0][0]) if rows else None

    def _menu_item_ids(self, taxonomy_id: int) -> List[int]:
        rows = self._query(
            f"SELECT p.ID FROM {self._table('posts')} p "
            f"JOIN {self._table('term_relationships')} tr ON tr.object_id = p.ID "
            f"WHERE tr.term_taxonomy_id = ? AND p.post_type = ? "
            f"ORDER BY p.menu_order, p.ID",
            (taxonomy_id, MENU_ITEM_TYPE),
        )
        return [int(row[0]) for row in rows]

    def _build_menu(self, row: tuple, locations: Dict[str, int]) -> MenuDefinition:
        term_id, name, slug, taxonomy_id = row
        item_ids = self._menu_item_ids(int(taxonomy_id))
        index_of = {item_id: i for i, item_id in enumerate(item_ids)}

        items = []
        for item_id in item_ids:
            post_rows = self._query(
                f"SELECT post_title, menu_order FROM {self._table('posts')} WHERE ID = ?",
                (item_id,),
            )
            title, menu_order = post_rows[0]
            meta = self.get_post_meta(item_id)

            def first(key: str, default: str = "") -> str:
                values = meta.get(key) or [default]
                return values[0] or default

            parent_item = int(first("_menu_item_menu_item_parent", "0") or 0)
            items.append(MenuItem(
                title=title or "",
                object=first("_menu_item_object", "custom"),
                object_id=int(first("_menu_item_object_id", "0") or 0),
                type=first("_menu_item_type", "custom"),
                url=first("_menu_item_url"),
                menu_order=int(menu_order or 0),
                parent_index=index_of.get(parent_item),
            ))

        return MenuDefinition(
            name=name or "",
            slug=slug or "",
            items=items,
            locations=[loc for loc, mid in locations.items() if int(mid or 0) == int(term_id)],
            menu_id=int(term_id),
        )

    def list_menus(self) -> List[MenuDefinition]:
        locations = self.get_menu_locations()
        return [self._build_menu(row, locations) for row in self._menu_rows()]

    def find_menu_by_slug(self, slug: str) -> Optional[MenuDefinition]:
        rows = self._menu_rows(slug)
        if not rows:
            return None
        return self._build_menu(rows[0], self.get_menu_locations())

    def _unique_term_slug(self, slug: str) -> str:
        candidate = slug
        suffix = 2
        while self._query(
            f"SELECT 1 FROM {self._table('terms')} WHERE slug = ?", (candidate,)
        ):
            candidate = f"{slug}-{suffix}"
            suffix += 1
        return candidate

    def create_menu(self, name: str, slug: Optional[str] = None) -> int:
        slug = self._unique_term_slug(sanitize_title(slug or name) or "menu")
        cursor = self._execute(
            f"INSERT INTO {self._table('terms')} (name, slug, term_group) VALUES (?, ?, ?)",
            (name, slug, 0),
        )
        term_id = self._last_insert_id(cursor)
        cursor.close()
        self._execute(
            f"INSERT INTO {self._table('term_taxonomy')} "
            f"(term_id, taxonomy, description, parent, count) VALUES (?, ?, ?, ?, ?)",
            (term_id, MENU_TAXONOMY, "", 0, 0),
        ).close()
        self._commit()
        logger.debug(f"Created menu {term_id} ({slug})")
        return term_id

    def clear_menu_items(self, menu_id: int) -> int:
        taxonomy_id = self._menu_taxonomy_id(menu_id)
        if taxonomy_id is None:
            return 0
        item_ids = self._menu_item_ids(taxonomy_id)
        for item_id in item_ids:
            self._execute(
                f"DELETE FROM {self._table('postmeta')} WHERE post_id = ?", (item_id,)
            ).close()
            self._execute(
                f"DELETE FROM {self._table('term_relationships')} WHERE object_id = ?", (item_id,)
            ).close()
            self._execute(
                f"DELETE FROM {self._table('posts')} WHERE ID = ?", (item_id,)
            ).close()
        self._execute(
            f"UPDATE {self._table('term_taxonomy')} SET count = 0 WHERE term_taxonomy_id = ?",
            (taxonomy_id,),
        ).close()
        self._commit()
        return len(item_ids)

    def add_menu_item(self, menu_id: int, item: MenuItem, parent_item_id: int = 0) -> int:
        taxonomy_id = self._menu_taxonomy_id(menu_id)
        if taxonomy_id is None:
            raise ValueError(f"Menu {menu_id} does not exist")

        record = ContentRecord(
            post_type=MENU_ITEM_TYPE,
            title=item.title,
            status="publish",
            menu_order=item.menu_order,
        )
        saved_commit = self.auto_commit
        self.auto_commit = False
        try:
            item_id = self.insert_post(record)
            item_meta = {
                "_menu_item_type": item.type,
                "_menu_item_menu_item_parent": str(int(parent_item_id or 0)),
                "_menu_item_object_id": str(item.object_id or item_id),
                "_menu_item_object": item.object,
                "_menu_item_url": item.url,
            }
            for key, value in item_meta.items():
                self.set_post_meta(item_id, key, [value])
            self._execute(
                f"INSERT INTO {self._table('term_relationships')} "
                f"(object_id, term_taxonomy_id, term_order) VALUES (?, ?, ?)",
                (item_id, taxonomy_id, 0),
            ).close()
            self._execute(
                f"UPDATE {self._table('term_taxonomy')} SET count = count + 1 "
                f"WHERE term_taxonomy_id = ?",
                (taxonomy_id,),
            ).close()
        finally:
            self.auto_commit = saved_commit
        self._commit()
        return item_id

    def _theme_mods_name(self) -> str:
        stylesheet = self.get_option("stylesheet", "") or ""
        return f"theme_mods_{stylesheet}"

    def get_menu_locations(self) -> Dict[str, int]:
        mods = self.get_option(self._theme_mods_name(), {})
        if not isinstance(mods, dict):
            return {}
        locations = mods.get("nav_menu_locations") or {}
        if not isinstance(locations, dict):
            return {}
        return {str(k): int(v or 0) for k, v in locations.items()}

    def set_menu_locations(self, locations: Dict[str, int]) -> None:
        name = self._theme_mods_name()
        mods = self.get_option(name, {})
        if not isinstance(mods, dict):
            mods = {}
        mods["nav_menu_locations"] = {str(k): int(v) for k, v in locations.items()}
        self.update_option(name, mods)

    def close(self) -> None:
        """Close the database connection."""
        if self.conn is not None:
            self.conn.close()
            self.conn = None
            logger.debug("Closed content store connection")
