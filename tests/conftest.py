"""
Shared test fixtures and configuration for pytest.
"""

import logging
import os
import sqlite3
import sys
from pathlib import Path

import pytest

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


logger = logging.getLogger(__name__)


WORDPRESS_SCHEMA = """
CREATE TABLE wp_posts (
    ID INTEGER PRIMARY KEY AUTOINCREMENT,
    post_author INTEGER NOT NULL DEFAULT 0,
    post_date TEXT NOT NULL DEFAULT '',
    post_date_gmt TEXT NOT NULL DEFAULT '',
    post_content TEXT NOT NULL DEFAULT '',
    post_title TEXT NOT NULL DEFAULT '',
    post_excerpt TEXT NOT NULL DEFAULT '',
    post_status TEXT NOT NULL DEFAULT 'publish',
    comment_status TEXT NOT NULL DEFAULT 'closed',
    ping_status TEXT NOT NULL DEFAULT 'closed',
    post_name TEXT NOT NULL DEFAULT '',
    to_ping TEXT NOT NULL DEFAULT '',
    pinged TEXT NOT NULL DEFAULT '',
    post_modified TEXT NOT NULL DEFAULT '',
    post_modified_gmt TEXT NOT NULL DEFAULT '',
    post_content_filtered TEXT NOT NULL DEFAULT '',
    post_parent INTEGER NOT NULL DEFAULT 0,
    guid TEXT NOT NULL DEFAULT '',
    menu_order INTEGER NOT NULL DEFAULT 0,
    post_type TEXT NOT NULL DEFAULT 'post'
);
CREATE TABLE wp_postmeta (
    meta_id INTEGER PRIMARY KEY AUTOINCREMENT,
    post_id INTEGER NOT NULL DEFAULT 0,
    meta_key TEXT,
    meta_value TEXT
);
CREATE TABLE wp_options (
    option_id INTEGER PRIMARY KEY AUTOINCREMENT,
    option_name TEXT NOT NULL UNIQUE,
    option_value TEXT NOT NULL,
    autoload TEXT NOT NULL DEFAULT 'yes'
);
CREATE TABLE wp_terms (
    term_id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL DEFAULT '',
    slug TEXT NOT NULL DEFAULT '',
    term_group INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE wp_term_taxonomy (
    term_taxonomy_id INTEGER PRIMARY KEY AUTOINCREMENT,
    term_id INTEGER NOT NULL DEFAULT 0,
    taxonomy TEXT NOT NULL DEFAULT '',
    description TEXT NOT NULL DEFAULT '',
    parent INTEGER NOT NULL DEFAULT 0,
    count INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE wp_term_relationships (
    object_id INTEGER NOT NULL DEFAULT 0,
    term_taxonomy_id INTEGER NOT NULL DEFAULT 0,
    term_order INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (object_id, term_taxonomy_id)
);
CREATE TABLE wp_users (
    ID INTEGER PRIMARY KEY AUTOINCREMENT,
    user_login TEXT NOT NULL DEFAULT ''
);
"""


def create_wordpress_schema(conn: sqlite3.Connection) -> None:
    """Create the subset of WordPress tables the store touches."""
    conn.executescript(WORDPRESS_SCHEMA)
    conn.executemany(
        "INSERT INTO wp_options (option_name, option_value) VALUES (?, ?)",
        [
            ("siteurl", "https://example.test"),
            ("home", "https://example.test"),
            ("template", "starter"),
            ("stylesheet", "starter"),
            ("blogname", "Example"),
        ],
    )
    conn.commit()


# ============================================================================
# Environment detection
# ============================================================================

def mysql_test_settings():
    """DatabaseSettings for the integration database, or None if not configured."""
    password = os.environ.get("SITESYNC_TEST_DB_PASSWORD")
    if password is None:
        return None

    from sitesync.database.connection import DatabaseSettings

    return DatabaseSettings(
        host=os.environ.get("SITESYNC_TEST_DB_HOST", "localhost"),
        port=int(os.environ.get("SITESYNC_TEST_DB_PORT", "3306")),
        name=os.environ.get("SITESYNC_TEST_DB_NAME", "wordpress_test"),
        user=os.environ.get("SITESYNC_TEST_DB_USER", "root"),
        password=password,
        driver=os.environ.get("SITESYNC_TEST_DB_DRIVER", "MySQL ODBC 8.0 Unicode Driver"),
        table_prefix=os.environ.get("SITESYNC_TEST_DB_PREFIX", "wp_"),
    )


def is_mysql_available() -> bool:
    """Check if the MySQL integration database can be reached."""
    settings = mysql_test_settings()
    if settings is None:
        return False

    try:
        conn = settings.connect()
        conn.close()
        return True
    except Exception as e:
        logger.debug(f"MySQL not available: {e}")
        return False


# ============================================================================
# Pytest hooks
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (requires a MySQL server)")


def pytest_collection_modifyitems(config, items):
    """Automatically skip integration tests if MySQL is not available."""
    if not any("integration" in item.keywords for item in items):
        return
    if is_mysql_available():
        return

    skip_mysql = pytest.mark.skip(
        reason="MySQL not available (set SITESYNC_TEST_DB_PASSWORD and ensure MySQL is running)"
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_mysql)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def clean_sitesync_env(monkeypatch):
    """Keep SITESYNC_* variables from the shell out of every test (SITESYNC_TEST_* excepted)."""
    for key in list(os.environ):
        if key.startswith("SITESYNC_") and not key.startswith("SITESYNC_TEST_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def wp_db_path(tmp_path) -> Path:
    """Path to an SQLite file holding an empty WordPress schema."""
    path = tmp_path / "wordpress.sqlite"
    conn = sqlite3.connect(path)
    create_wordpress_schema(conn)
    conn.close()
    return path


@pytest.fixture
def wp_conn(wp_db_path):
    """Open SQLite connection with the WordPress schema."""
    conn = sqlite3.connect(wp_db_path)
    yield conn
    conn.close()


@pytest.fixture
def store(wp_conn):
    """SqlContentStore over the SQLite schema."""
    from sitesync.store import SqlContentStore

    content_store = SqlContentStore(wp_conn)
    yield content_store
    content_store.conn = None


@pytest.fixture
def site_root(tmp_path) -> Path:
    """Site root with a theme and plugins directory."""
    root = tmp_path / "site"
    (root / "wp-content" / "themes" / "theme").mkdir(parents=True)
    (root / "wp-content" / "plugins").mkdir(parents=True)
    return root


@pytest.fixture
def make_config(site_root):
    """Factory for SyncConfig rooted at site_root."""
    from sitesync.config import SyncConfig

    def _make(**sections):
        overrides = {"site": {"root": str(site_root)}}
        for section, values in sections.items():
            overrides.setdefault(section, {}).update(values)
        return SyncConfig(overrides=overrides)

    return _make


@pytest.fixture
def config(make_config):
    """Default development configuration."""
    return make_config(batch={"export_delay": 0, "import_delay": 0})


@pytest.fixture
def sync_dir(config) -> Path:
    """Default sync directory for the test site."""
    return config.theme_dir / "sync"


@pytest.fixture
def make_store(tmp_path):
    """Factory for additional stores, each on its own SQLite file."""
    from sitesync.store import SqlContentStore

    stores = []

    def _make(name: str = "target"):
        conn = sqlite3.connect(tmp_path / f"{name}.sqlite")
        create_wordpress_schema(conn)
        content_store = SqlContentStore(conn)
        stores.append(content_store)
        return content_store

    yield _make

    for content_store in stores:
        content_store.close()


@pytest.fixture(scope="session")
def mysql_settings():
    """Connection settings for the integration database."""
    settings = mysql_test_settings()
    if settings is None:
        pytest.skip("MySQL test database not configured")
    return settings


@pytest.fixture
def mysql_store(mysql_settings):
    """SqlContentStore on the integration database; test rows are removed afterwards."""
    from sitesync.store import SqlContentStore

    content_store = SqlContentStore.from_settings(mysql_settings)
    yield content_store

    prefix = mysql_settings.table_prefix
    try:
        cursor = content_store.conn.cursor()
        cursor.execute(
            f"DELETE FROM {prefix}postmeta WHERE post_id IN "
            f"(SELECT ID FROM {prefix}posts WHERE post_name LIKE 'sitesync-test-%')"
        )
        cursor.execute(f"DELETE FROM {prefix}posts WHERE post_name LIKE 'sitesync-test-%'")
        cursor.execute(f"DELETE FROM {prefix}options WHERE option_name LIKE 'sitesync_test_%'")
        content_store.conn.commit()
    except Exception as e:
        logger.warning(f"Integration cleanup failed: {e}")
    content_store.close()
