"""
Configuration loader for sitesync.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

try:
    import yaml
except ImportError:
    yaml = None

from ..core.exceptions import ConfigError
from ..core.models import DEFAULT_EXCLUDED_OPTION_KEYS


logger = logging.getLogger(__name__)

# Environment variable -> dotted config key
ENV_OVERRIDES = {
    "SITESYNC_SITE_ROOT": "site.root",
    "SITESYNC_ENVIRONMENT": "site.environment",
    "SITESYNC_THEME_DIR": "site.theme_dir",
    "SITESYNC_PLUGINS_DIR": "site.plugins_dir",
    "SITESYNC_SYNC_PATH": "sync.path",
    "SITESYNC_DB_HOST": "database.host",
    "SITESYNC_DB_PORT": "database.port",
    "SITESYNC_DB_NAME": "database.name",
    "SITESYNC_DB_USER": "database.user",
    "SITESYNC_DB_PASSWORD": "database.password",
    "SITESYNC_DB_DRIVER": "database.driver",
    "SITESYNC_DB_PREFIX": "database.table_prefix",
    "SITESYNC_DB_CONN_STR": "database.connection_string",
    "SITESYNC_ADMIN_SECRET": "admin.secret",
}


def load_env_file(env_path: Path) -> None:
    """
    Load a .env file into the process environment.

    Existing shell environment variables take precedence.
    """
    if not env_path.exists():
        return
    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip("\"'")
        if key and key not in os.environ:
            os.environ[key] = value


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class SyncConfig:
    """
    Configuration for sitesync.

    Loads an optional YAML file over built-in defaults, then applies
    SITESYNC_* environment overrides. One instance is passed explicitly to
    every component.
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        overrides: Optional[Dict[str, Any]] = None,
        env_file: Optional[Path] = None,
    ):
        """
        Initialize configuration.

        Args:
            config_path: Path to YAML config file (optional)
            overrides: Nested dict merged last, after env overrides (optional)
            env_file: .env file to load before reading the environment (optional)
        """
        self.config_path = Path(config_path) if config_path else None
        if env_file is not None:
            load_env_file(Path(env_file))

        self.config = _deep_merge(self._default_config(), self._load_config())
        self._apply_env_overrides()
        if overrides:
            self.config = _deep_merge(self.config, overrides)
        self._validate()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        if self.config_path is None:
            return {}

        if yaml is None:
            raise ImportError(
                "pyyaml is required for config loading. "
                "Install with: pip install pyyaml"
            )

        if not self.config_path.exists():
            raise ConfigError(f"Config file not found: {self.config_path}")

        logger.info(f"Loading config from: {self.config_path}")

        with open(self.config_path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)

        if config is not None and not isinstance(config, dict):
            raise ConfigError(f"Config file must contain a mapping: {self.config_path}")

        return config or {}

    def _default_config(self) -> Dict[str, Any]:
        """Return default configuration."""
        return {
            "site": {
                "root": os.getcwd(),
                "environment": "development",
                "theme_dir": "wp-content/themes/theme",
                "plugins_dir": "wp-content/plugins",
                "acf_json_dir": None,
            },
            "sync": {
                "path": "",
                "post_types": ["post", "page"],
                "hierarchical_types": ["page"],
                "export_statuses": ["publish"],
                "excluded_option_keys": list(DEFAULT_EXCLUDED_OPTION_KEYS),
                "skip_meta_keys": ["_edit_lock", "_edit_last"],
                "skip_option_prefixes": ["sitesync_"],
            },
            "menus": {
                "replace_existing": True,
            },
            "batch": {
                "export_size": 50,
                "import_size": 50,
                "export_delay": 0.1,
                "import_delay": 0.25,
            },
            "database": {
                "host": "localhost",
                "port": 3306,
                "name": "wordpress",
                "user": "root",
                "password": "",
                "driver": "MySQL ODBC 8.0 Unicode Driver",
                "table_prefix": "wp_",
                "connection_string": None,
                "compress": True,
                "max_import_bytes": 512 * 1024 * 1024,
                "probe_lines": 50,
                "insert_batch_rows": 100,
                "wp_cli": "wp",
                "mysqldump": "mysqldump",
                "mysql": "mysql",
                "command_timeout": None,
                "protected_options": ["siteurl", "home", "template", "stylesheet"],
                "verify_attempts": 3,
            },
            "archive": {
                "format": "tar.gz",
                "exclude": [".git", ".svn", ".hg", "*.log", "*.tmp", ".DS_Store", "__pycache__"],
            },
            "admin": {
                "secret": "",
                "token_lifetime": 86400,
                "capability": "manage_options",
            },
        }

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides to loaded config."""
        for env_key, dotted in ENV_OVERRIDES.items():
            value = os.environ.get(env_key)
            if value is None or value == "":
                continue
            section, name = dotted.split(".", 1)
            self.config.setdefault(section, {})[name] = value

    def _validate(self) -> None:
        """Coerce numeric values and reject out-of-range ones."""
        batch = self.config["batch"]
        for key in ("export_size", "import_size"):
            try:
                batch[key] = int(batch[key])
            except (TypeError, ValueError):
                raise ConfigError(f"batch.{key} must be an integer")
            if batch[key] < 0:
                raise ConfigError(f"batch.{key} must be >= 0")
        for key in ("export_delay", "import_delay"):
            batch[key] = float(batch[key])

        database = self.config["database"]
        try:
            database["port"] = int(database["port"])
        except (TypeError, ValueError):
            raise ConfigError("database.port must be an integer")

        if self.config["archive"]["format"] not in ("tar.gz", "zip"):
            raise ConfigError("archive.format must be 'tar.gz' or 'zip'")

    @property
    def site_root(self) -> Path:
        return Path(self.config["site"]["root"]).resolve()

    @property
    def environment(self) -> str:
        return str(self.config["site"]["environment"]).lower()

    @property
    def theme_dir(self) -> Path:
        return self._site_path(self.config["site"]["theme_dir"])

    @property
    def plugins_dir(self) -> Path:
        return self._site_path(self.config["site"]["plugins_dir"])

    @property
    def acf_json_dir(self) -> Path:
        configured = self.config["site"].get("acf_json_dir")
        if configured:
            return self._site_path(configured)
        return self.theme_dir / "acf-json"

    def _site_path(self, value: str) -> Path:
        path = Path(value)
        if not path.is_absolute():
            path = self.site_root / path
        return path

    def get_sync_config(self) -> Dict[str, Any]:
        """Get sync configuration."""
        return self.config.get("sync", {})

    def get_batch_config(self) -> Dict[str, Any]:
        """Get batch configuration."""
        return self.config.get("batch", {})

    def get_database_config(self) -> Dict[str, Any]:
        """Get database configuration."""
        return self.config.get("database", {})

    def get_archive_config(self) -> Dict[str, Any]:
        """Get archive configuration."""
        return self.config.get("archive", {})

    def get_admin_config(self) -> Dict[str, Any]:
        """Get admin configuration."""
        return self.config.get("admin", {})

    def get_post_types(self) -> List[str]:
        """Get the configured post types, defaulting to post and page."""
        types = self.config["sync"].get("post_types") or []
        return list(types) if types else ["post", "page"]

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value by dotted key."""
        keys = key.split(".")
        target = self.config
        for k in keys[:-1]:
            target = target.setdefault(k, {})
        target[keys[-1]] = value

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by key."""
        keys = key.split(".")
        value = self.config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default

    def save(self, path: Optional[Path] = None) -> Path:
        """Write the current configuration back to YAML."""
        if yaml is None:
            raise ImportError(
                "pyyaml is required for config saving. "
                "Install with: pip install pyyaml"
            )
        target = Path(path or self.config_path or "sitesync.yaml")
        target.parent.mkdir(parents=True, exist_ok=True)

        # Credentials stay in the environment
        data = copy.deepcopy(self.config)
        data["database"].pop("password", None)
        data["database"].pop("connection_string", None)
        data["admin"].pop("secret", None)

        with open(target, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, sort_keys=False)
        return target
