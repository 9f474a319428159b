"""
Database connection settings and pyodbc connection factory.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..core.exceptions import DatabaseError

logger = logging.getLogger(__name__)

# Optional pyodbc import
try:
    import pyodbc
except ImportError:
    pyodbc = None


def _odbc_value(value: Any) -> str:
    """Brace-quote a connection string value when it contains separators."""
    text = str(value)
    if any(ch in text for ch in ";{}=") or text != text.strip():
        return "{" + text.replace("}", "}}") + "}"
    return text


@dataclass
class DatabaseSettings:
    """
    Connection parameters for the site database.

    Attributes:
        host: MySQL host
        port: MySQL port
        name: Database name
        user: Database user
        password: Database password
        driver: ODBC driver name
        table_prefix: WordPress table prefix
        connection_string: Full ODBC connection string (overrides the parts)
    """
    host: str = "localhost"
    port: int = 3306
    name: str = "wordpress"
    user: str = "root"
    password: str = ""
    driver: str = "MySQL ODBC 8.0 Unicode Driver"
    table_prefix: str = "wp_"
    connection_string: Optional[str] = None

    @classmethod
    def from_config(cls, config) -> "DatabaseSettings":
        """Build settings from the database section of a SyncConfig."""
        db: Dict[str, Any] = config.get_database_config()
        return cls(
            host=str(db.get("host") or "localhost"),
            port=int(db.get("port") or 3306),
            name=str(db.get("name") or ""),
            user=str(db.get("user") or ""),
            password=str(db.get("password") or ""),
            driver=str(db.get("driver") or cls.driver),
            table_prefix=str(db.get("table_prefix") or "wp_"),
            connection_string=db.get("connection_string") or None,
        )

    def odbc_connection_string(self) -> str:
        """Get the ODBC connection string."""
        if self.connection_string:
            return self.connection_string
        parts = [
            f"DRIVER={{{self.driver}}}",
            f"SERVER={_odbc_value(self.host)}",
            f"PORT={self.port}",
            f"DATABASE={_odbc_value(self.name)}",
            f"UID={_odbc_value(self.user)}",
            f"PWD={_odbc_value(self.password)}",
            "CHARSET=utf8mb4",
        ]
        return ";".join(parts) + ";"

    def connect(self, autocommit: bool = False):
        """
        Open a pyodbc connection.

        Raises:
            ImportError: pyodbc is not installed
            DatabaseError: The connection failed
        """
        if pyodbc is None:
            raise ImportError(
                "pyodbc is required for database access. "
                "Install with: pip install pyodbc"
            )
        try:
            conn = pyodbc.connect(self.odbc_connection_string(), autocommit=autocommit)
        except pyodbc.Error as e:
            logger.error(f"Failed to connect to {self.host}:{self.port}/{self.name}: {e}")
            raise DatabaseError(f"Database connection failed: {e}") from e
        logger.debug(f"Connected to {self.host}:{self.port}/{self.name}")
        return conn

    def __repr__(self) -> str:
        return (
            f"DatabaseSettings(host={self.host!r}, port={self.port}, name={self.name!r}, "
            f"user={self.user!r}, table_prefix={self.table_prefix!r})"
        )
