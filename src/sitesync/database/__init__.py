"""
Database dump and restore.
"""

from .connection import DatabaseSettings
from .engine import DatabaseEngine, DumpResult, RestoreResult, RestoreStatus
from .settings import ProtectedSettings
from .sql_dump import SqlDumper, SqlExecutor, escape_sql_value, split_sql_statements
from .strategies import (
    DatabaseStrategy,
    WpCliStrategy,
    NativeClientStrategy,
    InProcessStrategy,
    build_default_strategies,
)
from .validation import validate_dump_file

__all__ = [
    "DatabaseSettings",
    "DatabaseEngine",
    "DumpResult",
    "RestoreResult",
    "RestoreStatus",
    "ProtectedSettings",
    "SqlDumper",
    "SqlExecutor",
    "escape_sql_value",
    "split_sql_statements",
    "DatabaseStrategy",
    "WpCliStrategy",
    "NativeClientStrategy",
    "InProcessStrategy",
    "build_default_strategies",
    "validate_dump_file",
]
