"""
Content store implementations.
"""

from .sql_store import SqlContentStore

__all__ = ["SqlContentStore"]
