"""
Core abstractions and interfaces for sitesync.
"""

from .models import (
    ContentRecord, OptionSet, MenuItem, MenuDefinition, ThemeData,
    BatchCursor, DumpArtifact, PluginArchive, ImportOutcome,
    DEFAULT_EXCLUDED_OPTION_KEYS, FSE_POST_TYPES,
)
from .content_store import ContentStore
from .hooks import HookRegistry

__all__ = [
    "ContentRecord",
    "OptionSet",
    "MenuItem",
    "MenuDefinition",
    "ThemeData",
    "BatchCursor",
    "DumpArtifact",
    "PluginArchive",
    "ImportOutcome",
    "DEFAULT_EXCLUDED_OPTION_KEYS",
    "FSE_POST_TYPES",
    "ContentStore",
    "HookRegistry",
]
