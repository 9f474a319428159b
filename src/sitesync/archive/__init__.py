"""
Plugin directory archives.
"""

from .plugin_archive import PluginArchiver, ArchiveReport

__all__ = ["PluginArchiver", "ArchiveReport"]
