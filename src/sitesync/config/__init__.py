"""
Configuration for sitesync.
"""

from .config_loader import SyncConfig, load_env_file

__all__ = ["SyncConfig", "load_env_file"]
