"""
Production guard for mutating operations.
"""

import logging
import shutil

from ..core.exceptions import OperationDisabledError
from .paths import SyncPathResolver

logger = logging.getLogger(__name__)

PRODUCTION = "production"


class EnvironmentGuard:
    """
    Disables sync operations on production sites.

    In production any existing sync directory is removed so exported
    content and dumps are never left on a public server.
    """

    def __init__(self, config, resolver: SyncPathResolver = None):
        self.config = config
        self.resolver = resolver or SyncPathResolver(config)

    def is_production(self) -> bool:
        return self.config.environment == PRODUCTION

    def purge_sync_directory(self) -> bool:
        """Remove the sync directory if it exists."""
        base_dir = self.resolver.base_dir()
        if not base_dir.is_dir():
            return False
        shutil.rmtree(base_dir)
        logger.warning(f"Removed sync directory {base_dir} in production environment")
        return True

    def enforce(self, operation: str = "") -> None:
        """
        Raise OperationDisabledError in production.

        Args:
            operation: Name of the attempted operation, for the message
        """
        if not self.is_production():
            return
        self.purge_sync_directory()
        label = f"'{operation}' is" if operation else "Sync operations are"
        raise OperationDisabledError(f"{label} disabled in the production environment")
