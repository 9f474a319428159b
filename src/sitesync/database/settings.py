"""
Protected site settings that must survive a database restore.

A dump taken on another environment carries that environment's URLs and
theme. The current values are captured before the import and written back
afterwards, then re-read until they stick.
"""

import logging
import time
from typing import Callable, Dict, List, Optional

from ..utils.retry import RetryConfig, RetryResult, retry_with_backoff

logger = logging.getLogger(__name__)

DEFAULT_PROTECTED_OPTIONS = ["siteurl", "home", "template", "stylesheet"]


class SettingsMismatch(Exception):
    """Re-read settings differ from the snapshot."""
    pass


class ProtectedSettings:
    """Snapshot and force-restore of a fixed set of options."""

    def __init__(self, conn, table_prefix: str = "wp_", names: Optional[List[str]] = None):
        self.conn = conn
        self.table = f"{table_prefix}options"
        self.names = list(names) if names is not None else list(DEFAULT_PROTECTED_OPTIONS)

    def read(self) -> Dict[str, Optional[str]]:
        """Read the current raw values; missing options map to None."""
        values: Dict[str, Optional[str]] = {}
        cursor = self.conn.cursor()
        for name in self.names:
            cursor.execute(
                f"SELECT option_value FROM {self.table} WHERE option_name = ?", (name,)
            )
            row = cursor.fetchone()
            values[name] = row[0] if row else None
        cursor.close()
        return values

    def snapshot(self) -> Dict[str, str]:
        """Capture the values that exist right now."""
        values = {name: value for name, value in self.read().items() if value is not None}
        logger.info(f"Captured protected settings: {', '.join(sorted(values)) or 'none'}")
        return values

    def apply(self, snapshot: Dict[str, str]) -> None:
        """Write snapshot values back with direct UPDATEs."""
        cursor = self.conn.cursor()
        for name, value in snapshot.items():
            cursor.execute(
                f"UPDATE {self.table} SET option_value = ? WHERE option_name = ?", (value, name)
            )
        self.conn.commit()
        cursor.close()

    def restore(
        self,
        snapshot: Dict[str, str],
        flush_cache: Optional[Callable[[], None]] = None,
        attempts: int = 3,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> RetryResult:
        """
        Force-restore a snapshot and verify it.

        Each verification attempt re-reads the values; on mismatch the
        snapshot is applied again before the next attempt.

        Returns:
            RetryResult; success is False if the values never matched
        """
        if not snapshot:
            return RetryResult(success=True, attempts=0)

        self.apply(snapshot)
        if flush_cache is not None:
            flush_cache()

        def verify() -> Dict[str, Optional[str]]:
            current = self.read()
            mismatched = [name for name, value in snapshot.items() if current.get(name) != value]
            if mismatched:
                self.apply(snapshot)
                if flush_cache is not None:
                    flush_cache()
                raise SettingsMismatch(f"Settings not yet restored: {', '.join(mismatched)}")
            return current

        result = retry_with_backoff(
            verify,
            RetryConfig(max_attempts=max(1, attempts)),
            retry_on=(SettingsMismatch,),
            operation_name="Protected settings verification",
            sleep=sleep or time.sleep,
        )
        if result.success:
            logger.info(f"Restored protected settings: {', '.join(sorted(snapshot))}")
        return result
