"""
Database dump/restore engine.

Dumps the site database to a timestamped artifact in the database sync
directory and restores the newest artifact, trying each strategy in turn.
A restore is guarded by file validation, a write-access probe and a
snapshot of protected settings that is written back afterwards.
"""

import hashlib
import json
import logging
import shutil
import tarfile
import tempfile
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from ..core.models import DumpArtifact
from ..sync.paths import SyncPathResolver
from .connection import DatabaseSettings
from .settings import ProtectedSettings
from .strategies import DatabaseStrategy, WpCliStrategy, build_default_strategies
from .validation import validate_dump_file

logger = logging.getLogger(__name__)

MARKER_FILE = ".last-import"
PROBE_TABLE = "sitesync_probe"
CORE_TABLES = ["posts", "postmeta", "options", "users", "terms"]


class RestoreStatus(str, Enum):
    """Outcome of a restore attempt."""
    RESTORED = "restored"
    UP_TO_DATE = "up_to_date"
    NO_ARTIFACT = "no_artifact"
    INVALID = "invalid"
    CONNECTION_FAILED = "connection_failed"
    FAILED = "failed"


@dataclass
class DumpResult:
    """Outcome of a dump."""
    success: bool
    method: Optional[str] = None
    artifact: Optional[DumpArtifact] = None
    errors: List[str] = field(default_factory=list)


@dataclass
class RestoreResult:
    """Outcome of a restore."""
    status: RestoreStatus
    method: Optional[str] = None
    artifact: Optional[DumpArtifact] = None
    tables: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status in (RestoreStatus.RESTORED, RestoreStatus.UP_TO_DATE)


def file_sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def count_tables(conn) -> int:
    cursor = conn.cursor()
    cursor.execute("SHOW TABLES")
    count = len(cursor.fetchall())
    cursor.close()
    return count


def missing_core_tables(conn, table_prefix: str) -> List[str]:
    """Return the core tables that cannot be queried."""
    missing = []
    cursor = conn.cursor()
    for name in CORE_TABLES:
        table = f"{table_prefix}{name}"
        try:
            cursor.execute(f"SELECT COUNT(*) FROM {table}")
            cursor.fetchone()
        except Exception as e:
            logger.error(f"Core table {table} is not readable: {e}")
            missing.append(table)
    cursor.close()
    return missing


class DatabaseEngine:
    """
    Dumps and restores the site database through a strategy chain.
    """

    def __init__(
        self,
        config,
        settings: Optional[DatabaseSettings] = None,
        strategies: Optional[List[DatabaseStrategy]] = None,
        connection_factory: Optional[Callable[[], object]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the engine.

        Args:
            config: SyncConfig instance
            settings: Database settings (built from config if None)
            strategies: Ordered strategies (default chain if None)
            connection_factory: Callable returning a new DB-API connection
            sleep: Delay function for the settings verification loop
        """
        self.config = config
        self.settings = settings or DatabaseSettings.from_config(config)
        self.connection_factory = connection_factory or self.settings.connect
        self.strategies = strategies if strategies is not None else build_default_strategies(
            config, self.settings, self.connection_factory
        )
        self.resolver = SyncPathResolver(config)
        self.sleep = sleep

    @property
    def database_dir(self) -> Path:
        return self.resolver.database_dir()

    @property
    def marker_path(self) -> Path:
        return self.database_dir / MARKER_FILE

    # ------------------------------------------------------------------
    # Dump
    # ------------------------------------------------------------------

    def dump(self, compress: Optional[bool] = None) -> DumpResult:
        """
        Dump the database to database-<UTC>.sql, optionally packed as .tar.gz.

        Args:
            compress: Pack into a tar.gz (config database.compress if None)
        """
        if compress is None:
            compress = bool(self.config.get_database_config().get("compress", True))

        self.database_dir.mkdir(parents=True, exist_ok=True)
        timestamp = DumpArtifact.timestamp_now()
        sql_path = self.database_dir / f"database-{timestamp}.sql"

        errors: List[str] = []
        method = None
        for strategy in self.strategies:
            if not strategy.is_available():
                errors.append(f"{strategy.name}: not available")
                logger.info(f"Dump strategy {strategy.name} not available")
                continue
            try:
                logger.info(f"Dumping database with {strategy.name}")
                strategy.export_to(sql_path)
                if not sql_path.exists() or sql_path.stat().st_size == 0:
                    raise RuntimeError("no output written")
                method = strategy.name
                break
            except Exception as e:
                errors.append(f"{strategy.name}: {e}")
                logger.warning(f"Dump strategy {strategy.name} failed: {e}")
                if sql_path.exists():
                    sql_path.unlink()

        if method is None:
            logger.error("Database dump failed with every strategy")
            return DumpResult(success=False, errors=errors)

        artifact_path = sql_path
        if compress:
            tar_path = self.database_dir / f"database-{timestamp}.tar.gz"
            try:
                with tarfile.open(tar_path, "w:gz") as tar:
                    tar.add(sql_path, arcname=sql_path.name)
                sql_path.unlink()
                artifact_path = tar_path
            except (OSError, tarfile.TarError) as e:
                errors.append(f"compression: {e}")
                logger.error(f"Failed to compress {sql_path}, keeping uncompressed dump: {e}")
                if tar_path.exists():
                    tar_path.unlink()

        artifact = DumpArtifact.from_path(artifact_path)
        logger.info(f"Database dumped with {method} to {artifact_path}")
        return DumpResult(success=True, method=method, artifact=artifact, errors=errors)

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def list_artifacts(self) -> List[DumpArtifact]:
        if not self.database_dir.is_dir():
            return []
        artifacts = []
        for path in self.database_dir.iterdir():
            if path.is_file():
                artifact = DumpArtifact.from_path(path)
                if artifact is not None:
                    artifacts.append(artifact)
        return sorted(artifacts, key=lambda a: (a.mtime, a.path.name))

    def find_latest_artifact(self) -> Optional[DumpArtifact]:
        """Get the most recently modified dump artifact, or None."""
        artifacts = self.list_artifacts()
        return artifacts[-1] if artifacts else None

    def _read_marker(self) -> Optional[str]:
        if not self.marker_path.exists():
            return None
        try:
            data = json.loads(self.marker_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable import marker: {e}")
            return None
        return data.get("sha256") if isinstance(data, dict) else None

    def _write_marker(self, artifact: DumpArtifact, digest: str) -> None:
        marker = {
            "sha256": digest,
            "artifact": artifact.path.name,
            "imported_at": datetime.now(timezone.utc).isoformat(),
        }
        self.marker_path.write_text(json.dumps(marker, indent=4), encoding="utf-8")

    def _extract_sql(self, archive: Path, target_dir: Path) -> Optional[Path]:
        """Extract the first .sql member of a tar.gz into target_dir."""
        with tarfile.open(archive, "r:gz") as tar:
            for member in tar.getmembers():
                name = Path(member.name).name
                if not member.isfile() or not name.endswith(".sql"):
                    continue
                source = tar.extractfile(member)
                if source is None:
                    continue
                target = target_dir / name
                with source, open(target, "wb") as out:
                    shutil.copyfileobj(source, out)
                return target
        return None

    def _probe_write_access(self, conn) -> None:
        """Create and drop a scratch table; a table left by an earlier run is dropped first."""
        table = f"{self.settings.table_prefix}{PROBE_TABLE}"
        cursor = conn.cursor()
        try:
            cursor.execute(f"DROP TABLE IF EXISTS {table}")
            cursor.execute(f"CREATE TABLE {table} (id INT)")
        finally:
            cursor.execute(f"DROP TABLE IF EXISTS {table}")
            conn.commit()
            cursor.close()

    def _flush_cache(self) -> None:
        for strategy in self.strategies:
            if isinstance(strategy, WpCliStrategy):
                if strategy.flush_cache():
                    logger.debug("Flushed object cache")
                return

    def restore(self, force: bool = False) -> RestoreResult:
        """
        Restore the newest dump artifact.

        Args:
            force: Import even if the artifact matches the last import
        """
        artifact = self.find_latest_artifact()
        if artifact is None:
            logger.error(f"No database dump found in {self.database_dir}")
            return RestoreResult(
                status=RestoreStatus.NO_ARTIFACT,
                errors=[f"No database dump found in {self.database_dir}"],
            )

        digest = file_sha256(artifact.path)
        if not force and self._read_marker() == digest:
            logger.info(f"{artifact.path.name} was already imported")
            return RestoreResult(status=RestoreStatus.UP_TO_DATE, artifact=artifact)

        with tempfile.TemporaryDirectory(prefix="sitesync-restore-") as tmp:
            sql_path = artifact.path
            if artifact.compressed:
                try:
                    sql_path = self._extract_sql(artifact.path, Path(tmp))
                except (OSError, tarfile.TarError) as e:
                    return RestoreResult(
                        status=RestoreStatus.INVALID,
                        artifact=artifact,
                        errors=[f"Could not extract {artifact.path.name}: {e}"],
                    )
                if sql_path is None:
                    return RestoreResult(
                        status=RestoreStatus.INVALID,
                        artifact=artifact,
                        errors=[f"No .sql file inside {artifact.path.name}"],
                    )

            result = self._restore_sql(artifact, sql_path)

        if result.status == RestoreStatus.RESTORED:
            self._write_marker(artifact, digest)
        return result

    def _restore_sql(self, artifact: DumpArtifact, sql_path: Path) -> RestoreResult:
        db = self.config.get_database_config()
        validation = validate_dump_file(
            sql_path,
            max_bytes=int(db.get("max_import_bytes") or 0),
            probe_lines=int(db.get("probe_lines") or 50),
        )
        if not validation.valid:
            logger.error(validation.error)
            return RestoreResult(status=RestoreStatus.INVALID, artifact=artifact, errors=[validation.error])

        try:
            conn = self.connection_factory()
        except Exception as e:
            logger.error(f"Database connection failed: {e}")
            return RestoreResult(
                status=RestoreStatus.CONNECTION_FAILED,
                artifact=artifact,
                errors=[f"Database connection failed: {e}"],
            )

        try:
            try:
                self._probe_write_access(conn)
            except Exception as e:
                logger.error(f"Database user cannot write: {e}")
                return RestoreResult(
                    status=RestoreStatus.CONNECTION_FAILED,
                    artifact=artifact,
                    errors=[f"Write access check failed: {e}"],
                )

            protected = ProtectedSettings(
                conn, self.settings.table_prefix, db.get("protected_options")
            )
            snapshot = protected.snapshot()

            errors: List[str] = []
            method = None
            for strategy in self.strategies:
                if not strategy.is_available():
                    errors.append(f"{strategy.name}: not available")
                    continue
                try:
                    logger.info(f"Importing {sql_path.name} with {strategy.name}")
                    strategy.import_from(sql_path)
                    method = strategy.name
                    break
                except Exception as e:
                    errors.append(f"{strategy.name}: {e}")
                    logger.warning(f"Import strategy {strategy.name} failed: {e}")

            if method is None:
                logger.error("Database import failed with every strategy")
                return RestoreResult(status=RestoreStatus.FAILED, artifact=artifact, errors=errors)

            missing = missing_core_tables(conn, self.settings.table_prefix)
            if missing:
                errors.append(f"Missing core tables after import: {', '.join(missing)}")
                return RestoreResult(status=RestoreStatus.FAILED, method=method, artifact=artifact, errors=errors)

            tables = count_tables(conn)

            verification = protected.restore(
                snapshot,
                flush_cache=self._flush_cache,
                attempts=int(db.get("verify_attempts") or 3),
                sleep=self.sleep,
            )
            if not verification.success:
                errors.append("Protected settings could not be verified: " + "; ".join(verification.error_history))

            logger.info(f"Database restored from {artifact.path.name} with {method} ({tables} tables)")
            return RestoreResult(
                status=RestoreStatus.RESTORED,
                method=method,
                artifact=artifact,
                tables=tables,
                errors=errors,
            )
        finally:
            conn.close()
