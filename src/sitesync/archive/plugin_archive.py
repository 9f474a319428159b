"""
Plugin archive backup and restore.

Every top-level plugin directory is packed into one archive named after
its slug. Archives whose plugin directory has disappeared are pruned
before a new backup run. Restores never overwrite an existing plugin.
"""

import fnmatch
import logging
import os
import shutil
import tarfile
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

from ..core.exceptions import ArchiveError, UnsafePathError
from ..core.models import PluginArchive
from ..sync.paths import sanitize_file_name

logger = logging.getLogger(__name__)

FORMATS = {"tar.gz": ".tar.gz", "zip": ".zip"}

DEFAULT_EXCLUDES = [".git", ".svn", ".hg", "*.log", "*.tmp", ".DS_Store", "__pycache__"]


@dataclass
class ArchiveReport:
    """Outcome of a backup or restore run."""
    created: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    pruned: List[str] = field(default_factory=list)
    restored: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed


def _is_within(root: Path, candidate: Path) -> bool:
    root = os.path.realpath(root)
    candidate = os.path.realpath(candidate)
    return os.path.commonpath([root, candidate]) == root


class PluginArchiver:
    """
    Backs up and restores plugin directories as compressed archives.
    """

    def __init__(
        self,
        plugins_dir: Path,
        archive_dir: Path,
        archive_format: str = "tar.gz",
        exclude: Optional[Iterable[str]] = None,
    ):
        """
        Initialize the archiver.

        Args:
            plugins_dir: Directory containing one subdirectory per plugin
            archive_dir: Directory where archives are written
            archive_format: 'tar.gz' or 'zip'
            exclude: Name patterns skipped while packing
        """
        if archive_format not in FORMATS:
            raise ValueError(f"Unsupported archive format: {archive_format}")
        self.plugins_dir = Path(plugins_dir)
        self.archive_dir = Path(archive_dir)
        self.archive_format = archive_format
        self.exclude = list(exclude) if exclude is not None else list(DEFAULT_EXCLUDES)

    @classmethod
    def from_config(cls, config, resolver) -> "PluginArchiver":
        archive = config.get_archive_config()
        return cls(
            plugins_dir=config.plugins_dir,
            archive_dir=resolver.plugins_archive_dir(),
            archive_format=archive.get("format", "tar.gz"),
            exclude=archive.get("exclude"),
        )

    @property
    def suffix(self) -> str:
        return FORMATS[self.archive_format]

    def archive_path(self, slug: str) -> Path:
        return self.archive_dir / f"{slug}{self.suffix}"

    def _is_excluded(self, name: str) -> bool:
        return any(fnmatch.fnmatch(name, pattern) for pattern in self.exclude)

    def list_plugins(self) -> List[str]:
        if not self.plugins_dir.is_dir():
            return []
        return sorted(
            p.name for p in self.plugins_dir.iterdir()
            if p.is_dir() and not p.name.startswith(".")
        )

    def list_archives(self) -> List[PluginArchive]:
        """Get archives of every known format in the archive directory."""
        if not self.archive_dir.is_dir():
            return []
        archives = []
        for path in sorted(self.archive_dir.iterdir()):
            if not path.is_file():
                continue
            for fmt, suffix in FORMATS.items():
                if path.name.endswith(suffix) and len(path.name) > len(suffix):
                    archives.append(PluginArchive(slug=path.name[:-len(suffix)], path=path, format=fmt))
                    break
        return archives

    # ------------------------------------------------------------------
    # Backup
    # ------------------------------------------------------------------

    def prune_orphans(self) -> List[str]:
        """Delete archives whose plugin directory no longer exists."""
        pruned = []
        for archive in self.list_archives():
            if (self.plugins_dir / archive.slug).is_dir():
                continue
            try:
                archive.path.unlink()
            except OSError as e:
                logger.error(f"Failed to remove orphaned archive {archive.path}: {e}")
                continue
            pruned.append(archive.slug)
            logger.info(f"Removed orphaned archive {archive.path.name}")
        return pruned

    def _walk(self, plugin_dir: Path) -> Iterator[Path]:
        """Yield files and directories under plugin_dir, skipping excluded names."""
        for root, dirs, files in os.walk(plugin_dir):
            dirs[:] = sorted(d for d in dirs if not self._is_excluded(d))
            root_path = Path(root)
            for d in dirs:
                yield root_path / d
            for name in sorted(files):
                if not self._is_excluded(name):
                    yield root_path / name

    def backup(self, slug: str) -> PluginArchive:
        """
        Archive one plugin directory, overwriting any previous archive.

        Raises:
            ArchiveError: The plugin directory is missing or packing failed
        """
        plugin_dir = self.plugins_dir / slug
        if not plugin_dir.is_dir():
            raise ArchiveError(f"Plugin directory not found: {plugin_dir}")

        self.archive_dir.mkdir(parents=True, exist_ok=True)
        target = self.archive_path(slug)
        partial = target.with_name(target.name + ".part")

        try:
            if self.archive_format == "zip":
                with zipfile.ZipFile(partial, "w", zipfile.ZIP_DEFLATED) as zf:
                    zf.write(plugin_dir, slug)
                    for path in self._walk(plugin_dir):
                        zf.write(path, str(Path(slug) / path.relative_to(plugin_dir)))
            else:
                with tarfile.open(partial, "w:gz") as tar:
                    tar.add(plugin_dir, arcname=slug, recursive=False)
                    for path in self._walk(plugin_dir):
                        tar.add(path, arcname=str(Path(slug) / path.relative_to(plugin_dir)), recursive=False)
            os.replace(partial, target)
        except (OSError, tarfile.TarError, zipfile.BadZipFile) as e:
            if partial.exists():
                partial.unlink()
            raise ArchiveError(f"Failed to archive {slug}: {e}") from e

        logger.debug(f"Archived {slug} to {target}")
        return PluginArchive(slug=slug, path=target, format=self.archive_format)

    def backup_all(self) -> ArchiveReport:
        """Prune orphaned archives, then archive every plugin directory."""
        report = ArchiveReport()
        report.pruned = self.prune_orphans()

        for slug in self.list_plugins():
            try:
                self.backup(slug)
                report.created.append(slug)
            except ArchiveError as e:
                logger.error(str(e))
                report.failed.append(slug)

        logger.info(
            f"Plugin backup: {len(report.created)} archived, {len(report.failed)} failed, "
            f"{len(report.pruned)} orphaned archives removed"
        )
        return report

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def _extract_tar(self, archive: Path, target_root: Path) -> None:
        with tarfile.open(archive, "r:gz") as tar:
            members = tar.getmembers()
            for member in members:
                destination = target_root / member.name
                if not _is_within(target_root, destination):
                    raise UnsafePathError(f"Archive member escapes target: {member.name}", member.name)
                if not (member.isfile() or member.isdir()):
                    raise UnsafePathError(f"Unsupported archive member: {member.name}", member.name)
            for member in members:
                destination = target_root / member.name
                if member.isdir():
                    destination.mkdir(parents=True, exist_ok=True)
                    continue
                destination.parent.mkdir(parents=True, exist_ok=True)
                source = tar.extractfile(member)
                with source, open(destination, "wb") as out:
                    shutil.copyfileobj(source, out)
                os.chmod(destination, member.mode & 0o777 or 0o644)

    def _extract_zip(self, archive: Path, target_root: Path) -> None:
        with zipfile.ZipFile(archive) as zf:
            for name in zf.namelist():
                if not _is_within(target_root, target_root / name):
                    raise UnsafePathError(f"Archive member escapes target: {name}", name)
            zf.extractall(target_root)

    def restore(self, slug: str, target_root: Optional[Path] = None) -> str:
        """
        Restore one plugin from its archive.

        Args:
            slug: Plugin slug
            target_root: Directory to restore into (plugins_dir if None)

        Returns:
            'restored', or 'skipped' when the plugin directory already exists

        Raises:
            ArchiveError: The archive is missing or cannot be extracted
            UnsafePathError: The archive contains members outside the target
        """
        if not slug or slug != sanitize_file_name(slug):
            raise UnsafePathError(f"Invalid plugin slug: {slug!r}", slug)
        target_root = Path(target_root) if target_root else self.plugins_dir
        if (target_root / slug).exists():
            logger.info(f"Plugin {slug} already exists, skipping restore")
            return "skipped"

        archive = self.archive_path(slug)
        if not archive.exists():
            raise ArchiveError(f"Archive not found: {archive}")

        target_root.mkdir(parents=True, exist_ok=True)
        try:
            if self.archive_format == "zip":
                self._extract_zip(archive, target_root)
            else:
                self._extract_tar(archive, target_root)
        except (OSError, tarfile.TarError, zipfile.BadZipFile) as e:
            raise ArchiveError(f"Failed to extract {archive.name}: {e}") from e

        logger.info(f"Restored plugin {slug}")
        return "restored"

    def restore_all(self, target_root: Optional[Path] = None) -> ArchiveReport:
        """Restore every archived plugin that is not already installed."""
        report = ArchiveReport()
        for archive in self.list_archives():
            if archive.format != self.archive_format:
                continue
            try:
                outcome = self.restore(archive.slug, target_root)
            except (ArchiveError, UnsafePathError) as e:
                logger.error(str(e))
                report.failed.append(archive.slug)
                continue
            if outcome == "skipped":
                report.skipped.append(archive.slug)
            else:
                report.restored.append(archive.slug)

        logger.info(
            f"Plugin restore: {len(report.restored)} restored, {len(report.skipped)} skipped, "
            f"{len(report.failed)} failed"
        )
        return report
