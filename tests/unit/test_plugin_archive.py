"""
Unit tests for plugin archive backup and restore.
"""

import io
import tarfile
import zipfile

import pytest

from sitesync.archive.plugin_archive import PluginArchiver
from sitesync.core.exceptions import ArchiveError, UnsafePathError
from sitesync.sync.paths import SyncPathResolver


def make_plugin(plugins_dir, slug, files=None):
    files = files or {f"{slug}.php": "<?php // plugin"}
    for relative, content in files.items():
        path = plugins_dir / slug / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return plugins_dir / slug


@pytest.fixture
def plugins_dir(config):
    return config.plugins_dir


@pytest.fixture
def archiver(config):
    return PluginArchiver.from_config(config, SyncPathResolver(config))


@pytest.mark.unit
class TestBackup:
    """Tests for plugin backup."""

    def test_from_config(self, archiver, config):
        assert archiver.archive_dir == config.theme_dir / "sync" / "plugins"
        assert archiver.archive_format == "tar.gz"
        assert ".git" in archiver.exclude

    def test_unsupported_format(self, tmp_path):
        with pytest.raises(ValueError):
            PluginArchiver(tmp_path, tmp_path, archive_format="rar")

    def test_backup_all(self, archiver, plugins_dir):
        make_plugin(plugins_dir, "alpha", {"alpha.php": "a", "inc/helpers.php": "h"})
        make_plugin(plugins_dir, "beta")

        report = archiver.backup_all()

        assert report.success
        assert report.created == ["alpha", "beta"]
        with tarfile.open(archiver.archive_path("alpha"), "r:gz") as tar:
            names = tar.getnames()
        assert "alpha/alpha.php" in names
        assert "alpha/inc/helpers.php" in names
        assert not list(archiver.archive_dir.glob("*.part"))

    def test_excludes(self, archiver, plugins_dir):
        make_plugin(plugins_dir, "alpha", {
            "alpha.php": "a",
            "debug.log": "noise",
            ".git/HEAD": "ref",
        })

        archiver.backup("alpha")

        with tarfile.open(archiver.archive_path("alpha"), "r:gz") as tar:
            names = tar.getnames()
        assert "alpha/alpha.php" in names
        assert not any(name.endswith("debug.log") for name in names)
        assert not any(".git" in name for name in names)

    def test_orphans_pruned_before_backup(self, archiver, plugins_dir):
        make_plugin(plugins_dir, "alpha")
        archiver.archive_dir.mkdir(parents=True)
        orphan = archiver.archive_path("removed-plugin")
        orphan.write_bytes(b"old")
        unrelated = archiver.archive_dir / "notes.txt"
        unrelated.write_text("keep")

        report = archiver.backup_all()

        assert report.pruned == ["removed-plugin"]
        assert not orphan.exists()
        assert unrelated.exists()
        assert archiver.archive_path("alpha").exists()

    def test_missing_plugin(self, archiver):
        with pytest.raises(ArchiveError, match="not found"):
            archiver.backup("ghost")

    def test_zip_format(self, plugins_dir, tmp_path):
        make_plugin(plugins_dir, "alpha", {"alpha.php": "a", "assets/app.js": "js"})
        archiver = PluginArchiver(plugins_dir, tmp_path / "archives", archive_format="zip")

        archive = archiver.backup("alpha")

        assert archive.path.name == "alpha.zip"
        with zipfile.ZipFile(archive.path) as zf:
            assert "alpha/assets/app.js" in zf.namelist()


@pytest.mark.unit
class TestRestore:
    """Tests for plugin restore."""

    def test_round_trip(self, archiver, plugins_dir, tmp_path):
        make_plugin(plugins_dir, "alpha", {"alpha.php": "<?php echo 1;", "inc/a.php": "x"})
        archiver.backup_all()
        target = tmp_path / "fresh-plugins"

        report = archiver.restore_all(target)

        assert report.restored == ["alpha"]
        assert (target / "alpha" / "alpha.php").read_text() == "<?php echo 1;"
        assert (target / "alpha" / "inc" / "a.php").exists()

    def test_existing_plugin_is_skipped(self, archiver, plugins_dir):
        make_plugin(plugins_dir, "alpha", {"alpha.php": "original"})
        archiver.backup("alpha")
        (plugins_dir / "alpha" / "alpha.php").write_text("local change")

        report = archiver.restore_all()

        assert report.skipped == ["alpha"]
        assert (plugins_dir / "alpha" / "alpha.php").read_text() == "local change"

    def test_missing_archive(self, archiver):
        with pytest.raises(ArchiveError, match="Archive not found"):
            archiver.restore("ghost")

    @pytest.mark.parametrize("slug", ["", "../evil", "a/b", "bad slug!"])
    def test_invalid_slug(self, archiver, slug):
        with pytest.raises(UnsafePathError):
            archiver.restore(slug)

    def test_traversal_member_rejected(self, archiver, tmp_path):
        archiver.archive_dir.mkdir(parents=True)
        with tarfile.open(archiver.archive_path("evil"), "w:gz") as tar:
            data = b"owned"
            info = tarfile.TarInfo("../../outside.txt")
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
        target = tmp_path / "restore-target"

        with pytest.raises(UnsafePathError):
            archiver.restore("evil", target)
        assert not (tmp_path / "outside.txt").exists()

        report = archiver.restore_all(target)
        assert report.failed == ["evil"]

    def test_symlink_member_rejected(self, archiver, tmp_path):
        archiver.archive_dir.mkdir(parents=True)
        with tarfile.open(archiver.archive_path("linky"), "w:gz") as tar:
            info = tarfile.TarInfo("linky/passwd")
            info.type = tarfile.SYMTYPE
            info.linkname = "/etc/passwd"
            tar.addfile(info)

        with pytest.raises(UnsafePathError, match="Unsupported"):
            archiver.restore("linky", tmp_path / "restore-target")

    def test_zip_restore(self, plugins_dir, tmp_path):
        make_plugin(plugins_dir, "alpha", {"alpha.php": "zip me"})
        archiver = PluginArchiver(plugins_dir, tmp_path / "archives", archive_format="zip")
        archiver.backup("alpha")
        target = tmp_path / "unzipped"

        assert archiver.restore("alpha", target) == "restored"
        assert (target / "alpha" / "alpha.php").read_text() == "zip me"

    def test_restore_all_ignores_other_format(self, archiver, tmp_path):
        archiver.archive_dir.mkdir(parents=True)
        with zipfile.ZipFile(archiver.archive_dir / "zipped.zip", "w") as zf:
            zf.writestr("zipped/zipped.php", "z")

        report = archiver.restore_all(tmp_path / "target")

        assert report.restored == []
        assert report.failed == []
