"""
Database dump/restore strategies.

Each strategy moves the whole database to or from a .sql file by one
mechanism. The engine tries them in order (WP-CLI, native MySQL clients,
in-process SQL) and stops at the first one that succeeds.
"""

import logging
import os
import shlex
import shutil
import subprocess
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from ..core.exceptions import StrategyError
from .connection import DatabaseSettings
from .sql_dump import ExecutionStats, SqlDumper, SqlExecutor

logger = logging.getLogger(__name__)


def run_command(
    cmd: Sequence[str],
    timeout: Optional[float] = None,
    stdin_path: Optional[Path] = None,
) -> Tuple[int, str, str]:
    """
    Run a command and capture its output.

    Returns:
        (returncode, stdout, stderr); 127 for a missing binary, 124 on timeout
    """
    logger.debug(f"Running command: {' '.join(map(shlex.quote, cmd))}")
    try:
        if stdin_path is not None:
            with open(stdin_path, "rb") as stdin:
                cp = subprocess.run(cmd, stdin=stdin, capture_output=True, timeout=timeout, check=False)
        else:
            cp = subprocess.run(cmd, capture_output=True, timeout=timeout, check=False)
    except FileNotFoundError:
        return 127, "", f"Command not found: {cmd[0]}"
    except subprocess.TimeoutExpired:
        return 124, "", f"Timeout after {timeout}s running: {cmd[0]}"
    return (
        cp.returncode,
        cp.stdout.decode("utf-8", "replace"),
        cp.stderr.decode("utf-8", "replace"),
    )


class DatabaseStrategy(ABC):
    """One way of exporting and importing the whole database."""

    name = "strategy"

    @abstractmethod
    def is_available(self) -> bool:
        """Whether this strategy can run on this host."""
        pass

    @abstractmethod
    def export_to(self, path: Path) -> None:
        """
        Write the database to a .sql file.

        Raises:
            StrategyError: The export failed
        """
        pass

    @abstractmethod
    def import_from(self, path: Path) -> None:
        """
        Load a .sql file into the database.

        Raises:
            StrategyError: The import failed
        """
        pass

    def _check(self, code: int, stdout: str, stderr: str, action: str) -> None:
        if code != 0:
            output = (stderr or stdout).strip()
            raise StrategyError(
                f"{self.name} {action} exited with code {code}: {output[:500]}",
                strategy=self.name,
                output=output,
            )


class WpCliStrategy(DatabaseStrategy):
    """wp db export / wp db import."""

    name = "wp-cli"

    def __init__(self, site_root: Path, executable: str = "wp", timeout: Optional[float] = None):
        self.site_root = Path(site_root)
        self.executable = executable
        self.timeout = timeout

    def is_available(self) -> bool:
        return shutil.which(self.executable) is not None

    def _cmd(self, *args: str) -> List[str]:
        return [self.executable, *args, f"--path={self.site_root}", "--quiet"]

    def export_to(self, path: Path) -> None:
        code, out, err = run_command(self._cmd("db", "export", str(path)), timeout=self.timeout)
        self._check(code, out, err, "export")

    def import_from(self, path: Path) -> None:
        code, out, err = run_command(self._cmd("db", "import", str(path)), timeout=self.timeout)
        self._check(code, out, err, "import")

    def flush_cache(self) -> bool:
        """Flush the object cache; returns False if WP-CLI is missing or fails."""
        if not self.is_available():
            return False
        code, out, err = run_command(self._cmd("cache", "flush"), timeout=self.timeout)
        if code != 0:
            logger.warning(f"wp cache flush failed: {(err or out).strip()}")
            return False
        return True


def _cnf_value(value: str) -> str:
    return '"' + str(value).replace("\\", "\\\\").replace('"', '\\"') + '"'


class NativeClientStrategy(DatabaseStrategy):
    """
    mysqldump / mysql.

    Credentials are written to a temporary [client] option file readable
    only by the current user and passed with --defaults-extra-file, so the
    password never appears in the process list.
    """

    name = "native"

    def __init__(
        self,
        settings: DatabaseSettings,
        mysqldump: str = "mysqldump",
        mysql: str = "mysql",
        timeout: Optional[float] = None,
    ):
        self.settings = settings
        self.mysqldump = mysqldump
        self.mysql = mysql
        self.timeout = timeout

    def is_available(self) -> bool:
        return shutil.which(self.mysqldump) is not None and shutil.which(self.mysql) is not None

    def _write_defaults_file(self) -> Path:
        fd, name = tempfile.mkstemp(prefix="sitesync-", suffix=".cnf")
        os.chmod(name, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write("[client]\n")
            f.write(f"user={_cnf_value(self.settings.user)}\n")
            f.write(f"password={_cnf_value(self.settings.password)}\n")
            f.write(f"host={_cnf_value(self.settings.host)}\n")
            f.write(f"port={int(self.settings.port)}\n")
            f.write("default-character-set=utf8mb4\n")
        return Path(name)

    def _run_with_credentials(self, build: Callable[[str], List[str]], stdin_path: Optional[Path] = None):
        defaults_file = self._write_defaults_file()
        try:
            return run_command(
                build(f"--defaults-extra-file={defaults_file}"),
                timeout=self.timeout,
                stdin_path=stdin_path,
            )
        finally:
            try:
                defaults_file.unlink()
            except OSError as e:
                logger.warning(f"Could not remove credentials file {defaults_file}: {e}")

    def export_to(self, path: Path) -> None:
        code, out, err = self._run_with_credentials(lambda defaults: [
            self.mysqldump,
            defaults,
            "--single-transaction",
            "--quick",
            "--add-drop-table",
            f"--result-file={path}",
            self.settings.name,
        ])
        self._check(code, out, err, "export")

    def import_from(self, path: Path) -> None:
        code, out, err = self._run_with_credentials(
            lambda defaults: [self.mysql, defaults, self.settings.name],
            stdin_path=path,
        )
        self._check(code, out, err, "import")


class InProcessStrategy(DatabaseStrategy):
    """Dump and execute SQL through a DB-API connection."""

    name = "in-process"

    def __init__(
        self,
        connection_factory: Callable[[], object],
        database_name: str = "",
        insert_batch_rows: int = 100,
    ):
        self.connection_factory = connection_factory
        self.database_name = database_name
        self.insert_batch_rows = insert_batch_rows
        self.last_stats: Optional[ExecutionStats] = None

    def is_available(self) -> bool:
        return self.connection_factory is not None

    def export_to(self, path: Path) -> None:
        conn = self.connection_factory()
        try:
            SqlDumper(conn, self.database_name, self.insert_batch_rows).dump_to(path)
        except Exception as e:
            raise StrategyError(f"In-process export failed: {e}", strategy=self.name) from e
        finally:
            conn.close()

    def import_from(self, path: Path) -> None:
        conn = self.connection_factory()
        try:
            stats = SqlExecutor(conn).execute_file(path)
        except Exception as e:
            raise StrategyError(f"In-process import failed: {e}", strategy=self.name) from e
        finally:
            conn.close()
        self.last_stats = stats
        if stats.executed == 0:
            raise StrategyError(
                f"In-process import executed no statements ({stats.errors} errors)",
                strategy=self.name,
                output="\n".join(stats.error_messages[:5]),
            )
        if stats.errors:
            logger.warning(f"In-process import finished with {stats.errors} statement errors")


def build_default_strategies(config, settings: DatabaseSettings, connection_factory=None) -> List[DatabaseStrategy]:
    """Build the standard strategy chain from configuration."""
    db = config.get_database_config()
    timeout = db.get("command_timeout")
    timeout = float(timeout) if timeout else None
    return [
        WpCliStrategy(config.site_root, db.get("wp_cli") or "wp", timeout=timeout),
        NativeClientStrategy(
            settings,
            mysqldump=db.get("mysqldump") or "mysqldump",
            mysql=db.get("mysql") or "mysql",
            timeout=timeout,
        ),
        InProcessStrategy(
            connection_factory or settings.connect,
            database_name=settings.name,
            insert_batch_rows=int(db.get("insert_batch_rows") or 100),
        ),
    ]
