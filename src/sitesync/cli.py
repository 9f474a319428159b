#!/usr/bin/env python3
"""
Command-line interface for sitesync.

Usage:
    sitesync [--config sitesync.yaml] [--verbose] export [--batch-size 50]
    sitesync import [--batch-size 50]
    sitesync dump-db [--no-compress]
    sitesync import-db [--force]
    sitesync backup-plugins
    sitesync install-plugins [--slug my-plugin]
    sitesync generate-modules
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .archive.plugin_archive import PluginArchiver
from .config.config_loader import SyncConfig
from .core.exceptions import ArchiveError, OperationDisabledError, SyncError, UnsafePathError
from .core.logging import OperationContext, configure_logging
from .database.connection import DatabaseSettings
from .database.engine import DatabaseEngine, RestoreStatus
from .store.sql_store import SqlContentStore
from .sync.environment import EnvironmentGuard
from .sync.modules import generate_module_pages
from .sync.paths import SyncPathResolver
from .sync.service import SyncService

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, structured: bool = False) -> None:
    """Configure logging."""
    log_level = logging.DEBUG if verbose else logging.INFO

    if structured:
        configure_logging(level=log_level, structured=True)
        return

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def load_config(args) -> SyncConfig:
    env_file = Path(args.env_file) if args.env_file else Path(".env")
    return SyncConfig(config_path=args.config, env_file=env_file)


def open_store(config: SyncConfig) -> SqlContentStore:
    """Open a content store on the configured database."""
    return SqlContentStore.from_settings(DatabaseSettings.from_config(config))


def check_environment(config: SyncConfig, operation: str) -> bool:
    """Return False (after logging) when the operation is disabled here."""
    try:
        EnvironmentGuard(config).enforce(operation)
    except OperationDisabledError as e:
        logger.error(str(e))
        return False
    return True


def _print_progress(cursor) -> None:
    logger.info(
        f"Batch at offset {cursor.offset - cursor.processed}: {cursor.processed} processed, "
        f"{cursor.remaining} remaining of {cursor.total}"
    )


def cmd_export(args) -> int:
    """Export options, menus and posts to JSON."""
    config = load_config(args)
    if not check_environment(config, "export"):
        return 1

    store = open_store(config)
    try:
        with OperationContext(operation="export"):
            report = SyncService(config, store).full_export(
                batch_size=args.batch_size, progress=_print_progress
            )
    finally:
        store.close()

    if report.options_file is None or report.menus_file is None:
        logger.error("Options or menus could not be written")
        return 1
    return 1 if report.posts.errors else 0


def cmd_import(args) -> int:
    """Import options, menus and posts from JSON."""
    config = load_config(args)
    if not check_environment(config, "import"):
        return 1

    store = open_store(config)
    try:
        with OperationContext(operation="import"):
            report = SyncService(config, store).full_import(
                batch_size=args.batch_size, progress=_print_progress
            )
    finally:
        store.close()

    return 1 if report.posts.errors else 0


def cmd_dump_db(args) -> int:
    """Dump the database to the sync directory."""
    config = load_config(args)
    if not check_environment(config, "dump-db"):
        return 1

    with OperationContext(operation="dump-db"):
        result = DatabaseEngine(config).dump(compress=False if args.no_compress else None)

    if not result.success:
        for error in result.errors:
            logger.error(error)
        return 1

    logger.info(f"Database dumped with {result.method}: {result.artifact.path}")
    return 0


def cmd_import_db(args) -> int:
    """Restore the database from the newest dump."""
    config = load_config(args)
    if not check_environment(config, "import-db"):
        return 1

    with OperationContext(operation="import-db"):
        result = DatabaseEngine(config).restore(force=args.force)

    if result.status == RestoreStatus.UP_TO_DATE:
        logger.info("Database is already up to date with the latest dump")
        return 0
    if not result.success:
        logger.error(f"Database import failed: {result.status.value}")
        for error in result.errors:
            logger.error(error)
        return 1

    logger.info(f"Database restored with {result.method} from {result.artifact.path} ({result.tables} tables)")
    return 0


def cmd_backup_plugins(args) -> int:
    """Archive every plugin directory."""
    config = load_config(args)
    if not check_environment(config, "backup-plugins"):
        return 1

    archiver = PluginArchiver.from_config(config, SyncPathResolver(config))
    report = archiver.backup_all()
    return 0 if report.success else 1


def cmd_install_plugins(args) -> int:
    """Restore plugins from their archives."""
    config = load_config(args)
    if not check_environment(config, "install-plugins"):
        return 1

    archiver = PluginArchiver.from_config(config, SyncPathResolver(config))
    if args.slug:
        try:
            outcome = archiver.restore(args.slug)
        except (ArchiveError, UnsafePathError) as e:
            logger.error(str(e))
            return 1
        logger.info(f"Plugin {args.slug}: {outcome}")
        return 0

    report = archiver.restore_all()
    return 0 if report.success else 1


def cmd_generate_modules(args) -> int:
    """Create module pages from ACF partial fields."""
    config = load_config(args)
    if not check_environment(config, "generate-modules"):
        return 1

    store = open_store(config)
    try:
        result = generate_module_pages(store, config.acf_json_dir)
    finally:
        store.close()

    if result.error:
        logger.error(result.error)
        return 1
    logger.info(f"Module pages: {len(result.created)} created, {len(result.skipped)} skipped")
    return 0 if result.success else 1


def parse_args(argv: Optional[List[str]] = None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="WordPress content, database and plugin sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--config", help="Path to YAML config file")
    parser.add_argument("--env-file", help="Path to .env file (default: ./.env)")
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose/debug logging",
    )
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    export_parser = subparsers.add_parser("export", help="Export content to JSON")
    export_parser.add_argument("--batch-size", type=int, help="Posts per batch (0 disables batching)")

    import_parser = subparsers.add_parser("import", help="Import content from JSON")
    import_parser.add_argument("--batch-size", type=int, help="Files per batch (0 disables batching)")

    dump_parser = subparsers.add_parser("dump-db", help="Dump the database")
    dump_parser.add_argument("--no-compress", action="store_true", help="Keep the raw .sql file")

    restore_parser = subparsers.add_parser("import-db", help="Restore the newest database dump")
    restore_parser.add_argument("--force", action="store_true", help="Import even if already imported")

    subparsers.add_parser("backup-plugins", help="Archive every plugin directory")

    install_parser = subparsers.add_parser("install-plugins", help="Restore plugins from archives")
    install_parser.add_argument("--slug", help="Restore a single plugin")

    subparsers.add_parser("generate-modules", help="Create module pages from ACF field groups")

    return parser.parse_args(argv)


COMMANDS = {
    "export": cmd_export,
    "import": cmd_import,
    "dump-db": cmd_dump_db,
    "import-db": cmd_import_db,
    "backup-plugins": cmd_backup_plugins,
    "install-plugins": cmd_install_plugins,
    "generate-modules": cmd_generate_modules,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    setup_logging(verbose=args.verbose, structured=args.json_logs)

    handler = COMMANDS.get(args.command)
    if handler is None:
        print("No command specified. Use --help for usage.", file=sys.stderr)
        return 1

    try:
        return handler(args)
    except (SyncError, ImportError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
