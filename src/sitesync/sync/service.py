"""
Sync service: wires the path resolver, serializer, importer and batch
pipeline together and exposes full and single-entity operations.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from ..core.hooks import HookRegistry
from ..core.models import FSE_POST_TYPES, ContentRecord, ThemeData
from .batch import BatchPipeline, BatchRunReport, ProgressCallback
from .importer import EntityImporter
from .paths import SyncPathResolver
from .serializer import EntitySerializer

logger = logging.getLogger(__name__)


@dataclass
class ExportReport:
    """Outcome of a full export."""
    options_file: Optional[Path] = None
    menus_file: Optional[Path] = None
    posts: Optional[BatchRunReport] = None


@dataclass
class ImportReport:
    """Outcome of a full import."""
    options_imported: int = 0
    menus_imported: int = 0
    posts: Optional[BatchRunReport] = None


class SyncService:
    """
    Entry point for content export and import.

    Options and menus are always handled before posts.
    """

    def __init__(
        self,
        config,
        store,
        hooks: Optional[HookRegistry] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.store = store
        self.hooks = hooks or HookRegistry()
        self.resolver = SyncPathResolver(config)
        self.serializer = EntitySerializer(self.resolver, store, self.hooks, config)
        self.importer = EntityImporter(store, self.resolver, self.hooks, config)
        self.pipeline = BatchPipeline(
            store, self.serializer, self.importer, self.resolver, config, sleep=sleep
        )

    def full_export(self, batch_size: Optional[int] = None, progress: Optional[ProgressCallback] = None) -> ExportReport:
        """Export options, menus, then every post."""
        if batch_size is None:
            batch_size = int(self.config.get_batch_config().get("export_size", 50))

        report = ExportReport()
        report.options_file = self.serializer.export_options()
        report.menus_file = self.serializer.export_menus()

        if batch_size == 0:
            logger.info("Exporting all posts at once (no batching)")
        else:
            logger.info(f"Starting batch export with batch size: {batch_size}")
        report.posts = self.pipeline.run_export(batch_size, progress=progress)

        logger.info(
            f"Export completed: {report.posts.processed} posts processed across "
            f"post types: {', '.join(self.serializer.supported_post_types())}"
        )
        return report

    def full_import(self, batch_size: Optional[int] = None, progress: Optional[ProgressCallback] = None) -> ImportReport:
        """Import options, menus, then every post file."""
        if batch_size is None:
            batch_size = int(self.config.get_batch_config().get("import_size", 50))

        report = ImportReport()
        report.options_imported = self.importer.import_options()
        report.menus_imported = self.importer.import_menus()

        if batch_size == 0:
            logger.info("Importing all files at once (no batching)")
        else:
            logger.info(f"Starting batch import with batch size: {batch_size}")
        report.posts = self.pipeline.run_import(batch_size, progress=progress)

        logger.info(
            f"Import completed: {report.posts.processed} files, {report.posts.created} created, "
            f"{report.posts.updated} updated, {report.posts.skipped} skipped, "
            f"{report.posts.errors} errors"
        )
        return report

    def export_post(self, post_id: int) -> Optional[Path]:
        return self.serializer.export_post_by_id(post_id)

    def delete_post(self, record: ContentRecord) -> bool:
        return self.serializer.delete_post_file(record)

    def export_options(self) -> Optional[Path]:
        return self.serializer.export_options()

    def export_menus(self) -> Optional[Path]:
        return self.serializer.export_menus()

    def is_block_theme(self) -> bool:
        """A block theme ships templates/index.html."""
        theme_dir = self.config.theme_dir
        return (theme_dir / "templates" / "index.html").exists() or (
            theme_dir / "block-templates" / "index.html"
        ).exists()

    def collect_theme_data(self) -> ThemeData:
        """Gather the active theme's FSE records from the store."""
        records = self.store.list_posts(FSE_POST_TYPES)
        by_type = {post_type: [] for post_type in FSE_POST_TYPES}
        for record in records:
            by_type.setdefault(record.post_type, []).append(record)

        return ThemeData(
            stylesheet=str(self.store.get_option("stylesheet", "") or ""),
            template=str(self.store.get_option("template", "") or ""),
            is_block_theme=self.is_block_theme(),
            templates=by_type["wp_template"],
            template_parts=by_type["wp_template_part"],
            global_styles=by_type["wp_global_styles"],
            navigations=by_type["wp_navigation"],
        )

    def export_theme_data(self) -> Optional[Path]:
        return self.serializer.export_theme_data(self.collect_theme_data())
