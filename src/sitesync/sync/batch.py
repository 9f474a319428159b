"""
Batch pipeline for exporting and importing posts in fixed-size chunks.

Each call processes one batch at an offset and returns a BatchCursor with
the next offset and the number of items still remaining. The run_* loops
drive successive batches until nothing remains, pausing between batches
so a shared database server is not saturated.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ..core.models import BatchCursor, ImportOutcome
from .importer import EntityImporter
from .paths import SyncPathResolver
from .serializer import EntitySerializer

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[BatchCursor], None]


@dataclass
class BatchRunReport:
    """Summary of a complete batched export or import run."""
    operation: str
    batch_size: int
    batches: int = 0
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    cursors: List[BatchCursor] = field(default_factory=list)

    def record(self, cursor: BatchCursor) -> None:
        self.batches += 1
        self.processed += cursor.processed
        self.created += cursor.created
        self.updated += cursor.updated
        self.skipped += cursor.skipped
        self.errors += cursor.errors
        self.cursors.append(cursor)

    def to_dict(self):
        return {
            "operation": self.operation,
            "batch_size": self.batch_size,
            "batches": self.batches,
            "processed": self.processed,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
        }


class BatchPipeline:
    """
    Offset-based batch processing of posts and post files.

    For export the source collection is every post of the supported types;
    for import it is the flattened list of JSON files across the supported
    type directories.
    """

    def __init__(
        self,
        store,
        serializer: EntitySerializer,
        importer: EntityImporter,
        resolver: SyncPathResolver,
        config,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the pipeline.

        Args:
            store: ContentStore to read posts from
            serializer: Serializer used for export
            importer: Importer used for import
            resolver: Sync path resolver
            config: SyncConfig instance
            sleep: Delay function between batches (injectable for tests)
        """
        self.store = store
        self.serializer = serializer
        self.importer = importer
        self.resolver = resolver
        self.config = config
        self.sleep = sleep

    def export_batch(self, batch_size: int = 50, offset: int = 0) -> BatchCursor:
        """
        Export one batch of posts.

        Every fetched post counts as processed, whether or not it was
        written (non-published posts are fetched but not exported).
        """
        post_types = self.serializer.supported_post_types()
        records = self.store.list_posts(post_types, limit=batch_size, offset=offset)

        cursor = BatchCursor(offset=offset, batch_size=batch_size)
        for record in records:
            try:
                written = self.serializer.export_post(record)
            except Exception as e:
                logger.error(f"Failed to export {record.post_type} {record.id}: {e}")
                cursor.errors += 1
            else:
                if written is None:
                    cursor.skipped += 1
                else:
                    cursor.created += 1
            cursor.processed += 1

        # Re-count so posts added or removed mid-run are reflected
        cursor.total = self.store.count_posts(post_types)
        cursor.remaining = BatchCursor.compute_remaining(cursor.total, offset, cursor.processed)
        cursor.offset = offset + cursor.processed
        return cursor

    def import_batch(self, batch_size: int = 50, offset: int = 0) -> BatchCursor:
        """Import one batch of post files."""
        files = self.importer.list_post_files()
        batch_files = files[offset:offset + batch_size]

        cursor = BatchCursor(offset=offset, batch_size=batch_size)
        for path in batch_files:
            outcome = self.importer.import_post_file(path)
            if outcome == ImportOutcome.CREATED:
                cursor.created += 1
            elif outcome == ImportOutcome.UPDATED:
                cursor.updated += 1
            elif outcome == ImportOutcome.SKIPPED:
                cursor.skipped += 1
            else:
                cursor.errors += 1
            cursor.processed += 1

        cursor.total = len(files)
        cursor.remaining = BatchCursor.compute_remaining(cursor.total, offset, cursor.processed)
        cursor.offset = offset + cursor.processed
        return cursor

    def _run(
        self,
        operation: str,
        step: Callable[[int, int], BatchCursor],
        batch_size: int,
        delay: float,
        progress: Optional[ProgressCallback],
    ) -> BatchRunReport:
        report = BatchRunReport(operation=operation, batch_size=batch_size)
        offset = 0
        while True:
            cursor = step(batch_size, offset)
            report.record(cursor)
            logger.info(
                f"{operation.capitalize()} batch {report.batches}: "
                f"processed {cursor.processed}, remaining {cursor.remaining}"
            )
            if progress is not None:
                progress(cursor)

            if cursor.remaining <= 0 or cursor.processed <= 0:
                break
            offset = cursor.offset
            if delay > 0:
                self.sleep(delay)
        return report

    def run_export(self, batch_size: int = 50, progress: Optional[ProgressCallback] = None) -> BatchRunReport:
        """
        Export every post, batch by batch.

        A batch size of 0 exports the whole collection in a single pass.
        """
        if batch_size <= 0:
            total = self.store.count_posts(self.serializer.supported_post_types())
            report = BatchRunReport(operation="export", batch_size=0)
            cursor = self.export_batch(batch_size=total, offset=0) if total else BatchCursor(batch_size=0)
            report.record(cursor)
            if progress is not None:
                progress(cursor)
            return report
        delay = float(self.config.get_batch_config().get("export_delay", 0.1))
        return self._run("export", self.export_batch, batch_size, delay, progress)

    def run_import(self, batch_size: int = 50, progress: Optional[ProgressCallback] = None) -> BatchRunReport:
        """
        Import every post file, batch by batch.

        A batch size of 0 imports all files in a single pass.
        """
        if batch_size <= 0:
            total = len(self.importer.list_post_files())
            report = BatchRunReport(operation="import", batch_size=0)
            cursor = self.import_batch(batch_size=total, offset=0) if total else BatchCursor(batch_size=0)
            report.record(cursor)
            if progress is not None:
                progress(cursor)
            return report
        delay = float(self.config.get_batch_config().get("import_delay", 0.25))
        return self._run("import", self.import_batch, batch_size, delay, progress)
