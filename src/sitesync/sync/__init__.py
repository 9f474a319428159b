"""
Content sync: path resolution, JSON export/import and batch processing.
"""

from .paths import SyncPathResolver, validate_sync_path, sanitize_file_name, is_safe_file_path
from .serializer import EntitySerializer, write_json
from .importer import EntityImporter, ImportTally
from .batch import BatchPipeline, BatchRunReport
from .service import SyncService, ExportReport, ImportReport
from .events import SyncEventHandlers
from .environment import EnvironmentGuard
from .modules import generate_module_pages, ModuleGenerationResult

__all__ = [
    "SyncPathResolver",
    "validate_sync_path",
    "sanitize_file_name",
    "is_safe_file_path",
    "EntitySerializer",
    "write_json",
    "EntityImporter",
    "ImportTally",
    "BatchPipeline",
    "BatchRunReport",
    "SyncService",
    "ExportReport",
    "ImportReport",
    "SyncEventHandlers",
    "EnvironmentGuard",
    "generate_module_pages",
    "ModuleGenerationResult",
]
