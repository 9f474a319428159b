"""
Admin form actions.

Each action is a submitted form guarded by a per-action anti-forgery token
and a capability check. Results are returned as notices for the caller to
render. Authorization failures raise before any work is done.
"""

import hashlib
import hmac
import logging
import math
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from ..archive.plugin_archive import PluginArchiver
from ..core.exceptions import (
    ArchiveError,
    AuthorizationError,
    OperationDisabledError,
    UnsafePathError,
)
from ..core.hooks import HookRegistry
from ..core.models import FSE_POST_TYPES
from ..database.engine import DatabaseEngine, RestoreStatus
from ..sync.environment import EnvironmentGuard
from ..sync.modules import generate_module_pages
from ..sync.paths import validate_sync_path
from ..sync.sanitize import sanitize_text_field
from ..sync.service import SyncService

logger = logging.getLogger(__name__)

POST_TYPE_KEY = re.compile(r"^[a-z0-9_\-]{1,20}$")


@dataclass
class Notice:
    """A message shown to the operator after an action."""
    level: str
    message: str


@dataclass
class AdminUser:
    """The user submitting an action."""
    user_id: int
    capabilities: Set[str] = field(default_factory=set)

    def can(self, capability: str) -> bool:
        return capability in self.capabilities


@dataclass
class ActionRequest:
    """A submitted admin form."""
    action: str
    token: str
    user: AdminUser
    data: Dict[str, Any] = field(default_factory=dict)


class ActionTokens:
    """
    Time-limited anti-forgery tokens.

    A token is an HMAC over the action, the user id and a time tick of half
    the lifetime. Tokens from the current and previous tick are accepted.
    """

    def __init__(self, secret: str, lifetime: int = 86400, clock: Callable[[], float] = time.time):
        if not secret:
            raise ValueError("A secret is required for action tokens")
        self.secret = secret.encode("utf-8")
        self.lifetime = max(2, int(lifetime))
        self.clock = clock

    def tick(self) -> int:
        return math.ceil(self.clock() / (self.lifetime / 2))

    def _digest(self, action: str, user_id: int, tick: int) -> str:
        message = f"{tick}|{action}|{user_id}".encode("utf-8")
        return hmac.new(self.secret, message, hashlib.sha256).hexdigest()[:20]

    def create(self, action: str, user_id: int) -> str:
        return self._digest(action, user_id, self.tick())

    def verify(self, token: str, action: str, user_id: int) -> bool:
        if not token:
            return False
        tick = self.tick()
        return any(
            hmac.compare_digest(token, self._digest(action, user_id, t))
            for t in (tick, tick - 1)
        )


class AdminActions:
    """
    Dispatches admin form submissions.
    """

    ACTIONS = [
        "save_sync_path",
        "save_post_types",
        "export",
        "import",
        "dump_db",
        "import_db",
        "backup_plugins",
        "install_plugins",
        "generate_modules",
    ]

    def __init__(
        self,
        config,
        store,
        tokens: ActionTokens,
        hooks: Optional[HookRegistry] = None,
        service: Optional[SyncService] = None,
        engine: Optional[DatabaseEngine] = None,
        archiver: Optional[PluginArchiver] = None,
    ):
        self.config = config
        self.store = store
        self.tokens = tokens
        self.hooks = hooks or HookRegistry()
        self.service = service or SyncService(config, store, self.hooks)
        self._engine = engine
        self._archiver = archiver
        self.guard = EnvironmentGuard(config, self.service.resolver)

    @property
    def engine(self) -> DatabaseEngine:
        if self._engine is None:
            self._engine = DatabaseEngine(self.config)
        return self._engine

    @property
    def archiver(self) -> PluginArchiver:
        if self._archiver is None:
            self._archiver = PluginArchiver.from_config(self.config, self.service.resolver)
        return self._archiver

    @property
    def capability(self) -> str:
        return self.config.get_admin_config().get("capability", "manage_options")

    def authorize(self, request: ActionRequest) -> None:
        """
        Raises:
            AuthorizationError: Unknown action, bad token or missing capability
        """
        if request.action not in self.ACTIONS:
            raise AuthorizationError(f"Unknown action: {request.action}", action=request.action)
        if not self.tokens.verify(request.token, request.action, request.user.user_id):
            logger.warning(f"Rejected '{request.action}' from user {request.user.user_id}: invalid token")
            raise AuthorizationError("The link you followed has expired.", action=request.action)
        if not request.user.can(self.capability):
            logger.warning(f"Rejected '{request.action}' from user {request.user.user_id}: missing capability")
            raise AuthorizationError(
                "You do not have sufficient permissions to perform this action.",
                action=request.action,
            )

    def handle(self, request: ActionRequest) -> List[Notice]:
        """
        Authorize and run an action.

        Raises:
            AuthorizationError: Before anything runs, if the request is not allowed
        """
        self.authorize(request)
        try:
            self.guard.enforce(request.action)
        except OperationDisabledError as e:
            return [Notice("error", str(e))]

        handler = getattr(self, f"do_{request.action}")
        logger.info(f"Running admin action '{request.action}' for user {request.user.user_id}")
        return handler(request.data)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def _persist(self) -> None:
        if self.config.config_path is not None:
            self.config.save()

    def do_save_sync_path(self, data: Dict[str, Any]) -> List[Notice]:
        new_path = validate_sync_path(sanitize_text_field(data.get("sync_path", "")))
        if new_path is None:
            return [Notice("error", "Invalid sync path provided. Path cannot contain ../ or other unsafe characters.")]

        self.config.set("sync.path", new_path)
        self._persist()

        resolved = self.service.resolver.sync_path()
        try:
            resolved.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Could not create sync directory {resolved}: {e}")
            return [Notice(
                "error",
                f"Sync folder setting saved, but could not create directory at: {resolved}. "
                f"Please check permissions.",
            )]
        return [Notice("success", f"Sync folder updated and created at: {resolved}")]

    def do_save_post_types(self, data: Dict[str, Any]) -> List[Notice]:
        requested = data.get("post_types") or []
        if not isinstance(requested, (list, tuple)):
            requested = [requested]

        allow_fse = self.service.is_block_theme()
        selected = []
        for value in requested:
            key = sanitize_text_field(value)
            if not POST_TYPE_KEY.match(key):
                continue
            if key in FSE_POST_TYPES and not allow_fse:
                continue
            if key not in selected:
                selected.append(key)

        self.config.set("sync.post_types", selected)
        self._persist()
        shown = ", ".join(self.config.get_post_types())
        return [Notice("success", f"Post types updated: {shown}")]

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def do_export(self, data: Dict[str, Any]) -> List[Notice]:
        report = self.service.full_export(batch_size=0)
        notices = [Notice(
            "success",
            f"Export complete: {report.posts.created} posts written, options and menus exported.",
        )]
        if report.options_file is None or report.menus_file is None:
            notices.append(Notice("warning", "Options or menus could not be written; see the log."))
        return notices

    def do_import(self, data: Dict[str, Any]) -> List[Notice]:
        report = self.service.full_import(batch_size=0)
        posts = report.posts
        level = "warning" if posts.errors else "success"
        return [Notice(
            level,
            f"Import complete: {posts.created} created, {posts.updated} updated, "
            f"{posts.skipped} skipped, {posts.errors} errors.",
        )]

    def do_generate_modules(self, data: Dict[str, Any]) -> List[Notice]:
        result = generate_module_pages(self.store, self.config.acf_json_dir)
        if result.error:
            return [Notice("error", result.error)]
        notices = [Notice(
            "success" if not result.errors else "warning",
            f"Module pages: {len(result.created)} created, {len(result.skipped)} skipped.",
        )]
        notices.extend(Notice("error", message) for message in result.errors)
        return notices

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------

    def do_dump_db(self, data: Dict[str, Any]) -> List[Notice]:
        result = self.engine.dump()
        if not result.success:
            return [Notice("error", "Database dump failed: " + "; ".join(result.errors))]
        return [Notice("success", f"Database dumped with {result.method} to {result.artifact.path.name}")]

    def do_import_db(self, data: Dict[str, Any]) -> List[Notice]:
        result = self.engine.restore(force=bool(data.get("force")))
        if result.status == RestoreStatus.NO_ARTIFACT:
            return [Notice("error", "No database dump found to import.")]
        if result.status == RestoreStatus.UP_TO_DATE:
            return [Notice("info", "Database is already up to date with the latest dump.")]
        if not result.success:
            return [Notice("error", f"Database import failed ({result.status.value}): " + "; ".join(result.errors))]

        notices = [Notice(
            "success",
            f"Database imported from {result.artifact.path.name} with {result.method} ({result.tables} tables).",
        )]
        notices.extend(Notice("warning", message) for message in result.errors if "not available" not in message)
        return notices

    # ------------------------------------------------------------------
    # Plugins
    # ------------------------------------------------------------------

    def do_backup_plugins(self, data: Dict[str, Any]) -> List[Notice]:
        report = self.archiver.backup_all()
        notices = [Notice(
            "success" if report.success else "warning",
            f"Plugin backup: {len(report.created)} archived, {len(report.pruned)} orphaned archives removed.",
        )]
        if report.failed:
            notices.append(Notice("error", f"Failed to archive: {', '.join(report.failed)}"))
        return notices

    def do_install_plugins(self, data: Dict[str, Any]) -> List[Notice]:
        slug = sanitize_text_field(data.get("slug", ""))
        if slug:
            try:
                outcome = self.archiver.restore(slug)
            except (ArchiveError, UnsafePathError) as e:
                return [Notice("error", str(e))]
            if outcome == "skipped":
                return [Notice("info", f"Plugin {slug} is already installed.")]
            return [Notice("success", f"Plugin {slug} installed.")]

        report = self.archiver.restore_all()
        notices = [Notice(
            "success" if report.success else "warning",
            f"Plugins: {len(report.restored)} installed, {len(report.skipped)} already present.",
        )]
        if report.failed:
            notices.append(Notice("error", f"Failed to install: {', '.join(report.failed)}"))
        return notices
