"""
Module page generator.

Scans ACF field-group JSON files for fields whose label starts with
"Partial" and makes sure a child page exists for each one under a
"Modules" parent page.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from ..core.models import ContentRecord
from .sanitize import sanitize_text_field, sanitize_title

logger = logging.getLogger(__name__)

PARTIAL_PREFIX = "Partial"


@dataclass
class ModuleGenerationResult:
    """Outcome of a module page generation run."""
    created: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    partials: List[str] = field(default_factory=list)
    modules_page_created: bool = False
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None and not self.errors


def _iter_fields(fields: List[Dict[str, Any]]) -> Iterator[Dict[str, Any]]:
    """Walk fields depth-first, including repeater sub_fields and flexible layouts."""
    for acf_field in fields or []:
        if not isinstance(acf_field, dict):
            continue
        yield acf_field
        yield from _iter_fields(acf_field.get("sub_fields") or [])
        layouts = acf_field.get("layouts") or []
        if isinstance(layouts, dict):
            layouts = list(layouts.values())
        for layout in layouts:
            if isinstance(layout, dict):
                yield from _iter_fields(layout.get("sub_fields") or [])


def find_partials(acf_json_dir: Path, result: ModuleGenerationResult) -> List[str]:
    """
    Collect unique Partial field labels from every field group file.

    Unreadable files are recorded in result.errors and skipped.
    """
    partials: List[str] = []
    for json_file in sorted(Path(acf_json_dir).glob("*.json")):
        try:
            group = json.loads(json_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            result.errors.append(f"Could not read {json_file.name}: {e}")
            continue
        if not isinstance(group, dict):
            continue

        for acf_field in _iter_fields(group.get("fields") or []):
            label = sanitize_text_field(acf_field.get("label") or acf_field.get("name") or "")
            if label.startswith(PARTIAL_PREFIX) and label not in partials:
                partials.append(label)
    return partials


def _module_title(partial: str) -> str:
    title = partial[len(PARTIAL_PREFIX):].strip(" -_:")
    return title or partial


def generate_module_pages(store, acf_json_dir: Path, parent_title: str = "Modules") -> ModuleGenerationResult:
    """
    Create module pages for every Partial field.

    Args:
        store: ContentStore to create pages in
        acf_json_dir: Directory of ACF field group JSON files
        parent_title: Title of the parent page

    Returns:
        ModuleGenerationResult; error is set when the directory is missing
        or the parent page cannot be created
    """
    result = ModuleGenerationResult()
    acf_json_dir = Path(acf_json_dir)
    if not acf_json_dir.is_dir():
        result.error = f"ACF JSON directory not found: {acf_json_dir}"
        return result

    result.partials = find_partials(acf_json_dir, result)
    logger.info(f"Found {len(result.partials)} Partial field(s) in {acf_json_dir}")

    parent_slug = sanitize_title(parent_title)
    parent = store.find_post_by_slug("page", parent_slug, parent_id=0)
    if parent is None:
        try:
            parent_id = store.insert_post(ContentRecord(
                post_type="page", title=parent_title, slug=parent_slug, status="publish",
            ))
        except Exception as e:
            result.error = f"Failed to create '{parent_title}' page: {e}"
            return result
        result.modules_page_created = True
        logger.info(f"Created '{parent_title}' parent page ({parent_id})")
    else:
        parent_id = parent.id

    for partial in result.partials:
        title = _module_title(partial)
        slug = sanitize_title(title)
        if not slug:
            result.errors.append(f"Cannot derive a slug from '{partial}'")
            continue
        if store.find_post_by_slug("page", slug, parent_id=parent_id) is not None:
            result.skipped.append(title)
            continue
        try:
            store.insert_post(ContentRecord(
                post_type="page",
                title=title,
                slug=slug,
                status="publish",
                parent_id=parent_id,
                parent_path=parent_slug,
            ))
        except Exception as e:
            result.errors.append(f"Failed to create '{title}': {e}")
            continue
        result.created.append(title)

    logger.info(
        f"Module pages: {len(result.created)} created, {len(result.skipped)} skipped, "
        f"{len(result.errors)} errors"
    )
    return result
