"""
Pre-flight checks for SQL dump files before they are imported.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

SQL_KEYWORDS = re.compile(
    r"^\s*(?:CREATE|INSERT|DROP|SET|LOCK|UNLOCK|USE|ALTER|START|BEGIN|/\*!|-- MySQL dump)",
    re.IGNORECASE,
)


@dataclass
class DumpValidation:
    """Result of validating a dump file."""
    valid: bool
    error: Optional[str] = None
    size: int = 0


def validate_dump_file(path: Path, max_bytes: int = 512 * 1024 * 1024, probe_lines: int = 50) -> DumpValidation:
    """
    Check that a dump file looks importable.

    The file must exist, be non-empty and readable, be no larger than
    max_bytes, and contain a SQL statement within its first probe_lines
    lines.
    """
    path = Path(path)
    if not path.is_file():
        return DumpValidation(False, f"Dump file not found: {path}")

    size = path.stat().st_size
    if size == 0:
        return DumpValidation(False, f"Dump file is empty: {path}")
    if max_bytes and size > max_bytes:
        return DumpValidation(
            False, f"Dump file is {size} bytes, above the {max_bytes} byte limit", size
        )

    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            for line_number, line in enumerate(f):
                if line_number >= probe_lines:
                    break
                if SQL_KEYWORDS.match(line):
                    return DumpValidation(True, size=size)
    except OSError as e:
        return DumpValidation(False, f"Dump file is not readable: {e}", size)

    return DumpValidation(
        False, f"No SQL statements found in the first {probe_lines} lines of {path.name}", size
    )
