"""
Helpers for PHP-serialized values stored in the WordPress database.

Meta and option values may be stored as PHP ``serialize()`` output. On the
way out arrays and objects are decoded into plain JSON-compatible structures
while serialized scalars keep their raw text; on the way back in, non-scalar
values are serialized again.
"""

import logging
import re
from typing import Any

import phpserialize

logger = logging.getLogger(__name__)

_SERIALIZED = re.compile(
    r'^(?:N;|b:[01];|i:-?\d+;|d:-?[0-9.eE+\-]+;|s:\d+:".*";|a:\d+:\{.*\}|O:\d+:".*":\d+:\{.*\})$',
    re.DOTALL,
)


def is_serialized(value: Any) -> bool:
    """Check whether a value looks like PHP serialize() output."""
    if not isinstance(value, str):
        return False
    return bool(_SERIALIZED.match(value.strip()))


def _normalize(value: Any) -> Any:
    """Turn phpserialize output into plain Python structures."""
    if isinstance(value, phpserialize.phpobject):
        return {str(k): _normalize(v) for k, v in value._asdict().items()}
    if isinstance(value, dict):
        keys = list(value.keys())
        if keys == list(range(len(keys))):
            return [_normalize(value[k]) for k in keys]
        return {
            (k.decode("utf-8", "replace") if isinstance(k, bytes) else k): _normalize(v)
            for k, v in value.items()
        }
    if isinstance(value, bytes):
        return value.decode("utf-8", "replace")
    return value


def maybe_unserialize(value: Any) -> Any:
    """
    Decode a PHP-serialized string; any other value is returned unchanged.

    Malformed serialized strings are logged and returned as-is.
    """
    if not is_serialized(value):
        return value
    try:
        decoded = phpserialize.loads(
            value.strip().encode("utf-8"),
            decode_strings=True,
            object_hook=phpserialize.phpobject,
        )
    except (ValueError, TypeError) as e:
        logger.debug(f"Value looked serialized but could not be decoded: {e}")
        return value
    return _normalize(decoded)


def unserialize_structure(value: Any) -> Any:
    """Decode a PHP-serialized array or object; serialized scalars such as ``i:5;`` stay as text."""
    decoded = maybe_unserialize(value)
    return decoded if isinstance(decoded, (dict, list)) else value


def maybe_serialize(value: Any) -> str:
    """Serialize arrays/objects for storage; scalars are stored as text."""
    if isinstance(value, (dict, list, tuple)):
        return phpserialize.dumps(value).decode("utf-8")
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else ""
    return str(value)
