"""
Text and HTML sanitizers applied to exported documents.
"""

import re
from typing import Any

from bs4 import BeautifulSoup


_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_HTML_TAG = re.compile(r"<[^>]*>")
_OCTETS = re.compile(r"%[a-fA-F0-9]{2}")
_WHITESPACE = re.compile(r"[\r\n\t ]+")
_LINE_WHITESPACE = re.compile(r"[\t ]+")

# Removed together with their content
_DANGEROUS_BLOCKS = [
    "script", "style", "iframe", "object", "embed", "noscript", "template",
    "frame", "frameset", "applet",
]

_ALLOWED_TAGS = frozenset([
    "a", "abbr", "address", "area", "article", "aside", "audio", "b", "bdo",
    "blockquote", "br", "caption", "cite", "code", "col", "colgroup", "dd",
    "del", "details", "dfn", "div", "dl", "dt", "em", "figcaption", "figure",
    "footer", "h1", "h2", "h3", "h4", "h5", "h6", "header", "hgroup", "hr",
    "i", "img", "ins", "kbd", "li", "main", "map", "mark", "nav", "ol", "p",
    "picture", "pre", "q", "s", "samp", "section", "small", "source", "span",
    "strike", "strong", "sub", "summary", "sup", "table", "tbody", "td",
    "tfoot", "th", "thead", "time", "tr", "track", "u", "ul", "var", "video",
])

_ALLOWED_ATTRIBUTES = frozenset([
    "align", "alt", "cite", "class", "colspan", "controls", "coords",
    "datetime", "decoding", "dir", "download", "height", "href", "hreflang",
    "id", "kind", "label", "lang", "loading", "loop", "muted", "name", "open",
    "poster", "preload", "rel", "reversed", "role", "rowspan", "scope",
    "shape", "sizes", "span", "src", "srclang", "srcset", "start", "style",
    "target", "title", "type", "usemap", "width",
])

_URL_ATTRIBUTES = frozenset(["href", "src", "cite", "poster", "srcset"])
_SCRIPT_SCHEMES = ("javascript:", "vbscript:", "data:")
# Browsers ignore whitespace and control characters inside a URL scheme
_URL_NOISE = re.compile(r"[\x00-\x20]+")


def strip_control_chars(value: str) -> str:
    """Remove NUL and other control characters, keeping tab/newline/CR."""
    return _CONTROL_CHARS.sub("", value)


def sanitize_text_field(value: Any) -> str:
    """
    Sanitize a single-line text value.

    Strips tags, control characters and percent-encoded octets, collapses
    whitespace, and trims.
    """
    if value is None:
        return ""
    text = strip_control_chars(str(value))
    text = _HTML_TAG.sub("", text)
    text = _OCTETS.sub("", text)
    text = _WHITESPACE.sub(" ", text)
    return text.strip()


def sanitize_textarea_field(value: Any) -> str:
    """Like sanitize_text_field, but line breaks are preserved."""
    if value is None:
        return ""
    text = strip_control_chars(str(value))
    text = _HTML_TAG.sub("", text)
    lines = [_LINE_WHITESPACE.sub(" ", line).strip() for line in text.replace("\r\n", "\n").split("\n")]
    return "\n".join(lines).strip()


def _is_script_url(value: str) -> bool:
    compact = _URL_NOISE.sub("", value).lower()
    return compact.startswith(_SCRIPT_SCHEMES)


def _allowed_attribute(name: str) -> bool:
    name = name.lower()
    if name.startswith(("aria-", "data-")):
        return True
    return name in _ALLOWED_ATTRIBUTES


def kses_post(value: Any) -> str:
    """
    Strip HTML that is not allowed in post content.

    The markup is parsed with BeautifulSoup. Script-like elements are removed
    with their content, any other tag outside the allow-list is unwrapped
    (its text is kept), and attributes outside the allow-list are dropped,
    which covers every inline event handler. URL attributes are compared
    after entity decoding, so encoded script schemes are caught too.
    Comments, including block editor delimiters, are kept.
    """
    if value is None:
        return ""
    html = strip_control_chars(str(value))
    if "<" not in html:
        return html

    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(_DANGEROUS_BLOCKS):
        tag.decompose()
    for tag in soup.find_all(True):
        if tag.name not in _ALLOWED_TAGS:
            tag.unwrap()
            continue
        for name in list(tag.attrs):
            attr_value = tag.attrs[name]
            if isinstance(attr_value, list):
                attr_value = " ".join(attr_value)
            if not _allowed_attribute(name):
                del tag.attrs[name]
            elif name.lower() in _URL_ATTRIBUTES and _is_script_url(attr_value):
                del tag.attrs[name]
    return str(soup)


def sanitize_json_data(data: Any) -> Any:
    """Recursively strip control characters from every string in a structure."""
    if isinstance(data, dict):
        return {
            (strip_control_chars(k) if isinstance(k, str) else k): sanitize_json_data(v)
            for k, v in data.items()
        }
    if isinstance(data, (list, tuple)):
        return [sanitize_json_data(item) for item in data]
    if isinstance(data, str):
        return strip_control_chars(data)
    return data


_SLUG_INVALID = re.compile(r"[^a-z0-9_\-]+")
_SLUG_DASHES = re.compile(r"-{2,}")


def sanitize_title(value: Any) -> str:
    """Derive a URL slug from a title."""
    if value is None:
        return ""
    text = _HTML_TAG.sub("", strip_control_chars(str(value))).lower().strip()
    text = _WHITESPACE.sub("-", text)
    text = _SLUG_INVALID.sub("-", text)
    text = _SLUG_DASHES.sub("-", text)
    return text.strip("-")
