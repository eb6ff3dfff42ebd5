"""Shared constants for Kiln."""

from __future__ import annotations

_HTML_MIME = "text/html; charset=utf-8"
_TEXT_MIME = "text/plain; charset=utf-8"

# Template extension -> (escape mode name, MIME type).
# Escape mode and MIME type always come from the same row.
EXTENSION_OUTPUT_TYPES: dict[str, tuple[str, str]] = {
    "html": ("html", _HTML_MIME),
    "htm": ("html", _HTML_MIME),
    "j2": ("html", _HTML_MIME),
    "jinja": ("html", _HTML_MIME),
    "jinja2": ("html", _HTML_MIME),
    "svg": ("html", "image/svg+xml"),
    "xml": ("html", "text/xml; charset=utf-8"),
    "md": ("none", "text/markdown; charset=utf-8"),
    "none": ("none", _TEXT_MIME),
    "txt": ("none", _TEXT_MIME),
    "yml": ("none", "text/yaml; charset=utf-8"),
    # No extension (or a ``<string>`` pseudo-name)
    "": ("none", _TEXT_MIME),
}

# Extensions not listed above are treated as HTML.
UNKNOWN_EXTENSION_OUTPUT_TYPE: tuple[str, str] = ("html", _HTML_MIME)

# Attributes exposed by the implicit ``loop`` binding inside ``for`` bodies.
LOOP_ATTRIBUTES: tuple[str, ...] = (
    "index",
    "index0",
    "revindex",
    "revindex0",
    "first",
    "last",
    "length",
)
