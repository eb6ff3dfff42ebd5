"""Rendering of compile diagnostics for terminals.

Text is styled by diagnostic *role* rather than by color name, so every
piece of a diagnostic (error code, location, gutter, offending line, caret)
is decorated consistently. The excerpt layout also lives here: numbered
source lines and the caret line share one gutter, which keeps the caret
under the column the span points at.

Color is decided once at import from ``FORCE_COLOR``, ``NO_COLOR`` and
whether stderr is a TTY.
"""

from __future__ import annotations

import os
import re
import sys
from collections.abc import Iterable
from typing import Literal

Role = Literal["code", "location", "gutter", "lineno", "focus", "context", "hint", "suggestion"]

# Role -> SGR parameters
_SGR: dict[str, str] = {
    "code": "1;91",
    "location": "36",
    "gutter": "2",
    "lineno": "33",
    "focus": "91",
    "context": "2",
    "hint": "32",
    "suggestion": "1;92",
}

_SGR_SEQUENCE = re.compile(r"\x1b\[[0-9;]*m")

# Width of a line number column; the gutter is "{marker}{number} | ".
LINENO_WIDTH = 3
GUTTER_WIDTH = LINENO_WIDTH + len("> | ")


def _should_use_colors() -> bool:
    """FORCE_COLOR wins over NO_COLOR (https://no-color.org/); otherwise ask stderr."""
    if os.environ.get("FORCE_COLOR"):
        return True
    if os.environ.get("NO_COLOR"):
        return False
    return sys.stderr.isatty()


_USE_COLORS = _should_use_colors()


def supports_color() -> bool:
    return _USE_COLORS


def paint(text: str, role: Role, *, color: bool | None = None) -> str:
    """Decorate ``text`` for ``role``.

    ``color=None`` follows the detected terminal; unknown roles and empty
    text come back unchanged.
    """
    enabled = _USE_COLORS if color is None else color
    params = _SGR.get(role)
    if not enabled or not params or not text:
        return text
    return f"\x1b[{params}m{text}\x1b[0m"


def strip_colors(text: str) -> str:
    return _SGR_SEQUENCE.sub("", text)


# ───────────────────────────────────────────────────────────────────────────
# Diagnostic layout
# ───────────────────────────────────────────────────────────────────────────


def header(code: str | None, message: str, *, color: bool | None = None) -> str:
    """First diagnostic line: ``K-BND-001: message`` or just the message."""
    if code:
        return f"{paint(code, 'code', color=color)}: {message}"
    return message


def location(text: str, *, color: bool | None = None) -> str:
    return f"  --> {paint(text, 'location', color=color)}"


def hint(text: str, *, color: bool | None = None) -> str:
    return f"  {paint('Hint:', 'hint', color=color)} {text}"


def gutter(lineno: int | None = None, *, focus: bool = False, color: bool | None = None) -> str:
    """Left margin of an excerpt line, always ``GUTTER_WIDTH`` visible characters.

    A numbered gutter marks the offending line with ``>``; a blank gutter
    carries only the bar.
    """
    if lineno is None:
        return " " * (GUTTER_WIDTH - 2) + paint("|", "gutter", color=color) + " "
    marker = ">" if focus else " "
    number = paint(f"{marker}{lineno:>{LINENO_WIDTH}}", "lineno", color=color)
    return f"{number} {paint('|', 'gutter', color=color)} "


def source_line(
    lineno: int, content: str, *, focus: bool = False, color: bool | None = None
) -> str:
    role: Role = "focus" if focus else "context"
    return gutter(lineno, focus=focus, color=color) + paint(content, role, color=color)


def caret_line(column: int, *, color: bool | None = None) -> str:
    """Caret under ``column`` (0-based characters) of the line above."""
    return gutter(color=color) + " " * column + paint("^", "focus", color=color)


def excerpt(
    lines: Iterable[tuple[int, str]],
    error_line: int,
    column: int | None = None,
    *,
    color: bool | None = None,
) -> str:
    """Numbered source lines framed by blank gutters, with an optional caret."""
    rule = gutter(color=color).rstrip()
    parts = [rule]
    for lineno, content in lines:
        parts.append(source_line(lineno, content, focus=lineno == error_line, color=color))
        if lineno == error_line and column is not None:
            parts.append(caret_line(column, color=color))
    parts.append(rule)
    return "\n".join(parts)
