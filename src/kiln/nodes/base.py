"""Base node classes for Kiln AST."""

from __future__ import annotations

from dataclasses import dataclass

from kiln._types import Span, WhitespaceMode


@dataclass(frozen=True, slots=True)
class Trim:
    """Trim markers on the two inner edges of a single tag.

    ``left`` is the marker after the opening delimiter (``{%-``) and
    applies to the text before the tag; ``right`` is the marker before the
    closing delimiter (``-%}``) and applies to the text after it. ``None``
    means no marker was written and the configured default applies.
    """

    left: WhitespaceMode | None = None
    right: WhitespaceMode | None = None


NO_TRIM = Trim()
PRESERVED = Trim(WhitespaceMode.PRESERVE, WhitespaceMode.PRESERVE)


@dataclass(frozen=True, slots=True)
class Node:
    """Base class for all AST nodes.

    All nodes track their source span for error reporting.
    Nodes are immutable; passes build new nodes with ``dataclasses.replace``.
    """

    span: Span

    @property
    def lineno(self) -> int:
        return self.span.lineno

    @property
    def col_offset(self) -> int:
        return self.span.col_offset
