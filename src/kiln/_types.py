"""Core token types shared by the lexer, parser and diagnostics."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto


class WhitespaceMode(Enum):
    """Whitespace handling selected by a trim marker or by configuration.

    Markers sit directly inside a delimiter: ``{{-``, ``-}}``, ``{%~``,
    ``+%}`` and so on.

    - ``PRESERVE`` (``+``): keep adjacent whitespace as written.
    - ``SUPPRESS`` (``-``): remove all contiguous adjacent whitespace,
      including any number of newlines.
    - ``MINIMIZE`` (``~``): trim to end of line; remove adjacent spaces and
      tabs plus at most one newline.
    """

    PRESERVE = "+"
    SUPPRESS = "-"
    MINIMIZE = "~"

    @classmethod
    def from_marker(cls, marker: str) -> WhitespaceMode:
        return cls(marker)

    @classmethod
    def from_name(cls, name: str) -> WhitespaceMode:
        """Look up a mode by configuration name (``"suppress"`` etc.)."""
        try:
            return cls[name.upper()]
        except KeyError:
            raise ValueError(f"invalid whitespace mode: {name!r}") from None


TRIM_MARKERS = frozenset(m.value for m in WhitespaceMode)


class TokenType(Enum):
    """Token kinds produced by the lexer."""

    # Template structure
    DATA = auto()
    RAW = auto()
    VARIABLE_BEGIN = auto()
    VARIABLE_END = auto()
    BLOCK_BEGIN = auto()
    BLOCK_END = auto()
    COMMENT_BEGIN = auto()
    COMMENT = auto()
    COMMENT_END = auto()

    # Literals and names
    NAME = auto()
    STRING = auto()
    INTEGER = auto()
    FLOAT = auto()

    # Operators
    ADD = auto()
    SUB = auto()
    MUL = auto()
    DIV = auto()
    FLOORDIV = auto()
    MOD = auto()
    TILDE = auto()
    PIPE = auto()
    DOT = auto()
    COMMA = auto()
    COLON = auto()
    ASSIGN = auto()
    EQ = auto()
    NE = auto()
    LT = auto()
    LE = auto()
    GT = auto()
    GE = auto()
    LPAREN = auto()
    RPAREN = auto()
    LBRACKET = auto()
    RBRACKET = auto()

    EOF = auto()


@dataclass(frozen=True, slots=True)
class Span:
    """Source location of a token or node.

    Attributes:
        start: Byte offset (UTF-8) of the first byte.
        end: Byte offset one past the last byte.
        lineno: 1-based line number of ``start``.
        col_offset: 0-based character column of ``start``.
    """

    start: int
    end: int
    lineno: int
    col_offset: int

    def to(self, other: Span) -> Span:
        """Return a span covering ``self`` through ``other``."""
        return Span(self.start, max(self.end, other.end), self.lineno, self.col_offset)


@dataclass(frozen=True, slots=True)
class Token:
    """A lexical token.

    ``trim`` is only set on delimiter tokens that carry a trim marker.
    """

    type: TokenType
    value: str
    span: Span
    trim: WhitespaceMode | None = None

    @property
    def lineno(self) -> int:
        return self.span.lineno

    @property
    def col_offset(self) -> int:
        return self.span.col_offset

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, {self.lineno}:{self.col_offset})"
