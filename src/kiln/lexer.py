"""Kiln lexer: template source to token stream.

The lexer recognizes three delimiter families (expression ``{{ }}``,
statement ``{% %}``, comment ``{# #}``), each with optional trim markers
(``-``, ``~``, ``+``) directly inside the delimiter, and raw regions
(``{% raw %}...{% endraw %}``) that bypass delimiter recognition.

Inside delimiters the lexer also produces expression tokens (names,
literals, operators) for the parser.

Design:
- ``Lexer(source, config)`` decodes and validates the source eagerly, so
  ``EncodingError`` is raised before any token is produced.
- ``Lexer.tokenize()`` is a generator: tokens are produced lazily.
- Every error carries the span of the construct's *opening* delimiter.

Example:
    >>> from kiln.lexer import tokenize
    >>> [t.type.name for t in tokenize("Hi {{ name }}")]
    ['DATA', 'VARIABLE_BEGIN', 'NAME', 'VARIABLE_END', 'EOF']

"""

from __future__ import annotations

import re
from bisect import bisect_right
from collections.abc import Iterator
from dataclasses import dataclass
from itertools import accumulate

from kiln._types import TRIM_MARKERS, Span, Token, TokenType, WhitespaceMode
from kiln.environment.config import Syntax
from kiln.environment.exceptions import EncodingError, ErrorCode, LexError, LexerError

__all__ = ["Lexer", "LexerConfig", "LexError", "LexerError", "decode_source", "tokenize"]

# Longest operators first so "//" wins over "/".
_OPERATORS: tuple[tuple[str, TokenType], ...] = (
    ("//", TokenType.FLOORDIV),
    ("==", TokenType.EQ),
    ("!=", TokenType.NE),
    ("<=", TokenType.LE),
    (">=", TokenType.GE),
    ("+", TokenType.ADD),
    ("-", TokenType.SUB),
    ("*", TokenType.MUL),
    ("/", TokenType.DIV),
    ("%", TokenType.MOD),
    ("~", TokenType.TILDE),
    ("|", TokenType.PIPE),
    (".", TokenType.DOT),
    (",", TokenType.COMMA),
    (":", TokenType.COLON),
    ("=", TokenType.ASSIGN),
    ("<", TokenType.LT),
    (">", TokenType.GT),
    ("(", TokenType.LPAREN),
    (")", TokenType.RPAREN),
    ("[", TokenType.LBRACKET),
    ("]", TokenType.RBRACKET),
)

_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True, slots=True)
class LexerConfig:
    """Active delimiter set for one lexer run."""

    block_start: str = "{%"
    block_end: str = "%}"
    variable_start: str = "{{"
    variable_end: str = "}}"
    comment_start: str = "{#"
    comment_end: str = "#}"

    @classmethod
    def from_syntax(cls, syntax: Syntax) -> LexerConfig:
        return cls(
            block_start=syntax.block_start,
            block_end=syntax.block_end,
            variable_start=syntax.expr_start,
            variable_end=syntax.expr_end,
            comment_start=syntax.comment_start,
            comment_end=syntax.comment_end,
        )


def decode_source(source: str | bytes, name: str | None = None) -> str:
    """Return template text, rejecting anything that is not valid UTF-8.

    Raises:
        EncodingError: For undecodable bytes or a ``str`` containing lone
            surrogates. The span points at the first offending byte.
    """
    if isinstance(source, bytes):
        try:
            return source.decode("utf-8")
        except UnicodeDecodeError as exc:
            prefix = source[: exc.start].decode("utf-8")
            lineno = prefix.count("\n") + 1
            col = len(prefix) - (prefix.rfind("\n") + 1)
            raise EncodingError(
                f"template source is not valid UTF-8 (byte 0x{source[exc.start]:02x})",
                span=Span(exc.start, exc.end, lineno, col),
                template=name,
            ) from None
    try:
        source.encode("utf-8")
    except UnicodeEncodeError as exc:
        prefix = source[: exc.start]
        lineno = prefix.count("\n") + 1
        col = len(prefix) - (prefix.rfind("\n") + 1)
        start = len(prefix.encode("utf-8"))
        raise EncodingError(
            "template source contains characters that cannot be encoded as UTF-8",
            span=Span(start, start + 1, lineno, col),
            template=name,
        ) from None
    return source


class _Positions:
    """Maps character offsets to byte offsets and line/column pairs."""

    __slots__ = ("_byte_offsets", "_line_starts")

    def __init__(self, source: str):
        self._line_starts = [0]
        self._line_starts.extend(m.end() for m in re.finditer(r"\n", source))
        if source.isascii():
            self._byte_offsets = None
        else:
            self._byte_offsets = [0, *accumulate(len(c.encode("utf-8")) for c in source)]

    def byte(self, index: int) -> int:
        return index if self._byte_offsets is None else self._byte_offsets[index]

    def span(self, start: int, end: int) -> Span:
        line = bisect_right(self._line_starts, start) - 1
        return Span(self.byte(start), self.byte(end), line + 1, start - self._line_starts[line])


class Lexer:
    """Tokenize template source.

    Attributes:
        source: Decoded template text.
        config: Active delimiter set.
        name: Template name used in error messages.

    Example:
        >>> lexer = Lexer("{% if ok -%} yes {%- endif %}", LexerConfig())
        >>> tokens = list(lexer.tokenize())
    """

    __slots__ = (
        "_begin_re",
        "_endraw_re",
        "_positions",
        "_raw_open_re",
        "config",
        "name",
        "source",
    )

    def __init__(
        self,
        source: str | bytes,
        config: LexerConfig | None = None,
        name: str | None = None,
    ):
        self.name = name
        self.source = decode_source(source, name)
        self.config = config or LexerConfig()
        self._positions = _Positions(self.source)

        cfg = self.config
        starts = sorted(
            (cfg.block_start, cfg.variable_start, cfg.comment_start), key=len, reverse=True
        )
        self._begin_re = re.compile("|".join(re.escape(s) for s in starts))
        markers = "[" + re.escape("".join(sorted(TRIM_MARKERS))) + "]?"
        self._raw_open_re = re.compile(
            rf"\s*raw(?![A-Za-z0-9_])\s*({markers}){re.escape(cfg.block_end)}"
        )
        self._endraw_re = re.compile(
            rf"{re.escape(cfg.block_start)}({markers})\s*endraw(?![A-Za-z0-9_])\s*"
            rf"({markers}){re.escape(cfg.block_end)}"
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────────

    def _token(
        self,
        type_: TokenType,
        start: int,
        end: int,
        value: str | None = None,
        trim: str | None = None,
    ) -> Token:
        return Token(
            type=type_,
            value=self.source[start:end] if value is None else value,
            span=self._positions.span(start, end),
            trim=WhitespaceMode.from_marker(trim) if trim else None,
        )

    def _error(self, message: str, start: int, end: int, code: ErrorCode) -> LexError:
        return LexError(
            message,
            code=code,
            span=self._positions.span(start, end),
            template=self.name,
            source=self.source,
        )

    def _marker_at(self, pos: int) -> str | None:
        if pos < len(self.source) and self.source[pos] in TRIM_MARKERS:
            return self.source[pos]
        return None

    # ─────────────────────────────────────────────────────────────────────────
    # Main loop
    # ─────────────────────────────────────────────────────────────────────────

    def tokenize(self) -> Iterator[Token]:
        """Yield tokens covering the whole source, ending with EOF."""
        source = self.source
        cfg = self.config
        pos = 0
        length = len(source)

        while pos < length:
            match = self._begin_re.search(source, pos)
            if match is None:
                yield self._token(TokenType.DATA, pos, length)
                pos = length
                break

            if match.start() > pos:
                yield self._token(TokenType.DATA, pos, match.start())

            delimiter = match.group()
            if delimiter == cfg.comment_start:
                pos = yield from self._lex_comment(match.start())
            elif delimiter == cfg.variable_start:
                pos = yield from self._lex_tag(
                    match.start(),
                    cfg.variable_start,
                    cfg.variable_end,
                    TokenType.VARIABLE_BEGIN,
                    TokenType.VARIABLE_END,
                    ErrorCode.UNCLOSED_VARIABLE,
                )
            else:
                after = match.end() + (1 if self._marker_at(match.end()) else 0)
                raw = self._raw_open_re.match(source, after)
                if raw is not None:
                    pos = yield from self._lex_raw(match.start(), raw)
                else:
                    pos = yield from self._lex_tag(
                        match.start(),
                        cfg.block_start,
                        cfg.block_end,
                        TokenType.BLOCK_BEGIN,
                        TokenType.BLOCK_END,
                        ErrorCode.UNCLOSED_TAG,
                    )

        yield self._token(TokenType.EOF, length, length, value="")

    def _lex_tag(
        self,
        start: int,
        begin: str,
        end: str,
        begin_type: TokenType,
        end_type: TokenType,
        unclosed: ErrorCode,
    ) -> Iterator[Token]:
        """Lex one ``{{ ... }}`` or ``{% ... %}`` construct. Returns the end position."""
        source = self.source
        pos = start + len(begin)
        marker = self._marker_at(pos)
        if marker is not None:
            pos += 1
        yield self._token(begin_type, start, pos, trim=marker)

        while True:
            ws = _WHITESPACE_RE.match(source, pos)
            if ws is not None:
                pos = ws.end()

            if pos >= len(source):
                kind = "expression" if begin_type is TokenType.VARIABLE_BEGIN else "tag"
                raise self._error(
                    f"unclosed {kind}: expected '{end}'", start, start + len(begin), unclosed
                )

            if source.startswith(end, pos):
                yield self._token(end_type, pos, pos + len(end))
                return pos + len(end)

            marker = self._marker_at(pos)
            if marker is not None and source.startswith(end, pos + 1):
                yield self._token(end_type, pos, pos + 1 + len(end), trim=marker)
                return pos + 1 + len(end)

            pos = yield from self._lex_inner(pos)

    def _lex_inner(self, pos: int) -> Iterator[Token]:
        """Lex a single expression token at ``pos``. Returns the next position."""
        source = self.source
        char = source[pos]

        if char in "'\"":
            end = pos + 1
            chars: list[str] = []
            while end < len(source) and source[end] != char:
                if source[end] == "\\" and end + 1 < len(source):
                    chars.append(_unescape(source[end + 1]))
                    end += 2
                else:
                    chars.append(source[end])
                    end += 1
            if end >= len(source):
                raise self._error(
                    "unterminated string literal", pos, pos + 1, ErrorCode.UNCLOSED_STRING
                )
            yield self._token(TokenType.STRING, pos, end + 1, value="".join(chars))
            return end + 1

        number = _NUMBER_RE.match(source, pos)
        if number is not None:
            type_ = TokenType.FLOAT if "." in number.group() else TokenType.INTEGER
            yield self._token(type_, pos, number.end())
            return number.end()

        name = _NAME_RE.match(source, pos)
        if name is not None:
            yield self._token(TokenType.NAME, pos, name.end())
            return name.end()

        for op, type_ in _OPERATORS:
            if source.startswith(op, pos):
                yield self._token(type_, pos, pos + len(op))
                return pos + len(op)

        raise self._error(
            f"unexpected character {char!r}", pos, pos + 1, ErrorCode.UNEXPECTED_CHARACTER
        )

    def _lex_comment(self, start: int) -> Iterator[Token]:
        """Lex a (possibly nested) comment. Returns the end position."""
        source = self.source
        cfg = self.config
        pos = start + len(cfg.comment_start)
        open_marker = self._marker_at(pos)
        if open_marker is not None:
            pos += 1
        yield self._token(TokenType.COMMENT_BEGIN, start, pos, trim=open_marker)

        body_start = pos
        depth = 1
        while depth:
            next_open = source.find(cfg.comment_start, pos)
            next_close = source.find(cfg.comment_end, pos)
            if next_close == -1:
                raise self._error(
                    "unclosed comment",
                    start,
                    start + len(cfg.comment_start),
                    ErrorCode.UNCLOSED_COMMENT,
                )
            if next_open != -1 and next_open < next_close:
                depth += 1
                pos = next_open + len(cfg.comment_start)
            else:
                depth -= 1
                pos = next_close + len(cfg.comment_end)

        close_start = pos - len(cfg.comment_end)
        close_marker = None
        if close_start > body_start and source[close_start - 1] in TRIM_MARKERS:
            close_marker = source[close_start - 1]
            close_start -= 1

        yield self._token(TokenType.COMMENT, body_start, close_start)
        yield self._token(TokenType.COMMENT_END, close_start, pos, trim=close_marker)
        return pos

    def _lex_raw(self, start: int, opening: re.Match[str]) -> Iterator[Token]:
        """Lex ``{% raw %}...{% endraw %}``. Returns the end position."""
        source = self.source
        cfg = self.config
        pos = start + len(cfg.block_start)
        marker = self._marker_at(pos)
        if marker is not None:
            pos += 1
        yield self._token(TokenType.BLOCK_BEGIN, start, pos, trim=marker)

        keyword = source.index("raw", pos)
        yield self._token(TokenType.NAME, keyword, keyword + 3)
        end_marker = opening.group(1) or None
        end_start = opening.end() - len(cfg.block_end) - (1 if end_marker else 0)
        yield self._token(TokenType.BLOCK_END, end_start, opening.end(), trim=end_marker)

        closing = self._endraw_re.search(source, opening.end())
        if closing is None:
            raise self._error(
                "unclosed raw block: expected 'endraw'",
                start,
                opening.end(),
                ErrorCode.UNCLOSED_RAW,
            )

        yield self._token(TokenType.RAW, opening.end(), closing.start())

        close_begin_end = closing.start() + len(cfg.block_start) + (1 if closing.group(1) else 0)
        yield self._token(
            TokenType.BLOCK_BEGIN, closing.start(), close_begin_end, trim=closing.group(1) or None
        )
        keyword = source.index("endraw", close_begin_end)
        yield self._token(TokenType.NAME, keyword, keyword + 6)
        tail_marker = closing.group(2) or None
        tail_start = closing.end() - len(cfg.block_end) - (1 if tail_marker else 0)
        yield self._token(TokenType.BLOCK_END, tail_start, closing.end(), trim=tail_marker)
        return closing.end()


_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0"}


def _unescape(char: str) -> str:
    return _ESCAPES.get(char, char)


def tokenize(source: str | bytes, config: LexerConfig | None = None) -> list[Token]:
    """Tokenize a whole template eagerly (convenience for tests and tools)."""
    return list(Lexer(source, config).tokenize())
