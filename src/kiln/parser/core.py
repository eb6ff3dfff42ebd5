"""Kiln parser: token stream to Template Unit.

The Parser is assembled from mixins, one per statement family, sharing a
token cursor and a block stack:

    TokenNavigationMixin              cursor primitives
    ExpressionParsingMixin            precedence-climbing expressions
    StatementParsingMixin             body loop and keyword dispatch
    ControlFlowBlockParsingMixin      if / for / break / continue / match
    SpecialBlockParsingMixin          filter
    TemplateStructureBlockParsingMixin  block / extends / include / import / raw
    FunctionBlockParsingMixin         macro / call / super()
    VariableBlockParsingMixin         let / set

Example:
    >>> from kiln.lexer import Lexer
    >>> from kiln.parser import Parser
    >>> tokens = Lexer("Hello, {{ name }}!").tokenize()
    >>> template = Parser(tokens, name="hello.txt").parse()
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from kiln._types import Span, Token, TokenType
from kiln.nodes import Block, Extends, Import, Macro, Template
from kiln.parser.blocks import (
    ControlFlowBlockParsingMixin,
    FunctionBlockParsingMixin,
    SpecialBlockParsingMixin,
    TemplateStructureBlockParsingMixin,
    VariableBlockParsingMixin,
)
from kiln.parser.expressions import ExpressionParsingMixin
from kiln.parser.statements import StatementParsingMixin
from kiln.parser.tokens import TokenNavigationMixin

logger = logging.getLogger(__name__)


class Parser(
    TokenNavigationMixin,
    ExpressionParsingMixin,
    StatementParsingMixin,
    ControlFlowBlockParsingMixin,
    TemplateStructureBlockParsingMixin,
    FunctionBlockParsingMixin,
    SpecialBlockParsingMixin,
    VariableBlockParsingMixin,
):
    """Recursive-descent parser producing one ``Template`` per source.

    Args:
        tokens: Token stream from the lexer (consumed eagerly, so lexer
            errors surface before any parse error).
        name: Template name; recorded on the Template and its macros.
        filename: Display name for diagnostics (defaults to ``name``).
        source: Template source, used for error snippets.
    """

    __slots__ = (
        "_block_stack",
        "_blocks",
        "_extends",
        "_filename",
        "_imports",
        "_loop_stack",
        "_macros",
        "_name",
        "_pos",
        "_source",
        "_tag_begin",
        "_tokens",
    )

    def __init__(
        self,
        tokens: Iterable[Token],
        name: str | None = None,
        filename: str | None = None,
        source: str | None = None,
    ):
        self._tokens: list[Token] = list(tokens)
        if not self._tokens or self._tokens[-1].type is not TokenType.EOF:
            end = self._tokens[-1].span if self._tokens else Span(0, 0, 1, 0)
            self._tokens.append(
                Token(TokenType.EOF, "", Span(end.end, end.end, end.lineno, end.col_offset))
            )
        self._pos = 0
        self._name = name
        self._filename = filename
        self._source = source
        self._block_stack: list[tuple[str, Token]] = []
        self._loop_stack: list[bool] = []
        self._tag_begin: Token | None = None
        self._blocks: dict[str, Block] = {}
        self._macros: dict[str, Macro] = {}
        self._imports: list[Import] = []
        self._extends: Extends | None = None

    def parse(self) -> Template:
        """Parse the whole token stream into a Template Unit.

        Raises:
            ParseError: On malformed or mismatched syntax.
        """
        body = self._parse_body()
        eof = self._current
        logger.debug(
            f"Parsed {self._name or '<template>'}: {len(body)} top-level nodes, "
            f"{len(self._blocks)} blocks, {len(self._macros)} macros"
        )
        return Template(
            span=self._tokens[0].span.to(eof.span),
            name=self._name or "<template>",
            body=tuple(body),
            extends=self._extends,
            blocks=dict(self._blocks),
            macros=dict(self._macros),
            imports=tuple(self._imports),
        )
