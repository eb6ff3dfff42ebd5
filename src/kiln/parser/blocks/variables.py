"""Variable block parsing for the Kiln parser.

Provides mixin for parsing let/set statements.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from kiln._types import Token, TokenType
from kiln.nodes import Let
from kiln.parser.blocks.core import BlockStackMixin

if TYPE_CHECKING:
    from kiln._types import Span
    from kiln.nodes import Expr


class VariableBlockParsingMixin(BlockStackMixin):
    """Mixin for parsing variable assignment blocks.

    Required Host Attributes:
        - All from BlockStackMixin
        - _parse_expression: method
        - _parse_assign_target: method
    """

    if TYPE_CHECKING:

        def _span_from(self, start: Token) -> Span: ...
        def _parse_expression(self, with_condexpr: bool = True) -> Expr: ...
        def _parse_assign_target(self) -> Expr: ...

    def _parse_let(self) -> Let:
        """Parse {% let x = expr %} or {% let a, b = pair %}.

        ``set`` is accepted as an alias. Bindings are single-assignment:
        the binder rejects a second binding of the same name in one scope.
        """
        begin = self._tag_begin
        self._advance()  # consume 'let' / 'set'
        target = self._parse_assign_target()
        self._expect(TokenType.ASSIGN)
        value = self._parse_expression()
        trim = self._close_tag()
        return Let(span=self._span_from(begin), target=target, value=value, trim=trim)
