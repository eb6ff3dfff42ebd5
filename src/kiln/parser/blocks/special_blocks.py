"""Special block parsing for the Kiln parser.

Provides mixin for parsing filter blocks, which run the rendered text of
their body through a filter chain.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from kiln._types import Token, TokenType
from kiln.nodes import BlockText, FilterBlock
from kiln.parser.blocks.core import BlockStackMixin
from kiln.parser.tokens import describe_token

if TYPE_CHECKING:
    from kiln._types import Span
    from kiln.nodes import Expr, Node


class SpecialBlockParsingMixin(BlockStackMixin):
    """Mixin for parsing special blocks.

    Required Host Attributes:
        - All from BlockStackMixin
        - _parse_body: method
        - _parse_filter_chain: method
    """

    if TYPE_CHECKING:

        def _span_from(self, start: Token) -> Span: ...
        def _parse_body(self, stop_on_continuation: bool = False) -> list[Node]: ...
        def _parse_filter_chain(self, value: Expr, start: Token) -> Expr: ...

    def _parse_filter_block(self) -> FilterBlock:
        """Parse {% filter name(args) | name %}...{% endfilter %}.

        The chain is checked like the outer filters of an output, with the
        rendered body as its input. ``break`` and ``continue`` do not reach
        through a filter block to an enclosing loop.

        Example:
            {% filter upper | truncate(20) %}
                Hello, {{ name }}!
            {% endfilter %}
        """
        begin = self._tag_begin
        start = self._advance()  # consume 'filter'
        if self._current.type is not TokenType.NAME:
            raise self._error(
                f"Expected filter name, got {describe_token(self._current)}",
                suggestion="Filter block syntax: {% filter name %}...{% endfilter %}",
            )
        self._push_block("filter", start)

        chain = self._parse_filter_chain(BlockText(span=start.span), self._current)
        trim = self._close_tag()

        self._loop_stack.append(False)
        body = self._parse_body()
        self._loop_stack.pop()

        end_trim = self._consume_end_tag()
        return FilterBlock(
            span=self._span_from(begin),
            expr=chain,
            body=tuple(body),
            trim=trim,
            end_trim=end_trim,
        )
