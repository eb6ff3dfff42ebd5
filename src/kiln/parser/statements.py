"""Statement parsing for the Kiln parser.

Provides the body loop and the keyword dispatch table that routes each
``{% keyword ... %}`` tag to its block parser.
"""

from __future__ import annotations

from difflib import get_close_matches
from typing import TYPE_CHECKING

from kiln._types import Token, TokenType
from kiln.environment.exceptions import ErrorCode
from kiln.nodes import Comment, Data, Output, Trim
from kiln.parser.tokens import describe_token

if TYPE_CHECKING:
    from kiln._types import Span
    from kiln.nodes import Call, Expr, Node, SuperCall
    from kiln.parser.errors import ParseError

# Keyword -> parser method name.
_BLOCK_PARSERS: dict[str, str] = {
    # Control flow
    "if": "_parse_if",
    "for": "_parse_for",
    "break": "_parse_break",
    "continue": "_parse_continue",
    "match": "_parse_match",
    # Variables
    "let": "_parse_let",
    "set": "_parse_let",
    # Template structure
    "block": "_parse_block_tag",
    "extends": "_parse_extends",
    "include": "_parse_include",
    "import": "_parse_import",
    "raw": "_parse_raw",
    # Macros
    "macro": "_parse_macro",
    "call": "_parse_call",
    # Output
    "filter": "_parse_filter_block",
}

# Tags that continue an open block rather than opening one.
_CONTINUATION_KEYWORDS = frozenset({"elif", "else", "when", "case"})

# Continuation keyword -> the block it belongs to.
_CONTINUATION_OWNERS = {
    "elif": "an 'if'",
    "else": "an 'if'",
    "when": "a 'match'",
    "case": "a 'match'",
}

# Tags that close an open block. ``end`` closes any block.
_END_KEYWORDS = frozenset(
    {"end", "endif", "endfor", "endblock", "endmacro", "endraw", "endfilter", "endmatch"}
)

_VALID_KEYWORDS = frozenset(_BLOCK_PARSERS)


class StatementParsingMixin:
    """Mixin for the template body loop and statement dispatch.

    Required Host Attributes:
        - _block_stack: list[tuple[str, Token]]
        - _tag_begin: Token | None
        - All from TokenNavigationMixin
        - All block parsers named in ``_BLOCK_PARSERS``
    """

    if TYPE_CHECKING:
        _block_stack: list[tuple[str, Token]]
        _tag_begin: Token | None

        @property
        def _current(self) -> Token: ...
        def _advance(self) -> Token: ...
        def _peek(self, offset: int = 0) -> Token: ...
        def _expect(self, token_type: TokenType) -> Token: ...
        def _error(
            self,
            message: str,
            token: Token | None = None,
            suggestion: str | None = None,
            code: ErrorCode | None = None,
        ) -> ParseError: ...
        def _span_from(self, start: Token) -> Span: ...
        def _parse_expression(self, with_condexpr: bool = True) -> Expr: ...
        def _unclosed_error(self) -> ParseError: ...
        def _is_output_call(self) -> bool: ...
        def _parse_output_call(self, begin: Token) -> Call | SuperCall: ...

    def _parse_body(self, stop_on_continuation: bool = False) -> list[Node]:
        """Parse nodes until EOF, a closing tag, or (optionally) elif/else.

        The closing or continuation tag is left unconsumed for the caller.
        """
        nodes: list[Node] = []

        while True:
            token = self._current

            if token.type is TokenType.DATA:
                nodes.append(self._parse_data())

            elif token.type is TokenType.VARIABLE_BEGIN:
                nodes.append(self._parse_output())

            elif token.type is TokenType.COMMENT_BEGIN:
                nodes.append(self._parse_comment())

            elif token.type is TokenType.BLOCK_BEGIN:
                keyword = self._peek(1)
                if keyword.type is TokenType.NAME:
                    if keyword.value in _END_KEYWORDS:
                        if not self._block_stack:
                            raise self._error(
                                f"Unexpected closing tag '{keyword.value}': no block is open",
                                token=keyword,
                                code=ErrorCode.MISMATCHED_END,
                            )
                        return nodes
                    if keyword.value in _CONTINUATION_KEYWORDS:
                        if stop_on_continuation:
                            return nodes
                        raise self._error(
                            self._stray_continuation_message(keyword.value),
                            token=keyword,
                        )
                nodes.append(self._parse_block())

            elif token.type is TokenType.EOF:
                if self._block_stack:
                    raise self._unclosed_error()
                return nodes

            else:
                raise self._error(f"Unexpected {describe_token(token)}")

    def _stray_continuation_message(self, keyword: str) -> str:
        if not self._block_stack:
            return f"Unexpected '{keyword}' outside of {_CONTINUATION_OWNERS[keyword]} block"
        block_type, _ = self._block_stack[-1]
        return f"'{keyword}' is not valid inside '{block_type}'"

    def _parse_block(self) -> Node:
        """Parse one ``{% keyword ... %}`` tag via the dispatch table."""
        self._tag_begin = self._advance()  # consume '{%'
        keyword = self._current

        if keyword.type is not TokenType.NAME:
            raise self._error(f"Expected a tag keyword, got {describe_token(keyword)}")

        method_name = _BLOCK_PARSERS.get(keyword.value)
        if method_name is None:
            matches = get_close_matches(keyword.value, sorted(_VALID_KEYWORDS), n=1)
            raise self._error(
                f"Unknown tag '{keyword.value}'",
                token=keyword,
                suggestion=f"Did you mean '{matches[0]}'?" if matches else None,
            )
        return getattr(self, method_name)()

    def _parse_data(self) -> Data:
        token = self._advance()
        return Data(span=token.span, value=token.value)

    def _parse_output(self) -> Node:
        """Parse {{ expr }}, {{ super() }} or {{ [scope.]macro(args) }}."""
        begin = self._advance()  # consume '{{'
        if self._is_output_call():
            return self._parse_output_call(begin)

        expr = self._parse_expression()
        end = self._expect(TokenType.VARIABLE_END)
        return Output(span=self._span_from(begin), expr=expr, trim=Trim(begin.trim, end.trim))

    def _parse_comment(self) -> Comment:
        """Parse {# ... #}. Kept as a zero-width node for spans and markers."""
        begin = self._advance()  # consume '{#'
        body = self._expect(TokenType.COMMENT)
        end = self._expect(TokenType.COMMENT_END)
        return Comment(
            span=self._span_from(begin),
            value=body.value,
            trim=Trim(begin.trim, end.trim),
        )
