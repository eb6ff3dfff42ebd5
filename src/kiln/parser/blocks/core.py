"""Block stack management for the Kiln parser.

Tracks open block-structured tags so closers can be matched against the
tag they close and unclosed tags can be reported with their opening span.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from kiln._types import Token, TokenType
from kiln.environment.exceptions import ErrorCode
from kiln.nodes import Trim
from kiln.parser.tokens import describe_token

if TYPE_CHECKING:
    from kiln.parser.errors import ParseError

# Closers that accept a repeated name: {% endblock content %}
_NAMED_CLOSERS = frozenset({"block", "macro"})


class BlockStackMixin:
    """Mixin for block stack management.

    Required Host Attributes:
        - _block_stack: list[tuple[str, Token]]
        - _loop_stack: list[bool]
        - _tag_begin: Token | None
        - All from TokenNavigationMixin
    """

    if TYPE_CHECKING:
        _block_stack: list[tuple[str, Token]]
        _loop_stack: list[bool]
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

    def _push_block(self, block_type: str, token: Token) -> None:
        self._block_stack.append((block_type, token))

    def _in_block(self, *block_types: str) -> bool:
        return any(kind in block_types for kind, _ in self._block_stack)

    def _in_loop_body(self) -> bool:
        """True inside a ``for`` body, not crossing a ``filter`` block or a ``for`` else."""
        return bool(self._loop_stack) and self._loop_stack[-1]

    def _close_tag(self) -> Trim:
        """Consume the ``%}`` of the tag opened at ``_tag_begin``."""
        end = self._expect(TokenType.BLOCK_END)
        begin = self._tag_begin
        return Trim(begin.trim if begin is not None else None, end.trim)

    def _begin_tag(self, keyword: str) -> Token:
        """Consume ``{% keyword`` and remember the begin token."""
        self._tag_begin = self._expect(TokenType.BLOCK_BEGIN)
        token = self._current
        if token.type is not TokenType.NAME or token.value != keyword:
            raise self._error(f"Expected '{keyword}', got {describe_token(token)}")
        return self._advance()

    def _unclosed_error(self) -> ParseError:
        """Error for the innermost tag still open at end of template."""
        block_type, token = self._block_stack[-1]
        return self._error(
            f"Unclosed '{block_type}' block opened at line {token.lineno}",
            token=token,
            suggestion=f"Add {{% end{block_type} %}} or {{% end %}} to close it",
            code=ErrorCode.UNCLOSED_BLOCK,
        )

    def _consume_end_tag(self, name: str | None = None) -> Trim:
        """Consume ``{% end %}`` / ``{% end<type> [name] %}`` for the innermost open tag.

        The closed tag is always the top of the block stack. Raises
        ParseError naming the unmatched opening tag when the closer belongs
        to a different block type or repeats a different name.
        """
        begin = self._expect(TokenType.BLOCK_BEGIN)
        keyword = self._current
        block_type, opened_token = self._block_stack[-1]

        if keyword.type is not TokenType.NAME:
            raise self._error(f"Expected closing tag, got {describe_token(keyword)}")
        if keyword.value not in ("end", f"end{block_type}"):
            raise self._error(
                f"Mismatched closing tag '{keyword.value}': '{block_type}' opened at "
                f"line {opened_token.lineno}, column {opened_token.col_offset} "
                f"is still open",
                token=keyword,
                suggestion=f"Close '{block_type}' with {{% end{block_type} %}} first",
                code=ErrorCode.MISMATCHED_END,
            )
        self._advance()

        if self._current.type is TokenType.NAME:
            closer_name = self._current
            if block_type not in _NAMED_CLOSERS or keyword.value == "end":
                raise self._error(
                    f"Unexpected {describe_token(closer_name)} after '{keyword.value}'",
                    token=closer_name,
                )
            if closer_name.value != name:
                raise self._error(
                    f"Closing tag names '{closer_name.value}' but '{block_type} {name}' "
                    f"opened at line {opened_token.lineno} is being closed",
                    token=closer_name,
                    code=ErrorCode.MISMATCHED_END,
                )
            self._advance()

        end = self._expect(TokenType.BLOCK_END)
        self._block_stack.pop()
        return Trim(begin.trim, end.trim)
