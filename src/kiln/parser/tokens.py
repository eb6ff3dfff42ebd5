"""Token navigation for the Kiln parser.

Provides the cursor primitives every other parser mixin builds on.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from kiln._types import Token, TokenType
from kiln.parser.errors import ParseError

if TYPE_CHECKING:
    from kiln.environment.exceptions import ErrorCode

# Human-readable names for error messages.
_TOKEN_NAMES: dict[TokenType, str] = {
    TokenType.DATA: "text",
    TokenType.RAW: "raw text",
    TokenType.VARIABLE_BEGIN: "'{{'",
    TokenType.VARIABLE_END: "'}}'",
    TokenType.BLOCK_BEGIN: "'{%'",
    TokenType.BLOCK_END: "'%}'",
    TokenType.COMMENT_BEGIN: "'{#'",
    TokenType.COMMENT_END: "'#}'",
    TokenType.NAME: "name",
    TokenType.STRING: "string",
    TokenType.INTEGER: "integer",
    TokenType.FLOAT: "float",
    TokenType.EOF: "end of template",
}


def describe_token(token: Token) -> str:
    """Describe a token for an error message: ``name 'foo'``, ``')'``."""
    if token.type in (TokenType.NAME, TokenType.STRING, TokenType.INTEGER, TokenType.FLOAT):
        return f"{_TOKEN_NAMES[token.type]} {token.value!r}"
    if token.type in _TOKEN_NAMES:
        return _TOKEN_NAMES[token.type]
    return f"'{token.value}'"


class TokenNavigationMixin:
    """Cursor over the token list.

    Required Host Attributes:
        - _tokens: Sequence[Token]
        - _pos: int
        - _name: str | None
        - _filename: str | None
        - _source: str | None
    """

    if TYPE_CHECKING:
        _tokens: Sequence[Token]
        _pos: int
        _name: str | None
        _filename: str | None
        _source: str | None

    @property
    def _current(self) -> Token:
        """Current token (EOF once the stream is exhausted)."""
        if self._pos < len(self._tokens):
            return self._tokens[self._pos]
        return self._tokens[-1]

    @property
    def _previous(self) -> Token:
        """Most recently consumed token."""
        return self._tokens[max(self._pos - 1, 0)]

    def _peek(self, offset: int = 0) -> Token:
        index = self._pos + offset
        if index < len(self._tokens):
            return self._tokens[index]
        return self._tokens[-1]

    def _advance(self) -> Token:
        """Consume and return the current token."""
        token = self._current
        if self._pos < len(self._tokens):
            self._pos += 1
        return token

    def _match(self, *types: TokenType) -> bool:
        return self._current.type in types

    def _match_name(self, *names: str) -> bool:
        """True if the current token is a NAME with one of ``names``."""
        token = self._current
        return token.type is TokenType.NAME and token.value in names

    def _expect(self, token_type: TokenType) -> Token:
        """Consume a token of ``token_type`` or raise ParseError."""
        if self._current.type is not token_type:
            raise self._error(
                f"Expected {_TOKEN_NAMES.get(token_type, token_type.name.lower())}, "
                f"got {describe_token(self._current)}"
            )
        return self._advance()

    def _expect_name(self, name: str) -> Token:
        """Consume the keyword ``name`` or raise ParseError."""
        if not self._match_name(name):
            raise self._error(f"Expected '{name}', got {describe_token(self._current)}")
        return self._advance()

    def _error(
        self,
        message: str,
        token: Token | None = None,
        suggestion: str | None = None,
        code: ErrorCode | None = None,
    ) -> ParseError:
        return ParseError(
            message,
            token=token or self._current,
            source=self._source,
            filename=self._filename or self._name,
            suggestion=suggestion,
            code=code,
        )
