"""Parser error handling for Kiln.

Provides ParseError class with source context and suggestions.
"""

from __future__ import annotations

from kiln._types import Token
from kiln.environment.exceptions import ErrorCode, TemplateError


class ParseError(TemplateError):
    """Parser error with rich source context.

    Built from the offending token so the span, line and column always
    point at real source, matching the format used by the lexer.
    """

    code = ErrorCode.UNEXPECTED_TOKEN

    def __init__(
        self,
        message: str,
        token: Token,
        source: str | None = None,
        filename: str | None = None,
        suggestion: str | None = None,
        *,
        code: ErrorCode | None = None,
    ):
        self.token = token
        if code is not None:
            self.code = code
        super().__init__(
            message,
            span=token.span,
            template=filename,
            source=source,
            suggestion=suggestion,
        )
