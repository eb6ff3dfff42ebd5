"""Kiln parser: tokens to AST.

The parser is split into mixins by statement family; ``Parser`` composes
them. Errors are ``ParseError`` instances carrying the offending token's
span.
"""

from kiln.parser.core import Parser
from kiln.parser.errors import ParseError

__all__ = ["ParseError", "Parser"]
