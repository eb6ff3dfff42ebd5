"""Template structure block parsing for the Kiln parser.

Provides mixin for parsing template structure statements (block, extends,
include, import, raw).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from kiln._types import Token, TokenType
from kiln.environment.exceptions import ErrorCode
from kiln.nodes import Block, Data, Extends, Import, Include, Raw, Trim
from kiln.parser.blocks.core import BlockStackMixin
from kiln.parser.tokens import describe_token

if TYPE_CHECKING:
    from kiln._types import Span
    from kiln.nodes import Node


class TemplateStructureBlockParsingMixin(BlockStackMixin):
    """Mixin for parsing template structure blocks.

    Required Host Attributes:
        - All from BlockStackMixin
        - _blocks: dict[str, Block]
        - _extends: Extends | None
        - _imports: list[Import]
        - _parse_body: method
    """

    if TYPE_CHECKING:
        _blocks: dict[str, Block]
        _extends: Extends | None
        _imports: list[Import]

        @property
        def _previous(self) -> Token: ...
        def _expect_name(self, name: str) -> Token: ...
        def _span_from(self, start: Token) -> Span: ...
        def _parse_body(self, stop_on_continuation: bool = False) -> list[Node]: ...

    def _parse_template_name(self, keyword: str) -> str:
        """Template names must be string literals so the graph is static."""
        token = self._current
        if token.type is not TokenType.STRING:
            raise self._error(
                f"Expected a template name string after '{keyword}', got {describe_token(token)}",
                suggestion=f'Use a literal name: {{% {keyword} "base.html" %}}',
            )
        return self._advance().value

    def _parse_block_tag(self) -> Block:
        """Parse {% block name %}...{% endblock [name] %} or {% end %}."""
        begin = self._tag_begin
        start = self._advance()  # consume 'block'

        if self._in_block("macro"):
            raise self._error("Blocks cannot be defined inside macros", token=start)
        if self._current.type is not TokenType.NAME:
            raise self._error(f"Expected block name, got {describe_token(self._current)}")
        name_token = self._advance()
        name = name_token.value
        if name in self._blocks:
            previous = self._blocks[name]
            raise self._error(
                f"Block '{name}' is already defined at line {previous.lineno}",
                token=name_token,
                code=ErrorCode.DUPLICATE_DEFINITION,
            )

        self._push_block("block", start)
        trim = self._close_tag()
        body = self._parse_body()
        end_trim = self._consume_end_tag(name)

        block = Block(
            span=self._span_from(begin),
            name=name,
            body=tuple(body),
            trim=trim,
            end_trim=end_trim,
        )
        self._blocks[name] = block
        return block

    def _parse_extends(self) -> Extends:
        """Parse {% extends "base.html" %}."""
        begin = self._tag_begin
        start = self._advance()  # consume 'extends'
        if self._block_stack:
            raise self._error(
                "'extends' is only allowed at the top level of a template", token=start
            )
        if self._extends is not None:
            raise self._error(
                f"Template already extends '{self._extends.template}' "
                f"(line {self._extends.lineno})",
                token=start,
                code=ErrorCode.DUPLICATE_DEFINITION,
            )

        template = self._parse_template_name("extends")
        trim = self._close_tag()
        self._extends = Extends(span=self._span_from(begin), template=template, trim=trim)
        return self._extends

    def _parse_include(self) -> Include:
        """Parse {% include "partial.html" %}."""
        begin = self._tag_begin
        self._advance()  # consume 'include'
        template = self._parse_template_name("include")
        trim = self._close_tag()
        return Include(span=self._span_from(begin), template=template, trim=trim)

    def _parse_import(self) -> Import:
        """Parse {% import "macros.html" as scope %}."""
        begin = self._tag_begin
        start = self._advance()  # consume 'import'
        if self._block_stack:
            raise self._error(
                "'import' is only allowed at the top level of a template", token=start
            )

        template = self._parse_template_name("import")
        self._expect_name("as")
        if self._current.type is not TokenType.NAME:
            raise self._error(
                f"Expected scope name for import, got {describe_token(self._current)}"
            )
        alias_token = self._advance()
        for existing in self._imports:
            if existing.alias == alias_token.value:
                raise self._error(
                    f"Import scope '{alias_token.value}' is already defined "
                    f"at line {existing.lineno}",
                    token=alias_token,
                    code=ErrorCode.DUPLICATE_DEFINITION,
                )

        trim = self._close_tag()
        node = Import(
            span=self._span_from(begin),
            template=template,
            alias=alias_token.value,
            trim=trim,
        )
        self._imports.append(node)
        return node

    def _parse_raw(self) -> Raw:
        """Parse {% raw %}...{% endraw %}; the lexer delivers one RAW token."""
        begin = self._tag_begin
        self._advance()  # consume 'raw'
        trim = self._close_tag()

        content = self._expect(TokenType.RAW)
        body = (Data(span=content.span, value=content.value),) if content.value else ()

        end_begin = self._expect(TokenType.BLOCK_BEGIN)
        self._expect_name("endraw")
        end = self._expect(TokenType.BLOCK_END)

        return Raw(
            span=self._span_from(begin),
            body=body,
            trim=trim,
            end_trim=Trim(end_begin.trim, end.trim),
        )
