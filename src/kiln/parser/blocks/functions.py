"""Function block parsing for the Kiln parser.

Provides mixin for parsing macro definitions and macro calls. The parser
only records the call shape; arity and argument names are checked by the
binder once every macro in the inheritance chain is known.

Uses inline TYPE_CHECKING declarations for host attributes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from kiln._types import Token, TokenType
from kiln.environment.exceptions import ErrorCode
from kiln.nodes import Call, Macro, MacroParam, SuperCall, Trim
from kiln.parser.blocks.core import BlockStackMixin
from kiln.parser.tokens import describe_token

if TYPE_CHECKING:
    from kiln._types import Span
    from kiln.nodes import Expr, Node


class FunctionBlockParsingMixin(BlockStackMixin):
    """Mixin for parsing macro blocks.

    Host attributes and cross-mixin dependencies are declared via inline
    TYPE_CHECKING blocks. Inherits block stack management from BlockStackMixin.
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Host attributes and cross-mixin dependencies (type-check only)
    # ─────────────────────────────────────────────────────────────────────────
    if TYPE_CHECKING:
        # Host attributes (from Parser.__init__)
        _name: str | None
        _macros: dict[str, Macro]

        # From TokenNavigationMixin
        @property
        def _previous(self) -> Token: ...
        def _match(self, *types: TokenType) -> bool: ...

        # From StatementParsingMixin
        def _parse_body(self, stop_on_continuation: bool = False) -> list[Node]: ...

        # From ExpressionParsingMixin
        def _span_from(self, start: Token) -> Span: ...
        def _parse_expression(self, with_condexpr: bool = True) -> Expr: ...
        def _parse_call_args(
            self,
        ) -> tuple[tuple[Expr, ...], tuple[tuple[str, Expr], ...]]: ...

    def _parse_macro(self) -> Macro:
        """Parse {% macro name(params) %}...{% endmacro [name] %}.

        Parameters are ordered; a parameter with a default may not be
        followed by one without.

        Example:
            {% macro card(title, footer="") %}
                <div>{{ title }}</div>{{ footer }}
            {% endmacro %}

            {{ card("Hello") }}
        """
        begin = self._tag_begin
        start = self._advance()  # consume 'macro'
        if self._block_stack:
            raise self._error(
                "Macros can only be defined at the top level of a template",
                token=start,
            )

        if self._current.type is not TokenType.NAME:
            raise self._error(
                f"Expected macro name, got {describe_token(self._current)}",
                suggestion="Macro syntax: {% macro name(args) %}...{% endmacro %}",
            )
        name_token = self._advance()
        name = name_token.value
        if name in self._macros:
            raise self._error(
                f"Macro '{name}' is already defined at line {self._macros[name].lineno}",
                token=name_token,
                code=ErrorCode.DUPLICATE_DEFINITION,
            )

        params = self._parse_macro_params()

        self._push_block("macro", start)
        trim = self._close_tag()
        body = self._parse_body()
        end_trim = self._consume_end_tag(name)

        macro = Macro(
            span=self._span_from(begin),
            name=name,
            params=params,
            body=tuple(body),
            trim=trim,
            end_trim=end_trim,
            template=self._name,
        )
        self._macros[name] = macro
        return macro

    def _parse_macro_params(self) -> tuple[MacroParam, ...]:
        self._expect(TokenType.LPAREN)
        params: list[MacroParam] = []
        seen: set[str] = set()
        saw_default = False

        while not self._match(TokenType.RPAREN):
            if params:
                self._expect(TokenType.COMMA)
                if self._match(TokenType.RPAREN):
                    break
            token = self._current
            if token.type is not TokenType.NAME:
                raise self._error(f"Expected parameter name, got {describe_token(token)}")
            self._advance()
            if token.value in seen:
                raise self._error(
                    f"Duplicate parameter '{token.value}'",
                    token=token,
                    code=ErrorCode.DUPLICATE_DEFINITION,
                )
            seen.add(token.value)

            default = None
            if self._match(TokenType.ASSIGN):
                self._advance()  # consume '='
                default = self._parse_expression()
                saw_default = True
            elif saw_default:
                raise self._error(
                    f"Parameter '{token.value}' without a default follows a parameter "
                    f"with a default",
                    token=token,
                )
            params.append(
                MacroParam(span=self._span_from(token), name=token.value, default=default)
            )

        self._expect(TokenType.RPAREN)
        return tuple(params)

    def _parse_call_target(self) -> tuple[str | None, str]:
        """Parse ``name`` or ``scope.name`` before a call's argument list."""
        token = self._current
        if token.type is not TokenType.NAME:
            raise self._error(f"Expected macro name, got {describe_token(token)}")
        self._advance()
        if not self._match(TokenType.DOT):
            return None, token.value
        self._advance()  # consume '.'
        if self._current.type is not TokenType.NAME:
            raise self._error(f"Expected macro name after '.', got {describe_token(self._current)}")
        return token.value, self._advance().value

    def _parse_call(self) -> Call:
        """Parse {% call name(args) %} or {% call scope.name(args) %}."""
        begin = self._tag_begin
        self._advance()  # consume 'call'
        scope, name = self._parse_call_target()
        if not self._match(TokenType.LPAREN):
            raise self._error(
                f"Expected '(' after macro name '{name}'",
                suggestion=f"Call syntax: {{% call {name}() %}}",
            )
        args, kwargs = self._parse_call_args()
        trim = self._close_tag()
        return Call(
            span=self._span_from(begin),
            name=name,
            scope=scope,
            args=args,
            kwargs=kwargs,
            trim=trim,
        )

    def _is_output_call(self) -> bool:
        """True if the output tag at the cursor is ``name(`` or ``scope.name(``."""
        if self._peek(0).type is not TokenType.NAME:
            return False
        if self._peek(1).type is TokenType.LPAREN:
            return True
        return (
            self._peek(1).type is TokenType.DOT
            and self._peek(2).type is TokenType.NAME
            and self._peek(3).type is TokenType.LPAREN
        )

    def _parse_output_call(self, begin: Token) -> Call | SuperCall:
        """Parse ``{{ super() }}`` or ``{{ [scope.]name(args) }}``.

        The call must be the whole expression of the output tag.
        """
        scope, name = self._parse_call_target()
        args, kwargs = self._parse_call_args()
        if not self._match(TokenType.VARIABLE_END):
            raise self._error(
                "A macro call must be the whole output expression",
                suggestion="Bind the surrounding value with {% let %} or move the call "
                "into its own {{ ... }} tag",
                code=ErrorCode.INVALID_EXPRESSION,
            )
        end = self._advance()
        trim = Trim(begin.trim, end.trim)

        if scope is None and name == "super":
            if args or kwargs:
                raise self._error("super() takes no arguments", token=begin)
            return SuperCall(span=self._span_from(begin), trim=trim)

        return Call(
            span=self._span_from(begin),
            name=name,
            scope=scope,
            args=args,
            kwargs=kwargs,
            trim=trim,
        )
