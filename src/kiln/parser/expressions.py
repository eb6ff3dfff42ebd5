"""Expression parsing for the Kiln parser.

Precedence climbing, lowest to highest:

    conditional   a if c else b
    or
    and
    not
    comparison    == != < <= > >= in, not in   (chainable)
    concat        ~
    additive      + -
    multiplicative * / // %
    unary         - +
    filter        expr | name(args)
    postfix       .attr  [key]
    primary       literals, names, (...), [...]

Calls are not expressions: ``super()`` and macro calls are recognized by
the statement layer only where they form a whole output tag.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from kiln._types import Span, Token, TokenType
from kiln.environment.exceptions import ErrorCode
from kiln.nodes import (
    BinOp,
    BoolOp,
    Compare,
    Concat,
    CondExpr,
    Const,
    Expr,
    Filter,
    Getattr,
    Getitem,
    List,
    Name,
    Tuple,
    UnaryOp,
)
from kiln.parser.tokens import describe_token

if TYPE_CHECKING:
    from kiln.parser.errors import ParseError

_COMPARE_OPS: dict[TokenType, str] = {
    TokenType.EQ: "==",
    TokenType.NE: "!=",
    TokenType.LT: "<",
    TokenType.LE: "<=",
    TokenType.GT: ">",
    TokenType.GE: ">=",
}

_ADDITIVE_OPS: dict[TokenType, str] = {
    TokenType.ADD: "+",
    TokenType.SUB: "-",
}

_MULTIPLICATIVE_OPS: dict[TokenType, str] = {
    TokenType.MUL: "*",
    TokenType.DIV: "/",
    TokenType.FLOORDIV: "//",
    TokenType.MOD: "%",
}

_CONSTANTS: dict[str, bool | None] = {"true": True, "false": False, "none": None}

# Words with grammatical meaning inside expressions; never variable names.
RESERVED_NAMES = frozenset({"and", "or", "not", "in", "if", "else"})


class ExpressionParsingMixin:
    """Mixin for parsing expressions.

    Required Host Attributes:
        - All from TokenNavigationMixin
    """

    if TYPE_CHECKING:

        @property
        def _current(self) -> Token: ...
        @property
        def _previous(self) -> Token: ...
        def _advance(self) -> Token: ...
        def _peek(self, offset: int = 0) -> Token: ...
        def _expect(self, token_type: TokenType) -> Token: ...
        def _match(self, *types: TokenType) -> bool: ...
        def _match_name(self, *names: str) -> bool: ...
        def _error(
            self,
            message: str,
            token: Token | None = None,
            suggestion: str | None = None,
            code: ErrorCode | None = None,
        ) -> ParseError: ...

    def _span_from(self, start: Token) -> Span:
        return start.span.to(self._previous.span)

    def _parse_expression(self, with_condexpr: bool = True) -> Expr:
        """Parse a full expression.

        ``with_condexpr=False`` stops before a trailing ``if`` so that
        ``{% for x in items if x.ok %}`` keeps its filter clause.
        """
        if with_condexpr:
            return self._parse_conditional()
        return self._parse_or()

    def _parse_conditional(self) -> Expr:
        start = self._current
        expr = self._parse_or()
        if not self._match_name("if"):
            return expr
        self._advance()  # consume 'if'
        test = self._parse_or()
        if not self._match_name("else"):
            raise self._error(
                "Expected 'else' in conditional expression",
                suggestion="Conditional syntax: {{ a if condition else b }}",
                code=ErrorCode.INVALID_EXPRESSION,
            )
        self._advance()  # consume 'else'
        if_false = self._parse_conditional()
        return CondExpr(span=self._span_from(start), test=test, if_true=expr, if_false=if_false)

    def _parse_or(self) -> Expr:
        start = self._current
        values = [self._parse_and()]
        while self._match_name("or"):
            self._advance()
            values.append(self._parse_and())
        if len(values) == 1:
            return values[0]
        return BoolOp(span=self._span_from(start), op="or", values=tuple(values))

    def _parse_and(self) -> Expr:
        start = self._current
        values = [self._parse_not()]
        while self._match_name("and"):
            self._advance()
            values.append(self._parse_not())
        if len(values) == 1:
            return values[0]
        return BoolOp(span=self._span_from(start), op="and", values=tuple(values))

    def _parse_not(self) -> Expr:
        if self._match_name("not"):
            start = self._advance()
            operand = self._parse_not()
            return UnaryOp(span=self._span_from(start), op="not", operand=operand)
        return self._parse_comparison()

    def _parse_comparison(self) -> Expr:
        start = self._current
        left = self._parse_concat()
        ops: list[str] = []
        comparators: list[Expr] = []

        while True:
            token = self._current
            if token.type in _COMPARE_OPS:
                self._advance()
                ops.append(_COMPARE_OPS[token.type])
            elif self._match_name("in"):
                self._advance()
                ops.append("in")
            elif (
                self._match_name("not")
                and self._peek(1).type is TokenType.NAME
                and self._peek(1).value == "in"
            ):
                self._advance()  # consume 'not'
                self._advance()  # consume 'in'
                ops.append("not in")
            else:
                break
            comparators.append(self._parse_concat())

        if not ops:
            return left
        return Compare(
            span=self._span_from(start),
            left=left,
            ops=tuple(ops),
            comparators=tuple(comparators),
        )

    def _parse_concat(self) -> Expr:
        start = self._current
        nodes = [self._parse_additive()]
        while self._match(TokenType.TILDE):
            self._advance()
            nodes.append(self._parse_additive())
        if len(nodes) == 1:
            return nodes[0]
        return Concat(span=self._span_from(start), nodes=tuple(nodes))

    def _parse_additive(self) -> Expr:
        start = self._current
        left = self._parse_multiplicative()
        while self._current.type in _ADDITIVE_OPS:
            op = _ADDITIVE_OPS[self._advance().type]
            right = self._parse_multiplicative()
            left = BinOp(span=self._span_from(start), op=op, left=left, right=right)
        return left

    def _parse_multiplicative(self) -> Expr:
        start = self._current
        left = self._parse_unary()
        while self._current.type in _MULTIPLICATIVE_OPS:
            op = _MULTIPLICATIVE_OPS[self._advance().type]
            right = self._parse_unary()
            left = BinOp(span=self._span_from(start), op=op, left=left, right=right)
        return left

    def _parse_unary(self) -> Expr:
        if self._match(TokenType.SUB, TokenType.ADD):
            start = self._advance()
            operand = self._parse_unary()
            return UnaryOp(span=self._span_from(start), op=start.value, operand=operand)
        return self._parse_filtered()

    def _parse_filtered(self) -> Expr:
        start = self._current
        expr = self._parse_postfix()
        while self._match(TokenType.PIPE):
            self._advance()  # consume '|'
            expr = self._parse_filter_application(expr, start)
        return expr

    def _parse_filter_chain(self, value: Expr, start: Token) -> Expr:
        """Parse ``name(args) | name(args) ...`` applied to ``value``.

        Used by ``{% filter %}``, whose chain has no leading pipe.
        """
        expr = self._parse_filter_application(value, start)
        while self._match(TokenType.PIPE):
            self._advance()  # consume '|'
            expr = self._parse_filter_application(expr, start)
        return expr

    def _parse_filter_application(self, value: Expr, start: Token) -> Filter:
        if not self._match(TokenType.NAME):
            raise self._error(
                f"Expected filter name after '|', got {describe_token(self._current)}",
                code=ErrorCode.INVALID_EXPRESSION,
            )
        name = self._advance().value
        args: Sequence[Expr] = ()
        kwargs: Sequence[tuple[str, Expr]] = ()
        if self._match(TokenType.LPAREN):
            args, kwargs = self._parse_call_args()
        return Filter(
            span=self._span_from(start),
            value=value,
            name=name,
            args=args,
            kwargs=kwargs,
        )

    def _parse_postfix(self) -> Expr:
        start = self._current
        expr = self._parse_primary()
        while True:
            if self._match(TokenType.DOT):
                self._advance()  # consume '.'
                token = self._current
                if token.type is TokenType.NAME:
                    self._advance()
                    expr = Getattr(span=self._span_from(start), obj=expr, attr=token.value)
                elif token.type is TokenType.INTEGER:
                    self._advance()
                    key = Const(span=token.span, value=int(token.value))
                    expr = Getitem(span=self._span_from(start), obj=expr, key=key)
                else:
                    raise self._error(
                        f"Expected attribute name after '.', got {describe_token(token)}",
                        code=ErrorCode.INVALID_EXPRESSION,
                    )
            elif self._match(TokenType.LBRACKET):
                self._advance()  # consume '['
                key = self._parse_expression()
                self._expect(TokenType.RBRACKET)
                expr = Getitem(span=self._span_from(start), obj=expr, key=key)
            elif self._match(TokenType.LPAREN):
                raise self._error(
                    "Calls are not allowed inside expressions",
                    suggestion=(
                        "Call macros as a whole tag: {{ name(args) }} or "
                        "{% call name(args) %}; transform values with filters"
                    ),
                    code=ErrorCode.INVALID_EXPRESSION,
                )
            else:
                return expr

    def _parse_primary(self) -> Expr:
        token = self._current

        if token.type is TokenType.NAME:
            lowered = token.value.lower()
            if lowered in _CONSTANTS:
                self._advance()
                return Const(span=token.span, value=_CONSTANTS[lowered])
            if token.value in RESERVED_NAMES:
                raise self._error(
                    f"Unexpected keyword '{token.value}' in expression",
                    code=ErrorCode.INVALID_EXPRESSION,
                )
            self._advance()
            return Name(span=token.span, name=token.value)

        if token.type is TokenType.STRING:
            self._advance()
            return Const(span=token.span, value=token.value)

        if token.type is TokenType.INTEGER:
            self._advance()
            return Const(span=token.span, value=int(token.value))

        if token.type is TokenType.FLOAT:
            self._advance()
            return Const(span=token.span, value=float(token.value))

        if token.type is TokenType.LPAREN:
            return self._parse_parenthesized()

        if token.type is TokenType.LBRACKET:
            self._advance()  # consume '['
            items: list[Expr] = []
            while not self._match(TokenType.RBRACKET):
                if items:
                    self._expect(TokenType.COMMA)
                    if self._match(TokenType.RBRACKET):
                        break
                items.append(self._parse_expression())
            self._expect(TokenType.RBRACKET)
            return List(span=self._span_from(token), items=tuple(items))

        raise self._error(
            f"Expected an expression, got {describe_token(token)}",
            code=ErrorCode.INVALID_EXPRESSION,
        )

    def _parse_parenthesized(self) -> Expr:
        """Parse ``(expr)`` or a tuple ``()``, ``(a,)``, ``(a, b)``."""
        start = self._advance()  # consume '('
        if self._match(TokenType.RPAREN):
            self._advance()
            return Tuple(span=self._span_from(start), items=())

        first = self._parse_expression()
        if not self._match(TokenType.COMMA):
            self._expect(TokenType.RPAREN)
            return first

        items = [first]
        while self._match(TokenType.COMMA):
            self._advance()
            if self._match(TokenType.RPAREN):
                break
            items.append(self._parse_expression())
        self._expect(TokenType.RPAREN)
        return Tuple(span=self._span_from(start), items=tuple(items))

    def _parse_call_args(self) -> tuple[tuple[Expr, ...], tuple[tuple[str, Expr], ...]]:
        """Parse ``(a, b, key=value)``; positional arguments come first."""
        self._expect(TokenType.LPAREN)
        args: list[Expr] = []
        kwargs: list[tuple[str, Expr]] = []

        while not self._match(TokenType.RPAREN):
            if args or kwargs:
                self._expect(TokenType.COMMA)
                if self._match(TokenType.RPAREN):
                    break
            if self._match(TokenType.NAME) and self._peek(1).type is TokenType.ASSIGN:
                key = self._advance().value
                self._advance()  # consume '='
                kwargs.append((key, self._parse_expression()))
            else:
                if kwargs:
                    raise self._error(
                        "Positional argument follows keyword argument",
                        code=ErrorCode.INVALID_EXPRESSION,
                    )
                args.append(self._parse_expression())

        self._expect(TokenType.RPAREN)
        return tuple(args), tuple(kwargs)

    def _parse_assign_target(self) -> Expr:
        """Parse a binding target: ``x``, ``a, b`` or ``(a, b)``."""
        start = self._current
        parenthesized = self._match(TokenType.LPAREN)
        if parenthesized:
            self._advance()

        names = [self._parse_target_name()]
        while self._match(TokenType.COMMA):
            self._advance()
            if parenthesized and self._match(TokenType.RPAREN):
                break
            names.append(self._parse_target_name())

        if parenthesized:
            self._expect(TokenType.RPAREN)
        if len(names) == 1 and not parenthesized:
            return names[0]
        return Tuple(span=self._span_from(start), items=tuple(names))

    def _parse_target_name(self) -> Name:
        token = self._current
        if token.type is not TokenType.NAME or token.value in RESERVED_NAMES:
            raise self._error(
                f"Expected a variable name, got {describe_token(token)}",
                code=ErrorCode.INVALID_EXPRESSION,
            )
        if token.value.lower() in _CONSTANTS:
            raise self._error(f"Cannot assign to constant '{token.value}'")
        self._advance()
        return Name(span=token.span, name=token.value)
