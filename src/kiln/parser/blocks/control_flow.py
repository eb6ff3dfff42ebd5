"""Control flow block parsing for the Kiln parser.

Provides mixin for parsing if/elif/else, for/else, break/continue and
match/when statements.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from kiln._types import Token, TokenType
from kiln.environment.exceptions import ErrorCode
from kiln.nodes import Break, Const, Continue, Elif, Else, For, If, Match, Trim, When
from kiln.parser.blocks.core import BlockStackMixin

if TYPE_CHECKING:
    from kiln._types import Span
    from kiln.nodes import Expr, Node

# Tags that open an arm of a match block.
_ARM_KEYWORDS = ("when", "case")


class ControlFlowBlockParsingMixin(BlockStackMixin):
    """Mixin for parsing control flow blocks.

    Required Host Attributes:
        - All from BlockStackMixin
        - _parse_body: method
        - _parse_expression: method
        - _parse_assign_target: method
    """

    if TYPE_CHECKING:

        @property
        def _previous(self) -> Token: ...
        def _match_name(self, *names: str) -> bool: ...
        def _expect_name(self, name: str) -> Token: ...
        def _span_from(self, start: Token) -> Span: ...
        def _match(self, *types: TokenType) -> bool: ...
        def _parse_body(self, stop_on_continuation: bool = False) -> list[Node]: ...
        def _parse_expression(self, with_condexpr: bool = True) -> Expr: ...
        def _parse_assign_target(self) -> Expr: ...
        def _parse_unary(self) -> Expr: ...
        def _parse_comment(self) -> Node: ...

    def _continuation_keyword(self) -> str | None:
        """Keyword of the tag at the cursor, if the cursor is at ``{%``."""
        if self._current.type is TokenType.BLOCK_BEGIN and self._peek(1).type is TokenType.NAME:
            return self._peek(1).value
        return None

    def _parse_if(self) -> If:
        """Parse {% if cond %}...{% elif cond %}...{% else %}...{% endif %}."""
        begin = self._tag_begin
        start = self._advance()  # consume 'if'
        self._push_block("if", start)

        test = self._parse_expression()
        trim = self._close_tag()
        body = self._parse_body(stop_on_continuation=True)

        elif_: list[Elif] = []
        else_: Else | None = None

        while True:
            keyword = self._continuation_keyword()
            if keyword == "elif":
                if else_ is not None:
                    raise self._error("'elif' cannot follow 'else'", token=self._peek(1))
                branch_begin = self._current
                self._begin_tag("elif")
                branch_test = self._parse_expression()
                branch_trim = self._close_tag()
                branch_body = self._parse_body(stop_on_continuation=True)
                elif_.append(
                    Elif(
                        span=self._span_from(branch_begin),
                        test=branch_test,
                        body=tuple(branch_body),
                        trim=branch_trim,
                    )
                )
            elif keyword == "else":
                if else_ is not None:
                    raise self._error("Duplicate 'else' in 'if' block", token=self._peek(1))
                branch_begin = self._current
                self._begin_tag("else")
                branch_trim = self._close_tag()
                branch_body = self._parse_body(stop_on_continuation=True)
                else_ = Else(
                    span=self._span_from(branch_begin),
                    body=tuple(branch_body),
                    trim=branch_trim,
                )
            else:
                break

        end_trim = self._consume_end_tag()
        return If(
            span=self._span_from(begin),
            test=test,
            body=tuple(body),
            elif_=tuple(elif_),
            else_=else_,
            trim=trim,
            end_trim=end_trim,
        )

    def _parse_for(self) -> For:
        """Parse {% for x in items [if cond] %}...{% else %}...{% endfor %}.

        Inside the body, ``loop`` exposes index, index0, revindex,
        revindex0, first, last and length.
        """
        begin = self._tag_begin
        start = self._advance()  # consume 'for'
        self._push_block("for", start)

        target = self._parse_assign_target()
        self._expect_name("in")
        iter_expr = self._parse_expression(with_condexpr=False)

        test = None
        if self._match_name("if"):
            self._advance()  # consume 'if'
            test = self._parse_expression(with_condexpr=False)

        trim = self._close_tag()
        self._loop_stack.append(True)
        body = self._parse_body(stop_on_continuation=True)

        else_: Else | None = None
        keyword = self._continuation_keyword()
        if keyword == "else":
            branch_begin = self._current
            self._begin_tag("else")
            branch_trim = self._close_tag()
            self._loop_stack[-1] = False
            branch_body = self._parse_body()
            else_ = Else(
                span=self._span_from(branch_begin),
                body=tuple(branch_body),
                trim=branch_trim,
            )
        elif keyword == "elif":
            raise self._error(
                "'elif' is not valid inside 'for'",
                token=self._peek(1),
                suggestion="Use {% else %} for the empty-iterable branch",
            )

        self._loop_stack.pop()
        end_trim = self._consume_end_tag()
        return For(
            span=self._span_from(begin),
            target=target,
            iter=iter_expr,
            body=tuple(body),
            test=test,
            else_=else_,
            trim=trim,
            end_trim=end_trim,
        )

    def _parse_break(self) -> Break:
        """Parse {% break %}; valid only in the body of a ``for`` loop."""
        begin = self._tag_begin
        trim = self._parse_loop_control()
        return Break(span=self._span_from(begin), trim=trim)

    def _parse_continue(self) -> Continue:
        """Parse {% continue %}; valid only in the body of a ``for`` loop."""
        begin = self._tag_begin
        trim = self._parse_loop_control()
        return Continue(span=self._span_from(begin), trim=trim)

    def _parse_loop_control(self) -> Trim:
        keyword = self._advance()  # consume 'break' / 'continue'
        if not self._in_loop_body():
            raise self._error(
                f"'{keyword.value}' is only valid inside the body of a 'for' loop",
                token=keyword,
                suggestion=(
                    "A 'filter' block or the 'else' branch of a loop does not count "
                    "as the loop body"
                    if self._loop_stack
                    else None
                ),
            )
        return self._close_tag()

    def _parse_match(self) -> Match:
        """Parse {% match expr %}{% when 1, 2 %}...{% else %}...{% endmatch %}.

        ``case`` is accepted as a spelling of ``when``. Patterns are literal
        constants; a value may appear in only one arm. Only whitespace and
        comments may stand between the ``match`` tag and its first arm.

        Example:
            {% match status %}
                {% when "draft", "review" %}Pending
                {% when "live" %}Published
                {% else %}Unknown
            {% endmatch %}
        """
        begin = self._tag_begin
        start = self._advance()  # consume 'match'
        self._push_block("match", start)

        subject = self._parse_expression()
        trim = self._close_tag()
        self._skip_match_preamble()

        cases: list[When] = []
        else_: Else | None = None
        seen: dict[tuple[type, object], Const] = {}

        while True:
            keyword = self._continuation_keyword()
            if keyword in _ARM_KEYWORDS:
                if else_ is not None:
                    raise self._error(f"'{keyword}' cannot follow 'else'", token=self._peek(1))
                branch_begin = self._current
                self._begin_tag(keyword)
                patterns = self._parse_patterns(seen)
                branch_trim = self._close_tag()
                branch_body = self._parse_body(stop_on_continuation=True)
                cases.append(
                    When(
                        span=self._span_from(branch_begin),
                        patterns=patterns,
                        body=tuple(branch_body),
                        trim=branch_trim,
                    )
                )
            elif keyword == "else":
                if else_ is not None:
                    raise self._error("Duplicate 'else' in 'match' block", token=self._peek(1))
                branch_begin = self._current
                self._begin_tag("else")
                branch_trim = self._close_tag()
                branch_body = self._parse_body(stop_on_continuation=True)
                else_ = Else(
                    span=self._span_from(branch_begin),
                    body=tuple(branch_body),
                    trim=branch_trim,
                )
            elif keyword == "elif":
                raise self._error(
                    "'elif' is not valid inside 'match'",
                    token=self._peek(1),
                    suggestion="Add another {% when value %} arm",
                )
            else:
                break

        if self._current.type is TokenType.EOF:
            raise self._unclosed_error()
        if not cases:
            raise self._error(
                "'match' needs at least one 'when' arm",
                token=start,
                suggestion="Add {% when value %} before the closing tag",
            )

        end_trim = self._consume_end_tag()
        return Match(
            span=self._span_from(begin),
            subject=subject,
            cases=tuple(cases),
            else_=else_,
            trim=trim,
            end_trim=end_trim,
        )

    def _skip_match_preamble(self) -> None:
        """Drop whitespace and comments between ``{% match %}`` and the first arm."""
        while True:
            token = self._current
            if token.type is TokenType.COMMENT_BEGIN:
                self._parse_comment()
            elif token.type is TokenType.DATA:
                if token.value.strip():
                    raise self._error(
                        "Only whitespace and comments may appear before the first 'when'",
                        token=token,
                    )
                self._advance()
            else:
                return

    def _parse_patterns(self, seen: dict[tuple[type, object], Const]) -> tuple[Const, ...]:
        """Comma-separated literal patterns of one arm, checked against ``seen``."""
        patterns: list[Const] = []
        while True:
            pattern = self._parse_pattern()
            key = (type(pattern.value), pattern.value)
            if key in seen:
                raise self._error(
                    f"Pattern {pattern.value!r} already matched at line {seen[key].lineno}",
                    token=self._previous,
                    code=ErrorCode.DUPLICATE_DEFINITION,
                )
            seen[key] = pattern
            patterns.append(pattern)
            if not self._match(TokenType.COMMA):
                return tuple(patterns)
            self._advance()  # consume ','

    def _parse_pattern(self) -> Const:
        start = self._current
        expr = self._parse_unary()
        node_type = type(expr).__name__
        if node_type == "Const":
            return expr
        if (
            node_type == "UnaryOp"
            and type(expr.operand).__name__ == "Const"
            and isinstance(expr.operand.value, (int, float))
            and not isinstance(expr.operand.value, bool)
        ):
            value = expr.operand.value
            return Const(span=expr.span, value=-value if expr.op == "-" else value)
        raise self._error(
            "'when' patterns must be literal strings, numbers, booleans or none",
            token=start,
            code=ErrorCode.INVALID_EXPRESSION,
        )
