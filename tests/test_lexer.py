"""Tests for the Kiln lexer: delimiters, trim markers, raw regions, spans."""

from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from kiln import EncodingError, ErrorCode, LexError, Syntax, TemplateError
from kiln._types import TokenType, WhitespaceMode
from kiln.lexer import Lexer, LexerConfig, tokenize

from .strategies import plain_text, template_fragment


def types(source: str, config: LexerConfig | None = None) -> list[str]:
    return [t.type.name for t in tokenize(source, config)]


class TestDelimiters:
    """Recognition of the three tag families."""

    def test_expression_tag(self):
        assert types("Hi {{ name }}") == ["DATA", "VARIABLE_BEGIN", "NAME", "VARIABLE_END", "EOF"]

    def test_statement_tag(self):
        assert types("{% if ok %}") == ["BLOCK_BEGIN", "NAME", "NAME", "BLOCK_END", "EOF"]

    def test_comment(self):
        tokens = tokenize("{# hi #}")
        assert [t.type for t in tokens] == [
            TokenType.COMMENT_BEGIN,
            TokenType.COMMENT,
            TokenType.COMMENT_END,
            TokenType.EOF,
        ]
        assert tokens[1].value == " hi "

    def test_nested_comment(self):
        tokens = tokenize("{# a {# b #} c #}x")
        assert tokens[1].value == " a {# b #} c "
        assert tokens[3].type is TokenType.DATA
        assert tokens[3].value == "x"

    def test_eof_always_last(self):
        assert tokenize("")[-1].type is TokenType.EOF
        assert len(tokenize("")) == 1

    def test_data_between_tags(self):
        tokens = tokenize("a{{ x }}b{{ y }}c")
        data = [t.value for t in tokens if t.type is TokenType.DATA]
        assert data == ["a", "b", "c"]


class TestExpressionTokens:
    """Tokens produced inside delimiters."""

    def test_numbers(self):
        tokens = tokenize("{{ 1 + 2.5 }}")
        assert [t.type for t in tokens[1:4]] == [TokenType.INTEGER, TokenType.ADD, TokenType.FLOAT]
        assert tokens[3].value == "2.5"

    def test_longest_operator_wins(self):
        assert types("{{ a // b }}")[1:4] == ["NAME", "FLOORDIV", "NAME"]
        assert types("{{ a <= b }}")[2] == "LE"
        assert types("{{ a != b }}")[2] == "NE"

    def test_string_escapes(self):
        tokens = tokenize(r'{{ "a\"b\n" }}')
        assert tokens[1].type is TokenType.STRING
        assert tokens[1].value == 'a"b\n'

    def test_single_quoted_string(self):
        assert tokenize("{{ 'x' }}")[1].value == "x"

    def test_filter_pipe_and_tilde(self):
        assert types("{{ a | upper ~ b }}")[1:6] == ["NAME", "PIPE", "NAME", "TILDE", "NAME"]

    def test_minus_operator_is_not_a_marker(self):
        tokens = tokenize("{{ a - b }}")
        assert tokens[0].trim is None
        assert tokens[2].type is TokenType.SUB
        assert tokens[-2].trim is None


class TestTrimMarkers:
    """Markers directly inside delimiters."""

    @pytest.mark.parametrize(
        ("marker", "mode"),
        [
            ("-", WhitespaceMode.SUPPRESS),
            ("~", WhitespaceMode.MINIMIZE),
            ("+", WhitespaceMode.PRESERVE),
        ],
    )
    def test_statement_markers(self, marker, mode):
        tokens = tokenize(f"{{%{marker} if ok {marker}%}}")
        assert tokens[0].trim is mode
        assert tokens[-2].type is TokenType.BLOCK_END
        assert tokens[-2].trim is mode

    def test_mixed_markers(self):
        tokens = tokenize("a {%- if x ~%} b")
        assert tokens[1].trim is WhitespaceMode.SUPPRESS
        assert tokens[4].trim is WhitespaceMode.MINIMIZE
        assert tokens[4].value == "~%}"

    def test_unmarked_delimiters_carry_no_trim(self):
        tokens = tokenize("{{ x }}")
        assert tokens[0].trim is None
        assert tokens[2].trim is None

    def test_comment_markers(self):
        tokens = tokenize("{#- c -#}")
        assert tokens[0].trim is WhitespaceMode.SUPPRESS
        assert tokens[1].value == " c "
        assert tokens[2].trim is WhitespaceMode.SUPPRESS


class TestRaw:
    """Raw regions bypass delimiter recognition."""

    def test_raw_region(self):
        tokens = tokenize("{% raw %}{{ x }}{% if %}{% endraw %}")
        assert [t.type.name for t in tokens] == [
            "BLOCK_BEGIN",
            "NAME",
            "BLOCK_END",
            "RAW",
            "BLOCK_BEGIN",
            "NAME",
            "BLOCK_END",
            "EOF",
        ]
        assert tokens[3].value == "{{ x }}{% if %}"
        assert tokens[5].value == "endraw"

    def test_raw_markers(self):
        tokens = tokenize("{%- raw -%} x {%~ endraw +%}")
        assert tokens[0].trim is WhitespaceMode.SUPPRESS
        assert tokens[2].trim is WhitespaceMode.SUPPRESS
        assert tokens[3].value == " x "
        assert tokens[4].trim is WhitespaceMode.MINIMIZE
        assert tokens[6].trim is WhitespaceMode.PRESERVE

    def test_name_starting_with_raw_is_not_raw(self):
        assert types("{% rawish %}")[1] == "NAME"
        assert "RAW" not in types("{% rawish %}")


class TestSpans:
    """Spans use UTF-8 byte offsets plus line and column."""

    def test_byte_offsets_for_multibyte_text(self):
        tokens = tokenize("é{{ x }}")
        begin = tokens[1]
        assert begin.span.start == 2
        assert begin.span.end == 4
        assert begin.col_offset == 1

    def test_line_and_column(self):
        tokens = tokenize("a\n  {{ x }}")
        begin = tokens[1]
        assert begin.lineno == 2
        assert begin.col_offset == 2

    def test_eof_span_at_end(self):
        eof = tokenize("abc")[-1]
        assert eof.span.start == eof.span.end == 3


class TestLexErrors:
    """Unterminated constructs report the opening delimiter."""

    @pytest.mark.parametrize(
        ("source", "code"),
        [
            ("{{ name", ErrorCode.UNCLOSED_VARIABLE),
            ("{% if ok", ErrorCode.UNCLOSED_TAG),
            ("{# never closed", ErrorCode.UNCLOSED_COMMENT),
            ("{# a {# b #}", ErrorCode.UNCLOSED_COMMENT),
            ("{% raw %}abc", ErrorCode.UNCLOSED_RAW),
        ],
    )
    def test_unclosed_constructs(self, source, code):
        with pytest.raises(LexError) as exc_info:
            tokenize(source)
        assert exc_info.value.code is code
        assert exc_info.value.span.start == 0

    def test_unterminated_string_points_at_quote(self):
        with pytest.raises(LexError) as exc_info:
            tokenize("{{ 'abc }}")
        assert exc_info.value.code is ErrorCode.UNCLOSED_STRING
        assert exc_info.value.col_offset == 3

    def test_unexpected_character(self):
        with pytest.raises(LexError) as exc_info:
            tokenize("{{ a ? b }}")
        assert exc_info.value.code is ErrorCode.UNEXPECTED_CHARACTER
        assert "'?'" in exc_info.value.message

    def test_error_spans_later_line(self):
        with pytest.raises(LexError) as exc_info:
            tokenize("line one\n  {{ x")
        assert exc_info.value.lineno == 2
        assert exc_info.value.col_offset == 2

    def test_error_carries_template_name(self):
        with pytest.raises(LexError) as exc_info:
            list(Lexer("{{ x", name="page.html").tokenize())
        assert exc_info.value.template == "page.html"
        assert exc_info.value.source == "{{ x"


class TestEncoding:
    """Sources must be valid UTF-8."""

    def test_bytes_are_decoded(self):
        tokens = tokenize("héllo".encode())
        assert tokens[0].value == "héllo"

    def test_invalid_bytes(self):
        with pytest.raises(EncodingError) as exc_info:
            tokenize(b"ok \xff")
        assert exc_info.value.span.start == 3
        assert exc_info.value.code is ErrorCode.INVALID_ENCODING

    def test_invalid_bytes_on_later_line(self):
        with pytest.raises(EncodingError) as exc_info:
            tokenize(b"a\nbc\xc3")
        assert exc_info.value.lineno == 2
        assert exc_info.value.col_offset == 2

    def test_lone_surrogate(self):
        with pytest.raises(EncodingError) as exc_info:
            tokenize("a\udc80")
        assert exc_info.value.span.start == 1

    def test_lexer_decodes_eagerly(self):
        with pytest.raises(EncodingError):
            Lexer(b"\xff")


class TestCustomSyntax:
    """Configured delimiter sets."""

    def test_angle_delimiters(self):
        config = LexerConfig.from_syntax(
            Syntax(block_start="<%", block_end="%>", expr_start="<<", expr_end=">>")
        )
        assert types("a << x >> <% if y %>", config) == [
            "DATA",
            "VARIABLE_BEGIN",
            "NAME",
            "VARIABLE_END",
            "DATA",
            "BLOCK_BEGIN",
            "NAME",
            "NAME",
            "BLOCK_END",
            "EOF",
        ]

    def test_default_delimiters_are_text(self):
        config = LexerConfig.from_syntax(Syntax(expr_start="[[", expr_end="]]"))
        assert types("{{ x }}", config) == ["DATA", "EOF"]


class TestLexerProperties:
    """Property-based lexer invariants."""

    @given(source=plain_text)
    @settings(max_examples=200)
    def test_plain_text_is_one_data_token(self, source: str) -> None:
        """Text without delimiters produces a single DATA token with the content unchanged."""
        tokens = tokenize(source)
        assert len(tokens) == 2
        assert tokens[0].type is TokenType.DATA
        assert tokens[0].value == source

    @given(source=st.text(alphabet=st.characters(blacklist_categories=("Cs",)), max_size=300))
    @settings(max_examples=300)
    def test_no_unhandled_crash(self, source: str) -> None:
        """Arbitrary input either tokenizes or raises a TemplateError."""
        try:
            tokens = tokenize(source)
        except TemplateError:
            return
        assert tokens[-1].type is TokenType.EOF

    @given(source=template_fragment())
    @settings(max_examples=100)
    def test_fragment_delimiters_balance(self, source: str) -> None:
        tokens = tokenize(source)
        kinds = [t.type for t in tokens]
        for begin, end in (
            (TokenType.VARIABLE_BEGIN, TokenType.VARIABLE_END),
            (TokenType.BLOCK_BEGIN, TokenType.BLOCK_END),
            (TokenType.COMMENT_BEGIN, TokenType.COMMENT_END),
        ):
            assert kinds.count(begin) == kinds.count(end)
