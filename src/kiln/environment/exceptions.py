"""Exceptions for Kiln template compilation.

Exception Hierarchy:
TemplateError (base)
├── EncodingError            # Source is not valid UTF-8
├── LexError                 # Unterminated delimiter, comment, raw region
├── ParseError               # Malformed or mismatched syntax (kiln.parser.errors)
├── CycleError               # extends / include / macro cycle
├── NoSuperBlockError        # super() without an ancestor block
├── UnknownBindingError      # Name, attribute, macro or scope not found
├── ReassignmentError        # let of a name already bound in the same frame
├── MacroArityError          # Too many / too few / duplicated macro arguments
├── UnknownArgumentError     # Named macro argument not among the parameters
├── UnknownFilterError       # Filter not in the registry
├── FilterError              # Filter called with the wrong arguments
│   └── FilterTypeError      # Filter input type mismatch
├── TemplateNotFoundError    # Loader has no such template
└── ConfigError              # Invalid delimiters or escape mode

Every error is raised at compile time and carries a ``Span`` pointing into
the originating template, so a host can turn it into a diagnostic:

    ```
    K-BND-001: Unknown binding 'titl' (in block 'content')
      --> article.html:5:7
         |
    >  5 | <h1>{{ titl }}</h1>
         |        ^
    ```

"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from difflib import get_close_matches
from enum import Enum
from typing import TYPE_CHECKING

from kiln.environment import terminal

if TYPE_CHECKING:
    from kiln._types import Span

# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------


class ErrorCode(Enum):
    """Searchable error codes for Kiln compile errors.

    Format: K-{CATEGORY}-{NUMBER}
    Categories: ENC (encoding), LEX (lexer), PAR (parser), RES (inheritance
    resolution), BND (binding), FLT (filters), TPL (template loading),
    CFG (configuration).
    """

    # Encoding errors (K-ENC-xxx)
    INVALID_ENCODING = "K-ENC-001"

    # Lexer errors (K-LEX-xxx)
    UNCLOSED_TAG = "K-LEX-001"
    UNCLOSED_COMMENT = "K-LEX-002"
    UNCLOSED_VARIABLE = "K-LEX-003"
    UNCLOSED_RAW = "K-LEX-004"
    UNEXPECTED_CHARACTER = "K-LEX-005"
    UNCLOSED_STRING = "K-LEX-006"

    # Parser errors (K-PAR-xxx)
    UNEXPECTED_TOKEN = "K-PAR-001"
    UNCLOSED_BLOCK = "K-PAR-002"
    INVALID_EXPRESSION = "K-PAR-003"
    DUPLICATE_DEFINITION = "K-PAR-004"
    MISMATCHED_END = "K-PAR-005"

    # Resolution errors (K-RES-xxx)
    CYCLE = "K-RES-001"
    NO_SUPER_BLOCK = "K-RES-002"

    # Binding errors (K-BND-xxx)
    UNKNOWN_BINDING = "K-BND-001"
    REASSIGNMENT = "K-BND-002"
    MACRO_ARITY = "K-BND-003"
    UNKNOWN_ARGUMENT = "K-BND-004"

    # Filter errors (K-FLT-xxx)
    UNKNOWN_FILTER = "K-FLT-001"
    FILTER_ARGUMENTS = "K-FLT-002"
    FILTER_TYPE = "K-FLT-003"

    # Template loading errors (K-TPL-xxx)
    TEMPLATE_NOT_FOUND = "K-TPL-001"

    # Configuration errors (K-CFG-xxx)
    INVALID_CONFIG = "K-CFG-001"

    @property
    def category(self) -> str:
        """Error category (e.g., 'binding', 'lexer', 'parser')."""
        prefix = self.value.split("-")[1]
        return {
            "ENC": "encoding",
            "LEX": "lexer",
            "PAR": "parser",
            "RES": "resolution",
            "BND": "binding",
            "FLT": "filter",
            "TPL": "template",
            "CFG": "config",
        }.get(prefix, "unknown")


# ---------------------------------------------------------------------------
# Source snippets and diagnostics
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SourceSnippet:
    """Template source context around an error line.

    Attributes:
        lines: Tuple of (line_number, line_content) pairs around the error.
        error_line: The 1-based line number where the error occurred.
        column: Optional column offset for caret pointer.
    """

    lines: tuple[tuple[int, str], ...]
    error_line: int
    column: int | None = None

    def format(self, color: bool = True) -> str:
        """Format snippet in Rust-inspired diagnostic style.

        Uses terminal colors when ``color`` is set and the terminal
        supports them.
        """
        return terminal.excerpt(
            self.lines, self.error_line, self.column, color=None if color else False
        )


def build_source_snippet(
    source: str,
    error_line: int,
    *,
    context_lines: int = 2,
    column: int | None = None,
) -> SourceSnippet:
    """Build a SourceSnippet from template source.

    Args:
        source: Full template source text.
        error_line: 1-based line number of the error.
        context_lines: Number of lines to show before/after the error line.
        column: Optional column offset for caret pointer.
    """
    all_lines = source.splitlines()
    start = max(0, error_line - 1 - context_lines)
    end = min(len(all_lines), error_line + context_lines)
    lines = tuple((i + 1, all_lines[i]) for i in range(start, end))
    return SourceSnippet(lines=lines, error_line=error_line, column=column)


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """Structured, host-facing description of a compile error."""

    kind: str
    code: str | None
    message: str
    template: str
    span: Span | None


def _did_you_mean(name: str, candidates: Iterable[str]) -> str | None:
    matches = get_close_matches(name, sorted(set(candidates)), n=1, cutoff=0.6)
    return matches[0] if matches else None


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class TemplateError(Exception):
    """Base exception for all Kiln compile errors.

    Attributes:
        message: Human-readable description (without location).
        span: Source span in the originating template, when known.
        template: Name of the originating template.
        source: Template source, used to render a snippet.
        suggestion: Optional actionable hint.
        code: ErrorCode for searchable identification.
    """

    code: ErrorCode | None = None

    def __init__(
        self,
        message: str,
        *,
        span: Span | None = None,
        template: str | None = None,
        source: str | None = None,
        suggestion: str | None = None,
    ):
        self.message = message
        self.span = span
        self.template = template or "<template>"
        self.source = source
        self.suggestion = suggestion
        super().__init__(self._format_message())

    @property
    def kind(self) -> str:
        return type(self).__name__

    @property
    def lineno(self) -> int | None:
        return self.span.lineno if self.span else None

    @property
    def col_offset(self) -> int | None:
        return self.span.col_offset if self.span else None

    def _location(self) -> str:
        loc = self.template
        if self.span is not None:
            loc += f":{self.span.lineno}:{self.span.col_offset}"
        return loc

    def _snippet(self) -> SourceSnippet | None:
        if not self.source or self.span is None:
            return None
        if not 0 < self.span.lineno <= len(self.source.splitlines()):
            return None
        return build_source_snippet(
            self.source, self.span.lineno, context_lines=0, column=self.span.col_offset
        )

    def _format_message(self) -> str:
        parts = [self.message, terminal.location(self._location(), color=False)]
        snippet = self._snippet()
        if snippet is not None:
            parts.append(snippet.format(color=False))
        if self.suggestion:
            parts.append(terminal.hint(self.suggestion, color=False))
        return "\n".join(parts)

    def with_context(
        self, *, template: str | None = None, source: str | None = None
    ) -> TemplateError:
        """Fill in template name and source if the raising stage lacked them.

        Stages deep in the pipeline often raise before they know which
        template a node came from; the compiler attaches it on the way out.
        """
        changed = False
        if template is not None and self.template == "<template>":
            self.template = template
            changed = True
        if source is not None and self.source is None:
            self.source = source
            changed = True
        if changed:
            self.args = (self._format_message(),)
        return self

    def diagnostic(self) -> Diagnostic:
        """Return the error as a host-facing Diagnostic record."""
        return Diagnostic(
            kind=self.kind,
            code=self.code.value if self.code else None,
            message=self.message,
            template=self.template,
            span=self.span,
        )

    def format_compact(self) -> str:
        """Format error as a structured, colorized terminal diagnostic.

        Format::

            K-BND-001: Unknown binding 'usernme'
              --> base.html:42:7
                 |
            > 42 | <h1>{{ usernme }}</h1>
                 |        ^
                 |
              Hint: Did you mean 'username'?
        """
        parts = [
            terminal.header(self.code.value if self.code else None, self.message),
            terminal.location(self._location()),
        ]
        snippet = self._snippet()
        if snippet is not None:
            parts.append(snippet.format())
        if self.suggestion:
            parts.append(terminal.hint(self.suggestion))
        return "\n".join(parts)


class EncodingError(TemplateError):
    """Template source is not valid UTF-8."""

    code = ErrorCode.INVALID_ENCODING


class LexError(TemplateError):
    """Lexer failure: unterminated construct or unexpected character.

    The span always points at the opening delimiter of the construct.
    """

    code = ErrorCode.UNCLOSED_TAG

    def __init__(self, message: str, *, code: ErrorCode | None = None, **kwargs):
        if code is not None:
            self.code = code
        super().__init__(message, **kwargs)


# Alternate spelling kept for callers that say "lexer error".
LexerError = LexError


class CycleError(TemplateError):
    """A template or macro refers back to itself.

    Raised for ``extends`` chains, ``include`` chains and macro call graphs.

    Example:
        >>> CycleError(["a.html", "b.html", "a.html"], relation="extends")
        CycleError: extends cycle: a.html -> b.html -> a.html
    """

    code = ErrorCode.CYCLE

    def __init__(self, chain: Sequence[str], *, relation: str = "extends", **kwargs):
        self.chain = tuple(chain)
        self.relation = relation
        super().__init__(f"{relation} cycle: {' -> '.join(self.chain)}", **kwargs)


class NoSuperBlockError(TemplateError):
    """``super()`` called where no less-derived template defines the block."""

    code = ErrorCode.NO_SUPER_BLOCK

    def __init__(self, block: str | None, **kwargs):
        self.block = block
        if block is None:
            message = "super() can only be called inside a block"
        else:
            message = f"super() called in block '{block}' but no parent template defines it"
        super().__init__(message, **kwargs)


class UnknownBindingError(TemplateError):
    """A variable, attribute, macro or import scope could not be resolved.

    If ``available_names`` is provided, a "Did you mean?" suggestion is
    included when a close match is found.
    """

    code = ErrorCode.UNKNOWN_BINDING

    def __init__(
        self,
        name: str,
        scope: str = "template",
        *,
        available_names: Iterable[str] = (),
        what: str = "binding",
        **kwargs,
    ):
        self.name = name
        self.scope = scope
        self.what = what
        if "suggestion" not in kwargs:
            match = _did_you_mean(name, available_names)
            if match:
                kwargs["suggestion"] = f"Did you mean '{match}'?"
        super().__init__(f"Unknown {what} '{name}' (in {scope})", **kwargs)


class ReassignmentError(TemplateError):
    """A name is bound twice in the same scope frame."""

    code = ErrorCode.REASSIGNMENT

    def __init__(self, name: str, previous: Span | None = None, **kwargs):
        self.name = name
        self.previous = previous
        message = f"'{name}' is already bound in this scope"
        if previous is not None:
            message += f" (line {previous.lineno})"
        kwargs.setdefault(
            "suggestion", f"Bindings are single-assignment; use a new name instead of '{name}'"
        )
        super().__init__(message, **kwargs)


class MacroArityError(TemplateError):
    """Macro called with the wrong number or shape of arguments."""

    code = ErrorCode.MACRO_ARITY

    def __init__(self, macro: str, message: str, **kwargs):
        self.macro = macro
        super().__init__(f"macro '{macro}': {message}", **kwargs)


class UnknownArgumentError(TemplateError):
    """Named macro argument that the macro does not declare."""

    code = ErrorCode.UNKNOWN_ARGUMENT

    def __init__(self, macro: str, argument: str, params: Sequence[str] = (), **kwargs):
        self.macro = macro
        self.argument = argument
        self.params = tuple(params)
        if "suggestion" not in kwargs:
            match = _did_you_mean(argument, params)
            if match:
                kwargs["suggestion"] = f"Did you mean '{match}'?"
            elif params:
                kwargs["suggestion"] = f"'{macro}' accepts: {', '.join(params)}"
        super().__init__(f"macro '{macro}' has no parameter named '{argument}'", **kwargs)


class UnknownFilterError(TemplateError):
    """Filter name not found among built-in or custom filters."""

    code = ErrorCode.UNKNOWN_FILTER

    def __init__(self, name: str, available: Iterable[str] = (), **kwargs):
        self.name = name
        if "suggestion" not in kwargs:
            match = _did_you_mean(name, available)
            if match:
                kwargs["suggestion"] = f"Did you mean '{match}'?"
        super().__init__(f"Unknown filter '{name}'", **kwargs)


class FilterError(TemplateError):
    """Filter applied with arguments its contract does not accept."""

    code = ErrorCode.FILTER_ARGUMENTS

    def __init__(self, filter_name: str, message: str, **kwargs):
        self.filter_name = filter_name
        super().__init__(f"filter '{filter_name}': {message}", **kwargs)


class FilterTypeError(FilterError):
    """Statically inferred input type does not match the filter's contract."""

    code = ErrorCode.FILTER_TYPE

    def __init__(self, filter_name: str, expected: str, actual: str, **kwargs):
        self.expected = expected
        self.actual = actual
        super().__init__(filter_name, f"expects {expected}, got {actual}", **kwargs)


class TemplateNotFoundError(TemplateError):
    """Template not found by the configured loader.

    Example:
        >>> env.compile("nonexistent.html", schema)
        TemplateNotFoundError: Template 'nonexistent.html' not found in: templates/
    """

    code = ErrorCode.TEMPLATE_NOT_FOUND


class ConfigError(TemplateError):
    """Invalid compiler configuration (delimiters, escape mode, schema)."""

    code = ErrorCode.INVALID_CONFIG
