"""Kiln: an ahead-of-time compiler for Jinja-style templates.

Kiln turns template source plus a statically known context schema into a
deterministic, target-agnostic instruction program. Every variable, filter
and macro reference is checked at compile time, so a compiled program
cannot fail at render time because of a missing binding.

Quickstart:
    >>> from kiln import Environment
    >>> env = Environment()
    >>> program = env.compile_string("Hello, {{ name }}!", {"name": "str"}, name="hello.txt")
    >>> program.to_json()
    '{"escape":"none","instructions":[...],...}'

Loader-based templates:
    >>> from kiln import DictLoader, Environment
    >>> env = Environment(loader=DictLoader({
    ...     "base.html": "<title>{% block title %}Site{% endblock %}</title>",
    ...     "page.html": (
    ...         '{% extends "base.html" %}'
    ...         "{% block title %}{{ super() }} - Page{% endblock %}"
    ...     ),
    ... }))
    >>> env.compile("page.html")

Architecture:
Template Source → Lexer → Parser → Inheritance Resolver → Binder →
Whitespace Normalizer → Filter Pipeline Validator → Emitter → Program

Thread-Safety:
- A ``Compiler`` holds the state of one run and is never shared
- ``Environment`` configuration is immutable; the filter registry is
  copy-on-write and each run reads a snapshot
- Identical inputs compile to byte-identical ``Program.to_json()``
"""

from kiln._types import Span, Token, TokenType, WhitespaceMode
from kiln.environment import (
    ChoiceLoader,
    ConfigError,
    CycleError,
    Diagnostic,
    DictLoader,
    EncodingError,
    Environment,
    ErrorCode,
    EscapeMode,
    FileSystemLoader,
    FilterError,
    FilterRegistry,
    FilterSpec,
    FilterTypeError,
    FunctionLoader,
    LexError,
    LexerError,
    MacroArityError,
    NoSuperBlockError,
    ReassignmentError,
    Syntax,
    TemplateError,
    TemplateNotFoundError,
    UnknownArgumentError,
    UnknownBindingError,
    UnknownFilterError,
)
from kiln.compiler import Compiler
from kiln.instructions import (
    ApplyFilters,
    BindLocal,
    Branch,
    CallMacro,
    Case,
    DefineMacro,
    EmitExpr,
    EmitLiteral,
    FilterCall,
    Loop,
    LoopControl,
    Program,
    Switch,
)
from kiln.lexer import Lexer, LexerConfig, tokenize
from kiln.parser import ParseError, Parser
from kiln.schema import ContextSchema, parse_type

__version__ = "0.1.0"

__all__ = [
    "ApplyFilters",
    "BindLocal",
    "Branch",
    "CallMacro",
    "Case",
    "ChoiceLoader",
    "Compiler",
    "ConfigError",
    "ContextSchema",
    "CycleError",
    "DefineMacro",
    "Diagnostic",
    "DictLoader",
    "EmitExpr",
    "EmitLiteral",
    "EncodingError",
    "Environment",
    "ErrorCode",
    "EscapeMode",
    "FileSystemLoader",
    "FilterCall",
    "FilterError",
    "FilterRegistry",
    "FilterSpec",
    "FilterTypeError",
    "FunctionLoader",
    "LexError",
    "Lexer",
    "LexerConfig",
    "LexerError",
    "Loop",
    "LoopControl",
    "MacroArityError",
    "NoSuperBlockError",
    "ParseError",
    "Parser",
    "Program",
    "ReassignmentError",
    "Span",
    "Switch",
    "Syntax",
    "TemplateError",
    "TemplateNotFoundError",
    "Token",
    "TokenType",
    "UnknownArgumentError",
    "UnknownBindingError",
    "UnknownFilterError",
    "WhitespaceMode",
    "__version__",
    "parse_type",
    "tokenize",
]
