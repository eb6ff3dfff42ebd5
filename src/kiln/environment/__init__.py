"""Kiln environment: configuration, loaders, filters and errors.

The ``Environment`` is the entry point for compiling templates; the
rest of this package holds what it is configured with.
"""

from kiln.environment.config import EscapeMode, Syntax, escape_mode_for, mime_type_for
from kiln.environment.exceptions import (
    ConfigError,
    CycleError,
    Diagnostic,
    EncodingError,
    ErrorCode,
    FilterError,
    FilterTypeError,
    LexError,
    LexerError,
    MacroArityError,
    NoSuperBlockError,
    ReassignmentError,
    SourceSnippet,
    TemplateError,
    TemplateNotFoundError,
    UnknownArgumentError,
    UnknownBindingError,
    UnknownFilterError,
    build_source_snippet,
)
from kiln.environment.filters import DEFAULT_FILTERS, FilterSpec
from kiln.environment.loaders import (
    ChoiceLoader,
    DictLoader,
    FileSystemLoader,
    FunctionLoader,
    Loader,
)
from kiln.environment.registry import FilterRegistry
from kiln.environment.core import Environment

__all__ = [
    "DEFAULT_FILTERS",
    "ChoiceLoader",
    "ConfigError",
    "CycleError",
    "Diagnostic",
    "DictLoader",
    "EncodingError",
    "Environment",
    "ErrorCode",
    "EscapeMode",
    "FileSystemLoader",
    "FilterError",
    "FilterRegistry",
    "FilterSpec",
    "FilterTypeError",
    "FunctionLoader",
    "LexError",
    "LexerError",
    "Loader",
    "MacroArityError",
    "NoSuperBlockError",
    "ReassignmentError",
    "SourceSnippet",
    "Syntax",
    "TemplateError",
    "TemplateNotFoundError",
    "UnknownArgumentError",
    "UnknownBindingError",
    "UnknownFilterError",
    "build_source_snippet",
    "escape_mode_for",
    "mime_type_for",
]
