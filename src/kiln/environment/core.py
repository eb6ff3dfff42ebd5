"""Kiln Environment: configuration, template loading and compile entry points.

The environment holds immutable configuration (delimiter syntax, escape
mode, whitespace default), a loader and a copy-on-write filter registry.
Every ``compile*`` call creates a fresh ``Compiler`` for a single run, so
independent units can be compiled from several threads at once.

Example:
    >>> from kiln import DictLoader, Environment
    >>> env = Environment(loader=DictLoader({"hello.txt": "Hello, {{ name }}!"}))
    >>> program = env.compile("hello.txt", {"name": "str"})
    >>> [type(i).__name__ for i in program.instructions]
    ['EmitLiteral', 'EmitExpr', 'EmitLiteral']
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from functools import cached_property
from typing import TYPE_CHECKING, Any

from kiln._types import WhitespaceMode
from kiln.environment.config import EscapeMode, Syntax
from kiln.environment.exceptions import ConfigError, TemplateError, TemplateNotFoundError
from kiln.environment.registry import FilterRegistry
from kiln.lexer import Lexer, LexerConfig
from kiln.parser import Parser
from kiln.schema import ContextSchema

if TYPE_CHECKING:
    from kiln.environment.filters import FilterSpec
    from kiln.environment.loaders import Loader, TemplateSource
    from kiln.instructions import Program
    from kiln.nodes import Template

logger = logging.getLogger(__name__)

SchemaLike = ContextSchema | Mapping[str, Any] | None


@dataclass
class Environment:
    """Central configuration for compiling templates.

    Attributes:
        loader: Template source locator (``get_source(name)``); only needed
            for ``compile`` and for ``extends``/``include``/``import``.
        syntax: Delimiter set.
        escape: Escape mode for every unit; ``None`` infers it from each
            template's extension.
        whitespace: Mode for tag edges written without a trim marker.
        filters: Custom filter contracts added to the built-in set.

    Example:
        >>> env = Environment(
        ...     loader=FileSystemLoader("templates/"),
        ...     whitespace="suppress",
        ...     filters={"money": {"accepts": ["number"], "returns": "str"}},
        ... )
    """

    loader: Loader | None = None
    syntax: Syntax = field(default_factory=Syntax)
    escape: EscapeMode | str | None = None
    whitespace: WhitespaceMode | str = WhitespaceMode.PRESERVE
    filters: FilterRegistry | Mapping[str, FilterSpec | Mapping[str, Any]] | None = None

    def __post_init__(self) -> None:
        if self.escape is not None:
            self.escape = EscapeMode.from_name(self.escape)
        if isinstance(self.whitespace, str):
            try:
                self.whitespace = WhitespaceMode.from_name(self.whitespace)
            except ValueError as e:
                raise ConfigError(
                    str(e), suggestion="Use 'preserve', 'suppress' or 'minimize'"
                ) from e
        if not isinstance(self.syntax, Syntax):
            raise ConfigError(f"syntax must be a Syntax instance, got {type(self.syntax).__name__}")
        if not isinstance(self.filters, FilterRegistry):
            self.filters = FilterRegistry(self.filters)

    @cached_property
    def lexer_config(self) -> LexerConfig:
        return LexerConfig.from_syntax(self.syntax)

    def add_filter(self, name: str, spec: FilterSpec | Mapping[str, Any]) -> None:
        """Register a custom filter contract.

        Runs already in progress keep the registry snapshot they started with.
        """
        self.filters[name] = spec

    def get_source(self, name: str) -> tuple[TemplateSource, str | None]:
        """Fetch template source through the loader.

        Raises:
            TemplateNotFoundError: No loader is configured or it does not
                know ``name``.
        """
        if self.loader is None:
            raise TemplateNotFoundError(
                f"Template '{name}' not found: no loader configured",
                suggestion="Pass loader=... to Environment, or use compile_string()",
            )
        return self.loader.get_source(name)

    # ─────────────────────────────────────────────────────────────────────────
    # Entry points
    # ─────────────────────────────────────────────────────────────────────────

    def parse(self, source: TemplateSource, name: str = "<string>") -> Template:
        """Lex and parse ``source`` without resolving or binding anything."""
        lexer = Lexer(source, self.lexer_config, name)
        return Parser(lexer.tokenize(), name=name, source=lexer.source).parse()

    def compile(self, name: str, schema: SchemaLike = None) -> Program:
        """Compile the template the loader knows as ``name``.

        Raises:
            TemplateError: The first failure of the pipeline.
        """
        from kiln.compiler import Compiler

        return Compiler(self, ContextSchema.coerce(schema)).compile(name)

    def compile_string(
        self, source: TemplateSource, schema: SchemaLike = None, name: str = "<string>"
    ) -> Program:
        """Compile template source text.

        ``name`` selects the escape mode and MIME type by extension and is
        the name ``extends``/``include`` cycles are reported under.
        """
        from kiln.compiler import Compiler

        return Compiler(self, ContextSchema.coerce(schema)).compile_source(source, name)

    def compile_many(
        self, names: Iterable[str], schema: SchemaLike = None
    ) -> dict[str, Program | TemplateError]:
        """Compile several units independently.

        A failure in one unit is recorded as its result and does not stop
        the others.
        """
        schema = ContextSchema.coerce(schema)
        results: dict[str, Program | TemplateError] = {}
        for name in names:
            try:
                results[name] = self.compile(name, schema)
            except TemplateError as e:
                logger.debug(f"Compiling {name} failed: {e.kind}: {e.message}")
                results[name] = e
        return results
