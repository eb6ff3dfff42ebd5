"""Kiln compiler: the pipeline driver for one compilation run.

Template Source → Lexer → Parser → Inheritance Resolver → Binder →
Whitespace Normalizer → Filter Pipeline Validator → Emitter → Program

Each stage takes the previous stage's artifact and either returns a new
one or raises a ``TemplateError`` with a span in the originating template.
The pipeline stops at the first error; nothing is retried.

A ``Compiler`` holds state for a single run only (parsed units, their
sources, memoized resolution). ``Environment`` creates one per call.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from kiln.compiler.binder import Binder
from kiln.compiler.emitter import Emitter
from kiln.compiler.escaping import FilterPipelineValidator
from kiln.compiler.inheritance import InheritanceResolver
from kiln.compiler.whitespace import WhitespaceNormalizer
from kiln.environment.config import escape_mode_for, mime_type_for
from kiln.environment.exceptions import TemplateError
from kiln.lexer import Lexer, decode_source
from kiln.parser import Parser

if TYPE_CHECKING:
    from kiln.environment.core import Environment
    from kiln.environment.loaders import TemplateSource
    from kiln.instructions import Program
    from kiln.nodes import Template
    from kiln.schema import ContextSchema

logger = logging.getLogger(__name__)


class Compiler:
    """Compile templates of one environment against one context schema.

    Args:
        env: Configuration, loader and filter registry.
        schema: Context schema shared by every unit of the run.

    Example:
        >>> compiler = Compiler(env, ContextSchema({"name": "str"}))
        >>> program = compiler.compile_source("Hello, {{ name }}!", "hello.txt")
    """

    __slots__ = ("_env", "_filters", "_resolver", "_schema", "_sources", "_units")

    def __init__(self, env: Environment, schema: ContextSchema):
        self._env = env
        self._schema = schema
        # Later registrations must not affect a run in progress
        self._filters = env.filters.snapshot()
        self._units: dict[str, Template] = {}
        self._sources: dict[str, str] = {}
        self._resolver = InheritanceResolver(self._load)

    # ─────────────────────────────────────────────────────────────────────────
    # Stages 1-2: source → Template
    # ─────────────────────────────────────────────────────────────────────────

    def _load(self, name: str) -> Template:
        """Loader lookup for the resolver: fetch, lex and parse ``name``."""
        unit = self._units.get(name)
        if unit is None:
            source, filename = self._env.get_source(name)
            unit = self.parse(source, name, filename)
        return unit

    def parse(self, source: TemplateSource, name: str, filename: str | None = None) -> Template:
        """Lex and parse one source into a Template Unit.

        Raises:
            EncodingError: Undecodable source.
            LexError: Unterminated construct or unexpected character.
            ParseError: Malformed template structure or expression.
        """
        text = decode_source(source, name)
        self._sources[name] = text
        tokens = Lexer(text, self._env.lexer_config, name).tokenize()
        unit = Parser(tokens, name=name, filename=filename, source=text).parse()
        self._units[name] = unit
        return unit

    # ─────────────────────────────────────────────────────────────────────────
    # Full pipeline
    # ─────────────────────────────────────────────────────────────────────────

    def compile(self, name: str) -> Program:
        """Compile the template the environment's loader knows as ``name``."""
        return self._run(lambda: self._load(name))

    def compile_source(self, source: TemplateSource, name: str) -> Program:
        """Compile a template given as source text."""
        return self._run(lambda: self.parse(source, name))

    def _run(self, load: Callable[[], Template]) -> Program:
        try:
            return self._compile(load())
        except TemplateError as exc:
            exc.with_context(source=self._sources.get(exc.template))
            raise

    def _compile(self, root: Template) -> Program:
        env = self._env
        logger.debug(f"Compiling {root.name}")

        unit = self._resolver.resolve(root)
        bound = Binder(self._schema, self._filters, self._resolver).bind(unit)

        normalizer = WhitespaceNormalizer(env.whitespace)
        template = normalizer.normalize_template(bound.template)
        macros = {
            macro_id: normalizer.normalize_macro(macro) for macro_id, macro in bound.macros.items()
        }

        escape = env.escape if env.escape is not None else escape_mode_for(root.name)
        validator = FilterPipelineValidator(escape)
        template = validator.validate_template(template)
        macros = {macro_id: validator.validate_macro(macro) for macro_id, macro in macros.items()}

        return Emitter().emit(template, macros, escape=escape, mime_type=mime_type_for(root.name))
