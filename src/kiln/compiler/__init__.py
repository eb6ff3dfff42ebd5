"""Kiln compiler: resolved, bound and validated AST to instruction program.

Stages after parsing, in pipeline order:

- ``inheritance``: extends chains, blocks, ``super()``, includes
- ``binder``: names, filters and macro calls against scopes
- ``whitespace``: trim markers applied to literal text
- ``escaping``: escape modes and filter contracts
- ``emitter``: lowering to ``kiln.instructions``

``Compiler`` drives them for one run.
"""

from kiln.compiler.binder import Binder, BoundUnit
from kiln.compiler.core import Compiler
from kiln.compiler.emitter import Emitter
from kiln.compiler.escaping import FilterPipelineValidator
from kiln.compiler.inheritance import BlockTable, InheritanceResolver, MacroScope, ResolvedUnit
from kiln.compiler.scope import Binding, Scope
from kiln.compiler.whitespace import WhitespaceNormalizer, normalize_whitespace

__all__ = [
    "Binder",
    "Binding",
    "BlockTable",
    "BoundUnit",
    "Compiler",
    "Emitter",
    "FilterPipelineValidator",
    "InheritanceResolver",
    "MacroScope",
    "ResolvedUnit",
    "Scope",
    "WhitespaceNormalizer",
    "normalize_whitespace",
]
