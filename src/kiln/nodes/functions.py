"""Macro definition and call nodes for Kiln AST."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from kiln.nodes.base import NO_TRIM, Node, Trim
from kiln.nodes.expressions import Expr

if TYPE_CHECKING:
    from kiln.compiler.scope import Binding


@dataclass(frozen=True, slots=True)
class MacroParam(Node):
    """A single parameter in a {% macro %} with optional default."""

    name: str
    default: Expr | None = None
    ref: Binding | None = None


@dataclass(frozen=True, slots=True)
class Macro(Node):
    """Macro definition: {% macro name(params) %}...{% endmacro %}"""

    name: str
    params: Sequence[MacroParam]
    body: Sequence[Node]
    trim: Trim = NO_TRIM
    end_trim: Trim = NO_TRIM
    template: str | None = None

    @property
    def param_names(self) -> tuple[str, ...]:
        return tuple(p.name for p in self.params)

    @property
    def macro_id(self) -> str:
        """Stable identifier, unique across templates."""
        return f"{self.template or '<template>'}::{self.name}"


@dataclass(frozen=True, slots=True)
class BoundArgument:
    """Argument value matched to a macro parameter by the binder."""

    param: str
    value: Expr
    from_default: bool = False


@dataclass(frozen=True, slots=True)
class Call(Node):
    """Macro call: {% call name(args) %}, {{ name(args) }} or {{ scope.name(args) }}

    The parser only records the call shape; the binder fills in
    ``macro_id`` and ``bound_args``.
    """

    name: str
    scope: str | None = None
    args: Sequence[Expr] = ()
    kwargs: Sequence[tuple[str, Expr]] = ()
    trim: Trim = NO_TRIM
    macro_id: str | None = None
    bound_args: Sequence[BoundArgument] = ()

    @property
    def qualified_name(self) -> str:
        return f"{self.scope}.{self.name}" if self.scope else self.name


@dataclass(frozen=True, slots=True)
class SuperCall(Node):
    """Parent block content: {{ super() }}"""

    trim: Trim = NO_TRIM
