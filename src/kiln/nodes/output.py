"""Output and text nodes for Kiln AST."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from kiln.nodes.base import NO_TRIM, Node, Trim
from kiln.nodes.expressions import Expr, Filter

if TYPE_CHECKING:
    from kiln.environment.config import EscapeMode


@dataclass(frozen=True, slots=True)
class Output(Node):
    """Output expression: {{ expr }}

    The filter pipeline validator splits the outer filter chain off into
    ``filters`` and records the final ``escape`` mode.
    """

    expr: Expr
    trim: Trim = NO_TRIM
    escape: EscapeMode | None = None
    filters: Sequence[Filter] = ()


@dataclass(frozen=True, slots=True)
class Data(Node):
    """Literal text between template constructs."""

    value: str


@dataclass(frozen=True, slots=True)
class Raw(Node):
    """Raw block (no template processing): {% raw %}...{% endraw %}

    ``body`` holds at most one Data node with the verbatim content.
    """

    body: Sequence[Data]
    trim: Trim = NO_TRIM
    end_trim: Trim = NO_TRIM


@dataclass(frozen=True, slots=True)
class Comment(Node):
    """Comment: {# ... #}. Produces no output."""

    value: str
    trim: Trim = NO_TRIM


@dataclass(frozen=True, slots=True)
class FilterBlock(Node):
    """Filter the rendered body: {% filter upper | truncate(20) %}...{% endfilter %}

    ``expr`` is the chain applied to a ``BlockText`` root. As for
    ``Output``, the validator moves the chain into ``filters`` and leaves
    the root in ``expr``.
    """

    expr: Expr
    body: Sequence[Node]
    trim: Trim = NO_TRIM
    end_trim: Trim = NO_TRIM
    filters: Sequence[Filter] = ()
