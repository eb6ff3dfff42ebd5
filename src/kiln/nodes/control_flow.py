"""Control flow nodes for Kiln AST."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from kiln.nodes.base import NO_TRIM, Node, Trim
from kiln.nodes.expressions import Const, Expr

if TYPE_CHECKING:
    from kiln.compiler.scope import Binding


@dataclass(frozen=True, slots=True)
class Elif(Node):
    """{% elif cond %} branch of an If."""

    test: Expr
    body: Sequence[Node]
    trim: Trim = NO_TRIM


@dataclass(frozen=True, slots=True)
class Else(Node):
    """{% else %} branch of an If or For."""

    body: Sequence[Node]
    trim: Trim = NO_TRIM


@dataclass(frozen=True, slots=True)
class If(Node):
    """Conditional: {% if cond %}...{% elif cond %}...{% else %}...{% endif %}"""

    test: Expr
    body: Sequence[Node]
    elif_: Sequence[Elif] = ()
    else_: Else | None = None
    trim: Trim = NO_TRIM
    end_trim: Trim = NO_TRIM


@dataclass(frozen=True, slots=True)
class For(Node):
    """For loop: {% for x in items if cond %}...{% else %}...{% endfor %}

    ``loop`` is filled in by the binder with the implicit loop-metadata
    binding.
    """

    target: Expr
    iter: Expr
    body: Sequence[Node]
    test: Expr | None = None
    else_: Else | None = None
    trim: Trim = NO_TRIM
    end_trim: Trim = NO_TRIM
    loop: Binding | None = None


@dataclass(frozen=True, slots=True)
class Break(Node):
    """Leave the innermost loop: {% break %}"""

    trim: Trim = NO_TRIM


@dataclass(frozen=True, slots=True)
class Continue(Node):
    """Skip to the next item of the innermost loop: {% continue %}"""

    trim: Trim = NO_TRIM


@dataclass(frozen=True, slots=True)
class When(Node):
    """{% when "a", "b" %} arm of a Match. Patterns are literal constants."""

    patterns: Sequence[Const]
    body: Sequence[Node]
    trim: Trim = NO_TRIM


@dataclass(frozen=True, slots=True)
class Match(Node):
    """Value dispatch: {% match expr %}{% when 1 %}...{% else %}...{% endmatch %}

    The first arm with a pattern equal to the subject runs; ``else_``
    runs when none does.
    """

    subject: Expr
    cases: Sequence[When]
    else_: Else | None = None
    trim: Trim = NO_TRIM
    end_trim: Trim = NO_TRIM
