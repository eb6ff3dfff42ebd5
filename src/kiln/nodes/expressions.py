"""Expression nodes for Kiln AST."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from kiln.nodes.base import Node

if TYPE_CHECKING:
    from kiln.compiler.scope import Binding
    from kiln.environment.filters import FilterSpec


@dataclass(frozen=True, slots=True)
class Expr(Node):
    """Base class for expressions."""


@dataclass(frozen=True, slots=True)
class Const(Expr):
    """Constant value: string, number, boolean, None."""

    value: str | int | float | bool | None


@dataclass(frozen=True, slots=True)
class Name(Expr):
    """Variable reference: {{ user }}

    ``ref`` is filled in by the binder with the resolved binding.
    """

    name: str
    ref: Binding | None = None


@dataclass(frozen=True, slots=True)
class Tuple(Expr):
    """Tuple expression: (a, b, c), also used for unpacking targets."""

    items: Sequence[Expr]


@dataclass(frozen=True, slots=True)
class List(Expr):
    """List expression: [a, b, c]"""

    items: Sequence[Expr]


@dataclass(frozen=True, slots=True)
class Getattr(Expr):
    """Attribute access: obj.attr"""

    obj: Expr
    attr: str


@dataclass(frozen=True, slots=True)
class Getitem(Expr):
    """Subscript access: obj[key]"""

    obj: Expr
    key: Expr


@dataclass(frozen=True, slots=True)
class Filter(Expr):
    """Filter application: expr | filter(args, name=value)

    ``spec`` is filled in by the binder with the registry entry.
    """

    value: Expr
    name: str
    args: Sequence[Expr] = ()
    kwargs: Sequence[tuple[str, Expr]] = ()
    spec: FilterSpec | None = None


@dataclass(frozen=True, slots=True)
class BlockText(Expr):
    """Text rendered by the body of the enclosing ``{% filter %}`` block.

    Root of a filter block's chain: ``{% filter upper | trim %}`` parses as
    ``BlockText | upper | trim``.
    """


@dataclass(frozen=True, slots=True)
class BinOp(Expr):
    """Binary arithmetic: left op right"""

    op: Literal["+", "-", "*", "/", "//", "%"]
    left: Expr
    right: Expr


@dataclass(frozen=True, slots=True)
class UnaryOp(Expr):
    """Unary operation: not x, -x, +x"""

    op: Literal["not", "-", "+"]
    operand: Expr


@dataclass(frozen=True, slots=True)
class Compare(Expr):
    """Comparison: left op1 right1 op2 right2 ..."""

    left: Expr
    ops: Sequence[str]
    comparators: Sequence[Expr]


@dataclass(frozen=True, slots=True)
class BoolOp(Expr):
    """Boolean operation: expr1 and/or expr2"""

    op: Literal["and", "or"]
    values: Sequence[Expr]


@dataclass(frozen=True, slots=True)
class Concat(Expr):
    """String concatenation: a ~ b ~ c"""

    nodes: Sequence[Expr]


@dataclass(frozen=True, slots=True)
class CondExpr(Expr):
    """Conditional expression: a if cond else b"""

    test: Expr
    if_true: Expr
    if_false: Expr


AnyExpr = (
    Const | Name | Tuple | List | Getattr | Getitem | Filter
    | BinOp | UnaryOp | Compare | BoolOp | Concat | CondExpr | BlockText
)
