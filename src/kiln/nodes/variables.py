"""Variable binding nodes for Kiln AST."""

from __future__ import annotations

from dataclasses import dataclass

from kiln.nodes.base import NO_TRIM, Node, Trim
from kiln.nodes.expressions import Expr


@dataclass(frozen=True, slots=True)
class Let(Node):
    """Single-assignment binding: {% let x = expr %} (``set`` is an alias)

    ``target`` is a Name or a Tuple of Names.
    """

    target: Expr
    value: Expr
    trim: Trim = NO_TRIM
