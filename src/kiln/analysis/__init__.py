"""Generic AST traversal helpers shared by compiler passes and tools."""

from kiln.analysis.visitor import (
    iter_expressions,
    iter_statements,
    map_bodies,
    walk,
)

__all__ = ["iter_expressions", "iter_statements", "map_bodies", "walk"]
