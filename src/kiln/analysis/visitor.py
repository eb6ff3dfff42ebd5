"""Shared visitor patterns for Kiln AST traversal.

Provides the child attribute lists plus ``iter_expressions``,
``iter_statements``, ``walk`` and ``map_bodies`` for generic traversal.
Used by the filter pipeline validator, the emitter and the tests.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from dataclasses import replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kiln.nodes import Node

# Shared attr lists for generic child traversal
CONTAINER_ATTRS = ("body", "elif_", "cases", "else_")
EXPR_ATTRS = (
    "test",
    "target",
    "expr",
    "value",
    "iter",
    "left",
    "right",
    "operand",
    "obj",
    "key",
    "if_true",
    "if_false",
    "default",
    "subject",
)
SEQUENCE_ATTRS = ("params", "items", "nodes", "comparators", "values", "patterns")


def _is_node(value: object) -> bool:
    return hasattr(value, "span") and hasattr(value, "lineno")


def _call_arguments(node: Node) -> Iterator[Node]:
    # Once bound, bound_args supersede the call shape recorded by the parser
    if node.bound_args:
        for argument in node.bound_args:
            yield argument.value
        return
    yield from node.args
    for _name, value in node.kwargs:
        yield value


def iter_expressions(node: Node) -> Iterator[Node]:
    """Direct expression children of ``node`` (not statement bodies)."""
    for attr in EXPR_ATTRS:
        child = getattr(node, attr, None)
        if child is not None and _is_node(child):
            yield child

    for attr in SEQUENCE_ATTRS:
        for child in getattr(node, attr, ()):
            if _is_node(child):
                yield child

    if type(node).__name__ == "Call":
        yield from _call_arguments(node)
        return

    yield from getattr(node, "args", ())
    for _name, value in getattr(node, "kwargs", ()):
        yield value


def iter_statements(node: Node) -> Iterator[Node]:
    """Direct statement children of ``node``, branches included."""
    for attr in CONTAINER_ATTRS:
        children = getattr(node, attr, None)
        if children is None:
            continue
        if isinstance(children, (list, tuple)):
            yield from children
        else:
            # A single Else node
            yield children


def walk(node: Node) -> Iterator[Node]:
    """Every node under ``node`` (itself included), depth first, pre-order.

    Included bodies are entered. ``filters`` lists are not: before the
    filter pipeline validator runs they repeat ``expr``.
    """
    yield node
    for child in iter_expressions(node):
        yield from walk(child)
    for child in iter_statements(node):
        yield from walk(child)


def map_bodies(node: Node, fn: Callable[[Sequence[Node]], Sequence[Node]]) -> Node:
    """Rebuild ``node`` with ``fn`` applied to each of its statement bodies.

    ``elif``, ``when`` and ``else`` branches are rebuilt through their own
    ``body``. Nodes without bodies are returned unchanged.
    """
    changes: dict[str, object] = {}
    body = getattr(node, "body", None)
    if body is not None and type(node).__name__ != "Raw":
        changes["body"] = tuple(fn(body))
    elif_ = getattr(node, "elif_", None)
    if elif_:
        changes["elif_"] = tuple(replace(branch, body=tuple(fn(branch.body))) for branch in elif_)
    cases = getattr(node, "cases", None)
    if cases:
        changes["cases"] = tuple(replace(case, body=tuple(fn(case.body))) for case in cases)
    else_ = getattr(node, "else_", None)
    if else_ is not None:
        changes["else_"] = replace(else_, body=tuple(fn(else_.body)))
    return replace(node, **changes) if changes else node
