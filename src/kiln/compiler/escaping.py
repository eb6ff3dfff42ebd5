"""Escaping and filter pipeline validation.

For every ``{{ ... }}`` output this pass records:

- ``Output.filters``: the outer filter chain, left to right
- ``Output.expr``: the unfiltered root expression
- ``Output.escape``: the unit's escape mode, or ``none`` when a filter in
  the chain marks its result safe

A ``{% filter %}`` block is split the same way into ``FilterBlock.filters``
and its ``BlockText`` root. The body is escaped as usual; the filtered
result is written as is.

Every ``Filter`` anywhere in the tree (outputs, conditions, loop
iterables, ``let`` values, macro arguments and defaults) is checked
against its ``FilterSpec``: argument count and keyword names, then the
statically inferred input type.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import replace
from typing import TYPE_CHECKING

from kiln.analysis.visitor import iter_expressions, map_bodies
from kiln.compiler.inference import infer_type
from kiln.environment.config import EscapeMode
from kiln.environment.exceptions import FilterError, FilterTypeError, TemplateError

if TYPE_CHECKING:
    from kiln.nodes import Filter, FilterBlock, Macro, Node, Output, Template

logger = logging.getLogger(__name__)


def split_filters(expr: Node) -> tuple[Node, tuple[Filter, ...]]:
    """Split ``x | a | b(1)`` into ``x`` and ``(a, b(1))``."""
    chain: list[Filter] = []
    while type(expr).__name__ == "Filter":
        chain.append(expr)
        expr = expr.value
    chain.reverse()
    return expr, tuple(chain)


class FilterPipelineValidator:
    """Annotate outputs with escape mode and filter chain; check every filter.

    Args:
        escape: Escape mode of the unit being compiled.
    """

    __slots__ = ("escape", "_outputs")

    def __init__(self, escape: EscapeMode):
        self.escape = escape
        self._outputs = 0

    def validate_template(self, template: Template) -> Template:
        self._outputs = 0
        body = self._validate_body(template.body)
        logger.debug(
            f"Validated filter pipelines in {template.name}: {self._outputs} output(s), "
            f"escape={self.escape.value}"
        )
        return replace(template, body=body)

    def validate_macro(self, macro: Macro) -> Macro:
        with self._in_template(macro.template):
            for param in macro.params:
                if param.default is not None:
                    self._check_expr(param.default)
            return replace(macro, body=self._validate_body(macro.body))

    @contextmanager
    def _in_template(self, name: str | None) -> Iterator[None]:
        try:
            yield
        except TemplateError as exc:
            exc.with_context(template=name)
            raise

    # ─────────────────────────────────────────────────────────────────────────
    # Statements
    # ─────────────────────────────────────────────────────────────────────────

    def _validate_body(self, nodes: Sequence[Node]) -> tuple[Node, ...]:
        return tuple(self._validate_node(node) for node in nodes)

    def _validate_node(self, node: Node) -> Node:
        node_type = type(node).__name__
        if node_type == "Output":
            return self._validate_output(node)
        if node_type == "FilterBlock":
            return self._validate_filter_block(node)
        if node_type == "Macro":
            # Validated once per definition through validate_macro
            return node

        for expr in iter_expressions(node):
            self._check_expr(expr)

        if node_type in ("Block", "Include"):
            with self._in_template(node.origin):
                return map_bodies(node, self._validate_body)
        return map_bodies(node, self._validate_body)

    def _validate_output(self, node: Output) -> Output:
        self._outputs += 1
        self._check_expr(node.expr)
        root, chain = split_filters(node.expr)
        escape = self.escape
        if any(f.spec is not None and f.spec.marks_safe for f in chain):
            escape = EscapeMode.NONE
        return replace(node, expr=root, filters=chain, escape=escape)

    def _validate_filter_block(self, node: FilterBlock) -> FilterBlock:
        self._check_expr(node.expr)
        root, chain = split_filters(node.expr)
        return replace(node, expr=root, filters=chain, body=self._validate_body(node.body))

    # ─────────────────────────────────────────────────────────────────────────
    # Filters
    # ─────────────────────────────────────────────────────────────────────────

    def _check_expr(self, expr: Node) -> None:
        """Check every filter under ``expr``, innermost first."""
        for child in iter_expressions(expr):
            self._check_expr(child)
        if type(expr).__name__ == "Filter":
            self._check_filter(expr)

    def _check_filter(self, node: Filter) -> None:
        """Check one application against its contract.

        Raises:
            FilterError: Too many positional arguments, an unknown or
                repeated keyword, or a missing required argument.
            FilterTypeError: The inferred input type is not accepted.
        """
        spec = node.spec
        if spec is None:
            return
        params = spec.params

        if len(node.args) > len(params):
            raise FilterError(
                node.name,
                f"takes at most {len(params)} argument(s), got {len(node.args)}",
                span=node.span,
            )

        given = set(params[: len(node.args)])
        for key, value in node.kwargs:
            if key not in params:
                accepted = ", ".join(params) if params else "no arguments"
                raise FilterError(
                    node.name,
                    f"unexpected keyword argument '{key}'",
                    span=value.span,
                    suggestion=f"'{node.name}' accepts: {accepted}",
                )
            if key in given:
                raise FilterError(
                    node.name, f"got multiple values for argument '{key}'", span=value.span
                )
            given.add(key)

        missing = [name for name in params[: spec.required] if name not in given]
        if missing:
            raise FilterError(
                node.name,
                f"missing required argument(s): {', '.join(missing)}",
                span=node.span,
            )

        input_type = infer_type(node.value)
        if not spec.accepts_type(input_type):
            raise FilterTypeError(
                node.name, spec.describe_accepts(), input_type.describe(), span=node.span
            )
