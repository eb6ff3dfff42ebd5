"""Whitespace normalizer: apply trim markers to adjacent literal text.

Seam rule:
    Every ``Data`` node is trimmed on its own, at both edges. The leading
    edge follows the right marker of the tag just before it; the trailing
    edge follows the left marker of the tag just after it. Leading trim is
    applied first, trailing trim on what remains. An edge with no tag next
    to it (template start or end, the edges of an included body, another
    ``Data`` node) is never trimmed. Data that ends up empty is dropped.

A tag edge without a marker uses the configured default mode. After
normalization every tag carries ``PRESERVE`` markers, which makes a second
pass a no-op.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import replace
from typing import TYPE_CHECKING

from kiln._types import WhitespaceMode
from kiln.nodes import PRESERVED

if TYPE_CHECKING:
    from kiln.nodes import (
        Block,
        FilterBlock,
        For,
        If,
        Include,
        Macro,
        Match,
        Node,
        Raw,
        Template,
        Trim,
    )

logger = logging.getLogger(__name__)

_NO_TAG = WhitespaceMode.PRESERVE


def trim_start(text: str, mode: WhitespaceMode) -> str:
    """Trim the leading edge of ``text`` (the text follows a tag)."""
    if mode is WhitespaceMode.SUPPRESS:
        return text.lstrip()
    if mode is WhitespaceMode.MINIMIZE:
        text = text.lstrip(" \t")
        if text.startswith("\r\n"):
            return text[2:]
        if text.startswith("\n"):
            return text[1:]
    return text


def trim_end(text: str, mode: WhitespaceMode) -> str:
    """Trim the trailing edge of ``text`` (the text precedes a tag)."""
    if mode is WhitespaceMode.SUPPRESS:
        return text.rstrip()
    if mode is WhitespaceMode.MINIMIZE:
        text = text.rstrip(" \t")
        if text.endswith("\r\n"):
            return text[:-2]
        if text.endswith("\n"):
            return text[:-1]
    return text


class WhitespaceNormalizer:
    """Apply trim markers over a bound tree.

    Args:
        default: Mode for tag edges written without a marker.

    Example:
        >>> normalizer = WhitespaceNormalizer(WhitespaceMode.SUPPRESS)
        >>> normalizer.normalize_template(template)
    """

    __slots__ = ("_containers", "default")

    def __init__(self, default: WhitespaceMode = WhitespaceMode.PRESERVE):
        self.default = default
        self._containers: dict[str, Callable[[Node], Node]] = {
            "If": self._normalize_if,
            "For": self._normalize_for,
            "Match": self._normalize_match,
            "FilterBlock": self._normalize_block,
            "Block": self._normalize_block,
            "Macro": self._normalize_block,
            "Raw": self._normalize_block,
            "Include": self._normalize_include,
        }

    def _mode(self, marker: WhitespaceMode | None) -> WhitespaceMode:
        return self.default if marker is None else marker

    # ─────────────────────────────────────────────────────────────────────────
    # Entry points
    # ─────────────────────────────────────────────────────────────────────────

    def normalize_template(self, template: Template) -> Template:
        body = self.normalize(template.body)
        logger.debug(
            f"Normalized whitespace in {template.name}: "
            f"{len(template.body)} -> {len(body)} top-level node(s)"
        )
        return replace(template, body=body)

    def normalize_macro(self, macro: Macro) -> Macro:
        return self._normalize_block(macro)

    def normalize(
        self,
        nodes: Sequence[Node],
        leading: WhitespaceMode = _NO_TAG,
        trailing: WhitespaceMode = _NO_TAG,
    ) -> tuple[Node, ...]:
        """Normalize one sibling sequence.

        Args:
            nodes: The sequence.
            leading: Resolved marker of the enclosing tag before ``nodes``.
            trailing: Resolved marker of the enclosing tag after ``nodes``.
        """
        out: list[Node] = []
        last = len(nodes) - 1
        for i, node in enumerate(nodes):
            if type(node).__name__ != "Data":
                out.append(self._normalize_node(node))
                continue

            before = leading if i == 0 else self._right_edge(nodes[i - 1])
            after = trailing if i == last else self._left_edge(nodes[i + 1])
            value = trim_end(trim_start(node.value, before), after)
            if not value:
                continue
            out.append(node if value == node.value else replace(node, value=value))
        return tuple(out)

    # ─────────────────────────────────────────────────────────────────────────
    # Tag edges
    # ─────────────────────────────────────────────────────────────────────────

    def _left_edge(self, node: Node) -> WhitespaceMode:
        """Marker of ``node``'s first tag, facing the text before it."""
        trim = getattr(node, "trim", None)
        if trim is None:
            return _NO_TAG
        return self._mode(trim.left)

    def _right_edge(self, node: Node) -> WhitespaceMode:
        """Marker of ``node``'s last tag, facing the text after it."""
        trim = getattr(node, "end_trim", None) or getattr(node, "trim", None)
        if trim is None:
            return _NO_TAG
        return self._mode(trim.right)

    # ─────────────────────────────────────────────────────────────────────────
    # Containers
    # ─────────────────────────────────────────────────────────────────────────

    def _normalize_node(self, node: Node) -> Node:
        handler = self._containers.get(type(node).__name__)
        if handler is not None:
            return handler(node)
        if hasattr(node, "trim"):
            return replace(node, trim=PRESERVED)
        return node

    def _normalize_body(
        self, body: Sequence[Node], opening: Trim, closing: Trim
    ) -> tuple[Node, ...]:
        return self.normalize(body, self._mode(opening.right), self._mode(closing.left))

    def _normalize_if(self, node: If) -> If:
        # Tags in source order: if, elif..., else, endif
        heads: list[Trim] = [node.trim, *(branch.trim for branch in node.elif_)]
        if node.else_ is not None:
            heads.append(node.else_.trim)
        closers = [*heads[1:], node.end_trim]

        body = self._normalize_body(node.body, heads[0], closers[0])
        elif_ = tuple(
            replace(
                branch,
                body=self._normalize_body(branch.body, branch.trim, closer),
                trim=PRESERVED,
            )
            for branch, closer in zip(node.elif_, closers[1:], strict=False)
        )
        else_ = None
        if node.else_ is not None:
            else_ = replace(
                node.else_,
                body=self._normalize_body(node.else_.body, node.else_.trim, node.end_trim),
                trim=PRESERVED,
            )
        return replace(
            node, body=body, elif_=elif_, else_=else_, trim=PRESERVED, end_trim=PRESERVED
        )

    def _normalize_for(self, node: For) -> For:
        body_closer = node.else_.trim if node.else_ is not None else node.end_trim
        body = self._normalize_body(node.body, node.trim, body_closer)
        else_ = None
        if node.else_ is not None:
            else_ = replace(
                node.else_,
                body=self._normalize_body(node.else_.body, node.else_.trim, node.end_trim),
                trim=PRESERVED,
            )
        return replace(node, body=body, else_=else_, trim=PRESERVED, end_trim=PRESERVED)

    def _normalize_match(self, node: Match) -> Match:
        # Arm tags in source order: when..., else, endmatch
        heads: list[Trim] = [case.trim for case in node.cases]
        if node.else_ is not None:
            heads.append(node.else_.trim)
        closers = [*heads[1:], node.end_trim]

        cases = tuple(
            replace(case, body=self._normalize_body(case.body, case.trim, closer), trim=PRESERVED)
            for case, closer in zip(node.cases, closers, strict=False)
        )
        else_ = None
        if node.else_ is not None:
            else_ = replace(
                node.else_,
                body=self._normalize_body(node.else_.body, node.else_.trim, node.end_trim),
                trim=PRESERVED,
            )
        return replace(node, cases=cases, else_=else_, trim=PRESERVED, end_trim=PRESERVED)

    def _normalize_block(self, node: Block | FilterBlock | Macro | Raw) -> Node:
        body = self._normalize_body(node.body, node.trim, node.end_trim)
        return replace(node, body=body, trim=PRESERVED, end_trim=PRESERVED)

    def _normalize_include(self, node: Include) -> Include:
        # The included body is trimmed by its own tags; its edges stay as written
        return replace(node, body=self.normalize(node.body), trim=PRESERVED)


def normalize_whitespace(
    nodes: Sequence[Node],
    default: WhitespaceMode = WhitespaceMode.PRESERVE,
) -> tuple[Node, ...]:
    """Normalize a top-level node sequence with ``default`` for unmarked edges."""
    return WhitespaceNormalizer(default).normalize(nodes)
