"""Inheritance resolution: extends chains, block overrides, super() and includes.

Given a root Template Unit and a name -> Template lookup, the resolver
produces one flattened template:

1. Build the ``extends`` chain from the root to the final ancestor,
   tracking the names seen so far; a repeated name is a ``CycleError``.
2. Build the ``BlockTable``: for every block name, the overrides from
   most-derived to least-derived.
3. Walk the final ancestor's body (the skeleton). Every ``Block`` found
   is replaced by its rendering body, the most-derived override, with
   each ``super()`` inside replaced by the next-less-derived override's
   body (recursively). Nested blocks found in a rendered body are
   resolved the same way.
4. Every ``Include`` gets the included unit's own flattened body. The
   included unit is resolved with its own chain and block table, so its
   blocks never mix with the includer's.

The resolver also answers which macros are visible from a template
(``macro_scope``): the macros of its chain, of the units it includes, and
import aliases mapping to the imported units' scopes.

Trim markers of a resolved block combine the placement's outer edges
with the rendered override's inner edges, so whitespace control reads
the same as if the override text were written in place.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from kiln.environment.exceptions import CycleError, NoSuperBlockError, TemplateNotFoundError
from kiln.nodes import Block, Include, Macro, Template, Trim

if TYPE_CHECKING:
    from kiln._types import Span
    from kiln.nodes import Node, SuperCall

logger = logging.getLogger(__name__)

TemplateLookup = Callable[[str], Template]


@dataclass(frozen=True, slots=True)
class BlockOverride:
    """One definition of a block in one template of the chain."""

    template: str
    block: Block
    super_calls: tuple[SuperCall, ...] = ()


class BlockTable:
    """Block name -> overrides, most-derived first.

    Example:
        >>> table = BlockTable([child, base])
        >>> [o.template for o in table["title"]]
        ['child.html', 'base.html']
    """

    __slots__ = ("_overrides",)

    def __init__(self, chain: Sequence[Template]):
        overrides: dict[str, list[BlockOverride]] = {}
        for unit in chain:
            for name, block in unit.blocks.items():
                overrides.setdefault(name, []).append(
                    BlockOverride(
                        template=unit.name,
                        block=block,
                        super_calls=tuple(_find_super_calls(block.body)),
                    )
                )
        self._overrides = {name: tuple(entries) for name, entries in overrides.items()}

    def __getitem__(self, name: str) -> tuple[BlockOverride, ...]:
        return self._overrides[name]

    def __contains__(self, name: object) -> bool:
        return name in self._overrides

    def __iter__(self) -> Iterator[str]:
        return iter(self._overrides)

    def __len__(self) -> int:
        return len(self._overrides)

    def rendering(self, name: str) -> BlockOverride:
        """The override that renders: the most-derived one."""
        return self._overrides[name][0]


@dataclass(frozen=True, slots=True)
class MacroScope:
    """Macros visible from one template.

    Attributes:
        template: Template the scope belongs to.
        macros: Name -> macro definition (own, chain and included units).
        imports: Import alias -> the imported template's scope.
    """

    template: str
    macros: Mapping[str, Macro] = field(default_factory=dict)
    imports: Mapping[str, MacroScope] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ResolvedUnit:
    """Result of inheritance resolution for one root template.

    Attributes:
        template: The flattened template. Its body is the final ancestor's
            skeleton with blocks and includes resolved.
        chain: Template names from the root to the final ancestor.
        skeleton: Name of the template that supplied the top-level body.
        block_table: Overrides per block name.
        macro_scope: Macros visible from the root template.
    """

    template: Template
    chain: tuple[str, ...]
    skeleton: str
    block_table: BlockTable
    macro_scope: MacroScope


@dataclass(slots=True)
class _Frame:
    """Where the flattening walk currently is."""

    template: str
    table: BlockTable | None
    block: str | None = None
    level: int = 0
    active_blocks: tuple[str, ...] = ()


class InheritanceResolver:
    """Resolve inheritance and includes for one compilation run.

    All state is per-run: resolved units and macro scopes are memoized by
    template name so a partial included twice is resolved once.

    Args:
        lookup: Synchronous name -> parsed Template lookup. Raises
            ``TemplateNotFoundError`` for unknown names.
    """

    __slots__ = ("_active", "_lookup", "_macros", "_resolved", "_scope_active", "_scopes", "_units")

    def __init__(self, lookup: TemplateLookup):
        self._lookup = lookup
        self._units: dict[str, Template] = {}
        self._resolved: dict[str, ResolvedUnit] = {}
        self._scopes: dict[str, MacroScope] = {}
        self._macros: dict[str, Macro] = {}
        self._active: list[str] = []
        self._scope_active: list[str] = []

    # ─────────────────────────────────────────────────────────────────────────
    # Loading
    # ─────────────────────────────────────────────────────────────────────────

    def _load(
        self, name: str, *, referrer: str | None = None, span: Span | None = None
    ) -> Template:
        unit = self._units.get(name)
        if unit is not None:
            return unit
        try:
            unit = self._lookup(name)
        except TemplateNotFoundError as exc:
            if referrer is None:
                raise
            raise TemplateNotFoundError(
                exc.message, span=span, template=referrer, suggestion=exc.suggestion
            ) from exc
        self._units[name] = unit
        return unit

    def chain(self, root: Template) -> list[Template]:
        """The ``extends`` chain from ``root`` to its final ancestor.

        Raises:
            CycleError: If a template name reappears in the chain.
        """
        chain = [root]
        names = [root.name]
        current = root
        while current.extends is not None:
            parent_name = current.extends.template
            if parent_name in names:
                raise CycleError(
                    [*names, parent_name],
                    relation="extends",
                    span=current.extends.span,
                    template=current.name,
                )
            parent = self._load(parent_name, referrer=current.name, span=current.extends.span)
            chain.append(parent)
            names.append(parent_name)
            current = parent
        return chain

    # ─────────────────────────────────────────────────────────────────────────
    # Flattening
    # ─────────────────────────────────────────────────────────────────────────

    def resolve(self, root: Template) -> ResolvedUnit:
        """Flatten ``root`` against its chain and splice its includes."""
        self._units.setdefault(root.name, root)
        cached = self._resolved.get(root.name)
        if cached is not None:
            return cached

        chain = self.chain(root)
        names = tuple(unit.name for unit in chain)
        for name in names:
            if name in self._active:
                start = self._active.index(name)
                raise CycleError([*self._active[start:], name], relation="include")

        logger.debug(f"Resolving {root.name}: chain {' -> '.join(names)}")
        self._active.extend(names)
        try:
            table = BlockTable(chain)
            _check_super_calls(table)
            skeleton = chain[-1]
            body = self._flatten(skeleton.body, _Frame(template=skeleton.name, table=table))
        finally:
            del self._active[-len(names) :]

        placed = self._resolved_block_map(body)
        flattened = Template(
            span=root.span,
            name=root.name,
            body=body,
            extends=None,
            blocks={name: placed[name] for name in table if name in placed},
            macros=dict(self.macro_scope(root.name).macros),
            imports=tuple(imp for unit in reversed(chain) for imp in unit.imports),
        )
        resolved = ResolvedUnit(
            template=flattened,
            chain=names,
            skeleton=skeleton.name,
            block_table=table,
            macro_scope=self.macro_scope(root.name),
        )
        self._resolved[root.name] = resolved
        return resolved

    def _resolved_block_map(self, body: Sequence[Node]) -> dict[str, Block]:
        found: dict[str, Block] = {}
        for node in _walk(body):
            if type(node).__name__ == "Block":
                found.setdefault(node.name, node)
        return found

    def _flatten(self, nodes: Sequence[Node], frame: _Frame) -> tuple[Node, ...]:
        return tuple(self._flatten_node(node, frame) for node in nodes)

    def _flatten_node(self, node: Node, frame: _Frame) -> Node:
        node_type = type(node).__name__

        if node_type == "Block":
            return self._render_block(node, frame)
        if node_type == "SuperCall":
            return self._render_super(node, frame)
        if node_type == "Include":
            return self._splice_include(node, frame)
        if node_type == "If":
            return replace(
                node,
                body=self._flatten(node.body, frame),
                elif_=tuple(replace(b, body=self._flatten(b.body, frame)) for b in node.elif_),
                else_=(
                    replace(node.else_, body=self._flatten(node.else_.body, frame))
                    if node.else_ is not None
                    else None
                ),
            )
        if node_type == "For":
            return replace(
                node,
                body=self._flatten(node.body, frame),
                else_=(
                    replace(node.else_, body=self._flatten(node.else_.body, frame))
                    if node.else_ is not None
                    else None
                ),
            )
        if node_type == "Match":
            return replace(
                node,
                cases=tuple(replace(c, body=self._flatten(c.body, frame)) for c in node.cases),
                else_=(
                    replace(node.else_, body=self._flatten(node.else_.body, frame))
                    if node.else_ is not None
                    else None
                ),
            )
        if node_type == "FilterBlock":
            return replace(node, body=self._flatten(node.body, frame))
        return node

    def _render_block(self, placement: Block, frame: _Frame) -> Block:
        """Replace a block placement with its most-derived override."""
        name = placement.name
        if name in frame.active_blocks:
            raise CycleError(
                [*frame.active_blocks, name],
                relation="block",
                span=placement.span,
                template=frame.template,
            )
        override = frame.table.rendering(name)
        inner = _Frame(
            template=override.template,
            table=frame.table,
            block=name,
            level=0,
            active_blocks=(*frame.active_blocks, name),
        )
        return Block(
            span=placement.span,
            name=name,
            body=self._flatten(override.block.body, inner),
            trim=Trim(placement.trim.left, override.block.trim.right),
            end_trim=Trim(override.block.end_trim.left, placement.end_trim.right),
            origin=override.template,
        )

    def _render_super(self, call: SuperCall, frame: _Frame) -> Block:
        """Replace ``{{ super() }}`` with the next-less-derived override."""
        if frame.block is None or frame.table is None:
            raise NoSuperBlockError(None, span=call.span, template=frame.template)

        overrides = frame.table[frame.block]
        level = frame.level + 1
        if level >= len(overrides):
            raise NoSuperBlockError(frame.block, span=call.span, template=frame.template)

        parent = overrides[level]
        logger.debug(
            f"super() in block '{frame.block}' of {frame.template} -> {parent.template}"
        )
        inner = _Frame(
            template=parent.template,
            table=frame.table,
            block=frame.block,
            level=level,
            active_blocks=frame.active_blocks,
        )
        return Block(
            span=call.span,
            name=frame.block,
            body=self._flatten(parent.block.body, inner),
            trim=Trim(call.trim.left, parent.block.trim.right),
            end_trim=Trim(parent.block.end_trim.left, call.trim.right),
            origin=parent.template,
        )

    def _splice_include(self, include: Include, frame: _Frame) -> Include:
        name = include.template
        if name in self._active:
            start = self._active.index(name)
            raise CycleError(
                [*self._active[start:], name],
                relation="include",
                span=include.span,
                template=frame.template,
            )
        unit = self._load(name, referrer=frame.template, span=include.span)
        resolved = self.resolve(unit)
        logger.debug(f"Included {name} into {frame.template}")
        return replace(include, body=resolved.template.body, origin=resolved.skeleton)

    def resolve_macro(self, macro: Macro) -> Macro:
        """Macro with includes spliced into its body.

        Raises:
            NoSuperBlockError: For ``super()`` inside a macro body.
        """
        macro_id = macro.macro_id
        cached = self._macros.get(macro_id)
        if cached is None:
            frame = _Frame(template=macro.template or "<template>", table=None)
            cached = replace(macro, body=self._flatten(macro.body, frame))
            self._macros[macro_id] = cached
        return cached

    # ─────────────────────────────────────────────────────────────────────────
    # Macro visibility
    # ─────────────────────────────────────────────────────────────────────────

    def macro_scope(self, name: str, *, relation: str = "import") -> MacroScope:
        """Macros and import scopes visible from template ``name``.

        Chain members are merged least-derived first, so more-derived
        definitions win; within one template, its own macros win over
        macros of the units it includes.
        """
        cached = self._scopes.get(name)
        if cached is not None:
            return cached
        if name in self._scope_active:
            start = self._scope_active.index(name)
            raise CycleError([*self._scope_active[start:], name], relation=relation)

        self._scope_active.append(name)
        try:
            chain = self.chain(self._load(name))
            macros: dict[str, Macro] = {}
            imports: dict[str, MacroScope] = {}
            for unit in reversed(chain):
                for include in _find_includes(unit.body):
                    self._load(include.template, referrer=unit.name, span=include.span)
                    included = self.macro_scope(include.template, relation="include")
                    macros.update(included.macros)
                for imp in unit.imports:
                    self._load(imp.template, referrer=unit.name, span=imp.span)
                    imports[imp.alias] = self.macro_scope(imp.template, relation="import")
                macros.update(unit.macros)
        finally:
            self._scope_active.pop()

        scope = MacroScope(template=name, macros=macros, imports=imports)
        self._scopes[name] = scope
        return scope


def _children(node: Node) -> Iterator[Node]:
    node_type = type(node).__name__
    if node_type in ("If", "For", "Block", "Macro", "Elif", "Else", "When", "FilterBlock"):
        yield from node.body
    if node_type == "If":
        yield from node.elif_
    if node_type == "Match":
        yield from node.cases
    if node_type in ("If", "For", "Match") and node.else_ is not None:
        yield node.else_


def _walk(nodes: Sequence[Node], *, into_blocks: bool = True) -> Iterator[Node]:
    """Every statement node in ``nodes``, depth first, not entering includes."""
    for node in nodes:
        yield node
        if into_blocks or type(node).__name__ != "Block":
            yield from _walk(tuple(_children(node)), into_blocks=into_blocks)


def _find_super_calls(nodes: Sequence[Node]) -> Iterator[SuperCall]:
    for node in _walk(nodes, into_blocks=False):
        if type(node).__name__ == "SuperCall":
            yield node


def _check_super_calls(table: BlockTable) -> None:
    """Every ``super()`` needs a less-derived override, placed or not.

    Raises:
        NoSuperBlockError: For the first override whose ``super()`` has no
            ancestor definition to refer to.
    """
    for name in table:
        overrides = table[name]
        for level, override in enumerate(overrides):
            if override.super_calls and level + 1 >= len(overrides):
                raise NoSuperBlockError(
                    name, span=override.super_calls[0].span, template=override.template
                )


def _find_includes(nodes: Sequence[Node]) -> Iterator[Include]:
    for node in _walk(nodes):
        if type(node).__name__ == "Include":
            yield node
