"""Template structure nodes for Kiln AST."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from kiln.nodes.base import NO_TRIM, Node, Trim

if TYPE_CHECKING:
    from kiln.nodes.functions import Macro


@dataclass(frozen=True, slots=True)
class Extends(Node):
    """Template inheritance: {% extends "base.html" %}"""

    template: str
    trim: Trim = NO_TRIM


@dataclass(frozen=True, slots=True)
class Block(Node):
    """Named block for inheritance: {% block name %}...{% endblock %}

    After inheritance resolution ``body`` holds the resolved rendering body
    and ``origin`` names the template that body came from.
    """

    name: str
    body: Sequence[Node]
    trim: Trim = NO_TRIM
    end_trim: Trim = NO_TRIM
    origin: str | None = None


@dataclass(frozen=True, slots=True)
class Include(Node):
    """Include another template: {% include "partial.html" %}

    ``body`` is empty until the inheritance resolver splices in the
    included template's resolved body; ``origin`` then names the template
    that supplied the body's top-level layout (the included template, or
    the last ancestor it extends).
    """

    template: str
    trim: Trim = NO_TRIM
    body: Sequence[Node] = ()
    origin: str | None = None


@dataclass(frozen=True, slots=True)
class Import(Node):
    """Import macros under a scope name: {% import "macros.html" as m %}"""

    template: str
    alias: str
    trim: Trim = NO_TRIM


@dataclass(frozen=True, slots=True)
class Template(Node):
    """Root node representing one Template Unit.

    Attributes:
        name: Template name the unit was loaded under.
        body: Top-level nodes.
        extends: The unit's ``extends`` tag, if any.
        blocks: Every block defined in the unit (including nested ones).
        macros: Every macro defined in the unit.
        imports: ``import`` tags, in source order.
    """

    name: str
    body: Sequence[Node]
    extends: Extends | None = None
    blocks: Mapping[str, Block] = field(default_factory=dict)
    macros: Mapping[str, Macro] = field(default_factory=dict)
    imports: Sequence[Import] = ()
