"""Instruction program: the compiler's output artifact.

A ``Program`` is an immutable, target-agnostic sequence of instructions
for a host code generator. Instructions execute in order and write text
to an output sink:

- ``EmitLiteral``: write literal text
- ``EmitExpr``: evaluate, run the filter chain, escape, write
- ``Branch``: ``if``/``elif``/``else`` (elif chains nest in ``else_``)
- ``Loop``: ``for`` with optional condition, ``else`` and loop metadata
- ``LoopControl``: ``break`` or ``continue`` of the innermost ``Loop``
- ``Switch``: ``match``; the first ``Case`` holding an equal value runs
- ``ApplyFilters``: run a body into a buffer, filter it, write the result
- ``BindLocal``: single-assignment ``let``
- ``CallMacro`` / ``DefineMacro``: macro invocation and hoisted definition

Expressions inside instructions are bound AST expressions: every ``Name``
carries its ``Binding`` so the host needs no name lookup.

``to_data()`` / ``to_json()`` give a canonical serialization; compiling
identical inputs yields byte-identical JSON.
"""

from __future__ import annotations

import json
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, fields
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from kiln.compiler.scope import Binding
    from kiln.environment.config import EscapeMode
    from kiln.nodes import Expr


@dataclass(frozen=True, slots=True)
class FilterCall:
    """One step of an output's filter chain."""

    name: str
    args: tuple[Expr, ...] = ()
    kwargs: tuple[tuple[str, Expr], ...] = ()


@dataclass(frozen=True, slots=True)
class EmitLiteral:
    value: str


@dataclass(frozen=True, slots=True)
class EmitExpr:
    """Write ``expr`` after applying ``filters`` left to right, then ``escape``."""

    expr: Expr
    filters: tuple[FilterCall, ...] = ()
    escape: EscapeMode | None = None


@dataclass(frozen=True, slots=True)
class Branch:
    condition: Expr
    then: tuple[Instruction, ...]
    else_: tuple[Instruction, ...] = ()


@dataclass(frozen=True, slots=True)
class Loop:
    """Iterate ``iterable``, binding ``target`` for each item.

    Attributes:
        target: Loop target (a bound Name or Tuple of Names).
        iterable: Bound iterable expression.
        condition: Optional item filter (``for x in xs if cond``).
        body: Instructions per item.
        else_: Instructions when no item passed.
        loop: Id of the implicit ``loop`` binding.
        meta: ``loop`` attributes the body reads, sorted. Hosts may skip
            computing the rest (``length`` needs the whole iterable).
    """

    target: Expr
    iterable: Expr
    condition: Expr | None
    body: tuple[Instruction, ...]
    else_: tuple[Instruction, ...] = ()
    loop: str | None = None
    meta: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class LoopControl:
    action: Literal["break", "continue"]


@dataclass(frozen=True, slots=True)
class Case:
    values: tuple[Expr, ...]
    body: tuple[Instruction, ...]


@dataclass(frozen=True, slots=True)
class Switch:
    """Run the first case holding a value equal to ``subject``, else ``default``.

    Case values are literal constants, unique across cases.
    """

    subject: Expr
    cases: tuple[Case, ...]
    default: tuple[Instruction, ...] = ()


@dataclass(frozen=True, slots=True)
class ApplyFilters:
    """Render ``body`` to a string, apply ``filters`` left to right, write it unescaped.

    Text and expressions in the body are escaped as usual when rendered.
    """

    filters: tuple[FilterCall, ...]
    body: tuple[Instruction, ...]


@dataclass(frozen=True, slots=True)
class BindLocal:
    """``let``: bind ``target`` (a bound Name or Tuple of Names) to ``value``."""

    target: Expr
    value: Expr


@dataclass(frozen=True, slots=True)
class CallMacro:
    """Invoke a hoisted macro with one argument per parameter, in order."""

    macro_id: str
    args: tuple[tuple[str, Expr], ...] = ()


@dataclass(frozen=True, slots=True)
class DefineMacro:
    macro_id: str
    name: str
    params: tuple[Binding, ...]
    body: tuple[Instruction, ...]


Instruction = (
    EmitLiteral
    | EmitExpr
    | Branch
    | Loop
    | LoopControl
    | Switch
    | ApplyFilters
    | BindLocal
    | CallMacro
    | DefineMacro
)


def nested_bodies(instruction: Instruction) -> Iterator[tuple[Instruction, ...]]:
    """Instruction sequences nested directly in ``instruction``, in execution order."""
    kind = type(instruction).__name__
    if kind == "Branch":
        yield instruction.then
        yield instruction.else_
    elif kind == "Loop":
        yield instruction.body
        yield instruction.else_
    elif kind == "Switch":
        for case in instruction.cases:
            yield case.body
        yield instruction.default
    elif kind in ("ApplyFilters", "DefineMacro"):
        yield instruction.body


@dataclass(frozen=True, slots=True)
class Program:
    """Compiled template.

    Attributes:
        name: Template name.
        instructions: Macro definitions first, then the template body.
        escape: Escape mode of the template.
        mime_type: MIME type inferred from the template name.
        size_hint: Total length of all literal text, in characters. Hosts
            can use it to pre-size output buffers.
    """

    name: str
    instructions: tuple[Instruction, ...]
    escape: EscapeMode
    mime_type: str
    size_hint: int = 0

    @property
    def macros(self) -> tuple[DefineMacro, ...]:
        return tuple(i for i in self.instructions if isinstance(i, DefineMacro))

    def to_data(self) -> dict[str, Any]:
        """Plain dict/list/scalar form of the program."""
        return {
            "name": self.name,
            "escape": self.escape.value,
            "mime_type": self.mime_type,
            "size_hint": self.size_hint,
            "instructions": [to_data(i) for i in self.instructions],
        }

    def to_json(self, *, indent: int | None = None) -> str:
        """Canonical JSON: sorted keys, no ASCII escaping of text."""
        return json.dumps(
            self.to_data(),
            sort_keys=True,
            ensure_ascii=False,
            indent=indent,
            separators=(",", ":") if indent is None else None,
        )


# Fields that carry no semantic content in the serialized form.
_SKIPPED_FIELDS = frozenset({"span", "spec", "trim", "end_trim"})


def to_data(value: Any) -> Any:
    """Serialize an instruction, expression or binding to plain data.

    Dataclasses become ``{"kind": ClassName, field: ...}``, bindings their
    id, name and type, enums their value.
    """
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Sequence):
        return [to_data(v) for v in value]

    kind = type(value).__name__
    if kind == "Binding":
        return {"id": value.id, "name": value.name, "type": value.type.describe()}

    data: dict[str, Any] = {"kind": kind}
    for f in fields(value):
        if f.name not in _SKIPPED_FIELDS:
            data[f.name] = to_data(getattr(value, f.name))
    return data
