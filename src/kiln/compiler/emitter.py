"""Emitter: lower the resolved tree to an instruction program.

Depth-first traversal over the normalized, validated tree:

- ``Data`` becomes ``EmitLiteral``; adjacent literals are merged
- ``Output`` becomes ``EmitExpr`` with its filter chain and escape mode
- ``If`` becomes ``Branch``; ``elif`` branches nest in ``else_``
- ``For`` becomes ``Loop`` with the ``loop`` attributes its body reads
- ``Break`` and ``Continue`` become ``LoopControl``
- ``Match`` becomes ``Switch``; ``FilterBlock`` becomes ``ApplyFilters``
- ``Let`` becomes ``BindLocal``; ``Call`` becomes ``CallMacro``
- ``Block``, ``Include`` and ``Raw`` are inlined
- ``Comment``, ``Macro``, ``Import`` and ``Extends`` emit nothing

Every macro the program calls is defined once with ``DefineMacro``,
hoisted in front of the body in order of first reference (depth first:
a macro called from another macro's body follows it directly).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping, Sequence
from typing import TYPE_CHECKING

from kiln.analysis.visitor import walk
from kiln.instructions import (
    ApplyFilters,
    BindLocal,
    Branch,
    CallMacro,
    Case,
    DefineMacro,
    EmitExpr,
    EmitLiteral,
    FilterCall,
    Loop,
    LoopControl,
    Program,
    Switch,
    nested_bodies,
)
from kiln.utils.constants import LOOP_ATTRIBUTES

if TYPE_CHECKING:
    from kiln.environment.config import EscapeMode
    from kiln.instructions import Instruction
    from kiln.nodes import (
        Call,
        Data,
        Filter,
        FilterBlock,
        For,
        If,
        Let,
        Macro,
        Match,
        Node,
        Output,
        Template,
    )

logger = logging.getLogger(__name__)


def coalesce(instructions: Sequence[Instruction]) -> tuple[Instruction, ...]:
    """Merge runs of adjacent ``EmitLiteral`` and drop empty literals."""
    out: list[Instruction] = []
    for instruction in instructions:
        if isinstance(instruction, EmitLiteral):
            if not instruction.value:
                continue
            if out and isinstance(out[-1], EmitLiteral):
                out[-1] = EmitLiteral(out[-1].value + instruction.value)
                continue
        out.append(instruction)
    return tuple(out)


def loop_attributes(node: For) -> tuple[str, ...]:
    """Sorted ``loop`` attribute names read anywhere in the loop's body or test.

    ``loop.index`` and ``loop["index"]`` both count. Any other use of
    ``loop`` (passed whole to a macro, subscripted with a computed key)
    may read anything, so every attribute is reported.
    """
    if node.loop is None:
        return ()
    loop_id = node.loop.id
    used: set[str] = set()
    # Loop names already accounted for by the attribute read around them
    consumed: set[int] = set()
    roots = [*node.body, *([node.test] if node.test is not None else [])]
    for root in roots:
        # Pre-order: an attribute read is seen before the loop name inside it
        for child in _walk_reads(root):
            kind = type(child).__name__
            if kind == "Name":
                if _is_ref(child, loop_id) and id(child) not in consumed:
                    return tuple(sorted(LOOP_ATTRIBUTES))
            elif kind in ("Getattr", "Getitem") and _is_ref(child.obj, loop_id):
                attr = _static_attribute(child)
                if attr is not None:
                    used.add(attr)
                    consumed.add(id(child.obj))
    return tuple(sorted(used))


def _walk_reads(root: Node) -> Iterator[Node]:
    """``walk``, also entering filter arguments split off by the validator."""
    for node in walk(root):
        yield node
        for f in getattr(node, "filters", ()):
            for arg in (*f.args, *(value for _, value in f.kwargs)):
                yield from walk(arg)


def _is_ref(expr: Node, binding_id: str) -> bool:
    return (
        type(expr).__name__ == "Name" and expr.ref is not None and expr.ref.id == binding_id
    )


def _static_attribute(expr: Node) -> str | None:
    """Attribute name of ``obj.attr`` or ``obj["attr"]`` when it is a loop attribute."""
    if type(expr).__name__ == "Getattr":
        return expr.attr
    key = expr.key
    if type(key).__name__ == "Const" and key.value in LOOP_ATTRIBUTES:
        return key.value
    return None


def iter_macro_calls(instructions: Sequence[Instruction]) -> Iterator[CallMacro]:
    """``CallMacro`` instructions in execution order, nested ones included."""
    for instruction in instructions:
        if isinstance(instruction, CallMacro):
            yield instruction
        for body in nested_bodies(instruction):
            yield from iter_macro_calls(body)


class Emitter:
    """Lower one bound template and its macros to a ``Program``.

    Example:
        >>> program = Emitter().emit(template, macros, escape=EscapeMode.HTML,
        ...                          mime_type="text/html; charset=utf-8")
        >>> program.instructions[0]
        EmitLiteral(value='Hello, ')
    """

    def __init__(self) -> None:
        self._dispatch: dict[str, Callable[[Node], list[Instruction]]] = {
            "Data": self._emit_data,
            "Output": self._emit_output,
            "If": self._emit_if,
            "For": self._emit_for,
            "Break": self._emit_loop_control,
            "Continue": self._emit_loop_control,
            "Match": self._emit_match,
            "FilterBlock": self._emit_filter_block,
            "Let": self._emit_let,
            "Call": self._emit_call,
            "Block": self._emit_inline,
            "Include": self._emit_inline,
            "Raw": self._emit_inline,
        }

    def emit(
        self,
        template: Template,
        macros: Mapping[str, Macro],
        *,
        escape: EscapeMode,
        mime_type: str,
    ) -> Program:
        body = self.emit_body(template.body)
        definitions = self._hoist(body, macros)
        instructions = (*definitions, *body)
        size_hint = sum(len(i.value) for i in _iter_literals(instructions))
        logger.debug(
            f"Emitted {template.name}: {len(body)} instruction(s), "
            f"{len(definitions)} macro definition(s), size_hint={size_hint}"
        )
        return Program(
            name=template.name,
            instructions=instructions,
            escape=escape,
            mime_type=mime_type,
            size_hint=size_hint,
        )

    def emit_body(self, nodes: Sequence[Node]) -> tuple[Instruction, ...]:
        out: list[Instruction] = []
        for node in nodes:
            handler = self._dispatch.get(type(node).__name__)
            if handler is not None:
                out.extend(handler(node))
        return coalesce(out)

    def _hoist(
        self, body: Sequence[Instruction], macros: Mapping[str, Macro]
    ) -> tuple[DefineMacro, ...]:
        defined: dict[str, DefineMacro] = {}

        def visit(instructions: Sequence[Instruction]) -> None:
            for call in iter_macro_calls(instructions):
                if call.macro_id in defined:
                    continue
                macro = macros[call.macro_id]
                definition = DefineMacro(
                    macro_id=macro.macro_id,
                    name=macro.name,
                    params=tuple(p.ref for p in macro.params),
                    body=self.emit_body(macro.body),
                )
                defined[call.macro_id] = definition
                visit(definition.body)

        visit(body)
        return tuple(defined.values())

    # ─────────────────────────────────────────────────────────────────────────
    # Node handlers
    # ─────────────────────────────────────────────────────────────────────────

    def _emit_data(self, node: Data) -> list[Instruction]:
        return [EmitLiteral(node.value)]

    def _emit_output(self, node: Output) -> list[Instruction]:
        filters = _filter_calls(node.filters)
        return [EmitExpr(expr=node.expr, filters=filters, escape=node.escape)]

    def _emit_filter_block(self, node: FilterBlock) -> list[Instruction]:
        return [ApplyFilters(filters=_filter_calls(node.filters), body=self.emit_body(node.body))]

    def _emit_if(self, node: If) -> list[Instruction]:
        # Build the elif chain from the innermost else outwards
        else_ = self.emit_body(node.else_.body) if node.else_ is not None else ()
        for branch in reversed(node.elif_):
            else_ = (Branch(branch.test, self.emit_body(branch.body), else_),)
        return [Branch(node.test, self.emit_body(node.body), else_)]

    def _emit_for(self, node: For) -> list[Instruction]:
        return [
            Loop(
                target=node.target,
                iterable=node.iter,
                condition=node.test,
                body=self.emit_body(node.body),
                else_=self.emit_body(node.else_.body) if node.else_ is not None else (),
                loop=node.loop.id if node.loop is not None else None,
                meta=loop_attributes(node),
            )
        ]

    def _emit_loop_control(self, node: Node) -> list[Instruction]:
        return [LoopControl("break" if type(node).__name__ == "Break" else "continue")]

    def _emit_match(self, node: Match) -> list[Instruction]:
        cases = tuple(
            Case(values=tuple(case.patterns), body=self.emit_body(case.body))
            for case in node.cases
        )
        default = self.emit_body(node.else_.body) if node.else_ is not None else ()
        return [Switch(subject=node.subject, cases=cases, default=default)]

    def _emit_let(self, node: Let) -> list[Instruction]:
        return [BindLocal(target=node.target, value=node.value)]

    def _emit_call(self, node: Call) -> list[Instruction]:
        args = tuple((argument.param, argument.value) for argument in node.bound_args)
        return [CallMacro(macro_id=node.macro_id, args=args)]

    def _emit_inline(self, node: Node) -> list[Instruction]:
        return list(self.emit_body(node.body))


def _filter_calls(filters: Sequence[Filter]) -> tuple[FilterCall, ...]:
    return tuple(
        FilterCall(name=f.name, args=tuple(f.args), kwargs=tuple(f.kwargs)) for f in filters
    )


def _iter_literals(instructions: Sequence[Instruction]) -> Iterator[EmitLiteral]:
    for instruction in instructions:
        if isinstance(instruction, EmitLiteral):
            yield instruction
        for body in nested_bodies(instruction):
            yield from _iter_literals(body)
