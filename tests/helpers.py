"""Instruction inspection helpers shared by the test modules."""

from __future__ import annotations

from kiln import DefineMacro, EmitLiteral
from kiln.instructions import nested_bodies


def literal_text(instructions) -> str:
    """Concatenate every literal reachable in an instruction sequence."""
    parts: list[str] = []
    for instruction in instructions:
        if isinstance(instruction, EmitLiteral):
            parts.append(instruction.value)
        for body in nested_bodies(instruction):
            parts.append(literal_text(body))
    return "".join(parts)


def kinds(instructions) -> list[str]:
    """Instruction class names, top level only."""
    return [type(i).__name__ for i in instructions]


def body_without_macros(program) -> tuple:
    """Program instructions after the hoisted macro definitions."""
    return tuple(i for i in program.instructions if not isinstance(i, DefineMacro))
