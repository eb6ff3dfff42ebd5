"""Binding frames for the binder.

A ``Scope`` is a stack of insertion-ordered frames. Frame 0 holds the
context schema; every construct that introduces names pushes a frame on
top. Lookups walk the stack innermost first. A frame never rebinds a name
it already holds, but an inner frame may shadow an outer one.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

from kiln.environment.exceptions import ReassignmentError, UnknownBindingError
from kiln.schema import BOOL, INT, RecordType, TypeDesc
from kiln.utils.constants import LOOP_ATTRIBUTES

if TYPE_CHECKING:
    from kiln._types import Span
    from kiln.schema import ContextSchema

_LOOP_FIELD_TYPES = {"first": BOOL, "last": BOOL}

LOOP_TYPE = RecordType(
    tuple((attr, _LOOP_FIELD_TYPES.get(attr, INT)) for attr in LOOP_ATTRIBUTES),
    name="loop",
)


@dataclass(frozen=True, slots=True)
class Binding:
    """A resolved declaration.

    Attributes:
        name: Source name.
        kind: ``context``, ``local`` (let), ``loop-target``, ``loop`` or
            ``param``.
        id: Identifier unique within one compilation run; ``ctx:<name>``
            for context bindings, ``<name>#<n>`` for local ones.
        type: Static type.
        span: Declaration site (``None`` for context bindings).
    """

    name: str
    kind: str
    id: str
    type: TypeDesc
    span: Span | None = None

    @property
    def is_context(self) -> bool:
        return self.kind == "context"


@dataclass(slots=True)
class _Frame:
    description: str
    bindings: dict[str, Binding]


class Scope:
    """Stack of binding frames over a context schema.

    Example:
        >>> scope = Scope(ContextSchema({"items": "list[str]"}))
        >>> with scope.frame("for loop"):
        ...     scope.declare("item", "loop-target", STR, span)
        ...     scope.resolve("items", span).id
        'ctx:items'
    """

    __slots__ = ("_counters", "_frames")

    def __init__(self, schema: ContextSchema, description: str = "template"):
        context = {
            name: Binding(name=name, kind="context", id=f"ctx:{name}", type=type_)
            for name, type_ in schema.items()
        }
        self._frames: list[_Frame] = [_Frame("context", context), _Frame(description, {})]
        self._counters: dict[str, int] = {}

    @property
    def description(self) -> str:
        """Description of the innermost frame, for error messages."""
        return self._frames[-1].description

    @property
    def depth(self) -> int:
        return len(self._frames)

    @contextmanager
    def frame(self, description: str) -> Iterator[None]:
        """Push a frame for the duration of the ``with`` block."""
        self._frames.append(_Frame(description, {}))
        try:
            yield
        finally:
            self._frames.pop()

    @contextmanager
    def isolated(self, description: str) -> Iterator[None]:
        """Hide every local frame, leaving only the context schema visible.

        Used for macro bodies and parameter defaults, which never see the
        caller's locals.
        """
        saved = self._frames
        self._frames = [saved[0], _Frame(description, {})]
        try:
            yield
        finally:
            self._frames = saved

    def declare(self, name: str, kind: str, type_: TypeDesc, span: Span | None) -> Binding:
        """Bind ``name`` in the innermost frame.

        Raises:
            ReassignmentError: If the innermost frame already binds ``name``.
        """
        frame = self._frames[-1]
        existing = frame.bindings.get(name)
        if existing is not None:
            raise ReassignmentError(name, previous=existing.span, span=span)

        count = self._counters.get(name, 0) + 1
        self._counters[name] = count
        binding = Binding(name=name, kind=kind, id=f"{name}#{count}", type=type_, span=span)
        frame.bindings[name] = binding
        return binding

    def lookup(self, name: str) -> Binding | None:
        for frame in reversed(self._frames):
            binding = frame.bindings.get(name)
            if binding is not None:
                return binding
        return None

    def resolve(self, name: str, span: Span | None) -> Binding:
        """Resolve ``name`` innermost-first, falling back to the context.

        Raises:
            UnknownBindingError: If no frame declares ``name``.
        """
        binding = self.lookup(name)
        if binding is None:
            raise UnknownBindingError(
                name,
                self.description,
                available_names=self.visible_names(),
                span=span,
            )
        return binding

    def visible_names(self) -> list[str]:
        names: dict[str, None] = {}
        for frame in self._frames:
            names.update(dict.fromkeys(frame.bindings))
        return list(names)
