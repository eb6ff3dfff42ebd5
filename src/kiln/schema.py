"""Context schema and static type descriptors.

The host declares, ahead of compilation, which names a template may use and
what they hold. The binder resolves names against the schema and the filter
validator checks filter inputs against the inferred types.

Type descriptors:
- ``Primitive``: ``str``, ``int``, ``float``, ``bool``, ``none``
- ``ListType``: homogeneous sequence, ``list[str]``
- ``MapType``: string-keyed mapping, ``dict[str, int]``
- ``RecordType``: fixed set of named fields (a dataclass, model or struct)
- ``OpaqueType``: a host type the compiler knows only by name
- ``AnyType``: statically unknown

Schemas accept type descriptors, type strings or nested dicts (records):

    >>> schema = ContextSchema({
    ...     "title": "str",
    ...     "posts": "list[Post]",
    ...     "user": {"name": "str", "age": "int"},
    ... })
    >>> schema["user"].field("name")
    Primitive(name='str')

"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, ClassVar, get_args, get_origin

from kiln.environment.exceptions import ConfigError

# ---------------------------------------------------------------------------
# Type descriptors
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TypeDesc:
    """Base class for static type descriptors."""

    kind: ClassVar[str] = "any"

    def describe(self) -> str:
        return self.kind


@dataclass(frozen=True, slots=True)
class AnyType(TypeDesc):
    """Statically unknown type; compatible with everything."""

    kind: ClassVar[str] = "any"


@dataclass(frozen=True, slots=True)
class Primitive(TypeDesc):
    name: str

    @property
    def kind(self) -> str:  # type: ignore[override]
        return self.name

    def describe(self) -> str:
        return self.name


@dataclass(frozen=True, slots=True)
class ListType(TypeDesc):
    item: TypeDesc

    kind: ClassVar[str] = "list"

    def describe(self) -> str:
        return f"list[{self.item.describe()}]"


@dataclass(frozen=True, slots=True)
class MapType(TypeDesc):
    key: TypeDesc
    value: TypeDesc

    kind: ClassVar[str] = "map"

    def describe(self) -> str:
        return f"dict[{self.key.describe()}, {self.value.describe()}]"


@dataclass(frozen=True, slots=True)
class RecordType(TypeDesc):
    """Named fields in declaration order."""

    fields: tuple[tuple[str, TypeDesc], ...]
    name: str | None = None

    kind: ClassVar[str] = "record"

    def field(self, name: str) -> TypeDesc | None:
        for field_name, field_type in self.fields:
            if field_name == name:
                return field_type
        return None

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.fields)

    def describe(self) -> str:
        if self.name:
            return self.name
        inner = ", ".join(f"{n}: {t.describe()}" for n, t in self.fields)
        return "{" + inner + "}"


@dataclass(frozen=True, slots=True)
class OpaqueType(TypeDesc):
    """Host type known only by name."""

    name: str

    kind: ClassVar[str] = "opaque"

    def describe(self) -> str:
        return self.name


ANY = AnyType()
STR = Primitive("str")
INT = Primitive("int")
FLOAT = Primitive("float")
BOOL = Primitive("bool")
NONE = Primitive("none")

_PRIMITIVE_ALIASES: dict[str, TypeDesc] = {
    "str": STR,
    "string": STR,
    "int": INT,
    "integer": INT,
    "float": FLOAT,
    "bool": BOOL,
    "boolean": BOOL,
    "none": NONE,
    "any": ANY,
}

_NUMERIC = frozenset({"int", "float"})


def is_numeric(t: TypeDesc) -> bool:
    return isinstance(t, Primitive) and t.name in _NUMERIC


def unify(a: TypeDesc, b: TypeDesc) -> TypeDesc:
    """Least common type of two branches (``int`` and ``float`` widen to ``float``)."""
    if a == b:
        return a
    if is_numeric(a) and is_numeric(b):
        return FLOAT
    return ANY


def item_type(t: TypeDesc) -> TypeDesc:
    """Element type produced by iterating a value of type ``t``."""
    if isinstance(t, ListType):
        return t.item
    if isinstance(t, MapType):
        return t.key
    if t == STR:
        return STR
    return ANY


# ---------------------------------------------------------------------------
# Type string parsing
# ---------------------------------------------------------------------------

_TYPE_TOKEN = re.compile(r"\s*([A-Za-z_][A-Za-z0-9_.]*|\[|\]|,)")


def parse_type(spec: Any) -> TypeDesc:
    """Build a TypeDesc from a descriptor, a type string or a record dict.

    Grammar for strings::

        type := NAME [ '[' type (',' type)* ']' ]

    ``list[T]`` and ``dict[K, V]`` / ``map[K, V]`` are generic; known
    primitive names map to ``Primitive``; any other name is opaque.

    Raises:
        ConfigError: If the descriptor cannot be understood.
    """
    if isinstance(spec, TypeDesc):
        return spec
    if isinstance(spec, Mapping):
        return RecordType(tuple((str(k), parse_type(v)) for k, v in spec.items()))
    if get_origin(spec) is not None:
        return _from_generic_alias(spec)
    if isinstance(spec, type):
        return _from_python_type(spec)
    if not isinstance(spec, str):
        raise ConfigError(f"invalid type descriptor: {spec!r}")

    tokens = _TYPE_TOKEN.findall(spec)
    if "".join(tokens) != re.sub(r"\s+", "", spec):
        raise ConfigError(f"invalid type descriptor: {spec!r}")
    result, pos = _parse_type_tokens(tokens, 0, spec)
    if pos != len(tokens):
        raise ConfigError(f"invalid type descriptor: {spec!r}")
    return result


def _parse_type_tokens(tokens: list[str], pos: int, spec: str) -> tuple[TypeDesc, int]:
    if pos >= len(tokens) or tokens[pos] in "[],":
        raise ConfigError(f"invalid type descriptor: {spec!r}")
    name = tokens[pos]
    pos += 1

    args: list[TypeDesc] = []
    if pos < len(tokens) and tokens[pos] == "[":
        pos += 1
        while True:
            arg, pos = _parse_type_tokens(tokens, pos, spec)
            args.append(arg)
            if pos < len(tokens) and tokens[pos] == ",":
                pos += 1
                continue
            break
        if pos >= len(tokens) or tokens[pos] != "]":
            raise ConfigError(f"invalid type descriptor: {spec!r}")
        pos += 1

    lowered = name.lower()
    if lowered in ("list", "sequence", "tuple"):
        if len(args) > 1:
            raise ConfigError(f"{name} takes one type argument: {spec!r}")
        return ListType(args[0] if args else ANY), pos
    if lowered in ("dict", "map", "mapping"):
        if args and len(args) != 2:
            raise ConfigError(f"{name} takes two type arguments: {spec!r}")
        return (MapType(args[0], args[1]) if args else MapType(ANY, ANY)), pos
    if args:
        raise ConfigError(f"type {name!r} is not generic: {spec!r}")
    if lowered in _PRIMITIVE_ALIASES:
        return _PRIMITIVE_ALIASES[lowered], pos
    return OpaqueType(name), pos


def _from_generic_alias(tp: Any) -> TypeDesc:
    origin, args = get_origin(tp), get_args(tp)
    if origin in (list, tuple, set, frozenset) or origin is Sequence:
        return ListType(parse_type(args[0]) if args else ANY)
    if origin is dict or origin is Mapping:
        if len(args) != 2:
            raise ConfigError(f"invalid type descriptor: {tp!r}")
        return MapType(parse_type(args[0]), parse_type(args[1]))
    raise ConfigError(f"unsupported generic type: {tp!r}")


def _from_python_type(tp: type) -> TypeDesc:
    builtin = {
        str: STR,
        int: INT,
        float: FLOAT,
        bool: BOOL,
        list: ListType(ANY),
        dict: MapType(ANY, ANY),
    }
    if tp in builtin:
        return builtin[tp]
    if tp is type(None):
        return NONE
    annotations = getattr(tp, "__annotations__", None)
    if getattr(tp, "__dataclass_fields__", None) and annotations:
        fields = []
        for field_name, annotation in annotations.items():
            try:
                fields.append((field_name, parse_type(annotation)))
            except ConfigError:
                fields.append((field_name, ANY))
        return RecordType(tuple(fields), name=tp.__name__)
    return OpaqueType(tp.__name__)


# ---------------------------------------------------------------------------
# Context schema
# ---------------------------------------------------------------------------


class ContextSchema(Mapping[str, TypeDesc]):
    """Ordered, read-only mapping from binding name to type descriptor.

    Example:
        >>> schema = ContextSchema({"name": "str", "ok": "bool"})
        >>> list(schema)
        ['name', 'ok']
    """

    __slots__ = ("_types",)

    def __init__(self, types: Mapping[str, Any] | None = None, **kwargs: Any):
        merged: dict[str, Any] = dict(types or {})
        merged.update(kwargs)
        resolved: dict[str, TypeDesc] = {}
        for name, spec in merged.items():
            if not isinstance(name, str) or not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", name):
                raise ConfigError(f"invalid binding name in context schema: {name!r}")
            resolved[name] = parse_type(spec)
        self._types = resolved

    @classmethod
    def coerce(cls, schema: ContextSchema | Mapping[str, Any] | None) -> ContextSchema:
        if isinstance(schema, ContextSchema):
            return schema
        return cls(schema or {})

    def __getitem__(self, name: str) -> TypeDesc:
        return self._types[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._types)

    def __len__(self) -> int:
        return len(self._types)

    def __repr__(self) -> str:
        inner = ", ".join(f"{k}: {v.describe()}" for k, v in self._types.items())
        return f"ContextSchema({{{inner}}})"

    def describe(self) -> dict[str, str]:
        return {name: t.describe() for name, t in self._types.items()}
