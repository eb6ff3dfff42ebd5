"""Filter contracts for compile-time validation.

Kiln never executes filters; it only checks that each filter application
is well-formed. A ``FilterSpec`` declares what a filter accepts, what it
returns and which arguments it takes. The host code generator supplies
the implementations under the same names.

Input kinds understood by ``FilterSpec.accepts``:
``str``, ``int``, ``float``, ``bool``, ``none``, ``list``, ``map``,
``record``, ``number`` (int or float), ``iterable`` (str, list or map),
or the name of an opaque host type or named record.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass

from kiln.schema import (
    ANY,
    FLOAT,
    INT,
    STR,
    AnyType,
    ListType,
    MapType,
    OpaqueType,
    Primitive,
    RecordType,
    TypeDesc,
    is_numeric,
    item_type,
)

ReturnType = TypeDesc | Callable[[TypeDesc], TypeDesc] | None


def _same(t: TypeDesc) -> TypeDesc:
    return t


def _as_list(t: TypeDesc) -> TypeDesc:
    return ListType(item_type(t))


@dataclass(frozen=True, slots=True)
class FilterSpec:
    """Declared contract of one filter.

    Attributes:
        name: Registry name.
        accepts: Input kinds the filter accepts; ``None`` accepts anything.
        returns: Result type, a function of the input type, or ``None``
            for statically unknown.
        params: Parameter names in positional order.
        required: How many leading ``params`` must be supplied.
        marks_safe: Output is already safe; disables auto-escaping.
    """

    name: str
    accepts: frozenset[str] | None = None
    returns: ReturnType = None
    params: tuple[str, ...] = ()
    required: int = 0
    marks_safe: bool = False

    def accepts_type(self, t: TypeDesc) -> bool:
        """Whether an input of static type ``t`` satisfies the contract."""
        if self.accepts is None or isinstance(t, AnyType):
            return True
        if isinstance(t, OpaqueType):
            return t.name in self.accepts
        if isinstance(t, Primitive):
            if t.name in self.accepts:
                return True
            if "number" in self.accepts and is_numeric(t):
                return True
            return "iterable" in self.accepts and t.name == "str"
        if isinstance(t, ListType):
            return bool({"list", "iterable"} & self.accepts)
        if isinstance(t, MapType):
            return bool({"map", "iterable"} & self.accepts)
        if isinstance(t, RecordType):
            return "record" in self.accepts or (t.name is not None and t.name in self.accepts)
        return False

    def describe_accepts(self) -> str:
        if self.accepts is None:
            return "any value"
        return " or ".join(sorted(self.accepts))

    def result_type(self, input_type: TypeDesc) -> TypeDesc:
        if self.returns is None:
            return ANY
        if isinstance(self.returns, TypeDesc):
            return self.returns
        return self.returns(input_type)


_TEXT = frozenset({"str"})
_NUMBER = frozenset({"number"})
_SCALAR = frozenset({"str", "number", "bool"})
_SEQUENCE = frozenset({"str", "list"})


def _spec(name: str, **kwargs) -> FilterSpec:
    return FilterSpec(name=name, **kwargs)


DEFAULT_FILTERS: Mapping[str, FilterSpec] = {
    spec.name: spec
    for spec in (
        # Escaping / safety
        _spec("safe", returns=_same, marks_safe=True),
        _spec("escape", returns=STR, marks_safe=True),
        _spec("e", returns=STR, marks_safe=True),
        _spec("json", returns=STR, params=("indent",), marks_safe=True),
        _spec("tojson", returns=STR, params=("indent",), marks_safe=True),
        # Strings
        _spec("upper", accepts=_TEXT, returns=STR),
        _spec("lower", accepts=_TEXT, returns=STR),
        _spec("capitalize", accepts=_TEXT, returns=STR),
        _spec("title", accepts=_TEXT, returns=STR),
        _spec("trim", accepts=_TEXT, returns=STR, params=("chars",)),
        _spec("striptags", accepts=_TEXT, returns=STR),
        _spec("wordcount", accepts=_TEXT, returns=INT),
        _spec(
            "truncate",
            accepts=_TEXT,
            returns=STR,
            params=("length", "killwords", "end", "leeway"),
        ),
        _spec("replace", accepts=_TEXT, returns=STR, params=("old", "new", "count"), required=2),
        _spec("indent", accepts=_TEXT, returns=STR, params=("width", "first", "blank")),
        _spec("center", accepts=_TEXT, returns=STR, params=("width",)),
        _spec("urlencode", accepts=frozenset({"str", "map", "list"}), returns=STR),
        # Sequences
        _spec("length", accepts=frozenset({"str", "list", "map"}), returns=INT),
        _spec("count", accepts=frozenset({"str", "list", "map"}), returns=INT),
        _spec("join", accepts=frozenset({"list"}), returns=STR, params=("d", "attribute")),
        _spec("first", accepts=_SEQUENCE, returns=item_type),
        _spec("last", accepts=_SEQUENCE, returns=item_type),
        _spec("reverse", accepts=_SEQUENCE, returns=_same),
        _spec("sort", accepts=frozenset({"list"}), returns=_same, params=("reverse", "attribute")),
        _spec("list", accepts=frozenset({"iterable"}), returns=_as_list),
        # Numbers
        _spec("abs", accepts=_NUMBER, returns=_same),
        _spec("round", accepts=_NUMBER, returns=FLOAT, params=("precision", "method")),
        _spec("int", accepts=_SCALAR, returns=INT, params=("default",)),
        _spec("float", accepts=_SCALAR, returns=FLOAT, params=("default",)),
        # Any value
        _spec("string", returns=STR),
        _spec("default", returns=_same, params=("default_value", "boolean")),
        _spec("d", returns=_same, params=("default_value", "boolean")),
    )
}
