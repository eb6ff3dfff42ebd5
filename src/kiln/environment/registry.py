"""Filter registry for the Kiln environment.

Holds the filter contracts the binder resolves names against: the
built-in set plus any custom entries supplied by the host.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import replace
from typing import Any

from kiln.environment.filters import DEFAULT_FILTERS, FilterSpec
from kiln.schema import parse_type


class FilterRegistry:
    """Dict-like registry of ``FilterSpec`` entries.

    Supports:
        - registry['name'] = FilterSpec(...)
        - registry.update({'name': spec})
        - spec = registry['name']
        - 'name' in registry

    All mutations use copy-on-write: the underlying dict is replaced, never
    changed in place, so a compilation run that captured ``snapshot()``
    keeps reading a stable mapping.
    """

    __slots__ = ("_filters",)

    def __init__(self, filters: Mapping[str, FilterSpec | Mapping[str, Any]] | None = None):
        self._filters: dict[str, FilterSpec] = dict(DEFAULT_FILTERS)
        if filters:
            self.update(filters)

    @staticmethod
    def _coerce(name: str, spec: FilterSpec | Mapping[str, Any]) -> FilterSpec:
        if isinstance(spec, FilterSpec):
            return spec if spec.name == name else replace(spec, name=name)
        fields = dict(spec)
        accepts = fields.get("accepts")
        if isinstance(accepts, str):
            fields["accepts"] = frozenset({accepts})
        elif accepts is not None:
            fields["accepts"] = frozenset(accepts)
        if "params" in fields:
            fields["params"] = tuple(fields["params"])
        if isinstance(fields.get("returns"), (str, Mapping)):
            fields["returns"] = parse_type(fields["returns"])
        fields.pop("name", None)
        return FilterSpec(name=name, **fields)

    def __getitem__(self, name: str) -> FilterSpec:
        return self._filters[name]

    def __setitem__(self, name: str, spec: FilterSpec | Mapping[str, Any]) -> None:
        new = self._filters.copy()
        new[name] = self._coerce(name, spec)
        self._filters = new

    def __contains__(self, name: object) -> bool:
        return name in self._filters

    def __iter__(self) -> Iterator[str]:
        return iter(self._filters)

    def __len__(self) -> int:
        return len(self._filters)

    def get(self, name: str, default: FilterSpec | None = None) -> FilterSpec | None:
        return self._filters.get(name, default)

    def update(self, mapping: Mapping[str, FilterSpec | Mapping[str, Any]]) -> None:
        """Batch update filters."""
        new = self._filters.copy()
        for name, spec in mapping.items():
            new[name] = self._coerce(name, spec)
        self._filters = new

    def snapshot(self) -> Mapping[str, FilterSpec]:
        """The current mapping; later registrations do not affect it."""
        return self._filters

    def keys(self):
        return self._filters.keys()

    def items(self):
        return self._filters.items()
