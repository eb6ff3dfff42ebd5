"""Static type inference over bound expressions.

Pure functions: the type of an expression follows from the types recorded
on its resolved ``Name`` references and ``Filter`` specs. Anything the
compiler cannot know is ``ANY``, which every check accepts.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import reduce
from typing import TYPE_CHECKING

from kiln.schema import (
    ANY,
    BOOL,
    FLOAT,
    INT,
    NONE,
    STR,
    ListType,
    MapType,
    RecordType,
    TypeDesc,
    is_numeric,
    unify,
)

if TYPE_CHECKING:
    from kiln.nodes import Expr


def infer_type(expr: Expr) -> TypeDesc:
    """Return the static type of a bound expression.

    Complexity: O(1) type dispatch per node using class name lookup.
    """
    handler = _DISPATCH.get(type(expr).__name__)
    if handler is None:
        return ANY
    return handler(expr)


def _const_type(node) -> TypeDesc:
    value = node.value
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return BOOL
    if isinstance(value, int):
        return INT
    if isinstance(value, float):
        return FLOAT
    if isinstance(value, str):
        return STR
    return NONE


def _name_type(node) -> TypeDesc:
    return node.ref.type if node.ref is not None else ANY


def _sequence_type(node) -> TypeDesc:
    if not node.items:
        return ListType(ANY)
    return ListType(reduce(unify, (infer_type(i) for i in node.items)))


def attribute_type(obj_type: TypeDesc, attr: str) -> TypeDesc:
    """Type of ``obj.attr``; ``ANY`` when the field is not declared."""
    if isinstance(obj_type, RecordType):
        return obj_type.field(attr) or ANY
    if isinstance(obj_type, MapType):
        return obj_type.value
    return ANY


def _getattr_type(node) -> TypeDesc:
    return attribute_type(infer_type(node.obj), node.attr)


def _getitem_type(node) -> TypeDesc:
    obj_type = infer_type(node.obj)
    if isinstance(obj_type, ListType):
        return obj_type.item
    if isinstance(obj_type, MapType):
        return obj_type.value
    if obj_type == STR:
        return STR
    key = node.key
    if isinstance(obj_type, RecordType) and isinstance(getattr(key, "value", None), str):
        return obj_type.field(key.value) or ANY
    return ANY


def _filter_type(node) -> TypeDesc:
    if node.spec is None:
        return ANY
    return node.spec.result_type(infer_type(node.value))


def _binop_type(node) -> TypeDesc:
    op = node.op
    left = infer_type(node.left)
    right = infer_type(node.right)
    if is_numeric(left) and is_numeric(right):
        if op == "/":
            return FLOAT
        if left == INT and right == INT:
            return INT
        return FLOAT
    if op == "+" and left == STR and right == STR:
        return STR
    if op == "*" and STR in (left, right) and INT in (left, right):
        return STR
    if op == "+" and isinstance(left, ListType) and isinstance(right, ListType):
        return ListType(unify(left.item, right.item))
    return ANY


def _unaryop_type(node) -> TypeDesc:
    if node.op == "not":
        return BOOL
    operand_type = infer_type(node.operand)
    return operand_type if is_numeric(operand_type) else ANY


def _boolop_type(node) -> TypeDesc:
    return reduce(unify, (infer_type(v) for v in node.values))


def _condexpr_type(node) -> TypeDesc:
    return unify(infer_type(node.if_true), infer_type(node.if_false))


_DISPATCH: dict[str, Callable[..., TypeDesc]] = {
    "Const": _const_type,
    "Name": _name_type,
    "List": _sequence_type,
    "Tuple": _sequence_type,
    "Getattr": _getattr_type,
    "Getitem": _getitem_type,
    "Filter": _filter_type,
    "BinOp": _binop_type,
    "UnaryOp": _unaryop_type,
    "Compare": lambda node: BOOL,
    "BoolOp": _boolop_type,
    "Concat": lambda node: STR,
    "BlockText": lambda node: STR,
    "CondExpr": _condexpr_type,
}


def dotted_name(expr: Expr) -> str | None:
    """``user.profile.name`` for a chain of attribute accesses on a name."""
    node_type = type(expr).__name__
    if node_type == "Name":
        return expr.name
    if node_type == "Getattr":
        base = dotted_name(expr.obj)
        return f"{base}.{expr.attr}" if base is not None else None
    return None
