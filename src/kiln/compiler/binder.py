"""Binder: resolve every name, filter and macro reference.

Walks the flattened template keeping a ``Scope`` stack and returns the
same tree shape with resolution handles filled in:

- ``Name.ref``: the ``Binding`` the name resolves to
- ``Filter.spec``: the ``FilterSpec`` from the registry
- ``Call.macro_id`` / ``Call.bound_args``: the target macro and one
  argument per parameter, defaults included
- ``For.loop`` / ``MacroParam.ref``: the bindings those constructs declare

Nothing downstream needs to look a name up again.

Scope Handling:
    - ``for`` pushes one frame holding its targets and ``loop``; the body
      binds into that same frame
    - every ``if``/``elif``/``else`` branch, ``match`` arm, ``filter``,
      ``block`` and ``include`` body pushes a frame
    - macro bodies and parameter defaults see the context schema and the
      macro's parameters only

Macros are bound once, the first time a call reaches them. Definitions no
call reaches are bound afterwards so their bodies are checked too.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from kiln.compiler.inference import dotted_name, infer_type
from kiln.compiler.inheritance import MacroScope
from kiln.compiler.scope import LOOP_TYPE, Scope
from kiln.environment.exceptions import (
    CycleError,
    MacroArityError,
    NoSuperBlockError,
    TemplateError,
    UnknownArgumentError,
    UnknownBindingError,
    UnknownFilterError,
)
from kiln.nodes import BoundArgument, Elif, Else, Name, Tuple
from kiln.schema import ANY, ListType, RecordType, item_type

if TYPE_CHECKING:
    from kiln.compiler.inheritance import InheritanceResolver, ResolvedUnit
    from kiln.environment.filters import FilterSpec
    from kiln.nodes import (
        Block,
        Call,
        Expr,
        Filter,
        FilterBlock,
        For,
        Getattr,
        Getitem,
        If,
        Include,
        Let,
        Macro,
        Match,
        Node,
        Output,
        Template,
    )
    from kiln.schema import ContextSchema, TypeDesc

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BoundUnit:
    """Binder output for one root template.

    Attributes:
        template: The flattened template with resolution handles filled in.
        macros: Every bound macro definition keyed by ``macro_id``. The
            emitter hoists the ones the program actually calls.
    """

    template: Template
    macros: Mapping[str, Macro] = field(default_factory=dict)


class Binder:
    """Scope-tracking resolver for one compilation run.

    Args:
        schema: Context schema; its names form the bottom scope frame.
        filters: Filter registry snapshot.
        resolver: The run's inheritance resolver, used to look up macro
            visibility and to splice includes into macro bodies.

    Example:
        >>> binder = Binder(ContextSchema({"name": "str"}), registry.snapshot(), resolver)
        >>> bound = binder.bind(resolver.resolve(template))
        >>> bound.template.body[1].expr.ref.id
        'ctx:name'
    """

    def __init__(
        self,
        schema: ContextSchema,
        filters: Mapping[str, FilterSpec],
        resolver: InheritanceResolver,
    ):
        self._schema = schema
        self._filters = filters
        self._resolver = resolver
        self._scope = Scope(schema)
        self._macro_scope = MacroScope("<template>")
        self._bound_macros: dict[str, Macro] = {}
        self._macro_stack: list[Macro] = []

        self._dispatch: dict[str, Callable[..., Node]] = {
            "Output": self._bind_output,
            "If": self._bind_if,
            "For": self._bind_for,
            "Match": self._bind_match,
            "FilterBlock": self._bind_filter_block,
            "Let": self._bind_let,
            "Block": self._bind_block,
            "Include": self._bind_include,
            "Macro": self._bind_macro,
            "Call": self._bind_call,
            "SuperCall": self._bind_supercall,
        }

    # ─────────────────────────────────────────────────────────────────────────
    # Entry point
    # ─────────────────────────────────────────────────────────────────────────

    def bind(self, unit: ResolvedUnit) -> BoundUnit:
        """Bind the flattened template of ``unit``.

        Raises:
            UnknownBindingError, ReassignmentError, MacroArityError,
            UnknownArgumentError, UnknownFilterError, CycleError,
            NoSuperBlockError: The first failure found, attributed to the
                template the offending node came from.
        """
        template = unit.template
        logger.debug(f"Binding {template.name} against {len(self._schema)} context names")

        self._macro_scope = unit.macro_scope
        with self._in_template(unit.skeleton):
            body = self._bind_body(template.body)

        # Definitions nobody calls are still checked, but not emitted
        for macro in unit.macro_scope.macros.values():
            self._bind_macro_definition(macro)

        logger.debug(f"Bound {template.name}: {len(self._bound_macros)} macro definition(s)")
        return BoundUnit(template=replace(template, body=body), macros=dict(self._bound_macros))

    @contextmanager
    def _in_template(self, name: str | None) -> Iterator[None]:
        """Attribute errors raised inside the ``with`` block to template ``name``."""
        try:
            yield
        except TemplateError as exc:
            exc.with_context(template=name)
            raise

    # ─────────────────────────────────────────────────────────────────────────
    # Statements
    # ─────────────────────────────────────────────────────────────────────────

    def _bind_body(self, nodes: Iterator[Node] | tuple[Node, ...]) -> tuple[Node, ...]:
        return tuple(self._bind_node(node) for node in nodes)

    def _bind_node(self, node: Node) -> Node:
        handler = self._dispatch.get(type(node).__name__)
        if handler is None:
            # Data, Raw, Comment, Import, Extends: nothing to resolve
            return node
        return handler(node)

    def _bind_output(self, node: Output) -> Output:
        return replace(node, expr=self._bind_expr(node.expr))

    def _bind_if(self, node: If) -> If:
        test = self._bind_expr(node.test)
        with self._scope.frame("if branch"):
            body = self._bind_body(node.body)

        elif_: list[Elif] = []
        for branch in node.elif_:
            branch_test = self._bind_expr(branch.test)
            with self._scope.frame("elif branch"):
                elif_.append(replace(branch, test=branch_test, body=self._bind_body(branch.body)))

        else_ = None
        if node.else_ is not None:
            with self._scope.frame("else branch"):
                else_ = replace(node.else_, body=self._bind_body(node.else_.body))

        return replace(node, test=test, body=body, elif_=tuple(elif_), else_=else_)

    def _bind_for(self, node: For) -> For:
        iterable = self._bind_expr(node.iter)
        target_type = item_type(infer_type(iterable))

        with self._scope.frame("for loop"):
            target = self._declare_target(node.target, target_type, "loop-target")
            loop = self._scope.declare("loop", "loop", LOOP_TYPE, node.span)
            test = self._bind_expr(node.test) if node.test is not None else None
            body = self._bind_body(node.body)

        else_: Else | None = None
        if node.else_ is not None:
            with self._scope.frame("for else"):
                else_ = replace(node.else_, body=self._bind_body(node.else_.body))

        return replace(
            node, target=target, iter=iterable, test=test, body=body, else_=else_, loop=loop
        )

    def _bind_match(self, node: Match) -> Match:
        subject = self._bind_expr(node.subject)
        cases = []
        for case in node.cases:
            with self._scope.frame("when branch"):
                cases.append(replace(case, body=self._bind_body(case.body)))

        else_ = None
        if node.else_ is not None:
            with self._scope.frame("match else"):
                else_ = replace(node.else_, body=self._bind_body(node.else_.body))

        return replace(node, subject=subject, cases=tuple(cases), else_=else_)

    def _bind_filter_block(self, node: FilterBlock) -> FilterBlock:
        expr = self._bind_expr(node.expr)
        with self._scope.frame("filter block"):
            return replace(node, expr=expr, body=self._bind_body(node.body))

    def _bind_let(self, node: Let) -> Let:
        value = self._bind_expr(node.value)
        target = self._declare_target(node.target, infer_type(value), "local", value=value)
        return replace(node, target=target, value=value)

    def _declare_target(
        self,
        target: Expr,
        type_: TypeDesc,
        kind: str,
        value: Expr | None = None,
    ) -> Expr:
        """Declare a Name or Tuple-of-Names target in the innermost frame."""
        if isinstance(target, Name):
            binding = self._scope.declare(target.name, kind, type_, target.span)
            return replace(target, ref=binding)

        items = target.items
        # Per-element types are known only for tuple literals and homogeneous lists
        if isinstance(value, Tuple) and len(value.items) == len(items):
            types = [infer_type(item) for item in value.items]
        elif isinstance(type_, ListType):
            types = [type_.item] * len(items)
        else:
            types = [ANY] * len(items)
        return replace(
            target,
            items=tuple(
                self._declare_target(item, item_type_, kind)
                for item, item_type_ in zip(items, types, strict=True)
            ),
        )

    def _bind_block(self, node: Block) -> Block:
        with self._in_template(node.origin), self._scope.frame(f"block '{node.name}'"):
            return replace(node, body=self._bind_body(node.body))

    def _bind_include(self, node: Include) -> Include:
        saved = self._macro_scope
        self._macro_scope = self._resolver.macro_scope(node.template, relation="include")
        try:
            with self._in_template(node.origin or node.template):
                with self._scope.frame(f"include '{node.template}'"):
                    return replace(node, body=self._bind_body(node.body))
        finally:
            self._macro_scope = saved

    def _bind_macro(self, node: Macro) -> Macro:
        # Definitions in the body are bound when first called; see _bind_call
        return node

    def _bind_supercall(self, node: Node) -> Node:
        raise NoSuperBlockError(None, span=node.span)

    # ─────────────────────────────────────────────────────────────────────────
    # Macros
    # ─────────────────────────────────────────────────────────────────────────

    def _bind_call(self, node: Call) -> Call:
        macro = self._lookup_macro(node)
        bound_args = self._match_arguments(node, macro)
        self._bind_macro_definition(macro)
        return replace(node, macro_id=macro.macro_id, bound_args=bound_args)

    def _lookup_macro(self, node: Call) -> Macro:
        scope = self._macro_scope

        if node.scope is not None:
            imported = scope.imports.get(node.scope)
            if imported is None:
                raise UnknownBindingError(
                    node.scope,
                    self._scope.description,
                    available_names=scope.imports,
                    what="import scope",
                    span=node.span,
                )
            scope = imported

        macro = scope.macros.get(node.name)
        if macro is None:
            raise UnknownBindingError(
                node.qualified_name,
                self._scope.description,
                available_names=scope.macros,
                what="macro",
                span=node.span,
            )
        return macro

    def _match_arguments(self, node: Call, macro: Macro) -> tuple[BoundArgument, ...]:
        """Match call arguments to parameters, filling in defaults.

        Raises:
            MacroArityError: Too many positional arguments, a parameter given
                twice, or a required parameter missing.
            UnknownArgumentError: A named argument the macro does not declare.
        """
        params = macro.params
        if len(node.args) > len(params):
            raise MacroArityError(
                macro.name,
                f"takes {len(params)} positional argument(s) but {len(node.args)} were given",
                span=node.span,
            )

        given: dict[str, Expr] = {
            param.name: arg for param, arg in zip(params, node.args, strict=False)
        }
        for key, value in node.kwargs:
            if key not in macro.param_names:
                raise UnknownArgumentError(
                    macro.name, key, macro.param_names, span=value.span
                )
            if key in given:
                raise MacroArityError(
                    macro.name,
                    f"got multiple values for parameter '{key}'",
                    span=value.span,
                )
            given[key] = value

        bound: list[BoundArgument] = []
        for param in params:
            if param.name in given:
                bound.append(BoundArgument(param.name, self._bind_expr(given[param.name])))
            elif param.default is not None:
                bound.append(
                    BoundArgument(param.name, self._bind_default(macro, param.default), True)
                )
            else:
                raise MacroArityError(
                    macro.name,
                    f"missing required parameter '{param.name}'",
                    span=node.span,
                )
        return tuple(bound)

    def _bind_default(self, macro: Macro, default: Expr) -> Expr:
        with self._in_template(macro.template), self._scope.isolated(
            f"defaults of macro '{macro.name}'"
        ):
            return self._bind_expr(default)

    def _bind_macro_definition(self, macro: Macro) -> None:
        """Bind ``macro``'s body once, rejecting recursion.

        Raises:
            CycleError: If the macro is reached again while its own body is
                being bound.
        """
        macro_id = macro.macro_id
        if macro_id in self._bound_macros:
            return

        active_ids = [active.macro_id for active in self._macro_stack]
        if macro_id in active_ids:
            start = active_ids.index(macro_id)
            raise CycleError(
                [active.name for active in self._macro_stack[start:]] + [macro.name],
                relation="macro",
                span=macro.span,
                template=macro.template,
            )

        logger.debug(f"Binding macro {macro_id}")
        resolved = self._resolver.resolve_macro(macro)
        defaults = [
            self._bind_default(macro, param.default) if param.default is not None else None
            for param in resolved.params
        ]
        saved = self._macro_scope
        self._macro_stack.append(macro)
        try:
            with self._in_template(macro.template):
                self._macro_scope = self._resolver.macro_scope(macro.template or "<template>")
                with self._scope.isolated(f"macro '{macro.name}'"):
                    params = tuple(
                        replace(
                            param,
                            default=default,
                            ref=self._scope.declare(param.name, "param", ANY, param.span),
                        )
                        for param, default in zip(resolved.params, defaults, strict=True)
                    )
                    body = self._bind_body(resolved.body)
        finally:
            self._macro_stack.pop()
            self._macro_scope = saved

        self._bound_macros[macro_id] = replace(resolved, params=params, body=body)

    # ─────────────────────────────────────────────────────────────────────────
    # Expressions
    # ─────────────────────────────────────────────────────────────────────────

    def _bind_expr(self, expr: Expr) -> Expr:
        handler = _EXPR_BINDERS.get(type(expr).__name__)
        if handler is None:
            return expr
        return handler(self, expr)

    def _bind_name_ref(self, expr: Name) -> Name:
        return replace(expr, ref=self._scope.resolve(expr.name, expr.span))

    def _bind_getattr(self, expr: Getattr) -> Getattr:
        obj = self._bind_expr(expr.obj)
        self._check_field(obj, expr.attr, expr)
        return replace(expr, obj=obj)

    def _bind_getitem(self, expr: Getitem) -> Getitem:
        obj = self._bind_expr(expr.obj)
        key = self._bind_expr(expr.key)
        if type(key).__name__ == "Const" and isinstance(key.value, str):
            self._check_field(obj, key.value, expr)
        return replace(expr, obj=obj, key=key)

    def _check_field(self, obj: Expr, attr: str, expr: Expr) -> None:
        """Attribute access on a record must name a declared field."""
        obj_type = infer_type(obj)
        if not isinstance(obj_type, RecordType) or obj_type.field(attr) is not None:
            return
        base = dotted_name(obj)
        path = f"{base}.{attr}" if base is not None else attr
        raise UnknownBindingError(
            path,
            self._scope.description,
            available_names=[
                f"{base}.{name}" if base is not None else name for name in obj_type.field_names
            ],
            what="attribute",
            span=expr.span,
        )

    def _bind_filter(self, expr: Filter) -> Filter:
        spec = self._filters.get(expr.name)
        if spec is None:
            raise UnknownFilterError(expr.name, available=self._filters, span=expr.span)
        return replace(
            expr,
            value=self._bind_expr(expr.value),
            args=tuple(self._bind_expr(arg) for arg in expr.args),
            kwargs=tuple((key, self._bind_expr(value)) for key, value in expr.kwargs),
            spec=spec,
        )

    def _bind_items(self, expr: Expr) -> Expr:
        return replace(expr, items=tuple(self._bind_expr(item) for item in expr.items))

    def _bind_binop(self, expr: Expr) -> Expr:
        return replace(expr, left=self._bind_expr(expr.left), right=self._bind_expr(expr.right))

    def _bind_unaryop(self, expr: Expr) -> Expr:
        return replace(expr, operand=self._bind_expr(expr.operand))

    def _bind_compare(self, expr: Expr) -> Expr:
        return replace(
            expr,
            left=self._bind_expr(expr.left),
            comparators=tuple(self._bind_expr(c) for c in expr.comparators),
        )

    def _bind_boolop(self, expr: Expr) -> Expr:
        return replace(expr, values=tuple(self._bind_expr(v) for v in expr.values))

    def _bind_concat(self, expr: Expr) -> Expr:
        return replace(expr, nodes=tuple(self._bind_expr(n) for n in expr.nodes))

    def _bind_condexpr(self, expr: Expr) -> Expr:
        return replace(
            expr,
            test=self._bind_expr(expr.test),
            if_true=self._bind_expr(expr.if_true),
            if_false=self._bind_expr(expr.if_false),
        )


# Expression type -> binder method.
_EXPR_BINDERS: dict[str, Callable[[Binder, Expr], Expr]] = {
    "Name": Binder._bind_name_ref,
    "Tuple": Binder._bind_items,
    "List": Binder._bind_items,
    "Getattr": Binder._bind_getattr,
    "Getitem": Binder._bind_getitem,
    "Filter": Binder._bind_filter,
    "BinOp": Binder._bind_binop,
    "UnaryOp": Binder._bind_unaryop,
    "Compare": Binder._bind_compare,
    "BoolOp": Binder._bind_boolop,
    "Concat": Binder._bind_concat,
    "CondExpr": Binder._bind_condexpr,
}
