"""Tests for the binder: scopes, context resolution, macros and filters."""

from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from kiln import (
    CycleError,
    DictLoader,
    Environment,
    ErrorCode,
    MacroArityError,
    ReassignmentError,
    UnknownArgumentError,
    UnknownBindingError,
    UnknownFilterError,
)
from kiln.compiler.binder import Binder
from kiln.compiler.inheritance import InheritanceResolver
from kiln.schema import INT, STR, ContextSchema, ListType, RecordType

from .strategies import identifier


def bind(source: str, schema=None, templates: dict[str, str] | None = None):
    """Resolve and bind ``source`` as ``page.html``; return the BoundUnit."""
    env = Environment(loader=DictLoader({"page.html": source, **(templates or {})}))

    def lookup(name: str):
        text, _filename = env.get_source(name)
        return env.parse(text, name)

    resolver = InheritanceResolver(lookup)
    unit = resolver.resolve(lookup("page.html"))
    return Binder(ContextSchema.coerce(schema), env.filters.snapshot(), resolver).bind(unit)


class TestContextNames:
    """Names resolve against the context schema."""

    def test_context_binding_id(self):
        output = bind("{{ name }}", {"name": "str"}).template.body[0]
        ref = output.expr.ref
        assert ref.id == "ctx:name"
        assert ref.kind == "context"
        assert ref.type == STR

    def test_unknown_name(self):
        with pytest.raises(UnknownBindingError) as exc_info:
            bind("Hi {{ nmae }}", {"name": "str"})
        err = exc_info.value
        assert err.name == "nmae"
        assert err.scope == "template"
        assert err.suggestion == "Did you mean 'name'?"
        assert err.code is ErrorCode.UNKNOWN_BINDING
        assert err.template == "page.html"
        assert err.span.col_offset == 6

    def test_unknown_name_inside_loop_names_scope(self):
        with pytest.raises(UnknownBindingError) as exc_info:
            bind("{% for x in items %}{{ y }}{% endfor %}", {"items": "list[str]"})
        assert exc_info.value.scope == "for loop"

    def test_every_subexpression_is_checked(self):
        with pytest.raises(UnknownBindingError) as exc_info:
            bind("{{ a if ok else missing }}", {"a": "str", "ok": "bool"})
        assert exc_info.value.name == "missing"

    def test_filter_arguments_are_checked(self):
        with pytest.raises(UnknownBindingError) as exc_info:
            bind("{{ a | default(fallback) }}", {"a": "str"})
        assert exc_info.value.name == "fallback"

    @given(
        name=identifier.filter(lambda s: s not in {"items", "ok", "item", "loop"}),
        wrappers=st.lists(st.sampled_from(["if", "for", "block"]), max_size=4),
    )
    @settings(max_examples=100)
    def test_unknown_name_reported_at_any_depth(self, name: str, wrappers: list[str]) -> None:
        source = f"{{{{ {name} }}}}"
        for depth, wrapper in enumerate(reversed(wrappers)):
            if wrapper == "if":
                source = "{% if ok %}" + source + "{% endif %}"
            elif wrapper == "for":
                source = "{% for item in items %}" + source + "{% endfor %}"
            else:
                source = f"{{% block b{depth} %}}" + source + "{% endblock %}"
        with pytest.raises(UnknownBindingError) as exc_info:
            bind(source, {"items": "list[str]", "ok": "bool"})
        assert exc_info.value.name == name


class TestLocals:
    """let bindings, shadowing and single assignment."""

    def test_let_declares_local(self):
        body = bind("{% let a = 1 %}{{ a }}").template.body
        assert body[0].target.ref.id == "a#1"
        assert body[0].target.ref.kind == "local"
        assert body[0].target.ref.type == INT
        assert body[1].expr.ref.id == "a#1"

    def test_use_before_let(self):
        with pytest.raises(UnknownBindingError):
            bind("{{ a }}{% let a = 1 %}")

    def test_reassignment_in_same_frame(self):
        with pytest.raises(ReassignmentError) as exc_info:
            bind("{% let a = 1 %}\n{% let a = 2 %}")
        err = exc_info.value
        assert err.name == "a"
        assert err.previous.lineno == 1
        assert err.lineno == 2

    def test_inner_frame_may_shadow(self):
        body = bind(
            "{% let a = 1 %}{% if ok %}{% let a = 'x' %}{{ a }}{% endif %}{{ a }}",
            {"ok": "bool"},
        ).template.body
        inner = body[1].body
        assert inner[0].target.ref.id == "a#2"
        assert inner[1].expr.ref.id == "a#2"
        assert inner[1].expr.ref.type == STR
        assert body[2].expr.ref.id == "a#1"

    def test_local_shadows_context(self):
        body = bind("{% let name = 'x' %}{{ name }}", {"name": "str"}).template.body
        assert body[1].expr.ref.id == "name#1"

    def test_branch_locals_do_not_leak(self):
        with pytest.raises(UnknownBindingError):
            bind("{% if ok %}{% let a = 1 %}{% endif %}{{ a }}", {"ok": "bool"})

    def test_tuple_let_types_elements(self):
        let = bind("{% let a, b = (1, 'x') %}").template.body[0]
        assert [item.ref.type for item in let.target.items] == [INT, STR]

    def test_tuple_target_names_must_differ(self):
        with pytest.raises(ReassignmentError):
            bind("{% let a, a = (1, 2) %}")


class TestLoops:
    """for targets, the loop record and record fields."""

    def test_target_and_loop_bindings(self):
        node = bind(
            "{% for item in items %}{{ item }}{{ loop.index }}{% endfor %}",
            {"items": "list[str]"},
        ).template.body[0]
        assert node.target.ref.id == "item#1"
        assert node.target.ref.kind == "loop-target"
        assert node.target.ref.type == STR
        assert node.loop.id == "loop#1"
        assert node.body[0].expr.ref is node.target.ref

    def test_nested_loops_get_distinct_ids(self):
        outer = bind(
            "{% for a in xs %}{% for b in xs %}{{ loop.index }}{% endfor %}{% endfor %}",
            {"xs": "list[int]"},
        ).template.body[0]
        inner = outer.body[0]
        assert outer.loop.id == "loop#1"
        assert inner.loop.id == "loop#2"
        assert inner.body[0].expr.obj.ref.id == "loop#2"

    def test_loop_not_visible_outside(self):
        with pytest.raises(UnknownBindingError) as exc_info:
            bind("{% for x in xs %}{% endfor %}{{ loop.index }}", {"xs": "list[int]"})
        assert exc_info.value.name == "loop"

    def test_loop_not_visible_in_else(self):
        with pytest.raises(UnknownBindingError) as exc_info:
            bind("{% for x in xs %}{% else %}{{ x }}{% endfor %}", {"xs": "list[int]"})
        assert exc_info.value.scope == "for else"

    def test_unknown_loop_attribute(self):
        with pytest.raises(UnknownBindingError) as exc_info:
            bind("{% for x in xs %}{{ loop.idx }}{% endfor %}", {"xs": "list[int]"})
        err = exc_info.value
        assert err.name == "loop.idx"
        assert err.what == "attribute"
        assert err.suggestion == "Did you mean 'loop.index'?"

    def test_loop_condition_sees_target(self):
        node = bind(
            "{% for x in xs if x %}{% endfor %}", {"xs": "list[int]"}
        ).template.body[0]
        assert node.test.ref.id == "x#1"

    def test_tuple_target_over_list_of_lists(self):
        node = bind(
            "{% for a, b in pairs %}{% endfor %}", {"pairs": "list[list[int]]"}
        ).template.body[0]
        assert [item.ref.type for item in node.target.items] == [INT, INT]

    def test_record_field_typo(self):
        with pytest.raises(UnknownBindingError) as exc_info:
            bind("{{ user.nmae }}", {"user": {"name": "str", "age": "int"}})
        err = exc_info.value
        assert err.name == "user.nmae"
        assert err.what == "attribute"
        assert err.suggestion == "Did you mean 'user.name'?"

    def test_record_field_by_string_key(self):
        with pytest.raises(UnknownBindingError):
            bind("{{ user['nope'] }}", {"user": {"name": "str"}})

    def test_nested_record_through_loop_target(self):
        post = RecordType((("title", STR),), name="Post")
        with pytest.raises(UnknownBindingError) as exc_info:
            bind(
                "{% for post in posts %}{{ post.titel }}{% endfor %}",
                {"posts": ListType(post)},
            )
        assert exc_info.value.name == "post.titel"
        assert exc_info.value.suggestion == "Did you mean 'post.title'?"

    def test_opaque_attributes_are_not_checked(self):
        node = bind("{{ post.anything }}", {"post": "Post"}).template.body[0]
        assert node.expr.attr == "anything"


class TestMatchAndFilterBlocks:
    """match arms and filter blocks open their own frames."""

    def test_subject_and_arms_are_bound(self):
        node = bind(
            "{% match n %}{% when 1 %}{{ name }}{% else %}{{ n }}{% endmatch %}",
            {"n": "int", "name": "str"},
        ).template.body[0]
        assert node.subject.ref.id == "ctx:n"
        assert node.cases[0].body[0].expr.ref.id == "ctx:name"
        assert node.else_.body[0].expr.ref.id == "ctx:n"

    def test_arm_locals_do_not_leak(self):
        with pytest.raises(UnknownBindingError) as exc_info:
            bind(
                "{% match n %}{% when 1 %}{% let a = 1 %}{% else %}{{ a }}{% endmatch %}",
                {"n": "int"},
            )
        assert exc_info.value.scope == "match else"

    def test_unknown_subject(self):
        with pytest.raises(UnknownBindingError) as exc_info:
            bind("{% match m %}{% when 1 %}{% endmatch %}", {"n": "int"})
        assert exc_info.value.suggestion == "Did you mean 'n'?"

    def test_filter_block_chain_gets_specs(self):
        node = bind("{% filter upper %}x{% endfilter %}").template.body[0]
        assert node.expr.spec is not None
        assert node.expr.spec.name == "upper"

    def test_unknown_filter_in_filter_block(self):
        with pytest.raises(UnknownFilterError) as exc_info:
            bind("{% filter uper %}x{% endfilter %}")
        assert exc_info.value.suggestion == "Did you mean 'upper'?"

    def test_filter_block_body_is_a_frame(self):
        with pytest.raises(UnknownBindingError) as exc_info:
            bind("{% filter upper %}{% let a = 1 %}{% endfilter %}{{ a }}")
        assert exc_info.value.name == "a"


class TestMacros:
    """Macro resolution, argument matching and isolation."""

    def test_call_binds_arguments(self):
        unit = bind(
            "{% macro greet(who, punct='!') %}{{ who }}{{ punct }}{% endmacro %}"
            "{{ greet('Ana') }}"
        )
        call = unit.template.body[1]
        assert call.macro_id == "page.html::greet"
        assert [(a.param, a.from_default) for a in call.bound_args] == [
            ("who", False),
            ("punct", True),
        ]
        assert "page.html::greet" in unit.macros

    def test_keyword_arguments(self):
        call = bind(
            "{% macro pair(a, b) %}{% endmacro %}{{ pair(b=2, a=1) }}"
        ).template.body[1]
        assert [(a.param, a.value.value) for a in call.bound_args] == [("a", 1), ("b", 2)]

    def test_macro_params_are_bound_in_body(self):
        macro = bind("{% macro m(x) %}{{ x }}{% endmacro %}").macros["page.html::m"]
        assert macro.params[0].ref.kind == "param"
        assert macro.body[0].expr.ref is macro.params[0].ref

    def test_too_many_arguments(self):
        with pytest.raises(MacroArityError) as exc_info:
            bind("{% macro m(a) %}{% endmacro %}{{ m(1, 2) }}")
        assert exc_info.value.macro == "m"

    def test_missing_required_argument(self):
        with pytest.raises(MacroArityError, match="missing required parameter 'a'"):
            bind("{% macro m(a) %}{% endmacro %}{{ m() }}")

    def test_argument_given_twice(self):
        with pytest.raises(MacroArityError, match="multiple values"):
            bind("{% macro m(a) %}{% endmacro %}{{ m(1, a=2) }}")

    def test_unknown_keyword_argument(self):
        with pytest.raises(UnknownArgumentError) as exc_info:
            bind("{% macro m(title) %}{% endmacro %}{{ m(titel=1) }}")
        err = exc_info.value
        assert err.argument == "titel"
        assert err.params == ("title",)

    def test_arguments_see_caller_locals(self):
        call = bind(
            "{% macro m(a) %}{{ a }}{% endmacro %}{% let v = 1 %}{{ m(v) }}"
        ).template.body[2]
        assert call.bound_args[0].value.ref.id == "v#1"

    def test_body_does_not_see_caller_locals(self):
        with pytest.raises(UnknownBindingError) as exc_info:
            bind("{% macro m() %}{{ v }}{% endmacro %}{% let v = 1 %}{{ m() }}")
        assert exc_info.value.scope == "macro 'm'"

    def test_body_sees_context(self):
        unit = bind("{% macro m() %}{{ name }}{% endmacro %}{{ m() }}", {"name": "str"})
        assert unit.macros["page.html::m"].body[0].expr.ref.id == "ctx:name"

    def test_defaults_are_isolated(self):
        with pytest.raises(UnknownBindingError) as exc_info:
            bind("{% let v = 1 %}{% macro m(a=v) %}{% endmacro %}{{ m() }}")
        assert exc_info.value.scope == "defaults of macro 'm'"

    def test_uncalled_macro_is_still_checked(self):
        with pytest.raises(UnknownBindingError) as exc_info:
            bind("{% macro unused() %}{{ nope }}{% endmacro %}")
        assert exc_info.value.name == "nope"

    def test_call_before_definition(self):
        call = bind("{{ m() }}{% macro m() %}x{% endmacro %}").template.body[0]
        assert call.macro_id == "page.html::m"

    def test_unknown_macro(self):
        with pytest.raises(UnknownBindingError) as exc_info:
            bind("{% macro greet() %}{% endmacro %}{{ gret() }}")
        err = exc_info.value
        assert err.what == "macro"
        assert err.suggestion == "Did you mean 'greet'?"

    def test_call_outside_a_bound_unit_is_unknown(self, env):
        (call,) = env.parse("{{ greet() }}", "page.html").body
        resolver = InheritanceResolver(lambda name: env.parse("", name))
        binder = Binder(ContextSchema(), env.filters.snapshot(), resolver)
        with pytest.raises(UnknownBindingError) as exc_info:
            binder._bind_node(call)
        assert exc_info.value.what == "macro"

    def test_direct_recursion(self):
        with pytest.raises(CycleError) as exc_info:
            bind("{% macro m() %}{{ m() }}{% endmacro %}{{ m() }}")
        assert exc_info.value.relation == "macro"
        assert exc_info.value.chain == ("m", "m")

    def test_mutual_recursion(self):
        with pytest.raises(CycleError) as exc_info:
            bind(
                "{% macro a() %}{{ b() }}{% endmacro %}"
                "{% macro b() %}{% call a() %}{% endmacro %}"
                "{{ a() }}"
            )
        assert exc_info.value.chain == ("a", "b", "a")

    def test_uncalled_recursion_is_detected(self):
        with pytest.raises(CycleError):
            bind("{% macro m() %}{{ m() }}{% endmacro %}")


class TestImportsAndIncludes:
    """Macros reached through import scopes and included units."""

    MACROS = {"macros.html": "{% macro greet(who) %}Hi {{ who }}{% endmacro %}"}

    def test_scoped_call(self):
        call = bind(
            '{% import "macros.html" as ui %}{{ ui.greet("x") }}', templates=self.MACROS
        ).template.body[1]
        assert call.macro_id == "macros.html::greet"

    def test_unknown_import_scope(self):
        with pytest.raises(UnknownBindingError) as exc_info:
            bind('{% import "macros.html" as ui %}{{ iu.greet("x") }}', templates=self.MACROS)
        err = exc_info.value
        assert err.what == "import scope"
        assert err.name == "iu"

    def test_unknown_macro_in_scope(self):
        with pytest.raises(UnknownBindingError) as exc_info:
            bind('{% import "macros.html" as ui %}{{ ui.nope() }}', templates=self.MACROS)
        assert exc_info.value.name == "ui.nope"

    def test_include_makes_macros_visible(self):
        call = bind(
            '{% include "macros.html" %}{{ greet("x") }}', templates=self.MACROS
        ).template.body[1]
        assert call.macro_id == "macros.html::greet"

    def test_include_sees_caller_locals(self):
        include = bind(
            '{% let who = "x" %}{% include "part.html" %}',
            templates={"part.html": "{{ who }}"},
        ).template.body[1]
        assert include.body[0].expr.ref.id == "who#1"

    def test_error_in_include_is_attributed_to_it(self):
        with pytest.raises(UnknownBindingError) as exc_info:
            bind('{% include "part.html" %}', templates={"part.html": "{{ nope }}"})
        assert exc_info.value.template == "part.html"

    def test_error_in_parent_block_is_attributed_to_parent(self):
        templates = {"base.html": "{% block a %}{{ nope }}{% endblock %}"}
        with pytest.raises(UnknownBindingError) as exc_info:
            bind('{% extends "base.html" %}', templates=templates)
        assert exc_info.value.template == "base.html"

    def test_error_in_override_is_attributed_to_child(self):
        templates = {"base.html": "{% block a %}ok{% endblock %}"}
        with pytest.raises(UnknownBindingError) as exc_info:
            bind(
                '{% extends "base.html" %}{% block a %}{{ nope }}{% endblock %}',
                templates=templates,
            )
        assert exc_info.value.template == "page.html"


class TestFilters:
    """Filter names resolve against the registry."""

    def test_filter_spec_attached(self):
        output = bind("{{ name | upper }}", {"name": "str"}).template.body[0]
        assert output.expr.spec.name == "upper"

    def test_unknown_filter(self):
        with pytest.raises(UnknownFilterError) as exc_info:
            bind("{{ name | uper }}", {"name": "str"})
        err = exc_info.value
        assert err.name == "uper"
        assert err.suggestion == "Did you mean 'upper'?"
        assert err.code is ErrorCode.UNKNOWN_FILTER
