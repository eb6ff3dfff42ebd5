"""Tests for escape modes and filter pipeline validation."""

from __future__ import annotations

import pytest

from kiln import (
    ApplyFilters,
    EmitExpr,
    Environment,
    ErrorCode,
    EscapeMode,
    FilterCall,
    FilterError,
    FilterRegistry,
    FilterSpec,
    FilterTypeError,
    UnknownFilterError,
)
from kiln.compiler.escaping import split_filters
from kiln.schema import FLOAT, INT, STR, ListType, MapType, OpaqueType, RecordType

from .helpers import body_without_macros

SCHEMA = {
    "name": "str",
    "count": "int",
    "price": "float",
    "items": "list[str]",
    "nums": "list[int]",
    "post": "Post",
    "user": {"name": "str", "age": "int"},
    "thing": "any",
}


def output(env: Environment, source: str, name: str = "page.html") -> EmitExpr:
    (instruction,) = body_without_macros(env.compile_string(source, SCHEMA, name=name))
    return instruction


class TestEscapeModes:
    """Escape mode recorded on each output."""

    def test_html_by_extension(self, env):
        assert output(env, "{{ name }}").escape is EscapeMode.HTML

    def test_none_for_text(self, env):
        assert output(env, "{{ name }}", name="page.txt").escape is EscapeMode.NONE

    def test_safe_disables_escaping(self, env):
        expr = output(env, "{{ name | safe }}")
        assert expr.escape is EscapeMode.NONE
        assert expr.filters == (FilterCall("safe"),)

    def test_safe_anywhere_in_chain(self, env):
        expr = output(env, "{{ name | escape | upper }}")
        assert expr.escape is EscapeMode.NONE
        assert [f.name for f in expr.filters] == ["escape", "upper"]

    def test_ordinary_filter_keeps_escaping(self, env):
        assert output(env, "{{ name | upper }}").escape is EscapeMode.HTML

    def test_environment_escape_overrides_extension(self):
        assert output(Environment(escape="none"), "{{ name }}").escape is EscapeMode.NONE
        assert (
            output(Environment(escape="html"), "{{ name }}", name="a.txt").escape
            is EscapeMode.HTML
        )

    def test_filter_chain_order_and_root(self, env):
        expr = output(env, "{{ name | trim | truncate(10, end='..') }}")
        assert expr.expr.name == "name"
        assert [f.name for f in expr.filters] == ["trim", "truncate"]
        truncate = expr.filters[1]
        assert truncate.args[0].value == 10
        assert truncate.kwargs[0][0] == "end"

    def test_split_filters_without_filters(self, env):
        node = env.parse("{{ name }}").body[0]
        assert split_filters(node.expr) == (node.expr, ())


class TestFilterArguments:
    """Argument counts and keyword names against the contract."""

    def test_too_many_arguments(self, env):
        with pytest.raises(FilterError) as exc_info:
            output(env, "{{ name | upper(1) }}")
        err = exc_info.value
        assert err.filter_name == "upper"
        assert err.code is ErrorCode.FILTER_ARGUMENTS
        assert "at most 0" in err.message

    def test_unknown_keyword(self, env):
        with pytest.raises(FilterError) as exc_info:
            output(env, "{{ name | truncate(size=3) }}")
        err = exc_info.value
        assert "size" in err.message
        assert err.suggestion == "'truncate' accepts: length, killwords, end, leeway"

    def test_repeated_argument(self, env):
        with pytest.raises(FilterError, match="multiple values"):
            output(env, "{{ name | truncate(1, length=2) }}")

    def test_missing_required_argument(self, env):
        with pytest.raises(FilterError, match="missing required argument"):
            output(env, "{{ name | replace('a') }}")

    def test_required_by_keyword(self, env):
        expr = output(env, "{{ name | replace(old='a', new='b') }}")
        assert expr.filters[0].name == "replace"


class TestFilterTypes:
    """Inferred input types against accepted kinds."""

    def test_int_into_string_filter(self, env):
        with pytest.raises(FilterTypeError) as exc_info:
            output(env, "{{ count | upper }}")
        err = exc_info.value
        assert err.expected == "str"
        assert err.actual == "int"
        assert err.code is ErrorCode.FILTER_TYPE

    def test_opaque_type_rejected(self, env):
        with pytest.raises(FilterTypeError) as exc_info:
            output(env, "{{ post | length }}")
        assert exc_info.value.actual == "Post"

    def test_chain_result_type_flows(self, env):
        with pytest.raises(FilterTypeError) as exc_info:
            output(env, "{{ name | length | upper }}")
        assert exc_info.value.filter_name == "upper"

    def test_item_type_flows_through_first(self, env):
        assert output(env, "{{ items | first | upper }}").filters[1].name == "upper"

    def test_number_accepts_int_and_float(self, env):
        output(env, "{{ price | round }}")
        output(env, "{{ count | abs }}")

    def test_any_is_accepted(self, env):
        output(env, "{{ thing | upper }}")

    def test_record_field_type(self, env):
        with pytest.raises(FilterTypeError):
            output(env, "{{ user.age | upper }}")

    def test_loop_target_type(self, env):
        with pytest.raises(FilterTypeError):
            env.compile_string(
                "{% for n in nums %}{{ n | upper }}{% endfor %}", SCHEMA, name="a.html"
            )

    def test_let_value_type(self, env):
        with pytest.raises(FilterTypeError):
            env.compile_string("{% let n = 1 %}{{ n | upper }}", SCHEMA, name="a.html")

    def test_filter_in_condition(self, env):
        with pytest.raises(FilterTypeError):
            env.compile_string("{% if count | upper %}x{% endif %}", SCHEMA, name="a.html")

    def test_filter_in_loop_iterable(self, env):
        with pytest.raises(FilterTypeError):
            env.compile_string("{% for c in count | list %}{% endfor %}", SCHEMA, name="a.html")

    def test_filter_in_macro_default(self, env):
        with pytest.raises(FilterTypeError) as exc_info:
            env.compile_string(
                "{% macro m(a=count | upper) %}{{ a }}{% endmacro %}", SCHEMA, name="a.html"
            )
        assert exc_info.value.template == "a.html"

    def test_filter_in_macro_argument(self, env):
        with pytest.raises(FilterTypeError):
            env.compile_string(
                "{% macro m(a) %}{{ a }}{% endmacro %}{{ m(count | upper) }}",
                SCHEMA,
                name="a.html",
            )

    def test_nested_filter_in_argument(self, env):
        with pytest.raises(FilterTypeError):
            output(env, "{{ name | default(count | upper) }}")


class TestFilterBlocks:
    """{% filter %} chains are checked with the rendered body as a string input."""

    def test_chain_becomes_apply_filters(self, env):
        (block,) = body_without_macros(
            env.compile_string(
                "{% filter upper | truncate(8) %}{{ name }}{% endfilter %}", SCHEMA, name="a.html"
            )
        )
        assert isinstance(block, ApplyFilters)
        assert [f.name for f in block.filters] == ["upper", "truncate"]
        (inner,) = block.body
        assert inner.escape is EscapeMode.HTML

    def test_body_text_is_a_string(self, env):
        with pytest.raises(FilterTypeError) as exc_info:
            env.compile_string("{% filter join %}x{% endfilter %}", SCHEMA, name="a.html")
        err = exc_info.value
        assert err.filter_name == "join"
        assert err.actual == "str"

    def test_chain_result_type_flows(self, env):
        with pytest.raises(FilterTypeError) as exc_info:
            env.compile_string(
                "{% filter length | upper %}x{% endfilter %}", SCHEMA, name="a.html"
            )
        assert exc_info.value.filter_name == "upper"

    def test_arguments_are_checked(self, env):
        with pytest.raises(FilterError, match="at most"):
            env.compile_string("{% filter upper(1) %}x{% endfilter %}", SCHEMA, name="a.html")

    def test_unknown_filter(self, env):
        with pytest.raises(UnknownFilterError):
            env.compile_string("{% filter nope %}x{% endfilter %}", SCHEMA, name="a.html")

    def test_filters_inside_the_body(self, env):
        with pytest.raises(FilterTypeError):
            env.compile_string(
                "{% filter upper %}{{ count | upper }}{% endfilter %}", SCHEMA, name="a.html"
            )


class TestFilterSpec:
    """FilterSpec.accepts_type for each type descriptor."""

    @pytest.mark.parametrize(
        ("accepts", "type_", "ok"),
        [
            (frozenset({"str"}), STR, True),
            (frozenset({"str"}), INT, False),
            (frozenset({"number"}), FLOAT, True),
            (frozenset({"iterable"}), STR, True),
            (frozenset({"iterable"}), ListType(INT), True),
            (frozenset({"iterable"}), MapType(STR, INT), True),
            (frozenset({"list"}), MapType(STR, INT), False),
            (frozenset({"record"}), RecordType((("a", INT),)), True),
            (frozenset({"Post"}), RecordType((("a", INT),), name="Post"), True),
            (frozenset({"Post"}), OpaqueType("Post"), True),
            (frozenset({"str"}), OpaqueType("Post"), False),
            (None, OpaqueType("Post"), True),
        ],
    )
    def test_accepts_type(self, accepts, type_, ok):
        assert FilterSpec("f", accepts=accepts).accepts_type(type_) is ok

    def test_result_type_function(self):
        spec = FilterSpec("first", returns=lambda t: t.item)
        assert spec.result_type(ListType(INT)) == INT

    def test_unknown_result_is_any(self):
        assert FilterSpec("f").result_type(INT).kind == "any"


class TestCustomFilters:
    """Host-registered filter contracts."""

    def test_dict_contract(self):
        env = Environment(filters={"money": {"accepts": ["number"], "returns": "str"}})
        expr = output(env, "{{ price | money | upper }}")
        assert [f.name for f in expr.filters] == ["money", "upper"]

    def test_contract_is_enforced(self):
        env = Environment(filters={"money": {"accepts": "number", "returns": "str"}})
        with pytest.raises(FilterTypeError) as exc_info:
            output(env, "{{ name | money }}")
        assert exc_info.value.expected == "number"

    def test_custom_params(self):
        env = Environment(filters={"pad": {"params": ["width"], "required": 1}})
        with pytest.raises(FilterError, match="width"):
            output(env, "{{ name | pad }}")
        output(env, "{{ name | pad(4) }}")

    def test_custom_safe_filter(self):
        env = Environment(filters={"markdown": FilterSpec("markdown", marks_safe=True)})
        assert output(env, "{{ name | markdown }}").escape is EscapeMode.NONE

    def test_add_filter_after_construction(self, env):
        env.add_filter("slug", {"accepts": ["str"], "returns": "str"})
        assert output(env, "{{ name | slug }}").filters[0].name == "slug"


class TestFilterRegistry:
    """Copy-on-write registry behavior."""

    def test_builtins_present(self):
        registry = FilterRegistry()
        assert "upper" in registry
        assert registry["upper"].name == "upper"

    def test_snapshot_is_stable(self):
        registry = FilterRegistry()
        snapshot = registry.snapshot()
        registry["new"] = {"returns": "str"}
        assert "new" not in snapshot
        assert "new" in registry

    def test_spec_renamed_to_key(self):
        registry = FilterRegistry({"alias": FilterSpec("other")})
        assert registry["alias"].name == "alias"

    def test_update_and_len(self):
        registry = FilterRegistry()
        before = len(registry)
        registry.update({"a": {}, "b": {}})
        assert len(registry) == before + 2
        assert registry.get("missing") is None
