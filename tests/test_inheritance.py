"""Tests for inheritance resolution: extends chains, blocks, super() and includes."""

from __future__ import annotations

import pytest

from kiln import CycleError, DictLoader, Environment, NoSuperBlockError, TemplateNotFoundError
from kiln.compiler.inheritance import InheritanceResolver


def make_resolver(templates: dict[str, str]) -> tuple[InheritanceResolver, callable]:
    env = Environment(loader=DictLoader(templates))

    def lookup(name: str):
        source, _filename = env.get_source(name)
        return env.parse(source, name)

    return InheritanceResolver(lookup), lookup


def resolve(templates: dict[str, str], root: str):
    resolver, lookup = make_resolver(templates)
    return resolver.resolve(lookup(root))


def text(nodes) -> str:
    """Literal text of a flattened body, entering blocks and includes."""
    parts = []
    for node in nodes:
        kind = type(node).__name__
        if kind == "Data":
            parts.append(node.value)
        elif kind in ("Block", "Include"):
            parts.append(text(node.body))
    return "".join(parts)


class TestChains:
    """extends chain construction and the block table."""

    def test_chain_and_skeleton(self):
        unit = resolve(
            {
                "base.html": "<{% block title %}Site{% endblock %}>",
                "child.html": '{% extends "base.html" %}{% block title %}Child{% endblock %}',
            },
            "child.html",
        )
        assert unit.chain == ("child.html", "base.html")
        assert unit.skeleton == "base.html"
        assert [o.template for o in unit.block_table["title"]] == ["child.html", "base.html"]
        assert unit.block_table.rendering("title").template == "child.html"

    def test_text_outside_blocks_in_child_is_dropped(self):
        unit = resolve(
            {
                "base.html": "[{% block a %}{% endblock %}]",
                "child.html": '{% extends "base.html" %}ignored{% block a %}A{% endblock %}',
            },
            "child.html",
        )
        assert text(unit.template.body) == "[A]"

    def test_flattened_template_has_no_extends(self):
        unit = resolve(
            {"base.html": "x", "child.html": '{% extends "base.html" %}'},
            "child.html",
        )
        assert unit.template.extends is None
        assert unit.template.name == "child.html"
        assert text(unit.template.body) == "x"

    def test_resolution_is_memoized(self):
        resolver, lookup = make_resolver({"a.html": "{% block x %}{% endblock %}"})
        root = lookup("a.html")
        assert resolver.resolve(root) is resolver.resolve(root)


class TestBlockOverrides:
    """Most-derived override wins; super() reaches the next one up."""

    BASE = {"c.html": "<{% block x %}C{% endblock %}>"}

    def test_super_reaches_nearest_ancestor(self):
        templates = {
            **self.BASE,
            "b.html": '{% extends "c.html" %}{% block x %}B{% endblock %}',
            "a.html": '{% extends "b.html" %}{% block x %}A[{{ super() }}]{% endblock %}',
        }
        assert text(resolve(templates, "a.html").template.body) == "<A[B]>"

    def test_super_skips_non_overriding_ancestor(self):
        templates = {
            **self.BASE,
            "b.html": '{% extends "c.html" %}',
            "a.html": '{% extends "b.html" %}{% block x %}A[{{ super() }}]{% endblock %}',
        }
        assert text(resolve(templates, "a.html").template.body) == "<A[C]>"

    def test_override_without_super_replaces(self):
        templates = {
            **self.BASE,
            "b.html": '{% extends "c.html" %}{% block x %}B{% endblock %}',
            "a.html": '{% extends "b.html" %}{% block x %}A{% endblock %}',
        }
        assert text(resolve(templates, "a.html").template.body) == "<A>"

    def test_super_chains_through_every_level(self):
        templates = {
            "a.html": "{% block x %}a{% endblock %}",
            "b.html": '{% extends "a.html" %}{% block x %}b{{ super() }}{% endblock %}',
            "c.html": '{% extends "b.html" %}{% block x %}c{{ super() }}{% endblock %}',
        }
        assert text(resolve(templates, "c.html").template.body) == "cba"

    def test_resolved_block_records_origin(self):
        templates = {
            **self.BASE,
            "b.html": '{% extends "c.html" %}{% block x %}B{% endblock %}',
        }
        unit = resolve(templates, "b.html")
        assert unit.template.blocks["x"].origin == "b.html"

    def test_nested_block_override(self):
        templates = {
            "base.html": "{% block outer %}[{% block inner %}i{% endblock %}]{% endblock %}",
            "child.html": '{% extends "base.html" %}{% block inner %}I{% endblock %}',
        }
        assert text(resolve(templates, "child.html").template.body) == "[I]"

    def test_outer_override_keeps_inner_via_super(self):
        templates = {
            "base.html": "{% block outer %}[{% block inner %}i{% endblock %}]{% endblock %}",
            "child.html": '{% extends "base.html" %}{% block outer %}O{{ super() }}{% endblock %}',
        }
        assert text(resolve(templates, "child.html").template.body) == "O[i]"

    def test_unplaced_override_is_ignored(self):
        templates = {
            "base.html": "{% block a %}A{% endblock %}",
            "child.html": '{% extends "base.html" %}{% block nowhere %}X{% endblock %}',
        }
        unit = resolve(templates, "child.html")
        assert text(unit.template.body) == "A"
        assert "nowhere" not in unit.template.blocks

    def test_block_inside_if_is_resolved(self):
        templates = {
            "base.html": "{% if ok %}{% block a %}base{% endblock %}{% endif %}",
            "child.html": '{% extends "base.html" %}{% block a %}child{% endblock %}',
        }
        if_node = resolve(templates, "child.html").template.body[0]
        assert text(if_node.body) == "child"


class TestSuperErrors:
    """super() without a less-derived definition."""

    def test_super_in_root_only_block(self):
        with pytest.raises(NoSuperBlockError) as exc_info:
            resolve({"a.html": "{% block x %}{{ super() }}{% endblock %}"}, "a.html")
        assert exc_info.value.block == "x"
        assert exc_info.value.template == "a.html"

    def test_super_in_unplaced_override(self):
        templates = {
            "base.html": "{% block a %}{% endblock %}",
            "child.html": '{% extends "base.html" %}{% block y %}{{ super() }}{% endblock %}',
        }
        with pytest.raises(NoSuperBlockError) as exc_info:
            resolve(templates, "child.html")
        assert exc_info.value.block == "y"
        assert exc_info.value.template == "child.html"

    def test_super_outside_any_block(self):
        with pytest.raises(NoSuperBlockError) as exc_info:
            resolve({"a.html": "x{{ super() }}"}, "a.html")
        assert exc_info.value.block is None


class TestCycles:
    """Cycles in extends and include graphs."""

    def test_extends_cycle(self):
        templates = {
            "a.html": '{% extends "b.html" %}',
            "b.html": '{% extends "a.html" %}',
        }
        with pytest.raises(CycleError) as exc_info:
            resolve(templates, "a.html")
        assert exc_info.value.relation == "extends"
        assert exc_info.value.chain == ("a.html", "b.html", "a.html")

    def test_self_extends(self):
        with pytest.raises(CycleError) as exc_info:
            resolve({"a.html": '{% extends "a.html" %}'}, "a.html")
        assert exc_info.value.chain == ("a.html", "a.html")

    def test_include_cycle(self):
        templates = {
            "a.html": '{% include "b.html" %}',
            "b.html": '{% include "a.html" %}',
        }
        with pytest.raises(CycleError) as exc_info:
            resolve(templates, "a.html")
        assert exc_info.value.relation == "include"
        assert exc_info.value.chain == ("a.html", "b.html", "a.html")

    def test_self_include(self):
        with pytest.raises(CycleError) as exc_info:
            resolve({"a.html": 'x{% include "a.html" %}'}, "a.html")
        assert exc_info.value.relation == "include"
        assert exc_info.value.chain == ("a.html", "a.html")

    def test_diamond_include_is_not_a_cycle(self):
        templates = {
            "a.html": '{% include "b.html" %}{% include "c.html" %}',
            "b.html": '{% include "d.html" %}',
            "c.html": '{% include "d.html" %}',
            "d.html": "d",
        }
        assert text(resolve(templates, "a.html").template.body) == "dd"


class TestIncludes:
    """Included units are resolved with their own chain and blocks."""

    def test_include_splices_body(self):
        unit = resolve({"page": "<{% include 'part' %}>", "part": "P"}, "page")
        include = unit.template.body[1]
        assert include.origin == "part"
        assert text(unit.template.body) == "<P>"

    def test_included_blocks_stay_isolated(self):
        templates = {
            "page": "{% block x %}P{% endblock %}{% include 'part' %}",
            "part": "{% block x %}Q{% endblock %}",
        }
        assert text(resolve(templates, "page").template.body) == "PQ"

    def test_child_override_does_not_reach_included_unit(self):
        templates = {
            "page": "{% block x %}P{% endblock %}{% include 'part' %}",
            "part": "{% block x %}Q{% endblock %}",
            "child": "{% extends 'page' %}{% block x %}C{% endblock %}",
        }
        assert text(resolve(templates, "child").template.body) == "CQ"

    def test_included_template_with_its_own_chain(self):
        templates = {
            "page": "[{% include 'card' %}]",
            "card_base": "<{% block body %}empty{% endblock %}>",
            "card": "{% extends 'card_base' %}{% block body %}card{% endblock %}",
        }
        assert text(resolve(templates, "page").template.body) == "[<card>]"


class TestMissingTemplates:
    """Unknown names are reported against the referring template."""

    def test_missing_parent(self):
        with pytest.raises(TemplateNotFoundError) as exc_info:
            resolve({"child.html": '{% extends "missing.html" %}'}, "child.html")
        err = exc_info.value
        assert err.template == "child.html"
        assert err.span is not None
        assert "missing.html" in err.message

    def test_missing_include(self):
        with pytest.raises(TemplateNotFoundError) as exc_info:
            resolve({"page.html": 'a\n{% include "gone.html" %}'}, "page.html")
        assert exc_info.value.template == "page.html"
        assert exc_info.value.lineno == 2


class TestMacroScope:
    """Macros visible from a template."""

    MACROS = "{% macro greet(who) %}Hi {{ who }}{% endmacro %}"

    def test_own_and_chain_macros(self):
        templates = {
            "base.html": "{% macro a() %}a{% endmacro %}",
            "child.html": '{% extends "base.html" %}{% macro b() %}b{% endmacro %}',
        }
        resolver, _lookup = make_resolver(templates)
        scope = resolver.macro_scope("child.html")
        assert set(scope.macros) == {"a", "b"}

    def test_derived_macro_wins(self):
        templates = {
            "base.html": "{% macro a() %}base{% endmacro %}",
            "child.html": '{% extends "base.html" %}{% macro a() %}child{% endmacro %}',
        }
        resolver, _lookup = make_resolver(templates)
        assert resolver.macro_scope("child.html").macros["a"].template == "child.html"

    def test_included_macros_are_visible(self):
        resolver, _lookup = make_resolver(
            {"macros.html": self.MACROS, "page.html": "{% include 'macros.html' %}"}
        )
        assert "greet" in resolver.macro_scope("page.html").macros

    def test_import_alias_scope(self):
        resolver, _lookup = make_resolver(
            {"macros.html": self.MACROS, "page.html": "{% import 'macros.html' as ui %}"}
        )
        scope = resolver.macro_scope("page.html")
        assert scope.macros == {}
        assert "greet" in scope.imports["ui"].macros

    def test_import_cycle(self):
        resolver, _lookup = make_resolver(
            {
                "a.html": "{% import 'b.html' as b %}",
                "b.html": "{% import 'a.html' as a %}",
            }
        )
        with pytest.raises(CycleError) as exc_info:
            resolver.macro_scope("a.html")
        assert exc_info.value.relation == "import"
