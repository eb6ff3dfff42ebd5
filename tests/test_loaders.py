"""Tests for template loaders and loader-driven compilation."""

from __future__ import annotations

import pytest

from kiln import (
    ChoiceLoader,
    DictLoader,
    EncodingError,
    Environment,
    FileSystemLoader,
    FunctionLoader,
    ParseError,
    TemplateNotFoundError,
)


@pytest.fixture
def template_dirs(tmp_path):
    custom = tmp_path / "custom"
    default = tmp_path / "default"
    (custom / "pages").mkdir(parents=True)
    (default / "pages").mkdir(parents=True)
    (default / "base.html").write_text("<main>{% block body %}{% endblock %}</main>")
    (default / "pages" / "about.html").write_text(
        '{% extends "base.html" %}{% block body %}default{% endblock %}'
    )
    (custom / "pages" / "about.html").write_text(
        '{% extends "base.html" %}{% block body %}custom{% endblock %}'
    )
    return custom, default


class TestFileSystemLoader:
    """Directory search order and byte sources."""

    def test_returns_bytes_and_path(self, template_dirs):
        _custom, default = template_dirs
        source, filename = FileSystemLoader(default).get_source("base.html")
        assert isinstance(source, bytes)
        assert filename == str(default / "base.html")

    def test_first_directory_wins(self, template_dirs):
        custom, default = template_dirs
        env = Environment(loader=FileSystemLoader([custom, default]))
        program = env.compile("pages/about.html")
        assert program.instructions[0].value == "<main>custom</main>"

    def test_falls_back_to_later_directory(self, template_dirs):
        custom, default = template_dirs
        source, _ = FileSystemLoader([custom, default]).get_source("base.html")
        assert source.startswith(b"<main>")

    def test_single_string_path(self, template_dirs):
        _custom, default = template_dirs
        source, _ = FileSystemLoader(str(default)).get_source("base.html")
        assert source

    def test_missing(self, template_dirs):
        custom, _default = template_dirs
        with pytest.raises(TemplateNotFoundError, match="nope.html"):
            FileSystemLoader(custom).get_source("nope.html")

    def test_directory_is_not_a_template(self, template_dirs):
        custom, _default = template_dirs
        with pytest.raises(TemplateNotFoundError):
            FileSystemLoader(custom).get_source("pages")

    def test_invalid_utf8_on_disk(self, tmp_path):
        (tmp_path / "bad.txt").write_bytes(b"line one\nbad \xc3(")
        env = Environment(loader=FileSystemLoader(tmp_path))
        with pytest.raises(EncodingError) as exc_info:
            env.compile("bad.txt")
        err = exc_info.value
        assert err.template == "bad.txt"
        assert err.lineno == 2
        assert err.col_offset == 4
        assert err.span.start == len(b"line one\nbad ")

    def test_parse_error_reports_file_path(self, tmp_path):
        (tmp_path / "broken.html").write_text("{% if ok %}")
        env = Environment(loader=FileSystemLoader(tmp_path))
        with pytest.raises(ParseError) as exc_info:
            env.compile("broken.html", {"ok": "bool"})
        assert exc_info.value.template == str(tmp_path / "broken.html")


class TestDictLoader:
    """In-memory mapping."""

    def test_source_and_no_filename(self):
        assert DictLoader({"a.html": "A"}).get_source("a.html") == ("A", None)

    def test_close_match_suggestion(self):
        with pytest.raises(TemplateNotFoundError) as exc_info:
            DictLoader({"base.html": ""}).get_source("bsae.html")
        assert exc_info.value.suggestion == "Did you mean 'base.html'?"

    def test_lists_available_templates(self):
        with pytest.raises(TemplateNotFoundError) as exc_info:
            DictLoader({"a.html": "", "b.html": ""}).get_source("zzz")
        assert exc_info.value.suggestion == "Available: a.html, b.html"

    def test_truncates_long_listing(self):
        mapping = {f"t{i:02}.txt": "" for i in range(12)}
        with pytest.raises(TemplateNotFoundError) as exc_info:
            DictLoader(mapping).get_source("zzz")
        assert exc_info.value.suggestion.endswith("... (12 total)")

    def test_bytes_values(self):
        env = Environment(loader=DictLoader({"a.txt": "é{{ x }}".encode()}))
        assert env.compile("a.txt", {"x": "str"}).instructions[0].value == "é"

    def test_missing_include_names_template(self):
        env = Environment(loader=DictLoader({"page.html": '{% include "nav.html" %}'}))
        with pytest.raises(TemplateNotFoundError, match="nav.html"):
            env.compile("page.html")


class TestChoiceLoader:
    """Ordered fallback across loaders."""

    def test_first_match(self):
        loader = ChoiceLoader([DictLoader({"a": "first"}), DictLoader({"a": "second"})])
        assert loader.get_source("a") == ("first", None)

    def test_fallback(self, template_dirs):
        _custom, default = template_dirs
        loader = ChoiceLoader([DictLoader({"nav.html": "<nav/>"}), FileSystemLoader(default)])
        source, filename = loader.get_source("base.html")
        assert source.startswith(b"<main>")
        assert filename.endswith("base.html")

    def test_overrides_theme_parent(self, template_dirs):
        _custom, default = template_dirs
        loader = ChoiceLoader(
            [
                DictLoader({"base.html": "<div>{% block body %}{% endblock %}</div>"}),
                FileSystemLoader(default),
            ]
        )
        program = Environment(loader=loader).compile("pages/about.html")
        assert program.instructions[0].value == "<div>default</div>"

    def test_none_match(self):
        with pytest.raises(TemplateNotFoundError, match="any of 2 loaders"):
            ChoiceLoader([DictLoader({}), DictLoader({})]).get_source("a")


class TestFunctionLoader:
    """Callable loaders."""

    def test_string_result(self):
        loader = FunctionLoader(lambda name: "Hello" if name == "hi.txt" else None)
        assert loader.get_source("hi.txt") == ("Hello", "<function>")

    def test_tuple_result(self):
        loader = FunctionLoader(lambda name: ("Hello", f"db://{name}"))
        assert loader.get_source("hi.txt") == ("Hello", "db://hi.txt")

    def test_none_is_missing(self):
        with pytest.raises(TemplateNotFoundError, match="hi.txt"):
            FunctionLoader(lambda name: None).get_source("hi.txt")

    def test_compile_through_function(self):
        calls = []

        def load(name):
            calls.append(name)
            return {"page.txt": '{% include "p.txt" %}{% include "p.txt" %}', "p.txt": "P"}.get(
                name
            )

        program = Environment(loader=FunctionLoader(load)).compile("page.txt")
        assert program.instructions[0].value == "PP"
        # Each unit is fetched once per compilation run
        assert calls == ["page.txt", "p.txt"]
