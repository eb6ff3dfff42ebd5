"""Pytest configuration and fixtures for Kiln tests."""

import pytest

from kiln import DictLoader, Environment


@pytest.fixture
def env():
    """Create a basic Kiln Environment (no loader)."""
    return Environment()


@pytest.fixture
def env_suppress():
    """Create an Environment whose unmarked tag edges suppress whitespace."""
    return Environment(whitespace="suppress")


@pytest.fixture
def env_with_loader():
    """Create a Kiln Environment with DictLoader and test templates."""
    loader = DictLoader(
        {
            "base.html": (
                "<html>"
                "<head>{% block head %}<title>{% block title %}Site{% endblock %}</title>"
                "{% endblock %}</head>"
                "<body>{% block body %}{% endblock %}</body>"
                "</html>"
            ),
            "child.html": (
                '{% extends "base.html" %}'
                "{% block title %}{{ super() }} - Child{% endblock %}"
                "{% block body %}Hello {{ name }}{% endblock %}"
            ),
            "grandchild.html": (
                '{% extends "child.html" %}{% block body %}[{{ super() }}]{% endblock %}'
            ),
            "partial.html": "<p>{{ name }}</p>",
            "macros.html": (
                "{% macro greet(who, punct='!') %}Hello {{ who }}{{ punct }}{% endmacro %}"
                "{% macro pair(a, b) %}{{ a }}/{{ b }}{% endmacro %}"
            ),
        }
    )
    return Environment(loader=loader)

