"""Template source locators for the Kiln environment.

Loaders resolve an ``extends`` / ``include`` / ``import`` name to template
source. They implement `get_source(name)` returning `(source, filename)`;
``source`` may be ``str`` or undecoded ``bytes`` (the lexer validates
UTF-8 so encoding errors point at the offending byte).

Built-in Loaders:
- `FileSystemLoader`: Load from filesystem directories
- `DictLoader`: Load from in-memory dictionary (testing/embedded)
- `ChoiceLoader`: Try multiple loaders in order (theme fallback)
- `FunctionLoader`: Wrap a callable as a loader (quick one-offs)

Custom Loaders:
Implement the Loader protocol:
    ```python
    class DatabaseLoader:
        def get_source(self, name: str) -> tuple[str, str | None]:
            row = db.query("SELECT source FROM templates WHERE name = ?", name)
            if not row:
                raise TemplateNotFoundError(f"Template '{name}' not found")
            return row.source, f"db://{name}"
    ```

Thread-Safety:
Loaders are only read during compilation. All built-in loaders are safe
for concurrent `get_source()` calls.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from difflib import get_close_matches
from pathlib import Path
from typing import Protocol

from kiln.environment.exceptions import TemplateNotFoundError

TemplateSource = str | bytes


class Loader(Protocol):
    """Synchronous name -> source lookup."""

    def get_source(self, name: str) -> tuple[TemplateSource, str | None]: ...


class FileSystemLoader:
    """Load templates from filesystem directories.

    Searches one or more directories for templates by name. The first
    matching file is returned as bytes.

    Example:
        >>> loader = FileSystemLoader(["themes/custom/", "themes/default/"])
        >>> source, filename = loader.get_source("pages/about.html")
        >>> filename
        'themes/custom/pages/about.html'

    Raises:
        TemplateNotFoundError: If template not found in any search path
    """

    __slots__ = ("_paths",)

    def __init__(self, paths: str | Path | Sequence[str | Path]):
        if isinstance(paths, (str, Path)):
            paths = [paths]
        self._paths = [Path(p) for p in paths]

    def get_source(self, name: str) -> tuple[bytes, str]:
        """Load template source bytes from the first directory that has it."""
        for base in self._paths:
            path = base / name
            if path.is_file():
                return path.read_bytes(), str(path)

        raise TemplateNotFoundError(
            f"Template '{name}' not found in: {', '.join(str(p) for p in self._paths)}"
        )


class DictLoader:
    """Load templates from an in-memory dictionary.

    Maps template names to source strings (or bytes). Useful for tests and
    embedded templates.

    Example:
        >>> loader = DictLoader({
        ...     "base.html": "<title>{% block title %}Site{% endblock %}</title>",
        ...     "page.html": '{% extends "base.html" %}{% block title %}Page{% endblock %}',
        ... })
        >>> env = Environment(loader=loader)
        >>> program = env.compile("page.html", {})

    Raises:
        TemplateNotFoundError: If template name not in mapping
    """

    __slots__ = ("_mapping",)

    def __init__(self, mapping: Mapping[str, TemplateSource]):
        self._mapping = mapping

    def get_source(self, name: str) -> tuple[TemplateSource, None]:
        if name not in self._mapping:
            available = sorted(self._mapping.keys())
            msg = f"Template '{name}' not found"
            suggestion = None
            matches = get_close_matches(name, available, n=1, cutoff=0.6)
            if matches:
                suggestion = f"Did you mean '{matches[0]}'?"
            elif available:
                suggestion = f"Available: {', '.join(available[:10])}"
                if len(available) > 10:
                    suggestion += f" ... ({len(available)} total)"
            raise TemplateNotFoundError(msg, suggestion=suggestion)
        return self._mapping[name], None


class ChoiceLoader:
    """Try multiple loaders in order, returning the first match.

    Example:
        >>> loader = ChoiceLoader([
        ...     DictLoader({"nav.html": "<nav>Custom</nav>"}),
        ...     FileSystemLoader("themes/default/"),
        ... ])

    Raises:
        TemplateNotFoundError: If no loader can find the template
    """

    __slots__ = ("_loaders",)

    def __init__(self, loaders: Sequence[Loader]):
        self._loaders = list(loaders)

    def get_source(self, name: str) -> tuple[TemplateSource, str | None]:
        """Try each loader in order, return first match."""
        for loader in self._loaders:
            try:
                return loader.get_source(name)
            except TemplateNotFoundError:
                continue
        raise TemplateNotFoundError(
            f"Template '{name}' not found in any of {len(self._loaders)} loaders"
        )


class FunctionLoader:
    """Wrap a callable as a template loader.

    The function takes a template name and returns:
        - ``str`` or ``bytes``: Template source (filename ``"<function>"``).
        - ``tuple[source, str | None]``: ``(source, filename)``.
        - ``None``: Template not found (raises ``TemplateNotFoundError``).

    Example:
        >>> def load(name):
        ...     if name == "greeting.txt":
        ...         return "Hello, {{ name }}!"
        ...     return None
        >>> env = Environment(loader=FunctionLoader(load))
    """

    __slots__ = ("_load_func",)

    def __init__(
        self,
        load_func: Callable[[str], TemplateSource | tuple[TemplateSource, str | None] | None],
    ):
        self._load_func = load_func

    def get_source(self, name: str) -> tuple[TemplateSource, str | None]:
        """Call the load function and normalize the result."""
        result = self._load_func(name)

        if result is None:
            raise TemplateNotFoundError(f"Template '{name}' not found")

        if isinstance(result, (str, bytes)):
            return result, "<function>"

        return result
