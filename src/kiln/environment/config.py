"""Compiler configuration: delimiter syntax and escape modes.

Configuration is plain immutable data handed to ``Environment``; reading
it from files is left to the host integration.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from pathlib import PurePosixPath

from kiln.environment.exceptions import ConfigError
from kiln.utils.constants import EXTENSION_OUTPUT_TYPES, UNKNOWN_EXTENSION_OUTPUT_TYPE


class EscapeMode(Enum):
    """Transformation applied to an expression's text before output."""

    HTML = "html"
    NONE = "none"

    @classmethod
    def from_name(cls, name: str | EscapeMode) -> EscapeMode:
        if isinstance(name, EscapeMode):
            return name
        try:
            return cls(name.lower())
        except ValueError:
            raise ConfigError(
                f"invalid escape mode: {name!r}",
                suggestion="Use 'html' or 'none'",
            ) from None


def _output_type(name: str | None) -> tuple[str, str]:
    extension = ""
    if name and not name.startswith("<"):
        extension = PurePosixPath(name).suffix.lstrip(".").lower()
    return EXTENSION_OUTPUT_TYPES.get(extension, UNKNOWN_EXTENSION_OUTPUT_TYPE)


def escape_mode_for(name: str | None) -> EscapeMode:
    """Infer the escape mode for a template from its file extension.

    Unknown extensions escape as HTML, and ``mime_type_for`` reports
    them as ``text/html``.

    Example:
        >>> escape_mode_for("page.html")
        <EscapeMode.HTML: 'html'>
        >>> escape_mode_for("notes.txt")
        <EscapeMode.NONE: 'none'>
    """
    return EscapeMode(_output_type(name)[0])


def mime_type_for(name: str | None) -> str:
    return _output_type(name)[1]


@dataclass(frozen=True, slots=True)
class Syntax:
    """Delimiter set for the three tag families.

    Validated on construction:
        - every delimiter is at least two characters long
        - no delimiter contains whitespace
        - no start delimiter is a prefix of another start delimiter

    Example:
        >>> Syntax(block_start="<%", block_end="%>", expr_start="<<", expr_end=">>")
    """

    block_start: str = "{%"
    block_end: str = "%}"
    expr_start: str = "{{"
    expr_end: str = "}}"
    comment_start: str = "{#"
    comment_end: str = "#}"

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if len(value) < 2:
                raise ConfigError(f"delimiters must be at least two characters long: {value!r}")
            if any(c.isspace() for c in value):
                raise ConfigError(f"delimiters may not contain white spaces: {value!r}")

        for s1, s2 in (
            (self.block_start, self.expr_start),
            (self.block_start, self.comment_start),
            (self.expr_start, self.comment_start),
        ):
            if s1.startswith(s2) or s2.startswith(s1):
                raise ConfigError(
                    f"a delimiter may not be the prefix of another delimiter: {s1!r} vs {s2!r}"
                )
