"""Jinja2 rendering for attachment paths and mailbox names.

Templates get one extra filter, ``escape_filename``, that turns an
arbitrary string into something usable as a single path segment::

    {{user | lower}}/{{file_name | escape_filename}}
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import jinja2

_REPLACEMENTS: dict[str, str] = {
    "<": "_",
    ">": "_",
    ":": "_",
    '"': "_",
    "/": "__",
    "\\": "__",
    "|": "#",
    "?": "#",
    "*": "#",
}


class TemplateRenderError(Exception):
    """Template could not be compiled or evaluated."""


def _is_control(char: str) -> bool:
    code = ord(char)
    return code < 0x20 or 0x7F <= code <= 0x9F


def escape_filename(value: Any) -> str:
    """Return *value* as a filename that is safe on Windows, macOS and Linux.

    Every input character maps to one or more output characters; nothing
    is dropped.  Path separators become ``__`` so they stay distinguishable
    from a plain underscore.
    """
    text = str(value)
    out: list[str] = []
    for char in text:
        if _is_control(char):
            out.append("_")
        else:
            out.append(_REPLACEMENTS.get(char, char))
    return "".join(out)


def create_template_engine() -> jinja2.Environment:
    """Build a Jinja2 environment with ``escape_filename`` registered."""
    env = jinja2.Environment(
        autoescape=False,
        undefined=jinja2.StrictUndefined,
        keep_trailing_newline=False,
    )
    env.filters["escape_filename"] = escape_filename
    return env


class TemplateRenderer:
    """Renders ad-hoc template strings against a context mapping."""

    def __init__(self, env: jinja2.Environment | None = None) -> None:
        self._env = env or create_template_engine()

    def render(self, template: str, context: Mapping[str, Any]) -> str:
        try:
            return self._env.from_string(template).render(**context)
        except (jinja2.TemplateError, TypeError, ValueError, ArithmeticError) as exc:
            raise TemplateRenderError(str(exc)) from exc
