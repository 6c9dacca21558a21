"""Minimal ``{{ name }}`` template rendering.

Substitution is textual. Unknown variables render as an empty string so
plan construction never fails on a template.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

_VAR_RE = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


def render(template: str, variables: Mapping[str, object]) -> str:
    def substitute(m: re.Match[str]) -> str:
        value = variables.get(m.group(1))
        return "" if value is None else str(value)

    return _VAR_RE.sub(substitute, template)


def template_regex(template: str, var: str) -> re.Pattern[str]:
    """Build a regex that matches rendered output and captures ``var``.

    Other variables match lazily. Used to read versions back out of tag names
    rendered from ``git_tag_name``.
    """
    parts: list[str] = []
    pos = 0
    seen = False
    for m in _VAR_RE.finditer(template):
        parts.append(re.escape(template[pos : m.start()]))
        if m.group(1) != var:
            parts.append(".*?")
        elif seen:
            parts.append(f"(?P={var})")
        else:
            parts.append(f"(?P<{var}>.+)")
            seen = True
        pos = m.end()
    parts.append(re.escape(template[pos:]))
    return re.compile("^" + "".join(parts) + "$")
