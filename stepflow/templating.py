"""Placeholder substitution for step payloads."""

from __future__ import annotations

import json
import re
from typing import Any, Mapping

PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


def render(template: str, context: Mapping[str, str]) -> str:
    """Replace ``{{key}}`` tokens with values from ``context``.

    Unknown keys are left untouched so the literal token survives.
    """

    def _substitute(match: re.Match[str]) -> str:
        key = match.group(1)
        if key in context:
            return str(context[key])
        return match.group(0)

    return PLACEHOLDER.sub(_substitute, template)


def render_optional(template: str | None, context: Mapping[str, str]) -> str | None:
    return None if template is None else render(template, context)


def render_structure(value: Any, context: Mapping[str, str]) -> Any:
    """Render a JSON-compatible structure by round-tripping through JSON text.

    Substituted values are JSON-escaped so quotes or backslashes in the
    context cannot break the document.
    """

    def _substitute(match: re.Match[str]) -> str:
        key = match.group(1)
        if key in context:
            return json.dumps(str(context[key]))[1:-1]
        return match.group(0)

    serialized = json.dumps(value)
    return json.loads(PLACEHOLDER.sub(_substitute, serialized))


def placeholders(template: str) -> list[str]:
    """Return the placeholder names referenced in ``template`` in order."""
    return PLACEHOLDER.findall(template)
