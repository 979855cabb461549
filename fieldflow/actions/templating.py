"""``{{ var }}`` substitution shared by the notification and HTTP handlers."""

import re
from typing import Any, Mapping

PLACEHOLDER = re.compile(r"\{\{\s*([\w.\-]+)\s*\}\}")


def render_template(template: Any, variables: Mapping[str, Any]) -> Any:
    """Replace known placeholders; unknown ones are left as written."""
    if not isinstance(template, str):
        return template

    def _sub(match: re.Match) -> str:
        key = match.group(1)
        if key not in variables:
            return match.group(0)
        value = variables[key]
        return "" if value is None else str(value)

    return PLACEHOLDER.sub(_sub, template)


def interpolate(value: Any, variables: Mapping[str, Any]) -> Any:
    """Render every string nested inside dicts and lists."""
    if isinstance(value, str):
        return render_template(value, variables)
    if isinstance(value, list):
        return [interpolate(item, variables) for item in value]
    if isinstance(value, dict):
        return {k: interpolate(v, variables) for k, v in value.items()}
    return value
