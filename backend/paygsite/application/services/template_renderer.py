import html
import re
from typing import Any

TEMPLATE_VAR_PATTERN = re.compile(r"{{\s*([a-zA-Z0-9_.-]+)\s*}}")


def _resolve_path(variables: dict[str, Any], path: str) -> str:
    current: Any = variables
    for token in path.split("."):
        if isinstance(current, dict) and token in current:
            current = current[token]
        else:
            return ""
    if current is None:
        return ""
    return str(current)


def render_template(template: str, variables: dict[str, Any], *, escape_html: bool = False) -> str:
    def _replace(match: re.Match[str]) -> str:
        value = _resolve_path(variables, match.group(1).strip())
        return html.escape(value) if escape_html else value

    return TEMPLATE_VAR_PATTERN.sub(_replace, template)
