"""
YAML prompt loader.

Each role (planner, implementer, repairer) has one YAML file in llm/prompts/
holding its system prompt, output JSON schema and named templates. Parsed
files are cached after first load.
"""

from pathlib import Path
from typing import Any

import yaml

_PROMPTS_DIR = Path(__file__).parent / "prompts"
_cache: dict[str, dict] = {}


class _SafeMap(dict):
    """Renders missing template variables as a visible marker."""

    def __missing__(self, key: str) -> str:
        return f"<MISSING:{key}>"


def _load_yaml(role: str) -> dict:
    if role in _cache:
        return _cache[role]

    path = _PROMPTS_DIR / f"{role}.yaml"
    if not path.exists():
        raise FileNotFoundError(
            f"Prompt file not found: {path}. Available roles: {list_available_roles()}"
        )

    with open(path, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}

    _cache[role] = data
    return data


def get_system_prompt(role: str) -> str:
    return _load_yaml(role).get("system", "").strip()


def get_schema(role: str) -> dict:
    return _load_yaml(role).get("schema", {})


def render_template(role: str, template_key: str, variables: dict[str, Any]) -> str:
    """
    Render a named template with str.format_map.

    Missing variables show up as '<MISSING:name>' so incomplete contexts are
    visible in logs instead of raising.
    """
    templates = _load_yaml(role).get("templates", {})
    if template_key not in templates:
        raise KeyError(
            f"Template '{template_key}' not found for role '{role}'. "
            f"Available: {list(templates)}"
        )
    return templates[template_key].format_map(_SafeMap(variables))


def list_available_roles() -> list[str]:
    return sorted(p.stem for p in _PROMPTS_DIR.glob("*.yaml"))


def invalidate_cache(role: str | None = None) -> None:
    """Clear cached prompts. Used in tests to reload modified YAML."""
    if role is None:
        _cache.clear()
    else:
        _cache.pop(role, None)
