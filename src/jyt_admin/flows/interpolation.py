"""
jyt_admin.flows.interpolation

`{{ path }}` templating of operation options against the execution data chain.

A whole-string template (`"{{ $last.items }}"`) keeps the resolved value's type; templates
embedded in text are rendered as strings (JSON for dicts/lists, empty for missing values).
Paths are dot separated with optional list indexes: `$trigger.payload.items[0].sku`.
"""

from __future__ import annotations

import json
import re
from typing import Any

TEMPLATE = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")
_WHOLE = re.compile(r"^\s*\{\{\s*([^{}]+?)\s*\}\}\s*$")
_SEGMENT = re.compile(r"([^.\[\]]+)|\[(\d+)\]")

_MISSING = object()


def resolve_path(chain: dict[str, Any], path: str) -> Any:
    current: Any = chain
    for name, index in _SEGMENT.findall(path.strip()):
        if index:
            if not isinstance(current, list) or int(index) >= len(current):
                return None
            current = current[int(index)]
            continue
        if isinstance(current, dict):
            current = current.get(name, _MISSING)
        elif isinstance(current, list) and name.isdigit() and int(name) < len(current):
            current = current[int(name)]
        else:
            current = _MISSING
        if current is _MISSING:
            return None
    return current


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, dict | list):
        return json.dumps(value, default=str)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def render(value: Any, chain: dict[str, Any]) -> Any:
    if isinstance(value, str):
        whole = _WHOLE.match(value)
        if whole:
            return resolve_path(chain, whole.group(1))
        return TEMPLATE.sub(lambda m: _stringify(resolve_path(chain, m.group(1))), value)
    if isinstance(value, dict):
        return {k: render(v, chain) for k, v in value.items()}
    if isinstance(value, list):
        return [render(v, chain) for v in value]
    return value


def referenced_paths(value: Any) -> list[str]:
    """Template paths used anywhere in `value` (for shape validation and the metadata API)."""

    if isinstance(value, str):
        return [m.group(1).strip() for m in TEMPLATE.finditer(value)]
    if isinstance(value, dict):
        return [p for v in value.values() for p in referenced_paths(v)]
    if isinstance(value, list):
        return [p for v in value for p in referenced_paths(v)]
    return []
