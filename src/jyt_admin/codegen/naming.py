"""
jyt_admin.codegen.naming

Name conversions used by the generated modules.
"""

from __future__ import annotations

import re

_WORD_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def words(name: str) -> list[str]:
    parts: list[str] = []
    for chunk in re.split(r"[\s_\-]+", name.strip()):
        parts.extend(p for p in _WORD_BOUNDARY.split(chunk) if p)
    return [p.lower() for p in parts]


def pascal(name: str) -> str:
    return "".join(w.capitalize() for w in words(name))


def snake(name: str) -> str:
    return "_".join(words(name))


def kebab(name: str) -> str:
    return "-".join(words(name))


def plural(word: str) -> str:
    if re.search(r"[^aeiou]y$", word):
        return word[:-1] + "ies"
    if re.search(r"(s|x|z|ch|sh)$", word):
        return word + "es"
    return word + "s"
