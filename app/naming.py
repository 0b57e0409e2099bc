"""Name transforms shared by the resolution engine."""

from __future__ import annotations

import re

_WORD_SPLIT = re.compile(r"[\s_\-.]+")
_TRAILING_DIGITS = re.compile(r"\d+$")


def _words(value: str) -> list[str]:
    return [p for p in _WORD_SPLIT.split(value or "") if p]


def title_words(value: str) -> str:
    """``first_name`` -> ``First Name``."""
    parts = _words(value)
    return " ".join(p[:1].upper() + p[1:].lower() for p in parts) if parts else value


def studly(value: str) -> str:
    """``country_type`` -> ``CountryType``."""
    return "".join(p[:1].upper() + p[1:] for p in _words(value))


def camel(value: str) -> str:
    """``country_type`` -> ``countryType``."""
    s = studly(value)
    return s[:1].lower() + s[1:] if s else s


def strip_id_suffix(value: str) -> str:
    return value[:-3] if value.endswith("_id") else value


def canonical_component_name(key: str) -> str:
    canonical = _TRAILING_DIGITS.sub("", key or "")
    return canonical or key


def pluralize(word: str) -> str:
    if not word:
        return word
    lower = word.lower()
    if lower.endswith("y") and len(word) > 1 and lower[-2] not in "aeiou":
        return word[:-1] + "ies"
    if lower.endswith(("s", "x", "z", "ch", "sh")):
        return word + "es"
    return word + "s"


def singularize(word: str) -> str:
    if not word:
        return word
    lower = word.lower()
    if lower.endswith("ies") and len(word) > 3:
        return word[:-3] + "y"
    if lower.endswith(("sses", "xes", "zes", "ches", "shes")):
        return word[:-2]
    if lower.endswith("s") and not lower.endswith("ss"):
        return word[:-1]
    return word
