"""Apply view-config overrides onto a compiled section payload."""

from __future__ import annotations

import copy
import logging
from typing import Any

from app.functions import resolve_functions
from app.naming import pluralize, singularize
from app.section_compile import INTERNAL_KEYS, is_string_list

logger = logging.getLogger("uiapi.engine")

_SKIP_KEYS = INTERNAL_KEYS | {"component"}
_MATCH_FIELDS = ("key", "name", "type", "label")


def resolve_target_key(payload: dict, key: str) -> str:
    """Exact key, else its plural or singular form when present in ``payload``."""
    if key in payload:
        return key
    for candidate in (pluralize(key), singularize(key)):
        if candidate != key and candidate in payload:
            return candidate
    return key


def _match_key(item: Any) -> str:
    if isinstance(item, str):
        return item
    if isinstance(item, dict):
        for name in _MATCH_FIELDS:
            value = item.get(name)
            if value not in (None, ""):
                return str(value)
    return ""


def allow_list(items: list, wanted: list[str]) -> list:
    wanted_lower = {w.lower() for w in wanted}
    return [item for item in items if _match_key(item) and _match_key(item).lower() in wanted_lower]


def keyed_merge(items: list, overrides: list[dict], restrict: bool = False) -> list:
    """Merge override objects into ``items`` by their ``key`` field.

    With ``restrict`` only the overridden entries survive, in override order.
    """
    if restrict:
        by_key = {item.get("key"): item for item in items if isinstance(item, dict)}
        return [{**by_key[ov.get("key")], **ov} if ov.get("key") in by_key else dict(ov) for ov in overrides]
    result = [copy.deepcopy(item) for item in items]
    index = {item.get("key"): pos for pos, item in enumerate(result) if isinstance(item, dict)}
    for ov in overrides:
        pos = index.get(ov.get("key"))
        if ov.get("key") is not None and pos is not None:
            result[pos] = {**result[pos], **ov}
        else:
            result.append(dict(ov))
    return result


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, bool, int, float))


def apply_overrides(payload: dict, overrides: dict, allow_custom_keys: bool = True, scripts: Any = None) -> dict:
    out = dict(payload)
    for key, value in overrides.items():
        if key in _SKIP_KEYS:
            continue
        if key == "functions" and isinstance(value, dict):
            out["functions"] = resolve_functions(value, scripts)
            continue
        target = resolve_target_key(out, key)
        exists = target in out

        if _is_scalar(value) or value is None:
            if isinstance(value, str) and value.lower() == "off":
                out.pop(target, None)
                out.pop(key, None)
            elif exists or allow_custom_keys:
                out[target] = value
            continue

        if isinstance(value, dict):
            if exists and isinstance(out[target], dict):
                out[target] = apply_overrides(out[target], value, allow_custom_keys, scripts)
            elif exists or allow_custom_keys:
                out[target] = copy.deepcopy(value)
            continue

        if not isinstance(value, list):
            continue
        current = out.get(target)
        if is_string_list(value) and value:
            if isinstance(current, list):
                out[target] = allow_list(current, value)
            continue
        if value and all(isinstance(v, dict) for v in value):
            if isinstance(current, list):
                out[target] = keyed_merge(current, value, restrict=target == "fields")
            elif exists or allow_custom_keys:
                out[target] = copy.deepcopy(value)
            continue
        if exists or allow_custom_keys:
            out[target] = copy.deepcopy(value)
    return out
