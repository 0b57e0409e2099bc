"""ETags for resolved component settings.

A tag covers the resolution inputs (entity, component or view, language,
column and paging overrides) together with the compiled body, so two
requests only share a tag when they would receive the same payload.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

from schema_registry import normalize_entity_name


def resolution_key(
    entity: str,
    component: str | None,
    view: str | None,
    lang: str,
    columns: str | None = None,
    per_page: str | None = None,
    component_settings: str | None = None,
) -> dict:
    key: dict[str, Any] = {"entity": normalize_entity_name(entity), "lang": lang.lower()}
    if view:
        key["view"] = view
    else:
        key["component"] = component or ""
        key["columns"] = columns or ""
        key["per_page"] = per_page or ""
        key["componentSettings"] = component_settings or ""
    return key


def _reject(value: Any) -> Any:
    raise TypeError(f"payload holds non-JSON value {type(value).__name__}")


def payload_etag(body: dict, key: dict) -> str:
    """Quoted strong ETag over the resolution key and the compiled body."""
    material = json.dumps(
        {"key": key, "body": body},
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        allow_nan=False,
        default=_reject,
    )
    return f'"ccs-{hashlib.sha256(material.encode("utf-8")).hexdigest()}"'


def etag_matches(if_none_match: str | None, etag: str) -> bool:
    """Weak comparison of an ``If-None-Match`` header against ``etag``."""
    if not if_none_match:
        return False
    for candidate in if_none_match.split(","):
        candidate = candidate.strip()
        if candidate == "*":
            return True
        if candidate.startswith("W/"):
            candidate = candidate[2:]
        if candidate == etag:
            return True
    return False
