"""Diagnostics over every stored view config."""

from __future__ import annotations

from typing import Any, Dict, List

from app.view_config_validate import validate_view_config
from view_config_store import ConfigJsonError


Report = Dict[str, Any]


def build_diagnostics(store, registry=None) -> dict:
    entities: List[Report] = []
    parse_errors: List[Report] = []
    for entity in store.list_view_configs():
        try:
            doc = store.load_view_config(entity)
        except ConfigJsonError as exc:
            parse_errors.append(
                {
                    "entity": entity,
                    "path": exc.path,
                    "message": exc.error.msg,
                    "line": exc.error.lineno,
                    "column": exc.error.colno,
                }
            )
            continue
        result = validate_view_config(doc, entity, registry, store)
        entities.append(
            {
                "entity": entity,
                "blocks": sorted(k for k, v in doc.items() if isinstance(v, dict)),
                "passed": not result["errors"],
                "counts": {
                    "errors": len(result["errors"]),
                    "warnings": len(result["warnings"]),
                },
                "errors": result["errors"],
                "warnings": result["warnings"],
            }
        )
    passed = sum(1 for e in entities if e["passed"])
    return {
        "entities": entities,
        "parse_errors": parse_errors,
        "summary": {
            "total": len(entities) + len(parse_errors),
            "passed": passed,
            "failed": len(entities) - passed,
            "parse_errors": len(parse_errors),
        },
    }
