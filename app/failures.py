"""Failure kinds returned by resolution steps."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

COMPONENT_REQUIRED = "COMPONENT_REQUIRED"
VIEW_CONFIG_MISSING = "VIEW_CONFIG_MISSING"
COMPONENT_KEY_NOT_FOUND = "COMPONENT_KEY_NOT_FOUND"
COLUMNS_UNDEFINED = "COLUMNS_UNDEFINED"
INVALID_REFERENCE = "INVALID_REFERENCE"
UNKNOWN_RELATION = "UNKNOWN_RELATION"
UNDEFINED_COLUMN = "UNDEFINED_COLUMN"
MISSING_SCHEMA = "MISSING_SCHEMA"
ENTITY_NOT_FOUND = "ENTITY_NOT_FOUND"
COMPONENT_CONFIG_NOT_FOUND = "COMPONENT_CONFIG_NOT_FOUND"
INVALID_FILTER_CONFIG = "INVALID_FILTER_CONFIG"
CONFIG_JSON_INVALID = "CONFIG_JSON_INVALID"
VALIDATION_FAILED = "VALIDATION_FAILED"

FAILURE_KINDS = {
    COMPONENT_REQUIRED,
    VIEW_CONFIG_MISSING,
    COMPONENT_KEY_NOT_FOUND,
    COLUMNS_UNDEFINED,
    INVALID_REFERENCE,
    UNKNOWN_RELATION,
    UNDEFINED_COLUMN,
    MISSING_SCHEMA,
    ENTITY_NOT_FOUND,
    COMPONENT_CONFIG_NOT_FOUND,
    INVALID_FILTER_CONFIG,
    CONFIG_JSON_INVALID,
    VALIDATION_FAILED,
}


@dataclass(frozen=True)
class Failure:
    kind: str
    message: str
    detail: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.kind not in FAILURE_KINDS:
            raise ValueError(f"unknown failure kind: {self.kind}")

    def body(self) -> dict:
        return {"error": self.message, **self.detail}


def fail(kind: str, message: str, **detail: Any) -> Failure:
    return Failure(kind, message, dict(detail))
