"""In-memory entity schema registry (the Schema Provider)."""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

logger = logging.getLogger("uiapi.stores")

_PREFERRED_TITLE_FIELDS = ("name", "name_eng", "title")


def normalize_entity_name(name: str) -> str:
    value = (name or "").strip().lower()
    for sep in ("-", "_", " ", "."):
        value = value.replace(sep, "")
    return value


@dataclass
class EntitySchema:
    name: str
    columns: Dict[str, dict] = field(default_factory=dict)
    searchable: List[str] = field(default_factory=list)
    # relation name -> related entity name
    relations: Dict[str, str] = field(default_factory=dict)


class SchemaRegistry:
    def __init__(self) -> None:
        self._entities: Dict[str, EntitySchema] = {}

    def register(
        self,
        name: str,
        columns: dict,
        searchable: list | None = None,
        relations: dict | None = None,
    ) -> EntitySchema:
        if not isinstance(name, str) or not name.strip():
            raise ValueError("entity name required")
        if not isinstance(columns, dict):
            raise ValueError(f"columns for {name} must be an object")
        schema = EntitySchema(
            name=name,
            columns=copy.deepcopy(columns),
            searchable=list(searchable or []),
            relations=dict(relations or {}),
        )
        self._entities[normalize_entity_name(name)] = schema
        return schema

    def load_dir(self, path: Path) -> int:
        """Register every ``*.json`` entity schema found under ``path``."""
        if not path.is_dir():
            logger.info("schema_dir_missing path=%s", path)
            return 0
        count = 0
        for file in sorted(path.glob("*.json")):
            data = json.loads(file.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError(f"schema file {file.name} must hold an object")
            self.register(
                data.get("name") or file.stem,
                data.get("columns") or {},
                searchable=data.get("searchable"),
                relations=data.get("relations"),
            )
            count += 1
        logger.info("schemas_loaded path=%s count=%s", path, count)
        return count

    def get(self, name: str) -> EntitySchema | None:
        if not isinstance(name, str):
            return None
        return self._entities.get(normalize_entity_name(name))

    def resolve_schema(self, name: str) -> dict | None:
        schema = self.get(name)
        if schema is None:
            return None
        return {"columns": copy.deepcopy(schema.columns), "searchable": list(schema.searchable)}

    def resolve_relation(self, name: str, relation: str) -> str | None:
        schema = self.get(name)
        if schema is None:
            return None
        return schema.relations.get(relation)

    def pick_default_title_field(self, name: str) -> str:
        schema = self.get(name)
        columns: dict[str, Any] = schema.columns if schema else {}
        for preferred in _PREFERRED_TITLE_FIELDS:
            column = columns.get(preferred)
            if isinstance(column, dict) and not column.get("hidden", False):
                return preferred
        for key, column in columns.items():
            if isinstance(column, dict) and not column.get("hidden", False) and column.get("type") == "string":
                return key
        return "id"
