"""Column-selection token parsing against an active column schema."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

from app.failures import Failure, INVALID_REFERENCE, UNDEFINED_COLUMN, UNKNOWN_RELATION, fail
from app.naming import camel


@dataclass
class ActiveSchema:
    """Column schema for one request, model-backed or inline (noModel)."""

    entity: str
    columns: Dict[str, Any]
    no_model: bool = False
    registry: Any = None

    def relation_name(self, segment: str) -> str | None:
        """Resolve the left segment of a dot token to a declared relation.

        Candidates are tried in order: exact name, camelCase, then the
        camelCased name with an ``_id`` suffix stripped.
        """
        if self.no_model or self.registry is None:
            return None
        candidates = [segment, camel(segment)]
        if segment.endswith("_id"):
            candidates.append(camel(segment[:-3]))
        for candidate in candidates:
            if candidate and self.registry.resolve_relation(self.entity, candidate):
                return candidate
        return None

    def related_entity(self, relation: str) -> str | None:
        if self.no_model or self.registry is None:
            return None
        return self.registry.resolve_relation(self.entity, relation)

    def related_columns(self, segment: str) -> dict | None:
        relation = self.relation_name(segment)
        if relation is None:
            return None
        related = self.registry.resolve_schema(self.related_entity(relation))
        if related is None:
            return None
        return related.get("columns") or {}

    def definition(self, token: str) -> dict | None:
        if "." not in token:
            defn = self.columns.get(token)
            return defn if isinstance(defn, dict) else None
        if self.no_model:
            defn = self.columns.get(token)
            return defn if isinstance(defn, dict) else None
        first, rest = token.split(".", 1)
        if not rest:
            return None
        columns = self.related_columns(first)
        if columns is None:
            return None
        defn = columns.get(rest)
        return defn if isinstance(defn, dict) else None


@dataclass
class TokenResolution:
    tokens: List[str] = field(default_factory=list)
    relations: List[str] = field(default_factory=list)


def split_tokens(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [t.strip() for t in raw.split(",") if t.strip()]


def columns_param(value: Any) -> str | None:
    if isinstance(value, str):
        return value if value.strip() else None
    if isinstance(value, list):
        parts = [str(v).strip() for v in value if isinstance(v, str) and v.strip()]
        return ",".join(parts) if parts else None
    return None


def normalize_columns(raw: str | None, schema: ActiveSchema) -> tuple[TokenResolution | None, Failure | None]:
    """Normalize a comma-separated column selection.

    Duplicates are kept in input order; the relation list is deduplicated.
    """
    result = TokenResolution()
    for token in split_tokens(raw):
        if "." in token:
            first, rest = token.split(".", 1)
            if not first or not rest:
                return None, fail(INVALID_REFERENCE, f"Invalid columns segment '{token}'")
            if schema.no_model:
                relation = first
            else:
                relation = schema.relation_name(first)
                if relation is None:
                    return None, fail(UNKNOWN_RELATION, f"Unknown relation reference '{first}' in columns")
                related = schema.registry.resolve_schema(schema.related_entity(relation))
                if related is None:
                    return None, fail(UNKNOWN_RELATION, f"Related entity for '{relation}' has no schema")
                if rest not in (related.get("columns") or {}):
                    return None, fail(UNDEFINED_COLUMN, f"Column '{rest}' is not defined in {relation} schema")
            result.tokens.append(f"{first}.{rest}")
            if relation not in result.relations:
                result.relations.append(relation)
            continue
        if token not in schema.columns and not schema.no_model:
            return None, fail(INVALID_REFERENCE, f"Column '{token}' is not defined in schema")
        result.tokens.append(token)
    return result, None
