"""URLs pointing back at the generic CRUD endpoints."""

from __future__ import annotations

from app.column_tokens import ActiveSchema
from app.engine_config import EngineConfig
from app.lang import filter_tokens_by_lang


def relation_options_url(config: EngineConfig, related: str, item_value: str, item_title: str) -> str:
    base = f"{config.base_url}/{config.prefix}/gapi/{related}"
    return f"{base}?columns={item_value},{item_title}&sort={item_title}&pagination=off&wrap=data"


def create_link(entity: str) -> str:
    return f"gapi/{entity}"


def data_link(schema: ActiveSchema, tokens: list[str], lang: str, per_page: int) -> str:
    """Relative list URL with resolved columns, relation ``with`` segments and page size."""
    tokens = filter_tokens_by_lang(schema, tokens, lang)
    relation_fields: dict[str, list[str]] = {}
    for token in tokens:
        if "." not in token:
            continue
        rel, field = token.split(".", 1)
        if not field:
            continue
        fields = relation_fields.setdefault(rel, [])
        if field not in fields:
            fields.append(field)
    query = "columns=" + ",".join(tokens)
    if relation_fields:
        query += "&with=" + ",".join(f"{rel}:{','.join(fields)}" for rel, fields in relation_fields.items())
    query += f"&per_page={per_page}"
    return f"{create_link(schema.entity)}?{query}"
