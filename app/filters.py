"""Filter descriptors and select-option resolution."""

from __future__ import annotations

import logging
from typing import Any

from app.column_tokens import ActiveSchema
from app.engine_config import EngineConfig
from app.failures import Failure, INVALID_FILTER_CONFIG, fail
from app.lang import column_supports_lang, key_for, label_for, localized
from app.links import relation_options_url
from app.naming import studly, strip_id_suffix, title_words

logger = logging.getLogger("uiapi.engine")

FILTER_TYPE_BY_INPUT = {
    "text": "Text",
    "textfield": "Text",
    "textarea": "Text",
    "number": "Number",
    "numberfield": "Number",
    "checkbox": "Checkbox",
    "switch": "Checkbox",
    "date": "Date",
    "datepicker": "Date",
    "datetime": "Date",
    "select": "Select",
    "autocomplete": "Select",
    "search": "Search",
}
FILTER_TYPE_BY_COLUMN_TYPE = {
    "string": "Text",
    "number": "Number",
    "integer": "Number",
    "boolean": "Checkbox",
    "bool": "Checkbox",
    "date": "Date",
    "datetime": "Date",
    "timestamp": "Date",
}
INPUT_TYPE_BY_COLUMN_TYPE = {
    "string": "text",
    "number": "number",
    "integer": "number",
    "boolean": "checkbox",
    "bool": "checkbox",
    "date": "date",
    "datetime": "date",
    "timestamp": "date",
}


def select_config(defn: dict) -> dict | None:
    for key in ("select", "filterable"):
        cfg = defn.get(key)
        if isinstance(cfg, dict):
            return cfg
    return None


def default_input_type(defn: dict) -> str:
    return INPUT_TYPE_BY_COLUMN_TYPE.get(str(defn.get("type") or "string").lower(), "text")


def filter_type_for(defn: dict) -> str:
    cfg = defn.get("filterable")
    explicit = cfg.get("type") if isinstance(cfg, dict) else None
    input_type = explicit or defn.get("inputType")
    if isinstance(input_type, str) and input_type:
        return FILTER_TYPE_BY_INPUT.get(input_type.lower(), title_words(input_type))
    return FILTER_TYPE_BY_COLUMN_TYPE.get(str(defn.get("type") or "string").lower(), "Text")


def merge_customizations(columns: dict, customizations: dict | None) -> dict:
    if not isinstance(customizations, dict):
        return columns
    merged = {}
    for field, defn in columns.items():
        custom = customizations.get(field)
        if isinstance(defn, dict) and isinstance(custom, dict):
            merged[field] = {**defn, **custom}
        else:
            merged[field] = defn
    return merged


def _item_key(raw: Any, default: str, lang: str) -> str:
    if isinstance(raw, dict):
        value = localized(raw, lang)
        return str(value) if value not in (None, "") else default
    if raw in (None, ""):
        return default
    return str(raw)


def _related_entity_name(cfg: dict, field: str, key: str, schema: ActiveSchema) -> str:
    relationship = cfg.get("relationship")
    if isinstance(relationship, str) and relationship.strip():
        relationship = relationship.strip()
        relation = schema.relation_name(relationship)
        if relation is not None:
            return schema.related_entity(relation)
        return studly(relationship)
    relation = schema.relation_name(field)
    if relation is not None:
        return schema.related_entity(relation)
    return studly(strip_id_suffix(key))


def resolve_select_options(
    cfg: dict,
    field: str,
    defn: dict,
    lang: str,
    schema: ActiveSchema,
    config: EngineConfig,
) -> tuple[dict | None, Failure | None]:
    """Resolve a select config into itemTitle/itemValue plus items or url."""
    key = key_for(defn, field)
    mode = str(cfg.get("mode") or "self").lower()

    if mode == "self":
        item_title = _item_key(cfg.get("itemTitle"), key, lang)
        item_value = _item_key(cfg.get("itemValue"), key, lang)
        items = []
        raw_items = cfg.get("items")
        for item in raw_items if isinstance(raw_items, list) else []:
            if isinstance(item, dict):
                items.append({
                    item_title: _stringify(item.get(item_title)),
                    item_value: _stringify(item.get(item_value)),
                })
            else:
                items.append({item_title: _stringify(item), item_value: _stringify(item)})
        return {"itemTitle": item_title, "itemValue": item_value, "items": items}, None

    if mode == "url":
        url = cfg.get("url")
        if not isinstance(url, str) or not url.strip():
            return None, fail(INVALID_FILTER_CONFIG, f"Select config for '{field}' uses mode 'url' but has no url")
        return {
            "itemTitle": _item_key(cfg.get("itemTitle"), key, lang),
            "itemValue": _item_key(cfg.get("itemValue"), key, lang),
            "url": url.strip(),
        }, None

    related = _related_entity_name(cfg, field, key, schema)
    default_value = key
    default_title = key
    if schema.registry is not None and not schema.no_model and schema.registry.get(related) is not None:
        default_value = "id"
        default_title = schema.registry.pick_default_title_field(related)
    item_value = _item_key(cfg.get("itemValue"), default_value, lang)
    item_title = _item_key(cfg.get("itemTitle"), default_title, lang)
    return {
        "itemTitle": item_title,
        "itemValue": item_value,
        "url": relation_options_url(config, related, item_value, item_title),
    }, None


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_filters(
    schema: ActiveSchema,
    lang: str,
    config: EngineConfig,
    allowed: list | None = None,
    active_tokens: list[str] | None = None,
    customizations: dict | None = None,
) -> tuple[list[dict] | None, Failure | None]:
    columns = merge_customizations(schema.columns, customizations)
    if isinstance(allowed, list):
        fields = [f for f in allowed if isinstance(f, str)]
    else:
        fields = list(columns.keys())
    filters = []
    for field in fields:
        defn = columns.get(field)
        if not isinstance(defn, dict) or not column_supports_lang(defn, lang):
            continue
        if active_tokens is not None and field not in active_tokens:
            continue
        cfg = select_config(defn) or {}
        label = localized(cfg.get("label"), lang)
        key = cfg.get("value")
        entry = {
            "type": filter_type_for(defn),
            "key": str(key) if key not in (None, "") else key_for(defn, field),
            "label": str(label) if isinstance(label, str) and label else label_for(defn, field, lang),
        }
        if entry["type"] == "Select":
            options, failure = resolve_select_options(cfg, field, defn, lang, schema, config)
            if failure is not None:
                return None, failure
            entry.update(options)
            if "multiple" in cfg:
                entry["multiple"] = bool(cfg["multiple"])
        filters.append(entry)
    if config.logging_enabled:
        logger.debug("filters_built entity=%s count=%s lang=%s", schema.entity, len(filters), lang)
    return filters, None
