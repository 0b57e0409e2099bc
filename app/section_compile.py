"""Section payload compiler: interprets a component template tree."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from app.column_tokens import ActiveSchema
from app.engine_config import EngineConfig
from app.failures import Failure
from app.filters import build_filters, default_input_type, merge_customizations, resolve_select_options, select_config
from app.functions import resolve_functions
from app.headers import build_headers, unique_tokens
from app.lang import column_supports_lang, declared_langs, key_for, label_for
from app.links import create_link, data_link
from app.template_tree import RESERVED_KEYS, ArrayNode, Leaf, Node, ObjectNode, Toggle, parse_node, to_plain

logger = logging.getLogger("uiapi.engine")

# consumed by the assembler, never emitted
INTERNAL_KEYS = {"columns", "columnCustomizations", "per_page", "lang"}
FORM_PASSTHROUGH_KEYS = (
    "group",
    "fieldComponent",
    "validationRule",
    "placeholder",
    "events",
    "submitUrl",
    "multiple",
)


@dataclass
class SectionContext:
    schema: ActiveSchema
    tokens: List[str]
    lang: str
    per_page: int
    config: EngineConfig
    customizations: Dict[str, Any] | None = None
    allowed_filters: List[str] | None = None
    functions: Dict[str, Any] | None = None
    scripts: Any = None
    relations: List[str] = field(default_factory=list)


def is_string_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) for v in value)


def _is_internal(key: str, node: Node) -> bool:
    if key in INTERNAL_KEYS:
        return True
    return key == "filters" and isinstance(node, ArrayNode) and is_string_list(to_plain(node))


def _form_entry(field_name: str, key: str, defn: dict, ctx: SectionContext) -> tuple[dict | None, Failure | None]:
    input_type = defn.get("inputType")
    if not isinstance(input_type, str) or not input_type:
        input_type = default_input_type(defn)
    entry = {
        "key": key,
        "label": label_for(defn, field_name, ctx.lang),
        "lang": declared_langs(defn) or list(ctx.config.languages),
        "type": str(defn.get("type") or "string"),
        "inputType": input_type,
    }
    for name in FORM_PASSTHROUGH_KEYS:
        if name in defn:
            entry[name] = defn[name]
    if input_type.lower() == "select":
        cfg = select_config(defn) or {"mode": "self", "items": []}
        options, failure = resolve_select_options(cfg, field_name, defn, ctx.lang, ctx.schema, ctx.config)
        if failure is not None:
            return None, failure
        entry.update(options)
    return entry, None


def build_form_fields(ctx: SectionContext) -> tuple[list[dict] | None, Failure | None]:
    columns = merge_customizations(ctx.schema.columns, ctx.customizations)
    fields: list[dict] = []
    for name, defn in columns.items():
        if not isinstance(defn, dict) or "." in name:
            continue
        if not ctx.schema.no_model and defn.get("formField") is not True:
            continue
        if not column_supports_lang(defn, ctx.lang):
            continue
        entry, failure = _form_entry(name, key_for(defn, name), defn, ctx)
        if failure is not None:
            return None, failure
        fields.append(entry)

    seen = {f["key"] for f in fields}
    for token in ctx.tokens:
        if "." not in token or token in seen:
            continue
        defn = ctx.schema.definition(token)
        if defn is None or not column_supports_lang(defn, ctx.lang):
            continue
        entry, failure = _form_entry(token.split(".", 1)[1], token, defn, ctx)
        if failure is not None:
            return None, failure
        fields.append(entry)
        seen.add(token)
    return fields, None


def _compute(key: str, ctx: SectionContext) -> tuple[Any, Failure | None]:
    if key == "headers":
        return build_headers(
            ctx.schema,
            ctx.tokens,
            ctx.lang,
            ctx.customizations,
            include_hidden=ctx.config.include_hidden_columns_in_headers,
        ), None
    if key == "filters":
        return build_filters(
            ctx.schema,
            ctx.lang,
            ctx.config,
            allowed=ctx.allowed_filters,
            customizations=ctx.customizations,
        )
    if key == "pagination":
        return {"current_page": 1, "per_page": ctx.per_page}, None
    if key == "datalink":
        return data_link(ctx.schema, unique_tokens(ctx.tokens, ctx.schema), ctx.lang, ctx.per_page), None
    if key in ("crudLink", "createLink"):
        return create_link(ctx.schema.entity), None
    if key == "fields":
        return build_form_fields(ctx)
    return resolve_functions(ctx.functions or {}, ctx.scripts), None


def compile_node(node: ObjectNode, ctx: SectionContext) -> tuple[dict | None, Failure | None]:
    out: dict = {}
    for key, child in node.items:
        if _is_internal(key, child):
            continue
        if key in RESERVED_KEYS:
            if isinstance(child, Toggle):
                if not child.on:
                    continue
                value, failure = _compute(key, ctx)
                if failure is not None:
                    return None, failure
                out[key] = value
            elif key == "functions":
                out[key] = resolve_functions(to_plain(child), ctx.scripts)
            else:
                out[key] = to_plain(child)
            continue
        if isinstance(child, ObjectNode):
            value, failure = compile_node(child, ctx)
            if failure is not None:
                return None, failure
            out[key] = value
        elif isinstance(child, Leaf):
            out[key] = child.value
        else:
            out[key] = to_plain(child)
    return out, None


def compile_section(section: dict, ctx: SectionContext) -> tuple[dict | None, Failure | None]:
    """Compile one template section against the request context."""
    node = parse_node(section)
    if not isinstance(node, ObjectNode):
        return {}, None
    payload, failure = compile_node(node, ctx)
    if failure is None and ctx.config.logging_enabled:
        logger.debug("section_compiled entity=%s keys=%s", ctx.schema.entity, ",".join(payload.keys()))
    return payload, failure
