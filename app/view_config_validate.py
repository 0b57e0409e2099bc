"""Structural validation for view config documents.

Findings are data: ``{"errors": [...], "warnings": [...]}`` where each entry
is ``{"path", "rule", "message"}``. Errors block a request when validation
runs on request; warnings never do. The input document is only read.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List

from app.column_tokens import ActiveSchema, columns_param, split_tokens
from app.lang import FALLBACK_LANGS
from app.template_tree import template_name

logger = logging.getLogger("uiapi.validate")

Finding = Dict[str, str]

KNOWN_COMPONENT_TEMPLATES = {"table", "form", "toolbar", "filterSection", "meta"}
DISPLAY_TYPES_NEEDING_CONFIG = {"chip", "select"}


def _finding(path: str, rule: str, message: str) -> Finding:
    return {"path": path, "rule": rule, "message": message}


class _Findings:
    def __init__(self) -> None:
        self.errors: List[Finding] = []
        self.warnings: List[Finding] = []

    def error(self, path: str, rule: str, message: str) -> None:
        self.errors.append(_finding(path, rule, message))

    def warn(self, path: str, rule: str, message: str) -> None:
        self.warnings.append(_finding(path, rule, message))

    def result(self) -> dict:
        return {"errors": self.errors, "warnings": self.warnings}


def _block_schema(block: dict, entity_name: str, registry: Any) -> ActiveSchema | None:
    if block.get("noModel"):
        columns = block.get("columnsSchema")
        if not isinstance(columns, dict) or not columns:
            return None
        return ActiveSchema(entity=entity_name, columns=columns, no_model=True)
    if registry is None:
        return None
    resolved = registry.resolve_schema(entity_name)
    if resolved is None:
        return None
    return ActiveSchema(entity=entity_name, columns=resolved["columns"], registry=registry)


def _template_exists(name: str, templates: Any) -> bool:
    if templates is None:
        return name in KNOWN_COMPONENT_TEMPLATES
    return templates.has_component_template(name)


def _components(block: dict) -> dict:
    components = block.get("components")
    return components if isinstance(components, dict) else {}


def _check_lang(block: dict, prefix: str, out: _Findings) -> None:
    if "lang" not in block or block["lang"] is None:
        out.error(f"{prefix}.lang", "required", '"lang" key is missing. It must be a non-empty array (e.g. ["en", "dv"]).')
    elif not isinstance(block["lang"], list) or not block["lang"]:
        out.error(f"{prefix}.lang", "required_array", '"lang" must be a non-empty array (e.g. ["en", "dv"]).')


def _check_per_page(block: dict, prefix: str, out: _Findings) -> None:
    if "per_page" not in block:
        return
    per_page = block["per_page"]
    if isinstance(per_page, bool) or not isinstance(per_page, int) or per_page <= 0:
        out.warn(f"{prefix}.per_page", "positive_integer", f'"per_page" should be a positive integer. Got: {json.dumps(per_page)}')


def _check_no_model_schema(block: dict, prefix: str, out: _Findings) -> None:
    if not block.get("noModel"):
        return
    schema = block.get("columnsSchema")
    if not isinstance(schema, dict) or not schema:
        out.error(
            f"{prefix}.columnsSchema",
            "nomodel_requires_schema",
            '"noModel" is true but "columnsSchema" is missing or empty. A non-empty columnsSchema is required.',
        )


def _check_columns_required(block: dict, prefix: str, out: _Findings) -> None:
    components = _components(block)
    if "table" not in components:
        return
    table = components["table"] if isinstance(components["table"], dict) else {}
    if columns_param(block.get("columns")) is None and columns_param(table.get("columns")) is None:
        out.error(
            f"{prefix}.columns",
            "columns_required",
            '"columns" must be defined either at the root level or inside "components.table.columns" when using a table component.',
        )


def _check_component_templates(block: dict, prefix: str, templates: Any, out: _Findings) -> None:
    for alias, ref in _components(block).items():
        if isinstance(ref, str) and "/" in ref:
            continue
        name = template_name(alias, ref)
        if not _template_exists(name, templates):
            out.warn(
                f"{prefix}.components.{alias}",
                "component_config_exists",
                f'Component "{alias}" does not have a matching component template. Expected: {name}.json',
            )


def _column_list(columns: Any) -> list:
    if isinstance(columns, str):
        return split_tokens(columns)
    return columns if isinstance(columns, list) else []


def _check_column_refs(columns: Any, schema: ActiveSchema, path: str, out: _Findings) -> None:
    columns = _column_list(columns)
    for index, ref in enumerate(columns):
        if not isinstance(ref, str):
            continue
        if "." in ref:
            if schema.no_model:
                continue
            first, rest = ref.split(".", 1)
            related = schema.related_columns(first) if first else None
            if related is None or rest not in related:
                out.warn(
                    f"{path}[{index}]",
                    "column_relation_exists",
                    f'Column "{ref}" does not resolve to a relation column ("{first}" relation or "{rest}" column is unknown).',
                )
            continue
        if ref not in schema.columns:
            out.warn(
                f"{path}[{index}]",
                "column_exists_in_schema",
                f'Column "{ref}" is not defined in the schema (registry schema or columnsSchema).',
            )


def _check_columns_reference_schema(block: dict, prefix: str, schema: ActiveSchema | None, out: _Findings) -> None:
    if schema is None:
        return
    _check_column_refs(block.get("columns"), schema, f"{prefix}.columns", out)
    for alias, ref in _components(block).items():
        if isinstance(ref, dict):
            _check_column_refs(ref.get("columns"), schema, f"{prefix}.components.{alias}.columns", out)


def _check_filters_reference_schema(block: dict, prefix: str, schema: ActiveSchema | None, out: _Findings) -> None:
    filters = block.get("filters")
    if schema is None or not isinstance(filters, list):
        return
    for index, key in enumerate(filters):
        if isinstance(key, str) and key not in schema.columns:
            out.warn(
                f"{prefix}.filters[{index}]",
                "filter_key_exists",
                f'Filter "{key}" does not reference a known column in the schema.',
            )


def _check_customization_keys(block: dict, prefix: str, schema: ActiveSchema | None, out: _Findings) -> None:
    customizations = block.get("columnCustomizations")
    if schema is None or not isinstance(customizations, dict):
        return
    known = set(schema.columns)
    for columns in [block.get("columns")] + [ref.get("columns") for ref in _components(block).values() if isinstance(ref, dict)]:
        known.update(c for c in _column_list(columns) if isinstance(c, str))
    for key, custom in customizations.items():
        if not isinstance(custom, dict):
            continue
        if custom.get("displayType") == "custom" or "columnData" in custom:
            continue
        if key not in known:
            out.warn(
                f"{prefix}.columnCustomizations.{key}",
                "customization_key_exists",
                f'Column customization "{key}" does not match any known column in the schema or columns list. '
                'If this is intentional, set displayType to "custom".',
            )


def _check_select_mode(cfg: dict, prefix: str, out: _Findings) -> None:
    mode = str(cfg.get("mode") or "self").lower()
    if mode == "self":
        items = cfg.get("items")
        if not isinstance(items, list) or not items:
            out.warn(
                f"{prefix}.select",
                "self_mode_requires_items",
                'Select mode is "self" but "items" is missing or empty. The dropdown will have no options.',
            )
    elif mode != "url":
        relationship = cfg.get("relationship")
        if not isinstance(relationship, str) or not relationship:
            out.warn(
                f"{prefix}.select",
                "relation_mode_requires_relationship",
                'Select mode is "relation" but "relationship" is missing. The system will attempt to guess from the key name.',
            )


def _check_select_config(defn: dict, prefix: str, out: _Findings) -> None:
    if str(defn.get("inputType") or "").lower() != "select":
        return
    select = defn.get("select")
    filterable = defn.get("filterable")
    has_select = isinstance(select, dict) and bool(select)
    has_filterable = isinstance(filterable, dict) and bool(filterable)
    if not has_select and not has_filterable:
        out.error(
            prefix,
            "select_requires_config",
            '"inputType" is "select" but neither "select" nor "filterable" configuration is defined. '
            "A select/filterable block with mode, items or relationship is required.",
        )
        return
    _check_select_mode(select if has_select else filterable, prefix, out)


def _check_display_type(defn: dict, prefix: str, out: _Findings) -> None:
    display_type = defn.get("displayType")
    if not isinstance(display_type, str) or display_type.lower() not in DISPLAY_TYPES_NEEDING_CONFIG:
        return
    sub = defn.get(display_type)
    props = defn.get("displayProps")
    if not (isinstance(sub, (dict, list)) and sub) and not (isinstance(props, dict) and props):
        out.warn(
            prefix,
            "displaytype_requires_config",
            f'"displayType" is "{display_type}" but neither a "{display_type}" sub-key nor "displayProps" is defined. '
            "Display may fall back to plain text.",
        )


def _check_customizations(customizations: Any, prefix: str, out: _Findings) -> None:
    if not isinstance(customizations, dict):
        return
    for key, custom in customizations.items():
        if isinstance(custom, dict):
            path = f"{prefix}.columnCustomizations.{key}"
            _check_display_type(custom, path, out)
            _check_select_config(custom, path, out)


def _check_columns_schema(block: dict, prefix: str, out: _Findings) -> None:
    schema = block.get("columnsSchema")
    if not isinstance(schema, dict):
        return
    for key, defn in schema.items():
        if isinstance(defn, dict):
            path = f"{prefix}.columnsSchema.{key}"
            _check_select_config(defn, path, out)
            _check_display_type(defn, path, out)


def _check_functions(functions: Any, prefix: str, out: _Findings) -> None:
    if not isinstance(functions, dict):
        return
    for name, definition in functions.items():
        path = f"{prefix}.functions.{name}"
        if isinstance(definition, str):
            continue
        if not isinstance(definition, dict):
            out.warn(path, "function_type", f'Function "{name}" should be either a string or an object with "file" and "function" keys.')
            continue
        if definition.get("file") is None:
            out.error(path, "function_requires_file", f'Function "{name}" is missing the "file" key (e.g. "misc.js").')
        if definition.get("function") is None:
            out.error(
                path,
                "function_requires_function",
                f'Function "{name}" is missing the "function" key (the JS function name to extract).',
            )


def _check_form(form: dict, prefix: str, langs: List[str], out: _Findings) -> None:
    groups = form.get("groups")
    fields = form.get("fields")
    group_names: List[str] = []
    if isinstance(groups, list):
        seen: List[str] = []
        for index, group in enumerate(groups):
            if not isinstance(group, dict):
                continue
            path = f"{prefix}.groups[{index}]"
            name = group.get("name")
            if name is not None:
                name = str(name)
                group_names.append(name)
                if name in seen:
                    out.warn(path, "group_name_unique", f'Duplicate group name "{name}". Group names should be unique.')
                seen.append(name)
            label = name if name is not None else f"index:{index}"
            title = group.get("title")
            if title is None:
                out.warn(path, "group_title_required", f'Group "{label}" is missing a "title". It should be a localized object.')
            elif not isinstance(title, dict):
                out.warn(path, "group_title_localized", f'Group "{label}" title should be a localized object instead of a plain string.')
            else:
                missing = [code for code in langs if code not in title]
                if missing:
                    out.warn(path, "group_title_langs", f'Group "{label}" title is missing language(s): {", ".join(missing)}.')

    if not isinstance(fields, list):
        return
    functions = form.get("functions")
    function_names = set(functions.keys()) if isinstance(functions, dict) else set()
    for index, field in enumerate(fields):
        if not isinstance(field, dict):
            continue
        path = f"{prefix}.fields[{index}]"
        field_key = field.get("key", f"index:{index}")
        group = field.get("group")
        if group is not None and isinstance(groups, list) and str(group) not in group_names:
            out.warn(
                path,
                "field_group_exists",
                f'Field "{field_key}" references group "{group}" which is not defined in "groups". '
                f'Available groups: {", ".join(group_names)}.',
            )
        if str(field.get("inputType") or "").lower() == "search":
            submit_url = field.get("submitUrl")
            if not isinstance(submit_url, str) or not submit_url:
                out.error(
                    path,
                    "search_requires_submiturl",
                    f'Field "{field_key}" has inputType "search" but is missing "submitUrl". '
                    "A search field requires a URL to submit search queries to.",
                )
        events = field.get("events")
        if isinstance(events, dict):
            for event, handler in events.items():
                if isinstance(handler, str) and handler not in function_names:
                    out.warn(
                        f"{path}.events.{event}",
                        "event_handler_exists",
                        f'Field "{field_key}" event "{event}" references handler "{handler}" which is not defined in "functions".',
                    )


def _block_langs(block: dict) -> List[str]:
    langs = block.get("lang")
    if isinstance(langs, list) and langs:
        return [str(code).lower() for code in langs]
    return list(FALLBACK_LANGS)


def _validate_block(block: dict, prefix: str, entity_name: str, registry: Any, templates: Any, out: _Findings) -> None:
    schema = _block_schema(block, entity_name, registry)

    _check_lang(block, prefix, out)
    _check_per_page(block, prefix, out)
    _check_no_model_schema(block, prefix, out)
    _check_columns_required(block, prefix, out)
    _check_component_templates(block, prefix, templates, out)

    _check_columns_reference_schema(block, prefix, schema, out)
    _check_filters_reference_schema(block, prefix, schema, out)
    _check_customization_keys(block, prefix, schema, out)

    langs = _block_langs(block)
    for alias, ref in _components(block).items():
        if not isinstance(ref, dict):
            continue
        path = f"{prefix}.components.{alias}"
        if template_name(alias, ref) == "form":
            _check_form(ref, path, langs, out)
        _check_functions(ref.get("functions"), path, out)
        _check_customizations(ref.get("columnCustomizations"), path, out)

    _check_functions(block.get("functions"), prefix, out)
    _check_customizations(block.get("columnCustomizations"), prefix, out)
    _check_columns_schema(block, prefix, out)


def validate_view_config(doc: Any, entity_name: str, registry: Any = None, templates: Any = None) -> dict:
    """Validate every block of a view config document for ``entity_name``."""
    out = _Findings()
    if not isinstance(doc, dict) or not doc:
        out.error("(root)", "not_empty", f"View config for '{entity_name}' is empty.")
        return out.result()
    for key, block in doc.items():
        if isinstance(block, dict):
            _validate_block(block, str(key), entity_name, registry, templates, out)
    logger.debug("view_config_validated entity=%s errors=%s warnings=%s", entity_name, len(out.errors), len(out.warnings))
    return out.result()
