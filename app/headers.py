"""Table header descriptors built from column tokens, schema and customizations."""

from __future__ import annotations

from typing import Any

from app.column_tokens import ActiveSchema
from app.lang import column_supports_lang, filter_tokens_by_lang, key_for, label_for, localized, pick_header_lang_override
from app.naming import title_words

LOCALIZED_CONFIG_KEYS = {"label", "title", "text", "tooltip"}
# consumed by the builder, never merged verbatim onto a header
_RESERVED_CUSTOM_KEYS = {"title", "value", "order", "lang"}


def unique_tokens(tokens: list[str] | None, schema: ActiveSchema) -> list[str]:
    if tokens:
        out: list[str] = []
        for token in tokens:
            if isinstance(token, str) and token not in out:
                out.append(token)
        return out
    return list(schema.columns.keys())


def normalize_display_config(config: Any, lang: str) -> Any:
    if isinstance(config, dict):
        out = {}
        for key, value in config.items():
            if key in LOCALIZED_CONFIG_KEYS and isinstance(value, dict):
                out[key] = localized(value, lang)
            else:
                out[key] = normalize_display_config(value, lang)
        return out
    if isinstance(config, list):
        return [normalize_display_config(item, lang) for item in config]
    return config


def customized_title(custom: dict | None, lang: str) -> str | None:
    if not isinstance(custom, dict):
        return None
    title = custom.get("title")
    if isinstance(title, dict):
        value = localized(title, lang)
        return str(value) if value not in (None, "") else None
    if isinstance(title, str) and title:
        return title
    return None


def _relation_title(defn: dict, field: str, lang: str) -> str:
    rel_label = defn.get("relationLabel")
    if isinstance(rel_label, dict):
        value = localized(rel_label, lang)
        if value not in (None, ""):
            return str(value)
    elif isinstance(rel_label, str) and rel_label:
        return rel_label
    return label_for(defn, field, lang)


def _set_display_type(header: dict, source: dict, lang: str) -> None:
    display_type = source.get("displayType")
    if not isinstance(display_type, str) or not display_type:
        return
    previous = header.get("displayType")
    if previous and previous != display_type:
        header.pop(previous, None)
    header["displayType"] = display_type
    config = source.get(display_type)
    if isinstance(config, (dict, list)):
        header[display_type] = normalize_display_config(config, lang)


def _apply_definition(header: dict, defn: dict, lang: str) -> None:
    if "type" in defn:
        header["type"] = str(defn["type"])
    _set_display_type(header, defn, lang)
    if isinstance(defn.get("displayProps"), dict):
        header["displayProps"] = normalize_display_config(defn["displayProps"], lang)
    if "inlineEditable" in defn:
        header["inlineEditable"] = bool(defn["inlineEditable"])
    override = pick_header_lang_override(defn, lang)
    if override is not None:
        header["lang"] = override


def apply_customization(header: dict, custom: dict | None, lang: str) -> dict:
    if not isinstance(custom, dict):
        return header
    if "sortable" in custom:
        header["sortable"] = bool(custom["sortable"])
    if "hidden" in custom:
        header["hidden"] = bool(custom["hidden"])
    if "type" in custom:
        header["type"] = str(custom["type"])
    _set_display_type(header, custom, lang)
    if isinstance(custom.get("displayProps"), dict):
        header["displayProps"] = normalize_display_config(custom["displayProps"], lang)
    if "inlineEditable" in custom:
        header["inlineEditable"] = bool(custom["inlineEditable"])
    if "editable" in custom:
        header["inlineEditable"] = bool(custom["editable"])
    for key, value in custom.items():
        if key in _RESERVED_CUSTOM_KEYS or key in header or key == "editable":
            continue
        header[key] = value
    return header


def _order_of(custom: Any) -> float | None:
    if not isinstance(custom, dict):
        return None
    order = custom.get("order")
    if isinstance(order, bool) or not isinstance(order, (int, float)):
        return None
    return order


def reorder_headers(entries: list[tuple[str, dict]], customizations: dict | None) -> list[dict]:
    """Splice entries carrying a numeric ``order`` into position, ascending."""
    customizations = customizations if isinstance(customizations, dict) else {}
    ordered = []
    rest = []
    for token, header in entries:
        order = _order_of(customizations.get(token))
        if order is None:
            rest.append(header)
        else:
            ordered.append((order, header))
    ordered.sort(key=lambda item: item[0])
    result = list(rest)
    for order, header in ordered:
        idx = max(0, min(int(order), len(result)))
        result.insert(idx, header)
    return result


def build_headers(
    schema: ActiveSchema,
    tokens: list[str] | None,
    lang: str,
    customizations: dict | None = None,
    include_hidden: bool = False,
) -> list[dict]:
    customizations = customizations if isinstance(customizations, dict) else {}
    fields = filter_tokens_by_lang(schema, unique_tokens(tokens, schema), lang)
    entries: list[tuple[str, dict]] = []
    seen = set()
    for token in fields:
        defn = schema.definition(token)
        if defn is None:
            continue
        seen.add(token)
        if not include_hidden and bool(defn.get("hidden", False)):
            continue
        custom = customizations.get(token)
        if "." in token:
            title = customized_title(custom, lang) or _relation_title(defn, token.split(".", 1)[1], lang)
            value = token
        else:
            title = customized_title(custom, lang) or label_for(defn, token, lang)
            value = key_for(defn, token)
        header = {
            "title": title,
            "value": value,
            "sortable": bool(defn.get("sortable", False)),
            "hidden": bool(defn.get("hidden", False)),
        }
        _apply_definition(header, defn, lang)
        entries.append((token, apply_customization(header, custom, lang)))

    for key, custom in customizations.items():
        if not isinstance(custom, dict) or key in seen or key in schema.columns or "." in key:
            continue
        if not column_supports_lang(custom, lang):
            continue
        header = {
            "title": customized_title(custom, lang) or title_words(key),
            "value": str(custom.get("value") or key),
            "sortable": bool(custom.get("sortable", False)),
            "hidden": bool(custom.get("hidden", False)),
        }
        entries.append((key, apply_customization(header, custom, lang)))

    return reorder_headers(entries, customizations)
