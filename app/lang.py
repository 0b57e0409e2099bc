"""Language support checks and localized value resolution."""

from __future__ import annotations

from typing import Any, Iterable

from app.column_tokens import ActiveSchema
from app.naming import title_words

FALLBACK_LANGS = ("en", "dv")


def declared_langs(defn: dict) -> list[str] | None:
    langs = defn.get("lang") if isinstance(defn, dict) else None
    if not isinstance(langs, list):
        return None
    out: list[str] = []
    for code in langs:
        code = str(code).lower()
        if code not in out:
            out.append(code)
    return out


def column_supports_lang(defn: dict, lang: str) -> bool:
    langs = declared_langs(defn)
    if langs is None:
        return True
    return (lang or "").lower() in langs


def filter_tokens_by_lang(schema: ActiveSchema, tokens: Iterable[str], lang: str) -> list[str]:
    out = []
    for token in tokens:
        defn = schema.definition(token)
        if defn is not None and column_supports_lang(defn, lang):
            out.append(token)
    return out


def pick_header_lang_override(defn: dict, lang: str) -> str | None:
    langs = declared_langs(defn)
    if not langs or len(langs) < 2:
        return None
    current = (lang or "").lower()
    others = [code for code in langs if code != current]
    if current in langs:
        if current == "en" and "dv" in others:
            return "dv"
        if current == "dv" and "en" in others:
            return "en"
        return others[0]
    for code in FALLBACK_LANGS:
        if code in langs:
            return code
    return langs[0]


def localized(value: Any, lang: str) -> Any:
    """Resolve a ``{lang: value}`` map; other values are returned unchanged."""
    if not isinstance(value, dict):
        return value
    for code in ((lang or "").lower(), *FALLBACK_LANGS):
        if value.get(code) not in (None, ""):
            return value[code]
    for item in value.values():
        if item not in (None, ""):
            return item
    return None


def label_for(defn: dict, field: str, lang: str) -> str:
    label = defn.get("label") if isinstance(defn, dict) else None
    if isinstance(label, str) and label:
        return label
    if isinstance(label, dict):
        langs = declared_langs(defn)
        if langs and len(langs) == 1 and label.get(langs[0]) not in (None, ""):
            return str(label[langs[0]])
        value = localized(label, lang)
        if value not in (None, ""):
            return str(value)
    return title_words(field.rsplit(".", 1)[-1])


def key_for(defn: dict, field: str) -> str:
    key = defn.get("key") if isinstance(defn, dict) else None
    return str(key) if key not in (None, "") else field


def is_lang_map(value: Any, languages: Iterable[str]) -> bool:
    if not isinstance(value, dict) or not value:
        return False
    known = {code.lower() for code in languages}
    for key, item in value.items():
        if not isinstance(key, str) or key.lower() not in known:
            return False
        if item is not None and not isinstance(item, (str, int, float)):
            return False
    return True


def collapse_lang_maps(payload: Any, lang: str, languages: Iterable[str]) -> Any:
    languages = tuple(languages)
    if is_lang_map(payload, languages):
        return localized(payload, lang)
    if isinstance(payload, dict):
        return {key: collapse_lang_maps(val, lang, languages) for key, val in payload.items()}
    if isinstance(payload, list):
        return [collapse_lang_maps(item, lang, languages) for item in payload]
    return payload
