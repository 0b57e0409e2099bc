"""Component settings assembler: the top-level resolution flow for one request."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, replace
from typing import Any

from app.column_tokens import ActiveSchema, columns_param, normalize_columns
from app.engine_config import EngineConfig
from app.failures import (
    COLUMNS_UNDEFINED,
    COMPONENT_CONFIG_NOT_FOUND,
    COMPONENT_KEY_NOT_FOUND,
    COMPONENT_REQUIRED,
    CONFIG_JSON_INVALID,
    ENTITY_NOT_FOUND,
    INVALID_REFERENCE,
    MISSING_SCHEMA,
    VALIDATION_FAILED,
    VIEW_CONFIG_MISSING,
    Failure,
    fail,
)
from app.filters import build_filters
from app.headers import build_headers
from app.lang import collapse_lang_maps, filter_tokens_by_lang
from app.naming import canonical_component_name
from app.overrides import apply_overrides
from app.section_compile import SectionContext, compile_section, is_string_list
from app.template_tree import section_names, template_name
from app.view_config_validate import validate_view_config
from view_config_store import ConfigJsonError

logger = logging.getLogger("uiapi.engine")

MAX_REFERENCE_DEPTH = 4
# block-level settings that never act as overrides on a self-compiled block
_BLOCK_SETTING_KEYS = {
    "noModel",
    "columnsSchema",
    "components",
    "componentSettings",
    "columns",
    "columnCustomizations",
    "per_page",
    "filters",
    "lang",
    "functions",
}


@dataclass
class ResolveRequest:
    entity: str
    component: str | None = None
    view: str | None = None
    lang: str | None = None
    columns: str | None = None
    per_page: Any = None
    component_settings: str | None = None


def lang_allowed(langs: Any, lang: str) -> bool:
    if not isinstance(langs, list) or not langs:
        return False
    return (lang or "").lower() in {str(code).lower() for code in langs}


def unsupported_lang(lang: str) -> dict:
    return {"message": f"Language '{lang}' not supported by view config", "data": []}


def json_failure(exc: ConfigJsonError, debug_level: int) -> Failure:
    if debug_level <= 0:
        return fail(CONFIG_JSON_INVALID, "Invalid JSON in config file")
    message = f"Invalid JSON in config file: {type(exc.error).__name__} in {exc.path}"
    if debug_level == 1:
        return fail(CONFIG_JSON_INVALID, message)
    return fail(
        CONFIG_JSON_INVALID,
        f"{message}: {exc.error.msg}",
        line=exc.error.lineno,
        column=exc.error.colno,
    )


def parse_per_page(*candidates: Any, default: int) -> int:
    for value in candidates:
        if value is None or value == "" or isinstance(value, bool):
            continue
        try:
            number = int(value)
        except (TypeError, ValueError):
            continue
        if number > 0:
            return number
    return default


def split_reference(entity: str, component: str) -> tuple[str, str]:
    """``other/table`` re-points resolution at ``other``'s view config."""
    if "/" in component:
        other, key = component.split("/", 1)
        if other and key:
            return other, key
    return entity, component


def _merge_customization_maps(base: dict | None, extra: dict) -> dict:
    merged = copy.deepcopy(base) if isinstance(base, dict) else {}
    for key, value in extra.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


def _dict_or_none(value: Any) -> dict | None:
    return value if isinstance(value, dict) else None


class ResolutionEngine:
    """Resolves ``ccs`` requests against the config store and schema registry."""

    def __init__(self, config: EngineConfig, store: Any, registry: Any, scripts: Any = None) -> None:
        self.config = config
        self.store = store
        self.registry = registry
        self.scripts = scripts

    def resolve(self, request: ResolveRequest) -> tuple[dict, int]:
        try:
            body, failure = self._resolve(request)
        except ConfigJsonError as exc:
            logger.warning("config_json_invalid path=%s line=%s column=%s", exc.path, exc.error.lineno, exc.error.colno)
            body, failure = None, json_failure(exc, self.config.debug_level)
        if failure is not None:
            if self.config.logging_enabled:
                logger.debug("ccs_failed entity=%s kind=%s message=%s", request.entity, failure.kind, failure.message)
            return failure.body(), 422
        return body, 200

    def _debug(self, message: str, *args: Any) -> None:
        if self.config.logging_enabled:
            logger.debug(message, *args)

    def _resolve(self, request: ResolveRequest) -> tuple[dict | None, Failure | None]:
        lang = request.lang or self.config.default_lang
        if request.view:
            return self._resolve_view(request.entity, request.view, lang)
        if not request.component:
            return None, fail(COMPONENT_REQUIRED, "component parameter is required")

        entity, component_key = split_reference(request.entity, request.component)
        doc = self.store.load_view_config(entity)
        if not doc:
            return None, fail(VIEW_CONFIG_MISSING, "view config file missing for model")
        block = doc.get(component_key)
        if not isinstance(block, dict):
            return None, fail(COMPONENT_KEY_NOT_FOUND, "component key not found in view config")

        ctx, failure = self._prepare(entity, block, lang, request.columns, request.per_page)
        if failure is not None:
            return None, failure
        if ctx is None:
            return unsupported_lang(lang), None

        if self.config.validate_on_request:
            result = validate_view_config(doc, entity, self.registry, self.store)
            if result["errors"]:
                return None, fail(VALIDATION_FAILED, "View config validation failed", validation=result)
        self._debug("ccs_context entity=%s component=%s tokens=%s relations=%s", entity, component_key, ",".join(ctx.tokens), ",".join(ctx.relations))

        if request.component_settings:
            settings, failure = self._single_component(request.component_settings, ctx)
        else:
            settings, failure = self._components(component_key, block, ctx, 0)
        if failure is not None:
            return None, failure

        if self.config.include_meta:
            failure = self._inject_meta(settings, ctx)
            if failure is not None:
                return None, failure

        response: dict = {
            "component": canonical_component_name(component_key),
            "componentSettings": settings,
        }
        if self.config.include_top_level_headers:
            response["headers"] = build_headers(
                ctx.schema,
                ctx.tokens,
                lang,
                ctx.customizations,
                include_hidden=self.config.include_hidden_columns_in_headers,
            )
        if self.config.include_top_level_filters:
            filters, failure = build_filters(
                ctx.schema,
                lang,
                self.config,
                allowed=ctx.allowed_filters,
                active_tokens=ctx.tokens,
                customizations=ctx.customizations,
            )
            if failure is not None:
                return None, failure
            response["filters"] = filters
        if self.config.include_top_level_pagination:
            response["pagination"] = {"current_page": 1, "per_page": ctx.per_page}
        return collapse_lang_maps(response, lang, self.config.languages), None

    def _resolve_view(self, entity: str, view: str, lang: str) -> tuple[dict | None, Failure | None]:
        doc = self.store.load_view_config(entity)
        if not doc:
            return None, fail(VIEW_CONFIG_MISSING, "view config file missing for model")
        block = doc.get(view)
        if not isinstance(block, dict):
            return None, fail(COMPONENT_KEY_NOT_FOUND, "view key not found in view config")
        if not lang_allowed(block.get("lang"), lang):
            return unsupported_lang(lang), None
        settings = block.get("componentSettings")
        if not isinstance(settings, dict):
            settings = block.get("components") if isinstance(block.get("components"), dict) else {}
        return {"componentSettings": copy.deepcopy(settings)}, None

    def active_schema(self, entity: str, block: dict) -> tuple[ActiveSchema | None, Failure | None]:
        if block.get("noModel"):
            columns = block.get("columnsSchema")
            if not isinstance(columns, dict) or not columns:
                return None, fail(MISSING_SCHEMA, "noModel mode requires columnsSchema in view config")
            return ActiveSchema(entity=entity, columns=columns, no_model=True), None
        found = self.registry.get(entity) if self.registry is not None else None
        resolved = self.registry.resolve_schema(entity) if found is not None else None
        if resolved is None:
            return None, fail(ENTITY_NOT_FOUND, f"Model '{entity}' not found or missing schema")
        return ActiveSchema(
            entity=found.name,
            columns=resolved["columns"],
            registry=self.registry,
        ), None

    def _prepare(
        self,
        entity: str,
        block: dict,
        lang: str,
        columns: Any = None,
        per_page: Any = None,
    ) -> tuple[SectionContext | None, Failure | None]:
        """Build the section context for a block; ``(None, None)`` means the language is gated."""
        raw_columns = columns_param(columns) or columns_param(block.get("columns"))
        if raw_columns is None:
            return None, fail(COLUMNS_UNDEFINED, "columns not defined in view config for component")
        if block.get("noModel"):
            # noModel blocks must carry their schema even when the language is gated
            columns_schema = block.get("columnsSchema")
            if not isinstance(columns_schema, dict) or not columns_schema:
                return None, fail(MISSING_SCHEMA, "noModel mode requires columnsSchema in view config")
        if not lang_allowed(block.get("lang"), lang):
            self._debug("ccs_lang_gated entity=%s lang=%s", entity, lang)
            return None, None

        schema, failure = self.active_schema(entity, block)
        if failure is not None:
            return None, failure
        resolution, failure = normalize_columns(raw_columns, schema)
        if failure is not None:
            return None, failure
        filters = block.get("filters")
        return SectionContext(
            schema=schema,
            tokens=filter_tokens_by_lang(schema, resolution.tokens, lang),
            lang=lang,
            per_page=parse_per_page(per_page, block.get("per_page"), default=self.config.default_per_page),
            config=self.config,
            customizations=_dict_or_none(block.get("columnCustomizations")),
            allowed_filters=list(filters) if is_string_list(filters) else None,
            functions=_dict_or_none(block.get("functions")),
            scripts=self.scripts,
            relations=resolution.relations,
        ), None

    def _compile_template(self, name: str, template: dict, ctx: SectionContext) -> tuple[dict | None, Failure | None]:
        section = template.get(name)
        return compile_section(section if isinstance(section, dict) else template, ctx)

    def _single_component(self, name: str, ctx: SectionContext) -> tuple[dict | None, Failure | None]:
        template = self.store.load_component_template(name)
        if not template:
            return None, fail(COMPONENT_CONFIG_NOT_FOUND, f"Component config '{name}' not found")
        ordered = [name] if isinstance(template.get(name), dict) else []
        ordered += [section for section in section_names(template) if section != name]
        settings: dict = {}
        for section in ordered:
            payload, failure = compile_section(template[section], ctx)
            if failure is not None:
                return None, failure
            settings[section] = payload
        return settings, None

    def _component_refs(self, component_key: str, block: dict) -> list[tuple[str, Any]]:
        components = block.get("components")
        if isinstance(components, dict):
            return list(components.items())
        own = {k: v for k, v in block.items() if k not in _BLOCK_SETTING_KEYS}
        return [(component_key, own)]

    def _component_context(self, ref: Any, ctx: SectionContext) -> tuple[SectionContext | None, Failure | None]:
        if not isinstance(ref, dict):
            return ctx, None
        langs = ref.get("lang")
        if isinstance(langs, list) and langs and not lang_allowed(langs, ctx.lang):
            return None, None
        changes: dict = {}
        raw_columns = columns_param(ref.get("columns"))
        if raw_columns is not None:
            resolution, failure = normalize_columns(raw_columns, ctx.schema)
            if failure is not None:
                return None, failure
            changes["tokens"] = filter_tokens_by_lang(ctx.schema, resolution.tokens, ctx.lang)
            changes["relations"] = resolution.relations
        if isinstance(ref.get("columnCustomizations"), dict):
            changes["customizations"] = _merge_customization_maps(ctx.customizations, ref["columnCustomizations"])
        if "per_page" in ref:
            changes["per_page"] = parse_per_page(ref["per_page"], default=ctx.per_page)
        if is_string_list(ref.get("filters")):
            changes["allowed_filters"] = list(ref["filters"])
        return (replace(ctx, **changes) if changes else ctx), None

    def _components(self, component_key: str, block: dict, ctx: SectionContext, depth: int) -> tuple[dict | None, Failure | None]:
        refs = self._component_refs(component_key, block)
        missing: list[str] = []
        for alias, ref in refs:
            if ref is False or (isinstance(ref, str) and "/" in ref):
                continue
            name = template_name(alias, ref)
            if not self.store.has_component_template(name) and name not in missing:
                missing.append(name)
        if len(missing) > 1:
            return None, fail(COMPONENT_CONFIG_NOT_FOUND, "Component config(s) not found", missingComponents=missing)
        if missing:
            return None, fail(COMPONENT_CONFIG_NOT_FOUND, f"Component config '{missing[0]}' not found")

        settings: dict = {}
        for alias, ref in refs:
            if ref is False:
                continue
            if isinstance(ref, str) and "/" in ref:
                payload, failure = self._cross_component(ref, ctx.lang, depth + 1)
                if failure is not None:
                    return None, failure
                if payload is not None:
                    settings[alias] = payload
                continue
            comp_ctx, failure = self._component_context(ref, ctx)
            if failure is not None:
                return None, failure
            if comp_ctx is None:
                self._debug("component_lang_gated alias=%s lang=%s", alias, ctx.lang)
                continue
            name = template_name(alias, ref)
            payload, failure = self._compile_template(name, self.store.load_component_template(name), comp_ctx)
            if failure is not None:
                return None, failure
            if isinstance(ref, dict):
                payload = apply_overrides(payload, ref, self.config.allow_custom_component_keys, self.scripts)
            settings[alias] = payload
        return settings, None

    def _cross_component(self, ref: str, lang: str, depth: int) -> tuple[Any, Failure | None]:
        entity, key = ref.split("/", 1)
        if depth > MAX_REFERENCE_DEPTH:
            return None, fail(INVALID_REFERENCE, f"Component reference '{ref}' nests too deeply")
        doc = self.store.load_view_config(entity) if entity else {}
        block = doc.get(key) if key else None
        if not isinstance(block, dict):
            return None, fail(COMPONENT_KEY_NOT_FOUND, f"Component '{key}' not found in view config for '{entity}'")
        ctx, failure = self._prepare(entity, block, lang)
        if failure is not None or ctx is None:
            return None, failure
        settings, failure = self._components(key, block, ctx, depth)
        if failure is not None:
            return None, failure
        if not isinstance(block.get("components"), dict):
            return settings.get(key), None
        return settings, None

    def _inject_meta(self, settings: dict, ctx: SectionContext) -> Failure | None:
        if "meta" in settings or not self.store.has_component_template("meta"):
            return None
        payload, failure = self._compile_template("meta", self.store.load_component_template("meta"), ctx)
        if failure is not None:
            return failure
        settings["meta"] = payload
        return None
