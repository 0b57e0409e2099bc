"""FastAPI app exposing component settings resolution and view config validation."""

from __future__ import annotations

import os
import sys
import time
import logging
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.component_settings import ResolutionEngine, ResolveRequest, json_failure
from app.diagnostics import build_diagnostics
from app.engine_config import EngineConfig
from app.etag import etag_matches, payload_etag, resolution_key
from app.view_config_validate import validate_view_config
from schema_registry import SchemaRegistry
from view_config_store import ConfigJsonError, FileConfigStore, FileScriptStore

logger = logging.getLogger("uiapi")
logging.basicConfig(level=logging.INFO)

REQ_SLOW_MS = float(os.getenv("UIAPI_REQ_SLOW_MS", "250"))


def _error_response(message: str, detail: dict | None = None, status: int = 422) -> JSONResponse:
    body = {"error": message, **(detail or {})}
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _ok_response(payload: dict, status: int = 200, etag: str | None = None) -> JSONResponse:
    headers = {"ETag": etag} if etag else None
    return JSONResponse(jsonable_encoder(payload), status_code=status, headers=headers)


def _query(request: Request, name: str) -> str | None:
    value = request.query_params.get(name)
    return value if value not in (None, "") else None


def create_app(
    config: EngineConfig,
    store: Any = None,
    registry: SchemaRegistry | None = None,
    scripts: Any = None,
) -> FastAPI:
    if store is None:
        store = FileConfigStore(config.view_configs_path, config.component_templates_path)
    if registry is None:
        registry = SchemaRegistry()
        registry.load_dir(config.schemas_path)
    if scripts is None:
        scripts = FileScriptStore(config.scripts_path)
    engine = ResolutionEngine(config, store, registry, scripts)
    prefix = f"/{config.prefix}" if config.prefix else ""

    app = FastAPI(title="UI API component settings")
    app.state.engine = engine

    @app.middleware("http")
    async def timing_middleware(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        total_ms = (time.perf_counter() - start) * 1000
        route = request.scope.get("route")
        route_name = getattr(route, "name", None) or "unknown"
        logger.info(
            "%s %s %s route=%s total_ms=%.1f",
            request.method,
            request.url.path,
            response.status_code,
            route_name,
            total_ms,
        )
        if total_ms >= REQ_SLOW_MS:
            logger.warning(
                "slow_request method=%s path=%s route=%s total_ms=%.1f status=%s",
                request.method,
                request.url.path,
                route_name,
                total_ms,
                response.status_code,
            )
        return response

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("unhandled_error path=%s", request.url.path)
        detail = {"detail": str(exc)} if config.debug_level >= 1 else None
        return _error_response("Unexpected server error", detail=detail, status=500)

    @app.get("/health")
    async def health() -> dict:
        return {"ok": True}

    def _resolve(request: Request, entity: str, component: str | None) -> Response:
        start = time.perf_counter()
        req = ResolveRequest(
            entity=entity,
            component=component,
            view=_query(request, "view"),
            lang=_query(request, "lang"),
            columns=_query(request, "columns"),
            per_page=_query(request, "per_page"),
            component_settings=_query(request, "componentSettings"),
        )
        body, status = engine.resolve(req)
        logger.info(
            "ccs_resolve entity=%s component=%s view=%s lang=%s status=%s ms=%.1f",
            entity,
            req.component,
            req.view,
            req.lang or config.default_lang,
            status,
            (time.perf_counter() - start) * 1000,
        )
        if status != 200:
            return _error_response(body.get("error", ""), {k: v for k, v in body.items() if k != "error"}, status=status)
        key = resolution_key(
            entity,
            req.component,
            req.view,
            req.lang or config.default_lang,
            req.columns,
            req.per_page,
            req.component_settings,
        )
        etag = payload_etag(body, key)
        if etag_matches(request.headers.get("if-none-match"), etag):
            return Response(status_code=304, headers={"ETag": etag})
        return _ok_response(body, etag=etag)

    @app.get(f"{prefix}/ccs/{{entity}}")
    async def ccs_resolve(entity: str, request: Request):
        return _resolve(request, entity, _query(request, "component"))

    @app.get(f"{prefix}/ccs/{{entity}}/{{component:path}}")
    async def ccs_resolve_component(entity: str, component: str, request: Request):
        return _resolve(request, entity, component)

    @app.get(f"{prefix}/ccs-validate")
    async def ccs_validate_all():
        return _ok_response(build_diagnostics(store, registry))

    @app.get(f"{prefix}/ccs-validate/{{entity}}")
    async def ccs_validate(entity: str):
        try:
            doc = store.load_view_config(entity)
        except ConfigJsonError as exc:
            failure = json_failure(exc, config.debug_level)
            return _error_response(failure.message, failure.detail)
        result = validate_view_config(doc, entity, registry, store)
        return _ok_response({"entity": entity, "valid": not result["errors"], **result})

    return app


app = create_app(EngineConfig.from_env())
