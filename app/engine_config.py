"""Engine configuration read once at process start."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

ROOT = Path(__file__).resolve().parents[1]
BUNDLED_TEMPLATES = Path(__file__).resolve().parent / "component_templates"


def read_env_file(path: Path) -> dict[str, str]:
    """Parse ``KEY=value`` lines from an env file.

    ``export`` prefixes, surrounding quotes and trailing `` #`` comments on
    unquoted values are dropped. A missing file reads as empty.
    """
    if not path.is_file():
        return {}
    values: dict[str, str] = {}
    for raw in path.read_text(encoding="utf-8").splitlines():
        text = raw.strip()
        if text.startswith("export "):
            text = text[len("export "):].lstrip()
        name, sep, value = text.partition("=")
        name = name.strip()
        if not sep or not name or name.startswith("#"):
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] in ("'", '"') and value[-1] == value[0]:
            value = value[1:-1]
        else:
            value = value.split(" #", 1)[0].rstrip()
        values[name] = value
    return values


def _env_flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes")


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_path(env: Mapping[str, str], name: str, default: Path) -> Path:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    path = Path(raw)
    return path if path.is_absolute() else ROOT / path


@dataclass(frozen=True)
class EngineConfig:
    route_prefix: str = "api"
    base_url: str = ""
    default_lang: str = "dv"
    languages: tuple[str, ...] = ("en", "dv")
    default_per_page: int = 25
    debug_level: int = 0
    allow_custom_component_keys: bool = True
    include_hidden_columns_in_headers: bool = False
    include_top_level_headers: bool = False
    include_top_level_filters: bool = False
    include_top_level_pagination: bool = False
    include_meta: bool = False
    validate_on_request: bool = False
    logging_enabled: bool = False
    view_configs_path: Path = field(default=ROOT / "view_configs")
    component_templates_path: Path = field(default=BUNDLED_TEMPLATES)
    scripts_path: Path = field(default=ROOT / "scripts")
    schemas_path: Path = field(default=ROOT / "schemas")

    @property
    def prefix(self) -> str:
        return self.route_prefix.strip("/")

    @classmethod
    def from_env(cls, env_file: Path | None = None, environ: Mapping[str, str] | None = None) -> "EngineConfig":
        """Build the config from the process environment over values in ``app/.env``."""
        env = {**read_env_file(env_file or ROOT / "app" / ".env"), **(os.environ if environ is None else environ)}
        languages = tuple(
            code.strip().lower()
            for code in env.get("UIAPI_LANGUAGES", "en,dv").split(",")
            if code.strip()
        )
        return cls(
            route_prefix=env.get("UIAPI_ROUTE_PREFIX", "").strip() or "api",
            base_url=env.get("UIAPI_BASE_URL", "").strip().rstrip("/"),
            default_lang=env.get("UIAPI_DEFAULT_LANG", "").strip().lower() or "dv",
            languages=languages or ("en", "dv"),
            default_per_page=_env_int(env, "UIAPI_DEFAULT_PER_PAGE", 25),
            debug_level=max(0, min(2, _env_int(env, "UIAPI_DEBUG_LEVEL", 0))),
            allow_custom_component_keys=_env_flag(env, "UIAPI_ALLOW_CUSTOM_COMPONENT_KEYS", True),
            include_hidden_columns_in_headers=_env_flag(env, "UIAPI_INCLUDE_HIDDEN_HEADERS", False),
            include_top_level_headers=_env_flag(env, "UIAPI_TOP_LEVEL_HEADERS", False),
            include_top_level_filters=_env_flag(env, "UIAPI_TOP_LEVEL_FILTERS", False),
            include_top_level_pagination=_env_flag(env, "UIAPI_TOP_LEVEL_PAGINATION", False),
            include_meta=_env_flag(env, "UIAPI_INCLUDE_META", False),
            validate_on_request=_env_flag(env, "UIAPI_VALIDATE_ON_REQUEST", False),
            logging_enabled=_env_flag(env, "UIAPI_LOGGING_ENABLED", False),
            view_configs_path=_env_path(env, "UIAPI_VIEW_CONFIGS_PATH", ROOT / "view_configs"),
            component_templates_path=_env_path(env, "UIAPI_COMPONENT_TEMPLATES_PATH", BUNDLED_TEMPLATES),
            scripts_path=_env_path(env, "UIAPI_SCRIPTS_PATH", ROOT / "scripts"),
            schemas_path=_env_path(env, "UIAPI_SCHEMAS_PATH", ROOT / "schemas"),
        )
