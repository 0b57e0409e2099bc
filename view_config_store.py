"""View config, component template and script stores (file-backed and in-memory)."""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Dict

logger = logging.getLogger("uiapi.stores")


class ConfigJsonError(Exception):
    def __init__(self, path: str, error: json.JSONDecodeError) -> None:
        super().__init__(f"{error.msg} in {path} (line {error.lineno}, column {error.colno})")
        self.path = path
        self.error = error


def view_config_filename(entity: str) -> str:
    normalized = (entity or "").lower()
    for sep in ("-", "_", " "):
        normalized = normalized.replace(sep, "")
    return f"{normalized}.json"


def safe_basename(name: str) -> str | None:
    if not isinstance(name, str):
        return None
    name = name.strip()
    if not name or name in (".", "..") or "/" in name or "\\" in name or "\x00" in name:
        return None
    return name


def _read_json(path: Path) -> dict:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigJsonError(str(path), exc) from exc
    return data if isinstance(data, dict) else {}


class FileConfigStore:
    def __init__(self, view_configs_path: Path, component_templates_path: Path) -> None:
        self._views = Path(view_configs_path)
        self._templates = Path(component_templates_path)

    def list_view_configs(self) -> list[str]:
        if not self._views.is_dir():
            return []
        return sorted(p.stem for p in self._views.glob("*.json") if " copy" not in p.name)

    def load_view_config(self, entity: str) -> dict:
        path = self._views / view_config_filename(entity)
        if not path.is_file():
            return {}
        return _read_json(path)

    def has_component_template(self, name: str) -> bool:
        base = safe_basename(name)
        return base is not None and (self._templates / f"{base}.json").is_file()

    def load_component_template(self, name: str) -> dict:
        base = safe_basename(name)
        if base is None:
            logger.warning("component_template_rejected name=%r", name)
            return {}
        path = self._templates / f"{base}.json"
        if not path.is_file():
            return {}
        return _read_json(path)


class MemoryConfigStore:
    def __init__(self, view_configs: dict | None = None, templates: dict | None = None) -> None:
        self._views: Dict[str, dict] = {}
        self._templates: Dict[str, dict] = {}
        for entity, doc in (view_configs or {}).items():
            self.put_view_config(entity, doc)
        for name, doc in (templates or {}).items():
            self.put_component_template(name, doc)

    def put_view_config(self, entity: str, doc: dict) -> None:
        self._views[view_config_filename(entity)] = copy.deepcopy(doc)

    def put_component_template(self, name: str, doc: dict) -> None:
        self._templates[name] = copy.deepcopy(doc)

    def list_view_configs(self) -> list[str]:
        return sorted(name[: -len(".json")] for name in self._views)

    def load_view_config(self, entity: str) -> dict:
        return copy.deepcopy(self._views.get(view_config_filename(entity), {}))

    def has_component_template(self, name: str) -> bool:
        base = safe_basename(name)
        return base is not None and base in self._templates

    def load_component_template(self, name: str) -> dict:
        base = safe_basename(name)
        if base is None:
            return {}
        return copy.deepcopy(self._templates.get(base, {}))


class FileScriptStore:
    def __init__(self, scripts_path: Path) -> None:
        self._root = Path(scripts_path)

    def read_script(self, file_name: str) -> str | None:
        base = safe_basename(file_name)
        if base is None:
            return None
        path = self._root / base
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")


class MemoryScriptStore:
    def __init__(self, scripts: dict | None = None) -> None:
        self._scripts: Dict[str, str] = dict(scripts or {})

    def read_script(self, file_name: str) -> str | None:
        base = safe_basename(file_name)
        if base is None:
            return None
        return self._scripts.get(base)
