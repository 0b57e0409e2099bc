"""JS function body extraction for the ``functions`` section key."""

from __future__ import annotations

import logging
import re
from typing import Any

logger = logging.getLogger("uiapi.engine")


def _declaration_patterns(name: str) -> list[tuple[re.Pattern, bool]]:
    """Declaration shapes for ``name``; the flag marks arrow functions."""
    n = re.escape(name)
    return [
        (re.compile(rf"\bfunction\s+{n}\s*\("), False),
        (re.compile(rf"\b{n}\s*[:=]\s*(?:async\s+)?function\b[^(]*\("), False),
        (re.compile(rf"\b{n}\s*[:=]\s*(?:async\s+)?\("), True),
        (re.compile(rf"\b{n}\s*[:=]\s*(?:async\s+)?[A-Za-z_$][\w$]*\s*=>"), True),
        # shorthand method inside an object literal
        (re.compile(rf"^[ \t]*(?:async\s+)?{n}\s*\(", re.MULTILINE), False),
    ]


def _skip_string(source: str, i: int) -> int:
    quote = source[i]
    i += 1
    while i < len(source):
        ch = source[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        i += 1
    return len(source)


def _skip_comment(source: str, i: int) -> int:
    if source.startswith("//", i):
        end = source.find("\n", i)
        return len(source) if end < 0 else end + 1
    end = source.find("*/", i + 2)
    return len(source) if end < 0 else end + 2


def _mask(source: str) -> str:
    """Copy of ``source`` with strings and comments blanked; offsets and newlines are kept."""
    out = list(source)
    i = 0
    while i < len(source):
        if source[i] in ("'", '"', "`"):
            end = _skip_string(source, i)
        elif source.startswith("//", i) or source.startswith("/*", i):
            end = _skip_comment(source, i)
        else:
            i += 1
            continue
        for j in range(i, end):
            if out[j] != "\n":
                out[j] = " "
        i = end
    return "".join(out)


def _matching(masked: str, start: int, opener: str, closer: str) -> int | None:
    depth = 0
    for i in range(start, len(masked)):
        ch = masked[i]
        if ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return i
    return None


def _skip_space(masked: str, pos: int) -> int:
    while pos < len(masked) and masked[pos].isspace():
        pos += 1
    return pos


def _expression_body(source: str, masked: str, start: int) -> str:
    depth = 0
    end = start
    while end < len(masked):
        ch = masked[end]
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            if depth == 0:
                break
            depth -= 1
        elif depth == 0 and ch in ";,\n":
            break
        end += 1
    return source[start:end].strip()


def _body_at(source: str, masked: str, pos: int, arrow: bool) -> str | None:
    if masked[pos - 1] == "(":
        close = _matching(masked, pos - 1, "(", ")")
        if close is None:
            return None
        pos = _skip_space(masked, close + 1)
        if arrow:
            if not masked.startswith("=>", pos):
                return None
            pos += 2
    if arrow:
        pos = _skip_space(masked, pos)
        if not masked.startswith("{", pos):
            return _expression_body(source, masked, pos)
    elif not masked.startswith("{", pos):
        return None
    close = _matching(masked, pos, "{", "}")
    if close is None:
        return None
    return source[pos + 1:close].strip()


def extract_function_body(source: str, name: str) -> str | None:
    """Return the body text of the JS function ``name`` declared in ``source``."""
    masked = _mask(source)
    for pattern, arrow in _declaration_patterns(name):
        for match in pattern.finditer(masked):
            body = _body_at(source, masked, match.end(), arrow)
            if body is not None:
                return body
    return None


def resolve_function(value: Any, scripts: Any) -> Any:
    if not isinstance(value, dict):
        return value
    file_name = value.get("file")
    func_name = value.get("function")
    if not isinstance(file_name, str) or not isinstance(func_name, str):
        return value
    source = scripts.read_script(file_name) if scripts is not None else None
    if source is None:
        logger.warning("function_file_missing file=%s", file_name)
        return f"/* function file '{file_name}' not found */"
    body = extract_function_body(source, func_name)
    if body is None:
        logger.warning("function_missing file=%s function=%s", file_name, func_name)
        return f"/* function '{func_name}' not found in {file_name} */"
    return body


def resolve_functions(functions: Any, scripts: Any) -> Any:
    """Resolve every ``{file, function}`` entry of a functions map to its body text."""
    if not isinstance(functions, dict):
        return functions
    return {name: resolve_function(value, scripts) for name, value in functions.items()}
