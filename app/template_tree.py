"""Component templates parsed into a tagged tree.

Reserved keys carry a tri-state value: ``"on"`` (compute), ``"off"``
(omit) or anything else (literal pass-through). The interpretation lives
here so the compiler only pattern-matches node types.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Tuple, Union

from app.naming import canonical_component_name

RESERVED_KEYS = {
    "headers",
    "filters",
    "pagination",
    "datalink",
    "fields",
    "crudLink",
    "createLink",
    "functions",
}


@dataclass(frozen=True)
class Toggle:
    on: bool
    raw: str


@dataclass(frozen=True)
class Leaf:
    value: Any


@dataclass(frozen=True)
class ObjectNode:
    items: Tuple[Tuple[str, "Node"], ...]


@dataclass(frozen=True)
class ArrayNode:
    items: Tuple["Node", ...]


Node = Union[Toggle, Leaf, ObjectNode, ArrayNode]


def parse_toggle(value: Any) -> Toggle | None:
    if isinstance(value, str) and value in ("on", "off"):
        return Toggle(on=value == "on", raw=value)
    return None


def parse_node(value: Any) -> Node:
    toggle = parse_toggle(value)
    if toggle is not None:
        return toggle
    if isinstance(value, dict):
        return ObjectNode(tuple((str(k), parse_node(v)) for k, v in value.items()))
    if isinstance(value, list):
        return ArrayNode(tuple(parse_node(v) for v in value))
    return Leaf(value)


def to_plain(node: Node) -> Any:
    """Turn a node back into plain JSON; toggles become their raw strings."""
    if isinstance(node, Toggle):
        return node.raw
    if isinstance(node, Leaf):
        return node.value
    if isinstance(node, ObjectNode):
        return {key: to_plain(child) for key, child in node.items}
    return [to_plain(child) for child in node.items]


def section_names(template: dict) -> List[str]:
    return [name for name, value in template.items() if isinstance(value, dict)]


def template_name(alias: str, ref: Any) -> str:
    """Template a component alias compiles from: ``"form"``, ``{"component": "form"}`` or the alias itself."""
    if isinstance(ref, str) and ref.strip():
        return ref.strip()
    if isinstance(ref, dict) and isinstance(ref.get("component"), str) and ref["component"].strip():
        return ref["component"].strip()
    return canonical_component_name(alias)
