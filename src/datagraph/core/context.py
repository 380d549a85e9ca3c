"""Request-scoped context passed through every adapter call."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class GraphQLArgsContext:
    """Execution context, resolve info and the instance being resolved.

    Adapters forward it to hooks, field overrides and relationship accessors
    so they can reach caller state without globals.
    """

    context: Any = None
    info: Any = None
    source: Any = None

    def get_graphql_args(self) -> dict[str, Any]:
        return {"context": self.context, "info": self.info, "source": self.source}


@dataclass
class RequestInfo:
    """Minimal resolve-info shape understood by the pipelines.

    Any object exposing ``field_nodes`` and ``variable_values`` (such as
    graphql-core's ``GraphQLResolveInfo``) can be passed instead.
    """

    field_nodes: list[Any] = field(default_factory=list)
    variable_values: dict[str, Any] = field(default_factory=dict)


@dataclass
class SelectionNode:
    """A field selection: a name and its child selections."""

    name: str
    selections: list[SelectionNode] = field(default_factory=list)


def _node_name(node: Any) -> str | None:
    name = getattr(node, "name", None)
    # graphql-core wraps names in NameNode(value=...)
    return getattr(name, "value", name)


def _node_children(node: Any) -> list[Any]:
    if hasattr(node, "selections"):
        return list(node.selections or [])
    selection_set = getattr(node, "selection_set", None)
    if selection_set is None:
        return []
    return list(selection_set.selections or [])


def get_selection_set(node: Any, target_name: str = "node") -> Any | None:
    """Depth-first search for the selection named ``target_name``."""
    if _node_name(node) == target_name:
        return node
    for child in _node_children(node):
        result = get_selection_set(child, target_name)
        if result is not None:
            return result
    return None


def get_selection_fields(info: Any, target_name: str = "node") -> list[str]:
    """Field names requested under ``target_name`` in the first field node."""
    if info is None:
        return []
    field_nodes = getattr(info, "field_nodes", None)
    if not field_nodes:
        return []
    target = get_selection_set(field_nodes[0], target_name)
    if target is None:
        return []
    return [name for name in (_node_name(c) for c in _node_children(target)) if name]
