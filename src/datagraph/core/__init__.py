"""Core components for datagraph."""

from datagraph.core.connection import AsyncDatabaseConnection
from datagraph.core.context import GraphQLArgsContext, RequestInfo, SelectionNode
from datagraph.core.global_id import from_global_id, to_global_id
from datagraph.core.types import (
    EntityDefinition,
    Events,
    FieldOverride,
    FieldSpec,
    FieldType,
    HookName,
    LifecycleEvent,
    ListResult,
    RelationshipEdge,
    RelationshipOptions,
    RelationshipSpec,
    RelationshipType,
)
from datagraph.core.waterfall import waterfall

__all__ = [
    "AsyncDatabaseConnection",
    "GraphQLArgsContext",
    "RequestInfo",
    "SelectionNode",
    "from_global_id",
    "to_global_id",
    "EntityDefinition",
    "Events",
    "FieldOverride",
    "FieldSpec",
    "FieldType",
    "HookName",
    "LifecycleEvent",
    "ListResult",
    "RelationshipEdge",
    "RelationshipOptions",
    "RelationshipSpec",
    "RelationshipType",
    "waterfall",
]
