"""datagraph - Data access orchestration over pluggable storage adapters.

Entities are declared once, bound to a storage adapter, and linked by
relationships that may span adapters. Mutations can create, update, delete,
attach and detach related entities in one nested input, and opaque global ids
are translated to adapter keys on the way in.

Example:
    from datagraph import DataGraph
    from datagraph.adapters.sql import SQLAlchemyAdapter

    graph = DataGraph()
    graph.register_adapter(SQLAlchemyAdapter("sqlite:///:memory:"))
    await graph.add_definition({
        "name": "Task",
        "define": {"name": "string"},
        "relationships": [{"type": "hasMany", "model": "TaskItem", "name": "items"}],
    })
    await graph.add_definition({"name": "TaskItem", "define": {"title": "string"}})
    await graph.initialise()

    task = await graph.entity("Task").create(
        {"name": "t1", "items": {"create": [{"title": "a"}, {"title": "b"}]}}
    )
    items = await graph.entity("Task").related(task, "items")
"""

from datagraph.adapters.contract import Adapter, FindOptions, Record
from datagraph.adapters.memory import MemoryAdapter
from datagraph.adapters.sql import SQLAlchemyAdapter
from datagraph.core.context import GraphQLArgsContext, RequestInfo
from datagraph.core.engine import DataGraph, Entity
from datagraph.core.global_id import from_global_id, to_global_id
from datagraph.core.identifiers import replace_id_deep
from datagraph.core.types import (
    EntityDefinition,
    Events,
    FieldOverride,
    FieldSpec,
    FieldType,
    HookName,
    LifecycleEvent,
    ListResult,
    RelationshipOptions,
    RelationshipSpec,
    RelationshipType,
)
from datagraph.core.waterfall import waterfall
from datagraph.exceptions import (
    AdapterAlreadyExistsError,
    AdapterNotFoundError,
    ClassMethodNotFoundError,
    ConfigurationError,
    DataGraphError,
    EntityAlreadyExistsError,
    EntityNotFoundError,
    FilterError,
    InvalidGlobalIdError,
    InvalidHookError,
    InvalidRelationshipTypeError,
    MissingForeignKeyError,
    UndeclaredForeignKeyError,
    RecordNotFoundError,
    RegistryLockedError,
    RelationshipAlreadyExistsError,
    RelationshipNotFoundError,
    ValidationError,
)

__version__ = "0.1.0"

__all__ = [
    # Main classes
    "DataGraph",
    "Entity",
    # Adapters
    "Adapter",
    "MemoryAdapter",
    "SQLAlchemyAdapter",
    "FindOptions",
    "Record",
    # Types
    "EntityDefinition",
    "Events",
    "FieldOverride",
    "FieldSpec",
    "FieldType",
    "HookName",
    "LifecycleEvent",
    "ListResult",
    "RelationshipOptions",
    "RelationshipSpec",
    "RelationshipType",
    "GraphQLArgsContext",
    "RequestInfo",
    # Identifiers
    "to_global_id",
    "from_global_id",
    "replace_id_deep",
    "waterfall",
    # Exceptions
    "DataGraphError",
    "ConfigurationError",
    "EntityAlreadyExistsError",
    "AdapterAlreadyExistsError",
    "AdapterNotFoundError",
    "RelationshipAlreadyExistsError",
    "MissingForeignKeyError",
    "UndeclaredForeignKeyError",
    "InvalidRelationshipTypeError",
    "InvalidHookError",
    "RegistryLockedError",
    "EntityNotFoundError",
    "RelationshipNotFoundError",
    "ClassMethodNotFoundError",
    "RecordNotFoundError",
    "ValidationError",
    "InvalidGlobalIdError",
    "FilterError",
]
