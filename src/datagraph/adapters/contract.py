"""Adapter capability contract.

Every storage backend implements :class:`Adapter`. The registry and the
pipelines only talk to storage through these methods, so an adapter is free
to use any native mechanism for models and associations.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from datagraph.core.context import GraphQLArgsContext
    from datagraph.core.types import EntityDefinition, FieldSpec, RelationshipOptions, RelationshipType

HookMap = dict[str, Callable[..., Awaitable[Any]]]
TypeMapper = Callable[[str, str, str], Any]


class Record:
    """An entity instance: entity name, field values and adapter metadata."""

    __slots__ = ("entity", "values", "meta")

    def __init__(
        self,
        entity: str,
        values: dict[str, Any] | None = None,
        meta: dict[str, Any] | None = None,
    ) -> None:
        self.entity = entity
        self.values = dict(values or {})
        self.meta = dict(meta or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def __getitem__(self, key: str) -> Any:
        return self.values[key]

    def __contains__(self, key: object) -> bool:
        return key in self.values

    def to_dict(self) -> dict[str, Any]:
        return dict(self.values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Record):
            return NotImplemented
        return self.entity == other.entity and self.values == other.values

    def __repr__(self) -> str:
        return f"Record({self.entity!r}, {self.values!r})"


@dataclass
class FindOptions:
    """Storage-level options for a list query."""

    where: dict[str, Any] = field(default_factory=dict)
    order_by: list[str] = field(default_factory=list)
    limit: int | None = None
    offset: int | None = None
    attributes: list[str] | None = None
    args_context: GraphQLArgsContext | None = None


@dataclass
class ListQuery:
    """Options produced from list arguments: one for the page, one for the count."""

    get_options: FindOptions
    count_options: FindOptions


@dataclass
class RelationshipAccessors:
    """Accessor table for one association.

    Every accessor takes the source instance first. ``get`` returns a list for
    to-many associations and a single instance (or ``None``) for to-one.
    """

    get: Callable[..., Awaitable[Any]]
    count: Callable[..., Awaitable[int]] | None = None
    set: Callable[..., Awaitable[Any]] | None = None
    add: Callable[..., Awaitable[Any]] | None = None
    add_multiple: Callable[..., Awaitable[Any]] | None = None
    remove_multiple: Callable[..., Awaitable[Any]] | None = None


@dataclass
class Association:
    """A relationship as seen by the pipelines."""

    name: str
    source: str
    target: str
    association_type: RelationshipType
    accessors: RelationshipAccessors
    foreign_key: str | None = None
    source_key: str | None = None


FindFunction = Callable[[Any, str, bool], Callable[[FindOptions | None], Awaitable[Any]]]
CreateFunction = Callable[..., Awaitable[Any]]
UpdateFunction = Callable[..., Awaitable[list[Any]]]
DeleteFunction = Callable[..., Awaitable[list[Any]]]


class Adapter(ABC):
    """Interface every storage backend must satisfy."""

    name: str = "default"

    # === Models and relationships ===

    @abstractmethod
    async def create_model(self, definition: EntityDefinition, hook_map: HookMap) -> Any:
        """Materialize a runtime model for ``definition``."""
        ...

    @abstractmethod
    async def create_relationship(
        self,
        source_name: str,
        target_name: str,
        name: str,
        relationship_type: RelationshipType,
        options: RelationshipOptions,
    ) -> Association:
        """Create a native association between two models of this adapter."""
        ...

    @abstractmethod
    async def create_function_for_find(self, entity_name: str) -> FindFunction:
        """Return ``find(key_value, filter_key, singular) -> (options) -> result``."""
        ...

    @abstractmethod
    def get_model(self, entity_name: str) -> Any: ...

    @abstractmethod
    def get_fields(self, entity_name: str) -> dict[str, FieldSpec]: ...

    @abstractmethod
    def get_relationships(self, entity_name: str) -> dict[str, Association]: ...

    @abstractmethod
    def get_primary_key_name_for_model(self, entity_name: str) -> str: ...

    @abstractmethod
    def get_value_from_instance(self, instance: Any, key: str) -> Any: ...

    # === Schema-layer support ===

    @abstractmethod
    def get_type_mapper(self) -> TypeMapper: ...

    @abstractmethod
    def get_default_list_args(self) -> dict[str, Any]: ...

    @abstractmethod
    def get_filter_graphql_type(self) -> Any: ...

    @abstractmethod
    def get_all_args_to_replace_id(self) -> list[str]:
        """Names of list arguments that may contain global ids."""
        ...

    # === Reads ===

    @abstractmethod
    async def process_list_args_to_options(
        self,
        entity_name: str,
        args: dict[str, Any],
        info: Any,
        where_operators: dict[str, Callable[..., Any]] | None,
        args_context: GraphQLArgsContext,
        selected_fields: list[str] | None = None,
    ) -> ListQuery: ...

    @abstractmethod
    async def process_filter_argument(
        self,
        where: dict[str, Any] | None,
        where_operators: dict[str, Callable[..., Any]] | None,
    ) -> dict[str, Any]: ...

    @abstractmethod
    async def find_all(self, entity_name: str, options: FindOptions | None = None) -> list[Any]: ...

    @abstractmethod
    async def count(self, entity_name: str, options: FindOptions | None = None) -> int: ...

    @abstractmethod
    def has_inline_count_feature(self) -> bool: ...

    @abstractmethod
    async def get_inline_count(self, rows: list[Any]) -> int: ...

    # === Writes ===

    @abstractmethod
    def get_create_function(self, entity_name: str) -> CreateFunction:
        """Return ``create(values, args_context) -> instance``."""
        ...

    @abstractmethod
    def get_update_function(
        self, entity_name: str, where_operators: dict[str, Callable[..., Any]] | None
    ) -> UpdateFunction:
        """Return ``update(where, input_factory, args_context) -> [instance]``.

        ``input_factory(instance)`` is awaited once per matched instance, in
        order, and returns the values to persist for it.
        """
        ...

    @abstractmethod
    def get_delete_function(
        self, entity_name: str, where_operators: dict[str, Callable[..., Any]] | None
    ) -> DeleteFunction:
        """Return ``delete(where, args_context, before, after) -> [instance]``."""
        ...

    @abstractmethod
    async def update(
        self, instance: Any, values: dict[str, Any], args_context: GraphQLArgsContext | None = None
    ) -> Any: ...

    @abstractmethod
    async def destroy(self, instance: Any, args_context: GraphQLArgsContext | None = None) -> None: ...

    # === Lifecycle ===

    @abstractmethod
    async def initialise(self) -> None:
        """Finalize storage for every model and association."""
        ...

    @abstractmethod
    async def reset(self) -> None:
        """Destroy and recreate storage for every model."""
        ...

    def remove_relationship(self, source_name: str, name: str) -> None:
        """Forget an association created by a failed initialise."""
        return None

    async def close(self) -> None:
        """Release connections held by the adapter."""
        return None
