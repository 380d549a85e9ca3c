"""Main DataGraph facade and Entity handle."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from typing import Any

from datagraph.adapters.contract import Adapter, Association
from datagraph.core.hooks import HookPipeline
from datagraph.core.mutations import MutationPipeline
from datagraph.core.queries import ReadPipeline
from datagraph.core.registry import EntityRegistry
from datagraph.core.relationships import RelationshipGraphBuilder
from datagraph.core.types import (
    EntityDefinition,
    FieldSpec,
    ListResult,
    RelationshipEdge,
)
from datagraph.exceptions import EntityNotFoundError


class Entity:
    """Convenience handle for the operations on one entity.

    Wraps the pipelines of the parent :class:`DataGraph` so callers can pass
    plain keyword arguments instead of resolver-style ``(source, args,
    context, info)`` tuples.
    """

    def __init__(self, name: str, graph: DataGraph) -> None:
        """Initialize entity.

        Args:
            name: Entity name
            graph: Parent DataGraph instance
        """
        self._name = name
        self._graph = graph

    @property
    def name(self) -> str:
        """Get entity name."""
        return self._name

    @property
    def definition(self) -> EntityDefinition:
        return self._graph.get_definition(self._name)

    async def create(self, input: Mapping[str, Any], context: Any = None, info: Any = None) -> Any:
        """Create an instance, applying nested relationship instructions.

        Args:
            input: Field values plus relationship instructions
            context: Caller context forwarded to hooks and transforms
            info: Resolve info forwarded to hooks and transforms

        Returns:
            The created instance, or None if nothing was created
        """
        results = await self._graph.process_create(self._name, None, {"input": input}, context, info)
        return results[0] if results else None

    async def update(
        self,
        where: Mapping[str, Any],
        input: Mapping[str, Any],
        context: Any = None,
        info: Any = None,
    ) -> list[Any]:
        """Update every instance matching ``where``.

        Returns:
            Updated instances
        """
        return await self._graph.process_update(
            self._name, None, {"where": where, "input": input}, context, info
        )

    async def delete(
        self,
        where: Mapping[str, Any],
        input: Mapping[str, Any] | None = None,
        context: Any = None,
        info: Any = None,
    ) -> list[Any]:
        """Delete every instance matching ``where``.

        Args:
            where: Filter selecting instances to delete
            input: Optional relationship instructions applied to each
                instance before it is destroyed

        Returns:
            Deleted instances
        """
        args: dict[str, Any] = {"where": where}
        if input:
            args["input"] = input
        return await self._graph.process_delete(self._name, None, args, context, info)

    async def find(self, context: Any = None, info: Any = None, **args: Any) -> ListResult:
        """List instances using ``where``, ``order_by``, ``limit`` and ``offset``."""
        return await self._graph.resolve_find_all(self._name, None, args, context, info)

    async def find_by_id(self, record_id: Any, context: Any = None) -> Any:
        """Find an instance by its global id.

        Returns:
            The instance or None if not found

        Raises:
            InvalidGlobalIdError: If ``record_id`` is not a global id
        """
        primary_key = self._graph.get_model_adapter(self._name).get_primary_key_name_for_model(self._name)
        result = await self.find(context=context, where={primary_key: record_id}, limit=1)
        return result.models[0] if result.models else None

    async def related(
        self,
        instance: Any,
        relationship: str,
        context: Any = None,
        info: Any = None,
        **args: Any,
    ) -> Any:
        """Resolve ``relationship`` for ``instance``.

        Returns:
            ListResult for to-many relationships, an instance or None otherwise
        """
        edge = self._graph.get_edges(self._name).get(relationship)
        if edge is not None and edge.type.is_many:
            return await self._graph.resolve_many_relationship(
                self._name, relationship, instance, args, context, info
            )
        return await self._graph.resolve_single_relationship(
            self._name, relationship, instance, args, context, info
        )

    async def call(self, method_name: str, args: Mapping[str, Any] | None = None, context: Any = None) -> Any:
        """Call a class method declared on the entity."""
        return await self._graph.resolve_class_method(self._name, method_name, None, args, context)

    def __repr__(self) -> str:
        return f"Entity({self._name!r})"


class DataGraph:
    """Data access layer over one or more storage adapters.

    Register adapters and entity definitions, call :meth:`initialise`, then
    run reads and (nested) mutations through the resolver-style methods or
    through :meth:`entity` handles.

    Example:
        graph = DataGraph()
        graph.register_adapter(SQLAlchemyAdapter("sqlite:///:memory:"))
        await graph.add_definition({"name": "Task", "define": {"name": "string"}})
        await graph.initialise()
        task = await graph.entity("Task").create({"name": "t1"})
    """

    def __init__(self) -> None:
        self._hooks = HookPipeline()
        self._registry = EntityRegistry(self._hooks)
        self._builder = RelationshipGraphBuilder(self._registry)
        self._mutations = MutationPipeline(self._registry)
        self._reads = ReadPipeline(self._registry)
        self._entities: dict[str, Entity] = {}

    @property
    def registry(self) -> EntityRegistry:
        return self._registry

    @property
    def default_adapter_name(self) -> str | None:
        return self._registry.default_adapter_name

    @property
    def is_initialised(self) -> bool:
        return self._registry.locked

    @property
    def adapters(self) -> dict[str, Adapter]:
        return dict(self._registry.adapters)

    # === Setup ===

    def register_adapter(self, adapter: Adapter, name: str | None = None) -> Adapter:
        return self._registry.register_adapter(adapter, name)

    async def add_definition(
        self, definition: EntityDefinition | Mapping[str, Any], datasource: str | None = None
    ) -> EntityDefinition:
        return await self._registry.add_definition(definition, datasource)

    def add_hook(self, hook_name: str, hook: Callable[..., Any]) -> None:
        """Add a global adapter hook, run before every entity's own hooks."""
        self._registry.add_hook(hook_name, hook)

    async def initialise(self, reset: bool = False) -> None:
        """Build the relationship graph and initialise (or reset) every adapter."""
        await self._builder.initialise(reset)

    async def close(self) -> None:
        """Dispose of every adapter."""
        await asyncio.gather(*(adapter.close() for adapter in self._registry.adapters.values()))

    async def __aenter__(self) -> DataGraph:
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.close()

    # === Entities ===

    def entity(self, name: str) -> Entity:
        """Get a handle for a registered entity.

        Raises:
            EntityNotFoundError: If the entity is not registered
        """
        if name not in self._registry.definitions:
            raise EntityNotFoundError(name, list(self._registry.definitions))
        if name not in self._entities:
            self._entities[name] = Entity(name, self)
        return self._entities[name]

    def list_entities(self) -> list[str]:
        return list(self._registry.definitions)

    # === Registry lookups ===

    def get_definitions(self) -> dict[str, EntityDefinition]:
        return self._registry.get_definitions()

    def get_definition(self, def_name: str) -> EntityDefinition:
        return self._registry.get_definition(def_name)

    def get_fields(self, def_name: str) -> dict[str, FieldSpec]:
        return self._registry.get_fields(def_name)

    def get_global_keys(self, def_name: str) -> list[str]:
        return self._registry.get_global_keys(def_name)

    def get_relationships(self, def_name: str) -> dict[str, Association]:
        return self._registry.get_relationships(def_name)

    def get_edges(self, def_name: str) -> dict[str, RelationshipEdge]:
        return self._registry.get_edges(def_name)

    def get_accessor(self, def_name: str, accessor_name: str) -> Association | None:
        return self._registry.get_accessor(def_name, accessor_name)

    def get_model(self, def_name: str) -> Any:
        return self._registry.get_model(def_name)

    def get_model_adapter(self, def_name: str) -> Adapter:
        return self._registry.get_model_adapter(def_name)

    def get_value_from_instance(self, def_name: str, instance: Any, key: str) -> Any:
        return self._registry.get_value_from_instance(def_name, instance, key)

    def get_default_list_args(self, def_name: str) -> dict[str, Any]:
        return self._registry.get_default_list_args(def_name)

    def get_filter_graphql_type(self, def_name: str) -> Any:
        return self._registry.get_filter_graphql_type(def_name)

    def get_graphql_output_type(self, def_name: str, field_name: str, field_type: str) -> Any:
        return self._registry.get_graphql_output_type(def_name, field_name, field_type)

    def get_graphql_input_type(self, def_name: str, field_name: str, field_type: str) -> Any:
        return self._registry.get_graphql_input_type(def_name, field_name, field_type)

    # === Reads ===

    async def resolve_find_all(
        self, def_name: str, source: Any, args: Mapping[str, Any], context: Any = None, info: Any = None
    ) -> ListResult:
        return await self._reads.resolve_find_all(def_name, source, args, context, info)

    async def resolve_many_relationship(
        self,
        def_name: str,
        relationship_name: str,
        source: Any,
        args: Mapping[str, Any],
        context: Any = None,
        info: Any = None,
    ) -> ListResult:
        return await self._reads.resolve_many_relationship(
            def_name, relationship_name, source, args, context, info
        )

    async def resolve_single_relationship(
        self,
        def_name: str,
        relationship_name: str,
        source: Any,
        args: Mapping[str, Any] | None = None,
        context: Any = None,
        info: Any = None,
    ) -> Any:
        return await self._reads.resolve_single_relationship(
            def_name, relationship_name, source, args, context, info
        )

    async def resolve_class_method(
        self,
        def_name: str,
        method_name: str,
        source: Any,
        args: Mapping[str, Any] | None,
        context: Any = None,
        info: Any = None,
    ) -> Any:
        return await self._reads.resolve_class_method(def_name, method_name, source, args, context, info)

    # === Mutations ===

    async def process_create(
        self, def_name: str, source: Any, args: Mapping[str, Any], context: Any = None, info: Any = None
    ) -> list[Any]:
        return await self._mutations.process_create(def_name, source, args, context, info)

    async def process_update(
        self, def_name: str, source: Any, args: Mapping[str, Any], context: Any = None, info: Any = None
    ) -> list[Any]:
        return await self._mutations.process_update(def_name, source, args, context, info)

    async def process_delete(
        self, def_name: str, source: Any, args: Mapping[str, Any], context: Any = None, info: Any = None
    ) -> list[Any]:
        return await self._mutations.process_delete(def_name, source, args, context, info)

    async def process_relationship_mutation(
        self, def_name: str, source: Any, input: Mapping[str, Any], context: Any = None, info: Any = None
    ) -> Any:
        return await self._mutations.process_relationship_mutation(def_name, source, input, context, info)

    async def process_inputs(
        self,
        def_name: str,
        input: Mapping[str, Any],
        source: Any,
        args: Mapping[str, Any],
        context: Any = None,
        info: Any = None,
        model: Any = None,
    ) -> dict[str, Any]:
        return await self._mutations.process_inputs(def_name, input, source, args, context, info, model)

    def __repr__(self) -> str:
        return (
            f"DataGraph(entities={len(self._registry.definitions)}, "
            f"adapters={list(self._registry.adapters)}, initialised={self.is_initialised})"
        )
