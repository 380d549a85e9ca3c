"""Relationship graph builder.

Resolves every declared relationship into a :class:`RelationshipEdge`. Edges
between entities on the same adapter use the adapter's native associations;
edges that cross adapters get proxy accessors composed from the target
adapter's find function and both adapters' ``update``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any

from datagraph.adapters.contract import (
    Adapter,
    Association,
    FindOptions,
    RelationshipAccessors,
)
from datagraph.adapters.filters import merge_where
from datagraph.core.naming import accessor_name
from datagraph.core.registry import EntityRegistry
from datagraph.core.types import (
    EntityDefinition,
    RelationshipEdge,
    RelationshipSpec,
    RelationshipType,
)
from datagraph.core.waterfall import waterfall
from datagraph.exceptions import (
    EntityNotFoundError,
    InvalidRelationshipTypeError,
    MissingForeignKeyError,
    RelationshipAlreadyExistsError,
    UndeclaredForeignKeyError,
)

logger = logging.getLogger(__name__)


class RelationshipGraphBuilder:
    """Builds the relationship graph of a registry and finalises adapters."""

    def __init__(self, registry: EntityRegistry) -> None:
        self.registry = registry

    async def initialise(self, reset: bool = False) -> None:
        """Resolve all edges, then initialise (or reset) every adapter.

        Entities are processed concurrently; the relationships of one entity
        are processed one at a time in declaration order.

        Raises:
            RegistryLockedError: If the graph was already initialised
            ConfigurationError: If any edge is invalid
        """
        registry = self.registry
        registry._check_unlocked("initialise")

        async def process_entity(definition: EntityDefinition) -> None:
            source_adapter = registry.get_model_adapter(definition.name)
            registry.edges.setdefault(definition.name, {})
            await waterfall(
                definition.relationships,
                lambda rel, _: self.process_relationship(definition, source_adapter, rel),
            )

        results = await asyncio.gather(
            *(process_entity(d) for d in registry.definitions.values()), return_exceptions=True
        )
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            # drop partial edges so a corrected graph can be initialised again
            for edges in registry.edges.values():
                for edge in edges.values():
                    if edge.source_adapter is edge.target_adapter:
                        edge.source_adapter.remove_relationship(edge.source, edge.name)
            registry.edges.clear()
            raise errors[0]

        async def finalise(name: str, adapter: Adapter) -> None:
            try:
                if reset:
                    await adapter.reset()
                else:
                    await adapter.initialise()
            except Exception as e:
                logger.error(f"Adapter '{name}' failed to {'reset' if reset else 'initialise'}: {e}")
                raise

        await asyncio.gather(*(finalise(n, a) for n, a in registry.adapters.items()))
        registry.locked = True
        edge_count = sum(len(edges) for edges in registry.edges.values())
        logger.info(
            f"Initialised graph: {len(registry.definitions)} entities, {edge_count} relationships, "
            f"{len(registry.adapters)} adapters"
        )

    async def process_relationship(
        self, definition: EntityDefinition, source_adapter: Adapter, rel: RelationshipSpec
    ) -> RelationshipEdge:
        registry = self.registry
        try:
            rel_type = RelationshipType(rel.type)
        except ValueError as e:
            raise InvalidRelationshipTypeError(rel.type) from e
        if rel.model not in registry.definitions:
            raise EntityNotFoundError(rel.model, list(registry.definitions))
        edges = registry.edges.setdefault(definition.name, {})
        if rel.name in edges:
            raise RelationshipAlreadyExistsError(rel.name, definition.name)

        target_adapter = registry.get_model_adapter(rel.model)
        edge = RelationshipEdge(
            source=definition.name,
            target=rel.model,
            name=rel.name,
            type=rel_type,
            source_adapter=source_adapter,
            target_adapter=target_adapter,
            options=rel.options,
        )
        edges[rel.name] = edge

        if target_adapter is source_adapter:
            association = await source_adapter.create_relationship(
                definition.name, rel.model, rel.name, rel_type, rel.options
            )
            edge.internal = True
            edge.foreign_key = association.foreign_key
            edge.source_key = association.source_key
            edge.association = association
        else:
            edge.association = await self.create_cross_adapter_association(edge)
            edge.foreign_key = edge.association.foreign_key
            edge.source_key = edge.association.source_key
            edge.accessor_name = accessor_name(rel.model, rel_type)

        logger.debug(
            f"Resolved {definition.name}.{rel.name}: {rel_type.value} {rel.model} "
            f"({'internal' if edge.internal else 'cross adapter'})"
        )
        return edge

    async def create_cross_adapter_association(self, edge: RelationshipEdge) -> Association:
        """Compose accessors for an edge whose ends live on different adapters.

        Raises:
            InvalidRelationshipTypeError: For belongsToMany, which needs a
                junction both adapters can see
            MissingForeignKeyError: If ``options.foreign_key`` is not set
            UndeclaredForeignKeyError: If the entity holding the key does not
                declare it as a field
        """
        if edge.type == RelationshipType.BELONGS_TO_MANY:
            raise InvalidRelationshipTypeError(
                edge.type.value, "belongsToMany cannot span two adapters"
            )
        foreign_key = edge.options.foreign_key
        if not foreign_key:
            raise MissingForeignKeyError(edge.source, edge.name, edge.type.value, edge.target)

        source_adapter = edge.source_adapter
        target_adapter = edge.target_adapter
        holder, holder_adapter = (
            (edge.source, source_adapter)
            if edge.type == RelationshipType.BELONGS_TO
            else (edge.target, target_adapter)
        )
        if foreign_key not in holder_adapter.get_fields(holder):
            raise UndeclaredForeignKeyError(edge.source, edge.name, foreign_key, holder)
        find = await target_adapter.create_function_for_find(edge.target)

        if edge.type == RelationshipType.BELONGS_TO:
            instance_key = foreign_key
            filter_key = edge.options.source_key or target_adapter.get_primary_key_name_for_model(edge.target)
        else:
            instance_key = edge.options.source_key or source_adapter.get_primary_key_name_for_model(edge.source)
            filter_key = foreign_key
        singular = edge.type != RelationshipType.HAS_MANY

        async def get(instance: Any, options: FindOptions | None = None) -> Any:
            key_value = source_adapter.get_value_from_instance(instance, instance_key)
            return await find(key_value, filter_key, singular)(options)

        async def count(instance: Any, options: FindOptions | None = None) -> int:
            if singular:
                return 1 if await get(instance, options) is not None else 0
            key_value = source_adapter.get_value_from_instance(instance, instance_key)
            if key_value is None:
                return 0
            opts = options or FindOptions()
            return await target_adapter.count(
                edge.target, replace(opts, where=merge_where({filter_key: key_value}, opts.where))
            )

        accessors = RelationshipAccessors(get=get, count=count)

        if edge.type == RelationshipType.HAS_MANY:

            async def add(instance: Any, child: Any, args_context: Any = None) -> None:
                key_value = source_adapter.get_value_from_instance(instance, instance_key)
                await target_adapter.update(child, {foreign_key: key_value}, args_context)

            async def add_multiple(instance: Any, children: list[Any], args_context: Any = None) -> None:
                for child in children:
                    await add(instance, child, args_context)

            async def remove_multiple(instance: Any, children: list[Any], args_context: Any = None) -> None:
                key_value = source_adapter.get_value_from_instance(instance, instance_key)
                for child in children:
                    if target_adapter.get_value_from_instance(child, foreign_key) == key_value:
                        await target_adapter.update(child, {foreign_key: None}, args_context)

            accessors.add = add
            accessors.add_multiple = add_multiple
            accessors.remove_multiple = remove_multiple

        elif edge.type == RelationshipType.HAS_ONE:
            target_pk = target_adapter.get_primary_key_name_for_model(edge.target)

            async def set_child(instance: Any, child: Any, args_context: Any = None) -> None:
                key_value = source_adapter.get_value_from_instance(instance, instance_key)
                current = await get(instance)
                if current is not None and (
                    child is None
                    or target_adapter.get_value_from_instance(current, target_pk)
                    != target_adapter.get_value_from_instance(child, target_pk)
                ):
                    await target_adapter.update(current, {foreign_key: None}, args_context)
                if child is not None:
                    await target_adapter.update(child, {foreign_key: key_value}, args_context)

            accessors.set = set_child

        else:

            async def set_parent(instance: Any, parent: Any, args_context: Any = None) -> None:
                key_value = (
                    target_adapter.get_value_from_instance(parent, filter_key) if parent is not None else None
                )
                await source_adapter.update(instance, {foreign_key: key_value}, args_context)

            accessors.set = set_parent

        return Association(
            name=edge.name,
            source=edge.source,
            target=edge.target,
            association_type=edge.type,
            accessors=accessors,
            foreign_key=foreign_key,
            source_key=instance_key if edge.type != RelationshipType.BELONGS_TO else filter_key,
        )
