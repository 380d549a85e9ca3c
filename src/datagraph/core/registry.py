"""Entity registry: adapters, definitions, hook chains and resolved edges."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from datagraph.adapters.contract import Adapter, Association, HookMap
from datagraph.core.hooks import HookPipeline, HookSet
from datagraph.core.types import EntityDefinition, FieldSpec, RelationshipEdge
from datagraph.exceptions import (
    AdapterAlreadyExistsError,
    AdapterNotFoundError,
    EntityAlreadyExistsError,
    EntityNotFoundError,
    MissingForeignKeyError,
    RegistryLockedError,
)

logger = logging.getLogger(__name__)


class EntityRegistry:
    """Holds every adapter and entity definition known to a graph.

    The first registered adapter becomes the default one. Once the graph is
    initialised the registry is locked and only lookups are allowed.
    """

    def __init__(self, hooks: HookPipeline | None = None) -> None:
        self.hooks = hooks or HookPipeline()
        self.adapters: dict[str, Adapter] = {}
        self.default_adapter_name: str | None = None
        self.definitions: dict[str, EntityDefinition] = {}
        self.model_adapters: dict[str, str] = {}
        self.hook_chains: dict[str, list[HookSet]] = {}
        self.hook_maps: dict[str, HookMap] = {}
        self.edges: dict[str, dict[str, RelationshipEdge]] = {}
        self.locked = False

    def _check_unlocked(self, operation: str) -> None:
        if self.locked:
            raise RegistryLockedError(operation)

    # === Registration ===

    def register_adapter(self, adapter: Adapter, name: str | None = None) -> Adapter:
        """Bind ``adapter`` under ``name`` (defaults to ``adapter.name``).

        Raises:
            AdapterAlreadyExistsError: If the name is already bound
            RegistryLockedError: If the graph is initialised
        """
        self._check_unlocked("register an adapter")
        adapter_name = name or adapter.name
        if adapter_name in self.adapters:
            raise AdapterAlreadyExistsError(adapter_name)
        self.adapters[adapter_name] = adapter
        if self.default_adapter_name is None:
            self.default_adapter_name = adapter_name
        logger.debug(f"Registered adapter '{adapter_name}' ({type(adapter).__name__})")
        return adapter

    def add_hook(self, hook_name: str, hook: Callable[..., Any]) -> None:
        self.hooks.add(hook_name, hook)

    def _resolve_adapter_name(self, definition: EntityDefinition, datasource: str | None) -> str:
        adapter_name = datasource or definition.datasource or self.default_adapter_name
        if adapter_name is None or adapter_name not in self.adapters:
            raise AdapterNotFoundError(adapter_name, list(self.adapters))
        return adapter_name

    def _check_cross_adapter_keys(self, definition: EntityDefinition, adapter_name: str) -> None:
        for rel in definition.relationships:
            target_adapter = self.model_adapters.get(rel.model)
            if target_adapter is None or target_adapter == adapter_name:
                continue
            if not rel.options.foreign_key:
                raise MissingForeignKeyError(definition.name, rel.name, rel.type, rel.model)

    async def add_definition(
        self,
        definition: EntityDefinition | Mapping[str, Any],
        datasource: str | None = None,
    ) -> EntityDefinition:
        """Register an entity and create its model on the resolved adapter.

        Raises:
            EntityAlreadyExistsError: If an entity with the same name exists
            AdapterNotFoundError: If no adapter can be resolved
            MissingForeignKeyError: If a relationship to an entity on another
                adapter has no foreign key
            RegistryLockedError: If the graph is initialised
        """
        self._check_unlocked("add a definition")
        if not isinstance(definition, EntityDefinition):
            definition = EntityDefinition.model_validate(definition)
        if definition.name in self.definitions:
            raise EntityAlreadyExistsError(definition.name)

        adapter_name = self._resolve_adapter_name(definition, datasource)
        self._check_cross_adapter_keys(definition, adapter_name)

        chain = self.hooks.build_chain(definition)
        hook_map = self.hooks.build_hook_map(chain)
        adapter = self.adapters[adapter_name]

        self.definitions[definition.name] = definition
        self.model_adapters[definition.name] = adapter_name
        self.hook_chains[definition.name] = chain
        self.hook_maps[definition.name] = hook_map
        try:
            await adapter.create_model(definition, hook_map)
        except Exception:
            del self.definitions[definition.name]
            del self.model_adapters[definition.name]
            del self.hook_chains[definition.name]
            del self.hook_maps[definition.name]
            raise

        logger.debug(f"Added definition '{definition.name}' on adapter '{adapter_name}'")
        return definition

    # === Lookups ===

    def get_definitions(self) -> dict[str, EntityDefinition]:
        return dict(self.definitions)

    def get_definition(self, def_name: str) -> EntityDefinition:
        definition = self.definitions.get(def_name)
        if definition is None:
            raise EntityNotFoundError(def_name, list(self.definitions))
        return definition

    def get_model_adapter(self, def_name: str) -> Adapter:
        adapter_name = self.model_adapters.get(def_name)
        if adapter_name is None:
            raise EntityNotFoundError(def_name, list(self.definitions))
        return self.adapters[adapter_name]

    def get_model_adapter_name(self, def_name: str) -> str:
        self.get_model_adapter(def_name)
        return self.model_adapters[def_name]

    def get_model(self, def_name: str) -> Any:
        return self.get_model_adapter(def_name).get_model(def_name)

    def get_fields(self, def_name: str) -> dict[str, FieldSpec]:
        return self.get_model_adapter(def_name).get_fields(def_name)

    def get_global_keys(self, def_name: str) -> list[str]:
        """Fields whose values are exposed as opaque global ids."""
        return [name for name, spec in self.get_fields(def_name).items() if spec.is_global_key]

    def get_edges(self, def_name: str) -> dict[str, RelationshipEdge]:
        self.get_definition(def_name)
        return dict(self.edges.get(def_name, {}))

    def get_relationships(self, def_name: str) -> dict[str, Association]:
        """Associations of ``def_name`` in declaration order.

        Internal edges resolve to the adapter's native association, cross
        adapter edges to the proxy association built by the graph builder.
        """
        return {
            name: edge.association
            for name, edge in self.get_edges(def_name).items()
            if edge.association is not None
        }

    def get_accessor(self, def_name: str, accessor_name: str) -> Association | None:
        """Look up an association by its derived accessor name (``get_task_items``)."""
        for edge in self.get_edges(def_name).values():
            if edge.accessor_name == accessor_name:
                return edge.association
        return None

    def get_value_from_instance(self, def_name: str, instance: Any, key: str) -> Any:
        if instance is None:
            return None
        return self.get_model_adapter(def_name).get_value_from_instance(instance, key)

    def get_default_list_args(self, def_name: str) -> dict[str, Any]:
        return self.get_model_adapter(def_name).get_default_list_args()

    def get_filter_graphql_type(self, def_name: str) -> Any:
        return self.get_model_adapter(def_name).get_filter_graphql_type()

    def get_graphql_output_type(self, def_name: str, field_name: str, field_type: str) -> Any:
        type_mapper = self.get_model_adapter(def_name).get_type_mapper()
        return type_mapper(field_type, def_name, field_name)

    def get_graphql_input_type(self, def_name: str, field_name: str, field_type: str) -> Any:
        type_mapper = self.get_model_adapter(def_name).get_type_mapper()
        return type_mapper(field_type, def_name, f"{field_name}Input")
