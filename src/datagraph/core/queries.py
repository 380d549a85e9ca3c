"""Read pipeline: list queries, relationship traversal and class methods."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from datagraph.adapters.contract import Adapter, FindOptions
from datagraph.core.context import GraphQLArgsContext, get_selection_fields
from datagraph.core.identifiers import replace_id_deep
from datagraph.core.registry import EntityRegistry
from datagraph.core.types import EntityDefinition, Events, LifecycleEvent, ListResult
from datagraph.core.waterfall import maybe_await
from datagraph.exceptions import ClassMethodNotFoundError, RelationshipNotFoundError

logger = logging.getLogger(__name__)


class ReadPipeline:
    """Resolves list and relationship reads for the entities of a registry."""

    def __init__(self, registry: EntityRegistry) -> None:
        self.registry = registry

    def normalize_args(self, def_name: str, args: Mapping[str, Any] | None) -> dict[str, Any]:
        """Decode global ids in the arguments the adapter names."""
        adapter = self.registry.get_model_adapter(def_name)
        arg_names = adapter.get_all_args_to_replace_id()
        global_keys = self.registry.get_global_keys(def_name)
        return {
            key: replace_id_deep(value, global_keys) if key in arg_names else value
            for key, value in (args or {}).items()
        }

    async def _run_list(
        self,
        def_name: str,
        source: Any,
        args: Mapping[str, Any],
        context: Any,
        info: Any,
        selected_fields: list[str] | None,
        fetch: Callable[[FindOptions], Awaitable[list[Any]]],
        count: Callable[[FindOptions], Awaitable[int]],
    ) -> ListResult:
        definition = self.registry.get_definition(def_name)
        adapter = self.registry.get_model_adapter(def_name)
        list_query = await adapter.process_list_args_to_options(
            def_name,
            self.normalize_args(def_name, args),
            info,
            definition.where_operators,
            GraphQLArgsContext(context, info, source),
            selected_fields,
        )
        get_options = list_query.get_options
        if definition.before is not None:
            event = LifecycleEvent(
                type=Events.QUERY,
                definition=definition,
                args=dict(args),
                context=context,
                info=info,
                params=get_options,
            )
            result = await maybe_await(definition.before(event))
            if isinstance(result, FindOptions):
                get_options = result

        rows = await fetch(get_options)
        models = await self._apply_after(definition, rows, args, context, info)
        total = await self._total(adapter, rows, lambda: count(list_query.count_options))
        logger.debug(f"Read {len(models)}/{total} {def_name}")
        return ListResult(total=total, models=models)

    async def _apply_after(
        self,
        definition: EntityDefinition,
        rows: list[Any],
        args: Mapping[str, Any],
        context: Any,
        info: Any,
    ) -> list[Any]:
        if definition.after is None:
            return list(rows)

        def event(row: Any) -> LifecycleEvent:
            return LifecycleEvent(
                type=Events.QUERY,
                definition=definition,
                args=dict(args),
                context=context,
                info=info,
                result=row,
                model=row,
            )

        results = await asyncio.gather(*(maybe_await(definition.after(event(row))) for row in rows))
        # rows the transform rejects are dropped
        return [row for row in results if row is not None]

    async def _total(
        self, adapter: Adapter, rows: list[Any], count: Callable[[], Awaitable[int]]
    ) -> int:
        if adapter.has_inline_count_feature() and rows:
            return await adapter.get_inline_count(rows)
        return await count()

    async def resolve_find_all(
        self,
        def_name: str,
        source: Any = None,
        args: Mapping[str, Any] | None = None,
        context: Any = None,
        info: Any = None,
    ) -> ListResult:
        """List instances of ``def_name``.

        Returns:
            ListResult with the total matching count and the page of
            instances that survived ``after``
        """
        adapter = self.registry.get_model_adapter(def_name)
        return await self._run_list(
            def_name,
            source,
            args or {},
            context,
            info,
            get_selection_fields(info),
            lambda options: adapter.find_all(def_name, options),
            lambda options: adapter.count(def_name, options),
        )

    def _association(self, def_name: str, relationship_name: str) -> Any:
        relationships = self.registry.get_relationships(def_name)
        association = relationships.get(relationship_name)
        if association is None:
            raise RelationshipNotFoundError(relationship_name, def_name, list(relationships))
        return association

    async def resolve_many_relationship(
        self,
        def_name: str,
        relationship_name: str,
        source: Any,
        args: Mapping[str, Any] | None = None,
        context: Any = None,
        info: Any = None,
    ) -> ListResult:
        """List the instances related to ``source`` through a to-many relationship."""
        association = self._association(def_name, relationship_name)
        accessors = association.accessors
        return await self._run_list(
            association.target,
            source,
            args or {},
            context,
            info,
            None,
            lambda options: accessors.get(source, options),
            lambda options: accessors.count(source, options),
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
        association = self._association(def_name, relationship_name)
        return await association.accessors.get(
            source, FindOptions(args_context=GraphQLArgsContext(context, info, source))
        )

    async def resolve_class_method(
        self,
        def_name: str,
        method_name: str,
        source: Any = None,
        args: Mapping[str, Any] | None = None,
        context: Any = None,
        info: Any = None,
    ) -> Any:
        """Call a class method declared on the entity with ``(args, context)``."""
        definition = self.registry.get_definition(def_name)
        method = definition.class_methods.get(method_name)
        if method is None:
            raise ClassMethodNotFoundError(method_name, def_name)
        return await maybe_await(method(args or {}, context))
