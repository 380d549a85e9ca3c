"""Create, update and delete pipelines with nested relationship mutation.

A mutation ``input`` mixes plain field values with relationship instructions
keyed by relationship name::

    {
        "name": "t1",
        "items": {
            "create": [{"title": "a"}],
            "update": [{"where": {"title": "b"}, "input": {"title": "c"}}],
            "delete": [{"title": "d"}],
            "add": [{"id": "VGFza0l0ZW06Mw=="}],
            "remove": [{"id": "VGFza0l0ZW06NA=="}],
        },
    }

Field values are normalized with the entity's global keys; each nested
operation normalizes its own payload with the target entity's keys.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from datagraph.adapters.contract import Association, FindOptions
from datagraph.core.context import GraphQLArgsContext
from datagraph.core.identifiers import replace_id_deep
from datagraph.core.registry import EntityRegistry
from datagraph.core.types import EntityDefinition, Events, LifecycleEvent, RelationshipType
from datagraph.core.waterfall import maybe_await, waterfall
from datagraph.exceptions import ValidationError

logger = logging.getLogger(__name__)

# Applied in this order for every relationship
NESTED_KINDS = ("create", "update", "delete", "add", "remove")


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


class MutationPipeline:
    """Runs mutations against the entities of a registry."""

    def __init__(self, registry: EntityRegistry) -> None:
        self.registry = registry

    # === Input handling ===

    def split_input(self, def_name: str, input: Mapping[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
        """Split ``input`` into field values and relationship instructions."""
        names = {rel.name for rel in self.registry.get_definition(def_name).relationships}
        fields = {k: v for k, v in input.items() if k not in names}
        nested = {k: v for k, v in input.items() if k in names}
        return fields, nested

    def normalize_input(self, def_name: str, input: Mapping[str, Any] | None) -> dict[str, Any]:
        """Decode global ids in field values, leaving nested instructions as given."""
        fields, nested = self.split_input(def_name, input or {})
        return {**replace_id_deep(fields, self.registry.get_global_keys(def_name)), **nested}

    async def process_inputs(
        self,
        def_name: str,
        input: Mapping[str, Any],
        source: Any,
        args: Mapping[str, Any],
        context: Any,
        info: Any,
        model: Any = None,
    ) -> dict[str, Any]:
        """Keep only known fields, then apply ``override.input`` transforms.

        Overrides run in declaration order for fields present in ``input``.
        ``model`` is ``None`` on create and the matched instance on update.
        A transform returning ``None`` keeps the value.
        """
        definition = self.registry.get_definition(def_name)
        fields = self.registry.get_fields(def_name)
        values = {key: value for key, value in input.items() if key in fields}
        for field_name, override in definition.override.items():
            if override.input is None or field_name not in values:
                continue
            result = await maybe_await(override.input(values[field_name], args, context, info, model))
            if result is not None:
                values[field_name] = result
        return values

    # === Lifecycle transforms ===

    async def _before(
        self,
        definition: EntityDefinition,
        event_type: Events,
        params: Any,
        args: Mapping[str, Any],
        context: Any,
        info: Any,
        model: Any = None,
    ) -> Any:
        if definition.before is None:
            return params
        event = LifecycleEvent(
            type=event_type,
            definition=definition,
            args=dict(args),
            context=context,
            info=info,
            params=params,
            model=model,
        )
        result = await maybe_await(definition.before(event))
        return params if result is None else result

    async def _after(
        self,
        definition: EntityDefinition,
        event_type: Events,
        result: Any,
        args: Mapping[str, Any],
        context: Any,
        info: Any,
        model: Any = None,
    ) -> Any:
        if definition.after is None:
            return result
        event = LifecycleEvent(
            type=event_type,
            definition=definition,
            args=dict(args),
            context=context,
            info=info,
            result=result,
            model=model,
        )
        return await maybe_await(definition.after(event))

    # === Top-level mutations ===

    async def process_create(
        self, def_name: str, source: Any, args: Mapping[str, Any], context: Any = None, info: Any = None
    ) -> list[Any]:
        """Create one instance from ``args["input"]`` and apply nested instructions.

        Returns ``[instance]``, or ``[]`` when no field survives filtering or
        ``after`` returns ``None``.
        """
        definition = self.registry.get_definition(def_name)
        adapter = self.registry.get_model_adapter(def_name)
        create = adapter.get_create_function(def_name)

        input = self.normalize_input(def_name, args.get("input"))
        input = await self._before(definition, Events.MUTATION_CREATE, input, args, context, info)
        values = await self.process_inputs(def_name, input, source, args, context, info)
        if not values:
            logger.debug(f"Create {def_name}: no known fields in input, skipped")
            return []

        result = await create(values, GraphQLArgsContext(context, info, source))
        result = await self._after(definition, Events.MUTATION_CREATE, result, args, context, info)
        if result is None:
            return []
        await self.process_relationship_mutation(def_name, result, input, context, info)
        logger.debug(f"Created {def_name}")
        return [result]

    async def process_update(
        self, def_name: str, source: Any, args: Mapping[str, Any], context: Any = None, info: Any = None
    ) -> list[Any]:
        """Update every instance matching ``args["where"]`` with ``args["input"]``.

        Field overrides run once per matched instance with that instance as
        ``model``. Instances whose ``after`` returns ``None`` are omitted.
        """
        definition = self.registry.get_definition(def_name)
        adapter = self.registry.get_model_adapter(def_name)
        update = adapter.get_update_function(def_name, definition.where_operators)

        input = self.normalize_input(def_name, args.get("input"))
        where = replace_id_deep(args.get("where") or {}, self.registry.get_global_keys(def_name))
        input = await self._before(definition, Events.MUTATION_UPDATE, input, args, context, info)

        async def input_factory(model: Any) -> dict[str, Any]:
            return await self.process_inputs(def_name, input, source, args, context, info, model)

        instances = await update(where, input_factory, GraphQLArgsContext(context, info, source))

        results = []
        for instance in instances:
            result = await self._after(
                definition, Events.MUTATION_UPDATE, instance, args, context, info, model=instance
            )
            if result is None:
                continue
            await self.process_relationship_mutation(def_name, result, input, context, info)
            results.append(result)
        logger.debug(f"Updated {len(results)} {def_name}")
        return results

    async def process_delete(
        self, def_name: str, source: Any, args: Mapping[str, Any], context: Any = None, info: Any = None
    ) -> list[Any]:
        """Delete every instance matching ``args["where"]``.

        Relationship instructions in ``args["input"]`` are applied to each
        instance before it is destroyed.
        """
        definition = self.registry.get_definition(def_name)
        adapter = self.registry.get_model_adapter(def_name)
        delete = adapter.get_delete_function(def_name, definition.where_operators)

        where = replace_id_deep(args.get("where") or {}, self.registry.get_global_keys(def_name))
        _, teardown = self.split_input(def_name, args.get("input") or {})

        async def before(instance: Any) -> Any:
            if teardown:
                await self.process_relationship_mutation(def_name, instance, teardown, context, info)
            return await self._before(
                definition, Events.MUTATION_DELETE, instance, args, context, info, model=instance
            )

        async def after(instance: Any) -> Any:
            return await self._after(
                definition, Events.MUTATION_DELETE, instance, args, context, info, model=instance
            )

        deleted = await delete(where, GraphQLArgsContext(context, info, source), before, after)
        logger.debug(f"Deleted {len(deleted)} {def_name}")
        return deleted

    # === Nested mutation ===

    async def process_relationship_mutation(
        self, def_name: str, source: Any, input: Mapping[str, Any], context: Any = None, info: Any = None
    ) -> Any:
        """Apply relationship instructions in ``input`` to ``source``.

        Relationships are handled one at a time in declaration order, and
        within one relationship every create, update, delete, add and remove
        item in that order. A failure aborts the remaining items; work already
        done is kept.
        """
        relationships = self.registry.get_relationships(def_name)
        args_context = GraphQLArgsContext(context, info, source)

        async def apply(name: str, _: Any) -> None:
            instructions = input.get(name)
            if not instructions:
                return
            unknown = [kind for kind in instructions if kind not in NESTED_KINDS]
            if unknown:
                raise ValidationError(
                    f"Unknown instruction(s) {', '.join(unknown)} for '{def_name}.{name}'. "
                    f"Valid instructions: {', '.join(NESTED_KINDS)}"
                )
            association = relationships[name]
            steps = [(kind, item) for kind in NESTED_KINDS for item in _as_list(instructions.get(kind))]
            await waterfall(
                steps,
                lambda step, _: self._apply_instruction(
                    association, source, step[0], step[1], context, info, args_context
                ),
            )

        await waterfall(list(relationships), apply)
        return source

    async def _apply_instruction(
        self,
        association: Association,
        source: Any,
        kind: str,
        item: Mapping[str, Any],
        context: Any,
        info: Any,
        args_context: GraphQLArgsContext,
    ) -> None:
        logger.debug(f"Nested {kind} on {association.source}.{association.name}")
        if kind == "create":
            await self._nested_create(association, source, item, context, info, args_context)
        elif kind == "update":
            await self._nested_update(association, source, item, context, info, args_context)
        elif kind == "delete":
            await self._nested_delete(association, source, item, context, info, args_context)
        else:
            await self._nested_link(association, source, kind, item, args_context)

    async def _target_where(self, target: str, where: Mapping[str, Any] | None) -> dict[str, Any]:
        adapter = self.registry.get_model_adapter(target)
        definition = self.registry.get_definition(target)
        normalized = replace_id_deep(where or {}, self.registry.get_global_keys(target))
        return await adapter.process_filter_argument(normalized, definition.where_operators)

    async def _nested_create(
        self,
        association: Association,
        source: Any,
        item: Mapping[str, Any],
        context: Any,
        info: Any,
        args_context: GraphQLArgsContext,
    ) -> None:
        created = await self.process_create(association.target, source, {"input": item}, context, info)
        if not created:
            return
        accessors = association.accessors
        if RelationshipType(association.association_type).is_many:
            await accessors.add(source, created[0], args_context)
        else:
            await accessors.set(source, created[0], args_context)

    async def _nested_update(
        self,
        association: Association,
        source: Any,
        item: Mapping[str, Any],
        context: Any,
        info: Any,
        args_context: GraphQLArgsContext,
    ) -> None:
        target = association.target
        definition = self.registry.get_definition(target)
        adapter = self.registry.get_model_adapter(target)

        where = await self._target_where(target, item.get("where"))
        matched = _as_list(
            await association.accessors.get(source, FindOptions(where=where, args_context=args_context))
        )
        input = self.normalize_input(target, item.get("input"))
        input = await self._before(definition, Events.MUTATION_UPDATE, input, item, context, info)

        for model in matched:
            values = await self.process_inputs(target, input, source, item, context, info, model)
            updated = await adapter.update(model, values, args_context)
            result = await self._after(
                definition, Events.MUTATION_UPDATE, updated, item, context, info, model=updated
            )
            if result is not None:
                await self.process_relationship_mutation(target, result, input, context, info)

    async def _nested_delete(
        self,
        association: Association,
        source: Any,
        item: Mapping[str, Any],
        context: Any,
        info: Any,
        args_context: GraphQLArgsContext,
    ) -> None:
        target = association.target
        definition = self.registry.get_definition(target)
        adapter = self.registry.get_model_adapter(target)

        # relationship keys inside a delete filter describe the teardown
        where_part, teardown = self.split_input(target, item)
        where = await self._target_where(target, where_part)
        matched = _as_list(
            await association.accessors.get(source, FindOptions(where=where, args_context=args_context))
        )
        for model in matched:
            if teardown:
                await self.process_relationship_mutation(target, model, teardown, context, info)
            await self._before(definition, Events.MUTATION_DELETE, model, item, context, info, model=model)
            await adapter.destroy(model, args_context)
            await self._after(definition, Events.MUTATION_DELETE, model, item, context, info, model=model)

    async def _nested_link(
        self,
        association: Association,
        source: Any,
        kind: str,
        item: Mapping[str, Any],
        args_context: GraphQLArgsContext,
    ) -> None:
        target = association.target
        accessor = (
            association.accessors.add_multiple if kind == "add" else association.accessors.remove_multiple
        )
        if accessor is None:
            raise ValidationError(
                f"Relationship '{association.source}.{association.name}' "
                f"({association.association_type}) does not support '{kind}'"
            )
        adapter = self.registry.get_model_adapter(target)
        where = await self._target_where(target, item)
        found = await adapter.find_all(target, FindOptions(where=where, args_context=args_context))
        if not found:
            return
        await accessor(source, found, args_context)
