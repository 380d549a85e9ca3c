"""Shared implementation for the reference storage adapters.

:class:`StoreAdapter` implements the whole capability contract on top of a
handful of storage primitives (select, count, insert, write, delete and
junction links). Subclasses only decide where rows live.
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any
from uuid import uuid4

from datagraph.adapters.contract import (
    Adapter,
    Association,
    FindOptions,
    HookMap,
    ListQuery,
    Record,
    RelationshipAccessors,
)
from datagraph.adapters.filters import coerce_value, expand_where, merge_where, validate_where
from datagraph.core.naming import snake_case
from datagraph.core.types import (
    EntityDefinition,
    FieldSpec,
    FieldType,
    HookName,
    RelationshipOptions,
    RelationshipType,
)
from datagraph.core.waterfall import maybe_await
from datagraph.exceptions import (
    EntityNotFoundError,
    FilterError,
    InvalidRelationshipTypeError,
    RelationshipAlreadyExistsError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Scalar names handed to the schema layer
TYPE_MAP = {
    FieldType.STRING: "String",
    FieldType.TEXT: "String",
    FieldType.INT: "Int",
    FieldType.FLOAT: "Float",
    FieldType.BOOL: "Boolean",
    FieldType.DATETIME: "DateTime",
    FieldType.JSON: "JSON",
    FieldType.UUID: "ID",
}

DEFAULT_LIST_ARGS = {
    "where": "JSON",
    "order_by": "[String]",
    "limit": "Int",
    "offset": "Int",
}


@dataclass
class EntityModel:
    """Runtime model of an entity inside a store adapter."""

    name: str
    definition: EntityDefinition
    hooks: HookMap
    fields: dict[str, FieldSpec]
    primary_key: str
    associations: dict[str, Association] = field(default_factory=dict)

    @property
    def class_methods(self) -> dict[str, Callable[..., Any]]:
        return self.definition.class_methods

    @property
    def table_name(self) -> str:
        return snake_case(self.name)


@dataclass
class Junction:
    """Link storage for a belongsToMany association."""

    name: str
    source: str
    target: str
    source_fk: str
    target_fk: str


class StoreAdapter(Adapter):
    """Capability contract implemented over storage primitives."""

    has_inline_count: bool = False

    def __init__(self, name: str) -> None:
        self.name = name
        self._models: dict[str, EntityModel] = {}
        self._junctions: dict[str, Junction] = {}

    # === Storage primitives ===

    @abstractmethod
    async def _select(self, model: EntityModel, options: FindOptions) -> list[Record]: ...

    @abstractmethod
    async def _count(self, model: EntityModel, where: dict[str, Any]) -> int: ...

    @abstractmethod
    async def _insert(self, model: EntityModel, values: dict[str, Any]) -> dict[str, Any]: ...

    @abstractmethod
    async def _write(self, model: EntityModel, key: Any, values: dict[str, Any]) -> dict[str, Any]: ...

    @abstractmethod
    async def _delete(self, model: EntityModel, key: Any) -> None: ...

    @abstractmethod
    async def _linked_keys(self, junction: Junction, source_key: Any) -> list[Any]: ...

    @abstractmethod
    async def _link(self, junction: Junction, source_key: Any, target_keys: list[Any]) -> None: ...

    @abstractmethod
    async def _unlink(
        self, junction: Junction, source_key: Any, target_keys: list[Any] | None = None
    ) -> None:
        """Remove links of ``source_key``; all of them when ``target_keys`` is None."""
        ...

    @abstractmethod
    async def _purge_links(self, junction: Junction, column: str, key: Any) -> None:
        """Remove every link whose ``column`` equals ``key``."""
        ...

    # === Models ===

    def _model(self, entity_name: str) -> EntityModel:
        model = self._models.get(entity_name)
        if model is None:
            raise EntityNotFoundError(entity_name, list(self._models))
        return model

    async def create_model(self, definition: EntityDefinition, hook_map: HookMap) -> EntityModel:
        fields = {name: spec.model_copy() for name, spec in definition.define.items()}
        primary_key = next((n for n, s in fields.items() if s.primary_key), None)
        if primary_key is None:
            primary_key = "id"
            fields = {
                "id": FieldSpec(type=FieldType.INT, primary_key=True, allow_null=False),
                **fields,
            }
        model = EntityModel(
            name=definition.name,
            definition=definition,
            hooks=hook_map,
            fields=fields,
            primary_key=primary_key,
        )
        self._models[definition.name] = model
        logger.debug(f"[{self.name}] created model {definition.name} ({len(fields)} fields)")
        return model

    def _ensure_foreign_key(self, model: EntityModel, field_name: str, referenced: EntityModel) -> None:
        existing = model.fields.get(field_name)
        if existing is not None:
            if not existing.foreign_key:
                model.fields[field_name] = existing.model_copy(update={"foreign_key": True})
            return
        key_type = referenced.fields[referenced.primary_key].type
        model.fields[field_name] = FieldSpec(type=key_type, foreign_key=True)

    def remove_relationship(self, source_name: str, name: str) -> None:
        if source_name in self._models:
            self._models[source_name].associations.pop(name, None)

    async def create_relationship(
        self,
        source_name: str,
        target_name: str,
        name: str,
        relationship_type: RelationshipType | str,
        options: RelationshipOptions,
    ) -> Association:
        source = self._model(source_name)
        target = self._model(target_name)
        if name in source.associations:
            raise RelationshipAlreadyExistsError(name, source_name)
        try:
            rel_type = RelationshipType(relationship_type)
        except ValueError as e:
            raise InvalidRelationshipTypeError(str(relationship_type)) from e

        if rel_type in (RelationshipType.HAS_MANY, RelationshipType.HAS_ONE):
            association = self._has_association(source, target, name, rel_type, options)
        elif rel_type == RelationshipType.BELONGS_TO:
            association = self._belongs_to_association(source, target, name, options)
        else:
            association = self._belongs_to_many_association(source, target, name, options)

        source.associations[name] = association
        logger.debug(
            f"[{self.name}] {source_name}.{name}: {rel_type.value} {target_name} "
            f"(foreign key {association.foreign_key})"
        )
        return association

    def _has_association(
        self,
        source: EntityModel,
        target: EntityModel,
        name: str,
        rel_type: RelationshipType,
        options: RelationshipOptions,
    ) -> Association:
        foreign_key = options.foreign_key or f"{snake_case(source.name)}_id"
        source_key = options.source_key or source.primary_key
        self._ensure_foreign_key(target, foreign_key, source)
        singular = rel_type == RelationshipType.HAS_ONE

        def scoped(instance: Any, options: FindOptions | None) -> FindOptions | None:
            key = self.get_value_from_instance(instance, source_key)
            if key is None:
                return None
            opts = options or FindOptions()
            return replace(opts, where=merge_where({foreign_key: key}, opts.where))

        async def get(instance: Any, options: FindOptions | None = None) -> Any:
            opts = scoped(instance, options)
            if opts is None:
                return None if singular else []
            if singular:
                rows = await self.find_all(target.name, replace(opts, limit=1))
                return rows[0] if rows else None
            return await self.find_all(target.name, opts)

        async def count(instance: Any, options: FindOptions | None = None) -> int:
            opts = scoped(instance, options)
            if opts is None:
                return 0
            return await self.count(target.name, opts)

        async def add(instance: Any, child: Any, args_context: Any = None) -> None:
            key = self.get_value_from_instance(instance, source_key)
            await self.update(child, {foreign_key: key}, args_context)

        async def add_multiple(instance: Any, children: list[Any], args_context: Any = None) -> None:
            for child in children:
                await add(instance, child, args_context)

        async def remove_multiple(instance: Any, children: list[Any], args_context: Any = None) -> None:
            key = self.get_value_from_instance(instance, source_key)
            for child in children:
                if self.get_value_from_instance(child, foreign_key) == key:
                    await self.update(child, {foreign_key: None}, args_context)

        async def set_one(instance: Any, child: Any, args_context: Any = None) -> None:
            current = await get(instance)
            current_key = self.get_value_from_instance(current, target.primary_key) if current else None
            child_key = self.get_value_from_instance(child, target.primary_key) if child else None
            if current is not None and current_key != child_key:
                await self.update(current, {foreign_key: None}, args_context)
            if child is not None:
                await add(instance, child, args_context)

        accessors = RelationshipAccessors(get=get, count=count)
        if singular:
            accessors.set = set_one
        else:
            accessors.add = add
            accessors.add_multiple = add_multiple
            accessors.remove_multiple = remove_multiple
        return Association(
            name=name,
            source=source.name,
            target=target.name,
            association_type=rel_type,
            accessors=accessors,
            foreign_key=foreign_key,
            source_key=source_key,
        )

    def _belongs_to_association(
        self,
        source: EntityModel,
        target: EntityModel,
        name: str,
        options: RelationshipOptions,
    ) -> Association:
        foreign_key = options.foreign_key or f"{snake_case(name)}_id"
        target_key = options.source_key or target.primary_key
        self._ensure_foreign_key(source, foreign_key, target)

        async def get(instance: Any, options: FindOptions | None = None) -> Any:
            key = self.get_value_from_instance(instance, foreign_key)
            if key is None:
                return None
            opts = options or FindOptions()
            rows = await self.find_all(
                target.name,
                replace(opts, where=merge_where({target_key: key}, opts.where), limit=1),
            )
            return rows[0] if rows else None

        async def count(instance: Any, options: FindOptions | None = None) -> int:
            return 1 if await get(instance, options) is not None else 0

        async def set_parent(instance: Any, parent: Any, args_context: Any = None) -> None:
            key = self.get_value_from_instance(parent, target_key) if parent is not None else None
            await self.update(instance, {foreign_key: key}, args_context)

        return Association(
            name=name,
            source=source.name,
            target=target.name,
            association_type=RelationshipType.BELONGS_TO,
            accessors=RelationshipAccessors(get=get, count=count, set=set_parent),
            foreign_key=foreign_key,
            source_key=target_key,
        )

    def _belongs_to_many_association(
        self,
        source: EntityModel,
        target: EntityModel,
        name: str,
        options: RelationshipOptions,
    ) -> Association:
        source_fk = options.foreign_key or f"{snake_case(source.name)}_id"
        target_fk = options.other_key or f"{snake_case(target.name)}_id"
        if target_fk == source_fk:
            target_fk = f"{snake_case(name)}_id"
        junction = Junction(
            name=options.through or f"{source.table_name}_{snake_case(name)}",
            source=source.name,
            target=target.name,
            source_fk=source_fk,
            target_fk=target_fk,
        )
        self._junctions[junction.name] = junction

        def source_key_of(instance: Any) -> Any:
            return self.get_value_from_instance(instance, source.primary_key)

        def target_keys_of(instances: list[Any]) -> list[Any]:
            return [self.get_value_from_instance(i, target.primary_key) for i in instances]

        async def scoped(instance: Any, options: FindOptions | None) -> FindOptions | None:
            keys = await self._linked_keys(junction, source_key_of(instance))
            if not keys:
                return None
            opts = options or FindOptions()
            return replace(
                opts, where=merge_where({target.primary_key: {"in": keys}}, opts.where)
            )

        async def get(instance: Any, options: FindOptions | None = None) -> list[Any]:
            opts = await scoped(instance, options)
            if opts is None:
                return []
            return await self.find_all(target.name, opts)

        async def count(instance: Any, options: FindOptions | None = None) -> int:
            opts = await scoped(instance, options)
            if opts is None:
                return 0
            return await self.count(target.name, opts)

        async def add(instance: Any, other: Any, args_context: Any = None) -> None:
            await self._link(junction, source_key_of(instance), target_keys_of([other]))

        async def add_multiple(instance: Any, others: list[Any], args_context: Any = None) -> None:
            await self._link(junction, source_key_of(instance), target_keys_of(others))

        async def remove_multiple(instance: Any, others: list[Any], args_context: Any = None) -> None:
            await self._unlink(junction, source_key_of(instance), target_keys_of(others))

        async def set_all(instance: Any, others: list[Any] | None, args_context: Any = None) -> None:
            await self._unlink(junction, source_key_of(instance))
            if others:
                await self._link(junction, source_key_of(instance), target_keys_of(others))

        return Association(
            name=name,
            source=source.name,
            target=target.name,
            association_type=RelationshipType.BELONGS_TO_MANY,
            accessors=RelationshipAccessors(
                get=get,
                count=count,
                set=set_all,
                add=add,
                add_multiple=add_multiple,
                remove_multiple=remove_multiple,
            ),
            foreign_key=source_fk,
            source_key=source.primary_key,
        )

    async def create_function_for_find(self, entity_name: str) -> Callable[..., Any]:
        self._model(entity_name)

        def find(key_value: Any, filter_key: str, singular: bool) -> Callable[..., Any]:
            async def run(options: FindOptions | None = None) -> Any:
                if key_value is None:
                    return None if singular else []
                opts = options or FindOptions()
                opts = replace(opts, where=merge_where({filter_key: key_value}, opts.where))
                if singular:
                    rows = await self.find_all(entity_name, replace(opts, limit=1))
                    return rows[0] if rows else None
                return await self.find_all(entity_name, opts)

            return run

        return find

    # === Lookups ===

    def get_model(self, entity_name: str) -> EntityModel:
        return self._model(entity_name)

    def get_fields(self, entity_name: str) -> dict[str, FieldSpec]:
        return dict(self._model(entity_name).fields)

    def get_relationships(self, entity_name: str) -> dict[str, Association]:
        return dict(self._model(entity_name).associations)

    def get_primary_key_name_for_model(self, entity_name: str) -> str:
        return self._model(entity_name).primary_key

    def get_value_from_instance(self, instance: Any, key: str) -> Any:
        if instance is None:
            return None
        if isinstance(instance, Record):
            return instance.get(key)
        if isinstance(instance, dict):
            return instance.get(key)
        return getattr(instance, key, None)

    def get_type_mapper(self) -> Callable[[str, str, str], Any]:
        def type_mapper(field_type: str, model_name: str, field_name: str) -> str:
            return TYPE_MAP.get(field_type, "String")

        return type_mapper

    def get_default_list_args(self) -> dict[str, Any]:
        return dict(DEFAULT_LIST_ARGS)

    def get_filter_graphql_type(self) -> str:
        return "JSON"

    def get_all_args_to_replace_id(self) -> list[str]:
        return ["where"]

    # === Reads ===

    async def process_filter_argument(
        self,
        where: dict[str, Any] | None,
        where_operators: dict[str, Callable[..., Any]] | None,
    ) -> dict[str, Any]:
        return await expand_where(where, where_operators)

    async def process_list_args_to_options(
        self,
        entity_name: str,
        args: dict[str, Any],
        info: Any,
        where_operators: dict[str, Callable[..., Any]] | None,
        args_context: Any,
        selected_fields: list[str] | None = None,
    ) -> ListQuery:
        model = self._model(entity_name)
        where = await self.process_filter_argument(args.get("where"), where_operators)
        attributes = None
        if selected_fields:
            # keys are always fetched so relationships can still be resolved
            attributes = [
                name
                for name, spec in model.fields.items()
                if name in selected_fields or spec.primary_key or spec.foreign_key
            ]
        order_by = args.get("order_by") or []
        if isinstance(order_by, str):
            order_by = [order_by]
        get_options = FindOptions(
            where=where,
            order_by=list(order_by),
            limit=args.get("limit"),
            offset=args.get("offset"),
            attributes=attributes,
            args_context=args_context,
        )
        count_options = FindOptions(where=where, args_context=args_context)
        return ListQuery(get_options=get_options, count_options=count_options)

    def _check_options(self, model: EntityModel, options: FindOptions) -> None:
        validate_where(options.where, model.fields, model.name)
        for order in options.order_by:
            if order.lstrip("-") not in model.fields:
                raise FilterError(
                    f"Cannot order '{model.name}' by unknown field '{order.lstrip('-')}'",
                    model.name,
                )

    async def find_all(self, entity_name: str, options: FindOptions | None = None) -> list[Record]:
        model = self._model(entity_name)
        opts = options or FindOptions()
        self._check_options(model, opts)
        return await self._select(model, opts)

    async def count(self, entity_name: str, options: FindOptions | None = None) -> int:
        model = self._model(entity_name)
        opts = options or FindOptions()
        validate_where(opts.where, model.fields, model.name)
        return await self._count(model, opts.where)

    def has_inline_count_feature(self) -> bool:
        return self.has_inline_count

    async def get_inline_count(self, rows: list[Any]) -> int:
        if not rows:
            return 0
        return int(rows[0].meta.get("total", len(rows)))

    # === Writes ===

    async def _run_hook(
        self, model: EntityModel, hook_name: HookName, instance: Any, args_context: Any
    ) -> Any:
        hook = model.hooks.get(hook_name)
        if hook is None:
            return instance
        result = await maybe_await(hook(instance, args_context))
        return instance if result is None else result

    async def _validate(self, model: EntityModel, record: Record, args_context: Any) -> Record:
        record = await self._run_hook(model, HookName.BEFORE_VALIDATE, record, args_context)
        errors = {
            name: "must not be null"
            for name, spec in model.fields.items()
            if not spec.allow_null and not spec.primary_key and record.get(name) is None
        }
        if errors:
            await self._run_hook(model, HookName.VALIDATION_FAILED, record, args_context)
            raise ValidationError(
                f"Validation failed for '{model.name}': {', '.join(errors)} must not be null",
                errors,
            )
        return await self._run_hook(model, HookName.AFTER_VALIDATE, record, args_context)

    def _storable(self, model: EntityModel, values: dict[str, Any]) -> dict[str, Any]:
        return {
            name: coerce_value(model.fields[name].type, value)
            for name, value in values.items()
            if name in model.fields
        }

    def get_create_function(self, entity_name: str) -> Callable[..., Any]:
        model = self._model(entity_name)

        async def create(values: dict[str, Any], args_context: Any = None) -> Record:
            initial = {
                name: spec.default
                for name, spec in model.fields.items()
                if spec.default is not None
            }
            initial.update(values)
            pk_spec = model.fields[model.primary_key]
            if initial.get(model.primary_key) is None and pk_spec.type in (
                FieldType.UUID,
                FieldType.STRING,
            ):
                initial[model.primary_key] = str(uuid4())

            record = Record(model.name, initial)
            record = await self._validate(model, record, args_context)
            record = await self._run_hook(model, HookName.BEFORE_CREATE, record, args_context)
            record = await self._run_hook(model, HookName.BEFORE_SAVE, record, args_context)
            record.values = await self._insert(model, self._storable(model, record.values))
            record = await self._run_hook(model, HookName.AFTER_CREATE, record, args_context)
            return await self._run_hook(model, HookName.AFTER_SAVE, record, args_context)

        return create

    async def update(
        self, instance: Record, values: dict[str, Any], args_context: Any = None
    ) -> Record:
        model = self._model(instance.entity)
        key = instance.get(model.primary_key)
        record = Record(model.name, {**instance.values, **values})
        record = await self._validate(model, record, args_context)
        record = await self._run_hook(model, HookName.BEFORE_UPDATE, record, args_context)
        record = await self._run_hook(model, HookName.BEFORE_SAVE, record, args_context)
        changes = self._storable(model, record.values)
        changes.pop(model.primary_key, None)
        instance.values = await self._write(model, key, changes)
        instance = await self._run_hook(model, HookName.AFTER_UPDATE, instance, args_context)
        return await self._run_hook(model, HookName.AFTER_SAVE, instance, args_context)

    async def destroy(self, instance: Record, args_context: Any = None) -> None:
        model = self._model(instance.entity)
        instance = await self._run_hook(model, HookName.BEFORE_DESTROY, instance, args_context)
        key = instance.get(model.primary_key)
        for junction in self._junctions.values():
            if junction.source == model.name:
                await self._purge_links(junction, junction.source_fk, key)
            if junction.target == model.name:
                await self._purge_links(junction, junction.target_fk, key)
        await self._delete(model, key)
        await self._run_hook(model, HookName.AFTER_DESTROY, instance, args_context)

    def get_update_function(
        self, entity_name: str, where_operators: dict[str, Callable[..., Any]] | None
    ) -> Callable[..., Any]:
        async def update(
            where: dict[str, Any] | None,
            input_factory: Callable[[Record], Any],
            args_context: Any = None,
        ) -> list[Record]:
            filter_ = await self.process_filter_argument(where, where_operators)
            matched = await self.find_all(entity_name, FindOptions(where=filter_, args_context=args_context))
            results = []
            # one at a time: input_factory may read each instance's state
            for instance in matched:
                values = await maybe_await(input_factory(instance))
                results.append(await self.update(instance, values, args_context))
            return results

        return update

    def get_delete_function(
        self, entity_name: str, where_operators: dict[str, Callable[..., Any]] | None
    ) -> Callable[..., Any]:
        async def delete(
            where: dict[str, Any] | None,
            args_context: Any = None,
            before: Callable[[Record], Any] | None = None,
            after: Callable[[Record], Any] | None = None,
        ) -> list[Record]:
            filter_ = await self.process_filter_argument(where, where_operators)
            matched = await self.find_all(entity_name, FindOptions(where=filter_, args_context=args_context))
            for instance in matched:
                if before is not None:
                    await maybe_await(before(instance))
                await self.destroy(instance, args_context)
                if after is not None:
                    await maybe_await(after(instance))
            return matched

        return delete
