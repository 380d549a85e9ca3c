"""In-memory storage adapter.

Rows live in plain dicts keyed by primary key; belongsToMany links are kept
as a list of ``(source_key, target_key)`` pairs per junction. Useful for tests
and for entities that never need to outlive the process.
"""

from __future__ import annotations

import logging
from typing import Any

from datagraph.adapters.base import EntityModel, Junction, StoreAdapter
from datagraph.adapters.contract import FindOptions, Record
from datagraph.adapters.filters import coerce_value, match_where
from datagraph.core.types import FieldType
from datagraph.exceptions import RecordNotFoundError, ValidationError

logger = logging.getLogger(__name__)


def _sort_key(value: Any) -> tuple[bool, Any]:
    # None sorts last in ascending order
    return (value is None, value if value is not None else 0)


class MemoryAdapter(StoreAdapter):
    """Dict-backed adapter. Counts are always computed separately."""

    def __init__(self, name: str = "memory") -> None:
        super().__init__(name)
        self._tables: dict[str, dict[Any, dict[str, Any]]] = {}
        self._links: dict[str, list[tuple[Any, Any]]] = {}
        self._sequences: dict[str, int] = {}

    def _table(self, model: EntityModel) -> dict[Any, dict[str, Any]]:
        return self._tables.setdefault(model.name, {})

    def _key(self, model: EntityModel, value: Any) -> Any:
        return coerce_value(model.fields[model.primary_key].type, value)

    def _record(self, model: EntityModel, row: dict[str, Any], attributes: list[str] | None = None) -> Record:
        values = {name: row.get(name) for name in (attributes or model.fields)}
        return Record(model.name, values)

    async def _select(self, model: EntityModel, options: FindOptions) -> list[Record]:
        rows = [row for row in self._table(model).values() if match_where(row, options.where, model.fields)]
        # stable sorts applied from the last key to the first
        for order in reversed(options.order_by):
            name = order.lstrip("-")
            rows.sort(key=lambda row: _sort_key(row.get(name)), reverse=order.startswith("-"))
        start = options.offset or 0
        end = start + options.limit if options.limit is not None else None
        return [self._record(model, row, options.attributes) for row in rows[start:end]]

    async def _count(self, model: EntityModel, where: dict[str, Any]) -> int:
        return sum(1 for row in self._table(model).values() if match_where(row, where, model.fields))

    def _check_unique(self, model: EntityModel, row: dict[str, Any], key: Any = None) -> None:
        table = self._table(model)
        for name, spec in model.fields.items():
            if not spec.unique or row.get(name) is None:
                continue
            if any(other.get(name) == row[name] for other_key, other in table.items() if other_key != key):
                raise ValidationError(
                    f"Duplicate value {row[name]!r} for unique field '{model.name}.{name}'",
                    {name: "must be unique"},
                )

    async def _insert(self, model: EntityModel, values: dict[str, Any]) -> dict[str, Any]:
        table = self._table(model)
        pk = model.primary_key
        row = {name: values.get(name) for name in model.fields}
        is_int_key = model.fields[pk].type == FieldType.INT
        if row[pk] is None and is_int_key:
            self._sequences[model.name] = self._sequences.get(model.name, 0) + 1
            row[pk] = self._sequences[model.name]
        elif row[pk] is not None:
            row[pk] = self._key(model, row[pk])
            if row[pk] in table:
                raise ValidationError(
                    f"{model.name} with {pk}={row[pk]!r} already exists", {pk: "must be unique"}
                )
            if is_int_key and isinstance(row[pk], int):
                self._sequences[model.name] = max(self._sequences.get(model.name, 0), row[pk])
        self._check_unique(model, row)
        table[row[pk]] = row
        logger.debug(f"[{self.name}] insert {model.name} {row[model.primary_key]}")
        return dict(row)

    async def _write(self, model: EntityModel, key: Any, values: dict[str, Any]) -> dict[str, Any]:
        row = self._table(model).get(self._key(model, key))
        if row is None:
            raise RecordNotFoundError(key, model.name)
        self._check_unique(model, {**row, **values}, key=row[model.primary_key])
        row.update(values)
        return dict(row)

    async def _delete(self, model: EntityModel, key: Any) -> None:
        self._table(model).pop(self._key(model, key), None)

    async def _linked_keys(self, junction: Junction, source_key: Any) -> list[Any]:
        return [target for source, target in self._links.get(junction.name, []) if source == source_key]

    async def _link(self, junction: Junction, source_key: Any, target_keys: list[Any]) -> None:
        links = self._links.setdefault(junction.name, [])
        for target_key in target_keys:
            if (source_key, target_key) not in links:
                links.append((source_key, target_key))

    async def _unlink(
        self, junction: Junction, source_key: Any, target_keys: list[Any] | None = None
    ) -> None:
        self._links[junction.name] = [
            (source, target)
            for source, target in self._links.get(junction.name, [])
            if source != source_key or (target_keys is not None and target not in target_keys)
        ]

    async def _purge_links(self, junction: Junction, column: str, key: Any) -> None:
        index = 0 if column == junction.source_fk else 1
        self._links[junction.name] = [
            pair for pair in self._links.get(junction.name, []) if pair[index] != key
        ]

    async def initialise(self) -> None:
        for name in self._models:
            self._tables.setdefault(name, {})
        for name in self._junctions:
            self._links.setdefault(name, [])
        logger.debug(f"[{self.name}] initialised {len(self._models)} tables")

    async def reset(self) -> None:
        self._tables = {name: {} for name in self._models}
        self._links = {name: [] for name in self._junctions}
        self._sequences.clear()
        logger.debug(f"[{self.name}] reset {len(self._models)} tables")
