"""Async SQLAlchemy storage adapter.

One table per entity and one junction table per belongsToMany association,
built from the entity models once the relationship graph has added its
foreign-key columns. Works against SQLite (aiosqlite) and PostgreSQL
(psycopg).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    and_,
    delete,
    false,
    func,
    insert,
    not_,
    or_,
    select,
    true,
    update,
)
from sqlalchemy.dialects.postgresql import JSONB

from datagraph.adapters.base import EntityModel, Junction, StoreAdapter
from datagraph.adapters.contract import FindOptions, Record
from datagraph.adapters.filters import coerce_condition
from datagraph.core.connection import AsyncDatabaseConnection
from datagraph.core.types import FieldType
from datagraph.exceptions import FilterError, RecordNotFoundError

if TYPE_CHECKING:
    from sqlalchemy import ColumnElement
    from sqlalchemy.engine.url import URL

logger = logging.getLogger(__name__)

TOTAL_LABEL = "__total__"

# Mapping from datagraph field types to SQLAlchemy column types
FIELD_TYPE_MAP = {
    "string": lambda: String(255),
    "text": lambda: Text(),
    "int": lambda: Integer(),
    "float": lambda: Float(),
    "bool": lambda: Boolean(),
    "datetime": lambda: DateTime(timezone=True),
    "uuid": lambda: String(36),
    # JSONB on PostgreSQL, JSON1 text elsewhere
    "json": lambda: JSON().with_variant(JSONB(), "postgresql"),
}


def _column_type(field_type: str) -> Any:
    factory = FIELD_TYPE_MAP.get(field_type)
    if factory is None:
        return String(255)
    return factory()


class SQLAlchemyAdapter(StoreAdapter):
    """Adapter backed by a relational database through async SQLAlchemy Core."""

    has_inline_count = True

    def __init__(self, url: str | URL, echo: bool = False, name: str = "sql") -> None:
        """Initialize the adapter.

        Args:
            url: Database URL. ``sqlite://`` and ``postgresql://`` are mapped
                to their async drivers.
            echo: Whether to echo SQL statements
            name: Adapter name used for registration
        """
        super().__init__(name)
        self._connection = AsyncDatabaseConnection(url, echo=echo)
        self._metadata = MetaData()
        self._tables: dict[str, Table] = {}

    @property
    def connection(self) -> AsyncDatabaseConnection:
        return self._connection

    # === Tables ===

    def _build_tables(self) -> None:
        self._metadata = MetaData()
        self._tables = {}
        for model in self._models.values():
            self._table(model)
        for junction in self._junctions.values():
            self._junction_table(junction)

    def _table(self, model: EntityModel) -> Table:
        table = self._tables.get(model.name)
        if table is not None:
            return table
        columns = []
        for name, spec in model.fields.items():
            is_int_pk = spec.primary_key and spec.type == FieldType.INT
            columns.append(
                Column(
                    name,
                    _column_type(spec.type),
                    primary_key=spec.primary_key,
                    autoincrement=is_int_pk,
                    nullable=not spec.primary_key and spec.allow_null,
                    unique=spec.unique or None,
                    index=spec.foreign_key or None,
                )
            )
        table = Table(model.table_name, self._metadata, *columns)
        self._tables[model.name] = table
        return table

    def _junction_table(self, junction: Junction) -> Table:
        table = self._tables.get(junction.name)
        if table is not None:
            return table
        source = self._models[junction.source]
        target = self._models[junction.target]
        table = Table(
            junction.name,
            self._metadata,
            Column(junction.source_fk, _column_type(source.fields[source.primary_key].type), nullable=False),
            Column(junction.target_fk, _column_type(target.fields[target.primary_key].type), nullable=False),
            PrimaryKeyConstraint(junction.source_fk, junction.target_fk),
        )
        self._tables[junction.name] = table
        return table

    # === Filters ===

    def _compile_condition(self, column: Any, condition: Any) -> ColumnElement[bool]:
        if not isinstance(condition, Mapping):
            if condition is None:
                return column.is_(None)
            return column == condition
        clauses = []
        for op, operand in condition.items():
            if op == "eq":
                clauses.append(column.is_(None) if operand is None else column == operand)
            elif op == "ne":
                if operand is None:
                    clauses.append(column.is_not(None))
                else:
                    clauses.append(or_(column != operand, column.is_(None)))
            elif op == "gt":
                clauses.append(column > operand)
            elif op == "gte":
                clauses.append(column >= operand)
            elif op == "lt":
                clauses.append(column < operand)
            elif op == "lte":
                clauses.append(column <= operand)
            elif op == "in":
                clauses.append(column.in_(list(operand)))
            elif op == "not_in":
                clauses.append(or_(column.not_in(list(operand)), column.is_(None)))
            elif op == "like":
                clauses.append(column.ilike(operand))
            elif op == "is_null":
                clauses.append(column.is_(None) if operand else column.is_not(None))
            else:
                raise FilterError(f"Unknown operator '{op}'")
        return and_(true(), *clauses)

    def _compile_where(self, model: EntityModel, table: Table, where: Mapping[str, Any]) -> ColumnElement[bool]:
        clauses = []
        for key, condition in where.items():
            if key == "and":
                clauses.extend(self._compile_where(model, table, item) for item in condition)
            elif key == "or":
                if condition:
                    clauses.append(or_(false(), *(self._compile_where(model, table, item) for item in condition)))
            elif key == "not":
                clauses.append(not_(self._compile_where(model, table, condition)))
            else:
                condition = coerce_condition(model.fields[key].type, condition)
                clauses.append(self._compile_condition(table.c[key], condition))
        return and_(true(), *clauses)

    # === Storage primitives ===

    def _to_record(self, model: EntityModel, row: Any, attributes: list[str] | None = None) -> Record:
        mapping = row._mapping
        names = attributes or list(model.fields)
        meta = {"total": mapping[TOTAL_LABEL]} if TOTAL_LABEL in mapping else {}
        return Record(model.name, {name: mapping[name] for name in names}, meta)

    async def _select(self, model: EntityModel, options: FindOptions) -> list[Record]:
        table = self._table(model)
        names = options.attributes or list(model.fields)
        stmt = select(
            *(table.c[name] for name in names),
            func.count().over().label(TOTAL_LABEL),
        ).where(self._compile_where(model, table, options.where))
        for order in options.order_by:
            column = table.c[order.lstrip("-")]
            stmt = stmt.order_by(column.desc() if order.startswith("-") else column.asc())
        if options.limit is not None:
            stmt = stmt.limit(options.limit)
        if options.offset:
            stmt = stmt.offset(options.offset)
        async with self._connection.engine.connect() as conn:
            result = await conn.execute(stmt)
            rows = result.all()
        return [self._to_record(model, row, names) for row in rows]

    async def _count(self, model: EntityModel, where: dict[str, Any]) -> int:
        table = self._table(model)
        stmt = select(func.count()).select_from(table).where(self._compile_where(model, table, where))
        async with self._connection.engine.connect() as conn:
            return int((await conn.execute(stmt)).scalar_one())

    async def _fetch(self, conn: Any, model: EntityModel, key: Any) -> dict[str, Any]:
        table = self._table(model)
        row = (await conn.execute(select(table).where(table.c[model.primary_key] == key))).first()
        if row is None:
            raise RecordNotFoundError(key, model.name)
        return dict(row._mapping)

    async def _insert(self, model: EntityModel, values: dict[str, Any]) -> dict[str, Any]:
        table = self._table(model)
        values = {k: v for k, v in values.items() if not (k == model.primary_key and v is None)}
        async with self._connection.engine.begin() as conn:
            result = await conn.execute(insert(table).values(**values))
            key = values.get(model.primary_key)
            if key is None:
                key = result.inserted_primary_key[0]
            row = await self._fetch(conn, model, key)
        logger.debug(f"[{self.name}] insert {model.table_name} {key}")
        return row

    async def _write(self, model: EntityModel, key: Any, values: dict[str, Any]) -> dict[str, Any]:
        table = self._table(model)
        async with self._connection.engine.begin() as conn:
            if values:
                await conn.execute(
                    update(table).where(table.c[model.primary_key] == key).values(**values)
                )
            return await self._fetch(conn, model, key)

    async def _delete(self, model: EntityModel, key: Any) -> None:
        table = self._table(model)
        async with self._connection.engine.begin() as conn:
            await conn.execute(delete(table).where(table.c[model.primary_key] == key))

    async def _linked_keys(self, junction: Junction, source_key: Any) -> list[Any]:
        table = self._junction_table(junction)
        stmt = select(table.c[junction.target_fk]).where(table.c[junction.source_fk] == source_key)
        async with self._connection.engine.connect() as conn:
            return list((await conn.execute(stmt)).scalars().all())

    async def _link(self, junction: Junction, source_key: Any, target_keys: list[Any]) -> None:
        existing = set(await self._linked_keys(junction, source_key))
        rows = [
            {junction.source_fk: source_key, junction.target_fk: key}
            for key in dict.fromkeys(target_keys)
            if key not in existing
        ]
        if not rows:
            return
        table = self._junction_table(junction)
        async with self._connection.engine.begin() as conn:
            await conn.execute(insert(table), rows)

    async def _unlink(
        self, junction: Junction, source_key: Any, target_keys: list[Any] | None = None
    ) -> None:
        table = self._junction_table(junction)
        stmt = delete(table).where(table.c[junction.source_fk] == source_key)
        if target_keys is not None:
            stmt = stmt.where(table.c[junction.target_fk].in_(target_keys))
        async with self._connection.engine.begin() as conn:
            await conn.execute(stmt)

    async def _purge_links(self, junction: Junction, column: str, key: Any) -> None:
        table = self._junction_table(junction)
        async with self._connection.engine.begin() as conn:
            await conn.execute(delete(table).where(table.c[column] == key))

    # === Lifecycle ===

    async def initialise(self) -> None:
        self._build_tables()
        async with self._connection.engine.begin() as conn:
            await conn.run_sync(self._metadata.create_all)
        logger.debug(f"[{self.name}] created tables: {', '.join(t.name for t in self._metadata.sorted_tables)}")

    async def reset(self) -> None:
        self._build_tables()
        async with self._connection.engine.begin() as conn:
            await conn.run_sync(self._metadata.drop_all)
            await conn.run_sync(self._metadata.create_all)
        logger.debug(f"[{self.name}] reset {len(self._metadata.tables)} tables")

    async def close(self) -> None:
        await self._connection.close()
