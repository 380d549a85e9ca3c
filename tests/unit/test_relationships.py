"""Tests for building the relationship graph."""

import pytest

from datagraph import DataGraph, MemoryAdapter, RelationshipType, to_global_id
from datagraph.exceptions import (
    EntityNotFoundError,
    InvalidRelationshipTypeError,
    MissingForeignKeyError,
    RelationshipAlreadyExistsError,
    UndeclaredForeignKeyError,
)


def two_adapter_graph():
    graph = DataGraph()
    graph.register_adapter(MemoryAdapter("left"))
    graph.register_adapter(MemoryAdapter("right"))
    return graph


class TestInternalEdges:
    """Edges between entities on the same adapter."""

    async def test_edges_resolved(self, memory_graph):
        edge = memory_graph.get_edges("Task")["items"]
        assert edge.internal
        assert edge.type == RelationshipType.HAS_MANY
        assert edge.foreign_key == "task_id"
        assert edge.source_key == "id"
        assert edge.accessor_name is None

        back = memory_graph.get_edges("TaskItem")["task"]
        assert back.type == RelationshipType.BELONGS_TO
        assert back.foreign_key == "task_id"

    async def test_initialised_flag(self, memory_graph):
        assert memory_graph.is_initialised

    async def test_duplicate_relationship_name(self):
        graph = DataGraph()
        graph.register_adapter(MemoryAdapter())
        await graph.add_definition(
            {
                "name": "Task",
                "relationships": [
                    {"type": "hasMany", "model": "TaskItem", "name": "items"},
                    {"type": "hasOne", "model": "TaskItem", "name": "items"},
                ],
            }
        )
        await graph.add_definition({"name": "TaskItem"})
        with pytest.raises(RelationshipAlreadyExistsError):
            await graph.initialise()
        assert not graph.is_initialised

    async def test_unknown_relationship_type(self):
        graph = DataGraph()
        graph.register_adapter(MemoryAdapter())
        await graph.add_definition({"name": "Task", "relationships": [{"type": "hasLots", "model": "Task", "name": "x"}]})
        with pytest.raises(InvalidRelationshipTypeError):
            await graph.initialise()

    async def test_unknown_target(self):
        graph = DataGraph()
        graph.register_adapter(MemoryAdapter())
        await graph.add_definition({"name": "Task", "relationships": [{"type": "hasMany", "model": "Ghost", "name": "x"}]})
        with pytest.raises(EntityNotFoundError):
            await graph.initialise()

    async def test_retry_after_failed_initialise(self):
        graph = DataGraph()
        graph.register_adapter(MemoryAdapter())
        await graph.add_definition(
            {
                "name": "Task",
                "relationships": [
                    {"type": "hasMany", "model": "TaskItem", "name": "items"},
                    {"type": "belongsTo", "model": "Project", "name": "project"},
                ],
            }
        )
        await graph.add_definition({"name": "TaskItem", "define": {"title": "string"}})
        with pytest.raises(EntityNotFoundError):
            await graph.initialise()
        assert not graph.is_initialised
        assert graph.get_edges("Task") == {}

        await graph.add_definition({"name": "Project", "define": {"name": "string"}})
        await graph.initialise()
        assert list(graph.get_edges("Task")) == ["items", "project"]

    async def test_self_relationship(self):
        graph = DataGraph()
        graph.register_adapter(MemoryAdapter())
        await graph.add_definition(
            {
                "name": "Task",
                "define": {"name": "string"},
                "relationships": [{"type": "belongsTo", "model": "Task", "name": "parent"}],
            }
        )
        await graph.initialise()
        parent = await graph.entity("Task").create({"name": "p"})
        child = await graph.entity("Task").create({"name": "c", "parent_id": to_global_id("Task", parent.get("id"))})
        assert (await graph.entity("Task").related(child, "parent")).get("name") == "p"


class TestCrossAdapterEdges:
    """Edges whose ends live on different adapters."""

    async def test_missing_foreign_key_at_initialise(self):
        """Declared before its target, the edge is only checked at initialise."""
        graph = two_adapter_graph()
        await graph.add_definition(
            {"name": "Task", "relationships": [{"type": "hasMany", "model": "TaskItem", "name": "items"}]},
            datasource="left",
        )
        await graph.add_definition({"name": "TaskItem", "define": {"task_id": "int"}}, datasource="right")
        with pytest.raises(MissingForeignKeyError):
            await graph.initialise()

    async def test_undeclared_foreign_key_on_target(self):
        graph = two_adapter_graph()
        await graph.add_definition(
            {
                "name": "Task",
                "relationships": [
                    {"type": "hasMany", "model": "TaskItem", "name": "items", "options": {"foreign_key": "task_id"}}
                ],
            },
            datasource="left",
        )
        await graph.add_definition({"name": "TaskItem", "define": {"title": "string"}}, datasource="right")
        with pytest.raises(UndeclaredForeignKeyError, match="'TaskItem' does not declare it"):
            await graph.initialise()
        assert not graph.is_initialised

    async def test_undeclared_foreign_key_on_source(self):
        graph = two_adapter_graph()
        await graph.add_definition({"name": "Task"}, datasource="left")
        await graph.add_definition(
            {
                "name": "TaskItem",
                "define": {"title": "string"},
                "relationships": [
                    {"type": "belongsTo", "model": "Task", "name": "task", "options": {"foreign_key": "task_id"}}
                ],
            },
            datasource="right",
        )
        with pytest.raises(UndeclaredForeignKeyError) as exc_info:
            await graph.initialise()
        assert exc_info.value.holder == "TaskItem"
        assert exc_info.value.foreign_key == "task_id"

    async def test_belongs_to_many_rejected(self):
        graph = two_adapter_graph()
        await graph.add_definition(
            {
                "name": "Task",
                "relationships": [
                    {"type": "belongsToMany", "model": "Tag", "name": "tags", "options": {"foreign_key": "task_id"}}
                ],
            },
            datasource="left",
        )
        await graph.add_definition({"name": "Tag"}, datasource="right")
        with pytest.raises(InvalidRelationshipTypeError, match="cannot span two adapters"):
            await graph.initialise()

    async def test_accessor_names(self):
        graph = two_adapter_graph()
        await graph.add_definition(
            {
                "name": "Task",
                "relationships": [
                    {"type": "hasMany", "model": "TaskItem", "name": "items", "options": {"foreign_key": "task_id"}}
                ],
            },
            datasource="left",
        )
        await graph.add_definition(
            {
                "name": "TaskItem",
                "define": {"task_id": "int"},
                "relationships": [
                    {"type": "belongsTo", "model": "Task", "name": "task", "options": {"foreign_key": "task_id"}}
                ],
            },
            datasource="right",
        )
        await graph.initialise()

        edge = graph.get_edges("Task")["items"]
        assert not edge.internal
        assert edge.accessor_name == "get_task_items"
        assert graph.get_accessor("Task", "get_task_items") is graph.get_relationships("Task")["items"]
        assert graph.get_edges("TaskItem")["task"].accessor_name == "get_task"
        assert graph.get_accessor("Task", "get_tags") is None
