"""Tests for the reference storage adapters."""

import pytest

from datagraph import DataGraph, MemoryAdapter, SQLAlchemyAdapter, to_global_id
from datagraph.adapters import get_adapter
from datagraph.adapters.contract import FindOptions, Record
from datagraph.core.types import EntityDefinition, RelationshipOptions
from datagraph.exceptions import (
    InvalidRelationshipTypeError,
    RecordNotFoundError,
    RelationshipAlreadyExistsError,
    ValidationError,
)


def gid(type_name, instance):
    return to_global_id(type_name, instance.get("id"))


@pytest.fixture(params=["memory", "sqlite"])
async def tag_graph(request):
    """Task <-> Tag through a junction, on each reference adapter."""
    adapter = MemoryAdapter() if request.param == "memory" else SQLAlchemyAdapter("sqlite:///:memory:")
    graph = DataGraph()
    graph.register_adapter(adapter)
    await graph.add_definition(
        {
            "name": "Task",
            "define": {"name": "string"},
            "relationships": [{"type": "belongsToMany", "model": "Tag", "name": "tags"}],
        }
    )
    await graph.add_definition({"name": "Tag", "define": {"label": "string"}})
    await graph.initialise()
    yield graph
    await graph.close()


async def labels(graph, task):
    result = await graph.entity("Task").related(task, "tags", order_by=["label"])
    return [tag.get("label") for tag in result.models]


class TestBelongsToMany:
    """Test junction-backed associations."""

    async def test_nested_create_links(self, tag_graph):
        task = await tag_graph.entity("Task").create(
            {"name": "t1", "tags": {"create": [{"label": "x"}, {"label": "y"}]}}
        )
        assert await labels(tag_graph, task) == ["x", "y"]
        result = await tag_graph.entity("Task").related(task, "tags")
        assert result.total == 2

    async def test_add_and_remove(self, tag_graph):
        task = await tag_graph.entity("Task").create({"name": "t1", "tags": {"create": [{"label": "x"}]}})
        await tag_graph.entity("Tag").create({"label": "z"})
        await tag_graph.entity("Task").update({"id": gid("Task", task)}, {"tags": {"add": [{"label": "z"}]}})
        assert await labels(tag_graph, task) == ["x", "z"]

        # adding an existing link is a no-op
        await tag_graph.entity("Task").update({"id": gid("Task", task)}, {"tags": {"add": [{"label": "z"}]}})
        assert await labels(tag_graph, task) == ["x", "z"]

        await tag_graph.entity("Task").update({"id": gid("Task", task)}, {"tags": {"remove": [{"label": "x"}]}})
        assert await labels(tag_graph, task) == ["z"]
        assert (await tag_graph.entity("Tag").find()).total == 2

    async def test_tag_shared_between_tasks(self, tag_graph):
        tag = await tag_graph.entity("Tag").create({"label": "shared"})
        t1 = await tag_graph.entity("Task").create({"name": "t1", "tags": {"add": [{"id": gid("Tag", tag)}]}})
        t2 = await tag_graph.entity("Task").create({"name": "t2", "tags": {"add": [{"id": gid("Tag", tag)}]}})
        assert await labels(tag_graph, t1) == ["shared"]
        assert await labels(tag_graph, t2) == ["shared"]

    async def test_destroy_purges_links(self, tag_graph):
        task = await tag_graph.entity("Task").create(
            {"name": "t1", "tags": {"create": [{"label": "x"}, {"label": "y"}]}}
        )
        await tag_graph.entity("Tag").delete({"label": "y"})
        assert await labels(tag_graph, task) == ["x"]

    async def test_set_replaces_links(self, tag_graph):
        task = await tag_graph.entity("Task").create(
            {"name": "t1", "tags": {"create": [{"label": "x"}, {"label": "y"}]}}
        )
        z = await tag_graph.entity("Tag").create({"label": "z"})
        association = tag_graph.get_relationships("Task")["tags"]
        await association.accessors.set(task, [z])
        assert await labels(tag_graph, task) == ["z"]
        await association.accessors.set(task, None)
        assert await labels(tag_graph, task) == []

    async def test_no_links(self, tag_graph):
        task = await tag_graph.entity("Task").create({"name": "t1"})
        result = await tag_graph.entity("Task").related(task, "tags")
        assert result.total == 0
        assert result.models == []


class TestFilterSemantics:
    """Both adapters evaluate filters the same way."""

    async def test_ne_matches_null(self, graph):
        await graph.entity("Task").create({"name": "t1", "options": {"a": 1}})
        await graph.entity("Task").create({"name": "t2"})
        result = await graph.entity("Task").find(where={"options": {"ne": '{"a": 1}'}})
        assert [t.get("name") for t in result.models] == ["t2"]

    async def test_like_is_case_insensitive(self, graph):
        await graph.entity("Task").create({"name": "Alpha"})
        result = await graph.entity("Task").find(where={"name": {"like": "al%"}})
        assert result.total == 1

    async def test_is_null_and_not(self, graph):
        await graph.entity("Task").create({"name": "t1", "options": {}})
        await graph.entity("Task").create({"name": "t2"})
        result = await graph.entity("Task").find(where={"options": {"is_null": True}})
        assert [t.get("name") for t in result.models] == ["t2"]
        result = await graph.entity("Task").find(where={"not": {"name": "t2"}})
        assert [t.get("name") for t in result.models] == ["t1"]

    async def test_ascending_order(self, graph):
        await graph.entity("TaskItem").create({"title": "b"})
        await graph.entity("TaskItem").create({"title": "a"})
        result = await graph.entity("TaskItem").find(order_by=["title"])
        assert [i.get("title") for i in result.models] == ["a", "b"]


@pytest.fixture
async def adapter():
    adapter = MemoryAdapter()
    await adapter.create_model(EntityDefinition(name="Task", define={"name": "string"}), {})
    await adapter.create_model(EntityDefinition(name="TaskItem", define={"title": "string"}), {})
    return adapter


class TestMemoryAdapter:
    """Test the in-memory adapter directly."""

    async def test_autoincrement(self, adapter):
        create = adapter.get_create_function("Task")
        first = await create({"name": "a"})
        second = await create({"name": "b"})
        assert (first.get("id"), second.get("id")) == (1, 2)

    async def test_string_primary_key_generated(self):
        adapter = MemoryAdapter()
        await adapter.create_model(
            EntityDefinition(name="Tag", define={"slug": {"type": "uuid", "primary_key": True}}), {}
        )
        tag = await adapter.get_create_function("Tag")({})
        assert len(tag.get("slug")) == 36

    async def test_reset(self, adapter):
        create = adapter.get_create_function("Task")
        await create({"name": "a"})
        await adapter.reset()
        assert await adapter.count("Task") == 0
        assert (await create({"name": "b"})).get("id") == 1

    async def test_default_foreign_key(self, adapter):
        association = await adapter.create_relationship(
            "Task", "TaskItem", "items", "hasMany", RelationshipOptions()
        )
        assert association.foreign_key == "task_id"
        assert adapter.get_fields("TaskItem")["task_id"].foreign_key

    async def test_duplicate_relationship(self, adapter):
        await adapter.create_relationship("Task", "TaskItem", "items", "hasMany", RelationshipOptions())
        with pytest.raises(RelationshipAlreadyExistsError):
            await adapter.create_relationship("Task", "TaskItem", "items", "hasMany", RelationshipOptions())

    async def test_invalid_relationship_type(self, adapter):
        with pytest.raises(InvalidRelationshipTypeError):
            await adapter.create_relationship("Task", "TaskItem", "items", "hasLots", RelationshipOptions())

    async def test_explicit_key_advances_sequence(self, adapter):
        create = adapter.get_create_function("Task")
        await create({"id": 1, "name": "explicit"})
        auto = await create({"name": "auto"})
        assert auto.get("id") == 2
        rows = await adapter.find_all("Task", FindOptions(order_by=["id"]))
        assert [(r.get("id"), r.get("name")) for r in rows] == [(1, "explicit"), (2, "auto")]

    async def test_duplicate_key_rejected(self, adapter):
        create = adapter.get_create_function("Task")
        await create({"name": "first"})
        with pytest.raises(ValidationError, match="already exists"):
            await create({"id": 1, "name": "second"})
        rows = await adapter.find_all("Task")
        assert [r.get("name") for r in rows] == ["first"]

    async def test_unique_field(self):
        adapter = MemoryAdapter()
        await adapter.create_model(
            EntityDefinition(name="Tag", define={"label": {"type": "string", "unique": True}}), {}
        )
        create = adapter.get_create_function("Tag")
        urgent = await create({"label": "urgent"})
        ops = await create({"label": "ops"})
        with pytest.raises(ValidationError, match="unique field 'Tag.label'"):
            await create({"label": "urgent"})
        with pytest.raises(ValidationError):
            await adapter.update(ops, {"label": "urgent"})
        # rewriting a row with its own value is not a conflict
        await adapter.update(urgent, {"label": "urgent"})
        assert await adapter.count("Tag") == 2

    async def test_explicit_global_id_keeps_rows(self):
        graph = DataGraph()
        graph.register_adapter(MemoryAdapter())
        await graph.add_definition({"name": "Note", "define": {"body": "string"}})
        await graph.initialise()
        await graph.entity("Note").create({"id": to_global_id("Note", 1), "body": "explicit"})
        await graph.entity("Note").create({"body": "auto"})
        result = await graph.entity("Note").find(order_by=["id"])
        assert [(n.get("id"), n.get("body")) for n in result.models] == [(1, "explicit"), (2, "auto")]

    async def test_update_missing_record(self, adapter):
        with pytest.raises(RecordNotFoundError):
            await adapter.update(Record("Task", {"id": 42, "name": "x"}), {"name": "y"})

    async def test_find_function(self, adapter):
        create = adapter.get_create_function("Task")
        await create({"name": "a"})
        await create({"name": "b"})
        find = await adapter.create_function_for_find("Task")
        assert (await find("b", "name", True)()).get("id") == 2
        assert await find(None, "name", True)() is None
        assert await find(None, "name", False)() == []
        rows = await find("a", "name", False)(FindOptions(where={"id": {"gt": 5}}))
        assert rows == []

    def test_value_from_instance(self):
        adapter = MemoryAdapter()

        class Row:
            name = "attr"

        assert adapter.get_value_from_instance({"name": "dict"}, "name") == "dict"
        assert adapter.get_value_from_instance(Row(), "name") == "attr"
        assert adapter.get_value_from_instance(Record("Task", {"name": "rec"}), "name") == "rec"

    def test_no_inline_count(self):
        assert not MemoryAdapter().has_inline_count_feature()
        assert SQLAlchemyAdapter("sqlite:///:memory:").has_inline_count_feature()


class TestGetAdapter:
    """Test the adapter factory."""

    def test_by_name(self):
        assert isinstance(get_adapter("memory"), MemoryAdapter)
        sql = get_adapter("sql", url="sqlite:///:memory:", name="main")
        assert isinstance(sql, SQLAlchemyAdapter)
        assert sql.name == "main"

    def test_instance_passthrough(self):
        adapter = MemoryAdapter()
        assert get_adapter(adapter) is adapter

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown adapter"):
            get_adapter("mongo")
