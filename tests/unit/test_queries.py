"""Tests for list reads, relationship traversal and class methods."""

from dataclasses import replace

import pytest

from datagraph import DataGraph, Events, MemoryAdapter, RequestInfo, to_global_id
from datagraph.core.context import SelectionNode
from datagraph.exceptions import (
    ClassMethodNotFoundError,
    FilterError,
    InvalidGlobalIdError,
    RelationshipNotFoundError,
)


def gid(type_name, instance):
    return to_global_id(type_name, instance.get("id"))


async def note_graph(**definition):
    graph = DataGraph()
    graph.register_adapter(MemoryAdapter())
    await graph.add_definition({"name": "Note", "define": {"body": "string"}, **definition})
    await graph.initialise()
    for body in ("hello", "hidden", "world"):
        await graph.entity("Note").create({"body": body})
    return graph


@pytest.fixture
async def tasks(graph):
    created = []
    for name in ("t1", "t2", "t3"):
        created.append(await graph.entity("Task").create({"name": name}))
    return created


class TestFindAll:
    """Test list queries."""

    async def test_all(self, graph, tasks):
        result = await graph.entity("Task").find()
        assert result.total == 3
        assert len(result.models) == 3

    async def test_order_and_limit(self, graph, tasks):
        """The total counts every match, not just the page."""
        result = await graph.entity("Task").find(order_by=["-name"], limit=2)
        assert [t.get("name") for t in result.models] == ["t3", "t2"]
        assert result.total == 3

    async def test_offset(self, graph, tasks):
        result = await graph.entity("Task").find(order_by="name", offset=1, limit=1)
        assert [t.get("name") for t in result.models] == ["t2"]

    async def test_where(self, graph, tasks):
        result = await graph.entity("Task").find(where={"name": {"in": ["t1", "t3"]}}, order_by=["name"])
        assert [t.get("name") for t in result.models] == ["t1", "t3"]
        assert result.total == 2

    async def test_where_global_ids(self, graph, tasks):
        ids = [gid("Task", tasks[0]), gid("Task", tasks[2])]
        result = await graph.entity("Task").find(where={"id": {"in": ids}})
        assert {t.get("name") for t in result.models} == {"t1", "t3"}

    async def test_no_match(self, graph, tasks):
        result = await graph.entity("Task").find(where={"name": "missing"})
        assert result.total == 0
        assert result.models == []

    async def test_unknown_field(self, graph, tasks):
        with pytest.raises(FilterError):
            await graph.entity("Task").find(where={"colour": "red"})
        with pytest.raises(FilterError):
            await graph.entity("Task").find(order_by=["colour"])

    async def test_malformed_global_id(self, graph, tasks):
        with pytest.raises(InvalidGlobalIdError):
            await graph.entity("Task").find(where={"id": "not-an-id"})

    async def test_find_by_id(self, graph, tasks):
        found = await graph.entity("Task").find_by_id(gid("Task", tasks[1]))
        assert found.get("name") == "t2"
        assert await graph.entity("Task").find_by_id(to_global_id("Task", 999)) is None

    async def test_selection_hints(self, graph, tasks):
        """Only requested fields plus keys are fetched."""
        info = RequestInfo(
            field_nodes=[SelectionNode("tasks", [SelectionNode("node", [SelectionNode("name")])])]
        )
        result = await graph.entity("Task").find(info=info, order_by=["name"])
        first = result.models[0]
        assert first.get("name") == "t1"
        assert "id" in first
        assert "mutation_check" not in first


class TestLifecycleTransforms:
    """Test before/after around reads."""

    async def test_after_none_drops_rows(self):
        graph = await note_graph(
            after=lambda event: None if event.result.get("body") == "hidden" else event.result
        )
        result = await graph.entity("Note").find(order_by=["body"])
        assert [n.get("body") for n in result.models] == ["hello", "world"]

    async def test_before_replaces_options(self):
        def before(event):
            if event.type == Events.QUERY:
                return replace(event.params, where={"body": "world"})
            return event.params

        graph = await note_graph(before=before)
        result = await graph.entity("Note").find()
        assert [n.get("body") for n in result.models] == ["world"]

    async def test_before_returning_other_values_is_ignored(self):
        graph = await note_graph(before=lambda event: None)
        result = await graph.entity("Note").find()
        assert result.total == 3

    async def test_custom_where_operator(self):
        graph = await note_graph(where_operators={"search": lambda value: {"body": {"like": f"%{value}%"}}})
        result = await graph.entity("Note").find(where={"search": "ell"})
        assert [n.get("body") for n in result.models] == ["hello"]
        assert result.total == 1

    async def test_async_where_operator(self):
        async def starts(value):
            return {"body": {"like": f"{value}%"}}

        graph = await note_graph(where_operators={"starts": starts})
        result = await graph.entity("Note").find(where={"or": [{"starts": "w"}, {"body": "hello"}]})
        assert sorted(n.get("body") for n in result.models) == ["hello", "world"]


class TestRelationshipReads:
    """Test relationship traversal."""

    async def test_many_relationship(self, graph):
        task = await graph.entity("Task").create(
            {"name": "t1", "items": {"create": [{"title": "a"}, {"title": "b"}, {"title": "c"}]}}
        )
        await graph.entity("Task").create({"name": "t2", "items": {"create": [{"title": "a"}]}})
        result = await graph.entity("Task").related(task, "items", order_by=["title"], limit=2)
        assert [i.get("title") for i in result.models] == ["a", "b"]
        assert result.total == 3

        filtered = await graph.entity("Task").related(task, "items", where={"title": "a"})
        assert filtered.total == 1

    async def test_single_relationship(self, graph):
        task = await graph.entity("Task").create({"name": "t1", "items": {"create": [{"title": "a"}]}})
        item = (await graph.entity("TaskItem").find()).models[0]
        parent = await graph.entity("TaskItem").related(item, "task")
        assert parent.get("id") == task.get("id")

    async def test_single_relationship_without_parent(self, graph):
        item = await graph.entity("TaskItem").create({"title": "loose"})
        assert await graph.entity("TaskItem").related(item, "task") is None

    async def test_filter_by_foreign_key(self, graph):
        task = await graph.entity("Task").create({"name": "t1", "items": {"create": [{"title": "a"}]}})
        await graph.entity("TaskItem").create({"title": "loose"})
        result = await graph.entity("TaskItem").find(where={"task_id": gid("Task", task)})
        assert [i.get("title") for i in result.models] == ["a"]

    async def test_unknown_relationship(self, graph):
        task = await graph.entity("Task").create({"name": "t1"})
        with pytest.raises(RelationshipNotFoundError) as exc_info:
            await graph.resolve_many_relationship("Task", "tags", task, {})
        assert exc_info.value.available_relationships == ["items"]


class TestClassMethods:
    """Test class method dispatch."""

    async def test_call(self, graph):
        result = await graph.entity("Task").call("reverse_name", {"amount": 3})
        assert result == {"id": 1, "name": "reverseName3"}

    async def test_async_class_method(self):
        async def shout(args, context):
            return args["text"].upper()

        graph = await note_graph(class_methods={"shout": shout})
        assert await graph.resolve_class_method("Note", "shout", None, {"text": "hi"}) == "HI"

    async def test_unknown_method(self, graph):
        with pytest.raises(ClassMethodNotFoundError):
            await graph.entity("Task").call("missing")
