"""Tests for the entity registry."""

import pytest

from datagraph import DataGraph, MemoryAdapter
from datagraph.adapters.contract import Record
from datagraph.exceptions import (
    AdapterAlreadyExistsError,
    AdapterNotFoundError,
    EntityAlreadyExistsError,
    EntityNotFoundError,
    InvalidHookError,
    MissingForeignKeyError,
    RegistryLockedError,
)


class FailingAdapter(MemoryAdapter):
    """Adapter whose model creation always fails."""

    async def create_model(self, definition, hook_map):
        raise RuntimeError("storage unavailable")


class TestAdapters:
    """Test adapter registration."""

    def test_first_adapter_is_default(self):
        graph = DataGraph()
        graph.register_adapter(MemoryAdapter("a"))
        graph.register_adapter(MemoryAdapter("b"))
        assert graph.default_adapter_name == "a"

    def test_explicit_name(self):
        graph = DataGraph()
        graph.register_adapter(MemoryAdapter(), "primary")
        assert list(graph.adapters) == ["primary"]

    def test_duplicate_adapter_name(self):
        graph = DataGraph()
        graph.register_adapter(MemoryAdapter())
        with pytest.raises(AdapterAlreadyExistsError):
            graph.register_adapter(MemoryAdapter())
        assert graph.default_adapter_name == "memory"


class TestDefinitions:
    """Test definition registration."""

    async def test_add_definition(self, task_definition):
        graph = DataGraph()
        graph.register_adapter(MemoryAdapter())
        definition = await graph.add_definition(task_definition)
        assert definition.name == "Task"
        assert graph.get_definition("Task") is definition
        assert graph.registry.get_model_adapter_name("Task") == "memory"

    async def test_implicit_primary_key(self, task_definition):
        graph = DataGraph()
        graph.register_adapter(MemoryAdapter())
        await graph.add_definition(task_definition)
        fields = graph.get_fields("Task")
        assert list(fields)[0] == "id"
        assert fields["id"].primary_key
        assert graph.get_global_keys("Task") == ["id"]

    async def test_duplicate_definition_leaves_registry_unchanged(self, task_definition):
        graph = DataGraph()
        graph.register_adapter(MemoryAdapter())
        first = await graph.add_definition(task_definition)
        with pytest.raises(EntityAlreadyExistsError):
            await graph.add_definition({**task_definition, "define": {"other": "string"}})
        assert graph.get_definition("Task") is first
        assert "other" not in graph.get_fields("Task")

    async def test_no_adapter(self):
        graph = DataGraph()
        with pytest.raises(AdapterNotFoundError):
            await graph.add_definition({"name": "Task"})

    async def test_unknown_datasource(self):
        graph = DataGraph()
        graph.register_adapter(MemoryAdapter())
        with pytest.raises(AdapterNotFoundError, match="Available adapters: memory"):
            await graph.add_definition({"name": "Task"}, datasource="sql")

    async def test_datasource_on_definition(self):
        graph = DataGraph()
        graph.register_adapter(MemoryAdapter("a"))
        graph.register_adapter(MemoryAdapter("b"))
        await graph.add_definition({"name": "Task", "datasource": "b"})
        assert graph.registry.get_model_adapter_name("Task") == "b"

    async def test_cross_adapter_missing_foreign_key_fails_before_model(self):
        """The check runs before the adapter creates any model."""
        graph = DataGraph()
        first = MemoryAdapter("a")
        second = MemoryAdapter("b")
        graph.register_adapter(first)
        graph.register_adapter(second)
        await graph.add_definition({"name": "TaskItem", "define": {"title": "string"}}, datasource="b")
        with pytest.raises(MissingForeignKeyError):
            await graph.add_definition(
                {
                    "name": "Task",
                    "define": {"name": "string"},
                    "relationships": [{"type": "hasMany", "model": "TaskItem", "name": "items"}],
                },
                datasource="a",
            )
        assert "Task" not in graph.get_definitions()
        with pytest.raises(EntityNotFoundError):
            first.get_model("Task")

    async def test_failed_create_model_rolls_back(self):
        graph = DataGraph()
        graph.register_adapter(FailingAdapter())
        with pytest.raises(RuntimeError):
            await graph.add_definition({"name": "Task"})
        assert graph.get_definitions() == {}
        with pytest.raises(EntityNotFoundError):
            graph.get_model_adapter("Task")

    async def test_locked_after_initialise(self, memory_graph):
        with pytest.raises(RegistryLockedError):
            await memory_graph.add_definition({"name": "Other"})
        with pytest.raises(RegistryLockedError):
            memory_graph.register_adapter(MemoryAdapter("other"))
        with pytest.raises(RegistryLockedError):
            await memory_graph.initialise()


class TestLookups:
    """Test registry lookups."""

    async def test_global_keys_include_foreign_keys(self, memory_graph):
        assert memory_graph.get_global_keys("TaskItem") == ["id", "task_id"]

    async def test_unknown_entity(self, memory_graph):
        with pytest.raises(EntityNotFoundError):
            memory_graph.get_definition("Nope")
        with pytest.raises(EntityNotFoundError):
            memory_graph.entity("Nope")

    async def test_type_mapper(self, memory_graph):
        assert memory_graph.get_graphql_output_type("Task", "name", "string") == "String"
        assert memory_graph.get_graphql_input_type("Task", "id", "int") == "Int"
        assert memory_graph.get_filter_graphql_type("Task") == "JSON"
        assert set(memory_graph.get_default_list_args("Task")) == {"where", "order_by", "limit", "offset"}

    async def test_value_from_instance(self, memory_graph):
        record = Record("Task", {"name": "t1"})
        assert memory_graph.get_value_from_instance("Task", record, "name") == "t1"
        assert memory_graph.get_value_from_instance("Task", None, "name") is None

    async def test_relationships_in_declaration_order(self, memory_graph):
        relationships = memory_graph.get_relationships("Task")
        assert list(relationships) == ["items"]
        assert relationships["items"].target == "TaskItem"


class TestGlobalHooks:
    """Test global hook registration."""

    def test_unknown_hook(self):
        graph = DataGraph()
        with pytest.raises(InvalidHookError):
            graph.add_hook("before_explode", lambda instance, options: instance)

    async def test_hook_added_after_definition_applies(self, task_item_definition):
        """Entity hook maps read the global chain at call time."""
        graph = DataGraph()
        graph.register_adapter(MemoryAdapter())
        await graph.add_definition({"name": "Task", "define": {"name": "string"}})
        await graph.add_definition(task_item_definition)
        calls = []
        graph.add_hook("after_create", lambda instance, options: calls.append(instance.get("name")))
        await graph.initialise()
        await graph.entity("Task").create({"name": "t1"})
        assert calls == ["t1"]
