"""Shared test fixtures for datagraph."""

import json
from collections.abc import AsyncGenerator
from typing import Any

import pytest

from datagraph import DataGraph, Events, MemoryAdapter, SQLAlchemyAdapter


def _task_before(event: Any) -> Any:
    if event.type == Events.MUTATION_CREATE:
        return {**event.params, "mutation_check": "create"}
    if event.type == Events.MUTATION_UPDATE:
        return {**event.params, "mutation_check": "update"}
    return event.params


def _options_input(value: Any, args: Any, context: Any, info: Any, model: Any) -> str:
    # merge into the stored options on update
    if model is not None and model.get("options"):
        return json.dumps({**json.loads(model.get("options")), **value})
    return json.dumps(value)


@pytest.fixture
def task_definition() -> dict[str, Any]:
    """Task entity: lifecycle transforms, a JSON override and many items."""
    return {
        "name": "Task",
        "define": {
            "name": {"type": "string", "allow_null": False},
            "mutation_check": "string",
            "options": "text",
        },
        "before": _task_before,
        "after": lambda event: event.result,
        "override": {
            "options": {
                "input": _options_input,
                "output": lambda result, *args: json.loads(result.get("options")),
            },
        },
        "relationships": [
            {"type": "hasMany", "model": "TaskItem", "name": "items", "options": {"foreign_key": "task_id"}},
        ],
        "class_methods": {
            "reverse_name": lambda args, context: {"id": 1, "name": f"reverseName{args['amount']}"},
        },
    }


@pytest.fixture
def task_item_definition() -> dict[str, Any]:
    """TaskItem entity belonging to a Task."""
    return {
        "name": "TaskItem",
        "define": {"title": "string"},
        "relationships": [
            {"type": "belongsTo", "model": "Task", "name": "task", "options": {"foreign_key": "task_id"}},
        ],
    }


@pytest.fixture
async def memory_graph(
    task_definition: dict[str, Any], task_item_definition: dict[str, Any]
) -> AsyncGenerator[DataGraph, None]:
    """Initialised Task/TaskItem graph on the in-memory adapter."""
    graph = DataGraph()
    graph.register_adapter(MemoryAdapter())
    await graph.add_definition(task_definition)
    await graph.add_definition(task_item_definition)
    await graph.initialise()
    yield graph
    await graph.close()


@pytest.fixture
async def sqlite_graph(
    task_definition: dict[str, Any], task_item_definition: dict[str, Any]
) -> AsyncGenerator[DataGraph, None]:
    """Initialised Task/TaskItem graph on in-memory SQLite."""
    graph = DataGraph()
    graph.register_adapter(SQLAlchemyAdapter("sqlite:///:memory:"))
    await graph.add_definition(task_definition)
    await graph.add_definition(task_item_definition)
    await graph.initialise()
    yield graph
    await graph.close()


@pytest.fixture(params=["memory", "sqlite"])
async def graph(
    request: pytest.FixtureRequest,
    task_definition: dict[str, Any],
    task_item_definition: dict[str, Any],
) -> AsyncGenerator[DataGraph, None]:
    """The Task/TaskItem graph on each reference adapter."""
    adapter = MemoryAdapter() if request.param == "memory" else SQLAlchemyAdapter("sqlite:///:memory:")
    graph = DataGraph()
    graph.register_adapter(adapter)
    await graph.add_definition(task_definition)
    await graph.add_definition(task_item_definition)
    await graph.initialise()
    yield graph
    await graph.close()
