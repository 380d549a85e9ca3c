"""Storage adapters for datagraph.

Two reference adapters ship with the package: an in-memory one and an async
SQLAlchemy one. Any class implementing :class:`Adapter` can be registered.

Example:
    >>> from datagraph.adapters import get_adapter
    >>>
    >>> memory = get_adapter("memory")
    >>> sql = get_adapter("sql", url="sqlite:///:memory:")
"""

from datagraph.adapters.contract import (
    Adapter,
    Association,
    FindOptions,
    ListQuery,
    Record,
    RelationshipAccessors,
)

__all__ = [
    "Adapter",
    "Association",
    "FindOptions",
    "ListQuery",
    "Record",
    "RelationshipAccessors",
    "get_adapter",
]


def get_adapter(adapter: str | Adapter = "memory", **kwargs: object) -> Adapter:
    """Get an adapter by name or return the adapter if already instantiated.

    Args:
        adapter: Adapter kind ("memory", "sql") or Adapter instance.
        **kwargs: Additional arguments passed to the adapter constructor.

    Returns:
        Adapter instance.

    Raises:
        ValueError: If the adapter kind is unknown.

    Example:
        >>> adapter = get_adapter("sql", url="sqlite:///app.db", name="main")
        >>> adapter = get_adapter(MyCustomAdapter())
    """
    if isinstance(adapter, Adapter):
        return adapter

    if adapter == "memory":
        from datagraph.adapters.memory import MemoryAdapter

        return MemoryAdapter(**kwargs)  # type: ignore[arg-type]
    elif adapter == "sql":
        from datagraph.adapters.sql import SQLAlchemyAdapter

        return SQLAlchemyAdapter(**kwargs)  # type: ignore[arg-type]
    else:
        raise ValueError(f"Unknown adapter: {adapter}. Available: memory, sql")
