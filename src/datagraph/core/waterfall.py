"""Sequential asynchronous reduction."""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

T = TypeVar("T")
A = TypeVar("A")


async def maybe_await(value: Any) -> Any:
    """Await ``value`` if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


async def waterfall(
    items: Iterable[T],
    step: Callable[[T, A], Any],
    seed: A | None = None,
) -> A | None:
    """Apply ``step(item, acc)`` to every item in order and return the final acc.

    Each step is awaited before the next one starts, so side effects of step n
    are visible to step n+1. ``step`` may be a coroutine function or a plain
    callable.
    """
    acc = seed
    for item in items:
        acc = await maybe_await(step(item, acc))
    return acc
