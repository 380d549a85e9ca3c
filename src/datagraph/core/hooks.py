"""Global and per-entity adapter hooks.

Every entity gets a hook chain: the global forwarding set first, then the
entity's own ``hooks``. The chain is flattened into a hook map (one async
callable per hook name) that adapters call around storage writes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from datagraph.adapters.contract import HookMap
from datagraph.core.types import EntityDefinition, HookName
from datagraph.core.waterfall import maybe_await, waterfall
from datagraph.exceptions import InvalidHookError

logger = logging.getLogger(__name__)

HookSet = dict[str, Callable[..., Any]]


async def run_hook(hook: Callable[..., Any], instance: Any, args_context: Any) -> Any:
    """Run one hook; a ``None`` result keeps the current instance."""
    result = await maybe_await(hook(instance, args_context))
    return instance if result is None else result


class HookPipeline:
    """Global hooks, kept per hook name and run before entity hooks."""

    def __init__(self) -> None:
        self._hooks: dict[str, list[Callable[..., Any]]] = {name: [] for name in HookName.values()}

    def add(self, hook_name: str, hook: Callable[..., Any]) -> None:
        """Append ``hook`` to the global chain for ``hook_name``.

        Raises:
            InvalidHookError: If ``hook_name`` is not a lifecycle hook
        """
        if hook_name not in self._hooks:
            raise InvalidHookError(str(hook_name), HookName.values())
        self._hooks[hook_name].append(hook)
        logger.debug(f"Added global hook {hook_name} ({len(self._hooks[hook_name])} total)")

    def get(self, hook_name: str) -> list[Callable[..., Any]]:
        return list(self._hooks.get(hook_name, []))

    async def run(self, hook_name: str, instance: Any, args_context: Any = None) -> Any:
        # read at call time so hooks added after registration still apply
        return await waterfall(
            self._hooks[hook_name],
            lambda hook, current: run_hook(hook, current, args_context),
            instance,
        )

    def forwarding_set(self) -> HookSet:
        """One hook per name that delegates to the live global chain."""

        def forward(hook_name: str) -> Callable[..., Any]:
            async def hook(instance: Any, args_context: Any = None) -> Any:
                return await self.run(hook_name, instance, args_context)

            return hook

        return {name: forward(name) for name in HookName.values()}

    def build_chain(self, definition: EntityDefinition) -> list[HookSet]:
        return [self.forwarding_set(), dict(definition.hooks)]

    def build_hook_map(self, chain: list[HookSet]) -> HookMap:
        """Flatten a hook chain into one async callable per hook name."""

        def compose(hook_name: str) -> Callable[..., Any]:
            hooks = [hook_set[hook_name] for hook_set in chain if hook_name in hook_set]

            async def hook(instance: Any, args_context: Any = None) -> Any:
                return await waterfall(
                    hooks,
                    lambda fn, current: run_hook(fn, current, args_context),
                    instance,
                )

            return hook

        names = {name for hook_set in chain for name in hook_set}
        return {name: compose(name) for name in HookName.values() if name in names}
