"""CLI context management for graph targets and shared state."""

import inspect
import logging
import os
import sys
from dataclasses import dataclass, field

from datagraph import DataGraph
from datagraph.cli.parsing import load_target


def get_target(target: str | None) -> str | None:
    """Resolve the graph target from CLI arg or environment variable.

    Priority:
    1. Explicit target argument
    2. DATAGRAPH_TARGET environment variable
    """
    if target:
        return target
    return os.getenv("DATAGRAPH_TARGET") or None


def configure_logging(verbose: bool) -> None:
    """Send library logs to stderr; debug level when verbose."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
    )


@dataclass
class CLIContext:
    """Shared context for CLI commands.

    Manages the graph lifecycle and output preferences.
    """

    target: str | None
    json_output: bool
    verbose: bool = False
    _graph: DataGraph | None = field(default=None, init=False, repr=False)

    async def get_graph(self, target: str | None = None) -> DataGraph:
        """Load, build and initialise the target graph (lazy initialization).

        The target attribute may be a DataGraph or a zero-argument (async)
        factory returning one.

        Raises:
            ValueError: If no target is configured or it is not a graph
        """
        if self._graph is not None:
            return self._graph

        spec = target or self.target
        if not spec:
            raise ValueError("No target given. Pass TARGET or set DATAGRAPH_TARGET (module.path:attribute).")

        obj = load_target(spec)
        if not isinstance(obj, DataGraph) and callable(obj):
            obj = obj()
            if inspect.isawaitable(obj):
                obj = await obj
        if not isinstance(obj, DataGraph):
            raise ValueError(f"Target '{spec}' is not a DataGraph (got {type(obj).__name__})")

        if not obj.is_initialised:
            await obj.initialise()
        self._graph = obj
        return obj

    async def close(self) -> None:
        """Close the graph adapters if a graph was loaded."""
        if self._graph is not None:
            await self._graph.close()
            self._graph = None
