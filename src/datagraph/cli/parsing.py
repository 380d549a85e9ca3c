"""Input parsing utilities for CLI commands."""

import importlib
import sys
from pathlib import Path
from typing import Any


def parse_target(spec: str) -> tuple[str, str]:
    """Parse a target specification string.

    Format: module.path:attribute

    Examples:
        "app.models:graph" → ("app.models", "graph")
        "app.models:build_graph" → ("app.models", "build_graph")

    Args:
        spec: Target specification string

    Returns:
        Module path and attribute name

    Raises:
        ValueError: If spec format is invalid
    """
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Invalid target: '{spec}'. Expected format: module.path:attribute")
    return module_name, attr


def load_target(spec: str) -> Any:
    """Import the object named by ``module.path:attribute``.

    The current directory is put on ``sys.path`` first so project modules
    resolve the way they do for ``python -m``.

    Raises:
        ValueError: If the module or attribute cannot be found
    """
    module_name, attr = parse_target(spec)
    cwd = str(Path.cwd())
    if cwd not in sys.path:
        sys.path.insert(0, cwd)
    try:
        module = importlib.import_module(module_name)
    except ModuleNotFoundError as e:
        raise ValueError(f"Cannot import module '{module_name}': {e}") from e

    obj: Any = module
    for part in attr.split("."):
        if not hasattr(obj, part):
            raise ValueError(f"Module '{module_name}' has no attribute '{attr}'")
        obj = getattr(obj, part)
    return obj
