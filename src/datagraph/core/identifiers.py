"""Rewrites opaque global ids into adapter keys throughout nested arguments."""

from __future__ import annotations

from collections.abc import Callable, Collection, Mapping
from functools import wraps
from typing import Any

from datagraph.core.global_id import decode_id


def _decode_value(value: Any, global_keys: Collection[str]) -> Any:
    """Decode everything stored under a global key."""
    if value is None:
        return None
    if callable(value):
        return _create_proxy(value, global_keys)
    if isinstance(value, Mapping):
        # operator map, e.g. {"in": [id1, id2]} or {"ne": id}
        return {op: _decode_value(operand, global_keys) for op, operand in value.items()}
    if isinstance(value, (list, tuple)):
        return [_decode_value(v, global_keys) for v in value]
    return decode_id(value)


def _create_proxy(func: Callable[..., Any], global_keys: Collection[str]) -> Callable[..., Any]:
    @wraps(func)
    def proxy(obj: Any, *args: Any, **kwargs: Any) -> Any:
        return func(replace_id_deep(obj, global_keys), *args, **kwargs)

    return proxy


def replace_id_deep(obj: Any, global_keys: Collection[str]) -> Any:
    """Return a copy of ``obj`` with values at ``global_keys`` decoded.

    Mappings are copied key by key, recursing into nested mappings and into
    mappings held in sequences. Values at a global key are decoded with
    :func:`decode_id`; a callable there is wrapped so its first argument is
    normalized when it is eventually invoked.

    Raises:
        InvalidGlobalIdError: If a value at a global key is malformed.
    """
    if isinstance(obj, Mapping):
        result: dict[str, Any] = {}
        for key, value in obj.items():
            if key in global_keys:
                result[key] = _decode_value(value, global_keys)
            else:
                result[key] = replace_id_deep(value, global_keys)
        return result
    if isinstance(obj, list):
        return [replace_id_deep(v, global_keys) for v in obj]
    if isinstance(obj, tuple):
        return tuple(replace_id_deep(v, global_keys) for v in obj)
    if callable(obj):
        return _create_proxy(obj, global_keys)
    return obj
