"""Name derivation for tables, keys and generated accessors."""

from __future__ import annotations

import re

import inflect

_inflect = inflect.engine()

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def snake_case(name: str) -> str:
    """``TaskItem`` -> ``task_item``."""
    return _CAMEL_BOUNDARY.sub("_", name).replace("-", "_").lower()


def pluralize(word: str) -> str:
    return _inflect.plural_noun(word) or word


def singularize(word: str) -> str:
    # singular_noun returns False when the word is already singular
    return _inflect.singular_noun(word) or word


def accessor_name(target: str, relationship_type: str) -> str:
    """Method name of a generated cross-adapter accessor.

    ``hasMany`` accessors are pluralized and ``belongsTo`` singularized, so a
    ``Task`` with many ``TaskItem`` gets ``get_task_items``.
    """
    if relationship_type == "hasMany":
        target = pluralize(target)
    elif relationship_type == "belongsTo":
        target = singularize(target)
    return f"get_{snake_case(target)}"
