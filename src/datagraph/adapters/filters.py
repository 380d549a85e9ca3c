"""Where-filter language shared by the reference adapters.

A filter is a mapping of field name to either a plain value (equality) or an
operator mapping, plus the logical keys ``and``, ``or`` and ``not``::

    {"title": "a", "priority": {"gte": 2}, "or": [{"done": True}, {"done": None}]}

Custom ``where_operators`` from an entity definition expand into fragments of
the same language before validation.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from typing import Any

from datagraph.core.types import FieldSpec, FieldType
from datagraph.core.waterfall import maybe_await
from datagraph.exceptions import FilterError

OPERATORS = ("eq", "ne", "gt", "gte", "lt", "lte", "in", "not_in", "like", "is_null")
LOGICAL = ("and", "or", "not")


async def expand_where(
    where: Mapping[str, Any] | None,
    where_operators: Mapping[str, Callable[..., Any]] | None = None,
) -> dict[str, Any]:
    """Expand custom operators and return a plain filter dict."""
    if not where:
        return {}
    operators = where_operators or {}
    result: dict[str, Any] = {}
    fragments: list[dict[str, Any]] = []
    for key, value in where.items():
        if key in ("and", "or"):
            result[key] = [await expand_where(item, operators) for item in value or []]
        elif key == "not":
            result[key] = await expand_where(value, operators)
        elif key in operators:
            fragment = await maybe_await(operators[key](value))
            if fragment:
                fragments.append(await expand_where(fragment, operators))
        else:
            result[key] = value
    if fragments:
        result["and"] = [*result.get("and", []), *fragments]
    return result


def validate_where(
    where: Mapping[str, Any], fields: Mapping[str, FieldSpec], entity_name: str
) -> None:
    """Raise FilterError for unknown fields or operators."""
    for key, value in where.items():
        if key in ("and", "or"):
            if not isinstance(value, list):
                raise FilterError(f"'{key}' expects a list of filters", entity_name)
            for item in value:
                validate_where(item, fields, entity_name)
        elif key == "not":
            validate_where(value, fields, entity_name)
        elif key not in fields:
            raise FilterError(
                f"Unknown field '{key}' in filter for '{entity_name}'. "
                f"Available fields: {', '.join(fields)}",
                entity_name,
            )
        elif isinstance(value, Mapping):
            unknown = [op for op in value if op not in OPERATORS]
            if unknown:
                raise FilterError(
                    f"Unknown operator(s) {', '.join(unknown)} on '{entity_name}.{key}'. "
                    f"Valid operators: {', '.join(OPERATORS)}",
                    entity_name,
                )


def coerce_value(field_type: str, value: Any) -> Any:
    """Coerce decoded ids and other string input to the field's storage type."""
    if not isinstance(value, str):
        return value
    try:
        if field_type == FieldType.INT:
            return int(value)
        if field_type == FieldType.FLOAT:
            return float(value)
    except ValueError:
        return value
    return value


def coerce_condition(field_type: str, condition: Any) -> Any:
    """Coerce every operand in a field condition."""
    if isinstance(condition, Mapping):
        return {op: coerce_condition(field_type, operand) for op, operand in condition.items()}
    if isinstance(condition, (list, tuple)):
        return [coerce_value(field_type, v) for v in condition]
    return coerce_value(field_type, condition)


def like_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a SQL LIKE pattern into a case-insensitive regex."""
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("^" + "".join(parts) + "$", re.IGNORECASE | re.DOTALL)


def _compare(op: str, actual: Any, operand: Any) -> bool:
    if op == "eq":
        return actual == operand
    if op == "ne":
        return actual != operand
    if op == "in":
        return actual in operand
    if op == "not_in":
        return actual not in operand
    if op == "is_null":
        return (actual is None) == bool(operand)
    if op == "like":
        return actual is not None and bool(like_to_regex(operand).match(str(actual)))
    if actual is None or operand is None:
        return False
    if op == "gt":
        return actual > operand
    if op == "gte":
        return actual >= operand
    if op == "lt":
        return actual < operand
    if op == "lte":
        return actual <= operand
    raise FilterError(f"Unknown operator '{op}'")


def match_where(
    values: Mapping[str, Any], where: Mapping[str, Any], fields: Mapping[str, FieldSpec]
) -> bool:
    """Evaluate a filter against a value mapping."""
    for key, condition in where.items():
        if key == "and":
            if not all(match_where(values, item, fields) for item in condition):
                return False
        elif key == "or":
            if condition and not any(match_where(values, item, fields) for item in condition):
                return False
        elif key == "not":
            if match_where(values, condition, fields):
                return False
        else:
            condition = coerce_condition(fields[key].type, condition)
            actual = values.get(key)
            if isinstance(condition, Mapping):
                if not all(_compare(op, actual, operand) for op, operand in condition.items()):
                    return False
            elif actual != condition:
                return False
    return True


def merge_where(*filters: Mapping[str, Any] | None) -> dict[str, Any]:
    """AND several filters together."""
    present = [dict(f) for f in filters if f]
    if not present:
        return {}
    if len(present) == 1:
        return present[0]
    return {"and": present}
