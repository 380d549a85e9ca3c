"""Opaque global identifiers.

A global id is the base64 encoding of ``"<TypeName>:<raw id>"``, the same
layout Relay servers use, so ids issued elsewhere decode here.
"""

from __future__ import annotations

import base64
import binascii
from typing import Any, NamedTuple

from datagraph.exceptions import InvalidGlobalIdError


class ResolvedGlobalId(NamedTuple):
    type: str
    id: str


def to_global_id(type_name: str, raw_id: Any) -> str:
    """Encode an entity type and raw key into an opaque id."""
    if not type_name or ":" in type_name:
        raise ValueError(f"Invalid type name for global id: {type_name!r}")
    return base64.b64encode(f"{type_name}:{raw_id}".encode()).decode("ascii")


def from_global_id(global_id: Any) -> ResolvedGlobalId:
    """Decode an opaque id into its type name and raw key.

    Raises:
        InvalidGlobalIdError: If the value is not a well-formed global id.
    """
    if not isinstance(global_id, str) or not global_id:
        raise InvalidGlobalIdError(global_id, "expected a non-empty string")
    try:
        decoded = base64.b64decode(global_id, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise InvalidGlobalIdError(global_id, "not valid base64") from e

    type_name, sep, raw_id = decoded.partition(":")
    if not sep or not type_name or not raw_id:
        raise InvalidGlobalIdError(global_id, "expected '<Type>:<id>' payload")
    return ResolvedGlobalId(type_name, raw_id)


def decode_id(global_id: Any) -> str:
    """Return only the raw key of a global id."""
    return from_global_id(global_id).id
