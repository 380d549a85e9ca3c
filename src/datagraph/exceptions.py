"""Custom exceptions for datagraph.

Errors carry actionable messages plus a structured ``context`` dict:
- Configuration errors are raised while registering entities or building the
  relationship graph, and mean the graph must not be served.
- Request errors (malformed identifiers, bad filters) fail a single call.
"""

from __future__ import annotations

from typing import Any


class DataGraphError(Exception):
    """Base exception for all datagraph errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Return error as JSON-serializable dict."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class ConnectionError(DataGraphError):
    """Failed to connect to the database."""

    pass


# === Configuration errors ===


class ConfigurationError(DataGraphError):
    """The entity/relationship graph is misconfigured."""

    pass


class EntityAlreadyExistsError(ConfigurationError):
    """An entity with the same name was already registered."""

    def __init__(self, entity_name: str) -> None:
        message = (
            f"Entity '{entity_name}' has already been added. "
            "Entity names must be unique across all adapters."
        )
        super().__init__(message, {"entity_name": entity_name})
        self.entity_name = entity_name


class AdapterAlreadyExistsError(ConfigurationError):
    """An adapter name is already bound."""

    def __init__(self, adapter_name: str) -> None:
        message = (
            f"Adapter '{adapter_name}' is already registered. "
            "Register the adapter under a different name."
        )
        super().__init__(message, {"adapter_name": adapter_name})
        self.adapter_name = adapter_name


class AdapterNotFoundError(ConfigurationError):
    """No adapter is bound to the requested name."""

    def __init__(self, adapter_name: str | None, available_adapters: list[str] | None = None) -> None:
        available = available_adapters or []
        if available:
            message = (
                f"Adapter '{adapter_name}' not found. "
                f"Available adapters: {', '.join(available)}"
            )
        else:
            message = "No adapter registered. Call register_adapter() before adding definitions."
        super().__init__(
            message, {"adapter_name": adapter_name, "available_adapters": available}
        )
        self.adapter_name = adapter_name
        self.available_adapters = available


class RelationshipAlreadyExistsError(ConfigurationError):
    """Relationship name is declared twice on the same source entity."""

    def __init__(self, relationship_name: str, entity_name: str) -> None:
        message = (
            f"Relationship '{relationship_name}' already exists on '{entity_name}'. "
            "Relationship names must be unique per entity."
        )
        super().__init__(
            message, {"relationship_name": relationship_name, "entity_name": entity_name}
        )
        self.relationship_name = relationship_name
        self.entity_name = entity_name


class MissingForeignKeyError(ConfigurationError):
    """A cross-adapter relationship was declared without a foreign key."""

    def __init__(
        self,
        entity_name: str,
        relationship_name: str,
        relationship_type: str,
        target_entity: str,
    ) -> None:
        message = (
            f"Cross adapter relationship '{entity_name}.{relationship_name}' "
            f"({relationship_type} {target_entity}) must define options.foreign_key. "
            "Keys cannot be inferred across adapters."
        )
        super().__init__(
            message,
            {
                "entity_name": entity_name,
                "relationship_name": relationship_name,
                "relationship_type": relationship_type,
                "target_entity": target_entity,
            },
        )
        self.entity_name = entity_name
        self.relationship_name = relationship_name
        self.relationship_type = relationship_type
        self.target_entity = target_entity


class UndeclaredForeignKeyError(ConfigurationError):
    """A cross-adapter foreign key is not a declared field of the entity holding it."""

    def __init__(self, entity_name: str, relationship_name: str, foreign_key: str, holder: str) -> None:
        message = (
            f"Cross adapter relationship '{entity_name}.{relationship_name}' uses foreign key "
            f"'{foreign_key}', but '{holder}' does not declare it. "
            f"Add '{foreign_key}' to the fields of '{holder}'."
        )
        super().__init__(
            message,
            {
                "entity_name": entity_name,
                "relationship_name": relationship_name,
                "foreign_key": foreign_key,
                "holder": holder,
            },
        )
        self.entity_name = entity_name
        self.relationship_name = relationship_name
        self.foreign_key = foreign_key
        self.holder = holder


class InvalidRelationshipTypeError(ConfigurationError):
    """Relationship type is unknown or unsupported for the adapter pair."""

    VALID_TYPES = ["hasMany", "belongsToMany", "hasOne", "belongsTo"]

    def __init__(self, relationship_type: str, reason: str | None = None) -> None:
        if reason:
            message = f"Relationship type '{relationship_type}' is not supported: {reason}"
        else:
            message = (
                f"Unknown relationship type '{relationship_type}'. "
                f"Valid types: {', '.join(self.VALID_TYPES)}"
            )
        super().__init__(
            message,
            {
                "relationship_type": relationship_type,
                "valid_types": self.VALID_TYPES,
                "reason": reason,
            },
        )
        self.relationship_type = relationship_type
        self.reason = reason


class InvalidHookError(ConfigurationError):
    """Hook name is not part of the lifecycle vocabulary."""

    def __init__(self, hook_name: str, valid_hooks: list[str]) -> None:
        message = f"Unknown hook '{hook_name}'. Valid hooks: {', '.join(valid_hooks)}"
        super().__init__(message, {"hook_name": hook_name, "valid_hooks": valid_hooks})
        self.hook_name = hook_name
        self.valid_hooks = valid_hooks


class RegistryLockedError(ConfigurationError):
    """The relationship graph was already initialised."""

    def __init__(self, operation: str) -> None:
        message = (
            f"Cannot {operation}: the graph is already initialised. "
            "Register adapters and definitions before calling initialise()."
        )
        super().__init__(message, {"operation": operation})
        self.operation = operation


# === Lookup errors ===


class EntityNotFoundError(DataGraphError):
    """Entity is not registered."""

    def __init__(self, entity_name: str, available_entities: list[str] | None = None) -> None:
        available = available_entities or []
        if available:
            message = (
                f"Entity '{entity_name}' not found. Available entities: {', '.join(available)}"
            )
        else:
            message = f"Entity '{entity_name}' not found. No entities registered yet."

        super().__init__(message, {"entity_name": entity_name, "available_entities": available})
        self.entity_name = entity_name
        self.available_entities = available


class RelationshipNotFoundError(DataGraphError):
    """Relationship does not exist on entity."""

    def __init__(
        self,
        relationship_name: str,
        entity_name: str,
        available_relationships: list[str] | None = None,
    ) -> None:
        available = available_relationships or []
        if available:
            message = (
                f"Relationship '{relationship_name}' not found on '{entity_name}'. "
                f"Available relationships: {', '.join(available)}"
            )
        else:
            message = (
                f"Relationship '{relationship_name}' not found on '{entity_name}'. "
                "No relationships defined."
            )

        super().__init__(
            message,
            {
                "relationship_name": relationship_name,
                "entity_name": entity_name,
                "available_relationships": available,
            },
        )
        self.relationship_name = relationship_name
        self.entity_name = entity_name
        self.available_relationships = available


class ClassMethodNotFoundError(DataGraphError):
    """Class method is not exposed on the entity model."""

    def __init__(self, method_name: str, entity_name: str) -> None:
        message = (
            f"Class method '{method_name}' not found on '{entity_name}'. "
            "Declare it under class_methods in the entity definition."
        )
        super().__init__(message, {"method_name": method_name, "entity_name": entity_name})
        self.method_name = method_name
        self.entity_name = entity_name


class RecordNotFoundError(DataGraphError):
    """Record with given key does not exist."""

    def __init__(self, record_id: Any, entity_name: str) -> None:
        message = f"Record '{record_id}' not found in '{entity_name}'."
        super().__init__(message, {"record_id": record_id, "entity_name": entity_name})
        self.record_id = record_id
        self.entity_name = entity_name


# === Request errors ===


class ValidationError(DataGraphError):
    """Data validation failed."""

    def __init__(self, message: str, field_errors: dict[str, str] | None = None) -> None:
        super().__init__(message, {"field_errors": field_errors or {}})
        self.field_errors = field_errors or {}


class InvalidGlobalIdError(DataGraphError):
    """An external identifier could not be decoded."""

    def __init__(self, value: Any, reason: str) -> None:
        message = f"Invalid global id {value!r}: {reason}"
        super().__init__(message, {"value": repr(value), "reason": reason})
        self.value = value
        self.reason = reason


class FilterError(DataGraphError):
    """A where filter references unknown fields or operators."""

    def __init__(self, message: str, entity_name: str | None = None) -> None:
        super().__init__(message, {"entity_name": entity_name})
        self.entity_name = entity_name
