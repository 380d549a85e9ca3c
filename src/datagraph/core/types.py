"""Core types and specifications for datagraph.

Definitions are pydantic models so callers can pass plain dicts; lifecycle
events and relationship edges are lightweight dataclasses created at runtime.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, field_validator

from datagraph.core.compat import StrEnum

if TYPE_CHECKING:
    from datagraph.adapters.contract import Adapter, Association


class FieldType(StrEnum):
    """Supported field types."""

    STRING = "string"
    TEXT = "text"
    INT = "int"
    FLOAT = "float"
    BOOL = "bool"
    DATETIME = "datetime"
    JSON = "json"
    UUID = "uuid"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid field type values."""
        return [t.value for t in cls]


class RelationshipType(StrEnum):
    """Relationship kinds between entities."""

    HAS_MANY = "hasMany"  # e.g., Task -> TaskItems
    BELONGS_TO_MANY = "belongsToMany"  # e.g., Task <-> Tag
    HAS_ONE = "hasOne"  # e.g., User -> Profile
    BELONGS_TO = "belongsTo"  # e.g., TaskItem -> Task

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid relationship type values."""
        return [t.value for t in cls]

    @property
    def is_many(self) -> bool:
        return self in (RelationshipType.HAS_MANY, RelationshipType.BELONGS_TO_MANY)


class HookName(StrEnum):
    """Adapter lifecycle hooks, run around storage writes."""

    BEFORE_VALIDATE = "before_validate"
    AFTER_VALIDATE = "after_validate"
    VALIDATION_FAILED = "validation_failed"
    BEFORE_CREATE = "before_create"
    BEFORE_DESTROY = "before_destroy"
    BEFORE_UPDATE = "before_update"
    BEFORE_SAVE = "before_save"
    BEFORE_UPSERT = "before_upsert"
    AFTER_CREATE = "after_create"
    AFTER_DESTROY = "after_destroy"
    AFTER_UPDATE = "after_update"
    AFTER_SAVE = "after_save"
    AFTER_UPSERT = "after_upsert"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid hook names."""
        return [h.value for h in cls]


class Events(StrEnum):
    """Operation type passed to definition ``before``/``after`` transforms."""

    QUERY = "query"
    MUTATION_CREATE = "mutation_create"
    MUTATION_UPDATE = "mutation_update"
    MUTATION_DELETE = "mutation_delete"


class FieldSpec(BaseModel):
    """Specification for a field definition."""

    type: FieldType = Field(default=FieldType.STRING, description="Field data type")
    allow_null: bool = Field(default=True, description="Whether the field accepts null")
    primary_key: bool = Field(default=False, description="Whether this is the primary key")
    foreign_key: bool = Field(default=False, description="Whether this field references another entity")
    unique: bool = Field(default=False, description="Whether field values must be unique")
    default: Any = Field(default=None, description="Default value for the field")
    description: str | None = Field(default=None, description="Human-readable field description")

    model_config = {"use_enum_values": True}

    @property
    def is_global_key(self) -> bool:
        """Whether values of this field are exposed as opaque global ids."""
        return self.primary_key or self.foreign_key


class FieldOverride(BaseModel):
    """Custom input/output mapping for a single field.

    ``input(value, args, context, info, model)`` runs before the value is
    persisted; ``model`` is ``None`` on create and the matched instance on
    update. ``output`` is consumed by the schema layer.
    """

    input: Callable[..., Any] | None = None
    output: Callable[..., Any] | None = None
    type: Any = None


class RelationshipOptions(BaseModel):
    """Key configuration for a relationship."""

    foreign_key: str | None = None
    source_key: str | None = None
    other_key: str | None = None
    through: str | None = None


class RelationshipSpec(BaseModel):
    """Declared association from the owning entity to ``model``.

    ``type`` stays a plain string so unknown kinds surface when the graph is
    initialised rather than at definition time.
    """

    type: str = Field(..., description="hasMany, belongsToMany, hasOne or belongsTo")
    model: str = Field(..., description="Target entity name")
    name: str = Field(..., description="Relationship name on the source entity")
    options: RelationshipOptions = Field(default_factory=RelationshipOptions)


class EntityDefinition(BaseModel):
    """Declarative description of an entity. Immutable once built."""

    name: str = Field(..., description="Entity name (PascalCase recommended)")
    define: dict[str, FieldSpec] = Field(default_factory=dict)
    relationships: list[RelationshipSpec] = Field(default_factory=list)
    before: Callable[..., Any] | None = None
    after: Callable[..., Any] | None = None
    override: dict[str, FieldOverride] = Field(default_factory=dict)
    where_operators: dict[str, Callable[..., Any]] | None = None
    hooks: dict[str, Callable[..., Any]] = Field(default_factory=dict)
    class_methods: dict[str, Callable[..., Any]] = Field(default_factory=dict)
    datasource: str | None = None
    description: str | None = None

    model_config = {"frozen": True}

    @field_validator("define", mode="before")
    @classmethod
    def _expand_field_shorthand(cls, value: Any) -> Any:
        # {"title": "string"} is shorthand for {"title": {"type": "string"}}
        if isinstance(value, dict):
            return {
                name: {"type": spec} if isinstance(spec, str) else spec
                for name, spec in value.items()
            }
        return value

    @field_validator("hooks")
    @classmethod
    def _check_hook_names(cls, value: dict[str, Callable[..., Any]]) -> dict[str, Callable[..., Any]]:
        unknown = [name for name in value if name not in HookName.values()]
        if unknown:
            raise ValueError(f"Unknown hooks {unknown}. Valid hooks: {HookName.values()}")
        return value


@dataclass
class LifecycleEvent:
    """Argument passed to an entity's ``before``/``after`` transform."""

    type: Events
    definition: EntityDefinition
    args: dict[str, Any]
    context: Any = None
    info: Any = None
    params: Any = None
    result: Any = None
    model: Any = None


@dataclass
class RelationshipEdge:
    """A resolved relationship between two registered entities."""

    source: str
    target: str
    name: str
    type: RelationshipType
    source_adapter: Adapter
    target_adapter: Adapter
    options: RelationshipOptions
    internal: bool = False
    foreign_key: str | None = None
    source_key: str | None = None
    accessor_name: str | None = None
    association: Association | None = field(default=None, repr=False)


@dataclass
class ListResult:
    """Page of instances plus the total matching count."""

    total: int
    models: list[Any] = field(default_factory=list)
