"""
Declarative resource classes.

Models stay pure ORM. What a client can see lives here.

Usage:
    class UserResource(ApiResource):
        resource_type = "users"
        model = User

        fields = [
            Field.scalar("id"),
            Field.scalar("name"),
            Field.scalar("status"),
            Field.timestamp("created_at"),
            Relation.to("organization", "organizations"),
            Count.of("posts").default(),
        ]
        default = ["name", "status"]

    class TagResource(ApiResource):
        model = Tag
        # resource_type inferred: "tag"
        # fields auto-discovered from the model's columns
"""

from __future__ import annotations

from typing import Any, ClassVar, Optional

from sqlalchemy import inspect

from ..core.defs import BaseDefinition, Field, ResourceSchema, TargetResolver
from ..core.errors import ConfigurationError
from ..core.utils import to_snake_case

# Column types exposed as timestamps when fields are auto-discovered
TIMESTAMP_TYPES = {"datetime", "date", "time", "timestamp"}


def introspect_model_fields(model: Any, exclude: Optional[list[str]] = None) -> list[BaseDefinition]:
    """
    Auto-discover scalar fields from a SQLAlchemy model.

    Every mapped column becomes Field.scalar, or Field.timestamp for
    date/time columns. Relations are never discovered; declare them.
    """
    exclude = exclude or []
    mapper = inspect(model)

    result: list[BaseDefinition] = []
    for attr in mapper.column_attrs:
        if attr.key in exclude:
            continue
        type_name = attr.columns[0].type.__class__.__name__.lower()
        if type_name in TIMESTAMP_TYPES:
            result.append(Field.timestamp(attr.key))
        else:
            result.append(Field.scalar(attr.key))
    return result


class ApiResource:
    """
    Base class for API resources.

    Attributes:
        resource_type: Public type name (inferred from the class name if unset)
        model: ORM model the resource exposes
        fields: Field definitions (None = auto-discover from model)
        fields_exclude: Columns skipped by auto-discovery
        default: Fields returned when none are requested (None = all)
        fixed: Fields always returned in addition to the global fixed fields
    """

    resource_type: ClassVar[Optional[str]] = None
    model: ClassVar[Any] = None

    fields: ClassVar[Optional[list[BaseDefinition]]] = None
    fields_exclude: ClassVar[list[str]] = []
    default: ClassVar[Optional[list[str]]] = None
    fixed: ClassVar[list[str]] = []

    @classmethod
    def get_resource_type(cls) -> str:
        """Get resource type. Inferred from the class name if not specified."""
        if cls.resource_type:
            return cls.resource_type
        name = cls.__name__
        if name.endswith("Resource") and name != "Resource":
            name = name[: -len("Resource")]
        return to_snake_case(name)

    @classmethod
    def get_fields(cls) -> list[BaseDefinition]:
        """Get field definitions with auto-discovery."""
        if cls.fields is not None:
            return list(cls.fields)
        if cls.model is None:
            raise ConfigurationError(f"{cls.__name__} declares neither fields nor a model")
        return introspect_model_fields(cls.model, cls.fields_exclude)

    @classmethod
    def to_schema(cls, resolve_target: TargetResolver) -> ResourceSchema:
        """Freeze the declaration into a ResourceSchema."""
        return ResourceSchema.build(
            cls.get_resource_type(),
            [definition.build(resolve_target) for definition in cls.get_fields()],
            default=cls.default,
            fixed=cls.fixed,
            model=cls.model,
        )
