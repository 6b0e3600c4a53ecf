"""
Schema definitions for resourcekit.

A resource schema is declared once with the builders below and frozen into a
ResourceSchema at registration time:

    fields = [
        Field.scalar("id"),
        Field.scalar("name"),
        Field.timestamp("created_at"),
        Field.computed("display_name", lambda user: f"{user.first} {user.last}"),
        Relation.to("organization", OrganizationResource),
        Relation.to("organization", accessor="name", alias="organization_name"),
        Relation.to("posts", "posts", many=True),
        Count.of("posts"),
        Sum.of("orders", "total"),
        Average.of("orders", "total").default(),
    ]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from operator import attrgetter
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from .errors import SchemaConfigError
from .utils import to_pascal_case


class FieldKind(str, Enum):
    """Kind of an exposable field."""
    SCALAR = "scalar"
    TIMESTAMP = "timestamp"
    COMPUTED = "computed"
    RELATION = "relation"
    COUNT = "count"
    SUM = "sum"
    AVERAGE = "average"

    @property
    def is_aggregate(self) -> bool:
        return self in AGGREGATE_KINDS


AGGREGATE_KINDS = frozenset({FieldKind.COUNT, FieldKind.SUM, FieldKind.AVERAGE})


@dataclass(frozen=True)
class FieldSpec:
    """
    One compiled schema entry.

    source is the underlying attribute (column) for scalar fields, and the
    relation name for relation and aggregate fields.
    """
    name: str
    kind: FieldKind
    source: Optional[str] = None
    compute: Optional[Callable[[Any], Any]] = None
    target: Optional[str] = None  # related resource type
    accessor: Optional[str] = None  # single sub-field passed through from the relation
    fields: Optional[tuple[str, ...]] = None  # pinned child fields for nested planning
    column: Optional[str] = None  # aggregated column (sum/average)
    default: bool = False  # aggregate included when no explicit selection
    constraint: Optional[str] = None  # named constraint from the registry
    extras: tuple[str, ...] = ()
    many: bool = False

    @property
    def is_aggregate(self) -> bool:
        return self.kind.is_aggregate

    @property
    def is_relation(self) -> bool:
        return self.kind is FieldKind.RELATION

    @property
    def embeds_resource(self) -> bool:
        """True when the relation embeds a full related resource."""
        return self.is_relation and self.target is not None and self.accessor is None


# =============================================================================
# Builders
# =============================================================================


TargetResolver = Callable[[Any], str]


class BaseDefinition:
    """Base class for schema builders."""

    def __init__(self, name: str, alias: Optional[str] = None):
        self._name = name
        self._alias = alias
        self._extras: list[str] = []

    @property
    def name(self) -> str:
        """Key the field is exposed under."""
        return self._alias or self._name

    def alias(self, alias: str):
        """Set or change the exposed key."""
        self._alias = alias
        return self

    def extras(self, *paths: str):
        """Declare additional eager-load paths this field needs."""
        for path in paths:
            if path and path not in self._extras:
                self._extras.append(path)
        return self

    def build(self, resolve_target: TargetResolver) -> FieldSpec:
        raise NotImplementedError


class Field(BaseDefinition):
    """Scalar, timestamp and computed fields."""

    def __init__(
        self,
        name: str,
        kind: FieldKind,
        alias: Optional[str] = None,
        compute: Optional[Callable[[Any], Any]] = None,
    ):
        super().__init__(name, alias)
        self._kind = kind
        self._compute = compute

    @classmethod
    def scalar(cls, field: str, alias: Optional[str] = None) -> "Field":
        return cls(field, FieldKind.SCALAR, alias)

    @classmethod
    def timestamp(cls, field: str, alias: Optional[str] = None) -> "Field":
        return cls(field, FieldKind.TIMESTAMP, alias)

    @classmethod
    def computed(cls, name: str, compute: Union[Callable[[Any], Any], str]) -> "Field":
        """
        Define a computed field.

        compute is a pure function of the record, or a dotted attribute path
        such as "profile.display_name". It must not trigger extra queries;
        declare the relations it reads with .extras().
        """
        if isinstance(compute, str):
            compute = attrgetter(compute)
        return cls(name, FieldKind.COMPUTED, compute=compute)

    def build(self, resolve_target: TargetResolver) -> FieldSpec:
        return FieldSpec(
            name=self.name,
            kind=self._kind,
            source=None if self._kind is FieldKind.COMPUTED else self._name,
            compute=self._compute,
            extras=tuple(self._extras),
        )


class Relation(BaseDefinition):
    """
    Relation projection (to-one or to-many).

    Examples:
        Relation.to("organization", OrganizationResource)
        Relation.to("organization", "organizations")
        Relation.to("organization", accessor="name", alias="organization_name")
    """

    def __init__(
        self,
        name: str,
        resource: Any = None,
        accessor: Optional[str] = None,
        alias: Optional[str] = None,
        many: bool = False,
    ):
        super().__init__(name, alias)
        self._resource = resource
        self._accessor = accessor
        self._many = many
        self._fields: Optional[tuple[str, ...]] = None
        self._constraint: Optional[str] = None

    @classmethod
    def to(
        cls,
        name: str,
        resource: Any = None,
        *,
        accessor: Optional[str] = None,
        alias: Optional[str] = None,
        many: bool = False,
    ) -> "Relation":
        return cls(name, resource, accessor, alias, many)

    def fields(self, fields: Iterable[str]) -> "Relation":
        """Pin the child fields considered when planning nested eager loads."""
        pinned: list[str] = []
        for name in fields:
            if name and name not in pinned:
                pinned.append(name)
        self._fields = tuple(pinned)
        return self

    def constrain(self, constraint: str) -> "Relation":
        """Attach a named constraint registered on the SchemaRegistry."""
        self._constraint = constraint
        return self

    def build(self, resolve_target: TargetResolver) -> FieldSpec:
        return FieldSpec(
            name=self.name,
            kind=FieldKind.RELATION,
            source=self._name,
            target=resolve_target(self._resource) if self._resource is not None else None,
            accessor=self._accessor,
            fields=self._fields,
            constraint=self._constraint,
            extras=tuple(self._extras),
            many=self._many,
        )


class _Aggregate(BaseDefinition):
    kind: FieldKind

    def __init__(self, relation: str, column: Optional[str] = None, alias: Optional[str] = None):
        super().__init__(relation, alias)
        self._column = column
        self._default = False
        self._constraint: Optional[str] = None

    @property
    def name(self) -> str:
        if self._alias:
            return self._alias
        suffix = to_pascal_case(self._column) if self._column else ""
        return f"{self._name}{self.kind.value.capitalize()}{suffix}"

    def default(self):
        """Include this aggregate when aggregates load without an explicit selection."""
        self._default = True
        return self

    def constrain(self, constraint: str):
        """Attach a named constraint registered on the SchemaRegistry."""
        self._constraint = constraint
        return self

    def build(self, resolve_target: TargetResolver) -> FieldSpec:
        return FieldSpec(
            name=self.name,
            kind=self.kind,
            source=self._name,
            column=self._column,
            default=self._default,
            constraint=self._constraint,
            extras=tuple(self._extras),
        )


class Count(_Aggregate):
    """Count of related records, exposed as <relation>Count by default."""

    kind = FieldKind.COUNT

    @classmethod
    def of(cls, relation: str, alias: Optional[str] = None) -> "Count":
        return cls(relation, alias=alias)


class Sum(_Aggregate):
    """Sum of a related column, exposed as <relation>Sum<Column> by default."""

    kind = FieldKind.SUM

    @classmethod
    def of(cls, relation: str, column: str, alias: Optional[str] = None) -> "Sum":
        return cls(relation, column, alias)


class Average(_Aggregate):
    """Average of a related column, exposed as <relation>Average<Column> by default."""

    kind = FieldKind.AVERAGE

    @classmethod
    def of(cls, relation: str, column: str, alias: Optional[str] = None) -> "Average":
        return cls(relation, column, alias)


# =============================================================================
# Compiled schema
# =============================================================================


@dataclass(frozen=True)
class ResourceSchema:
    """
    Immutable schema of one resource type.

    fields keeps declaration order. all_fields is every non-aggregate field;
    aggregate fields are opt-in only.
    """
    resource_type: str
    fields: Mapping[str, FieldSpec]
    default_fields: tuple[str, ...]
    fixed_fields: tuple[str, ...] = ()
    model: Any = None
    all_fields: tuple[str, ...] = field(init=False)
    aggregate_fields: tuple[str, ...] = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))
        object.__setattr__(
            self, "all_fields",
            tuple(name for name, spec in self.fields.items() if not spec.is_aggregate),
        )
        object.__setattr__(
            self, "aggregate_fields",
            tuple(name for name, spec in self.fields.items() if spec.is_aggregate),
        )

    @classmethod
    def build(
        cls,
        resource_type: str,
        specs: Iterable[FieldSpec],
        default: Optional[Iterable[str]] = None,
        fixed: Iterable[str] = (),
        model: Any = None,
    ) -> "ResourceSchema":
        """Build a schema, rejecting duplicate names and invalid defaults."""
        errors: list[str] = []
        fields: dict[str, FieldSpec] = {}

        for spec in specs:
            if spec.name in fields:
                errors.append(f"{resource_type}: duplicate field '{spec.name}'")
                continue
            fields[spec.name] = spec

        if default is None:
            default_fields = tuple(name for name, spec in fields.items() if not spec.is_aggregate)
        else:
            default_fields = tuple(dict.fromkeys(default))
            for name in default_fields:
                if name not in fields:
                    errors.append(f"{resource_type}: default field '{name}' not declared")
                elif fields[name].is_aggregate:
                    errors.append(f"{resource_type}: aggregate '{name}' cannot be a default field")

        if errors:
            raise SchemaConfigError(errors)

        return cls(
            resource_type=resource_type,
            fields=fields,
            default_fields=default_fields,
            fixed_fields=tuple(dict.fromkeys(fixed)),
            model=model,
        )

    def get(self, name: str) -> Optional[FieldSpec]:
        return self.fields.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self.fields

    def field_names(self) -> tuple[str, ...]:
        return tuple(self.fields)

    def relations(self) -> list[FieldSpec]:
        return [spec for spec in self.fields.values() if spec.is_relation]

    def aggregates(self) -> list[FieldSpec]:
        return [spec for spec in self.fields.values() if spec.is_aggregate]

    def find_aggregate(self, kind: FieldKind, relation: str, column: Optional[str] = None) -> Optional[FieldSpec]:
        """Find the aggregate declared for (kind, relation, column)."""
        for spec in self.aggregates():
            if spec.kind is kind and spec.source == relation and spec.column == column:
                return spec
        return None
