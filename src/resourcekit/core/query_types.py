"""
Pydantic models for parsed API query parameters.

A QuerySpec is the immutable result of parsing one request's query string.
Selection parameters are kept per resource type; values given without a
resource scope are stored under PRIMARY and apply to the request's primary
resource.
"""

from __future__ import annotations

from typing import Any, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

PRIMARY = "*"


class OrderClause(BaseModel):
    """
    Normalized order representation.

    Input: "-created_at" or "created_at:desc"
    Normalized: OrderClause(field="created_at", direction="desc")
    """
    model_config = ConfigDict(frozen=True)

    field: str
    direction: Literal["asc", "desc"] = "asc"


class OffsetPagination(BaseModel):
    """Page-number pagination (page is 1-based)."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["offset"] = "offset"
    limit: int
    page: int = 1

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class CursorPagination(BaseModel):
    """Cursor pagination; the cursor is opaque here."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["cursor"] = "cursor"
    limit: int
    cursor: str


Pagination = Union[OffsetPagination, CursorPagination]


# (scope, names) pairs; scope is a resource type or PRIMARY
Selection = tuple[tuple[str, tuple[str, ...]], ...]
# (scope, ((relation, columns), ...)) pairs
Aggregation = tuple[tuple[str, Selection], ...]


def _freeze(value: Any) -> Any:
    """Turn (nested) mappings into tuples of (key, value) pairs."""
    if isinstance(value, Mapping):
        return tuple((key, _freeze(item)) for key, item in value.items())
    return value


class QuerySpec(BaseModel):
    """
    Parsed query parameters of one request.

    Selections are stored as tuples of (scope, value) pairs so that a spec
    cannot change after construction; mappings are accepted on input.

    Example (?fields=name,status&fields[organizations]=name&counts=posts):
        QuerySpec(
            resource="users",
            fields={"*": ("name", "status"), "organizations": ("name",)},
            counts={"*": ("posts",)},
        )
    """
    model_config = ConfigDict(frozen=True)

    resource: Optional[str] = None
    fields: Selection = ()
    counts: Selection = ()
    sums: Aggregation = ()
    averages: Aggregation = ()
    filters: Optional[Union[dict[str, Any], list[Any]]] = None  # opaque filter tree
    order: tuple[OrderClause, ...] = ()
    pagination: Pagination = Field(
        default_factory=lambda: OffsetPagination(limit=25),
        discriminator="kind",
    )

    @field_validator("fields", "counts", "sums", "averages", mode="before")
    @classmethod
    def _freeze_selection(cls, value: Any) -> Any:
        return _freeze(value)

    def bind(self, resource: str) -> "QuerySpec":
        """Return a copy whose unscoped parameters apply to resource."""
        return self.model_copy(update={"resource": resource})

    def _scoped(self, pairs: tuple, resource_type: str) -> Any:
        mapping = dict(pairs)
        if resource_type in mapping:
            return mapping[resource_type]
        if PRIMARY in mapping and resource_type == self.resource:
            return mapping[PRIMARY]
        return None

    def fields_for(self, resource_type: str) -> Optional[list[str]]:
        """Requested fields for resource_type, or None when nothing was requested."""
        fields = self._scoped(self.fields, resource_type)
        return list(fields) if fields is not None else None

    def counts_for(self, resource_type: str) -> Optional[list[str]]:
        counts = self._scoped(self.counts, resource_type)
        return list(counts) if counts is not None else None

    def sums_for(self, resource_type: str) -> Optional[dict[str, list[str]]]:
        sums = self._scoped(self.sums, resource_type)
        return {relation: list(columns) for relation, columns in sums} if sums is not None else None

    def averages_for(self, resource_type: str) -> Optional[dict[str, list[str]]]:
        averages = self._scoped(self.averages, resource_type)
        return {relation: list(columns) for relation, columns in averages} if averages is not None else None

    def scoped_fields(self) -> dict[str, list[str]]:
        """Field requests keyed by resource type (unscoped ones under the primary resource)."""
        selection = dict(self.fields)
        scoped = {rt: list(fields) for rt, fields in selection.items() if rt != PRIMARY}
        if self.resource and PRIMARY in selection and self.resource not in scoped:
            scoped[self.resource] = list(selection[PRIMARY])
        return scoped

    @property
    def limit(self) -> int:
        return self.pagination.limit
