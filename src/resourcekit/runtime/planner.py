"""
Eager-load compiler - turns a resolved field list into a load plan.

The plan is ORM-agnostic: a map of dotted relation paths to what should be
loaded there, plus the aggregates to compute. It is a pure function of
(resource type, fields, nested field requests) and is cached under
CacheKey.MODEL_EAGER_LOADS.

Nested requests are resolved before hashing and only kept for child types
the walk can reach, so the cache key depends on resolved fields alone.

Walk rules:
- relation fields become paths, recursing into the child resource with
  its pinned fields, else the fields resolved for the child type, else
  the child's defaults
- accessor relations load a single column and do not recurse
- a resource already on the current ancestor chain becomes a cyclic leaf
  (default scalar columns only) instead of recursing
- paths deeper than Settings.max_nesting_depth raise
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from ..cache.keys import CacheKey
from ..cache.store import MetadataCache
from ..config import Settings
from ..core.defs import FieldKind, FieldSpec
from ..core.errors import ConfigurationError, NestingDepthExceededError
from ..core.registry import SchemaRegistry
from ..core.utils import signature
from .resolver import FieldResolver

logger = logging.getLogger(__name__)


AggregateKind = Literal["count", "sum", "average"]

SCALAR_KINDS = (FieldKind.SCALAR, FieldKind.TIMESTAMP)


# =============================================================================
# Plan models
# =============================================================================


class RelationLoad(BaseModel):
    """
    What to load at one relation path.

    columns is None for a full load; otherwise the load is a projection of
    those columns.
    """
    model_config = ConfigDict(frozen=True)

    resource: Optional[str] = None
    columns: Optional[tuple[str, ...]] = None
    constraint: Optional[str] = None
    many: bool = False
    cyclic: bool = False

    @property
    def is_projection(self) -> bool:
        return self.columns is not None

    def merge(self, other: "RelationLoad", path: str) -> "RelationLoad":
        """
        Combine two loads of the same path.

        A full load wins over projections and projections are unioned. Two
        different named constraints on one path cannot be expressed as a
        single load and raise.
        """
        if self.resource and other.resource and self.resource != other.resource:
            raise ConfigurationError(
                f"Path '{path}' resolves to both '{self.resource}' and '{other.resource}'"
            )
        if self.constraint and other.constraint and self.constraint != other.constraint:
            raise ConfigurationError(
                f"Path '{path}' is loaded with conflicting constraints "
                f"'{self.constraint}' and '{other.constraint}'"
            )

        if self.columns is None or other.columns is None:
            columns = None
        else:
            columns = tuple(sorted(set(self.columns) | set(other.columns)))

        return RelationLoad(
            resource=self.resource or other.resource,
            columns=columns,
            constraint=self.constraint or other.constraint,
            many=self.many or other.many,
            cyclic=self.cyclic and other.cyclic,
        )


class AggregateLoad(BaseModel):
    """
    One aggregate to compute.

    relation is relative to path; path is "" for root-level aggregates and
    the dotted relation path otherwise.
    """
    model_config = ConfigDict(frozen=True)

    relation: str
    kind: AggregateKind
    column: Optional[str] = None
    constraint: Optional[str] = None
    path: str = ""

    @classmethod
    def from_spec(cls, spec: FieldSpec, path: str = "") -> "AggregateLoad":
        return cls(
            relation=spec.source,
            kind=spec.kind.value,
            column=spec.column,
            constraint=spec.constraint,
            path=path,
        )


class EagerLoadPlan(BaseModel):
    """Compiled eager-load plan, keyed by dotted relation path and aggregate alias."""
    model_config = ConfigDict(frozen=True)

    relations: dict[str, RelationLoad] = {}
    aggregates: dict[str, AggregateLoad] = {}

    @property
    def paths(self) -> list[str]:
        return list(self.relations)

    def is_empty(self) -> bool:
        return not self.relations and not self.aggregates

    def with_aggregates(self, aggregates: Mapping[str, AggregateLoad]) -> "EagerLoadPlan":
        """Return a copy with extra aggregates; existing aliases are kept."""
        merged = dict(aggregates)
        merged.update(self.aggregates)
        return EagerLoadPlan(relations=self.relations, aggregates=dict(sorted(merged.items())))


# =============================================================================
# Compiler
# =============================================================================


def _join(prefix: str, name: str) -> str:
    return f"{prefix}.{name}" if prefix else name


class EagerLoadCompiler:
    """
    Compiles eager-load plans for resources.

    Usage:
        compiler = EagerLoadCompiler(registry, resolver, settings, cache)
        plan = compiler.compile("users", ["id", "name", "organization"])
        plan.relations["organization"].columns   # None -> full load
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        resolver: FieldResolver,
        settings: Optional[Settings] = None,
        cache: Optional[MetadataCache] = None,
    ):
        self.registry = registry
        self.resolver = resolver
        self.settings = settings or resolver.settings
        self.cache = cache or resolver.cache
        self._reachable_types: dict[str, frozenset[str]] = {}

    def compile(
        self,
        resource: Any,
        fields: Iterable[str],
        nested: Optional[Mapping[str, Iterable[str]]] = None,
    ) -> EagerLoadPlan:
        """
        Compile the eager-load plan for resource.

        Args:
            resource: Resource class or resource type
            fields: Resolved fields of the resource
            nested: Explicit field requests per child resource type

        The returned plan is a copy; callers may change it freely.
        """
        schema = self.registry.schema(resource)
        resource_type = schema.resource_type
        fields = sorted(name for name in set(fields) if name in schema)
        nested = self._resolve_nested(resource_type, nested or {})

        key = self.cache.key(
            CacheKey.MODEL_EAGER_LOADS,
            resource_type,
            signature({"fields": fields, "nested": nested}),
        )
        plan = self.cache.remember(
            key,
            lambda: self._build(resource_type, fields, nested),
            dump=lambda plan: plan.model_dump(mode="json"),
            load=EagerLoadPlan.model_validate,
        )
        return plan.model_copy(deep=True)

    def _resolve_nested(self, resource_type: str, nested: Mapping[str, Iterable[str]]) -> dict[str, list[str]]:
        """
        Resolved child fields per reachable child type.

        Requests for the root type, for types the walk can never reach and
        requests that resolve to the child's defaults are dropped, so that
        equivalent requests share one plan.
        """
        reachable = self._reachable(resource_type)
        resolved: dict[str, list[str]] = {}
        for child, requested in nested.items():
            if child not in reachable:
                continue
            child_fields = sorted(set(self.resolver.resolve(child, requested)))
            if child_fields != sorted(set(self.resolver.resolve(child))):
                resolved[child] = child_fields
        return dict(sorted(resolved.items()))

    def _reachable(self, resource_type: str) -> frozenset[str]:
        """Resource types the walk can expand below resource_type."""
        reachable = self._reachable_types.get(resource_type)
        if reachable is None:
            seen: set[str] = set()
            pending = [resource_type]
            while pending:
                schema = self.registry.schema(pending.pop())
                for spec in schema.relations():
                    target = spec.target
                    if target is None or spec.accessor is not None:
                        continue
                    if target != resource_type and target not in seen:
                        seen.add(target)
                        pending.append(target)
            reachable = self._reachable_types[resource_type] = frozenset(seen)
        return reachable

    def aggregates_for(self, resource: Any, aliases: Optional[Iterable[str]] = None) -> dict[str, AggregateLoad]:
        """
        Root aggregates for resource.

        With aliases None the aggregates marked .default() are returned,
        otherwise the named ones; unknown aliases are ignored and duplicate
        aliases collapse into one entry.
        """
        schema = self.registry.schema(resource)
        if aliases is None:
            specs = [spec for spec in schema.aggregates() if spec.default]
        else:
            specs = []
            for alias in aliases:
                spec = schema.get(alias)
                if spec is not None and spec.is_aggregate:
                    specs.append(spec)

        aggregates: dict[str, AggregateLoad] = {}
        for spec in specs:
            aggregates.setdefault(spec.name, AggregateLoad.from_spec(spec))
        return dict(sorted(aggregates.items()))

    # -------------------------------------------------------------------------
    # Walk
    # -------------------------------------------------------------------------

    def _build(self, resource_type: str, fields: list[str], nested: dict[str, list[str]]) -> EagerLoadPlan:
        relations: dict[str, RelationLoad] = {}
        aggregates: dict[str, AggregateLoad] = {}

        self._walk(resource_type, fields, "", (resource_type,), nested, relations, aggregates)

        logger.debug(
            f"Compiled eager loads for {resource_type}: "
            f"{len(relations)} path(s), {len(aggregates)} aggregate(s)"
        )
        return EagerLoadPlan(
            relations=dict(sorted(relations.items())),
            aggregates=dict(sorted(aggregates.items())),
        )

    def _walk(
        self,
        resource_type: str,
        fields: Iterable[str],
        prefix: str,
        ancestors: tuple[str, ...],
        nested: dict[str, list[str]],
        relations: dict[str, RelationLoad],
        aggregates: dict[str, AggregateLoad],
    ):
        schema = self.registry.schema(resource_type)

        for name in fields:
            spec = schema.get(name)
            if spec is None:
                continue

            for extra in spec.extras:
                self._add(relations, _join(prefix, extra), RelationLoad())

            if spec.is_aggregate:
                aggregates.setdefault(_join(prefix, spec.name), AggregateLoad.from_spec(spec, prefix))
                continue

            if not spec.is_relation:
                continue

            path = _join(prefix, spec.source)

            if spec.accessor is not None:
                self._add(relations, path, RelationLoad(
                    resource=spec.target,
                    columns=(self._accessor_column(spec),),
                    constraint=spec.constraint,
                    many=spec.many,
                ))
                continue

            if spec.target is None:
                self._add(relations, path, RelationLoad(constraint=spec.constraint, many=spec.many))
                continue

            if spec.target in ancestors:
                self._add(relations, path, RelationLoad(
                    resource=spec.target,
                    columns=self._scalar_defaults(spec.target),
                    constraint=spec.constraint,
                    many=spec.many,
                    cyclic=True,
                ))
                continue

            self._add(relations, path, RelationLoad(
                resource=spec.target,
                constraint=spec.constraint,
                many=spec.many,
            ))

            if spec.fields is not None:
                child_fields = list(spec.fields)
            elif spec.target in nested:
                child_fields = nested[spec.target]
            else:
                child_fields = self.resolver.resolve(spec.target)

            self._walk(spec.target, child_fields, path, (*ancestors, spec.target), nested, relations, aggregates)

    def _add(self, relations: dict[str, RelationLoad], path: str, load: RelationLoad):
        depth = path.count(".") + 1
        if depth > self.settings.max_nesting_depth:
            raise NestingDepthExceededError(path, self.settings.max_nesting_depth)

        existing = relations.get(path)
        relations[path] = load if existing is None else existing.merge(load, path)

    def _accessor_column(self, spec: FieldSpec) -> str:
        """Column behind an accessor; the target field's source when the target is known."""
        if spec.target is not None:
            target_field = self.registry.schema(spec.target).get(spec.accessor)
            if target_field is not None and target_field.source:
                return target_field.source
        return spec.accessor

    def _scalar_defaults(self, resource_type: str) -> tuple[str, ...]:
        schema = self.registry.schema(resource_type)
        columns = []
        for name in schema.default_fields:
            spec = schema.fields[name]
            if spec.kind in SCALAR_KINDS and spec.source not in columns:
                columns.append(spec.source)
        return tuple(columns)
