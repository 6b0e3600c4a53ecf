"""
Resource metadata service - the facade serializers and repositories use.

Collaborators depend on the ResourceMetadataProvider protocol only, so
tests can swap in a fake and a request-scoped service can carry the parsed
QuerySpec of the current request:

    service = ResourceMetadataService(registry, settings=settings, cache=cache)
    scoped = service.with_query(query_spec)

    fields = scoped.resolve_fields(UserResource)
    plan = scoped.plan_for(UserResource)
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, Protocol

from ..cache.store import MetadataCache
from ..config import Settings
from ..core.defs import FieldKind
from ..core.query_types import QuerySpec
from ..core.registry import SchemaRegistry
from .planner import AggregateLoad, EagerLoadCompiler, EagerLoadPlan
from .resolver import FieldResolver

logger = logging.getLogger(__name__)


class ResourceMetadataProvider(Protocol):
    """Operations collaborators need to describe a resource."""

    def get_resource_type(self, resource: Any) -> str:
        ...

    def resolve_fields(self, resource: Any) -> list[str]:
        ...

    def get_all_fields(self, resource: Any) -> list[str]:
        ...

    def eager_load_map_for(self, resource: Any, fields: Iterable[str]) -> EagerLoadPlan:
        ...

    def eager_load_counts_for(self, resource: Any, aliases: Optional[Iterable[str]] = None) -> dict[str, AggregateLoad]:
        ...


class ResourceMetadataService:
    """
    Default ResourceMetadataProvider.

    Stateless apart from the optional request QuerySpec; instances built with
    with_query() share the resolver, compiler and cache of their parent.
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        *,
        settings: Optional[Settings] = None,
        cache: Optional[MetadataCache] = None,
        query: Optional[QuerySpec] = None,
        resolver: Optional[FieldResolver] = None,
        compiler: Optional[EagerLoadCompiler] = None,
    ):
        self.registry = registry
        self.settings = settings or Settings()
        self.cache = cache or MetadataCache(
            prefix=self.settings.cache_prefix,
            ttl=self.settings.cache_ttl,
            maxsize=self.settings.memo_maxsize,
            memo_ttl=self.settings.memo_ttl,
        )
        self.resolver = resolver or FieldResolver(registry, self.settings, self.cache)
        self.compiler = compiler or EagerLoadCompiler(registry, self.resolver, self.settings, self.cache)
        self.query = query

    @classmethod
    def from_settings(cls, registry: SchemaRegistry, settings: Settings) -> "ResourceMetadataService":
        """Build a service with the cache backend described by settings."""
        return cls(registry, settings=settings, cache=MetadataCache.from_settings(settings))

    def with_query(self, query: Optional[QuerySpec]) -> "ResourceMetadataService":
        """Request-scoped copy carrying query."""
        return ResourceMetadataService(
            self.registry,
            settings=self.settings,
            cache=self.cache,
            query=query,
            resolver=self.resolver,
            compiler=self.compiler,
        )

    # -------------------------------------------------------------------------
    # Provider operations
    # -------------------------------------------------------------------------

    def get_resource_type(self, resource: Any) -> str:
        return self.registry.schema(resource).resource_type

    def resolve_fields(self, resource: Any, excluded: Optional[Iterable[str]] = None) -> list[str]:
        """Fields to expose for resource under the current request."""
        resource_type = self.get_resource_type(resource)
        requested = self.query.fields_for(resource_type) if self.query else None
        return self.resolver.resolve(resource_type, requested, excluded)

    def get_all_fields(self, resource: Any) -> list[str]:
        return list(self.registry.all_fields(resource))

    def eager_load_map_for(self, resource: Any, fields: Iterable[str]) -> EagerLoadPlan:
        nested = self.query.scoped_fields() if self.query else None
        return self.compiler.compile(resource, fields, nested)

    def eager_load_counts_for(self, resource: Any, aliases: Optional[Iterable[str]] = None) -> dict[str, AggregateLoad]:
        """
        Root aggregates for resource.

        Explicit aliases win; otherwise the request's counts/sums/averages;
        otherwise the aggregates marked as default.
        """
        if aliases is None:
            aliases = self.requested_aggregates(resource)
        return self.compiler.aggregates_for(resource, aliases)

    def plan_for(self, resource: Any) -> EagerLoadPlan:
        """Complete plan for the current request: relations plus aggregates."""
        fields = self.resolve_fields(resource)
        plan = self.eager_load_map_for(resource, fields)
        return plan.with_aggregates(self.eager_load_counts_for(resource))

    # -------------------------------------------------------------------------
    # Request aggregates
    # -------------------------------------------------------------------------

    def requested_aggregates(self, resource: Any) -> Optional[list[str]]:
        """
        Aliases of the aggregates the request asked for, or None if it asked
        for none.

        counts may name an alias or a relation; sums/averages are matched by
        (relation, column). Anything that matches no declared aggregate is
        dropped.
        """
        if self.query is None:
            return None

        schema = self.registry.schema(resource)
        counts = self.query.counts_for(schema.resource_type)
        sums = self.query.sums_for(schema.resource_type)
        averages = self.query.averages_for(schema.resource_type)
        if counts is None and sums is None and averages is None:
            return None

        aliases: list[str] = []
        for name in counts or ():
            spec = schema.get(name)
            if spec is None or spec.kind is not FieldKind.COUNT:
                spec = schema.find_aggregate(FieldKind.COUNT, name)
            if spec is not None:
                aliases.append(spec.name)

        for kind, selection in ((FieldKind.SUM, sums), (FieldKind.AVERAGE, averages)):
            for relation, columns in (selection or {}).items():
                for column in columns:
                    spec = schema.find_aggregate(kind, relation, column)
                    if spec is not None:
                        aliases.append(spec.name)

        logger.debug(f"Requested aggregates for {schema.resource_type}: {aliases}")
        return aliases
