"""
resourcekit - resource metadata for JSON APIs.

Declares which fields each API resource exposes and answers, per request:
- which fields to return (defaults, explicit selection, fixed fields)
- which relations and aggregates to eager-load for them
- how to read fields/counts/sums/filters/order/pagination from the query string

Usage:
    from resourcekit import ApiResource, Field, Relation, Count, SchemaRegistry
    from resourcekit import ResourceMetadataService, Settings

    class UserResource(ApiResource):
        resource_type = "users"
        fields = [Field.scalar("id"), Field.scalar("name"), Count.of("posts")]

    registry = SchemaRegistry()
    registry.register(UserResource)
    registry.build()

    service = ResourceMetadataService(registry, settings=Settings())
    service.resolve_fields(UserResource)
"""

from __future__ import annotations

from .cache import CacheKey, MetadataCache, RedisCacheBackend
from .config import FieldOrderingStrategy, Settings
from .core import (
    Average,
    CacheKeyError,
    ConfigurationError,
    Count,
    Field,
    FieldKind,
    MalformedRequestError,
    NestingDepthExceededError,
    QuerySpec,
    QuerySpecParser,
    Relation,
    ResourceKitError,
    ResourceSchema,
    SchemaConfigError,
    SchemaRegistry,
    Sum,
    UnregisteredResourceError,
)
from .resources import ApiResource
from .runtime import (
    AggregateLoad,
    EagerLoadCompiler,
    EagerLoadPlan,
    FieldResolver,
    RelationLoad,
    ResourceMetadataProvider,
    ResourceMetadataService,
)

__version__ = "0.1.0"

__all__ = [
    # Resources
    "ApiResource",
    "Average",
    "Count",
    "Field",
    "FieldKind",
    "Relation",
    "ResourceSchema",
    "SchemaRegistry",
    "Sum",
    # Runtime
    "AggregateLoad",
    "EagerLoadCompiler",
    "EagerLoadPlan",
    "FieldResolver",
    "RelationLoad",
    "ResourceMetadataProvider",
    "ResourceMetadataService",
    # Requests
    "QuerySpec",
    "QuerySpecParser",
    # Cache / config
    "CacheKey",
    "FieldOrderingStrategy",
    "MetadataCache",
    "RedisCacheBackend",
    "Settings",
    # Errors
    "CacheKeyError",
    "ConfigurationError",
    "MalformedRequestError",
    "NestingDepthExceededError",
    "ResourceKitError",
    "SchemaConfigError",
    "UnregisteredResourceError",
]
