"""
Core module - definitions, registry, query types and parsing.
"""

from __future__ import annotations

from .compiler import CompilationError, CompilationResult, SchemaValidator
from .defs import (
    Average,
    BaseDefinition,
    Count,
    Field,
    FieldKind,
    FieldSpec,
    Relation,
    ResourceSchema,
    Sum,
)
from .errors import (
    CacheKeyError,
    ConfigurationError,
    MalformedRequestError,
    NestingDepthExceededError,
    ResourceKitError,
    SchemaConfigError,
    UnregisteredResourceError,
)
from .query_types import (
    PRIMARY,
    CursorPagination,
    OffsetPagination,
    OrderClause,
    QuerySpec,
)
from .registry import SchemaRegistry
from .request_parser import QuerySpecParser, nest_query_items

__all__ = [
    # Definitions
    "Average",
    "BaseDefinition",
    "Count",
    "Field",
    "FieldKind",
    "FieldSpec",
    "Relation",
    "ResourceSchema",
    "Sum",
    # Errors
    "CacheKeyError",
    "CompilationError",
    "CompilationResult",
    "ConfigurationError",
    "MalformedRequestError",
    "NestingDepthExceededError",
    "ResourceKitError",
    "SchemaConfigError",
    "UnregisteredResourceError",
    # Query types
    "PRIMARY",
    "CursorPagination",
    "OffsetPagination",
    "OrderClause",
    "QuerySpec",
    "QuerySpecParser",
    "nest_query_items",
    # Registry
    "SchemaRegistry",
    "SchemaValidator",
]
