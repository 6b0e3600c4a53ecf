"""
Runtime module - field resolution, eager-load planning and the metadata service.
"""

from __future__ import annotations

from .planner import AggregateLoad, EagerLoadCompiler, EagerLoadPlan, RelationLoad
from .provider import ResourceMetadataProvider, ResourceMetadataService
from .resolver import ALL_FIELDS_TOKEN, FieldResolver

__all__ = [
    "ALL_FIELDS_TOKEN",
    "AggregateLoad",
    "EagerLoadCompiler",
    "EagerLoadPlan",
    "FieldResolver",
    "RelationLoad",
    "ResourceMetadataProvider",
    "ResourceMetadataService",
]
