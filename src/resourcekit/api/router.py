"""
FastAPI router exposing registered resource schemas.

Endpoints:
- GET /__resources - every registered resource type with its schema
- GET /__resources/{resource_type} - schema of one resource type

Used by clients to discover which fields, relations and aggregates can be
requested.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException

from ..core.defs import ResourceSchema
from ..core.errors import UnregisteredResourceError
from ..core.registry import SchemaRegistry


def describe_schema(schema: ResourceSchema) -> dict[str, Any]:
    """
    JSON description of a resource schema.

    Example:
    {
        "type": "users",
        "fields": {
            "name": {"kind": "scalar"},
            "organization": {"kind": "relation", "target": "organizations", "many": false},
            "postsCount": {"kind": "count", "relation": "posts", "default": true}
        },
        "default": ["name"],
        "fixed": []
    }
    """
    fields: dict[str, dict[str, Any]] = {}
    for name, spec in schema.fields.items():
        entry: dict[str, Any] = {"kind": spec.kind.value}
        if spec.is_relation:
            entry["target"] = spec.target
            entry["many"] = spec.many
            if spec.accessor:
                entry["accessor"] = spec.accessor
        elif spec.is_aggregate:
            entry["relation"] = spec.source
            if spec.column:
                entry["column"] = spec.column
            entry["default"] = spec.default
        fields[name] = entry

    return {
        "type": schema.resource_type,
        "fields": fields,
        "default": list(schema.default_fields),
        "fixed": list(schema.fixed_fields),
    }


def create_resource_router(registry: SchemaRegistry) -> APIRouter:
    """Create the schema discovery router for registry."""
    router = APIRouter()

    @router.get("/__resources")
    def list_resources() -> dict[str, Any]:
        return {
            resource_type: describe_schema(registry.schema(resource_type))
            for resource_type in registry.resource_types()
        }

    @router.get("/__resources/{resource_type}")
    def get_resource(resource_type: str) -> dict[str, Any]:
        try:
            schema = registry.schema(resource_type)
        except UnregisteredResourceError:
            raise HTTPException(
                status_code=404,
                detail={"error": f"Resource '{resource_type}' not found"}
            )
        return describe_schema(schema)

    return router
