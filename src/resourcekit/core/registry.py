"""
Schema registry - collects resource schemas once at startup.

Resources stay declarative (see resourcekit.resources.ApiResource); the
registry freezes each into a ResourceSchema and validates cross-resource
references on build.

Usage:
    from resourcekit.core.registry import SchemaRegistry

    registry = SchemaRegistry()
    registry.register_constraint("published", lambda Post: Post.published.is_(True))
    registry.register(UserResource)
    registry.register(OrganizationResource)
    registry.build()

    registry.schema("users").default_fields
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

from .defs import ResourceSchema
from .errors import ConfigurationError, SchemaConfigError, UnregisteredResourceError

logger = logging.getLogger(__name__)


Constraint = Callable[[Any], Any]


class SchemaRegistry:
    """
    Registry of resource schemas and named constraints.

    Two-phase lifecycle:
    1. register resources and constraints
    2. build() - validates references and seals the registry

    Lookups build the registry on first use, so after startup every lookup
    is a dict access.
    """

    def __init__(self):
        self._schemas: dict[str, ResourceSchema] = {}
        self._resources: dict[str, type] = {}
        self._constraints: dict[str, Constraint] = {}
        self._built = False
        self._lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def register(self, resource: type) -> type:
        """
        Register a resource class.

        The class must provide get_resource_type() and to_schema(resolver).
        Returns the class so this can be used as a decorator.
        """
        self._assert_open()
        schema = resource.to_schema(self.resource_type)
        self.register_schema(schema)
        self._resources[schema.resource_type] = resource
        return resource

    def register_schema(self, schema: ResourceSchema) -> ResourceSchema:
        """Register an already built schema."""
        self._assert_open()
        if schema.resource_type in self._schemas:
            raise SchemaConfigError([f"Resource '{schema.resource_type}' registered twice"])
        self._schemas[schema.resource_type] = schema
        return schema

    def register_constraint(self, name: str, constraint: Constraint) -> None:
        """
        Register a named eager-load constraint.

        The callable receives the related model class and returns a criterion.
        """
        self._assert_open()
        self._constraints[name] = constraint

    def build(self) -> "SchemaRegistry":
        """Validate all registered schemas and seal the registry."""
        with self._lock:
            if self._built:
                return self

            # Imported here to avoid a cycle (compiler needs defs only)
            from .compiler import SchemaValidator

            result = SchemaValidator(self._schemas, set(self._constraints)).validate()
            if not result.success:
                raise SchemaConfigError(result.error_messages())

            self._built = True
            logger.info(f"Schema registry built with {len(self._schemas)} resource(s)")
        return self

    @property
    def is_built(self) -> bool:
        return self._built

    def _assert_open(self):
        if self._built:
            raise SchemaConfigError(["Registry is already built; register resources at startup"])

    def _ensure_built(self):
        if not self._built:
            self.build()

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def resource_type(self, resource: Any) -> str:
        """Resolve a resource class (or resource type string) to its type."""
        if isinstance(resource, str):
            return resource
        get_type = getattr(resource, "get_resource_type", None)
        if get_type is None:
            raise ConfigurationError(f"{resource!r} is not a resource")
        return get_type()

    def schema(self, resource: Any) -> ResourceSchema:
        self._ensure_built()
        resource_type = self.resource_type(resource)
        try:
            return self._schemas[resource_type]
        except KeyError:
            raise UnregisteredResourceError(resource_type) from None

    def default_fields(self, resource: Any) -> tuple[str, ...]:
        return self.schema(resource).default_fields

    def all_fields(self, resource: Any) -> tuple[str, ...]:
        """Every non-aggregate field, in declaration order."""
        return self.schema(resource).all_fields

    def aggregate_fields(self, resource: Any) -> tuple[str, ...]:
        return self.schema(resource).aggregate_fields

    def resource_class(self, resource: Any) -> Optional[type]:
        return self._resources.get(self.resource_type(resource))

    def constraint(self, name: str) -> Constraint:
        try:
            return self._constraints[name]
        except KeyError:
            raise ConfigurationError(f"Constraint '{name}' is not registered") from None

    def resource_types(self) -> list[str]:
        return list(self._schemas)

    def __contains__(self, resource: Any) -> bool:
        return self.resource_type(resource) in self._schemas
