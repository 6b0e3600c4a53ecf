"""
Schema validator - checks registered schemas against each other.

Per-resource checks (duplicate names, defaults) happen when a schema is
built; this pass covers what needs the whole registry:
- relation targets are registered resources
- pinned child fields exist on the target
- named constraints are registered
- sum/average aggregates name a column

Usage:
    from resourcekit.core.compiler import SchemaValidator

    result = SchemaValidator(schemas, constraint_names).validate()
    if not result.success:
        raise SchemaConfigError(result.error_messages())
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional

from .defs import FieldKind, FieldSpec, ResourceSchema


@dataclass
class CompilationError:
    """Single validation error."""
    resource: Optional[str]
    field: Optional[str]
    message: str

    def __str__(self) -> str:
        parts = []
        if self.resource:
            parts.append(self.resource)
        if self.field:
            parts.append(self.field)
        location = ".".join(parts) if parts else "global"
        return f"[{location}] {self.message}"


@dataclass
class CompilationResult:
    """Result of validation."""
    success: bool
    errors: list[CompilationError] = field(default_factory=list)

    def error_messages(self) -> list[str]:
        """Get all error messages as strings."""
        return [str(e) for e in self.errors]


class SchemaValidator:
    """Validates a set of resource schemas."""

    def __init__(self, schemas: Mapping[str, ResourceSchema], constraints: set[str]):
        self.schemas = schemas
        self.constraints = constraints
        self.errors: list[CompilationError] = []

    def validate(self) -> CompilationResult:
        self.errors = []

        for resource_type, schema in self.schemas.items():
            for spec in schema.fields.values():
                if spec.constraint and spec.constraint not in self.constraints:
                    self._add_error(
                        f"Unknown constraint '{spec.constraint}'",
                        resource=resource_type,
                        field=spec.name,
                    )
                if spec.is_relation:
                    self._validate_relation(resource_type, spec)
                elif spec.kind in (FieldKind.SUM, FieldKind.AVERAGE) and not spec.column:
                    self._add_error(
                        f"{spec.kind.value} aggregate requires a column",
                        resource=resource_type,
                        field=spec.name,
                    )

        return CompilationResult(success=not self.errors, errors=list(self.errors))

    def _add_error(
        self,
        message: str,
        resource: Optional[str] = None,
        field: Optional[str] = None,
    ):
        self.errors.append(CompilationError(resource=resource, field=field, message=message))

    def _validate_relation(self, resource_type: str, spec: FieldSpec):
        """Validate relation target and pinned child fields."""
        if spec.target is None:
            if spec.fields:
                self._add_error(
                    "Pinned fields require a target resource",
                    resource=resource_type,
                    field=spec.name,
                )
            return

        target = self.schemas.get(spec.target)
        if target is None:
            self._add_error(
                f"Unknown target resource '{spec.target}'",
                resource=resource_type,
                field=spec.name,
            )
            return

        for child in spec.fields or ():
            if child not in target:
                self._add_error(
                    f"Pinned field '{child}' not in {spec.target}",
                    resource=resource_type,
                    field=spec.name,
                )
