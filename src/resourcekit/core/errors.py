"""
Custom exceptions for resourcekit.

Two families matter to callers:

- ConfigurationError: a programming or deployment mistake (unknown resource,
  bad cache key, runaway nesting, invalid schema). Never retried.
- MalformedRequestError: the client sent parameters that cannot be parsed.
  The HTTP layer translates it; the core only raises it.
"""

from __future__ import annotations

from typing import Optional


class ResourceKitError(Exception):
    """Base exception for all resourcekit errors."""
    pass


class ConfigurationError(ResourceKitError):
    """Raised when resource or cache configuration is invalid."""
    pass


class UnregisteredResourceError(ConfigurationError):
    """Raised when a schema is requested for an unknown resource type."""

    def __init__(self, resource_type: str):
        self.resource_type = resource_type
        super().__init__(f"Resource '{resource_type}' is not registered")


class CacheKeyError(ConfigurationError):
    """Raised when a cache key template cannot be resolved."""

    def __init__(self, template: str, expected: Optional[int] = None, given: Optional[int] = None):
        self.template = template
        self.expected = expected
        self.given = given
        if expected is None:
            message = f"Unknown cache key template '{template}'"
        else:
            message = f"Cache key '{template}' expects {expected} argument(s), got {given}"
        super().__init__(message)


class NestingDepthExceededError(ConfigurationError):
    """Raised when relation expansion goes deeper than the configured maximum."""

    def __init__(self, path: str, max_depth: int):
        self.path = path
        self.max_depth = max_depth
        super().__init__(f"Relation path '{path}' exceeds maximum nesting depth of {max_depth}")


class SchemaConfigError(ConfigurationError):
    """Raised when resource schema declarations are inconsistent."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"Invalid resource schema: {errors}")


class MalformedRequestError(ResourceKitError):
    """Raised when request query parameters cannot be parsed."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"Malformed request: {errors}")
