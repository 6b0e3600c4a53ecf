"""
Cache key namespace.

Every cached piece of metadata lives under one of a closed set of templates.
A concrete key is "<prefix>:<template>" with the placeholders filled
positionally:

    CacheKey.MODEL_RELATIONS.resolve_key("User", "posts", prefix="app")
    # -> "app:model-relations:User:posts"

Rotate the prefix (e.g. embed a deploy id) to invalidate everything.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Sequence

from ..core.errors import CacheKeyError

DEFAULT_PREFIX = "resourcekit"
PLACEHOLDER = "{}"


class CacheKey(str, Enum):
    # Casts for each model used by repositories
    REPOSITORY_MODEL_CASTS = "repository-model-casts:{}"

    # Column names of each model
    MODEL_SCHEMA_COLUMNS = "model-schema-columns:{}"

    # Whether a name is a relation on a model
    MODEL_RELATIONS = "model-relations:{}:{}"

    # Compiled eager-load plans, by resource type and field signature
    MODEL_EAGER_LOADS = "model-eager-loads:{}:{}"

    # Related model of a relation
    MODEL_RELATION_INSTANCES = "model-relation-instances:{}:{}"

    # Resolved field lists, by resource type + request signature
    RESOLVED_RESOURCES = "resolved-resources:{}"

    @property
    def category(self) -> str:
        return self.value.split(":", 1)[0]

    @property
    def arity(self) -> int:
        return self.value.count(PLACEHOLDER)

    def resolve_key(self, *replacements: Any, prefix: str = DEFAULT_PREFIX) -> str:
        """Resolve the key with the prefix applied and placeholders replaced."""
        if len(replacements) != self.arity:
            raise CacheKeyError(self.value, self.arity, len(replacements))

        key = self.value.format(*(str(value) for value in replacements))
        return f"{prefix}:{key}" if prefix else key

    @classmethod
    def for_category(cls, category: str) -> "CacheKey":
        for member in cls:
            if member.category == category:
                return member
        raise CacheKeyError(category)


def cache_key(category: str, replacements: Sequence[Any] = (), prefix: str = DEFAULT_PREFIX) -> str:
    """Resolve a key by category name, e.g. cache_key("model-relations", ["User", "posts"])."""
    return CacheKey.for_category(category).resolve_key(*replacements, prefix=prefix)
