"""
Field resolver - decides which fields a client receives.

Rules:
- no request (None): the declared default fields, in declared order
- explicit request: known fields only, unknown names silently dropped,
  ordered by the configured strategy
- ":all": every non-aggregate field
- fixed fields (global + per resource) are always present and cannot be
  excluded
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from ..cache.keys import CacheKey
from ..cache.store import MetadataCache
from ..config import FieldOrderingStrategy, Settings
from ..core.defs import ResourceSchema
from ..core.registry import SchemaRegistry
from ..core.utils import fields_signature, signature, unique

logger = logging.getLogger(__name__)


ALL_FIELDS_TOKEN = ":all"


class FieldResolver:
    """
    Resolves requested field lists against a resource schema.

    Usage:
        resolver = FieldResolver(registry, settings, cache)
        resolver.resolve("users", ["name", "bogus", "status"])
        # -> ["id", "name", "status"]
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        settings: Optional[Settings] = None,
        cache: Optional[MetadataCache] = None,
    ):
        self.registry = registry
        self.settings = settings or Settings()
        self.cache = cache or MetadataCache(
            prefix=self.settings.cache_prefix,
            ttl=self.settings.cache_ttl,
            maxsize=self.settings.memo_maxsize,
            memo_ttl=self.settings.memo_ttl,
        )

    @property
    def strategy(self) -> FieldOrderingStrategy:
        return self.settings.field_ordering

    def resolve(
        self,
        resource: Any,
        requested: Optional[Iterable[str]] = None,
        excluded: Optional[Iterable[str]] = None,
    ) -> list[str]:
        """
        Resolve the ordered field list for a resource.

        Args:
            resource: Resource class or resource type
            requested: Fields the client asked for (None = defaults)
            excluded: Fields to drop (fixed fields are never dropped)
        """
        schema = self.registry.schema(resource)
        # Unknown names never change the result; keep them out of the key
        if requested is not None:
            requested = [name for name in requested if name == ALL_FIELDS_TOKEN or name in schema]
        excluded = sorted(name for name in set(excluded or ()) if name in schema)

        key = self.cache.key(
            CacheKey.RESOLVED_RESOURCES,
            f"{schema.resource_type}.{self._signature(requested, excluded)}",
        )
        resolved = self.cache.remember(key, lambda: self._resolve(schema, requested, excluded))
        return list(resolved)

    def fixed_fields(self, resource: Any) -> list[str]:
        """Global fixed fields followed by the resource's own."""
        schema = self.registry.schema(resource)
        return unique([*self.settings.fixed_fields, *schema.fixed_fields])

    def _signature(self, requested: Optional[list[str]], excluded: list[str]) -> str:
        preserve_order = self.strategy is FieldOrderingStrategy.REQUESTED
        return signature({
            "strategy": self.strategy.value,
            "requested": fields_signature(requested, preserve_order=preserve_order),
            "excluded": excluded,
        })

    def _resolve(self, schema: ResourceSchema, requested: Optional[list[str]], excluded: list[str]) -> list[str]:
        logger.debug(f"Resolving fields for {schema.resource_type}: requested={requested}, excluded={excluded}")
        fixed = self.fixed_fields(schema.resource_type)
        dropped = set(excluded) - set(fixed)

        if requested is None:
            selected = [name for name in schema.default_fields if name not in dropped]
            return unique([*selected, *fixed])

        expanded: list[str] = []
        for name in requested:
            if name == ALL_FIELDS_TOKEN:
                expanded.extend(schema.all_fields)
            else:
                expanded.append(name)

        known = [name for name in unique(expanded) if name in schema and name not in dropped]

        if self.strategy is FieldOrderingStrategy.REQUESTED:
            return unique([*known, *fixed])

        wanted = set(known) | {name for name in fixed if name in schema}
        ordered = [name for name in schema.field_names() if name in wanted]
        return unique([*ordered, *fixed])
