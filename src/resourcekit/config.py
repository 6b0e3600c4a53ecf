"""
Configuration for resourcekit.

Settings load from environment variables (prefix RESOURCEKIT_), an optional
.env file, or a YAML document:

    cache_prefix: myapp-v42
    fixed_fields: [id, _type]
    max_nesting_depth: 4
    default_limit: 25
    max_limit: 100
    field_ordering: requested
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FieldOrderingStrategy(str, Enum):
    """How explicitly requested fields are ordered after resolution."""
    DECLARATION = "declaration"  # schema order, request order ignored
    REQUESTED = "requested"  # order the client asked for


class Settings(BaseSettings):
    """Settings consumed by the resolver, compiler, cache and parser."""

    model_config = SettingsConfigDict(
        env_prefix="RESOURCEKIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Cache
    cache_prefix: str = "resourcekit"
    cache_ttl: Optional[int] = None
    redis_url: Optional[str] = None
    memo_maxsize: int = Field(default=1024, ge=1)
    memo_ttl: Optional[int] = None  # None = cache_ttl

    # Resolution
    fixed_fields: list[str] = Field(default_factory=lambda: ["id"])
    max_nesting_depth: int = Field(default=5, ge=1)
    field_ordering: FieldOrderingStrategy = FieldOrderingStrategy.DECLARATION

    # Pagination
    default_limit: int = Field(default=25, ge=1)
    max_limit: int = Field(default=100, ge=1)

    @model_validator(mode="after")
    def _check_limits(self) -> "Settings":
        if self.default_limit > self.max_limit:
            raise ValueError("default_limit must not exceed max_limit")
        return self

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Settings":
        """Create settings from a dictionary; environment still applies to missing keys."""
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "Settings":
        """Load settings from a YAML file."""
        with open(path, encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a mapping at the top level")
        return cls.from_dict(data)
