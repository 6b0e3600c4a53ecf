"""
API module - FastAPI dependencies and schema discovery endpoints.
"""

from __future__ import annotations

from .dependencies import metadata_dependency, query_spec_dependency
from .router import create_resource_router, describe_schema

__all__ = [
    "create_resource_router",
    "describe_schema",
    "metadata_dependency",
    "query_spec_dependency",
]
