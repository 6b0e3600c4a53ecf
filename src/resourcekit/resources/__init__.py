"""
Resources module - declarative API resource classes.
"""

from __future__ import annotations

from .base import ApiResource, introspect_model_fields

__all__ = [
    "ApiResource",
    "introspect_model_fields",
]
