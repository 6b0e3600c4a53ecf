"""
ORM module - SQLAlchemy adapter for eager-load plans.
"""

from __future__ import annotations

from .loader import EagerLoadApplier

__all__ = [
    "EagerLoadApplier",
]
