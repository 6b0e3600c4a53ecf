"""
SQLAlchemy adapter - applies eager-load plans to select() statements.

    stmt = select(User)
    stmt = applier.apply(stmt, User, service.plan_for(UserResource))
    stmt = applier.apply_query(stmt, User, query_spec)

    for user, posts_count in session.execute(stmt).all():
        ...

Relation paths become selectinload() chains (load_only() for projections,
relationship.and_() for named constraints). Root aggregates become
correlated scalar subqueries labelled with their alias. Model metadata
(columns, relations, related models, column types) is cached per model.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import Select, func, inspect, select
from sqlalchemy.orm import selectinload

from ..cache.keys import CacheKey
from ..cache.store import MetadataCache
from ..core.errors import ConfigurationError
from ..core.query_types import OffsetPagination, QuerySpec
from ..core.registry import SchemaRegistry
from ..runtime.planner import AggregateLoad, EagerLoadPlan

logger = logging.getLogger(__name__)


# Python types a sum/average column may have
NUMERIC_TYPES = {"int", "float", "Decimal"}


def _python_type_name(column_attr) -> str:
    try:
        return column_attr.columns[0].type.python_type.__name__
    except NotImplementedError:
        return "object"


class EagerLoadApplier:
    """
    Applies EagerLoadPlans to SQLAlchemy statements.

    Usage:
        applier = EagerLoadApplier(registry, cache)
        stmt = applier.apply(select(User), User, plan)
    """

    def __init__(self, registry: SchemaRegistry, cache: Optional[MetadataCache] = None):
        self.registry = registry
        self.cache = cache or MetadataCache()

    # -------------------------------------------------------------------------
    # Plans
    # -------------------------------------------------------------------------

    def apply(self, stmt: Select, model: type, plan: EagerLoadPlan) -> Select:
        """Add loader options and aggregate columns for plan to stmt."""
        options = [self._loader_option(model, path, plan) for path in plan.relations]
        if options:
            stmt = stmt.options(*options)

        for alias, aggregate in plan.aggregates.items():
            if aggregate.path:
                logger.warning(f"Skipping nested aggregate '{alias}': only root aggregates are applied")
                continue
            stmt = stmt.add_columns(self.aggregate_column(model, alias, aggregate))
        return stmt

    def _loader_option(self, model: type, path: str, plan: EagerLoadPlan):
        segments = path.split(".")
        current = model
        option = None

        for depth, segment in enumerate(segments, start=1):
            if not self.is_relation(current, segment):
                raise ConfigurationError(f"'{segment}' is not a relation of {current.__name__} (path '{path}')")

            target = self.related_model(current, segment)
            attribute = getattr(current, segment)

            # Constraints apply to every segment that has its own entry
            load = plan.relations.get(".".join(segments[:depth]))
            if load is not None and load.constraint:
                attribute = attribute.and_(self.registry.constraint(load.constraint)(target))

            option = selectinload(attribute) if option is None else option.selectinload(attribute)
            current = target

        columns = plan.relations[path].columns
        if columns:
            option = option.load_only(*self._columns(current, columns))
        return option

    def _columns(self, model: type, names) -> list[Any]:
        known = set(self.model_columns(model))
        unknown = [name for name in names if name not in known]
        if unknown:
            raise ConfigurationError(f"{model.__name__} has no column(s) {unknown}")
        return [getattr(model, name) for name in names]

    def aggregate_column(self, model: type, alias: str, aggregate: AggregateLoad):
        """Correlated scalar subquery computing aggregate for each row of model."""
        if not self.is_relation(model, aggregate.relation):
            raise ConfigurationError(f"'{aggregate.relation}' is not a relation of {model.__name__}")

        relationship = inspect(model).relationships[aggregate.relation]
        target = self.related_model(model, aggregate.relation)

        if aggregate.kind == "count":
            expression = func.count()
        else:
            casts = self.model_casts(target)
            if casts.get(aggregate.column) not in NUMERIC_TYPES:
                raise ConfigurationError(
                    f"Cannot {aggregate.kind} non-numeric column {target.__name__}.{aggregate.column}"
                )
            function = func.sum if aggregate.kind == "sum" else func.avg
            expression = function(getattr(target, aggregate.column))

        subquery = select(expression).select_from(target).where(relationship.primaryjoin)
        if relationship.secondaryjoin is not None:
            subquery = subquery.where(relationship.secondaryjoin)
        if aggregate.constraint:
            subquery = subquery.where(self.registry.constraint(aggregate.constraint)(target))
        return subquery.scalar_subquery().label(alias)

    # -------------------------------------------------------------------------
    # Order / pagination
    # -------------------------------------------------------------------------

    def apply_query(self, stmt: Select, model: type, query: QuerySpec) -> Select:
        """
        Apply order and pagination of query to stmt.

        Order clauses naming unknown columns are ignored. Filters are left to
        the caller; cursor pagination only applies the limit.
        """
        known = set(self.model_columns(model))
        for clause in query.order:
            if clause.field not in known:
                logger.debug(f"Ignoring order on unknown column {model.__name__}.{clause.field}")
                continue
            column = getattr(model, clause.field)
            stmt = stmt.order_by(column.desc() if clause.direction == "desc" else column.asc())

        pagination = query.pagination
        if isinstance(pagination, OffsetPagination) and pagination.offset:
            stmt = stmt.offset(pagination.offset)
        return stmt.limit(pagination.limit)

    # -------------------------------------------------------------------------
    # Cached model metadata
    # -------------------------------------------------------------------------

    def model_columns(self, model: type) -> list[str]:
        """Mapped column attribute names of model."""
        key = self.cache.key(CacheKey.MODEL_SCHEMA_COLUMNS, model.__name__)
        return self.cache.remember(key, lambda: [attr.key for attr in inspect(model).column_attrs])

    def is_relation(self, model: type, name: str) -> bool:
        key = self.cache.key(CacheKey.MODEL_RELATIONS, model.__name__, name)
        return self.cache.remember(key, lambda: name in inspect(model).relationships)

    def related_model(self, model: type, relation: str) -> type:
        """Model class on the other side of relation."""
        key = self.cache.key(CacheKey.MODEL_RELATION_INSTANCES, model.__name__, relation)
        name = self.cache.remember(key, lambda: inspect(model).relationships[relation].mapper.class_.__name__)
        for mapper in inspect(model).registry.mappers:
            if mapper.class_.__name__ == name:
                return mapper.class_
        raise ConfigurationError(f"Model '{name}' (via {model.__name__}.{relation}) is not mapped")

    def model_casts(self, model: type) -> dict[str, str]:
        """Python type name of each mapped column."""
        key = self.cache.key(CacheKey.REPOSITORY_MODEL_CASTS, model.__name__)
        return self.cache.remember(
            key,
            lambda: {attr.key: _python_type_name(attr) for attr in inspect(model).column_attrs},
        )
