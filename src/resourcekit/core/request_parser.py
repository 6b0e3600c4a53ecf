"""
Query-string parser for resource endpoints.

Recognized parameters:

    fields=name,status                   fields of the primary resource
    fields[organizations]=name           fields of a related resource type
    fields=:all                          every non-aggregate field
    counts=posts                         counts (alias or relation name)
    counts[organizations]=members
    sums[orders]=total,tax               sums by relation -> columns
    sums[users][orders]=total
    averages[orders]=total
    filters={"status":"active"}          JSON filter tree (opaque)
    order=-created_at,name:asc           name | -name | name:asc | name:desc
    page=2 / cursor=abc                  offset or cursor pagination
    limit=50                             clamped to Settings.max_limit

Empty values (fields=, counts[posts]=) count as absent. Other parameters
are ignored. All problems of one request are collected and
raised together as a MalformedRequestError.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterable, Mapping, Optional

from ..config import Settings
from .errors import MalformedRequestError
from .query_types import PRIMARY, CursorPagination, OffsetPagination, OrderClause, Pagination, QuerySpec
from .utils import unique

logger = logging.getLogger(__name__)


SELECTION_PARAMS = ("fields", "counts")
AGGREGATION_PARAMS = ("sums", "averages")
ORDER_DIRECTIONS = ("asc", "desc")

_KEY_PATTERN = re.compile(r"^([^\[\]]+)((?:\[[^\[\]]*\])*)$")
_SEGMENT_PATTERN = re.compile(r"\[([^\[\]]*)\]")


def nest_query_items(items: Iterable[tuple[str, str]]) -> dict[str, Any]:
    """
    Fold bracketed query keys into nested dicts.

    [("fields", "a"), ("fields[users]", "b"), ("sums[users][orders]", "total")]
    -> {"fields": {"*": "a", "users": "b"}, "sums": {"users": {"orders": "total"}}}

    A plain value that meets a bracketed key of the same name is kept under
    PRIMARY. Repeated keys: the last value wins.
    """
    nested: dict[str, Any] = {}
    for key, value in items:
        match = _KEY_PATTERN.match(key)
        if not match:
            continue
        name, brackets = match.groups()
        path = [name, *(segment for segment in _SEGMENT_PATTERN.findall(brackets) if segment)]

        node = nested
        for segment in path[:-1]:
            child = node.get(segment)
            if not isinstance(child, dict):
                child = {} if child is None else {PRIMARY: child}
                node[segment] = child
            node = child

        leaf = path[-1]
        if isinstance(node.get(leaf), dict):
            node[leaf][PRIMARY] = value
        else:
            node[leaf] = value
    return nested


class QuerySpecParser:
    """
    Parses raw query parameters into a QuerySpec.

    Usage:
        parser = QuerySpecParser(settings)
        spec = parser.parse_query_items(request.query_params.multi_items(), "users")
        spec = parser.parse({"fields": {"users": "name"}, "limit": "10"})
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()

    def parse_query_items(self, items: Iterable[tuple[str, str]], resource: Optional[str] = None) -> QuerySpec:
        """Parse (key, value) pairs as they appear in a query string."""
        return self.parse(nest_query_items(items), resource)

    def parse(self, raw: Mapping[str, Any], resource: Optional[str] = None) -> QuerySpec:
        """
        Parse already nested parameters.

        Raises:
            MalformedRequestError: with every problem found
        """
        errors: list[str] = []

        selections = {
            param: self._parse_selection(param, raw[param], errors)
            for param in SELECTION_PARAMS
            if raw.get(param) is not None
        }
        aggregations = {
            param: self._parse_aggregation(param, raw[param], errors)
            for param in AGGREGATION_PARAMS
            if raw.get(param) is not None
        }
        filters = self._parse_filters(raw.get("filters"), errors)
        order = self._parse_order(raw.get("order"), errors)
        pagination = self._parse_pagination(raw, errors)

        if errors:
            raise MalformedRequestError(errors)

        return QuerySpec(
            resource=resource,
            fields=selections.get("fields", {}),
            counts=selections.get("counts", {}),
            sums=aggregations.get("sums", {}),
            averages=aggregations.get("averages", {}),
            filters=filters,
            order=order,
            pagination=pagination,
        )

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    def _split(self, label: str, value: Any, errors: list[str]) -> Optional[tuple[str, ...]]:
        """Split "a, b,c" (or a list of such strings) into unique names."""
        if isinstance(value, str):
            parts = value.split(",")
        elif isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
            parts = [part for item in value for part in item.split(",")]
        else:
            errors.append(f"{label}: expected a comma-separated string")
            return None
        return tuple(unique(part.strip() for part in parts if part.strip()))

    def _parse_selection(self, param: str, value: Any, errors: list[str]) -> dict[str, tuple[str, ...]]:
        if not isinstance(value, Mapping):
            value = {PRIMARY: value}

        selection: dict[str, tuple[str, ...]] = {}
        for scope, names in value.items():
            label = param if scope == PRIMARY else f"{param}[{scope}]"
            parsed = self._split(label, names, errors)
            # An empty value means the parameter was not given
            if parsed:
                selection[scope] = parsed
        return selection

    def _parse_aggregation(self, param: str, value: Any, errors: list[str]) -> dict[str, dict[str, tuple[str, ...]]]:
        if not isinstance(value, Mapping):
            errors.append(f"{param}: expected {param}[relation]=columns")
            return {}

        aggregation: dict[str, dict[str, tuple[str, ...]]] = {}
        for key, item in value.items():
            if key == PRIMARY:
                errors.append(f"{param}: expected {param}[relation]=columns")
            elif isinstance(item, Mapping):
                # sums[users][orders]=total
                for relation, columns in item.items():
                    label = f"{param}[{key}][{relation}]"
                    if relation == PRIMARY:
                        errors.append(f"{param}[{key}]: expected {param}[{key}][relation]=columns")
                        continue
                    parsed = self._split(label, columns, errors)
                    if parsed:
                        aggregation.setdefault(key, {})[relation] = parsed
            else:
                # sums[orders]=total
                parsed = self._split(f"{param}[{key}]", item, errors)
                if parsed:
                    aggregation.setdefault(PRIMARY, {})[key] = parsed
        return aggregation

    # -------------------------------------------------------------------------
    # Filters / order
    # -------------------------------------------------------------------------

    def _parse_filters(self, value: Any, errors: list[str]) -> Any:
        if value is None or value == "":
            return None
        if isinstance(value, (Mapping, list)):
            return value
        if not isinstance(value, str):
            errors.append("filters: expected a JSON document")
            return None
        try:
            filters = json.loads(value)
        except json.JSONDecodeError as e:
            errors.append(f"filters: invalid JSON ({e.msg})")
            return None
        if not isinstance(filters, (dict, list)):
            errors.append("filters: expected a JSON object or array")
            return None
        return filters

    def _parse_order(self, value: Any, errors: list[str]) -> tuple[OrderClause, ...]:
        if value is None:
            return ()
        tokens = self._split("order", value, errors)
        if tokens is None:
            return ()

        clauses: list[OrderClause] = []
        seen: set[str] = set()
        for token in tokens:
            clause = self._parse_order_token(token, errors)
            if clause is not None and clause.field not in seen:
                seen.add(clause.field)
                clauses.append(clause)
        return tuple(clauses)

    def _parse_order_token(self, token: str, errors: list[str]) -> Optional[OrderClause]:
        if token.startswith("-"):
            field = token[1:]
            if not field or ":" in field:
                errors.append(f"order: invalid clause '{token}'")
                return None
            return OrderClause(field=field, direction="desc")

        field, _, direction = token.partition(":")
        direction = direction.strip().lower() or "asc"
        field = field.strip()
        if not field:
            errors.append(f"order: invalid clause '{token}'")
            return None
        if direction not in ORDER_DIRECTIONS:
            errors.append(f"order: unknown direction '{direction}' for '{field}'")
            return None
        return OrderClause(field=field, direction=direction)

    # -------------------------------------------------------------------------
    # Pagination
    # -------------------------------------------------------------------------

    def _positive_int(self, name: str, value: Any, errors: list[str]) -> Optional[int]:
        if value is None or value == "":
            return None
        if isinstance(value, bool):
            number = None
        elif isinstance(value, int):
            number = value
        else:
            try:
                number = int(str(value).strip())
            except ValueError:
                number = None
        if number is None or number < 1:
            errors.append(f"{name}: must be a positive integer, got {value!r}")
            return None
        return number

    def _parse_pagination(self, raw: Mapping[str, Any], errors: list[str]) -> Pagination:
        limit = self._positive_int("limit", raw.get("limit"), errors)
        page = self._positive_int("page", raw.get("page"), errors)

        cursor = raw.get("cursor")
        if cursor is not None and not isinstance(cursor, str):
            errors.append("cursor: expected a string")
            cursor = None
        cursor = cursor or None

        if page is not None and cursor is not None:
            errors.append("page and cursor cannot be combined")

        if limit is None:
            limit = self.settings.default_limit
        elif limit > self.settings.max_limit:
            logger.debug(f"Clamping limit {limit} to {self.settings.max_limit}")
            limit = self.settings.max_limit

        if cursor is not None:
            return CursorPagination(limit=limit, cursor=cursor)
        return OffsetPagination(limit=limit, page=page or 1)
