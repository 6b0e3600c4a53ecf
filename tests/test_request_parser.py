"""
Tests for QuerySpecParser.

Tests cover:
- Bracketed query keys
- fields / counts / sums / averages, scoped and unscoped
- filters, order and pagination
- Error collection
"""

import pytest

from resourcekit import MalformedRequestError, QuerySpecParser, Settings
from resourcekit.core import PRIMARY, CursorPagination, OffsetPagination, OrderClause, nest_query_items


@pytest.fixture
def parser():
    return QuerySpecParser(Settings(default_limit=25, max_limit=100))


# =============================================================================
# Test key nesting
# =============================================================================


class TestNestQueryItems:
    """Tests for folding bracketed keys."""

    def test_plain_and_scoped(self):
        nested = nest_query_items([
            ("fields", "name"),
            ("fields[organizations]", "name,country"),
            ("sums[users][orders]", "total"),
        ])

        assert nested == {
            "fields": {PRIMARY: "name", "organizations": "name,country"},
            "sums": {"users": {"orders": "total"}},
        }

    def test_scoped_before_plain(self):
        nested = nest_query_items([("fields[posts]", "title"), ("fields", "name")])
        assert nested == {"fields": {"posts": "title", PRIMARY: "name"}}

    def test_last_value_wins(self):
        assert nest_query_items([("limit", "5"), ("limit", "10")]) == {"limit": "10"}

    def test_malformed_keys_ignored(self):
        assert nest_query_items([("fields[users", "x"), ("]", "y")]) == {}


# =============================================================================
# Test selections
# =============================================================================


class TestSelections:
    """Tests for fields and aggregate parameters."""

    def test_no_parameters(self, parser):
        spec = parser.parse({}, "users")

        assert spec.fields_for("users") is None
        assert spec.counts_for("users") is None
        assert spec.filters is None
        assert spec.order == ()

    def test_unscoped_fields_apply_to_primary(self, parser):
        spec = parser.parse_query_items([("fields", "name, status,,name")], "users")

        assert spec.fields_for("users") == ["name", "status"]
        assert spec.fields_for("organizations") is None

    def test_scoped_fields(self, parser):
        spec = parser.parse_query_items([
            ("fields", "name"),
            ("fields[organizations]", "country"),
        ], "users")

        assert spec.fields_for("organizations") == ["country"]
        assert spec.scoped_fields() == {"organizations": ["country"], "users": ["name"]}

    def test_scoped_primary_wins_over_unscoped(self, parser):
        spec = parser.parse_query_items([("fields", "name"), ("fields[users]", "email")], "users")
        assert spec.fields_for("users") == ["email"]

    def test_unscoped_without_resource(self, parser):
        spec = parser.parse({"fields": "name"})

        assert spec.fields_for("users") is None
        assert spec.bind("users").fields_for("users") == ["name"]

    def test_list_values(self, parser):
        spec = parser.parse({"fields": ["name,email", "status"]}, "users")
        assert spec.fields_for("users") == ["name", "email", "status"]

    def test_counts(self, parser):
        spec = parser.parse_query_items([("counts", "posts"), ("counts[organizations]", "users")], "users")

        assert spec.counts_for("users") == ["posts"]
        assert spec.counts_for("organizations") == ["users"]

    def test_unscoped_sums(self, parser):
        spec = parser.parse_query_items([("sums[orders]", "total,tax")], "users")
        assert spec.sums_for("users") == {"orders": ["total", "tax"]}

    def test_scoped_averages(self, parser):
        spec = parser.parse_query_items([("averages[users][orders]", "total")], "organizations")

        assert spec.averages_for("users") == {"orders": ["total"]}
        assert spec.averages_for("organizations") is None

    def test_empty_selections_are_absent(self, parser):
        spec = parser.parse_query_items([
            ("fields", ""),
            ("fields[posts]", " , "),
            ("counts", ""),
            ("sums[orders]", ""),
        ], "users")

        assert spec.fields_for("users") is None
        assert spec.fields_for("posts") is None
        assert spec.counts_for("users") is None
        assert spec.sums_for("users") is None
        assert spec.scoped_fields() == {}

    def test_selections_cannot_be_changed(self, parser):
        spec = parser.parse_query_items([("fields", "name"), ("sums[orders]", "total")], "users")

        with pytest.raises(TypeError):
            spec.fields[0] = ("*", ("email",))
        spec.fields_for("users").append("email")
        spec.sums_for("users")["orders"].append("tax")

        assert spec.fields_for("users") == ["name"]
        assert spec.sums_for("users") == {"orders": ["total"]}

    def test_sums_without_relation(self, parser):
        with pytest.raises(MalformedRequestError):
            parser.parse_query_items([("sums", "total")], "users")

    def test_invalid_selection_type(self, parser):
        with pytest.raises(MalformedRequestError) as exc_info:
            parser.parse({"fields": {"users": 5}}, "users")

        assert "fields[users]" in exc_info.value.errors[0]


# =============================================================================
# Test filters and order
# =============================================================================


class TestFiltersAndOrder:
    """Tests for filters and order."""

    def test_filters_json(self, parser):
        spec = parser.parse({"filters": '{"status": "active", "or": [{"id": 1}]}'})
        assert spec.filters == {"status": "active", "or": [{"id": 1}]}

    def test_filters_mapping_passthrough(self, parser):
        assert parser.parse({"filters": {"id": 3}}).filters == {"id": 3}

    def test_filters_invalid_json(self, parser):
        with pytest.raises(MalformedRequestError) as exc_info:
            parser.parse({"filters": "{status"})

        assert exc_info.value.errors[0].startswith("filters: invalid JSON")

    def test_filters_scalar_json(self, parser):
        with pytest.raises(MalformedRequestError):
            parser.parse({"filters": "42"})

    def test_order_forms(self, parser):
        spec = parser.parse({"order": "-created_at,name,email:DESC,status:asc"})

        assert spec.order == (
            OrderClause(field="created_at", direction="desc"),
            OrderClause(field="name", direction="asc"),
            OrderClause(field="email", direction="desc"),
            OrderClause(field="status", direction="asc"),
        )

    def test_order_first_clause_per_field_wins(self, parser):
        spec = parser.parse({"order": "name,-name"})
        assert spec.order == (OrderClause(field="name", direction="asc"),)

    def test_unknown_direction(self, parser):
        with pytest.raises(MalformedRequestError) as exc_info:
            parser.parse({"order": "name:sideways"})

        assert "unknown direction 'sideways'" in exc_info.value.errors[0]

    @pytest.mark.parametrize("token", ["-", "-name:asc", ":asc"])
    def test_invalid_order_clause(self, parser, token):
        with pytest.raises(MalformedRequestError):
            parser.parse({"order": token})


# =============================================================================
# Test pagination
# =============================================================================


class TestPagination:
    """Tests for limit/page/cursor."""

    def test_default_offset_pagination(self, parser):
        pagination = parser.parse({}).pagination

        assert pagination == OffsetPagination(limit=25, page=1)
        assert pagination.offset == 0

    def test_page_and_limit(self, parser):
        pagination = parser.parse({"page": "3", "limit": "10"}).pagination

        assert pagination == OffsetPagination(limit=10, page=3)
        assert pagination.offset == 20

    def test_limit_clamped(self, parser):
        assert parser.parse({"limit": "500"}).pagination.limit == 100

    def test_cursor(self, parser):
        pagination = parser.parse({"cursor": "abc", "limit": "5"}).pagination
        assert pagination == CursorPagination(limit=5, cursor="abc")

    def test_page_and_cursor_rejected(self, parser):
        with pytest.raises(MalformedRequestError) as exc_info:
            parser.parse({"page": "2", "cursor": "abc"})

        assert "page and cursor cannot be combined" in exc_info.value.errors

    @pytest.mark.parametrize("value", ["0", "-1", "ten", "1.5"])
    def test_invalid_limit(self, parser, value):
        with pytest.raises(MalformedRequestError):
            parser.parse({"limit": value})

    def test_empty_values_use_defaults(self, parser):
        assert parser.parse({"limit": "", "page": "", "cursor": ""}).pagination == OffsetPagination(limit=25)

    def test_errors_collected(self, parser):
        with pytest.raises(MalformedRequestError) as exc_info:
            parser.parse({"order": "a:up", "page": "0", "filters": "{"})

        assert len(exc_info.value.errors) == 3


class TestQuerySpec:
    """Tests for the parsed value object."""

    def test_frozen(self, parser):
        spec = parser.parse({"fields": "name"}, "users")

        with pytest.raises(Exception):
            spec.resource = "posts"

    def test_limit_shortcut(self, parser):
        assert parser.parse({"limit": "7"}).limit == 7
