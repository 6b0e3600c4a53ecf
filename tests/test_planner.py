"""
Tests for EagerLoadCompiler.

Tests cover:
- Relation paths, push-down projections and nested expansion
- Aggregate entries and default aggregates
- Cycle termination and the nesting depth limit
- Order independence and plan caching
"""

import itertools

import pytest

from resourcekit import (
    ApiResource,
    ConfigurationError,
    EagerLoadPlan,
    Field,
    MetadataCache,
    NestingDepthExceededError,
    Relation,
    SchemaRegistry,
    Settings,
)
from resourcekit.runtime import AggregateLoad, EagerLoadCompiler, FieldResolver, RelationLoad

from sample_app import UserResource


def make_compiler(resources, max_depth=5, cache=None):
    registry = SchemaRegistry()
    for resource in resources:
        registry.register(resource)
    registry.build()
    settings = Settings(max_nesting_depth=max_depth)
    cache = cache or MetadataCache()
    return EagerLoadCompiler(registry, FieldResolver(registry, settings, cache), settings, cache)


# A <-> B cycle
class AResource(ApiResource):
    resource_type = "a"
    fields = [Field.scalar("id"), Field.scalar("label"), Relation.to("b", "b")]


class BResource(ApiResource):
    resource_type = "b"
    fields = [Field.scalar("id"), Field.scalar("code"), Relation.to("a", "a")]


# Linear chain n1 -> n2 -> ... -> n5
def chain_resources(length):
    resources = []
    for index in range(1, length + 1):
        fields = [Field.scalar("id")]
        if index < length:
            fields.append(Relation.to("next", f"n{index + 1}"))
        resources.append(type(f"N{index}Resource", (ApiResource,), {
            "resource_type": f"n{index}",
            "fields": fields,
        }))
    return resources


# =============================================================================
# Test relations
# =============================================================================


class TestRelationPaths:
    """Tests for relation entries."""

    def test_scenario_organization_and_posts_count(self, compiler):
        plan = compiler.compile("users", ["id", "name", "organization", "postsCount"])

        assert plan.paths == ["organization"]
        assert plan.relations["organization"] == RelationLoad(resource="organizations")
        assert plan.aggregates == {"postsCount": AggregateLoad(relation="posts", kind="count")}

    def test_scalars_produce_empty_plan(self, compiler):
        assert compiler.compile("users", ["id", "name", "email"]).is_empty()

    def test_accessor_pushes_down_projection(self, compiler):
        plan = compiler.compile("users", ["organization_name"])

        assert plan.relations["organization"].columns == ("name",)
        assert plan.relations["organization"].is_projection is True

    def test_full_load_dominates_projection(self, compiler):
        plan = compiler.compile("users", ["organization_name", "organization"])
        assert plan.relations["organization"].columns is None

    def test_child_defaults_used(self, compiler):
        """users defaults hold no relations, so expansion stops at users."""
        plan = compiler.compile("organizations", ["users"])

        assert plan.paths == ["users"]
        assert plan.relations["users"].many is True

    def test_nested_request_overrides_child_defaults(self, compiler):
        plan = compiler.compile("users", ["posts"], nested={"posts": ["title", "tags"]})

        assert plan.paths == ["posts", "posts.tags"]
        assert plan.relations["posts.tags"].resource == "tag"

    def test_pinned_fields_win(self):
        class ParentResource(ApiResource):
            resource_type = "parent"
            fields = [Field.scalar("id"), Relation.to("child", "child").fields(["id"])]

        class ChildResource(ApiResource):
            resource_type = "child"
            fields = [Field.scalar("id"), Relation.to("toy", "toy")]

        class ToyResource(ApiResource):
            resource_type = "toy"
            fields = [Field.scalar("id")]

        compiler = make_compiler([ParentResource, ChildResource, ToyResource])
        plan = compiler.compile("parent", ["child"], nested={"child": ["toy"]})

        assert plan.paths == ["child"]

    def test_nested_aggregates_keep_path(self, compiler):
        plan = compiler.compile("users", ["posts"], nested={"posts": ["title", "tagsCount"]})

        assert plan.aggregates["posts.tagsCount"] == AggregateLoad(relation="tags", kind="count", path="posts")

    def test_constraint_is_carried(self, compiler):
        plan = compiler.compile("users", ["publishedPostsCount"])
        assert plan.aggregates["publishedPostsCount"].constraint == "published"

    def test_extras_become_paths(self):
        class ProfileResource(ApiResource):
            resource_type = "profiles"
            fields = [
                Field.scalar("id"),
                Field.computed("country", "address.country").extras("address"),
            ]

        compiler = make_compiler([ProfileResource])
        plan = compiler.compile("profiles", ["country"])

        assert plan.relations == {"address": RelationLoad()}

    def test_conflicting_constraints(self):
        class ShopResource(ApiResource):
            resource_type = "shops"
            fields = [
                Field.scalar("id"),
                Relation.to("items", alias="new_items").constrain("new"),
                Relation.to("items", alias="old_items").constrain("old"),
            ]

        registry = SchemaRegistry()
        registry.register_constraint("new", lambda model: None)
        registry.register_constraint("old", lambda model: None)
        registry.register(ShopResource)
        compiler = EagerLoadCompiler(registry, FieldResolver(registry, Settings(), MetadataCache()))

        with pytest.raises(ConfigurationError):
            compiler.compile("shops", ["new_items", "old_items"])


# =============================================================================
# Test cycles and depth
# =============================================================================


class TestCyclesAndDepth:
    """Tests for termination rules."""

    def test_cycle_becomes_scalar_leaf(self):
        compiler = make_compiler([AResource, BResource])
        plan = compiler.compile("a", ["id", "b"])

        assert plan.paths == ["b", "b.a"]
        assert plan.relations["b"].cyclic is False
        assert plan.relations["b.a"] == RelationLoad(resource="a", columns=("id", "label"), cyclic=True)

    def test_cycle_in_sample_domain(self, compiler):
        plan = compiler.compile(UserResource, ["posts"])

        assert plan.paths == ["posts", "posts.author"]
        assert plan.relations["posts.author"].cyclic is True
        assert plan.relations["posts.author"].columns == ("id", "name", "email")

    def test_cycle_terminates_with_small_depth(self):
        compiler = make_compiler([AResource, BResource], max_depth=2)
        assert compiler.compile("a", ["b"]).paths == ["b", "b.a"]

    def test_depth_within_limit(self):
        compiler = make_compiler(chain_resources(5), max_depth=4)
        plan = compiler.compile("n1", ["next"])

        assert plan.paths == ["next", "next.next", "next.next.next", "next.next.next.next"]

    def test_depth_exceeded(self):
        compiler = make_compiler(chain_resources(5), max_depth=3)

        with pytest.raises(NestingDepthExceededError) as exc_info:
            compiler.compile("n1", ["next"])

        assert exc_info.value.path == "next.next.next.next"
        assert exc_info.value.max_depth == 3


# =============================================================================
# Test properties and caching
# =============================================================================


class TestPlanProperties:
    """Tests for determinism and caching."""

    FIELDS = ["organization_name", "organization", "posts", "postsCount", "ordersSumTotal"]

    def test_order_independent(self, compiler):
        plans = {
            compiler.compile("users", list(order)).model_dump_json()
            for order in itertools.permutations(self.FIELDS)
        }
        assert len(plans) == 1

    def test_order_independent_without_cache(self, registry, settings):
        first = None
        for order in itertools.permutations(self.FIELDS):
            cache = MetadataCache()
            compiler = EagerLoadCompiler(registry, FieldResolver(registry, settings, cache), settings, cache)
            plan = compiler.compile("users", list(order))
            first = first or plan
            assert plan == first

    def test_plans_are_copies(self, compiler):
        plan = compiler.compile("users", ["organization"])
        plan.relations["stray"] = RelationLoad()
        plan.aggregates.clear()

        assert compiler.compile("users", ["organization"]).paths == ["organization"]

    def test_equivalent_nested_requests_share_plan(self, registry, settings, memory_backend):
        cache = MetadataCache(memory_backend, prefix="test")
        compiler = EagerLoadCompiler(registry, FieldResolver(registry, settings, cache), settings, cache)

        compiler.compile("users", ["name", "posts"])
        compiler.compile("users", ["name", "posts", "bogus"], nested={"users": ["name"], "zz": ["x"]})
        compiler.compile("users", ["posts", "name"], nested={"posts": ["author", "title", "nope"]})
        other = compiler.compile("users", ["name", "posts"], nested={"posts": ["title", "tags"]})

        keys = [key for key in memory_backend.store if key.startswith("test:model-eager-loads:users:")]
        assert len(keys) == 2
        assert other.paths == ["posts", "posts.tags"]

    def test_plan_cached_as_json(self, registry, settings, memory_backend):
        cache = MetadataCache(memory_backend, prefix="test")
        compiler = EagerLoadCompiler(registry, FieldResolver(registry, settings, cache), settings, cache)
        plan = compiler.compile("users", ["organization", "postsCount"])

        keys = [key for key in memory_backend.store if key.startswith("test:model-eager-loads:users:")]
        assert len(keys) == 1

        # A fresh process reads the same plan back from the backend
        reader_cache = MetadataCache(memory_backend, prefix="test")
        reader = EagerLoadCompiler(registry, FieldResolver(registry, settings, reader_cache), settings, reader_cache)
        restored = reader.compile("users", ["postsCount", "organization"])

        assert isinstance(restored, EagerLoadPlan)
        assert restored == plan


class TestAggregatesFor:
    """Tests for root aggregate selection."""

    def test_defaults(self, compiler):
        assert list(compiler.aggregates_for("users")) == ["ordersAverageTotal"]

    def test_explicit_aliases(self, compiler):
        aggregates = compiler.aggregates_for("users", ["postsCount", "bogus", "name", "ordersSumTotal"])

        assert list(aggregates) == ["ordersSumTotal", "postsCount"]
        assert aggregates["ordersSumTotal"] == AggregateLoad(relation="orders", kind="sum", column="total")

    def test_duplicate_aliases_merge(self, compiler):
        assert list(compiler.aggregates_for("users", ["postsCount", "postsCount"])) == ["postsCount"]

    def test_plan_with_aggregates_keeps_existing(self, compiler):
        plan = compiler.compile("users", ["postsCount"])
        merged = plan.with_aggregates(compiler.aggregates_for("users"))

        assert list(merged.aggregates) == ["ordersAverageTotal", "postsCount"]

    def test_no_aggregates(self):
        compiler = make_compiler([AResource, BResource])
        assert compiler.aggregates_for("a") == {}
