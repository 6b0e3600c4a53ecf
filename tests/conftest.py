"""Pytest configuration and fixtures."""

from typing import Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from resourcekit import MetadataCache, ResourceMetadataService, SchemaRegistry, Settings
from resourcekit.runtime import EagerLoadCompiler, FieldResolver

from sample_app import (
    RESOURCES,
    Base,
    Order,
    Organization,
    Post,
    Tag,
    User,
    published_only,
)


class MemoryBackend:
    """Dict-backed stand-in for Redis."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.reads = 0
        self.writes = 0

    def get(self, key: str) -> Optional[str]:
        self.reads += 1
        return self.store.get(key)

    def set(self, key: str, value: str, ttl: Optional[int] = None):
        self.writes += 1
        self.store[key] = value
        return True


class FailingBackend:
    """Backend whose every call fails, like an unreachable Redis."""

    def get(self, key: str) -> Optional[str]:
        raise ConnectionError("backend unavailable")

    def set(self, key: str, value: str, ttl: Optional[int] = None):
        raise ConnectionError("backend unavailable")


def build_registry() -> SchemaRegistry:
    registry = SchemaRegistry()
    registry.register_constraint("published", published_only)
    for resource in RESOURCES:
        registry.register(resource)
    return registry.build()


@pytest.fixture
def settings():
    return Settings(cache_prefix="test", fixed_fields=["id"])


@pytest.fixture
def registry():
    return build_registry()


@pytest.fixture
def cache(settings):
    return MetadataCache(prefix=settings.cache_prefix)


@pytest.fixture
def resolver(registry, settings, cache):
    return FieldResolver(registry, settings, cache)


@pytest.fixture
def compiler(registry, resolver, settings, cache):
    return EagerLoadCompiler(registry, resolver, settings, cache)


@pytest.fixture
def service(registry, settings, cache):
    return ResourceMetadataService(registry, settings=settings, cache=cache)


@pytest.fixture
def memory_backend():
    return MemoryBackend()


@pytest.fixture
def failing_backend():
    return FailingBackend()


@pytest.fixture
def session():
    """In-memory SQLite session seeded with the sample domain."""
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()

    acme = Organization(id=1, name="Acme", country="NL")
    globex = Organization(id=2, name="Globex", country="US")
    python = Tag(id=1, label="python")
    sql = Tag(id=2, label="sql")

    alice = User(id=1, name="Alice", email="alice@acme.test", organization=acme)
    bob = User(id=2, name="Bob", email="bob@globex.test", organization=globex)
    carol = User(id=3, name="Carol", email="carol@acme.test", organization=acme)

    session.add_all([
        acme, globex, python, sql, alice, bob, carol,
        Post(id=1, title="Hello", published=True, author=alice, tags=[python, sql]),
        Post(id=2, title="Draft", published=False, author=alice, tags=[python]),
        Post(id=3, title="News", published=True, author=bob),
        Order(id=1, total=10.0, reference="A-1", user=alice),
        Order(id=2, total=30.0, reference="A-2", user=alice),
        Order(id=3, total=5.0, reference="B-1", user=bob),
    ])
    session.commit()

    try:
        yield session
    finally:
        session.close()
        engine.dispose()
