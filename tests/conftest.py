"""Test configuration and fixtures."""

import copy
import os

# Settings are read at import time; keep the module-level engine off
# PostgreSQL and the migration endpoints unthrottled.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from schemaforge.api import app
from schemaforge.database import build_engine
from schemaforge.dependencies import get_db
from schemaforge.metadata import Base
from schemaforge.registry import SchemaRegistry


CUSTOMER_V1 = {
    "type": "object",
    "properties": {
        "id": {"type": "string", "format": "uuid", "database": {"primaryKey": True}},
        "name": {"type": "string", "maxLength": 100},
    },
    "required": ["id", "name"],
}


def customer_v2():
    """CUSTOMER_V1 plus an optional email column."""
    definition = copy.deepcopy(CUSTOMER_V1)
    definition["properties"]["email"] = {"type": "string", "format": "email"}
    return definition


@pytest.fixture
def engine():
    engine = build_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine)


@pytest.fixture
def test_db(session_factory):
    """Create test database session."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    """HTTP client whose requests each get their own session on the test engine."""

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def customer_definition():
    return copy.deepcopy(CUSTOMER_V1)


@pytest.fixture
def customer_v2_definition():
    return customer_v2()


@pytest.fixture
def make_schema(test_db):
    """Factory creating draft schemas through the registry."""

    def _make(model_id="customer", version="1.0.0", *, table_name=None, definition=None, **kwargs):
        return SchemaRegistry(test_db).create(
            model_id=model_id,
            version=version,
            name=kwargs.pop("name", model_id.title()),
            table_name=table_name or f"{model_id}s",
            definition=copy.deepcopy(definition or CUSTOMER_V1),
            **kwargs,
        )

    return _make
