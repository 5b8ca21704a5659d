import os

os.environ.setdefault("AI_MODE", "mock")

import pytest
import fakeredis
import fakeredis.aioredis
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fridgemind.main import app
from fridgemind.db import Base, get_db
from fridgemind.infra import redis_client
from fridgemind.infra.rate_limit import limiter
from fridgemind.models import Workspace, InventoryItem, SavedRecipe

# --- Test Database Setup ---

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,  # one in-memory database shared by every session
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def mock_redis():
    server = fakeredis.FakeServer()
    redis_client.set_redis(fakeredis.aioredis.FakeRedis(server=server, decode_responses=True))
    yield
    redis_client.set_redis(None)


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield


@pytest.fixture
def client():
    """Test client with DB override."""
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def db_session():
    """Direct database session for setup and assertions."""
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def workspace(db_session):
    ws = Workspace(id="00000000-0000-0000-0000-000000000000", slug="test", name="Test Household")
    db_session.add(ws)
    db_session.commit()
    db_session.refresh(ws)
    return ws


@pytest.fixture
def headers(workspace):
    return {"X-Workspace-Id": workspace.id}


@pytest.fixture
def add_item(db_session, workspace):
    """Insert an active inventory item directly."""
    def _add(name, quantity=1.0, location="fridge", **kw):
        item = InventoryItem(
            workspace_id=workspace.id,
            name=name,
            quantity=quantity,
            location=location,
            storage_category=kw.pop("storage_category", "pantry"),
            **kw,
        )
        db_session.add(item)
        db_session.commit()
        db_session.refresh(item)
        return item
    return _add


@pytest.fixture
def add_recipe(db_session, workspace):
    def _add(name, ingredients, servings=2):
        recipe = SavedRecipe(workspace_id=workspace.id, name=name, servings=servings, ingredients=ingredients)
        db_session.add(recipe)
        db_session.commit()
        db_session.refresh(recipe)
        return recipe
    return _add


@pytest.fixture
def stock(db_session, workspace):
    """{name: quantity} of active items, read fresh."""
    def _stock():
        db_session.expire_all()
        items = db_session.query(InventoryItem).filter(
            InventoryItem.workspace_id == workspace.id,
            InventoryItem.consumed_at.is_(None),
        ).all()
        return {i.name: float(i.quantity) for i in items}
    return _stock
