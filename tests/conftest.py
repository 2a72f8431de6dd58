import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="posts-api-tests-")

# Must be set before anything under app/ reads the settings
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["MEDIA_ROOT"] = os.path.join(_TMP, "media")
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["DEV_TOKEN_SECRET"] = "open-sesame"
os.environ["IMAGE_STORAGE"] = "local"
os.environ["POSTS_CACHE_ENABLED"] = "true"
os.environ["SEED_DEMO_POSTS"] = "false"

import pytest
from fastapi.testclient import TestClient

from app.db.base import Base
from app.db.session import engine, SessionLocal
from main import app


@pytest.fixture(autouse=True)
def reset_state():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    app.state.cache.clear()
    app.dependency_overrides.clear()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def token(client):
    response = client.post("/auth/register", json={"email": "writer@mail.com", "password": "secret123"})
    assert response.status_code == 200
    return response.json()["token"]


@pytest.fixture
def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}
