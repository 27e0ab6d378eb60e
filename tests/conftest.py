import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from data.database import Base, get_db
from main import app
from services.cache import get_cache_client, get_mock_cache_client
from celery_config import celery_app
from config import config
import sys
import os

sys.path.append(os.path.dirname(os.path.dirname(__file__)))

# Same file the Celery task session writes to (see DATABASE_URL in the root conftest)
SQLALCHEMY_DATABASE_URL = config.database_url

engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Run event tasks inline instead of sending them to a broker
celery_app.conf.update(task_always_eager=True, task_eager_propagates=True)

AUTH_HEADERS = {"Authorization": "Bearer fake-client-token"}


# Dependency override for DB
def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def setup_database():
    # Every test starts with an empty catalog so the active experiments are only its own
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(autouse=True)
def cache_client():
    cache = get_mock_cache_client()
    app.dependency_overrides[get_cache_client] = lambda: cache
    yield cache
    app.dependency_overrides.pop(get_cache_client, None)


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers():
    return dict(AUTH_HEADERS)


@pytest.fixture
def create_experiment(client, auth_headers):
    """Create an experiment through the API and optionally activate it."""
    def _create(activate=True, **overrides):
        payload = {
            "name": "Hero copy test",
            "description": "A/B test on the landing hero",
            "traffic_percentage": 100,
            "variants": [
                {"name": "Control", "is_control": True, "traffic_percentage": 50},
                {"name": "Variant A", "traffic_percentage": 50,
                 "components": [{"type": "hero", "variant": "bold", "visible": True}]},
            ],
        }
        payload.update(overrides)
        response = client.post("/experiments", json=payload, headers=auth_headers)
        assert response.status_code == 201, response.text
        experiment = response.json()
        if activate:
            response = client.patch(f"/experiments/{experiment['id']}/status",
                                    json={"status": "active"}, headers=auth_headers)
            assert response.status_code == 200, response.text
            experiment = response.json()
        return experiment
    return _create
