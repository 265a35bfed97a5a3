# tests/conftest.py
from datetime import datetime

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import carfinder.models  # noqa: F401 ensure models are imported so tables are known
from carfinder import config
from carfinder.db import Base, make_engine
from carfinder.models import SavedSearch
from carfinder.schemas import Listing


@pytest.fixture
def engine():
    eng = make_engine("sqlite://")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def search(db):
    obj = SavedSearch(
        id="search-1",
        name="Carros RS",
        human_url="https://www.olx.com.br/autos-e-pecas/carros-vans-e-utilitarios/estado-rs?ps=20000",
        model_whitelist=[],
        model_blacklist=[],
    )
    db.add(obj)
    db.commit()
    return obj


@pytest.fixture
def make_listing():
    def _make(list_id, model=None, search_id="search-1", price="R$ 10.000", mileage=None, subject=None):
        return Listing(
            list_id=str(list_id),
            search_id=search_id,
            subject=subject or (f"{model} 2015" if model else "Carro"),
            price=price,
            municipality="Porto Alegre",
            neighbourhood="Centro",
            ad_url=f"https://rs.olx.com.br/ad/{list_id}",
            model=model,
            mileage=mileage,
            collected_at=datetime(2024, 5, 1, 12, 0, 0),
        )
    return _make


@pytest.fixture
def mock_client():
    """httpx.Client whose responses come from `handler(request)`."""
    clients = []

    def _make(handler):
        client = httpx.Client(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield _make
    for c in clients:
        c.close()


@pytest.fixture
def client(session_factory, monkeypatch):
    from carfinder.db import get_db
    from carfinder.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    monkeypatch.setattr(config, "API_TOKEN", "test-token")
    c = TestClient(app, headers={"X-Access-Token": "test-token"})
    yield c
    app.dependency_overrides.clear()
