from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
import storage
from database import Base, get_db, make_engine
from main import app


@pytest.fixture()
def engine():
    """In-memory SQLite shared by every session of a test."""
    eng = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def account(db) -> dict:
    return storage.register_account(db, "owner@example.com", "secret")


@pytest.fixture()
def other_account(db) -> dict:
    return storage.register_account(db, "other@example.com", "secret")


@pytest.fixture()
def client(session_factory) -> Generator[TestClient, None, None]:
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_client(client) -> TestClient:
    resp = client.post("/api/auth/register", json={"email": "owner@example.com", "password": "secret"})
    assert resp.status_code == 201
    return client


def order_fields(**overrides) -> dict:
    fields = {
        "name": "Flat 3B",
        "cleaning_date": "2024-06-01",
        "start_time": None,
        "status": "Pending",
        "payment_status": "Unpaid",
        "notes": None,
        "price": None,
    }
    fields.update(overrides)
    return fields
