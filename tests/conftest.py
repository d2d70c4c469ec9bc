import os
from typing import Generator

# keep the app's own engine off the filesystem during tests
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from portal.db import init_db, get_db
from portal.main import app


@pytest.fixture(scope="function")
def db_session() -> Generator:
    # Use in-memory SQLite with a single connection
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
    init_db(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture(scope="function")
def client(db_session):
    # Override dependency to use the same session
    def override_get_db():
        try:
            yield db_session
        finally:
            pass
    app.dependency_overrides[get_db] = override_get_db
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def signup(client, email, password="secret1", username="Ann", surname="Lee", phone="0800000000"):
    return client.post(
        "/signup",
        data={"username": username, "surname": surname, "email": email, "phone": phone, "password": password},
        follow_redirects=False,
    )


def login(client, email, password="secret1"):
    return client.post("/login", data={"email": email, "password": password}, follow_redirects=False)


@pytest.fixture
def member_client(client):
    signup(client, "member@example.com")
    r = login(client, "member@example.com")
    assert r.headers["location"] == "/"
    return client


@pytest.fixture
def admin_client(client, db_session):
    from scripts.create_admin import create_admin
    create_admin(db_session, "admin@example.com", "adminpass", "Root")
    r = login(client, "admin@example.com", "adminpass")
    assert r.headers["location"] == "/"
    return client
