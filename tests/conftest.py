"""
Shared fixtures.

Every test gets a fresh in-memory SQLite database (one connection shared
through StaticPool), outgoing email is captured instead of sent, and bcrypt
runs with the minimum cost so signups stay fast.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SMTP_HOST"] = ""
os.environ["OPENAI_API_KEY"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.deps import get_db
from app.services import mailer
from app.services import users as user_service
from db import Base, make_engine
from main import app


@pytest.fixture
def engine():
    eng = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    """Every email the code tries to send, as (to, subject, template, context)."""
    outbox = []

    def fake_send_email(to, subject, template, **context):
        outbox.append({"to": to, "subject": subject, "template": template, "context": context})
        return True

    monkeypatch.setattr(mailer, "send_email", fake_send_email)
    return outbox


# ---- Helpers ----

def auth_headers(client, name="Alice", email="alice@example.com", password="password123"):
    """Sign up (ignoring an existing user), log in and return bearer headers."""
    client.post("/auth/signup", json={"name": name, "email": email, "password": password})
    res = client.post("/auth/login", json={"email": email, "password": password})
    assert res.status_code == 200, res.text
    return {"Authorization": f"Bearer {res.json()['token']}"}


@pytest.fixture
def alice(client):
    return auth_headers(client)


@pytest.fixture
def bob(client):
    return auth_headers(client, name="Bob Stone", email="bob@example.com")


def make_user(db, name="Carol", email="carol@example.com"):
    """Create a user directly through the service layer; returns the User row."""
    user_service.signup(db, name, email, "password123")
    return user_service.get_by_email(db, email)


def default_account_id(client, headers):
    res = client.get("/accounts/", headers=headers)
    assert res.status_code == 200, res.text
    return res.json()["accounts"][0]["id"]
