import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import pytest
from fastapi.testclient import TestClient

from app import crud, schemas
from app.config import Settings
from app.database import create_db_engine, create_session_factory, init_db
from app.main import create_app

TEST_SECRET = "test-signing-secret"
INVITE_CODE = "staff-only-invite"
PASSWORD = "password123"


@pytest.fixture
def settings(tmp_path):
    # Each test gets its own database file; bcrypt cost is lowered for speed
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'library_test.db'}",
        database_lock_timeout=30,
        jwt_secret_key=TEST_SECRET,
        bcrypt_rounds=4,
        admin_invite_code=INVITE_CODE,
        max_active_checkouts=3,
        log_level="WARNING",
    )


@pytest.fixture
def client(settings):
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def session_factory(settings):
    engine = create_db_engine(settings)
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


def signup(client, username, password=PASSWORD, **extra):
    payload = {"username": username, "email": f"{username}@example.com", "password": password}
    payload.update(extra)
    return client.post("/api/auth/signup", json=payload)


@pytest.fixture
def patron(client):
    body = signup(client, "patron01").json()
    return {"id": body["user"]["id"], "headers": auth_headers(body["token"])}


@pytest.fixture
def admin_headers(client):
    body = signup(client, "librarian", role="admin", adminInviteCode=INVITE_CODE).json()
    return auth_headers(body["token"])


@pytest.fixture
def add_book(client, admin_headers):
    counter = {"n": 0}

    def _add_book(copies=1, **fields):
        counter["n"] += 1
        payload = {
            "title": f"Test Book {counter['n']}",
            "author": "Test Author",
            "isbn": f"97800000000{counter['n']:02d}",
            "description": "A book for testing",
            "page_count": 200,
            "copies": copies,
        }
        payload.update(fields)
        response = client.post("/api/books", json=payload, headers=admin_headers)
        assert response.status_code == 201
        return response.json()

    return _add_book


def make_user(db, username, role="patron"):
    return crud.create_user(db, username, f"{username}@example.com", PASSWORD, role=role, rounds=4)


def make_book(db, copies=1, title="Ledger Book"):
    return crud.create_book(db, schemas.BookCreate(title=title, author="Ledger Author", copies=copies))
