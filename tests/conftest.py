"""Shared fixtures: in-memory database, account/game factories, API client."""

import os
from datetime import datetime

# Keep the module-level engine off disk and the scheduler off during tests
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ghsabet.models import Base, get_db
from ghsabet.services import accounts, games


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch):
    monkeypatch.setattr(accounts, "_HASH_ITERATIONS", 1_000)


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
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


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(username=None, password="secret", balance="500.00", is_admin=False):
        counter["n"] += 1
        return accounts.create_user(
            db,
            username or f"bettor{counter['n']}",
            password,
            balance=balance,
            is_admin=is_admin,
        )

    return _make


@pytest.fixture
def make_game(db):
    def _make(**overrides):
        fields = {
            "sport": "football",
            "team1": "Team A",
            "team2": "Team B",
            "game_date": datetime(2026, 10, 23, 19, 0),
            "location": "Memorial Stadium",
            "moneyline_team1": 150,
            "moneyline_team2": -170,
            "spread": -3.5,
            "spread_odds": -110,
        }
        fields.update(overrides)
        return games.create_game(db, **fields)

    return _make


@pytest.fixture
def session_for():
    """BettorSession for a user row."""
    def _session(user):
        return accounts.BettorSession(
            user_id=user.id, username=user.username, is_admin=bool(user.is_admin)
        )

    return _session


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------

@pytest.fixture
def client(session_factory):
    from ghsabet.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def login(client):
    """Log in through the API and return the X-API-Key header."""
    def _login(username, password="secret"):
        resp = client.post("/api/auth/login", json={"username": username, "password": password})
        assert resp.status_code == 200, resp.text
        return {"X-API-Key": resp.json()["token"]}

    return _login
