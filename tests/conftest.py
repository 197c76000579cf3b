"""Shared test fixtures."""

from dataclasses import dataclass
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from learnlog.config import settings
from learnlog.db.sqlite import get_db, init_sqlite

T0 = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)


@dataclass
class Card:
    """Minimal card-like object for the pure scheduling functions."""

    id: str = "c1"
    deck: str = "default"
    ease_factor: float = 2.5
    interval: int = 1
    repetitions: int = 0
    last_review: datetime | None = None
    next_review: datetime | None = None


@pytest.fixture
def now():
    return T0


@pytest.fixture
def make_card():
    def _make(**kwargs):
        return Card(**kwargs)

    return _make


@pytest.fixture
async def db(tmp_path):
    """Fresh SQLite database in a temp dir, schema and migrations applied."""
    await init_sqlite(tmp_path)
    async for conn in get_db():
        yield conn


@pytest.fixture
def client(tmp_path, monkeypatch):
    """TestClient against a temp data dir with "now" pinned to T0."""
    from learnlog import app
    from learnlog.routers.flashcards import get_now

    monkeypatch.setattr(settings, "data_dir", tmp_path)
    app.dependency_overrides[get_now] = lambda: T0
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
