import os
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

# Keep the module-level engine in db.database off the real data directory.
os.environ.setdefault("FLASHRECALL_DATABASE_URL", "sqlite:///:memory:")

from db.database import enable_sqlite_foreign_keys  # noqa: E402
from db.models import Base  # noqa: E402


@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite database for each test."""
    engine = create_engine("sqlite:///:memory:")
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine, expire_on_commit=False) as s:
        yield s


@pytest.fixture
def now():
    return datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)
