"""
FlashRecall – Database initialisation & session management
===========================================================
Creates the SQLite database file next to the application (or uses
``FLASHRECALL_DATABASE_URL`` when set) and provides a session factory for
the rest of the app.
"""

import os
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from db.models import Base

DATABASE_URL_ENV = "FLASHRECALL_DATABASE_URL"


def _app_data_dir() -> Path:
    """Return a stable directory for the SQLite file."""
    data_dir = Path(__file__).resolve().parent.parent / "data"
    data_dir.mkdir(exist_ok=True)
    return data_dir


def database_url() -> str:
    """Resolve the database URL: environment override first, then the local file."""
    url = os.environ.get(DATABASE_URL_ENV)
    if url:
        return url
    return f"sqlite:///{_app_data_dir() / 'flashrecall.db'}"


def enable_sqlite_foreign_keys(engine: Engine) -> None:
    """Enable foreign key enforcement for every SQLite connection of *engine*."""
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def make_engine(url: str) -> Engine:
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    engine = create_engine(url, echo=False, connect_args=connect_args)
    enable_sqlite_foreign_keys(engine)
    return engine


engine = make_engine(database_url())
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------

def init_db(bind: Engine = None) -> None:
    """Create all tables if they do not exist yet."""
    Base.metadata.create_all(bind=bind or engine)


def get_session() -> Session:
    """Return a new SQLAlchemy session."""
    return SessionLocal()
