# db.py
# Role: Database bootstrap for the expense tracker API.
#       Defines the SQLAlchemy engine, session factory, and declarative Base.
#       Falls back to an on-disk SQLite file when DATABASE_URL is not set.

"""
Database setup for the expense tracker.

- DATABASE_URL from the environment (any SQLAlchemy URL), or
- SQLite database at: <project_root>/database/expense_tracker.db
"""

import os

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base

from app import config

# Base directory of the project (where this module lives)
BASE_DIR = os.path.dirname(os.path.abspath(__file__))


def _default_sqlite_url() -> str:
    db_dir = os.path.join(BASE_DIR, "database")
    os.makedirs(db_dir, exist_ok=True)
    return f"sqlite:///{os.path.join(db_dir, 'expense_tracker.db')}"


DATABASE_URL = config.DATABASE_URL or _default_sqlite_url()


def make_engine(url: str, **kwargs):
    """
    Build an engine; SQLite gets check_same_thread=False (FastAPI runs sync
    routes in a threadpool) and enforced foreign keys.
    """
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})

    eng = create_engine(url, **kwargs)

    if url.startswith("sqlite"):
        @event.listens_for(eng, "connect")
        def _enable_sqlite_fks(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return eng


engine = make_engine(DATABASE_URL)

# Standard session factory used via dependency injection (see app/deps.py:get_db)
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

# Declarative base class for ORM models
Base = declarative_base()
