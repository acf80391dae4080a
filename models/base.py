"""
SQLAlchemy declarative base and the SQLite engine factory.

The whole system keeps its state in one embedded SQLite file. There is no
module-level engine here: whoever needs a store builds one with
create_sqlite_engine() and hands the resulting JobStore to the ticker,
executor and trigger service. Tests do the same with a temp file.

Durability settings applied to every connection:
- journal_mode=WAL: readers never see a half-written row, and a crash
  between two commits never loses the first one
- synchronous=FULL: a commit has reached the disk when it returns
- busy_timeout: a second process (API + worker) waits instead of failing
"""

import os

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ORM models. SQLAlchemy uses this to track table metadata."""
    pass


def _apply_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=FULL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def create_sqlite_engine(database_path: str) -> Engine:
    """
    Build an engine for a file-backed SQLite database.

    The parent directory is created if missing. check_same_thread=False
    because job handlers run in worker threads and share the engine's pool.
    """
    directory = os.path.dirname(os.path.abspath(database_path))
    os.makedirs(directory, exist_ok=True)

    engine = create_engine(
        f"sqlite:///{database_path}",
        echo=False,
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _apply_sqlite_pragmas)
    return engine
