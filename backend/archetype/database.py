"""
Engine, session factory and declarative base for the assessment store.

PostgreSQL in deployment (schema owned by Alembic); SQLite for local runs and
the test suite, where tables are created straight from the models.
"""

import os
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from archetype.logging_config import get_logger, log_with_context

logger = get_logger("db")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./archetype.db")


def _set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str):
    """
    Create an engine configured for the database type in ``url``.

    SQLite does not support pool_size, max_overflow, or pool_pre_ping, and
    needs foreign keys switched on per connection.
    """
    engine_kwargs = {"echo": False}

    if url.startswith("postgresql"):
        engine_kwargs.update({
            "pool_size": 10,
            "max_overflow": 20,
            "pool_pre_ping": True,
        })
    elif url.startswith("sqlite"):
        # SQLite needs check_same_thread=False for FastAPI (multi-threaded)
        engine_kwargs["connect_args"] = {"check_same_thread": False}

    new_engine = create_engine(url, **engine_kwargs)

    if url.startswith("sqlite"):
        event.listen(new_engine, "connect", _set_sqlite_pragma)

    return new_engine


engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """Declarative base shared by every archetype model."""


def get_db():
    """Request-scoped session; closed even when the handler raises."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(bind=None):
    """Create every mapped table on ``bind`` (defaults to the module engine)."""
    # Registers the tables on Base.metadata
    import archetype.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
    log_with_context(logger, "INFO", "Created {} tables".format(len(Base.metadata.tables)),
                     extra_data={"dialect": (bind or engine).dialect.name})
