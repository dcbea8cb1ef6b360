"""Database session management."""

from collections.abc import Generator
from pathlib import Path
from typing import Annotated

from fastapi import Depends
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings


def build_engine(database_url: str) -> Engine:
    """Create an engine with pool settings appropriate to the backend."""
    connect_args = {}

    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        pool_config = {"pool_pre_ping": True}
        # File databases live under ./data by default; make sure it exists.
        db_path = make_url(database_url).database
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    else:
        pool_config = {
            "pool_size": 20,
            "max_overflow": 40,
            "pool_pre_ping": True,
            "pool_recycle": 3600,
        }

    new_engine = create_engine(
        database_url,
        connect_args=connect_args,
        echo=settings.sql_echo,
        **pool_config,
    )

    if database_url.startswith("sqlite"):
        enable_sqlite_foreign_keys(new_engine)

    return new_engine


def enable_sqlite_foreign_keys(target: Engine) -> None:
    @event.listens_for(target, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Get database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Type alias for dependency injection
DbSession = Annotated[Session, Depends(get_db)]
