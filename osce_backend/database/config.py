"""
Database configuration: engine, session factory and the request-scoped
session dependency.
"""
import logging
import os
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .base import Base

logger = logging.getLogger(__name__)


class DatabaseConfig:
    """Holds the engine and session factory for one database URL"""

    def __init__(self, database_url: Optional[str] = None, echo: Optional[bool] = None, **engine_kwargs):
        self.database_url = database_url or os.getenv("DATABASE_URL", "sqlite:///./osce.db")
        if echo is None:
            echo = os.getenv("DB_ECHO", "false").lower() == "true"

        if self.database_url.startswith("sqlite"):
            engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
        else:
            engine_kwargs.setdefault("pool_pre_ping", True)
            engine_kwargs.setdefault("pool_size", int(os.getenv("DB_POOL_SIZE", "5")))

        self.engine: Engine = create_engine(self.database_url, echo=echo, **engine_kwargs)

        if self.engine.dialect.name == "sqlite":
            # SQLite ignora las foreign keys salvo que se activen por conexión
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        logger.info(f"Database configured: dialect={self.engine.dialect.name}")

    def create_all(self) -> None:
        from . import models  # noqa: F401  (registers tables on Base.metadata)
        Base.metadata.create_all(bind=self.engine)

    def session(self) -> Session:
        return self.SessionLocal()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


_db_config: Optional[DatabaseConfig] = None


def get_db_config() -> DatabaseConfig:
    global _db_config
    if _db_config is None:
        _db_config = DatabaseConfig()
    return _db_config


def init_database(database_url: Optional[str] = None, create_tables: bool = True, **engine_kwargs) -> DatabaseConfig:
    """Replaces the global configuration (used at startup and by tests)."""
    global _db_config
    _db_config = DatabaseConfig(database_url, **engine_kwargs)
    if create_tables:
        _db_config.create_all()
    return _db_config


def get_db_session() -> Session:
    """Opens a session outside of a request (scripts, background tasks)."""
    return get_db_config().session()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency: one session per request, always closed."""
    db = get_db_config().session()
    try:
        yield db
    finally:
        db.close()
