"""Database engine, session factory and the FastAPI session dependency."""

from __future__ import annotations

from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from marketchat.config import get_settings

Base = declarative_base()


def build_engine(database_url: str) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    settings = get_settings()
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )


class DatabaseManager:
    """Lazily builds the engine so importing models never opens a connection."""

    def __init__(self, database_url: Optional[str] = None) -> None:
        self._database_url = database_url
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            url = self._database_url or get_settings().database_url or ""
            self._engine = build_engine(url)
        return self._engine

    @property
    def SessionLocal(self) -> sessionmaker:
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                autocommit=False, autoflush=False, bind=self.engine
            )
        return self._session_factory

    def create_all(self) -> None:
        # Import models so they register with Base before create_all
        import marketchat.models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)


db_manager = DatabaseManager()


def get_db() -> Iterator[Session]:
    """FastAPI dependency to provide a DB session to routes."""
    db = db_manager.SessionLocal()
    try:
        yield db
    finally:
        db.close()
