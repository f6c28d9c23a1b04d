"""
Database connection and session management

Two kinds of connections exist:
  * the central database (registry, users, roles, column state, audit), used
    through SQLAlchemy ORM sessions;
  * the business databases that hold the grid procedures, reached through
    GridDatabaseRouter by the registry row's DatabaseName.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from contextlib import contextmanager
from typing import Generator, Optional
import structlog

from gridportal.config import settings

logger = structlog.get_logger()

engine = create_engine(
    settings.DATABASE_URL,
    pool_size=20,
    max_overflow=30,
    pool_pre_ping=True,
    echo=settings.DEBUG,
    connect_args={'connect_timeout': 10}
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Dependency for central database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """Context manager for central database session."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


class GridDatabaseRouter:
    """Resolve and open connections to the databases that host grid procedures."""

    def __init__(self, default_url: Optional[str] = None, databases: Optional[dict] = None):
        self.default_url = default_url or settings.DATABASE_URL
        self.databases = dict(settings.GRID_DATABASES if databases is None else databases)

    def get_connection_url(self, database_name: Optional[str] = None) -> str:
        """
        Get the connection URL for a named database.

        Blank names use the central database. Unknown names fall back to the
        central database with a warning.
        """
        if not database_name or not database_name.strip():
            return self.default_url

        url = self.databases.get(database_name)
        if not url:
            logger.warning("grid_database_not_configured", database_name=database_name)
            return self.default_url

        logger.debug("grid_database_resolved", database_name=database_name)
        return url

    def create_engine(self, connection_url: str):
        """Create a SQLAlchemy engine for a grid database."""
        return create_engine(
            connection_url,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
            echo=settings.DEBUG,
            connect_args={'connect_timeout': 10}
        )

    @contextmanager
    def get_connection(self, database_name: Optional[str] = None):
        """
        Open a connection to the named grid database.

        The engine is ephemeral: it is disposed when the connection closes.
        """
        engine = self.create_engine(self.get_connection_url(database_name))
        connection = None
        try:
            connection = engine.connect()
            yield connection
        finally:
            if connection is not None:
                connection.close()
            engine.dispose()


grid_db_router = GridDatabaseRouter()


def get_grid_db_router() -> GridDatabaseRouter:
    """Dependency for the grid database router."""
    return grid_db_router
