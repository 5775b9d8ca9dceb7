"""
Database session management for the Library Ledger.

This module provides connection management and session handling for SQLAlchemy.
Ledger commands rely on it for:

1. Transaction Management: a loan insert and its counter update commit together
2. Connection Pooling: one engine per process, short-lived sessions per command
3. Error Recovery: failed commits are rolled back and surfaced as ledger errors

Sessions should be short-lived (one per command) and used through
``session_scope()`` so they are always closed.
"""

import logging
from collections.abc import Callable, Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TypeVar

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import get_config
from ..errors import DatabaseError
from .schema import Base

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DatabaseManager:
    """
    Manages database connections and sessions.

    This class provides:
    - A lazily created engine with SQLite foreign keys enabled
    - A session factory with explicit transactions
    - Schema creation for development and tests
    """

    def __init__(self, database_url: str | None = None):
        """
        Initialize the database manager.

        Args:
            database_url: SQLAlchemy database URL. If None, uses the configured one.
        """
        if database_url is None:
            config = get_config()
            if config.database_url:
                database_url = config.database_url
            else:
                db_path = config.database_path
                if not db_path.is_absolute():
                    db_path = Path.cwd() / db_path
                db_path.parent.mkdir(exist_ok=True, parents=True)
                database_url = f"sqlite:///{db_path}"
                logger.info("Using SQLite database at: %s", db_path)

        self.database_url = database_url
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None

    @property
    def engine(self) -> Engine:
        """
        Get or create the database engine.

        In-memory SQLite shares one connection through StaticPool; file
        databases get a regular pool so independent sessions really are
        independent transactions.
        """
        if self._engine is None:
            if self.database_url.startswith("sqlite"):
                engine_kwargs = {"connect_args": {"check_same_thread": False}, "echo": False}
                if ":memory:" in self.database_url or self.database_url == "sqlite://":
                    engine_kwargs["poolclass"] = StaticPool
                self._engine = create_engine(self.database_url, **engine_kwargs)

                @event.listens_for(self._engine, "connect")
                def set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ARG001
                    cursor = dbapi_connection.cursor()
                    cursor.execute("PRAGMA foreign_keys=ON")
                    cursor.close()
            else:
                self._engine = create_engine(
                    self.database_url,
                    pool_size=10,
                    max_overflow=20,
                    pool_pre_ping=True,
                    echo=False,
                )

            logger.info("Database engine created: %s", self._engine.url)

        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        """Get or create the session factory."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine,
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,
            )
        return self._session_factory

    def create_session(self) -> Session:
        """Create a new database session. Callers must close it."""
        return self.session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope for database operations.

        ```python
        with db_manager.session_scope() as session:
            ledger = LoanLedger(session)
            ledger.return_loan(loan_id)
        # Session is automatically committed or rolled back
        ```
        """
        session = self.create_session()
        try:
            yield session
            session.commit()
            logger.debug("Database transaction committed successfully")
        except Exception:
            logger.exception("Database error, rolling back")
            session.rollback()
            raise
        finally:
            session.close()

    def init_database(self, drop_existing: bool = False) -> None:
        """
        Initialize the database schema.

        Args:
            drop_existing: If True, drop all tables before creating
        """
        engine = self.engine

        if drop_existing:
            logger.warning("Dropping all existing tables...")
            Base.metadata.drop_all(bind=engine)

        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialization complete")

    def verify_connection(self) -> bool:
        """Return True if a trivial query succeeds."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database connection verified")
            return True
        except SQLAlchemyError:
            logger.exception("Database connection failed")
            return False

    def close(self) -> None:
        """Dispose of the engine and forget the session factory."""
        if self._engine:
            self._engine.dispose()
            logger.info("Database engine disposed")
        self._engine = None
        self._session_factory = None


_db_manager: DatabaseManager | None = None


def get_db_manager(database_url: str | None = None) -> DatabaseManager:
    """
    Get the global database manager instance.

    Args:
        database_url: Database URL (only used on first call)
    """
    global _db_manager  # noqa: PLW0603 - Singleton pattern for database manager

    if _db_manager is None:
        _db_manager = DatabaseManager(database_url)

    return _db_manager


def reset_db_manager() -> None:
    """Dispose of the global database manager (useful for testing)."""
    global _db_manager  # noqa: PLW0603

    if _db_manager is not None:
        _db_manager.close()
    _db_manager = None


def get_session() -> Session:
    """
    Get a new database session.

    Prefer session_scope() when the caller does not commit itself.
    """
    return get_db_manager().create_session()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Convenience context manager around the global database manager."""
    with get_db_manager().session_scope() as session:
        yield session


def safe_commit(session: Session, operation: str) -> None:
    """
    Commit a session, rolling back on failure.

    IntegrityError is re-raised unchanged so repositories can translate
    constraint violations; any other database error becomes DatabaseError.

    Args:
        session: The database session
        operation: Description of the operation (for error messages)
    """
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        raise DatabaseError(f"Database operation '{operation}' failed: {e!s}") from e


def safe_query(session: Session, query_func: Callable[[Session], T], error_msg: str) -> T:
    """
    Execute a query, translating database failures into DatabaseError.

    Args:
        session: The database session
        query_func: Function that performs the query
        error_msg: Error message prefix

    Returns:
        Query result
    """
    try:
        return query_func(session)
    except SQLAlchemyError as e:
        logger.exception("Query failed")
        raise DatabaseError(f"{error_msg}: Database query failed") from e
