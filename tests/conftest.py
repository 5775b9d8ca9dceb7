"""Test configuration and fixtures for the Library Ledger.

1. Isolated test databases - each test gets its own SQLite file
2. Independent sessions - two sessions on one database for race tests
3. Configuration overrides - settings never leak between tests
4. Tool and resource wiring - handlers read and write the test database
"""

import os
from collections.abc import Generator
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy import create_engine, event, update
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from library_ledger.config import LedgerConfig, reset_config
from library_ledger.database.book_repository import BookCreateSchema, BookRepository
from library_ledger.database.member_repository import MemberCreateSchema, MemberRepository
from library_ledger.database.schema import Base
from library_ledger.database.schema import Book as BookDB
from library_ledger.database.schema import Loan as LoanDB
from library_ledger.database.schema import LoanStatusEnum
from library_ledger.models.member import MemberCategory

# === Test Database Fixtures ===


@pytest.fixture
def test_db_path(tmp_path: Path) -> Path:
    """A database file private to the test."""
    return tmp_path / "test_library.db"


@pytest.fixture
def test_database_url(test_db_path: Path) -> str:
    return f"sqlite:///{test_db_path}"


@pytest.fixture
def test_engine(test_database_url: str) -> Generator[Engine, None, None]:
    """Engine with foreign keys enforced, the same way the server sets it up."""
    engine = create_engine(
        test_database_url,
        echo=False,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ARG001
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(test_engine: Engine) -> sessionmaker:
    """Session factory configured like the server's."""
    return sessionmaker(
        bind=test_engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture
def test_db_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def other_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """A second, independent session on the same database."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# === Configuration Fixtures ===


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch) -> Generator[None, None, None]:
    """Keep the global settings away from the developer's environment."""
    for key in list(os.environ):
        if key.startswith("LIBRARY_LEDGER_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("LIBRARY_LEDGER_DATABASE_PATH", str(tmp_path / "global.db"))
    monkeypatch.setenv("LIBRARY_LEDGER_LOGFIRE_ENABLED", "false")
    reset_config()
    yield
    reset_config()


@pytest.fixture
def test_config(test_db_path: Path) -> LedgerConfig:
    return LedgerConfig(
        server_name="test-library-ledger",
        server_version="0.0.1-test",
        database_path=test_db_path,
        debug=True,
        log_level="DEBUG",
        logfire_enabled=False,
    )


@pytest.fixture
def clean_env(monkeypatch) -> None:
    """No LIBRARY_LEDGER_* variables at all, not even the isolation ones."""
    for key in list(os.environ):
        if key.startswith("LIBRARY_LEDGER_"):
            monkeypatch.delenv(key)
    reset_config()


# === Handler Wiring ===


@pytest.fixture
def use_test_database(monkeypatch, session_factory: sessionmaker) -> sessionmaker:
    """
    Point tool and resource handlers at the test database.

    Every handler call gets a fresh session, as it would in the server.
    """

    @contextmanager
    def test_session_scope():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    monkeypatch.setattr("library_ledger.tools.circulation.get_session", session_factory)
    monkeypatch.setattr("library_ledger.tools.visits.get_session", session_factory)
    monkeypatch.setattr("library_ledger.resources.loans.session_scope", test_session_scope)
    monkeypatch.setattr("library_ledger.resources.stats.session_scope", test_session_scope)
    return session_factory


# === Test Data Fixtures ===


@pytest.fixture
def sample_member(test_db_session):
    return MemberRepository(test_db_session).create(
        MemberCreateSchema(
            name="Siti Rahma",
            birth_place="Bandung",
            birth_date=date(2005, 4, 12),
            address="Jl. Merdeka 10, Bandung",
            phone="0812-3456-7890",
            category=MemberCategory.STUDENT,
        )
    )


@pytest.fixture
def second_member(test_db_session):
    return MemberRepository(test_db_session).create(
        MemberCreateSchema(name="Budi Santoso", address="Jl. Sudirman 5, Jakarta")
    )


@pytest.fixture
def single_copy_book(test_db_session):
    """A title the library owns exactly one copy of."""
    return BookRepository(test_db_session).create(
        BookCreateSchema(
            title="Bumi Manusia",
            author="Pramoedya Ananta Toer",
            category="fiction",
            book_code="FIK-001",
            total_copies=1,
        )
    )


@pytest.fixture
def three_copy_book(test_db_session):
    return BookRepository(test_db_session).create(
        BookCreateSchema(
            title="Laskar Pelangi",
            author="Andrea Hirata",
            category="Fiction",
            book_code="FIK-002",
            total_copies=3,
        )
    )


@pytest.fixture
def add_loan(test_db_session):
    """
    Insert a loan row directly, bypassing the ledger.

    Used to build loan histories with dates in the past. A borrowed loan
    takes its copy off the shelf so the counters stay consistent.
    """

    def _add_loan(
        member_id: str,
        book_id: str,
        loan_date: datetime,
        loan_days: int = 7,
        returned_after_days: int | None = None,
        fine: float = 0.0,
    ) -> str:
        returned = returned_after_days is not None
        loan = LoanDB(
            member_id=member_id,
            book_id=book_id,
            loan_date=loan_date,
            return_date=loan_date.date() + timedelta(days=loan_days),
            actual_return_date=(
                loan_date + timedelta(days=returned_after_days) if returned else None
            ),
            status=LoanStatusEnum.RETURNED if returned else LoanStatusEnum.BORROWED,
            fine=fine,
        )
        test_db_session.add(loan)
        if not returned:
            test_db_session.execute(
                update(BookDB)
                .where(BookDB.id == book_id)
                .values(available_copies=BookDB.available_copies - 1)
            )
        test_db_session.commit()
        return loan.id

    return _add_loan


# === Inspection Fixtures ===


@pytest.fixture
def read_book(session_factory: sessionmaker):
    """Read a book through a brand-new session, bypassing any identity map."""

    def _read_book(book_id: str) -> BookDB:
        with session_factory() as session:
            book = session.get(BookDB, book_id)
            session.expunge(book)
            return book

    return _read_book


@pytest.fixture
def assert_counters_consistent(session_factory: sessionmaker):
    """Check that every book's available copies match its borrowed loans."""

    def _check() -> None:
        with session_factory() as session:
            for book in session.query(BookDB).all():
                borrowed = (
                    session.query(LoanDB)
                    .filter_by(book_id=book.id, status=LoanStatusEnum.BORROWED)
                    .count()
                )
                assert 0 <= book.available_copies <= book.total_copies, book.title
                assert book.available_copies == book.total_copies - borrowed, book.title

    return _check
