"""
Tests for database schema and session management.

These tests verify:
1. Database tables are created correctly
2. Relationships work as expected
3. Check and foreign key constraints are enforced
4. Session management works properly
"""

from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import inspect, text
from sqlalchemy.exc import IntegrityError

from library_ledger.database import (
    Book,
    Loan,
    LoanStatusEnum,
    Member,
    MemberCategoryEnum,
    Visit,
    Visitor,
    get_db_manager,
    reset_db_manager,
    safe_query,
    session_scope,
)
from library_ledger.errors import DatabaseError


@pytest.fixture
def db_manager(test_database_url):
    """The global database manager, bound to a file database for the test."""
    reset_db_manager()
    manager = get_db_manager(test_database_url)
    manager.init_database()
    yield manager
    reset_db_manager()


@pytest.fixture
def session(db_manager):
    with db_manager.session_scope() as session:
        yield session


def make_book(**overrides) -> Book:
    values = {
        "title": "Ronggeng Dukuh Paruk",
        "author": "Ahmad Tohari",
        "category": "Fiction",
        "total_copies": 2,
        "available_copies": 2,
    }
    values.update(overrides)
    return Book(**values)


class TestDatabaseSchema:
    """Schema creation and basic operations."""

    def test_tables_created(self, session):
        tables = inspect(session.bind).get_table_names()
        assert set(tables) == {"books", "members", "loans", "visitors", "visits"}

    def test_ids_are_generated(self, session):
        book = make_book()
        member = Member(name="Dewi Lestari")
        session.add_all([book, member])
        session.flush()

        assert len(book.id) == 36
        assert len(member.id) == 36
        assert book.id != member.id
        assert member.category == MemberCategoryEnum.GENERAL

    def test_loan_relationships(self, session):
        book = make_book()
        member = Member(name="Dewi Lestari", category=MemberCategoryEnum.STUDENT)
        session.add_all([book, member])
        session.flush()

        loan = Loan(member_id=member.id, book_id=book.id, return_date=date.today())
        session.add(loan)
        session.flush()

        assert loan.status == LoanStatusEnum.BORROWED
        assert loan.fine == 0.0
        assert loan.loan_date is not None
        assert loan.member.name == "Dewi Lestari"
        assert book.loans == [loan]
        assert member.loans == [loan]

    def test_visit_relationships(self, session):
        visitor = Visitor(name="Rina", address="Jl. Kenanga 3")
        session.add(visitor)
        session.flush()

        visit = Visit(visitor_id=visitor.id)
        session.add(visit)
        session.flush()

        assert visit.visit_date == date.today()
        assert visit.is_open
        assert visitor.visits == [visit]


class TestConstraints:
    """Constraints that guard the copy counters and the visit log."""

    @pytest.mark.parametrize(
        "copies",
        [
            {"total_copies": 3, "available_copies": 5},
            {"total_copies": 3, "available_copies": -1},
            {"total_copies": -1, "available_copies": 0},
        ],
    )
    def test_copy_counters_checked(self, db_manager, copies):
        with pytest.raises(IntegrityError), db_manager.session_scope() as session:
            session.add(make_book(**copies))

    def test_unique_book_code(self, db_manager):
        with db_manager.session_scope() as session:
            session.add(make_book(book_code="FIK-001"))

        with pytest.raises(IntegrityError), db_manager.session_scope() as session:
            session.add(make_book(title="Another", book_code="FIK-001"))

    def test_negative_fine_rejected(self, db_manager):
        with db_manager.session_scope() as session:
            book = make_book()
            member = Member(name="Dewi Lestari")
            session.add_all([book, member])
            session.flush()
            ids = (member.id, book.id)

        with pytest.raises(IntegrityError), db_manager.session_scope() as session:
            session.add(
                Loan(member_id=ids[0], book_id=ids[1], return_date=date.today(), fine=-1.0)
            )

    def test_loan_needs_existing_member(self, db_manager):
        with db_manager.session_scope() as session:
            book = make_book()
            session.add(book)
            session.flush()
            book_id = book.id

        with pytest.raises(IntegrityError), db_manager.session_scope() as session:
            session.add(Loan(member_id="missing", book_id=book_id, return_date=date.today()))

    def test_visit_needs_exactly_one_guest(self, db_manager):
        with db_manager.session_scope() as session:
            visitor = Visitor(name="Rina", address="Jl. Kenanga 3")
            member = Member(name="Dewi Lestari")
            session.add_all([visitor, member])
            session.flush()
            ids = (visitor.id, member.id)

        with pytest.raises(IntegrityError), db_manager.session_scope() as session:
            session.add(Visit())

        with pytest.raises(IntegrityError), db_manager.session_scope() as session:
            session.add(Visit(visitor_id=ids[0], member_id=ids[1]))

    def test_checkout_not_before_checkin(self, db_manager):
        with db_manager.session_scope() as session:
            visitor = Visitor(name="Rina", address="Jl. Kenanga 3")
            session.add(visitor)
            session.flush()
            visitor_id = visitor.id

        checkin = datetime.now()
        with pytest.raises(IntegrityError), db_manager.session_scope() as session:
            session.add(
                Visit(
                    visitor_id=visitor_id,
                    checkin_time=checkin,
                    checkout_time=checkin - timedelta(minutes=5),
                )
            )


class TestSessionManagement:
    """Session helpers."""

    def test_session_scope_commit(self, db_manager):
        with session_scope() as session:
            session.add(Member(name="Session Member"))

        with session_scope() as session:
            assert session.query(Member).filter_by(name="Session Member").count() == 1

    def test_session_scope_rollback(self, db_manager):
        with pytest.raises(ValueError, match="Test error"), session_scope() as session:  # noqa: PT012
            session.add(Member(name="Rollback Member"))
            raise ValueError("Test error")

        with session_scope() as session:
            assert session.query(Member).filter_by(name="Rollback Member").count() == 0

    def test_verify_connection(self, db_manager):
        assert db_manager.verify_connection() is True

    def test_safe_query_wraps_database_errors(self, session):
        with pytest.raises(DatabaseError, match="Broken query"):
            safe_query(
                session,
                lambda s: s.execute(text("SELECT * FROM no_such_table")).all(),
                "Broken query",
            )

    def test_drop_existing_recreates_tables(self, db_manager):
        with session_scope() as session:
            session.add(Member(name="Dropped Member"))

        db_manager.init_database(drop_existing=True)

        with session_scope() as session:
            assert session.query(Member).count() == 0
