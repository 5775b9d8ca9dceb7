"""Tests for the sample data generator."""

from library_ledger.database.loan_ledger import LoanLedger
from library_ledger.database.schema import Base, Book, Loan, LoanStatusEnum, Member, Visit, Visitor
from library_ledger.database.seed import seed_database


def test_seed_counts(test_db_session):
    summary = seed_database(
        test_db_session, num_books=10, num_members=5, num_loans=20, num_visits=15, seed=7
    )

    assert summary["books"] == test_db_session.query(Book).count() == 10
    assert summary["members"] == test_db_session.query(Member).count() == 5
    assert summary["loans"] == test_db_session.query(Loan).count()
    assert summary["visitors"] == test_db_session.query(Visitor).count() == 3
    assert summary["visits"] == test_db_session.query(Visit).count() == 15
    assert 16 <= summary["loans"] <= 20


def test_seeded_counters_match_loans(test_db_session, assert_counters_consistent):
    seed_database(test_db_session, seed=42)

    assert LoanLedger(test_db_session).audit_availability() == []
    assert_counters_consistent()


def test_seed_is_repeatable(session_factory, test_engine):
    def snapshot():
        with session_factory() as session:
            seed_database(session, num_books=8, num_members=4, num_loans=10, num_visits=5, seed=3)
            titles = sorted(b.title for b in session.query(Book).all())
            borrowed = session.query(Loan).filter_by(status=LoanStatusEnum.BORROWED).count()
        Base.metadata.drop_all(test_engine)
        Base.metadata.create_all(test_engine)
        return titles, borrowed

    assert snapshot() == snapshot()
