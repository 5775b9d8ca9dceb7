"""
Tests for the loan and visit models.

A due date stands for midnight at the start of that day: a loan is overdue
as soon as its due day begins, and a returned loan is never overdue.
"""

from datetime import date, datetime, time, timedelta

import pytest
from pydantic import ValidationError

from library_ledger.models import (
    AvailabilityDrift,
    Loan,
    LoanStats,
    LoanStatus,
    Visit,
    Visitor,
    is_overdue,
)


def make_loan(days_ago: int = 10, loan_days: int = 7, **overrides) -> Loan:
    loan_date = datetime.now() - timedelta(days=days_ago)
    data = {
        "id": "loan-1",
        "member_id": "member-1",
        "book_id": "book-1",
        "loan_date": loan_date,
        "return_date": loan_date.date() + timedelta(days=loan_days),
    }
    data.update(overrides)
    return Loan(**data)


class TestIsOverdue:
    """The overdue rule."""

    def test_borrowed_and_past_due(self):
        loan = make_loan(days_ago=10, loan_days=7)

        assert is_overdue(loan)
        assert loan.is_overdue
        assert loan.days_overdue == 3

    def test_borrowed_and_not_yet_due(self):
        loan = make_loan(days_ago=2, loan_days=7)

        assert not is_overdue(loan)
        assert loan.days_overdue == 0

    def test_due_today(self):
        loan = make_loan(days_ago=7, loan_days=7)

        assert is_overdue(loan, as_of=datetime.combine(date.today(), time(0, 0, 1)))
        assert not is_overdue(loan, as_of=date.today())
        assert loan.days_overdue == 0

    def test_returned_loan_is_never_overdue(self):
        loan_date = datetime.now() - timedelta(days=30)
        loan = make_loan(
            loan_date=loan_date,
            return_date=loan_date.date() + timedelta(days=7),
            status=LoanStatus.RETURNED,
            actual_return_date=loan_date + timedelta(days=20),
        )

        assert not is_overdue(loan)
        assert not is_overdue(loan, as_of=date.today() + timedelta(days=365))

    @pytest.mark.parametrize(
        ("as_of", "expected"),
        [
            (date(2024, 2, 14), False),
            (datetime(2024, 2, 14, 23, 59), False),
            (date(2024, 2, 15), False),
            (datetime(2024, 2, 15, 0, 0), False),
            (datetime(2024, 2, 15, 9, 30), True),
            (date(2024, 2, 16), True),
        ],
    )
    def test_reference_moment(self, as_of, expected):
        loan = make_loan(
            loan_date=datetime(2024, 2, 8, 10, 30), return_date=date(2024, 2, 15)
        )
        assert is_overdue(loan, as_of=as_of) is expected


class TestLoanModel:
    """Validation of loan records."""

    def test_defaults(self):
        loan = make_loan(days_ago=0)

        assert loan.status == LoanStatus.BORROWED
        assert loan.fine == 0.0
        assert loan.actual_return_date is None
        assert loan.loan_period_days == 7

    def test_due_date_before_loan_date(self):
        with pytest.raises(ValidationError, match="Due date"):
            make_loan(days_ago=0, loan_days=-1)

    def test_returned_loan_needs_return_time(self):
        with pytest.raises(ValidationError, match="actual return date"):
            make_loan(status=LoanStatus.RETURNED)

    def test_return_before_loan(self):
        loan_date = datetime.now() - timedelta(days=5)
        with pytest.raises(ValidationError):
            make_loan(
                loan_date=loan_date,
                return_date=loan_date.date() + timedelta(days=7),
                status=LoanStatus.RETURNED,
                actual_return_date=loan_date - timedelta(hours=1),
            )

    def test_negative_fine(self):
        with pytest.raises(ValidationError):
            make_loan(fine=-0.5)

    def test_serializes_status_as_text(self):
        data = make_loan().model_dump(mode="json")
        assert data["status"] == "borrowed"
        assert data["fine"] == 0.0


class TestLedgerModels:
    """Aggregate and audit models."""

    def test_stats_reject_negative_counts(self):
        with pytest.raises(ValidationError):
            LoanStats(total_loans=-1, borrowed_loans=0, returned_loans=0, overdue_loans=0)

    def test_drift_difference(self):
        drift = AvailabilityDrift(
            book_id="book-1",
            title="Bumi Manusia",
            total_copies=3,
            borrowed_loans=1,
            stored_available=0,
            expected_available=2,
        )
        assert drift.difference == -2


class TestVisitModel:
    """Validation of the visit log."""

    def test_visit_for_visitor(self):
        visitor = Visitor(id="v-1", name="Rina", address="Jl. Kenanga 3")
        visit = Visit(
            id="visit-1",
            visit_date=date.today(),
            checkin_time=datetime.now(),
            visitor_id="v-1",
            visitor=visitor,
        )

        assert visit.is_open
        assert visit.guest_name == "Rina"

    def test_visit_needs_exactly_one_guest(self):
        now = datetime.now()
        with pytest.raises(ValidationError, match="exactly one"):
            Visit(id="visit-1", visit_date=now.date(), checkin_time=now)
        with pytest.raises(ValidationError, match="exactly one"):
            Visit(
                id="visit-1",
                visit_date=now.date(),
                checkin_time=now,
                visitor_id="v-1",
                member_id="m-1",
            )

    def test_checkout_before_checkin(self):
        now = datetime.now()
        with pytest.raises(ValidationError, match="Checkout"):
            Visit(
                id="visit-1",
                visit_date=now.date(),
                checkin_time=now,
                checkout_time=now - timedelta(minutes=1),
                member_id="m-1",
            )

    def test_closed_visit(self):
        now = datetime.now()
        visit = Visit(
            id="visit-1",
            visit_date=now.date(),
            checkin_time=now - timedelta(hours=1),
            checkout_time=now,
            member_id="m-1",
        )
        assert not visit.is_open
        assert visit.guest_name == "Unknown"
