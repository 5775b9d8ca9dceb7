"""
Loan models for the Library Ledger.

A loan is created ``borrowed`` and moves once, irreversibly, to ``returned``.
The models here are the read side of the ledger:

- Loan: the stored record
- LoanDetail: a loan with its member and book resolved for display
- LoanStats: aggregate counts over the current loan set
"""

from datetime import date, datetime, time, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .book import Book
from .member import Member


class LoanStatus(str, Enum):
    """Status of a loan."""

    BORROWED = "borrowed"
    RETURNED = "returned"


def _as_moment(as_of: datetime | date | None) -> datetime:
    if as_of is None:
        return datetime.now()
    if isinstance(as_of, datetime):
        return as_of
    return datetime.combine(as_of, time.min)


def overdue_cutoff(as_of: datetime | date | None = None) -> date:
    """
    First due date that is not yet overdue at ``as_of``.

    A due date stands for midnight at the start of that day, so once that
    moment has passed the loan is overdue for the whole of its due day. A
    plain ``date`` as ``as_of`` means the start of that day.
    """
    moment = _as_moment(as_of)
    if moment.time() > time.min:
        return moment.date() + timedelta(days=1)
    return moment.date()


def is_overdue(loan, as_of: datetime | date | None = None) -> bool:
    """
    Check whether a loan is overdue.

    A loan is overdue exactly when it is still borrowed and the current
    moment is after its due date (``return_date``), taken as midnight.
    Works on both ORM rows and Pydantic models.

    Args:
        loan: Anything with ``status`` and ``return_date`` attributes
        as_of: Reference moment; defaults to now
    """
    if loan.status != LoanStatus.BORROWED:
        return False

    return loan.return_date < overdue_cutoff(as_of)


class Loan(BaseModel):
    """Represents one borrowing of one book by one member."""

    id: str = Field(..., description="Unique identifier (UUID4)")

    member_id: str = Field(..., description="ID of the borrowing member")

    book_id: str = Field(..., description="ID of the borrowed book")

    loan_date: datetime = Field(
        default_factory=datetime.now,
        description="Date and time the loan was created",
    )

    return_date: date = Field(
        ...,
        description="Due date; the loan is overdue once this day has begun",
        examples=["2024-02-15"],
    )

    actual_return_date: datetime | None = Field(
        None,
        description="Date and time the book actually came back",
    )

    status: LoanStatus = Field(default=LoanStatus.BORROWED)

    fine: float = Field(default=0.0, description="Recorded fine amount", ge=0.0)

    notes: str | None = Field(None, max_length=1000)

    @model_validator(mode="after")
    def validate_dates(self) -> "Loan":
        """Validate date relationships."""
        if self.return_date < self.loan_date.date():
            raise ValueError("Due date cannot be before the loan date")

        if self.actual_return_date and self.actual_return_date < self.loan_date:
            raise ValueError("Actual return date cannot be before the loan date")

        if self.status == LoanStatus.RETURNED and self.actual_return_date is None:
            raise ValueError("A returned loan must have an actual return date")

        return self

    @property
    def is_overdue(self) -> bool:
        """Check if the loan is overdue as of now."""
        return is_overdue(self)

    @property
    def days_overdue(self) -> int:
        """Whole days past the due date, 0 when not overdue or due today."""
        if not self.is_overdue:
            return 0
        return (date.today() - self.return_date).days

    @property
    def loan_period_days(self) -> int:
        """Length of the agreed loan period in days."""
        return (self.return_date - self.loan_date.date()).days

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": "0d9b3c4e-2f61-4a8b-8e57-6a1f2b3c4d5e",
                "member_id": "5a4b3c2d-1e0f-4a9b-8c7d-6e5f4a3b2c1d",
                "book_id": "7f0c2a8e-3a57-4b1e-9d33-1c2f4b5a6d7e",
                "loan_date": "2024-02-08T10:30:00",
                "return_date": "2024-02-15",
                "status": "borrowed",
                "fine": 0.0,
            }
        },
    )


class LoanDetail(Loan):
    """A loan with its member and book embedded for display."""

    member: Member | None = None
    book: Book | None = None


class LoanStats(BaseModel):
    """Aggregate counts over the current loan set."""

    total_loans: int = Field(..., ge=0)
    borrowed_loans: int = Field(..., ge=0)
    returned_loans: int = Field(..., ge=0)
    overdue_loans: int = Field(..., ge=0)
    total_fines: float = Field(default=0.0, ge=0.0)


class AvailabilityDrift(BaseModel):
    """A book whose stored counter disagrees with its outstanding loans."""

    book_id: str
    title: str
    total_copies: int
    borrowed_loans: int
    stored_available: int
    expected_available: int

    @property
    def difference(self) -> int:
        return self.stored_available - self.expected_available
