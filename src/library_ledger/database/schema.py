"""
SQLAlchemy database schema for the Library Ledger.

These tables are the record store behind the ledger:

1. books, members and loans carry the loan/availability invariant
2. visitors and visits form the independent check-in/out log
3. CHECK constraints keep every book's available_copies within
   [0, total_copies] even if a write path misbehaves
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship, validates
from sqlalchemy.sql import func

Base = declarative_base()


def generate_id() -> str:
    """Generate a UUID4 string primary key."""
    return str(uuid.uuid4())


class LoanStatusEnum(str, enum.Enum):
    """Database enum for loan status."""

    BORROWED = "borrowed"
    RETURNED = "returned"


class MemberCategoryEnum(str, enum.Enum):
    """Database enum for member category."""

    STUDENT = "student"
    GENERAL = "general"


class VisitorCategoryEnum(str, enum.Enum):
    """Database enum for walk-in visitor age group."""

    CHILD = "child"
    TEEN = "teen"
    ADULT = "adult"


class VisitPurposeEnum(str, enum.Enum):
    """Database enum for the reason of a visit."""

    READING = "reading"
    BORROWING = "borrowing"
    READING_AND_BORROWING = "reading_and_borrowing"
    OTHER = "other"


class Book(Base):
    """
    Books table - the library catalog.

    available_copies is maintained by the loan ledger and must always equal
    total_copies minus the number of borrowed loans on the book.
    """

    __tablename__ = "books"

    id = Column(String(36), primary_key=True, default=generate_id)
    title = Column(String(500), nullable=False, index=True)
    author = Column(String(200), nullable=False, index=True)
    category = Column(String(100), nullable=False, index=True)
    book_code = Column(String(50), nullable=True, unique=True)
    cover_url = Column(String(500), nullable=True)
    total_copies = Column(Integer, nullable=False, default=1)
    available_copies = Column(Integer, nullable=False, default=1)

    added_date = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    loans = relationship("Loan", back_populates="book")

    __table_args__ = (
        Index("idx_book_availability", "available_copies"),
        CheckConstraint("total_copies >= 0", name="check_total_copies_non_negative"),
        CheckConstraint("available_copies >= 0", name="check_available_copies_non_negative"),
        CheckConstraint(
            "available_copies <= total_copies", name="check_available_not_exceed_total"
        ),
    )

    @property
    def is_available(self) -> bool:
        return self.available_copies > 0


class Member(Base):
    """Members table - registered borrowers."""

    __tablename__ = "members"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(200), nullable=False, index=True)
    birth_place = Column(String(100), nullable=True)
    birth_date = Column(Date, nullable=True)
    address = Column(String(500), nullable=True)
    religion = Column(String(50), nullable=True)
    gender = Column(String(20), nullable=True)
    phone = Column(String(30), nullable=True)
    category = Column(
        Enum(MemberCategoryEnum), nullable=False, default=MemberCategoryEnum.GENERAL
    )

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    loans = relationship("Loan", back_populates="member")
    visits = relationship("Visit", back_populates="member")

    __table_args__ = (Index("idx_member_category", "category"),)

    @validates("birth_date")
    def validate_birth_date(self, key, value):  # noqa: ARG002
        """A member cannot be born in the future."""
        if value and value > date.today():
            raise ValueError("Birth date cannot be in the future")
        return value


class Loan(Base):
    """
    Loans table - one row per borrowing of one book by one member.

    return_date is the due date; actual_return_date is set when the book
    comes back and status moves from borrowed to returned.
    """

    __tablename__ = "loans"

    id = Column(String(36), primary_key=True, default=generate_id)
    member_id = Column(String(36), ForeignKey("members.id"), nullable=False)
    book_id = Column(String(36), ForeignKey("books.id"), nullable=False)
    loan_date = Column(DateTime, nullable=False, default=datetime.now)
    return_date = Column(Date, nullable=False)
    actual_return_date = Column(DateTime, nullable=True)
    status = Column(Enum(LoanStatusEnum), nullable=False, default=LoanStatusEnum.BORROWED)
    fine = Column(Float, nullable=False, default=0.0)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    member = relationship("Member", back_populates="loans")
    book = relationship("Book", back_populates="loans")

    __table_args__ = (
        Index("idx_loan_member", "member_id"),
        Index("idx_loan_book", "book_id"),
        Index("idx_loan_status", "status"),
        Index("idx_loan_due_date", "return_date"),
        Index("idx_loan_book_status", "book_id", "status"),
        CheckConstraint("fine >= 0", name="check_fine_non_negative"),
    )


class Visitor(Base):
    """Visitors table - walk-in guests who are not members."""

    __tablename__ = "visitors"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(200), nullable=False, index=True)
    address = Column(String(500), nullable=False)
    category = Column(Enum(VisitorCategoryEnum), nullable=False, default=VisitorCategoryEnum.ADULT)

    created_at = Column(DateTime, nullable=False, default=func.now())

    visits = relationship("Visit", back_populates="visitor")

    __table_args__ = (Index("idx_visitor_name_address", "name", "address"),)


class Visit(Base):
    """
    Visits table - the check-in/out log.

    A visit belongs to exactly one of a visitor or a member and is closed
    by setting checkout_time.
    """

    __tablename__ = "visits"

    id = Column(String(36), primary_key=True, default=generate_id)
    visit_date = Column(Date, nullable=False, default=date.today)
    checkin_time = Column(DateTime, nullable=False, default=datetime.now)
    checkout_time = Column(DateTime, nullable=True)
    visitor_id = Column(String(36), ForeignKey("visitors.id"), nullable=True)
    member_id = Column(String(36), ForeignKey("members.id"), nullable=True)
    purpose = Column(Enum(VisitPurposeEnum), nullable=False, default=VisitPurposeEnum.READING)

    visitor = relationship("Visitor", back_populates="visits")
    member = relationship("Member", back_populates="visits")

    __table_args__ = (
        Index("idx_visit_date", "visit_date"),
        CheckConstraint(
            "(visitor_id IS NULL) <> (member_id IS NULL)",
            name="check_visit_single_guest",
        ),
        CheckConstraint(
            "checkout_time IS NULL OR checkout_time >= checkin_time",
            name="check_checkout_after_checkin",
        ),
    )

    @property
    def is_open(self) -> bool:
        return self.checkout_time is None
