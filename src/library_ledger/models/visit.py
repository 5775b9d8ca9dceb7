"""
Visitor and visit models for the Library Ledger.

The visit log is independent from the loan invariants. A visit is an open
interval (checked in) until it is checked out, which happens at most once.
"""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .member import Member


class VisitorCategory(str, Enum):
    """Age group of a walk-in visitor."""

    CHILD = "child"
    TEEN = "teen"
    ADULT = "adult"


class VisitPurpose(str, Enum):
    """Why the guest came in."""

    READING = "reading"
    BORROWING = "borrowing"
    READING_AND_BORROWING = "reading_and_borrowing"
    OTHER = "other"


class Visitor(BaseModel):
    """A walk-in guest who is not a registered member."""

    id: str
    name: str = Field(..., min_length=1, max_length=200)
    address: str = Field(..., min_length=1, max_length=500)
    category: VisitorCategory = VisitorCategory.ADULT

    model_config = ConfigDict(from_attributes=True)


class Visit(BaseModel):
    """One entry in the check-in/out log."""

    id: str
    visit_date: date
    checkin_time: datetime
    checkout_time: datetime | None = None
    visitor_id: str | None = None
    member_id: str | None = None
    purpose: VisitPurpose = VisitPurpose.READING

    visitor: Visitor | None = None
    member: Member | None = None

    @model_validator(mode="after")
    def validate_guest(self) -> "Visit":
        """A visit references exactly one of a visitor or a member."""
        if (self.visitor_id is None) == (self.member_id is None):
            raise ValueError("A visit needs exactly one of visitor_id or member_id")
        if self.checkout_time and self.checkout_time < self.checkin_time:
            raise ValueError("Checkout time cannot be before checkin time")
        return self

    @property
    def is_open(self) -> bool:
        return self.checkout_time is None

    @property
    def guest_name(self) -> str:
        if self.visitor is not None:
            return self.visitor.name
        if self.member is not None:
            return self.member.name
        return "Unknown"

    model_config = ConfigDict(from_attributes=True)


class VisitStats(BaseModel):
    """Check-in/out counts for one day."""

    visit_date: date
    checkins: int = Field(..., ge=0)
    checkouts: int = Field(..., ge=0)
    active: int = Field(..., ge=0)
