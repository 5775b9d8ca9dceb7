"""
Member model for the Library Ledger.

Members are registered borrowers. Only members can hold loans; walk-in
guests are recorded as visitors instead (see models.visit).
"""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MemberCategory(str, Enum):
    """Membership category."""

    STUDENT = "student"
    GENERAL = "general"


class Member(BaseModel):
    """Represents a registered library member."""

    id: str = Field(..., description="Unique identifier (UUID4)")

    name: str = Field(
        ...,
        description="Full name of the member",
        min_length=1,
        max_length=200,
        examples=["Siti Rahmawati", "Budi Santoso"],
    )

    birth_place: str | None = Field(None, max_length=100)

    birth_date: date | None = Field(None)

    address: str | None = Field(None, max_length=500)

    religion: str | None = Field(None, max_length=50)

    gender: str | None = Field(None, max_length=20)

    phone: str | None = Field(
        None,
        description="Contact phone number",
        pattern=r"^\+?[\d\s\-\(\)]+$",
        examples=["+62 812 3456 7890", "0812-3456-7890"],
    )

    category: MemberCategory = Field(
        default=MemberCategory.GENERAL,
        description="Membership category",
    )

    created_at: datetime | None = Field(None, description="When the member registered")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        cleaned = " ".join(v.split())
        if not cleaned:
            raise ValueError("Name cannot be blank")
        return cleaned

    @field_validator("birth_date")
    @classmethod
    def validate_birth_date(cls, v: date | None) -> date | None:
        if v and v > date.today():
            raise ValueError("Birth date cannot be in the future")
        return v

    @property
    def is_student(self) -> bool:
        return self.category == MemberCategory.STUDENT

    model_config = ConfigDict(from_attributes=True)
