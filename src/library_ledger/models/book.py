"""
Book model for the Library Ledger.

A catalog entry with its copy counters. The ledger owns available_copies;
catalog maintenance may edit it directly but never outside [0, total_copies].
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Book(BaseModel):
    """
    Represents a book in the library catalog.

    Returned by the catalog repository and embedded in loan details so a
    caller can display the title and author of a loan without another query.
    """

    id: str = Field(..., description="Unique identifier (UUID4)")

    title: str = Field(
        ...,
        description="The title of the book",
        min_length=1,
        max_length=500,
        examples=["Laskar Pelangi", "Bumi Manusia"],
    )

    author: str = Field(
        ...,
        description="Author name as printed on the cover",
        min_length=1,
        max_length=200,
        examples=["Andrea Hirata", "Pramoedya Ananta Toer"],
    )

    category: str = Field(
        ...,
        description="Catalog category or genre",
        min_length=1,
        max_length=100,
        examples=["Fiction", "History", "Science"],
    )

    book_code: str | None = Field(
        None,
        description="Library shelf code",
        max_length=50,
        examples=["FIK-001", "SEJ-014"],
    )

    cover_url: str | None = Field(None, description="URL of the cover image", max_length=500)

    total_copies: int = Field(
        ...,
        description="Total number of copies owned by the library",
        ge=0,
        examples=[1, 3, 10],
    )

    available_copies: int = Field(
        ...,
        description="Number of copies currently on the shelf",
        ge=0,
        examples=[0, 1, 5],
    )

    added_date: datetime | None = Field(None, description="When the book entered the catalog")

    updated_at: datetime | None = Field(None, description="When the record last changed")

    @field_validator("category")
    @classmethod
    def normalize_category(cls, v: str) -> str:
        """Normalize category to title case for consistent grouping."""
        return v.strip().title()

    @model_validator(mode="after")
    def validate_copies(self) -> "Book":
        """Ensure available copies doesn't exceed total copies."""
        if self.available_copies > self.total_copies:
            raise ValueError("Available copies cannot exceed total copies")
        return self

    @property
    def is_available(self) -> bool:
        """Check if the book has any available copies."""
        return self.available_copies > 0

    @property
    def borrowed_copies(self) -> int:
        """Number of copies currently out on loan."""
        return self.total_copies - self.available_copies

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": "7f0c2a8e-3a57-4b1e-9d33-1c2f4b5a6d7e",
                "title": "Laskar Pelangi",
                "author": "Andrea Hirata",
                "category": "Fiction",
                "book_code": "FIK-001",
                "total_copies": 3,
                "available_copies": 2,
            }
        },
    )
