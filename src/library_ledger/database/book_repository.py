"""
Book repository implementation for the Library Ledger.

This repository owns the catalog side of the library:

1. **Catalog maintenance**: create, edit and remove books
2. **Browsing**: search by title, author or category and list what can be lent
3. **Dashboard data**: how the collection is spread over categories

available_copies is normally moved only by the loan ledger. Catalog edits may
still set it directly (a recount after stock-taking), but never outside
[0, total_copies].
"""

import enum
import logging

from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..database.schema import Book as BookDB
from ..database.schema import Loan as LoanDB
from ..database.session import safe_commit, safe_query
from ..models.book import Book as BookModel
from .repository import (
    BaseRepository,
    ConcurrencyConflict,
    DatabaseError,
    DuplicateError,
    NotFoundError,
    PaginatedResponse,
    PaginationParams,
    RecordInUseError,
    ValidationError,
    paginate,
)

logger = logging.getLogger(__name__)


class BookCreateSchema(BaseModel):
    """Schema for adding a book to the catalog."""

    title: str = Field(..., min_length=1, max_length=500)
    author: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=100)
    book_code: str | None = Field(None, max_length=50)
    cover_url: str | None = Field(None, max_length=500)
    total_copies: int = Field(1, ge=0)
    available_copies: int | None = Field(
        None, ge=0, description="Defaults to total_copies for a new book"
    )

    @field_validator("category")
    @classmethod
    def normalize_category(cls, v: str) -> str:
        return v.strip().title()

    @model_validator(mode="after")
    def validate_copies(self) -> "BookCreateSchema":
        if self.available_copies is not None and self.available_copies > self.total_copies:
            raise ValueError("Available copies cannot exceed total copies")
        return self


class BookUpdateSchema(BaseModel):
    """Schema for updating a book - all fields optional."""

    title: str | None = Field(None, min_length=1, max_length=500)
    author: str | None = Field(None, min_length=1, max_length=200)
    category: str | None = Field(None, min_length=1, max_length=100)
    book_code: str | None = Field(None, max_length=50)
    cover_url: str | None = Field(None, max_length=500)
    total_copies: int | None = Field(None, ge=0)
    available_copies: int | None = Field(None, ge=0)

    @field_validator("category")
    @classmethod
    def normalize_category(cls, v: str | None) -> str | None:
        return v.strip().title() if v else v


class BookSearchParams(BaseModel):
    """Search parameters for finding books."""

    query: str | None = None  # title, author or code contains
    category: str | None = None  # exact category match
    available_only: bool = False


class BookSortOptions(str, enum.Enum):
    """Sorting options for book queries."""

    TITLE = "title"
    AUTHOR = "author"
    CATEGORY = "category"
    AVAILABILITY = "availability"
    ADDED_DATE = "added_date"


class BookRepository(BaseRepository[BookDB, BookCreateSchema, BookUpdateSchema, BookModel]):
    """Repository for catalog data access."""

    @property
    def model_class(self):
        return BookDB

    @property
    def response_schema(self):
        return BookModel

    def _build_db_obj(self, data: BookCreateSchema) -> BookDB:
        values = data.model_dump(exclude_none=True)
        # a freshly catalogued book has every copy on the shelf
        values.setdefault("available_copies", data.total_copies)
        return BookDB(**values)

    def update(self, id: str, data: BookUpdateSchema) -> BookModel:
        """
        Edit a catalog entry while keeping the copy counters consistent.

        Changing total_copies alone shifts available_copies by the same delta,
        so copies already out on loan stay accounted for. The counters are
        written by a single UPDATE guarded on the total that was read, and the
        delta is applied to the stored available_copies, so a loan or return
        committed by another session in between is kept.

        Raises:
            NotFoundError: If the book does not exist
            ValidationError: If the edit would leave the counters out of range
            ConcurrencyConflict: If the copy counters changed underneath the edit
            DuplicateError: If the new book code is already in use
        """
        db_obj = self._get_db_obj(id)
        if db_obj is None:
            raise NotFoundError(f"Book {id} not found")

        changes = data.model_dump(exclude_unset=True)
        for field in ("title", "author", "category"):
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} cannot be cleared")

        old_total = db_obj.total_copies
        old_available = db_obj.available_copies
        new_total, new_available = self._edited_counters(db_obj, changes)

        values = {
            k: v for k, v in changes.items() if k not in ("total_copies", "available_copies")
        }
        conditions = [BookDB.id == db_obj.id]
        if changes.get("available_copies") is not None:
            # a recount overwrites the counter, so it must still be the one we read
            conditions += [
                BookDB.total_copies == old_total,
                BookDB.available_copies == old_available,
            ]
            values.update(total_copies=new_total, available_copies=new_available)
        elif new_total != old_total:
            delta = new_total - old_total
            conditions += [
                BookDB.total_copies == old_total,
                BookDB.available_copies + delta >= 0,
            ]
            values.update(
                total_copies=new_total, available_copies=BookDB.available_copies + delta
            )

        if not values:
            return self._to_response_model(db_obj)

        try:
            result = self.session.execute(
                update(BookDB)
                .where(*conditions)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        except IntegrityError as e:
            self.session.rollback()
            raise DuplicateError(f"Update rejected: {e.orig}") from e
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.exception("Failed to update book %s", id)
            raise DatabaseError("Failed to update book: Database write failed") from e

        if result.rowcount != 1:
            self.session.rollback()
            raise ConcurrencyConflict(
                f"Copies of book {id} changed while it was being edited; retry the edit"
            )
        try:
            safe_commit(self.session, "update Book")
        except IntegrityError as e:
            raise DuplicateError(f"Update rejected: {e.orig}") from e

        if new_available != old_available:
            logger.info(
                "Catalog edit moves available_copies of book %s from %d to %d",
                id,
                old_available,
                new_available,
            )
        return self._to_response_model(self._get_db_obj(id))

    def _edited_counters(self, db_obj: BookDB, changes: dict) -> tuple[int, int]:
        """Validate the copy counters an edit asks for against the row as read."""
        new_total = changes.get("total_copies", db_obj.total_copies)
        if new_total is None:
            raise ValidationError("total_copies cannot be cleared")

        if changes.get("available_copies") is not None:
            new_available = changes["available_copies"]
        else:
            new_available = db_obj.available_copies + (new_total - db_obj.total_copies)

        if new_available < 0:
            on_loan = db_obj.total_copies - db_obj.available_copies
            raise ValidationError(
                f"total_copies cannot drop below the {on_loan} copies currently on loan"
            )
        if new_available > new_total:
            raise ValidationError(
                f"available_copies ({new_available}) cannot exceed total_copies ({new_total})"
            )
        return new_total, new_available

    def delete(self, id: str) -> bool:
        """
        Remove a book from the catalog.

        Raises:
            RecordInUseError: If any loan, current or historical, references the book
        """
        if not self.exists(id):
            return False

        loan_count = safe_query(
            self.session,
            lambda s: s.execute(
                select(func.count()).select_from(LoanDB).where(LoanDB.book_id == id)
            ).scalar(),
            "Failed to count loans for book",
        )
        if loan_count:
            raise RecordInUseError(f"Book {id} is referenced by {loan_count} loan(s)")

        return super().delete(id)

    def search(
        self,
        search_params: BookSearchParams,
        pagination: PaginationParams | None = None,
        sort_by: BookSortOptions = BookSortOptions.TITLE,
        sort_desc: bool = False,
    ) -> PaginatedResponse[BookModel]:
        """
        Search the catalog.

        Args:
            search_params: Search and filter criteria
            pagination: Pagination parameters
            sort_by: Field to sort by
            sort_desc: Sort in descending order
        """
        query = select(BookDB)

        if search_params.query:
            term = f"%{search_params.query.strip()}%"
            query = query.where(
                or_(
                    BookDB.title.ilike(term),
                    BookDB.author.ilike(term),
                    BookDB.book_code.ilike(term),
                )
            )

        if search_params.category:
            query = query.where(BookDB.category == search_params.category.strip().title())

        if search_params.available_only:
            query = query.where(BookDB.available_copies > 0)

        sort_field = {
            BookSortOptions.TITLE: BookDB.title,
            BookSortOptions.AUTHOR: BookDB.author,
            BookSortOptions.CATEGORY: BookDB.category,
            BookSortOptions.AVAILABILITY: BookDB.available_copies,
            BookSortOptions.ADDED_DATE: BookDB.added_date,
        }.get(sort_by, BookDB.title)
        query = query.order_by(sort_field.desc() if sort_desc else sort_field.asc(), BookDB.id)

        return paginate(self.session, query, pagination, self._to_response_model, "books")

    def list_available(self) -> list[BookModel]:
        """Books with at least one copy on the shelf, ordered by title."""
        query = select(BookDB).where(BookDB.available_copies > 0).order_by(BookDB.title)
        results = safe_query(
            self.session,
            lambda s: s.execute(query).scalars().all(),
            "Failed to list available books",
        )
        return [self._to_response_model(book) for book in results]

    def get_by_code(self, book_code: str) -> BookModel | None:
        """Look a book up by its shelf code."""
        query = select(BookDB).where(BookDB.book_code == book_code.strip())
        result = safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            "Failed to get book by code",
        )
        return self._to_response_model(result) if result else None

    def category_distribution(self) -> list[dict]:
        """
        Count titles per category, largest first.

        Returns:
            List of ``{"category": str, "count": int}`` entries
        """
        query = (
            select(BookDB.category, func.count(BookDB.id).label("count"))
            .group_by(BookDB.category)
            .order_by(func.count(BookDB.id).desc(), BookDB.category)
        )
        rows = safe_query(
            self.session,
            lambda s: s.execute(query).all(),
            "Failed to get category distribution",
        )
        return [{"category": row.category, "count": row.count} for row in rows]

    def copy_totals(self) -> dict[str, int]:
        """Sum of owned and shelved copies across the whole catalog."""
        query = select(
            func.count(BookDB.id),
            func.coalesce(func.sum(BookDB.total_copies), 0),
            func.coalesce(func.sum(BookDB.available_copies), 0),
        )
        titles, total, available = safe_query(
            self.session, lambda s: s.execute(query).one(), "Failed to sum copies"
        )
        return {
            "titles": titles,
            "total_copies": int(total),
            "available_copies": int(available),
            "borrowed_copies": int(total) - int(available),
        }
