"""
Repository pattern implementation for the Library Ledger.

Repositories keep SQLAlchemy out of the command and query handlers:

1. **Separation**: tools and resources deal in Pydantic models, not ORM rows
2. **Testability**: every repository works on a plain Session, so tests can
   hand in a throwaway SQLite session
3. **Consistency**: all data access goes through safe_query/safe_commit and
   raises the exceptions in ``library_ledger.errors``

The base repository provides common CRUD operations; the catalog, member and
visit repositories and the loan ledger add domain-specific behaviour.
"""

from abc import ABC, abstractmethod
from collections import Counter
from datetime import date
from typing import Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import asc, desc, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import (
    ConcurrencyConflict,
    DatabaseError,
    DuplicateError,
    InvalidStateError,
    NotFoundError,
    RecordInUseError,
    RepositoryException,
    ValidationError,
)
from .schema import Base
from .session import safe_commit, safe_query

ModelType = TypeVar("ModelType", bound=Base)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=BaseModel)
ResponseSchemaType = TypeVar("ResponseSchemaType", bound=BaseModel)

__all__ = [
    "BaseRepository",
    "ConcurrencyConflict",
    "DatabaseError",
    "DuplicateError",
    "InvalidStateError",
    "NotFoundError",
    "PaginatedResponse",
    "PaginationParams",
    "RecordInUseError",
    "RepositoryException",
    "ValidationError",
    "count_by_month",
    "month_buckets",
    "paginate",
]


class PaginationParams(BaseModel):
    """Standard pagination parameters for list operations."""

    page: int = 1
    page_size: int = 20

    @property
    def offset(self) -> int:
        """Calculate offset for SQL queries."""
        return (self.page - 1) * self.page_size

    def validate_params(self) -> None:
        """Validate pagination parameters."""
        if self.page < 1:
            raise ValidationError("Page must be >= 1")
        if self.page_size < 1 or self.page_size > 100:
            raise ValidationError("Page size must be between 1 and 100")


class PaginatedResponse(BaseModel, Generic[ResponseSchemaType]):
    """Standard paginated response for list operations."""

    items: list[ResponseSchemaType]
    total: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_previous: bool


def paginate(session: Session, query, pagination: PaginationParams | None, convert, what: str):
    """
    Run ``query`` one page at a time and convert each row.

    Args:
        session: The database session
        query: A select() statement returning ORM entities
        pagination: Page to fetch; defaults to the first page
        convert: Callable turning one ORM row into a Pydantic model
        what: Label used in error messages
    """
    if not pagination:
        pagination = PaginationParams()

    pagination.validate_params()

    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total = (
        safe_query(
            session,
            lambda s: s.execute(count_query).scalar(),
            f"Failed to count {what}",
        )
        or 0
    )

    page_query = (
        query.offset(pagination.offset)
        .limit(pagination.page_size)
        .execution_options(populate_existing=True)
    )
    results = safe_query(
        session,
        lambda s: s.execute(page_query).unique().scalars().all(),
        f"Failed to get paginated {what}",
    )

    return PaginatedResponse(
        items=[convert(item) for item in results],
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
        total_pages=(total + pagination.page_size - 1) // pagination.page_size,
        has_next=pagination.page * pagination.page_size < total,
        has_previous=pagination.page > 1,
    )


def month_buckets(months: int, today: date) -> list[tuple[int, int]]:
    """
    The last ``months`` calendar months up to and including ``today``.

    Returns:
        ``(year, month)`` pairs, oldest first

    Raises:
        ValidationError: If months is less than 1
    """
    if months < 1:
        raise ValidationError("months must be >= 1")

    buckets = []
    year, month = today.year, today.month
    for _ in range(months):
        buckets.append((year, month))
        year, month = (year - 1, 12) if month == 1 else (year, month - 1)
    buckets.reverse()
    return buckets


def count_by_month(buckets: list[tuple[int, int]], dates) -> list[dict]:
    """Count dates per bucket; empty months are reported with a count of zero."""
    counts = Counter((d.year, d.month) for d in dates)
    return [{"month": f"{y:04d}-{m:02d}", "count": counts.get((y, m), 0)} for y, m in buckets]


class BaseRepository(
    ABC, Generic[ModelType, CreateSchemaType, UpdateSchemaType, ResponseSchemaType]
):
    """
    Abstract base repository providing common CRUD operations.

    All methods use safe_query and safe_commit so database failures
    surface as DatabaseError and constraint violations as DuplicateError.
    """

    def __init__(self, session: Session):
        """Initialize repository with database session."""
        self.session = session

    @property
    @abstractmethod
    def model_class(self) -> type[ModelType]:
        """Return the SQLAlchemy model class."""

    @property
    @abstractmethod
    def response_schema(self) -> type[ResponseSchemaType]:
        """Return the Pydantic response schema."""

    def _to_response_model(self, db_obj: ModelType) -> ResponseSchemaType:
        """Convert database model to Pydantic response model."""
        return self.response_schema.model_validate(db_obj, from_attributes=True)

    def _get_db_obj(self, id: UUID | str) -> ModelType | None:
        # counters move through conditional UPDATEs that bypass the identity map
        query = (
            select(self.model_class)
            .where(self.model_class.id == str(id))
            .execution_options(populate_existing=True)
        )
        return safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            f"Failed to get {self.model_class.__name__} by ID",
        )

    def get_by_id(self, id: UUID | str) -> ResponseSchemaType | None:
        """
        Get entity by ID.

        Returns:
            Pydantic model or None if not found
        """
        db_obj = self._get_db_obj(id)
        if db_obj is None:
            return None
        return self._to_response_model(db_obj)

    def require(self, id: UUID | str) -> ResponseSchemaType:
        """Get entity by ID or raise NotFoundError."""
        entity = self.get_by_id(id)
        if entity is None:
            raise NotFoundError(f"{self.model_class.__name__} {id} not found")
        return entity

    def get_all(
        self,
        pagination: PaginationParams | None = None,
        order_by: str | None = None,
        order_desc: bool = False,
    ) -> list[ResponseSchemaType] | PaginatedResponse[ResponseSchemaType]:
        """
        Get all entities with optional pagination and sorting.

        Args:
            pagination: Pagination parameters
            order_by: Field name to order by
            order_desc: Whether to order descending

        Returns:
            List of entities, or a paginated response when pagination is given
        """
        query = select(self.model_class)

        if order_by and hasattr(self.model_class, order_by):
            order_field = getattr(self.model_class, order_by)
            query = query.order_by(desc(order_field) if order_desc else asc(order_field))

        if pagination:
            return paginate(
                self.session,
                query,
                pagination,
                self._to_response_model,
                self.model_class.__tablename__,
            )

        results = safe_query(
            self.session, lambda s: s.execute(query).scalars().all(), "Failed to get all results"
        )
        return [self._to_response_model(item) for item in results]

    def _build_db_obj(self, data: CreateSchemaType) -> ModelType:
        return self.model_class(**data.model_dump(exclude_none=True))

    def create(self, data: CreateSchemaType) -> ResponseSchemaType:
        """
        Create new entity.

        Raises:
            DuplicateError: If a unique or check constraint rejects the row
        """
        db_obj = self._build_db_obj(data)
        self.session.add(db_obj)
        try:
            safe_commit(self.session, f"create {self.model_class.__name__}")
        except IntegrityError as e:
            raise DuplicateError(f"{self.model_class.__name__} rejected: {e.orig}") from e
        self.session.refresh(db_obj)
        return self._to_response_model(db_obj)

    def _apply_update(self, db_obj: ModelType, changes: dict) -> None:
        for field, value in changes.items():
            setattr(db_obj, field, value)

    def update(self, id: UUID | str, data: UpdateSchemaType) -> ResponseSchemaType:
        """
        Update existing entity.

        Raises:
            NotFoundError: If the entity does not exist
            DuplicateError: If a constraint rejects the new values
        """
        db_obj = self._get_db_obj(id)
        if db_obj is None:
            raise NotFoundError(f"{self.model_class.__name__} {id} not found")

        self._apply_update(db_obj, data.model_dump(exclude_unset=True))

        try:
            safe_commit(self.session, f"update {self.model_class.__name__}")
        except IntegrityError as e:
            raise DuplicateError(f"Update rejected: {e.orig}") from e
        self.session.refresh(db_obj)
        return self._to_response_model(db_obj)

    def delete(self, id: UUID | str) -> bool:
        """
        Delete entity by ID.

        Returns:
            True if deleted, False if not found
        """
        db_obj = self._get_db_obj(id)
        if db_obj is None:
            return False

        self.session.delete(db_obj)
        try:
            safe_commit(self.session, f"delete {self.model_class.__name__}")
        except IntegrityError as e:
            raise RecordInUseError(
                f"{self.model_class.__name__} {id} is still referenced"
            ) from e
        return True

    def exists(self, id: UUID | str) -> bool:
        """Check if entity exists by ID."""
        query = (
            select(func.count()).select_from(self.model_class).where(self.model_class.id == str(id))
        )
        count = safe_query(
            self.session, lambda s: s.execute(query).scalar(), "Failed to check existence"
        )
        return count > 0

    def count(self) -> int:
        """Count all entities."""
        query = select(func.count()).select_from(self.model_class)
        return (
            safe_query(self.session, lambda s: s.execute(query).scalar(), "Failed to count")
            or 0
        )
