"""
Loan ledger for the Library Ledger.

The ledger owns the loan lifecycle and the available-copy counter on each book:

1. **Lending**: a new loan takes one copy off the shelf
2. **Returns**: a loan moves once from borrowed to returned and puts the copy back
3. **Corrections**: deleting a loan, editing its due date or fine
4. **Reporting**: overdue status, aggregate counts and monthly trends
5. **Reconciliation**: recomputing the counter from the loan set on demand

Every command runs in the caller's session and commits once. Counter changes
are conditional UPDATE statements, so two sessions competing for the last
copy cannot both succeed: the loser sees zero affected rows, the transaction
is rolled back and ConcurrencyConflict is raised. The loan insert and its
counter change always commit or roll back together. A member or book removed
by another session before the commit is reported as NotFoundError.

A borrowed loan is overdue from midnight at the start of its due date.
"""

import logging
from datetime import date, datetime, timedelta

from pydantic import BaseModel, Field
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..database.schema import Book as BookDB
from ..database.schema import Loan as LoanDB
from ..database.schema import LoanStatusEnum
from ..database.schema import Member as MemberDB
from ..database.session import safe_commit, safe_query
from ..errors import (
    BookUnavailableError,
    ConcurrencyConflict,
    DatabaseError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ..models.book import Book as BookModel
from ..models.loan import (
    AvailabilityDrift,
    LoanDetail,
    LoanStats,
    LoanStatus,
    overdue_cutoff,
)
from ..models.loan import is_overdue as loan_is_overdue
from .member_repository import member_to_model
from .repository import (
    PaginatedResponse,
    PaginationParams,
    count_by_month,
    month_buckets,
    paginate,
)

logger = logging.getLogger(__name__)


class LoanCreateSchema(BaseModel):
    """Schema for lending a book to a member."""

    member_id: str | None = None
    book_id: str | None = None
    due_date: date | None = None
    notes: str | None = Field(None, max_length=1000)


class LoanUpdateSchema(BaseModel):
    """Schema for correcting a loan - member, book and status are fixed."""

    due_date: date | None = None
    fine: float | None = Field(None, ge=0.0)
    notes: str | None = Field(None, max_length=1000)


class LoanFilter(BaseModel):
    """
    Filters for listing loans.

    ``search`` matches member name, book title, book author or status text.
    """

    status: LoanStatus | None = None
    member_id: str | None = None
    book_id: str | None = None
    overdue_only: bool = False
    search: str | None = None
    as_of: datetime | date | None = None


def _to_date(as_of: datetime | date | None) -> date:
    if as_of is None:
        return date.today()
    if isinstance(as_of, datetime):
        return as_of.date()
    return as_of


class LoanLedger:
    """
    Commands and queries over loans and book availability.

    The ledger coordinates the books and loans tables. It is the only
    writer of available_copies apart from explicit catalog edits.
    """

    def __init__(self, session: Session):
        """Initialize with a database session."""
        self.session = session

    # Commands

    def create_loan(self, data: LoanCreateSchema) -> LoanDetail:
        """
        Lend one copy of a book to a member.

        Args:
            data: Member, book and due date of the new loan

        Returns:
            The new loan with its member and book resolved

        Raises:
            ValidationError: If a field is missing or the due date is in the past
            NotFoundError: If the member or book does not exist
            BookUnavailableError: If the book has no copy on the shelf
            ConcurrencyConflict: If another session took the last copy first
        """
        missing = [
            name for name in ("member_id", "book_id", "due_date") if not getattr(data, name)
        ]
        if missing:
            raise ValidationError(f"Missing required field(s): {', '.join(missing)}")
        self._validate_due_date(data.due_date)

        # WHY: a member cached in this session may already be gone from the database
        # HOW: re-read the row, refreshing any stale identity-map copy
        member = safe_query(
            self.session,
            lambda s: s.execute(
                select(MemberDB)
                .where(MemberDB.id == data.member_id)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none(),
            "Failed to get member for loan",
        )
        if member is None:
            self.session.rollback()
            raise NotFoundError(f"Member {data.member_id} not found")

        book = safe_query(
            self.session,
            lambda s: s.execute(
                select(BookDB).where(BookDB.id == data.book_id).with_for_update()
            ).scalar_one_or_none(),
            "Failed to get book for loan",
        )
        if book is None:
            self.session.rollback()
            raise NotFoundError(f"Book {data.book_id} not found")

        if book.available_copies <= 0:
            self.session.rollback()
            raise BookUnavailableError(f"No copies of '{book.title}' are available")

        # HOW: the WHERE clause re-checks the shelf, so only one competing session wins
        taken = self._execute(
            update(BookDB)
            .where(BookDB.id == book.id, BookDB.available_copies > 0)
            .values(available_copies=BookDB.available_copies - 1),
            "Failed to take a copy off the shelf",
        )
        if taken.rowcount != 1:
            self.session.rollback()
            if not self._book_exists(data.book_id):
                raise NotFoundError(
                    f"Book {data.book_id} was removed before the loan was recorded"
                )
            logger.info("Lost the race for the last copy of book %s", data.book_id)
            raise ConcurrencyConflict(
                f"'{book.title}' was lent by someone else in the meantime; no loan was created"
            )

        loan = LoanDB(
            member_id=member.id,
            book_id=book.id,
            loan_date=datetime.now(),
            return_date=data.due_date,
            status=LoanStatusEnum.BORROWED,
            fine=0.0,
            notes=data.notes,
        )
        self.session.add(loan)

        try:
            safe_commit(self.session, "create loan")
        except IntegrityError as e:
            # the only foreign keys on a loan point at its member and its book
            logger.info("Loan insert rejected: %s", e.orig)
            raise NotFoundError(
                f"Member {data.member_id} or book {data.book_id} was removed "
                "before the loan was recorded"
            ) from e

        logger.info(
            "Loan %s created: member %s borrowed book %s until %s",
            loan.id,
            member.id,
            book.id,
            data.due_date,
        )
        return self.get_loan(loan.id)

    def return_loan(self, loan_id: str) -> LoanDetail:
        """
        Record the return of a borrowed book.

        A loan is returned at most once; returning it again raises
        InvalidStateError and leaves the counter untouched.

        Raises:
            NotFoundError: If the loan does not exist
            InvalidStateError: If the loan is already returned
        """
        loan = self._get_loan_row(loan_id)
        if loan.status != LoanStatusEnum.BORROWED:
            raise InvalidStateError(f"Loan {loan_id} has already been returned")

        returned = self._execute(
            update(LoanDB)
            .where(LoanDB.id == loan_id, LoanDB.status == LoanStatusEnum.BORROWED)
            .values(status=LoanStatusEnum.RETURNED, actual_return_date=datetime.now()),
            "Failed to mark loan as returned",
        )
        if returned.rowcount != 1:
            self.session.rollback()
            raise InvalidStateError(f"Loan {loan_id} has already been returned")

        self._put_copy_back(loan.book_id, loan_id)
        safe_commit(self.session, "return loan")

        logger.info("Loan %s returned: book %s back on the shelf", loan_id, loan.book_id)
        return self.get_loan(loan_id)

    def delete_loan(self, loan_id: str) -> None:
        """
        Delete a loan record.

        Deleting a borrowed loan puts its copy back on the shelf; deleting a
        returned loan leaves the counter alone.

        Raises:
            NotFoundError: If the loan does not exist
            ConcurrencyConflict: If the loan changed state while being deleted
        """
        loan = self._get_loan_row(loan_id)
        was_borrowed = loan.status == LoanStatusEnum.BORROWED

        removed = self._execute(
            delete(LoanDB).where(LoanDB.id == loan_id, LoanDB.status == loan.status),
            "Failed to delete loan",
        )
        if removed.rowcount != 1:
            self.session.rollback()
            raise ConcurrencyConflict(f"Loan {loan_id} changed while it was being deleted")

        if was_borrowed:
            self._put_copy_back(loan.book_id, loan_id)

        safe_commit(self.session, "delete loan")
        self.session.expunge(loan)

        logger.info(
            "Loan %s deleted (%s)", loan_id, "copy restored" if was_borrowed else "already returned"
        )

    def update_loan(self, loan_id: str, data: LoanUpdateSchema) -> LoanDetail:
        """
        Correct the due date, fine or notes of a loan.

        Raises:
            NotFoundError: If the loan does not exist
            InvalidStateError: If the due date of a returned loan is changed
            ValidationError: If the new due date is in the past
        """
        loan = self._get_loan_row(loan_id)
        changes = data.model_dump(exclude_unset=True)

        if changes.get("due_date") is not None:
            if loan.status != LoanStatusEnum.BORROWED:
                raise InvalidStateError(
                    f"Loan {loan_id} has been returned; its due date can no longer change"
                )
            self._validate_due_date(changes["due_date"])
            loan.return_date = changes["due_date"]

        if changes.get("fine") is not None:
            loan.fine = changes["fine"]

        if "notes" in changes:
            loan.notes = changes["notes"]

        safe_commit(self.session, "update loan")
        logger.info("Loan %s updated: %s", loan_id, ", ".join(sorted(changes)) or "no changes")
        return self.get_loan(loan_id)

    # Queries

    def get_loan(self, loan_id: str) -> LoanDetail:
        """
        Get one loan with its member and book.

        Raises:
            NotFoundError: If the loan does not exist
        """
        query = (
            select(LoanDB)
            .where(LoanDB.id == loan_id)
            .options(selectinload(LoanDB.member), selectinload(LoanDB.book))
            .execution_options(populate_existing=True)
        )
        loan = safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            "Failed to get loan",
        )
        if loan is None:
            raise NotFoundError(f"Loan {loan_id} not found")
        return self._to_detail(loan)

    def is_overdue(self, loan, as_of: datetime | date | None = None) -> bool:
        """True when the loan is still borrowed and its due date has passed."""
        return loan_is_overdue(loan, as_of)

    def list_loans(
        self,
        loan_filter: LoanFilter | None = None,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResponse[LoanDetail]:
        """
        List loans, newest first.

        Args:
            loan_filter: Status, member, book, overdue and free-text filters
            pagination: Pagination parameters
        """
        loan_filter = loan_filter or LoanFilter()
        query = (
            select(LoanDB)
            .join(MemberDB, LoanDB.member_id == MemberDB.id)
            .join(BookDB, LoanDB.book_id == BookDB.id)
        )

        if loan_filter.status:
            query = query.where(LoanDB.status == LoanStatusEnum(loan_filter.status.value))

        if loan_filter.member_id:
            query = query.where(LoanDB.member_id == loan_filter.member_id)

        if loan_filter.book_id:
            query = query.where(LoanDB.book_id == loan_filter.book_id)

        if loan_filter.overdue_only:
            query = query.where(
                LoanDB.status == LoanStatusEnum.BORROWED,
                LoanDB.return_date < overdue_cutoff(loan_filter.as_of),
            )

        if loan_filter.search and loan_filter.search.strip():
            text = loan_filter.search.strip()
            term = f"%{text}%"
            conditions = [
                MemberDB.name.ilike(term),
                BookDB.title.ilike(term),
                BookDB.author.ilike(term),
            ]
            statuses = [s for s in LoanStatusEnum if text.lower() in s.value]
            if statuses:
                conditions.append(LoanDB.status.in_(statuses))
            query = query.where(or_(*conditions))

        query = (
            query.order_by(LoanDB.loan_date.desc(), LoanDB.id)
            .options(selectinload(LoanDB.member), selectinload(LoanDB.book))
            .execution_options(populate_existing=True)
        )

        return paginate(self.session, query, pagination, self._to_detail, "loans")

    def get_loan_stats(self, as_of: datetime | date | None = None) -> LoanStats:
        """Aggregate counts over all loans."""
        cutoff = overdue_cutoff(as_of)

        by_status = dict(
            safe_query(
                self.session,
                lambda s: s.execute(
                    select(LoanDB.status, func.count(LoanDB.id)).group_by(LoanDB.status)
                ).all(),
                "Failed to count loans by status",
            )
        )
        overdue = (
            safe_query(
                self.session,
                lambda s: s.execute(
                    select(func.count())
                    .select_from(LoanDB)
                    .where(
                        LoanDB.status == LoanStatusEnum.BORROWED,
                        LoanDB.return_date < cutoff,
                    )
                ).scalar(),
                "Failed to count overdue loans",
            )
            or 0
        )
        total_fines = (
            safe_query(
                self.session,
                lambda s: s.execute(select(func.sum(LoanDB.fine))).scalar(),
                "Failed to sum fines",
            )
            or 0.0
        )

        borrowed = by_status.get(LoanStatusEnum.BORROWED, 0)
        returned = by_status.get(LoanStatusEnum.RETURNED, 0)
        return LoanStats(
            total_loans=borrowed + returned,
            borrowed_loans=borrowed,
            returned_loans=returned,
            overdue_loans=overdue,
            total_fines=float(total_fines),
        )

    def monthly_loan_counts(
        self, months: int = 6, as_of: datetime | date | None = None
    ) -> list[dict]:
        """
        Loans created per calendar month for the last ``months`` months.

        Months without loans are included with a count of zero, oldest first.

        Returns:
            List of ``{"month": "YYYY-MM", "count": int}`` entries
        """
        today = _to_date(as_of)
        buckets = month_buckets(months, today)

        start = datetime(*buckets[0], 1)
        end = datetime.combine(today + timedelta(days=1), datetime.min.time())
        loan_dates = safe_query(
            self.session,
            lambda s: s.execute(
                select(LoanDB.loan_date).where(LoanDB.loan_date >= start, LoanDB.loan_date < end)
            )
            .scalars()
            .all(),
            "Failed to get monthly loan counts",
        )
        return count_by_month(buckets, loan_dates)

    def popular_categories(self, limit: int = 5) -> list[dict]:
        """Book categories ordered by how often they were borrowed."""
        loans = func.count(LoanDB.id).label("loans")
        query = (
            select(BookDB.category, loans)
            .join(LoanDB, LoanDB.book_id == BookDB.id)
            .group_by(BookDB.category)
            .order_by(loans.desc(), BookDB.category)
            .limit(limit)
        )
        rows = safe_query(
            self.session, lambda s: s.execute(query).all(), "Failed to get popular categories"
        )
        return [{"category": row.category, "loans": row.loans} for row in rows]

    def popular_books(self, limit: int = 5) -> list[dict]:
        """Books ordered by how often they were borrowed."""
        loans = func.count(LoanDB.id).label("loans")
        query = (
            select(BookDB.id, BookDB.title, BookDB.author, loans)
            .join(LoanDB, LoanDB.book_id == BookDB.id)
            .group_by(BookDB.id, BookDB.title, BookDB.author)
            .order_by(loans.desc(), BookDB.title)
            .limit(limit)
        )
        rows = safe_query(
            self.session, lambda s: s.execute(query).all(), "Failed to get popular books"
        )
        return [
            {"book_id": row.id, "title": row.title, "author": row.author, "loans": row.loans}
            for row in rows
        ]

    # Reconciliation

    def audit_availability(self, book_id: str | None = None) -> list[AvailabilityDrift]:
        """
        Compare every stored counter with the loan set.

        The expected value is total_copies minus the borrowed loans on the
        book, floored at zero.

        Args:
            book_id: Restrict the audit to one book

        Returns:
            One entry per book whose counter has drifted
        """
        borrowed = (
            select(LoanDB.book_id, func.count(LoanDB.id).label("borrowed"))
            .where(LoanDB.status == LoanStatusEnum.BORROWED)
            .group_by(LoanDB.book_id)
            .subquery()
        )
        query = (
            select(
                BookDB.id,
                BookDB.title,
                BookDB.total_copies,
                BookDB.available_copies,
                func.coalesce(borrowed.c.borrowed, 0).label("borrowed"),
            )
            .outerjoin(borrowed, BookDB.id == borrowed.c.book_id)
            .order_by(BookDB.title, BookDB.id)
        )
        if book_id is not None:
            query = query.where(BookDB.id == book_id)

        rows = safe_query(
            self.session, lambda s: s.execute(query).all(), "Failed to audit availability"
        )

        drifts = []
        for row in rows:
            expected = max(0, row.total_copies - row.borrowed)
            if expected != row.available_copies:
                drifts.append(
                    AvailabilityDrift(
                        book_id=row.id,
                        title=row.title,
                        total_copies=row.total_copies,
                        borrowed_loans=row.borrowed,
                        stored_available=row.available_copies,
                        expected_available=expected,
                    )
                )
        return drifts

    def reconcile_availability(self, book_id: str | None = None) -> list[AvailabilityDrift]:
        """
        Rewrite drifted counters to the value the loan set implies.

        A counter that moved again since the audit is skipped and left for
        the next run.

        Returns:
            The entries that were corrected
        """
        corrected = []
        for drift in self.audit_availability(book_id):
            fixed = self._execute(
                update(BookDB)
                .where(
                    BookDB.id == drift.book_id,
                    BookDB.available_copies == drift.stored_available,
                )
                .values(available_copies=drift.expected_available),
                "Failed to reconcile availability",
            )
            if fixed.rowcount == 1:
                logger.warning(
                    "Reconciled available_copies of book %s from %d to %d",
                    drift.book_id,
                    drift.stored_available,
                    drift.expected_available,
                )
                corrected.append(drift)
            else:
                logger.info("Book %s changed during reconciliation, skipped", drift.book_id)

        if corrected:
            safe_commit(self.session, "reconcile availability")
            for drift in corrected:
                book = self.session.get(BookDB, drift.book_id)
                if book is not None:
                    self.session.refresh(book)
        return corrected

    # Helpers

    def _validate_due_date(self, due_date: date) -> None:
        today = date.today()
        if due_date < today:
            raise ValidationError(f"Due date {due_date} is in the past")

    def _book_exists(self, book_id: str) -> bool:
        return (
            safe_query(
                self.session,
                lambda s: s.execute(select(BookDB.id).where(BookDB.id == book_id)).first(),
                "Failed to check book",
            )
            is not None
        )

    def _get_loan_row(self, loan_id: str) -> LoanDB:
        query = select(LoanDB).where(LoanDB.id == loan_id).execution_options(populate_existing=True)
        loan = safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            "Failed to get loan",
        )
        if loan is None:
            raise NotFoundError(f"Loan {loan_id} not found")
        return loan

    def _execute(self, statement, error_msg: str):
        """Run a conditional write; the caller inspects rowcount."""
        try:
            return self.session.execute(
                statement.execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.exception(error_msg)
            raise DatabaseError(f"{error_msg}: Database write failed") from e

    def _put_copy_back(self, book_id: str, loan_id: str) -> None:
        restored = self._execute(
            update(BookDB)
            .where(BookDB.id == book_id, BookDB.available_copies < BookDB.total_copies)
            .values(available_copies=BookDB.available_copies + 1),
            "Failed to put a copy back on the shelf",
        )
        if restored.rowcount != 1:
            logger.warning(
                "Book %s already has all copies on the shelf while closing loan %s; "
                "availability counter had drifted, left at total_copies",
                book_id,
                loan_id,
            )

    def _to_detail(self, loan: LoanDB) -> LoanDetail:
        return LoanDetail(
            id=loan.id,
            member_id=loan.member_id,
            book_id=loan.book_id,
            loan_date=loan.loan_date,
            return_date=loan.return_date,
            actual_return_date=loan.actual_return_date,
            status=LoanStatus(loan.status.value),
            fine=float(loan.fine or 0.0),
            notes=loan.notes,
            member=member_to_model(loan.member) if loan.member else None,
            book=BookModel.model_validate(loan.book, from_attributes=True) if loan.book else None,
        )
