"""
Visit log repository for the Library Ledger.

Tracks who is in the building. A visit is opened by a check-in for either a
walk-in visitor or a registered member, and closed by exactly one check-out.
The log is independent from loans and never touches book availability.
"""

import logging
from datetime import date, datetime, timedelta

from pydantic import BaseModel, Field, model_validator
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, selectinload

from ..database.schema import Member as MemberDB
from ..database.schema import Visit as VisitDB
from ..database.schema import Visitor as VisitorDB
from ..database.schema import VisitorCategoryEnum, VisitPurposeEnum
from ..database.session import safe_commit, safe_query
from ..models.visit import Visit as VisitModel
from ..models.visit import Visitor as VisitorModel
from ..models.visit import VisitorCategory, VisitPurpose, VisitStats
from .member_repository import member_to_model
from .repository import (
    InvalidStateError,
    NotFoundError,
    ValidationError,
    count_by_month,
    month_buckets,
)

logger = logging.getLogger(__name__)


class VisitorSchema(BaseModel):
    """A walk-in guest as entered at the front desk."""

    name: str = Field(..., min_length=1, max_length=200)
    address: str = Field(..., min_length=1, max_length=500)
    category: VisitorCategory = VisitorCategory.ADULT


class CheckInSchema(BaseModel):
    """
    Schema for opening a visit.

    Exactly one of ``member_id`` or ``visitor`` must be given. A visitor is
    matched on name and address and created on first visit.
    """

    member_id: str | None = None
    visitor: VisitorSchema | None = None
    purpose: VisitPurpose = VisitPurpose.READING

    @model_validator(mode="after")
    def validate_guest(self) -> "CheckInSchema":
        if (self.member_id is None) == (self.visitor is None):
            raise ValueError("Check-in needs exactly one of member_id or visitor")
        return self


def visitor_to_model(db_obj: VisitorDB) -> VisitorModel:
    return VisitorModel(
        id=db_obj.id,
        name=db_obj.name,
        address=db_obj.address,
        category=VisitorCategory(db_obj.category.value),
    )


def visit_to_model(db_obj: VisitDB) -> VisitModel:
    return VisitModel(
        id=db_obj.id,
        visit_date=db_obj.visit_date,
        checkin_time=db_obj.checkin_time,
        checkout_time=db_obj.checkout_time,
        visitor_id=db_obj.visitor_id,
        member_id=db_obj.member_id,
        purpose=VisitPurpose(db_obj.purpose.value),
        visitor=visitor_to_model(db_obj.visitor) if db_obj.visitor else None,
        member=member_to_model(db_obj.member) if db_obj.member else None,
    )


class VisitRepository:
    """Repository for the check-in/out log."""

    def __init__(self, session: Session):
        """Initialize repository with database session."""
        self.session = session

    def find_or_create_visitor(self, data: VisitorSchema) -> VisitorModel:
        """Return the visitor with this name and address, registering a new one if needed."""
        visitor = self._find_or_add_visitor(data)
        if visitor.id is None:
            safe_commit(self.session, "create visitor")
            logger.info("Registered visitor %s", visitor.id)
        return visitor_to_model(visitor)

    def check_in(self, data: CheckInSchema, when: datetime | None = None) -> VisitModel:
        """
        Open a visit.

        Raises:
            NotFoundError: If the member does not exist
        """
        when = when or datetime.now()

        if data.member_id is not None:
            member = safe_query(
                self.session,
                lambda s: s.get(MemberDB, data.member_id),
                "Failed to get member for check-in",
            )
            if member is None:
                raise NotFoundError(f"Member {data.member_id} not found")
            guest = {"member_id": member.id}
        else:
            # a new visitor is only pending here and is committed with the visit
            guest = {"visitor": self._find_or_add_visitor(data.visitor)}

        visit = VisitDB(
            visit_date=when.date(),
            checkin_time=when,
            purpose=VisitPurposeEnum(data.purpose.value),
            **guest,
        )
        self.session.add(visit)
        safe_commit(self.session, "check in")

        logger.info("Visit %s checked in", visit.id)
        return self.get_visit(visit.id)

    def check_out(self, visit_id: str, when: datetime | None = None) -> VisitModel:
        """
        Close a visit.

        Raises:
            NotFoundError: If the visit does not exist
            InvalidStateError: If the visit is already checked out
            ValidationError: If the check-out time is before the check-in time
        """
        visit = self._get_visit_row(visit_id)
        if visit.checkout_time is not None:
            raise InvalidStateError(f"Visit {visit_id} is already checked out")

        when = when or datetime.now()
        if when < visit.checkin_time:
            raise ValidationError("Check-out time cannot be before check-in time")

        closed = safe_query(
            self.session,
            lambda s: s.execute(
                update(VisitDB)
                .where(VisitDB.id == visit_id, VisitDB.checkout_time.is_(None))
                .values(checkout_time=when)
                .execution_options(synchronize_session=False)
            ),
            "Failed to check out visit",
        )
        if closed.rowcount != 1:
            self.session.rollback()
            raise InvalidStateError(f"Visit {visit_id} is already checked out")
        safe_commit(self.session, "check out")

        logger.info("Visit %s checked out", visit_id)
        return self.get_visit(visit_id)

    def get_visit(self, visit_id: str) -> VisitModel:
        """
        Get one visit with its guest.

        Raises:
            NotFoundError: If the visit does not exist
        """
        return visit_to_model(self._get_visit_row(visit_id))

    def list_visits(
        self, visit_date: date | None = None, open_only: bool = False
    ) -> list[VisitModel]:
        """Visits of one day (today by default), latest check-in first."""
        visit_date = visit_date or date.today()
        query = (
            select(VisitDB)
            .where(VisitDB.visit_date == visit_date)
            .options(selectinload(VisitDB.visitor), selectinload(VisitDB.member))
            .order_by(VisitDB.checkin_time.desc())
        )
        if open_only:
            query = query.where(VisitDB.checkout_time.is_(None))

        results = safe_query(
            self.session, lambda s: s.execute(query).scalars().all(), "Failed to list visits"
        )
        return [visit_to_model(visit) for visit in results]

    def daily_stats(self, visit_date: date | None = None) -> VisitStats:
        """Check-ins, check-outs and guests still inside for one day."""
        visit_date = visit_date or date.today()
        checkins, checkouts = safe_query(
            self.session,
            lambda s: s.execute(
                select(func.count(VisitDB.id), func.count(VisitDB.checkout_time)).where(
                    VisitDB.visit_date == visit_date
                )
            ).one(),
            "Failed to count visits",
        )
        return VisitStats(
            visit_date=visit_date,
            checkins=checkins,
            checkouts=checkouts,
            active=checkins - checkouts,
        )

    def monthly_visit_counts(self, months: int = 6, as_of: date | None = None) -> list[dict]:
        """
        Visits per calendar month for the last ``months`` months, oldest first.

        Returns:
            List of ``{"month": "YYYY-MM", "count": int}`` entries
        """
        today = as_of or date.today()
        buckets = month_buckets(months, today)

        start = date(*buckets[0], 1)
        visit_dates = safe_query(
            self.session,
            lambda s: s.execute(
                select(VisitDB.visit_date).where(
                    VisitDB.visit_date >= start,
                    VisitDB.visit_date < today + timedelta(days=1),
                )
            )
            .scalars()
            .all(),
            "Failed to get monthly visit counts",
        )
        return count_by_month(buckets, visit_dates)

    def _find_or_add_visitor(self, data: VisitorSchema) -> VisitorDB:
        visitor = self._find_visitor(data)
        if visitor is None:
            visitor = VisitorDB(
                name=" ".join(data.name.split()),
                address=data.address.strip(),
                category=VisitorCategoryEnum(data.category.value),
            )
            self.session.add(visitor)
        return visitor

    def _find_visitor(self, data: VisitorSchema) -> VisitorDB | None:
        query = (
            select(VisitorDB)
            .where(
                VisitorDB.name == " ".join(data.name.split()),
                VisitorDB.address == data.address.strip(),
            )
            .order_by(VisitorDB.created_at)
            .limit(1)
        )
        return safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            "Failed to look up visitor",
        )

    def _get_visit_row(self, visit_id: str) -> VisitDB:
        query = (
            select(VisitDB)
            .where(VisitDB.id == visit_id)
            .options(selectinload(VisitDB.visitor), selectinload(VisitDB.member))
            .execution_options(populate_existing=True)
        )
        visit = safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            "Failed to get visit",
        )
        if visit is None:
            raise NotFoundError(f"Visit {visit_id} not found")
        return visit
