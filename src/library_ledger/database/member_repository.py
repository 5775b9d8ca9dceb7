"""
Member repository implementation for the Library Ledger.

Members are the only people who can hold loans. This repository handles
their registration records and the per-category counts shown on the
dashboard. A member with loan or visit history cannot be removed.
"""

import enum
from datetime import date

from pydantic import BaseModel, Field, field_validator
from sqlalchemy import desc, func, or_, select

from ..database.schema import Loan as LoanDB
from ..database.schema import Member as MemberDB
from ..database.schema import MemberCategoryEnum
from ..database.schema import Visit as VisitDB
from ..database.session import safe_query
from ..models.member import Member as MemberModel
from ..models.member import MemberCategory
from .repository import (
    BaseRepository,
    PaginatedResponse,
    PaginationParams,
    RecordInUseError,
    paginate,
)


def member_to_model(db_obj: MemberDB) -> MemberModel:
    """Convert a member row, mapping the stored category onto the model enum."""
    return MemberModel(
        id=db_obj.id,
        name=db_obj.name,
        birth_place=db_obj.birth_place,
        birth_date=db_obj.birth_date,
        address=db_obj.address,
        religion=db_obj.religion,
        gender=db_obj.gender,
        phone=db_obj.phone,
        category=MemberCategory(db_obj.category.value),
        created_at=db_obj.created_at,
    )


class MemberCreateSchema(BaseModel):
    """Schema for registering a member."""

    name: str = Field(..., min_length=1, max_length=200)
    birth_place: str | None = Field(None, max_length=100)
    birth_date: date | None = None
    address: str | None = Field(None, max_length=500)
    religion: str | None = Field(None, max_length=50)
    gender: str | None = Field(None, max_length=20)
    phone: str | None = Field(None, pattern=r"^\+?[\d\s\-\(\)]+$")
    category: MemberCategory = MemberCategory.GENERAL

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


class MemberUpdateSchema(BaseModel):
    """Schema for updating a member - all fields optional."""

    name: str | None = Field(None, min_length=1, max_length=200)
    birth_place: str | None = Field(None, max_length=100)
    birth_date: date | None = None
    address: str | None = Field(None, max_length=500)
    religion: str | None = Field(None, max_length=50)
    gender: str | None = Field(None, max_length=20)
    phone: str | None = Field(None, pattern=r"^\+?[\d\s\-\(\)]+$")
    category: MemberCategory | None = None


class MemberSearchParams(BaseModel):
    """Search parameters for finding members."""

    query: str | None = None  # name, address or phone contains
    category: MemberCategory | None = None


class MemberSortOptions(str, enum.Enum):
    """Sorting options for member queries."""

    NAME = "name"
    CATEGORY = "category"
    CREATED_AT = "created_at"


class MemberRepository(
    BaseRepository[MemberDB, MemberCreateSchema, MemberUpdateSchema, MemberModel]
):
    """Repository for member data access."""

    @property
    def model_class(self):
        return MemberDB

    @property
    def response_schema(self):
        return MemberModel

    def _to_response_model(self, db_obj: MemberDB) -> MemberModel:
        return member_to_model(db_obj)

    def _build_db_obj(self, data: MemberCreateSchema) -> MemberDB:
        values = data.model_dump(exclude_none=True)
        values["category"] = MemberCategoryEnum(data.category.value)
        return MemberDB(**values)

    def _apply_update(self, db_obj: MemberDB, changes: dict) -> None:
        if changes.get("category") is not None:
            changes["category"] = MemberCategoryEnum(MemberCategory(changes["category"]).value)
        elif "category" in changes:
            del changes["category"]
        if "name" in changes:
            if changes["name"] is None:
                del changes["name"]
            else:
                changes["name"] = " ".join(changes["name"].split())
        super()._apply_update(db_obj, changes)

    def delete(self, id: str) -> bool:
        """
        Remove a member.

        Raises:
            RecordInUseError: If the member has loans or visits on record
        """
        if not self.exists(id):
            return False

        loan_count = safe_query(
            self.session,
            lambda s: s.execute(
                select(func.count()).select_from(LoanDB).where(LoanDB.member_id == id)
            ).scalar(),
            "Failed to count loans for member",
        )
        visit_count = safe_query(
            self.session,
            lambda s: s.execute(
                select(func.count()).select_from(VisitDB).where(VisitDB.member_id == id)
            ).scalar(),
            "Failed to count visits for member",
        )
        if loan_count or visit_count:
            raise RecordInUseError(
                f"Member {id} has {loan_count} loan(s) and {visit_count} visit(s) on record"
            )

        return super().delete(id)

    def search(
        self,
        search_params: MemberSearchParams,
        pagination: PaginationParams | None = None,
        sort_by: MemberSortOptions = MemberSortOptions.NAME,
        sort_desc: bool = False,
    ) -> PaginatedResponse[MemberModel]:
        """
        Search for members.

        Args:
            search_params: Search and filter criteria
            pagination: Pagination parameters
            sort_by: Field to sort by
            sort_desc: Sort in descending order
        """
        query = select(MemberDB)

        if search_params.query:
            term = f"%{search_params.query.strip()}%"
            query = query.where(
                or_(
                    MemberDB.name.ilike(term),
                    MemberDB.address.ilike(term),
                    MemberDB.phone.like(term),
                )
            )

        if search_params.category:
            query = query.where(
                MemberDB.category == MemberCategoryEnum(search_params.category.value)
            )

        sort_field = {
            MemberSortOptions.NAME: MemberDB.name,
            MemberSortOptions.CATEGORY: MemberDB.category,
            MemberSortOptions.CREATED_AT: MemberDB.created_at,
        }.get(sort_by, MemberDB.name)
        query = query.order_by(desc(sort_field) if sort_desc else sort_field, MemberDB.id)

        return paginate(self.session, query, pagination, self._to_response_model, "members")

    def list_by_name(self) -> list[MemberModel]:
        """All members ordered by name, for pick lists."""
        query = select(MemberDB).order_by(MemberDB.name)
        results = safe_query(
            self.session, lambda s: s.execute(query).scalars().all(), "Failed to list members"
        )
        return [self._to_response_model(member) for member in results]

    def category_counts(self) -> dict[str, int]:
        """
        Number of members per category.

        Every category is present in the result, zero when it has no members.
        """
        query = select(MemberDB.category, func.count(MemberDB.id)).group_by(MemberDB.category)
        rows = safe_query(
            self.session, lambda s: s.execute(query).all(), "Failed to count member categories"
        )
        counts = {category.value: 0 for category in MemberCategory}
        for category, count in rows:
            counts[category.value] = count
        return counts
