"""
Database package for the Library Ledger.

This package provides:
- SQLAlchemy schema definitions (schema.py)
- Session management and connection handling (session.py)
- Repositories for the catalog, members and the visit log
- The loan ledger, which keeps book availability in step with loans
"""

from .book_repository import BookCreateSchema, BookRepository, BookSearchParams, BookUpdateSchema
from .loan_ledger import LoanCreateSchema, LoanFilter, LoanLedger, LoanUpdateSchema
from .member_repository import (
    MemberCreateSchema,
    MemberRepository,
    MemberSearchParams,
    MemberUpdateSchema,
)
from .repository import (
    BaseRepository,
    PaginatedResponse,
    PaginationParams,
)
from .schema import (
    Base,
    Book,
    Loan,
    LoanStatusEnum,
    Member,
    MemberCategoryEnum,
    Visit,
    Visitor,
    VisitorCategoryEnum,
    VisitPurposeEnum,
)
from .session import (
    DatabaseManager,
    get_db_manager,
    get_session,
    reset_db_manager,
    safe_commit,
    safe_query,
    session_scope,
)
from .visit_repository import CheckInSchema, VisitorSchema, VisitRepository

__all__ = [
    "Base",
    "BaseRepository",
    "Book",
    "BookCreateSchema",
    "BookRepository",
    "BookSearchParams",
    "BookUpdateSchema",
    "CheckInSchema",
    "DatabaseManager",
    "Loan",
    "LoanCreateSchema",
    "LoanFilter",
    "LoanLedger",
    "LoanStatusEnum",
    "LoanUpdateSchema",
    "Member",
    "MemberCategoryEnum",
    "MemberCreateSchema",
    "MemberRepository",
    "MemberSearchParams",
    "MemberUpdateSchema",
    "PaginatedResponse",
    "PaginationParams",
    "Visit",
    "VisitPurposeEnum",
    "VisitRepository",
    "Visitor",
    "VisitorCategoryEnum",
    "VisitorSchema",
    "get_db_manager",
    "get_session",
    "reset_db_manager",
    "safe_commit",
    "safe_query",
    "session_scope",
]
