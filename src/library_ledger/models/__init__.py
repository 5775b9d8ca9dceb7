"""
Library Ledger Models.

Pydantic models for all core entities. These models provide:

1. Data validation using Pydantic v2
2. Serialization to JSON for tool and resource responses
3. Construction from ORM rows (``from_attributes``)

The models represent:
- Book: catalog entries with copy counters
- Member: registered borrowers
- Loan: borrow/return records and aggregate statistics
- Visit: the check-in/out log
"""

from .book import Book
from .loan import AvailabilityDrift, Loan, LoanDetail, LoanStats, LoanStatus, is_overdue
from .member import Member, MemberCategory
from .visit import Visit, VisitPurpose, Visitor, VisitorCategory, VisitStats

__all__ = [
    "AvailabilityDrift",
    "Book",
    "Loan",
    "LoanDetail",
    "LoanStats",
    "LoanStatus",
    "Member",
    "MemberCategory",
    "Visit",
    "VisitPurpose",
    "VisitStats",
    "Visitor",
    "VisitorCategory",
    "is_overdue",
]
