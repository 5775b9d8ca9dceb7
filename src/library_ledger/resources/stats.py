"""Statistics Resources - Library Reporting

Exposes aggregated loan, catalog and visit figures.

These are computed on every read rather than cached: the ledger is small, and
a client asking for the dashboard expects the counters as of that moment.
Monthly trends use calendar months, oldest first, with empty months reported
as zero so charts keep a fixed width.

Resources:
- ledger://stats/loans - Loan counts by status, overdue count and fines
- ledger://stats/dashboard - Everything the front desk overview shows
"""

import logging
from datetime import datetime
from typing import Any

from fastmcp.exceptions import ResourceError

from ..database.book_repository import BookRepository
from ..database.loan_ledger import LoanLedger
from ..database.member_repository import MemberRepository
from ..database.session import session_scope
from ..database.visit_repository import VisitRepository
from ..observability import trace_resource

logger = logging.getLogger(__name__)


@trace_resource("stats.loans")
async def get_loan_stats_handler() -> dict[str, Any]:
    """Returns loan counts by status with overdue count and total fines."""
    try:
        logger.debug("Resource request - stats/loans")
        with session_scope() as session:
            stats = LoanLedger(session).get_loan_stats()
        return {"timestamp": datetime.now().isoformat(), **stats.model_dump()}
    except Exception as e:
        logger.exception("Error in stats/loans resource")
        raise ResourceError(f"Failed to calculate loan stats: {e!s}") from e


@trace_resource("stats.dashboard")
async def get_dashboard_handler() -> dict[str, Any]:
    """
    Returns the library overview.

    Combines catalog totals, member counts per category, today's visits,
    loan stats, six-month loan and visit trends and the most borrowed
    books and categories.
    """
    try:
        logger.debug("Resource request - stats/dashboard")
        with session_scope() as session:
            ledger = LoanLedger(session)
            books = BookRepository(session)
            visits = VisitRepository(session)

            drift = ledger.audit_availability()
            if drift:
                logger.warning("%d book(s) have a drifted availability counter", len(drift))

            return {
                "timestamp": datetime.now().isoformat(),
                "catalog": books.copy_totals(),
                "members": MemberRepository(session).category_counts(),
                "visits_today": visits.daily_stats().model_dump(mode="json"),
                "loans": ledger.get_loan_stats().model_dump(),
                "monthly_loans": ledger.monthly_loan_counts(months=6),
                "monthly_visits": visits.monthly_visit_counts(months=6),
                "category_distribution": books.category_distribution(),
                "popular_categories": ledger.popular_categories(limit=5),
                "popular_books": ledger.popular_books(limit=5),
                "availability_drift": len(drift),
            }
    except Exception as e:
        logger.exception("Error in stats/dashboard resource")
        raise ResourceError(f"Failed to build dashboard: {e!s}") from e


stats_resources: list[dict[str, Any]] = [
    {
        "uri": "ledger://stats/loans",
        "name": "Loan Statistics",
        "description": (
            "Total, borrowed, returned and overdue loan counts plus the sum of recorded fines."
        ),
        "mime_type": "application/json",
        "handler": get_loan_stats_handler,
    },
    {
        "uri": "ledger://stats/dashboard",
        "name": "Library Dashboard",
        "description": (
            "Library overview: catalog totals, members per category, today's visits, "
            "loan stats, six-month trends and the most borrowed books and categories."
        ),
        "mime_type": "application/json",
        "handler": get_dashboard_handler,
    },
]
