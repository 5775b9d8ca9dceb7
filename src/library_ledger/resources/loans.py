"""Loan Resources - Current Circulation

Exposes the loans that are still out.

MCP RESOURCES:
Resources are the read-only half of MCP. A client lists them with
resources/list and fetches one with resources/read by URI; reading never
changes the ledger, so clients may poll these freely. Each read opens its own
session and returns at most one page of loans, flagged when truncated.

A loan counts as overdue from midnight at the start of its due date, so a
loan due today is listed with zero whole days overdue.

Resources:
- ledger://loans/active - Borrowed loans, newest first
- ledger://loans/overdue - Borrowed loans on or past their due date
"""

import logging
from datetime import date
from typing import Any

from fastmcp.exceptions import ResourceError

from ..database.loan_ledger import LoanFilter, LoanLedger
from ..database.repository import PaginationParams
from ..database.session import session_scope
from ..models.loan import LoanStatus
from ..observability import trace_resource

logger = logging.getLogger(__name__)

MAX_LOANS_PER_READ = 100


def _summarize(loan) -> dict[str, Any]:
    today = date.today()
    return {
        "id": loan.id,
        "member_id": loan.member_id,
        "member_name": loan.member.name if loan.member else None,
        "book_id": loan.book_id,
        "title": loan.book.title if loan.book else None,
        "author": loan.book.author if loan.book else None,
        "loan_date": loan.loan_date.isoformat(),
        "due_date": loan.return_date.isoformat(),
        "days_overdue": max(0, (today - loan.return_date).days),
        "fine": loan.fine,
    }


def _read_loans(loan_filter: LoanFilter) -> dict[str, Any]:
    with session_scope() as session:
        page = LoanLedger(session).list_loans(
            loan_filter, PaginationParams(page=1, page_size=MAX_LOANS_PER_READ)
        )
    return {
        "items": [_summarize(loan) for loan in page.items],
        "total": page.total,
        "truncated": page.has_next,
        "as_of": date.today().isoformat(),
    }


@trace_resource("loans.active")
async def get_active_loans_handler() -> dict[str, Any]:
    """Returns loans that have not been returned yet."""
    try:
        logger.debug("Resource request - loans/active")
        return _read_loans(LoanFilter(status=LoanStatus.BORROWED))
    except Exception as e:
        logger.exception("Error in loans/active resource")
        raise ResourceError(f"Failed to list active loans: {e!s}") from e


@trace_resource("loans.overdue")
async def get_overdue_loans_handler() -> dict[str, Any]:
    """Returns borrowed loans whose due day has begun."""
    try:
        logger.debug("Resource request - loans/overdue")
        return _read_loans(LoanFilter(overdue_only=True))
    except Exception as e:
        logger.exception("Error in loans/overdue resource")
        raise ResourceError(f"Failed to list overdue loans: {e!s}") from e


loan_resources: list[dict[str, Any]] = [
    {
        "uri": "ledger://loans/active",
        "name": "Active Loans",
        "description": "Loans that are still borrowed, newest first (up to 100).",
        "mime_type": "application/json",
        "handler": get_active_loans_handler,
    },
    {
        "uri": "ledger://loans/overdue",
        "name": "Overdue Loans",
        "description": (
            "Borrowed loans whose due day has begun, with whole days overdue."
        ),
        "mime_type": "application/json",
        "handler": get_overdue_loans_handler,
    },
]
