"""
Circulation tools for the Library Ledger.

This module holds the MCP tools that change the state of the loan ledger:
1. create_loan: lend one copy of a book to a member
2. return_loan: record that a borrowed book came back
3. delete_loan: administrative removal of a loan record

MCP TOOLS ARCHITECTURE:
Tools in the Model Context Protocol are how a client performs actions with
side effects. Resources only read; tools may:
- Create, change and remove records
- Enforce business rules before anything is written
- Report rule violations as results the client can read and act on

Every handler here follows the same shape:
- Arguments are validated with a Pydantic input schema
- One ledger command runs in a fresh session, so each call is its own transaction
- Outcomes come back as text plus structured data; rule violations come back
  as ``isError`` results and never raise into the server
"""

import logging
from datetime import date, timedelta
from typing import Any

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from ..config import get_config
from ..database.loan_ledger import LoanCreateSchema, LoanLedger
from ..database.session import get_session
from ..errors import RepositoryException
from ..observability import trace_tool
from .responses import error_response, success_response

logger = logging.getLogger(__name__)


# =============================================================================
# INPUT SCHEMAS
# =============================================================================


class CreateLoanInput(BaseModel):
    """
    Input schema for the create_loan tool.

    MCP SCHEMA DESIGN:
    The JSON schema generated from this model is published in ``tools/list``.
    It tells the client which arguments exist and which are required, and the
    same model rejects malformed calls before the ledger is touched.
    """

    member_id: str = Field(..., min_length=1, description="ID of the borrowing member")

    book_id: str = Field(..., min_length=1, description="ID of the book to lend")

    due_date: date | None = Field(
        default=None,
        description="Date the book is due back. Defaults to the standard loan period",
        examples=["2024-02-15"],
    )

    notes: str | None = Field(
        default=None,
        max_length=1000,
        examples=["Reserved for a school project"],
    )


class LoanIdInput(BaseModel):
    """Input schema for tools that act on an existing loan."""

    loan_id: str = Field(..., min_length=1, description="ID of the loan")


def _invalid_arguments(tool_name: str, error: PydanticValidationError) -> dict[str, Any]:
    logger.warning("Invalid %s parameters: %s", tool_name, error)
    return error_response(f"Invalid {tool_name} parameters: {error}", "ValidationError")


def _loan_too_long(due_date: date) -> dict[str, Any] | None:
    """Reject a due date past the configured longest loan, when one is set."""
    max_days = get_config().max_loan_days
    if max_days is None or due_date <= date.today() + timedelta(days=max_days):
        return None
    logger.info("create_loan rejected: due date %s is more than %d days out", due_date, max_days)
    return error_response(
        f"Due date {due_date.isoformat()} is more than {max_days} days from today",
        "ValidationError",
    )


# =============================================================================
# CREATE LOAN
# =============================================================================


@trace_tool("create_loan")
async def create_loan_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """
    Handler for the create_loan tool.

    MCP TOOL LIFECYCLE:
    1. INPUT: validate the raw ``tools/call`` arguments
    2. DEFAULTS: fill in the due date from the configured loan period
    3. STATE CHANGE: take a copy off the shelf and record the loan atomically
    4. RESPONSE: describe the loan in text and return it as structured data

    The book's available copies drop by one in the same transaction that
    records the loan. When the last copy was taken by a concurrent request
    the result is an error of type ConcurrencyConflict and nothing is written.
    A member or book removed while the loan was being recorded is reported
    as NotFoundError.
    """
    # STEP 1: Validate input
    # WHY: the client may send anything; the ledger only accepts typed commands
    # HOW: Pydantic checks types and lengths and names the offending field
    try:
        params = CreateLoanInput.model_validate(arguments)
    except PydanticValidationError as e:
        return _invalid_arguments("create_loan", e)

    # STEP 2: Resolve the due date
    # HOW: a missing due date means the standard loan period from today
    due_date = params.due_date or date.today() + timedelta(days=get_config().default_loan_days)
    too_long = _loan_too_long(due_date)
    if too_long is not None:
        return too_long

    # STEP 3: Record the loan
    # WHY: the copy counter and the loan row must change together or not at all
    # HOW: the ledger guards the counter with a conditional UPDATE and commits once
    try:
        with get_session() as session:
            loan = LoanLedger(session).create_loan(
                LoanCreateSchema(
                    member_id=params.member_id,
                    book_id=params.book_id,
                    due_date=due_date,
                    notes=params.notes,
                )
            )
    except RepositoryException as e:
        # MCP ERROR PATTERN: business rule violation, reported with its type
        logger.info("create_loan rejected: %s", e)
        return error_response(str(e), type(e).__name__)
    except Exception as e:
        # MCP ERROR PATTERN: the tool never crashes the server
        logger.exception("Unexpected error in create_loan tool")
        return error_response(f"An unexpected error occurred: {e!s}", type(e).__name__)

    # STEP 4: Respond with text for the reader and data for follow-up calls
    message = (
        f"Lent '{loan.book.title}' to {loan.member.name}. "
        f"Due back on {loan.return_date.strftime('%B %d, %Y')} "
        f"({loan.book.available_copies} of {loan.book.total_copies} copies left)."
    )
    return success_response(message, {"loan": loan.model_dump(mode="json")})


# =============================================================================
# RETURN AND DELETE
# =============================================================================


@trace_tool("return_loan")
async def return_loan_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """
    Handler for the return_loan tool.

    A loan can be returned once. The status flip and the copy going back on
    the shelf happen in one transaction; a repeated call reports
    InvalidStateError and leaves the book's available copies unchanged.
    """
    try:
        params = LoanIdInput.model_validate(arguments)
    except PydanticValidationError as e:
        return _invalid_arguments("return_loan", e)

    try:
        with get_session() as session:
            loan = LoanLedger(session).return_loan(params.loan_id)
    except RepositoryException as e:
        logger.info("return_loan rejected: %s", e)
        return error_response(str(e), type(e).__name__)
    except Exception as e:
        logger.exception("Unexpected error in return_loan tool")
        return error_response(f"An unexpected error occurred: {e!s}", type(e).__name__)

    message = f"'{loan.book.title}' returned by {loan.member.name}."
    if loan.return_date < loan.actual_return_date.date():
        days_late = (loan.actual_return_date.date() - loan.return_date).days
        message += f" The book came back {days_late} day(s) late."
    return success_response(message, {"loan": loan.model_dump(mode="json")})


@trace_tool("delete_loan")
async def delete_loan_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the delete_loan tool."""
    try:
        params = LoanIdInput.model_validate(arguments)
    except PydanticValidationError as e:
        return _invalid_arguments("delete_loan", e)

    try:
        with get_session() as session:
            LoanLedger(session).delete_loan(params.loan_id)
    except RepositoryException as e:
        logger.info("delete_loan rejected: %s", e)
        return error_response(str(e), type(e).__name__)
    except Exception as e:
        logger.exception("Unexpected error in delete_loan tool")
        return error_response(f"An unexpected error occurred: {e!s}", type(e).__name__)

    return success_response(f"Loan {params.loan_id} deleted.", {"loan_id": params.loan_id})


# =============================================================================
# TOOL DEFINITIONS
# =============================================================================
# Each entry is what the server registers: the name and description shown in
# tools/list, the JSON schema the client fills in and the handler to call.

create_loan: dict[str, Any] = {
    "name": "create_loan",
    "description": (
        "Lend a book to a member. Takes one copy off the shelf and fails if none "
        "is available. The due date defaults to the standard loan period."
    ),
    "inputSchema": CreateLoanInput.model_json_schema(),
    "handler": create_loan_handler,
}

return_loan: dict[str, Any] = {
    "name": "return_loan",
    "description": "Record the return of a borrowed book and put the copy back on the shelf.",
    "inputSchema": LoanIdInput.model_json_schema(),
    "handler": return_loan_handler,
}

delete_loan: dict[str, Any] = {
    "name": "delete_loan",
    "description": (
        "Delete a loan record. Deleting a loan that is still borrowed puts its copy "
        "back on the shelf."
    ),
    "inputSchema": LoanIdInput.model_json_schema(),
    "handler": delete_loan_handler,
}
