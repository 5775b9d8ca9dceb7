"""
Visit log tools for the Library Ledger.

These MCP tools record who is in the building:
1. check_in_visit: open a visit for a member or a walk-in visitor
2. check_out_visit: close a visit, exactly once

The visit log is independent from circulation: neither tool touches loans or
book copies. A walk-in visitor is matched on name and address and registered
on the first visit, in the same transaction that opens the visit, so a failed
check-in never leaves an orphan visitor behind.
"""

import logging
from typing import Any

from pydantic import BaseModel, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from ..database.session import get_session
from ..database.visit_repository import CheckInSchema, VisitorSchema, VisitRepository
from ..errors import RepositoryException
from ..models.visit import VisitorCategory, VisitPurpose
from ..observability import trace_tool
from .responses import error_response, success_response

logger = logging.getLogger(__name__)


class CheckInInput(BaseModel):
    """
    Input schema for the check_in_visit tool.

    Give ``member_id`` for a registered member, or ``visitor_name`` and
    ``visitor_address`` for a walk-in guest.
    """

    member_id: str | None = Field(default=None, description="ID of a registered member")

    visitor_name: str | None = Field(default=None, max_length=200)

    visitor_address: str | None = Field(default=None, max_length=500)

    visitor_category: VisitorCategory = Field(default=VisitorCategory.ADULT)

    purpose: VisitPurpose = Field(default=VisitPurpose.READING)

    @model_validator(mode="after")
    def validate_guest(self) -> "CheckInInput":
        is_visitor = bool(self.visitor_name or self.visitor_address)
        if bool(self.member_id) == is_visitor:
            raise ValueError("Give either member_id or visitor_name and visitor_address")
        if is_visitor and not (self.visitor_name and self.visitor_address):
            raise ValueError("A walk-in visitor needs both a name and an address")
        return self


class CheckOutInput(BaseModel):
    """Input schema for the check_out_visit tool."""

    visit_id: str = Field(..., min_length=1)


@trace_tool("check_in_visit")
async def check_in_visit_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """
    Handler for the check_in_visit tool.

    MCP TOOL FLOW:
    1. INPUT: the flat tool arguments are validated by CheckInInput
    2. TRANSLATION: they become a CheckInSchema for the repository
    3. STATE CHANGE: visitor (when new) and visit are committed together
    4. RESPONSE: the open visit with its guest resolved
    """
    try:
        params = CheckInInput.model_validate(arguments)
    except PydanticValidationError as e:
        logger.warning("Invalid check_in_visit parameters: %s", e)
        return error_response(f"Invalid check_in_visit parameters: {e}", "ValidationError")

    # The tool keeps its arguments flat for the client; the repository takes
    # either a member reference or a nested visitor record.
    if params.member_id:
        check_in = CheckInSchema(member_id=params.member_id, purpose=params.purpose)
    else:
        check_in = CheckInSchema(
            visitor=VisitorSchema(
                name=params.visitor_name,
                address=params.visitor_address,
                category=params.visitor_category,
            ),
            purpose=params.purpose,
        )

    try:
        with get_session() as session:
            visit = VisitRepository(session).check_in(check_in)
    except RepositoryException as e:
        logger.info("check_in_visit rejected: %s", e)
        return error_response(str(e), type(e).__name__)
    except Exception as e:
        logger.exception("Unexpected error in check_in_visit tool")
        return error_response(f"An unexpected error occurred: {e!s}", type(e).__name__)

    message = f"{visit.guest_name} checked in at {visit.checkin_time.strftime('%H:%M')}."
    return success_response(message, {"visit": visit.model_dump(mode="json")})


@trace_tool("check_out_visit")
async def check_out_visit_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the check_out_visit tool. A visit is checked out once."""
    try:
        params = CheckOutInput.model_validate(arguments)
    except PydanticValidationError as e:
        logger.warning("Invalid check_out_visit parameters: %s", e)
        return error_response(f"Invalid check_out_visit parameters: {e}", "ValidationError")

    try:
        with get_session() as session:
            visit = VisitRepository(session).check_out(params.visit_id)
    except RepositoryException as e:
        logger.info("check_out_visit rejected: %s", e)
        return error_response(str(e), type(e).__name__)
    except Exception as e:
        logger.exception("Unexpected error in check_out_visit tool")
        return error_response(f"An unexpected error occurred: {e!s}", type(e).__name__)

    message = f"{visit.guest_name} checked out at {visit.checkout_time.strftime('%H:%M')}."
    return success_response(message, {"visit": visit.model_dump(mode="json")})


check_in_visit: dict[str, Any] = {
    "name": "check_in_visit",
    "description": (
        "Record a guest entering the library, either a member (member_id) or a walk-in "
        "visitor (visitor_name and visitor_address)."
    ),
    "inputSchema": CheckInInput.model_json_schema(),
    "handler": check_in_visit_handler,
}

check_out_visit: dict[str, Any] = {
    "name": "check_out_visit",
    "description": "Record a guest leaving the library. A visit can be checked out once.",
    "inputSchema": CheckOutInput.model_json_schema(),
    "handler": check_out_visit_handler,
}
