"""Response helpers shared by the ledger tools."""

from typing import Any


def success_response(message: str, data: dict[str, Any]) -> dict[str, Any]:
    """Human-readable text plus structured data for follow-up calls."""
    return {
        "content": [{"type": "text", "text": message}],
        "data": data,
    }


def error_response(message: str, error_type: str) -> dict[str, Any]:
    """
    An error result the client can show or act on.

    ``error_type`` is the exception class name, e.g. ``ConcurrencyConflict``,
    so a client can tell a lost race from an invalid request.
    """
    return {
        "isError": True,
        "content": [{"type": "text", "text": message}],
        "data": {"error": error_type},
    }
