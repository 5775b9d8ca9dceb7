"""
Tools for the Library Ledger server.

Tools are the commands of the ledger: each one may change state and returns
either a result with structured data or an ``isError`` result.
"""

from .circulation import create_loan, delete_loan, return_loan
from .visits import check_in_visit, check_out_visit

all_tools = [
    create_loan,
    return_loan,
    delete_loan,
    check_in_visit,
    check_out_visit,
]

__all__ = [
    "all_tools",
    "check_in_visit",
    "check_out_visit",
    "create_loan",
    "delete_loan",
    "return_loan",
]
