"""Library Ledger Resources Package

Resources are the read-only side of the server: each one has a fixed URI
and returns JSON built from the repositories and the loan ledger.
"""

from .loans import loan_resources
from .stats import stats_resources

all_resources = loan_resources + stats_resources

__all__ = [
    "all_resources",
    "loan_resources",
    "stats_resources",
]
