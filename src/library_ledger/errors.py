"""
Exception hierarchy for the Library Ledger.

Every error raised by the repositories and the loan ledger derives from
RepositoryException, so command handlers can separate rule violations
(reported back to the caller) from unexpected failures.
"""


class RepositoryException(Exception):
    """Base exception for repository operations."""


class ValidationError(RepositoryException):
    """Raised when required input is missing or invalid, before any write."""


class NotFoundError(RepositoryException):
    """Raised when an entity is not found."""


class DuplicateError(RepositoryException):
    """Raised when attempting to create a duplicate entity."""


class InvalidStateError(RepositoryException):
    """Raised when a loan or visit is not in the state an operation requires."""


class BookUnavailableError(RepositoryException):
    """Raised when a book has no available copies to lend."""


class ConcurrencyConflict(RepositoryException):
    """
    Raised when a conditional update affected no row.

    Another session changed the record between our read and our write;
    the caller may retry or tell the user the book is no longer available.
    """


class RecordInUseError(RepositoryException):
    """Raised when deleting a record that loans still reference."""


class DatabaseError(RepositoryException):
    """Raised when the database fails to run a query or commit."""
