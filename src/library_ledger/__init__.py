"""
Library Ledger package.

A small library-management back end: book catalog, member registry,
visit log, and the loan ledger that keeps each book's available-copy
counter consistent with its outstanding loans.

Key Components:
- models: Pydantic models for validation and serialization
- database: SQLAlchemy schema, sessions, repositories and the loan ledger
- config: Configuration management with pydantic-settings
- tools: MCP tools (commands with side effects)
- resources: MCP resources (read-only queries)
"""

__version__ = "0.1.0"

from . import database

__all__ = [
    "__version__",
    "database",
]
