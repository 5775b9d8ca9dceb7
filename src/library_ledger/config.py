"""Configuration management for the Library Ledger.

Settings are read from the environment (prefix ``LIBRARY_LEDGER_``) and an
optional ``.env`` file, validated with pydantic-settings, and shared through
a process-wide singleton.
"""

from pathlib import Path

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerConfig(BaseSettings):
    """Library Ledger configuration.

    Groups:
    1. Server metadata for the MCP handshake
    2. Database location
    3. Loan policy defaults
    4. Logging and Logfire observability
    """

    model_config = SettingsConfigDict(
        env_prefix="LIBRARY_LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Server Metadata ===

    server_name: str = Field(
        default="library-ledger",
        description="MCP server name used in protocol handshake",
        pattern=r"^[a-z0-9-]+$",
    )

    server_version: str = Field(
        default="0.1.0",
        description="Server version for capability negotiation",
        pattern=r"^\d+\.\d+\.\d+(-[a-zA-Z0-9.]+)?$",
    )

    transport: str = Field(
        default="stdio",
        description="Primary transport mechanism",
        pattern=r"^(stdio|streamable_http)$",
    )

    http_host: str = Field(default="127.0.0.1", description="Host for Streamable HTTP")

    http_port: int = Field(
        default=8080,
        description="Port for Streamable HTTP",
        ge=1024,
        le=65535,
    )

    # === Database Configuration ===

    database_path: Path = Field(
        default=Path("data/library.db"),
        description="SQLite database file path",
    )

    database_url: str | None = Field(
        default=None,
        description="Full SQLAlchemy URL; takes precedence over database_path",
        repr=False,
    )

    # === Loan Policy ===

    default_loan_days: int = Field(
        default=7,
        description="Days until a new loan is due when no due date is given",
        ge=1,
        le=365,
    )

    max_loan_days: int | None = Field(
        default=None,
        description="Longest loan period the create_loan tool accepts; no limit when unset",
        ge=1,
        le=365,
    )

    # === Logging / Observability ===

    debug: bool = Field(default=False, description="Enable debug logging")

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR)$",
    )

    logfire_enabled: bool = Field(default=True, description="Open Logfire spans for tool calls")

    logfire_send: bool = Field(
        default=False,
        description="Export spans to the Logfire backend (needs LOGFIRE_TOKEN)",
    )

    # === Validation Methods ===

    @field_validator("database_path")
    @classmethod
    def validate_database_path(cls, v: Path) -> Path:
        """Resolve the database path and make sure its directory exists."""
        abs_path = v.absolute()
        abs_path.parent.mkdir(parents=True, exist_ok=True)

        if not abs_path.parent.is_dir():
            raise ValueError(f"Database directory {abs_path.parent} is not accessible")

        return abs_path

    @field_validator("server_name")
    @classmethod
    def validate_server_name(cls, v: str) -> str:
        if len(v) < 3:
            raise ValueError("Server name must be at least 3 characters")
        if len(v) > 50:
            raise ValueError("Server name must not exceed 50 characters")
        return v

    @field_validator("max_loan_days")
    @classmethod
    def validate_max_loan_days(cls, v: int | None, info: ValidationInfo) -> int | None:
        """The longest loan may not be shorter than the default one."""
        default = info.data.get("default_loan_days")
        if v is not None and default is not None and v < default:
            raise ValueError("max_loan_days must be >= default_loan_days")
        return v

    # === Computed Properties ===

    @property
    def is_development(self) -> bool:
        return self.debug or self.log_level == "DEBUG"

    @property
    def server_info(self) -> dict[str, str]:
        """Server information sent during the MCP handshake."""
        return {
            "name": self.server_name,
            "version": self.server_version,
            "transport": self.transport,
        }

    def get_database_url(self) -> str:
        """Get the SQLAlchemy database URL."""
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.database_path}"


class _ConfigStore:
    """Internal storage for configuration singleton."""

    _instance: LedgerConfig | None = None


def get_config() -> LedgerConfig:
    """Get or create the global configuration instance."""
    if _ConfigStore._instance is None:  # type: ignore[reportPrivateUsage]
        _ConfigStore._instance = LedgerConfig()  # type: ignore[reportPrivateUsage]
    return _ConfigStore._instance  # type: ignore[reportPrivateUsage]


def reset_config() -> None:
    """Reset configuration (useful for testing)."""
    _ConfigStore._instance = None  # type: ignore[reportPrivateUsage]
