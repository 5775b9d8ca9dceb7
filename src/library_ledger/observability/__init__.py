"""Logfire observability for the Library Ledger."""

import logging

import logfire

from ..config import LedgerConfig, get_config
from .decorators import trace_resource, trace_tool

logger = logging.getLogger(__name__)


def configure_observability(config: LedgerConfig | None = None) -> bool:
    """
    Configure Logfire according to the ledger settings.

    Returns:
        True if Logfire was configured, False if observability is disabled
    """
    config = config or get_config()

    if not config.logfire_enabled:
        logger.debug("Observability disabled via configuration")
        return False

    logfire.configure(
        service_name=config.server_name,
        service_version=config.server_version,
        environment="development" if config.is_development else "production",
        send_to_logfire=config.logfire_send,
        console=False,
    )
    logger.info("Logfire configured (sending: %s)", config.logfire_send)
    return True


__all__ = [
    "configure_observability",
    "trace_resource",
    "trace_tool",
]
