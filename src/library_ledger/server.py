"""Library Ledger Server

This module wires the loan ledger and the visit log into an MCP (Model Context
Protocol) server. An MCP client, usually an assistant acting for a librarian,
connects over a transport and discovers what the server offers.

MCP PROTOCOL OVERVIEW:
1. The client connects over stdio or Streamable HTTP
2. Both sides exchange JSON-RPC 2.0 messages, starting with the initialize handshake
3. The server answers tools/list and resources/list with what it registered
4. tools/call runs a ledger command; resources/read returns a ledger view

WHAT THIS SERVER EXPOSES:
- Tools: create_loan, return_loan, delete_loan, check_in_visit, check_out_visit
- Resources: active and overdue loans, loan statistics and the dashboard

Logs go to stderr so stdout stays free for the stdio transport.
"""

import logging
import signal
import sys
from typing import Any

from fastmcp import FastMCP

from .config import get_config
from .database.session import get_db_manager
from .observability import configure_observability
from .resources import all_resources
from .tools import all_tools

# Protocol-level logging for troubleshooting client sessions
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)

logger = logging.getLogger(__name__)

config = get_config()

# =============================================================================
# MCP SERVER INITIALIZATION
# =============================================================================

# WHY: FastMCP handles JSON-RPC framing, routing and capability negotiation
# HOW: whatever is registered below is advertised in the initialize response
# The instructions are sent to the client during the handshake so it knows
# what the ledger is for before it lists any tools.
mcp = FastMCP(
    name=config.server_name,
    version=config.server_version,
    instructions=(
        "Library Ledger - lends books to members and keeps each book's available "
        "copies in step with its outstanding loans. Use the tools to lend, return "
        "or delete loans and to check guests in and out; read the ledger:// "
        "resources for active and overdue loans and library statistics."
    ),
)

# =============================================================================
# RESOURCE AND TOOL REGISTRATION
# =============================================================================

# Resources are read-only views addressed by ledger:// URIs; every read opens
# its own session so the client always sees committed state.
for resource in all_resources:
    logger.debug("Registering resource: %s with URI: %s", resource["name"], resource["uri"])
    mcp.resource(
        uri=resource["uri"],
        name=resource["name"],
        description=resource["description"],
        mime_type=resource["mime_type"],
    )(resource["handler"])

logger.info("Registered %d resources", len(all_resources))

# Tools change the ledger. Each definition carries the JSON schema that the
# client fills in, and its handler reports failures as isError results.
for tool in all_tools:
    logger.debug("Registering tool: %s", tool["name"])
    mcp.tool(
        name=tool["name"],
        description=tool["description"],
    )(tool["handler"])

logger.info("Registered %d tools", len(all_tools))


# =============================================================================
# LIFECYCLE MANAGEMENT
# =============================================================================


def prepare_database() -> None:
    """Create missing tables and check that the database answers."""
    db_manager = get_db_manager()
    db_manager.init_database()
    if not db_manager.verify_connection():
        raise RuntimeError(f"Cannot connect to database at {db_manager.database_url}")


def run_server() -> None:
    """
    Run the server on the configured transport.

    TRANSPORTS:
    - stdio: the client spawns the server and talks over stdin and stdout
    - streamable_http: the server listens on ``http_host:http_port``

    SIGINT and SIGTERM close the database engine before the process exits.
    """
    logger.info(
        "Starting %s v%s on %s transport",
        config.server_name,
        config.server_version,
        config.transport,
    )

    if config.debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Debug mode enabled")
    else:
        logging.getLogger().setLevel(config.log_level)
        logging.getLogger("fastmcp").setLevel(logging.WARNING)

    def signal_handler(signum: int, _frame: Any) -> None:
        logger.info("Received signal %s, initiating shutdown...", signum)
        get_db_manager().close()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    if config.transport == "stdio":
        mcp.run(transport="stdio")
    else:
        mcp.run(transport="streamable-http", host=config.http_host, port=config.http_port)


def main() -> None:
    """Entry point for the ``library-ledger`` command."""
    try:
        logger.info("Library Ledger %s (transport: %s)", config.server_version, config.transport)
        configure_observability(config)
        prepare_database()
        run_server()
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception:
        logger.exception("Failed to start Library Ledger server")
        sys.exit(1)


if __name__ == "__main__":
    main()
