#!/usr/bin/env python3
"""
Library Ledger MCP Client

Interactive front-desk client for the Library Ledger server. It lends and
returns books, checks guests in and out and reads the ledger:// resources.

By default the server runs in-process against the configured database;
pass --server to launch a server script over stdio instead.

Usage:
    python scripts/ledger_client.py [--server path/to/server.py]
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from fastmcp import Client
from fastmcp.exceptions import ToolError


class Colors:
    """ANSI color codes for terminal output"""

    HEADER = "\033[95m"
    CYAN = "\033[96m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    BOLD = "\033[1m"
    END = "\033[0m"


class LedgerClient:
    """Interactive client for the Library Ledger MCP Server"""

    def __init__(self, server: Any):
        self.client = Client(server)
        self.running = True

    async def connect(self):
        print(f"{Colors.YELLOW}Connecting to Library Ledger...{Colors.END}")
        await self.client.__aenter__()
        await self.client.ping()

        info = self.client.initialize_result.serverInfo
        print(f"{Colors.GREEN}✓ Connected to {info.name} v{info.version}{Colors.END}")

    async def disconnect(self):
        await self.client.__aexit__(None, None, None)
        print(f"\n{Colors.YELLOW}Disconnected from server{Colors.END}")

    def print_menu(self):
        print(f"\n{Colors.HEADER}{'=' * 60}{Colors.END}")
        print(f"{Colors.BOLD}Library Ledger - Front Desk{Colors.END}")
        print(f"{Colors.HEADER}{'=' * 60}{Colors.END}")
        print("\n1. Active Loans")
        print("2. Overdue Loans")
        print("3. Loan Statistics")
        print("4. Dashboard")
        print("5. Lend a Book")
        print("6. Return a Loan")
        print("7. Delete a Loan")
        print("8. Check In a Guest")
        print("9. Check Out a Guest")
        print("0. Exit")

    async def _read(self, uri: str) -> dict | None:
        try:
            content = await self.client.read_resource(uri)
        except Exception as e:
            print(f"{Colors.RED}Could not read {uri}: {e}{Colors.END}")
            return None
        if content and content[0].text:
            return json.loads(content[0].text)
        return None

    async def _call(self, name: str, arguments: dict[str, Any]) -> None:
        """Call a ledger tool and print its message."""
        try:
            result = await self.client.call_tool(name, {"arguments": arguments})
        except ToolError as e:
            print(f"{Colors.RED}{name} failed: {e}{Colors.END}")
            return

        payload = result.data or {}
        message = payload.get("content", [{}])[0].get("text", "")
        if payload.get("isError"):
            error = payload.get("data", {}).get("error", "Error")
            print(f"{Colors.RED}✗ {error}: {message}{Colors.END}")
        else:
            print(f"{Colors.GREEN}✓ {message}{Colors.END}")

    async def show_loans(self, uri: str, title: str):
        loans = await self._read(uri)
        if loans is None:
            return

        print(f"\n{Colors.CYAN}{title} ({loans['total']}) as of {loans['as_of']}:{Colors.END}")
        for loan in loans["items"]:
            overdue = (
                f" {Colors.RED}{loan['days_overdue']} day(s) overdue{Colors.END}"
                if loan["days_overdue"]
                else ""
            )
            print(f"  {loan['id']}  {loan['title']} -> {loan['member_name']}")
            print(f"      due {loan['due_date']}{overdue}")
        if loans["truncated"]:
            print(f"  {Colors.YELLOW}... list truncated{Colors.END}")

    async def show_stats(self):
        stats = await self._read("ledger://stats/loans")
        if stats is None:
            return

        print(f"\n{Colors.CYAN}Loan Statistics:{Colors.END}")
        print(f"  Total: {stats['total_loans']}")
        print(f"  Borrowed: {stats['borrowed_loans']}")
        print(f"  Returned: {stats['returned_loans']}")
        print(f"  Overdue: {stats['overdue_loans']}")
        print(f"  Fines: {stats['total_fines']:.2f}")

    async def show_dashboard(self):
        dashboard = await self._read("ledger://stats/dashboard")
        if dashboard is None:
            return

        catalog = dashboard["catalog"]
        visits = dashboard["visits_today"]
        print(f"\n{Colors.CYAN}Dashboard:{Colors.END}")
        print(
            f"  Catalog: {catalog['titles']} titles, "
            f"{catalog['available_copies']}/{catalog['total_copies']} copies on the shelf"
        )
        print(
            f"  Members: {dashboard['members']['student']} student, "
            f"{dashboard['members']['general']} general"
        )
        print(f"  Visits today: {visits['checkins']} in, {visits['active']} still inside")
        print("  Most borrowed:")
        for book in dashboard["popular_books"]:
            print(f"    {book['title']} by {book['author']} ({book['loans']})")
        if dashboard["availability_drift"]:
            print(
                f"  {Colors.RED}{dashboard['availability_drift']} book(s) need their "
                f"availability reconciled{Colors.END}"
            )

    async def lend_book(self):
        member_id = input("Member ID: ").strip()
        book_id = input("Book ID: ").strip()
        due_date = input("Due date (YYYY-MM-DD, blank for default): ").strip()
        if not member_id or not book_id:
            return

        arguments = {"member_id": member_id, "book_id": book_id}
        if due_date:
            arguments["due_date"] = due_date
        await self._call("create_loan", arguments)

    async def return_loan(self):
        loan_id = input("Loan ID: ").strip()
        if loan_id:
            await self._call("return_loan", {"loan_id": loan_id})

    async def delete_loan(self):
        loan_id = input("Loan ID: ").strip()
        if loan_id and input("Delete this loan? (y/N): ").strip().lower() == "y":
            await self._call("delete_loan", {"loan_id": loan_id})

    async def check_in(self):
        member_id = input("Member ID (blank for a walk-in guest): ").strip()
        if member_id:
            arguments = {"member_id": member_id}
        else:
            arguments = {
                "visitor_name": input("Guest name: ").strip(),
                "visitor_address": input("Guest address: ").strip(),
            }
        purpose = input("Purpose (reading/borrowing/reading_and_borrowing/other): ").strip()
        if purpose:
            arguments["purpose"] = purpose
        await self._call("check_in_visit", arguments)

    async def check_out(self):
        visit_id = input("Visit ID: ").strip()
        if visit_id:
            await self._call("check_out_visit", {"visit_id": visit_id})

    async def run(self):
        actions = {
            "1": lambda: self.show_loans("ledger://loans/active", "Active Loans"),
            "2": lambda: self.show_loans("ledger://loans/overdue", "Overdue Loans"),
            "3": self.show_stats,
            "4": self.show_dashboard,
            "5": self.lend_book,
            "6": self.return_loan,
            "7": self.delete_loan,
            "8": self.check_in,
            "9": self.check_out,
        }

        try:
            await self.connect()
            while self.running:
                self.print_menu()
                choice = input("\nSelect option: ").strip()
                if choice == "0":
                    self.running = False
                elif choice in actions:
                    await actions[choice]()
                else:
                    print(f"{Colors.RED}Invalid option{Colors.END}")
        except KeyboardInterrupt:
            print(f"\n{Colors.YELLOW}Interrupted by user{Colors.END}")
        finally:
            await self.disconnect()


async def main():
    parser = argparse.ArgumentParser(description="Library Ledger front-desk client")
    parser.add_argument(
        "--server",
        type=Path,
        help="Server script to launch over stdio (default: in-process server)",
    )
    args = parser.parse_args()

    if args.server:
        if not args.server.exists():
            print(f"{Colors.RED}Error: Server file not found at {args.server}{Colors.END}")
            sys.exit(1)
        server = str(args.server.resolve())
    else:
        from library_ledger.server import mcp, prepare_database

        prepare_database()
        server = mcp

    await LedgerClient(server).run()


if __name__ == "__main__":
    asyncio.run(main())
