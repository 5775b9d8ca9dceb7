"""
Tests for the circulation tools (create_loan, return_loan, delete_loan).

These tests cover:
1. Input validation
2. Success scenarios with text and structured results
3. Ledger errors reported as isError results with their error type
4. The book's available copies after each call
"""

from datetime import date, datetime, timedelta

import pytest

from library_ledger.database.schema import Loan as LoanDB
from library_ledger.database.schema import LoanStatusEnum
from library_ledger.tools import all_tools
from library_ledger.tools.circulation import (
    create_loan_handler,
    delete_loan_handler,
    return_loan_handler,
)


def error_type(result: dict) -> str:
    return result["data"]["error"]


class TestCreateLoanTool:
    """Test the create_loan tool."""

    async def test_create_loan_success(
        self, use_test_database, sample_member, three_copy_book, read_book
    ):
        result = await create_loan_handler(
            {"member_id": sample_member.id, "book_id": three_copy_book.id}
        )

        assert "isError" not in result
        assert result["content"][0]["type"] == "text"
        text = result["content"][0]["text"]
        assert "Lent 'Laskar Pelangi' to Siti Rahma" in text
        assert "2 of 3 copies left" in text

        loan = result["data"]["loan"]
        assert loan["member_id"] == sample_member.id
        assert loan["book_id"] == three_copy_book.id
        assert loan["status"] == "borrowed"
        assert loan["fine"] == 0.0
        assert loan["book"]["available_copies"] == 2

        assert read_book(three_copy_book.id).available_copies == 2

    async def test_default_due_date_uses_loan_period(
        self, use_test_database, sample_member, three_copy_book
    ):
        result = await create_loan_handler(
            {"member_id": sample_member.id, "book_id": three_copy_book.id}
        )

        expected = date.today() + timedelta(days=7)
        assert result["data"]["loan"]["return_date"] == expected.isoformat()

    async def test_default_loan_period_from_environment(
        self, use_test_database, sample_member, three_copy_book, monkeypatch
    ):
        monkeypatch.setenv("LIBRARY_LEDGER_DEFAULT_LOAN_DAYS", "14")

        result = await create_loan_handler(
            {"member_id": sample_member.id, "book_id": three_copy_book.id}
        )

        expected = date.today() + timedelta(days=14)
        assert result["data"]["loan"]["return_date"] == expected.isoformat()

    async def test_custom_due_date_and_notes(
        self, use_test_database, sample_member, three_copy_book
    ):
        due = date.today() + timedelta(days=21)
        result = await create_loan_handler(
            {
                "member_id": sample_member.id,
                "book_id": three_copy_book.id,
                "due_date": due.isoformat(),
                "notes": "Research loan",
            }
        )

        assert result["data"]["loan"]["return_date"] == due.isoformat()
        assert result["data"]["loan"]["notes"] == "Research loan"

    async def test_missing_member(self, use_test_database, three_copy_book):
        result = await create_loan_handler({"book_id": three_copy_book.id})

        assert result["isError"] is True
        assert error_type(result) == "ValidationError"
        assert "member_id" in result["content"][0]["text"]

    async def test_past_due_date(self, use_test_database, sample_member, three_copy_book):
        result = await create_loan_handler(
            {
                "member_id": sample_member.id,
                "book_id": three_copy_book.id,
                "due_date": (date.today() - timedelta(days=1)).isoformat(),
            }
        )

        assert result["isError"] is True
        assert error_type(result) == "ValidationError"
        assert "in the past" in result["content"][0]["text"]

    async def test_long_loan_allowed_without_a_limit(
        self, use_test_database, sample_member, three_copy_book
    ):
        due = date.today() + timedelta(days=120)
        result = await create_loan_handler(
            {
                "member_id": sample_member.id,
                "book_id": three_copy_book.id,
                "due_date": due.isoformat(),
            }
        )

        assert "isError" not in result
        assert result["data"]["loan"]["return_date"] == due.isoformat()

    async def test_configured_longest_loan_is_enforced(
        self, use_test_database, sample_member, three_copy_book, read_book, monkeypatch
    ):
        monkeypatch.setenv("LIBRARY_LEDGER_MAX_LOAN_DAYS", "30")

        too_long = await create_loan_handler(
            {
                "member_id": sample_member.id,
                "book_id": three_copy_book.id,
                "due_date": (date.today() + timedelta(days=31)).isoformat(),
            }
        )
        assert too_long["isError"] is True
        assert error_type(too_long) == "ValidationError"
        assert "30 days" in too_long["content"][0]["text"]
        assert read_book(three_copy_book.id).available_copies == 3

        longest = await create_loan_handler(
            {
                "member_id": sample_member.id,
                "book_id": three_copy_book.id,
                "due_date": (date.today() + timedelta(days=30)).isoformat(),
            }
        )
        assert "isError" not in longest

    async def test_member_not_found(self, use_test_database, three_copy_book):
        result = await create_loan_handler(
            {"member_id": "member-missing", "book_id": three_copy_book.id}
        )

        assert result["isError"] is True
        assert error_type(result) == "NotFoundError"
        assert "Member member-missing not found" in result["content"][0]["text"]

    async def test_book_not_found(self, use_test_database, sample_member):
        result = await create_loan_handler(
            {"member_id": sample_member.id, "book_id": "book-missing"}
        )

        assert result["isError"] is True
        assert error_type(result) == "NotFoundError"
        assert "Book book-missing not found" in result["content"][0]["text"]

    async def test_no_copies_left(
        self, use_test_database, sample_member, second_member, single_copy_book
    ):
        first = await create_loan_handler(
            {"member_id": sample_member.id, "book_id": single_copy_book.id}
        )
        assert "isError" not in first
        assert "0 of 1 copies left" in first["content"][0]["text"]

        second = await create_loan_handler(
            {"member_id": second_member.id, "book_id": single_copy_book.id}
        )

        assert second["isError"] is True
        assert error_type(second) == "BookUnavailableError"
        with use_test_database() as session:
            assert session.query(LoanDB).count() == 1

    async def test_unexpected_error_is_reported(
        self, use_test_database, sample_member, three_copy_book, monkeypatch
    ):
        def broken_session():
            raise RuntimeError("database went away")

        monkeypatch.setattr("library_ledger.tools.circulation.get_session", broken_session)

        result = await create_loan_handler(
            {"member_id": sample_member.id, "book_id": three_copy_book.id}
        )

        assert result["isError"] is True
        assert error_type(result) == "RuntimeError"
        assert "unexpected error" in result["content"][0]["text"]


class TestReturnLoanTool:
    """Test the return_loan tool."""

    @pytest.fixture
    async def loan_id(self, use_test_database, sample_member, three_copy_book):
        result = await create_loan_handler(
            {"member_id": sample_member.id, "book_id": three_copy_book.id}
        )
        return result["data"]["loan"]["id"]

    async def test_return_success(self, loan_id, three_copy_book, read_book):
        result = await return_loan_handler({"loan_id": loan_id})

        assert "isError" not in result
        assert result["content"][0]["text"] == "'Laskar Pelangi' returned by Siti Rahma."
        assert result["data"]["loan"]["status"] == "returned"
        assert result["data"]["loan"]["actual_return_date"] is not None
        assert read_book(three_copy_book.id).available_copies == 3

    async def test_second_return_is_rejected(self, loan_id, three_copy_book, read_book):
        await return_loan_handler({"loan_id": loan_id})

        result = await return_loan_handler({"loan_id": loan_id})

        assert result["isError"] is True
        assert error_type(result) == "InvalidStateError"
        assert read_book(three_copy_book.id).available_copies == 3

    async def test_late_return_is_mentioned(
        self, use_test_database, add_loan, sample_member, three_copy_book
    ):
        overdue_id = add_loan(
            sample_member.id, three_copy_book.id, datetime.now() - timedelta(days=10)
        )

        result = await return_loan_handler({"loan_id": overdue_id})

        assert "3 day(s) late" in result["content"][0]["text"]

    async def test_unknown_loan(self, use_test_database):
        result = await return_loan_handler({"loan_id": "loan-missing"})

        assert result["isError"] is True
        assert error_type(result) == "NotFoundError"

    async def test_empty_loan_id(self, use_test_database):
        result = await return_loan_handler({"loan_id": ""})

        assert result["isError"] is True
        assert "Invalid return_loan parameters" in result["content"][0]["text"]


class TestDeleteLoanTool:
    """Test the delete_loan tool."""

    async def test_delete_borrowed_loan_restores_copy(
        self, use_test_database, sample_member, three_copy_book, read_book
    ):
        created = await create_loan_handler(
            {"member_id": sample_member.id, "book_id": three_copy_book.id}
        )
        loan_id = created["data"]["loan"]["id"]

        result = await delete_loan_handler({"loan_id": loan_id})

        assert "isError" not in result
        assert result["data"] == {"loan_id": loan_id}
        assert read_book(three_copy_book.id).available_copies == 3
        with use_test_database() as session:
            assert session.get(LoanDB, loan_id) is None

    async def test_delete_returned_loan(
        self, use_test_database, sample_member, three_copy_book, read_book
    ):
        created = await create_loan_handler(
            {"member_id": sample_member.id, "book_id": three_copy_book.id}
        )
        loan_id = created["data"]["loan"]["id"]
        await return_loan_handler({"loan_id": loan_id})

        await delete_loan_handler({"loan_id": loan_id})

        assert read_book(three_copy_book.id).available_copies == 3
        with use_test_database() as session:
            assert (
                session.query(LoanDB).filter_by(status=LoanStatusEnum.RETURNED).count() == 0
            )

    async def test_delete_unknown_loan(self, use_test_database):
        result = await delete_loan_handler({"loan_id": "loan-missing"})

        assert result["isError"] is True
        assert error_type(result) == "NotFoundError"


class TestToolDefinitions:
    """Tool metadata registered with the server."""

    def test_all_tools_registered(self):
        names = {tool["name"] for tool in all_tools}
        assert names == {
            "create_loan",
            "return_loan",
            "delete_loan",
            "check_in_visit",
            "check_out_visit",
        }

    def test_tools_have_schemas_and_handlers(self):
        for tool in all_tools:
            assert tool["description"]
            assert tool["inputSchema"]["type"] == "object"
            assert callable(tool["handler"])

    def test_create_loan_schema_requires_member_and_book(self):
        create_loan = next(t for t in all_tools if t["name"] == "create_loan")
        assert set(create_loan["inputSchema"]["required"]) == {"member_id", "book_id"}
