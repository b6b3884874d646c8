"""
Tests for the Google Sheets ledger storage against an in-memory worksheet.

No network: FakeSheetsClient hands out FakeWorksheets that keep rows in
a list and can fail an append after the row was written.
"""

import asyncio

import pytest
from tenacity import wait_none

from dompetku.config import GoogleSheetsSettings
from dompetku.models.ledger import Expense
from dompetku.services import DuplicateError, GoogleSheetsClient, GoogleSheetsLedgerStorage


class FakeWorksheet:
    def __init__(self, header):
        self.rows = [list(header)]
        self.appends = 0
        self.fail_after_write = 0

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append(list(values))
        self.appends += 1
        if self.fail_after_write:
            self.fail_after_write -= 1
            raise TimeoutError("response lost after write")


class FakeSheetsClient(GoogleSheetsClient):
    def __init__(self):
        super().__init__(GoogleSheetsSettings.model_construct(
            credentials_path="unused.json", spreadsheet_id="test"
        ))
        self.sheets = {}

    def get_worksheet(self, title, columns, rows=1000):
        if title not in self.sheets:
            self.sheets[title] = FakeWorksheet(columns)
        return self.sheets[title]


def save_expense_fast(storage, expense):
    """save_expense with the same retry policy minus the backoff sleeps."""
    save = GoogleSheetsLedgerStorage.save_expense.retry_with(wait=wait_none())
    return asyncio.run(save(storage, expense))


@pytest.fixture
def sheets():
    client = FakeSheetsClient()
    return client, GoogleSheetsLedgerStorage(client)


class TestSaveExpense:
    """Tests for retried expense inserts."""

    def test_retry_after_written_append_succeeds_once(self, sheets):
        """Test that an append which wrote the row and then failed is not reported as failed."""
        client, storage = sheets
        expense = Expense(user_id="u1", amount=25000, description="kopi")
        asyncio.run(storage.list_expenses("u1"))
        sheet = client.sheets[client.settings.expenses_sheet_name]
        sheet.fail_after_write = 1

        assert save_expense_fast(storage, expense) is True
        assert sheet.appends == 1
        [stored] = asyncio.run(storage.list_expenses("u1"))
        assert stored.id == expense.id

    def test_different_record_with_same_id_is_duplicate(self, sheets):
        client, storage = sheets
        first = Expense(id="a1b2c3d4", user_id="u1", amount=25000, description="kopi")
        other = Expense(id="a1b2c3d4", user_id="u1", amount=9000, description="roti")
        save_expense_fast(storage, first)

        with pytest.raises(DuplicateError):
            save_expense_fast(storage, other)
        sheet = client.sheets[client.settings.expenses_sheet_name]
        assert sheet.appends == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
