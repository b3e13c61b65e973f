"""
Tests for the document stores.

The in-memory store is exercised directly; the Google Sheets store runs
against a fake worksheet so no API calls are made.
"""

import json
from unittest.mock import MagicMock

import gspread
import pytest

from fintrack.services.storage import (
    AlreadyExistsError,
    BatchOperation,
    ConflictError,
    ConnectionError,
    GoogleSheetsDocumentStore,
    InMemoryDocumentStore,
    NotFoundError,
    StorageError,
    user_collection_path,
)
from fintrack.services.storage.google_sheets import translate_api_error, worksheet_title
from fintrack.services.storage.interface import Document, sort_documents, values_match


ACCOUNTS = user_collection_path("u1", "accounts")
TRANSACTIONS = user_collection_path("u1", "transactions")


class TestHelpers:
    """Tests for path and comparison helpers."""

    def test_user_collection_path(self):
        assert user_collection_path("abc", "stocks") == "users/abc/stocks"

    def test_worksheet_title(self):
        assert worksheet_title("users/abc/accounts") == "users.abc.accounts"

    def test_values_match_normalizes_decimals(self):
        assert values_match("150000", "150000.00")
        assert values_match(150000, "150000")
        assert not values_match("150000", "138000")
        assert not values_match(None, "1")

    def test_sort_documents_descending_by_field(self):
        docs = [
            Document(id="a", data={"date": "2023-10-01"}),
            Document(id="b", data={"date": "2023-10-10"}),
            Document(id="c", data={"date": "2023-10-05"}),
        ]
        ordered = sort_documents(docs, "date", descending=True)
        assert [d.id for d in ordered] == ["b", "c", "a"]

    def test_batch_operation_constructors(self):
        op = BatchOperation.update(ACCOUNTS, "a1", {"balance": "1"}, expected={"balance": "2"})
        assert op.kind.value == "update"
        assert op.expected == {"balance": "2"}
        assert BatchOperation.delete(ACCOUNTS, "a1").data == {}


class TestInMemoryStore:
    """Tests for InMemoryDocumentStore."""

    @pytest.mark.asyncio
    async def test_subscribe_delivers_current_contents(self):
        store = InMemoryDocumentStore()
        await store.upsert_document(ACCOUNTS, "a1", {"name": "Main"})

        snapshots = []
        store.subscribe_collection(ACCOUNTS, snapshots.append)

        assert len(snapshots) == 1
        assert snapshots[0][0].id == "a1"

    @pytest.mark.asyncio
    async def test_snapshot_per_affected_collection(self):
        store = InMemoryDocumentStore()
        accounts, transactions = [], []
        store.subscribe_collection(ACCOUNTS, accounts.append)
        store.subscribe_collection(TRANSACTIONS, transactions.append)

        await store.commit_batch([
            BatchOperation.upsert(ACCOUNTS, "a1", {"balance": "10"}),
            BatchOperation.upsert(TRANSACTIONS, "t1", {"amount": "5"}),
            BatchOperation.update(ACCOUNTS, "a1", {"balance": "15"}),
        ])

        # One initial snapshot plus exactly one per batch
        assert len(accounts) == 2
        assert len(transactions) == 2
        assert accounts[-1][0].data == {"balance": "15"}

    @pytest.mark.asyncio
    async def test_cancelled_subscription_stops_delivery(self):
        store = InMemoryDocumentStore()
        snapshots = []
        subscription = store.subscribe_collection(ACCOUNTS, snapshots.append)

        subscription.cancel()
        subscription.cancel()
        await store.upsert_document(ACCOUNTS, "a1", {"name": "Main"})

        assert subscription.active is False
        assert len(snapshots) == 1

    @pytest.mark.asyncio
    async def test_merge_upsert_keeps_other_fields(self):
        store = InMemoryDocumentStore()
        await store.upsert_document(ACCOUNTS, "s1", {"shares": "10", "current_price": "1"})
        await store.upsert_document(ACCOUNTS, "s1", {"current_price": "2"}, merge=True)

        assert store.get_document(ACCOUNTS, "s1") == {"shares": "10", "current_price": "2"}

    @pytest.mark.asyncio
    async def test_full_upsert_replaces(self):
        store = InMemoryDocumentStore()
        await store.upsert_document(ACCOUNTS, "a1", {"name": "Main", "color": "#fff"})
        await store.upsert_document(ACCOUNTS, "a1", {"name": "Renamed"})

        assert store.get_document(ACCOUNTS, "a1") == {"name": "Renamed"}

    @pytest.mark.asyncio
    async def test_delete_missing_is_noop(self):
        store = InMemoryDocumentStore()
        await store.delete_document(ACCOUNTS, "nope")
        assert await store.get_collection(ACCOUNTS) == []

    @pytest.mark.asyncio
    async def test_update_missing_fails_whole_batch(self):
        store = InMemoryDocumentStore()

        with pytest.raises(NotFoundError):
            await store.commit_batch([
                BatchOperation.upsert(TRANSACTIONS, "t1", {"amount": "5"}),
                BatchOperation.update(ACCOUNTS, "missing", {"balance": "1"}),
            ])

        assert store.get_document(TRANSACTIONS, "t1") is None

    @pytest.mark.asyncio
    async def test_precondition_mismatch_fails_whole_batch(self):
        store = InMemoryDocumentStore()
        await store.upsert_document(ACCOUNTS, "a1", {"balance": "100"})

        with pytest.raises(ConflictError):
            await store.commit_batch([
                BatchOperation.upsert(TRANSACTIONS, "t1", {"amount": "5"}),
                BatchOperation.update(
                    ACCOUNTS, "a1", {"balance": "95"}, expected={"balance": "90"}
                ),
            ])

        assert store.get_document(TRANSACTIONS, "t1") is None
        assert store.get_document(ACCOUNTS, "a1") == {"balance": "100"}

    @pytest.mark.asyncio
    async def test_injected_failure_applies_nothing(self):
        store = InMemoryDocumentStore()
        snapshots = []
        store.subscribe_collection(ACCOUNTS, snapshots.append)
        store.fail_next_commit()

        with pytest.raises(ConnectionError):
            await store.upsert_document(ACCOUNTS, "a1", {"name": "Main"})

        assert store.get_document(ACCOUNTS, "a1") is None
        assert len(snapshots) == 1
        # Only the next commit fails
        await store.upsert_document(ACCOUNTS, "a1", {"name": "Main"})
        assert store.get_document(ACCOUNTS, "a1") == {"name": "Main"}

    @pytest.mark.asyncio
    async def test_lost_acknowledgement_applies_then_raises(self):
        store = InMemoryDocumentStore()
        snapshots = []
        store.subscribe_collection(ACCOUNTS, snapshots.append)
        store.fail_next_commit(applied=True)

        with pytest.raises(ConnectionError):
            await store.upsert_document(ACCOUNTS, "a1", {"name": "Main"})

        assert store.get_document(ACCOUNTS, "a1") == {"name": "Main"}
        assert len(snapshots) == 2

    @pytest.mark.asyncio
    async def test_create_rejects_existing_document(self):
        """A create fails the whole batch when its document is already there."""
        store = InMemoryDocumentStore()
        await store.commit_batch([
            BatchOperation.create(TRANSACTIONS, "t1", {"amount": "5"}),
            BatchOperation.upsert(ACCOUNTS, "a1", {"balance": "95"}),
        ])

        with pytest.raises(AlreadyExistsError) as exc_info:
            await store.commit_batch([
                BatchOperation.create(TRANSACTIONS, "t1", {"amount": "5"}),
                BatchOperation.update(ACCOUNTS, "a1", {"balance": "90"}),
            ])

        assert exc_info.value.path == TRANSACTIONS
        assert exc_info.value.doc_id == "t1"
        assert store.get_document(ACCOUNTS, "a1") == {"balance": "95"}

    @pytest.mark.asyncio
    async def test_guarded_delete_of_missing_document_fails(self):
        """A delete with a precondition is not a silent no-op."""
        store = InMemoryDocumentStore()
        await store.upsert_document(ACCOUNTS, "a1", {"balance": "100"})

        with pytest.raises(NotFoundError) as exc_info:
            await store.commit_batch([
                BatchOperation.delete(TRANSACTIONS, "t1", expected={"account_id": "a1"}),
                BatchOperation.update(ACCOUNTS, "a1", {"balance": "105"}),
            ])

        assert exc_info.value.doc_id == "t1"
        assert store.get_document(ACCOUNTS, "a1") == {"balance": "100"}

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_others(self):
        store = InMemoryDocumentStore()
        good = []
        calls = {"n": 0}

        def bad(_docs):
            calls["n"] += 1
            if calls["n"] > 1:
                raise RuntimeError("boom")

        store.subscribe_collection(ACCOUNTS, bad)
        store.subscribe_collection(ACCOUNTS, good.append)
        await store.upsert_document(ACCOUNTS, "a1", {"name": "Main"})

        assert len(good) == 2


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the document store."""

    def __init__(self, sheet_id: int, rows: list[list[str]]):
        self.id = sheet_id
        self.rows = rows

    def get_all_values(self):
        return [list(r) for r in self.rows]


def sheet_row(doc_id: str, data: dict) -> list[str]:
    return [doc_id, json.dumps(data), "2024-01-01T00:00:00+00:00"]


def api_error(status: int) -> gspread.exceptions.APIError:
    response = MagicMock()
    response.status_code = status
    response.json.return_value = {
        "error": {"code": status, "message": "nope", "status": "ERROR"}
    }
    return gspread.exceptions.APIError(response)


@pytest.fixture
def sheets():
    """Two fake worksheets behind a mocked GoogleSheetsClient."""
    worksheets = {
        ACCOUNTS: FakeWorksheet(11, [
            ["id", "data", "updated_at"],
            sheet_row("a1", {"name": "Main", "balance": "100"}),
            sheet_row("a2", {"name": "Reserve", "balance": "500"}),
        ]),
        TRANSACTIONS: FakeWorksheet(22, [["id", "data", "updated_at"]]),
    }
    client = MagicMock()
    client.settings.poll_interval_seconds = 5.0
    client.get_collection_sheet.side_effect = lambda path: worksheets[path]
    spreadsheet = client.get_spreadsheet.return_value
    return GoogleSheetsDocumentStore(client), spreadsheet, worksheets


class TestGoogleSheetsStore:
    """Tests for GoogleSheetsDocumentStore against fake worksheets."""

    @pytest.mark.asyncio
    async def test_get_collection_reads_json_rows(self, sheets):
        store, _, _ = sheets

        docs = await store.get_collection(ACCOUNTS)

        assert [d.id for d in docs] == ["a1", "a2"]
        assert docs[0].data == {"name": "Main", "balance": "100"}

    @pytest.mark.asyncio
    async def test_malformed_rows_are_skipped(self, sheets):
        store, _, worksheets = sheets
        worksheets[ACCOUNTS].rows.append(["a3", "{not json", ""])
        worksheets[ACCOUNTS].rows.append(["", "", ""])

        docs = await store.get_collection(ACCOUNTS)

        assert [d.id for d in docs] == ["a1", "a2"]

    @pytest.mark.asyncio
    async def test_batch_is_one_atomic_call(self, sheets):
        store, spreadsheet, _ = sheets

        await store.commit_batch([
            BatchOperation.upsert(TRANSACTIONS, "t1", {"amount": "5"}),
            BatchOperation.update(ACCOUNTS, "a1", {"balance": "95"}, expected={"balance": "100"}),
        ])

        spreadsheet.batch_update.assert_called_once()
        requests = spreadsheet.batch_update.call_args[0][0]["requests"]
        kinds = [next(iter(r)) for r in requests]
        assert kinds == ["updateCells", "appendCells"]

        update = requests[0]["updateCells"]
        assert update["start"] == {"sheetId": 11, "rowIndex": 1, "columnIndex": 0}
        body = json.loads(update["rows"][0]["values"][1]["userEnteredValue"]["stringValue"])
        assert body == {"name": "Main", "balance": "95"}

        append = requests[1]["appendCells"]
        assert append["sheetId"] == 22
        assert append["rows"][0]["values"][0]["userEnteredValue"]["stringValue"] == "t1"

    @pytest.mark.asyncio
    async def test_deletes_run_bottom_up(self, sheets):
        store, spreadsheet, _ = sheets

        await store.commit_batch([
            BatchOperation.delete(ACCOUNTS, "a1"),
            BatchOperation.delete(ACCOUNTS, "a2"),
        ])

        requests = spreadsheet.batch_update.call_args[0][0]["requests"]
        starts = [r["deleteDimension"]["range"]["startIndex"] for r in requests]
        assert starts == [2, 1]

    @pytest.mark.asyncio
    async def test_conflict_submits_nothing(self, sheets):
        store, spreadsheet, _ = sheets

        with pytest.raises(ConflictError):
            await store.commit_batch([
                BatchOperation.upsert(TRANSACTIONS, "t1", {"amount": "5"}),
                BatchOperation.update(ACCOUNTS, "a1", {"balance": "95"}, expected={"balance": "90"}),
            ])

        spreadsheet.batch_update.assert_not_called()

    @pytest.mark.asyncio
    async def test_create_of_existing_row_submits_nothing(self, sheets):
        store, spreadsheet, worksheets = sheets
        worksheets[TRANSACTIONS].rows.append(sheet_row("t1", {"amount": "5"}))

        with pytest.raises(AlreadyExistsError):
            await store.commit_batch([
                BatchOperation.create(TRANSACTIONS, "t1", {"amount": "5"}),
                BatchOperation.update(ACCOUNTS, "a1", {"balance": "95"}, expected={"balance": "100"}),
            ])

        spreadsheet.batch_update.assert_not_called()

    @pytest.mark.asyncio
    async def test_noop_batch_skips_api_call(self, sheets):
        store, spreadsheet, _ = sheets
        await store.delete_document(TRANSACTIONS, "missing")
        spreadsheet.batch_update.assert_not_called()

    @pytest.mark.asyncio
    async def test_permanent_api_error_is_not_retried(self, sheets):
        store, spreadsheet, _ = sheets
        spreadsheet.batch_update.side_effect = api_error(403)

        with pytest.raises(StorageError) as exc_info:
            await store.upsert_document(TRANSACTIONS, "t1", {"amount": "5"})

        assert not isinstance(exc_info.value, ConnectionError)
        assert spreadsheet.batch_update.call_count == 1

    def test_transient_api_errors_map_to_connection_error(self):
        assert isinstance(translate_api_error(api_error(503), "read"), ConnectionError)
        assert isinstance(translate_api_error(api_error(429), "read"), ConnectionError)
        error = translate_api_error(api_error(400), "read")
        assert isinstance(error, StorageError)
        assert not isinstance(error, ConnectionError)

    @pytest.mark.asyncio
    async def test_subscription_polls_and_delivers(self, sheets):
        store, _, _ = sheets
        snapshots = []

        subscription = store.subscribe_collection(ACCOUNTS, snapshots.append)
        await store._refresh(store._watches[ACCOUNTS])

        assert snapshots and [d.id for d in snapshots[-1]] == ["a1", "a2"]
        subscription.cancel()
        await store.close()
