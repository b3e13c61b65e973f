"""
Google Sheets Document Store

DESIGN DECISION: Google Sheets is used as the remote document store because:
1. Users can inspect their own data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. `spreadsheets.batchUpdate` is atomic: every request in one call applies
   or none do, which is exactly the guarantee balance batches need

LAYOUT:
- One worksheet per collection path; the title is the path with "/"
  replaced by "." (e.g. `users.abc123.accounts`)
- Columns: id | data (document JSON) | updated_at

TRADEOFFS:
- Sheets has no change notifications; subscribed collections are polled
- Preconditions are checked against a read taken just before the batch is
  submitted, not inside it (another writer can still slip in between)
- Ordering happens in Python after reading
"""

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Optional

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from fintrack.config import GoogleSheetsSettings, get_settings
from fintrack.services.storage.interface import (
    BatchOperation,
    ConnectionError,
    Document,
    DocumentStoreInterface,
    SnapshotHandler,
    StorageError,
    apply_operations,
    sort_documents,
)
from fintrack.services.subscription import Subscription


logger = structlog.get_logger(__name__)

DOCUMENT_COLUMNS = ["id", "data", "updated_at"]

# Google API statuses worth retrying
TRANSIENT_STATUS_CODES = {429, 500, 502, 503, 504}


def worksheet_title(path: str) -> str:
    """Worksheet title for a collection path."""
    return path.strip("/").replace("/", ".")


def translate_api_error(error: gspread.exceptions.APIError, action: str) -> StorageError:
    """Map a Google API failure onto the storage exception taxonomy."""
    status = getattr(getattr(error, "response", None), "status_code", None)
    if status in TRANSIENT_STATUS_CODES:
        return ConnectionError(f"Google Sheets unavailable during {action} ({status}): {error}")
    return StorageError(f"Google Sheets rejected {action}: {error}")


def _cell(value: str) -> dict:
    return {"userEnteredValue": {"stringValue": value}}


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication, worksheet lookup/creation and retry logic for
    connecting.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_collection_sheet(self, path: str) -> gspread.Worksheet:
        """Get or create the worksheet backing a collection path."""
        title = worksheet_title(path)
        if title in self._worksheets:
            return self._worksheets[title]

        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=100,
                cols=len(DOCUMENT_COLUMNS),
            )
            sheet.append_row(DOCUMENT_COLUMNS)

        self._worksheets[title] = sheet
        return sheet


class _Watch:
    """Polling state for one subscribed collection path."""

    def __init__(self, path: str):
        self.path = path
        self.listeners: list[tuple[SnapshotHandler, Optional[str], bool]] = []
        self.last_seen: Optional[list[Document]] = None
        self.task: Optional[asyncio.Task] = None


class GoogleSheetsDocumentStore(DocumentStoreInterface):
    """
    Google Sheets implementation of the document store.

    Documents are stored as rows with one document per row; the body is
    JSON-serialized into a single cell.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        poll_interval_seconds: Optional[float] = None,
    ):
        self._client = client or GoogleSheetsClient()
        self._poll_interval = (
            poll_interval_seconds
            if poll_interval_seconds is not None
            else self._client.settings.poll_interval_seconds
        )
        self._watches: dict[str, _Watch] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Row <-> document mapping
    # ------------------------------------------------------------------

    def _read_rows(self, path: str) -> dict[str, tuple[int, dict[str, Any]]]:
        """
        Read a collection as {doc_id: (row_index, data)}.

        Row indices are zero-based grid indices (row 0 is the header), as
        the batchUpdate API expects.
        """
        try:
            sheet = self._client.get_collection_sheet(path)
            all_rows = sheet.get_all_values()
        except gspread.exceptions.APIError as e:
            raise translate_api_error(e, f"read of {path}")

        documents: dict[str, tuple[int, dict[str, Any]]] = {}
        for index, row in enumerate(all_rows[1:], start=1):
            if not row or not row[0]:
                continue  # Skip empty rows
            try:
                data = json.loads(row[1]) if len(row) > 1 and row[1] else {}
            except json.JSONDecodeError:
                logger.warning("malformed_document_row", path=path, doc_id=row[0])
                continue
            documents[row[0]] = (index, data)
        return documents

    def _read_documents(
        self,
        path: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[Document]:
        rows = self._read_rows(path)
        docs = [Document(id=doc_id, data=data) for doc_id, (_, data) in rows.items()]
        return sort_documents(docs, order_by, descending)

    @staticmethod
    def _row_values(doc_id: str, data: dict[str, Any], stamp: str) -> dict:
        return {
            "values": [
                _cell(doc_id),
                _cell(json.dumps(data, sort_keys=True)),
                _cell(stamp),
            ]
        }

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_collection(
        self,
        path: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[Document]:
        return await asyncio.to_thread(self._read_documents, path, order_by, descending)

    # ------------------------------------------------------------------
    # Subscriptions (polling)
    # ------------------------------------------------------------------

    def subscribe_collection(
        self,
        path: str,
        handler: SnapshotHandler,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Subscription:
        """
        Register a snapshot handler for a collection.

        Must be called from inside a running event loop: the first snapshot
        and every later change are delivered by a polling task.
        """
        watch = self._watches.get(path)
        if watch is None:
            watch = _Watch(path)
            self._watches[path] = watch

        entry = (handler, order_by, descending)
        watch.listeners.append(entry)

        if watch.task is None or watch.task.done():
            watch.task = asyncio.get_running_loop().create_task(self._poll(watch))
        elif watch.last_seen is not None:
            # Late subscriber on an already-polled path gets the cached state
            handler(sort_documents(list(watch.last_seen), order_by, descending))

        def _remove() -> None:
            if entry in watch.listeners:
                watch.listeners.remove(entry)
            if not watch.listeners:
                if watch.task is not None:
                    watch.task.cancel()
                self._watches.pop(path, None)

        return Subscription(_remove)

    async def _poll(self, watch: _Watch) -> None:
        while True:
            try:
                await self._refresh(watch)
            except StorageError as e:
                logger.warning("collection_poll_failed", path=watch.path, error=str(e))
            await asyncio.sleep(self._poll_interval)

    async def _refresh(self, watch: _Watch) -> None:
        """Re-read one collection and fan out a snapshot if it changed."""
        documents = await asyncio.to_thread(self._read_documents, watch.path)
        if watch.last_seen is not None and documents == watch.last_seen:
            return
        watch.last_seen = documents
        for handler, order_by, descending in list(watch.listeners):
            try:
                handler(sort_documents(list(documents), order_by, descending))
            except Exception:
                logger.exception("snapshot_handler_failed", path=watch.path)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def upsert_document(
        self,
        path: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        await self.commit_batch([BatchOperation.upsert(path, doc_id, data, merge=merge)])

    async def delete_document(self, path: str, doc_id: str) -> None:
        await self.commit_batch([BatchOperation.delete(path, doc_id)])

    def _build_requests(self, operations: list[BatchOperation]) -> list[dict]:
        """
        Resolve a batch into one list of batchUpdate requests.

        The batch is first applied to fresh copies of the affected
        collections (raising NotFoundError/ConflictError exactly like the
        in-memory store), then diffed against what is on the sheet:
        changed rows become updateCells, vanished rows deleteDimension
        (bottom-up so indices stay valid), new documents appendCells.
        """
        current: dict[str, dict[str, tuple[int, dict[str, Any]]]] = {}
        for path in {op.path for op in operations}:
            current[path] = self._read_rows(path)

        working = {
            path: {doc_id: data for doc_id, (_, data) in rows.items()}
            for path, rows in current.items()
        }
        apply_operations(working, operations)

        stamp = datetime.now(timezone.utc).isoformat()
        updates: list[dict] = []
        deletes: list[tuple[int, int]] = []
        appends: list[dict] = []

        for path, rows in current.items():
            sheet_id = self._client.get_collection_sheet(path).id
            final = working[path]
            new_rows = []

            for doc_id, (row_index, data) in rows.items():
                if doc_id not in final:
                    deletes.append((row_index, sheet_id))
                elif final[doc_id] != data:
                    updates.append({
                        "updateCells": {
                            "rows": [self._row_values(doc_id, final[doc_id], stamp)],
                            "fields": "userEnteredValue",
                            "start": {
                                "sheetId": sheet_id,
                                "rowIndex": row_index,
                                "columnIndex": 0,
                            },
                        }
                    })

            for doc_id, data in final.items():
                if doc_id not in rows:
                    new_rows.append(self._row_values(doc_id, data, stamp))

            if new_rows:
                appends.append({
                    "appendCells": {
                        "sheetId": sheet_id,
                        "rows": new_rows,
                        "fields": "userEnteredValue",
                    }
                })

        delete_requests = [
            {
                "deleteDimension": {
                    "range": {
                        "sheetId": sheet_id,
                        "dimension": "ROWS",
                        "startIndex": row_index,
                        "endIndex": row_index + 1,
                    }
                }
            }
            for row_index, sheet_id in sorted(deletes, reverse=True)
        ]
        return updates + delete_requests + appends

    def _submit(self, operations: list[BatchOperation]) -> None:
        requests = self._build_requests(operations)
        if not requests:
            return
        try:
            self._client.get_spreadsheet().batch_update({"requests": requests})
        except gspread.exceptions.APIError as e:
            raise translate_api_error(e, "batch commit")

    @retry(
        retry=retry_if_exception_type(ConnectionError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def commit_batch(self, operations: list[BatchOperation]) -> None:
        """Commit a batch as a single atomic batchUpdate call."""
        async with self._lock:
            await asyncio.to_thread(self._submit, operations)

        # Own writes show up without waiting for the next poll
        for path in {op.path for op in operations}:
            watch = self._watches.get(path)
            if watch is not None:
                try:
                    await self._refresh(watch)
                except StorageError as e:
                    logger.warning("post_commit_refresh_failed", path=path, error=str(e))

    async def close(self) -> None:
        for watch in list(self._watches.values()):
            if watch.task is not None:
                watch.task.cancel()
        self._watches.clear()
