"""
Google Sheets Document Storage Implementation

The remote variant: each user's whole AppState is kept as one JSON
document in a row of a shared worksheet, so any device signed in as that
user sees the same data.

Rows look like:  user_id | updated_at | document_json

DESIGN DECISION: Google Sheets is used as the remote backend because:
1. Users can inspect or export their data directly
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- One cell per document caps a user's data at the Sheets cell limit
- No push notifications, so live updates are polled
- No transactions: the whole document is overwritten, last write wins
"""

import threading
from datetime import datetime, timezone
from typing import Optional

import gspread
import structlog
from google.auth.exceptions import GoogleAuthError
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from financial_dashboard.config import get_settings
from financial_dashboard.models.ledger import AppState
from financial_dashboard.services.storage.codec import decode_state, encode_state
from financial_dashboard.services.storage.interface import (
    AuthenticationError,
    ConnectionError,
    ExternalUpdateHandler,
    PersistencePort,
    SnapshotDecodeError,
    StorageError,
    Unsubscribe,
)


logger = structlog.get_logger(__name__)


DOCUMENT_COLUMNS = [
    "user_id",
    "updated_at",
    "document_json",
]

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]


def _is_auth_status(error: gspread.exceptions.APIError) -> bool:
    response = getattr(error, "response", None)
    return getattr(response, "status_code", None) in (401, 403)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings=None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def poll_interval_seconds(self) -> float:
        return self._settings.poll_interval_seconds

    @retry(
        retry=retry_if_not_exception_type(AuthenticationError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        Bad or missing credentials are not retried.
        """
        if self._client is None:
            try:
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=SCOPES,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise AuthenticationError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except (GoogleAuthError, ValueError) as e:
                raise AuthenticationError(f"Google credentials rejected: {e}")
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
            except gspread.exceptions.APIError as e:
                if _is_auth_status(e):
                    raise AuthenticationError(
                        f"Access to spreadsheet denied: {self._settings.spreadsheet_id}"
                    )
                raise ConnectionError(f"Failed to open spreadsheet: {e}")
        return self._spreadsheet

    def get_documents_sheet(self) -> gspread.Worksheet:
        """Get or create the Documents worksheet."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(self._settings.documents_sheet_name)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=self._settings.documents_sheet_name,
                rows=100,
                cols=len(DOCUMENT_COLUMNS),
            )
            sheet.append_row(DOCUMENT_COLUMNS)
        return sheet


class GoogleSheetsDocumentStorage(PersistencePort):
    """
    Google Sheets implementation of the persistence port.

    The signed-in user's id selects the row. Saves replace the row's
    document; subscribe() polls the row for documents written elsewhere.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        user_id: Optional[str] = None,
        poll_interval_seconds: Optional[float] = None,
    ):
        self._client = client or GoogleSheetsClient()
        self._user_id = user_id
        self._poll_interval = poll_interval_seconds
        # Last document this process wrote or read, so polling skips our own writes
        self._last_written: Optional[str] = None
        self._last_seen: Optional[str] = None

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    def set_user(self, user_id: Optional[str]) -> None:
        """Bind the storage to the signed-in user (None on sign-out)."""
        self._user_id = user_id
        self._last_written = None
        self._last_seen = None

    @property
    def supports_live_updates(self) -> bool:
        return True

    def _require_user(self) -> str:
        if not self._user_id:
            raise AuthenticationError("No user is signed in")
        return self._user_id

    def _find_row(self, sheet: gspread.Worksheet, user_id: str) -> tuple[Optional[int], Optional[list]]:
        """Return (1-based row index, row values) for the user, or (None, None)."""
        all_rows = sheet.get_all_values()
        for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is the header
            if row and row[0] == user_id:
                return idx, row
        return None, None

    def _read_document(self) -> Optional[str]:
        user_id = self._require_user()
        try:
            sheet = self._client.get_documents_sheet()
            _, row = self._find_row(sheet, user_id)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read document: {e}")
        if row is None or len(row) < 3 or not row[2]:
            return None
        return row[2]

    async def authenticate(self) -> None:
        """Verify the credentials and that the spreadsheet is reachable."""
        self._require_user()
        self._client.get_documents_sheet()

    async def register(self) -> None:
        """Create the signed-in user's row with an empty document."""
        user_id = self._require_user()
        document = encode_state(AppState())
        try:
            sheet = self._client.get_documents_sheet()
            idx, _ = self._find_row(sheet, user_id)
            if idx is not None:
                raise AuthenticationError(f"User already exists: {user_id}")
            sheet.append_row(
                [user_id, datetime.now(timezone.utc).isoformat(), document],
                value_input_option="RAW",
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to register user: {e}")
        self._last_written = document
        logger.info("user_registered", user_id=user_id)

    async def load(self) -> Optional[AppState]:
        """Load the user's document, or None if they have none yet."""
        document = self._read_document()
        if document is None:
            return None
        self._last_seen = document
        return decode_state(document)

    async def save(self, state: AppState) -> bool:
        """
        Replace the user's document with `state`.

        Not retried: a delayed retry could land after a newer save and
        overwrite it. The next change uploads the whole state again.
        """
        user_id = self._require_user()
        document = encode_state(state)
        updated_at = datetime.now(timezone.utc).isoformat()
        try:
            sheet = self._client.get_documents_sheet()
            idx, _ = self._find_row(sheet, user_id)
            if idx is None:
                sheet.append_row(
                    [user_id, updated_at, document],
                    value_input_option="RAW",
                )
            else:
                sheet.update(
                    range_name=f"A{idx}:C{idx}",
                    values=[[user_id, updated_at, document]],
                    value_input_option="RAW",
                )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save document: {e}")
        self._last_written = document
        return True

    def subscribe(self, on_update: ExternalUpdateHandler) -> Optional[Unsubscribe]:
        """
        Poll the user's row and push documents written by other devices.

        Runs on a daemon thread until the returned callable is invoked.
        """
        self._require_user()
        interval = self._poll_interval or self._client.poll_interval_seconds
        stop = threading.Event()

        def poll() -> None:
            while not stop.wait(interval):
                self.poll_once(on_update)

        thread = threading.Thread(
            target=poll,
            name="sheets-document-poller",
            daemon=True,
        )
        thread.start()
        logger.info("live_updates_started", user_id=self._user_id, interval=interval)

        def unsubscribe() -> None:
            stop.set()
            logger.info("live_updates_stopped", user_id=self._user_id)

        return unsubscribe

    def poll_once(self, on_update: ExternalUpdateHandler) -> bool:
        """
        Check the row once; push the document if another device changed it.

        Returns True if an update was pushed. Read and decode failures are
        logged and skipped until the next poll.
        """
        try:
            document = self._read_document()
        except StorageError as e:
            logger.warning("live_update_poll_failed", error=str(e))
            return False

        if document is None or document in (self._last_seen, self._last_written):
            return False
        self._last_seen = document

        try:
            state = decode_state(document)
        except SnapshotDecodeError as e:
            logger.warning("live_update_undecodable", error=str(e))
            return False

        on_update(state)
        return True
