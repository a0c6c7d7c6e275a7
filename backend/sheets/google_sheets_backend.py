"""
Google Sheets backend for the transport record store.

Every worksheet in the spreadsheet is one collection: row 1 holds the
header, data starts at row 2, cells are addressed by column position.
"""
import base64
import json
import os
import threading
import time
from typing import Dict, List, Optional, Sequence

import gspread
import gspread.exceptions
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from gspread.utils import ValueInputOption, rowcol_to_a1

from core.errors import BackendUnavailable
from core.logger import logger
from sheets.backend import SheetBackend, sheet_row_number


SCOPES = ['https://www.googleapis.com/auth/spreadsheets']

# Failures reaching the API: gspread errors, auth errors, and network errors
# (requests' exceptions derive from OSError)
BACKEND_ERRORS = (gspread.exceptions.GSpreadException, GoogleAuthError, OSError)


def load_service_account_credentials() -> service_account.Credentials:
    """Load service account credentials: base64 env, raw JSON env, then file path."""
    # 1. Try Base64 encoded JSON (Best for Render/Production)
    service_account_base64 = os.getenv('SERVICE_ACCOUNT_BASE64')
    # 2. Try Raw JSON string
    service_account_json = os.getenv('SERVICE_ACCOUNT_JSON')

    if service_account_base64:
        try:
            decoded_json = base64.b64decode(service_account_base64).decode('utf-8')
            service_account_info = json.loads(decoded_json)
            return service_account.Credentials.from_service_account_info(
                service_account_info, scopes=SCOPES
            )
        except Exception as e:
            raise ValueError(f"Invalid SERVICE_ACCOUNT_BASE64: {e}")

    if service_account_json:
        try:
            service_account_info = json.loads(service_account_json)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid SERVICE_ACCOUNT_JSON format: {e}")
        return service_account.Credentials.from_service_account_info(
            service_account_info, scopes=SCOPES
        )

    # Fall back to file path (for local development)
    service_account_path = os.getenv('GOOGLE_SERVICE_ACCOUNT_PATH', './service_account.json')
    if not os.path.exists(service_account_path):
        raise FileNotFoundError(
            f"Service account file not found: {service_account_path}. "
            "Either set SERVICE_ACCOUNT_JSON environment variable or provide a valid file path."
        )
    return service_account.Credentials.from_service_account_file(
        service_account_path, scopes=SCOPES
    )


class GoogleSheetsBackend(SheetBackend):
    """Reads and writes worksheet rows through gspread."""

    def __init__(
        self,
        spreadsheet_id: str,
        client: Optional[gspread.Client] = None,
        min_request_interval: float = 0.2,
    ):
        if not spreadsheet_id:
            raise ValueError("GOOGLE_SHEET_ID environment variable is required")

        self.spreadsheet_id = spreadsheet_id
        self.client = client or self._initialize_client()

        self._headers: Dict[str, List[str]] = {}
        self._spreadsheet = None
        self._worksheets_cache: Dict[str, gspread.Worksheet] = {}
        self._worksheet_lock = threading.Lock()

        # Rate limiting: minimum spacing between API requests
        self._last_request_time = 0.0
        self._min_request_interval = min_request_interval
        self._throttle_lock = threading.Lock()

    def _initialize_client(self) -> gspread.Client:
        """Initialize gspread client with service account credentials."""
        try:
            credentials = load_service_account_credentials()
            client = gspread.authorize(credentials)
            logger.info("Google Sheets client initialized successfully")
            return client
        except Exception as e:
            logger.error(f"Error initializing Google Sheets client: {str(e)}", exc_info=True)
            raise

    def _throttle_request(self):
        """Throttle requests to avoid hitting rate limits."""
        with self._throttle_lock:
            time_since_last = time.time() - self._last_request_time
            if time_since_last < self._min_request_interval:
                time.sleep(self._min_request_interval - time_since_last)
            self._last_request_time = time.time()

    def register_worksheet(self, title: str, header: Sequence[str]) -> None:
        self._headers[title] = list(header)

    def _get_worksheet(self, title: str) -> gspread.Worksheet:
        """Get worksheet by title, creating it with its header row if missing."""
        with self._worksheet_lock:
            if title in self._worksheets_cache:
                return self._worksheets_cache[title]

            try:
                if self._spreadsheet is None:
                    self._throttle_request()
                    self._spreadsheet = self.client.open_by_key(self.spreadsheet_id)

                try:
                    self._throttle_request()
                    worksheet = self._spreadsheet.worksheet(title)
                except gspread.exceptions.WorksheetNotFound:
                    header = self._headers.get(title, [])
                    logger.info(f"Creating new worksheet '{title}' in spreadsheet {self.spreadsheet_id}")
                    self._throttle_request()
                    worksheet = self._spreadsheet.add_worksheet(
                        title=title, rows=1000, cols=max(len(header), 1)
                    )
                    if header:
                        self._throttle_request()
                        worksheet.append_row(header, value_input_option=ValueInputOption.raw)
            except gspread.exceptions.SpreadsheetNotFound:
                logger.error(f"Spreadsheet not found: {self.spreadsheet_id}")
                raise BackendUnavailable(f"Spreadsheet not found: {self.spreadsheet_id}")
            except BACKEND_ERRORS as e:
                logger.error(f"Error accessing worksheet '{title}': {str(e)}", exc_info=True)
                raise BackendUnavailable(f"Failed to open worksheet '{title}': {str(e)}")

            self._worksheets_cache[title] = worksheet
            return worksheet

    def _width(self, title: str, row: Sequence[str]) -> int:
        return max(len(self._headers.get(title, [])), len(row), 1)

    def read_rows(self, title: str) -> List[List[str]]:
        worksheet = self._get_worksheet(title)
        try:
            self._throttle_request()
            values = worksheet.get_all_values()
        except BACKEND_ERRORS as e:
            logger.error(f"Google Sheets API error reading {title}: {str(e)}", exc_info=True)
            raise BackendUnavailable(f"Failed to read {title} sheet: {str(e)}")

        # First row is the header
        rows = values[1:] if values else []
        logger.debug(f"Read {len(rows)} rows from {title}")
        return rows

    def append_row(self, title: str, row: Sequence[str]) -> None:
        worksheet = self._get_worksheet(title)
        try:
            self._throttle_request()
            worksheet.append_row(
                list(row),
                value_input_option=ValueInputOption.raw,
                table_range='A1',
            )
        except BACKEND_ERRORS as e:
            logger.error(f"Google Sheets API error appending to {title}: {str(e)}", exc_info=True)
            raise BackendUnavailable(f"Failed to append to {title} sheet: {str(e)}")

    def update_row(self, title: str, offset: int, row: Sequence[str]) -> None:
        worksheet = self._get_worksheet(title)
        row_number = sheet_row_number(offset)
        cell_range = (
            f"{rowcol_to_a1(row_number, 1)}:"
            f"{rowcol_to_a1(row_number, self._width(title, row))}"
        )
        try:
            self._throttle_request()
            worksheet.update(
                values=[list(row)],
                range_name=cell_range,
                value_input_option=ValueInputOption.raw,
            )
        except BACKEND_ERRORS as e:
            logger.error(f"Google Sheets API error updating {title}!{cell_range}: {str(e)}", exc_info=True)
            raise BackendUnavailable(f"Failed to update {title} sheet: {str(e)}")

    def delete_row(self, title: str, offset: int) -> None:
        worksheet = self._get_worksheet(title)
        row_number = sheet_row_number(offset)
        try:
            self._throttle_request()
            worksheet.delete_rows(row_number)
        except BACKEND_ERRORS as e:
            logger.error(f"Google Sheets API error deleting row {row_number} of {title}: {str(e)}", exc_info=True)
            raise BackendUnavailable(f"Failed to delete from {title} sheet: {str(e)}")
