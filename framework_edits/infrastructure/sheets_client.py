from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, TypeVar

import gspread
from google.auth.exceptions import DefaultCredentialsError, TransportError

from framework_edits.bootstrap.logging import log_operational_error
from framework_edits.core.observability import get_correlation_id
from framework_edits.infrastructure.sheets_errors import (
    RATE_LIMIT_MESSAGE,
    SheetsClientError,
    SheetsPermissionError,
    SheetsRateLimitError,
    map_gspread_exception,
)

logger = logging.getLogger(__name__)

_MAX_RETRIES = 5
_BASE_BACKOFF_SECONDS = 1

T = TypeVar("T")

_OPEN_ERRORS = (
    gspread.exceptions.GSpreadException,
    FileNotFoundError,
    json.JSONDecodeError,
    DefaultCredentialsError,
    TransportError,
    AttributeError,
    OSError,
)


def backoff_seconds(attempt: int, base_seconds: int = _BASE_BACKOFF_SECONDS) -> int:
    return base_seconds * (2 ** (attempt - 1))


def worksheet_from_operation_name(operation_name: str) -> str | None:
    start = operation_name.find("(")
    end = operation_name.rfind(")")
    if start < 0 or end <= start:
        return None
    worksheet_name = operation_name[start + 1 : end].strip()
    return worksheet_name or None


class SheetsClient:
    """Thin gspread wrapper: cached reads, retried writes, mapped errors.

    Calls block; callers run them off the event loop.
    """

    def __init__(self, max_retries: int = _MAX_RETRIES) -> None:
        self._max_retries = max_retries
        self._client: Any | None = None
        self._spreadsheet: gspread.Spreadsheet | None = None
        self._worksheet_values_cache: dict[str, list[list[str]]] = {}
        self._worksheet_cache: dict[str, gspread.Worksheet] = {}
        self._read_calls_count = 0
        self._write_calls_count = 0

    @property
    def is_open(self) -> bool:
        return self._spreadsheet is not None

    def open_spreadsheet(self, credentials_path: Path, spreadsheet_id: str) -> gspread.Spreadsheet:
        logger.info("Connecting to Google Sheets with %s", Path(credentials_path).name)
        try:
            client = gspread.service_account(filename=str(credentials_path))
            self._client = client
            spreadsheet = self._with_retry(
                "open_spreadsheet",
                lambda: client.open_by_key(spreadsheet_id),
                spreadsheet_id=spreadsheet_id,
            )
        except _OPEN_ERRORS as exc:
            mapped_error = map_gspread_exception(exc)
            if isinstance(mapped_error, SheetsPermissionError):
                self._log_permission_error(mapped_error, spreadsheet_id=spreadsheet_id)
            raise mapped_error from exc
        self._spreadsheet = spreadsheet
        self._worksheet_values_cache = {}
        self._worksheet_cache = {}
        self._read_calls_count = 0
        self._write_calls_count = 0
        return spreadsheet

    def ensure_worksheet(self, name: str, headers: list[str]) -> gspread.Worksheet:
        spreadsheet = self._require_spreadsheet()
        worksheets = self._with_retry("spreadsheet.worksheets", spreadsheet.worksheets)
        by_title = {worksheet.title: worksheet for worksheet in worksheets}
        worksheet = by_title.get(name)
        if worksheet is None:
            logger.info("Creating worksheet %s", name)
            worksheet = self._with_retry(
                f"spreadsheet.add_worksheet({name})",
                lambda: spreadsheet.add_worksheet(title=name, rows=1000, cols=len(headers)),
            )
        self._worksheet_cache[name] = worksheet
        first_row = self._with_retry(f"worksheet.row_values({name})", lambda: worksheet.row_values(1))
        if not any(cell.strip() for cell in first_row):
            self._with_retry(
                f"worksheet.append_row({name})",
                lambda: worksheet.append_row(headers, value_input_option="RAW"),
            )
            self._write_calls_count += 1
            self.invalidate(name)
        return worksheet

    def get_worksheet(self, name: str) -> gspread.Worksheet:
        if name in self._worksheet_cache:
            return self._worksheet_cache[name]
        spreadsheet = self._require_spreadsheet()
        worksheet = self._with_retry(f"spreadsheet.worksheet({name})", lambda: spreadsheet.worksheet(name))
        self._worksheet_cache[name] = worksheet
        return worksheet

    def read_all_values(self, worksheet_name: str) -> list[list[str]]:
        if worksheet_name in self._worksheet_values_cache:
            return self._worksheet_values_cache[worksheet_name]
        worksheet = self.get_worksheet(worksheet_name)
        values = self._with_retry(f"worksheet.get_all_values({worksheet_name})", worksheet.get_all_values)
        self._worksheet_values_cache[worksheet_name] = values
        self._read_calls_count += 1
        return values

    def invalidate(self, worksheet_name: str | None = None) -> None:
        if worksheet_name is None:
            self._worksheet_values_cache.clear()
            return
        self._worksheet_values_cache.pop(worksheet_name, None)

    def append_rows(self, worksheet_name: str, rows: list[list[Any]]) -> None:
        if not rows:
            return
        worksheet = self.get_worksheet(worksheet_name)
        self._with_retry(
            f"worksheet.append_rows({worksheet_name})",
            lambda: worksheet.append_rows(rows, value_input_option="RAW"),
        )
        self._after_write(worksheet_name)

    def batch_update(self, worksheet_name: str, data: list[dict[str, Any]]) -> None:
        if not data:
            return
        worksheet = self.get_worksheet(worksheet_name)
        self._with_retry(
            f"worksheet.batch_update({worksheet_name})",
            lambda: worksheet.batch_update(data, value_input_option="RAW"),
        )
        self._after_write(worksheet_name)

    def delete_rows(self, worksheet_name: str, start_index: int, end_index: int | None = None) -> None:
        worksheet = self.get_worksheet(worksheet_name)
        self._with_retry(
            f"worksheet.delete_rows({worksheet_name})",
            lambda: worksheet.delete_rows(start_index, end_index),
        )
        self._after_write(worksheet_name)

    def get_read_calls_count(self) -> int:
        return self._read_calls_count

    def get_write_calls_count(self) -> int:
        return self._write_calls_count

    def _after_write(self, worksheet_name: str) -> None:
        self._write_calls_count += 1
        self.invalidate(worksheet_name)

    def _require_spreadsheet(self) -> gspread.Spreadsheet:
        if self._spreadsheet is None:
            raise SheetsClientError("Spreadsheet not opened. Call open_spreadsheet first.")
        return self._spreadsheet

    def _with_retry(self, operation_name: str, operation: Callable[[], T], *, spreadsheet_id: str | None = None) -> T:
        for attempt in range(1, self._max_retries + 1):
            try:
                return operation()
            except (gspread.exceptions.GSpreadException, TransportError, OSError) as exc:
                mapped_error = map_gspread_exception(exc)
                if not isinstance(mapped_error, SheetsRateLimitError):
                    if isinstance(mapped_error, SheetsPermissionError):
                        self._log_permission_error(
                            mapped_error,
                            spreadsheet_id=spreadsheet_id or getattr(self._spreadsheet, "id", None),
                            worksheet_name=worksheet_from_operation_name(operation_name),
                        )
                    raise mapped_error from exc
                if attempt >= self._max_retries:
                    logger.error("Persistent Google Sheets rate limit on %s after %s attempts", operation_name, attempt)
                    raise SheetsRateLimitError(RATE_LIMIT_MESSAGE) from exc
                delay = backoff_seconds(attempt)
                logger.warning(
                    "Google Sheets rate limit (%s). attempt=%s/%s backoff=%ss",
                    operation_name,
                    attempt,
                    self._max_retries,
                    delay,
                )
                time.sleep(delay)
        raise SheetsClientError(f"Could not complete {operation_name}")

    @staticmethod
    def _log_permission_error(
        error: SheetsPermissionError,
        *,
        spreadsheet_id: str | None = None,
        worksheet_name: str | None = None,
    ) -> None:
        log_operational_error(
            logger,
            "Google Sheets permission denied",
            exc=error,
            extra={
                "correlation_id": get_correlation_id(),
                "operation": "sheets_permission_check",
                "spreadsheet_id": spreadsheet_id,
                "worksheet": worksheet_name,
            },
        )
