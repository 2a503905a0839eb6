from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Any, Callable

import gspread
from google.auth.exceptions import TransportError

from framework_edits.core.errors import ValidationError
from framework_edits.domain.catalog import AssetCatalog
from framework_edits.domain.edit_tree import EditTree, assemble_tree
from framework_edits.domain.field_address import FieldAddress, FieldType
from framework_edits.domain.history import HistoryAction, HistoryRecord, derive_action
from framework_edits.domain.models import SheetsConfig
from framework_edits.infrastructure.edits_store_base import ThreadedEditsStore, normalized_value, utc_now
from framework_edits.infrastructure.realtime_channel import InProcessRealtimeChannel
from framework_edits.infrastructure.sheets_client import SheetsClient
from framework_edits.infrastructure.sheets_errors import SheetsConfigError, map_gspread_exception

logger = logging.getLogger(__name__)

EDITS_WORKSHEET = "framework_edits"
HISTORY_WORKSHEET = "framework_edit_history"
EDITS_HEADERS = ["asset_id", "field_type", "sub_id", "sub_key", "value", "admin_name", "updated_at"]
HISTORY_HEADERS = [
    "id",
    "asset_id",
    "field_type",
    "sub_id",
    "sub_key",
    "action",
    "old_value",
    "new_value",
    "admin_name",
    "created_at",
]
# Columns E:G of the edits worksheet: value, admin_name, updated_at.
_VALUE_RANGE_TEMPLATE = "E{row}:G{row}"


def build_record(headers: list[str], row: list[Any]) -> dict[str, str]:
    cells = ["" if cell is None else str(cell) for cell in row]
    cells = cells[: len(headers)] + [""] * (len(headers) - len(cells))
    return {header: cells[index] for index, header in enumerate(headers)}


def _address_cells(address: FieldAddress) -> list[str]:
    return [str(address.asset_id), address.field_type.value, address.sub_id, address.sub_key]


def _address_from_record(record: dict[str, str]) -> FieldAddress | None:
    try:
        return FieldAddress.create(
            int(record["asset_id"]),
            FieldType(record["field_type"].strip()),
            record["sub_id"].strip(),
            record["sub_key"].strip(),
        )
    except (ValueError, ValidationError):
        logger.warning("Ignoring unreadable sheet row: asset=%r field=%r", record["asset_id"], record["field_type"])
        return None


class SheetsEditsStore(ThreadedEditsStore):
    """Edits store over two worksheets of one Google spreadsheet.

    A spreadsheet has no transactions: the leaf is written first and the
    history row appended right after it.
    """

    driver_errors = (gspread.exceptions.GSpreadException, TransportError, OSError)

    def __init__(
        self,
        client: SheetsClient,
        config: SheetsConfig,
        admin_name_provider: Callable[[], str],
        catalog: AssetCatalog | None = None,
        channel: InProcessRealtimeChannel | None = None,
        clock: Callable[[], str] = utc_now,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ) -> None:
        super().__init__(admin_name_provider, catalog, channel, clock)
        self._client = client
        self._config = config
        self._id_factory = id_factory
        self._ready = False

    def _map_driver_error(self, exc: BaseException) -> Exception:
        return map_gspread_exception(exc)  # type: ignore[arg-type]

    def _ensure_ready(self) -> None:
        if self._ready:
            return
        if not self._config.spreadsheet_id or not self._config.credentials_path:
            raise SheetsConfigError("Google Sheets is not configured: spreadsheet id and credentials are required.")
        if not self._client.is_open:
            self._client.open_spreadsheet(Path(self._config.credentials_path), self._config.spreadsheet_id)
        self._client.ensure_worksheet(EDITS_WORKSHEET, EDITS_HEADERS)
        self._client.ensure_worksheet(HISTORY_WORKSHEET, HISTORY_HEADERS)
        self._ready = True

    def _edit_rows(self) -> list[tuple[int, FieldAddress, str]]:
        """Returns ``(sheet_row_number, address, value)``; row 1 is the header."""
        self._ensure_ready()
        values = self._client.read_all_values(EDITS_WORKSHEET)
        rows: list[tuple[int, FieldAddress, str]] = []
        for row_number, row in enumerate(values[1:], start=2):
            record = build_record(EDITS_HEADERS, row)
            address = _address_from_record(record)
            if address is not None:
                rows.append((row_number, address, record["value"]))
        return rows

    def _history_records(self) -> list[HistoryRecord]:
        self._ensure_ready()
        values = self._client.read_all_values(HISTORY_WORKSHEET)
        records: list[HistoryRecord] = []
        for row in values[1:]:
            record = build_record(HISTORY_HEADERS, row)
            if not record["id"]:
                continue
            try:
                records.append(HistoryRecord.from_row(record))
            except (KeyError, ValueError):
                logger.warning("Ignoring unreadable history row %r", record["id"])
        return records

    def _fetch_all_edits(self) -> EditTree:
        return assemble_tree([(address, value) for _, address, value in self._edit_rows()])

    def _save_field(self, address: FieldAddress, value: str) -> bool:
        match = next(((number, current) for number, row_address, current in self._edit_rows() if row_address == address), None)
        old_value = match[1] if match is not None else ""
        new_value = normalized_value(value)
        if not old_value and not new_value:
            return False
        now = self._clock()
        admin_name = self._admin_name()
        if match is None:
            self._client.append_rows(EDITS_WORKSHEET, [[*_address_cells(address), new_value, admin_name, now]])
        elif new_value:
            self._client.batch_update(
                EDITS_WORKSHEET,
                [{"range": _VALUE_RANGE_TEMPLATE.format(row=match[0]), "values": [[new_value, admin_name, now]]}],
            )
        else:
            self._client.delete_rows(EDITS_WORKSHEET, match[0])
        self._client.append_rows(
            HISTORY_WORKSHEET,
            [self._history_row(address, derive_action(old_value, new_value), old_value, new_value, admin_name, now)],
        )
        return True

    def _delete_asset(self, asset_id: int) -> int:
        rows = [row for row in self._edit_rows() if row[1].asset_id == asset_id]
        if not rows:
            return 0
        now = self._clock()
        admin_name = self._admin_name()
        # Bottom-up so earlier row numbers stay valid.
        for row_number, _, _ in sorted(rows, key=lambda row: row[0], reverse=True):
            self._client.delete_rows(EDITS_WORKSHEET, row_number)
        self._client.append_rows(
            HISTORY_WORKSHEET,
            [self._history_row(address, HistoryAction.DELETED, value, "", admin_name, now) for _, address, value in rows],
        )
        return len(rows)

    def _import_asset(self, asset_id: int, leaves: list[tuple[FieldAddress, str]]) -> None:
        for address, value in leaves:
            self._save_field(address, value)

    def _fetch_history(self, asset_id: int) -> list[HistoryRecord]:
        return [record for record in reversed(self._history_records()) if record.asset_id == asset_id]

    def _get_history_record(self, history_id: str) -> HistoryRecord | None:
        return next((record for record in self._history_records() if record.id == history_id), None)

    def _history_row(
        self,
        address: FieldAddress,
        action: HistoryAction,
        old_value: str,
        new_value: str,
        admin_name: str,
        created_at: str,
    ) -> list[str]:
        return [self._id_factory(), *_address_cells(address), action.value, old_value, new_value, admin_name, created_at]
