from __future__ import annotations

import logging
import sqlite3
from typing import Callable

from framework_edits.core.errors import PersistenceError, ValidationError
from framework_edits.domain.catalog import AssetCatalog
from framework_edits.domain.edit_tree import EditTree, assemble_tree
from framework_edits.domain.field_address import FieldAddress, FieldType
from framework_edits.domain.history import HistoryAction, HistoryRecord, derive_action
from framework_edits.infrastructure.edits_store_base import ThreadedEditsStore, normalized_value, utc_now
from framework_edits.infrastructure.realtime_channel import InProcessRealtimeChannel
from framework_edits.infrastructure.sqlite_uow import transaction

logger = logging.getLogger(__name__)

_HISTORY_COLUMNS = "id, asset_id, field_type, sub_id, sub_key, action, old_value, new_value, admin_name, created_at"
_MATCH_ADDRESS = "asset_id = ? AND field_type = ? AND sub_id = ? AND sub_key = ?"


def _address_params(address: FieldAddress) -> tuple[int, str, str, str]:
    return address.asset_id, address.field_type.value, address.sub_id, address.sub_key


class SQLiteEditsStore(ThreadedEditsStore):
    """Edits store over the ``framework_edits`` and ``framework_edit_history`` tables.

    Every write and its history row share one transaction.
    """

    driver_errors = (sqlite3.Error,)

    def __init__(
        self,
        connection: sqlite3.Connection,
        admin_name_provider: Callable[[], str],
        catalog: AssetCatalog | None = None,
        channel: InProcessRealtimeChannel | None = None,
        clock: Callable[[], str] = utc_now,
    ) -> None:
        super().__init__(admin_name_provider, catalog, channel, clock)
        self._connection = connection
        self._connection.row_factory = sqlite3.Row

    def _map_driver_error(self, exc: BaseException) -> Exception:
        return PersistenceError(f"Database error: {exc}")

    def _fetch_all_edits(self) -> EditTree:
        cursor = self._connection.cursor()
        cursor.execute(
            """
            SELECT asset_id, field_type, sub_id, sub_key, value
            FROM framework_edits
            ORDER BY asset_id, id
            """
        )
        leaves: list[tuple[FieldAddress, str]] = []
        for row in cursor.fetchall():
            try:
                address = FieldAddress.create(row["asset_id"], FieldType(row["field_type"]), row["sub_id"], row["sub_key"])
            except (ValueError, ValidationError):
                logger.warning("Ignoring unreadable edit row: asset=%s field=%s", row["asset_id"], row["field_type"])
                continue
            leaves.append((address, row["value"]))
        return assemble_tree(leaves)

    def _save_field(self, address: FieldAddress, value: str) -> bool:
        with transaction(self._connection):
            return self._write_leaf(address, value)

    def _write_leaf(self, address: FieldAddress, value: str) -> bool:
        cursor = self._connection.cursor()
        cursor.execute(f"SELECT value FROM framework_edits WHERE {_MATCH_ADDRESS}", _address_params(address))
        row = cursor.fetchone()
        old_value = row["value"] if row is not None else ""
        new_value = normalized_value(value)
        if not old_value and not new_value:
            return False
        now = self._clock()
        admin_name = self._admin_name()
        if new_value:
            cursor.execute(
                """
                INSERT INTO framework_edits (asset_id, field_type, sub_id, sub_key, value, admin_name, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (asset_id, field_type, sub_id, sub_key)
                DO UPDATE SET value = excluded.value,
                              admin_name = excluded.admin_name,
                              updated_at = excluded.updated_at
                """,
                (*_address_params(address), new_value, admin_name, now),
            )
        else:
            cursor.execute(f"DELETE FROM framework_edits WHERE {_MATCH_ADDRESS}", _address_params(address))
        self._append_history(address, derive_action(old_value, new_value), old_value, new_value, admin_name, now)
        return True

    def _delete_asset(self, asset_id: int) -> int:
        cursor = self._connection.cursor()
        with transaction(self._connection):
            cursor.execute(
                "SELECT field_type, sub_id, sub_key, value FROM framework_edits WHERE asset_id = ? ORDER BY id",
                (asset_id,),
            )
            rows = cursor.fetchall()
            now = self._clock()
            admin_name = self._admin_name()
            for row in rows:
                address = FieldAddress(asset_id, FieldType(row["field_type"]), row["sub_id"], row["sub_key"])
                self._append_history(address, HistoryAction.DELETED, row["value"], "", admin_name, now)
            cursor.execute("DELETE FROM framework_edits WHERE asset_id = ?", (asset_id,))
        return len(rows)

    def _import_asset(self, asset_id: int, leaves: list[tuple[FieldAddress, str]]) -> None:
        with transaction(self._connection):
            for address, value in leaves:
                self._write_leaf(address, value)

    def _append_history(
        self,
        address: FieldAddress,
        action: HistoryAction,
        old_value: str,
        new_value: str,
        admin_name: str,
        created_at: str,
    ) -> None:
        self._connection.execute(
            """
            INSERT INTO framework_edit_history (
                asset_id, field_type, sub_id, sub_key, action, old_value, new_value, admin_name, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (*_address_params(address), action.value, old_value, new_value, admin_name, created_at),
        )

    def _fetch_history(self, asset_id: int) -> list[HistoryRecord]:
        cursor = self._connection.cursor()
        cursor.execute(
            f"SELECT {_HISTORY_COLUMNS} FROM framework_edit_history WHERE asset_id = ? ORDER BY id DESC",
            (asset_id,),
        )
        return [HistoryRecord.from_row(row) for row in cursor.fetchall()]

    def _get_history_record(self, history_id: str) -> HistoryRecord | None:
        try:
            numeric_id = int(history_id)
        except (TypeError, ValueError):
            return None
        cursor = self._connection.cursor()
        cursor.execute(f"SELECT {_HISTORY_COLUMNS} FROM framework_edit_history WHERE id = ?", (numeric_id,))
        row = cursor.fetchone()
        return HistoryRecord.from_row(row) if row is not None else None
