from __future__ import annotations

import logging
from dataclasses import dataclass

from framework_edits.application.sync_session import SyncSession
from framework_edits.bootstrap.logging import log_operational_error
from framework_edits.core.errors import ValidationError, error_message
from framework_edits.core.observability import OperationContext, log_event
from framework_edits.domain.catalog import AssetCatalog
from framework_edits.domain.history import HistoryRecord
from framework_edits.domain.models import RollbackErrorKind, RollbackResult
from framework_edits.domain.ports import EditsStorePort

logger = logging.getLogger(__name__)

HISTORY_NOT_FOUND = "History record not found."


@dataclass(frozen=True)
class HistoryPage:
    asset_id: int
    records: tuple[HistoryRecord, ...] = ()
    error: str | None = None


class HistoryService:
    """Reads the per-field change log and rolls fields back.

    A rollback never touches the stored record: it saves the record's old
    value through the session's save pipeline, which produces a new
    history entry, and then reloads so other writers' changes are checked.
    """

    def __init__(self, store: EditsStorePort, session: SyncSession, catalog: AssetCatalog) -> None:
        self._store = store
        self._session = session
        self._catalog = catalog

    async def fetch_history(self, asset_id: int) -> HistoryPage:
        if not self._catalog.contains(asset_id):
            raise ValidationError(f"Invalid asset number: {asset_id}")
        with OperationContext("fetch_history"):
            try:
                records = await self._store.fetch_history(asset_id)
            except Exception as exc:  # noqa: BLE001
                log_operational_error(logger, "Fetching history failed", exc=exc, extra={"asset_id": asset_id})
                return HistoryPage(asset_id=asset_id, error=error_message(exc, "Failed to load history"))
            return HistoryPage(asset_id=asset_id, records=tuple(records))

    async def rollback(self, history_id: str) -> RollbackResult:
        with OperationContext("rollback"):
            try:
                record = await self._store.get_history_record(history_id)
            except Exception as exc:  # noqa: BLE001
                log_operational_error(logger, "Fetching history record failed", exc=exc, extra={"history_id": history_id})
                return RollbackResult.failed(RollbackErrorKind.NETWORK, error_message(exc, "Failed to rollback"))
            if record is None:
                logger.warning("Rollback refused: history record %s not found", history_id)
                return RollbackResult.failed(RollbackErrorKind.NOT_FOUND, HISTORY_NOT_FOUND)

            outcome = await self._session.save_edit(record.address, record.old_value)
            if not outcome.ok:
                return RollbackResult.failed(RollbackErrorKind.NETWORK, outcome.error or "Failed to rollback")
            log_event(logger, "field_rolled_back", {"history_id": history_id, "field": record.address.to_key()})
        await self._session.load()
        return RollbackResult.ok()
