from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime, timezone
from typing import Callable, TypeVar

from framework_edits.core.errors import InfraError
from framework_edits.domain.catalog import AssetCatalog
from framework_edits.domain.edit_tree import EditTree, iter_leaves
from framework_edits.domain.field_address import FieldAddress
from framework_edits.domain.history import HistoryRecord
from framework_edits.domain.models import (
    EditsExport,
    ExportedAsset,
    ImportBatch,
    ImportSummary,
    RollbackErrorKind,
    RollbackResult,
)
from framework_edits.infrastructure.realtime_channel import InProcessRealtimeChannel

logger = logging.getLogger(__name__)

T = TypeVar("T")


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def normalized_value(value: str | None) -> str:
    return "" if value is None or not value.strip() else value


class ThreadedEditsStore:
    """Async edits store over a blocking backend.

    Subclasses implement the ``_``-prefixed synchronous primitives; they
    are always called on a worker thread while holding ``self._lock``,
    so at most one backend call runs at a time.
    """

    driver_errors: tuple[type[BaseException], ...] = ()

    def __init__(
        self,
        admin_name_provider: Callable[[], str],
        catalog: AssetCatalog | None = None,
        channel: InProcessRealtimeChannel | None = None,
        clock: Callable[[], str] = utc_now,
    ) -> None:
        self._admin_name_provider = admin_name_provider
        self._catalog = catalog or AssetCatalog()
        self._channel = channel
        self._clock = clock
        self._lock = threading.Lock()

    async def fetch_all_edits(self) -> EditTree:
        return await self._run(self._fetch_all_edits)

    async def save_field(self, address: FieldAddress, value: str) -> None:
        if await self._run(self._save_field, address, value):
            self._publish()

    async def delete_asset_edits(self, asset_id: int) -> None:
        if await self._run(self._delete_asset, asset_id):
            self._publish()

    async def fetch_history(self, asset_id: int) -> list[HistoryRecord]:
        return await self._run(self._fetch_history, asset_id)

    async def get_history_record(self, history_id: str) -> HistoryRecord | None:
        return await self._run(self._get_history_record, history_id)

    async def rollback(self, history_id: str) -> RollbackResult:
        try:
            record = await self.get_history_record(history_id)
            if record is None:
                return RollbackResult.failed(RollbackErrorKind.NOT_FOUND, "History entry not found")
            await self.save_field(record.address, record.old_value)
        except InfraError as exc:
            return RollbackResult.failed(RollbackErrorKind.NETWORK, str(exc))
        return RollbackResult.ok()

    async def export_all(self) -> EditsExport:
        tree = await self.fetch_all_edits()
        assets = {
            str(asset_id): ExportedAsset(
                asset_id=asset_id,
                asset_title=self._catalog.title_for(asset_id),
                modifications=tree[asset_id],
            )
            for asset_id in sorted(tree)
        }
        return EditsExport(exported_at=self._clock(), total_modified=len(assets), assets=assets)

    async def import_batch(self, batch: ImportBatch) -> ImportSummary:
        imported = 0
        errors: list[str] = []
        for item in batch.assets.values():
            if not self._catalog.contains(item.asset_id):
                errors.append(f"Asset {item.asset_id}: unknown asset")
                continue
            leaves = list(iter_leaves(item.asset_id, item.modifications))
            try:
                await self._run(self._import_asset, item.asset_id, leaves)
            except InfraError as exc:
                errors.append(f"Asset {item.asset_id}: {exc}")
                continue
            imported += 1
        if imported:
            self._publish()
        logger.info("Imported %s assets (%s errors)", imported, len(errors))
        return ImportSummary(imported=imported, errors=tuple(errors))

    async def _run(self, operation: Callable[..., T], *args: object) -> T:
        return await asyncio.to_thread(self._locked, operation, *args)

    def _locked(self, operation: Callable[..., T], *args: object) -> T:
        with self._lock:
            try:
                return operation(*args)
            except self.driver_errors as exc:
                raise self._map_driver_error(exc) from exc

    def _map_driver_error(self, exc: BaseException) -> Exception:
        return InfraError(str(exc))

    def _publish(self) -> None:
        if self._channel is not None:
            self._channel.publish()

    def _admin_name(self) -> str:
        return self._admin_name_provider() or ""

    def _fetch_all_edits(self) -> EditTree:
        raise NotImplementedError

    def _save_field(self, address: FieldAddress, value: str) -> bool:
        """Writes one leaf plus its history entry; False when the field was and stays empty."""
        raise NotImplementedError

    def _delete_asset(self, asset_id: int) -> int:
        raise NotImplementedError

    def _import_asset(self, asset_id: int, leaves: list[tuple[FieldAddress, str]]) -> None:
        raise NotImplementedError

    def _fetch_history(self, asset_id: int) -> list[HistoryRecord]:
        raise NotImplementedError

    def _get_history_record(self, history_id: str) -> HistoryRecord | None:
        raise NotImplementedError
