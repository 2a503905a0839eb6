from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

from framework_edits.application.sync_session import SyncSession
from framework_edits.core.errors import ImportParseError
from framework_edits.core.observability import OperationContext, log_event
from framework_edits.domain.catalog import AssetCatalog
from framework_edits.domain.edit_tree import AssetEdits
from framework_edits.domain.models import ImportBatch, ImportItem
from framework_edits.domain.ports import LegacySnapshotStorePort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LegacyDetection:
    has_data: bool
    asset_ids: tuple[int, ...] = ()
    raw_by_asset: dict[int, str] = field(default_factory=dict)


@dataclass(frozen=True)
class MigrationReport:
    detected: int
    imported: int
    skipped: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()
    cleared: bool = False


class MigrationImporter:
    """One-time move of legacy per-asset local snapshots into the store."""

    def __init__(self, legacy_store: LegacySnapshotStorePort, session: SyncSession, catalog: AssetCatalog) -> None:
        self._legacy_store = legacy_store
        self._session = session
        self._catalog = catalog

    def should_offer(self) -> bool:
        return not self._legacy_store.is_dismissed() and self.detect().has_data

    def detect(self) -> LegacyDetection:
        raw_by_asset: dict[int, str] = {}
        for asset_id in self._catalog.asset_ids:
            raw = self._legacy_store.read_raw(asset_id)
            if raw:
                raw_by_asset[asset_id] = raw
        return LegacyDetection(
            has_data=bool(raw_by_asset),
            asset_ids=tuple(raw_by_asset),
            raw_by_asset=raw_by_asset,
        )

    def convert(self, raw_by_asset: dict[int, str]) -> ImportBatch:
        assets: dict[str, ImportItem] = {}
        skipped: list[str] = []
        for asset_id, raw in raw_by_asset.items():
            try:
                modifications = AssetEdits.from_dict(json.loads(raw))
            except (json.JSONDecodeError, ImportParseError) as exc:
                logger.warning("Skipping legacy snapshot for asset %s: %s", asset_id, exc)
                skipped.append(f"Asset {asset_id}: {exc}")
                continue
            assets[str(asset_id)] = ImportItem(asset_id=asset_id, modifications=modifications)
        return ImportBatch(assets=assets, skipped=tuple(skipped))

    async def run(self) -> MigrationReport:
        with OperationContext("migrate_legacy"):
            detection = self.detect()
            if not detection.has_data:
                return MigrationReport(detected=0, imported=0)
            batch = self.convert(detection.raw_by_asset)
        summary = await self._session.import_edits(batch)
        if summary is None:
            return MigrationReport(
                detected=len(detection.asset_ids),
                imported=0,
                skipped=batch.skipped,
                errors=(self._session.error or "Failed to import",),
            )
        store_errors = tuple(error for error in summary.errors if error not in batch.skipped)
        cleared = not store_errors
        if cleared:
            self.clear()
        log_event(
            logger,
            "legacy_migrated",
            {"detected": len(detection.asset_ids), "imported": summary.imported, "cleared": cleared},
        )
        return MigrationReport(
            detected=len(detection.asset_ids),
            imported=summary.imported,
            skipped=batch.skipped,
            errors=store_errors,
            cleared=cleared,
        )

    def clear(self) -> None:
        for asset_id in self._catalog.asset_ids:
            self._legacy_store.remove(asset_id)

    def dismiss(self) -> None:
        self._legacy_store.set_dismissed()
