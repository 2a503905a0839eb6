from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Mapping

from framework_edits.application.conflict_resolver import ConflictResolver
from framework_edits.application.save_pipeline import SaveOutcome, SavePipeline
from framework_edits.application.session_data import SessionData, SessionState
from framework_edits.bootstrap.logging import log_operational_error
from framework_edits.core.errors import error_message
from framework_edits.core.observability import OperationContext, log_event
from framework_edits.domain.conflicts import Conflict, ResolutionChoice, detect_conflicts
from framework_edits.domain.edit_tree import AssetEdits, EditTree, copy_tree, get_field_value, set_asset, with_field_value
from framework_edits.domain.field_address import FieldAddress
from framework_edits.domain.models import ConflictedLoadPolicy, ImportBatch, ImportSummary
from framework_edits.domain.ports import EditsStorePort

logger = logging.getLogger(__name__)

EXPORT_FILENAME_TEMPLATE = "framework-edits-{date}.json"
NOTHING_TO_EXPORT = "No modifications to export."
RESOLVE_BEFORE_RELOAD = "Resolve pending conflicts before reloading."


class LoadOutcome(str, Enum):
    CLEAN = "clean"
    CONFLICTED = "conflicted"
    FAILED = "failed"
    REJECTED = "rejected"
    DROPPED = "dropped"
    QUEUED = "queued"
    COALESCED = "coalesced"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SyncSession:
    """Optimistic multi-writer editing session for one admin client.

    Owns the edit tree, the dirty set and the pending server snapshot.
    Store failures never escape: they end up in :attr:`error` and, where
    an optimistic edit was applied, are rolled back locally.
    """

    def __init__(
        self,
        store: EditsStorePort,
        *,
        conflicted_load_policy: ConflictedLoadPolicy = ConflictedLoadPolicy.REJECT,
        track_in_flight: bool = True,
        export_dir: Path | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._data = SessionData()
        self._pipeline = SavePipeline(store, self._data)
        self._resolver = ConflictResolver(store, self._data)
        self._conflicted_load_policy = ConflictedLoadPolicy(conflicted_load_policy)
        self._track_in_flight = track_in_flight
        self._export_dir = export_dir or Path.cwd()
        self._clock = clock

    # read-only projection for the UI layer

    @property
    def edits(self) -> Mapping[int, AssetEdits]:
        return MappingProxyType(self._data.tree)

    def asset_edits(self, asset_id: int) -> AssetEdits | None:
        asset = self._data.tree.get(asset_id)
        return asset.copy() if asset is not None else None

    def field_value(self, address: FieldAddress) -> str | None:
        return get_field_value(self._data.tree.get(address.asset_id), address)

    @property
    def conflicts(self) -> tuple[Conflict, ...]:
        return tuple(self._data.conflicts)

    @property
    def state(self) -> SessionState:
        return self._data.state

    @property
    def loading(self) -> bool:
        return self._data.state is SessionState.LOADING

    @property
    def saving(self) -> bool:
        return self._data.saving > 0

    @property
    def error(self) -> str | None:
        return self._data.error

    @property
    def has_loaded(self) -> bool:
        return self._data.has_loaded

    @property
    def dirty_fields(self) -> tuple[FieldAddress, ...]:
        return self._data.dirty.members()

    @property
    def has_pending_snapshot(self) -> bool:
        return self._data.pending_snapshot is not None

    def clear_error(self) -> None:
        self._data.error = None

    # load

    async def load(self) -> LoadOutcome:
        with OperationContext("load"):
            data = self._data
            if data.state is SessionState.CONFLICTED:
                return self._load_while_conflicted()
            if data.state is SessionState.LOADING:
                data.reload_requested = True
                logger.debug("Load already running; coalescing into one follow-up load")
                return LoadOutcome.COALESCED

            data.state = SessionState.LOADING
            data.error = None
            try:
                server_tree = await self._store.fetch_all_edits()
            except Exception as exc:  # noqa: BLE001
                data.state = SessionState.IDLE
                data.error = error_message(exc, "Failed to load edits")
                log_operational_error(logger, "Load failed", exc=exc)
                outcome = LoadOutcome.FAILED
            else:
                outcome = self._apply_server_tree(server_tree)

        if data.reload_requested:
            data.reload_requested = False
            if data.state is SessionState.IDLE:
                return await self.load()
        return outcome

    async def refresh(self) -> LoadOutcome:
        """Reload requested by a change notification rather than the user.

        While conflicts are pending the reload is deferred until the
        snapshot merge, whatever the conflicted-load policy says.
        """
        data = self._data
        if data.state is SessionState.CONFLICTED:
            data.load_queued = True
            log_event(logger, "refresh_deferred", {"conflicts": len(data.conflicts)})
            return LoadOutcome.QUEUED
        return await self.load()

    async def retry_load(self) -> LoadOutcome:
        self.clear_error()
        return await self.load()

    def _load_while_conflicted(self) -> LoadOutcome:
        policy = self._conflicted_load_policy
        if policy is ConflictedLoadPolicy.QUEUE:
            self._data.load_queued = True
            log_event(logger, "load_queued", {"conflicts": len(self._data.conflicts)})
            return LoadOutcome.QUEUED
        if policy is ConflictedLoadPolicy.DROP:
            logger.debug("Load dropped while conflicts are pending")
            return LoadOutcome.DROPPED
        self._data.error = RESOLVE_BEFORE_RELOAD
        logger.warning("Load rejected: %s conflict(s) pending", len(self._data.conflicts))
        return LoadOutcome.REJECTED

    def _apply_server_tree(self, server_tree: EditTree) -> LoadOutcome:
        data = self._data
        in_flight = data.in_flight_addresses() if self._track_in_flight else frozenset()

        if not data.has_loaded or len(data.dirty) == 0:
            self._accept_server_tree(server_tree, in_flight)
            data.has_loaded = True
            data.state = SessionState.IDLE
            log_event(logger, "load_clean", {"assets": len(server_tree), "checked": 0})
            return LoadOutcome.CLEAN

        detected = detect_conflicts(data.tree, server_tree, data.dirty, skip=in_flight)
        if not detected:
            self._accept_server_tree(server_tree, in_flight)
            data.dirty.clear_all(keep=in_flight)
            data.state = SessionState.IDLE
            log_event(logger, "load_clean", {"assets": len(server_tree), "checked": len(data.dirty)})
            return LoadOutcome.CLEAN

        data.pending_snapshot = copy_tree(server_tree)
        data.conflicts = detected
        data.kept_local.clear()
        data.state = SessionState.CONFLICTED
        log_event(
            logger,
            "load_conflicted",
            {"conflicts": [conflict.address.to_key() for conflict in detected]},
        )
        return LoadOutcome.CONFLICTED

    def _accept_server_tree(self, server_tree: EditTree, preserve: frozenset[FieldAddress]) -> None:
        accepted = copy_tree(server_tree)
        for address in preserve:
            local_value = get_field_value(self._data.tree.get(address.asset_id), address)
            set_asset(accepted, address.asset_id, with_field_value(accepted.get(address.asset_id), address, local_value))
        self._data.tree.clear()
        self._data.tree.update(accepted)

    # writes

    async def save_edit(self, address: FieldAddress, value: str) -> SaveOutcome:
        with OperationContext("save_edit"):
            self._data.error = None
            self._data.saving += 1
            try:
                outcome = await self._pipeline.save_edit(address, value)
            finally:
                self._data.saving -= 1
            if not outcome.ok:
                self._data.error = outcome.error
            return outcome

    async def clear_asset_edits(self, asset_id: int) -> bool:
        with OperationContext("clear_asset_edits"):
            data = self._data
            data.error = None
            data.saving += 1
            try:
                await self._store.delete_asset_edits(asset_id)
            except Exception as exc:  # noqa: BLE001
                data.error = error_message(exc, "Failed to clear edits")
                log_operational_error(logger, "Clearing asset edits failed", exc=exc, extra={"asset_id": asset_id})
                return False
            finally:
                data.saving -= 1
            set_asset(data.tree, asset_id, None)
            data.dirty.clear_asset(asset_id)
            log_event(logger, "asset_cleared", {"asset_id": asset_id})
            return True

    # conflict resolution

    async def resolve_conflict(self, conflict: Conflict, choice: ResolutionChoice | str) -> list[str]:
        with OperationContext("resolve_conflict"):
            errors = await self._resolver.resolve(conflict, choice)
            self._record_resolution_errors(errors)
        await self._run_queued_load()
        return errors

    async def resolve_all_conflicts(self, choice: ResolutionChoice | str) -> list[str]:
        with OperationContext("resolve_all_conflicts"):
            errors = await self._resolver.resolve_all(choice)
            self._record_resolution_errors(errors)
        await self._run_queued_load()
        return errors

    def _record_resolution_errors(self, errors: list[str]) -> None:
        if not errors:
            return
        if len(errors) == 1:
            self._data.error = f"Failed to save resolution: {errors[0]}"
        else:
            self._data.error = f"Failed to save {len(errors)} resolutions: " + "; ".join(errors)

    async def _run_queued_load(self) -> None:
        data = self._data
        if data.load_queued and data.state is SessionState.IDLE:
            data.load_queued = False
            await self.load()

    # export / import

    async def export_edits(self) -> Path | None:
        with OperationContext("export_edits"):
            self._data.error = None
            try:
                export = await self._store.export_all()
            except Exception as exc:  # noqa: BLE001
                self._data.error = error_message(exc, "Failed to export")
                log_operational_error(logger, "Export failed", exc=exc)
                return None
            if export.total_modified == 0:
                self._data.error = NOTHING_TO_EXPORT
                return None
            target = self._export_dir / EXPORT_FILENAME_TEMPLATE.format(date=self._clock().date().isoformat())
            try:
                self._write_json(target, export.to_dict())
            except OSError as exc:
                self._data.error = error_message(exc, "Failed to write export file")
                log_operational_error(logger, "Export file could not be written", exc=exc, extra={"path": str(target)})
                return None
            log_event(logger, "edits_exported", {"path": str(target), "total_modified": export.total_modified})
            return target

    async def import_edits(self, batch: ImportBatch | Mapping[str, Any]) -> ImportSummary | None:
        with OperationContext("import_edits"):
            data = self._data
            data.error = None
            data.saving += 1
            try:
                resolved_batch = batch if isinstance(batch, ImportBatch) else ImportBatch.from_dict(batch)
                summary = await self._store.import_batch(resolved_batch)
            except Exception as exc:  # noqa: BLE001
                data.error = error_message(exc, "Failed to import")
                log_operational_error(logger, "Import failed", exc=exc)
                return None
            finally:
                data.saving -= 1
            errors = [*resolved_batch.skipped, *summary.errors]
            summary = ImportSummary(imported=summary.imported, errors=tuple(errors))
            log_event(logger, "edits_imported", {"imported": summary.imported, "errors": len(errors)})
            self._reset_for_fresh_load()
        await self.load()
        if summary.errors:
            data.error = f"Imported {summary.imported} assets; " + "; ".join(summary.errors)
        return summary

    def _reset_for_fresh_load(self) -> None:
        data = self._data
        data.dirty.clear_all()
        data.conflicts.clear()
        data.pending_snapshot = None
        data.kept_local.clear()
        data.load_queued = False
        data.has_loaded = False
        if data.state is SessionState.CONFLICTED:
            data.state = SessionState.IDLE

    @staticmethod
    def _write_json(path: Path, payload: dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
