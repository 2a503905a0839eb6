from __future__ import annotations

import logging

from framework_edits.application.session_data import SessionData, SessionState
from framework_edits.bootstrap.logging import log_operational_error
from framework_edits.core.errors import error_message
from framework_edits.core.observability import log_event
from framework_edits.domain.conflicts import Conflict, ResolutionChoice
from framework_edits.domain.edit_tree import get_field_value, merge_field, set_asset, with_field_value
from framework_edits.domain.ports import EditsStorePort

logger = logging.getLogger(__name__)


class ConflictResolver:
    """Applies "mine"/"theirs" decisions to the session's pending conflicts.

    "mine" writes the local value straight to the store; "theirs" copies
    the leaf from the pending snapshot. The snapshot is merged once the
    last conflict of the batch is settled.
    """

    def __init__(self, store: EditsStorePort, data: SessionData) -> None:
        self._store = store
        self._data = data

    async def resolve(self, conflict: Conflict, choice: ResolutionChoice | str) -> list[str]:
        resolved_choice = ResolutionChoice(choice)
        if conflict not in self._data.conflicts:
            return []
        data = self._data
        data.conflicts.remove(conflict)
        data.dirty.clear(conflict.address)
        errors: list[str] = []
        data.resolving += 1
        try:
            if resolved_choice is ResolutionChoice.MINE:
                data.kept_local[conflict.address] = None
                error = await self._write_through(conflict)
                if error:
                    errors.append(error)
            else:
                self._take_theirs(conflict)
        finally:
            data.resolving -= 1
        log_event(
            logger,
            "conflict_resolved",
            {"field": conflict.address.to_key(), "choice": resolved_choice.value, "remaining": len(data.conflicts)},
        )
        if not data.conflicts and data.resolving == 0:
            self.merge_pending_snapshot()
        return errors

    async def resolve_all(self, choice: ResolutionChoice | str) -> list[str]:
        errors: list[str] = []
        for conflict in list(self._data.conflicts):
            errors.extend(await self.resolve(conflict, choice))
        return errors

    def merge_pending_snapshot(self) -> bool:
        """Folds the pending server snapshot into the tree.

        Only assets present in the snapshot are touched. Assets missing
        locally are taken wholesale. Assets with no dirty field left take
        the server record with the "mine" leaves put back.
        Returns False when there is no snapshot, so repeated calls are
        harmless.
        """
        data = self._data
        snapshot = data.pending_snapshot
        if snapshot is None:
            return False
        data.pending_snapshot = None
        for asset_id in sorted(snapshot):
            server_asset = snapshot[asset_id]
            local_asset = data.tree.get(asset_id)
            if local_asset is None:
                set_asset(data.tree, asset_id, server_asset.copy())
                continue
            if data.dirty.for_asset(asset_id):
                continue
            merged = server_asset.copy()
            for address in data.kept_local:
                if address.asset_id == asset_id:
                    merged = with_field_value(merged, address, get_field_value(local_asset, address))
            set_asset(data.tree, asset_id, merged)
        data.kept_local.clear()
        data.state = SessionState.IDLE
        log_event(logger, "snapshot_merged", {"assets": len(snapshot)})
        return True

    async def _write_through(self, conflict: Conflict) -> str | None:
        try:
            await self._store.save_field(conflict.address, conflict.local_value)
        except Exception as exc:  # noqa: BLE001
            log_operational_error(
                logger,
                "Failed to save conflict resolution",
                exc=exc,
                extra={"field": conflict.address.to_key()},
            )
            return f"{conflict.address.label()} (asset {conflict.address.asset_id}): " + error_message(
                exc, "Failed to save resolution"
            )
        return None

    def _take_theirs(self, conflict: Conflict) -> None:
        data = self._data
        snapshot = data.pending_snapshot
        if snapshot is None:
            return
        asset_id = conflict.address.asset_id
        merged = merge_field(data.tree.get(asset_id), snapshot.get(asset_id), conflict.address)
        set_asset(data.tree, asset_id, merged)
