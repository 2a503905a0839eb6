from __future__ import annotations

import logging
from dataclasses import dataclass

from framework_edits.application.session_data import SessionData
from framework_edits.bootstrap.logging import log_operational_error
from framework_edits.core.errors import error_message
from framework_edits.core.observability import log_event
from framework_edits.domain.edit_tree import AssetEdits, set_asset, with_field_value
from framework_edits.domain.field_address import FieldAddress
from framework_edits.domain.ports import EditsStorePort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaveOutcome:
    ok: bool
    error: str | None = None


@dataclass(frozen=True)
class OptimisticEdit:
    """Captured before the persist call: the edit and how to undo it."""

    data: SessionData
    address: FieldAddress
    value: str
    previous: AssetEdits | None
    optimistic: AssetEdits

    def apply(self) -> None:
        self.data.dirty.mark(self.address)
        set_asset(self.data.tree, self.address.asset_id, self.optimistic)

    def rollback(self) -> None:
        set_asset(self.data.tree, self.address.asset_id, self.previous)
        self.data.dirty.clear(self.address)


class SavePipeline:
    def __init__(self, store: EditsStorePort, data: SessionData) -> None:
        self._store = store
        self._data = data

    def stage(self, address: FieldAddress, value: str) -> OptimisticEdit:
        previous = self._data.tree.get(address.asset_id)
        return OptimisticEdit(
            data=self._data,
            address=address,
            value=value,
            previous=previous.copy() if previous is not None else None,
            optimistic=with_field_value(previous, address, value),
        )

    async def save_edit(self, address: FieldAddress, value: str) -> SaveOutcome:
        edit = self.stage(address, value)
        edit.apply()
        self._data.in_flight[address] += 1
        try:
            await self._store.save_field(address, value)
        except Exception as exc:  # noqa: BLE001
            edit.rollback()
            message = error_message(exc, "Failed to save")
            log_operational_error(
                logger,
                "Save failed; optimistic edit rolled back",
                exc=exc,
                extra={"field": address.to_key()},
            )
            return SaveOutcome(ok=False, error=message)
        finally:
            self._data.in_flight[address] -= 1
            if self._data.in_flight[address] <= 0:
                del self._data.in_flight[address]
        log_event(logger, "field_saved", {"field": address.to_key()})
        return SaveOutcome(ok=True)
