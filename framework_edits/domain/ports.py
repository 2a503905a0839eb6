from __future__ import annotations

from typing import Callable, Protocol

from framework_edits.domain.edit_tree import EditTree
from framework_edits.domain.field_address import FieldAddress
from framework_edits.domain.history import HistoryRecord
from framework_edits.domain.models import EditorConfig, EditsExport, ImportBatch, ImportSummary, RollbackResult

Unsubscribe = Callable[[], None]


class EditsStorePort(Protocol):
    """Shared remote store of field overrides and their history.

    Every call may fail; adapters raise ``InfraError`` subclasses.
    """

    async def fetch_all_edits(self) -> EditTree:
        ...

    async def save_field(self, address: FieldAddress, value: str) -> None:
        ...

    async def delete_asset_edits(self, asset_id: int) -> None:
        ...

    async def fetch_history(self, asset_id: int) -> list[HistoryRecord]:
        ...

    async def get_history_record(self, history_id: str) -> HistoryRecord | None:
        ...

    async def rollback(self, history_id: str) -> RollbackResult:
        ...

    async def export_all(self) -> EditsExport:
        ...

    async def import_batch(self, batch: ImportBatch) -> ImportSummary:
        ...


class RealtimeChannelPort(Protocol):
    def subscribe(self, on_change: Callable[[], None]) -> Unsubscribe:
        ...


class LegacySnapshotStorePort(Protocol):
    def read_raw(self, asset_id: int) -> str | None:
        ...

    def remove(self, asset_id: int) -> None:
        ...

    def is_dismissed(self) -> bool:
        ...

    def set_dismissed(self) -> None:
        ...


class EditorConfigStorePort(Protocol):
    def load(self) -> EditorConfig:
        ...

    def save(self, config: EditorConfig) -> EditorConfig:
        ...
