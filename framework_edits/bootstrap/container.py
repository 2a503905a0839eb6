from __future__ import annotations

import asyncio
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from framework_edits.application.history_service import HistoryService
from framework_edits.application.migration_importer import MigrationImporter
from framework_edits.application.realtime import RealtimeSync
from framework_edits.application.sync_session import SyncSession
from framework_edits.bootstrap.settings import default_db_path, resolve_data_dir, resolve_export_dir
from framework_edits.domain.catalog import AssetCatalog
from framework_edits.domain.models import EditorConfig, StoreBackend
from framework_edits.domain.ports import EditsStorePort
from framework_edits.infrastructure.db import get_connection
from framework_edits.infrastructure.legacy_snapshot_store import LegacySnapshotStore
from framework_edits.infrastructure.local_config import EditorConfigStore
from framework_edits.infrastructure.migrations import run_migrations
from framework_edits.infrastructure.realtime_channel import InProcessRealtimeChannel
from framework_edits.infrastructure.sheets_client import SheetsClient
from framework_edits.infrastructure.sheets_edits_store import SheetsEditsStore
from framework_edits.infrastructure.sqlite_edits_store import SQLiteEditsStore

ConnectionFactory = Callable[[Path], sqlite3.Connection]


@dataclass
class EditorContainer:
    config: EditorConfig
    config_store: EditorConfigStore
    catalog: AssetCatalog
    channel: InProcessRealtimeChannel
    store: EditsStorePort
    session: SyncSession
    history_service: HistoryService
    connection: sqlite3.Connection | None = None

    def migration_importer(self, legacy_dir: Path | None = None) -> MigrationImporter:
        legacy_store = LegacySnapshotStore(legacy_dir or resolve_data_dir() / "legacy")
        return MigrationImporter(legacy_store, self.session, self.catalog)

    def start_realtime(self, loop: asyncio.AbstractEventLoop | None = None) -> RealtimeSync:
        return RealtimeSync(self.session, self.channel, loop)

    def close(self) -> None:
        if self.connection is not None:
            self.connection.close()
            self.connection = None


def build_container(
    config_store: EditorConfigStore | None = None,
    *,
    catalog: AssetCatalog | None = None,
    export_dir: Path | None = None,
    connection_factory: ConnectionFactory = get_connection,
    sheets_client_factory: Callable[[], SheetsClient] = SheetsClient,
) -> EditorContainer:
    config_store = config_store or EditorConfigStore()
    config = config_store.load()
    catalog = catalog or AssetCatalog()
    channel = InProcessRealtimeChannel()

    def admin_name() -> str:
        return config.admin_name

    connection: sqlite3.Connection | None = None
    store: EditsStorePort
    if config.store_backend is StoreBackend.SHEETS:
        store = SheetsEditsStore(sheets_client_factory(), config.sheets, admin_name, catalog, channel)
    else:
        connection = connection_factory(Path(config.db_path) if config.db_path else default_db_path())
        run_migrations(connection)
        store = SQLiteEditsStore(connection, admin_name, catalog, channel)

    session = SyncSession(
        store,
        conflicted_load_policy=config.conflicted_load_policy,
        track_in_flight=config.track_in_flight,
        export_dir=export_dir or resolve_export_dir(),
    )
    return EditorContainer(
        config=config,
        config_store=config_store,
        catalog=catalog,
        channel=channel,
        store=store,
        session=session,
        history_service=HistoryService(store, session, catalog),
        connection=connection,
    )
