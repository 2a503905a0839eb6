from __future__ import annotations

import json

import pytest

from framework_edits.application.migration_importer import MigrationImporter
from framework_edits.application.sync_session import SyncSession
from framework_edits.core.errors import NetworkFailure
from framework_edits.domain.catalog import AssetCatalog
from framework_edits.domain.edit_tree import AssetEdits
from framework_edits.domain.field_address import FieldAddress
from framework_edits.infrastructure.legacy_snapshot_store import LegacySnapshotStore
from tests.fakes import FakeEditsStore


def _write(tmp_path, asset_id: int, content: str) -> None:
    (tmp_path / f"framework-edits-{asset_id}.json").write_text(content, encoding="utf-8")


@pytest.mark.asyncio
async def test_migration_imports_snapshots_and_clears_them(tmp_path) -> None:
    _write(tmp_path, 2, json.dumps({"title": "Two", "checklist": {"c1": "one"}}))
    _write(tmp_path, 27, json.dumps({"coreQuestion": "Last"}))
    _write(tmp_path, 30, json.dumps({"title": "Outside catalog"}))
    store = FakeEditsStore()
    session = SyncSession(store)
    importer = MigrationImporter(LegacySnapshotStore(tmp_path), session, AssetCatalog())

    assert importer.should_offer()
    report = await importer.run()

    assert report.detected == 2
    assert report.imported == 2
    assert report.cleared
    assert session.edits[2] == AssetEdits(title="Two", checklist={"c1": "one"})
    assert session.edits[27].core_question == "Last"
    assert not (tmp_path / "framework-edits-2.json").exists()
    assert (tmp_path / "framework-edits-30.json").exists()


@pytest.mark.asyncio
async def test_malformed_snapshot_is_skipped_not_fatal(tmp_path) -> None:
    _write(tmp_path, 1, "{not json")
    _write(tmp_path, 4, json.dumps({"title": 4}))
    _write(tmp_path, 5, json.dumps({"purpose": "Five"}))
    session = SyncSession(FakeEditsStore())
    importer = MigrationImporter(LegacySnapshotStore(tmp_path), session, AssetCatalog())

    report = await importer.run()

    assert report.imported == 1
    assert len(report.skipped) == 2
    assert report.errors == ()
    assert report.cleared
    assert session.edits[5].purpose == "Five"


@pytest.mark.asyncio
async def test_store_failures_keep_legacy_data(tmp_path) -> None:
    _write(tmp_path, 6, json.dumps({"title": "Six"}))
    store = FakeEditsStore()
    store.save_errors[FieldAddress.title(6).to_key()] = NetworkFailure("offline")
    session = SyncSession(store)
    importer = MigrationImporter(LegacySnapshotStore(tmp_path), session, AssetCatalog())

    report = await importer.run()

    assert report.errors == ("Asset 6: offline",)
    assert not report.cleared
    assert (tmp_path / "framework-edits-6.json").exists()


def test_dismissed_migration_is_not_offered(tmp_path) -> None:
    _write(tmp_path, 3, json.dumps({"title": "Three"}))
    importer = MigrationImporter(LegacySnapshotStore(tmp_path), SyncSession(FakeEditsStore()), AssetCatalog())

    importer.dismiss()

    assert not importer.should_offer()
    assert importer.detect().asset_ids == (3,)
