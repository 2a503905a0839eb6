from __future__ import annotations

import itertools

import pytest

from framework_edits.domain.edit_tree import AssetEdits
from framework_edits.domain.field_address import FieldAddress
from framework_edits.domain.history import HistoryAction
from framework_edits.domain.models import ImportBatch, SheetsConfig
from framework_edits.infrastructure.sheets_client import SheetsClient
from framework_edits.infrastructure.sheets_edits_store import (
    EDITS_HEADERS,
    EDITS_WORKSHEET,
    HISTORY_HEADERS,
    HISTORY_WORKSHEET,
    SheetsEditsStore,
)
from framework_edits.infrastructure.sheets_errors import SheetsConfigError
from tests.infrastructure.fake_gspread import FakeGspreadClient, FakeSpreadsheet


@pytest.fixture
def spreadsheet(monkeypatch) -> FakeSpreadsheet:
    spreadsheet = FakeSpreadsheet()
    monkeypatch.setattr(
        "framework_edits.infrastructure.sheets_client.gspread.service_account",
        lambda filename: FakeGspreadClient(spreadsheet),
    )
    return spreadsheet


def _store(catalog, config: SheetsConfig | None = None) -> SheetsEditsStore:
    ids = itertools.count(1)
    return SheetsEditsStore(
        SheetsClient(),
        config or SheetsConfig(spreadsheet_id="sheet-id", credentials_path="/tmp/credentials.json"),
        lambda: "ana",
        catalog,
        clock=lambda: "2026-02-01T12:00:00Z",
        id_factory=lambda: f"h{next(ids)}",
    )


@pytest.mark.asyncio
async def test_first_use_creates_worksheets_with_headers(spreadsheet, catalog) -> None:
    store = _store(catalog)

    assert await store.fetch_all_edits() == {}

    assert spreadsheet.sheets[EDITS_WORKSHEET].rows == [EDITS_HEADERS]
    assert spreadsheet.sheets[HISTORY_WORKSHEET].rows == [HISTORY_HEADERS]


@pytest.mark.asyncio
async def test_save_update_and_delete_rows(spreadsheet, catalog) -> None:
    store = _store(catalog)
    title = FieldAddress.title(3)
    item = FieldAddress.checklist(3, "c1")

    await store.save_field(title, "Three")
    await store.save_field(item, "Check")
    await store.save_field(title, "Three v2")
    await store.save_field(item, "")

    edits_rows = spreadsheet.sheets[EDITS_WORKSHEET].rows
    assert edits_rows[1:] == [["3", "title", "", "", "Three v2", "ana", "2026-02-01T12:00:00Z"]]
    assert await store.fetch_all_edits() == {3: AssetEdits(title="Three v2")}
    history = await store.fetch_history(3)
    assert [record.action for record in history] == [
        HistoryAction.DELETED,
        HistoryAction.UPDATED,
        HistoryAction.CREATED,
        HistoryAction.CREATED,
    ]
    assert history[0].id == "h4"


@pytest.mark.asyncio
async def test_delete_asset_removes_rows_bottom_up(spreadsheet, catalog) -> None:
    store = _store(catalog)
    await store.save_field(FieldAddress.title(5), "T")
    await store.save_field(FieldAddress.title(6), "Keep")
    await store.save_field(FieldAddress.question(5, "q1", "label"), "Q")

    await store.delete_asset_edits(5)

    assert await store.fetch_all_edits() == {6: AssetEdits(title="Keep")}
    deleted = [record for record in await store.fetch_history(5) if record.action is HistoryAction.DELETED]
    assert {record.old_value for record in deleted} == {"T", "Q"}


@pytest.mark.asyncio
async def test_rollback_and_import(spreadsheet, catalog) -> None:
    store = _store(catalog)
    await store.save_field(FieldAddress.title(1), "First")
    await store.save_field(FieldAddress.title(1), "Second")

    result = await store.rollback("h2")
    summary = await store.import_batch(ImportBatch.from_tree({2: AssetEdits(purpose="Imported")}))

    assert result.success
    assert summary.imported == 1
    assert await store.fetch_all_edits() == {
        1: AssetEdits(title="First"),
        2: AssetEdits(purpose="Imported"),
    }


@pytest.mark.asyncio
async def test_unreadable_rows_are_ignored(spreadsheet, catalog) -> None:
    store = _store(catalog)
    await store.fetch_all_edits()
    spreadsheet.sheets[EDITS_WORKSHEET].rows.append(["x", "title", "", "", "bad", "", ""])
    spreadsheet.sheets[EDITS_WORKSHEET].rows.append(["4", "mystery", "", "", "bad", "", ""])
    store._client.invalidate()

    assert await store.fetch_all_edits() == {}


@pytest.mark.asyncio
async def test_missing_configuration_is_reported(catalog) -> None:
    store = _store(catalog, SheetsConfig(spreadsheet_id="", credentials_path=""))

    with pytest.raises(SheetsConfigError):
        await store.fetch_all_edits()


@pytest.mark.asyncio
async def test_rewriting_current_value_appends_history(spreadsheet, catalog) -> None:
    store = _store(catalog)
    await store.save_field(FieldAddress.title(4), "Same")

    await store.save_field(FieldAddress.title(4), "Same")

    history = await store.fetch_history(4)
    assert [record.action for record in history] == [HistoryAction.UPDATED, HistoryAction.CREATED]
    assert spreadsheet.sheets[EDITS_WORKSHEET].rows[1:] == [["4", "title", "", "", "Same", "ana", "2026-02-01T12:00:00Z"]]
