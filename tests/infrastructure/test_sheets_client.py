from __future__ import annotations

import pytest

from framework_edits.core.errors import NetworkFailure
from framework_edits.infrastructure.sheets_client import SheetsClient
from framework_edits.infrastructure.sheets_errors import (
    SheetsClientError,
    SheetsCredentialsError,
    SheetsNotFoundError,
    SheetsPermissionError,
    SheetsRateLimitError,
    map_gspread_exception,
)
from tests.infrastructure.fake_gspread import FakeGspreadClient, FakeSpreadsheet, api_error


def test_open_spreadsheet_retries_until_success(monkeypatch) -> None:
    fake_client = FakeGspreadClient(fail_times=2)
    sleep_calls: list[float] = []
    monkeypatch.setattr("framework_edits.infrastructure.sheets_client.gspread.service_account", lambda filename: fake_client)
    monkeypatch.setattr("framework_edits.infrastructure.sheets_client.time.sleep", sleep_calls.append)

    result = SheetsClient().open_spreadsheet("/tmp/credentials.json", "sheet-id")

    assert result is fake_client.spreadsheet
    assert fake_client.calls == 3
    assert sleep_calls == [1, 2]


def test_open_spreadsheet_raises_rate_limit_when_retries_run_out(monkeypatch) -> None:
    fake_client = FakeGspreadClient(fail_times=5)
    monkeypatch.setattr("framework_edits.infrastructure.sheets_client.gspread.service_account", lambda filename: fake_client)
    monkeypatch.setattr("framework_edits.infrastructure.sheets_client.time.sleep", lambda _: None)

    with pytest.raises(SheetsRateLimitError):
        SheetsClient().open_spreadsheet("/tmp/credentials.json", "sheet-id")
    assert fake_client.calls == 5


def test_permission_error_is_not_retried(monkeypatch) -> None:
    fake_client = FakeGspreadClient(error=api_error(403, "PERMISSION_DENIED"))
    monkeypatch.setattr("framework_edits.infrastructure.sheets_client.gspread.service_account", lambda filename: fake_client)

    with pytest.raises(SheetsPermissionError):
        SheetsClient().open_spreadsheet("/tmp/credentials.json", "sheet-id")
    assert fake_client.calls == 1


def test_missing_credentials_file_is_mapped(monkeypatch) -> None:
    def _raise(filename):
        raise FileNotFoundError(2, "No such file", filename)

    monkeypatch.setattr("framework_edits.infrastructure.sheets_client.gspread.service_account", _raise)

    with pytest.raises(SheetsCredentialsError):
        SheetsClient().open_spreadsheet("/missing/credentials.json", "sheet-id")


def test_ensure_worksheet_creates_sheet_with_headers(monkeypatch) -> None:
    spreadsheet = FakeSpreadsheet()
    monkeypatch.setattr(
        "framework_edits.infrastructure.sheets_client.gspread.service_account",
        lambda filename: FakeGspreadClient(spreadsheet),
    )
    client = SheetsClient()
    client.open_spreadsheet("/tmp/credentials.json", "sheet-id")

    client.ensure_worksheet("framework_edits", ["a", "b"])
    client.ensure_worksheet("framework_edits", ["a", "b"])

    assert spreadsheet.sheets["framework_edits"].rows == [["a", "b"]]


def test_reads_are_cached_until_a_write(monkeypatch) -> None:
    spreadsheet = FakeSpreadsheet()
    monkeypatch.setattr(
        "framework_edits.infrastructure.sheets_client.gspread.service_account",
        lambda filename: FakeGspreadClient(spreadsheet),
    )
    client = SheetsClient()
    client.open_spreadsheet("/tmp/credentials.json", "sheet-id")
    worksheet = client.ensure_worksheet("w", ["h"])

    client.read_all_values("w")
    client.read_all_values("w")
    client.append_rows("w", [["v"]])
    values = client.read_all_values("w")

    assert values == [["h"], ["v"]]
    assert worksheet.read_calls == 2
    assert client.get_write_calls_count() == 2


def test_calls_before_open_fail_cleanly() -> None:
    with pytest.raises(SheetsClientError):
        SheetsClient().get_worksheet("w")


@pytest.mark.parametrize(
    ("status", "text", "expected"),
    [
        (404, "Requested entity was not found", SheetsNotFoundError),
        (403, "[403] PERMISSION_DENIED", SheetsPermissionError),
        (500, "backend error", SheetsRateLimitError),
    ],
)
def test_api_errors_are_classified(status: int, text: str, expected: type) -> None:
    assert isinstance(map_gspread_exception(api_error(status, text)), expected)


def test_connection_errors_map_to_network_failure() -> None:
    assert isinstance(map_gspread_exception(ConnectionResetError("reset")), NetworkFailure)
