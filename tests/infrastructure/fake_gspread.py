from __future__ import annotations

import re

import gspread


class FakeResponse:
    def __init__(self, status_code: int, text: str) -> None:
        self.status_code = status_code
        self.text = text


def api_error(status_code: int, text: str) -> gspread.exceptions.APIError:
    return gspread.exceptions.APIError(FakeResponse(status_code, text))


def rate_limit_error() -> gspread.exceptions.APIError:
    return api_error(429, "RESOURCE_EXHAUSTED: Quota exceeded for read requests per minute")


_CELL_RANGE = re.compile(r"^([A-Z]+)(\d+):([A-Z]+)(\d+)$")


def _column_index(letters: str) -> int:
    index = 0
    for letter in letters:
        index = index * 26 + (ord(letter) - ord("A") + 1)
    return index - 1


class FakeWorksheet:
    def __init__(self, title: str, rows: list[list[str]] | None = None) -> None:
        self.title = title
        self.rows: list[list[str]] = [list(row) for row in rows or []]
        self.read_calls = 0

    def row_values(self, number: int) -> list[str]:
        return list(self.rows[number - 1]) if len(self.rows) >= number else []

    def get_all_values(self) -> list[list[str]]:
        self.read_calls += 1
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None) -> None:
        self.rows.append([str(value) for value in values])

    def append_rows(self, values, value_input_option=None) -> None:
        for row in values:
            self.append_row(row)

    def batch_update(self, data, value_input_option=None) -> None:
        for item in data:
            match = _CELL_RANGE.match(item["range"])
            start_col, row_number = _column_index(match.group(1)), int(match.group(2))
            row = self.rows[row_number - 1]
            for offset, value in enumerate(item["values"][0]):
                column = start_col + offset
                while len(row) <= column:
                    row.append("")
                row[column] = str(value)

    def delete_rows(self, start_index: int, end_index: int | None = None) -> None:
        end = end_index or start_index
        del self.rows[start_index - 1 : end]


class FakeSpreadsheet:
    def __init__(self, spreadsheet_id: str = "sheet-id") -> None:
        self.id = spreadsheet_id
        self.sheets: dict[str, FakeWorksheet] = {}

    def worksheets(self) -> list[FakeWorksheet]:
        return list(self.sheets.values())

    def worksheet(self, name: str) -> FakeWorksheet:
        if name not in self.sheets:
            raise gspread.exceptions.WorksheetNotFound(name)
        return self.sheets[name]

    def add_worksheet(self, title: str, rows: int, cols: int) -> FakeWorksheet:
        self.sheets[title] = FakeWorksheet(title)
        return self.sheets[title]


class FakeGspreadClient:
    def __init__(self, spreadsheet: FakeSpreadsheet | None = None, fail_times: int = 0, error=None) -> None:
        self.spreadsheet = spreadsheet or FakeSpreadsheet()
        self._fail_times = fail_times
        self._error = error
        self.calls = 0

    def open_by_key(self, key: str) -> FakeSpreadsheet:
        self.calls += 1
        if self._error is not None:
            raise self._error
        if self.calls <= self._fail_times:
            raise rate_limit_error()
        return self.spreadsheet
