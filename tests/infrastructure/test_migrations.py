from __future__ import annotations

import sqlite3

from framework_edits.infrastructure.migrations import MigrationRunner


def _tables(connection: sqlite3.Connection) -> set[str]:
    rows = connection.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return {row[0] for row in rows}


def test_apply_all_is_idempotent_and_sets_user_version() -> None:
    connection = sqlite3.connect(":memory:")
    runner = MigrationRunner(connection)

    applied = runner.apply_all()

    assert applied == [1, 2]
    assert runner.apply_all() == []
    assert {"framework_edits", "framework_edit_history"} <= _tables(connection)
    assert connection.execute("PRAGMA user_version").fetchone()[0] == 2


def test_rollback_reverts_latest_migration() -> None:
    connection = sqlite3.connect(":memory:")
    runner = MigrationRunner(connection)
    runner.apply_all()

    assert runner.rollback(1) == [2]

    assert "framework_edit_history" not in _tables(connection)
    assert [item["applied"] for item in runner.status()] == [True, False]
    assert connection.execute("PRAGMA user_version").fetchone()[0] == 1
