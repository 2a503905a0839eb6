from __future__ import annotations

import sqlite3
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from framework_edits.core.observability import reset_correlation_id, set_correlation_id
from framework_edits.domain.catalog import AssetCatalog
from framework_edits.infrastructure.migrations import run_migrations
from tests.fakes import FakeEditsStore


@pytest.fixture(autouse=True)
def _isolate_correlation_id():
    token = set_correlation_id(None)
    yield
    reset_correlation_id(token)


@pytest.fixture
def connection() -> sqlite3.Connection:
    conn = sqlite3.connect(":memory:", check_same_thread=False)
    conn.row_factory = sqlite3.Row
    run_migrations(conn)
    yield conn
    conn.close()


@pytest.fixture
def catalog() -> AssetCatalog:
    return AssetCatalog(titles={3: "Stakeholder Map", 7: "Problem Framing"})


@pytest.fixture
def store() -> FakeEditsStore:
    return FakeEditsStore()
