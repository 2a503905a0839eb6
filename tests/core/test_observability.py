from __future__ import annotations

import asyncio

import pytest

from framework_edits.core.errors import ImportParseError, NetworkFailure, ValidationError, error_message
from framework_edits.core.observability import OperationContext, get_correlation_id, get_operation


def test_operation_context_sets_and_restores_ids() -> None:
    assert get_correlation_id() is None

    with OperationContext("export_edits") as context:
        assert get_correlation_id() == context.correlation_id
        assert get_operation() == "export_edits"

    assert get_correlation_id() is None
    assert get_operation() is None


@pytest.mark.asyncio
async def test_concurrent_tasks_keep_their_own_correlation_id() -> None:
    seen: dict[str, str | None] = {}

    async def _operation(name: str) -> None:
        with OperationContext(name) as context:
            await asyncio.sleep(0)
            seen[name] = get_correlation_id()
            assert seen[name] == context.correlation_id

    await asyncio.gather(_operation("load"), _operation("save_edit"))

    assert seen["load"] != seen["save_edit"]


def test_error_taxonomy_and_messages() -> None:
    assert issubclass(ImportParseError, ValidationError)
    assert error_message(NetworkFailure("  "), "Failed to load") == "Failed to load"
    assert error_message(NetworkFailure("timeout"), "Failed to load") == "timeout"
