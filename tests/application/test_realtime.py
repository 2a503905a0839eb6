from __future__ import annotations

import asyncio

import pytest

from framework_edits.application.realtime import RealtimeSync
from framework_edits.application.session_data import SessionState
from framework_edits.application.sync_session import LoadOutcome, SyncSession
from framework_edits.domain.conflicts import ResolutionChoice
from framework_edits.domain.field_address import FieldAddress
from framework_edits.infrastructure.realtime_channel import InProcessRealtimeChannel
from tests.fakes import FakeEditsStore


@pytest.mark.asyncio
async def test_notification_triggers_reload() -> None:
    store = FakeEditsStore()
    session = SyncSession(store)
    await session.load()
    channel = InProcessRealtimeChannel()
    realtime = RealtimeSync(session, channel)
    store.server_write(FieldAddress.title(2), "From another admin")

    channel.publish()
    await asyncio.sleep(0)
    await realtime.drain()

    assert session.edits[2].title == "From another admin"
    realtime.close()
    assert channel.subscriber_count == 0


@pytest.mark.asyncio
async def test_closed_subscription_stops_reloads() -> None:
    store = FakeEditsStore()
    session = SyncSession(store)
    channel = InProcessRealtimeChannel()
    realtime = RealtimeSync(session, channel)
    realtime.close()

    channel.publish()
    await asyncio.sleep(0)

    assert store.count("fetch_all_edits") == 0


class _PublishingStore(FakeEditsStore):
    def __init__(self, channel: InProcessRealtimeChannel) -> None:
        super().__init__()
        self.channel = channel

    async def save_field(self, address: FieldAddress, value: str) -> None:
        await super().save_field(address, value)
        self.channel.publish()


class _BrokenSession(SyncSession):
    async def refresh(self) -> LoadOutcome:
        raise RuntimeError("reload exploded")


@pytest.mark.asyncio
async def test_own_write_through_during_conflicts_defers_reload() -> None:
    channel = InProcessRealtimeChannel()
    store = _PublishingStore(channel)
    session = SyncSession(store)
    title = FieldAddress.title(7)
    item = FieldAddress.checklist(7, "c1")
    await session.load()
    await session.save_edit(title, "Mine")
    await session.save_edit(item, "mine item")
    store.server_write(title, "Theirs")
    store.server_write(item, "theirs item")
    assert await session.load() is LoadOutcome.CONFLICTED
    realtime = RealtimeSync(session, channel)
    first, second = session.conflicts

    await session.resolve_conflict(first, ResolutionChoice.MINE)
    await realtime.drain()

    assert session.error is None
    assert session.state is SessionState.CONFLICTED
    fetches = store.count("fetch_all_edits")

    await session.resolve_conflict(second, ResolutionChoice.THEIRS)
    await realtime.drain()

    assert store.count("fetch_all_edits") == fetches + 1
    assert session.error is None
    assert session.state is SessionState.IDLE
    assert session.edits[7].title == "Mine"
    assert session.edits[7].checklist == {"c1": "theirs item"}
    realtime.close()


@pytest.mark.asyncio
async def test_failed_reload_is_logged(caplog) -> None:
    channel = InProcessRealtimeChannel()
    realtime = RealtimeSync(_BrokenSession(FakeEditsStore()), channel)

    channel.publish()
    with pytest.raises(RuntimeError):
        await realtime.drain()
    await asyncio.sleep(0)

    assert any(record.getMessage() == "Realtime reload failed" for record in caplog.records)
    realtime.close()
