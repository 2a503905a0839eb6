from __future__ import annotations

import asyncio
import logging

from framework_edits.application.sync_session import SyncSession
from framework_edits.bootstrap.logging import log_operational_error
from framework_edits.domain.ports import RealtimeChannelPort

logger = logging.getLogger(__name__)


class RealtimeSync:
    """Reloads the session whenever the channel reports a persisted edit.

    Notifications may arrive from any thread; the reload is always
    scheduled on the session's event loop.
    """

    def __init__(self, session: SyncSession, channel: RealtimeChannelPort, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._session = session
        self._loop = loop or asyncio.get_running_loop()
        self._tasks: set[asyncio.Task] = set()
        self._unsubscribe = channel.subscribe(self._on_change)

    def _on_change(self) -> None:
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._schedule_load)

    def _schedule_load(self) -> None:
        task = self._loop.create_task(self._session.refresh())
        self._tasks.add(task)
        task.add_done_callback(self._on_load_done)

    def _on_load_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log_operational_error(logger, "Realtime reload failed", exc=exc)

    async def drain(self) -> None:
        await asyncio.sleep(0)
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
            logger.debug("Realtime subscription closed")
