from __future__ import annotations

import logging
import threading
from typing import Callable

from framework_edits.domain.ports import Unsubscribe

logger = logging.getLogger(__name__)


class InProcessRealtimeChannel:
    """Change notifications shared by every session in this process."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: list[Callable[[], None]] = []

    def subscribe(self, on_change: Callable[[], None]) -> Unsubscribe:
        with self._lock:
            self._subscribers.append(on_change)

        def unsubscribe() -> None:
            with self._lock:
                if on_change in self._subscribers:
                    self._subscribers.remove(on_change)

        return unsubscribe

    def publish(self) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for on_change in subscribers:
            try:
                on_change()
            except Exception:  # pragma: no cover - a broken listener must not fail the write
                logger.exception("Realtime subscriber failed")

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)
