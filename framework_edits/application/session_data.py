from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum

from framework_edits.domain.conflicts import Conflict
from framework_edits.domain.dirty_set import DirtySet
from framework_edits.domain.edit_tree import EditTree
from framework_edits.domain.field_address import FieldAddress


class SessionState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    CONFLICTED = "conflicted"


@dataclass
class SessionData:
    """Mutable bookkeeping owned by exactly one ``SyncSession``.

    Not thread-safe: every mutation happens on the session's event loop
    between suspension points.
    """

    tree: EditTree = field(default_factory=dict)
    dirty: DirtySet = field(default_factory=DirtySet)
    conflicts: list[Conflict] = field(default_factory=list)
    pending_snapshot: EditTree | None = None
    kept_local: dict[FieldAddress, None] = field(default_factory=dict)
    in_flight: Counter[FieldAddress] = field(default_factory=Counter)
    state: SessionState = SessionState.IDLE
    has_loaded: bool = False
    resolving: int = 0
    saving: int = 0
    load_queued: bool = False
    reload_requested: bool = False
    error: str | None = None

    def in_flight_addresses(self) -> frozenset[FieldAddress]:
        return frozenset(address for address, count in self.in_flight.items() if count > 0)
