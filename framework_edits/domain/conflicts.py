from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping

from framework_edits.domain.edit_tree import AssetEdits, get_field_value
from framework_edits.domain.field_address import FieldAddress


class ResolutionChoice(str, Enum):
    MINE = "mine"
    THEIRS = "theirs"


@dataclass(frozen=True)
class Conflict:
    address: FieldAddress
    local_value: str
    server_value: str

    def describe(self) -> str:
        return f"Asset {self.address.asset_id} {self.address.label()}: mine={self.local_value!r} theirs={self.server_value!r}"


def detect_conflicts(
    local_tree: Mapping[int, AssetEdits],
    server_tree: Mapping[int, AssetEdits],
    dirty: Iterable[FieldAddress],
    skip: frozenset[FieldAddress] = frozenset(),
) -> list[Conflict]:
    """Compares dirty fields between the local view and a fresh server tree.

    Only addresses in ``dirty`` are checked; a field nobody touched here
    is taken from the server without asking. Missing values compare as
    ``""``.
    """
    conflicts: list[Conflict] = []
    for address in dirty:
        if address in skip:
            continue
        local_value = get_field_value(local_tree.get(address.asset_id), address) or ""
        server_value = get_field_value(server_tree.get(address.asset_id), address) or ""
        if local_value != server_value:
            conflicts.append(Conflict(address=address, local_value=local_value, server_value=server_value))
    return conflicts
