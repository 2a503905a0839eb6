from __future__ import annotations

from typing import Iterator

from framework_edits.domain.field_address import FieldAddress


class DirtySet:
    """Fields this writer touched since its last conflict-free sync.

    Iteration follows marking order so conflict lists stay stable.
    """

    def __init__(self) -> None:
        self._members: dict[FieldAddress, None] = {}

    def mark(self, address: FieldAddress) -> None:
        self._members[address] = None

    def clear(self, address: FieldAddress) -> None:
        self._members.pop(address, None)

    def clear_all(self, *, keep: frozenset[FieldAddress] = frozenset()) -> None:
        self._members = {address: None for address in self._members if address in keep}

    def clear_asset(self, asset_id: int) -> None:
        self._members = {address: None for address in self._members if address.asset_id != asset_id}

    def members(self) -> tuple[FieldAddress, ...]:
        return tuple(self._members)

    def for_asset(self, asset_id: int) -> tuple[FieldAddress, ...]:
        return tuple(address for address in self._members if address.asset_id == asset_id)

    def keys(self) -> tuple[str, ...]:
        return tuple(address.to_key() for address in self._members)

    def __contains__(self, address: object) -> bool:
        return address in self._members

    def __iter__(self) -> Iterator[FieldAddress]:
        return iter(tuple(self._members))

    def __len__(self) -> int:
        return len(self._members)

    def __repr__(self) -> str:
        return f"DirtySet({list(self.keys())!r})"
