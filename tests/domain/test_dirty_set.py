from __future__ import annotations

from framework_edits.domain.dirty_set import DirtySet
from framework_edits.domain.field_address import FieldAddress


def test_dirty_set_keeps_marking_order_without_duplicates() -> None:
    dirty = DirtySet()
    a, b = FieldAddress.title(1), FieldAddress.checklist(2, "c1")

    dirty.mark(a)
    dirty.mark(b)
    dirty.mark(a)

    assert dirty.members() == (a, b)
    assert len(dirty) == 2


def test_clear_all_can_keep_selected_members() -> None:
    dirty = DirtySet()
    a, b, c = FieldAddress.title(1), FieldAddress.title(2), FieldAddress.checklist(2, "c1")
    for address in (a, b, c):
        dirty.mark(address)

    dirty.clear_all(keep=frozenset({c}))

    assert dirty.members() == (c,)


def test_clear_asset_only_touches_that_asset() -> None:
    dirty = DirtySet()
    a, b = FieldAddress.title(1), FieldAddress.title(2)
    dirty.mark(a)
    dirty.mark(b)

    dirty.clear_asset(1)
    dirty.clear(FieldAddress.title(9))

    assert a not in dirty
    assert dirty.for_asset(2) == (b,)
    assert dirty.keys() == ("2|title||",)
