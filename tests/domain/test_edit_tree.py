from __future__ import annotations

import pytest

from framework_edits.core.errors import ImportParseError
from framework_edits.domain.edit_tree import (
    AssetEdits,
    assemble_tree,
    get_field_value,
    iter_leaves,
    merge_field,
    normalize,
    set_asset,
    tree_from_dict,
    tree_to_dict,
    with_field_value,
)
from framework_edits.domain.field_address import FieldAddress, FieldType


def test_clearing_only_checklist_item_removes_container() -> None:
    original = AssetEdits(checklist={"c1": "Check the scope"})

    updated = with_field_value(original, FieldAddress.checklist(3, "c1"), "")

    assert updated.checklist is None
    assert updated.is_empty()
    assert original.checklist == {"c1": "Check the scope"}


def test_clearing_question_key_prunes_empty_question() -> None:
    original = AssetEdits(questions={"q1": {"label": "Who?"}, "q2": {"label": "Why?", "description": "Because"}})

    updated = with_field_value(original, FieldAddress.question(3, "q1", "label"), "   ")

    assert updated.questions == {"q2": {"label": "Why?", "description": "Because"}}


def test_setting_question_key_creates_nested_containers() -> None:
    updated = with_field_value(None, FieldAddress.question(2, "q9", "description"), "Details")

    assert updated.questions == {"q9": {"description": "Details"}}
    assert get_field_value(updated, FieldAddress.question(2, "q9", "description")) == "Details"
    assert get_field_value(updated, FieldAddress.question(2, "q9", "label")) is None


def test_merge_field_deletes_leaf_absent_on_server() -> None:
    local = AssetEdits(title="Mine", purpose="Keep")

    merged = merge_field(local, None, FieldAddress.title(1))

    assert merged == AssetEdits(purpose="Keep")


def test_normalize_prunes_blank_leaves_and_containers() -> None:
    asset = AssetEdits(title=" ", checklist={"c1": ""}, questions={"q1": {"label": ""}})

    assert normalize(asset) == AssetEdits()


def test_leaves_reassemble_into_the_same_tree() -> None:
    asset = AssetEdits(
        title="T",
        core_question="CQ",
        checklist={"c1": "one", "c2": "two"},
        questions={"q1": {"label": "L", "description": "D"}},
    )

    leaves = list(iter_leaves(5, asset))

    assert len(leaves) == 6
    assert assemble_tree(leaves) == {5: asset}


def test_set_asset_removes_empty_records() -> None:
    tree = {1: AssetEdits(title="x")}

    set_asset(tree, 1, AssetEdits())

    assert tree == {}


def test_tree_dict_uses_wire_keys() -> None:
    tree = {7: AssetEdits(core_question="Why now?")}

    payload = tree_to_dict(tree)

    assert payload == {"7": {"coreQuestion": "Why now?"}}
    assert tree_from_dict(payload) == tree


@pytest.mark.parametrize(
    "payload",
    [
        ["not", "a", "mapping"],
        {"title": 3},
        {"checklist": ["c1"]},
        {"questions": {"q1": {"label": 1}}},
    ],
)
def test_from_dict_rejects_malformed_payloads(payload: object) -> None:
    with pytest.raises(ImportParseError):
        AssetEdits.from_dict(payload)


def test_from_dict_ignores_unknown_question_keys() -> None:
    asset = AssetEdits.from_dict({"questions": {"q1": {"label": "L", "hint": "ignored"}}})

    assert asset.questions == {"q1": {"label": "L"}}
    assert FieldType.QUESTION.is_scalar is False
