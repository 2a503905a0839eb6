from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterator, Mapping

from framework_edits.core.errors import ImportParseError
from framework_edits.domain.field_address import QUESTION_KEYS, FieldAddress, FieldType


@dataclass
class AssetEdits:
    """Override values for one asset.

    Containers (``checklist``, ``questions`` and each per-question dict)
    are either ``None``/absent or non-empty; :func:`normalize` restores
    that after every mutation.
    """

    title: str | None = None
    purpose: str | None = None
    core_question: str | None = None
    checklist: dict[str, str] | None = None
    questions: dict[str, dict[str, str]] | None = None

    def copy(self) -> "AssetEdits":
        return AssetEdits(
            title=self.title,
            purpose=self.purpose,
            core_question=self.core_question,
            checklist=dict(self.checklist) if self.checklist is not None else None,
            questions=(
                {question_id: dict(values) for question_id, values in self.questions.items()}
                if self.questions is not None
                else None
            ),
        )

    def is_empty(self) -> bool:
        return not (self.title or self.purpose or self.core_question or self.checklist or self.questions)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.title is not None:
            payload["title"] = self.title
        if self.purpose is not None:
            payload["purpose"] = self.purpose
        if self.core_question is not None:
            payload["coreQuestion"] = self.core_question
        if self.checklist:
            payload["checklist"] = dict(self.checklist)
        if self.questions:
            payload["questions"] = {question_id: dict(values) for question_id, values in self.questions.items()}
        return payload

    @classmethod
    def from_dict(cls, payload: Any) -> "AssetEdits":
        if not isinstance(payload, Mapping):
            raise ImportParseError(f"Asset modifications must be an object, got {type(payload).__name__}")
        checklist = _string_map(payload.get("checklist"), "checklist")
        questions_raw = payload.get("questions")
        questions: dict[str, dict[str, str]] | None = None
        if questions_raw is not None:
            if not isinstance(questions_raw, Mapping):
                raise ImportParseError("questions must be an object")
            questions = {}
            for question_id, values in questions_raw.items():
                mapped = _string_map(values, f"questions.{question_id}") or {}
                questions[str(question_id)] = {key: text for key, text in mapped.items() if key in QUESTION_KEYS}
        return normalize(
            cls(
                title=_optional_string(payload.get("title"), "title"),
                purpose=_optional_string(payload.get("purpose"), "purpose"),
                core_question=_optional_string(payload.get("coreQuestion"), "coreQuestion"),
                checklist=checklist,
                questions=questions,
            )
        )


EditTree = dict[int, AssetEdits]


def _optional_string(value: Any, name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ImportParseError(f"{name} must be a string")
    return value


def _string_map(value: Any, name: str) -> dict[str, str] | None:
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise ImportParseError(f"{name} must be an object")
    result: dict[str, str] = {}
    for key, text in value.items():
        if text is None:
            continue
        if not isinstance(text, str):
            raise ImportParseError(f"{name}.{key} must be a string")
        result[str(key)] = text
    return result


def _is_blank(value: str | None) -> bool:
    return value is None or value.strip() == ""


def normalize(asset: AssetEdits) -> AssetEdits:
    """Drops blank leaves and empty containers in place and returns ``asset``."""
    if _is_blank(asset.title):
        asset.title = None
    if _is_blank(asset.purpose):
        asset.purpose = None
    if _is_blank(asset.core_question):
        asset.core_question = None
    if asset.checklist is not None:
        asset.checklist = {item_id: text for item_id, text in asset.checklist.items() if not _is_blank(text)}
        if not asset.checklist:
            asset.checklist = None
    if asset.questions is not None:
        pruned: dict[str, dict[str, str]] = {}
        for question_id, values in asset.questions.items():
            kept = {key: text for key, text in values.items() if not _is_blank(text)}
            if kept:
                pruned[question_id] = kept
        asset.questions = pruned or None
    return asset


# One accessor and one mutator per field type.


def _get_title(asset: AssetEdits, _: FieldAddress) -> str | None:
    return asset.title


def _get_purpose(asset: AssetEdits, _: FieldAddress) -> str | None:
    return asset.purpose


def _get_core_question(asset: AssetEdits, _: FieldAddress) -> str | None:
    return asset.core_question


def _get_checklist_item(asset: AssetEdits, address: FieldAddress) -> str | None:
    if not asset.checklist:
        return None
    return asset.checklist.get(address.sub_id)


def _get_question_key(asset: AssetEdits, address: FieldAddress) -> str | None:
    if not asset.questions:
        return None
    question = asset.questions.get(address.sub_id)
    if not question:
        return None
    return question.get(address.sub_key)


def _set_title(asset: AssetEdits, _: FieldAddress, value: str | None) -> None:
    asset.title = value


def _set_purpose(asset: AssetEdits, _: FieldAddress, value: str | None) -> None:
    asset.purpose = value


def _set_core_question(asset: AssetEdits, _: FieldAddress, value: str | None) -> None:
    asset.core_question = value


def _set_checklist_item(asset: AssetEdits, address: FieldAddress, value: str | None) -> None:
    checklist = dict(asset.checklist or {})
    if value is None:
        checklist.pop(address.sub_id, None)
    else:
        checklist[address.sub_id] = value
    asset.checklist = checklist


def _set_question_key(asset: AssetEdits, address: FieldAddress, value: str | None) -> None:
    questions = {question_id: dict(values) for question_id, values in (asset.questions or {}).items()}
    question = questions.setdefault(address.sub_id, {})
    if value is None:
        question.pop(address.sub_key, None)
    else:
        question[address.sub_key] = value
    asset.questions = questions


Getter = Callable[[AssetEdits, FieldAddress], "str | None"]
Setter = Callable[[AssetEdits, FieldAddress, "str | None"], None]

_ACCESSORS: dict[FieldType, tuple[Getter, Setter]] = {
    FieldType.TITLE: (_get_title, _set_title),
    FieldType.PURPOSE: (_get_purpose, _set_purpose),
    FieldType.CORE_QUESTION: (_get_core_question, _set_core_question),
    FieldType.CHECKLIST: (_get_checklist_item, _set_checklist_item),
    FieldType.QUESTION: (_get_question_key, _set_question_key),
}


def get_field_value(asset: AssetEdits | None, address: FieldAddress) -> str | None:
    if asset is None:
        return None
    getter, _ = _ACCESSORS[address.field_type]
    return getter(asset, address)


def with_field_value(asset: AssetEdits | None, address: FieldAddress, value: str | None) -> AssetEdits:
    """Returns a copy of ``asset`` with the leaf at ``address`` set.

    A blank value removes the leaf instead of storing an empty string.
    """
    updated = asset.copy() if asset is not None else AssetEdits()
    _, setter = _ACCESSORS[address.field_type]
    setter(updated, address, None if _is_blank(value) else value)
    return normalize(updated)


def merge_field(local: AssetEdits | None, server: AssetEdits | None, address: FieldAddress) -> AssetEdits:
    return with_field_value(local, address, get_field_value(server, address))


def iter_leaves(asset_id: int, asset: AssetEdits | None) -> Iterator[tuple[FieldAddress, str]]:
    if asset is None:
        return
    for field_type, value in (
        (FieldType.TITLE, asset.title),
        (FieldType.PURPOSE, asset.purpose),
        (FieldType.CORE_QUESTION, asset.core_question),
    ):
        if not _is_blank(value):
            yield FieldAddress.create(asset_id, field_type), value
    for item_id, text in (asset.checklist or {}).items():
        if not _is_blank(text):
            yield FieldAddress.create(asset_id, FieldType.CHECKLIST, item_id), text
    for question_id, values in (asset.questions or {}).items():
        for key in QUESTION_KEYS:
            text = values.get(key)
            if not _is_blank(text):
                yield FieldAddress.create(asset_id, FieldType.QUESTION, question_id, key), text


def assemble_tree(leaves: Iterator[tuple[FieldAddress, str]] | list[tuple[FieldAddress, str]]) -> EditTree:
    """Builds a tree from flat ``(address, value)`` rows, as stored remotely."""
    tree: EditTree = {}
    for address, value in leaves:
        set_asset(tree, address.asset_id, with_field_value(tree.get(address.asset_id), address, value))
    return tree


def set_asset(tree: EditTree, asset_id: int, asset: AssetEdits | None) -> None:
    if asset is None or asset.is_empty():
        tree.pop(asset_id, None)
        return
    tree[asset_id] = asset


def copy_tree(tree: Mapping[int, AssetEdits]) -> EditTree:
    return {asset_id: asset.copy() for asset_id, asset in tree.items()}


def tree_to_dict(tree: Mapping[int, AssetEdits]) -> dict[str, dict[str, Any]]:
    return {str(asset_id): tree[asset_id].to_dict() for asset_id in sorted(tree)}


def tree_from_dict(payload: Mapping[Any, Any]) -> EditTree:
    tree: EditTree = {}
    for asset_key, modifications in payload.items():
        try:
            asset_id = int(asset_key)
        except (TypeError, ValueError) as exc:
            raise ImportParseError(f"Invalid asset id: {asset_key!r}") from exc
        set_asset(tree, asset_id, AssetEdits.from_dict(modifications))
    return tree
