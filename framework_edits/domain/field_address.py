from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from framework_edits.core.errors import ValidationError

KEY_SEPARATOR = "|"
QUESTION_KEYS = ("label", "description")


class FieldType(str, Enum):
    TITLE = "title"
    PURPOSE = "purpose"
    CORE_QUESTION = "coreQuestion"
    CHECKLIST = "checklist"
    QUESTION = "question"

    @property
    def is_scalar(self) -> bool:
        return self in _SCALAR_TYPES


_SCALAR_TYPES = frozenset({FieldType.TITLE, FieldType.PURPOSE, FieldType.CORE_QUESTION})

_SCALAR_LABELS = {
    FieldType.TITLE: "Title",
    FieldType.PURPOSE: "Purpose",
    FieldType.CORE_QUESTION: "Core Question",
}


@dataclass(frozen=True)
class FieldAddress:
    """Identifies one editable leaf of an asset.

    ``sub_id`` is the checklist item id for checklist fields and the
    question id for question fields; ``sub_key`` is only used by question
    fields (``label`` or ``description``). Both stay empty for scalars.
    """

    asset_id: int
    field_type: FieldType
    sub_id: str = ""
    sub_key: str = ""

    @classmethod
    def create(
        cls,
        asset_id: int,
        field_type: FieldType | str,
        sub_id: str | None = "",
        sub_key: str | None = "",
    ) -> "FieldAddress":
        try:
            resolved_type = FieldType(field_type)
        except ValueError as exc:
            raise ValidationError(f"Unknown field type: {field_type!r}") from exc
        if isinstance(asset_id, bool) or not isinstance(asset_id, int):
            raise ValidationError(f"Asset id must be an integer, got {asset_id!r}")
        resolved_sub_id = (sub_id or "").strip()
        resolved_sub_key = (sub_key or "").strip()
        if resolved_type.is_scalar:
            resolved_sub_id, resolved_sub_key = "", ""
        elif resolved_type is FieldType.CHECKLIST:
            if not resolved_sub_id:
                raise ValidationError("Checklist fields need a checklist item id.")
            resolved_sub_key = ""
        else:
            if not resolved_sub_id:
                raise ValidationError("Question fields need a question id.")
            if resolved_sub_key not in QUESTION_KEYS:
                raise ValidationError(f"Question key must be one of {QUESTION_KEYS}, got {resolved_sub_key!r}")
        for part in (resolved_sub_id, resolved_sub_key):
            if KEY_SEPARATOR in part:
                raise ValidationError(f"Field ids cannot contain {KEY_SEPARATOR!r}: {part!r}")
        return cls(asset_id, resolved_type, resolved_sub_id, resolved_sub_key)

    @classmethod
    def title(cls, asset_id: int) -> "FieldAddress":
        return cls.create(asset_id, FieldType.TITLE)

    @classmethod
    def checklist(cls, asset_id: int, item_id: str) -> "FieldAddress":
        return cls.create(asset_id, FieldType.CHECKLIST, item_id)

    @classmethod
    def question(cls, asset_id: int, question_id: str, key: str) -> "FieldAddress":
        return cls.create(asset_id, FieldType.QUESTION, question_id, key)

    def to_key(self) -> str:
        return KEY_SEPARATOR.join((str(self.asset_id), self.field_type.value, self.sub_id, self.sub_key))

    @classmethod
    def from_key(cls, key: str) -> "FieldAddress":
        parts = key.split(KEY_SEPARATOR)
        if len(parts) != 4:
            raise ValidationError(f"Malformed field key: {key!r}")
        asset_text, field_type, sub_id, sub_key = parts
        try:
            asset_id = int(asset_text)
        except ValueError as exc:
            raise ValidationError(f"Malformed asset id in field key: {key!r}") from exc
        address = cls.create(asset_id, field_type, sub_id, sub_key)
        if address.to_key() != key:
            raise ValidationError(f"Non-canonical field key: {key!r}")
        return address

    def label(self) -> str:
        if self.field_type.is_scalar:
            return _SCALAR_LABELS[self.field_type]
        if self.field_type is FieldType.CHECKLIST:
            return f"Checklist: {self.sub_id}"
        key_label = "Label" if self.sub_key == "label" else "Description"
        return f"Question {self.sub_id}: {key_label}"

    def __str__(self) -> str:
        return self.to_key()
