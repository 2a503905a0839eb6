from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from framework_edits.domain.field_address import FieldAddress, FieldType


class HistoryAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


def derive_action(old_value: str | None, new_value: str | None) -> HistoryAction:
    if not new_value:
        return HistoryAction.DELETED
    if not old_value:
        return HistoryAction.CREATED
    return HistoryAction.UPDATED


@dataclass(frozen=True)
class HistoryRecord:
    """One immutable entry of the per-field change log.

    Records are written by the store only; a rollback appends a new entry
    and leaves this one untouched.
    """

    id: str
    asset_id: int
    field_type: FieldType
    sub_id: str
    sub_key: str
    action: HistoryAction
    old_value: str
    new_value: str
    admin_name: str
    created_at: str

    @property
    def address(self) -> FieldAddress:
        return FieldAddress.create(self.asset_id, self.field_type, self.sub_id, self.sub_key)

    @property
    def can_rollback(self) -> bool:
        return self.action is not HistoryAction.CREATED and bool(self.old_value)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "assetNumber": self.asset_id,
            "fieldType": self.field_type.value,
            "fieldId": self.sub_id,
            "fieldKey": self.sub_key,
            "action": self.action.value,
            "oldValue": self.old_value,
            "newValue": self.new_value,
            "adminName": self.admin_name,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "HistoryRecord":
        return cls(
            id=str(row["id"]),
            asset_id=int(row["asset_id"]),
            field_type=FieldType(row["field_type"]),
            sub_id=row["sub_id"] or "",
            sub_key=row["sub_key"] or "",
            action=HistoryAction(row["action"]),
            old_value=row["old_value"] or "",
            new_value=row["new_value"] or "",
            admin_name=row["admin_name"] or "",
            created_at=str(row["created_at"]),
        )

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "HistoryRecord":
        """Inverse of :meth:`to_dict`."""
        return cls.from_row(
            {
                "id": payload["id"],
                "asset_id": payload["assetNumber"],
                "field_type": payload["fieldType"],
                "sub_id": payload.get("fieldId"),
                "sub_key": payload.get("fieldKey"),
                "action": payload["action"],
                "old_value": payload.get("oldValue"),
                "new_value": payload.get("newValue"),
                "admin_name": payload.get("adminName"),
                "created_at": payload["createdAt"],
            }
        )
