from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from framework_edits.core.errors import ImportParseError
from framework_edits.domain.edit_tree import AssetEdits, EditTree, set_asset


class StoreBackend(str, Enum):
    SQLITE = "sqlite"
    SHEETS = "sheets"


class ConflictedLoadPolicy(str, Enum):
    REJECT = "reject"
    QUEUE = "queue"
    DROP = "drop"


@dataclass(frozen=True)
class SheetsConfig:
    spreadsheet_id: str
    credentials_path: str


@dataclass(frozen=True)
class EditorConfig:
    admin_name: str = "admin"
    store_backend: StoreBackend = StoreBackend.SQLITE
    db_path: str = ""
    spreadsheet_id: str = ""
    credentials_path: str = ""
    conflicted_load_policy: ConflictedLoadPolicy = ConflictedLoadPolicy.REJECT
    track_in_flight: bool = True
    device_id: str = ""

    @property
    def sheets(self) -> SheetsConfig:
        return SheetsConfig(spreadsheet_id=self.spreadsheet_id, credentials_path=self.credentials_path)


@dataclass(frozen=True)
class ImportItem:
    asset_id: int
    modifications: AssetEdits


@dataclass(frozen=True)
class ImportBatch:
    """Assets to import, keyed by the asset id as text (wire shape)."""

    assets: Mapping[str, ImportItem] = field(default_factory=dict)
    skipped: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, payload: Any) -> "ImportBatch":
        """Parses ``{"assets": {"<n>": {"assetNumber": n, "modifications": {...}}}}``.

        A malformed entry is skipped and reported in ``skipped``; it never
        fails the whole batch.
        """
        if not isinstance(payload, Mapping):
            raise ImportParseError("Import payload must be an object")
        raw_assets = payload.get("assets") or {}
        if not isinstance(raw_assets, Mapping):
            raise ImportParseError("assets must be an object")
        assets: dict[str, ImportItem] = {}
        skipped: list[str] = []
        for asset_key, item in raw_assets.items():
            try:
                assets[str(asset_key)] = _parse_import_item(str(asset_key), item)
            except ImportParseError as exc:
                skipped.append(f"Asset {asset_key}: {exc}")
        return cls(assets=assets, skipped=tuple(skipped))

    @classmethod
    def from_tree(cls, tree: Mapping[int, AssetEdits]) -> "ImportBatch":
        return cls(
            assets={
                str(asset_id): ImportItem(asset_id=asset_id, modifications=asset.copy())
                for asset_id, asset in tree.items()
            }
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "assets": {
                key: {"assetNumber": item.asset_id, "modifications": item.modifications.to_dict()}
                for key, item in self.assets.items()
            }
        }


def _parse_import_item(asset_key: str, item: Any) -> ImportItem:
    if not isinstance(item, Mapping):
        raise ImportParseError("entry must be an object")
    raw_asset_id = item.get("assetNumber", asset_key)
    try:
        asset_id = int(raw_asset_id)
    except (TypeError, ValueError) as exc:
        raise ImportParseError(f"invalid asset number {raw_asset_id!r}") from exc
    modifications = item.get("modifications")
    if modifications is None:
        modifications = {key: value for key, value in item.items() if key != "assetNumber"}
    return ImportItem(asset_id=asset_id, modifications=AssetEdits.from_dict(modifications))


@dataclass(frozen=True)
class ImportSummary:
    imported: int
    errors: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class ExportedAsset:
    asset_id: int
    asset_title: str
    modifications: AssetEdits


@dataclass(frozen=True)
class EditsExport:
    exported_at: str
    total_modified: int
    assets: Mapping[str, ExportedAsset] = field(default_factory=dict)

    def tree(self) -> EditTree:
        tree: EditTree = {}
        for item in self.assets.values():
            set_asset(tree, item.asset_id, item.modifications.copy())
        return tree

    def to_dict(self) -> dict[str, Any]:
        return {
            "exportedAt": self.exported_at,
            "totalModified": self.total_modified,
            "assets": {
                key: {
                    "assetNumber": item.asset_id,
                    "assetTitle": item.asset_title,
                    "modifications": item.modifications.to_dict(),
                }
                for key, item in self.assets.items()
            },
        }


class RollbackErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    NETWORK = "network"


@dataclass(frozen=True)
class RollbackResult:
    success: bool
    error: str | None = None
    error_kind: RollbackErrorKind | None = None

    @classmethod
    def ok(cls) -> "RollbackResult":
        return cls(success=True)

    @classmethod
    def failed(cls, kind: RollbackErrorKind, message: str) -> "RollbackResult":
        return cls(success=False, error=message, error_kind=kind)
