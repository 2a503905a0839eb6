from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

DEFAULT_ASSET_COUNT = 27


@dataclass(frozen=True)
class AssetCatalog:
    """Read-only view of the fixed asset catalog.

    Only ids and display titles are needed here; the canonical asset
    content lives with the catalog owner.
    """

    asset_ids: tuple[int, ...] = tuple(range(1, DEFAULT_ASSET_COUNT + 1))
    titles: Mapping[int, str] = field(default_factory=dict)

    def contains(self, asset_id: int) -> bool:
        return asset_id in self.asset_ids

    def title_for(self, asset_id: int) -> str:
        return self.titles.get(asset_id) or f"Asset #{asset_id}"
