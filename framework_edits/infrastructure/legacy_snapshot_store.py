from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

SNAPSHOT_FILENAME_TEMPLATE = "framework-edits-{asset_id}.json"
DISMISSED_MARKER = ".migration-dismissed"


class LegacySnapshotStore:
    """Per-asset JSON snapshots left behind by the local-only editor."""

    def __init__(self, base_dir: Path) -> None:
        self._base_dir = base_dir

    def _path_for(self, asset_id: int) -> Path:
        return self._base_dir / SNAPSHOT_FILENAME_TEMPLATE.format(asset_id=asset_id)

    def read_raw(self, asset_id: int) -> str | None:
        path = self._path_for(asset_id)
        if not path.is_file():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Could not read legacy snapshot %s: %s", path.name, exc)
            return None

    def remove(self, asset_id: int) -> None:
        self._path_for(asset_id).unlink(missing_ok=True)

    def is_dismissed(self) -> bool:
        return (self._base_dir / DISMISSED_MARKER).exists()

    def set_dismissed(self) -> None:
        self._base_dir.mkdir(parents=True, exist_ok=True)
        (self._base_dir / DISMISSED_MARKER).touch()
