from __future__ import annotations

import json
import logging
import uuid
from dataclasses import asdict, replace
from pathlib import Path
from typing import Any

from framework_edits.bootstrap.settings import resolve_data_dir
from framework_edits.domain.models import ConflictedLoadPolicy, EditorConfig, StoreBackend

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.json"


class EditorConfigStore:
    def __init__(self, base_dir: Path | None = None) -> None:
        self._base_dir = base_dir or resolve_data_dir()
        self._config_path = self._base_dir / CONFIG_FILENAME

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def load(self) -> EditorConfig:
        payload = self._read_payload()
        config = _config_from_payload(payload)
        if not config.device_id:
            config = replace(config, device_id=self._generate_device_id())
            payload["device_id"] = config.device_id
            self._write_payload(payload)
        return config

    def save(self, config: EditorConfig) -> EditorConfig:
        if not config.device_id:
            config = replace(config, device_id=self._generate_device_id())
        payload = asdict(config)
        payload["store_backend"] = config.store_backend.value
        payload["conflicted_load_policy"] = config.conflicted_load_policy.value
        self._write_payload(payload)
        return config

    def _read_payload(self) -> dict[str, Any]:
        if not self._config_path.exists():
            return {}
        try:
            payload = json.loads(self._config_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.exception("Could not read %s: %s", CONFIG_FILENAME, exc)
            return {}
        if not isinstance(payload, dict):
            logger.warning("Ignoring %s: top-level value is not an object", CONFIG_FILENAME)
            return {}
        return payload

    def _write_payload(self, payload: dict[str, Any]) -> None:
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        self._config_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")

    @staticmethod
    def _generate_device_id() -> str:
        return str(uuid.uuid4())


def _config_from_payload(payload: dict[str, Any]) -> EditorConfig:
    defaults = EditorConfig()
    try:
        backend = StoreBackend(str(payload.get("store_backend", defaults.store_backend.value)).strip().lower())
    except ValueError:
        logger.warning("Unknown store_backend %r; using %s", payload.get("store_backend"), defaults.store_backend.value)
        backend = defaults.store_backend
    try:
        policy = ConflictedLoadPolicy(
            str(payload.get("conflicted_load_policy", defaults.conflicted_load_policy.value)).strip().lower()
        )
    except ValueError:
        logger.warning(
            "Unknown conflicted_load_policy %r; using %s",
            payload.get("conflicted_load_policy"),
            defaults.conflicted_load_policy.value,
        )
        policy = defaults.conflicted_load_policy
    track_in_flight = payload.get("track_in_flight", defaults.track_in_flight)
    return EditorConfig(
        admin_name=str(payload.get("admin_name") or defaults.admin_name).strip(),
        store_backend=backend,
        db_path=str(payload.get("db_path", "")).strip(),
        spreadsheet_id=str(payload.get("spreadsheet_id", "")).strip(),
        credentials_path=str(payload.get("credentials_path", "")).strip(),
        conflicted_load_policy=policy,
        track_in_flight=track_in_flight if isinstance(track_in_flight, bool) else defaults.track_in_flight,
        device_id=str(payload.get("device_id", "")).strip(),
    )
