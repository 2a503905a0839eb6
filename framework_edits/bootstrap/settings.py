from __future__ import annotations

import os
import tempfile
from pathlib import Path

APP_DIR_NAME = "FrameworkEdits"
DB_FILENAME = "framework_edits.db"


def project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def resolve_data_dir() -> Path:
    env_dir = os.environ.get("FRAMEWORK_EDITS_HOME")
    if env_dir:
        return Path(env_dir)
    return Path.home() / ".local" / "share" / APP_DIR_NAME


def default_db_path() -> Path:
    env_path = os.environ.get("FRAMEWORK_EDITS_DB")
    if env_path:
        return Path(env_path)
    return resolve_data_dir() / DB_FILENAME


def resolve_export_dir() -> Path:
    env_dir = os.environ.get("FRAMEWORK_EDITS_EXPORT_DIR")
    if env_dir:
        return Path(env_dir)
    return resolve_data_dir() / "exports"


def resolve_log_dir() -> Path:
    candidates: list[Path] = []
    env_dir = os.environ.get("FRAMEWORK_EDITS_LOG_DIR")
    if env_dir:
        candidates.append(Path(env_dir))
    candidates.append(project_root() / "logs")
    candidates.append(Path(tempfile.gettempdir()) / APP_DIR_NAME / "logs")

    for candidate in candidates:
        try:
            candidate.mkdir(parents=True, exist_ok=True)
            test_file = candidate / "_write_test.tmp"
            test_file.write_text("ok", encoding="utf-8")
            test_file.unlink(missing_ok=True)
            return candidate
        except OSError:
            continue

    fallback = project_root()
    fallback.mkdir(parents=True, exist_ok=True)
    return fallback
