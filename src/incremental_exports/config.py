# src/incremental_exports/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole process.
- No secrets required at import time.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

ENV_PREFIX = "INCX"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except ImportError:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_opt(name: str) -> Optional[str]:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return None
    return v.strip()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local data paths ----
    data_dir: Path
    tasks_db_path: Path
    schedules_db_path: Path
    workers_file: Optional[Path]

    # ---- Dispatcher ----
    collection: str
    guarded_families: List[str]
    dispatch_interval_seconds: float
    failure_backoff_minutes: int
    default_cycle_minutes: int

    # ---- Source API (paged) ----
    source_base_url: str
    source_api_token: Optional[str]
    http_timeout_seconds: float

    # ---- Blob storage ----
    blob_backend: str
    blob_root: Path
    blob_bucket: str
    blob_region: Optional[str]

    # ---- Transfer jobs ----
    transfer_api_base_url: str
    transfer_parent: str
    transfer_api_token: Optional[str]
    export_settle_seconds: float
    transfer_poll_interval_seconds: float
    transfer_max_poll_attempts: int

    @staticmethod
    def from_env() -> "Settings":
        data_dir = _env_path(_k("DATA_DIR"), Path(".local/incremental_exports"))
        workers_file = _env_opt(_k("WORKERS_FILE"))

        return Settings(
            app_name=_env(_k("APP_NAME"), "incremental_exports"),
            log_level=_env(_k("LOG_LEVEL"), "INFO"),
            data_dir=data_dir,
            tasks_db_path=_env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3"),
            schedules_db_path=_env_path(_k("SCHEDULES_DB_PATH"), data_dir / "schedules.sqlite3"),
            workers_file=Path(workers_file).expanduser() if workers_file else None,
            collection=_env(_k("COLLECTION"), "incremental"),
            guarded_families=_env_list(_k("GUARDED_FAMILIES"), ["zendesk"]),
            dispatch_interval_seconds=_env_float(_k("DISPATCH_INTERVAL_SECONDS"), 60.0),
            failure_backoff_minutes=_env_int(_k("FAILURE_BACKOFF_MINUTES"), 60),
            default_cycle_minutes=_env_int(_k("DEFAULT_CYCLE_MINUTES"), 1440),
            source_base_url=_env(_k("SOURCE_BASE_URL"), ""),
            source_api_token=_env_opt(_k("SOURCE_API_TOKEN")),
            http_timeout_seconds=_env_float(_k("HTTP_TIMEOUT_SECONDS"), 30.0),
            blob_backend=_env(_k("BLOB_BACKEND"), "local").strip().lower(),
            blob_root=_env_path(_k("BLOB_ROOT"), data_dir / "blobs"),
            blob_bucket=_env(_k("BLOB_BUCKET"), ""),
            blob_region=_env_opt(_k("BLOB_REGION")),
            transfer_api_base_url=_env(
                _k("TRANSFER_API_BASE_URL"), "https://bigquerydatatransfer.googleapis.com/v1"
            ),
            transfer_parent=_env(_k("TRANSFER_PARENT"), ""),
            transfer_api_token=_env_opt(_k("TRANSFER_API_TOKEN")),
            export_settle_seconds=_env_float(_k("EXPORT_SETTLE_SECONDS"), 60.0),
            transfer_poll_interval_seconds=_env_float(_k("TRANSFER_POLL_INTERVAL_SECONDS"), 10.0),
            transfer_max_poll_attempts=_env_int(_k("TRANSFER_MAX_POLL_ATTEMPTS"), 30),
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
