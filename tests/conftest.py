# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from incremental_exports.tasks.schedule_store import ScheduleStore
from incremental_exports.tasks.task_store import TaskStore


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the composition root.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="incremental_exports-test",
        log_level="DEBUG",
        # Paths (tmp per test run)
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
        schedules_db_path=tmp_path / "schedules.sqlite3",
        workers_file=None,
        # Dispatcher
        collection="incremental",
        guarded_families=["zendesk"],
        dispatch_interval_seconds=0.01,
        failure_backoff_minutes=60,
        default_cycle_minutes=1440,
        # Source API
        source_base_url="https://source.example.test",
        source_api_token="token",
        http_timeout_seconds=5.0,
        # Blob storage
        blob_backend="local",
        blob_root=tmp_path / "blobs",
        blob_bucket="",
        blob_region=None,
        # Transfer jobs
        transfer_api_base_url="https://transfer.example.test/v1",
        transfer_parent="projects/p/locations/l",
        transfer_api_token=None,
        export_settle_seconds=0.0,
        transfer_poll_interval_seconds=0.0,
        transfer_max_poll_attempts=3,
    )


@pytest.fixture()
def task_store(settings: SimpleNamespace) -> TaskStore:
    return TaskStore(settings.tasks_db_path)


@pytest.fixture()
def schedules(settings: SimpleNamespace) -> ScheduleStore:
    return ScheduleStore(settings.schedules_db_path)
