# tests/test_schedule_store.py

from __future__ import annotations

import time

import pytest

from incremental_exports.tasks.schedule_store import ScheduleStore


def test_ensure_cycle_minutes_defaults_once(schedules: ScheduleStore) -> None:
    assert schedules.get_entry("zendesk/tickets") is None

    assert schedules.ensure_cycle_minutes("zendesk/tickets") == 1440
    assert schedules.ensure_cycle_minutes("zendesk/tickets", default=5) == 1440

    entry = schedules.get_entry("zendesk/tickets")
    assert entry is not None and entry.cycle_minutes == 1440


def test_ensure_cycle_minutes_keeps_existing_value(schedules: ScheduleStore) -> None:
    schedules.set_cycle_minutes("zoho/items", 30)
    assert schedules.ensure_cycle_minutes("zoho/items") == 30


def test_ensure_cycle_minutes_after_cursor_only_row(schedules: ScheduleStore) -> None:
    schedules.update_start_time("zoho/items", "123")
    assert schedules.ensure_cycle_minutes("zoho/items", default=60) == 60

    entry = schedules.get_entry("zoho/items")
    assert entry is not None
    assert entry.start_time == "123"
    assert entry.cycle_minutes == 60


def test_set_cycle_minutes_rejects_non_positive(schedules: ScheduleStore) -> None:
    with pytest.raises(ValueError):
        schedules.set_cycle_minutes("zoho/items", 0)


def test_start_time_defaults_to_now_seconds(schedules: ScheduleStore) -> None:
    before = int(time.time())
    cursor = schedules.get_start_time("zendesk/tickets")
    after = int(time.time())

    assert cursor.isdigit()
    assert before <= int(cursor) <= after
    # Reading does not persist anything.
    assert schedules.get_entry("zendesk/tickets") is None


def test_update_start_time_roundtrip(schedules: ScheduleStore) -> None:
    schedules.set_cycle_minutes("zendesk/tickets", 10)

    assert schedules.update_start_time("zendesk/tickets", 1700000000) == "1700000000"
    assert schedules.get_start_time("zendesk/tickets") == "1700000000"

    # Cursor writes never touch the cadence.
    entry = schedules.get_entry("zendesk/tickets")
    assert entry is not None and entry.cycle_minutes == 10


def test_update_start_time_missing_cursor_means_now(schedules: ScheduleStore) -> None:
    before = int(time.time())
    stored = schedules.update_start_time("zendesk/tickets", None)
    assert int(stored) >= before
    assert schedules.get_start_time("zendesk/tickets") == stored


def test_transfer_config_ids(schedules: ScheduleStore) -> None:
    assert schedules.get_transfer_config_id("zendesk/tickets") is None
    schedules.set_transfer_config_id("zendesk/tickets", "cfg-1")
    schedules.set_transfer_config_id("zendesk/tickets", "cfg-2")
    assert schedules.get_transfer_config_id("zendesk/tickets") == "cfg-2"
