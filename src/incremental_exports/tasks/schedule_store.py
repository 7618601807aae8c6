# src/incremental_exports/tasks/schedule_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
from pathlib import Path

from .task_models import DEFAULT_CYCLE_MINUTES, ScheduleEntry

logger = logging.getLogger(__name__)


def now_cursor() -> str:
    """Cursor value meaning "now": whole epoch seconds, as a string."""
    return str(int(time.time()))


class ScheduleStore:
    """
    SQLite schedule registry.

    Tables:
    - schedules: per schedule_key cadence (cycle_minutes) and cursor (start_time)
    - transfer_configs: transfer_path -> downstream transfer config id

    Rows are created lazily and never deleted. Writes are upserts that only
    touch the columns they own, so a cursor write never clobbers the cadence
    and vice versa.
    """

    def __init__(self, db_path: str | Path = "schedules.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("ScheduleStore ready db=%s", self._db_path)

    def close(self) -> None:
        return

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.DatabaseError):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schedules (
                    schedule_key TEXT PRIMARY KEY,
                    cycle_minutes INTEGER,
                    start_time TEXT,
                    updated_at REAL NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS transfer_configs (
                    transfer_path TEXT PRIMARY KEY,
                    config_id TEXT NOT NULL
                )
                """
            )
            conn.commit()
        finally:
            conn.close()

    # ---- schedules ----

    def get_entry(self, schedule_key: str) -> ScheduleEntry | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM schedules WHERE schedule_key = ?", (schedule_key,)
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        cycle = row["cycle_minutes"]
        return ScheduleEntry(
            schedule_key=str(row["schedule_key"]),
            cycle_minutes=int(cycle) if cycle is not None else None,
            start_time=row["start_time"],
            updated_at=float(row["updated_at"] or 0.0),
        )

    def ensure_cycle_minutes(
        self, schedule_key: str, default: int = DEFAULT_CYCLE_MINUTES
    ) -> int:
        """
        Return the cadence for schedule_key, persisting `default` if none is
        stored yet. An existing value is never overwritten.
        """
        entry = self.get_entry(schedule_key)
        if entry is not None and entry.cycle_minutes is not None:
            return entry.cycle_minutes

        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO schedules(schedule_key, cycle_minutes, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(schedule_key) DO UPDATE
                SET cycle_minutes = COALESCE(schedules.cycle_minutes, excluded.cycle_minutes),
                    updated_at = excluded.updated_at
                """,
                (schedule_key, int(default), time.time()),
            )
            conn.commit()
            (stored,) = conn.execute(
                "SELECT cycle_minutes FROM schedules WHERE schedule_key = ?",
                (schedule_key,),
            ).fetchone()
        finally:
            conn.close()

        logger.info("Schedule %s: cycle_minutes defaulted to %s", schedule_key, stored)
        return int(stored)

    def set_cycle_minutes(self, schedule_key: str, cycle_minutes: int) -> None:
        if int(cycle_minutes) <= 0:
            raise ValueError("cycle_minutes must be positive")
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO schedules(schedule_key, cycle_minutes, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(schedule_key) DO UPDATE
                SET cycle_minutes = excluded.cycle_minutes,
                    updated_at = excluded.updated_at
                """,
                (schedule_key, int(cycle_minutes), time.time()),
            )
            conn.commit()
        finally:
            conn.close()

    def get_start_time(self, schedule_key: str) -> str:
        """Stored cursor for schedule_key, or "now" when none is stored."""
        entry = self.get_entry(schedule_key)
        if entry is None or not entry.start_time:
            return now_cursor()
        return entry.start_time

    def update_start_time(self, schedule_key: str, cursor: str | int | float | None) -> str:
        """Persist a new cursor (missing cursor -> now). Returns what was stored."""
        value = now_cursor() if cursor is None or cursor == "" else str(cursor)
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO schedules(schedule_key, start_time, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(schedule_key) DO UPDATE
                SET start_time = excluded.start_time,
                    updated_at = excluded.updated_at
                """,
                (schedule_key, value, time.time()),
            )
            conn.commit()
        finally:
            conn.close()
        logger.debug("Schedule %s: start_time -> %s", schedule_key, value)
        return value

    # ---- transfer config ids ----

    def get_transfer_config_id(self, transfer_path: str) -> str | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT config_id FROM transfer_configs WHERE transfer_path = ?",
                (transfer_path,),
            ).fetchone()
            return str(row["config_id"]) if row else None
        finally:
            conn.close()

    def set_transfer_config_id(self, transfer_path: str, config_id: str) -> None:
        """Provisioning hook; the dispatch core only reads this mapping."""
        conn = self._get_conn()
        try:
            conn.execute(
                "INSERT OR REPLACE INTO transfer_configs(transfer_path, config_id) VALUES (?, ?)",
                (transfer_path, str(config_id)),
            )
            conn.commit()
        finally:
            conn.close()
