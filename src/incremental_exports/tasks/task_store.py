# src/incremental_exports/tasks/task_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
import uuid
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from .task_models import DEFAULT_COLLECTION, FAMILY_SEPARATOR, Task, TaskStatus

logger = logging.getLogger(__name__)


class TaskStore:
    """
    SQLite task store.

    One table holds every collection (task family queue); the dispatcher
    always filters by collection.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("TaskStore ready db=%s total=%s", self._db_path, self.count_tasks())

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

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
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    collection TEXT NOT NULL,
                    worker_name TEXT NOT NULL,
                    perform_at REAL NOT NULL,
                    status TEXT NOT NULL DEFAULT 'scheduled',
                    options TEXT NOT NULL DEFAULT '{}',
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_due "
                "ON tasks(collection, status, perform_at)"
            )
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _options_to_str(options: dict[str, Any] | None) -> str:
        if not options:
            return "{}"
        return json.dumps(options, ensure_ascii=False)

    @staticmethod
    def _str_to_options(s: str | None) -> dict[str, Any]:
        if not s:
            return {}
        try:
            val = json.loads(s)
        except json.JSONDecodeError:
            logger.warning("Task options are not valid JSON; using {}.")
            return {}
        return val if isinstance(val, dict) else {}

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        return Task(
            id=str(row["id"]),
            collection=str(row["collection"]),
            worker_name=str(row["worker_name"]),
            perform_at=float(row["perform_at"]),
            status=TaskStatus.from_db(row["status"]),
            options=self._str_to_options(row["options"]),
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
        )

    # ---- public API ----

    def count_tasks(self, collection: str | None = None) -> int:
        conn = self._get_conn()
        try:
            if collection is None:
                (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            else:
                (n,) = conn.execute(
                    "SELECT COUNT(*) FROM tasks WHERE collection = ?", (collection,)
                ).fetchone()
            return int(n)
        finally:
            conn.close()

    def add_task(
        self,
        *,
        worker_name: str,
        perform_at: float,
        options: dict[str, Any] | None = None,
        status: TaskStatus = TaskStatus.SCHEDULED,
        collection: str = DEFAULT_COLLECTION,
        task_id: str | None = None,
    ) -> str:
        """
        Insert a task and return its id.

        With an explicit task_id an existing row is replaced wholesale,
        otherwise a fresh opaque id is assigned.
        """
        if not worker_name or not worker_name.strip():
            raise ValueError("worker_name is required")
        if not collection or not collection.strip():
            raise ValueError("collection is required")

        now = time.time()
        tid = task_id or uuid.uuid4().hex

        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT OR REPLACE INTO tasks(
                    id, collection, worker_name, perform_at, status, options,
                    created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    tid,
                    collection.strip(),
                    worker_name.strip(),
                    float(perform_at),
                    status.value,
                    self._options_to_str(options),
                    now,
                    now,
                ),
            )
            conn.commit()
        finally:
            conn.close()

        logger.debug(
            "Task added id=%s worker=%s status=%s perform_at=%s",
            tid,
            worker_name,
            status.value,
            perform_at,
        )
        return tid

    def get_task(self, task_id: str) -> Task | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
            return self._row_to_task(row) if row else None
        finally:
            conn.close()

    def list_due_tasks(
        self,
        *,
        collection: str,
        status: TaskStatus,
        now_ts: float,
        limit: int | None = None,
    ) -> list[Task]:
        """
        Tasks of a collection in the given status with perform_at <= now_ts,
        oldest first.
        """
        sql = """
            SELECT *
            FROM tasks
            WHERE collection = ?
              AND status = ?
              AND perform_at <= ?
            ORDER BY perform_at ASC, created_at ASC
        """
        params: list[Any] = [collection, status.value, float(now_ts)]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))

        conn = self._get_conn()
        try:
            return [self._row_to_task(r) for r in conn.execute(sql, params).fetchall()]
        finally:
            conn.close()

    def list_tasks(self, *, collection: str, status: TaskStatus | None = None) -> list[Task]:
        conn = self._get_conn()
        try:
            if status is None:
                rows = conn.execute(
                    "SELECT * FROM tasks WHERE collection = ? ORDER BY perform_at ASC",
                    (collection,),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM tasks WHERE collection = ? AND status = ? "
                    "ORDER BY perform_at ASC",
                    (collection, status.value),
                ).fetchall()
            return [self._row_to_task(r) for r in rows]
        finally:
            conn.close()

    def try_claim_task(
        self,
        task_id: str,
        *,
        expected: Iterable[TaskStatus],
        perform_at: float,
    ) -> bool:
        """
        Conditional claim used by the dispatcher.

        Atomically transitions:
          status IN expected  -> status = working, perform_at = perform_at

        Returns True if the row was claimed by this caller.
        """
        exp = [e.value for e in expected]
        if not exp:
            return False

        conn = self._get_conn()
        try:
            placeholders = ",".join("?" for _ in exp)
            cur = conn.execute(
                f"""
                UPDATE tasks
                SET status = 'working', perform_at = ?, updated_at = ?
                WHERE id = ?
                  AND status IN ({placeholders})
                """,
                (float(perform_at), time.time(), task_id, *exp),
            )
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    def update_task_fields(
        self,
        task_id: str,
        *,
        status: TaskStatus | None = None,
        perform_at: float | None = None,
        options: dict[str, Any] | None = None,
    ) -> None:
        fields: list[str] = []
        params: list[Any] = []

        if status is not None:
            fields.append("status = ?")
            params.append(status.value)

        if perform_at is not None:
            fields.append("perform_at = ?")
            params.append(float(perform_at))

        if options is not None:
            fields.append("options = ?")
            params.append(self._options_to_str(options))

        if not fields:
            return

        fields.append("updated_at = ?")
        params.append(time.time())
        params.append(task_id)

        conn = self._get_conn()
        try:
            conn.execute(f"UPDATE tasks SET {', '.join(fields)} WHERE id = ?", params)
            conn.commit()
        finally:
            conn.close()

    def release_held_tasks(self, *, collection: str, family: str) -> int:
        """
        hold4conflict -> scheduled for every task whose worker name starts
        with '<family>_'. perform_at is left untouched.
        """
        prefix = f"{family}{FAMILY_SEPARATOR}"
        conn = self._get_conn()
        try:
            cur = conn.execute(
                """
                UPDATE tasks
                SET status = 'scheduled', updated_at = ?
                WHERE collection = ?
                  AND status = 'hold4conflict'
                  AND substr(worker_name, 1, ?) = ?
                """,
                (time.time(), collection, len(prefix), prefix),
            )
            conn.commit()
            return int(cur.rowcount)
        finally:
            conn.close()
