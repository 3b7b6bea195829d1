# src/taskhub/tasks/store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from ..errors import StoreUnavailable
from .models import Comment, Priority, RecurrenceRule, Reminder, Task, TimeEntry

logger = logging.getLogger(__name__)

# Columns a caller may change through update_task().
_TASK_UPDATABLE = {
    "title",
    "description",
    "priority",
    "completed",
    "due_at",
    "assignee",
    "recurrence",
}


class TaskStore:
    """
    SQLite record store: tasks, dependency edges, reminders, time entries, comments.

    The schema is intentionally simple and migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection
    - read-modify-write sequences are serialized by the callers (keyed locks)

    Every sqlite3.Error is re-raised as StoreUnavailable.
    """

    def __init__(self, db_path: str | Path = "taskhub.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except StoreUnavailable:
            total = -1
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

    @property
    def db_path(self) -> Path:
        return self._db_path

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    @contextlib.contextmanager
    def _session(self, what: str) -> Iterator[sqlite3.Connection]:
        """One connection, one transaction: commit on success, roll back on error."""
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            raise StoreUnavailable(f"{what}: cannot open {self._db_path}: {e}") from e
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            with contextlib.suppress(sqlite3.Error):
                conn.rollback()
            logger.error("TaskStore %s failed: %s", what, e)
            raise StoreUnavailable(f"{what}: {e}") from e
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._session("ensure_schema") as conn:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    priority TEXT NOT NULL DEFAULT 'medium',
                    completed INTEGER NOT NULL DEFAULT 0,
                    due_at REAL,
                    created_by TEXT,
                    assignee TEXT,
                    recurrence TEXT,
                    created_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS task_dependencies (
                    task_id TEXT NOT NULL,
                    depends_on_id TEXT NOT NULL,
                    PRIMARY KEY (task_id, depends_on_id)
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS reminders (
                    id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    remind_at REAL,
                    snoozed_until REAL,
                    sent INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS time_entries (
                    id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    started_at REAL NOT NULL,
                    stopped_at REAL,
                    duration INTEGER
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS comments (
                    id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    content TEXT NOT NULL,
                    created_at REAL NOT NULL
                )
                """
            )

            # Migrations (safe): add missing columns to databases created by older builds.
            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("assignee", "TEXT")
            add_col("recurrence", "TEXT")
            add_col("created_by", "TEXT")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_reminders_due ON reminders(sent, remind_at)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_reminders_user ON reminders(user_id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_time_entries_user ON time_entries(user_id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_comments_task ON comments(task_id)")

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=str(row["id"]),
            title=str(row["title"] or ""),
            description=str(row["description"] or ""),
            priority=Priority.from_db(row["priority"]),
            completed=bool(row["completed"]),
            due_at=float(row["due_at"]) if row["due_at"] is not None else None,
            created_by=row["created_by"],
            assignee=row["assignee"],
            recurrence=RecurrenceRule.from_db(row["recurrence"]),
            created_at=float(row["created_at"] or 0.0),
        )

    @staticmethod
    def _row_to_reminder(row: sqlite3.Row) -> Reminder:
        return Reminder(
            id=str(row["id"]),
            task_id=str(row["task_id"]),
            user_id=str(row["user_id"]),
            remind_at=float(row["remind_at"]) if row["remind_at"] is not None else None,
            snoozed_until=float(row["snoozed_until"]) if row["snoozed_until"] is not None else None,
            sent=bool(row["sent"]),
        )

    @staticmethod
    def _row_to_time_entry(row: sqlite3.Row) -> TimeEntry:
        return TimeEntry(
            id=str(row["id"]),
            task_id=str(row["task_id"]),
            user_id=str(row["user_id"]),
            started_at=float(row["started_at"]),
            stopped_at=float(row["stopped_at"]) if row["stopped_at"] is not None else None,
            duration=int(row["duration"]) if row["duration"] is not None else None,
        )

    @staticmethod
    def _task_params(task: Task) -> tuple[Any, ...]:
        return (
            task.id,
            task.title,
            task.description,
            task.priority.value,
            int(task.completed),
            task.due_at,
            task.created_by,
            task.assignee,
            task.recurrence.value if task.recurrence else None,
            task.created_at,
        )

    @staticmethod
    def _insert_task(conn: sqlite3.Connection, params: tuple[Any, ...]) -> None:
        conn.execute(
            """
            INSERT INTO tasks(
                id, title, description, priority, completed,
                due_at, created_by, assignee, recurrence, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            params,
        )

    # ---- tasks ----

    def count_tasks(self) -> int:
        with self._session("count_tasks") as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)

    def insert_task(self, task: Task) -> None:
        with self._session("insert_task") as conn:
            self._insert_task(conn, self._task_params(task))
        logger.debug("Task inserted id=%s recurrence=%s due_at=%s", task.id, task.recurrence, task.due_at)

    def get_task(self, task_id: str) -> Task | None:
        with self._session("get_task") as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
            return self._row_to_task(row) if row else None

    def list_tasks(self) -> list[Task]:
        with self._session("list_tasks") as conn:
            rows = conn.execute("SELECT * FROM tasks ORDER BY created_at ASC, id ASC").fetchall()
            return [self._row_to_task(r) for r in rows]

    def update_task(
        self,
        task_id: str,
        changes: dict[str, Any],
        *,
        successor: Task | None = None,
    ) -> bool:
        """
        Write `changes` to one task, and insert `successor` in the same transaction.

        Returns False (and writes nothing) when the task does not exist.
        """
        unknown = set(changes) - _TASK_UPDATABLE
        if unknown:
            raise ValueError(f"not updatable: {', '.join(sorted(unknown))}")

        fields: list[str] = []
        params: list[Any] = []
        for name, value in changes.items():
            if name == "priority":
                value = value.value
            elif name == "recurrence":
                value = value.value if value else None
            elif name == "completed":
                value = int(bool(value))
            fields.append(f"{name} = ?")
            params.append(value)

        with self._session("update_task") as conn:
            if fields:
                cur = conn.execute(
                    f"UPDATE tasks SET {', '.join(fields)} WHERE id = ?",
                    (*params, task_id),
                )
                found = cur.rowcount == 1
            else:
                found = conn.execute("SELECT 1 FROM tasks WHERE id = ?", (task_id,)).fetchone() is not None

            if not found:
                return False
            if successor is not None:
                self._insert_task(conn, self._task_params(successor))
            return True

    def delete_task(self, task_id: str) -> bool:
        with self._session("delete_task") as conn:
            cur = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            if cur.rowcount != 1:
                return False
            conn.execute(
                "DELETE FROM task_dependencies WHERE task_id = ? OR depends_on_id = ?",
                (task_id, task_id),
            )
            return True

    # ---- dependency edges ----

    def add_dependency(self, task_id: str, depends_on_id: str) -> bool:
        with self._session("add_dependency") as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO task_dependencies(task_id, depends_on_id) VALUES (?, ?)",
                (task_id, depends_on_id),
            )
            return cur.rowcount == 1

    def remove_dependency(self, task_id: str, depends_on_id: str) -> bool:
        with self._session("remove_dependency") as conn:
            cur = conn.execute(
                "DELETE FROM task_dependencies WHERE task_id = ? AND depends_on_id = ?",
                (task_id, depends_on_id),
            )
            return cur.rowcount == 1

    def list_dependencies(self, task_id: str) -> list[str]:
        with self._session("list_dependencies") as conn:
            rows = conn.execute(
                "SELECT depends_on_id FROM task_dependencies WHERE task_id = ? ORDER BY depends_on_id",
                (task_id,),
            ).fetchall()
            return [str(r["depends_on_id"]) for r in rows]

    def prerequisite_states(self, task_id: str) -> list[tuple[str, bool | None]]:
        """
        (prerequisite id, completed) for every edge of `task_id`.

        completed is None when the prerequisite has no task record.
        """
        with self._session("prerequisite_states") as conn:
            rows = conn.execute(
                """
                SELECT d.depends_on_id AS dep_id, t.completed AS completed
                FROM task_dependencies d
                LEFT JOIN tasks t ON t.id = d.depends_on_id
                WHERE d.task_id = ?
                ORDER BY d.depends_on_id
                """,
                (task_id,),
            ).fetchall()
            return [
                (str(r["dep_id"]), None if r["completed"] is None else bool(r["completed"]))
                for r in rows
            ]

    # ---- reminders ----

    def insert_reminder(self, reminder: Reminder) -> None:
        with self._session("insert_reminder") as conn:
            conn.execute(
                """
                INSERT INTO reminders(id, task_id, user_id, remind_at, snoozed_until, sent)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    reminder.id,
                    reminder.task_id,
                    reminder.user_id,
                    reminder.remind_at,
                    reminder.snoozed_until,
                    int(reminder.sent),
                ),
            )

    def get_reminder(self, reminder_id: str) -> Reminder | None:
        with self._session("get_reminder") as conn:
            row = conn.execute("SELECT * FROM reminders WHERE id = ?", (reminder_id,)).fetchone()
            return self._row_to_reminder(row) if row else None

    def list_reminders(self, *, user_id: str | None = None) -> list[Reminder]:
        with self._session("list_reminders") as conn:
            if user_id is None:
                rows = conn.execute("SELECT * FROM reminders ORDER BY remind_at ASC").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM reminders WHERE user_id = ? ORDER BY remind_at ASC",
                    (user_id,),
                ).fetchall()
            return [self._row_to_reminder(r) for r in rows]

    def list_due_reminders(self, *, now_ts: float, limit: int = 256) -> list[Reminder]:
        """
        Unsent reminders whose fire time has passed.

        Snooze is NOT applied here; the scheduler filters snoozed rows itself.
        """
        with self._session("list_due_reminders") as conn:
            rows = conn.execute(
                """
                SELECT *
                FROM reminders
                WHERE sent = 0
                  AND remind_at IS NOT NULL
                  AND remind_at <= ?
                ORDER BY remind_at ASC
                    LIMIT ?
                """,
                (float(now_ts), int(limit)),
            ).fetchall()
            return [self._row_to_reminder(r) for r in rows]

    def set_snooze(self, reminder_id: str, snoozed_until: float | None) -> bool:
        with self._session("set_snooze") as conn:
            cur = conn.execute(
                "UPDATE reminders SET snoozed_until = ? WHERE id = ?",
                (snoozed_until, reminder_id),
            )
            return cur.rowcount == 1

    def mark_reminder_sent(self, reminder_id: str) -> bool:
        """Flip sent 0 -> 1. Returns False if already sent or missing."""
        with self._session("mark_reminder_sent") as conn:
            cur = conn.execute(
                "UPDATE reminders SET sent = 1 WHERE id = ? AND sent = 0",
                (reminder_id,),
            )
            return cur.rowcount == 1

    # ---- time entries ----

    def insert_time_entry(self, entry: TimeEntry) -> None:
        with self._session("insert_time_entry") as conn:
            conn.execute(
                """
                INSERT INTO time_entries(id, task_id, user_id, started_at, stopped_at, duration)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (entry.id, entry.task_id, entry.user_id, entry.started_at, entry.stopped_at, entry.duration),
            )

    def get_time_entry(self, entry_id: str) -> TimeEntry | None:
        with self._session("get_time_entry") as conn:
            row = conn.execute("SELECT * FROM time_entries WHERE id = ?", (entry_id,)).fetchone()
            return self._row_to_time_entry(row) if row else None

    def finish_time_entry(self, entry_id: str, *, stopped_at: float, duration: int) -> bool:
        """Record stop time and duration once; a stopped entry is never rewritten."""
        with self._session("finish_time_entry") as conn:
            cur = conn.execute(
                """
                UPDATE time_entries
                SET stopped_at = ?, duration = ?
                WHERE id = ? AND stopped_at IS NULL
                """,
                (float(stopped_at), int(duration), entry_id),
            )
            return cur.rowcount == 1

    def productivity_report(self) -> list[tuple[str, int]]:
        with self._session("productivity_report") as conn:
            rows = conn.execute(
                """
                SELECT user_id, SUM(duration) AS total_seconds
                FROM time_entries
                WHERE duration IS NOT NULL
                GROUP BY user_id
                ORDER BY total_seconds DESC, user_id ASC
                """
            ).fetchall()
            return [(str(r["user_id"]), int(r["total_seconds"] or 0)) for r in rows]

    # ---- comments ----

    def insert_comment(self, comment: Comment) -> None:
        with self._session("insert_comment") as conn:
            conn.execute(
                "INSERT INTO comments(id, task_id, user_id, content, created_at) VALUES (?, ?, ?, ?, ?)",
                (comment.id, comment.task_id, comment.user_id, comment.content, comment.created_at),
            )

    def list_comments(self, task_id: str) -> list[Comment]:
        with self._session("list_comments") as conn:
            rows = conn.execute(
                "SELECT * FROM comments WHERE task_id = ? ORDER BY created_at ASC",
                (task_id,),
            ).fetchall()
            return [
                Comment(
                    id=str(r["id"]),
                    task_id=str(r["task_id"]),
                    user_id=str(r["user_id"]),
                    content=str(r["content"]),
                    created_at=float(r["created_at"]),
                )
                for r in rows
            ]
