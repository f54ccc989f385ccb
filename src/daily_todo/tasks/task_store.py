# src/daily_todo/tasks/task_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
from datetime import date
from pathlib import Path
from typing import Any

from ..core.errors import StoreError
from .change_feed import ChangeFeed, FeedSubscription
from .task_models import ChangeEvent, CompletionRecord, Task, TaskFilter, Topic

logger = logging.getLogger(__name__)


class TaskStore:
    """
    SQLite task store with a push change feed.

    The schema is intentionally simple and migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Every committed row change is published to the ChangeFeed, including changes
    made by the subscriber itself (echoes).

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "todos.sqlite3", *, feed: ChangeFeed | None = None) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self.feed = feed if feed is not None else ChangeFeed()
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except StoreError:
            total = -1
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        self.feed.disconnect_all("store closed")

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        except sqlite3.Error as exc:
            raise StoreError(f"cannot open {self._db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS todos (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    completed INTEGER NOT NULL DEFAULT 0,
                    recurring INTEGER NOT NULL DEFAULT 1,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS todo_completions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    day TEXT NOT NULL,
                    completed_count INTEGER NOT NULL DEFAULT 0,
                    total_count INTEGER NOT NULL DEFAULT 0,
                    created_at REAL NOT NULL DEFAULT 0,
                    UNIQUE(user_id, day)
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(todos)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE todos ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("completed", "INTEGER NOT NULL DEFAULT 0")
            add_col("recurring", "INTEGER NOT NULL DEFAULT 1")
            add_col("created_at", "REAL NOT NULL DEFAULT 0")
            add_col("updated_at", "REAL NOT NULL DEFAULT 0")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_todos_user ON todos(user_id, created_at)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_todos_recurring ON todos(user_id, recurring, completed)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_completions_day ON todo_completions(user_id, day)")

            conn.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"schema setup failed: {exc}") from exc
        finally:
            conn.close()

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=int(row["id"]),
            user_id=str(row["user_id"]),
            title=str(row["title"] or ""),
            completed=bool(row["completed"]),
            recurring=bool(row["recurring"]),
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
        )

    @staticmethod
    def _row_to_completion(row: sqlite3.Row) -> CompletionRecord:
        return CompletionRecord(
            id=int(row["id"]),
            user_id=str(row["user_id"]),
            day=date.fromisoformat(str(row["day"])),
            completed_count=int(row["completed_count"] or 0),
            total_count=int(row["total_count"] or 0),
        )

    @staticmethod
    def _fetch_tasks(cur: sqlite3.Cursor, user_id: str, ids: list[int]) -> list[Task]:
        if not ids:
            return []
        placeholders = ",".join("?" for _ in ids)
        cur.execute(
            f"SELECT * FROM todos WHERE user_id = ? AND id IN ({placeholders}) ORDER BY created_at ASC, id ASC",
            (user_id, *ids),
        )
        return [TaskStore._row_to_task(r) for r in cur.fetchall()]

    # ---- public API ----

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT COUNT(*) FROM todos")
            (n,) = cur.fetchone()
            return int(n)
        except sqlite3.Error as exc:
            raise StoreError(f"count failed: {exc}") from exc
        finally:
            conn.close()

    def create(
        self,
        user_id: str,
        *,
        title: str,
        completed: bool = False,
        recurring: bool = True,
    ) -> Task:
        if not user_id:
            raise StoreError("user_id is required")
        if not title or not title.strip():
            raise StoreError("title is required")

        now = time.time()
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO todos(user_id, title, completed, recurring, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (user_id, title.strip(), int(bool(completed)), int(bool(recurring)), now, now),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise StoreError("SQLite did not return lastrowid for todos insert")
            task = Task(
                id=int(rowid),
                user_id=user_id,
                title=title.strip(),
                completed=bool(completed),
                recurring=bool(recurring),
                created_at=now,
                updated_at=now,
            )
        except sqlite3.Error as exc:
            raise StoreError(f"create failed: {exc}") from exc
        finally:
            conn.close()

        logger.debug("Todo added id=%s user=%s recurring=%s", task.id, user_id, task.recurring)
        self.feed.publish(user_id, Topic.TODOS, ChangeEvent.inserted(task))
        return task

    def update(
        self,
        user_id: str,
        task_id: int,
        *,
        completed: bool | None = None,
        recurring: bool | None = None,
        title: str | None = None,
    ) -> None:
        fields: list[str] = []
        params: list[Any] = []

        if completed is not None:
            fields.append("completed = ?")
            params.append(int(bool(completed)))

        if recurring is not None:
            fields.append("recurring = ?")
            params.append(int(bool(recurring)))

        if title is not None:
            if not title.strip():
                raise StoreError("title must not be empty")
            fields.append("title = ?")
            params.append(title.strip())

        if not fields:
            return

        fields.append("updated_at = ?")
        params.append(time.time())
        params.extend([int(task_id), user_id])

        sql = f"UPDATE todos SET {', '.join(fields)} WHERE id = ? AND user_id = ?"

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(sql, params)
            conn.commit()
            if cur.rowcount != 1:
                raise StoreError(f"todo {task_id} not found for user {user_id}")
            updated = self._fetch_tasks(cur, user_id, [int(task_id)])
        except sqlite3.Error as exc:
            raise StoreError(f"update failed: {exc}") from exc
        finally:
            conn.close()

        for task in updated:
            self.feed.publish(user_id, Topic.TODOS, ChangeEvent.updated(task))

    def delete(self, user_id: str, task_id: int) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("DELETE FROM todos WHERE id = ? AND user_id = ?", (int(task_id), user_id))
            conn.commit()
            removed = cur.rowcount == 1
        except sqlite3.Error as exc:
            raise StoreError(f"delete failed: {exc}") from exc
        finally:
            conn.close()

        if removed:
            logger.debug("Todo deleted id=%s user=%s", task_id, user_id)
            self.feed.publish(user_id, Topic.TODOS, ChangeEvent.deleted(int(task_id), user_id))

    def query(self, flt: TaskFilter) -> list[Task]:
        """Todos owned by flt.user_id, oldest first."""
        where = ["user_id = ?"]
        params: list[Any] = [flt.user_id]

        if flt.completed is not None:
            where.append("completed = ?")
            params.append(int(flt.completed))
        if flt.recurring is not None:
            where.append("recurring = ?")
            params.append(int(flt.recurring))
        if flt.ids:
            where.append(f"id IN ({','.join('?' for _ in flt.ids)})")
            params.extend(int(i) for i in flt.ids)

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                f"SELECT * FROM todos WHERE {' AND '.join(where)} ORDER BY created_at ASC, id ASC",
                params,
            )
            return [self._row_to_task(r) for r in cur.fetchall()]
        except sqlite3.Error as exc:
            raise StoreError(f"query failed: {exc}") from exc
        finally:
            conn.close()

    def bulk_reset_recurring(self, user_id: str) -> int:
        """
        Clear the completion flag on every recurring todo of the user.

        Idempotent: rows that are already incomplete are not touched, so a second
        call (e.g. from a racing session) affects nothing.
        Returns the number of affected rows.
        """
        if not user_id:
            raise StoreError("user_id is required")

        now = time.time()
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            cur.execute(
                "SELECT id FROM todos WHERE user_id = ? AND recurring = 1 AND completed = 1",
                (user_id,),
            )
            ids = [int(r["id"]) for r in cur.fetchall()]
            cur.execute(
                """
                UPDATE todos
                SET completed = 0, updated_at = ?
                WHERE user_id = ?
                  AND recurring = 1
                  AND completed = 1
                """,
                (now, user_id),
            )
            count = int(cur.rowcount)
            conn.commit()
            reset = self._fetch_tasks(cur, user_id, ids)
        except sqlite3.Error as exc:
            with contextlib.suppress(sqlite3.Error):
                conn.rollback()
            raise StoreError(f"bulk reset failed: {exc}") from exc
        finally:
            conn.close()

        logger.info("Reset %d recurring todos for user=%s", count, user_id)
        for task in reset:
            self.feed.publish(user_id, Topic.TODOS, ChangeEvent.updated(task))
        return count

    def subscribe(self, user_id: str, topic: Topic = Topic.TODOS) -> FeedSubscription:
        if not user_id:
            raise StoreError("user_id is required")
        return self.feed.subscribe(user_id, topic)

    # ---- completion records ----

    def record_completion(
        self,
        user_id: str,
        day: date,
        *,
        completed_count: int,
        total_count: int,
    ) -> CompletionRecord | None:
        """
        Store the completion snapshot for one day.

        First writer wins per (user_id, day): a retried or racing rollover must not
        overwrite the snapshot taken before the reset. Returns None if a row exists.
        """
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT OR IGNORE INTO todo_completions(user_id, day, completed_count, total_count, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user_id, day.isoformat(), max(0, int(completed_count)), max(0, int(total_count)), time.time()),
            )
            conn.commit()
            if cur.rowcount != 1 or cur.lastrowid is None:
                return None
            record = CompletionRecord(
                id=int(cur.lastrowid),
                user_id=user_id,
                day=day,
                completed_count=max(0, int(completed_count)),
                total_count=max(0, int(total_count)),
            )
        except sqlite3.Error as exc:
            raise StoreError(f"record completion failed: {exc}") from exc
        finally:
            conn.close()

        self.feed.publish(user_id, Topic.COMPLETIONS, ChangeEvent.inserted(record))
        return record

    def query_completions(self, user_id: str, start: date, end: date) -> list[CompletionRecord]:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT *
                FROM todo_completions
                WHERE user_id = ?
                  AND day >= ?
                  AND day <= ?
                ORDER BY day ASC, id ASC
                """,
                (user_id, start.isoformat(), end.isoformat()),
            )
            return [self._row_to_completion(r) for r in cur.fetchall()]
        except sqlite3.Error as exc:
            raise StoreError(f"completion query failed: {exc}") from exc
        finally:
            conn.close()
