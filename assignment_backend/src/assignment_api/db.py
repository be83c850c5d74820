from __future__ import annotations

import functools
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Generator, List, Mapping, Optional, Tuple, TypeVar

from fastapi.concurrency import run_in_threadpool

from .dates import utcnow
from .models import DEADLINE, AssignmentEntity, NotificationEntity, UserEntity
from .repositories import AssignmentQuery, Repository, new_id

_ASSIGNMENT_COLUMNS = (
    "title",
    "description",
    "subject",
    "due_date",
    "status",
    "priority",
    "google_event_id",
    "sync_with_calendar",
)
_USER_COLUMNS = (
    "email",
    "name",
    "google_access_token",
    "google_refresh_token",
    "google_calendar_id",
    "calendar_sync_enabled",
)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL DEFAULT '',
    name TEXT NULL,
    google_access_token TEXT NULL,
    google_refresh_token TEXT NULL,
    google_calendar_id TEXT NULL,
    calendar_sync_enabled INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS assignments (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    subject TEXT NOT NULL DEFAULT '',
    due_date TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'not-started',
    priority TEXT NOT NULL DEFAULT 'medium',
    google_event_id TEXT NULL,
    sync_with_calendar INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_assignments_user_due ON assignments(user_id, due_date);
CREATE TABLE IF NOT EXISTS notifications (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    assignment_id TEXT NULL REFERENCES assignments(id) ON DELETE SET NULL,
    message TEXT NOT NULL,
    type TEXT NOT NULL DEFAULT 'deadline',
    read INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_notifications_assignment ON notifications(assignment_id);
"""


def _fmt(dt: Optional[datetime]) -> Optional[str]:
    # Fixed-width UTC text so that string order equals time order
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _parse(s: Optional[str]) -> Optional[datetime]:
    if s is None:
        return None
    return datetime.fromisoformat(s)


def _to_db(value: Any) -> Any:
    if isinstance(value, datetime):
        return _fmt(value)
    if isinstance(value, bool):
        return 1 if value else 0
    return value


T = TypeVar("T")


def _in_threadpool(fn: Callable[..., T]) -> Callable[..., Awaitable[T]]:
    """Expose a blocking repository method as a coroutine run in the threadpool."""

    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        return await run_in_threadpool(fn, *args, **kwargs)

    return wrapper


class SQLiteRepository(Repository):
    """
    Lightweight SQLite repository implementing the Repository interface.
    A connection is opened per operation and used only from the threadpool.
    """

    def __init__(self, db_path: str) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._init_db()

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.executescript(_SCHEMA)

    def _row_to_assignment(self, row: sqlite3.Row) -> AssignmentEntity:
        return {
            "id": str(row["id"]),
            "user_id": str(row["user_id"]),
            "title": str(row["title"]),
            "description": row["description"] or "",
            "subject": row["subject"] or "",
            "due_date": _parse(row["due_date"]),  # type: ignore[typeddict-item]
            "status": row["status"],
            "priority": row["priority"],
            "google_event_id": row["google_event_id"],
            "sync_with_calendar": bool(row["sync_with_calendar"]),
            "created_at": _parse(row["created_at"]),  # type: ignore[typeddict-item]
            "updated_at": _parse(row["updated_at"]),  # type: ignore[typeddict-item]
        }

    def _row_to_notification(self, row: sqlite3.Row) -> NotificationEntity:
        return {
            "id": str(row["id"]),
            "user_id": str(row["user_id"]),
            "assignment_id": row["assignment_id"],
            "message": str(row["message"]),
            "type": str(row["type"]),
            "read": bool(row["read"]),
            "created_at": _parse(row["created_at"]),  # type: ignore[typeddict-item]
        }

    def _row_to_user(self, row: sqlite3.Row) -> UserEntity:
        return {
            "id": str(row["id"]),
            "email": row["email"] or "",
            "name": row["name"],
            "google_access_token": row["google_access_token"],
            "google_refresh_token": row["google_refresh_token"],
            "google_calendar_id": row["google_calendar_id"],
            "calendar_sync_enabled": bool(row["calendar_sync_enabled"]),
            "created_at": _parse(row["created_at"]),  # type: ignore[typeddict-item]
        }

    def _where(self, q: AssignmentQuery) -> Tuple[str, list]:
        clauses = ["user_id = ?"]
        params: list = [q.user_id]
        if q.status is not None:
            clauses.append("status = ?")
            params.append(q.status)
        if q.exclude_status is not None:
            clauses.append("status != ?")
            params.append(q.exclude_status)
        if q.priority is not None:
            clauses.append("priority = ?")
            params.append(q.priority)
        if q.subject:
            clauses.append("subject LIKE ?")
            params.append(f"%{q.subject}%")
        if q.due_from is not None:
            clauses.append("due_date >= ?")
            params.append(_fmt(q.due_from))
        if q.due_before is not None:
            clauses.append("due_date < ?")
            params.append(_fmt(q.due_before))
        if q.due_until is not None:
            clauses.append("due_date <= ?")
            params.append(_fmt(q.due_until))
        return "WHERE " + " AND ".join(clauses), params

    # Assignments

    @_in_threadpool
    def create_assignment(self, fields: Mapping[str, Any]) -> AssignmentEntity:
        now = _fmt(utcnow())
        assignment_id = new_id()
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO assignments (id, user_id, title, description, subject, due_date,
                    status, priority, google_event_id, sync_with_calendar, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    assignment_id,
                    fields["user_id"],
                    fields["title"],
                    fields.get("description") or "",
                    fields.get("subject") or "",
                    _fmt(fields["due_date"]),
                    fields.get("status", "not-started"),
                    fields.get("priority", "medium"),
                    fields.get("google_event_id"),
                    1 if fields.get("sync_with_calendar") else 0,
                    now,
                    now,
                ),
            )
            row = conn.execute("SELECT * FROM assignments WHERE id = ?", (assignment_id,)).fetchone()
            assert row is not None
            return self._row_to_assignment(row)

    @_in_threadpool
    def find_assignment(self, assignment_id: str) -> Optional[AssignmentEntity]:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM assignments WHERE id = ?", (assignment_id,)).fetchone()
            return self._row_to_assignment(row) if row else None

    @_in_threadpool
    def update_assignment(self, assignment_id: str, fields: Mapping[str, Any]) -> Optional[AssignmentEntity]:
        columns = [k for k in fields if k in _ASSIGNMENT_COLUMNS]
        set_sql = ", ".join(f"{c} = ?" for c in [*columns, "updated_at"])
        params = [_to_db(fields[c]) for c in columns] + [_fmt(utcnow()), assignment_id]
        with self._conn() as conn:
            cur = conn.execute(f"UPDATE assignments SET {set_sql} WHERE id = ?", params)
            if cur.rowcount == 0:
                return None
            row = conn.execute("SELECT * FROM assignments WHERE id = ?", (assignment_id,)).fetchone()
            assert row is not None
            return self._row_to_assignment(row)

    @_in_threadpool
    def delete_assignment(self, assignment_id: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute("DELETE FROM assignments WHERE id = ?", (assignment_id,))
            return cur.rowcount > 0

    @_in_threadpool
    def list_assignments(self, query: AssignmentQuery) -> Tuple[List[AssignmentEntity], int]:
        where_sql, params = self._where(query)
        page_sql = ""
        page_params: list = []
        if query.limit is not None:
            page_sql = "LIMIT ? OFFSET ?"
            page_params = [max(query.limit, 0), max(query.offset, 0)]
        elif query.offset:
            page_sql = "LIMIT -1 OFFSET ?"
            page_params = [max(query.offset, 0)]
        with self._conn() as conn:
            count_row = conn.execute(f"SELECT COUNT(*) AS cnt FROM assignments {where_sql}", params).fetchone()
            total = int(count_row["cnt"]) if count_row else 0
            rows = conn.execute(
                f"SELECT * FROM assignments {where_sql} ORDER BY due_date ASC {page_sql}",
                [*params, *page_params],
            ).fetchall()
            return [self._row_to_assignment(r) for r in rows], total

    @_in_threadpool
    def count_assignments(self, query: AssignmentQuery) -> int:
        where_sql, params = self._where(query)
        with self._conn() as conn:
            row = conn.execute(f"SELECT COUNT(*) AS cnt FROM assignments {where_sql}", params).fetchone()
            return int(row["cnt"]) if row else 0

    @_in_threadpool
    def clear_calendar_event_ids(self, user_id: str) -> int:
        with self._conn() as conn:
            cur = conn.execute(
                "UPDATE assignments SET google_event_id = NULL, sync_with_calendar = 0 "
                "WHERE user_id = ? AND google_event_id IS NOT NULL",
                (user_id,),
            )
            return cur.rowcount

    # Notifications

    @_in_threadpool
    def find_notification(
        self, user_id: str, assignment_id: str, type_: str = DEADLINE
    ) -> Optional[NotificationEntity]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM notifications WHERE user_id = ? AND assignment_id = ? AND type = ? LIMIT 1",
                (user_id, assignment_id, type_),
            ).fetchone()
            return self._row_to_notification(row) if row else None

    @_in_threadpool
    def get_notification(self, notification_id: str) -> Optional[NotificationEntity]:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM notifications WHERE id = ?", (notification_id,)).fetchone()
            return self._row_to_notification(row) if row else None

    @_in_threadpool
    def list_notifications(self, user_id: str, type_: Optional[str] = None) -> List[NotificationEntity]:
        sql = "SELECT * FROM notifications WHERE user_id = ?"
        params: list = [user_id]
        if type_ is not None:
            sql += " AND type = ?"
            params.append(type_)
        sql += " ORDER BY created_at DESC, rowid DESC"
        with self._conn() as conn:
            return [self._row_to_notification(r) for r in conn.execute(sql, params).fetchall()]

    @_in_threadpool
    def create_notification(self, fields: Mapping[str, Any]) -> NotificationEntity:
        notification_id = new_id()
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO notifications (id, user_id, assignment_id, message, type, read, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    notification_id,
                    fields["user_id"],
                    fields.get("assignment_id"),
                    fields["message"],
                    fields.get("type", DEADLINE),
                    1 if fields.get("read") else 0,
                    _fmt(utcnow()),
                ),
            )
            row = conn.execute("SELECT * FROM notifications WHERE id = ?", (notification_id,)).fetchone()
            assert row is not None
            return self._row_to_notification(row)

    @_in_threadpool
    def update_notification(self, notification_id: str, fields: Mapping[str, Any]) -> Optional[NotificationEntity]:
        columns = [k for k in ("message", "read", "assignment_id") if k in fields]
        with self._conn() as conn:
            if columns:
                conn.execute(
                    f"UPDATE notifications SET {', '.join(f'{c} = ?' for c in columns)} WHERE id = ?",
                    [*(_to_db(fields[c]) for c in columns), notification_id],
                )
            row = conn.execute("SELECT * FROM notifications WHERE id = ?", (notification_id,)).fetchone()
            return self._row_to_notification(row) if row else None

    @_in_threadpool
    def delete_notification(self, notification_id: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute("DELETE FROM notifications WHERE id = ?", (notification_id,))
            return cur.rowcount > 0

    # Users

    @_in_threadpool
    def get_user(self, user_id: str) -> Optional[UserEntity]:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return self._row_to_user(row) if row else None

    @_in_threadpool
    def get_or_create_user(self, user_id: str, email: str = "", name: Optional[str] = None) -> UserEntity:
        with self._conn() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO users (id, email, name, created_at) VALUES (?, ?, ?, ?)",
                (user_id, email, name, _fmt(utcnow())),
            )
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            assert row is not None
            return self._row_to_user(row)

    @_in_threadpool
    def update_user(self, user_id: str, fields: Mapping[str, Any]) -> Optional[UserEntity]:
        columns = [k for k in fields if k in _USER_COLUMNS]
        with self._conn() as conn:
            if columns:
                conn.execute(
                    f"UPDATE users SET {', '.join(f'{c} = ?' for c in columns)} WHERE id = ?",
                    [*(_to_db(fields[c]) for c in columns), user_id],
                )
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return self._row_to_user(row) if row else None
