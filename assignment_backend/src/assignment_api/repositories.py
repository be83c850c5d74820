from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from threading import RLock
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .dates import utcnow
from .models import (
    DEADLINE,
    AssignmentEntity,
    CalendarCredentials,
    NotificationEntity,
    UserEntity,
)
from .settings import get_settings


@dataclass(frozen=True)
class AssignmentQuery:
    """
    Filters for listing and counting a user's assignments.

    Due-date bounds: due_from is inclusive, due_before exclusive, due_until inclusive.
    """
    user_id: str
    status: Optional[str] = None
    exclude_status: Optional[str] = None
    priority: Optional[str] = None
    subject: Optional[str] = None
    due_from: Optional[datetime] = None
    due_before: Optional[datetime] = None
    due_until: Optional[datetime] = None
    limit: Optional[int] = None
    offset: int = 0

    def matches(self, a: AssignmentEntity) -> bool:
        if a["user_id"] != self.user_id:
            return False
        if self.status is not None and a["status"] != self.status:
            return False
        if self.exclude_status is not None and a["status"] == self.exclude_status:
            return False
        if self.priority is not None and a["priority"] != self.priority:
            return False
        if self.subject and self.subject.lower() not in (a["subject"] or "").lower():
            return False
        if self.due_from is not None and a["due_date"] < self.due_from:
            return False
        if self.due_before is not None and a["due_date"] >= self.due_before:
            return False
        if self.due_until is not None and a["due_date"] > self.due_until:
            return False
        return True


def new_id() -> str:
    return uuid.uuid4().hex


# PUBLIC_INTERFACE
class Repository(ABC):
    """Abstract persistence contract for assignments, notifications and users."""

    # Assignments

    @abstractmethod
    async def create_assignment(self, fields: Mapping[str, Any]) -> AssignmentEntity:
        """Create and return a new AssignmentEntity from a complete field mapping."""

    @abstractmethod
    async def find_assignment(self, assignment_id: str) -> Optional[AssignmentEntity]:
        """Return an AssignmentEntity by id, or None if not found."""

    @abstractmethod
    async def update_assignment(self, assignment_id: str, fields: Mapping[str, Any]) -> Optional[AssignmentEntity]:
        """Apply the given fields. Return the updated entity or None if not found."""

    @abstractmethod
    async def delete_assignment(self, assignment_id: str) -> bool:
        """
        Delete an assignment. Notifications that referenced it are kept with
        their assignment reference cleared. Return False if not found.
        """

    @abstractmethod
    async def list_assignments(self, query: AssignmentQuery) -> Tuple[List[AssignmentEntity], int]:
        """Return a page of matching assignments ordered by due date, and the total count."""

    @abstractmethod
    async def count_assignments(self, query: AssignmentQuery) -> int:
        """Return the number of assignments matching query (pagination ignored)."""

    @abstractmethod
    async def clear_calendar_event_ids(self, user_id: str) -> int:
        """Drop the mirrored event ids of a user's assignments and turn their sync off. Return rows touched."""

    # Notifications

    @abstractmethod
    async def find_notification(
        self, user_id: str, assignment_id: str, type_: str = DEADLINE
    ) -> Optional[NotificationEntity]:
        """Return the notification of the given type for (user, assignment), if any."""

    @abstractmethod
    async def get_notification(self, notification_id: str) -> Optional[NotificationEntity]:
        """Return a NotificationEntity by id, or None if not found."""

    @abstractmethod
    async def list_notifications(self, user_id: str, type_: Optional[str] = None) -> List[NotificationEntity]:
        """Return a user's notifications, newest first."""

    @abstractmethod
    async def create_notification(self, fields: Mapping[str, Any]) -> NotificationEntity:
        """Create a notification. `read` defaults to False."""

    @abstractmethod
    async def update_notification(self, notification_id: str, fields: Mapping[str, Any]) -> Optional[NotificationEntity]:
        """Apply the given fields. Return the updated entity or None if not found."""

    @abstractmethod
    async def delete_notification(self, notification_id: str) -> bool:
        """Delete a notification by id. Return False if not found."""

    # Users

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserEntity]:
        """Return a user by id, or None."""

    @abstractmethod
    async def get_or_create_user(self, user_id: str, email: str = "", name: Optional[str] = None) -> UserEntity:
        """Return the user, creating an unlinked one on first sight."""

    @abstractmethod
    async def update_user(self, user_id: str, fields: Mapping[str, Any]) -> Optional[UserEntity]:
        """Apply the given fields to a user. Return the updated entity or None if not found."""

    async def get_user_calendar_credentials(self, user_id: str) -> Optional[CalendarCredentials]:
        """
        Return the user's calendar credentials, or None when the user does not
        exist or has never linked a calendar.
        """
        user = await self.get_user(user_id)
        if user is None or not (user["google_access_token"] or user["google_refresh_token"]):
            return None
        return CalendarCredentials(
            user_id=user_id,
            access_token=user["google_access_token"],
            refresh_token=user["google_refresh_token"],
            calendar_id=user["google_calendar_id"] or "primary",
            sync_enabled=bool(user["calendar_sync_enabled"]),
        )

    async def set_user_access_token(self, user_id: str, token: str) -> None:
        """Persist a refreshed access token. The refresh token is left untouched."""
        await self.update_user(user_id, {"google_access_token": token})


class InMemoryRepository(Repository):
    """
    Thread-safe in-memory repository suitable for testing and default runtime.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._assignments: Dict[str, AssignmentEntity] = {}
        self._notifications: Dict[str, NotificationEntity] = {}
        self._users: Dict[str, UserEntity] = {}

    def _now(self) -> datetime:
        return utcnow()

    async def create_assignment(self, fields: Mapping[str, Any]) -> AssignmentEntity:
        now = self._now()
        entity: AssignmentEntity = {
            "id": new_id(),
            "user_id": fields["user_id"],
            "title": fields["title"],
            "description": fields.get("description") or "",
            "subject": fields.get("subject") or "",
            "due_date": fields["due_date"],
            "status": fields.get("status", "not-started"),
            "priority": fields.get("priority", "medium"),
            "google_event_id": fields.get("google_event_id"),
            "sync_with_calendar": bool(fields.get("sync_with_calendar", False)),
            "created_at": now,
            "updated_at": now,
        }
        with self._lock:
            self._assignments[entity["id"]] = entity
        return entity.copy()  # type: ignore[return-value]

    async def find_assignment(self, assignment_id: str) -> Optional[AssignmentEntity]:
        with self._lock:
            item = self._assignments.get(assignment_id)
            return None if item is None else item.copy()  # type: ignore[return-value]

    async def update_assignment(self, assignment_id: str, fields: Mapping[str, Any]) -> Optional[AssignmentEntity]:
        with self._lock:
            existing = self._assignments.get(assignment_id)
            if existing is None:
                return None
            updated = existing.copy()
            for key, value in fields.items():
                if key in {"id", "user_id", "created_at"}:
                    continue
                updated[key] = value  # type: ignore[literal-required]
            updated["updated_at"] = self._now()
            self._assignments[assignment_id] = updated  # type: ignore[assignment]
            return updated.copy()  # type: ignore[return-value]

    async def delete_assignment(self, assignment_id: str) -> bool:
        with self._lock:
            if self._assignments.pop(assignment_id, None) is None:
                return False
            for n in self._notifications.values():
                if n["assignment_id"] == assignment_id:
                    n["assignment_id"] = None
            return True

    def _select(self, query: AssignmentQuery) -> List[AssignmentEntity]:
        items = [a for a in self._assignments.values() if query.matches(a)]
        return sorted(items, key=lambda a: a["due_date"])

    async def list_assignments(self, query: AssignmentQuery) -> Tuple[List[AssignmentEntity], int]:
        with self._lock:
            items = self._select(query)
            total = len(items)
            start = max(query.offset, 0)
            end = None if query.limit is None else start + max(query.limit, 0)
            return [a.copy() for a in items[start:end]], total  # type: ignore[misc]

    async def count_assignments(self, query: AssignmentQuery) -> int:
        with self._lock:
            return len(self._select(query))

    async def clear_calendar_event_ids(self, user_id: str) -> int:
        touched = 0
        with self._lock:
            for a in self._assignments.values():
                if a["user_id"] == user_id and a["google_event_id"] is not None:
                    a["google_event_id"] = None
                    a["sync_with_calendar"] = False
                    touched += 1
        return touched

    async def find_notification(
        self, user_id: str, assignment_id: str, type_: str = DEADLINE
    ) -> Optional[NotificationEntity]:
        with self._lock:
            for n in self._notifications.values():
                if n["user_id"] == user_id and n["assignment_id"] == assignment_id and n["type"] == type_:
                    return n.copy()  # type: ignore[return-value]
        return None

    async def get_notification(self, notification_id: str) -> Optional[NotificationEntity]:
        with self._lock:
            item = self._notifications.get(notification_id)
            return None if item is None else item.copy()  # type: ignore[return-value]

    async def list_notifications(self, user_id: str, type_: Optional[str] = None) -> List[NotificationEntity]:
        with self._lock:
            items = [
                n.copy()
                for n in self._notifications.values()
                if n["user_id"] == user_id and (type_ is None or n["type"] == type_)
            ]
        # dict preserves insertion order, so reversing keeps same-timestamp rows newest first
        items.reverse()
        return sorted(items, key=lambda n: n["created_at"], reverse=True)  # type: ignore[return-value]

    async def create_notification(self, fields: Mapping[str, Any]) -> NotificationEntity:
        entity: NotificationEntity = {
            "id": new_id(),
            "user_id": fields["user_id"],
            "assignment_id": fields.get("assignment_id"),
            "message": fields["message"],
            "type": fields.get("type", DEADLINE),
            "read": bool(fields.get("read", False)),
            "created_at": self._now(),
        }
        with self._lock:
            self._notifications[entity["id"]] = entity
        return entity.copy()  # type: ignore[return-value]

    async def update_notification(self, notification_id: str, fields: Mapping[str, Any]) -> Optional[NotificationEntity]:
        with self._lock:
            existing = self._notifications.get(notification_id)
            if existing is None:
                return None
            for key in ("message", "read", "assignment_id"):
                if key in fields:
                    existing[key] = fields[key]  # type: ignore[literal-required]
            return existing.copy()  # type: ignore[return-value]

    async def delete_notification(self, notification_id: str) -> bool:
        with self._lock:
            return self._notifications.pop(notification_id, None) is not None

    async def get_user(self, user_id: str) -> Optional[UserEntity]:
        with self._lock:
            item = self._users.get(user_id)
            return None if item is None else item.copy()  # type: ignore[return-value]

    async def get_or_create_user(self, user_id: str, email: str = "", name: Optional[str] = None) -> UserEntity:
        with self._lock:
            existing = self._users.get(user_id)
            if existing is None:
                existing = {
                    "id": user_id,
                    "email": email,
                    "name": name,
                    "google_access_token": None,
                    "google_refresh_token": None,
                    "google_calendar_id": None,
                    "calendar_sync_enabled": False,
                    "created_at": self._now(),
                }
                self._users[user_id] = existing
            return existing.copy()  # type: ignore[return-value]

    async def update_user(self, user_id: str, fields: Mapping[str, Any]) -> Optional[UserEntity]:
        with self._lock:
            existing = self._users.get(user_id)
            if existing is None:
                return None
            for key, value in fields.items():
                if key in {"id", "created_at"}:
                    continue
                existing[key] = value  # type: ignore[literal-required]
            return existing.copy()  # type: ignore[return-value]


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_repository() -> Repository:
    """
    Return the process-wide repository configured by settings.
    - memory: InMemoryRepository
    - sqlite: SQLiteRepository
    """
    settings = get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteRepository

        return SQLiteRepository(settings.sqlite_db_path)
    return InMemoryRepository()
