from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Literal, Optional, TypedDict

AssignmentStatus = Literal["not-started", "in-progress", "completed"]
AssignmentPriority = Literal["low", "medium", "high"]

STATUSES = ("not-started", "in-progress", "completed")
PRIORITIES = ("low", "medium", "high")

DEADLINE = "deadline"


# PUBLIC_INTERFACE
class AssignmentEntity(TypedDict):
    """
    A lightweight domain model representing a student's assignment.

    Fields:
    - id: Opaque string identifier
    - user_id: Owning user identity
    - title: Short title (1..200 chars, trimmed on input via schemas)
    - description / subject: Free text, empty string when absent
    - due_date: Timezone-aware UTC due instant
    - status / priority: One of the enumerated values
    - google_event_id: Id of the mirrored Google Calendar event, if any
    - sync_with_calendar: Whether the mirrored event follows later updates
    - created_at / updated_at: UTC timestamps
    """

    id: str
    user_id: str
    title: str
    description: str
    subject: str
    due_date: datetime
    status: AssignmentStatus
    priority: AssignmentPriority
    google_event_id: Optional[str]
    sync_with_calendar: bool
    created_at: datetime
    updated_at: datetime


# PUBLIC_INTERFACE
class NotificationEntity(TypedDict):
    """
    A notification shown to a user. Deadline notifications reference the
    assignment that produced them; the reference is cleared when the
    assignment is deleted.
    """

    id: str
    user_id: str
    assignment_id: Optional[str]
    message: str
    type: str
    read: bool
    created_at: datetime


# PUBLIC_INTERFACE
class UserEntity(TypedDict):
    """An authenticated user together with their Google Calendar link."""

    id: str
    email: str
    name: Optional[str]
    google_access_token: Optional[str]
    google_refresh_token: Optional[str]
    google_calendar_id: Optional[str]
    calendar_sync_enabled: bool
    created_at: datetime


RefreshCallback = Callable[[str], Awaitable[None]]


# PUBLIC_INTERFACE
@dataclass
class CalendarCredentials:
    """
    A user's Google Calendar credential pair, passed by reference to the
    calendar client. The client overwrites access_token when it refreshes and
    then awaits on_refresh so the new token can be persisted.
    """

    user_id: str
    access_token: Optional[str]
    refresh_token: Optional[str]
    calendar_id: str = "primary"
    sync_enabled: bool = False
    on_refresh: Optional[RefreshCallback] = field(default=None, repr=False, compare=False)

    @property
    def usable(self) -> bool:
        return self.sync_enabled and bool(self.access_token)
