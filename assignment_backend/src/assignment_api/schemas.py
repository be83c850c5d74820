from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import AssignmentPriority, AssignmentStatus

# Shared type for incoming due_date which can be a date, datetime, or ISO8601 string
DueDateInput = Union[date, datetime, str]
DueRange = Literal["today", "this-week", "this-month", "overdue"]


def _parse_due_date(value: Optional[DueDateInput]) -> Optional[datetime]:
    """
    Internal helper to normalize due_date input into an aware UTC datetime.
    - If value is a string, parse via datetime.fromisoformat (a trailing 'Z' is accepted);
      a bare date is set to 00:00.
    - If value is a date (not datetime), convert to datetime at 00:00.
    - Naive datetimes are taken to be UTC; aware ones are converted to UTC.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day, 0, 0, 0)
    elif isinstance(value, str):
        s = value.strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(s)
        except ValueError:
            try:
                d = date.fromisoformat(s)
            except ValueError as e:
                raise ValueError(
                    "Invalid due_date format. Use ISO8601 date or datetime string "
                    "(e.g., '2025-01-31' or '2025-01-31T13:45:00Z')."
                ) from e
            parsed = datetime(d.year, d.month, d.day, 0, 0, 0)
    else:
        raise ValueError("Invalid type for due_date; expected date, datetime, or ISO8601 string.")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _clean_title(v: str) -> str:
    s = v.strip()
    if not (1 <= len(s) <= 200):
        raise ValueError("title length must be between 1 and 200 characters")
    return s


# PUBLIC_INTERFACE
class AssignmentCreate(BaseModel):
    """
    Schema for creating a new assignment. New assignments always start as 'not-started'.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Lab report 3",
                "description": "Write up the titration experiment",
                "subject": "Chemistry",
                "due_date": "2025-02-01T17:00:00Z",
                "priority": "high",
            }
        }
    )

    title: str = Field(..., description="Short title for the assignment", min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    subject: Optional[str] = Field(default=None, description="Optional subject or course name")
    due_date: datetime = Field(
        ...,
        description="Due date/time. Accepts ISO8601 date or datetime; dates are set to 00:00 UTC",
    )
    priority: AssignmentPriority = Field(default="medium", description="low, medium or high")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _clean_title(v)

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[DueDateInput]) -> Optional[datetime]:
        if v is None:
            raise ValueError("due_date is required")
        return _parse_due_date(v)


# PUBLIC_INTERFACE
class AssignmentUpdate(BaseModel):
    """
    Schema for partially updating an assignment.

    Keys absent from the request leave the stored value unchanged. An explicit
    null clears description and subject to "", and is rejected for the
    required fields (title, due_date, status, priority).
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "in-progress",
                "due_date": "2025-02-02T09:30:00Z",
            }
        }
    )

    title: Optional[str] = Field(default=None, description="Short title for the assignment", min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, description="Detailed description")
    subject: Optional[str] = Field(default=None, description="Subject or course name")
    due_date: Optional[datetime] = Field(default=None, description="Due date/time as ISO8601")
    status: Optional[AssignmentStatus] = Field(default=None, description="not-started, in-progress or completed")
    priority: Optional[AssignmentPriority] = Field(default=None, description="low, medium or high")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> str:
        if v is None:
            raise ValueError("title cannot be null")
        return _clean_title(v)

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[DueDateInput]) -> Optional[datetime]:
        if v is None:
            raise ValueError("due_date cannot be null")
        return _parse_due_date(v)

    @field_validator("status", "priority")
    @classmethod
    def reject_null(cls, v: Optional[str]) -> str:
        if v is None:
            raise ValueError("value cannot be null")
        return v

    def changes(self) -> Dict[str, Any]:
        """Return only the fields present in the request, with nulls cleared to ''."""
        fields: Dict[str, Any] = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if name in {"description", "subject"} and value is None:
                value = ""
            fields[name] = value
        return fields


# PUBLIC_INTERFACE
class AssignmentOut(BaseModel):
    """
    Schema returned by the API for an assignment.
    """

    id: str = Field(..., description="Unique identifier of the assignment")
    user_id: str = Field(..., description="Owning user")
    title: str
    description: str
    subject: str
    due_date: datetime
    status: AssignmentStatus
    priority: AssignmentPriority
    google_event_id: Optional[str] = Field(default=None, description="Mirrored calendar event id")
    sync_with_calendar: bool = False
    created_at: datetime
    updated_at: datetime


class AssignmentRef(BaseModel):
    id: str
    title: str
    due_date: datetime


# PUBLIC_INTERFACE
class NotificationOut(BaseModel):
    """A notification with a compact summary of its assignment, if it still exists."""

    id: str
    user_id: str
    assignment_id: Optional[str] = None
    message: str
    type: str
    read: bool
    created_at: datetime
    assignment: Optional[AssignmentRef] = None


class NotificationUpdate(BaseModel):
    read: bool = Field(..., description="Read flag")


class GeneratedNotifications(BaseModel):
    message: str
    created: int
    notifications: List[NotificationOut]


class MessageOut(BaseModel):
    message: str
    success: bool = True


class StatusCounts(BaseModel):
    not_started: int
    in_progress: int
    completed: int


class UpcomingAssignment(BaseModel):
    id: str
    title: str
    subject: str
    due_date: datetime
    priority: AssignmentPriority
    status: AssignmentStatus


# PUBLIC_INTERFACE
class AssignmentSummary(BaseModel):
    """Aggregate counts used by the dashboard and the chat assistant."""

    total: int
    by_status: StatusCounts
    overdue: int
    due_today: int
    due_this_week: int
    upcoming: List[UpcomingAssignment]


class CalendarSyncRequest(BaseModel):
    assignment_id: str = Field(..., min_length=1, description="Assignment to mirror")


class CalendarSyncOut(BaseModel):
    success: bool = True
    message: str
    event_id: Optional[str] = None


class CalendarStatusOut(BaseModel):
    connected: bool
    sync_enabled: bool


class AuthUrlOut(BaseModel):
    auth_url: str


class AdviceRequest(BaseModel):
    context: Optional[str] = Field(default=None, max_length=1000, description="Anything else the student wants considered")


class AdviceOut(BaseModel):
    success: bool = True
    advice: str


class QuestionRequest(BaseModel):
    question: str = Field(..., min_length=1, max_length=2000, description="Free-form question about the student's assignments")


class AnswerOut(BaseModel):
    success: bool = True
    answer: str
