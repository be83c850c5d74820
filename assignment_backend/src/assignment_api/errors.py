from __future__ import annotations

from typing import Any, Optional


class AssignmentTrackerError(Exception):
    """Base class for errors surfaced through the HTTP layer."""

    status_code: int = 500
    default_message: str = "Internal error"

    def __init__(self, message: Optional[str] = None, detail: Any = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class NotFoundError(AssignmentTrackerError):
    status_code = 404
    default_message = "Not found"


class ForbiddenError(AssignmentTrackerError):
    status_code = 403
    default_message = "Forbidden"


class CalendarSyncError(AssignmentTrackerError):
    """A calendar operation was rejected before contacting Google."""

    status_code = 400
    default_message = "Calendar sync failed"


class CalendarNotEnabledError(CalendarSyncError):
    default_message = "Calendar sync is not enabled"


class CalendarNotSyncedError(CalendarSyncError):
    default_message = "Assignment is not synced with calendar"


class CalendarAlreadySyncedError(CalendarSyncError):
    default_message = "Assignment is already synced with calendar"


class CalendarAPIError(AssignmentTrackerError):
    """Google Calendar or its token endpoint returned an error."""

    status_code = 502
    default_message = "Calendar service request failed"


class CalendarAuthError(AssignmentTrackerError):
    """The OAuth callback could not be tied to the user who started it."""

    status_code = 400
    default_message = "Calendar connection failed"


class AIServiceError(AssignmentTrackerError):
    """The language model API returned an error or an unusable reply."""

    status_code = 502
    default_message = "AI service request failed"


class AssistantNotConfiguredError(AssignmentTrackerError):
    status_code = 503
    default_message = "AI assistant is not configured"


class EnrichmentError(AIServiceError):
    default_message = "Assignment enrichment failed"
