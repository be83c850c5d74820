from __future__ import annotations

from fastapi import Depends

from .assistant import StudyAssistant, get_assistant
from .enrichment import AssignmentEnricher, get_enricher
from .google_calendar import CalendarClient, GoogleCalendarClient
from .repositories import Repository, get_repository
from .services import AssignmentService
from .settings import get_settings


def get_calendar_client() -> CalendarClient:
    settings = get_settings()
    return GoogleCalendarClient(settings.google_client_id, settings.google_client_secret)


def get_assignment_enricher() -> AssignmentEnricher:
    return get_enricher(get_settings())


def get_study_assistant() -> StudyAssistant:
    return get_assistant(get_settings())


# PUBLIC_INTERFACE
def get_service(
    repo: Repository = Depends(get_repository),
    calendar_client: CalendarClient = Depends(get_calendar_client),
    enricher: AssignmentEnricher = Depends(get_assignment_enricher),
    assistant: StudyAssistant = Depends(get_study_assistant),
) -> AssignmentService:
    """Build the request's AssignmentService from the injected collaborators."""
    settings = get_settings()
    return AssignmentService(
        repo,
        calendar_client,
        enricher=enricher,
        assistant=assistant,
        window_days=settings.notification_window_days,
        clear_notification_on_complete=settings.clear_notification_on_complete,
    )
