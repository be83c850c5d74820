"""
Assignment lifecycle and the use cases built on it.

Every mutation writes the assignment first. Notification reconciliation and
calendar mirroring follow as best-effort steps: their failures are logged and
never change the outcome of the write that triggered them.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from .assistant import StudyAssistant, UnconfiguredAssistant
from .dates import day_range, month_end, utcnow
from .enrichment import AssignmentEnricher, NullEnricher, needs_enrichment
from .errors import CalendarAPIError, CalendarSyncError, ForbiddenError, NotFoundError
from .google_calendar import CalendarClient, CalendarMirror
from .models import AssignmentEntity, NotificationEntity, UserEntity
from .notifications import (
    DEFAULT_WINDOW_DAYS,
    generate_deadline_notifications,
    reconcile_deadline_notification,
)
from .repositories import AssignmentQuery, Repository
from .schemas import AssignmentCreate, AssignmentUpdate

logger = logging.getLogger(__name__)

UPCOMING_LIMIT = 5


class AssignmentService:
    """Request-scoped entry point used by the routers."""

    def __init__(
        self,
        repo: Repository,
        calendar_client: CalendarClient,
        enricher: Optional[AssignmentEnricher] = None,
        assistant: Optional[StudyAssistant] = None,
        window_days: int = DEFAULT_WINDOW_DAYS,
        clear_notification_on_complete: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repo = repo
        self.mirror = CalendarMirror(repo, calendar_client)
        self.enricher = enricher or NullEnricher()
        self.assistant = assistant or UnconfiguredAssistant()
        self.window_days = window_days
        self.clear_notification_on_complete = clear_notification_on_complete
        self._clock = clock

    async def _owned(self, user_id: str, assignment_id: str) -> AssignmentEntity:
        assignment = await self.repo.find_assignment(assignment_id)
        if assignment is None:
            raise NotFoundError("Assignment not found")
        if assignment["user_id"] != user_id:
            raise ForbiddenError()
        return assignment

    async def _reconcile(self, assignment: AssignmentEntity, user_id: str) -> None:
        try:
            await reconcile_deadline_notification(
                self.repo,
                assignment,
                user_id,
                now=self._clock(),
                window_days=self.window_days,
                clear_on_complete=self.clear_notification_on_complete,
            )
        except Exception:
            logger.exception("Failed to reconcile deadline notification for assignment %s", assignment["id"])

    # Assignments

    async def get_assignment(self, user_id: str, assignment_id: str) -> AssignmentEntity:
        return await self._owned(user_id, assignment_id)

    async def create_assignment(self, user_id: str, payload: AssignmentCreate) -> AssignmentEntity:
        """Enrich (best-effort), persist, then reconcile the deadline notification."""
        description = payload.description or ""
        subject = payload.subject or ""
        if needs_enrichment(payload.description, payload.subject):
            try:
                details = await self.enricher.enrich(payload.title, payload.description, payload.subject)
                description, subject = details.description, details.subject
            except Exception:
                logger.warning("Enrichment failed for new assignment %r; keeping provided values", payload.title, exc_info=True)

        assignment = await self.repo.create_assignment(
            {
                "user_id": user_id,
                "title": payload.title,
                "description": description,
                "subject": subject,
                "due_date": payload.due_date,
                "priority": payload.priority,
                "status": "not-started",
            }
        )
        await self._reconcile(assignment, user_id)
        return assignment

    async def update_assignment(self, user_id: str, assignment_id: str, payload: AssignmentUpdate) -> AssignmentEntity:
        """Persist the changed fields, reconcile, then update the mirrored event if there is one."""
        await self._owned(user_id, assignment_id)
        updated = await self.repo.update_assignment(assignment_id, payload.changes())
        if updated is None:
            raise NotFoundError("Assignment not found")

        await self._reconcile(updated, user_id)

        if updated["google_event_id"] and updated["sync_with_calendar"]:
            try:
                await self.mirror.update(user_id, updated)
            except CalendarSyncError as e:
                logger.debug("Skipped calendar update for assignment %s: %s", assignment_id, e.message)
            except Exception:
                logger.exception("Failed to update calendar event for assignment %s", assignment_id)
        return updated

    async def delete_assignment(self, user_id: str, assignment_id: str) -> None:
        """Delete the mirrored event (best-effort), then the assignment."""
        assignment = await self._owned(user_id, assignment_id)
        if assignment["google_event_id"]:
            try:
                await self.mirror.delete(user_id, assignment, clear=False)
            except CalendarSyncError as e:
                logger.debug("Skipped calendar delete for assignment %s: %s", assignment_id, e.message)
            except Exception:
                logger.exception("Failed to delete calendar event for assignment %s", assignment_id)

        if not await self.repo.delete_assignment(assignment_id):
            raise NotFoundError("Assignment not found")

    def _query(
        self,
        user_id: str,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        subject: Optional[str] = None,
        due_range: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> AssignmentQuery:
        now = self._clock()
        today, tomorrow = day_range(now, 1)
        bounds: Dict[str, Any] = {}
        if due_range == "today":
            bounds = {"due_from": today, "due_before": tomorrow}
        elif due_range == "this-week":
            bounds = {"due_from": today, "due_before": today + timedelta(days=7)}
        elif due_range == "this-month":
            bounds = {"due_from": today, "due_before": month_end(now)}
        elif due_range == "overdue":
            bounds = {"due_before": today, "exclude_status": "completed"}
        return AssignmentQuery(
            user_id=user_id,
            status=status,
            priority=priority,
            subject=subject,
            limit=limit,
            offset=offset,
            **bounds,
        )

    async def list_assignments(
        self,
        user_id: str,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        subject: Optional[str] = None,
        due_range: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Tuple[List[AssignmentEntity], int]:
        query = self._query(user_id, status, priority, subject, due_range, limit, offset)
        return await self.repo.list_assignments(query)

    async def summary(self, user_id: str) -> Dict[str, Any]:
        """Counts by status and due window, plus the next few open assignments."""
        now = self._clock()
        today, tomorrow = day_range(now, 1)
        week_end = today + timedelta(days=7)
        count = self.repo.count_assignments

        total, not_started, in_progress, completed, overdue, due_today, due_this_week = await asyncio.gather(
            count(AssignmentQuery(user_id=user_id)),
            count(AssignmentQuery(user_id=user_id, status="not-started")),
            count(AssignmentQuery(user_id=user_id, status="in-progress")),
            count(AssignmentQuery(user_id=user_id, status="completed")),
            count(AssignmentQuery(user_id=user_id, due_before=today, exclude_status="completed")),
            count(AssignmentQuery(user_id=user_id, due_from=today, due_before=tomorrow)),
            count(AssignmentQuery(user_id=user_id, due_from=today, due_before=week_end)),
        )
        upcoming, _ = await self.repo.list_assignments(
            AssignmentQuery(user_id=user_id, due_from=today, exclude_status="completed", limit=UPCOMING_LIMIT)
        )
        return {
            "total": total,
            "by_status": {
                "not_started": not_started,
                "in_progress": in_progress,
                "completed": completed,
            },
            "overdue": overdue,
            "due_today": due_today,
            "due_this_week": due_this_week,
            "upcoming": upcoming,
        }

    # Assistant

    async def study_advice(self, user_id: str, context: Optional[str] = None) -> str:
        """Study advice sized to the user's workload."""
        summary = await self.summary(user_id)
        return await self.assistant.study_advice(summary["total"], summary["overdue"], context)

    async def answer_question(self, user_id: str, question: str) -> str:
        """Answer a question with every one of the user's assignments as context."""
        assignments, _ = await self.repo.list_assignments(AssignmentQuery(user_id=user_id))
        return await self.assistant.answer_question(question, assignments)

    # Notifications

    async def list_notifications(self, user_id: str) -> List[Dict[str, Any]]:
        """The user's notifications, newest first, each with its assignment summary."""
        notifications = await self.repo.list_notifications(user_id)
        refs: Dict[str, Optional[Dict[str, Any]]] = {}
        out: List[Dict[str, Any]] = []
        for n in notifications:
            aid = n["assignment_id"]
            if aid is not None and aid not in refs:
                a = await self.repo.find_assignment(aid)
                refs[aid] = None if a is None else {"id": a["id"], "title": a["title"], "due_date": a["due_date"]}
            out.append({**n, "assignment": refs.get(aid) if aid is not None else None})
        return out

    async def generate_notifications(self, user_id: str) -> Tuple[int, List[Dict[str, Any]]]:
        created = await generate_deadline_notifications(
            self.repo, user_id, now=self._clock(), window_days=self.window_days
        )
        return created, await self.list_notifications(user_id)

    async def set_notification_read(self, user_id: str, notification_id: str, read: bool) -> NotificationEntity:
        notification = await self.repo.get_notification(notification_id)
        if notification is None or notification["user_id"] != user_id:
            raise NotFoundError("Notification not found")
        updated = await self.repo.update_notification(notification_id, {"read": read})
        if updated is None:
            raise NotFoundError("Notification not found")
        return updated

    # Calendar

    async def calendar_status(self, user_id: str) -> Dict[str, bool]:
        user = await self.repo.get_or_create_user(user_id)
        enabled = bool(user["calendar_sync_enabled"])
        return {"connected": bool(user["google_access_token"]) and enabled, "sync_enabled": enabled}

    async def connect_calendar(self, user_id: str, tokens: Dict[str, Any]) -> UserEntity:
        """Store freshly issued Google tokens and turn sync on."""
        if not tokens.get("access_token"):
            raise CalendarAPIError("Google token response has no access token")
        user = await self.repo.get_or_create_user(user_id)
        fields: Dict[str, Any] = {
            "google_access_token": tokens["access_token"],
            "google_refresh_token": tokens.get("refresh_token") or user["google_refresh_token"],
            "calendar_sync_enabled": True,
        }
        updated = await self.repo.update_user(user_id, fields)
        logger.info("Connected Google Calendar for user %s", user_id)
        return updated or user

    async def disconnect_calendar(self, user_id: str) -> None:
        """Forget the user's tokens and every mirrored event id. Events stay in Google."""
        await self.repo.get_or_create_user(user_id)
        await self.repo.update_user(
            user_id,
            {
                "google_access_token": None,
                "google_refresh_token": None,
                "google_calendar_id": None,
                "calendar_sync_enabled": False,
            },
        )
        cleared = await self.repo.clear_calendar_event_ids(user_id)
        logger.info("Disconnected Google Calendar for user %s (%d event ids cleared)", user_id, cleared)

    async def _syncable(self, user_id: str, assignment_id: str) -> AssignmentEntity:
        # sync endpoints answer 404 for both missing and foreign assignments
        await self.mirror.credentials(user_id)
        assignment = await self.repo.find_assignment(assignment_id)
        if assignment is None or assignment["user_id"] != user_id:
            raise NotFoundError("Assignment not found")
        return assignment

    async def sync_assignment(self, user_id: str, assignment_id: str) -> AssignmentEntity:
        assignment = await self._syncable(user_id, assignment_id)
        return await self.mirror.create(user_id, assignment)

    async def resync_assignment(self, user_id: str, assignment_id: str) -> None:
        assignment = await self._syncable(user_id, assignment_id)
        await self.mirror.update(user_id, assignment)

    async def unsync_assignment(self, user_id: str, assignment_id: str) -> None:
        assignment = await self._syncable(user_id, assignment_id)
        await self.mirror.delete(user_id, assignment)
