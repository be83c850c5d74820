"""
Deadline notifications.

A user has at most one "deadline" notification per assignment. It exists while
the assignment is due within the lookahead window, its message tracks the
number of days left, and it is removed once the due date has passed.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from .dates import days_until, utc_midnight, utcnow
from .models import DEADLINE, AssignmentEntity
from .repositories import AssignmentQuery, Repository

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 3

CREATED = "created"
UPDATED = "updated"
DELETED = "deleted"
SKIPPED = "skipped"


def time_message(days: int) -> str:
    if days == 0:
        return "Due today!"
    if days == 1:
        return "Due tomorrow"
    return f"Due in {days} days"


# PUBLIC_INTERFACE
def deadline_message(title: str, days: int) -> str:
    """Message text for an assignment due in `days` calendar days, e.g. 'Essay - Due tomorrow'."""
    return f"{title} - {time_message(days)}"


# PUBLIC_INTERFACE
async def reconcile_deadline_notification(
    repo: Repository,
    assignment: AssignmentEntity,
    user_id: str,
    now: Optional[datetime] = None,
    window_days: int = DEFAULT_WINDOW_DAYS,
    clear_on_complete: bool = False,
) -> str:
    """
    Bring the deadline notification for (user, assignment) in line with the
    assignment's current due date and status.

    - completed: left alone, unless clear_on_complete is set, in which case a
      pending notification is deleted
    - due within [0, window_days] days: update the existing notification's
      message and mark it unread, or create one
    - past due: delete an existing notification
    - further out: nothing

    Returns one of 'created', 'updated', 'deleted' or 'skipped'. Persistence
    errors propagate to the caller.
    """
    now = now or utcnow()
    assignment_id = assignment["id"]

    if assignment["status"] == "completed":
        if clear_on_complete:
            existing = await repo.find_notification(user_id, assignment_id, DEADLINE)
            if existing is not None:
                await repo.delete_notification(existing["id"])
                logger.info("Deleted deadline notification for completed assignment %s", assignment_id)
                return DELETED
        return SKIPPED

    days = days_until(now, assignment["due_date"])
    existing = await repo.find_notification(user_id, assignment_id, DEADLINE)

    if 0 <= days <= window_days:
        message = deadline_message(assignment["title"], days)
        if existing is not None:
            await repo.update_notification(existing["id"], {"message": message, "read": False})
            logger.debug("Updated deadline notification for assignment %s: %s", assignment_id, message)
            return UPDATED
        await repo.create_notification(
            {
                "user_id": user_id,
                "assignment_id": assignment_id,
                "message": message,
                "type": DEADLINE,
            }
        )
        logger.info("Created deadline notification for assignment %s: %s", assignment_id, message)
        return CREATED

    if days < 0 and existing is not None:
        await repo.delete_notification(existing["id"])
        logger.info("Deleted deadline notification for past-due assignment %s", assignment_id)
        return DELETED

    return SKIPPED


# PUBLIC_INTERFACE
async def generate_deadline_notifications(
    repo: Repository,
    user_id: str,
    now: Optional[datetime] = None,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> int:
    """
    Create a deadline notification for every open assignment due between now
    and the end of the lookahead window that does not have one yet.

    The window runs from `now` to UTC midnight today plus window_days. Stale
    notifications are never removed here. Returns the number created.
    """
    now = now or utcnow()
    today = utc_midnight(now)
    upcoming, _ = await repo.list_assignments(
        AssignmentQuery(
            user_id=user_id,
            exclude_status="completed",
            due_from=now,
            due_until=today + timedelta(days=window_days),
        )
    )
    if not upcoming:
        return 0

    notified = {
        n["assignment_id"]
        for n in await repo.list_notifications(user_id, DEADLINE)
        if n["assignment_id"] is not None
    }

    created = 0
    for assignment in upcoming:
        if assignment["id"] in notified:
            continue
        days = days_until(today, assignment["due_date"])
        await repo.create_notification(
            {
                "user_id": user_id,
                "assignment_id": assignment["id"],
                "message": deadline_message(assignment["title"], days),
                "type": DEADLINE,
            }
        )
        created += 1

    logger.info("Generated %d deadline notifications for user %s", created, user_id)
    return created
