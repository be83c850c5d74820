from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends

from ..auth import get_current_user_id
from ..dependencies import get_service
from ..schemas import GeneratedNotifications, NotificationOut, NotificationUpdate
from ..services import AssignmentService

router = APIRouter(
    prefix="/api/v1/notifications",
    tags=["notifications"],
)


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_model=List[NotificationOut],
    summary="List Notifications",
    description="The caller's notifications, newest first.",
)
async def list_notifications(
    user_id: str = Depends(get_current_user_id),
    service: AssignmentService = Depends(get_service),
) -> List[NotificationOut]:
    return [NotificationOut(**n) for n in await service.list_notifications(user_id)]


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=GeneratedNotifications,
    summary="Generate Notifications",
    description=(
        "Create deadline notifications for open assignments due within the notification "
        "window that do not have one yet, then return all of the caller's notifications."
    ),
)
async def generate_notifications(
    user_id: str = Depends(get_current_user_id),
    service: AssignmentService = Depends(get_service),
) -> GeneratedNotifications:
    created, notifications = await service.generate_notifications(user_id)
    return GeneratedNotifications(
        message=f"Generated {created} new notifications",
        created=created,
        notifications=[NotificationOut(**n) for n in notifications],
    )


# PUBLIC_INTERFACE
@router.patch(
    "/{notification_id}",
    response_model=NotificationOut,
    summary="Mark Notification",
    description="Set a notification's read flag.",
    responses={404: {"description": "Notification not found"}},
)
async def mark_notification(
    notification_id: str,
    payload: NotificationUpdate,
    user_id: str = Depends(get_current_user_id),
    service: AssignmentService = Depends(get_service),
) -> NotificationOut:
    return NotificationOut(**await service.set_notification_read(user_id, notification_id, payload.read))
