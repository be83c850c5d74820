from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..auth import get_current_user_id
from ..dependencies import get_service
from ..errors import CalendarAuthError
from ..google_calendar import build_auth_url, exchange_code, sign_state, verify_state
from ..schemas import AuthUrlOut, CalendarStatusOut, CalendarSyncOut, CalendarSyncRequest, MessageOut
from ..services import AssignmentService
from ..settings import get_settings

router = APIRouter(
    prefix="/api/v1/calendar",
    tags=["calendar"],
)


# PUBLIC_INTERFACE
@router.get(
    "/auth-url",
    response_model=AuthUrlOut,
    summary="Calendar Consent URL",
    description="URL of the Google consent screen that links the caller's calendar.",
)
async def get_auth_url(user_id: str = Depends(get_current_user_id)) -> AuthUrlOut:
    settings = get_settings()
    if not settings.google_client_id or not settings.oauth_state_secret:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Google Calendar is not configured")
    return AuthUrlOut(auth_url=build_auth_url(settings, state=sign_state(settings.oauth_state_secret, user_id)))


# PUBLIC_INTERFACE
@router.get(
    "/callback",
    response_model=MessageOut,
    summary="Calendar OAuth Callback",
    description=(
        "Exchange the authorization code for tokens and enable calendar sync. The state "
        "must be the one issued to the caller by the auth-url endpoint."
    ),
    responses={
        400: {"description": "Consent denied, code missing or state invalid"},
        502: {"description": "Token exchange failed"},
    },
)
async def oauth_callback(
    code: str = Query("", description="Authorization code from Google"),
    error: str = Query("", description="Error reported by Google"),
    state: str = Query("", description="State issued with the consent URL"),
    user_id: str = Depends(get_current_user_id),
    service: AssignmentService = Depends(get_service),
) -> MessageOut:
    if error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Calendar connection failed")
    if not code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No authorization code")
    settings = get_settings()
    if not settings.oauth_state_secret or not verify_state(settings.oauth_state_secret, user_id, state):
        raise CalendarAuthError("Invalid OAuth state")
    tokens = await exchange_code(settings, code)
    await service.connect_calendar(user_id, tokens)
    return MessageOut(message="Calendar connected successfully")


# PUBLIC_INTERFACE
@router.get("/status", response_model=CalendarStatusOut, summary="Calendar Status")
async def calendar_status(
    user_id: str = Depends(get_current_user_id),
    service: AssignmentService = Depends(get_service),
) -> CalendarStatusOut:
    return CalendarStatusOut(**await service.calendar_status(user_id))


# PUBLIC_INTERFACE
@router.post(
    "/disconnect",
    response_model=MessageOut,
    summary="Disconnect Calendar",
    description="Forget the caller's Google tokens and every mirrored event id.",
)
async def disconnect_calendar(
    user_id: str = Depends(get_current_user_id),
    service: AssignmentService = Depends(get_service),
) -> MessageOut:
    await service.disconnect_calendar(user_id)
    return MessageOut(message="Calendar disconnected successfully")


# PUBLIC_INTERFACE
@router.post(
    "/sync",
    response_model=CalendarSyncOut,
    summary="Sync Assignment",
    description="Mirror an assignment onto the caller's calendar.",
    responses={
        400: {"description": "Calendar sync disabled or assignment already synced"},
        404: {"description": "Assignment not found"},
        502: {"description": "Google Calendar request failed"},
    },
)
async def sync_assignment(
    payload: CalendarSyncRequest,
    user_id: str = Depends(get_current_user_id),
    service: AssignmentService = Depends(get_service),
) -> CalendarSyncOut:
    assignment = await service.sync_assignment(user_id, payload.assignment_id)
    return CalendarSyncOut(message="Assignment synced to calendar", event_id=assignment["google_event_id"])


# PUBLIC_INTERFACE
@router.put(
    "/sync",
    response_model=CalendarSyncOut,
    summary="Update Synced Event",
    description="Push an assignment's current details to its mirrored event.",
    responses={400: {"description": "Calendar sync disabled or assignment not synced"}},
)
async def resync_assignment(
    payload: CalendarSyncRequest,
    user_id: str = Depends(get_current_user_id),
    service: AssignmentService = Depends(get_service),
) -> CalendarSyncOut:
    await service.resync_assignment(user_id, payload.assignment_id)
    return CalendarSyncOut(message="Calendar event updated")


# PUBLIC_INTERFACE
@router.delete(
    "/sync",
    response_model=CalendarSyncOut,
    summary="Unsync Assignment",
    description="Delete an assignment's mirrored event and stop syncing it.",
    responses={400: {"description": "Calendar sync disabled or assignment not synced"}},
)
async def unsync_assignment(
    assignment_id: str = Query(..., min_length=1, description="Assignment to unsync"),
    user_id: str = Depends(get_current_user_id),
    service: AssignmentService = Depends(get_service),
) -> CalendarSyncOut:
    await service.unsync_assignment(user_id, assignment_id)
    return CalendarSyncOut(message="Calendar event deleted")
