from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from ..auth import get_current_user_id
from ..dependencies import get_service
from ..models import AssignmentPriority, AssignmentStatus
from ..schemas import (
    AssignmentCreate,
    AssignmentOut,
    AssignmentSummary,
    AssignmentUpdate,
    DueRange,
    MessageOut,
)
from ..services import AssignmentService

router = APIRouter(
    prefix="/api/v1/assignments",
    tags=["assignments"],
)


class PaginationEnvelope(BaseModel):
    """
    Envelope for paginated list responses.
    """
    items: List[AssignmentOut] = Field(..., description="Assignments ordered by due date")
    total: int = Field(..., description="Total number of items matching the query")
    limit: int = Field(..., description="Limit applied to the query")
    offset: int = Field(..., description="Offset applied to the query")


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_model=PaginationEnvelope,
    summary="List Assignments",
    description=(
        "List the caller's assignments ordered by due date.\n\n"
        "Query parameters:\n"
        "- status / priority: exact match filters\n"
        "- subject: case-insensitive substring match\n"
        "- due: today, this-week, this-month or overdue (UTC days)\n"
        "- limit / offset: pagination"
    ),
    responses={
        200: {"description": "List retrieved successfully"},
        401: {"description": "Not authenticated"},
    },
)
async def list_assignments(
    status_: Optional[AssignmentStatus] = Query(None, alias="status", description="Filter by status"),
    priority: Optional[AssignmentPriority] = Query(None, description="Filter by priority"),
    subject: Optional[str] = Query(None, description="Search text for subject"),
    due: Optional[DueRange] = Query(None, description="Due date window"),
    limit: int = Query(100, ge=0, le=1000, description="Maximum number of items to return"),
    offset: int = Query(0, ge=0, description="Number of items to skip"),
    user_id: str = Depends(get_current_user_id),
    service: AssignmentService = Depends(get_service),
) -> PaginationEnvelope:
    items, total = await service.list_assignments(
        user_id,
        status=status_,
        priority=priority,
        subject=subject.strip() if subject else None,
        due_range=due,
        limit=limit,
        offset=offset,
    )
    return PaginationEnvelope(
        items=[AssignmentOut(**it) for it in items],
        total=total,
        limit=limit,
        offset=offset,
    )


# PUBLIC_INTERFACE
@router.get(
    "/summary",
    response_model=AssignmentSummary,
    summary="Assignment Summary",
    description="Counts by status and due window, plus the next five open assignments.",
)
async def get_summary(
    user_id: str = Depends(get_current_user_id),
    service: AssignmentService = Depends(get_service),
) -> AssignmentSummary:
    return AssignmentSummary(**await service.summary(user_id))


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=AssignmentOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Assignment",
    description=(
        "Create a new assignment. A short or missing description and a missing subject "
        "may be filled in by the AI assistant. A deadline notification is created when "
        "the assignment is due within the notification window."
    ),
    responses={
        201: {"description": "Assignment created successfully"},
        401: {"description": "Not authenticated"},
        422: {"description": "Validation error"},
    },
)
async def create_assignment(
    payload: AssignmentCreate,
    user_id: str = Depends(get_current_user_id),
    service: AssignmentService = Depends(get_service),
) -> AssignmentOut:
    created = await service.create_assignment(user_id, payload)
    return AssignmentOut(**created)


# PUBLIC_INTERFACE
@router.get(
    "/{assignment_id}",
    response_model=AssignmentOut,
    summary="Get Assignment",
    responses={
        200: {"description": "Assignment found"},
        403: {"description": "Assignment belongs to another user"},
        404: {"description": "Assignment not found"},
    },
)
async def get_assignment(
    assignment_id: str,
    user_id: str = Depends(get_current_user_id),
    service: AssignmentService = Depends(get_service),
) -> AssignmentOut:
    return AssignmentOut(**await service.get_assignment(user_id, assignment_id))


# PUBLIC_INTERFACE
@router.patch(
    "/{assignment_id}",
    response_model=AssignmentOut,
    summary="Update Assignment",
    description=(
        "Partially update an assignment. Omitted fields are unchanged. The deadline "
        "notification and any mirrored calendar event follow the new values."
    ),
    responses={
        200: {"description": "Assignment updated"},
        403: {"description": "Assignment belongs to another user"},
        404: {"description": "Assignment not found"},
    },
)
async def update_assignment(
    assignment_id: str,
    payload: AssignmentUpdate,
    user_id: str = Depends(get_current_user_id),
    service: AssignmentService = Depends(get_service),
) -> AssignmentOut:
    updated = await service.update_assignment(user_id, assignment_id, payload)
    return AssignmentOut(**updated)


# PUBLIC_INTERFACE
@router.delete(
    "/{assignment_id}",
    response_model=MessageOut,
    summary="Delete Assignment",
    description="Delete an assignment and, if mirrored, its calendar event.",
    responses={
        200: {"description": "Assignment deleted"},
        403: {"description": "Assignment belongs to another user"},
        404: {"description": "Assignment not found"},
    },
)
async def delete_assignment(
    assignment_id: str,
    user_id: str = Depends(get_current_user_id),
    service: AssignmentService = Depends(get_service),
) -> MessageOut:
    await service.delete_assignment(user_id, assignment_id)
    return MessageOut(message="Assignment deleted successfully")
