from __future__ import annotations

from fastapi import APIRouter, Depends

from ..auth import get_current_user_id
from ..dependencies import get_service
from ..schemas import AdviceOut, AdviceRequest, AnswerOut, QuestionRequest
from ..services import AssignmentService

router = APIRouter(
    prefix="/api/v1/assistant",
    tags=["assistant"],
)

_AI_RESPONSES = {
    502: {"description": "The language model request failed"},
    503: {"description": "AI assistant is not configured"},
}


# PUBLIC_INTERFACE
@router.post(
    "/advice",
    response_model=AdviceOut,
    summary="Study Advice",
    description="Study and time management tips based on the caller's assignment and overdue counts.",
    responses=_AI_RESPONSES,
)
async def study_advice(
    payload: AdviceRequest,
    user_id: str = Depends(get_current_user_id),
    service: AssignmentService = Depends(get_service),
) -> AdviceOut:
    return AdviceOut(advice=await service.study_advice(user_id, payload.context))


# PUBLIC_INTERFACE
@router.post(
    "/question",
    response_model=AnswerOut,
    summary="Ask About Assignments",
    description="Answer a free-form question using the caller's assignments as context.",
    responses=_AI_RESPONSES,
)
async def ask_question(
    payload: QuestionRequest,
    user_id: str = Depends(get_current_user_id),
    service: AssignmentService = Depends(get_service),
) -> AnswerOut:
    return AnswerOut(answer=await service.answer_question(user_id, payload.question))
