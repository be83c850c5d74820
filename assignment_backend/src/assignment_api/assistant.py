"""
Study assistant.

Two Gemini-backed answers over the student's own data: general study and time
management advice based on their workload, and free-form questions answered
against their assignment list.
"""
from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .errors import AssistantNotConfiguredError
from .gemini import GeminiClient
from .models import AssignmentEntity
from .settings import Settings

ADVICE_PROMPT = """You are a helpful academic advisor assistant. A student has:
- {assignment_count} total assignments
- {overdue_count} overdue assignments
{context_line}
Provide brief, actionable study tips and time management advice (2-3 short paragraphs max). Focus on:
1. How to prioritize their work
2. Strategies to catch up if they have overdue assignments
3. General tips for staying organized

Be encouraging and practical."""

QUESTION_PROMPT = """You are a helpful assignment tracking assistant. A student is asking about their assignments.

Current assignments:
{assignments}

Student's question: {question}

Provide a helpful, concise answer based on their assignments. If the question is about specific assignments, reference them directly. If they're asking for advice, be encouraging and practical."""


def assignment_line(assignment: AssignmentEntity) -> str:
    return (
        f"- {assignment['title']} ({assignment['subject'] or 'No subject'}) - "
        f"Due: {assignment['due_date']:%Y-%m-%d}, "
        f"Status: {assignment['status']}, Priority: {assignment['priority']}"
    )


class StudyAssistant(Protocol):
    async def study_advice(self, assignment_count: int, overdue_count: int, context: Optional[str] = None) -> str:
        ...

    async def answer_question(self, question: str, assignments: Sequence[AssignmentEntity]) -> str:
        ...


class GeminiAssistant:
    def __init__(self, gemini: GeminiClient) -> None:
        self._gemini = gemini

    async def study_advice(self, assignment_count: int, overdue_count: int, context: Optional[str] = None) -> str:
        prompt = ADVICE_PROMPT.format(
            assignment_count=assignment_count,
            overdue_count=overdue_count,
            context_line=f"- Additional context: {context}\n" if context else "",
        )
        return await self._gemini.generate(prompt)

    async def answer_question(self, question: str, assignments: Sequence[AssignmentEntity]) -> str:
        lines = "\n".join(assignment_line(a) for a in assignments)
        prompt = QUESTION_PROMPT.format(assignments=lines or "No assignments yet", question=question)
        return await self._gemini.generate(prompt)


class UnconfiguredAssistant:
    """Stands in when no Gemini API key is set."""

    async def study_advice(self, assignment_count: int, overdue_count: int, context: Optional[str] = None) -> str:
        raise AssistantNotConfiguredError()

    async def answer_question(self, question: str, assignments: Sequence[AssignmentEntity]) -> str:
        raise AssistantNotConfiguredError()


# PUBLIC_INTERFACE
def get_assistant(settings: Settings) -> StudyAssistant:
    """Return the Gemini assistant when an API key is configured."""
    if settings.gemini_api_key:
        return GeminiAssistant(GeminiClient(settings.gemini_api_key, settings.gemini_model))
    return UnconfiguredAssistant()
