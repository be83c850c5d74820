"""
AI enrichment of newly created assignments.

When a student gives a short or missing description, or no subject, a language
model is asked to fill in the gaps from the title. A supplied subject, or a
description of reasonable length, is kept as given.
"""
from __future__ import annotations

import json
from typing import Optional, Protocol

import httpx
from pydantic import BaseModel, ValidationError

from .errors import AIServiceError, EnrichmentError
from .gemini import DEFAULT_MODEL, GEMINI_API, GeminiClient
from .settings import Settings

MIN_DESCRIPTION_LENGTH = 20

PROMPT = """You are helping a student organize their assignments. Given the following assignment information, provide enhanced details:

Title: {title}
Description: {description}
Subject: {subject}

Please:
1. Generate a helpful description if missing or too brief (focus on what the assignment might entail based on the title)
2. Infer the subject/course if not provided (e.g., Math, Science, English, History, Computer Science, etc.)
3. Keep descriptions concise but informative (2-3 sentences max)

Only enhance missing information. If good information is already provided, keep it as is.
Respond with a JSON object with the keys "description" and "subject"."""


class EnrichedDetails(BaseModel):
    description: str = ""
    subject: str = ""


class AssignmentEnricher(Protocol):
    async def enrich(self, title: str, description: Optional[str], subject: Optional[str]) -> EnrichedDetails:
        ...


def needs_enrichment(description: Optional[str], subject: Optional[str]) -> bool:
    return not description or len(description) < MIN_DESCRIPTION_LENGTH or not subject


class NullEnricher:
    """Returns what it was given. Used when no model is configured."""

    async def enrich(self, title: str, description: Optional[str], subject: Optional[str]) -> EnrichedDetails:
        return EnrichedDetails(description=description or "", subject=subject or "")




class GeminiEnricher:
    """Enrichment backed by the Gemini generateContent endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        http_client: Optional[httpx.AsyncClient] = None,
        api_base: str = GEMINI_API,
        timeout: float = 15.0,
    ) -> None:
        self._gemini = GeminiClient(api_key, model, http_client=http_client, api_base=api_base, timeout=timeout)

    async def enrich(self, title: str, description: Optional[str], subject: Optional[str]) -> EnrichedDetails:
        prompt = PROMPT.format(
            title=title,
            description=description or "Not provided",
            subject=subject or "Not provided",
        )
        try:
            text = await self._gemini.generate(prompt, json_response=True)
        except AIServiceError as e:
            raise EnrichmentError(e.message, detail=e.detail) from e

        try:
            generated = EnrichedDetails.model_validate(json.loads(text))
        except (TypeError, ValueError, ValidationError) as e:
            raise EnrichmentError("Unexpected enrichment response") from e

        if description and len(description) >= MIN_DESCRIPTION_LENGTH:
            generated.description = description
        else:
            generated.description = generated.description or description or ""
        generated.subject = subject or generated.subject
        return generated


# PUBLIC_INTERFACE
def get_enricher(settings: Settings) -> AssignmentEnricher:
    """Return the configured enricher, or a pass-through one when AI enrichment is off."""
    if settings.enable_ai_enrichment and settings.gemini_api_key:
        return GeminiEnricher(settings.gemini_api_key, settings.gemini_model)
    return NullEnricher()
