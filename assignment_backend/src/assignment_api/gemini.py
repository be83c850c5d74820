"""
Thin async client for the Gemini generateContent endpoint, shared by
assignment enrichment and the study assistant.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from .errors import AIServiceError

logger = logging.getLogger(__name__)

GEMINI_API = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-1.5-flash"


class GeminiClient:
    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        http_client: Optional[httpx.AsyncClient] = None,
        api_base: str = GEMINI_API,
        timeout: float = 15.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._http = http_client
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout

    async def _post(self, url: str, payload: Dict[str, Any]) -> httpx.Response:
        params = {"key": self._api_key}
        if self._http is not None:
            return await self._http.post(url, params=params, json=payload)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(url, params=params, json=payload)

    async def generate(self, prompt: str, json_response: bool = False) -> str:
        """
        Send a single-turn prompt and return the text of the first candidate.

        Raises:
            AIServiceError on transport failures, non-200 replies, or replies
            without candidate text.
        """
        payload: Dict[str, Any] = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        if json_response:
            payload["generationConfig"] = {"responseMimeType": "application/json"}

        url = f"{self._api_base}/models/{self._model}:generateContent"
        try:
            response = await self._post(url, payload)
        except httpx.HTTPError as e:
            raise AIServiceError(f"Gemini request failed: {e}") from e

        if response.status_code != 200:
            logger.error("Gemini request failed: %s - %s", response.status_code, response.text)
            raise AIServiceError("Gemini request rejected", detail=response.text)

        try:
            return response.json()["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise AIServiceError("Unexpected Gemini response") from e
