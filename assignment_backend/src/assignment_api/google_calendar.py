"""
Google Calendar mirroring.

Each assignment can be mirrored onto one event in the user's Google Calendar.
The event id is stored on the assignment; the user's OAuth tokens are stored on
the user and refreshed transparently when Google rejects an access token.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import timedelta
from typing import Any, Dict, Optional, Protocol
from urllib.parse import quote, urlencode

import httpx

from .dates import as_utc
from .errors import (
    CalendarAlreadySyncedError,
    CalendarAPIError,
    CalendarNotEnabledError,
    CalendarNotSyncedError,
)
from .models import AssignmentEntity, CalendarCredentials
from .repositories import Repository
from .settings import Settings

logger = logging.getLogger(__name__)

AUTH_ENDPOINT = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"
CALENDAR_API = "https://www.googleapis.com/calendar/v3"
SCOPES = ["https://www.googleapis.com/auth/calendar"]

PRIORITY_GLYPHS = {
    "high": "\U0001F534",
    "medium": "\U0001F7E1",
    "low": "\U0001F7E2",
}
EVENT_FOOTER = "\U0001F4DA Assignment from Assignment Tracker"
REMINDER_OVERRIDES = [
    {"method": "email", "minutes": 24 * 60},
    {"method": "popup", "minutes": 60},
]


# PUBLIC_INTERFACE
def assignment_to_event(assignment: AssignmentEntity) -> Dict[str, Any]:
    """
    Map an assignment onto a Google Calendar event body.

    The event covers the hour leading up to the due time, is titled with a
    priority glyph, and carries email and popup reminders one day and one hour
    before it starts.
    """
    end = as_utc(assignment["due_date"])
    start = end - timedelta(hours=1)
    glyph = PRIORITY_GLYPHS.get(assignment["priority"], PRIORITY_GLYPHS["medium"])
    return {
        "summary": f"{glyph} {assignment['title']}",
        "description": (
            f"Subject: {assignment['subject']}\n\n{assignment['description']}\n\n{EVENT_FOOTER}"
        ),
        "start": {"dateTime": start.isoformat(), "timeZone": "UTC"},
        "end": {"dateTime": end.isoformat(), "timeZone": "UTC"},
        "reminders": {"useDefault": False, "overrides": [dict(o) for o in REMINDER_OVERRIDES]},
    }


def _token_payload(response: httpx.Response) -> Dict[str, Any]:
    try:
        payload = response.json()
    except ValueError as e:
        raise CalendarAPIError("Google token response is not JSON", detail=response.text) from e
    if not isinstance(payload, dict):
        raise CalendarAPIError("Unexpected Google token response", detail=response.text)
    return payload


class CalendarClient(Protocol):
    """Operations the mirror needs from an external calendar."""

    async def create_event(self, credentials: CalendarCredentials, event: Dict[str, Any]) -> str:
        ...

    async def update_event(self, credentials: CalendarCredentials, event_id: str, event: Dict[str, Any]) -> None:
        ...

    async def delete_event(self, credentials: CalendarCredentials, event_id: str) -> None:
        ...


class GoogleCalendarClient:
    """
    Google Calendar v3 REST client.

    When a request comes back 401 and the credentials carry a refresh token,
    the access token is refreshed, written onto the credentials object, handed
    to credentials.on_refresh, and the request is retried once.
    """

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        http_client: Optional[httpx.AsyncClient] = None,
        api_base: str = CALENDAR_API,
        token_endpoint: str = TOKEN_ENDPOINT,
        timeout: float = 10.0,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self._http = http_client
        self._api_base = api_base.rstrip("/")
        self._token_endpoint = token_endpoint
        self._timeout = timeout

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            if self._http is not None:
                return await self._http.request(method, url, **kwargs)
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                return await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise CalendarAPIError(f"Calendar request failed: {e}") from e

    def _events_url(self, credentials: CalendarCredentials, event_id: Optional[str] = None) -> str:
        url = f"{self._api_base}/calendars/{quote(credentials.calendar_id or 'primary', safe='')}/events"
        if event_id is not None:
            url += f"/{quote(event_id, safe='')}"
        return url

    async def refresh_access_token(self, credentials: CalendarCredentials) -> str:
        if not credentials.refresh_token:
            raise CalendarAPIError("Access token rejected and no refresh token is stored")
        if not self.client_id or not self.client_secret:
            raise CalendarAPIError("Google OAuth client is not configured")

        response = await self._send(
            "POST",
            self._token_endpoint,
            data={
                "grant_type": "refresh_token",
                "refresh_token": credentials.refresh_token,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
            headers={"Accept": "application/json"},
        )
        if response.status_code != 200:
            logger.error("Token refresh failed: %s - %s", response.status_code, response.text)
            raise CalendarAPIError("Failed to refresh Google access token", detail=response.text)

        token = _token_payload(response).get("access_token")
        if not token:
            raise CalendarAPIError("Google token response has no access token", detail=response.text)
        credentials.access_token = token
        if credentials.on_refresh is not None:
            await credentials.on_refresh(token)
        logger.info("Refreshed Google access token for user %s", credentials.user_id)
        return token

    async def _request(
        self, credentials: CalendarCredentials, method: str, url: str, json: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        response = None
        for attempt in range(2):
            response = await self._send(
                method,
                url,
                json=json,
                headers={"Authorization": f"Bearer {credentials.access_token}"},
            )
            if response.status_code != 401 or attempt == 1:
                break
            await self.refresh_access_token(credentials)
        assert response is not None
        return response

    async def create_event(self, credentials: CalendarCredentials, event: Dict[str, Any]) -> str:
        response = await self._request(credentials, "POST", self._events_url(credentials), json=event)
        if response.status_code not in (200, 201):
            raise CalendarAPIError("Failed to create calendar event", detail=response.text)
        return response.json()["id"]

    async def update_event(self, credentials: CalendarCredentials, event_id: str, event: Dict[str, Any]) -> None:
        response = await self._request(credentials, "PUT", self._events_url(credentials, event_id), json=event)
        if response.status_code != 200:
            raise CalendarAPIError("Failed to update calendar event", detail=response.text)

    async def delete_event(self, credentials: CalendarCredentials, event_id: str) -> None:
        response = await self._request(credentials, "DELETE", self._events_url(credentials, event_id))
        # 404/410: already gone on Google's side
        if response.status_code not in (200, 204, 404, 410):
            raise CalendarAPIError("Failed to delete calendar event", detail=response.text)


# PUBLIC_INTERFACE
def build_auth_url(settings: Settings, state: Optional[str] = None) -> str:
    """Google consent URL requesting offline calendar access."""
    params = {
        "client_id": settings.google_client_id or "",
        "redirect_uri": settings.google_redirect_uri,
        "response_type": "code",
        "scope": " ".join(SCOPES),
        "access_type": "offline",
        "prompt": "consent",
    }
    if state:
        params["state"] = state
    return f"{AUTH_ENDPOINT}?{urlencode(params)}"


def _state_digest(secret: str, user_id: str, nonce: str) -> str:
    return hmac.new(secret.encode(), f"{user_id}:{nonce}".encode(), hashlib.sha256).hexdigest()


# PUBLIC_INTERFACE
def sign_state(secret: str, user_id: str) -> str:
    """OAuth state for user_id: a random nonce plus an HMAC binding it to the user."""
    nonce = secrets.token_urlsafe(16)
    return f"{nonce}.{_state_digest(secret, user_id, nonce)}"


# PUBLIC_INTERFACE
def verify_state(secret: str, user_id: str, state: str) -> bool:
    """True when state was issued by sign_state for this user."""
    nonce, _, digest = state.partition(".")
    if not nonce or not digest:
        return False
    return hmac.compare_digest(_state_digest(secret, user_id, nonce), digest)


# PUBLIC_INTERFACE
async def exchange_code(
    settings: Settings, code: str, http_client: Optional[httpx.AsyncClient] = None
) -> Dict[str, Any]:
    """Exchange an authorization code for Google tokens."""
    data = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": settings.google_redirect_uri,
        "client_id": settings.google_client_id or "",
        "client_secret": settings.google_client_secret or "",
    }
    try:
        if http_client is not None:
            response = await http_client.post(TOKEN_ENDPOINT, data=data, headers={"Accept": "application/json"})
        else:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(TOKEN_ENDPOINT, data=data, headers={"Accept": "application/json"})
    except httpx.HTTPError as e:
        raise CalendarAPIError(f"Token exchange failed: {e}") from e

    if response.status_code != 200:
        logger.error("Token exchange failed: %s - %s", response.status_code, response.text)
        raise CalendarAPIError("Failed to exchange code for token", detail=response.text)
    tokens = _token_payload(response)
    if not tokens.get("access_token"):
        raise CalendarAPIError("Google token response has no access token", detail=response.text)
    return tokens


class CalendarMirror:
    """
    Creates, updates and deletes the mirrored event of an assignment, keeping
    the assignment's google_event_id and sync_with_calendar in step.
    """

    def __init__(self, repo: Repository, client: CalendarClient) -> None:
        self._repo = repo
        self._client = client

    async def credentials(self, user_id: str) -> CalendarCredentials:
        """Usable credentials for user_id, wired to persist refreshed tokens."""
        creds = await self._repo.get_user_calendar_credentials(user_id)
        if creds is None or not creds.usable:
            raise CalendarNotEnabledError()

        async def _persist(token: str) -> None:
            await self._repo.set_user_access_token(user_id, token)

        creds.on_refresh = _persist
        return creds

    async def create(self, user_id: str, assignment: AssignmentEntity) -> AssignmentEntity:
        creds = await self.credentials(user_id)
        if assignment["google_event_id"]:
            raise CalendarAlreadySyncedError()

        event_id = await self._client.create_event(creds, assignment_to_event(assignment))
        updated = await self._repo.update_assignment(
            assignment["id"], {"google_event_id": event_id, "sync_with_calendar": True}
        )
        logger.info("Mirrored assignment %s to calendar event %s", assignment["id"], event_id)
        return updated or assignment

    async def update(self, user_id: str, assignment: AssignmentEntity) -> None:
        creds = await self.credentials(user_id)
        event_id = assignment["google_event_id"]
        if not event_id or not assignment["sync_with_calendar"]:
            raise CalendarNotSyncedError()

        await self._client.update_event(creds, event_id, assignment_to_event(assignment))
        logger.debug("Updated calendar event %s for assignment %s", event_id, assignment["id"])

    async def delete(self, user_id: str, assignment: AssignmentEntity, clear: bool = True) -> None:
        """
        Delete the mirrored event. With clear=False the assignment row is left
        alone, for callers that are about to delete it.
        """
        creds = await self.credentials(user_id)
        event_id = assignment["google_event_id"]
        if not event_id:
            raise CalendarNotSyncedError()

        await self._client.delete_event(creds, event_id)
        if clear:
            await self._repo.update_assignment(
                assignment["id"], {"google_event_id": None, "sync_with_calendar": False}
            )
        logger.info("Deleted calendar event %s for assignment %s", event_id, assignment["id"])
