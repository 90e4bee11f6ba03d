"""
Google Workspace activity source (Gmail, Calendar, Drive) over httpx.

Token acquisition is out of scope: the source is handed a callable that
returns a bearer credential (sync or async) and calls it once per fetch.
"""

import asyncio
import inspect
from collections import Counter
from collections.abc import Awaitable, Callable
from datetime import datetime

import httpx

from app.features.time_inference.domain.models import Activity, SourceKind
from app.features.time_inference.errors import InvalidActivityError, SourceFetchError
from app.features.time_inference.sources.parsers import (
    DRIVE_MIME_TYPES,
    parse_calendar_event,
    parse_drive_file,
    parse_gmail_message,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

GMAIL_API_BASE_URL = "https://gmail.googleapis.com/gmail/v1/users/me"
CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3/calendars/primary"
DRIVE_API_BASE_URL = "https://www.googleapis.com/drive/v3"

# Request timeouts and retry configuration
REQUEST_TIMEOUT = 30  # seconds
MAX_RETRIES = 3
BACKOFF_FACTOR = 2
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}

GMAIL_MAX_RESULTS = 50
DRIVE_FIELDS = "nextPageToken,files(id,name,mimeType,modifiedTime,lastModifyingUser,owners)"

TokenProvider = Callable[[], str | Awaitable[str]]


class GoogleWorkspaceSource:
    def __init__(
        self,
        token_provider: TokenProvider,
        client: httpx.AsyncClient | None = None,
        backoff_factor: float = BACKOFF_FACTOR,
    ):
        self.token_provider = token_provider
        self._client = client or self._create_client()
        self.backoff_factor = backoff_factor
        self.invalid_payloads = 0

    def _create_client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(REQUEST_TIMEOUT)
        limits = httpx.Limits(max_keepalive_connections=20, max_connections=50)
        return httpx.AsyncClient(timeout=timeout, limits=limits)

    async def close(self) -> None:
        await self._client.aclose()

    async def fetch_activities(self, kind: SourceKind, since: datetime) -> list[Activity]:
        token = await self._get_token(kind)
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}

        try:
            if kind == SourceKind.MESSAGE:
                activities = await self._fetch_messages(headers, since)
            elif kind == SourceKind.CALENDAR_EVENT:
                activities = await self._fetch_events(headers, since)
            elif kind == SourceKind.DOCUMENT_EDIT:
                activities = await self._fetch_documents(headers, since)
            else:
                raise SourceFetchError(f"Unsupported source kind: {kind}", source_kind=str(kind))
        except httpx.HTTPError as e:
            logger.error("Google fetch failed", source_kind=kind.value, error=str(e))
            raise SourceFetchError(f"Transport error: {e}", source_kind=kind.value) from e

        logger.info(
            "Google activities fetched",
            source_kind=kind.value,
            since=since.isoformat(),
            count=len(activities),
        )
        return activities

    async def _get_token(self, kind: SourceKind) -> str:
        try:
            token = self.token_provider()
            if inspect.isawaitable(token):
                token = await token
        except Exception as e:
            raise SourceFetchError(f"Token provider failed: {e}", source_kind=kind.value) from e
        if not token:
            raise SourceFetchError("No access token available", source_kind=kind.value)
        return token

    async def _fetch_messages(self, headers: dict, since: datetime) -> list[Activity]:
        refs = await self._get_all_pages(
            f"{GMAIL_API_BASE_URL}/messages",
            headers,
            SourceKind.MESSAGE,
            "messages",
            params={"q": f"after:{int(since.timestamp())}", "maxResults": GMAIL_MAX_RESULTS},
        )
        # Messages of one thread returned in the same window approximate its depth
        thread_sizes = Counter(ref.get("threadId") for ref in refs if ref.get("threadId"))

        activities = []
        for ref in refs:
            message = await self._get_json(
                f"{GMAIL_API_BASE_URL}/messages/{ref['id']}",
                headers,
                SourceKind.MESSAGE,
                params={"format": "full"},
            )
            depth = thread_sizes.get(ref.get("threadId"))
            self._append_parsed(activities, parse_gmail_message, message, depth)
        return activities

    async def _fetch_events(self, headers: dict, since: datetime) -> list[Activity]:
        events = await self._get_all_pages(
            f"{CALENDAR_API_BASE_URL}/events",
            headers,
            SourceKind.CALENDAR_EVENT,
            "items",
            params={
                "timeMin": since.isoformat(),
                "singleEvents": "true",
                "orderBy": "startTime",
            },
        )
        activities = []
        for event in events:
            if event.get("status") == "cancelled":
                continue
            self._append_parsed(activities, parse_calendar_event, event)
        return activities

    async def _fetch_documents(self, headers: dict, since: datetime) -> list[Activity]:
        mime_filter = " or ".join(f"mimeType='{mime}'" for mime in DRIVE_MIME_TYPES)
        files = await self._get_all_pages(
            f"{DRIVE_API_BASE_URL}/files",
            headers,
            SourceKind.DOCUMENT_EDIT,
            "files",
            params={
                "q": f"modifiedTime > '{since.isoformat()}' and ({mime_filter})",
                "fields": DRIVE_FIELDS,
                "orderBy": "modifiedTime desc",
            },
        )
        activities = []
        for item in files:
            self._append_parsed(activities, parse_drive_file, item)
        return activities

    def _append_parsed(self, activities: list, parser, payload: dict, *args) -> None:
        try:
            activities.append(parser(payload, *args))
        except InvalidActivityError as e:
            self.invalid_payloads += 1
            logger.warning(
                "Skipping malformed Google payload",
                activity_id=e.activity_id,
                error=str(e),
            )

    async def _get_all_pages(
        self, url: str, headers: dict, kind: SourceKind, items_key: str, params: dict
    ) -> list[dict]:
        """Follow nextPageToken until the listing is exhausted."""
        items: list[dict] = []
        page_token = None
        while True:
            page_params = dict(params)
            if page_token:
                page_params["pageToken"] = page_token

            data = await self._get_json(url, headers, kind, params=page_params)
            items.extend(data.get(items_key, []))

            page_token = data.get("nextPageToken")
            if not page_token:
                return items
            logger.debug("Fetching next page", source_kind=kind.value, fetched=len(items))

    async def _get_json(
        self, url: str, headers: dict, kind: SourceKind, params: dict | None = None
    ) -> dict:
        response = await self._request_with_retry("GET", url, headers=headers, params=params)
        if response.status_code in (401, 403):
            raise SourceFetchError(
                f"Google API authorization failed (HTTP {response.status_code})",
                source_kind=kind.value,
            )
        if not response.is_success:
            raise SourceFetchError(
                f"Google API error (HTTP {response.status_code})", source_kind=kind.value
            )
        try:
            return response.json() if response.text else {}
        except ValueError as e:
            raise SourceFetchError(f"Invalid response format: {e}", source_kind=kind.value) from e

    async def _request_with_retry(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Execute an HTTP request with retry and backoff."""
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = await self._client.request(method, url, **kwargs)
                if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                    backoff = self.backoff_factor * (2 ** (attempt - 1))
                    logger.debug(
                        "Google API retrying request",
                        attempt=attempt,
                        status_code=response.status_code,
                        backoff_seconds=backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                return response
            except httpx.RequestError as e:
                if attempt >= MAX_RETRIES:
                    raise
                backoff = self.backoff_factor * (2 ** (attempt - 1))
                logger.debug(
                    "Google API request error, retrying",
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
        raise RuntimeError("Google API retry loop exhausted")
