import httpx
import pytest
from conftest import NOW

from app.features.time_inference.domain.models import SourceKind
from app.features.time_inference.errors import SourceFetchError
from app.features.time_inference.sources.google_source import GoogleWorkspaceSource

EVENT = {
    "id": "evt-1",
    "summary": "Design review",
    "start": {"dateTime": "2026-03-02T09:00:00Z"},
    "end": {"dateTime": "2026-03-02T09:45:00Z"},
    "attendees": [{"email": "me@timebeacon.io"}, {"email": "pm@acmecorp.com"}],
}


def _source(handler, token_provider=lambda: "token-abc"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GoogleWorkspaceSource(token_provider, client=client, backoff_factor=0)


@pytest.mark.asyncio
async def test_calendar_fetch_sends_bearer_and_window():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["time_min"] = request.url.params["timeMin"]
        return httpx.Response(
            200, json={"items": [EVENT, {**EVENT, "id": "evt-2", "status": "cancelled"}]}
        )

    source = _source(handler)
    activities = await source.fetch_activities(SourceKind.CALENDAR_EVENT, NOW)

    assert seen["auth"] == "Bearer token-abc"
    assert seen["time_min"] == NOW.isoformat()
    assert [activity.source_id for activity in activities] == ["calendar-evt-1"]
    await source.close()


@pytest.mark.asyncio
async def test_gmail_fetch_lists_then_reads_messages():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/messages"):
            return httpx.Response(
                200,
                json={
                    "messages": [
                        {"id": "m1", "threadId": "t1"},
                        {"id": "m2", "threadId": "t1"},
                        {"id": "m3", "threadId": "t2"},
                    ]
                },
            )
        message_id = request.url.path.rsplit("/", 1)[1]
        if message_id == "m3":
            # no internalDate: skipped as malformed
            return httpx.Response(200, json={"id": "m3", "payload": {"headers": []}})
        return httpx.Response(
            200,
            json={
                "id": message_id,
                "threadId": "t1",
                "internalDate": "1772452800000",
                "payload": {
                    "headers": [
                        {"name": "Subject", "value": "Status"},
                        {"name": "From", "value": "pm@acmecorp.com"},
                    ]
                },
            },
        )

    source = _source(handler)
    activities = await source.fetch_activities(SourceKind.MESSAGE, NOW)

    assert [activity.source_id for activity in activities] == ["gmail-m1", "gmail-m2"]
    assert all(activity.thread_depth == 2 for activity in activities)
    assert source.invalid_payloads == 1


@pytest.mark.asyncio
async def test_transient_errors_are_retried():
    attempts = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        if attempts["count"] < 3:
            return httpx.Response(503)
        return httpx.Response(200, json={"files": []})

    source = _source(handler)

    assert await source.fetch_activities(SourceKind.DOCUMENT_EDIT, NOW) == []
    assert attempts["count"] == 3


@pytest.mark.asyncio
async def test_auth_failure_raises_source_fetch_error():
    source = _source(lambda request: httpx.Response(401, json={"error": {"code": 401}}))

    with pytest.raises(SourceFetchError) as exc_info:
        await source.fetch_activities(SourceKind.CALENDAR_EVENT, NOW)

    assert exc_info.value.source_kind == "calendar_event"


@pytest.mark.asyncio
async def test_transport_error_raises_source_fetch_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    source = _source(handler)

    with pytest.raises(SourceFetchError):
        await source.fetch_activities(SourceKind.MESSAGE, NOW)


@pytest.mark.asyncio
async def test_async_token_provider_and_missing_token():
    async def provider():
        return ""

    source = _source(lambda request: httpx.Response(200, json={}), token_provider=provider)

    with pytest.raises(SourceFetchError):
        await source.fetch_activities(SourceKind.MESSAGE, NOW)


@pytest.mark.asyncio
async def test_gmail_listing_follows_next_page_token():
    list_tokens = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/messages"):
            token = request.url.params.get("pageToken")
            list_tokens.append(token)
            if token is None:
                return httpx.Response(
                    200,
                    json={"messages": [{"id": "m1", "threadId": "t1"}], "nextPageToken": "p2"},
                )
            return httpx.Response(200, json={"messages": [{"id": "m2", "threadId": "t2"}]})
        message_id = request.url.path.rsplit("/", 1)[1]
        return httpx.Response(
            200,
            json={
                "id": message_id,
                "internalDate": "1772452800000",
                "payload": {"headers": [{"name": "From", "value": "pm@acmecorp.com"}]},
            },
        )

    source = _source(handler)
    activities = await source.fetch_activities(SourceKind.MESSAGE, NOW)

    assert [activity.source_id for activity in activities] == ["gmail-m1", "gmail-m2"]
    assert list_tokens == [None, "p2"]


@pytest.mark.asyncio
async def test_drive_listing_follows_next_page_token():
    def handler(request: httpx.Request) -> httpx.Response:
        file_id = "file-2" if request.url.params.get("pageToken") == "next" else "file-1"
        payload = {
            "files": [
                {
                    "id": file_id,
                    "name": "Budget",
                    "mimeType": "application/vnd.google-apps.document",
                    "modifiedTime": "2026-03-02T08:15:00Z",
                }
            ]
        }
        if file_id == "file-1":
            payload["nextPageToken"] = "next"
        return httpx.Response(200, json=payload)

    source = _source(handler)
    activities = await source.fetch_activities(SourceKind.DOCUMENT_EDIT, NOW)

    assert [activity.source_id.split("@")[0] for activity in activities] == [
        "drive-file-1",
        "drive-file-2",
    ]
