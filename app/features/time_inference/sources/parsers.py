"""
Parsers from raw Google API payloads to typed activities.

Each parser raises InvalidActivityError when a payload lacks an identifier
or a usable timestamp; such payloads are never retried.
"""

import base64
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from app.features.time_inference.domain.models import (
    CalendarActivity,
    DocumentActivity,
    MessageActivity,
)
from app.features.time_inference.errors import InvalidActivityError

DRIVE_MIME_TYPES = {
    "application/vnd.google-apps.document": "doc",
    "application/vnd.google-apps.spreadsheet": "sheet",
    "application/vnd.google-apps.presentation": "slide",
}


def _parse_email_address(address_str: str) -> str | None:
    """Extract the bare address from ``Name <addr>`` or ``addr``."""
    if not address_str:
        return None
    if "<" in address_str and ">" in address_str:
        address_str = address_str.split("<", 1)[1].split(">", 1)[0]
    address = address_str.strip().strip('"').lower()
    return address if "@" in address else None


def _parse_email_addresses(addresses_str: str) -> list[str]:
    if not addresses_str:
        return []
    addresses = []
    for part in addresses_str.split(","):
        address = _parse_email_address(part)
        if address:
            addresses.append(address)
    return addresses


def _parse_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _parse_calendar_time(data: dict | None) -> datetime | None:
    if not data:
        return None
    if "dateTime" in data:
        return _parse_iso(data["dateTime"])
    if "date" in data:
        try:
            return datetime.strptime(data["date"], "%Y-%m-%d").replace(tzinfo=UTC)
        except ValueError:
            return None
    return None


def _decode_base64_data(data: str) -> str:
    try:
        decoded = base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))
    except (ValueError, TypeError):
        return ""
    return decoded.decode("utf-8", errors="ignore")


def _collect_body(payload: dict) -> tuple[str, bool]:
    """Return (plain text body, has attachments) for a Gmail payload tree."""
    text = ""
    has_attachments = False
    stack = [payload]
    while stack:
        part = stack.pop()
        if part.get("filename"):
            has_attachments = True
            continue
        data = part.get("body", {}).get("data")
        if data and not text and part.get("mimeType", "text/plain") == "text/plain":
            text = _decode_base64_data(data)
        stack.extend(part.get("parts", []))
    return text, has_attachments


def _word_count(text: str) -> int | None:
    words = len(text.split())
    return words or None


def parse_gmail_message(data: dict[str, Any], thread_depth: int | None = None) -> MessageActivity:
    message_id = data.get("id")
    if not message_id:
        raise InvalidActivityError("Gmail message has no id")

    payload = data.get("payload", {}) or {}
    headers = {h["name"].lower(): h["value"] for h in payload.get("headers", []) if "name" in h}

    timestamp = None
    internal_date = data.get("internalDate")
    if internal_date:
        try:
            timestamp = datetime.fromtimestamp(int(internal_date) / 1000, tz=UTC)
        except (ValueError, OSError):
            timestamp = None
    if timestamp is None:
        raise InvalidActivityError(
            "Gmail message has no usable internalDate", activity_id=f"gmail-{message_id}"
        )

    subject = headers.get("subject", "(No Subject)")
    body, has_attachments = _collect_body(payload)
    recipients = _parse_email_addresses(headers.get("to", "")) + _parse_email_addresses(
        headers.get("cc", "")
    )

    try:
        return MessageActivity(
            source_id=f"gmail-{message_id}",
            title=subject,
            description=data.get("snippet", ""),
            originator=_parse_email_address(headers.get("from", "")),
            participants=tuple(recipients),
            timestamp=timestamp,
            content_length=_word_count(body or data.get("snippet", "")),
            thread_depth=thread_depth,
            has_attachments=has_attachments,
            is_reply="in-reply-to" in headers or subject.lower().startswith("re:"),
        )
    except ValidationError as e:
        raise InvalidActivityError(str(e), activity_id=f"gmail-{message_id}") from e


def parse_calendar_event(data: dict[str, Any]) -> CalendarActivity:
    event_id = data.get("id")
    if not event_id:
        raise InvalidActivityError("Calendar event has no id")

    source_id = f"calendar-{event_id}"
    start = _parse_calendar_time(data.get("start"))
    if start is None:
        raise InvalidActivityError("Calendar event has no start time", activity_id=source_id)
    end = _parse_calendar_time(data.get("end"))

    attendees = [
        attendee["email"].lower()
        for attendee in data.get("attendees", [])
        if attendee.get("email") and not attendee.get("resource")
    ]
    organizer = (data.get("organizer") or {}).get("email")

    try:
        return CalendarActivity(
            source_id=source_id,
            title=data.get("summary") or "Untitled Event",
            description=data.get("description") or "",
            originator=organizer.lower() if organizer else None,
            participants=tuple(attendees),
            timestamp=start,
            end_time=end,
        )
    except ValidationError as e:
        raise InvalidActivityError(str(e), activity_id=source_id) from e


def parse_drive_file(data: dict[str, Any]) -> DocumentActivity:
    """
    Map a Drive file listing to a document edit.

    The modification time is part of the identifier so each edit session on
    the same file is a distinct activity.
    """
    file_id = data.get("id")
    if not file_id:
        raise InvalidActivityError("Drive file has no id")

    modified = _parse_iso(data.get("modifiedTime"))
    if modified is None:
        raise InvalidActivityError("Drive file has no modifiedTime", activity_id=f"drive-{file_id}")
    source_id = f"drive-{file_id}@{modified.isoformat()}"

    document_type = DRIVE_MIME_TYPES.get(data.get("mimeType", ""))
    if document_type is None:
        raise InvalidActivityError(
            f"Unsupported Drive mime type: {data.get('mimeType')}", activity_id=source_id
        )

    editor = (data.get("lastModifyingUser") or {}).get("emailAddress")
    owners = [
        owner["emailAddress"].lower()
        for owner in data.get("owners", [])
        if owner.get("emailAddress")
    ]

    try:
        return DocumentActivity(
            source_id=source_id,
            title=data.get("name") or "Untitled document",
            originator=editor.lower() if editor else None,
            participants=tuple(owners),
            timestamp=modified,
            document_type=document_type,
        )
    except ValidationError as e:
        raise InvalidActivityError(str(e), activity_id=source_id) from e
