"""Map raw directory entries to table rows.

Each ``parse_*`` function returns a dict keyed by model column names, or
None when the entry lacks the fields the row cannot exist without. The dict
always carries every upstream-mapped column so that an upsert replaces the
whole row rather than merging into it.
"""
import logging
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

APPROVED = "approved"


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an upstream ISO-8601 timestamp into an aware UTC datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Ignoring unparseable timestamp: {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def event_key(entry: dict[str, Any]) -> str | None:
    return (entry.get("event") or {}).get("api_id")


def person_key(entry: dict[str, Any]) -> str | None:
    return entry.get("api_id")


def guest_key(entry: dict[str, Any]) -> str | None:
    return (entry.get("guest") or {}).get("api_id")


def _parse_location(data: dict[str, Any]) -> dict[str, Any] | None:
    address = data.get("geo_address_json")
    if not address:
        return None
    return {
        "city": address.get("city"),
        "region": address.get("region"),
        "country": address.get("country"),
        "latitude": data.get("geo_latitude"),
        "longitude": data.get("geo_longitude"),
        "full_address": address.get("full_address"),
    }


def parse_event_entry(entry: dict[str, Any]) -> dict[str, Any] | None:
    """
    Map a ``calendar/list-events`` entry to an Event row.

    Entries look like ``{"api_id": ..., "event": {...}}``. Events without a
    name or a start/end time are skipped.
    """
    data = entry.get("event") or {}
    start_time = parse_timestamp(data.get("start_at"))
    end_time = parse_timestamp(data.get("end_at"))

    if not data.get("api_id") or not data.get("name") or not start_time or not end_time:
        logger.warning(f"Skipping event with missing required fields: {data.get('api_id')!r}")
        return None

    return {
        "api_id": data["api_id"],
        "title": data["name"],
        "description": data.get("description") or None,
        "start_time": start_time,
        "end_time": end_time,
        "location": _parse_location(data),
        "visibility": data.get("visibility"),
        "url": data.get("url"),
        "cover_url": data.get("cover_url"),
        "meeting_url": data.get("meeting_url") or data.get("zoom_meeting_url"),
        "timezone": data.get("timezone"),
        "calendar_api_id": data.get("calendar_api_id"),
        "created_at": parse_timestamp(data.get("created_at")),
    }


def parse_person_entry(entry: dict[str, Any]) -> dict[str, Any] | None:
    """
    Map a ``calendar/list-people`` entry to a Person row.

    Profile fields are read from the entry first and from its nested
    ``user`` object second.
    """
    if not entry.get("api_id") or not entry.get("email"):
        logger.warning(f"Skipping person with missing required fields: {entry.get('api_id')!r}")
        return None

    user = entry.get("user") or {}
    return {
        "api_id": entry["api_id"],
        "email": entry["email"],
        "user_name": entry.get("userName") or user.get("name"),
        "full_name": entry.get("fullName") or user.get("full_name"),
        "avatar_url": entry.get("avatarUrl") or user.get("avatar_url"),
        "role": entry.get("role"),
        "phone_number": entry.get("phoneNumber") or user.get("phone_number"),
        "bio": entry.get("bio") or user.get("bio"),
        "organization_name": entry.get("organizationName") or user.get("organization_name"),
        "job_title": entry.get("jobTitle") or user.get("job_title"),
        "created_at": parse_timestamp(entry.get("created_at")),
    }


def is_approved_guest(entry: dict[str, Any]) -> bool:
    return (entry.get("guest") or {}).get("approval_status") == APPROVED


def parse_guest_entry(
    entry: dict[str, Any], event_api_id: str, synced_at: datetime
) -> dict[str, Any] | None:
    """Map an ``event/get-guests`` entry to an AttendanceRecord row."""
    guest = entry.get("guest") or {}
    if not guest.get("api_id") or not guest.get("email"):
        logger.warning(f"Skipping guest with missing required fields: {guest.get('api_id')!r}")
        return None

    ticket = guest.get("event_ticket") or {}
    return {
        "guest_api_id": guest["api_id"],
        "event_api_id": event_api_id,
        "user_email": guest["email"].lower(),
        "approval_status": guest.get("approval_status") or APPROVED,
        "registered_at": parse_timestamp(guest.get("registered_at")),
        "checked_in_at": parse_timestamp(guest.get("checked_in_at")),
        "ticket_type_id": ticket.get("event_ticket_type_id"),
        "ticket_type_name": ticket.get("name"),
        "ticket_amount": ticket.get("amount"),
        "last_synced_at": synced_at,
    }
